import pytest

from swrcache import AsyncFileStorage, AsyncInMemoryStorage, AsyncSQLiteStorage, PickleSerializer


@pytest.fixture(params=["memory", "file", "file-pickle", "sqlite"])
async def storage(request, tmp_path):
    if request.param == "memory":
        storage_instance = AsyncInMemoryStorage()
    elif request.param == "file":
        storage_instance = AsyncFileStorage(base_path=tmp_path / "cache")
    elif request.param == "file-pickle":
        storage_instance = AsyncFileStorage(serializer=PickleSerializer(), base_path=tmp_path / "cache")
    else:
        storage_instance = AsyncSQLiteStorage(database_path=tmp_path / "cache.sqlite")
    yield storage_instance
    await storage_instance.aclose()
