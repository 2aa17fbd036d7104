from __future__ import annotations

import logging
import os
import time
import typing as tp
import warnings
from copy import deepcopy
from pathlib import Path
from urllib.parse import quote, unquote

import anyio

try:
    import anysqlite
except ImportError:  # pragma: no cover
    anysqlite = None  # type: ignore

from httpcore import Request, Response

from .._files import AsyncFileManager
from .._serializers import BaseSerializer, JSONSerializer, Metadata, StoredResponse, clone_model
from .._utils import ensure_cache_dir, utcnow

if tp.TYPE_CHECKING:  # pragma: no cover
    from ._cache import AsyncCache

logger = logging.getLogger("swrcache.storages")

__all__ = (
    "AsyncBaseStorage",
    "AsyncFileStorage",
    "AsyncSQLiteStorage",
    "AsyncInMemoryStorage",
)


def _default_metadata(cache_name: str, key: str) -> Metadata:
    return Metadata(cache_name=cache_name, cache_key=key, created_at=utcnow())


class AsyncBaseStorage:
    """
    A set of named cache stores.

    Every store is addressed by its name (the version label) and maps request
    keys to response snapshots. Backends only need to implement the primitive
    operations below; :meth:`open` hands out the :class:`AsyncCache` handle
    that the rest of the library works with.
    """

    def __init__(self, serializer: tp.Optional[BaseSerializer] = None) -> None:
        self._serializer = serializer or JSONSerializer()

    async def open(self, cache_name: str) -> AsyncCache:
        """
        Returns a handle to the named store, creating the store if it is absent.

        Safe to call any number of times for the same name.
        """
        from ._cache import AsyncCache

        await self.create(cache_name)
        return AsyncCache(storage=self, name=cache_name)

    async def create(self, cache_name: str) -> None:
        raise NotImplementedError()

    async def exists(self, cache_name: str) -> bool:
        raise NotImplementedError()

    async def cache_names(self) -> tp.List[str]:
        raise NotImplementedError()

    async def drop(self, cache_name: str) -> bool:
        raise NotImplementedError()

    async def store(
        self, cache_name: str, key: str, response: Response, request: Request, metadata: Metadata | None = None
    ) -> bool:
        raise NotImplementedError()

    async def retrieve(self, cache_name: str, key: str) -> tp.Optional[StoredResponse]:
        raise NotImplementedError()

    async def remove(self, cache_name: str, key: str) -> bool:
        raise NotImplementedError()

    async def keys(self, cache_name: str) -> tp.List[str]:
        raise NotImplementedError()

    async def aclose(self) -> None:
        raise NotImplementedError()


class AsyncFileStorage(AsyncBaseStorage):
    """
    A simple file storage.

    Each named store is a directory below ``base_path`` and each snapshot a
    file named after its request key.

    :param serializer: Serializer capable of serializing and de-serializing snapshots, defaults to None
    :type serializer: tp.Optional[BaseSerializer], optional
    :param base_path: A storage base path where the stores should be saved, defaults to None
    :type base_path: tp.Optional[Path], optional
    """

    def __init__(
        self,
        serializer: tp.Optional[BaseSerializer] = None,
        base_path: tp.Optional[Path] = None,
    ) -> None:
        super().__init__(serializer)

        self._base_path = ensure_cache_dir(Path(base_path) if base_path is not None else Path(".cache/swrcache"))
        self._file_manager = AsyncFileManager(is_binary=self._serializer.is_binary)
        self._lock = anyio.Lock()

    def _cache_path(self, cache_name: str) -> Path:
        return self._base_path / quote(cache_name, safe="")

    async def create(self, cache_name: str) -> None:
        async with self._lock:
            self._cache_path(cache_name).mkdir(exist_ok=True)

    async def exists(self, cache_name: str) -> bool:
        return self._cache_path(cache_name).is_dir()

    async def cache_names(self) -> tp.List[str]:
        return sorted(unquote(entry.name) for entry in self._base_path.iterdir() if entry.is_dir())

    async def drop(self, cache_name: str) -> bool:
        cache_path = self._cache_path(cache_name)

        async with self._lock:
            if not cache_path.is_dir():
                return False
            with os.scandir(cache_path) as entries:
                for entry in entries:
                    os.unlink(entry.path)
            cache_path.rmdir()
        logger.debug(f"Dropped file store {cache_name!r}")
        return True

    async def store(
        self, cache_name: str, key: str, response: Response, request: Request, metadata: Metadata | None = None
    ) -> bool:
        """
        Stores the snapshot in the named store.

        Stores are never created implicitly, a snapshot for a missing store is discarded.

        :param cache_name: Name of the store
        :type cache_name: str
        :param key: Hashed value of concatenated HTTP method and URI
        :type key: str
        :param response: A read HTTP response
        :type response: httpcore.Response
        :param request: The HTTP request the response answers
        :type request: httpcore.Request
        :param metadata: Additional information about the stored response
        :type metadata: Optional[Metadata]
        :return: Whether the store existed and the snapshot was written
        :rtype: bool
        """

        metadata = metadata or _default_metadata(cache_name, key)
        cache_path = self._cache_path(cache_name)

        async with self._lock:
            if not cache_path.is_dir():
                return False
            await self._file_manager.write_to(
                str(cache_path / key),
                self._serializer.dumps(response=response, request=request, metadata=metadata),
            )
        return True

    async def retrieve(self, cache_name: str, key: str) -> tp.Optional[StoredResponse]:
        response_path = self._cache_path(cache_name) / key

        async with self._lock:
            if response_path.is_file():
                read_data = await self._file_manager.read_from(str(response_path))
                if len(read_data) != 0:
                    return self._serializer.loads(read_data)
        return None

    async def remove(self, cache_name: str, key: str) -> bool:
        response_path = self._cache_path(cache_name) / key

        async with self._lock:
            if response_path.is_file():
                response_path.unlink()
                return True
        return False

    async def keys(self, cache_name: str) -> tp.List[str]:
        cache_path = self._cache_path(cache_name)
        if not cache_path.is_dir():
            return []
        # Files with a suffix are in-flight temporary writes.
        return sorted(entry.name for entry in cache_path.iterdir() if entry.is_file() and "." not in entry.name)

    async def aclose(self) -> None:  # pragma: no cover
        return


class AsyncSQLiteStorage(AsyncBaseStorage):
    """
    A simple sqlite3 storage.

    :param serializer: Serializer capable of serializing and de-serializing snapshots, defaults to None
    :type serializer: tp.Optional[BaseSerializer], optional
    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[anysqlite.Connection], optional
    :param database_path: Where to create the database when no connection is given
    :type database_path: tp.Union[str, Path], optional
    """

    def __init__(
        self,
        serializer: tp.Optional[BaseSerializer] = None,
        connection: tp.Optional[anysqlite.Connection] = None,
        database_path: tp.Union[str, Path] = ".swrcache.sqlite",
    ) -> None:
        if anysqlite is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `swrcache` installed with the `sqlite` extension as shown.\n"
                "```pip install swrcache[sqlite]```"
            )
        super().__init__(serializer)

        self._connection: tp.Optional[anysqlite.Connection] = connection or None
        self._database_path = str(database_path)
        self._setup_lock = anyio.Lock()
        self._setup_completed: bool = False
        self._lock = anyio.Lock()

    async def _setup(self) -> anysqlite.Connection:
        async with self._setup_lock:
            if not self._setup_completed:
                if not self._connection:  # pragma: no cover
                    self._connection = await anysqlite.connect(self._database_path, check_same_thread=False)
                await self._connection.execute("CREATE TABLE IF NOT EXISTS caches(name TEXT PRIMARY KEY)")
                await self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS entries("
                    "cache_name TEXT NOT NULL, key TEXT NOT NULL, data BLOB NOT NULL, date_created REAL NOT NULL, "
                    "PRIMARY KEY (cache_name, key))"
                )
                await self._connection.commit()
                self._setup_completed = True
        assert self._connection
        return self._connection

    async def create(self, cache_name: str) -> None:
        connection = await self._setup()

        async with self._lock:
            await connection.execute("INSERT OR IGNORE INTO caches(name) VALUES(?)", [cache_name])
            await connection.commit()

    async def exists(self, cache_name: str) -> bool:
        connection = await self._setup()

        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM caches WHERE name = ?", [cache_name])
            return await cursor.fetchone() is not None

    async def cache_names(self) -> tp.List[str]:
        connection = await self._setup()

        async with self._lock:
            cursor = await connection.execute("SELECT name FROM caches ORDER BY name")
            return [row[0] for row in await cursor.fetchall()]

    async def drop(self, cache_name: str) -> bool:
        connection = await self._setup()

        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM caches WHERE name = ?", [cache_name])
            dropped = await cursor.fetchone() is not None
            await connection.execute("DELETE FROM caches WHERE name = ?", [cache_name])
            await connection.execute("DELETE FROM entries WHERE cache_name = ?", [cache_name])
            await connection.commit()
        if dropped:
            logger.debug(f"Dropped sqlite store {cache_name!r}")
        return dropped

    async def store(
        self, cache_name: str, key: str, response: Response, request: Request, metadata: Metadata | None = None
    ) -> bool:
        """
        Stores the snapshot in the named store, replacing any previous one for the key.

        :param cache_name: Name of the store
        :type cache_name: str
        :param key: Hashed value of concatenated HTTP method and URI
        :type key: str
        :param response: A read HTTP response
        :type response: httpcore.Response
        :param request: The HTTP request the response answers
        :type request: httpcore.Request
        :param metadata: Additional information about the stored response
        :type metadata: Optional[Metadata]
        :return: Whether the store existed and the snapshot was written
        :rtype: bool
        """

        connection = await self._setup()
        metadata = metadata or _default_metadata(cache_name, key)
        serialized_response = self._serializer.dumps(response=response, request=request, metadata=metadata)

        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM caches WHERE name = ?", [cache_name])
            if await cursor.fetchone() is None:
                return False
            await connection.execute(
                "INSERT OR REPLACE INTO entries(cache_name, key, data, date_created) VALUES(?, ?, ?, ?)",
                [cache_name, key, serialized_response, time.time()],
            )
            await connection.commit()
        return True

    async def retrieve(self, cache_name: str, key: str) -> tp.Optional[StoredResponse]:
        connection = await self._setup()

        async with self._lock:
            cursor = await connection.execute(
                "SELECT data FROM entries WHERE cache_name = ? AND key = ?", [cache_name, key]
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            return self._serializer.loads(row[0])

    async def remove(self, cache_name: str, key: str) -> bool:
        connection = await self._setup()

        async with self._lock:
            cursor = await connection.execute(
                "SELECT 1 FROM entries WHERE cache_name = ? AND key = ?", [cache_name, key]
            )
            if await cursor.fetchone() is None:
                return False
            await connection.execute("DELETE FROM entries WHERE cache_name = ? AND key = ?", [cache_name, key])
            await connection.commit()
            return True

    async def keys(self, cache_name: str) -> tp.List[str]:
        connection = await self._setup()

        async with self._lock:
            cursor = await connection.execute(
                "SELECT key FROM entries WHERE cache_name = ? ORDER BY key", [cache_name]
            )
            return [row[0] for row in await cursor.fetchall()]

    async def aclose(self) -> None:  # pragma: no cover
        if self._connection is not None:
            await self._connection.close()


class AsyncInMemoryStorage(AsyncBaseStorage):
    """
    A simple in-memory storage.

    Snapshots are deep copies, so nothing handed to or returned from the
    storage shares state with a stored entry. There is no eviction.
    """

    def __init__(self, serializer: tp.Optional[BaseSerializer] = None) -> None:
        super().__init__(serializer)

        if serializer is not None:  # pragma: no cover
            warnings.warn("The serializer is not used in the in-memory storage.", RuntimeWarning)

        self._caches: tp.Dict[str, tp.Dict[str, StoredResponse]] = {}
        self._lock = anyio.Lock()

    async def create(self, cache_name: str) -> None:
        async with self._lock:
            self._caches.setdefault(cache_name, {})

    async def exists(self, cache_name: str) -> bool:
        return cache_name in self._caches

    async def cache_names(self) -> tp.List[str]:
        return sorted(self._caches)

    async def drop(self, cache_name: str) -> bool:
        async with self._lock:
            return self._caches.pop(cache_name, None) is not None

    async def store(
        self, cache_name: str, key: str, response: Response, request: Request, metadata: Metadata | None = None
    ) -> bool:
        metadata = metadata or _default_metadata(cache_name, key)

        async with self._lock:
            if cache_name not in self._caches:
                return False
            stored_response: StoredResponse = (clone_model(response), clone_model(request), deepcopy(metadata))
            self._caches[cache_name][key] = stored_response
        return True

    async def retrieve(self, cache_name: str, key: str) -> tp.Optional[StoredResponse]:
        async with self._lock:
            stored_response = self._caches.get(cache_name, {}).get(key)
            if stored_response is None:
                return None
            response, request, metadata = stored_response
            return clone_model(response), clone_model(request), deepcopy(metadata)

    async def remove(self, cache_name: str, key: str) -> bool:
        async with self._lock:
            return self._caches.get(cache_name, {}).pop(key, None) is not None

    async def keys(self, cache_name: str) -> tp.List[str]:
        return sorted(self._caches.get(cache_name, {}))

    async def aclose(self) -> None:  # pragma: no cover
        return
