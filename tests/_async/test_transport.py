import anyio
import httpcore
import httpx
import pytest

from swrcache import AsyncInMemoryStorage, AsyncOfflineTransport, InstallError, StoreState


@pytest.mark.anyio
async def test_requests_pass_through_before_registration(network):
    async with AsyncOfflineTransport(transport=network) as transport:
        response = await transport.handle_async_request(httpx.Request("GET", "http://localhost/boids/index.js"))

        assert response.status_code == 200
        assert "from_cache" not in response.extensions
        assert transport.controller is None
        assert await transport.storage.cache_names() == []


@pytest.mark.anyio
async def test_register_takes_control(network):
    async with AsyncOfflineTransport(transport=network) as transport:
        worker = await transport.register("v2", manifest=["/", "/index.html"])

        assert transport.controller is worker
        assert worker.state is StoreState.READY

        network.offline = True
        response = await transport.handle_async_request(httpx.Request("GET", "http://localhost/"))
        assert response.extensions["from_cache"]
        assert await response.aread() == b"<html>home</html>"


@pytest.mark.anyio
async def test_failed_registration_keeps_previous_version(network):
    async with AsyncOfflineTransport(transport=network) as transport:
        v1 = await transport.register("v1", manifest=["/index.html"])

        network.routes["/boids/index.js"] = httpx.Response(500)
        with pytest.raises(InstallError):
            await transport.register("v2", manifest=["/index.html", "/boids/index.js"])

        assert transport.controller is v1
        assert await transport.storage.cache_names() == ["v1"]

        network.offline = True
        response = await transport.handle_async_request(httpx.Request("GET", "http://localhost/index.html"))
        assert response.extensions["cache_metadata"]["cache_name"] == "v1"


@pytest.mark.anyio
async def test_new_version_keeps_old_store_by_default(network):
    storage = AsyncInMemoryStorage()

    async with AsyncOfflineTransport(transport=network, storage=storage) as transport:
        await transport.register("v1", manifest=["/index.html"])
        v2 = await transport.register("v2", manifest=["/index.html"])

        assert transport.controller is v2
        assert await storage.cache_names() == ["v1", "v2"]


@pytest.mark.anyio
async def test_register_with_purge_stale(network):
    storage = AsyncInMemoryStorage()

    async with AsyncOfflineTransport(transport=network, storage=storage) as transport:
        await transport.register("v1", manifest=["/index.html"])
        await transport.register("v2", manifest=["/index.html"], purge_stale=True)

        assert await storage.cache_names() == ["v2"]


@pytest.mark.anyio
async def test_register_requires_context(network):
    transport = AsyncOfflineTransport(transport=network)

    with pytest.raises(RuntimeError):
        await transport.register("v1")


@pytest.mark.anyio
async def test_exit_waits_for_revalidation(network):
    async with AsyncOfflineTransport(transport=network) as transport:
        await transport.register("v1", manifest=["/index.html"])
        network.routes["/index.html"] = httpx.Response(200, content=b"<html>new</html>")
        await transport.handle_async_request(httpx.Request("GET", "http://localhost/index.html"))

    store = await transport.storage.open("v1")
    snapshot = await store.match(httpcore.Request("GET", "http://localhost/index.html"))
    assert len(network.requests) == 2
    assert len(await store.keys()) == 1
    assert snapshot is not None
    assert snapshot.content == b"<html>new</html>"


@pytest.mark.anyio
async def test_late_revalidation_does_not_restore_purged_store(network):
    storage = AsyncInMemoryStorage()

    async with AsyncOfflineTransport(transport=network, storage=storage) as transport:
        await transport.register("v1", manifest=["/index.html"])
        network.gate = anyio.Event()
        await transport.handle_async_request(httpx.Request("GET", "http://localhost/index.html"))

        await transport.register("v2", purge_stale=True)
        network.gate.set()

    assert network.paths() == ["/index.html", "/index.html"]
    assert await storage.cache_names() == ["v2"]


@pytest.mark.anyio
async def test_unexpected_revalidation_error_does_not_reach_caller(network):
    async with AsyncOfflineTransport(transport=network) as transport:
        await transport.register("v1", manifest=["/index.html"])
        network.routes["/index.html"] = OSError("socket reset")

        for _ in range(2):
            response = await transport.handle_async_request(httpx.Request("GET", "http://localhost/index.html"))
            assert response.extensions["from_cache"]
            assert await response.aread() == b"<html>home</html>"


@pytest.mark.anyio
async def test_errors_inside_context_are_not_wrapped(network):
    with pytest.raises(httpx.ConnectError):
        async with AsyncOfflineTransport(transport=network) as transport:
            await transport.register("v1")
            network.offline = True
            await transport.handle_async_request(httpx.Request("GET", "http://localhost/index.html"))
