from __future__ import annotations

import enum
import logging
import types
import typing as tp

import anyio
import httpcore
import httpx
from anyio.abc import TaskGroup

from .._exceptions import InstallError
from .._manifest import Manifest
from .._utils import fake_stream, read_httpx_response, to_httpcore_request
from ._cache import AsyncCache
from ._storages import AsyncBaseStorage, AsyncInMemoryStorage

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("swrcache.worker")

__all__ = ("AsyncOfflineCache", "StoreState")


class StoreState(enum.Enum):
    ABSENT = "absent"
    OPENING = "opening"
    POPULATING = "populating"
    READY = "ready"
    FAILED = "failed"


class AsyncCacheStream(httpx.AsyncByteStream):
    def __init__(self, stream: tp.AsyncIterable[bytes]):
        self._stream = stream

    async def __aiter__(self) -> tp.AsyncIterator[bytes]:
        async for part in self._stream:
            yield part


async def exit_task_group(
    task_group: TaskGroup,
    exc_type: tp.Optional[tp.Type[BaseException]],
    exc_value: tp.Optional[BaseException],
    traceback: tp.Optional[types.TracebackType],
) -> None:
    # Only cancellation is forwarded, so the caller's own errors are not wrapped in an exception group.
    if isinstance(exc_value, anyio.get_cancelled_exc_class()):
        await task_group.__aexit__(exc_type, exc_value, traceback)
    else:
        await task_group.__aexit__(None, None, None)


def _to_httpx_response(response: httpcore.Response, from_cache: bool) -> httpx.Response:
    extensions = dict(response.extensions)
    extensions["from_cache"] = from_cache
    return httpx.Response(
        status_code=response.status,
        headers=response.headers,
        stream=AsyncCacheStream(fake_stream(response.content)),
        extensions=extensions,
    )


class AsyncOfflineCache:
    """
    Offline asset cache for a single version label.

    Requests are answered with the stale-while-revalidate strategy: a stored
    snapshot is returned right away while the network request runs in the
    background and refreshes the store for next time. Without a snapshot the
    network response is awaited, stored and returned.

    Background revalidations run in an anyio task group. Either pass a
    running ``task_group`` or use the cache as an async context manager,
    which owns one and waits for pending revalidations on exit.

    :param version: The version label, also the name of the cache store
    :type version: str
    :param network: Transport used to reach the network
    :type network: httpx.AsyncBaseTransport
    :param manifest: Paths that must be cached by :meth:`install`, defaults to an empty manifest
    :type manifest: tp.Optional[tp.Union[Manifest, tp.Iterable[str]]], optional
    :param storage: Storage holding the cache stores, defaults to an in-memory storage
    :type storage: tp.Optional[AsyncBaseStorage], optional
    :param origin: Base URL the manifest paths are resolved against
    :type origin: str, optional
    :param task_group: A running task group for background revalidation, defaults to None
    :type task_group: tp.Optional[TaskGroup], optional
    """

    def __init__(
        self,
        version: str,
        network: httpx.AsyncBaseTransport,
        manifest: tp.Optional[tp.Union[Manifest, tp.Iterable[str]]] = None,
        storage: tp.Optional[AsyncBaseStorage] = None,
        origin: str = "http://localhost",
        task_group: tp.Optional[TaskGroup] = None,
    ) -> None:
        self.version = version
        self._network = network
        self._manifest = manifest if isinstance(manifest, Manifest) else Manifest(manifest or ())
        self._storage = storage if storage is not None else AsyncInMemoryStorage()

        if not isinstance(self._storage, AsyncBaseStorage):  # pragma: no cover
            raise TypeError(f"Expected subclass of `AsyncBaseStorage` but got `{storage.__class__.__name__}`")

        self._origin = origin
        self._task_group = task_group
        self._owned_task_group: tp.Optional[TaskGroup] = None
        self._state = StoreState.ABSENT

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    @property
    def storage(self) -> AsyncBaseStorage:
        return self._storage

    async def open(self) -> AsyncCache:
        return await self._storage.open(self.version)

    async def install(self) -> None:
        """
        Fetches every manifest URL and stores the responses.

        Nothing is stored unless every URL answered with a 2xx status. If the
        store did not exist before, a failed or cancelled install removes it again.

        :raises InstallError: When any manifest URL could not be fetched
        """
        if self._state is StoreState.READY:
            return

        existed = await self._storage.exists(self.version)
        self._state = StoreState.OPENING
        cache = await self.open()

        self._state = StoreState.POPULATING
        urls = self._manifest.resolve(self._origin)
        logger.info(f"Installing cache {self.version!r} with {len(urls)} manifest entries")

        fetched: tp.Dict[int, tp.Tuple[httpcore.Request, httpcore.Response]] = {}
        failures: tp.Dict[int, tp.Tuple[str, str]] = {}

        try:
            async with anyio.create_task_group() as task_group:
                for index, url in enumerate(urls):
                    task_group.start_soon(self._fetch_manifest_entry, index, url, fetched, failures)

            if failures:
                raise InstallError(self.version, [failures[index] for index in sorted(failures)])
            await cache.put_all([fetched[index] for index in range(len(urls))])
        except BaseException:
            self._state = StoreState.FAILED
            if not existed:
                with anyio.CancelScope(shield=True):
                    await self._storage.drop(self.version)
            logger.warning(f"Installing cache {self.version!r} failed")
            raise

        self._state = StoreState.READY
        logger.info(f"Cache {self.version!r} is ready")

    async def _fetch_manifest_entry(
        self,
        index: int,
        url: str,
        fetched: tp.Dict[int, tp.Tuple[httpcore.Request, httpcore.Response]],
        failures: tp.Dict[int, tp.Tuple[str, str]],
    ) -> None:
        request = httpx.Request("GET", url)
        try:
            response = await read_httpx_response(await self._network.handle_async_request(request))
        except Exception as exc:
            failures[index] = (url, f"{type(exc).__name__}: {exc}")
            return

        if not 200 <= response.status < 300 or response.status == 206:
            failures[index] = (url, f"unexpected status {response.status}")
            return
        fetched[index] = (to_httpcore_request(request), response)

    async def intercept(self, request: httpx.Request) -> httpx.Response:
        """
        Answers a request with the stale-while-revalidate strategy.

        :param request: An outgoing HTTP request
        :type request: httpx.Request
        :return: The stored snapshot if there is one, the network response otherwise
        :rtype: httpx.Response
        """
        if self._task_group is None:
            raise RuntimeError(
                f"`{type(self).__name__}` needs a running task group. "
                "Use it as an async context manager or pass `task_group`."
            )

        httpcore_request = to_httpcore_request(request)
        cache = await self.open()
        cached = await cache.match(httpcore_request)

        if cached is not None:
            logger.debug(f"Serving {request.method} {request.url} from {self.version!r}, revalidating")
            self._task_group.start_soon(self._revalidate, cache, request, httpcore_request)
            return _to_httpx_response(cached, from_cache=True)

        logger.debug(f"No snapshot for {request.method} {request.url} in {self.version!r}")
        fresh = await self._fetch_and_store(cache, request, httpcore_request)
        return _to_httpx_response(fresh, from_cache=False)

    async def _fetch_and_store(
        self, cache: AsyncCache, request: httpx.Request, httpcore_request: httpcore.Request
    ) -> httpcore.Response:
        response = await read_httpx_response(await self._network.handle_async_request(request))

        if httpcore_request.method.upper() == b"GET" and response.status != 206:
            try:
                await cache.put(httpcore_request, response)
            except Exception:
                logger.warning(f"Could not store {request.url} in {self.version!r}", exc_info=True)
        return response

    async def _revalidate(self, cache: AsyncCache, request: httpx.Request, httpcore_request: httpcore.Request) -> None:
        try:
            await self._fetch_and_store(cache, request, httpcore_request)
        except httpx.HTTPError as exc:
            logger.debug(f"Revalidating {request.url} failed, keeping the stored snapshot: {exc!r}")
        except Exception:
            # Runs in the shared task group, an escaping error would cancel the host.
            logger.warning(f"Revalidating {request.url} raised, keeping the stored snapshot", exc_info=True)

    async def purge_stale_caches(self) -> tp.List[str]:
        """
        Drops every cache store except the one for this version.

        :return: Names of the dropped stores
        :rtype: tp.List[str]
        """
        stale = [name for name in await self._storage.cache_names() if name != self.version]
        for name in stale:
            await self._storage.drop(name)
        if stale:
            logger.info(f"Dropped stale caches: {', '.join(stale)}")
        return stale

    async def __aenter__(self) -> Self:
        if self._task_group is None:
            self._owned_task_group = anyio.create_task_group()
            await self._owned_task_group.__aenter__()
            self._task_group = self._owned_task_group
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        if self._owned_task_group is not None:
            try:
                await exit_task_group(self._owned_task_group, exc_type, exc_value, traceback)
            finally:
                self._owned_task_group = None
                self._task_group = None
