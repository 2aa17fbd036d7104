from __future__ import annotations

import logging
import types
import typing as tp

import anyio
import httpx
from anyio.abc import TaskGroup

from .._exceptions import InstallError
from .._manifest import Manifest
from ._storages import AsyncBaseStorage, AsyncInMemoryStorage
from ._worker import AsyncOfflineCache, exit_task_group

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("swrcache.transports")

__all__ = ("AsyncOfflineTransport",)


class AsyncOfflineTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX Transport that answers requests from an offline asset cache.

    Requests pass straight to the wrapped transport until a version has been
    registered. Registering installs the version's manifest first; only a
    completely installed version takes control, so a failed install leaves
    the previously registered version in service.

    :param transport: `Transport` that our class wraps in order to add an offline cache layer on top of
    :type transport: httpx.AsyncBaseTransport
    :param storage: Storage that holds the cache stores, defaults to None
    :type storage: tp.Optional[AsyncBaseStorage], optional
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        storage: tp.Optional[AsyncBaseStorage] = None,
    ) -> None:
        self._transport = transport

        self._storage = storage if storage is not None else AsyncInMemoryStorage()

        if not isinstance(self._storage, AsyncBaseStorage):  # pragma: no cover
            raise TypeError(f"Expected subclass of `AsyncBaseStorage` but got `{storage.__class__.__name__}`")

        self._controller: tp.Optional[AsyncOfflineCache] = None
        self._task_group: tp.Optional[TaskGroup] = None

    @property
    def controller(self) -> tp.Optional[AsyncOfflineCache]:
        return self._controller

    @property
    def storage(self) -> AsyncBaseStorage:
        return self._storage

    async def register(
        self,
        version: str,
        manifest: tp.Optional[tp.Union[Manifest, tp.Iterable[str]]] = None,
        origin: str = "http://localhost",
        purge_stale: bool = False,
    ) -> AsyncOfflineCache:
        """
        Installs a version and makes it answer all further requests.

        :param version: The version label
        :type version: str
        :param manifest: Paths to cache before the version takes control
        :type manifest: tp.Optional[tp.Union[Manifest, tp.Iterable[str]]], optional
        :param origin: Base URL the manifest paths are resolved against
        :type origin: str, optional
        :param purge_stale: Drop the stores of every other version once this one is in control
        :type purge_stale: bool, optional
        :raises InstallError: When the manifest could not be cached completely
        :return: The controlling cache
        :rtype: AsyncOfflineCache
        """
        if self._task_group is None:
            raise RuntimeError(f"`{type(self).__name__}` must be used as an async context manager")

        worker = AsyncOfflineCache(
            version=version,
            network=self._transport,
            manifest=manifest,
            storage=self._storage,
            origin=origin,
            task_group=self._task_group,
        )
        try:
            await worker.install()
        except InstallError:
            if self._controller is not None:
                logger.warning(f"Keeping cache {self._controller.version!r} in service")
            raise

        previous, self._controller = self._controller, worker
        if previous is not None:
            logger.info(f"Cache {version!r} replaced {previous.version!r}")

        if purge_stale:
            await worker.purge_stale_caches()
        return worker

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """
        Routes the request through the controlling cache, if any.

        :param request: An HTTP request
        :type request: httpx.Request
        :return: An HTTP response
        :rtype: httpx.Response
        """
        if self._controller is None:
            return await self._transport.handle_async_request(request)
        return await self._controller.intercept(request)

    async def aclose(self) -> None:
        await self._storage.aclose()
        await self._transport.aclose()

    async def __aenter__(self) -> Self:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        try:
            if task_group is not None:
                await exit_task_group(task_group, exc_type, exc_value, traceback)
        finally:
            await self.aclose()
