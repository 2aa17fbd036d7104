import typing as tp

import httpx

from .._manifest import Manifest
from ._storages import AsyncBaseStorage
from ._transports import AsyncOfflineTransport
from ._worker import AsyncOfflineCache

__all__ = ("AsyncOfflineClient",)


class AsyncOfflineClient(httpx.AsyncClient):
    def __init__(
        self,
        *args: tp.Any,
        storage: tp.Optional[AsyncBaseStorage] = None,
        **kwargs: tp.Any,
    ):
        self._storage = storage
        super().__init__(*args, **kwargs)

    def _init_transport(self, *args, **kwargs) -> AsyncOfflineTransport:  # type: ignore
        _transport = super()._init_transport(*args, **kwargs)
        return AsyncOfflineTransport(
            transport=_transport,
            storage=self._storage,
        )

    @property
    def offline_transport(self) -> AsyncOfflineTransport:
        return tp.cast(AsyncOfflineTransport, self._transport)

    async def register(
        self,
        version: str,
        manifest: tp.Optional[tp.Union[Manifest, tp.Iterable[str]]] = None,
        purge_stale: bool = False,
    ) -> AsyncOfflineCache:
        """
        Registers a version, resolving its manifest against the client's ``base_url``.
        """
        if not self.base_url.is_absolute_url:
            raise ValueError("Registering an offline cache requires an absolute `base_url`")
        return await self.offline_transport.register(
            version,
            manifest=manifest,
            origin=str(self.base_url),
            purge_stale=purge_stale,
        )
