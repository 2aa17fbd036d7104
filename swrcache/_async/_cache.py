from __future__ import annotations

import logging
import typing as tp

from httpcore import Request, Response

from .._exceptions import UnsupportedRequestError
from .._serializers import Metadata, clone_model
from .._utils import generate_key, utcnow
from ._storages import AsyncBaseStorage

logger = logging.getLogger("swrcache.storages")

__all__ = ("AsyncCache",)


def _check_cacheable(request: Request, response: Response) -> None:
    if request.method.upper() != b"GET":
        raise UnsupportedRequestError(f"Only GET requests can be cached, got {request.method.decode('ascii')}")
    if response.status == 206:
        raise UnsupportedRequestError("Partial responses (206) can not be cached")


class AsyncCache:
    """
    A handle to one named cache store.

    Handles are cheap: obtain one with ``await storage.open(name)`` whenever
    it is needed instead of keeping it around.
    """

    def __init__(self, storage: AsyncBaseStorage, name: str) -> None:
        self._storage = storage
        self.name = name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    async def match(self, request: Request) -> tp.Optional[Response]:
        if request.method.upper() != b"GET":
            return None

        stored_data = await self._storage.retrieve(self.name, generate_key(request))
        if stored_data is None:
            return None

        stored_response, _, metadata = stored_data
        stored_response.read()
        stored_response.extensions["cache_metadata"] = metadata  # type: ignore[index]
        return stored_response

    async def put(self, request: Request, response: Response) -> None:
        """
        Stores a copy of an already read response under the request's key.

        Any snapshot previously stored for the same key is replaced.

        :raises UnsupportedRequestError: For non-GET requests and partial responses
        """
        _check_cacheable(request, response)
        await self._put(request, response)

    async def put_all(self, pairs: tp.Sequence[tp.Tuple[Request, Response]]) -> None:
        """
        Stores every request/response pair.

        All pairs are validated before the first write, so an unsupported
        pair leaves the store untouched.
        """
        for request, response in pairs:
            _check_cacheable(request, response)

        for request, response in pairs:
            await self._put(request, response)

    async def _put(self, request: Request, response: Response) -> None:
        key = generate_key(request)
        metadata = Metadata(cache_name=self.name, cache_key=key, created_at=utcnow())
        stored = await self._storage.store(
            self.name,
            key,
            response=clone_model(response),
            request=clone_model(request),
            metadata=metadata,
        )
        if stored:
            logger.debug(f"Stored {response.status} snapshot in {self.name!r} under {key}")
        else:
            logger.debug(f"Cache {self.name!r} no longer exists, discarding snapshot {key}")

    async def delete(self, request: Request) -> bool:
        return await self._storage.remove(self.name, generate_key(request))

    async def keys(self) -> tp.List[str]:
        return await self._storage.keys(self.name)
