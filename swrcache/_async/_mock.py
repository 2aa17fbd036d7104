import typing as tp

import anyio
import httpx

__all__ = ("MockAsyncTransport",)

Route = tp.Union[httpx.Response, Exception]


class MockAsyncTransport(httpx.AsyncBaseTransport):
    """
    A scripted network for tests and demos.

    Requests are answered from ``routes`` (keyed by URL path), then from the
    queue filled by :meth:`add_responses`, and with a 404 otherwise. Setting
    ``offline`` makes every request fail with :class:`httpx.ConnectError`,
    and a ``gate`` event holds every request until it is set.
    """

    def __init__(self, routes: tp.Optional[tp.Mapping[str, Route]] = None) -> None:
        self.routes: tp.Dict[str, Route] = dict(routes or {})
        self.mocked_responses: tp.List[Route] = []
        self.requests: tp.List[httpx.Request] = []
        self.offline = False
        self.gate: tp.Optional[anyio.Event] = None

    def add_responses(self, responses: tp.List[Route]) -> None:
        self.mocked_responses.extend(responses)

    def paths(self) -> tp.List[str]:
        return [request.url.path for request in self.requests]

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()

        if self.offline:
            raise httpx.ConnectError("Network is unreachable", request=request)

        route = self.routes.get(request.url.path)
        if route is None and self.mocked_responses:
            route = self.mocked_responses.pop(0)
        if route is None:
            return httpx.Response(404, request=request)
        if isinstance(route, Exception):
            raise route

        # A fresh copy per request, so the same route can be consumed repeatedly.
        return httpx.Response(
            status_code=route.status_code,
            headers=route.headers,
            content=route.content,
            request=request,
        )
