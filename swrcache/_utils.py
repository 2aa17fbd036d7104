from __future__ import annotations

import datetime
import hashlib
import typing as tp
from pathlib import Path

import httpcore
import httpx

HEADERS_ENCODING = "iso-8859-1"


def normalized_url(url: tp.Union[httpcore.URL, str, bytes]) -> str:
    if isinstance(url, str):  # pragma: no cover
        return url

    if isinstance(url, bytes):  # pragma: no cover
        return url.decode("ascii")

    if isinstance(url, httpcore.URL):
        port = f":{url.port}" if url.port is not None else ""
        return f"{url.scheme.decode('ascii')}://{url.host.decode('ascii')}{port}{url.target.decode('ascii')}"
    assert False, "Invalid type for `normalized_url`"  # pragma: no cover


def generate_key(request: httpcore.Request) -> str:
    """
    Builds the identity of a request inside a cache store.

    Only the method and the normalized URL take part in the key, so two
    requests for the same resource with different headers share a snapshot.
    """
    encoded = request.method.upper() + b" " + normalized_url(request.url).encode("ascii")
    return hashlib.blake2b(encoded, digest_size=16).hexdigest()


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


async def fake_stream(content: bytes) -> tp.AsyncIterator[bytes]:
    yield content


def to_httpcore_request(request: httpx.Request) -> httpcore.Request:
    return httpcore.Request(
        method=request.method,
        url=httpcore.URL(
            scheme=request.url.raw_scheme,
            host=request.url.raw_host,
            port=request.url.port,
            target=request.url.raw_path,
        ),
        headers=request.headers.raw,
    )


async def read_httpx_response(response: httpx.Response) -> httpcore.Response:
    """
    Drains a transport-level httpx response into an already read httpcore response.

    The body is collected from the raw stream, so any `Content-Encoding`
    is kept as it arrived from the network and stays consistent with the headers.
    """
    try:
        content = b"".join([chunk async for chunk in response.stream])  # type: ignore[union-attr]
    finally:
        await response.aclose()
    snapshot = httpcore.Response(
        status=response.status_code,
        headers=response.headers.raw,
        content=content,
        extensions=response.extensions,
    )
    snapshot.read()
    return snapshot


def ensure_cache_dir(base_path: Path) -> Path:
    gitignore_file = base_path / ".gitignore"

    base_path.mkdir(parents=True, exist_ok=True)

    if not gitignore_file.is_file():
        with open(gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by swrcache\n*")
    return base_path
