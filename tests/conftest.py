import os
import typing as tp

import httpx
import pytest

from swrcache import MockAsyncTransport

SITE: tp.Dict[str, bytes] = {
    "/": b"<html>home</html>",
    "/index.html": b"<html>home</html>",
    "/static/favicon.ico": b"\x00\x00\x01\x00",
    "/static/styles.css": b"body { margin: 0 }",
    "/boids/": b"<html>boids</html>",
    "/boids/index.html": b"<html>boids</html>",
    "/boids/index.js": b"console.log(1)",
}


@pytest.fixture()
def network() -> MockAsyncTransport:
    return MockAsyncTransport({path: httpx.Response(200, content=body) for path, body in SITE.items()})


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
