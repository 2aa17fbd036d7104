#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "swrcache[yaml]",
# ]
#
# [tool.uv.sources]
# swrcache = { path = "../", editable = true }
# ///

import logging

import anyio
import httpx

from swrcache import AsyncFileStorage, AsyncOfflineClient, Manifest, MockAsyncTransport

logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

MANIFEST = Manifest(
    [
        "/",
        "/index.html",
        "/static/favicon.ico",
        "/static/styles.css",
        "/boids/",
        "/boids/index.html",
        "/boids/index.js",
    ]
)

network = MockAsyncTransport({path: httpx.Response(200, content=f"contents of {path}") for path in MANIFEST})


async def main() -> None:
    async with AsyncOfflineClient(
        base_url="https://rupertmckay.com",
        transport=network,
        storage=AsyncFileStorage(),
    ) as client:
        await client.register("v2", MANIFEST, purge_stale=True)

        network.offline = True
        response = await client.get("/boids/index.js")
        print(response.status_code, response.text, response.extensions["from_cache"])


anyio.run(main)
