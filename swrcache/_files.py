from __future__ import annotations

import typing as tp
import uuid

import anyio


class AsyncFileManager:
    """
    Reads and writes serialized snapshots.

    Writes go to a sibling temporary file that is then renamed over the
    target, so readers only ever see a complete snapshot.
    """

    def __init__(self, is_binary: bool) -> None:
        self.is_binary = is_binary

    async def write_to(self, path: str, data: bytes | str) -> None:
        mode = "wb" if self.is_binary else "wt"
        temp_path = f"{path}.{uuid.uuid4().hex}.tmp"
        async with await anyio.open_file(temp_path, mode) as f:  # type: ignore[call-overload]
            await f.write(data)
        await anyio.Path(temp_path).replace(path)

    async def read_from(self, path: str) -> bytes | str:
        mode = "rb" if self.is_binary else "rt"

        async with await anyio.open_file(path, mode) as f:  # type: ignore[call-overload]
            return tp.cast(tp.Union[bytes, str], await f.read())
