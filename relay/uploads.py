"""Scratch storage for incoming multipart files, scoped to a single request."""

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from starlette.datastructures import UploadFile

logger = logging.getLogger("relay.uploads")

CHUNK_SIZE = 1024 * 1024
DEFAULT_MIME_TYPE = "application/octet-stream"


def _write_chunk(out, chunk: bytes) -> None:
    out.write(chunk)


def declared_mime_type(upload: UploadFile) -> str:
    return upload.content_type or DEFAULT_MIME_TYPE


@asynccontextmanager
async def spooled_upload(upload: UploadFile, directory: str) -> AsyncIterator[str]:
    """
    Copy `upload` into `directory` and yield the local path.

    Disk writes run in the default executor, so a large upload does not stall
    the event loop. The file is removed when the block exits, whether it
    succeeded or raised.
    """
    loop = asyncio.get_running_loop()
    Path(directory).mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix
    fd, path = tempfile.mkstemp(dir=directory, suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as out:
            while chunk := await upload.read(CHUNK_SIZE):
                await loop.run_in_executor(None, _write_chunk, out, chunk)
        logger.info(f"[Upload] Spooled '{upload.filename}' to {path}")
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        else:
            logger.info(f"[Upload] Removed {path}")
