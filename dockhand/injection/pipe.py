"""Producer/consumer pipe between tar generation and the runtime upload.

One task generates the archive and writes chunks into a bounded queue;
the runtime's copy call reads them as an async byte stream. A failure on
the writer side (reading the local source) takes precedence over
whatever the runtime reports, since the runtime never received a
complete archive.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Generator
from functools import partial

import structlog

from dockhand.archive.tar import DEFAULT_CHUNK_SIZE, TarStream
from dockhand.drivers.base import Driver

logger = structlog.get_logger()

_EOF = object()


class ArchivePipe:
    """Bounded hand-off with one writer and one reader."""

    def __init__(self, depth: int = 16) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=depth)
        self._writer_closed = False
        self._reader_closed = False

    @property
    def reader_closed(self) -> bool:
        return self._reader_closed

    async def write(self, chunk: bytes) -> bool:
        """Write a chunk. Returns False once the reader has gone away."""
        if self._reader_closed:
            return False
        await self._queue.put(chunk)
        return not self._reader_closed

    def close_writer(self) -> None:
        """Signal end of stream. Safe to call more than once."""
        self._writer_closed = True
        try:
            self._queue.put_nowait(_EOF)
        except asyncio.QueueFull:
            # reader drains the queue, then sees _writer_closed
            pass

    def close_reader(self) -> None:
        """Stop reading and unblock a writer waiting on a full queue."""
        self._reader_closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def reader(self) -> AsyncIterator[bytes]:
        try:
            while not self._reader_closed:
                if self._writer_closed and self._queue.empty():
                    return
                chunk = await self._queue.get()
                if chunk is _EOF:
                    return
                yield chunk  # type: ignore[misc]
        finally:
            self.close_reader()


async def _produce(stream: TarStream, pipe: ArchivePipe, chunk_size: int) -> None:
    chunks = stream.chunks(chunk_size)
    pending: asyncio.Future[bytes | None] | None = None
    try:
        while True:
            # A read in flight outlives cancellation; chunks is closed after it
            pending = asyncio.ensure_future(asyncio.to_thread(next, chunks, None))
            chunk = await asyncio.shield(pending)
            if chunk is None:
                break
            if not await pipe.write(chunk):
                logger.debug("archive_pipe.reader_gone", source=stream.source)
                break
    finally:
        pipe.close_writer()
        if pending is None or pending.done():
            chunks.close()
        else:
            pending.add_done_callback(partial(_close_chunks, chunks))


def _close_chunks(chunks: Generator[bytes, None, None], pending: asyncio.Future) -> None:
    if not pending.cancelled() and pending.exception() is not None:
        logger.debug("archive_pipe.abandoned_error", error=str(pending.exception()))
    chunks.close()


async def stream_archive(
    driver: Driver,
    container_id: str,
    path: str,
    stream: TarStream,
    *,
    depth: int = 16,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> None:
    """Copy ``stream`` into ``container_id`` at ``path`` through a pipe.

    Raises:
        ArchiveConstructionError: If generating the archive failed, even
            when the copy call itself succeeded or failed.
        Exception: Whatever the copy call raised, if the archive was
            generated completely.
    """
    pipe = ArchivePipe(depth)
    producer = asyncio.create_task(
        _produce(stream, pipe, chunk_size),
        name=f"archive-producer-{container_id[:12]}",
    )

    copy_error: Exception | None = None
    try:
        await driver.copy_to_container(container_id, path, pipe.reader())
    except asyncio.CancelledError:
        producer.cancel()
        raise
    except Exception as e:
        copy_error = e
    finally:
        pipe.close_reader()

    await producer
    if copy_error is not None:
        raise copy_error
