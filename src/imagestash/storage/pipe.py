"""
Stream Pipe
===========

A synchronous in-memory pipe with one reader end and one writer end.

Each ``write()`` blocks until the reader has consumed every byte of it, so at
most one chunk is ever held in memory regardless of the size of the stream.
Closing either end unblocks the other: closing the writer delivers EOF (or an
error) to the reader, closing the reader makes pending and future writes fail.

Used to run a backend copy on a worker thread while the caller holds the
other end of the stream:

    reader = run_producer(lambda w: backend.get("redis:latest", w))
    for chunk in reader:
        ...
"""

import logging
import threading
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


class PipeClosedError(BrokenPipeError):
    """Raised on write when the reader end has been closed."""


class StreamPipe:
    """Rendezvous byte pipe. Use ``.reader`` and ``.writer``."""

    def __init__(self):
        self._cond = threading.Condition()
        self._pending: Optional[memoryview] = None
        self._writer_closed = False
        self._writer_error: Optional[BaseException] = None
        self._reader_closed = False
        self._reader_error: Optional[BaseException] = None

        self.reader = PipeReader(self)
        self.writer = PipeWriter(self)

    def _write(self, data) -> int:
        view = memoryview(data).cast("B")
        total = len(view)

        with self._cond:
            if self._writer_closed:
                raise ValueError("write to closed pipe")
            self._raise_if_reader_closed()
            if total == 0:
                return 0

            self._pending = view
            self._cond.notify_all()

            while self._pending is not None and not self._reader_closed:
                self._cond.wait()

            if self._pending is not None:
                self._pending = None
                self._raise_if_reader_closed()

        return total

    def _raise_if_reader_closed(self) -> None:
        if self._reader_closed:
            if self._reader_error is not None:
                raise self._reader_error
            raise PipeClosedError("read end of pipe is closed")

    def _read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self._read_all()

        with self._cond:
            if self._reader_closed:
                raise ValueError("read from closed pipe")
            if size == 0:
                return b""

            while self._pending is None:
                if self._writer_closed:
                    if self._writer_error is not None:
                        raise self._writer_error
                    return b""
                self._cond.wait()

            data = bytes(self._pending[:size])
            remaining = self._pending[size:]
            if len(remaining):
                self._pending = remaining
            else:
                self._pending = None
                self._cond.notify_all()
            return data

    def _read_all(self) -> bytes:
        chunks = []
        while True:
            chunk = self._read(64 * 1024)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def _close_writer(self, error: Optional[BaseException] = None) -> None:
        with self._cond:
            if self._writer_closed:
                return
            self._writer_closed = True
            self._writer_error = error
            self._cond.notify_all()

    def _close_reader(self, error: Optional[BaseException] = None) -> None:
        with self._cond:
            if self._reader_closed:
                return
            self._reader_closed = True
            self._reader_error = error
            self._cond.notify_all()


class PipeReader:
    """Read end of a ``StreamPipe``."""

    def __init__(self, pipe: StreamPipe):
        self._pipe = pipe

    def read(self, size: int = -1) -> bytes:
        return self._pipe._read(size)

    def readable(self) -> bool:
        return True

    def close(self, error: Optional[BaseException] = None) -> None:
        """Close the read end; the writer sees ``error`` or ``PipeClosedError``."""
        self._pipe._close_reader(error)

    @property
    def closed(self) -> bool:
        return self._pipe._reader_closed

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(64 * 1024)
            if not chunk:
                return
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class PipeWriter:
    """
    Write end of a ``StreamPipe``.

    When created by ``run_consumer`` the writer also owns the consumer thread:
    ``close()`` waits for it and re-raises whatever it failed with.
    """

    def __init__(self, pipe: StreamPipe):
        self._pipe = pipe
        self._on_close: Optional[Callable[[], None]] = None

    def write(self, data) -> int:
        return self._pipe._write(data)

    def writable(self) -> bool:
        return True

    def flush(self) -> None:
        pass

    def close(self, error: Optional[BaseException] = None) -> None:
        """Close the write end; the reader sees EOF, or ``error`` if given."""
        self._pipe._close_writer(error)
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            on_close()

    @property
    def closed(self) -> bool:
        return self._pipe._writer_closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close(exc_val if exc_type is not None else None)
        return False


def run_producer(func: Callable[[PipeWriter], None], name: str = "pipe-producer") -> PipeReader:
    """
    Run ``func(writer)`` on a worker thread and return the read end.

    EOF is delivered when ``func`` returns; if it raises, the reader raises the
    same exception on its next read.
    """
    pipe = StreamPipe()

    def produce():
        try:
            func(pipe.writer)
        except Exception as e:
            logger.debug(f"{name} failed: {e}")
            pipe.writer.close(e)
        else:
            pipe.writer.close()

    threading.Thread(target=produce, name=name, daemon=True).start()
    return pipe.reader


def run_consumer(func: Callable[[PipeReader], None], name: str = "pipe-consumer") -> PipeWriter:
    """
    Run ``func(reader)`` on a worker thread and return the write end.

    Closing the writer waits for ``func`` to finish and re-raises its error.
    If ``func`` fails while the caller is still writing, the pending write
    raises the same error.
    """
    pipe = StreamPipe()
    outcome = {}

    def consume():
        try:
            func(pipe.reader)
        except Exception as e:
            logger.debug(f"{name} failed: {e}")
            outcome["error"] = e
            pipe.reader.close(e)
        else:
            pipe.reader.close()

    thread = threading.Thread(target=consume, name=name, daemon=True)

    def finish():
        thread.join()
        if "error" in outcome:
            raise outcome["error"]

    pipe.writer._on_close = finish
    thread.start()
    return pipe.writer
