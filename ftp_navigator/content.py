"""
Readers and writers for file content on the remote side.

Both classes resolve nothing themselves: they are handed a cache node and
open the underlying transfer lazily on first use. While a transfer is open
the owning Cache's lock is held, so no listing can interleave with it on the
single control connection.
"""

import codecs
import io
import logging

from .cache import Cache, CacheNode

logger = logging.getLogger(__name__)

BYTE_BUFFER_SIZE = 4096


class _ContentStream:
    def __init__(self, cache: Cache, node: CacheNode, encoding: str | None = None):
        self._cache = cache
        self._node = node
        self._encoding = encoding
        self._stream = None
        self._holds_lock = False

    @property
    def node(self) -> CacheNode:
        return self._node

    def _open(self, opener) -> None:
        self._cache.lock.acquire()
        self._holds_lock = True
        try:
            self._stream = opener(self._node.full_name)
        except BaseException:
            self._release()
            raise

    def _release(self) -> None:
        if self._holds_lock:
            self._holds_lock = False
            self._cache.lock.release()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> None:
        raise io.UnsupportedOperation("Seeking is not supported.")

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.close()
        finally:
            self._stream = None
            self._release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ContentReader(_ContentStream):
    """
    Reads a remote file in one of four modes.

    Without an encoding the content is binary: ``read(count)`` yields chunks
    of at most ``count`` bytes (capped at 4096), or the whole file when
    ``raw`` is set. With an encoding it yields one decoded line per call, or
    the whole decoded text when ``raw`` is set. Every mode returns ``[]`` at
    end of file.
    """

    def __init__(
        self,
        cache: Cache,
        node: CacheNode,
        encoding: str | None = None,
        raw: bool = False,
    ):
        super().__init__(cache, node, encoding)
        self._raw = raw
        self._text: io.TextIOWrapper | None = None

    def read(self, count: int = 0) -> list:
        if self._stream is None:
            self._open(self._cache.client.open_read)

        if self._encoding is None:
            return self._read_bytes(count)
        return self._read_text()

    def _read_bytes(self, count: int) -> list[bytes]:
        if self._raw:
            data = self._stream.read()
        else:
            if count <= 0 or count > BYTE_BUFFER_SIZE:
                count = BYTE_BUFFER_SIZE
            data = self._stream.read(count)
        return [data] if data else []

    def _read_text(self) -> list[str]:
        if self._text is None:
            # newline=None folds \r\n and bare \r into \n
            self._text = io.TextIOWrapper(self._stream, encoding=self._encoding, newline=None)

        if self._raw:
            text = self._text.read()
            return [text] if text else []

        line = self._text.readline()
        if not line:
            return []
        return [line[:-1] if line.endswith("\n") else line]

    def close(self) -> None:
        if self._text is not None:
            # Closing the wrapper closes the transfer underneath it
            self._stream = self._text
            self._text = None
        super().close()


class ContentWriter(_ContentStream):
    """
    Writes a remote file, replacing it unless switched to append mode.

    Strings are written as lines terminated by ``\\n`` in the configured
    encoding (UTF-8 when none was given); bytes, bytearrays and lists of ints
    are written as-is. Closing the writer marks the file's directory stale so
    the new size shows up on the next listing.
    """

    def __init__(self, cache: Cache, node: CacheNode, encoding: str | None = None):
        super().__init__(cache, node, encoding)
        self._append = False
        self._encoder = None
        self._opened = False

    @property
    def appending(self) -> bool:
        return self._append

    def _ensure_open(self) -> None:
        if self._stream is None:
            client = self._cache.client
            self._open(client.open_append if self._append else client.open_write)
            self._opened = True

    def write(self, content: list) -> list:
        self._ensure_open()

        if not content:
            return content

        first = content[0]
        if isinstance(first, str):
            if self._encoder is None:
                self._encoder = codecs.getincrementalencoder(self._encoding or "utf-8")()
            for line in content:
                self._write_chunked(self._encoder.encode(line + "\n"))
        elif isinstance(first, int):
            self._write_chunked(bytes(content))
        elif isinstance(first, (bytes, bytearray)):
            for data in content:
                self._write_chunked(data)
        else:
            raise TypeError(f"Cannot write content of type {type(first).__name__}")

        return content

    def _write_chunked(self, data: bytes) -> None:
        for start in range(0, len(data), BYTE_BUFFER_SIZE):
            self._stream.write(data[start : start + BYTE_BUFFER_SIZE])

    def truncate(self) -> None:
        """Leave the remote file empty (an upload with no data replaces it)."""
        self._ensure_open()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> None:
        if self._stream is None and not self._append and offset == 0 and whence == io.SEEK_END:
            self._append = True
            return
        super().seek(offset, whence)

    def close(self) -> None:
        try:
            if self._stream is not None and self._encoder is not None:
                self._write_chunked(self._encoder.encode("", final=True))
        finally:
            try:
                super().close()
            finally:
                if self._opened:
                    self._opened = False
                    parent = self._node.parent
                    if parent is not None:
                        parent.mark_dirty()
                    logger.debug("Finished writing %s", self._node.full_name)
