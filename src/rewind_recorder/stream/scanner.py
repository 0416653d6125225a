"""
PNG Frame Scanner
=================

Splits a continuous image2pipe PNG byte stream into individual frames.

The stream has no framing of its own. A frame starts where the 8-byte PNG
signature appears and ends right after the 8-byte tail of the IEND chunk.

Design Rules:
    - Pure and synchronous, no I/O
    - Never decodes pixel data
    - Oversized unterminated frames are discarded and scanning resyncs
"""

import logging
from typing import List


logger = logging.getLogger(__name__)


PNG_SIGNATURE = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])

# Last 8 bytes of every PNG: "IEND" + CRC
PNG_END = bytes([0x49, 0x45, 0x4E, 0x44, 0xAE, 0x42, 0x60, 0x82])

MARKER_LEN = 8

MAX_FRAME_BYTES = 5 * 1024 * 1024


class PngFrameScanner:
    """
    Incremental PNG frame splitter.

    Feed arbitrary chunks; complete frames come back in stream order.
    Results are identical to checking the trailing 8 bytes after every
    appended byte, but searches whole chunks at a time.

    Attributes:
        in_frame: Whether a start marker has been seen without its end
        frames_emitted: Total frames returned so far
        resync_count: Times an oversized partial frame was discarded

    Example:
        scanner = PngFrameScanner()
        for chunk in chunks:
            for png in scanner.feed(chunk):
                handle(png)
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self.max_frame_bytes = max_frame_bytes
        self._buffer = bytearray()
        self._in_frame = False
        # Offset from which the next marker search may start
        self._search_from = 0
        self.frames_emitted: int = 0
        self.resync_count: int = 0

    @property
    def in_frame(self) -> bool:
        return self._in_frame

    @property
    def pending_bytes(self) -> int:
        """Bytes currently held while waiting for a marker."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[bytes]:
        """
        Consume a chunk of the stream.

        Args:
            chunk: Next bytes from the extractor's stdout

        Returns:
            Complete PNG frames finished within this chunk, in order.
        """
        frames: List[bytes] = []
        if not chunk:
            return frames

        self._buffer.extend(chunk)

        while True:
            if not self._in_frame:
                idx = self._buffer.find(PNG_SIGNATURE, self._search_from)
                if idx < 0:
                    # Keep just enough to complete a signature split across chunks
                    if len(self._buffer) > MARKER_LEN - 1:
                        del self._buffer[: len(self._buffer) - (MARKER_LEN - 1)]
                    self._search_from = 0
                    break

                del self._buffer[:idx]
                self._in_frame = True
                self._search_from = 1
                continue

            idx = self._buffer.find(PNG_END, self._search_from)
            # The end marker may complete on the byte that crosses the limit
            if idx >= 0 and idx + MARKER_LEN <= self.max_frame_bytes + 1:
                end = idx + MARKER_LEN
                frames.append(bytes(self._buffer[:end]))
                del self._buffer[:end]
                self._in_frame = False
                self._search_from = 0
                self.frames_emitted += 1
                continue

            if len(self._buffer) > self.max_frame_bytes:
                # Desync: drop the oversized fragment, rescan what follows it
                self.resync_count += 1
                logger.warning(
                    f"Discarding unterminated frame over {self.max_frame_bytes} bytes "
                    f"(resync #{self.resync_count})"
                )
                del self._buffer[: self.max_frame_bytes + 1]
                self._in_frame = False
                self._search_from = 0
                continue

            self._search_from = max(1, len(self._buffer) - (MARKER_LEN - 1))
            break

        return frames

    def reset(self) -> None:
        """Forget any partial frame."""
        self._buffer.clear()
        self._in_frame = False
        self._search_from = 0
