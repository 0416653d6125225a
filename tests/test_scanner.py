"""
PNG Scanner Tests
=================

Frame splitting across arbitrary chunk boundaries and desync recovery.
"""

import random

from rewind_recorder.stream.scanner import (
    MAX_FRAME_BYTES,
    PNG_END,
    PNG_SIGNATURE,
    PngFrameScanner,
)

from conftest import make_png


def _chunked(data: bytes, rng: random.Random, max_size: int = 64):
    pos = 0
    while pos < len(data):
        size = rng.randint(1, max_size)
        yield data[pos:pos + size]
        pos += size


class TestFrameSplitting:

    def test_whole_stream_single_chunk(self, sample_pngs):
        scanner = PngFrameScanner()
        assert scanner.feed(b"".join(sample_pngs)) == sample_pngs
        assert scanner.frames_emitted == 5
        assert not scanner.in_frame

    def test_random_chunk_sizes(self, sample_pngs):
        stream = b"".join(sample_pngs)
        for seed in range(20):
            rng = random.Random(seed)
            scanner = PngFrameScanner()
            out = []
            for chunk in _chunked(stream, rng, max_size=rng.choice([1, 3, 9, 64])):
                out.extend(scanner.feed(chunk))
            assert out == sample_pngs

    def test_one_byte_at_a_time(self, sample_pngs):
        scanner = PngFrameScanner()
        out = []
        for byte in b"".join(sample_pngs):
            out.extend(scanner.feed(bytes([byte])))
        assert out == sample_pngs

    def test_garbage_between_frames_is_skipped(self, sample_pngs):
        stream = b"junk" + sample_pngs[0] + b"\x00\x01noise" + sample_pngs[1]
        scanner = PngFrameScanner()
        assert scanner.feed(stream) == sample_pngs[:2]

    def test_signature_split_across_chunks(self):
        png = make_png(b"body")
        scanner = PngFrameScanner()
        assert scanner.feed(b"garbage" + png[:4]) == []
        assert scanner.feed(png[4:]) == [png]

    def test_partial_frame_held_until_end(self):
        png = make_png(b"x" * 100)
        scanner = PngFrameScanner()
        assert scanner.feed(png[:-3]) == []
        assert scanner.in_frame
        assert scanner.feed(png[-3:]) == [png]

    def test_leading_noise_is_not_retained(self):
        scanner = PngFrameScanner()
        scanner.feed(b"\x00" * 10_000)
        assert scanner.pending_bytes < len(PNG_SIGNATURE)

    def test_empty_chunk(self):
        assert PngFrameScanner().feed(b"") == []

    def test_reset_drops_partial_frame(self):
        png = make_png(b"body")
        scanner = PngFrameScanner()
        scanner.feed(png[:10])
        scanner.reset()
        assert scanner.feed(png[10:]) == []
        assert not scanner.in_frame


class TestResync:

    def test_oversized_frame_discarded_then_recovers(self):
        scanner = PngFrameScanner()
        out = scanner.feed(PNG_SIGNATURE + b"\x00" * (MAX_FRAME_BYTES + 100))
        assert out == []
        assert scanner.resync_count == 1
        assert not scanner.in_frame

        valid = make_png(b"recovered")
        assert scanner.feed(valid) == [valid]

    def test_oversized_frame_fed_in_chunks(self):
        scanner = PngFrameScanner(max_frame_bytes=1024)
        out = []
        out.extend(scanner.feed(PNG_SIGNATURE))
        for _ in range(40):
            out.extend(scanner.feed(b"\x00" * 100))
        assert out == []
        assert scanner.resync_count >= 1

        valid = make_png(b"ok")
        out.extend(scanner.feed(valid))
        assert out == [valid]

    def test_frame_at_limit_is_kept(self):
        body = b"\x00" * (64 - 2 * len(PNG_SIGNATURE))
        png = PNG_SIGNATURE + body + PNG_END
        assert len(png) == 64
        scanner = PngFrameScanner(max_frame_bytes=64)
        assert scanner.feed(png) == [png]
        assert scanner.resync_count == 0

    def test_end_marker_on_overflow_byte_is_kept(self):
        body = b"\x00" * (65 - 2 * len(PNG_SIGNATURE))
        png = PNG_SIGNATURE + body + PNG_END
        scanner = PngFrameScanner(max_frame_bytes=64)
        assert scanner.feed(png) == [png]

    def test_one_byte_past_overflow_is_discarded(self):
        body = b"\x00" * (66 - 2 * len(PNG_SIGNATURE))
        scanner = PngFrameScanner(max_frame_bytes=64)
        assert scanner.feed(PNG_SIGNATURE + body + PNG_END) == []
        assert scanner.resync_count == 1
