"""
Tests for the HTTP segment engine, against an in-process mock server.
"""
import asyncio

import httpx
import pytest

from earthimagery.player.engine import EngineConfig, HttpSegmentEngine, readiness_target
from earthimagery.player.events import (
    ErrorCategory,
    ErrorDetails,
    FatalError,
    FragmentLoaded,
    ManifestParsed,
    NonFatalBufferFull,
)
from earthimagery.player.sink import BufferedVideoSink, MediaDecodeError

PLAYLIST_URL = "http://test/api/playlist?satellite=GOES18&from=2025-07-20&to=2025-07-22"
SEGMENT = b"\x47" * 188


def playlist(durations):
    lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-PLAYLIST-TYPE:VOD", "#EXT-X-TARGETDURATION:10",
             "#EXT-X-MEDIA-SEQUENCE:0"]
    for i, duration in enumerate(durations):
        lines.append(f"#EXTINF:{duration},")
        lines.append(f"/api/hls/GOES18.hi.GEOCOLOR.600x600/2025-07-21/segment_{i:03d}.ts")
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


class MockServer:
    """Serves one playlist and its segments; individual paths can be made to fail."""

    def __init__(self, durations=(10, 10, 8)):
        self.playlist = playlist(durations)
        self.failures = {}  # path -> list of status codes returned before succeeding
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        pending = self.failures.get(request.url.path)
        if pending:
            return httpx.Response(pending.pop(0))
        if request.url.path == "/api/playlist":
            return httpx.Response(200, text=self.playlist)
        return httpx.Response(200, content=SEGMENT)


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def fast_config(**overrides):
    values = dict(frag_loading_retry_delay=0.001, max_buffer_length=1000.0)
    values.update(overrides)
    return EngineConfig(**values)


class TestReadinessTarget:
    @pytest.mark.parametrize("total,expected", [(0, 0), (1, 1), (2, 2), (3, 2), (9, 6), (10, 7), (300, 200)])
    def test_two_thirds_rounded_up(self, total, expected):
        assert readiness_target(total) == expected

    def test_adapted_config_fits_target(self):
        # 6 of 9 segments of 10s must fit ahead of a paused position
        config = EngineConfig().adapted(9, max_duration=10.0)
        assert config.max_buffer_length == 60.0
        assert config.max_buffer_size == EngineConfig().max_buffer_size

    def test_adapted_small_stream_keeps_base(self):
        config = EngineConfig().adapted(2, max_duration=10.0)
        assert config.max_buffer_length == 30.0

    def test_adapted_does_not_modify_original(self):
        base = EngineConfig()
        base.adapted(300, max_duration=10.0)
        assert base.max_buffer_length == 30.0


class TestHttpSegmentEngine:
    @pytest.mark.asyncio
    async def test_loads_all_segments(self):
        server = MockServer()
        sink = BufferedVideoSink()
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(sink)

            await wait_for(lambda: len(events) == 4)
            engine.destroy()

        assert events[0] == ManifestParsed(total_segments=3, max_duration=10.0, total_duration=28.0)
        assert [e.sequence_number for e in events[1:]] == [0, 1, 2]
        assert all(isinstance(e, FragmentLoaded) for e in events[1:])
        assert server.requests[1] == "/api/hls/GOES18.hi.GEOCOLOR.600x600/2025-07-21/segment_000.ts"
        assert engine.fragments[2].start == 20.0

    @pytest.mark.asyncio
    async def test_fills_sink(self):
        server = MockServer()
        sink = BufferedVideoSink()
        loaded = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(lambda e: isinstance(e, FragmentLoaded) and loaded.append(e))
            engine.attach_media(sink)
            engine.load_source(PLAYLIST_URL)

            await wait_for(lambda: len(loaded) == 3)
            assert sink.buffered == [(0.0, 28.0)]
            assert sink.duration == 28.0
            engine.destroy()

        assert not sink.is_attached

    @pytest.mark.asyncio
    async def test_manifest_failure(self):
        server = MockServer()
        server.failures["/api/playlist"] = [404]
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(BufferedVideoSink())
            await wait_for(lambda: events)
            engine.destroy()

        assert events == [FatalError(ErrorCategory.NETWORK, ErrorDetails.MANIFEST_LOAD_ERROR)]

    @pytest.mark.asyncio
    async def test_playlist_without_segments(self):
        server = MockServer(durations=())
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(BufferedVideoSink())
            await wait_for(lambda: events)
            engine.destroy()

        assert events == [FatalError(ErrorCategory.OTHER, ErrorDetails.MANIFEST_PARSING_ERROR)]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        server = MockServer()
        segment = "/api/hls/GOES18.hi.GEOCOLOR.600x600/2025-07-21/segment_001.ts"
        server.failures[segment] = [503, 502]
        loaded = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(lambda e: isinstance(e, FragmentLoaded) and loaded.append(e))
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(BufferedVideoSink())
            await wait_for(lambda: len(loaded) == 3)
            engine.destroy()

        assert server.requests.count(segment) == 3

    @pytest.mark.asyncio
    async def test_fragment_failure_after_retries(self):
        server = MockServer()
        segment = "/api/hls/GOES18.hi.GEOCOLOR.600x600/2025-07-21/segment_001.ts"
        server.failures[segment] = [500] * 10
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(frag_loading_max_retry=2), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(BufferedVideoSink())
            await wait_for(lambda: any(isinstance(e, FatalError) for e in events))

            assert events[-1] == FatalError(ErrorCategory.NETWORK, ErrorDetails.FRAG_LOAD_ERROR)
            assert engine.next_index == 1
            assert server.requests.count(segment) == 3

            # Resuming picks up at the failed segment
            server.failures[segment] = []
            engine.start_load()
            await wait_for(lambda: engine.next_index == 3)
            engine.destroy()

    @pytest.mark.asyncio
    async def test_buffer_full(self):
        server = MockServer()
        sink = BufferedVideoSink(max_buffer_bytes=300)
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(buffer_poll_interval=0.01), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(sink)
            await wait_for(lambda: any(isinstance(e, NonFatalBufferFull) for e in events))

            # The segment that did not fit is held, not dropped
            await asyncio.sleep(0.05)
            assert engine.next_index == 1
            assert engine.is_loading
            assert sum(isinstance(e, NonFatalBufferFull) for e in events) == 1

            # Room again: loading resumes on its own
            engine.flush_buffer(0, 10)
            await wait_for(lambda: engine.next_index == 2)
            assert sink.buffered == [(10.0, 20.0)]
            engine.destroy()

    @pytest.mark.asyncio
    async def test_engine_byte_budget(self):
        server = MockServer()
        sink = BufferedVideoSink()
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(
                config=fast_config(max_buffer_size=300, buffer_poll_interval=0.01),
                client=client,
            )
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(sink)
            await wait_for(lambda: any(isinstance(e, NonFatalBufferFull) for e in events))

            assert engine.next_index == 1
            assert sink.buffered_bytes == len(SEGMENT)

            engine.flush_buffer(0, 10)
            await wait_for(lambda: engine.next_index == 2)
            engine.destroy()

    @pytest.mark.asyncio
    async def test_media_error(self):
        class BadDecoder(BufferedVideoSink):
            def append(self, start, duration, data):
                raise MediaDecodeError("corrupt segment")

        server = MockServer()
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(BadDecoder())
            await wait_for(lambda: any(isinstance(e, FatalError) for e in events))
            engine.destroy()

        assert events[-1] == FatalError(ErrorCategory.MEDIA, ErrorDetails.BUFFER_APPEND_ERROR)

    @pytest.mark.asyncio
    async def test_waits_for_playback_when_far_ahead(self):
        server = MockServer(durations=[10] * 6)
        sink = BufferedVideoSink()
        loaded = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(
                config=fast_config(max_buffer_length=30.0, buffer_poll_interval=0.01),
                client=client,
            )
            engine.on(lambda e: isinstance(e, FragmentLoaded) and loaded.append(e))
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(sink)

            await wait_for(lambda: len(loaded) == 3)
            await asyncio.sleep(0.05)
            assert len(loaded) == 3

            sink.current_time = 15.0
            await wait_for(lambda: len(loaded) == 5)
            engine.destroy()

    @pytest.mark.asyncio
    async def test_no_events_after_destroy(self):
        server = MockServer()
        events = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
            engine = HttpSegmentEngine(config=fast_config(), client=client)
            engine.on(events.append)
            engine.load_source(PLAYLIST_URL)
            engine.attach_media(BufferedVideoSink())
            engine.destroy()
            await asyncio.sleep(0.05)

        assert events == []
        assert server.requests == []
