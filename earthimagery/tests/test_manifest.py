"""
Tests for the pre-playback manifest check.
"""
import httpx
import pytest

from earthimagery.player.manifest import (
    ManifestFetchError,
    NoContentError,
    fetch_manifest,
    inspect_manifest,
)

PLAYLIST = (
    "#EXTM3U\n#EXT-X-VERSION:3\n#EXT-X-PLAYLIST-TYPE:VOD\n#EXT-X-TARGETDURATION:10\n"
    "#EXT-X-MEDIA-SEQUENCE:0\n"
    "#EXTINF:10.0,\n/api/hls/GOES18.hi.GEOCOLOR.600x600/2025-07-21/segment_000.ts\n"
    "#EXTINF:8.0,\n/api/hls/GOES18.hi.GEOCOLOR.600x600/2025-07-21/segment_001.ts\n"
    "#EXT-X-ENDLIST\n"
)


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


class TestInspectManifest:
    def test_counts_segments(self):
        check = inspect_manifest(PLAYLIST)
        assert check.segment_count == 2
        assert check.max_duration == 10.0

    def test_no_segments(self):
        with pytest.raises(NoContentError):
            inspect_manifest("#EXTM3U\n#EXT-X-ENDLIST\n")

    def test_extinf_without_uri(self):
        with pytest.raises(NoContentError):
            inspect_manifest("#EXTM3U\n#EXTINF:10,\n#EXT-X-ENDLIST\n")


class TestFetchManifest:
    @pytest.mark.asyncio
    async def test_ok(self):
        async with client_for(lambda request: httpx.Response(200, text=PLAYLIST)) as client:
            check = await fetch_manifest(client, "/api/playlist?from=2025-07-20")
        assert check.segment_count == 2
        assert check.url == "/api/playlist?from=2025-07-20"

    @pytest.mark.asyncio
    async def test_404_is_no_content(self):
        async with client_for(lambda request: httpx.Response(404, json={"detail": "nope"})) as client:
            with pytest.raises(NoContentError):
                await fetch_manifest(client, "/api/playlist")

    @pytest.mark.asyncio
    async def test_empty_playlist_is_no_content(self):
        async with client_for(lambda request: httpx.Response(200, text="#EXTM3U\n#EXT-X-ENDLIST\n")) as client:
            with pytest.raises(NoContentError):
                await fetch_manifest(client, "/api/playlist")

    @pytest.mark.asyncio
    async def test_server_error(self):
        async with client_for(lambda request: httpx.Response(500)) as client:
            with pytest.raises(ManifestFetchError) as exc:
                await fetch_manifest(client, "/api/playlist")
        assert exc.value.status_code == 500
        assert str(exc.value) == "Error 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(refuse) as client:
            with pytest.raises(ManifestFetchError) as exc:
                await fetch_manifest(client, "/api/playlist")
        assert exc.value.status_code == 0
