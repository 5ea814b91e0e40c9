"""
Tests for the HLS segment gateway (path resolution and HTTP serving).
"""
import os

import pytest

from earthimagery.services.hls import PathTraversalError, media_type_for, resolve_gateway_path

from conftest import GOES, write_day


class TestResolveGatewayPath:
    def test_resolves_inside_root(self, hls_root):
        path = resolve_gateway_path(hls_root, f"{GOES.key}/2025-07-21/segment_000.ts")
        assert path == (hls_root / GOES.key / "2025-07-21" / "segment_000.ts").resolve()

    @pytest.mark.parametrize("path", ["../secret.txt", f"{GOES.key}/../../secret.txt", "/../secret.txt"])
    def test_rejects_traversal(self, hls_root, path):
        with pytest.raises(PathTraversalError):
            resolve_gateway_path(hls_root, path)

    def test_rejects_symlink_escape(self, hls_root, data_root):
        (data_root / "secret.txt").write_text("secret")
        os.symlink(data_root / "secret.txt", hls_root / "link.ts")
        with pytest.raises(PathTraversalError):
            resolve_gateway_path(hls_root, "link.ts")

    @pytest.mark.parametrize("path", ["", "/", "//"])
    def test_empty_path(self, hls_root, path):
        with pytest.raises(ValueError):
            resolve_gateway_path(hls_root, path)

    def test_media_types(self):
        assert media_type_for("a/playlist.m3u8") == "application/vnd.apple.mpegurl"
        assert media_type_for("segment.TS") == "video/mp2t"
        assert media_type_for("init.mp4") == "video/mp4"
        assert media_type_for("chunk.m4s") == "video/mp4"
        assert media_type_for("notes.txt") == "application/octet-stream"


class TestGatewayRoute:
    def test_serves_segment(self, client, hls_root):
        write_day(hls_root, GOES, "2025-07-21", [10])

        response = client.get(f"/api/hls/{GOES.key}/2025-07-21/segment_000.ts")

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp2t"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["accept-ranges"] == "bytes"
        assert "max-age=300" in response.headers["cache-control"]
        assert len(response.content) == 188

    def test_serves_day_playlist(self, client, hls_root):
        write_day(hls_root, GOES, "2025-07-21", [10])
        response = client.get(f"/api/hls/{GOES.key}/2025-07-21/playlist.m3u8")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/vnd.apple.mpegurl")
        assert response.text.startswith("#EXTM3U")

    def test_range_request(self, client, hls_root):
        write_day(hls_root, GOES, "2025-07-21", [10])
        response = client.get(
            f"/api/hls/{GOES.key}/2025-07-21/segment_000.ts",
            headers={"Range": "bytes=0-99"},
        )
        assert response.status_code == 206
        assert len(response.content) == 100

    def test_head(self, client, hls_root):
        write_day(hls_root, GOES, "2025-07-21", [10])
        response = client.head(f"/api/hls/{GOES.key}/2025-07-21/segment_000.ts")
        assert response.status_code == 200
        assert response.headers["content-length"] == "188"

    def test_missing_file(self, client):
        response = client.get(f"/api/hls/{GOES.key}/2025-07-21/segment_999.ts")
        assert response.status_code == 404
        assert response.text == "File not found"

    def test_directory_is_not_served(self, client, hls_root):
        write_day(hls_root, GOES, "2025-07-21", [10])
        assert client.get(f"/api/hls/{GOES.key}/2025-07-21").status_code == 404

    def test_symlink_escape_denied(self, client, hls_root, data_root):
        (data_root / "secret.txt").write_text("secret")
        os.symlink(data_root / "secret.txt", hls_root / "link.ts")

        response = client.get("/api/hls/link.ts")

        assert response.status_code == 403
        assert response.text == "Access denied"

    def test_options(self, client):
        response = client.options(f"/api/hls/{GOES.key}/2025-07-21/segment_000.ts")
        assert response.status_code == 200
        assert "GET" in response.headers["access-control-allow-methods"]

    def test_empty_path(self, client):
        response = client.get("/api/hls/")
        assert response.status_code == 400
        assert response.text == "Path required"
