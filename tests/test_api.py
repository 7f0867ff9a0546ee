"""Tests for the FastAPI backend."""

import cv2
import httpx
import numpy as np
import pytest
from fastapi.testclient import TestClient

from main import app, get_fetcher


ICON_URL = "https://icons.example.com/icon.png"


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def serve(make_fetcher):
    """Route the app's fetcher to a mock transport serving ``content`` at ICON_URL."""
    def install(content):
        fetcher = make_fetcher(routes={ICON_URL: httpx.Response(200, content=content)})
        app.dependency_overrides[get_fetcher] = lambda: fetcher
        return fetcher
    return install


class TestHealth:
    """Tests for liveness and common headers."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["referrer-policy"] == "no-referrer"
        assert response.headers["x-frame-options"] == "DENY"


class TestRemoveBg:
    """Tests for GET /api/remove-bg."""

    def test_returns_png(self, client, serve, red_circle_png):
        serve(red_circle_png)

        response = client.get("/api/remove-bg", params={"url": ICON_URL})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        out = cv2.imdecode(np.frombuffer(response.content, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        assert out[0, 0, 3] == 0
        assert out[256, 256, 3] == 255

    def test_bad_numbers_fall_back(self, client, serve, red_circle_png):
        serve(red_circle_png)

        response = client.get("/api/remove-bg", params={
            "url": ICON_URL, "tol": "abc", "maxSize": "99999", "despeckle": "-4",
        })

        assert response.status_code == 200

    def test_missing_url(self, client):
        response = client.get("/api/remove-bg")

        assert response.status_code == 400
        assert response.json()["error"] == "Missing url parameter"

    def test_blocked_host(self, client):
        response = client.get("/api/remove-bg", params={"url": "http://192.168.1.1/icon.png"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Blocked host"
        assert body["code"] == "blocked_host"

    def test_undecodable_upstream(self, client, serve):
        serve(b"<html>not an image</html>")

        response = client.get("/api/remove-bg", params={"url": ICON_URL})

        assert response.status_code == 500
        assert response.json()["error"] == "Background removal failed"


class TestVectorize:
    """Tests for GET /api/vectorize."""

    def test_returns_svg(self, client, serve, black_on_white_png):
        serve(black_on_white_png)

        response = client.get("/api/vectorize", params={"url": ICON_URL, "color": "#ff0000"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert "<path" in response.text
        assert 'fill="#ff0000"' in response.text

    def test_localhost_blocked(self, client):
        response = client.get("/api/vectorize", params={"url": "http://127.0.0.1:8080/icon.png"})

        assert response.status_code == 400
        assert response.json()["error"] == "Blocked host"

    def test_ftp_blocked(self, client):
        response = client.get("/api/vectorize", params={"url": "ftp://icons.example.com/icon.png"})

        assert response.status_code == 400

    def test_upstream_error_status(self, client, make_fetcher):
        fetcher = make_fetcher()
        app.dependency_overrides[get_fetcher] = lambda: fetcher

        response = client.get("/api/vectorize", params={"url": ICON_URL})

        assert response.status_code == 404
        assert response.json()["error"] == "Upstream HTTP 404"


class TestDownload:
    """Tests for GET /api/icons/download."""

    def test_svg_attachment(self, client, serve, black_on_white_png):
        serve(black_on_white_png)

        response = client.get("/api/icons/download", params={
            "url": ICON_URL, "format": "svg", "filename": "my icon",
        })

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="my_icon.svg"'
        assert "<svg" in response.text

    def test_png_with_background_removed(self, client, serve, red_circle_png):
        serve(red_circle_png)

        response = client.get("/api/icons/download", params={
            "url": ICON_URL, "format": "png", "removeBackground": "true",
        })

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="icon.png"'
        out = cv2.imdecode(np.frombuffer(response.content, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
        assert out[0, 0, 3] == 0

    def test_unknown_format(self, client):
        response = client.get("/api/icons/download", params={"url": ICON_URL, "format": "gif"})

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"


class TestGeneratedSvg:
    """Tests for POST /api/icons/generated/svg."""

    def test_traced(self, client, serve, black_on_white_png):
        serve(black_on_white_png)

        response = client.post("/api/icons/generated/svg", json={"imageURL": ICON_URL, "threshold": 100})

        assert response.status_code == 200
        body = response.json()
        assert body["traced"] is True
        assert "<path" in body["svg"]

    def test_falls_back_to_image(self, client, serve):
        serve(b"not an image at all")

        response = client.post("/api/icons/generated/svg", json={"imageURL": ICON_URL})

        assert response.status_code == 200
        body = response.json()
        assert body["traced"] is False
        assert "<image" in body["svg"]
        assert ICON_URL in body["svg"]

    def test_missing_image_url(self, client):
        response = client.post("/api/icons/generated/svg", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing imageURL"
