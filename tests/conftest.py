"""Pytest fixtures for iconpost tests."""

import os
import tempfile

import cv2
import httpx
import numpy as np
import pytest


PUBLIC_ADDRESS = "93.184.216.34"


def encode_png(img):
    """PNG bytes of an OpenCV (BGR/BGRA/grey) image."""
    ok, encoded = cv2.imencode(".png", img)
    assert ok
    return encoded.tobytes()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def red_circle_image():
    """512x512 white canvas with a solid red circle in the middle (BGR)."""
    img = np.full((512, 512, 3), 255, dtype=np.uint8)
    cv2.circle(img, (256, 256), 150, (0, 0, 255), -1)
    return img


@pytest.fixture
def red_circle_png(red_circle_image):
    return encode_png(red_circle_image)


@pytest.fixture
def black_on_white_image():
    """128x128 white canvas with a filled black ring (BGR)."""
    img = np.full((128, 128, 3), 255, dtype=np.uint8)
    cv2.circle(img, (64, 64), 40, (0, 0, 0), -1)
    cv2.circle(img, (64, 64), 15, (255, 255, 255), -1)
    return img


@pytest.fixture
def black_on_white_png(black_on_white_image):
    return encode_png(black_on_white_image)


@pytest.fixture
def red_circle_file(temp_dir, red_circle_image):
    """Red circle written to disk for CLI tests."""
    path = os.path.join(temp_dir, "red_circle.png")
    cv2.imwrite(path, red_circle_image)
    return path


@pytest.fixture
def default_config():
    """Create default pipeline configuration."""
    from iconpost.config import PipelineConfig
    return PipelineConfig()


@pytest.fixture
def make_fetcher():
    """
    Build an ImageFetcher whose network is an httpx.MockTransport.

    ``routes`` maps URL to an httpx.Response (or a callable taking the
    request). Every request the transport sees is recorded on
    ``fetcher.requests``. Hostnames resolve to a public address; requests
    pinned to that address are routed by their Host header.
    """
    from iconpost.config import FetchConfig
    from iconpost.io.fetch import ImageFetcher

    def factory(routes=None, config=None, resolver=None):
        requests = []

        def handler(request):
            requests.append(request)
            host = request.headers["host"].rsplit(":", 1)[0]
            route = (routes or {}).get(str(request.url.copy_with(host=host)))
            if route is None:
                return httpx.Response(404, text="not found")
            if callable(route):
                return route(request)
            return route

        fetcher = ImageFetcher(
            config=config or FetchConfig(),
            transport=httpx.MockTransport(handler),
            resolver=resolver or (lambda host: {PUBLIC_ADDRESS}),
        )
        fetcher.requests = requests
        return fetcher

    return factory
