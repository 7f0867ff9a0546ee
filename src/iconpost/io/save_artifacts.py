"""
Artifact saving utilities for iconpost.

Writes output files and, when debugging, the intermediate masks and metrics
of a background-removal run.
"""

import json
import os

import cv2
import numpy as np

from iconpost.tracer import get_tracer


def ensure_dir(path):
    """Create directory if it does not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def save_image(img, path, max_edge=None):
    """
    Save an RGB, RGBA or single-channel image to disk.

    Optionally downscales to max_edge while preserving aspect ratio.
    """
    tracer = get_tracer()

    if max_edge and max(img.shape[:2]) > max_edge:
        scale = max_edge / max(img.shape[:2])
        new_size = (max(1, int(img.shape[1] * scale)), max(1, int(img.shape[0] * scale)))
        img = cv2.resize(img, new_size, interpolation=cv2.INTER_AREA)

    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_RGBA2BGRA)

    ensure_dir(os.path.dirname(path))
    cv2.imwrite(path, img)
    tracer.event(f"Saved image: {path}")


def save_json(data, path, indent=2):
    """Save a dictionary or Pydantic model to JSON."""
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(data, "model_dump"):
        data = data.model_dump()

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=_json_default)

    tracer.event(f"Saved JSON: {path}")


def _json_default(value):
    if isinstance(value, np.generic):
        return value.item()
    return str(value)


def save_bytes(data, path):
    """Write an encoded output (PNG or SVG bytes) to disk."""
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))
    with open(path, "wb") as f:
        f.write(data)

    tracer.event(f"Saved output: {path} ({len(data)} bytes)")


class DebugArtifactWriter:
    """
    Collects the intermediate results of one pipeline run in a directory.

    Every method is a no-op when the writer is disabled, so callers can pass
    one around unconditionally.
    """

    def __init__(self, out_dir, enabled=True, max_edge=1600):
        self.out_dir = out_dir
        self.enabled = enabled
        self.max_edge = max_edge

    def save_image(self, img, filename):
        """Save an image artifact."""
        if not self.enabled:
            return
        save_image(img, os.path.join(self.out_dir, filename), max_edge=self.max_edge)

    def save_json(self, data, filename):
        """Save a JSON artifact."""
        if not self.enabled:
            return
        save_json(data, os.path.join(self.out_dir, filename))
