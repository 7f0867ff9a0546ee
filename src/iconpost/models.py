"""
Data models for the iconpost pipeline.

Request parameters and results are validated Pydantic models; pixel data
lives in plain numpy-backed containers so the per-pixel loops stay
vectorised and allocation-free.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from iconpost.config import MatteConfig, VectorizeConfig


_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class PipelineState(str, Enum):
    """States a single pipeline run moves through."""
    FETCHING = "fetching"
    DECODING = "decoding"
    REMOVING_BACKGROUND = "removing_background"
    VECTORIZING = "vectorizing"
    ENCODING = "encoding"
    DONE = "done"
    ERRORED = "errored"


class OutputFormat(str, Enum):
    """Container format of a pipeline result."""
    SVG = "svg"
    PNG = "png"


class TraceFailurePolicy(str, Enum):
    """What a caller wants when bitmap tracing fails."""
    FAIL = "fail"
    WRAP_AS_IMAGE = "wrap_as_image"


def normalize_hex_color(value):
    """
    Return ``value`` as a lowercase ``#rrggbb`` string, or None if it is not
    a 3- or 6-digit hex color.
    """
    if value is None:
        return None
    match = _HEX_COLOR.match(str(value).strip())
    if not match:
        return None
    digits = match.group(1).lower()
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return f"#{digits}"


def hex_to_rgb(value):
    """Convert ``#rrggbb`` to an (r, g, b) tuple of ints."""
    digits = normalize_hex_color(value)
    if digits is None:
        raise ValueError(f"Not a hex color: {value!r}")
    return tuple(int(digits[i:i + 2], 16) for i in (1, 3, 5))


def parse_number(raw, default, lo, hi, integer=False):
    """
    Permissive numeric query parsing.

    Missing or non-numeric values fall back to ``default``; numeric values are
    clamped to [lo, hi]. Integers truncate toward zero.
    """
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except ValueError:
        return default
    if math.isnan(value) or math.isinf(value):
        return default
    if integer:
        value = int(value)
    return max(lo, min(hi, value))


def parse_flag(raw, default=False):
    """Interpret a query flag; only common truthy spellings count as True."""
    if raw is None:
        return default
    return str(raw).strip().lower() in ("true", "1", "yes", "on")


class RasterBytes(BaseModel):
    """Raw image bytes plus the content type the origin declared."""
    data: bytes
    content_type: str = "application/octet-stream"
    source: str = ""

    model_config = ConfigDict(frozen=True)


@dataclass
class PixelBuffer:
    """
    RGBA image as a contiguous uint8 array of shape (height, width, 4).

    Row-major, so ``pixels.reshape(-1)`` is the flat R,G,B,A sequence of
    length ``width * height * 4``.
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        expected = (self.height, self.width, 4)
        if self.pixels.shape != expected:
            raise ValueError(f"Pixel array shape {self.pixels.shape} does not match {expected}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Pixel array must be uint8, got {self.pixels.dtype}")
        self.pixels = np.ascontiguousarray(self.pixels)

    @property
    def rgb(self):
        return self.pixels[:, :, :3]

    @property
    def alpha(self):
        return self.pixels[:, :, 3]

    @property
    def flat(self):
        return self.pixels.reshape(-1)


class BackgroundColor(BaseModel):
    """Estimated matte color of an image."""
    r: int = Field(..., ge=0, le=255)
    g: int = Field(..., ge=0, le=255)
    b: int = Field(..., ge=0, le=255)

    model_config = ConfigDict(frozen=True)

    def as_tuple(self):
        return (self.r, self.g, self.b)


class ProcessingParameters(BaseModel):
    """Background-removal parameters, validated once per request."""
    max_size: int = Field(default=1024, ge=128, le=4096)
    tolerance: float = Field(default=35.0, ge=1, le=200)
    hardness: float = Field(default=55.0, ge=5, le=400)
    feather: float = Field(default=2.5, ge=0.5, le=10)
    despeckle_rounds: int = Field(default=1, ge=0, le=3)
    matte_color: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("matte_color")
    @classmethod
    def _check_matte(cls, value):
        if value is None:
            return None
        normalized = normalize_hex_color(value)
        if normalized is None or len(str(value).lstrip("#")) != 6:
            raise ValueError("matte_color must be a 6-digit hex color")
        return normalized

    @model_validator(mode="after")
    def _check_ramp(self):
        if self.hardness <= self.tolerance:
            raise ValueError("hardness must exceed tolerance")
        return self

    @classmethod
    def from_query(cls, query, defaults=None):
        """
        Build parameters from raw query values.

        Never raises for bad numbers: they fall back to defaults or bounds.
        ``hardness`` is lifted to at least ``tolerance + 1``. A matte that is
        not exactly six hex digits is ignored.
        """
        defaults = defaults or MatteConfig()
        tolerance = parse_number(query.get("tol"), defaults.tolerance, 1, 200)
        hardness = parse_number(query.get("hard"), defaults.hardness, 5, 400)

        matte = query.get("matte")
        if matte:
            hex_digits = str(matte).strip().lstrip("#")
            matte = normalize_hex_color(hex_digits) if len(hex_digits) == 6 else None

        return cls(
            max_size=parse_number(query.get("maxSize"), defaults.max_size, 128, 4096, integer=True),
            tolerance=tolerance,
            hardness=max(tolerance + 1, hardness),
            feather=parse_number(query.get("feather"), defaults.feather, 0.5, 10),
            despeckle_rounds=parse_number(query.get("despeckle"), defaults.despeckle_rounds, 0, 3, integer=True),
            matte_color=matte or None,
        )


class VectorizationParameters(BaseModel):
    """Bitmap-tracing parameters, validated once per request."""
    color: str = "#000000"
    threshold: int = Field(default=128, ge=-1, le=255)
    turd_size: int = Field(default=2, ge=0, le=100)
    invert: bool = False
    curve_tolerance: float = Field(default=1.0, ge=0, le=10)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("color")
    @classmethod
    def _check_color(cls, value):
        normalized = normalize_hex_color(value)
        if normalized is None:
            raise ValueError("color must be a hex color")
        return normalized

    @classmethod
    def from_query(cls, query, defaults=None):
        """Build parameters from raw query values, falling back to defaults."""
        defaults = defaults or VectorizeConfig()
        color = normalize_hex_color(query.get("color")) or normalize_hex_color(defaults.color)

        return cls(
            color=color,
            threshold=parse_number(query.get("threshold"), defaults.threshold, -1, 255, integer=True),
            turd_size=parse_number(query.get("turdSize"), defaults.turd_size, 0, 100, integer=True),
            invert=parse_flag(query.get("invert")),
            curve_tolerance=parse_number(query.get("curveTolerance"), defaults.curve_tolerance, 0, 10),
        )


class PipelineRequest(BaseModel):
    """One end-to-end request: where to fetch and what to do with it."""
    url: str
    remove_background: bool = False
    output_format: OutputFormat = OutputFormat.PNG
    processing: ProcessingParameters = Field(default_factory=ProcessingParameters)
    vectorization: VectorizationParameters = Field(default_factory=VectorizationParameters)
    on_trace_failure: TraceFailurePolicy = TraceFailurePolicy.FAIL

    model_config = ConfigDict(frozen=True)

    @property
    def vectorize(self):
        return self.output_format == OutputFormat.SVG


class PipelineResult(BaseModel):
    """A complete pipeline output; there are no partial results."""
    data: bytes
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    traced: bool = True
    states: List[PipelineState] = Field(default_factory=list)

    @property
    def text(self):
        return self.data.decode("utf-8")
