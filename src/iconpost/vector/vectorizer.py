"""
Raster to SVG vectorization.

Deterministic and side-effect free: any failure surfaces as VectorizeError.
Whether a failure is fatal or gets wrapped into a raster-embedding SVG is
the caller's choice (see ``iconpost.pipeline``).
"""

from iconpost.config import VectorizeConfig
from iconpost.errors import VectorizeError
from iconpost.tracer import trace
from iconpost.vector.bitmap import prepare_bitmap
from iconpost.vector.svg_emit import emit_traced_svg
from iconpost.vector.trace import trace_bitmap


@trace(label="vectorize_buffer")
def vectorize_buffer(buffer, params, config=None):
    """
    Trace a PixelBuffer into SVG markup.

    Returns ``(svg_text, canvas)``; canvas is the bounded PixelBuffer that
    was traced. Raises VectorizeError when tracing fails.
    """
    config = config or VectorizeConfig()

    try:
        mask, canvas = prepare_bitmap(
            buffer, params,
            max_size=config.max_size,
            palette_levels=config.palette_levels,
        )
        path_data = trace_bitmap(
            mask,
            turd_size=params.turd_size,
            curve_tolerance=params.curve_tolerance,
            corner_angle=config.corner_angle,
            max_fit_depth=config.max_fit_depth,
        )
        svg = emit_traced_svg(path_data, canvas.width, canvas.height, params.color)
    except Exception as exc:
        raise VectorizeError(details=f"{type(exc).__name__}: {exc}") from exc

    return svg, canvas
