"""
Pipeline orchestrator for iconpost.

Runs the states FETCHING -> DECODING -> [REMOVING_BACKGROUND] ->
[VECTORIZING] -> ENCODING -> DONE strictly in order. Any failure aborts the
request with a typed PipelineError; there are no partial results.
"""

import base64
import functools
from contextlib import contextmanager

import numpy as np

from iconpost.config import PipelineConfig
from iconpost.errors import DecodeError, PipelineError, UpstreamError, VectorizeError
from iconpost.io.fetch import ImageFetcher
from iconpost.io.load_image import normalize_image
from iconpost.matte.alpha import build_alpha_matte
from iconpost.matte.background import estimate_background
from iconpost.matte.composite import composite, encode_png
from iconpost.matte.despeckle import despeckle
from iconpost.models import PipelineResult, PipelineState, TraceFailurePolicy
from iconpost.tracer import get_tracer, trace
from iconpost.vector.svg_emit import wrap_raster_as_svg
from iconpost.vector.vectorizer import vectorize_buffer


PNG_CONTENT_TYPE = "image/png"
SVG_CONTENT_TYPE = "image/svg+xml; charset=utf-8"


class PipelineRun:
    """
    State history of a single request.

    Each step runs inside a tracer span named after its state. A failing
    step appends ERRORED; exceptions that are not PipelineErrors are
    re-raised as ``wrap`` with the cause in ``details``.
    """

    def __init__(self):
        self.states = []

    @contextmanager
    def step(self, state, wrap=DecodeError):
        tracer = get_tracer()
        self.states.append(state)
        try:
            with tracer.span(state.value, module="pipeline"):
                yield
        except PipelineError:
            self.states.append(PipelineState.ERRORED)
            raise
        except Exception as exc:
            self.states.append(PipelineState.ERRORED)
            raise wrap(details=f"{type(exc).__name__}: {exc}") from exc

    def finish(self):
        self.states.append(PipelineState.DONE)
        get_tracer().event("Pipeline done: " + " -> ".join(s.value for s in self.states))


def _decode(run, raster, max_size):
    with run.step(PipelineState.DECODING, DecodeError):
        return normalize_image(raster, max_size)


def _cut_out(run, buffer, params, config, debug_writer=None):
    """Estimate the background, build and despeckle the alpha, composite."""
    with run.step(PipelineState.REMOVING_BACKGROUND, DecodeError):
        background = estimate_background(
            buffer,
            samples_per_side=config.matte.samples_per_side,
            max_samples=config.matte.max_edge_samples,
        )
        alpha = build_alpha_matte(buffer, background, params, config.matte.min_ramp_gap)

        if debug_writer:
            debug_writer.save_json(background, "01_background.json")
            debug_writer.save_image(alpha, "02_alpha_raw.png")

        despeckle(alpha, params.despeckle_rounds, config.matte.despeckle_radius)

        if debug_writer:
            debug_writer.save_image(alpha, "03_alpha_despeckled.png")
            debug_writer.save_json(_matte_metrics(alpha, background, params), "matte_metrics.json")

        return composite(buffer, alpha, params.matte_color)


def _matte_metrics(alpha, background, params):
    return {
        "width": int(alpha.shape[1]),
        "height": int(alpha.shape[0]),
        "background": list(background.as_tuple()),
        "opaque_ratio": float(np.mean(alpha == 255)),
        "clear_ratio": float(np.mean(alpha == 0)),
        "partial_ratio": float(np.mean((alpha > 0) & (alpha < 255))),
        "parameters": params.model_dump(),
    }


def _raster_href(raster, source_url=None):
    """URL of the source when known, otherwise a data URI of its bytes."""
    if source_url:
        return source_url
    content_type = raster.content_type.split(";", 1)[0].strip()
    if not content_type.startswith("image/"):
        content_type = PNG_CONTENT_TYPE
    encoded = base64.b64encode(raster.data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def _trace(run, buffer, params, config, on_trace_failure, href):
    """
    VECTORIZING step. Returns ``(svg, width, height, traced)``.

    With WRAP_AS_IMAGE a VectorizeError yields an SVG that references the
    source image instead; with FAIL it propagates.
    """
    tracer = get_tracer()

    with run.step(PipelineState.VECTORIZING, VectorizeError):
        try:
            svg, canvas = vectorize_buffer(buffer, params, config.vectorize)
        except VectorizeError as exc:
            if on_trace_failure != TraceFailurePolicy.WRAP_AS_IMAGE:
                raise
            tracer.event(f"Tracing failed, wrapping source as image: {exc.details}", level="WARN")
            return wrap_raster_as_svg(href(), buffer.width, buffer.height), buffer.width, buffer.height, False

    return svg, canvas.width, canvas.height, True


def _encode_svg(run, svg, width, height, traced):
    with run.step(PipelineState.ENCODING, VectorizeError):
        data = svg.encode("utf-8")
    run.finish()
    return PipelineResult(
        data=data,
        content_type=SVG_CONTENT_TYPE,
        width=width,
        height=height,
        traced=traced,
        states=run.states,
    )


def _encode_png(run, buffer):
    with run.step(PipelineState.ENCODING, DecodeError):
        data = encode_png(buffer)
    run.finish()
    return PipelineResult(
        data=data,
        content_type=PNG_CONTENT_TYPE,
        width=buffer.width,
        height=buffer.height,
        states=run.states,
    )


@trace(label="remove_background")
def remove_background(raster, params, config=None, debug_writer=None):
    """
    Cut the background out of ``raster`` and return a PNG PipelineResult.

    ``params`` is a ProcessingParameters. Raises DecodeError when the bytes
    are not an image.
    """
    config = config or PipelineConfig()
    run = PipelineRun()

    buffer = _decode(run, raster, params.max_size)
    cutout = _cut_out(run, buffer, params, config, debug_writer)
    return _encode_png(run, cutout)


@trace(label="vectorize_raster")
def vectorize_raster(raster, params, on_trace_failure=TraceFailurePolicy.FAIL,
                     source_url=None, config=None):
    """
    Trace ``raster`` into an SVG PipelineResult.

    Decode and tracing failures raise VectorizeError under the FAIL policy.
    Under WRAP_AS_IMAGE they produce an SVG embedding the source by
    reference (``source_url``, or a data URI when there is none) and the
    result is flagged ``traced=False``.
    """
    config = config or PipelineConfig()
    return _vectorize_raster(PipelineRun(), raster, params, on_trace_failure, source_url, config)


def _vectorize_raster(run, raster, params, on_trace_failure, source_url, config):
    tracer = get_tracer()
    href = functools.partial(_raster_href, raster, source_url)

    try:
        buffer = _decode(run, raster, config.vectorize.max_size)
    except DecodeError as exc:
        if on_trace_failure != TraceFailurePolicy.WRAP_AS_IMAGE:
            raise VectorizeError(details=exc.details) from exc
        tracer.event(f"Source not decodable, wrapping as image: {exc.details}", level="WARN")
        # the decode failure is recovered, not terminal
        run.states.pop()
        return _encode_svg(run, wrap_raster_as_svg(href()), None, None, False)

    svg, width, height, traced = _trace(run, buffer, params, config, on_trace_failure, href)
    return _encode_svg(run, svg, width, height, traced)


@trace(label="run_pipeline")
def run_pipeline(request, fetcher=None, config=None, debug_writer=None):
    """
    Fetch ``request.url`` and post-process it according to the request flags.

    Returns a PNG result, or an SVG result when ``request.output_format`` is
    svg (after background removal when ``request.remove_background`` is set).
    """
    config = config or PipelineConfig()
    fetcher = fetcher or ImageFetcher(config.fetch)
    run = PipelineRun()

    with run.step(PipelineState.FETCHING, functools.partial(UpstreamError, 502)):
        raster = fetcher.fetch(request.url)

    if request.vectorize and not request.remove_background:
        return _vectorize_raster(
            run, raster, request.vectorization, request.on_trace_failure, request.url, config,
        )

    buffer = _decode(run, raster, request.processing.max_size)

    if request.remove_background:
        buffer = _cut_out(run, buffer, request.processing, config, debug_writer)

    if not request.vectorize:
        return _encode_png(run, buffer)

    href = functools.partial(_raster_href, raster, request.url)
    svg, width, height, traced = _trace(
        run, buffer, request.vectorization, config, request.on_trace_failure, href,
    )
    return _encode_svg(run, svg, width, height, traced)
