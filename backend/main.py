"""
iconpost: FastAPI Backend

Exposes the background-removal and vectorization pipeline over HTTP. Every
endpoint fetches its source image from a caller-supplied URL through the
guarded fetcher.

Endpoints:
    GET  /health                      Liveness probe
    GET  /api/vectorize               URL → traced SVG
    GET  /api/remove-bg               URL → PNG with the background cut out
    GET  /api/icons/download          URL → SVG or PNG attachment
    POST /api/icons/generated/svg     Generated icon URL → {svg, traced}
"""

import os
import re
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from iconpost.config import load_config
from iconpost.errors import InvalidInput, PipelineError
from iconpost.io.fetch import ImageFetcher
from iconpost.models import (
    OutputFormat,
    PipelineRequest,
    ProcessingParameters,
    TraceFailurePolicy,
    VectorizationParameters,
    parse_flag,
)
from iconpost.pipeline import run_pipeline
from iconpost.tracer import configure_tracer, get_tracer

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

CONFIG = load_config(os.environ.get("ICONPOST_CONFIG"))

configure_tracer(
    enabled=CONFIG.tracing.enabled,
    level=CONFIG.tracing.level,
    file_path=CONFIG.tracing.file_path,
    json_output=CONFIG.tracing.json_output,
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "X-Frame-Options": "DENY",
}

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(title="iconpost", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    level = "ERROR" if exc.status_code >= 500 else "WARN"
    get_tracer().event(f"{request.url.path} failed: {exc.code} {exc.message}", level=level)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_config():
    return CONFIG


def get_fetcher():
    """Fetcher used by every endpoint; tests override this dependency."""
    return ImageFetcher(CONFIG.fetch)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


def _attachment_name(raw: Optional[str], extension: str) -> str:
    """Sanitized ``<name>.<ext>`` for a Content-Disposition header."""
    stem = os.path.splitext(os.path.basename(raw or ""))[0]
    stem = _UNSAFE_FILENAME.sub("_", stem).strip("._") or "icon"
    return f"{stem[:100]}.{extension}"


def _parse_format(raw: Optional[str]) -> OutputFormat:
    if raw is None or raw == "":
        return OutputFormat.PNG
    try:
        return OutputFormat(raw.strip().lower())
    except ValueError:
        raise InvalidInput("Invalid format", details="format must be svg or png")


def _result_response(result, headers=None) -> Response:
    return Response(
        content=result.data,
        media_type=result.content_type,
        headers={"Cache-Control": "no-store", **(headers or {})},
    )


# ---------------------------------------------------------------------------
# API Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/vectorize")
def vectorize(request: Request, fetcher=Depends(get_fetcher), config=Depends(get_config)):
    """
    Trace the image at ``url`` into an SVG.

    Query: url, color, threshold, turdSize, invert, curveTolerance.
    """
    query = request.query_params
    pipeline_request = PipelineRequest(
        url=query.get("url") or "",
        output_format=OutputFormat.SVG,
        vectorization=VectorizationParameters.from_query(query, defaults=config.vectorize),
    )
    return _result_response(run_pipeline(pipeline_request, fetcher, config))


@app.get("/api/remove-bg")
def remove_bg(request: Request, fetcher=Depends(get_fetcher), config=Depends(get_config)):
    """
    Remove the flat background of the image at ``url``; returns a PNG.

    Query: url, maxSize, tol, hard, feather, despeckle, matte.
    """
    query = request.query_params
    pipeline_request = PipelineRequest(
        url=query.get("url") or "",
        remove_background=True,
        output_format=OutputFormat.PNG,
        processing=ProcessingParameters.from_query(query, defaults=config.matte),
    )
    return _result_response(run_pipeline(pipeline_request, fetcher, config))


@app.get("/api/icons/download")
def download_icon(request: Request, fetcher=Depends(get_fetcher), config=Depends(get_config)):
    """
    Download an icon as an attachment.

    Query: url, format (svg|png), removeBackground, filename, plus the
    remove-bg and vectorize parameters.
    """
    query = request.query_params
    output_format = _parse_format(query.get("format"))
    pipeline_request = PipelineRequest(
        url=query.get("url") or "",
        remove_background=parse_flag(query.get("removeBackground")),
        output_format=output_format,
        processing=ProcessingParameters.from_query(query, defaults=config.matte),
        vectorization=VectorizationParameters.from_query(query, defaults=config.vectorize),
    )
    result = run_pipeline(pipeline_request, fetcher, config)

    filename = _attachment_name(query.get("filename"), output_format.value)
    return _result_response(result, {"Content-Disposition": f'attachment; filename="{filename}"'})


class GeneratedSvgRequest(BaseModel):
    """Body of the icon-generation SVG conversion."""
    imageURL: Optional[str] = None
    color: Optional[str] = None
    threshold: Optional[Any] = None
    turdSize: Optional[Any] = None
    invert: Optional[Any] = None
    curveTolerance: Optional[Any] = None


@app.post("/api/icons/generated/svg")
def generated_svg(body: GeneratedSvgRequest, fetcher=Depends(get_fetcher), config=Depends(get_config)):
    """
    Convert a generated icon to SVG.

    Falls back to an SVG that embeds the image by URL when tracing fails;
    ``traced`` tells the caller which one it got.
    """
    if not body.imageURL:
        raise InvalidInput("Missing imageURL")

    pipeline_request = PipelineRequest(
        url=body.imageURL,
        output_format=OutputFormat.SVG,
        vectorization=VectorizationParameters.from_query(body.model_dump(), defaults=config.vectorize),
        on_trace_failure=TraceFailurePolicy.WRAP_AS_IMAGE,
    )
    result = run_pipeline(pipeline_request, fetcher, config)

    return JSONResponse({"svg": result.text, "traced": result.traced})


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
    )
