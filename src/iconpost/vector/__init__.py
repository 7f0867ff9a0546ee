"""Bitmap tracing to SVG."""
