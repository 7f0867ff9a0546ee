"""
SVG document emission for iconpost.
"""

import svgwrite

from iconpost.tracer import get_tracer


def emit_traced_svg(path_data, width, height, color="#000000"):
    """
    Wrap traced path data in an SVG document sized to the traced canvas.

    The path uses the even-odd fill rule so hole outlines cut through.
    Empty path data yields a well-formed SVG with no path.
    """
    tracer = get_tracer()

    dwg = svgwrite.Drawing(size=(width, height), debug=False)
    dwg.viewbox(0, 0, width, height)

    if path_data:
        dwg.add(dwg.path(d=path_data, fill=color, fill_rule="evenodd", stroke="none"))
    else:
        tracer.event("Nothing traced, emitting empty SVG", level="WARN")

    return dwg.tostring()


def wrap_raster_as_svg(href, width=None, height=None):
    """
    Minimal SVG that shows a raster image by reference.

    ``href`` may be a URL or a data URI. Without a known size the image
    fills a 100% x 100% viewport.
    """
    if width and height:
        dwg = svgwrite.Drawing(size=(width, height), debug=False)
        dwg.viewbox(0, 0, width, height)
        dwg.add(dwg.image(href=href, insert=(0, 0), size=(width, height)))
    else:
        dwg = svgwrite.Drawing(debug=False)
        dwg.add(dwg.image(href=href, insert=(0, 0), size=("100%", "100%")))

    return dwg.tostring()
