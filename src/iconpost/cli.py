"""
Command-line interface for iconpost.

Provides commands for background removal, vectorization and writing a
default configuration file.
"""

import argparse
import sys

from iconpost.config import load_config, save_default_config
from iconpost.tracer import configure_tracer, get_tracer


def _add_common_arguments(parser):
    parser.add_argument(
        "input",
        help="Input image file or http(s) URL",
    )
    parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output file",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    parser.add_argument(
        "--trace-level",
        default="INFO",
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level",
    )
    parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs",
    )
    parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="iconpost",
        description="iconpost: remove flat backgrounds from icons and trace them to SVG",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Remove-bg command
    bg_parser = subparsers.add_parser("remove-bg", help="Cut out the background to a PNG")
    _add_common_arguments(bg_parser)
    bg_parser.add_argument("--max-size", default=None, help="Longest output edge (128-4096)")
    bg_parser.add_argument("--tol", default=None, help="Colour distance that is fully background (1-200)")
    bg_parser.add_argument("--hard", default=None, help="Colour distance that is fully foreground (5-400)")
    bg_parser.add_argument("--feather", default=None, help="Edge softness multiplier (0.5-10)")
    bg_parser.add_argument("--despeckle", default=None, help="Despeckle rounds (0-3)")
    bg_parser.add_argument("--matte", default=None, help="Flatten onto this 6-digit hex colour")
    bg_parser.add_argument(
        "--debug",
        action="store_true",
        help="Write intermediate masks and metrics",
    )
    bg_parser.add_argument(
        "--debug-dir",
        default=None,
        help="Directory for debug artifacts (default from config)",
    )

    # Vectorize command
    vec_parser = subparsers.add_parser("vectorize", help="Trace an image to SVG")
    _add_common_arguments(vec_parser)
    vec_parser.add_argument("--color", default=None, help="Fill colour of the traced path")
    vec_parser.add_argument("--threshold", default=None, help="Luminance threshold (0-255, -1 for automatic)")
    vec_parser.add_argument("--turd-size", default=None, help="Drop specks up to this many pixels")
    vec_parser.add_argument("--curve-tolerance", default=None, help="Curve fit tolerance in pixels (0 for polygons)")
    vec_parser.add_argument(
        "--invert",
        action="store_true",
        help="Trace light pixels instead of dark ones",
    )

    # Init config command
    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="iconpost_config.yaml",
        help="Output path for config file",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "remove-bg":
        return handle_remove_bg(args)
    elif args.command == "vectorize":
        return handle_vectorize(args)
    elif args.command == "init-config":
        return handle_init_config(args)

    return 0


def _configure(args):
    config = load_config(args.config)
    configure_tracer(
        enabled=args.trace or config.tracing.enabled,
        level=args.trace_level if args.trace else config.tracing.level,
        file_path=args.trace_file or config.tracing.file_path,
        json_output=args.trace_json or config.tracing.json_output,
    )
    return config


def _read_input(source, config):
    """Load INPUT from disk, or through the guarded fetcher for URLs."""
    from iconpost.io.fetch import ImageFetcher
    from iconpost.io.load_image import load_raster_file

    if source.lower().startswith(("http://", "https://")):
        return ImageFetcher(config.fetch).fetch(source)
    return load_raster_file(source)


def handle_remove_bg(args):
    """Handle the remove-bg command."""
    config = _configure(args)
    tracer = get_tracer()

    try:
        from iconpost.io.save_artifacts import DebugArtifactWriter, save_bytes
        from iconpost.models import ProcessingParameters
        from iconpost.pipeline import remove_background

        params = ProcessingParameters.from_query({
            "maxSize": args.max_size,
            "tol": args.tol,
            "hard": args.hard,
            "feather": args.feather,
            "despeckle": args.despeckle,
            "matte": args.matte,
        }, defaults=config.matte)

        debug_writer = None
        if args.debug or config.debug.enabled:
            debug_writer = DebugArtifactWriter(
                args.debug_dir or config.debug.out_dir,
                enabled=True,
                max_edge=config.debug.max_edge,
            )

        with tracer.span("cli_remove_bg", module="cli"):
            raster = _read_input(args.input, config)
            result = remove_background(raster, params, config=config, debug_writer=debug_writer)
            save_bytes(result.data, args.out)

        print(f"Background removed: {result.width}x{result.height} -> {args.out}")
        if debug_writer:
            print(f"Debug artifacts saved to: {debug_writer.out_dir}/")
        return 0

    except Exception as e:
        tracer.event(f"Background removal failed: {str(e)}", level="ERROR")
        print(f"\nError: {_describe(e)}", file=sys.stderr)
        return 1


def handle_vectorize(args):
    """Handle the vectorize command."""
    config = _configure(args)
    tracer = get_tracer()

    try:
        from iconpost.io.save_artifacts import save_bytes
        from iconpost.models import VectorizationParameters
        from iconpost.pipeline import vectorize_raster

        params = VectorizationParameters.from_query({
            "color": args.color,
            "threshold": args.threshold,
            "turdSize": args.turd_size,
            "curveTolerance": args.curve_tolerance,
            "invert": "true" if args.invert else None,
        }, defaults=config.vectorize)

        with tracer.span("cli_vectorize", module="cli"):
            raster = _read_input(args.input, config)
            result = vectorize_raster(raster, params, config=config)
            save_bytes(result.data, args.out)

        print(f"Vectorized: {result.width}x{result.height} -> {args.out}")
        return 0

    except Exception as e:
        tracer.event(f"Vectorization failed: {str(e)}", level="ERROR")
        print(f"\nError: {_describe(e)}", file=sys.stderr)
        return 1


def _describe(error):
    details = getattr(error, "details", None)
    if details:
        return f"{error} ({details})"
    return str(error)


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
