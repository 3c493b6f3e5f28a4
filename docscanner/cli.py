#!/usr/bin/env python3
"""
Command-line interface for docscanner.

Usage:
    # Serve the HTTP API for the web frontend
    docscanner serve --port 8787

    # Clean photos and assemble them into a PDF without the web UI
    docscanner scan page1.jpg page2.png -o receipts

    # Assemble the photos as they are (no API key needed)
    docscanner scan page1.jpg page2.png -o receipts --no-clean
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_config():
    """Read configuration, reporting a missing key instead of a traceback."""
    from .config import ScannerConfig

    try:
        return ScannerConfig.from_env()
    except (RuntimeError, ValueError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return None


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP service."""
    import uvicorn

    from .server import create_app

    config = load_config()
    if config is None:
        return 1

    app = create_app(config)
    print(f"Starting server on {args.host}:{args.port} (model: {config.model})")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    """Clean images and write the PDF."""
    from .cleaner import ImageCleaner, PassthroughCleaner
    from .layout import PDFRenderer
    from .pipeline import DocumentPipeline
    from .resources import ResourceRegistry, token_from_url
    from .session import Session

    if args.no_clean:
        cleaner = PassthroughCleaner()
    else:
        config = load_config()
        if config is None:
            return 1
        cleaner = ImageCleaner(config)

    registry = ResourceRegistry()
    session = Session(registry, default_filename=args.output)

    for name in args.images:
        path = Path(name)
        mime_type = MIME_TYPES.get(path.suffix.lower())
        if mime_type is None:
            print(f"✗ Unsupported image type: {path}", file=sys.stderr)
            return 1
        if not path.is_file():
            print(f"✗ Image not found: {path}", file=sys.stderr)
            return 1
        session.add_file(path.name, path.read_bytes(), mime_type)

    pipeline = DocumentPipeline(cleaner, PDFRenderer())
    result = asyncio.run(pipeline.run(session))

    if not result.success:
        print(f"\n✗ Failed: {result.message}", file=sys.stderr)
        return 1

    output_path = Path(args.output_dir) / session.output_filename
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(registry.get(token_from_url(result.pdf_url)).data)
    session.reset()

    print(f"\n✓ {result.message}")
    print(f"  Pages: {result.page_count}")
    print(f"  PDF: {output_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docscanner",
        description="Clean document photos and convert them to PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    p_serve = subparsers.add_parser(
        "serve",
        help="Run the HTTP API",
    )
    p_serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    p_serve.add_argument("--port", type=int, default=8787, help="Port to listen on")
    p_serve.set_defaults(func=cmd_serve)

    # scan command
    p_scan = subparsers.add_parser(
        "scan",
        help="Clean images and assemble a PDF",
        description="Pages appear in the order the images are given",
    )
    p_scan.add_argument("images", nargs="+", help="JPEG or PNG images, in page order")
    p_scan.add_argument("-o", "--output", default="scanned-documents", help="PDF filename")
    p_scan.add_argument("-d", "--output-dir", default=".", help="Directory for the PDF")
    p_scan.add_argument("--no-clean", action="store_true", help="Skip AI cleanup")
    p_scan.set_defaults(func=cmd_scan)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
