"""Command line interface for validating styles and rendering documents."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from pydantic import ValidationError

from .config import Settings, load_settings
from .driver import Driver
from .errors import DriverError, StyleValidationError
from .fetcher import DirectoryResourceFetcher, FetchReport, HttpResourceFetcher, ResourceFetcher
from .log import configure_logging
from .models import RenderedDocument
from .report import render_document, render_report
from .schemas import DocumentIn
from .validation import DocumentKind, ValidationReporter


def _build_fetcher(settings: Settings, locales_dir: Path | None) -> ResourceFetcher:
    if locales_dir is not None:
        return DirectoryResourceFetcher(locales_dir)
    return HttpResourceFetcher(
        locales_url=settings.locales_url,
        modules_url=settings.modules_url,
        timeout=settings.fetch_timeout,
        max_retries=settings.fetch_retries,
    )


def _build_result(document: RenderedDocument, report: FetchReport) -> Dict[str, Any]:
    result = document.to_dict()
    result["fetch_failures"] = [str(failure) for failure in report.failures]
    return result


def _validate(args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    diagnostics = ValidationReporter().validate(text, DocumentKind(args.kind))
    print(render_report(diagnostics, source=str(args.file)))
    return 1 if any(d.is_error for d in diagnostics) else 0


def _render(args: argparse.Namespace, settings: Settings) -> int:
    style_text = Path(args.style).read_text(encoding="utf-8")
    try:
        document = DocumentIn.model_validate(json.loads(Path(args.document).read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as exc:
        print(f"invalid document {args.document}: {exc}", file=sys.stderr)
        return 2

    try:
        driver = Driver(style_text, _build_fetcher(settings, args.locales_dir), args.format or settings.output_format)
    except StyleValidationError as exc:
        print(render_report(exc.diagnostics, source=str(args.style)))
        return 1

    try:
        driver.insert_references(document.reference_objects())
        driver.init_clusters(document.cluster_objects())
        order = document.order_positions()
        if order is not None:
            driver.set_cluster_order(order)
    except (DriverError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    report = asyncio.run(driver.fetch_all())
    rendered = driver.render()
    print(render_document(rendered, report.failures))

    if args.json_output:
        args.json_output.write_text(json.dumps(_build_result(rendered, report), indent=2))
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate CSL styles and render citations")
    parser.add_argument("--log-level", help="Logging level (default from CITEPROC_LOG_LEVEL)")
    parser.add_argument("--env-file", type=Path, help="Load settings from this .env file")
    commands = parser.add_subparsers(dest="command", required=True)

    validate = commands.add_parser("validate", help="Check a style, locale or module file")
    validate.add_argument("file", help="Path to the XML file to check")
    validate.add_argument(
        "--kind",
        default="style",
        choices=[kind.value for kind in DocumentKind],
        help="What kind of document the file holds",
    )

    render = commands.add_parser("render", help="Render a JSON document with a style")
    render.add_argument("--style", required=True, help="Path to the CSL style")
    render.add_argument(
        "--document",
        required=True,
        help="JSON file with `references` (CSL-JSON), `clusters` and optional `order`",
    )
    render.add_argument(
        "--locales-dir",
        type=Path,
        help="Read locales-{lang}.xml and module files from this directory instead of HTTP",
    )
    render.add_argument("--format", choices=["plain", "html", "rtf"], help="Output format")
    render.add_argument(
        "--json-output",
        type=Path,
        help="Write the rendered document to a JSON file",
    )
    args = parser.parse_args(argv)

    settings = load_settings(args.env_file)
    configure_logging(args.log_level or settings.log_level)

    if args.command == "validate":
        return _validate(args)
    return _render(args, settings)


if __name__ == "__main__":  # pragma: no cover - manual invocation helper
    raise SystemExit(main())
