"""
KADI Docs command line entry point

Renders one document description (YAML or JSON) to a PDF file:
1. Load settings and configure logging
2. Validate the document (and optional business profile)
3. Render within the time budget
4. Optionally stamp the finished PDF
5. Write the bytes to disk
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .config_loader import config
from .logging_config import setup_logging
from .models import BusinessProfile, DocumentSpec
from .rendering.composer import DocumentComposer, RenderError, render_with_deadline
from .rendering.overlay import apply_stamp_to_pdf
from .settings import RenderSettings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RENDER_FAILED = 1
EXIT_INVALID_INPUT = 2


class InputError(Exception):
    """A document, profile or logo file could not be read."""


def load_mapping(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON file that must contain a mapping."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise InputError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise InputError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_profile(profile_path: Optional[Path], logo_path: Optional[Path]) -> Optional[BusinessProfile]:
    if profile_path is None and logo_path is None:
        return None

    data = load_mapping(profile_path) if profile_path else {}
    if logo_path:
        try:
            data["logo"] = logo_path.read_bytes()
        except OSError as e:
            raise InputError(f"Cannot read logo {logo_path}: {e}") from e
    return BusinessProfile.model_validate(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kadi-render",
        description="KADI Docs - render a business document to PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kadi-render devis.yaml -o devis.pdf
  kadi-render decharge.json -o decharge.pdf --profile entreprise.yaml
  kadi-render facture.yaml -o facture.pdf --profile entreprise.yaml --logo logo.png --stamp-overlay
        """
    )

    parser.add_argument("document", type=Path, help="Document description (YAML or JSON)")
    parser.add_argument("-o", "--output", type=Path, required=True, help="Output PDF path")
    parser.add_argument("--profile", type=Path, help="Business profile (YAML or JSON)")
    parser.add_argument("--logo", type=Path, help="Logo image used in the stamp")
    parser.add_argument(
        "--stamp-overlay",
        action="store_true",
        help="Also stamp the finished PDF above the footer band"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Render time budget in seconds (0 disables the budget)"
    )
    parser.add_argument("--settings", type=Path, help="Alternative settings.yaml")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for kadi-render.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    if args.settings:
        config.reload(args.settings)
    setup_logging(log_level=args.log_level)

    try:
        spec = DocumentSpec.model_validate(load_mapping(args.document))
        profile = load_profile(args.profile, args.logo)
    except InputError as e:
        logger.error(str(e))
        return EXIT_INVALID_INPUT
    except ValidationError as e:
        logger.error(f"Invalid document description:\n{e}")
        return EXIT_INVALID_INPUT

    settings = RenderSettings.from_config(config)
    composer = DocumentComposer(settings)

    try:
        if args.timeout and args.timeout > 0:
            pdf_bytes = render_with_deadline(composer, spec, profile, timeout=args.timeout)
        else:
            pdf_bytes = composer.render(spec, profile)
    except RenderError as e:
        logger.error(f"Render failed: {e}")
        return EXIT_RENDER_FAILED

    if args.stamp_overlay:
        pdf_bytes = apply_stamp_to_pdf(pdf_bytes, profile, settings)

    try:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(pdf_bytes)
    except OSError as e:
        logger.error(f"Cannot write {args.output}: {e}")
        return EXIT_RENDER_FAILED

    logger.info(f"Wrote {spec.title} to {args.output} ({len(pdf_bytes)} bytes)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
