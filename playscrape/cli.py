"""Command line interface.

Usage:
    playscrape scrape <action_file> [--debug] [--dry-run] [--timeout MS] [--delay MS] [--overwrite]
    playscrape export <action_file>
    playscrape extract <action_file> [--debug] [--dry-run]
    playscrape test <action_file> [-u]

The action file is a Python module exporting ``browser`` (a mapping of
action names to actions, ``start`` required) or ``mirror`` (a single
action), and an ``options`` mapping.
"""

import argparse
import asyncio
import importlib.util
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from playscrape import __version__
from playscrape.actions import (
    MIRROR_ACTION,
    BrowserAction,
    MirrorAction,
    parse_browser_actions,
    parse_mirror_action,
)
from playscrape.config import get_settings
from playscrape.exceptions import ActionConfigError
from playscrape.schemas.options import S3Options, ScrapeOptions

logger = logging.getLogger(__name__)

FILE_OPTION_KEYS = {
    "source",
    "format",
    "overwrite",
    "database_url",
    "export_file",
    "image_dir",
    "test_dir",
    "output_dir",
    "s3",
}


@dataclass
class ActionFile:
    browser: dict[str, BrowserAction] | None
    mirror: MirrorAction | None
    options: ScrapeOptions


def _load_module(path: Path):
    spec = importlib.util.spec_from_file_location(f"playscrape_actions_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ActionConfigError(f"Action file {path} could not be loaded.")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def resolve_options(action_file: Path, file_options: dict[str, Any], **extra_options: Any) -> ScrapeOptions:
    """Merge settings defaults, the action file's options and CLI flags."""
    settings = get_settings()

    unknown = set(file_options) - FILE_OPTION_KEYS
    if unknown:
        raise ActionConfigError(f"Unknown options: {', '.join(sorted(unknown))}")

    output_dir = Path(file_options.get("output_dir") or action_file.parent)
    output_dir.mkdir(parents=True, exist_ok=True)

    database_url = (
        file_options.get("database_url")
        or settings.database_url
        or f"sqlite:///{output_dir / 'playscrape.db'}"
    )
    export_file = file_options.get("export_file") or str(output_dir / "playscrape.json")
    test_dir = file_options.get("test_dir") or str(output_dir / "tests")

    if extra_options.get("test"):
        Path(test_dir).mkdir(parents=True, exist_ok=True)

    s3 = S3Options(**file_options["s3"]) if file_options.get("s3") else None

    values: dict[str, Any] = {
        "debug": settings.debug,
        "headless": settings.headless,
        "timeout": settings.timeout,
        "delay": settings.delay,
        "retries": settings.retries,
        "format": settings.image_format,
        "download_to": "s3" if s3 else "local",
    }
    values.update({key: value for key, value in extra_options.items() if value is not None})
    for key in ("source", "format", "image_dir"):
        if file_options.get(key) is not None:
            values[key] = file_options[key]
    if file_options.get("overwrite"):
        values["overwrite"] = True

    return ScrapeOptions(
        **values,
        s3=s3,
        database_url=database_url,
        export_file=export_file,
        test_dir=test_dir,
    )


def parse_action_file(file_name: str, **extra_options: Any) -> ActionFile:
    """Load an action file and resolve its actions and options."""
    if not file_name:
        raise ActionConfigError("No action file specified.")

    path = Path(file_name).resolve()
    if not path.exists():
        raise ActionConfigError(f"Action file {file_name} does not exist.")

    module = _load_module(path)

    raw_browser = getattr(module, "browser", None)
    raw_mirror = getattr(module, "mirror", None)
    raw_options = getattr(module, "options", None)

    if not raw_browser and not raw_mirror:
        raise ActionConfigError("No actions found. Make sure you export a browser or mirror object.")

    if raw_browser and raw_mirror:
        raise ActionConfigError("Both browser and mirror actions defined, only use one.")

    if raw_options is None:
        raise ActionConfigError("No options found.")

    return ActionFile(
        browser=parse_browser_actions(raw_browser) if raw_browser else None,
        mirror=parse_mirror_action(raw_mirror) if raw_mirror else None,
        options=resolve_options(path, dict(raw_options), **extra_options),
    )


async def _run_scrape(action_file: ActionFile) -> None:
    if action_file.mirror is not None:
        from playscrape.scrapers.mirror import scrape_mirrored_files
        await scrape_mirrored_files(action_file.mirror, action_file.options)
    else:
        from playscrape.scrapers.traversal import scrape_with_browser
        await scrape_with_browser(action_file.browser, action_file.options)


def cmd_scrape(args: argparse.Namespace) -> None:
    action_file = parse_action_file(
        args.action_file,
        debug=args.debug or None,
        dry_run=args.dry_run,
        test=False,
        overwrite=args.overwrite,
        timeout=args.timeout,
        delay=args.delay,
    )
    asyncio.run(_run_scrape(action_file))


def cmd_test(args: argparse.Namespace) -> None:
    action_file = parse_action_file(args.action_file, test=True, overwrite=args.update_snapshot)
    asyncio.run(_run_scrape(action_file))


def cmd_extract(args: argparse.Namespace) -> None:
    from playscrape.services.extraction import re_extract_data

    action_file = parse_action_file(args.action_file, debug=args.debug or None, dry_run=args.dry_run)
    actions = action_file.browser if action_file.browser is not None else {MIRROR_ACTION: action_file.mirror}
    asyncio.run(re_extract_data(actions, action_file.options))


def cmd_export(args: argparse.Namespace) -> None:
    from playscrape.services.export import export_records

    action_file = parse_action_file(args.action_file)
    export_records(action_file.options)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playscrape",
        description="Scrape data from a website using a browser, or from local HTML files.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="scrape and update existing entries in DB")
    scrape.add_argument("action_file", help="Python file defining the actions to perform")
    scrape.add_argument("--debug", action="store_true", help="output extra debugging information")
    scrape.add_argument("--dry-run", action="store_true", help="do not save any data to the database or file system")
    scrape.add_argument("--timeout", type=int, default=None, help="timeout in milliseconds")
    scrape.add_argument("--delay", type=int, default=None, help="delay in milliseconds")
    scrape.add_argument("--overwrite", action="store_true", help="overwrite existing downloaded files")
    scrape.set_defaults(func=cmd_scrape)

    export = subparsers.add_parser("export", help="export extracted data to a JSON file")
    export.add_argument("action_file", help="Python file defining the actions to perform")
    export.set_defaults(func=cmd_export)

    extract = subparsers.add_parser("extract", help="re-extract record data from a previous scrape")
    extract.add_argument("action_file", help="Python file defining the actions to perform")
    extract.add_argument("--debug", action="store_true", help="output extra debugging information")
    extract.add_argument("--dry-run", action="store_true", help="do not save any data to the database")
    extract.set_defaults(func=cmd_extract)

    test = subparsers.add_parser("test", help="test the extraction logic against stored snapshots")
    test.add_argument("action_file", help="Python file defining the actions to perform")
    test.add_argument("-u", "--update-snapshot", action="store_true", help="overwrite mismatching snapshots")
    test.set_defaults(func=cmd_test)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    debug = getattr(args, "debug", False) or get_settings().debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        args.func(args)
    except Exception as e:
        logger.error(f"{type(e).__name__}: {e}", exc_info=debug)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
