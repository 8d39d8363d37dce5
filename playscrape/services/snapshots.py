"""Snapshot fixtures for test mode.

Each record's extracted data is compared against ``<test_dir>/<id>.json``
and its image urls against ``<test_dir>/<id>.images.json``. Missing fixtures
are created; a mismatch is fatal unless overwriting was requested.
"""

import json
import logging
from pathlib import Path
from typing import Any

from playscrape.exceptions import ScrapeStateError, SnapshotMismatchError
from playscrape.schemas.options import ScrapeOptions
from playscrape.utils import json_diff, json_equal, to_json

logger = logging.getLogger(__name__)


def _check_snapshot(snapshot_file: Path, data: Any, label: str, options: ScrapeOptions) -> None:
    if snapshot_file.exists():
        expected = json.loads(snapshot_file.read_text(encoding="utf-8"))
        if not json_equal(expected, data):
            diff = json_diff(expected, data)
            logger.warning(f"{label} mismatch for: {snapshot_file.stem}\n{diff}")
            if not options.overwrite:
                raise SnapshotMismatchError(f"{label} mismatch for {snapshot_file.name}")
            logger.info(f"Updating snapshot {snapshot_file.name}")
        else:
            logger.info(f"{label} matches snapshot {snapshot_file.name}")
    else:
        logger.warning(f"Snapshot file not found, creating {snapshot_file.name}")
        logger.info(to_json(data))

    snapshot_file.parent.mkdir(parents=True, exist_ok=True)
    snapshot_file.write_text(to_json(data, indent=4), encoding="utf-8")


def _test_dir(options: ScrapeOptions) -> Path:
    if not options.test_dir:
        raise ScrapeStateError("No test directory specified.")
    return Path(options.test_dir)


def check_record_snapshot(record_id: str, extracted: Any, options: ScrapeOptions) -> None:
    _check_snapshot(_test_dir(options) / f"{record_id}.json", extracted, "Data", options)


def check_image_snapshot(record_id: str, urls: list[str], options: ScrapeOptions) -> None:
    _check_snapshot(_test_dir(options) / f"{record_id}.images.json", list(urls), "Image urls", options)
