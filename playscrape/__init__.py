"""Configurable browser and mirror scraper with idempotent record storage."""

__version__ = "0.1.0"

from playscrape.actions import (  # noqa: E402
    ROOT_ACTION,
    MIRROR_ACTION,
    ExtractOnlyAction,
    MirrorAction,
    VisitAction,
    VisitAllAction,
)
from playscrape.models import init_db  # noqa: E402
from playscrape.scrapers.mirror import scrape_mirrored_files  # noqa: E402
from playscrape.scrapers.traversal import scrape_with_browser  # noqa: E402
from playscrape.services.export import export_records  # noqa: E402
from playscrape.services.extraction import re_extract_data  # noqa: E402

__all__ = [
    "ROOT_ACTION",
    "MIRROR_ACTION",
    "ExtractOnlyAction",
    "MirrorAction",
    "VisitAction",
    "VisitAllAction",
    "init_db",
    "scrape_mirrored_files",
    "scrape_with_browser",
    "export_records",
    "re_extract_data",
]
