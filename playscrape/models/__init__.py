"""Content store models: import all so relationships resolve."""

from playscrape.models.base import Base, init_db
from playscrape.models.record import Record
from playscrape.models.download import Download
from playscrape.models.scrape import Scrape
from playscrape.models.scrape_record import ScrapeRecord

__all__ = [
    "Base",
    "init_db",
    "Record",
    "Download",
    "Scrape",
    "ScrapeRecord",
]
