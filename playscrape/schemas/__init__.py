"""Pydantic schemas package."""

from playscrape.schemas.options import S3Options, ScrapeOptions

__all__ = [
    "S3Options",
    "ScrapeOptions",
]
