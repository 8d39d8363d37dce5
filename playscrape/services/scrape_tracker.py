"""Scrape run tracking: one scrape row per run, one scrape-record row per record.

Everything is a no-op in test mode. In dry-run mode ids are faked and the
outcome is only logged.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

import httpx
from sqlalchemy.orm import Session

from playscrape.exceptions import ScrapeStateError
from playscrape.models.base import utcnow
from playscrape.models.record import Record
from playscrape.models.scrape import Scrape
from playscrape.models.scrape_record import ScrapeRecord
from playscrape.schemas.options import ScrapeOptions
from playscrape.services.storage import LocalImageStorage, S3ImageStorage, get_image_storage

logger = logging.getLogger(__name__)

DRY_RUN_ID = 1

RecordStatus = Literal["created", "noChanges", "updated", "failed"]
ScrapeStatus = Literal["completed", "failed"]


@dataclass
class ScrapeStats:
    total: int = 0
    created: int = 0
    no_changes: int = 0
    updated: int = 0
    failed: int = 0

    def add(self, status: RecordStatus) -> None:
        if status == "created":
            self.created += 1
        elif status == "noChanges":
            self.no_changes += 1
        elif status == "updated":
            self.updated += 1
        else:
            self.failed += 1

        if status != "failed":
            self.total += 1


@dataclass
class ScrapeSession:
    """Mutable state of one run, passed down through traversal and extraction."""

    db: Session
    options: ScrapeOptions
    scrape_id: int | None = None
    record_scrape_id: int | None = None
    current_record_id: str | None = None
    stats: ScrapeStats | None = None
    storage: LocalImageStorage | S3ImageStorage | None = None
    http_client: httpx.AsyncClient | None = None

    def image_storage(self) -> LocalImageStorage | S3ImageStorage:
        if self.storage is None:
            self.storage = get_image_storage(self.options)
        return self.storage


def start_scrape(session: ScrapeSession) -> None:
    options = session.options
    if options.test:
        return

    if session.scrape_id is not None:
        raise ScrapeStateError("Scrape already in progress.")

    session.stats = ScrapeStats()

    if options.dry_run:
        logger.info(f"DRY RUN: Starting scrape for source '{options.source}'")
        session.scrape_id = DRY_RUN_ID
        return

    scrape = Scrape(source=options.source, status="running", started_at=utcnow())
    session.db.add(scrape)
    session.db.commit()

    if scrape.id is None:
        raise ScrapeStateError("Failed to start scrape.")

    session.scrape_id = scrape.id
    logger.info(f"Started scrape {scrape.id} for source '{options.source}'")


def end_scrape(session: ScrapeSession, status: ScrapeStatus, status_text: str | None = None) -> None:
    options = session.options
    if options.test:
        return

    if session.scrape_id is None or session.stats is None:
        raise ScrapeStateError("No current scrape to end.")

    stats = session.stats

    if options.dry_run:
        logger.info(f"DRY RUN: Ending scrape, status: {status} {status_text or ''}".rstrip())
        logger.info(f"DRY RUN: {stats}")
        session.scrape_id = None
        session.stats = None
        return

    scrape = session.db.get(Scrape, session.scrape_id)
    if scrape is None:
        raise ScrapeStateError("Failed to end scrape.")

    scrape.status = status
    scrape.status_text = status_text[:2000] if status_text else None
    scrape.total_records = stats.total
    scrape.created_records = stats.created
    scrape.no_changes_records = stats.no_changes
    scrape.updated_records = stats.updated
    scrape.failed_records = stats.failed
    scrape.ended_at = utcnow()
    session.db.commit()

    logger.info(
        f"Scrape {scrape.id} {status}: {stats.total} record(s) "
        f"({stats.created} created, {stats.no_changes} unchanged, "
        f"{stats.updated} updated, {stats.failed} failed)"
    )

    session.scrape_id = None
    session.stats = None


def start_record_scrape(session: ScrapeSession) -> None:
    options = session.options
    if options.test:
        return

    if session.scrape_id is None:
        raise ScrapeStateError("Scrape has not started yet.")

    if options.dry_run:
        session.record_scrape_id = DRY_RUN_ID
        return

    # Only reference records that already exist; new ones are linked on close
    record_id = session.current_record_id
    if record_id is not None and session.db.get(Record, record_id) is None:
        record_id = None

    scrape_record = ScrapeRecord(
        scrape_id=session.scrape_id,
        record_id=record_id,
        status="running",
        started_at=utcnow(),
    )
    session.db.add(scrape_record)
    session.db.commit()

    if scrape_record.id is None:
        raise ScrapeStateError("Failed to start record scrape.")

    session.record_scrape_id = scrape_record.id


def end_record_scrape(session: ScrapeSession, status: RecordStatus, status_text: str | None = None) -> None:
    options = session.options
    if options.test:
        return

    if session.record_scrape_id is None:
        raise ScrapeStateError("No current record scrape to end.")

    if session.stats is not None:
        session.stats.add(status)

    if options.dry_run:
        logger.info(f"DRY RUN: Record scrape ended: {status} {status_text or ''}".rstrip())
        session.record_scrape_id = None
        return

    scrape_record = session.db.get(ScrapeRecord, session.record_scrape_id)
    if scrape_record is None:
        raise ScrapeStateError("Failed to end record scrape.")

    record_id = session.current_record_id
    if record_id is not None and session.db.get(Record, record_id) is None:
        record_id = None

    scrape_record.record_id = record_id
    scrape_record.status = status
    scrape_record.status_text = status_text
    scrape_record.ended_at = utcnow()
    session.db.commit()

    session.record_scrape_id = None
