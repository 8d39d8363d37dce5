"""Extraction and reconciliation.

``handle_extract`` runs a site's extract function over page content and
reconciles every extracted candidate with the content store:

    1. identity: explicit ``id``, else hash of the candidate url (or page url)
    2. status: created / noChanges / updated, against the previous payload
    3. persist: images first, then the record upsert, in one transaction
    4. rename: a re-extracted record whose id changed replaces its old row

Every candidate gets its own scrape-record row; a failing candidate is
recorded as failed and the next one proceeds.
"""

import logging
from typing import Any, Mapping

from sqlalchemy.orm import Session

from playscrape.actions import ExtractAction
from playscrape.exceptions import FatalError
from playscrape.models.base import init_db, utcnow
from playscrape.models.download import Download
from playscrape.models.record import Record
from playscrape.models.scrape_record import ScrapeRecord
from playscrape.schemas.options import ScrapeOptions
from playscrape.services.dom_query import DomQuery
from playscrape.services.downloads import download_images
from playscrape.services.scrape_tracker import (
    RecordStatus,
    ScrapeSession,
    end_record_scrape,
    end_scrape,
    start_record_scrape,
    start_scrape,
)
from playscrape.services.snapshots import check_image_snapshot, check_record_snapshot
from playscrape.utils import hash_value, json_diff, json_equal, maybe_await, to_json

logger = logging.getLogger(__name__)


def get_record_id(candidate: Mapping[str, Any], page_url: str) -> str:
    """Stable record identity: the extractor's id, else a hash of its url."""
    if candidate.get("id"):
        return str(candidate["id"])
    return hash_value(str(candidate.get("url") or page_url))


def compare_extracted(previous: Any, extracted: Any) -> tuple[RecordStatus, str | None]:
    """Change status of a payload against the previously stored one."""
    if previous is None:
        return "created", None
    if json_equal(previous, extracted):
        return "noChanges", None
    return "updated", json_diff(previous, extracted)


def _truncate(value: str | None, length: int = 50) -> str | None:
    if value is None or len(value) <= length:
        return value
    return f"{value[:length]}..."


def _rename_record(db: Session, old_id: str, new_id: str) -> None:
    """Move everything pointing at ``old_id`` to ``new_id`` and drop the old row."""
    db.query(Download).filter(Download.record_id == old_id).update(
        {Download.record_id: new_id}, synchronize_session=False
    )
    db.query(ScrapeRecord).filter(ScrapeRecord.record_id == old_id).update(
        {ScrapeRecord.record_id: new_id}, synchronize_session=False
    )
    db.query(Record).filter(Record.id == old_id).delete(synchronize_session="fetch")


async def _persist_record(
    action: ExtractAction,
    doc: DomQuery,
    record: dict[str, Any],
    previous: Record | None,
    old_record: Record | None,
    session: ScrapeSession,
) -> tuple[RecordStatus, str | None]:
    db = session.db
    status, status_text = compare_extracted(
        previous.extracted if previous is not None else None,
        record["extracted"],
    )

    try:
        # Images first, so a record is never saved when its images failed
        downloads = await download_images(action, doc, record, record["cookies"], session)

        now = utcnow()
        existing = db.get(Record, record["id"])

        if existing is None:
            db.add(Record(**record, created_at=now, updated_at=now, scraped_at=now))
        else:
            existing.action = record["action"]
            existing.url = record["url"]
            existing.cookies = record["cookies"]
            existing.extracted = record["extracted"]
            existing.scraped_at = now
            if status == "updated":
                existing.updated_at = now

        db.flush()

        for download in downloads:
            db.merge(download)
        db.flush()

        if old_record is not None and old_record.id != record["id"]:
            logger.info(f"Record ID changed. (old: {old_record.id}, new: {record['id']})")
            _rename_record(db, old_record.id, record["id"])

        db.commit()
    except Exception:
        db.rollback()
        raise

    if status == "updated":
        logger.warning(f"Data updated for {record['id']}\n{status_text}")

    logger.info(f"Saved record {record['id']} ({status}).")
    return status, status_text


def _dry_run_record(
    record: dict[str, Any],
    previous: Record | None,
    old_record: Record | None,
) -> tuple[RecordStatus, str | None]:
    status, status_text = compare_extracted(
        previous.extracted if previous is not None else None,
        record["extracted"],
    )

    if old_record is not None and old_record.id != record["id"]:
        logger.info(f"DRY RUN: Record ID changed. (old: {old_record.id}, new: {record['id']})")

    if previous is None:
        preview = {
            **record,
            "cookies": _truncate(record["cookies"]),
            "content": _truncate(record["content"]),
        }
        logger.info(f"DRY RUN: Record would be saved here.\n{to_json(preview)}")
    elif status == "updated":
        logger.info(f"DRY RUN: Data updated for {record['id']}\n{status_text}")
    else:
        logger.info(f"DRY RUN: No changes for {record['id']}")

    return status, status_text


async def _test_record(action: ExtractAction, doc: DomQuery, record: dict[str, Any], options: ScrapeOptions) -> None:
    check_record_snapshot(record["id"], record["extracted"], options)

    if action.download_images is not None:
        urls = await maybe_await(action.download_images(doc, record))
        check_image_snapshot(record["id"], urls or [], options)


async def _handle_candidate(
    action: ExtractAction,
    doc: DomQuery,
    candidate: Any,
    url: str,
    action_name: str,
    cookies: str | None,
    session: ScrapeSession,
    old_record: Record | None,
) -> bool:
    options = session.options

    if not isinstance(candidate, Mapping):
        if session.record_scrape_id is None:
            start_record_scrape(session)
        logger.error(f"Extracted record must be a mapping, got {type(candidate).__name__}")
        end_record_scrape(session, "failed", "Extracted record must be a mapping.")
        return False

    try:
        record = {
            "id": get_record_id(candidate, url),
            "source": options.source,
            "url": str(candidate.get("url") or url),
            "action": action_name,
            "content": doc.content,
            "cookies": cookies,
            "extracted": dict(candidate),
        }
    except Exception as e:
        if session.record_scrape_id is None:
            start_record_scrape(session)
        logger.error(f"Invalid record extracted from {url}: {e}")
        end_record_scrape(session, "failed", str(e))
        return False

    session.current_record_id = record["id"]

    if session.record_scrape_id is None:
        start_record_scrape(session)

    try:
        previous = old_record if old_record is not None else session.db.get(Record, record["id"])

        if options.test:
            await _test_record(action, doc, record, options)
            return True

        if options.dry_run:
            await download_images(action, doc, record, cookies, session)
            status, status_text = _dry_run_record(record, previous, old_record)
        else:
            status, status_text = await _persist_record(action, doc, record, previous, old_record, session)
    except FatalError:
        raise
    except Exception as e:
        logger.error(f"Failed to save record {record['id']} from {url}: {e}")
        end_record_scrape(session, "failed", str(e))
        return False

    end_record_scrape(session, status, status_text)
    return True


async def handle_extract(
    action: ExtractAction,
    content: str,
    url: str,
    action_name: str,
    cookies: str | None,
    session: ScrapeSession,
    old_record: Record | None = None,
) -> bool:
    """Extract records from ``content`` and reconcile them with the store.

    Returns False when nothing was extracted or any candidate failed.
    """
    if action is None or action.extract is None:
        return False

    logger.info("Extracting data...")

    session.current_record_id = old_record.id if old_record is not None else None
    start_record_scrape(session)

    doc = DomQuery(content, url=url)

    try:
        extracted = await maybe_await(action.extract(doc))
    except FatalError:
        raise
    except Exception as e:
        logger.error(f"Failed to extract data from {url}: {e}")
        end_record_scrape(session, "failed", str(e))
        return False

    if not extracted:
        logger.warning("No data extracted.")
        end_record_scrape(session, "failed", "No data extracted.")
        return False

    candidates = list(extracted) if isinstance(extracted, (list, tuple)) else [extracted]
    logger.info("Extracted 1 record." if len(candidates) == 1 else f"Extracted {len(candidates)} records.")

    # Several candidates from one stored page are matched by id, never renamed
    candidate_old_record = old_record if len(candidates) == 1 else None

    success = True
    for candidate in candidates:
        if not await _handle_candidate(action, doc, candidate, url, action_name, cookies, session, candidate_old_record):
            success = False

    return success


async def re_extract_data(actions: Mapping[str, ExtractAction], options: ScrapeOptions) -> int:
    """Re-run extraction over every stored record of the source.

    Returns the number of records re-extracted.
    """
    db = init_db(options.database_url, debug=options.debug)
    session = ScrapeSession(db=db, options=options)

    logger.info("Re-extracting records...")
    start_scrape(session)

    num_extracted = 0
    try:
        results = db.query(Record).filter(Record.source == options.source).all()

        for result in results:
            action = actions.get(result.action)

            if action is None:
                logger.warning(f"No action found for {result.action}. Skipping.")
                continue

            if not result.content:
                logger.warning(f"No contents found for {result.id}. Skipping.")
                continue

            await handle_extract(
                action=action,
                content=result.content,
                url=result.url,
                action_name=result.action,
                cookies=result.cookies or "",
                session=session,
                old_record=result,
            )
            num_extracted += 1
    except Exception as e:
        end_scrape(session, "failed", str(e))
        raise
    else:
        end_scrape(session, "completed")
    finally:
        if session.http_client is not None:
            await session.http_client.aclose()
        db.close()

    logger.info("Re-extracted 1 record." if num_extracted == 1 else f"Re-extracted {num_extracted} records.")
    return num_extracted
