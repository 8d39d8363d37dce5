"""Export stored records as a flat JSON array."""

import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from playscrape.models.base import init_db
from playscrape.models.record import Record
from playscrape.schemas.options import ScrapeOptions

logger = logging.getLogger(__name__)


def flatten_records(db: Session) -> list[dict[str, Any]]:
    """``{id, url, **extracted}`` for every stored record."""
    results = []
    for record in db.query(Record).order_by(Record.created_at, Record.id).all():
        results.append({
            "id": record.id,
            "url": record.url,
            **(record.extracted or {}),
        })
    return results


def export_records(options: ScrapeOptions) -> list[dict[str, Any]]:
    """Write every record to ``options.export_file``, or stdout when unset."""
    db = init_db(options.database_url, debug=options.debug)
    logger.info("Exporting records...")

    try:
        results = flatten_records(db)
    finally:
        db.close()

    result_string = json.dumps(results, ensure_ascii=False, default=str)

    if options.export_file:
        Path(options.export_file).write_text(result_string, encoding="utf-8")
    else:
        print(result_string)

    logger.info(f"Exported {len(results)} record(s).")
    return results
