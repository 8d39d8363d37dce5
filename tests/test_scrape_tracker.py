import pytest

from playscrape.exceptions import ScrapeStateError
from playscrape.models.record import Record
from playscrape.models.scrape import Scrape
from playscrape.models.scrape_record import ScrapeRecord
from playscrape.services.scrape_tracker import (
    DRY_RUN_ID,
    ScrapeSession,
    ScrapeStats,
    end_record_scrape,
    end_scrape,
    start_record_scrape,
    start_scrape,
)


def test_stats_count_failures_outside_total():
    stats = ScrapeStats()
    for status in ("created", "created", "noChanges", "updated", "failed"):
        stats.add(status)
    assert stats == ScrapeStats(total=4, created=2, no_changes=1, updated=1, failed=1)


def test_scrape_lifecycle(session, db):
    start_scrape(session)
    assert session.scrape_id is not None
    assert db.get(Scrape, session.scrape_id).status == "running"

    start_record_scrape(session)
    end_record_scrape(session, "failed", "boom")
    scrape_id = session.scrape_id
    end_scrape(session, "failed", "gave up")

    scrape = db.get(Scrape, scrape_id)
    assert scrape.status == "failed"
    assert scrape.status_text == "gave up"
    assert scrape.failed_records == 1
    assert scrape.total_records == 0
    assert scrape.ended_at is not None
    assert session.scrape_id is None

    row = db.query(ScrapeRecord).one()
    assert (row.status, row.status_text, row.record_id) == ("failed", "boom", None)
    assert row.ended_at is not None


def test_record_scrape_links_existing_record(session, db):
    db.add(Record(id="r1", source="example", url="https://example.com", action="start",
                  content="<html/>", extracted={}))
    db.commit()

    start_scrape(session)
    session.current_record_id = "r1"
    start_record_scrape(session)

    assert db.get(ScrapeRecord, session.record_scrape_id).record_id == "r1"


def test_start_twice_raises(session):
    start_scrape(session)
    with pytest.raises(ScrapeStateError):
        start_scrape(session)


def test_end_without_start_raises(session):
    with pytest.raises(ScrapeStateError):
        end_scrape(session, "completed")


def test_record_scrape_requires_scrape(session):
    with pytest.raises(ScrapeStateError):
        start_record_scrape(session)


def test_end_record_scrape_without_start_raises(session):
    start_scrape(session)
    with pytest.raises(ScrapeStateError):
        end_record_scrape(session, "created")


def test_test_mode_is_a_no_op(db, options):
    session = ScrapeSession(db=db, options=options.model_copy(update={"test": True}))

    start_scrape(session)
    start_record_scrape(session)
    end_record_scrape(session, "created")
    end_scrape(session, "completed")

    assert session.scrape_id is None
    assert db.query(Scrape).count() == 0
    assert db.query(ScrapeRecord).count() == 0


def test_dry_run_fakes_ids(db, options):
    session = ScrapeSession(db=db, options=options.model_copy(update={"dry_run": True}))

    start_scrape(session)
    assert session.scrape_id == DRY_RUN_ID
    start_record_scrape(session)
    assert session.record_scrape_id == DRY_RUN_ID
    end_record_scrape(session, "created")
    assert session.stats.created == 1
    end_scrape(session, "completed")

    assert db.query(Scrape).count() == 0
    assert db.query(ScrapeRecord).count() == 0
