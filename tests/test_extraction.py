import httpx
import pytest

from conftest import ImageServer, jpeg_response
from playscrape.actions import ExtractOnlyAction
from playscrape.models.download import Download
from playscrape.models.record import Record
from playscrape.models.scrape import Scrape
from playscrape.models.scrape_record import ScrapeRecord
from playscrape.services.extraction import compare_extracted, get_record_id, handle_extract, re_extract_data
from playscrape.services.scrape_tracker import ScrapeSession, end_scrape, start_scrape
from playscrape.utils import hash_value

PAGE_URL = "https://example.com/items/1"
CONTENT = "<html><body><h1>Widget</h1><span class='price'>10</span></body></html>"


def extract_widget(doc):
    return {"title": doc.query_text("//h1"), "price": doc.query_text("//span[@class='price']")}


def statuses(db):
    return [row.status for row in db.query(ScrapeRecord).order_by(ScrapeRecord.id).all()]


class TestIdentity:

    def test_id_is_hash_of_candidate_url(self):
        assert get_record_id({"url": "https://example.com/a"}, PAGE_URL) == hash_value("https://example.com/a")

    def test_falls_back_to_page_url(self):
        assert get_record_id({"title": "x"}, PAGE_URL) == hash_value(PAGE_URL)
        assert get_record_id({"title": "y"}, PAGE_URL) == get_record_id({"title": "z"}, PAGE_URL)

    def test_explicit_id_wins(self):
        assert get_record_id({"id": "sku-1", "url": "https://example.com/a"}, PAGE_URL) == "sku-1"


class TestCompareExtracted:

    def test_created_without_previous(self):
        assert compare_extracted(None, {"a": 1}) == ("created", None)

    def test_key_order_does_not_matter(self):
        assert compare_extracted({"a": 1, "b": 2}, {"b": 2, "a": 1}) == ("noChanges", None)

    def test_updated_carries_diff(self):
        status, text = compare_extracted({"price": "10"}, {"price": "12"})
        assert status == "updated"
        assert '-  "price": "10"' in text
        assert '+  "price": "12"' in text


class TestHandleExtract:

    @pytest.mark.asyncio
    async def test_creates_record(self, session, db):
        start_scrape(session)
        ok = await handle_extract(ExtractOnlyAction(extract=extract_widget), CONTENT, PAGE_URL, "detail", "a=1", session)
        end_scrape(session, "completed")

        assert ok is True
        record = db.get(Record, hash_value(PAGE_URL))
        assert record.extracted == {"title": "Widget", "price": "10"}
        assert record.source == "example"
        assert record.action == "detail"
        assert record.cookies == "a=1"
        assert record.content == CONTENT
        assert statuses(db) == ["created"]
        assert db.query(ScrapeRecord).one().record_id == record.id

    @pytest.mark.asyncio
    async def test_rescrape_is_idempotent(self, session, db):
        action = ExtractOnlyAction(extract=extract_widget)
        start_scrape(session)
        await handle_extract(action, CONTENT, PAGE_URL, "detail", "", session)
        first_updated_at = db.get(Record, hash_value(PAGE_URL)).updated_at

        await handle_extract(action, CONTENT, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")

        record = db.get(Record, hash_value(PAGE_URL))
        assert statuses(db) == ["created", "noChanges"]
        assert record.updated_at == first_updated_at
        assert db.query(Record).count() == 1

    @pytest.mark.asyncio
    async def test_changed_payload_is_updated(self, session, db):
        start_scrape(session)
        await handle_extract(ExtractOnlyAction(extract=extract_widget), CONTENT, PAGE_URL, "detail", "", session)
        changed = CONTENT.replace(">10<", ">12<")
        await handle_extract(ExtractOnlyAction(extract=extract_widget), changed, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")

        rows = db.query(ScrapeRecord).order_by(ScrapeRecord.id).all()
        assert [row.status for row in rows] == ["created", "updated"]
        assert '"price": "12"' in rows[1].status_text
        assert db.get(Record, hash_value(PAGE_URL)).extracted["price"] == "12"

    @pytest.mark.asyncio
    async def test_empty_result_is_failure(self, session, db):
        start_scrape(session)
        ok = await handle_extract(ExtractOnlyAction(extract=lambda doc: None), CONTENT, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")

        assert ok is False
        row = db.query(ScrapeRecord).one()
        assert row.status == "failed"
        assert row.status_text == "No data extracted."
        assert db.query(Record).count() == 0

    @pytest.mark.asyncio
    async def test_extract_exception_is_recorded(self, session, db):
        def broken(doc):
            raise RuntimeError("selector changed")

        start_scrape(session)
        ok = await handle_extract(ExtractOnlyAction(extract=broken), CONTENT, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")

        assert ok is False
        row = db.query(ScrapeRecord).one()
        assert row.status == "failed"
        assert row.status_text == "selector changed"
        assert db.query(Scrape).one().status == "completed"

    @pytest.mark.asyncio
    async def test_async_extract(self, session, db):
        async def extract(doc):
            return [{"url": "https://example.com/a"}, {"url": "https://example.com/b"}]

        start_scrape(session)
        ok = await handle_extract(ExtractOnlyAction(extract=extract), CONTENT, PAGE_URL, "list", "", session)
        end_scrape(session, "completed")

        assert ok is True
        assert {r.url for r in db.query(Record).all()} == {"https://example.com/a", "https://example.com/b"}
        assert statuses(db) == ["created", "created"]

    @pytest.mark.asyncio
    async def test_scrape_counters(self, session, db):
        start_scrape(session)
        await handle_extract(
            ExtractOnlyAction(extract=lambda doc: [{"id": "same", "v": 1}, {"id": "changed", "v": 1}]),
            CONTENT, PAGE_URL, "list", "", session,
        )
        end_scrape(session, "completed")

        candidates = [
            {"id": "new-1", "v": 1},
            {"id": "new-2", "v": 1},
            {"id": "same", "v": 1},
            {"id": "changed", "v": 2},
            "not a record",
        ]
        start_scrape(session)
        ok = await handle_extract(ExtractOnlyAction(extract=lambda doc: candidates), CONTENT, PAGE_URL, "list", "", session)
        end_scrape(session, "completed")

        assert ok is False
        scrape = db.query(Scrape).order_by(Scrape.id.desc()).first()
        assert scrape.status == "completed"
        assert scrape.total_records == 4
        assert scrape.created_records == 2
        assert scrape.no_changes_records == 1
        assert scrape.updated_records == 1
        assert scrape.failed_records == 1
        assert db.query(ScrapeRecord).filter(ScrapeRecord.scrape_id == scrape.id).count() == 5

    @pytest.mark.asyncio
    async def test_rename_replaces_old_row(self, session, db):
        start_scrape(session)
        await handle_extract(ExtractOnlyAction(extract=lambda doc: {"id": "old-id", "title": "Widget"}),
                             CONTENT, PAGE_URL, "detail", "", session)
        db.add(Download(id="img-1", record_id="old-id", width=1, height=1, file_name="img-1.jpg",
                        orig_url="https://example.com/1.jpg"))
        db.commit()

        old_record = db.get(Record, "old-id")
        ok = await handle_extract(ExtractOnlyAction(extract=lambda doc: {"id": "new-id", "title": "Widget"}),
                                  old_record.content, old_record.url, old_record.action, "", session,
                                  old_record=old_record)
        end_scrape(session, "completed")

        assert ok is True
        assert db.get(Record, "old-id") is None
        assert [r.id for r in db.query(Record).all()] == ["new-id"]
        assert db.get(Download, "img-1").record_id == "new-id"
        assert db.query(ScrapeRecord).filter(ScrapeRecord.record_id == "old-id").count() == 0
        assert statuses(db)[-1] == "updated"

    @pytest.mark.asyncio
    async def test_failed_image_leaves_no_record(self, session, db, image_server):
        session.http_client = image_server.client()
        action = ExtractOnlyAction(
            extract=extract_widget,
            download_images=lambda doc, record: ["https://img.example.com/missing.jpg"],
        )

        start_scrape(session)
        ok = await handle_extract(action, CONTENT, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")
        await session.http_client.aclose()

        assert ok is False
        assert db.get(Record, hash_value(PAGE_URL)) is None
        assert db.query(Download).count() == 0
        row = db.query(ScrapeRecord).one()
        assert row.status == "failed"
        assert "404" in row.status_text
        assert row.record_id is None

    @pytest.mark.asyncio
    async def test_images_saved_with_record(self, session, db, tmp_path):
        server = ImageServer({"https://img.example.com/a.jpg": jpeg_response(width=30, height=20)})
        session.http_client = server.client()
        action = ExtractOnlyAction(
            extract=extract_widget,
            download_images=lambda doc, record: ["https://img.example.com/a.jpg", "https://img.example.com/a.jpg"],
        )

        start_scrape(session)
        ok = await handle_extract(action, CONTENT, PAGE_URL, "detail", "sid=1", session)
        end_scrape(session, "completed")
        await session.http_client.aclose()

        assert ok is True
        download = db.get(Download, hash_value("https://img.example.com/a.jpg"))
        assert download.record_id == hash_value(PAGE_URL)
        assert (download.width, download.height) == (30, 20)
        assert download.orig_cookies == "sid=1"
        assert (tmp_path / "images" / download.file_name).exists()
        assert len(server.requests) == 1
        assert server.requests[0].headers["cookie"] == "sid=1"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, db, options, image_server):
        session = ScrapeSession(db=db, options=options.model_copy(update={"dry_run": True}))
        session.http_client = image_server.client()
        action = ExtractOnlyAction(
            extract=extract_widget,
            download_images=lambda doc, record: ["https://img.example.com/a.jpg"],
        )

        start_scrape(session)
        ok = await handle_extract(action, CONTENT, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")
        await session.http_client.aclose()

        assert ok is True
        for model in (Record, Download, Scrape, ScrapeRecord):
            assert db.query(model).count() == 0
        assert image_server.requests == []

    @pytest.mark.asyncio
    async def test_non_image_response_fails_record(self, session, db):
        server = ImageServer({
            "https://img.example.com/a.jpg": httpx.Response(200, headers={"content-type": "text/html"}, text="<html/>"),
        })
        session.http_client = server.client()
        action = ExtractOnlyAction(
            extract=extract_widget,
            download_images=lambda doc, record: ["https://img.example.com/a.jpg"],
        )

        start_scrape(session)
        ok = await handle_extract(action, CONTENT, PAGE_URL, "detail", "", session)
        end_scrape(session, "completed")
        await session.http_client.aclose()

        assert ok is False
        assert db.query(Record).count() == 0
        assert "Content-Type: text/html" in db.query(ScrapeRecord).one().status_text


class TestReExtract:

    @pytest.mark.asyncio
    async def test_re_extracts_stored_content(self, session, db, options):
        start_scrape(session)
        await handle_extract(ExtractOnlyAction(extract=extract_widget), CONTENT, PAGE_URL, "detail", "", session)
        await handle_extract(ExtractOnlyAction(extract=lambda doc: {"url": "https://example.com/gone"}),
                             CONTENT, PAGE_URL, "retired", "", session)
        end_scrape(session, "completed")

        def extract_with_currency(doc):
            return {**extract_widget(doc), "currency": "EUR"}

        count = await re_extract_data({"detail": ExtractOnlyAction(extract=extract_with_currency)}, options)

        db.expire_all()
        assert count == 1
        record = db.get(Record, hash_value(PAGE_URL))
        assert record.extracted["currency"] == "EUR"
        scrape = db.query(Scrape).order_by(Scrape.id.desc()).first()
        assert scrape.status == "completed"
        assert (scrape.total_records, scrape.updated_records) == (1, 1)

    @pytest.mark.asyncio
    async def test_multi_record_page_stays_unchanged(self, session, db, options):
        def extract_pair(doc):
            return [{"id": "a", "title": "A"}, {"id": "b", "title": "B"}]

        start_scrape(session)
        await handle_extract(ExtractOnlyAction(extract=extract_pair), CONTENT, PAGE_URL, "list", "", session)
        end_scrape(session, "completed")
        before = {r.id: r.updated_at for r in db.query(Record).all()}

        count = await re_extract_data({"list": ExtractOnlyAction(extract=extract_pair)}, options)

        db.expire_all()
        assert count == 2
        assert {r.id: r.updated_at for r in db.query(Record).all()} == before
        assert statuses(db) == ["created", "created", "noChanges", "noChanges", "noChanges", "noChanges"]
        scrape = db.query(Scrape).order_by(Scrape.id.desc()).first()
        assert (scrape.no_changes_records, scrape.updated_records) == (4, 0)


class TestCandidateErrors:

    @pytest.mark.asyncio
    async def test_non_string_url_does_not_stop_other_candidates(self, session, db):
        start_scrape(session)
        ok = await handle_extract(
            ExtractOnlyAction(extract=lambda doc: [{"url": 42}, {"url": "https://example.com/ok"}]),
            CONTENT, PAGE_URL, "list", "", session,
        )
        end_scrape(session, "completed")

        assert ok is True
        assert statuses(db) == ["created", "created"]
        assert db.get(Record, hash_value("42")).url == "42"
        assert db.get(Record, hash_value("https://example.com/ok")) is not None

    @pytest.mark.asyncio
    async def test_unreadable_candidate_fails_only_itself(self, session, db):
        class BrokenRecord(dict):
            def get(self, key, default=None):
                raise KeyError(key)

        start_scrape(session)
        ok = await handle_extract(
            ExtractOnlyAction(extract=lambda doc: [BrokenRecord(), {"url": "https://example.com/ok"}]),
            CONTENT, PAGE_URL, "list", "", session,
        )
        end_scrape(session, "completed")

        assert ok is False
        assert statuses(db) == ["failed", "created"]
        assert db.query(Record).count() == 1
