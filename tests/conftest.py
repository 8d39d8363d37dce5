import io

import httpx
import pytest
from PIL import Image

from playscrape.models.base import init_db
from playscrape.schemas.options import ScrapeOptions
from playscrape.services.scrape_tracker import ScrapeSession


def make_jpeg(width: int = 100, height: int = 200, orientation: int | None = None) -> bytes:
    """Small JPEG, optionally tagged with an EXIF orientation."""
    image = Image.new("RGB", (width, height), color=(200, 30, 30))
    buffer = io.BytesIO()
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        image.save(buffer, format="JPEG", exif=exif)
    else:
        image.save(buffer, format="JPEG")
    return buffer.getvalue()


class ImageServer:
    """httpx mock transport serving a fixed set of urls, counting requests."""

    def __init__(self, routes: dict[str, httpx.Response] | None = None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get(str(request.url))
        if response is None:
            return httpx.Response(404)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def jpeg_response(**kwargs) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "image/jpeg"}, content=make_jpeg(**kwargs))


@pytest.fixture
def options(tmp_path) -> ScrapeOptions:
    return ScrapeOptions(
        source="example",
        database_url=f"sqlite:///{tmp_path / 'playscrape.db'}",
        delay=0,
        retries=3,
        image_dir=str(tmp_path / "images"),
        test_dir=str(tmp_path / "snapshots"),
        export_file=str(tmp_path / "playscrape.json"),
    )


@pytest.fixture
def db(options):
    session = init_db(options.database_url)
    yield session
    session.close()


@pytest.fixture
def session(db, options) -> ScrapeSession:
    return ScrapeSession(db=db, options=options)


@pytest.fixture
def image_server() -> ImageServer:
    return ImageServer()
