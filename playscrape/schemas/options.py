"""Pydantic schemas for per-run scrape options."""

from typing import Literal

from pydantic import BaseModel, ConfigDict


class S3Options(BaseModel):
    """Object storage target for downloaded images."""

    model_config = ConfigDict(extra="forbid")

    bucket: str
    path_prefix: str | None = None
    acl: str | None = None

    def key_for(self, file_name: str) -> str:
        if self.path_prefix:
            return f"{self.path_prefix.rstrip('/')}/{file_name}"
        return file_name


class ScrapeOptions(BaseModel):
    """Resolved options for one invocation (action file + CLI flags + settings)."""

    model_config = ConfigDict(extra="forbid")

    source: str = "default"
    database_url: str

    # Modes
    debug: bool = False
    dry_run: bool = False
    test: bool = False
    overwrite: bool = False

    # Browser
    headless: bool = True
    timeout: int = 60000
    delay: int = 1000
    retries: int = 3

    # Images
    format: str = "jpg"
    download_to: Literal["local", "s3"] = "local"
    image_dir: str | None = None
    s3: S3Options | None = None

    # Output
    export_file: str | None = None
    test_dir: str | None = None
