"""Mirror mode: extract records from a directory of saved HTML files."""

import glob
import logging
import os
from pathlib import Path

from playscrape.actions import MIRROR_ACTION, MirrorAction
from playscrape.models.base import init_db
from playscrape.schemas.options import ScrapeOptions
from playscrape.services.extraction import handle_extract
from playscrape.services.scrape_tracker import ScrapeSession, end_scrape, start_scrape
from playscrape.utils import maybe_await

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS = ["**/*.html"]


def find_files(patterns: list[str]) -> list[str]:
    """Expand glob patterns (``**`` recurses) into a sorted, de-duplicated file list."""
    files: set[str] = set()
    for pattern in patterns:
        files.update(path for path in glob.glob(pattern, recursive=True) if os.path.isfile(path))
    return sorted(files)


async def handle_mirror_action(action: MirrorAction, files: list[str], session: ScrapeSession) -> None:
    root_dir = os.getcwd()

    for file_name in files:
        logger.info(f"Action (mirror): {os.path.relpath(file_name, root_dir)}")

        url = file_name
        if action.get_url_from_file_name is not None:
            url = await maybe_await(action.get_url_from_file_name(file_name))

        content = Path(file_name).read_text(encoding="utf-8")
        if not content:
            logger.warning(f"Empty file: {file_name}")
            continue

        await handle_extract(
            action=action,
            content=content,
            url=url,
            action_name=MIRROR_ACTION,
            cookies="",
            session=session,
        )


async def scrape_mirrored_files(action: MirrorAction, options: ScrapeOptions) -> None:
    """Extract every mirrored file matched by the action's patterns."""
    db = init_db(options.database_url, debug=options.debug)
    session = ScrapeSession(db=db, options=options)

    logger.info("Finding mirrored files to extract from...")
    start_scrape(session)

    try:
        patterns = (action.test_files if options.test else action.html_files) or DEFAULT_PATTERNS
        files = find_files(patterns)

        if not files:
            raise FileNotFoundError("No files found to extract from.")

        logger.info(f"Found {len(files)} file(s) to extract from.")

        await handle_mirror_action(action, files, session)
    except Exception as e:
        logger.error(f"Failed to extract from mirror: {e}")
        end_scrape(session, "failed", str(e))
        raise
    else:
        end_scrape(session, "completed")
    finally:
        if session.http_client is not None:
            await session.http_client.aclose()
        db.close()
