"""Browser traversal engine.

Walks the action graph from ``start``. Each action invocation runs:

    init (once per traversal) -> extract | wait for load
        -> visit | visit_all -> next (loops on the same action)

Navigation steps are retried a bounded number of times. What happens once
retries run out depends on the step:

    init on the root action   abort the run
    init elsewhere            skip the action
    link click                skip that link
    next                      stop paginating
    undo                      abort the run (page state is unknown)
    visit callback raising    skip the branch
"""

import logging
from typing import Any
from urllib.parse import urljoin

from playscrape.actions import (
    ROOT_ACTION,
    BrowserAction,
    TraversalMode,
    VisitAction,
    VisitAllAction,
)
from playscrape.exceptions import ActionConfigError, FatalError, NavigationError
from playscrape.models.base import init_db
from playscrape.models.record import Record
from playscrape.schemas.options import ScrapeOptions
from playscrape.scrapers.browser import get_browser, get_page_contents
from playscrape.services.extraction import handle_extract
from playscrape.services.scrape_tracker import ScrapeSession, end_scrape, start_scrape
from playscrape.utils import hash_value, maybe_await, wait, with_retries

logger = logging.getLogger(__name__)


class BrowserTraversal:
    """Recursive traversal over one page, with its own one-time init state."""

    def __init__(self, actions: dict[str, BrowserAction], page, session: ScrapeSession):
        self.actions = actions
        self.page = page
        self.session = session
        self.initialized: set[str] = set()

    @property
    def delay(self) -> int:
        return self.session.options.delay

    @property
    def retries(self) -> int:
        return self.session.options.retries

    async def _retry(self, operation, label: str) -> Any:
        return await with_retries(operation, retries=self.retries, delay=self.delay, label=label)

    def get_action(self, action_name: str) -> BrowserAction:
        action = self.actions.get(action_name)
        if action is None:
            raise ActionConfigError(f"Unknown action: {action_name}")
        return action

    async def run(self) -> None:
        await self.handle_action(ROOT_ACTION)

    async def handle_action(self, action_name: str) -> None:
        action = self.get_action(action_name)
        logger.info(f"Action ({action_name})")

        while True:
            if not await self._init(action_name, action):
                return

            if action.extract is not None:
                await self._extract(action_name, action)
            else:
                await self.page.wait_for_load_state("domcontentloaded")

            if action.mode is TraversalMode.VISIT:
                await self._visit(action_name, action)
            elif action.mode is TraversalMode.VISIT_ALL:
                await self._visit_all(action_name, action)

            if action.next is None or not await self._next(action_name, action):
                return

    async def _init(self, action_name: str, action: BrowserAction) -> bool:
        if action.init is None or action_name in self.initialized:
            return True

        logger.info("Initializing...")

        async def run_init():
            if isinstance(action.init, str):
                await self.page.goto(action.init)
            else:
                await maybe_await(action.init(page=self.page))

        try:
            await self._retry(run_init, f"Init of {action_name}")
        except FatalError:
            raise
        except Exception as e:
            if action_name == ROOT_ACTION:
                raise
            logger.error(f"Failed to initialize {action_name}, skipping: {e}")
            return False

        self.initialized.add(action_name)
        logger.info("Initialized.")
        return True

    async def _extract(self, action_name: str, action: BrowserAction) -> None:
        content, cookies = await get_page_contents(self.page)
        if not content:
            return

        await handle_extract(
            action=action,
            content=content,
            url=self.page.url,
            action_name=action_name,
            cookies=cookies,
            session=self.session,
        )

    async def _undo(self, action_name: str, action: BrowserAction) -> None:
        """Return to the page ``action`` was on before it descended."""
        if action.undo_visit is not None:
            operation = lambda: action.undo_visit(page=self.page)  # noqa: E731
        elif action_name != ROOT_ACTION and action.mode is TraversalMode.VISIT:
            operation = self.page.go_back
        else:
            return

        try:
            await self._retry(operation, f"Undo of {action_name}")
        except FatalError:
            raise
        except Exception as e:
            raise NavigationError(f"Failed to go back from {action_name}: {e}") from e

    async def _visit(self, action_name: str, action: VisitAction) -> None:
        async def descend(next_action: str) -> None:
            await wait(self.delay)
            logger.info("Visited.")
            await self.handle_action(next_action)
            await self._undo(action_name, action)

        logger.info("Visiting...")
        try:
            await maybe_await(action.visit(page=self.page, action=descend))
        except FatalError:
            raise
        except Exception as e:
            logger.error(f"Failed to visit from {action_name}: {e}")

    async def _should_visit(self, action: VisitAllAction, href: str) -> bool:
        if action.should_revisit is None:
            return True

        absolute_href = urljoin(self.page.url, href)
        record = self.session.db.get(Record, hash_value(absolute_href))
        if record is None:
            return True

        return bool(await maybe_await(action.should_revisit(page=self.page, href=absolute_href, record=record)))

    async def _visit_all(self, action_name: str, action: VisitAllAction) -> None:
        try:
            result = await self._retry(lambda: action.visit_all(page=self.page), f"Visit all of {action_name}")
            next_action, links = result
        except FatalError:
            raise
        except Exception as e:
            logger.error(f"Failed to list links for {action_name}: {e}")
            return

        self.get_action(next_action)

        # The locator is counted again before every click, so lists that
        # shrink or grow while being visited are handled. Links with an href
        # are visited once each; the cursor only moves past visited links.
        visited: set[str] = set()
        index = 0

        while True:
            try:
                count = await links.count()
            except Exception as e:
                logger.error(f"Failed to count links for {action_name}: {e}")
                return

            if index >= count:
                return

            link = links.nth(index)

            try:
                href = await link.get_attribute("href")
            except Exception as e:
                logger.error(f"Failed to read link {index} of {action_name}, skipping: {e}")
                index += 1
                continue

            if href is None:
                index += 1
            elif href in visited:
                index += 1
                continue
            else:
                visited.add(href)

            try:
                if href is not None and not await self._should_visit(action, href):
                    logger.info(f"Skipping already scraped link: {href}")
                    continue

                logger.info("Visiting...")
                await wait(self.delay)
                await self._retry(link.click, f"Click on {href or index}")
            except FatalError:
                raise
            except Exception as e:
                logger.error(f"Failed to visit {href or index}: {e}")
                continue

            logger.info("Visited.")

            try:
                await self.handle_action(next_action)
            except FatalError:
                raise
            except Exception as e:
                logger.error(f"Failed to visit {href or index}: {e}")

            if action.undo_visit is not None:
                await self._undo(action_name, action)

    async def _next(self, action_name: str, action: BrowserAction) -> bool:
        """Move to the next page. Returns True when the action should run again."""
        logger.info("Next...")
        try:
            await wait(self.delay)
            result = await self._retry(lambda: action.next(page=self.page), f"Next of {action_name}")

            if isinstance(result, bool) or result is None:
                if not result:
                    logger.info("No more results.")
                    return False
            else:
                if await result.count() == 0:
                    logger.info("No more results.")
                    return False
                await self._retry(result.click, f"Next click of {action_name}")
        except FatalError:
            raise
        except Exception as e:
            logger.error(f"Failed to go to next page of {action_name}: {e}")
            return False

        logger.info("Next page.")
        return True

    async def run_tests(self) -> None:
        """Extract every test url of every extracting action in test mode."""
        for action_name, action in self.actions.items():
            if action.extract is None:
                continue

            logger.info(f"Test Action ({action_name})")

            if not action.test_urls:
                logger.error(f"No test URLs defined for {action_name}.")
                continue

            for url in action.test_urls:
                logger.info(f"Loading test url: {url}")
                try:
                    await self._retry(lambda: self.page.goto(url), f"Load of {url}")
                except FatalError:
                    raise
                except Exception as e:
                    logger.error(f"Failed to load test url {url}: {e}")
                    continue

                content, cookies = await get_page_contents(self.page)
                if not content:
                    logger.error(f"No content found for {url}.")
                    continue

                await handle_extract(
                    action=action,
                    content=content,
                    url=url,
                    action_name=action_name,
                    cookies=cookies,
                    session=self.session,
                )


async def scrape_with_browser(actions: dict[str, BrowserAction], options: ScrapeOptions) -> None:
    """Scrape a live site, or check its test urls in test mode."""
    db = init_db(options.database_url, debug=options.debug)
    session = ScrapeSession(db=db, options=options)

    try:
        async with get_browser(headless=options.headless, timeout=options.timeout) as browser:
            page = await browser.new_page()
            traversal = BrowserTraversal(actions, page, session)

            if options.test:
                await traversal.run_tests()
                return

            start_scrape(session)
            try:
                await traversal.run()
            except Exception as e:
                logger.error(f"Scrape failed: {e}")
                end_scrape(session, "failed", str(e))
                raise

            end_scrape(session, "completed")
    finally:
        if session.http_client is not None:
            await session.http_client.aclose()
        db.close()
