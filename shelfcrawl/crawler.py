# shelfcrawl/crawler.py
import argparse
import asyncio
import logging
import random
import httpx
from bs4 import BeautifulSoup
from httpx import AsyncClient

from .config import (
    CONCURRENCY,
    EXPORT_DIR,
    HEADERS,
    LOG_LEVEL,
    RETRIES,
    TIMEOUT,
    USER_AGENTS,
    CrawlInput,
)
from .db import MONGO_URI, push_books
from .detail import resolve_book_detail
from .export import export_books
from .listing import extract_books_from_list, find_next_page
from .seen import SeenUrls
from .utils import network_retry

LIST = "LIST"
DETAIL = "DETAIL"

logger = logging.getLogger("shelfcrawl")
logger.setLevel(LOG_LEVEL)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
logger.addHandler(handler)


class FetchError(Exception):
    """A page could not be fetched after all retries."""


class Crawler:
    def __init__(self, crawl_input=None, sink=None, concurrency=CONCURRENCY):
        self.input = crawl_input or CrawlInput()
        self.sink = sink
        self.concurrency = concurrency
        self.semaphore = asyncio.Semaphore(concurrency)
        self.cookie_header = self.input.cookie_header()
        self.client = AsyncClient(
            timeout=TIMEOUT, follow_redirects=True, proxy=self.input.proxy
        )
        self.seen = SeenUrls()
        self.visited_pages = set()
        self.items = []
        self.saved = 0
        self.pending_details = 0
        self.queue = None

    async def close(self):
        """Close the HTTP client and release resources."""
        await self.client.aclose()

    def request_headers(self):
        """Browser-like header set with a rotated User-Agent and any cookies."""
        headers = dict(HEADERS)
        headers["User-Agent"] = random.choice(USER_AGENTS)
        if self.cookie_header:
            headers["Cookie"] = self.cookie_header
        return headers

    @network_retry(attempts=RETRIES, exceptions=(httpx.HTTPError,), logger=logger)
    async def _get(self, url):
        resp = await self.client.get(url, headers=self.request_headers())
        resp.raise_for_status()
        return resp.text

    async def fetch(self, url):
        """
        Fetch a page's HTML with concurrency control and retries.

        Waits a short random delay before each request so bursts from the
        worker pool do not hit the site in lockstep.

        Args:
            url (str): The URL to fetch

        Returns:
            str: The response body

        Raises:
            FetchError: If every attempt failed
        """
        async with self.semaphore:
            await asyncio.sleep(random.uniform(0.08, 0.2))
            try:
                return await self._get(url)
            except httpx.HTTPError as e:
                raise FetchError(f"Failed to fetch {url} after {RETRIES} tries: {e}") from e

    def remaining(self):
        """Results still wanted, counting detail pages already queued."""
        return self.input.results_wanted - self.saved - self.pending_details

    async def push(self, items):
        self.items.extend(items)
        self.saved += len(items)
        if self.sink is not None:
            await self.sink(items)

    async def enqueue(self, url, label, page_no):
        if label == LIST:
            if url in self.visited_pages:
                return
            self.visited_pages.add(url)
        else:
            self.pending_details += 1
        await self.queue.put((url, label, page_no))

    async def handle_list(self, url, page_no):
        """
        Process one shelf listing page.

        Summaries either go straight to the sink or, when details are
        wanted, become DETAIL requests. Both are capped by the results still
        wanted. The next listing page is queued while budget remains, the
        page limit is not reached and this page produced new books.
        """
        logger.info(f"Shelf page {page_no}: {url}")
        html = await self.fetch(url)
        soup = BeautifulSoup(html, "lxml")

        books = extract_books_from_list(soup, url, self.seen)
        logger.info(f"Found {len(books)} books on page {page_no}")
        if not books:
            logger.warning(
                f"No books found on page {page_no}. Login may be required for "
                f"pagination, the last page was reached, or the selectors changed"
            )

        selected = books[: max(0, self.remaining())]
        if self.input.collect_details:
            for book in selected:
                await self.enqueue(book.url, DETAIL, page_no)
        elif selected:
            await self.push([b.to_item() for b in selected])
            logger.info(f"Saved {len(selected)} books (total: {self.saved})")

        if self.remaining() <= 0:
            logger.info(
                f"Reached target of {self.input.results_wanted} books. Stopping pagination."
            )
        elif page_no >= self.input.max_pages:
            logger.info(
                f"Reached maximum pages limit ({self.input.max_pages}). Stopping pagination."
            )
        elif books:
            next_url = find_next_page(soup, url, page_no)
            if next_url:
                logger.info(f"Enqueuing next page: {next_url}")
                await self.enqueue(next_url, LIST, page_no + 1)
            else:
                logger.info("No next page found. Reached end of pagination.")

    async def handle_detail(self, url):
        try:
            if self.saved >= self.input.results_wanted:
                return
            logger.info(f"Scraping book details: {url}")
            html = await self.fetch(url)
            book = resolve_book_detail(BeautifulSoup(html, "lxml"), url)
        finally:
            self.pending_details -= 1
        await self.push([book.to_item()])
        logger.info(
            f'Saved book: "{book.title}" ({self.saved}/{self.input.results_wanted})'
        )

    async def _worker(self):
        while True:
            url, label, page_no = await self.queue.get()
            try:
                if label == LIST:
                    await self.handle_list(url, page_no)
                else:
                    await self.handle_detail(url)
            except FetchError as e:
                logger.warning(f"Dropping {label} request: {e}")
            except Exception as e:
                logger.exception(f"{label} {url} failed: {e}")
            finally:
                self.queue.task_done()

    async def run(self):
        """
        Crawl from the configured start URLs until the queue drains.

        Returns:
            list[dict]: Items pushed during this run, in push order
        """
        self.queue = asyncio.Queue()
        for url in self.input.initial_urls():
            await self.enqueue(url, LIST, 1)

        workers = [asyncio.create_task(self._worker()) for _ in range(self.concurrency)]
        await self.queue.join()
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        logger.info(f"Finished. Saved {self.saved} books")
        return self.items


def build_arg_parser():
    p = argparse.ArgumentParser(
        description="Crawl book shelf listings and book detail pages.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--input", help="JSON file with crawl options")
    p.add_argument("--shelf", help="Shelf name, used when no start URL is given")
    p.add_argument("--url", action="append", dest="start_urls", help="Start URL (repeatable)")
    p.add_argument("--results-wanted", type=int)
    p.add_argument("--max-pages", type=int)
    p.add_argument(
        "--no-details",
        action="store_true",
        help="Save listing summaries without visiting detail pages",
    )
    p.add_argument("--export-dir", default=EXPORT_DIR, help="Write JSON/CSV exports here")
    return p


def input_from_args(args):
    crawl_input = CrawlInput.from_file(args.input) if args.input else CrawlInput()
    overrides = {}
    if args.shelf:
        overrides["shelf"] = args.shelf
    if args.start_urls:
        overrides["start_urls"] = args.start_urls
    if args.results_wanted is not None:
        overrides["results_wanted"] = args.results_wanted
    if args.max_pages is not None:
        overrides["max_pages"] = args.max_pages
    if args.no_details:
        overrides["collect_details"] = False
    return CrawlInput.model_validate({**crawl_input.model_dump(), **overrides})


async def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    c = Crawler(input_from_args(args), sink=push_books if MONGO_URI else None)
    try:
        items = await c.run()
    finally:
        await c.close()
    if args.export_dir:
        export_books(items, args.export_dir)


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
