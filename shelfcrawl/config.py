# shelfcrawl/config.py
import json
import os
import sys
from typing import List, Optional, Union
from urllib.parse import quote

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .utils import build_cookie_header

load_dotenv()

BASE_URL = os.getenv("BASE_URL", "https://www.goodreads.com").rstrip("/")
CONCURRENCY = int(os.getenv("CRAWL_CONCURRENCY", "15"))
RETRIES = int(os.getenv("CRAWL_RETRIES", "4"))
TIMEOUT = float(os.getenv("CRAWL_TIMEOUT", "30"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
EXPORT_DIR = os.getenv("EXPORT_DIR")

DEFAULT_MAX_PAGES = 999

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
    "Upgrade-Insecure-Requests": "1",
    "Referer": f"{BASE_URL}/",
}


def _as_int(value, default):
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


class CrawlInput(BaseModel):
    """
    Options for a single crawl run.

    Mirrors the JSON input document accepted by the CLI. Budgets that are
    not numbers fall back to their defaults (unlimited results, 999 pages)
    and are clamped to at least 1.
    """

    shelf: str = "fantasy"
    results_wanted: int = 100
    max_pages: int = DEFAULT_MAX_PAGES
    collect_details: bool = True
    start_url: Optional[str] = None
    start_urls: List[Union[str, dict]] = Field(default_factory=list)
    url: Optional[str] = None
    proxy: Optional[str] = None
    cookies: str = ""
    cookies_json: str = ""

    @field_validator("results_wanted", mode="before")
    @classmethod
    def _results_budget(cls, v):
        return max(1, _as_int(v, sys.maxsize))

    @field_validator("max_pages", mode="before")
    @classmethod
    def _pages_budget(cls, v):
        return max(1, _as_int(v, DEFAULT_MAX_PAGES))

    @classmethod
    def from_file(cls, path):
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate(json.load(f))

    def initial_urls(self):
        """Start URLs in input order, or the shelf page when none are given."""
        urls = []
        for entry in self.start_urls:
            if isinstance(entry, dict):
                entry = entry.get("url")
            if entry:
                urls.append(entry)
        if self.start_url:
            urls.append(self.start_url)
        if self.url:
            urls.append(self.url)
        if not urls:
            urls.append(f"{BASE_URL}/shelf/show/{quote(self.shelf, safe='')}")
        return urls

    def cookie_header(self):
        return build_cookie_header(self.cookies, self.cookies_json)
