# shelfcrawl/utils.py
import hashlib
import json
import logging
import re
from urllib.parse import urljoin, urlparse
from tenacity import (
    before_sleep_log,
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

logger = logging.getLogger("shelfcrawl.utils")

WHITESPACE_RE = re.compile(r"\s+")
DECIMAL_RE = re.compile(r"(\d+\.\d+)")
NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
COUNT_RE = re.compile(r"(\d[\d,]*)")


def clean_text(text):
    """Collapse runs of whitespace to one space and trim. None for empty input."""
    if text is None:
        return None
    cleaned = WHITESPACE_RE.sub(" ", str(text)).strip()
    return cleaned or None


def to_abs(href, base):
    """
    Resolve a possibly relative link against ``base``.

    Returns None when the link is empty, cannot be joined, or does not
    resolve to an http(s) URL.
    """
    href = clean_text(href)
    if not href:
        return None
    try:
        absolute = urljoin(base, href)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def parse_rating(text):
    """
    Extract a rating from free text.

    The first decimal number wins (``"4.25 avg rating"`` -> 4.25). A bare
    integer is accepted only when nothing else is in the text, which is how
    structured data sometimes encodes whole ratings. Values outside [0, 5]
    are treated as absent.
    """
    text = clean_text(text)
    if not text:
        return None
    m = DECIMAL_RE.search(text)
    if not m:
        m = NUMBER_RE.fullmatch(text)
    if not m:
        return None
    value = float(m.group(1))
    if value < 0 or value > 5:
        return None
    return value


def parse_count(text, pattern=COUNT_RE):
    """
    Extract a non-negative integer count, stripping thousands separators.

    ``pattern`` must expose the digits in group 1; it defaults to the first
    digit group found anywhere in the text.
    """
    text = clean_text(text)
    if not text:
        return None
    m = pattern.search(text)
    if not m:
        return None
    digits = m.group(1).replace(",", "")
    if not digits:
        return None
    return int(digits)


def build_cookie_header(cookies="", cookies_json=""):
    """
    Build a ``Cookie`` header value from raw text or a JSON document.

    ``cookies_json`` may be a list of ``{"name": ..., "value": ...}`` objects
    (browser export format) or a flat mapping. It overrides ``cookies`` when
    it parses; otherwise a warning is logged and ``cookies`` is kept.
    """
    header = cookies or ""
    if cookies_json:
        try:
            parsed = json.loads(cookies_json)
        except ValueError as e:
            logger.warning(f"Failed to parse cookies_json: {e}")
            return header or None
        if isinstance(parsed, list):
            header = "; ".join(
                f"{c['name']}={c['value']}"
                for c in parsed
                if isinstance(c, dict) and "name" in c and "value" in c
            )
        elif isinstance(parsed, dict):
            header = "; ".join(f"{k}={v}" for k, v in parsed.items())
    return header or None


def book_id_for_url(url):
    """
    Derive a stable document id from a book's canonical URL.

    Returns the first 16 hex characters of the SHA-256 digest, which keeps
    ids short enough for API paths while staying collision-free in practice.
    """
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]


def network_retry(**tenacity_kwargs):
    """
    Create a tenacity retry decorator for handling network failures.

    Args:
        **tenacity_kwargs: Optional keyword arguments
            - attempts (int): Maximum number of attempts. Defaults to 3.
            - exceptions (tuple): Exception types worth retrying.
              Defaults to (Exception,).
            - logger (logging.Logger): If given, each failed attempt is
              logged at WARNING before sleeping.

    Retry Behavior:
        - Stops after the configured number of attempts
        - Waits with exponential backoff: min=1s, max=10s, multiplier=1
        - Re-raises the last exception once attempts are exhausted

    Example:
        @network_retry(attempts=5, exceptions=(httpx.HTTPError,))
        async def get(url):
            return await client.get(url)
    """
    retry_logger = tenacity_kwargs.get("logger")
    return retry(
        stop=stop_after_attempt(tenacity_kwargs.get("attempts", 3)),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(tenacity_kwargs.get("exceptions", (Exception,))),
        before_sleep=(
            before_sleep_log(retry_logger, logging.WARNING) if retry_logger else None
        ),
        reraise=True,
    )
