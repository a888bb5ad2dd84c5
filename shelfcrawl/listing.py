# shelfcrawl/listing.py
import logging
import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from .models import BookSummary
from .utils import clean_text, parse_count, parse_rating, to_abs

logger = logging.getLogger("shelfcrawl.listing")

# Shelf pages wrap each book in .elementList, list pages in a schema.org row.
CONTAINER_SELECTOR = '.elementList, .leftAlignedImage, tr[itemtype$="Book"]'
RATING_COUNT_RE = re.compile(r"(\d[\d,]*)\s+ratings?\b", re.IGNORECASE)
REVIEW_COUNT_RE = re.compile(r"(\d[\d,]*)\s+reviews?\b", re.IGNORECASE)


def _guard(field, extract, *args):
    """Run one field extractor, turning any failure into an absent value."""
    try:
        return extract(*args)
    except Exception as e:
        logger.debug(f"Field {field} failed: {e}")
        return None


def _title(link):
    return clean_text(link.get_text()) or clean_text(link.get("title"))


def _author(container):
    author_link = container.select_one("a.authorName")
    return clean_text(author_link.get_text()) if author_link else None


def _minirating(container):
    """The free-text blob carrying average rating and counts."""
    node = container.select_one(".minirating")
    if node:
        return clean_text(node.get_text())
    for span in container.select("span.greyText.smallText"):
        text = clean_text(span.get_text())
        if text and "rating" in text.lower():
            return text
    return None


def _image(container, base_url):
    img = container.select_one("img")
    if not img:
        return None
    return to_abs(img.get("src") or img.get("data-src"), base_url)


def extract_books_from_list(soup, base_url, seen):
    """
    Extract book summaries from a shelf listing page.

    Containers are visited in document order. A container without a
    resolvable ``a.bookTitle`` link is skipped, as is one whose URL is
    already in ``seen``; new URLs are added to ``seen`` before the summary
    is built, so a book appears at most once per crawl.

    Args:
        soup (BeautifulSoup): Parsed listing page
        base_url (str): URL the page was fetched from
        seen (SeenUrls): Run-scoped de-duplication set, mutated

    Returns:
        list[BookSummary]: New books found on this page
    """
    books = []
    for container in soup.select(CONTAINER_SELECTOR):
        try:
            link = container.select_one("a.bookTitle")
            if link is None:
                continue
            book_url = to_abs(link.get("href"), base_url)
            if not book_url or not seen.add_if_absent(book_url):
                continue

            blob = _guard("minirating", _minirating, container)
            books.append(
                BookSummary(
                    url=book_url,
                    title=_guard("title", _title, link),
                    author=_guard("author", _author, container),
                    rating=_guard("rating", parse_rating, blob),
                    rating_count=_guard(
                        "rating_count", parse_count, blob, RATING_COUNT_RE
                    ),
                    review_count=_guard(
                        "review_count", parse_count, blob, REVIEW_COUNT_RE
                    ),
                    image=_guard("image", _image, container, base_url),
                )
            )
        except Exception as e:
            logger.debug(f"Error extracting book from {base_url}: {e}")
    return books


def _page_number(url, default):
    for key, value in parse_qsl(urlparse(url).query, keep_blank_values=True):
        if key == "page":
            try:
                return int(value)
            except ValueError:
                break
    return default


def with_page(url, page):
    """Return ``url`` with its ``page`` query parameter set to ``page``."""
    parsed = urlparse(url)
    params = parse_qsl(parsed.query, keep_blank_values=True)
    replaced = False
    query = []
    for key, value in params:
        if key == "page":
            if replaced:
                continue
            value = str(page)
            replaced = True
        query.append((key, value))
    if not replaced:
        query.append(("page", str(page)))
    return urlunparse(parsed._replace(query=urlencode(query)))


def find_next_page(soup, base_url, current_page=1):
    """
    Work out the URL of the next listing page.

    An explicit ``next_page`` link wins. Otherwise, including when the
    marker is disabled or has no href, the current URL's ``page`` parameter
    is bumped by one; that guess only stops when the caller's budget or a
    page without new books does.

    Args:
        soup (BeautifulSoup): Parsed listing page
        base_url (str): URL the page was fetched from
        current_page (int): Page number tracked by the caller, used when the
            URL carries no usable ``page`` parameter

    Returns:
        str or None: Absolute URL of the next page
    """
    marker = soup.select_one(".next_page, a[rel~=next]")
    if marker is not None:
        if "disabled" not in (marker.get("class") or []):
            next_url = to_abs(marker.get("href"), base_url)
            if next_url:
                return next_url

    page = _page_number(base_url, current_page or 1)
    return with_page(base_url, page + 1)
