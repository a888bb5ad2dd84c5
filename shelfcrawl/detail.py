# shelfcrawl/detail.py
import json
import logging
import re

from .models import BookDetail
from .utils import clean_text, parse_count, parse_rating, to_abs

logger = logging.getLogger("shelfcrawl.detail")

TITLE_SELECTORS = ['h1[data-testid="bookTitle"]', "h1.gr-h1", "#bookTitle"]
AUTHOR_SELECTORS = [
    'span[data-testid="name"]',
    ".authorName__container a",
    "a.authorName",
]
RATING_SELECTORS = [
    '[class*="RatingStatistics"] [class*="average"]',
    ".RatingStatistics__rating",
    '[itemprop="ratingValue"]',
]
RATING_COUNT_SELECTORS = ['[data-testid="ratingsCount"]', '[itemprop="ratingCount"]']
REVIEW_COUNT_SELECTORS = ['[data-testid="reviewsCount"]', '[itemprop="reviewCount"]']
DESCRIPTION_SELECTORS = [
    '[data-testid="description"]',
    ".BookPageMetadataSection__description .Formatted",
    "#description span",
]
IMAGE_SELECTORS = [
    '[class*="BookCover"] img',
    ".BookPage__bookCover img",
    "#coverImage",
]
PUBLICATION_SELECTORS = ['[data-testid="publicationInfo"]', "#details .row"]
GENRE_SELECTORS = [
    '[data-testid="genresList"] a',
    ".bookPageGenreLink",
    ".actionLinkLite.bookPageGenreLink",
]

PUBLISHER_RE = re.compile(r"\bby\s+([^,]+)", re.IGNORECASE)
DATE_RE = re.compile(r"([A-Za-z]+\s+\d{1,2},?\s+\d{4})")
ISBN_LABEL_RE = re.compile(r"isbn", re.IGNORECASE)

FIELDS = [
    "title",
    "author",
    "rating",
    "rating_count",
    "review_count",
    "description",
    "image",
    "isbn",
    "publisher",
    "publish_date",
    "genres",
]


# --- structured data -------------------------------------------------------


def _is_book(entity):
    kind = entity.get("@type") or entity.get("type")
    if isinstance(kind, list):
        return "Book" in kind
    return kind == "Book"


def _entities(parsed):
    """Flatten a JSON-LD document into candidate entities."""
    items = parsed if isinstance(parsed, list) else [parsed]
    for item in items:
        if not isinstance(item, dict):
            continue
        yield item
        graph = item.get("@graph")
        if isinstance(graph, list):
            for node in graph:
                if isinstance(node, dict):
                    yield node


def find_book_json_ld(soup):
    """
    Return the first JSON-LD entity declaring ``@type: Book``.

    Blocks that are not valid JSON are skipped silently. Returns None when
    no block describes a book.
    """
    for script in soup.select('script[type="application/ld+json"]'):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            logger.debug(f"Skipping malformed JSON-LD block: {e}")
            continue
        for entity in _entities(parsed):
            if _is_book(entity):
                return entity
    return None


def _name_of(value):
    if isinstance(value, dict):
        return clean_text(value.get("name"))
    if isinstance(value, list):
        names = [_name_of(v) for v in value]
        return clean_text(", ".join(n for n in names if n))
    if isinstance(value, str):
        return clean_text(value)
    return None


def _image_of(value):
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url") or value.get("contentUrl")
    return value if isinstance(value, str) else None


def _genres_of(value):
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    genres = [clean_text(g) for g in value if isinstance(g, str)]
    return [g for g in genres if g] or None


def _number_text(value):
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    return str(value)


def parse_json_ld_book(entity, url):
    """
    Map a JSON-LD Book entity onto record fields.

    Returns a dict with one key per field; values that are missing or empty
    in the entity are None.
    """
    rating = entity.get("aggregateRating")
    if not isinstance(rating, dict):
        rating = {}
    return {
        "title": clean_text(entity.get("name") or entity.get("title")),
        "author": _name_of(entity.get("author")),
        "rating": parse_rating(_number_text(rating.get("ratingValue"))),
        "rating_count": parse_count(_number_text(rating.get("ratingCount"))),
        "review_count": parse_count(_number_text(rating.get("reviewCount"))),
        "description": clean_text(entity.get("description")),
        "image": to_abs(_image_of(entity.get("image")), url),
        "isbn": clean_text(_number_text(entity.get("isbn"))),
        "publisher": _name_of(entity.get("publisher")),
        "publish_date": clean_text(_number_text(entity.get("datePublished"))),
        "genres": _genres_of(entity.get("genre")),
    }


# --- HTML fallbacks --------------------------------------------------------


def first_text(soup, selectors, last=False):
    """
    Text of the first selector candidate that yields non-empty content.

    With ``last`` set, the last match of a candidate is used instead of the
    first; collapsed/expanded copies of a block put the full text last.
    """
    for selector in selectors:
        nodes = soup.select(selector)
        if last:
            nodes = list(reversed(nodes))
        for node in nodes:
            text = clean_text(node.get_text(" "))
            if text:
                return text
            if not last:
                break
    return None


def _html_title(soup, url):
    return first_text(soup, TITLE_SELECTORS)


def _html_author(soup, url):
    return first_text(soup, AUTHOR_SELECTORS)


def _html_rating(soup, url):
    return parse_rating(first_text(soup, RATING_SELECTORS))


def _html_rating_count(soup, url):
    return parse_count(first_text(soup, RATING_COUNT_SELECTORS))


def _html_review_count(soup, url):
    return parse_count(first_text(soup, REVIEW_COUNT_SELECTORS))


def _html_description(soup, url):
    return first_text(soup, DESCRIPTION_SELECTORS[:2]) or first_text(
        soup, DESCRIPTION_SELECTORS[2:], last=True
    )


def _html_image(soup, url):
    for selector in IMAGE_SELECTORS:
        img = soup.select_one(selector)
        if img is None:
            continue
        src = img.get("src") or img.get("data-src")
        if clean_text(src):
            return to_abs(src, url)
    return None


def _publication_info(soup):
    return first_text(soup, PUBLICATION_SELECTORS)


def _html_publisher(soup, url):
    m = PUBLISHER_RE.search(_publication_info(soup) or "")
    return clean_text(m.group(1)) if m else None


def _html_publish_date(soup, url):
    m = DATE_RE.search(_publication_info(soup) or "")
    return m.group(1) if m else None


def _label_value_rows(soup):
    for value in soup.select(".infoBoxRowItem"):
        label = value.find_previous_sibling()
        if label is not None:
            yield label, value
    for label in soup.select("dt"):
        value = label.find_next_sibling("dd")
        if value is not None:
            yield label, value


def _html_isbn(soup, url):
    for label, value in _label_value_rows(soup):
        if ISBN_LABEL_RE.search(label.get_text()):
            text = clean_text(value.get_text(" "))
            if text:
                return text
    return None


def _html_genres(soup, url):
    # one combined query keeps document order across both page layouts
    links = soup.select(", ".join(GENRE_SELECTORS))
    genres = [clean_text(a.get_text()) for a in links]
    return [g for g in genres if g] or None


HTML_EXTRACTORS = {
    "title": _html_title,
    "author": _html_author,
    "rating": _html_rating,
    "rating_count": _html_rating_count,
    "review_count": _html_review_count,
    "description": _html_description,
    "image": _html_image,
    "isbn": _html_isbn,
    "publisher": _html_publisher,
    "publish_date": _html_publish_date,
    "genres": _html_genres,
}


def _first_of(field, candidates):
    """Return the first non-None value produced by ``candidates``."""
    for extract in candidates:
        try:
            value = extract()
        except Exception as e:
            logger.debug(f"Extractor for {field} failed: {e}")
            continue
        if value is not None:
            return value
    return None


def resolve_book_detail(soup, url):
    """
    Build a BookDetail from a parsed detail page.

    Each field is resolved independently: the page's JSON-LD Book entity
    first, then the field's HTML selector candidates in order. A failing
    extractor only blanks its own field, so a page with nothing usable
    still yields a record with every field set to None.

    Args:
        soup (BeautifulSoup): Parsed detail page
        url (str): URL the page was fetched from, used as record URL and as
            the base for relative image links

    Returns:
        BookDetail: The resolved record
    """
    try:
        entity = find_book_json_ld(soup)
        structured = parse_json_ld_book(entity, url) if entity else {}
    except Exception as e:
        logger.debug(f"Structured data unusable on {url}: {e}")
        structured = {}

    data = {}
    for field in FIELDS:
        data[field] = _first_of(
            field,
            [
                lambda f=field: structured.get(f),
                lambda f=field: HTML_EXTRACTORS[f](soup, url),
            ],
        )
    return BookDetail(url=url, **data)
