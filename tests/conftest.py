# tests/conftest.py
import sys
import os
import re

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT_DIR)

import pytest
from typing import List, Dict, Any
from bs4 import BeautifulSoup
from httpx import ASGITransport, AsyncClient

from api.main import app
from api.rate_limit import limiter

TEST_API_KEY = "testapikey"


def make_soup(html):
    return BeautifulSoup(html, "lxml")


def _matches(doc, q):
    """
    Evaluate the subset of MongoDB filter syntax the API uses.

    Supports exact matches, array membership (``{"genres": "Fantasy"}``
    matches a document whose genres list contains it), ``$gte``/``$lte``
    ranges and case-insensitive ``$regex``.
    """
    for k, v in (q or {}).items():
        docv = doc.get(k)
        if isinstance(v, dict):
            if docv is None:
                return False
            if "$gte" in v and docv < v["$gte"]:
                return False
            if "$lte" in v and docv > v["$lte"]:
                return False
            if "$regex" in v:
                flags = re.IGNORECASE if "i" in v.get("$options", "") else 0
                if not re.search(v["$regex"], str(docv), flags):
                    return False
        elif isinstance(docv, list):
            if v not in docv:
                return False
        elif docv != v:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = list(docs)
        self._skip = 0
        self._limit = None

    def sort(self, order):
        """Sort on the first (field, direction) pair; missing values sort last."""
        field, direction = order[0]
        present = [d for d in self._docs if d.get(field) is not None]
        missing = [d for d in self._docs if d.get(field) is None]
        present.sort(key=lambda d: d[field], reverse=(direction < 0))
        self._docs = present + missing
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length: int):
        start = self._skip
        end = None if self._limit is None else start + self._limit
        return [dict(d) for d in self._docs[start:end]]


class FakeCollection:
    def __init__(self, docs=None):
        self.docs = [dict(d) for d in (docs or [])]

    async def find_one(self, q):
        for d in self.docs:
            if _matches(d, q):
                return dict(d)
        return None

    def find(self, q=None):
        return FakeCursor([d for d in self.docs if _matches(d, q)])

    async def count_documents(self, q=None):
        return sum(1 for d in self.docs if _matches(d, q))

    async def update_one(self, q, u, upsert=False):
        """Apply ``$set`` to the first match, inserting when ``upsert`` is set."""
        for d in self.docs:
            if _matches(d, q):
                d.update(u.get("$set", {}))
                return {"matched_count": 1}
        if upsert:
            doc = dict(q)
            doc.update(u.get("$set", {}))
            self.docs.append(doc)
        return {"matched_count": 0}


class FakeDB:
    def __init__(self, books=None):
        self.books = FakeCollection(books or [])


@pytest.fixture
def sample_books():
    """
    Three stored books covering the API's filters and sorts.

    - b1 "Dune": Frank Herbert, 4.27, science fiction, most ratings
    - b2 "The Hobbit": J.R.R. Tolkien, 4.29, fantasy, most reviews
    - b3 "Summary Only": no detail fields and no rating
    """
    return [
        {
            "_id": "b1",
            "url": "https://www.goodreads.com/book/show/44767458-dune",
            "title": "Dune",
            "author": "Frank Herbert",
            "rating": 4.27,
            "rating_count": 1500000,
            "review_count": 60000,
            "genres": ["Science Fiction", "Fiction", "Classics"],
        },
        {
            "_id": "b2",
            "url": "https://www.goodreads.com/book/show/5907.The_Hobbit",
            "title": "The Hobbit",
            "author": "J.R.R. Tolkien",
            "rating": 4.29,
            "rating_count": 4000000,
            "review_count": 90000,
            "genres": ["Fantasy", "Classics"],
        },
        {
            "_id": "b3",
            "url": "https://www.goodreads.com/book/show/3",
            "title": "Summary Only",
            "author": "Anon",
            "rating": None,
        },
    ]


@pytest.fixture
def fake_db(sample_books):
    return FakeDB(books=sample_books)


@pytest.fixture
async def client(monkeypatch, fake_db):
    """
    Async API client backed by ``fake_db`` with a known API key.

    Patches ``get_db`` and the configured key, and resets the rate limiter
    so request counts do not leak between tests.
    """
    monkeypatch.setattr("api.main.get_db", lambda: fake_db)
    monkeypatch.setattr("api.auth.API_KEY", TEST_API_KEY)
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
