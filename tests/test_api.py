# tests/test_api.py
import pytest
from httpx import AsyncClient

from conftest import TEST_API_KEY

HEADERS = {"X-API-Key": TEST_API_KEY}


@pytest.mark.asyncio
async def test_list_books_no_filters(client: AsyncClient):
    r = await client.get("/books", headers=HEADERS)
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 3
    assert len(data["results"]) == 3


@pytest.mark.asyncio
async def test_list_books_fills_missing_fields_with_none(client: AsyncClient):
    """Summary-only documents come back with the full public shape."""
    r = await client.get("/books", headers=HEADERS)
    summary = next(b for b in r.json()["results"] if b["_id"] == "b3")
    assert summary["description"] is None
    assert summary["genres"] is None


@pytest.mark.asyncio
async def test_list_books_author_filter_is_case_insensitive(client: AsyncClient):
    r = await client.get("/books", params={"author": "tolkien"}, headers=HEADERS)
    data = r.json()
    assert data["total"] == 1
    assert data["results"][0]["title"] == "The Hobbit"


@pytest.mark.asyncio
async def test_list_books_author_filter_escapes_regex(client: AsyncClient):
    r = await client.get("/books", params={"author": "J.R.R.*"}, headers=HEADERS)
    assert r.json()["total"] == 0


@pytest.mark.asyncio
async def test_list_books_genre_filter(client: AsyncClient):
    r = await client.get("/books", params={"genre": "Classics"}, headers=HEADERS)
    titles = {b["title"] for b in r.json()["results"]}
    assert titles == {"Dune", "The Hobbit"}


@pytest.mark.asyncio
async def test_list_books_min_rating_skips_unrated(client: AsyncClient):
    r = await client.get("/books", params={"min_rating": 4.28}, headers=HEADERS)
    data = r.json()
    assert data["total"] == 1
    assert data["results"][0]["title"] == "The Hobbit"


@pytest.mark.asyncio
async def test_list_books_min_rating_out_of_range(client: AsyncClient):
    r = await client.get("/books", params={"min_rating": 6}, headers=HEADERS)
    assert r.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "sort_by, expected",
    [
        ("rating", ["The Hobbit", "Dune", "Summary Only"]),
        ("ratings", ["The Hobbit", "Dune", "Summary Only"]),
        ("reviews", ["The Hobbit", "Dune", "Summary Only"]),
    ],
)
async def test_list_books_sorting(client: AsyncClient, sort_by, expected):
    r = await client.get("/books", params={"sort_by": sort_by}, headers=HEADERS)
    assert [b["title"] for b in r.json()["results"]] == expected


@pytest.mark.asyncio
async def test_list_books_pagination(client: AsyncClient):
    r = await client.get(
        "/books", params={"page": 2, "page_size": 2}, headers=HEADERS
    )
    data = r.json()
    assert data["page"] == 2
    assert data["total"] == 3
    assert [b["_id"] for b in data["results"]] == ["b3"]


@pytest.mark.asyncio
async def test_get_book(client: AsyncClient):
    r = await client.get("/books/b1", headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["title"] == "Dune"


@pytest.mark.asyncio
async def test_get_book_not_found(client: AsyncClient):
    r = await client.get("/books/nope", headers=HEADERS)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_missing_api_key(client: AsyncClient):
    r = await client.get("/books")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_wrong_api_key(client: AsyncClient):
    r = await client.get("/books", headers={"X-API-Key": "wrong"})
    assert r.status_code == 403
