# api/main.py
import os
import re
import logging
from typing import Optional
from fastapi import FastAPI, Depends, Query, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from .auth import get_api_key
from .rate_limit import RATE_LIMIT, register_rate_limit, limiter
from shelfcrawl.db import get_db

load_dotenv()
API_PORT = int(os.getenv("API_PORT", "8000"))

app = FastAPI(title="Shelf Crawl Dataset API", version="1.0")

register_rate_limit(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

logger = logging.getLogger("api")
logger.setLevel(logging.INFO)

PUBLIC_FIELDS = [
    "_id",
    "url",
    "title",
    "author",
    "rating",
    "rating_count",
    "review_count",
    "image",
    "description",
    "isbn",
    "publisher",
    "publish_date",
    "genres",
    "scraped_at",
]

SORT_FIELDS = {
    "rating": "rating",
    "ratings": "rating_count",
    "reviews": "review_count",
}


def book_doc_to_resp(doc):
    """
    Reduce a stored book document to its public fields.

    Summary-only documents lack the detail fields; those come back as None
    so every response has the same shape.
    """
    return {k: doc.get(k) for k in PUBLIC_FIELDS}


@app.get("/books", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def list_books(
    request: Request,
    author: Optional[str] = Query(None),
    genre: Optional[str] = Query(None),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    sort_by: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
):
    """
    List crawled books with optional filtering, sorting, and pagination.

    Args:
        request (Request): FastAPI request object (required for rate limiting)
        author (str, optional): Case-insensitive substring of the author name
        genre (str, optional): Exact genre the book must be tagged with
        min_rating (float, optional): Minimum average rating (inclusive)
        sort_by (str, optional): 'rating', 'ratings' or 'reviews', highest
            first; unknown values leave the natural order
        page (int): Page number, must be >= 1. Defaults to 1
        page_size (int): Number of results per page, must be 1-200

    Returns:
        JSONResponse: page, page_size, total and results
    """
    db = get_db()

    q = {}
    if author:
        q["author"] = {"$regex": re.escape(author), "$options": "i"}
    if genre:
        q["genres"] = genre
    if min_rating is not None:
        q["rating"] = {"$gte": min_rating}

    cursor = db.books.find(q)
    if sort_by in SORT_FIELDS:
        cursor = cursor.sort([(SORT_FIELDS[sort_by], -1)])

    total = await db.books.count_documents(q)
    skip = (page - 1) * page_size

    docs = await cursor.skip(skip).limit(page_size).to_list(length=page_size)
    return JSONResponse(
        {
            "page": page,
            "page_size": page_size,
            "total": total,
            "results": [book_doc_to_resp(d) for d in docs],
        }
    )


@app.get("/books/{book_id}", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def get_book(request: Request, book_id: str):
    """Return one book by the id derived from its URL, or 404."""
    db = get_db()
    doc = await db.books.find_one({"_id": book_id})
    if not doc:
        raise HTTPException(status_code=404, detail="Book not found")
    return book_doc_to_resp(doc)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=API_PORT)
