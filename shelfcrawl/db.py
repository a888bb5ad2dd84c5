# shelfcrawl/db.py
from datetime import datetime, timezone
import os
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv

from .utils import book_id_for_url

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI")
MONGO_DB = os.getenv("MONGO_DB", "shelfcrawl")

_client = None
_db = None


def get_client():
    """Initialize and return the MongoDB AsyncIOMotorClient singleton."""
    global _client, _db
    if _client is None:
        _client = AsyncIOMotorClient(MONGO_URI)
        _db = _client[MONGO_DB]
    return _client


def get_db():
    """Return the MongoDB database instance, initializing if needed."""
    global _db
    if _db is None:
        get_client()
    return _db


async def push_books(items):
    """
    Upsert crawled book items into the books collection.

    Documents are keyed by a hash of the book URL, so re-crawling a shelf
    refreshes existing entries instead of duplicating them.
    """
    db = get_db()
    scraped_at = datetime.now(timezone.utc).isoformat()
    for item in items:
        doc = dict(item, _id=book_id_for_url(item["url"]), scraped_at=scraped_at)
        await db.books.update_one({"_id": doc["_id"]}, {"$set": doc}, upsert=True)
