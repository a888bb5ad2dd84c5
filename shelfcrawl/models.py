# shelfcrawl/models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

SOURCE = "goodreads"


class BookSummary(BaseModel):
    """One book as listed on a shelf page."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Absolute detail-page URL, de-duplication key")
    title: Optional[str] = None
    author: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    rating_count: Optional[int] = Field(None, ge=0)
    review_count: Optional[int] = Field(None, ge=0)
    image: Optional[str] = None

    def to_item(self):
        """Plain dict pushed to the sink, tagged with its source site."""
        item = self.model_dump()
        item["_source"] = SOURCE
        return item


class BookDetail(BookSummary):
    """A book as described by its own detail page."""

    description: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    publish_date: Optional[str] = None
    genres: Optional[List[str]] = None
