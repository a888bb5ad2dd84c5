# api/auth.py
from fastapi import HTTPException, Security
import os
from fastapi.security.api_key import APIKeyHeader
from dotenv import load_dotenv

load_dotenv()
API_KEY = os.getenv("API_KEY")
APIKEY_NAME = "X-API-Key"
api_key_header = APIKeyHeader(name=APIKEY_NAME, auto_error=False)


async def get_api_key(api_key_header: str = Security(api_key_header)):
    """
    Guard the crawled-books dataset endpoints (``/books`` and
    ``/books/{book_id}``) by checking the X-API-Key header against the
    configured API_KEY.

    Raises:
        HTTPException: 401 if the header is missing, 403 if it is wrong or
            no API_KEY is configured on the server
    """
    if not api_key_header:
        raise HTTPException(status_code=401, detail="Missing API key")
    if not API_KEY or api_key_header != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return api_key_header
