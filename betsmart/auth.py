"""
API key authentication for the BetSmart API

Keys come from API_KEY_USER1..API_KEY_USER5.  The holder of API_KEY_USER1
is the admin (cache management, scheduler status).  With ENVIRONMENT set to
"development" and no keys configured, a single insecure dev key is accepted.
"""

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
import os
from typing import Dict
from dotenv import load_dotenv

load_dotenv()

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

MAX_API_USERS = 5
ADMIN_USER = "user1"
DEV_API_KEY = "dev-key-insecure"


def get_valid_api_keys() -> Dict[str, str]:
    """Map of API key -> user id, read from the environment"""
    keys = {
        os.environ[f"API_KEY_USER{i}"]: f"user{i}"
        for i in range(1, MAX_API_USERS + 1)
        if os.getenv(f"API_KEY_USER{i}")
    }
    if keys:
        return keys

    if os.getenv("ENVIRONMENT") == "development":
        return {DEV_API_KEY: "dev_user"}
    raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")


VALID_API_KEYS = get_valid_api_keys()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Resolve the X-API-Key header to a user id

    Usage in FastAPI routes:
        @app.post("/api/predictions/generate")
        async def generate(user: str = Depends(verify_api_key)):
            ...
    """
    if not api_key:
        raise _unauthorized("API key required. Include 'X-API-Key' header.")
    user = VALID_API_KEYS.get(api_key)
    if user is None:
        raise _unauthorized("Invalid API key")
    return user


async def verify_admin_api_key(user: str = Security(verify_api_key)) -> str:
    if user != ADMIN_USER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
