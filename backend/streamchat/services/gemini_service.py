import logging
from functools import lru_cache

from google import genai

from streamchat.config import require_api_key

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_client() -> genai.Client:
    """
    Shared Gemini client, created on first use.
    FastAPI dependency: tests swap it out via app.dependency_overrides.
    """
    client = genai.Client(api_key=require_api_key())
    logger.info("gemini_client_created")
    return client
