from functools import lru_cache

from google import genai

from app.core.config import settings


@lru_cache(maxsize=1)
def get_client() -> genai.Client:
    """Shared Gemini client, built on first use so imports never need an API key."""
    return genai.Client(api_key=settings.GOOGLE_GEMINI_API_KEY)
