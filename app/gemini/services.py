import json
import logging
import random
import time
from typing import Any, Optional

from google.api_core import exceptions
from google.genai import errors as genai_errors

from app.core.config import settings
from app.services.exceptions import ModelQueryError
from .client import get_client

logger = logging.getLogger("gemini")

# api_core errors raised by older transports; genai surfaces the same conditions as APIError codes
_TRANSIENT_API_CORE = (
    exceptions.ServiceUnavailable,
    exceptions.ResourceExhausted,
    exceptions.DeadlineExceeded,
    exceptions.InternalServerError,
)


def _is_transient(error: Exception) -> bool:
    if isinstance(error, _TRANSIENT_API_CORE):
        return True
    if isinstance(error, genai_errors.ServerError):
        return True
    # 429 rate limit arrives as a client error
    return isinstance(error, genai_errors.ClientError) and getattr(error, "code", None) == 429


def _generate(contents: Any, model: str, config: Optional[dict], max_retries: int):
    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            return get_client().models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except (genai_errors.APIError, exceptions.GoogleAPIError) as e:
            if not _is_transient(e):
                raise ModelQueryError("gemini", model, str(e), retryable=False) from e
            last_error = e
            wait = (2 ** attempt) + random.random()
            logger.warning(
                "Gemini call failed with a transient error, retrying",
                extra={"model": model, "attempt": attempt + 1, "max_retries": max_retries, "wait_seconds": round(wait, 1), "error": str(e)},
            )
            time.sleep(wait)

    raise ModelQueryError("gemini", model, f"Max retries reached: {last_error}", retryable=True)


def get_ai_response(contents: Any, response_schema: Any = None, model: Optional[str] = None, max_retries: int = 5) -> dict:
    """Structured JSON answer, optionally constrained by a pydantic response schema."""
    model = model or settings.GEMINI_MODEL
    config = {
        "response_mime_type": "application/json",
        **({"response_schema": response_schema} if response_schema else {}),
    }
    response = _generate(contents, model, config, max_retries)
    try:
        return json.loads(response.text)
    except (TypeError, ValueError) as e:
        raise ModelQueryError("gemini", model, f"Response was not valid JSON: {e}", retryable=True) from e


def get_text_response(contents: Any, model: Optional[str] = None, max_retries: int = 5) -> str:
    """Free-text answer, as an end user asking the model would see it."""
    model = model or settings.GEMINI_MODEL
    response = _generate(contents, model, None, max_retries)
    return response.text or ""
