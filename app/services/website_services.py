from __future__ import annotations

from html.parser import HTMLParser
from typing import Callable, List, Optional
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.core.observability import log_outbound_call
from app.gemini.prompts import create_business_extraction_prompt
from app.gemini.services import get_ai_response
from app.schemas.analysis import ExtractedBusinessInfo
from app.services.base import BaseService
from app.services.exceptions import ModelQueryError, RetryableJobError

MAX_PAGE_CHARS = 8000
MAX_KEYWORDS = 10
USER_AGENT = "RanklyBot/1.0 (+https://rankly.ai)"


class _TextExtractor(HTMLParser):
	_SKIP = {"script", "style", "noscript", "svg"}

	def __init__(self):
		super().__init__()
		self.parts: List[str] = []
		self._skip_depth = 0

	def handle_starttag(self, tag, attrs):
		if tag in self._SKIP:
			self._skip_depth += 1
		elif tag == "meta":
			attributes = dict(attrs)
			if attributes.get("name") in ("description", "keywords") and attributes.get("content"):
				self.parts.append(attributes["content"])

	def handle_endtag(self, tag):
		if tag in self._SKIP and self._skip_depth:
			self._skip_depth -= 1

	def handle_data(self, data):
		if not self._skip_depth and data.strip():
			self.parts.append(data.strip())


def html_to_text(html: str, limit: int = MAX_PAGE_CHARS) -> str:
	parser = _TextExtractor()
	parser.feed(html)
	parser.close()
	return " ".join(parser.parts)[:limit]


def fallback_business_info(url: str) -> ExtractedBusinessInfo:
	"""Minimal guess from the domain when the site cannot be analyzed."""
	host = urlparse(url if "//" in url else f"https://{url}").hostname or url
	label = host.removeprefix("www.").split(".")[0] or host
	return ExtractedBusinessInfo(
		business_name=label.capitalize(),
		industry="Business Services",
		description=f"A business operating at {host}. Unable to extract detailed information from the website.",
		keywords=[label, "business", "services"],
		confidence=20,
	)


class WebsiteExtractor(BaseService):
	"""Fetches a website and asks the model to describe the business behind it."""

	def __init__(
		self,
		timeout_seconds: Optional[float] = None,
		extract_json: Callable[..., dict] = get_ai_response,
		transport: Optional[httpx.BaseTransport] = None,
		correlation_id: Optional[str] = None,
	):
		super().__init__(correlation_id)
		self.timeout_seconds = timeout_seconds or settings.WEBSITE_FETCH_TIMEOUT_SECONDS
		self.extract_json = extract_json
		self.transport = transport

	def fetch_page_text(self, url: str, job_id: Optional[str] = None) -> str:
		"""Visible text of the page; empty when the site answers with a client error.

		Raises:
			httpx.TransportError: On network failures (retryable)
			RetryableJobError: When the site answers with a server error
		"""
		def call() -> httpx.Response:
			with httpx.Client(
				timeout=self.timeout_seconds,
				follow_redirects=True,
				headers={"User-Agent": USER_AGENT},
				transport=self.transport,
			) as client:
				return client.get(url)

		response = log_outbound_call("website", url, "fetch_page", self.correlation_id, call, job_id=job_id)
		if response.status_code >= 500:
			raise RetryableJobError(f"Website returned {response.status_code}", job_id=job_id, details={"url": url})
		if response.status_code >= 400:
			self.logger.warning(
				"Website returned a client error, continuing without page content",
				extra={"correlation_id": self.correlation_id, "url": url, "status_code": response.status_code},
			)
			return ""
		return html_to_text(response.text)

	def extract(self, url: str, job_id: Optional[str] = None) -> ExtractedBusinessInfo:
		page_text = self.fetch_page_text(url, job_id=job_id)
		prompt = create_business_extraction_prompt(url, page_text or "(no readable content)")
		try:
			raw = self.extract_json(contents=prompt, response_schema=ExtractedBusinessInfo)
			info = ExtractedBusinessInfo(**raw)
		except ModelQueryError as e:
			if e.retryable:
				raise
			self.logger.warning("Business extraction rejected by model, using domain fallback", extra={"url": url, "error": str(e)})
			return fallback_business_info(url)
		except (SchemaValidationError, TypeError) as e:
			self.logger.warning("Business extraction returned an invalid shape, using domain fallback", extra={"url": url, "error": str(e)})
			return fallback_business_info(url)

		info.keywords = [k.strip() for k in info.keywords if k and k.strip()][:MAX_KEYWORDS]
		self.log_operation("extract", url=url, business_name=info.business_name, confidence=info.confidence)
		return info
