from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from app.core.config import settings
from app.core.observability import log_outbound_call
from app.gemini.services import get_text_response


class ModelQueryClient(ABC):
	"""Answers prompts as the end user of an AI assistant would see them."""

	@abstractmethod
	def providers(self) -> List[str]:
		raise NotImplementedError

	@abstractmethod
	def query(self, provider: str, prompt: str, job_id: Optional[str] = None) -> str:
		"""Raises ModelQueryError when the provider cannot answer."""
		raise NotImplementedError


class GeminiModelQueryClient(ModelQueryClient):
	"""One provider per configured Gemini model."""

	def __init__(
		self,
		models: Optional[List[str]] = None,
		generate_text: Callable[..., str] = get_text_response,
		correlation_id: Optional[str] = None,
	):
		self.models = list(models or settings.AEO_MODELS)
		self.generate_text = generate_text
		self.correlation_id = correlation_id

	def providers(self) -> List[str]:
		return list(self.models)

	def query(self, provider: str, prompt: str, job_id: Optional[str] = None) -> str:
		return log_outbound_call(
			"gemini",
			provider,
			"answer_query",
			self.correlation_id,
			lambda: self.generate_text(contents=prompt, model=provider),
			job_id=job_id,
		)
