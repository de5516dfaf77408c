"""Strategies that produce the questions each model is asked during analysis."""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from pydantic import ValidationError as SchemaValidationError

from app.gemini.prompts import create_query_generation_prompt
from app.gemini.services import get_ai_response
from app.schemas.analysis import GeneratedQueries
from app.services.exceptions import ModelQueryError

TEMPLATE_QUERIES = [
	"What are the best {industry} companies?",
	"Top {industry} solutions for businesses",
	"How to choose a {industry} provider",
	"{keyword} services comparison",
	"Best {keyword} tools and platforms",
	"Leading companies in {industry}",
	"{Industry} recommendations for small businesses",
	"Who are the top {industry} vendors?",
	"{keyword} market leaders",
	"Best {industry} services in 2024",
]


class PromptStrategy(ABC):
	"""Produces at most ``limit`` prompt variants for a business."""

	@abstractmethod
	def generate(
		self,
		business_name: str,
		industry: str,
		keywords: List[str],
		limit: int,
		location: Optional[str] = None,
		description: Optional[str] = None,
	) -> List[str]:
		raise NotImplementedError


class TemplatePromptStrategy(PromptStrategy):
	"""Shuffle-and-slice over industry and keyword templates.

	Passing a seed makes the selection reproducible.
	"""

	def __init__(self, seed: Optional[int] = None):
		self.seed = seed

	def generate(self, business_name, industry, keywords, limit, location=None, description=None) -> List[str]:
		industry = (industry or "business").strip()
		keyword = keywords[0] if keywords else industry
		queries = [
			template.format(industry=industry.lower(), Industry=industry, keyword=keyword)
			for template in TEMPLATE_QUERIES
		]
		random.Random(self.seed).shuffle(queries)
		return queries[:max(0, limit)]


class GeminiPromptStrategy(PromptStrategy):
	"""Asks the model for customer-style questions, falling back to templates."""

	def __init__(
		self,
		fallback: Optional[PromptStrategy] = None,
		model: Optional[str] = None,
		generate_json: Callable[..., dict] = get_ai_response,
	):
		self.fallback = fallback or TemplatePromptStrategy()
		self.model = model
		self.generate_json = generate_json
		self.logger = logging.getLogger(self.__class__.__name__)

	def generate(self, business_name, industry, keywords, limit, location=None, description=None) -> List[str]:
		if limit <= 0:
			return []
		prompt = create_query_generation_prompt(business_name, industry, keywords, limit, location, description)
		try:
			raw = self.generate_json(contents=prompt, response_schema=GeneratedQueries, model=self.model)
			queries = [q.strip() for q in GeneratedQueries(**raw).queries if q and q.strip()]
		except (ModelQueryError, SchemaValidationError, TypeError) as e:
			self.logger.warning("Query generation failed, using templates", extra={"business_name": business_name, "error": str(e)})
			return self.fallback.generate(business_name, industry, keywords, limit, location, description)

		if len(queries) < limit:
			self.logger.info(
				"Model returned too few queries, using templates",
				extra={"business_name": business_name, "returned": len(queries), "requested": limit},
			)
			return self.fallback.generate(business_name, industry, keywords, limit, location, description)
		return queries[:limit]
