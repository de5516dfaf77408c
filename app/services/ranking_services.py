"""Scoring of model answers: does the business appear, how early, and in what light."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from app.schemas.analysis import ProviderScore, QueryResult

POSITIVE_CONTEXT = (
	"leading", "top", "best", "premier", "innovative", "excellent", "outstanding",
	"renowned", "established", "trusted", "professional", "expert", "specialist",
)
NEGATIVE_CONTEXT = ("small", "unknown", "new", "startup", "limited", "basic")
_SUFFIXES = re.compile(r"\b(inc|llc|ltd|limited|corp|corporation|co|company|gmbh)\.?$", re.IGNORECASE)


def name_variations(business_name: str) -> List[str]:
	"""Spellings an answer might use for the business, original first."""
	name = business_name.strip()
	variations = [name]
	without_suffix = _SUFFIXES.sub("", name).strip(" ,.")
	if without_suffix and without_suffix.lower() != name.lower():
		variations.append(without_suffix)
	compact = re.sub(r"[\s\-_.]+", "", without_suffix or name)
	if compact and compact.lower() not in (v.lower() for v in variations):
		variations.append(compact)
	return variations


def rank_position(index: int) -> int:
	"""Earlier mentions rank higher: 1 within the first 50 characters, down to 5."""
	if index < 50:
		return 1
	if index < 150:
		return 2
	if index < 300:
		return 3
	if index < 500:
		return 4
	return 5


def _find_mention(response_lower: str, variations: List[str]) -> Tuple[int, str]:
	best_index, best_match = -1, ""
	for variation in variations:
		index = response_lower.find(variation.lower())
		if index != -1 and (best_index == -1 or index < best_index):
			best_index, best_match = index, variation
	return best_index, best_match


def relevance_score(response: str, best_match: str, best_index: int, variations: List[str]) -> int:
	response_lower = response.lower()
	score = 20

	words = [w for w in variations[0].lower().split() if len(w) > 2]
	if len(words) > 1:
		matched_words = sum(1 for w in words if w in response_lower)
		score += min(10, matched_words * 5)

	if best_index < 50:
		score += 30
	elif best_index < 150:
		score += 20
	elif best_index < 300:
		score += 10

	first_sentence = re.split(r"[.!?]", response, maxsplit=1)[0]
	if best_match.lower() in first_sentence.lower():
		score += 25

	window = response_lower[max(0, best_index - 50):best_index + 50]
	score += 5 * sum(1 for w in POSITIVE_CONTEXT if w in window)
	score -= 5 * sum(1 for w in NEGATIVE_CONTEXT if w in window)

	mentions = sum(response_lower.count(v.lower()) for v in variations)
	if mentions > 1:
		score += min(15, mentions * 3)

	return max(0, min(100, score))


def evaluate_response(query: str, response: str, business_name: str, error: Optional[str] = None) -> QueryResult:
	if error is not None:
		return QueryResult(query=query, response="", error=error)
	variations = name_variations(business_name)
	best_index, best_match = _find_mention(response.lower(), variations)
	if best_index == -1:
		return QueryResult(query=query, response=response)
	return QueryResult(
		query=query,
		response=response,
		mentioned=True,
		rank_position=rank_position(best_index),
		relevance_score=relevance_score(response, best_match, best_index, variations),
	)


def _position_points(position: int) -> int:
	if position == 1:
		return 100
	if position == 2:
		return 75
	if position == 3:
		return 50
	return max(0, 25 - position * 2)


def score_provider(provider: str, business_name: str, results: List[QueryResult]) -> ProviderScore:
	"""AEO score: ranking 50%, visibility 30%, mention frequency 20%."""
	total = len(results)
	answered = [r for r in results if r.error is None]
	mentioned = [r for r in answered if r.mentioned]
	visibility = round(len(mentioned) / total * 100) if total else 0
	accuracy = round(len(answered) / total * 100) if total else 0

	if not mentioned:
		return ProviderScore(
			provider=provider,
			aeo_score=0,
			visibility=0,
			ranking=0,
			relevance=0,
			accuracy=accuracy,
			mentioned_queries=0,
			total_queries=total,
			analysis=f"No mentions found for {business_name} in any of the {total} answers.",
			query_results=results,
		)

	name = business_name.lower()
	ranking = round(sum(_position_points(r.rank_position) for r in mentioned) / len(mentioned))
	relevance = min(100, round(sum(r.response.lower().count(name) * 20 for r in mentioned) / len(mentioned)))
	aeo_score = round(ranking * 0.5 + visibility * 0.3 + relevance * 0.2)

	return ProviderScore(
		provider=provider,
		aeo_score=aeo_score,
		visibility=visibility,
		ranking=ranking,
		relevance=relevance,
		accuracy=accuracy,
		mentioned_queries=len(mentioned),
		total_queries=total,
		analysis=f"{business_name} appeared in {len(mentioned)} of {total} answers with an average position score of {ranking}.",
		query_results=results,
	)


def average_rank(scores: List[ProviderScore]) -> Optional[int]:
	if not scores:
		return None
	return round(sum(s.aeo_score for s in scores) / len(scores))
