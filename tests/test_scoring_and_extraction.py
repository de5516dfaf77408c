import httpx
import pytest

from app.db.models.request_log import RequestLog
from app.services.exceptions import ModelQueryError, RetryableJobError
from app.services.ranking_services import (
    average_rank,
    evaluate_response,
    name_variations,
    rank_position,
    score_provider,
)
from app.services.website_services import WebsiteExtractor, fallback_business_info, html_to_text


def test_name_variations_strip_company_suffix():
    variations = name_variations("Acme Widgets Inc.")
    assert variations[0] == "Acme Widgets Inc."
    assert "Acme Widgets" in variations
    assert "AcmeWidgets" in variations


def test_rank_position_buckets():
    assert rank_position(0) == 1
    assert rank_position(49) == 1
    assert rank_position(50) == 2
    assert rank_position(200) == 3
    assert rank_position(499) == 4
    assert rank_position(500) == 5


def test_evaluate_response_detects_early_mention():
    result = evaluate_response("best crm?", "Acme is the best CRM for small teams.", "Acme")
    assert result.mentioned is True
    assert result.rank_position == 1
    assert 0 < result.relevance_score <= 100


def test_evaluate_response_without_mention():
    result = evaluate_response("best crm?", "Salesforce and HubSpot lead the market.", "Acme")
    assert result.mentioned is False
    assert result.rank_position == 0


def test_provider_score_weights_and_average():
    results = [
        evaluate_response("q1", "Acme leads the market.", "Acme"),
        evaluate_response("q2", "Nobody else is worth mentioning.", "Acme"),
    ]
    score = score_provider("model-a", "Acme", results)

    assert score.visibility == 50
    assert score.ranking == 100
    assert score.mentioned_queries == 1
    assert score.aeo_score == round(100 * 0.5 + 50 * 0.3 + score.relevance * 0.2)

    empty = score_provider("model-b", "Acme", [evaluate_response("q1", "", "Acme", error="timeout")])
    assert empty.aeo_score == 0
    assert empty.accuracy == 0

    assert average_rank([score, empty]) == round(score.aeo_score / 2)
    assert average_rank([]) is None


def test_html_to_text_skips_scripts_and_keeps_meta_description():
    html = """
    <html><head>
      <meta name="description" content="Freight forwarding for small shops">
      <script>var tracking = 1;</script>
    </head><body><h1>Globex</h1><p>Shipping made simple.</p></body></html>
    """
    text = html_to_text(html)
    assert "Freight forwarding for small shops" in text
    assert "Globex" in text
    assert "tracking" not in text


def test_fallback_business_info_uses_domain():
    info = fallback_business_info("https://www.globex.com/about")
    assert info.business_name == "Globex"
    assert info.confidence == 20
    assert "globex" in info.keywords


def _extractor(handler, extract_json):
    return WebsiteExtractor(timeout_seconds=2, extract_json=extract_json, transport=httpx.MockTransport(handler))


def test_extract_returns_model_output(session_factory):
    seen = {}

    def handler(request):
        return httpx.Response(200, text="<html><body><h1>Globex</h1> freight</body></html>")

    def extract_json(contents, response_schema):
        seen["prompt"] = contents
        return {
            "business_name": "Globex",
            "industry": "Logistics",
            "description": "Freight forwarding",
            "keywords": [" freight ", "", "shipping"],
            "confidence": 85,
        }

    info = _extractor(handler, extract_json).extract("https://globex.example.com", job_id="job-1")

    assert info.business_name == "Globex"
    assert info.keywords == ["freight", "shipping"]
    assert "Globex" in seen["prompt"]
    with session_factory() as db:
        log = db.query(RequestLog).filter_by(direction="outbound", provider="website").one()
        assert log.job_id == "job-1"
        assert log.error_code is None


def test_extract_server_error_is_retryable(session_factory):
    def handler(request):
        return httpx.Response(503)

    with pytest.raises(RetryableJobError):
        _extractor(handler, lambda **kwargs: {}).extract("https://globex.example.com")


def test_extract_client_error_continues_without_page(session_factory):
    def handler(request):
        return httpx.Response(404)

    def extract_json(contents, response_schema):
        assert "(no readable content)" in contents
        raise ModelQueryError("gemini", "gemini-2.5-flash", "blocked", retryable=False)

    info = _extractor(handler, extract_json).extract("https://globex.example.com")

    assert info.business_name == "Globex"
    assert info.confidence == 20
