from typing import List, Optional


def create_business_extraction_prompt(url: str, page_text: str) -> str:
    base_prompt = f"""
    You are analyzing the business behind the website at: {url}

    Extract the business information and return it strictly in the JSON format of the response schema.

    GUIDELINES:
    - business_name: the main company or brand name, not a tagline or slogan.
    - industry: a standard, searchable industry category (e.g. "Software Development", "Healthcare", "E-commerce").
    - location: only when a clear physical address or city is stated; null for online-only businesses.
    - description: 2-3 sentences on what the business does and who it serves. No marketing fluff.
    - keywords: 5-10 search terms someone would use to find this business.
    - confidence: 0-100, how complete and unambiguous the information on the page is.
    """

    page_section = f"""
    WEBSITE CONTENT (truncated):
    {page_text}
    """

    return base_prompt + page_section


def create_query_generation_prompt(
    business_name: str,
    industry: str,
    keywords: List[str],
    count: int,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    location_rule = f"- Some questions should be local to {location}.\n" if location else ""
    return f"""
    Write {count} questions a potential customer would ask an AI assistant when looking for a
    {industry} provider. The questions are used to measure whether "{business_name}" appears in AI answers.

    RULES:
    - Never mention "{business_name}" by name.
    - Mix "best/top" questions, comparisons and how-to-choose questions.
    - Use these keywords where natural: {", ".join(keywords) if keywords else industry}.
    {location_rule}
    BUSINESS CONTEXT:
    {description or "Not provided"}

    Return the questions in the "queries" array of the response schema.
    """
