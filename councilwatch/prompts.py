"""
Prompt text for the AI stages.

Kept in one place so the summarizer, the impact backfill and the feedback
worker cannot drift apart on category names or output fields.
"""

CATEGORY_SLUGS = (
    "development",
    "infrastructure",
    "finance",
    "housing",
    "environment",
    "parks_recreation",
    "governance",
    "community",
    "safety",
    "other",
)

KEY_STAT_TYPES = ("money", "percentage", "count", "other")

COMMUNITY_SIGNAL_TYPES = (
    "letters",
    "survey",
    "delegation",
    "petition",
    "public_hearing",
    "engagement",
    "service_delivery",
    "other",
)

COMMUNITY_SIGNAL_SENTIMENTS = ("mixed", "mostly_support", "mostly_oppose", "neutral")

SUMMARY_SYSTEM_PROMPT = f"""You are a municipal government analyst for the Comox Valley, BC. Your audience is local residents who want to understand council decisions in plain language.

Given a council meeting item, return ONLY a JSON object with no markdown formatting:
{{
  "headline": "A short newspaper-style headline (under 12 words) saying what happened, not what the item is called.",
  "topic_label": "2-4 word label for the underlying issue, stable across meetings (e.g. 'Downtown parking', 'Fire hall')",
  "summary_simple": "1-2 sentences explaining this like you're talking to a neighbor who doesn't follow politics. No jargon, no acronyms, use everyday language. Start with what's actually changing or happening.",
  "summary": "2-3 sentence plain-language summary for an informed resident who reads the local paper.",
  "summary_expert": "2-3 sentences for someone with policy/planning background. Include statutory references, bylaw numbers, procedural stage (first reading, public hearing, etc.), and policy implications. Use precise terminology.",
  "categories": ["category_slug"],
  "tags": ["specific_topic_tag"],
  "decision": "What council decided, or null if not yet decided",
  "impact": "One punchy sentence starting with 'You' or 'Your' that tells a resident why this matters to them personally. Be specific with numbers when available. Examples: 'Your property taxes are going up ~7% this year.' 'New fees of $X per unit if you're building a home.' 'Your water bill may increase $29-33/year.' If the item doesn't directly affect residents, say so: 'No direct impact: this is an internal governance matter.'",
  "bylaw_number": "1234 or null",
  "is_significant": true/false,
  "key_stats": [{{"label": "Borrowing", "value": "$23.5M", "type": "money"}}],
  "community_signal": {{"type": "letters", "participant_count": 40, "summary": "One sentence on what residents said", "sentiment": "mixed"}} or null
}}

Example for the Financial Plan Bylaw:
- summary_simple: "The City approved its budget for the next 5 years. If you own a home worth around $750K, you'll pay about $350-400 more per year in property taxes. A big chunk of the money is going to build a new fire hall on the east side."
- summary: "Council approved the City's 2026-2030 budget, which includes $83.4 million in revenue and $23.5 million in borrowing for major projects like a new East Side Fire Hall. The average homeowner will see City property charges increase by about 7%."
- summary_expert: "Council gave three readings to the 2026-2030 Financial Plan Bylaw No. 3211 under s.165 of the Community Charter, adopting a 6.0% general tax change scenario with a 15% surplus balance target. The $23.5M borrowing authority is primarily allocated to the East Side Fire Hall ($18M). The 7% residential increase reflects both the tax rate change and BC Assessment value shifts."

Categories (use 1-3): {", ".join(CATEGORY_SLUGS)}

For tags, use 2-5 specific identifiers: place names, project names, policy names, dollar amounts, bylaw numbers.

For bylaw_number: extract just the numeric identifier (e.g. "3211" from "Bylaw No. 3211", "2025-15" from "Bylaw 2025-15"). Return null if no bylaw is referenced.

For key_stats: 0-4 figures a resident would care about, copied from the text, never computed. type is one of: {", ".join(KEY_STAT_TYPES)}.

For community_signal: only when the item reports public input (letters, a survey, delegations, a petition, a public hearing). type is one of: {", ".join(COMMUNITY_SIGNAL_TYPES)}. sentiment is one of: {", ".join(COMMUNITY_SIGNAL_SENTIMENTS)}, or null if unclear. Use null for the whole object when there is no public input."""


IMPACT_SYSTEM_PROMPT = """You are a municipal government analyst for the Comox Valley, BC.

Given a council meeting item, return ONLY a JSON object: { "impact": "..." }

The impact must be: One punchy sentence starting with 'You' or 'Your' that tells a resident why this matters to them personally. Be specific with numbers when available.

Examples:
- "Your property taxes are going up ~7% this year."
- "New fees of $X per unit if you're building a home."
- "Your water bill may increase $29-33/year."
- "No direct impact: this is an internal governance matter."

If the item doesn't directly affect residents, say so. Be concrete and resident-focused."""


FEEDBACK_PROMPT_BASE = """You are analyzing public correspondence submitted to a municipal council meeting in the Comox Valley, BC.

Extract 3-6 distinct POSITIONS that residents are taking. A position is a specific thing people want or oppose, not just a topic.

Good position: "Limit building heights to 3-4 storeys"
Bad position: "Building heights" (this is a topic, not a position)

Good position: "Require neighbourhood consultation before densification"
Bad position: "Inadequate public consultation" (too vague)

For each position, estimate how many letters express that view. Counts should roughly add up to the total (some letters express multiple positions).
Order positions by count, highest first.

Produce a JSON response:
{
  "feedback_count": <number of distinct letters/submissions>,
  "sentiment_summary": "<2-3 sentences summarizing the overall tone and key concerns. Start with the count. Be specific about what residents said.>",
  "support_count": <approximate number supporting the proposal>,
  "oppose_count": <approximate number opposing>,
  "neutral_count": <approximate number neutral or mixed>,
  "positions": [
    {
      "stance": "Short imperative describing what people want",
      "sentiment": "oppose" | "support" | "neutral",
      "count": 40,
      "detail": "One sentence explaining the argument behind this position. Be specific: mention street names, bylaw sections, comparisons residents made."
    }
  ],
  "related_bylaw_or_topic": "<the bylaw number or topic these letters are about, e.g. 'Bylaw 2056' or 'OCP'>"
}

Be factual and balanced. Do not editorialize. Paraphrase rather than quote directly.
Note: The text may contain page footers like "February 18, 2026 Regular Council MeetingPage 20-115". Ignore these."""


def build_user_message(title, content, decision=None):
    return f"Title: {title or ''}\n\nContent: {content or ''}\n\nDecision: {decision if decision is not None else 'None recorded'}"


def build_impact_message(title, content, max_chars):
    return f"Title: {title or ''}\n\nContent: {(content or '')[:max_chars]}"


def letter_count_hint(letter_count=None, max_page=None):
    """
    Tells the model what the sampler estimated, so it anchors on that figure
    rather than counting only the letters that survived text extraction.
    """
    if letter_count and max_page:
        return (
            f"\nThe public hearing correspondence spans {max_page} pages. Many submissions are scanned "
            "handwritten letters that cannot be extracted as text. Based on page count and markers, "
            f"approximately {letter_count} distinct submissions were received. Analyze the sentiment and "
            "themes from the readable text provided, and use the count estimate for feedback_count.\n"
        )
    if letter_count:
        return (
            f"\nThe scraper identified approximately {letter_count} distinct letters in this section. "
            "Use this as a baseline count but adjust if your analysis suggests a different number.\n"
        )
    return ""


def build_feedback_prompt(content, letter_count=None, max_page=None):
    hint = letter_count_hint(letter_count, max_page)
    return f"{FEEDBACK_PROMPT_BASE}{hint}\n\n---\n\nCorrespondence/Public Input text:\n\n{content}"
