"""
Prompt templates for the Claude-backed oracle and publication summarizer.
"""

ARBITRATION_SYSTEM_PROMPT = """You are an editor for a daily cybersecurity threat report.
You compare a newly drafted article against an article that was already published
and decide how the new draft should be handled.

Respond with a single JSON object and nothing else."""


ARBITRATION_USER_TEMPLATE = """PUBLISHED ARTICLE:
{canonical_text}

NEW DRAFT:
{candidate_text}

Lexical similarity score between the two: {score:.1f}

DECISION CRITERIA:

NEW - publish as a separate article if:
- It reports a different incident or vulnerability, even if it shares vendors, products or threat actors
- Different victims, attack vectors or campaign
- Substantially different technical details

UPDATE - merge into the published article if:
- It reports new developments or consequences of the same incident
- It adds new technical details (CVEs, IOCs, TTPs) for the same incident
- It reports additional victims of the same campaign
- It provides patch or mitigation information for the same vulnerability

SKIP - drop the draft if:
- It covers the same incident with different wording
- It adds no information beyond the published article

Reply with this JSON shape:
{{
  "decision": "NEW" | "UPDATE" | "SKIP",
  "confidence": "high" | "medium" | "low",
  "rationale": "2-4 sentences naming the key similarities and differences",
  "update_summary": "for UPDATE only: one or two sentences describing what is new",
  "update_content": "for UPDATE only: 100-150 words on the new developments, to be appended to the published article",
  "severity_change": "increased" | "decreased" | "unchanged"
}}

For UPDATE, severity_change says whether the new developments make the incident more or less severe.
Omit the update_* fields and severity_change for NEW and SKIP."""


PUBLICATION_SYSTEM_PROMPT = """You write the headline and summary of a daily cybersecurity threat report.
Respond with a single JSON object and nothing else."""


PUBLICATION_USER_TEMPLATE = """The report for {pub_date} contains these articles:

{article_list}

Write a headline (at most 120 characters) covering the most significant stories and a
summary of 2-3 sentences covering the report as a whole. Mention only stories listed above.

Reply with this JSON shape:
{{
  "headline": "...",
  "summary": "..."
}}"""


def build_arbitration_prompt(candidate_text: str, canonical_text: str, score: float) -> str:
    return ARBITRATION_USER_TEMPLATE.format(
        candidate_text=candidate_text,
        canonical_text=canonical_text,
        score=score,
    )


def build_publication_prompt(pub_date: str, articles: list[tuple[str, str]]) -> str:
    """
    Build the publication summary prompt.

    Args:
        pub_date: Publication date
        articles: (headline, summary) pairs in publication order
    """
    article_list = "\n".join(
        f"{i}. {headline}\n   {summary}" for i, (headline, summary) in enumerate(articles, 1)
    )
    return PUBLICATION_USER_TEMPLATE.format(pub_date=pub_date, article_list=article_list)
