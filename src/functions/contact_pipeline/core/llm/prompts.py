"""Prompt templates for contact enrichment calls."""

from __future__ import annotations

from typing import List

from ..contracts import ContactRecord

BIO_RESEARCH_SYSTEM_PROMPT = """Search the web for professional information about this person.
Return ONLY a valid JSON object with exactly these fields:
{
  "title": "Their current job title/role",
  "bio": "A 2-3 sentence professional bio based on real web search results",
  "company": "Their current company name",
  "found": true or false
}
Only set found:true if you found REAL information from web search. If unsure, set found:false."""

INVESTOR_RESEARCH_SYSTEM_PROMPT = """Search the web for investment thesis information about this investor/fund.
Return ONLY a valid JSON object with exactly these fields:
{
  "thesis_summary": "2-3 sentence summary of their investment focus based on web search",
  "sectors": ["sector1", "sector2"],
  "stages": ["Seed", "Series A"],
  "check_sizes": ["$500K-2M"],
  "geographic_focus": ["US", "Europe"],
  "found": true or false
}
Only set found:true if you found REAL thesis information from web search. If unsure, set found:false."""

THESIS_SYSTEM_PROMPT = "You extract structured investment and professional focus data. Reply with JSON only."


def _search_query(contact: ContactRecord, suffix: str) -> str:
    parts: List[str] = [
        contact.name or "",
        contact.company or "",
        f"site:{contact.website}" if contact.website else "",
        suffix,
    ]
    return " ".join(part for part in parts if part)


def build_bio_research_query(contact: ContactRecord) -> str:
    return _search_query(contact, "professional bio background")


def build_investor_research_query(contact: ContactRecord) -> str:
    return _search_query(contact, "investment thesis focus areas portfolio stages check size")


def build_bio_prompt(contact: ContactRecord) -> str:
    return (
        "Generate a brief professional bio (2-3 sentences) for this person based on their "
        "name and available info.\n"
        f"Name: {contact.name}\n"
        f"Company: {contact.company or 'Unknown'}\n"
        f"Title: {contact.title or 'Unknown'}\n\n"
        "Write a professional summary that could appear on LinkedIn. Be concise and factual."
    )


def build_thesis_prompt(profile_text: str) -> str:
    return (
        "Analyze this person's profile and extract investment/professional thesis information.\n\n"
        f"Profile:\n{profile_text}\n\n"
        "Return JSON with these fields:\n"
        '- sectors: array of industry sectors (e.g., "FinTech", "HealthTech", "SaaS")\n'
        '- stages: array of investment stages if investor (e.g., "Seed", "Series A")\n'
        '- check_sizes: array of check sizes if investor (e.g., "$100K-$500K")\n'
        '- geos: array of geographic focus areas (e.g., "San Francisco Bay Area", "Europe")\n'
        "- keywords: array of 3-5 key focus areas or expertise\n"
        "- summary: one sentence summary of their focus\n\n"
        "Return only valid JSON, no markdown."
    )
