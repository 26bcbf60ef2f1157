"""LLM helpers for the contact pipeline."""

from .openai_client import ContactAIClient
from .response_parser import ParseOutcome, parse_json_payload

__all__ = ["ContactAIClient", "ParseOutcome", "parse_json_payload"]
