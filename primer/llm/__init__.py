"""LLM libraries for Personal Primer."""

from primer.llm.client import LLMClient, get_llm_client
from primer.llm.generation import ContentGenerationClient
from primer.llm.response_parser import ResponseParser, get_response_parser

__all__ = [
    # Client
    "LLMClient",
    "get_llm_client",
    # Curator roles
    "ContentGenerationClient",
    # Parsing
    "ResponseParser",
    "get_response_parser",
]
