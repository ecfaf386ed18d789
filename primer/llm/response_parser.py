"""
Response Parser - generation response parsing and JSON repair.

Centralized parsing for every structured response the curator asks for:
- Artifact-triple proposals
- Single-artifact alternatives and replacements
- Coherence verdicts
- Framing text
- Arc summaries and next-arc proposals

Parsing tolerates JSON wrapped in prose or code fences and a few common
repairs. A response that still cannot be coerced into the expected shape is a
hard failure of that call (GenerationError); there is no retry at this layer.
"""

import json
import logging
import re
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from primer.core.exceptions import GenerationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ResponseParser:
    """
    Parses generation responses with JSON repair and shape validation.

    Handles common output issues:
    - Code block wrappers (```json ... ```)
    - Prose before or after the JSON object
    - Trailing commas
    - Single quotes instead of double quotes
    """

    def parse_json(self, response: str) -> Dict[str, Any]:
        """
        Parse a JSON object from a response.

        Raises:
            ValueError: If no JSON object can be parsed after repair attempts
        """
        text = response.strip()

        # Try to extract from code block
        if "```json" in text:
            start = text.find("```json") + 7
            end = text.find("```", start)
            if end > start:
                text = text[start:end].strip()
        elif "```" in text:
            start = text.find("```") + 3
            end = text.find("```", start)
            if end > start:
                text = text[start:end].strip()

        # Extract JSON boundaries
        json_start = text.find("{")
        json_end = text.rfind("}") + 1
        if json_start >= 0 and json_end > json_start:
            text = text[json_start:json_end]

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"[ResponseParser] JSON parse failed: {e}, attempting repair...")
        else:
            if isinstance(data, dict):
                return data
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        # === JSON REPAIR STRATEGIES ===
        repaired = text

        # Trailing commas before ] or }
        repaired = re.sub(r',\s*([}\]])', r'\1', repaired)

        # Single quotes to double quotes, only when no double quotes exist at all
        if "'" in repaired and '"' not in repaired:
            repaired = repaired.replace("'", '"')

        try:
            data = json.loads(repaired)
        except json.JSONDecodeError:
            logger.error(f"[ResponseParser] Failed to parse JSON: {text[:200]}...")
            raise ValueError(f"Response is not valid JSON: {text[:100]}...")

        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        logger.info("[ResponseParser] JSON repair successful")
        return data

    def parse_model(self, response: str, shape: Type[ModelT]) -> ModelT:
        """
        Parse a response into a pydantic model.

        Raises:
            GenerationError: If the response cannot be coerced into `shape`
        """
        try:
            data = self.parse_json(response)
        except ValueError as e:
            raise GenerationError(str(e), shape=shape.__name__, raw=response) from e

        try:
            return shape.model_validate(data)
        except PydanticValidationError as e:
            logger.error(
                f"[ResponseParser] Response does not match {shape.__name__}: "
                f"{e.error_count()} error(s)"
            )
            raise GenerationError(
                f"Response does not match {shape.__name__}: {e}",
                shape=shape.__name__,
                raw=response,
            ) from e

    def parse_nested_model(self, response: str, key: str, shape: Type[ModelT]) -> ModelT:
        """
        Parse a model that may arrive either bare or wrapped under `key`.

        Alternatives are sometimes returned as {"image": {...}} rather than {...}.
        """
        try:
            data = self.parse_json(response)
        except ValueError as e:
            raise GenerationError(str(e), shape=shape.__name__, raw=response) from e

        if isinstance(data.get(key), dict):
            data = data[key]

        try:
            return shape.model_validate(data)
        except PydanticValidationError as e:
            raise GenerationError(
                f"Response does not match {shape.__name__}: {e}",
                shape=shape.__name__,
                raw=response,
            ) from e


_response_parser: ResponseParser | None = None


def get_response_parser() -> ResponseParser:
    """Get the global ResponseParser instance."""
    global _response_parser
    if _response_parser is None:
        _response_parser = ResponseParser()
    return _response_parser
