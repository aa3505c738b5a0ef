from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterator, Protocol

import vertexai
from vertexai.generative_models import GenerationConfig, GenerativeModel

from .errors import GenerationError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


class GenerativeClient(Protocol):
    def generate_content(self, prompt: str, *, temperature: float = 0.5) -> str:
        ...

    def stream_content(self, prompt: str, *, temperature: float = 0.5) -> Iterator[str]:
        ...


def find_json_span(text: str) -> tuple[int, int] | None:
    """Locate the first balanced ``{...}`` span, ignoring braces inside string literals."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return start, index + 1
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first balanced JSON object embedded in free text.

    Args:
        text: Model output, possibly with prose or code fences around the object

    Returns:
        Parsed JSON object

    Raises:
        ValueError: If no balanced object exists or it is not valid JSON
    """
    span = find_json_span(text)
    if span is None:
        raise ValueError("No JSON object found in response")
    try:
        value = json.loads(text[span[0] : span[1]])
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON response: {exc}") from exc
    if not isinstance(value, dict):
        raise ValueError("JSON response is not an object")
    return value


class VertexAIAdapter:
    """Adapter for Vertex AI Gemini models."""

    def __init__(
        self,
        *,
        project_id: str,
        location: str = "asia-northeast1",
        model_name: str = "gemini-1.5-pro",
        max_attempts: int = MAX_ATTEMPTS,
        backoff_seconds: float = 1.0,
    ) -> None:
        """Initialize Vertex AI adapter.

        Args:
            project_id: GCP project ID
            location: Vertex AI location
            model_name: Model name (e.g., "gemini-1.5-pro")
            max_attempts: Transport attempts per call before giving up
            backoff_seconds: Linear backoff between attempts
        """
        self.project_id = project_id
        self.location = location
        self.model_name = model_name
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

        vertexai.init(project=project_id, location=location)
        self.model = GenerativeModel(model_name)

    def generate_content(
        self,
        prompt: str,
        *,
        temperature: float = 0.5,
        max_output_tokens: int = 8192,
    ) -> str:
        """Generate text, retrying transport failures.

        Args:
            prompt: Input prompt
            temperature: Sampling temperature (0.0 - 1.0)
            max_output_tokens: Maximum output tokens

        Returns:
            Generated text
        """
        generation_config = GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.model.generate_content(prompt, generation_config=generation_config)
                generated_text = response.text
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Vertex AI call failed",
                    extra={"model": self.model_name, "attempt": attempt, "error": str(exc)},
                )
                if attempt < self.max_attempts:
                    time.sleep(self.backoff_seconds * attempt)
                continue

            logger.info(
                "Generated content with Vertex AI",
                extra={
                    "model": self.model_name,
                    "temperature": temperature,
                    "attempt": attempt,
                    "input_length": len(prompt),
                    "output_length": len(generated_text),
                },
            )
            return generated_text

        raise GenerationError(
            "Generative service unavailable",
            attempts=self.max_attempts,
            context={"model": self.model_name},
        ) from last_error

    def stream_content(
        self,
        prompt: str,
        *,
        temperature: float = 0.5,
        max_output_tokens: int = 8192,
    ) -> Iterator[str]:
        """Stream text chunks. Only the connection is retried; once chunks flow, errors propagate."""
        generation_config = GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                responses = iter(
                    self.model.generate_content(prompt, generation_config=generation_config, stream=True)
                )
                first = next(responses, None)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Vertex AI stream failed to start",
                    extra={"model": self.model_name, "attempt": attempt, "error": str(exc)},
                )
                if attempt < self.max_attempts:
                    time.sleep(self.backoff_seconds * attempt)
                continue

            if first is not None:
                yield first.text
            for chunk in responses:
                yield chunk.text
            return

        raise GenerationError(
            "Generative service unavailable",
            attempts=self.max_attempts,
            context={"model": self.model_name},
        ) from last_error


__all__ = [
    "GenerativeClient",
    "MAX_ATTEMPTS",
    "VertexAIAdapter",
    "extract_json_object",
    "find_json_span",
]
