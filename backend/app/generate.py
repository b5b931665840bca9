#!/usr/bin/env python3
"""
Generation module for the store assistant.

This module handles answer generation using the Gemini LLM API, either as one
complete reply or as a stream of text fragments (server-sent events).
"""

import json
from typing import Any, Dict, Iterator, List, Optional

import requests

from .config import Config, ConfigurationError
from ..utils.logger import get_logger

logger = get_logger("generate")


class GenerationError(Exception):
    """The Gemini API call failed or returned something unusable."""


class GenerationClient:
    """Client for generating answers using Gemini LLM API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 temperature: Optional[float] = None, max_output_tokens: Optional[int] = None):
        """Initialize the generation client."""
        self.api_key = api_key or Config.GEMINI_API_KEY
        self.llm_model = model or Config.GEMINI_MODEL
        self.temperature = Config.GEMINI_TEMPERATURE if temperature is None else temperature
        self.max_output_tokens = max_output_tokens or Config.GEMINI_MAX_OUTPUT_TOKENS
        self.timeout = Config.GEMINI_TIMEOUT
        self.api_base_url = f"{Config.GEMINI_API_BASE}/models/{self.llm_model}"

        if not self.api_key:
            raise ConfigurationError("Gemini API key is required (set GEMINI_API_KEY)")

    def _build_payload(self, system_instruction: str, contents: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        """Concatenate the text parts of the first candidate ('' if there are none)."""
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    def generate_answer(self, system_instruction: str, contents: List[Dict[str, Any]]) -> str:
        """
        Generate a complete answer.

        Args:
            system_instruction: Grounding instruction for the model
            contents: Conversation so far, ending with the new user turn

        Returns:
            Generated answer text (may be empty)
        """
        payload = self._build_payload(system_instruction, contents)
        logger.debug(f"Gemini generateContent model={self.llm_model} turns={len(contents)}")

        try:
            response = requests.post(
                f"{self.api_base_url}:generateContent",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
            if response.status_code != 200:
                logger.warning(f"Gemini error response {response.status_code}: {response.text[:500]}")
                response.raise_for_status()
            return self._extract_text(response.json()).strip()

        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Error generating answer: {e}") from e
        except (ValueError, KeyError, IndexError, AttributeError) as e:
            raise GenerationError(f"Error parsing generation response: {e}") from e

    def stream_answer(self, system_instruction: str, contents: List[Dict[str, Any]]) -> Iterator[str]:
        """
        Generate an answer as text fragments, in arrival order.

        The HTTP response is closed when the iterator is exhausted, fails, or
        is closed early by the caller.
        """
        payload = self._build_payload(system_instruction, contents)
        logger.debug(f"Gemini streamGenerateContent model={self.llm_model} turns={len(contents)}")

        try:
            response = requests.post(
                f"{self.api_base_url}:streamGenerateContent",
                params={"key": self.api_key, "alt": "sse"},
                json=payload,
                timeout=self.timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Error starting stream: {e}") from e

        try:
            if response.status_code != 200:
                logger.warning(f"Gemini stream error response {response.status_code}")
                response.raise_for_status()
            # text/event-stream carries no charset; requests would assume ISO-8859-1
            response.encoding = "utf-8"
            for line in response.iter_lines(decode_unicode=True):
                if not line or not line.startswith("data:"):
                    continue
                chunk = json.loads(line[len("data:"):].strip())
                text = self._extract_text(chunk)
                if text:
                    yield text
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Error while streaming answer: {e}") from e
        except (ValueError, AttributeError) as e:
            raise GenerationError(f"Error parsing stream chunk: {e}") from e
        finally:
            response.close()
