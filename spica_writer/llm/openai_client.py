"""
OpenAI chat-completions client.
Sends one system/user prompt pair per call and classifies every failure.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from openai import APIConnectionError, APIStatusError, OpenAI

from spica_writer.exceptions import ApiError, ConfigError, NetworkError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
API_KEY_ENV_VAR = "OPENAI_API_KEY"


class OpenAIClient:
    """
    Client for an OpenAI-compatible chat-completions endpoint.

    No retries, no streaming, no conversation history: each call is a single
    request whose outcome is either the reply text or one classified error.

    Usage:
        client = OpenAIClient()
        text = client.send_prompt("You are a planner.", "Plan the next scene.")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: Bearer credential (default: OPENAI_API_KEY from the environment)
            base_url: API base URL; requests go to {base_url}/chat/completions
            model: Model identifier sent with every request
            http_client: Optional httpx client (custom transport, proxies)

        Raises:
            ConfigError: No API key was given or found in the environment
        """
        self.api_key = api_key or os.getenv(API_KEY_ENV_VAR)
        if not self.api_key:
            raise ConfigError(f"{API_KEY_ENV_VAR} not found in environment")

        self.base_url = base_url.rstrip('/')
        self.model = model

        self.client = OpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            max_retries=0,
            http_client=http_client
        )

        logger.info(f"Initialized OpenAI client: model={model}, base_url={self.base_url}, "
                    f"api_key={self.api_key[:4]}...")

    @staticmethod
    def build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
        """The two ordered messages of a request: system, then user"""
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ]

    def send_prompt(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send a system/user prompt pair and return the first choice's content.

        Args:
            system_prompt: System message content
            user_prompt: User message content

        Returns:
            Raw reply text

        Raises:
            NetworkError: No HTTP response was received
            UpstreamError: Non-success status with a structured error envelope
            ApiError: Non-success status without an envelope, or a success
                response that is not a completions envelope with a choice
        """
        messages = self.build_messages(system_prompt, user_prompt)

        prompt_chars = sum(len(m['content']) for m in messages)
        logger.info(f"API Request: {len(messages)} messages, ~{prompt_chars} chars, "
                    f"~{self.estimate_tokens(system_prompt + user_prompt)} tokens, model={self.model}")

        try:
            raw = self.client.chat.completions.with_raw_response.create(
                model=self.model,
                messages=messages
            )
        except APIConnectionError as e:
            logger.error(f"Network error calling {self.base_url}: {e}")
            raise NetworkError(f"Network error: {e}") from e
        except APIStatusError as e:
            raise self._classify_error_response(e.response.status_code, e.response.text) from e

        http_response = raw.http_response
        completion = self._extract_completion(http_response.status_code, http_response.text)
        logger.info(f"API Response: {len(completion)} chars")
        return completion

    def _classify_error_response(self, status: int, body: str) -> Exception:
        """
        Map a non-success response to UpstreamError or ApiError.

        Args:
            status: HTTP status code
            body: Raw response body

        Returns:
            The exception to raise
        """
        envelope = self._parse_error_envelope(body)
        if envelope is not None:
            message, error_type, code = envelope
            logger.error(f"OpenAI API error ({status}): {message} ({code})")
            return UpstreamError(message, code=code, error_type=error_type, status=status)

        logger.error(f"HTTP error {status}: {body[:500]}")
        return ApiError(status, body)

    @staticmethod
    def _parse_error_envelope(body: str) -> Optional[tuple]:
        """
        Decode ``{"error": {"message", "type", "code"}}``.

        Returns:
            (message, type, code) or None if the body is not such an envelope
        """
        try:
            data = json.loads(body)
        except (ValueError, TypeError):
            return None

        if not isinstance(data, dict) or not isinstance(data.get('error'), dict):
            return None

        error = data['error']
        message = error.get('message')
        if not isinstance(message, str) or 'type' not in error or 'code' not in error:
            return None

        code = error['code']
        error_type = error['type']
        return (
            message,
            str(error_type) if error_type is not None else None,
            str(code) if code is not None else None
        )

    @staticmethod
    def _extract_completion(status: int, body: str) -> str:
        """
        Pull ``choices[0].message.content`` out of a success body.

        Raises:
            ApiError: Body is not a completions envelope with at least one choice
        """
        try:
            data: Any = json.loads(body)
        except (ValueError, TypeError):
            logger.error(f"Success response is not JSON: {body[:500]}")
            raise ApiError(status, body, reason="response is not valid JSON")

        choices = data.get('choices') if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            logger.error(f"Success response has no choices: {body[:500]}")
            raise ApiError(status, body, reason="response has no choices")

        message = choices[0].get('message') if isinstance(choices[0], dict) else None
        content = message.get('content') if isinstance(message, dict) else None
        if not isinstance(content, str):
            logger.error(f"First choice has no message content: {body[:500]}")
            raise ApiError(status, body, reason="first choice has no message content")

        if not content:
            logger.warning("Empty completion received")
        return content

    def estimate_tokens(self, text: str) -> int:
        """
        Rough estimation of token count.

        Args:
            text: Input text

        Returns:
            Estimated token count
        """
        # Rough approximation: ~4 chars per token
        return len(text) // 4
