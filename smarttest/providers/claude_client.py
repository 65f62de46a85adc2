"""
Claude API client used as the default text-generation backend.

This module wraps the asynchronous Anthropic client and maps its failures
onto smarttest's error taxonomy.
"""

import asyncio
import logging
import os
from typing import Optional

import anthropic
from anthropic.types import TextBlock

from ..errors import OperationTimeoutError, ProviderError, ProviderNotAvailableError
from .base_provider import BaseProvider, GenerateOptions

logger = logging.getLogger(__name__)


class ClaudeClient(BaseProvider):
    """
    Client for generating and repairing tests with the Claude API.

    Parameters
    ----------
    api_key : str, optional
        Anthropic API key. If not provided, reads from ANTHROPIC_API_KEY environment variable.
    model : str, optional
        Claude model to use. Defaults to claude-sonnet-4-20250514.
    max_retries : int, optional
        Maximum number of attempts for rate-limited requests. Defaults to 3.
    retry_delay : float, optional
        Base delay in seconds between rate-limit retries. Defaults to 1.0.
    timeout : float, optional
        Default timeout in seconds for API requests. Defaults to 120.0.

    Notes
    -----
    The client is created lazily, so a missing key only fails at call time
    with ProviderNotAvailableError. Other recoverable failures (timeouts,
    connection errors, overloaded API) are raised immediately for the
    caller's retry policy to handle.
    """

    name = 'anthropic'

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 120.0
    ):
        self.api_key = api_key or os.environ.get('ANTHROPIC_API_KEY')
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ProviderNotAvailableError(
                    self.name, "ANTHROPIC_API_KEY environment variable is not set"
                )
            # Retries are handled here and by the pipeline, not by the SDK
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    async def is_available(self) -> bool:
        return bool(self.api_key)

    def _should_retry(self, attempt: int) -> tuple[bool, float]:
        """
        Determine if retry should occur and calculate backoff delay.

        Parameters
        ----------
        attempt : int
            Current attempt number (0-indexed).

        Returns
        -------
        tuple[bool, float]
            Tuple of (should_retry, delay_seconds). If should_retry is False,
            delay_seconds will be 0.0.

        Notes
        -----
        Uses exponential backoff: delay = retry_delay * (2 ** attempt)
        """
        if attempt < self.max_retries - 1:
            delay = self.retry_delay * (2 ** attempt)
            return (True, delay)
        return (False, 0.0)

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        """
        Send ``prompt`` to Claude and return the text of the reply.

        Parameters
        ----------
        prompt : str
            The full user prompt.
        options : GenerateOptions, optional
            Temperature, token budget, timeout, model and system prompt.

        Returns
        -------
        str
            Concatenated text blocks of the response.

        Raises
        ------
        ProviderNotAvailableError
            If no API key is configured.
        ProviderError
            On authentication, unknown model, rate limits that persist after
            all attempts, connection and server errors.
        OperationTimeoutError
            If the request times out.
        """
        options = options or GenerateOptions()
        model = options.model or self.model
        timeout = options.timeout or self.timeout

        kwargs = {
            'model': model,
            'max_tokens': options.max_tokens,
            'temperature': options.temperature,
            'timeout': timeout,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        if options.system_prompt:
            kwargs['system'] = options.system_prompt

        client = self.client
        for attempt in range(self.max_retries):
            try:
                message = await client.messages.create(**kwargs)
                return self._extract_text(message)

            except anthropic.RateLimitError as e:
                should_retry, delay = self._should_retry(attempt)
                if should_retry:
                    logger.warning("Rate limited by Claude API, retrying in %.1fs", delay)
                    await asyncio.sleep(delay)
                    continue
                raise ProviderError("Rate limit exceeded", self.name, recoverable=True) from e

            except anthropic.APITimeoutError as e:
                raise OperationTimeoutError(f"{self.name}.generate", timeout) from e

            except anthropic.AuthenticationError as e:
                raise ProviderError("Invalid API key", self.name, recoverable=False) from e

            except anthropic.NotFoundError as e:
                raise ProviderError(f"Model not found: {model}", self.name, recoverable=False) from e

            except anthropic.APIConnectionError as e:
                raise ProviderError(f"Connection failed: {e}", self.name, recoverable=True) from e

            except anthropic.APIStatusError as e:
                # 5xx and 529 (overloaded) are transient
                raise ProviderError(
                    f"API error {e.status_code}: {e.message}",
                    self.name,
                    recoverable=e.status_code >= 500,
                    details={'status_code': e.status_code},
                ) from e

        raise ProviderError("No attempts were made", self.name, recoverable=False)

    def _extract_text(self, message) -> str:
        parts = []
        for content_block in message.content:
            if isinstance(content_block, TextBlock):
                parts.append(content_block.text)
            elif hasattr(content_block, 'text'):
                # For duck-typing compatibility (e.g., test mocks)
                parts.append(content_block.text)
        if not parts:
            raise ProviderError("Response contained no text content", self.name, recoverable=True)
        return ''.join(parts)
