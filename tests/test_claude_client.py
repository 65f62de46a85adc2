"""
Tests for ClaudeClient: API interaction, retries and error mapping.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from smarttest.errors import OperationTimeoutError, ProviderError, ProviderNotAvailableError
from smarttest.providers.base_provider import GenerateOptions
from smarttest.providers.claude_client import ClaudeClient


def make_message(*texts):
    message = MagicMock()
    message.content = [MagicMock(text=text) for text in texts]
    return message


def make_response(status_code=429):
    """Helper to create a mock HTTP response."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = {}
    return response


@pytest.fixture
def mock_client():
    """Patch the async Anthropic client class and return its instance."""
    with patch('anthropic.AsyncAnthropic') as mock_class:
        client = MagicMock()
        client.messages.create = AsyncMock()
        mock_class.return_value = client
        yield client


class TestClaudeClientInitialization:
    """Test ClaudeClient initialization and configuration."""

    def test_initialization_with_api_key_parameter(self):
        client = ClaudeClient(api_key='sk-ant-test-key')

        assert client.api_key == 'sk-ant-test-key'
        assert client.model == 'claude-sonnet-4-20250514'
        assert client.max_retries == 3
        assert client.retry_delay == 1.0
        assert client.timeout == 120.0
        assert client.name == 'anthropic'

    def test_initialization_with_environment_variable(self):
        with patch.dict('os.environ', {'ANTHROPIC_API_KEY': 'sk-ant-env-key'}):
            client = ClaudeClient()

        assert client.api_key == 'sk-ant-env-key'

    @pytest.mark.asyncio
    async def test_missing_key_fails_at_call_time(self):
        """Test that a missing key is reported by availability and on use."""
        with patch.dict('os.environ', {}, clear=True):
            client = ClaudeClient()

        assert await client.is_available() is False
        with pytest.raises(ProviderNotAvailableError, match='ANTHROPIC_API_KEY'):
            await client.generate('prompt')

    def test_should_retry_backoff(self):
        client = ClaudeClient(api_key='sk-ant-test', max_retries=3, retry_delay=1.0)

        assert client._should_retry(0) == (True, 1.0)
        assert client._should_retry(1) == (True, 2.0)
        assert client._should_retry(2) == (False, 0.0)


class TestClaudeClientAPIInteraction:
    """Test request construction and response handling."""

    @pytest.mark.asyncio
    async def test_successful_generation(self, mock_client):
        mock_client.messages.create.return_value = make_message('```ts\nit()\n```')

        client = ClaudeClient(api_key='sk-ant-test')
        result = await client.generate('Write tests')

        assert result == '```ts\nit()\n```'
        call_kwargs = mock_client.messages.create.call_args[1]
        assert call_kwargs['model'] == 'claude-sonnet-4-20250514'
        assert call_kwargs['max_tokens'] == 4096
        assert call_kwargs['temperature'] == 0.7
        assert call_kwargs['timeout'] == 120.0
        assert call_kwargs['messages'] == [{'role': 'user', 'content': 'Write tests'}]
        assert 'system' not in call_kwargs

    @pytest.mark.asyncio
    async def test_options_are_passed_through(self, mock_client):
        mock_client.messages.create.return_value = make_message('ok')

        client = ClaudeClient(api_key='sk-ant-test')
        await client.generate('p', GenerateOptions(
            temperature=0.2, max_tokens=1000, timeout=30.0,
            model='claude-opus-4-20250514', system_prompt='Be terse.',
        ))

        call_kwargs = mock_client.messages.create.call_args[1]
        assert call_kwargs['temperature'] == 0.2
        assert call_kwargs['max_tokens'] == 1000
        assert call_kwargs['timeout'] == 30.0
        assert call_kwargs['model'] == 'claude-opus-4-20250514'
        assert call_kwargs['system'] == 'Be terse.'

    @pytest.mark.asyncio
    async def test_text_blocks_are_joined(self, mock_client):
        mock_client.messages.create.return_value = make_message('part one, ', 'part two')

        result = await ClaudeClient(api_key='sk-ant-test').generate('p')

        assert result == 'part one, part two'

    @pytest.mark.asyncio
    async def test_response_without_text(self, mock_client):
        message = MagicMock()
        message.content = []
        mock_client.messages.create.return_value = message

        with pytest.raises(ProviderError, match='no text content'):
            await ClaudeClient(api_key='sk-ant-test').generate('p')


class TestClaudeClientRetryLogic:
    """Test retry behaviour for rate limits."""

    @pytest.mark.asyncio
    @patch('asyncio.sleep', new_callable=AsyncMock)
    async def test_retry_on_rate_limit(self, mock_sleep, mock_client):
        mock_client.messages.create.side_effect = [
            anthropic.RateLimitError('Rate limit exceeded', response=make_response(429), body=None),
            make_message('done'),
        ]

        client = ClaudeClient(api_key='sk-ant-test', retry_delay=1.0)
        result = await client.generate('p')

        assert result == 'done'
        assert mock_client.messages.create.call_count == 2
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    @patch('asyncio.sleep', new_callable=AsyncMock)
    async def test_rate_limit_exhausted(self, mock_sleep, mock_client):
        mock_client.messages.create.side_effect = anthropic.RateLimitError(
            'Rate limit', response=make_response(429), body=None
        )

        client = ClaudeClient(api_key='sk-ant-test', max_retries=3)
        with pytest.raises(ProviderError, match='Rate limit exceeded') as exc_info:
            await client.generate('p')

        assert exc_info.value.recoverable
        assert mock_client.messages.create.call_count == 3
        assert mock_sleep.await_count == 2


class TestClaudeClientErrorMapping:
    """Test translation of SDK errors."""

    @pytest.mark.asyncio
    async def test_authentication_error(self, mock_client):
        mock_client.messages.create.side_effect = anthropic.AuthenticationError(
            'bad key', response=make_response(401), body=None
        )

        with pytest.raises(ProviderError, match='Invalid API key') as exc_info:
            await ClaudeClient(api_key='sk-ant-test').generate('p')

        assert not exc_info.value.recoverable
        assert mock_client.messages.create.call_count == 1

    @pytest.mark.asyncio
    async def test_model_not_found(self, mock_client):
        mock_client.messages.create.side_effect = anthropic.NotFoundError(
            'no model', response=make_response(404), body=None
        )

        with pytest.raises(ProviderError, match='Model not found') as exc_info:
            await ClaudeClient(api_key='sk-ant-test', model='claude-x').generate('p')

        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_server_error_is_recoverable(self, mock_client):
        mock_client.messages.create.side_effect = anthropic.InternalServerError(
            'overloaded', response=make_response(529), body=None
        )

        with pytest.raises(ProviderError) as exc_info:
            await ClaudeClient(api_key='sk-ant-test').generate('p')

        assert exc_info.value.recoverable
        assert exc_info.value.details['status_code'] == 529

    @pytest.mark.asyncio
    async def test_bad_request_is_not_recoverable(self, mock_client):
        mock_client.messages.create.side_effect = anthropic.BadRequestError(
            'too long', response=make_response(400), body=None
        )

        with pytest.raises(ProviderError) as exc_info:
            await ClaudeClient(api_key='sk-ant-test').generate('p')

        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_timeout(self, mock_client):
        mock_client.messages.create.side_effect = anthropic.APITimeoutError(request=MagicMock())

        with pytest.raises(OperationTimeoutError):
            await ClaudeClient(api_key='sk-ant-test', timeout=10.0).generate('p')

    @pytest.mark.asyncio
    async def test_connection_error(self, mock_client):
        mock_client.messages.create.side_effect = anthropic.APIConnectionError(request=MagicMock())

        with pytest.raises(ProviderError, match='Connection failed') as exc_info:
            await ClaudeClient(api_key='sk-ant-test').generate('p')

        assert exc_info.value.recoverable
