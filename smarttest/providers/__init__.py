"""Text-generation backends, prompt construction and reply parsing."""

from .base_provider import BaseProvider, GenerateOptions
from .claude_client import ClaudeClient
from .prompt_builder import PromptBuilder
from .response_parser import ResponseParser

__all__ = ['BaseProvider', 'ClaudeClient', 'GenerateOptions', 'PromptBuilder', 'ResponseParser']
