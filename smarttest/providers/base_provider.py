"""Interface for text-generation backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class GenerateOptions:
    """Per-call generation settings.

    Attributes:
        temperature: Sampling temperature.
        max_tokens: Maximum tokens in the completion.
        timeout: Seconds allowed for the call.
        model: Model override; the provider's default if None.
        system_prompt: Optional system instructions.
    """

    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: float = 120.0
    model: Optional[str] = None
    system_prompt: Optional[str] = None


class BaseProvider(ABC):
    """A backend that turns a prompt into text.

    Implementations raise ProviderError (or ProviderNotAvailableError) naming
    themselves when a call fails.
    """

    name: str = 'provider'

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the backend is configured and can be called."""

    @abstractmethod
    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        """Return the completion for ``prompt``."""
