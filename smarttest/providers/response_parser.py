"""Extraction of code from backend replies."""

import re
from typing import List, Optional

from ..errors import ParseError


class ResponseParser:
    """Pull code out of markdown-fenced backend replies.

    Replies often contain several fenced blocks (a draft, then the final
    version). The last block is taken, preferring TypeScript fences, then
    JavaScript, then any fence.
    """

    LANGUAGE_SPECIFIERS = {
        'typescript': ['typescript', 'ts', 'tsx'],
        'javascript': ['javascript', 'js', 'jsx'],
    }

    _FENCE_RE = re.compile(r'```([\w+-]*)[ \t]*\n(.*?)\n?```', re.DOTALL)

    @classmethod
    def find_code_blocks(cls, response: str, language: Optional[str] = None) -> List[str]:
        """Every fenced block, optionally restricted to one language."""
        blocks = []
        allowed = cls.LANGUAGE_SPECIFIERS.get(language, [language]) if language else None
        for match in cls._FENCE_RE.finditer(response or ''):
            specifier = match.group(1).lower()
            if allowed is None or specifier in allowed:
                blocks.append(match.group(2))
        return blocks

    @classmethod
    def extract_code_block(cls, response: str) -> str:
        """Return the last code block of ``response``.

        Raises:
            ParseError: If the reply holds no fenced code block.
        """
        for language in ('typescript', 'javascript', None):
            blocks = cls.find_code_blocks(response, language)
            if blocks:
                return blocks[-1].strip() + '\n'
        raise ParseError("No code block found in response")
