"""
Tests for extracting code from backend replies.
"""

import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from smarttest.errors import ParseError
from smarttest.providers.response_parser import ResponseParser


class TestExtractCodeBlock:
    """Test code block selection."""

    def test_single_block(self):
        response = "Here are the tests:\n\n```typescript\nit('works', () => {});\n```\n"

        assert ResponseParser.extract_code_block(response) == "it('works', () => {});\n"

    def test_last_typescript_block_wins(self):
        response = (
            "```ts\nconst draft = 1;\n```\n"
            "Improved version:\n"
            "```typescript\nconst final = 2;\n```\n"
            "```bash\nnpm test\n```\n"
        )

        assert ResponseParser.extract_code_block(response) == "const final = 2;\n"

    def test_javascript_preferred_over_untagged(self):
        response = "```js\nconst a = 1;\n```\n```\nplain\n```\n"

        assert ResponseParser.extract_code_block(response) == "const a = 1;\n"

    def test_untagged_fallback(self):
        response = "```\nconst a = 1;\n```"

        assert ResponseParser.extract_code_block(response) == "const a = 1;\n"

    def test_no_block_raises(self):
        with pytest.raises(ParseError, match='No code block found'):
            ResponseParser.extract_code_block("I cannot help with that.")

    def test_empty_response_raises(self):
        with pytest.raises(ParseError):
            ResponseParser.extract_code_block("")


class TestFindCodeBlocks:
    def test_filters_by_language(self):
        response = "```python\nx = 1\n```\n```tsx\n<App />\n```\n"

        assert ResponseParser.find_code_blocks(response, 'typescript') == ['<App />']
        assert len(ResponseParser.find_code_blocks(response)) == 2
