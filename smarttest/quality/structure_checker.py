"""Token-level structure check for JavaScript/TypeScript test code.

Scans the code once, skipping strings, comments, template literals and regex
literals, and reports unterminated literals and unbalanced brackets with the
line and column where the problem starts.
"""

from bisect import bisect_right
from typing import List, Tuple

from ..models.quality import LintError

RULE_ID = 'syntax'

_CLOSER_TO_OPENER = {')': '(', ']': '[', '}': '{'}
_OPENER_TO_CLOSER = {'(': ')', '[': ']', '{': '}', '${': '}', '`': '`'}

# Previous significant characters after which '/' starts a regex literal
_REGEX_PRECEDERS = set('(,=:[!&|?{};+-*%<>~^') | {''}
_REGEX_KEYWORDS = {
    'return', 'typeof', 'case', 'do', 'else', 'in', 'of', 'new', 'delete',
    'void', 'throw', 'instanceof', 'yield', 'await',
}


class _Positions:
    """Maps string offsets to 1-based (line, column)."""

    def __init__(self, text: str):
        self._starts = [0]
        for index, ch in enumerate(text):
            if ch == '\n':
                self._starts.append(index + 1)

    def at(self, offset: int) -> Tuple[int, int]:
        line = bisect_right(self._starts, offset)
        return line, offset - self._starts[line - 1] + 1


def check_structure(code: str) -> List[LintError]:
    """Return one LintError per structural defect found in ``code``."""
    positions = _Positions(code)
    errors: List[LintError] = []

    def report(offset: int, message: str) -> None:
        line, column = positions.at(offset)
        errors.append(LintError(
            line=line,
            column=column,
            message=message,
            rule_id=RULE_ID,
            severity='error',
            fixable=False,
        ))

    brackets: List[Tuple[str, int]] = []
    prev = ''
    prev_word = ''
    i = 0
    n = len(code)

    while i < n:
        if brackets and brackets[-1][0] == '`':
            ch = code[i]
            if ch == '\\':
                i += 2
            elif ch == '`':
                brackets.pop()
                prev, prev_word = '`', ''
                i += 1
            elif code.startswith('${', i):
                brackets.append(('${', i))
                prev, prev_word = '{', ''
                i += 2
            else:
                i += 1
            continue

        ch = code[i]
        if ch.isspace():
            i += 1
            continue

        if code.startswith('//', i):
            end = code.find('\n', i)
            i = n if end == -1 else end
            continue

        if code.startswith('/*', i):
            end = code.find('*/', i + 2)
            if end == -1:
                report(i, "Unterminated block comment")
                break
            i = end + 2
            continue

        if ch in '\'"':
            j = i + 1
            while j < n and code[j] != ch and code[j] != '\n':
                j += 2 if code[j] == '\\' else 1
            if j >= n or code[j] != ch:
                report(i, "Unterminated string literal")
            i = j + 1
            prev, prev_word = '"', ''
            continue

        if ch == '`':
            brackets.append(('`', i))
            i += 1
            continue

        if ch == '/' and (prev in _REGEX_PRECEDERS or prev_word in _REGEX_KEYWORDS):
            j = i + 1
            in_class = False
            terminated = False
            while j < n:
                c = code[j]
                if c == '\\':
                    j += 2
                    continue
                if c == '\n':
                    break
                if c == '[':
                    in_class = True
                elif c == ']':
                    in_class = False
                elif c == '/' and not in_class:
                    terminated = True
                    break
                j += 1
            if not terminated:
                report(i, "Unterminated regular expression literal")
            j += 1
            while j < n and (code[j].isalnum() or code[j] == '_'):
                j += 1
            i = j
            prev, prev_word = 'a', ''
            continue

        if ch in '([{':
            brackets.append((ch, i))
            prev, prev_word = ch, ''
            i += 1
            continue

        if ch in ')]}':
            if ch == '}' and brackets and brackets[-1][0] == '${':
                brackets.pop()
                i += 1
                continue
            opener = _CLOSER_TO_OPENER[ch]
            if brackets and brackets[-1][0] == opener:
                brackets.pop()
            elif brackets:
                top, top_offset = brackets[-1]
                line, column = positions.at(top_offset)
                report(i, f"Unexpected '{ch}': '{top}' opened at {line}:{column} is not closed")
                # Recover at the nearest matching opener, if any
                for depth in range(len(brackets) - 1, -1, -1):
                    if brackets[depth][0] == opener:
                        del brackets[depth:]
                        break
            else:
                report(i, f"Unexpected '{ch}'")
            prev, prev_word = ch, ''
            i += 1
            continue

        if ch.isalnum() or ch in '_$':
            j = i
            while j < n and (code[j].isalnum() or code[j] in '_$'):
                j += 1
            prev, prev_word = 'a', code[i:j]
            i = j
            continue

        prev, prev_word = ch, ''
        i += 1

    for opener, offset in brackets:
        if opener == '`':
            report(offset, "Unterminated template literal")
        else:
            report(offset, f"Unclosed '{opener}', expected '{_OPENER_TO_CLOSER[opener]}'")

    return errors
