"""Lightweight TypeScript/JavaScript module analyzer.

Extracts what test generation and dependency resolution need from a source
file (import statements, exports, type declarations and top-level function
signatures) using pattern matching over comment-stripped source. It does not
type-check and does not build a syntax tree.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

from ..models.dependency import (
    ExportInfo,
    FunctionSignature,
    ImportInfo,
    ImportSpecifier,
    ModuleStructure,
    ParameterInfo,
    TypeInfo,
)
from ..utils.file_utils import detect_language
from .base_parser import BaseParser

logger = logging.getLogger(__name__)

_IDENT = r'[A-Za-z_$][\w$]*'

_IMPORT_RE = re.compile(
    r'^[ \t]*import\s+(type\s+)?([\w$*{}\s,]+?)\s+from\s+[\'"]([^\'"]+)[\'"]',
    re.MULTILINE,
)
_SIDE_EFFECT_IMPORT_RE = re.compile(r'^[ \t]*import\s+[\'"]([^\'"]+)[\'"]', re.MULTILINE)
_REEXPORT_RE = re.compile(
    r'^[ \t]*export\s+(type\s+)?(\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s+from\s+[\'"]([^\'"]+)[\'"]',
    re.MULTILINE,
)
_REQUIRE_RE = re.compile(
    rf'(?:const|let|var)\s+({_IDENT}|\{{[^}}]*\}})\s*=\s*require\s*\(\s*[\'"]([^\'"]+)[\'"]\s*\)'
)

_FUNCTION_RE = re.compile(
    rf'^[ \t]*(export\s+)?(default\s+)?(async\s+)?function\s*\*?\s*({_IDENT})\s*(?:<[^>(]*>)?\s*\(',
    re.MULTILINE,
)
_ARROW_RE = re.compile(
    rf'^[ \t]*(export\s+)?(?:const|let|var)\s+({_IDENT})\s*(?::[^=\n]+)?=\s*(async\s+)?(?:<[^>(]*>\s*)?\(',
    re.MULTILINE,
)

_EXPORT_DECL_RE = re.compile(
    rf'^[ \t]*export\s+(default\s+)?(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?'
    rf'(function\s*\*?|class|const\s+enum|enum|interface|type|const|let|var)\s+({_IDENT})',
    re.MULTILINE,
)
_EXPORT_LIST_RE = re.compile(r'^[ \t]*export\s+(type\s+)?\{([^}]*)\}(?!\s*from)', re.MULTILINE)
_EXPORT_DEFAULT_RE = re.compile(rf'^[ \t]*export\s+default\s+({_IDENT})?', re.MULTILINE)

_INTERFACE_RE = re.compile(rf'^[ \t]*(?:export\s+)?(?:declare\s+)?interface\s+({_IDENT})[^{{]*\{{', re.MULTILINE)
_ENUM_RE = re.compile(rf'^[ \t]*(?:export\s+)?(?:declare\s+)?(?:const\s+)?enum\s+({_IDENT})\s*\{{', re.MULTILINE)
_TYPE_ALIAS_RE = re.compile(rf'^[ \t]*(?:export\s+)?(?:declare\s+)?type\s+({_IDENT})\s*(?:<[^=]*>)?\s*=', re.MULTILINE)
_CLASS_RE = re.compile(
    rf'^[ \t]*(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+({_IDENT})[^{{]*',
    re.MULTILINE,
)

_EXPORT_KINDS = {
    'class': 'class',
    'interface': 'interface',
    'type': 'type',
    'enum': 'enum',
    'const enum': 'enum',
    'const': 'variable',
    'let': 'variable',
    'var': 'variable',
}

_OPENERS = {'(': ')', '[': ']', '{': '}', '<': '>'}
_CLOSERS = {')', ']', '}', '>'}


def strip_comments(source: str) -> str:
    """Remove // and /* */ comments while keeping strings and line numbers."""
    out: List[str] = []
    i = 0
    n = len(source)
    quote: Optional[str] = None
    while i < n:
        ch = source[i]
        if quote:
            out.append(ch)
            if ch == '\\' and i + 1 < n:
                out.append(source[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in '\'"`':
            quote = ch
            out.append(ch)
            i += 1
            continue
        if source.startswith('//', i):
            end = source.find('\n', i)
            if end == -1:
                break
            i = end
            continue
        if source.startswith('/*', i):
            end = source.find('*/', i + 2)
            end = n if end == -1 else end + 2
            out.append('\n' * source.count('\n', i, end))
            i = end
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def _matching_close(text: str, open_index: int) -> int:
    """Index of the bracket closing the one at ``open_index`` (len(text) if unclosed)."""
    opener = text[open_index]
    closer = _OPENERS[opener]
    depth = 0
    for i in range(open_index, len(text)):
        ch = text[i]
        if ch == opener:
            depth += 1
        elif ch == closer:
            if closer == '>' and text[i - 1] == '=':
                continue
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def _find_top_level(text: str, target: str) -> int:
    depth = 0
    for i, ch in enumerate(text):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            if ch == '>' and i > 0 and text[i - 1] == '=':
                continue
            depth -= 1
        elif ch == target and depth == 0:
            if target == '=' and text[i + 1:i + 2] == '>':
                continue
            return i
    return -1


def _split_top_level(text: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for i, ch in enumerate(text):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS and not (ch == '>' and i > 0 and text[i - 1] == '='):
            depth -= 1
        if ch == ',' and depth == 0:
            parts.append(''.join(current))
            current = []
        else:
            current.append(ch)
    parts.append(''.join(current))
    return [p.strip() for p in parts if p.strip()]


def _parse_param(text: str) -> ParameterInfo:
    default_value = None
    eq = _find_top_level(text, '=')
    if eq != -1:
        default_value = text[eq + 1:].strip()
        text = text[:eq].strip()

    colon = _find_top_level(text, ':')
    if colon != -1:
        name, param_type = text[:colon].strip(), text[colon + 1:].strip()
    else:
        name, param_type = text.strip(), 'unknown'

    is_optional = name.endswith('?') or default_value is not None
    name = name.rstrip('?').strip()
    return ParameterInfo(
        name=name,
        type=param_type,
        is_optional=is_optional,
        default_value=default_value,
    )


def _return_type_after(text: str, close_paren: int) -> Tuple[str, int]:
    """Read an optional ': Type' annotation following a parameter list.

    Returns the annotation (or '') and the index just past it.
    """
    i = close_paren + 1
    while i < len(text) and text[i].isspace():
        i += 1
    if i >= len(text) or text[i] != ':':
        return '', i
    i += 1
    start = i
    depth = 0
    while i < len(text):
        ch = text[i]
        if ch in '([<':
            depth += 1
        elif ch in ')]>':
            if ch == '>' and text[i - 1] == '=':
                if depth == 0:
                    # '=>' ends the annotation of an arrow function
                    return text[start:i - 1].strip(), i - 1
            else:
                depth -= 1
        elif ch == '{':
            if depth == 0 and text[start:i].strip():
                break
            i = _matching_close(text, i)
        elif ch == ';' and depth == 0:
            break
        i += 1
    return text[start:i].strip(), i


class TypeScriptParser(BaseParser):
    """
    Analyzer for .ts, .tsx, .js and .jsx files.

    Recognizes ESM imports (default, named, namespace, type-only, side-effect),
    re-exports, CommonJS ``require`` bindings, export declarations, interfaces,
    type aliases, enums, classes, function declarations and arrow functions
    bound to ``const``/``let``/``var``.
    """

    def parse_file(self, filepath: str) -> ModuleStructure:
        """
        Analyze a TypeScript or JavaScript file.

        Parameters
        ----------
        filepath : str
            Path to the source file

        Returns
        -------
        ModuleStructure
            Extracted module surface with an absolute ``filepath``

        Raises
        ------
        FileNotFoundError
            If the file does not exist
        ValueError
            If the extension is not a JavaScript/TypeScript one
        """
        path = Path(filepath).resolve()
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {filepath}")
        language = detect_language(str(path))

        source = path.read_text(encoding='utf-8')
        return self.parse_source(source, str(path), language)

    def parse_source(self, source: str, filepath: str, language: str = 'typescript') -> ModuleStructure:
        code = strip_comments(source)
        signatures = self._extract_signatures(code)
        exports = self._extract_exports(code, {sig.name for sig in signatures})
        exported_names = {e.name for e in exports}
        for sig in signatures:
            sig.is_exported = sig.is_exported or sig.name in exported_names

        return ModuleStructure(
            filepath=filepath,
            language=language,
            imports=self._extract_imports(code),
            exports=exports,
            types=self._extract_types(code),
            function_signatures=signatures,
        )

    def _extract_imports(self, code: str) -> List[ImportInfo]:
        found: List[Tuple[int, ImportInfo]] = []

        for match in _IMPORT_RE.finditer(code):
            type_only = bool(match.group(1))
            found.append((match.start(), self._parse_import_clause(match.group(3), match.group(2), type_only)))

        for match in _SIDE_EFFECT_IMPORT_RE.finditer(code):
            found.append((match.start(), ImportInfo(path=match.group(1))))

        for match in _REEXPORT_RE.finditer(code):
            info = self._parse_import_clause(match.group(3), match.group(2), bool(match.group(1)))
            found.append((match.start(), info))

        for match in _REQUIRE_RE.finditer(code):
            binding = match.group(1)
            if binding.startswith('{'):
                info = self._parse_import_clause(match.group(2), binding.replace(':', ' as '), False)
            else:
                info = ImportInfo(
                    path=match.group(2),
                    specifiers=[ImportSpecifier(name=binding)],
                    is_default=True,
                )
            found.append((match.start(), info))

        found.sort(key=lambda item: item[0])
        return [info for _, info in found]

    def _parse_import_clause(self, path: str, clause: str, type_only: bool) -> ImportInfo:
        info = ImportInfo(path=path)
        remaining = clause

        namespace = re.search(rf'\*\s+as\s+({_IDENT})', clause)
        if namespace:
            info.is_namespace = True
            info.specifiers.append(ImportSpecifier(name='*', alias=namespace.group(1), is_type=type_only))
            remaining = remaining.replace(namespace.group(0), '')
        elif clause.strip() == '*':
            info.is_namespace = True
            remaining = ''

        named = re.search(r'\{([^}]*)\}', clause)
        if named:
            remaining = remaining.replace(named.group(0), '')
            for part in named.group(1).split(','):
                part = part.strip()
                if not part:
                    continue
                is_type = type_only
                if part.startswith('type '):
                    is_type = True
                    part = part[5:].strip()
                name, _, alias = part.partition(' as ')
                info.specifiers.append(ImportSpecifier(
                    name=name.strip(),
                    alias=alias.strip() or None,
                    is_type=is_type,
                ))

        default_name = remaining.replace(',', ' ').strip()
        if default_name and re.fullmatch(_IDENT, default_name):
            info.is_default = True
            info.specifiers.insert(0, ImportSpecifier(name=default_name, is_type=type_only))

        return info

    def _extract_signatures(self, code: str) -> List[FunctionSignature]:
        signatures: List[FunctionSignature] = []
        seen = set()

        for match in _FUNCTION_RE.finditer(code):
            open_paren = match.end() - 1
            close_paren = _matching_close(code, open_paren)
            return_type, _ = _return_type_after(code, close_paren)
            name = match.group(4)
            if name in seen:
                # Overload declarations repeat the name
                continue
            seen.add(name)
            signatures.append(FunctionSignature(
                name=name,
                params=[_parse_param(p) for p in _split_top_level(code[open_paren + 1:close_paren])],
                return_type=return_type or ('Promise<void>' if match.group(3) else 'void'),
                is_async=bool(match.group(3)),
                is_exported=bool(match.group(1)),
            ))

        for match in _ARROW_RE.finditer(code):
            open_paren = match.end() - 1
            close_paren = _matching_close(code, open_paren)
            return_type, after = _return_type_after(code, close_paren)
            if not code[after:].lstrip().startswith('=>'):
                continue
            name = match.group(2)
            if name in seen:
                continue
            seen.add(name)
            signatures.append(FunctionSignature(
                name=name,
                params=[_parse_param(p) for p in _split_top_level(code[open_paren + 1:close_paren])],
                return_type=return_type or 'unknown',
                is_async=bool(match.group(3)),
                is_exported=bool(match.group(1)),
            ))

        return signatures

    def _extract_exports(self, code: str, function_names: set) -> List[ExportInfo]:
        exports: List[ExportInfo] = []
        seen = set()

        def add(export: ExportInfo) -> None:
            if export.name not in seen:
                seen.add(export.name)
                exports.append(export)

        for match in _EXPORT_DECL_RE.finditer(code):
            keyword = re.sub(r'\s+', ' ', match.group(2)).rstrip('*').strip()
            name = match.group(3)
            kind = 'function' if keyword.startswith('function') else _EXPORT_KINDS[keyword]
            if kind == 'variable' and name in function_names:
                kind = 'function'
            add(ExportInfo(
                name=name,
                kind=kind,
                is_default=bool(match.group(1)),
                is_type=kind in ('interface', 'type'),
            ))

        for match in _EXPORT_LIST_RE.finditer(code):
            type_only = bool(match.group(1))
            for part in match.group(2).split(','):
                part = part.strip()
                if not part:
                    continue
                is_type = type_only or part.startswith('type ')
                if part.startswith('type '):
                    part = part[5:].strip()
                local, _, exported = part.partition(' as ')
                name = (exported or local).strip()
                kind = 'type' if is_type else ('function' if local.strip() in function_names else 'variable')
                add(ExportInfo(name=name, kind=kind, is_default=name == 'default', is_type=is_type))

        for match in _EXPORT_DEFAULT_RE.finditer(code):
            name = match.group(1)
            if name in ('function', 'class', 'async', 'abstract'):
                continue
            if name and name in seen:
                for export in exports:
                    if export.name == name:
                        export.is_default = True
                continue
            add(ExportInfo(
                name=name or 'default',
                kind='function' if name in function_names else 'variable',
                is_default=True,
            ))

        return exports

    def _extract_types(self, code: str) -> List[TypeInfo]:
        found: List[Tuple[int, TypeInfo]] = []

        for match in _INTERFACE_RE.finditer(code):
            start = match.start() + len(match.group(0)) - len(match.group(0).lstrip())
            end = _matching_close(code, match.end() - 1)
            found.append((match.start(), TypeInfo(
                name=match.group(1),
                definition=code[start:end + 1].strip(),
                kind='interface',
            )))

        for match in _ENUM_RE.finditer(code):
            end = _matching_close(code, match.end() - 1)
            found.append((match.start(), TypeInfo(
                name=match.group(1),
                definition=code[match.start():end + 1].strip(),
                kind='enum',
            )))

        for match in _TYPE_ALIAS_RE.finditer(code):
            end = self._type_alias_end(code, match.end())
            found.append((match.start(), TypeInfo(
                name=match.group(1),
                definition=code[match.start():end].strip().rstrip(';'),
                kind='type',
            )))

        for match in _CLASS_RE.finditer(code):
            found.append((match.start(), TypeInfo(
                name=match.group(1),
                definition=match.group(0).strip(),
                kind='class',
            )))

        found.sort(key=lambda item: item[0])
        return [info for _, info in found]

    @staticmethod
    def _type_alias_end(code: str, start: int) -> int:
        depth = 0
        i = start
        while i < len(code):
            ch = code[i]
            if ch in '([{<':
                depth += 1
            elif ch in ')]}>':
                if not (ch == '>' and code[i - 1] == '='):
                    depth -= 1
            elif ch == ';' and depth == 0:
                return i + 1
            elif ch == '\n' and depth == 0 and code[start:i].strip():
                following = code[i + 1:].lstrip()
                if not following.startswith(('|', '&')):
                    return i
            i += 1
        return i
