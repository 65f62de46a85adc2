"""Path helpers for JavaScript/TypeScript module resolution and test file naming."""

import asyncio
import fnmatch
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional


SOURCE_EXTENSIONS = ('.ts', '.tsx', '.js', '.jsx')

# Extensions a relative import may carry and still resolve under ESM
MODULE_SUFFIXES = ('.js', '.ts', '.json', '.mjs', '.cjs')

EXTENSION_MAP = {
    '.ts': 'typescript',
    '.tsx': 'typescript',
    '.js': 'javascript',
    '.jsx': 'javascript',
    '.mjs': 'javascript',
    '.cjs': 'javascript',
}

_TEST_FILE_PATTERN = re.compile(r'\.(test|spec)\.[jt]sx?$')
_SOURCE_EXT_PATTERN = re.compile(r'\.[jt]sx?$')


def is_external_import(import_path: str) -> bool:
    """Package imports are anything not starting with '.' or '/'."""
    return not (import_path.startswith('.') or import_path.startswith('/'))


def is_test_file(filepath: str) -> bool:
    return bool(_TEST_FILE_PATTERN.search(os.path.basename(filepath)))


def detect_language(filepath: str) -> str:
    """Map a file extension to 'typescript' or 'javascript'.

    Raises:
        ValueError: For extensions outside EXTENSION_MAP.
    """
    suffix = Path(filepath).suffix
    try:
        return EXTENSION_MAP[suffix]
    except KeyError:
        raise ValueError(f"Unsupported file type: {filepath}") from None


def strip_source_extension(path: str) -> str:
    return _SOURCE_EXT_PATTERN.sub('', path)


def _candidates(base: Path) -> List[Path]:
    candidates = [base]
    # ESM sources import './x.js' while the file on disk is './x.ts'
    if base.suffix in ('.js', '.jsx'):
        stem = base.with_suffix('')
        candidates += [stem.with_suffix('.ts'), stem.with_suffix('.tsx')]
    candidates += [Path(f"{base}{ext}") for ext in SOURCE_EXTENSIONS]
    candidates += [base / f"index{ext}" for ext in SOURCE_EXTENSIONS]
    return candidates


def resolve_local_import(import_path: str, from_file: str) -> Optional[Path]:
    """Resolve a relative import to an existing file.

    Tries, in order: the literal path (with '.js' mapped to '.ts'/'.tsx'),
    the path with each source extension appended, then ``index.*`` inside the
    path when it names a directory.

    Args:
        import_path: Module specifier as written in the import.
        from_file: File containing the import.

    Returns:
        Absolute path of the resolved file, or None if nothing exists.
    """
    if is_external_import(import_path):
        return None
    base = Path(from_file).resolve().parent / import_path
    base = Path(os.path.normpath(base))
    for candidate in _candidates(base):
        if candidate.is_file():
            return candidate
    return None


def has_module_suffix(import_path: str) -> bool:
    return import_path.endswith(MODULE_SUFFIXES)


def get_test_file_path(
    source_file: str,
    output_dir: Optional[str] = None,
    suffix: str = '.test',
) -> str:
    """Build ``<output_dir or source dir>/<basename><suffix><ext>``."""
    source = Path(source_file)
    directory = Path(output_dir) if output_dir else source.parent
    return str(directory / f"{source.stem}{suffix}{source.suffix}")


def to_import_path(target_file: str, from_file: str) -> str:
    """Relative ESM specifier for ``target_file`` as seen from ``from_file``.

    TypeScript extensions are rewritten to '.js'.
    """
    rel = os.path.relpath(target_file, os.path.dirname(os.path.abspath(from_file)))
    rel = rel.replace(os.sep, '/')
    if not rel.startswith('.'):
        rel = './' + rel
    return re.sub(r'\.tsx?$', '.js', rel)


def matches_any(relpath: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(relpath, pattern) for pattern in patterns)


def read_text_file(filepath: str) -> str:
    with open(filepath, 'r', encoding='utf-8') as f:
        return f.read()


def write_text_file(filepath: str, content: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        f.write(content)


async def write_text_file_async(filepath: str, content: str) -> None:
    await asyncio.to_thread(write_text_file, filepath, content)
