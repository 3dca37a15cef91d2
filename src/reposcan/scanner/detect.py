"""Language detection — dominant language of a source tree by extension."""

from __future__ import annotations

import logging
import os
from collections import Counter
from pathlib import Path

logger = logging.getLogger(__name__)

# Language → extensions, in tie-break order. An extension listed under
# several languages counts toward each of them.
LANGUAGE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "javascript": (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"),
    "python": (".py",),
    "java": (".java",),
    "csharp": (".cs",),
    "go": (".go",),
    "ruby": (".rb",),
    "cpp": (".cpp", ".c", ".cc", ".h", ".hpp"),
    "swift": (".swift",),
}

DEFAULT_LANGUAGE = "javascript"

# Dependency and cache directories that would skew the count
_SKIP_DIRS = {
    "node_modules",
    "vendor",
    "__pycache__",
}

MAX_DEPTH = 8


def _build_extension_index() -> dict[str, tuple[str, ...]]:
    index: dict[str, list[str]] = {}
    for language, extensions in LANGUAGE_EXTENSIONS.items():
        for ext in extensions:
            index.setdefault(ext, []).append(language)
    return {ext: tuple(langs) for ext, langs in index.items()}


_EXTENSION_INDEX = _build_extension_index()


def count_languages(root: str | Path, max_depth: int = MAX_DEPTH) -> Counter[str]:
    """Count recognized source files per language below *root*."""
    counts: Counter[str] = Counter()
    _walk(Path(root), 0, max_depth, counts)
    return counts


def detect_language(root: str | Path, default: str = DEFAULT_LANGUAGE) -> str:
    """Return the most frequent language in the tree, or *default*."""
    counts = count_languages(root)
    best, best_count = default, 0
    for language in LANGUAGE_EXTENSIONS:
        if counts[language] > best_count:
            best, best_count = language, counts[language]
    logger.debug("Language counts for %s: %s -> %s", root, dict(counts), best)
    return best


def _walk(directory: Path, depth: int, max_depth: int, counts: Counter[str]) -> None:
    if depth > max_depth:
        return
    try:
        entries = list(os.scandir(directory))
    except OSError as e:
        logger.debug("Skipping %s: %s", directory, e)
        return

    for entry in entries:
        if entry.name.startswith(".") or entry.name in _SKIP_DIRS:
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                _walk(Path(entry.path), depth + 1, max_depth, counts)
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
        except OSError as e:
            logger.debug("Skipping %s: %s", entry.path, e)
            continue
        ext = os.path.splitext(entry.name)[1].lower()
        counts.update(_EXTENSION_INDEX.get(ext, ()))
