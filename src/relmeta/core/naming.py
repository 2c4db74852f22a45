"""Name conversion and annotation tag parsing."""

from __future__ import annotations

import unicodedata

# Character classes used when splitting camel case words
_LOWER, _UPPER, _DIGIT, _OTHER = 1, 2, 3, 4


def _char_class(ch: str) -> int:
    if ch.islower():
        return _LOWER
    if ch.isupper():
        return _UPPER
    if unicodedata.category(ch) == "Nd":
        return _DIGIT
    return _OTHER


def split_camel(word: str) -> list[str]:
    """Split a camel case word into its parts.

    Examples:
        "MyClass" -> ["My", "Class"]
        "PDFLoader" -> ["PDF", "Loader"]
        "GL11Version" -> ["GL", "11", "Version"]
        "lowercase" -> ["lowercase"]
    """
    runs: list[list[str]] = []
    last = 0
    for ch in word:
        cls = _char_class(ch)
        if cls == last:
            runs[-1].append(ch)
        else:
            runs.append([ch])
        last = cls

    # "PDFL", "oader" -> "PDF", "Loader"
    for i in range(len(runs) - 1):
        if runs[i][0].isupper() and runs[i + 1][0].islower():
            runs[i + 1].insert(0, runs[i].pop())

    return ["".join(r) for r in runs if r]


def camel_to_snake(name: str) -> str:
    """Convert a CamelCase name to snake_case.

    Names that are already snake_case come back unchanged, so this is safe
    to apply to both class names and attribute names.

    Examples:
        "CategoryInfo" -> "category_info"
        "book_list" -> "book_list"
        "HTTPServer2" -> "http_server_2"
    """
    words: list[str] = []
    for chunk in name.split("_"):
        if chunk:
            words.extend(part.lower() for part in split_camel(chunk))
    return "_".join(words)


def parse_tags(tags: str) -> dict[str, str]:
    """Parse a comma separated `key` / `key=value` annotation string.

    Bare keys map to an empty string. Whitespace around tokens is ignored,
    empty tokens are dropped and later keys win over earlier ones.

    Example:
        >>> parse_tags("belongs_to_many,join_name=book_category")
        {'belongs_to_many': '', 'join_name': 'book_category'}
    """
    values: dict[str, str] = {}
    for token in tags.split(","):
        token = token.strip()
        if not token:
            continue
        key, _, value = token.partition("=")
        values[key.strip()] = value.strip()
    return values
