"""`{name}` string templates.

`{{` and `}}` produce literal braces. Keys are ASCII letters, digits and `_`.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

from core.errors import TemplateError


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Key:
    name: str


def _is_key_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


@dataclass(frozen=True)
class PreparedTemplate:
    pattern: str
    segments: tuple[Literal | Key, ...]

    @property
    def keys(self) -> tuple[str, ...]:
        """Distinct placeholder names in order of first appearance."""
        return tuple(dict.fromkeys(s.name for s in self.segments if isinstance(s, Key)))

    def format(self, values: Mapping[str, str]) -> str:
        parts = []
        for segment in self.segments:
            if isinstance(segment, Literal):
                parts.append(segment.text)
                continue
            try:
                parts.append(str(values[segment.name]))
            except KeyError:
                raise TemplateError(f"missing value for key `{segment.name}`") from None
        return "".join(parts)


@lru_cache(maxsize=256)
def prepare(pattern: str) -> PreparedTemplate:
    segments: list[Literal | Key] = []
    literal: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "}":
            if pattern[i + 1 : i + 2] != "}":
                raise TemplateError(f"unmatched `}}` at position {i}")
            literal.append("}")
            i += 2
            continue
        if ch != "{":
            literal.append(ch)
            i += 1
            continue
        if pattern[i + 1 : i + 2] == "{":
            literal.append("{")
            i += 2
            continue

        end = pattern.find("}", i + 1)
        if end == -1:
            raise TemplateError(f"unmatched `{{` at position {i}")
        name = pattern[i + 1 : end]
        if not name:
            raise TemplateError(f"empty key at position {i}")
        for offset, key_ch in enumerate(name):
            if not _is_key_char(key_ch):
                raise TemplateError(f"invalid character `{key_ch}` in key at position {i + 1 + offset}")
        if literal:
            segments.append(Literal("".join(literal)))
            literal = []
        segments.append(Key(name))
        i = end + 1
    if literal:
        segments.append(Literal("".join(literal)))
    return PreparedTemplate(pattern, tuple(segments))


def format_template(pattern: str, values: Mapping[str, str]) -> str:
    return prepare(pattern).format(values)


__all__ = ["Literal", "Key", "PreparedTemplate", "prepare", "format_template"]
