"""
Ignore filters for URLs and elements.

URL patterns containing glob metacharacters (``*``, ``?``, ``[``) are
matched against the whole URL; any other pattern matches as a substring.

Element selectors support comma separated lists of compound simple
selectors: ``tag``, ``#id``, ``.class`` and ``*``, e.g.
``div.spinner, #toast, .fade.in``.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

_GLOB_CHARS = frozenset("*?[")

# tag, then any number of #id / .class parts
_COMPOUND_RE = re.compile(r"^(?P<tag>\*|[a-zA-Z][\w-]*)?(?P<rest>(?:[#.][\w-]+)*)$")
_PART_RE = re.compile(r"([#.])([\w-]+)")


class UrlFilter:
    """Decides whether a request URL is excluded from network tracking."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._globs: list[str] = []
        self._substrings: list[str] = []
        for pattern in patterns:
            if not pattern:
                continue
            if _GLOB_CHARS.intersection(pattern):
                self._globs.append(pattern)
            else:
                self._substrings.append(pattern)

    def __bool__(self) -> bool:
        return bool(self._globs or self._substrings)

    def matches(self, url: str) -> bool:
        """Return True if ``url`` matches any pattern."""
        if any(s in url for s in self._substrings):
            return True
        return any(fnmatch.fnmatchcase(url, g) for g in self._globs)


@dataclass(frozen=True)
class ElementRef:
    """
    Identity of a DOM element as reported by the in-page instrumentation.

    ``key`` uniquely identifies the element within the document; the other
    fields are used for selector matching and diagnostics.
    """

    key: str
    """Unique element key assigned in the page."""

    tag: str = ""
    """Lower-case tag name."""

    element_id: str | None = None
    """Element id attribute."""

    classes: frozenset[str] = field(default_factory=frozenset)
    """Class list."""

    animation: str = ""
    """Animation or transition name, if the element is animating."""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ElementRef:
        """Build an element reference from in-page event data."""
        return cls(
            key=str(data.get("key", "")),
            tag=str(data.get("tag", "")).lower(),
            element_id=data.get("id") or None,
            classes=frozenset(data.get("classes") or ()),
            animation=str(data.get("animation") or ""),
        )

    @property
    def describe(self) -> str:
        """Short CSS-like description, e.g. ``div#menu.open``."""
        text = self.tag or "*"
        if self.element_id:
            text += f"#{self.element_id}"
        for cls in sorted(self.classes):
            text += f".{cls}"
        return text


@dataclass(frozen=True)
class _Compound:
    tag: str | None
    element_id: str | None
    classes: frozenset[str]

    def matches(self, element: ElementRef) -> bool:
        if self.tag and self.tag != element.tag:
            return False
        if self.element_id and self.element_id != element.element_id:
            return False
        return self.classes <= element.classes


def _parse_compound(selector: str) -> _Compound:
    match = _COMPOUND_RE.match(selector)
    if not match:
        raise ValueError(f"Unsupported selector: {selector!r}")
    tag = match.group("tag")
    element_id = None
    classes: set[str] = set()
    for prefix, name in _PART_RE.findall(match.group("rest")):
        if prefix == "#":
            element_id = name
        else:
            classes.add(name)
    return _Compound(
        tag=None if tag in (None, "*") else tag.lower(),
        element_id=element_id,
        classes=frozenset(classes),
    )


class SelectorFilter:
    """Decides whether an element is excluded by any of a set of selectors."""

    def __init__(self, selectors: Iterable[str] = ()) -> None:
        self._compounds: list[_Compound] = []
        for selector in selectors:
            for part in selector.split(","):
                part = part.strip()
                if part:
                    self._compounds.append(_parse_compound(part))

    def __bool__(self) -> bool:
        return bool(self._compounds)

    def matches(self, element: ElementRef) -> bool:
        """Return True if ``element`` matches any selector."""
        return any(c.matches(element) for c in self._compounds)
