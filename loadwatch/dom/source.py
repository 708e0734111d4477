# loadwatch/dom/source.py

"""Structured-source capability over a parsed document.

The extractor never sees CSS selectors: it asks for *conventions*
("item", "origin_like", ...) and the source resolves each one to a
selector union loaded from ``conventions.json``. Swapping the
conventions file retargets the engine without touching extraction,
filtering or queueing logic.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

from bs4 import BeautifulSoup, Tag

from loadwatch.config.settings import Settings
from loadwatch.errors import ExtractionError

logger = logging.getLogger("loadwatch.dom")

_WHITESPACE_RE = re.compile(r"\s+")


class ElementHandle(Protocol):
    """A node of the monitored document."""

    def text(self) -> str: ...

    def attr(self, name: str) -> str | None: ...

    def query(self, convention: str) -> "ElementHandle | None": ...

    def query_all(self, convention: str) -> list["ElementHandle"]: ...

    def closest(self, convention: str) -> "ElementHandle | None": ...

    def css_path(self) -> str: ...


class StructuredSource(Protocol):
    """Document-level entry point used by the extractor."""

    def query_all(self, convention: str) -> list[ElementHandle]: ...


def load_conventions(path: Path | None = None) -> dict[str, str]:
    """Load convention -> CSS selector union from the JSON table."""
    with open(path or Settings.CONVENTIONS_PATH, encoding="utf-8") as f:
        raw: dict[str, Any] = json.load(f)
    return {
        name: ", ".join(selectors)
        for name, selectors in raw.items()
    }


class SoupElement:
    """:class:`ElementHandle` backed by a BeautifulSoup ``Tag``."""

    def __init__(
        self, tag: Tag, conventions: dict[str, str],
    ) -> None:
        self.tag = tag
        self._conventions = conventions

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, SoupElement)
            and other.tag is self.tag
        )

    def __hash__(self) -> int:
        return id(self.tag)

    def __repr__(self) -> str:
        return f"<SoupElement {self.css_path()}>"

    def _selector(self, convention: str) -> str:
        try:
            return self._conventions[convention]
        except KeyError:
            msg = f"Unknown markup convention '{convention}'"
            raise ExtractionError(msg) from None

    def _wrap(self, tag: Tag) -> "SoupElement":
        return SoupElement(tag, self._conventions)

    def text(self) -> str:
        """Visible text with whitespace collapsed."""
        return _WHITESPACE_RE.sub(
            " ", self.tag.get_text(" ")
        ).strip()

    def attr(self, name: str) -> str | None:
        """Attribute value as a string, or ``None`` when absent."""
        value = self.tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def query(self, convention: str) -> "SoupElement | None":
        """First descendant matching *convention*."""
        found = self.tag.select_one(self._selector(convention))
        return self._wrap(found) if found is not None else None

    def query_all(self, convention: str) -> list["SoupElement"]:
        """All descendants matching *convention*, in document order."""
        return [
            self._wrap(t)
            for t in self.tag.select(self._selector(convention))
        ]

    def closest(self, convention: str) -> "SoupElement | None":
        """Nearest ancestor-or-self matching *convention*."""
        selector = self._selector(convention)
        node: Tag | None = self.tag
        while isinstance(node, Tag) and node.name != "[document]":
            if node.css.match(selector):
                return self._wrap(node)
            node = node.parent
        return None

    def css_path(self) -> str:
        """A CSS path from the document root that re-locates this node."""
        parts: list[str] = []
        node: Tag | None = self.tag
        while isinstance(node, Tag) and node.name != "[document]":
            parent = node.parent
            if parent is None or not isinstance(parent, Tag):
                parts.append(node.name)
                break
            siblings = [
                s for s in parent.find_all(node.name, recursive=False)
            ]
            index = next(
                i for i, s in enumerate(siblings, 1) if s is node
            )
            parts.append(f"{node.name}:nth-of-type({index})")
            node = parent
        return " > ".join(reversed(parts))


class SoupSource:
    """:class:`StructuredSource` over a parsed HTML document."""

    def __init__(
        self,
        soup: BeautifulSoup,
        conventions: dict[str, str] | None = None,
    ) -> None:
        self.soup = soup
        self.conventions = conventions or load_conventions()
        self._root = SoupElement(soup, self.conventions)

    @classmethod
    def from_html(
        cls,
        html: str,
        conventions: dict[str, str] | None = None,
    ) -> "SoupSource":
        """Parse *html* with lxml and wrap it."""
        return cls(BeautifulSoup(html, "lxml"), conventions)

    @property
    def root(self) -> SoupElement:
        """The document node itself."""
        return self._root

    def query_all(self, convention: str) -> list[SoupElement]:
        """All document nodes matching *convention*."""
        return self._root.query_all(convention)

    def query(self, convention: str) -> SoupElement | None:
        """First document node matching *convention*."""
        return self._root.query(convention)


class SourceRef:
    """Opaque link from a Record back to its originating element.

    Holds the element of the snapshot it was extracted from and a CSS
    path that a live driver can use to find the same node again. Owned
    by one extraction cycle and never persisted.
    """

    __slots__ = ("element", "path")

    def __init__(self, element: ElementHandle, path: str) -> None:
        self.element = element
        self.path = path

    @classmethod
    def for_element(cls, element: ElementHandle) -> "SourceRef":
        """Capture *element* together with its current CSS path."""
        return cls(element, element.css_path())

    def __repr__(self) -> str:
        return f"SourceRef({self.path!r})"
