"""
Page handle abstraction and an HTML snapshot implementation.

The browser-automation driver is an external collaborator: anything that can
answer the questions of :class:`PageHandle` can be inspected and healed
against. :class:`HtmlSnapshotPage` answers them from a captured DOM snapshot
using BeautifulSoup, with layout taken from ``data-bbox`` or inline styles.
"""

import re
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from ..core.models import BoundingBox

logger = logging.getLogger(__name__)

HAS_TEXT_PATTERN = re.compile(r'^(?P<base>.*?):has-text\("(?P<text>(?:[^"\\]|\\.)*)"\)$')
NON_CONTENT_TAGS = {"script", "style", "head", "meta", "link", "title", "noscript", "template", "html"}


class ElementNode(ABC):
    """A single element on a live or captured page."""

    @property
    @abstractmethod
    def tag_name(self) -> str:
        pass

    @property
    @abstractmethod
    def attributes(self) -> Dict[str, str]:
        pass

    @property
    @abstractmethod
    def text_content(self) -> str:
        """Whitespace-normalised, trimmed text content."""
        pass

    @property
    @abstractmethod
    def bounding_box(self) -> BoundingBox:
        pass

    @property
    @abstractmethod
    def is_hidden(self) -> bool:
        pass

    @abstractmethod
    def ancestors(self, limit: Optional[int] = None) -> List['ElementNode']:
        """Parent chain, nearest first."""
        pass

    @abstractmethod
    def siblings(self) -> List['ElementNode']:
        """Element siblings in document order, excluding this element."""
        pass

    @abstractmethod
    def structural_path(self) -> str:
        """A CSS path that resolves to this element on the same page."""
        pass


class PageHandle(ABC):
    """Read-only view of a page used for identification and healing."""

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    @abstractmethod
    async def element_at(self, x: float, y: float) -> Optional[ElementNode]:
        """Return the innermost element at the given point."""
        pass

    @abstractmethod
    async def query_selector_all(self, selector: str) -> List[ElementNode]:
        pass

    @abstractmethod
    async def all_elements(self) -> List[ElementNode]:
        """Every content element on the page in document order."""
        pass

    async def query_selector(self, selector: str) -> Optional[ElementNode]:
        matches = await self.query_selector_all(selector)
        return matches[0] if matches else None


class SnapshotElement(ElementNode):
    """ElementNode backed by a BeautifulSoup tag."""

    def __init__(self, tag: Tag):
        self._tag = tag

    def __eq__(self, other) -> bool:
        return isinstance(other, SnapshotElement) and other._tag is self._tag

    def __hash__(self) -> int:
        return id(self._tag)

    def __repr__(self) -> str:
        return f"SnapshotElement({self.structural_path()})"

    @property
    def tag(self) -> Tag:
        return self._tag

    @property
    def tag_name(self) -> str:
        return (self._tag.name or "").lower()

    @property
    def attributes(self) -> Dict[str, str]:
        attributes = {}
        for name, value in (self._tag.attrs or {}).items():
            attributes[name] = " ".join(value) if isinstance(value, list) else str(value)
        return attributes

    @property
    def text_content(self) -> str:
        return " ".join(self._tag.get_text(" ").split())

    @property
    def bounding_box(self) -> BoundingBox:
        bbox = self._tag.get("data-bbox")
        if bbox:
            try:
                x, y, width, height = (float(part) for part in str(bbox).split(","))
                return BoundingBox(x=x, y=y, width=width, height=height)
            except ValueError:
                logger.warning(f"Ignoring malformed data-bbox '{bbox}' on <{self.tag_name}>")

        style = self._tag.get("style", "") or ""
        return BoundingBox(
            x=self._extract_style_property(style, "left", 0.0),
            y=self._extract_style_property(style, "top", 0.0),
            width=self._extract_style_property(style, "width", 0.0),
            height=self._extract_style_property(style, "height", 0.0)
        )

    @property
    def is_hidden(self) -> bool:
        if self._tag.has_attr("hidden") or self._tag.get("aria-hidden") == "true":
            return True
        if self.tag_name == "input" and self._tag.get("type") == "hidden":
            return True
        style = (self._tag.get("style", "") or "").replace(" ", "").lower()
        return "display:none" in style or "visibility:hidden" in style

    def ancestors(self, limit: Optional[int] = None) -> List[ElementNode]:
        result: List[ElementNode] = []
        current = self._tag.parent
        while isinstance(current, Tag) and current.name != "[document]":
            if limit is not None and len(result) >= limit:
                break
            result.append(SnapshotElement(current))
            current = current.parent
        return result

    def siblings(self) -> List[ElementNode]:
        parent = self._tag.parent
        if not isinstance(parent, Tag):
            return []
        return [
            SnapshotElement(child) for child in parent.find_all(recursive=False)
            if child is not self._tag
        ]

    def structural_path(self) -> str:
        """Path of ``tag:nth-of-type(n)`` steps anchored at the nearest id."""
        parts = []
        current = self._tag
        while isinstance(current, Tag) and current.name not in ("[document]", "html"):
            parent = current.parent
            if current is not self._tag and current.get("id"):
                parts.append(f'[id="{current["id"]}"]')
                break
            if current.name == "body" or not isinstance(parent, Tag):
                parts.append(current.name)
                break
            same_type = [s for s in parent.find_all(current.name, recursive=False)]
            position = next(i for i, s in enumerate(same_type, start=1) if s is current)
            parts.append(f"{current.name}:nth-of-type({position})")
            current = parent
        parts.reverse()
        return " > ".join(parts)

    def _extract_style_property(self, style: str, property_name: str, default: float) -> float:
        """Extract numeric property from inline style string."""
        match = re.search(rf'(?<![-\w]){property_name}:\s*(-?\d+(?:\.\d+)?)', style)
        if match:
            return float(match.group(1))
        return default


class HtmlSnapshotPage(PageHandle):
    """PageHandle over a captured HTML document."""

    def __init__(self, html: str, url: str = ""):
        self._soup = BeautifulSoup(html or "", "html.parser")
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    async def element_at(self, x: float, y: float) -> Optional[ElementNode]:
        best: Optional[SnapshotElement] = None
        for element in self._content_elements():
            box = element.bounding_box
            if box.area <= 0 or not box.contains(x, y):
                continue
            # Ties go to the later (deeper) element in document order.
            if best is None or box.area <= best.bounding_box.area:
                best = element
        return best

    async def query_selector_all(self, selector: str) -> List[ElementNode]:
        selector = (selector or "").strip()
        if not selector:
            return []

        match = HAS_TEXT_PATTERN.match(selector)
        if match:
            text = re.sub(r'\\(.)', r'\1', match.group("text")).lower()
            base = match.group("base").strip()
            candidates = self._select(base) if base else self._content_elements()
            return [element for element in candidates if text in element.text_content.lower()]

        return self._select(selector)

    async def all_elements(self) -> List[ElementNode]:
        return list(self._content_elements())

    def _select(self, selector: str) -> List[SnapshotElement]:
        try:
            return [SnapshotElement(tag) for tag in self._soup.select(selector)]
        except (SelectorSyntaxError, NotImplementedError, ValueError) as e:
            logger.debug(f"Selector '{selector}' is not resolvable on snapshot: {e}")
            return []

    def _content_elements(self) -> List[SnapshotElement]:
        return [
            SnapshotElement(tag) for tag in self._soup.find_all(True)
            if tag.name not in NON_CONTENT_TAGS and tag.name != "body"
        ]


class PageProvider(ABC):
    """Supplies the current page for a failed test step."""

    @abstractmethod
    async def get_page(self, test_case_id: str, page_url: str = "") -> Optional[PageHandle]:
        pass


class SnapshotPageProvider(PageProvider):
    """Serves the latest registered HTML snapshot per test case."""

    def __init__(self):
        self._pages: Dict[str, HtmlSnapshotPage] = {}

    def register(self, test_case_id: str, html: str, url: str = "") -> HtmlSnapshotPage:
        page = HtmlSnapshotPage(html, url=url)
        self._pages[test_case_id] = page
        logger.debug(f"Registered page snapshot for test case {test_case_id}")
        return page

    def forget(self, test_case_id: str) -> None:
        self._pages.pop(test_case_id, None)

    async def get_page(self, test_case_id: str, page_url: str = "") -> Optional[PageHandle]:
        return self._pages.get(test_case_id)
