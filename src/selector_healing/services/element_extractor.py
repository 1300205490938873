"""Element extraction: pulls raw structural and visual facts from a page."""

import logging
from typing import Dict, Optional, Tuple

from ..core.exceptions import ElementNotFound
from ..core.models import ElementFacts, ElementIdentification
from .page_snapshot import ElementNode, PageHandle

logger = logging.getLogger(__name__)

MAX_ANCESTORS = 2
MAX_SIBLING_TEXTS = 3
SIBLING_TEXT_LENGTH = 50

INTERACTIVE_TAGS = {"button", "input", "a", "select", "textarea"}

IMPLICIT_ROLES = {
    "button": "button",
    "select": "combobox",
    "textarea": "textbox",
    "img": "img",
    "nav": "navigation",
    "header": "banner",
    "footer": "contentinfo",
    "form": "form",
    "article": "article",
    "section": "region",
    "main": "main",
    "ul": "list",
    "ol": "list",
    "li": "listitem",
    "table": "table",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "h4": "heading",
    "h5": "heading",
    "h6": "heading"
}

INPUT_ROLES = {
    "button": "button",
    "submit": "button",
    "reset": "button",
    "checkbox": "checkbox",
    "radio": "radio",
    "range": "slider",
    "search": "searchbox",
    "number": "spinbutton"
}


def compute_role(tag_name: str, attributes: Dict[str, str]) -> str:
    """Explicit ``role`` attribute, else the implicit ARIA role of the tag."""
    explicit = (attributes.get("role") or "").strip()
    if explicit:
        return explicit.split()[0]
    if tag_name == "a":
        return "link" if attributes.get("href") is not None else ""
    if tag_name == "input":
        return INPUT_ROLES.get((attributes.get("type") or "text").lower(), "textbox")
    return IMPLICIT_ROLES.get(tag_name, "")


class ElementExtractor:
    """Read-only inspection of a target element on a page."""

    async def extract_at(self, page: PageHandle, x: float, y: float) -> Tuple[ElementNode, ElementFacts]:
        """Resolve the element at click coordinates and extract its facts.

        Raises:
            ElementNotFound: If nothing resolves at the coordinates
        """
        node = await page.element_at(x, y)
        if node is None:
            raise ElementNotFound(
                f"No element found at coordinates ({x}, {y})", coordinates=(x, y))
        return node, self.facts_for(node)

    async def extract_reference(self, page: PageHandle, selector: str) -> Tuple[ElementNode, ElementFacts]:
        """Resolve an element reference (a selector) and extract its facts.

        Raises:
            ElementNotFound: If the selector matches nothing
        """
        node = await page.query_selector(selector)
        if node is None:
            raise ElementNotFound(f"No element matches '{selector}'", reference=selector)
        return node, self.facts_for(node)

    async def extract(self, page: PageHandle, coordinates: Optional[Tuple[float, float]] = None,
                      reference: Optional[str] = None) -> Tuple[ElementNode, ElementFacts]:
        """Extract by coordinates or by reference, whichever is given."""
        if coordinates is not None:
            return await self.extract_at(page, coordinates[0], coordinates[1])
        if reference:
            return await self.extract_reference(page, reference)
        raise ElementNotFound("Either coordinates or an element reference is required")

    def facts_for(self, node: ElementNode) -> ElementFacts:
        """Build the raw fact set for an already-resolved element."""
        tag_name = node.tag_name
        attributes = node.attributes

        sibling_texts = []
        for sibling in node.siblings():
            text = sibling.text_content
            if text:
                sibling_texts.append(text[:SIBLING_TEXT_LENGTH])
            if len(sibling_texts) >= MAX_SIBLING_TEXTS:
                break

        aria_labels = []
        if attributes.get("aria-label"):
            aria_labels.append(attributes["aria-label"])

        facts = ElementFacts(
            tag_name=tag_name,
            attributes=attributes,
            text_content=node.text_content,
            bounding_box=node.bounding_box,
            ancestor_tags=[ancestor.tag_name for ancestor in node.ancestors(limit=MAX_ANCESTORS)],
            sibling_texts=sibling_texts,
            aria_labels=aria_labels,
            role=compute_role(tag_name, attributes),
            is_interactive=tag_name in INTERACTIVE_TAGS,
            is_visible=not node.is_hidden
        )
        logger.debug(f"Extracted facts for <{tag_name}> with {len(attributes)} attributes")
        return facts


def facts_from_identification(identification: ElementIdentification) -> ElementFacts:
    """Rebuild the fact set captured when an identification was made."""
    details = identification.technical_details
    context = identification.visual_context
    return ElementFacts(
        tag_name=details.tag_name,
        attributes=dict(details.attributes),
        text_content=details.text_content,
        bounding_box=context.position,
        ancestor_tags=list(context.parent_elements),
        sibling_texts=list(context.nearby_text),
        aria_labels=list(context.aria_labels),
        role=details.role,
        is_interactive=details.is_interactive,
        is_visible=details.is_visible
    )
