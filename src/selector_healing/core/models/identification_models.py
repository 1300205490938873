"""Data models for element identification and selector ranking."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any
from enum import Enum


class ElementType(Enum):
    """Closed set of element kinds an identification can classify."""
    BUTTON = "button"
    INPUT = "input"
    LINK = "link"
    TEXT = "text"
    IMAGE = "image"
    DROPDOWN = "dropdown"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    TEXTAREA = "textarea"
    SELECT = "select"
    FORM = "form"
    NAVIGATION = "navigation"
    HEADER = "header"
    FOOTER = "footer"
    ARTICLE = "article"
    SECTION = "section"


class SelectorStrategy(Enum):
    """Selector generation strategies in priority order."""
    ID_ATTRIBUTE = "id-attribute"
    TEST_ATTRIBUTE = "test-attribute"
    ARIA_LABEL = "aria-label"
    NAME_ATTRIBUTE = "name-attribute"
    TEXT_CONTENT = "text-content"
    CLASS_SELECTOR = "class-selector"
    FALLBACK = "fallback"


class SelectorType(Enum):
    """Syntactic family of a selector string."""
    CSS = "css"
    XPATH = "xpath"
    TEXT = "text"
    ARIA = "aria"
    DATA_ATTRIBUTE = "data_attribute"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class BoundingBox:
    """Element position and size in page coordinates."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, x: float, y: float) -> bool:
        """Check whether a point falls inside the box."""
        return (self.x <= x <= self.x + self.width
                and self.y <= y <= self.y + self.height)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'BoundingBox':
        data = data or {}
        return cls(
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0))
        )


@dataclass
class ElementFacts:
    """Raw structural and visual facts pulled from a live element."""
    tag_name: str
    attributes: Dict[str, str]
    text_content: str
    bounding_box: BoundingBox
    ancestor_tags: List[str] = field(default_factory=list)
    sibling_texts: List[str] = field(default_factory=list)
    aria_labels: List[str] = field(default_factory=list)
    role: str = ""
    is_interactive: bool = False
    is_visible: bool = True


@dataclass(frozen=True)
class SelectorCandidate:
    """A generated selector tagged with the strategy that produced it."""
    selector: str
    strategy: SelectorStrategy
    confidence: float
    selector_type: SelectorType = SelectorType.CSS


@dataclass(frozen=True)
class VisualContext:
    """Neighbourhood of an element as seen on the page."""
    nearby_text: List[str]
    parent_elements: List[str]
    aria_labels: List[str]
    position: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nearby_text": list(self.nearby_text),
            "parent_elements": list(self.parent_elements),
            "aria_labels": list(self.aria_labels),
            "position": self.position.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VisualContext':
        return cls(
            nearby_text=list(data.get("nearby_text", [])),
            parent_elements=list(data.get("parent_elements", [])),
            aria_labels=list(data.get("aria_labels", [])),
            position=BoundingBox.from_dict(data.get("position"))
        )


@dataclass(frozen=True)
class TechnicalDetails:
    """Technical description of the identified element."""
    tag_name: str
    attributes: Dict[str, str]
    text_content: str
    role: str
    is_interactive: bool
    is_visible: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag_name": self.tag_name,
            "attributes": dict(self.attributes),
            "text_content": self.text_content,
            "role": self.role,
            "is_interactive": self.is_interactive,
            "is_visible": self.is_visible
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TechnicalDetails':
        return cls(
            tag_name=data.get("tag_name", ""),
            attributes=dict(data.get("attributes", {})),
            text_content=data.get("text_content", ""),
            role=data.get("role", ""),
            is_interactive=bool(data.get("is_interactive", False)),
            is_visible=bool(data.get("is_visible", True))
        )


@dataclass(frozen=True)
class ConfidenceMetrics:
    """Confidence breakdown; ``overall`` is derived from the other parts."""
    element_recognition: float
    selector_reliability: float
    interaction_prediction: float
    overall: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "element_recognition": self.element_recognition,
            "selector_reliability": self.selector_reliability,
            "interaction_prediction": self.interaction_prediction,
            "overall": self.overall
        }


@dataclass(frozen=True)
class ElementIdentification:
    """Immutable result of identifying one element.

    Superseded, never mutated: a successful healing produces a new record
    via :meth:`supersede`.
    """
    id: str
    element_type: ElementType
    natural_description: str
    primary_selector: str
    alternative_selectors: List[str]
    confidence_scores: List[float]
    visual_context: VisualContext
    technical_details: TechnicalDetails
    confidence_metrics: ConfidenceMetrics
    created_at: datetime = field(default_factory=datetime.now)
    supersedes: Optional[str] = None

    @property
    def all_selectors(self) -> List[str]:
        """Primary selector followed by the alternatives."""
        return [self.primary_selector] + list(self.alternative_selectors)

    def supersede(self, new_id: str, primary_selector: str,
                  alternative_selectors: List[str],
                  confidence_scores: List[float]) -> 'ElementIdentification':
        """Create the successor record carrying a healed selector set."""
        return ElementIdentification(
            id=new_id,
            element_type=self.element_type,
            natural_description=self.natural_description,
            primary_selector=primary_selector,
            alternative_selectors=list(alternative_selectors),
            confidence_scores=list(confidence_scores),
            visual_context=self.visual_context,
            technical_details=self.technical_details,
            confidence_metrics=self.confidence_metrics,
            supersedes=self.id
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert identification to dictionary for storage and events."""
        return {
            "id": self.id,
            "element_type": self.element_type.value,
            "natural_description": self.natural_description,
            "primary_selector": self.primary_selector,
            "alternative_selectors": list(self.alternative_selectors),
            "confidence_scores": list(self.confidence_scores),
            "visual_context": self.visual_context.to_dict(),
            "technical_details": self.technical_details.to_dict(),
            "confidence_metrics": self.confidence_metrics.to_dict(),
            "created_at": self.created_at.isoformat(),
            "supersedes": self.supersedes
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ElementIdentification':
        """Create identification from dictionary."""
        return cls(
            id=data["id"],
            element_type=ElementType(data["element_type"]),
            natural_description=data.get("natural_description", ""),
            primary_selector=data["primary_selector"],
            alternative_selectors=list(data.get("alternative_selectors", [])),
            confidence_scores=list(data.get("confidence_scores", [])),
            visual_context=VisualContext.from_dict(data.get("visual_context", {})),
            technical_details=TechnicalDetails.from_dict(data.get("technical_details", {})),
            confidence_metrics=ConfidenceMetrics(**data["confidence_metrics"]),
            created_at=datetime.fromisoformat(data["created_at"]) if "created_at" in data else datetime.now(),
            supersedes=data.get("supersedes")
        )
