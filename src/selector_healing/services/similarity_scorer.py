"""
Similarity scoring for element re-identification.

Weighted property comparison between a reference element (as captured when
the selector last worked) and candidate elements on the current page. Each
healing strategy looks at a different slice of the element:

- semantic: tag, role, stable attributes, text
- visual: position, size, tag/text fingerprint
- context: neighbouring text, parent chain, tag
- text: visible text only, for broad fallback search
"""

import math
import logging
from typing import Dict, List, Optional, Tuple

from ..core.models import BoundingBox, ElementFacts
from .selector_generator import is_stable_class

logger = logging.getLogger(__name__)

VOLATILE_ATTRIBUTES = {"style", "data-bbox", "class"}

SEMANTIC_WEIGHTS = {
    "tag": 0.2,
    "role": 0.1,
    "attributes": 0.4,
    "text": 0.3
}

VISUAL_WEIGHTS = {
    "proximity": 0.5,
    "size": 0.2,
    "fingerprint": 0.3
}

CONTEXT_WEIGHTS = {
    "siblings": 0.6,
    "parents": 0.25,
    "tag": 0.15
}

PROXIMITY_SCALE = 200.0
ROLE_MATCH_SIMILARITY = 0.4


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein (edit) distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    """Edit distance normalised to [0, 1], case-insensitive."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    a, b = a.lower(), b.lower()
    return 1.0 - (levenshtein_distance(a, b) / max(len(a), len(b)))


def jaccard_similarity(a, b) -> float:
    """J(A,B) = |A ∩ B| / |A ∪ B|; two empty sets are identical."""
    set_a, set_b = set(a), set(b)
    if not set_a and not set_b:
        return 1.0
    union = len(set_a | set_b)
    return len(set_a & set_b) / union if union else 0.0


def proximity_similarity(a: BoundingBox, b: BoundingBox, scale: float = PROXIMITY_SCALE) -> float:
    """Exponential decay over the distance between box centres."""
    (ax, ay), (bx, by) = a.center, b.center
    distance = math.sqrt((ax - bx) ** 2 + (ay - by) ** 2)
    return math.exp(-distance / scale)


def size_similarity(a: BoundingBox, b: BoundingBox) -> float:
    """Ratio of smaller to larger area."""
    if a.area > 0 and b.area > 0:
        return min(a.area, b.area) / max(a.area, b.area)
    return 1.0 if a.area == b.area else 0.0


def stable_attribute_pairs(attributes: Dict[str, str]) -> set:
    """Attribute name/value pairs that survive cosmetic re-renders."""
    pairs = {(name, value) for name, value in attributes.items() if name not in VOLATILE_ATTRIBUTES}
    for class_name in (attributes.get("class") or "").split():
        if is_stable_class(class_name):
            pairs.add(("class", class_name))
    return pairs


class ElementSimilarityScorer:
    """Scores candidate elements against a reference element."""

    def semantic_similarity(self, reference: ElementFacts, candidate: ElementFacts) -> float:
        weights = SEMANTIC_WEIGHTS
        score = 0.0
        score += weights["tag"] * (1.0 if reference.tag_name == candidate.tag_name else 0.0)
        score += weights["role"] * (1.0 if reference.role == candidate.role else 0.0)
        score += weights["attributes"] * jaccard_similarity(
            stable_attribute_pairs(reference.attributes),
            stable_attribute_pairs(candidate.attributes))
        score += weights["text"] * levenshtein_similarity(reference.text_content, candidate.text_content)
        return score

    def visual_similarity(self, reference: ElementFacts, candidate: ElementFacts) -> float:
        weights = VISUAL_WEIGHTS
        fingerprint = 0.5 * (1.0 if reference.tag_name == candidate.tag_name else 0.0)
        fingerprint += 0.5 * levenshtein_similarity(reference.text_content, candidate.text_content)
        return (weights["proximity"] * proximity_similarity(reference.bounding_box, candidate.bounding_box)
                + weights["size"] * size_similarity(reference.bounding_box, candidate.bounding_box)
                + weights["fingerprint"] * fingerprint)

    def context_similarity(self, reference: ElementFacts, candidate: ElementFacts) -> float:
        weights = CONTEXT_WEIGHTS
        siblings = jaccard_similarity(
            (text.lower() for text in reference.sibling_texts),
            (text.lower() for text in candidate.sibling_texts))
        if reference.ancestor_tags or candidate.ancestor_tags:
            matching = sum(1 for a, b in zip(reference.ancestor_tags, candidate.ancestor_tags) if a == b)
            parents = matching / max(len(reference.ancestor_tags), len(candidate.ancestor_tags))
        else:
            parents = 1.0
        tag = 1.0 if reference.tag_name == candidate.tag_name else 0.0
        return weights["siblings"] * siblings + weights["parents"] * parents + weights["tag"] * tag

    def text_similarity(self, reference: ElementFacts, candidate: ElementFacts) -> float:
        """Visible text similarity; role equality only when no text is known."""
        if not reference.text_content:
            if reference.role and reference.role == candidate.role:
                return ROLE_MATCH_SIMILARITY
            return 0.0
        return levenshtein_similarity(reference.text_content, candidate.text_content)

    def rank(self, reference: ElementFacts, candidates: List[Tuple[object, ElementFacts]],
             scorer: str = "semantic") -> List[Tuple[object, ElementFacts, float]]:
        """Score candidates with the named scorer, best first.

        Ties keep document order.
        """
        score_fn = getattr(self, f"{scorer}_similarity")
        scored = [(node, facts, score_fn(reference, facts)) for node, facts in candidates]
        scored.sort(key=lambda item: item[2], reverse=True)
        return scored

    def best_match(self, reference: ElementFacts, candidates: List[Tuple[object, ElementFacts]],
                   scorer: str = "semantic",
                   threshold: float = 0.0) -> Optional[Tuple[object, ElementFacts, float]]:
        ranked = self.rank(reference, candidates, scorer)
        if ranked and ranked[0][2] > threshold:
            logger.debug(f"Best {scorer} match scored {ranked[0][2]:.3f}")
            return ranked[0]
        logger.debug(f"No {scorer} match above threshold {threshold}")
        return None
