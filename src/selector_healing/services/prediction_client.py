"""HTTP client for the external selector prediction service."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ..core.config import settings
from ..core.models import ElementIdentification, FailureDetails, SelectorType

logger = logging.getLogger(__name__)


@dataclass
class Prediction:
    """One selector proposed by the prediction service."""
    selector: str
    confidence: float
    reasoning: str = ""
    selector_type: SelectorType = SelectorType.CSS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Prediction':
        try:
            selector_type = SelectorType(data.get("selector_type", SelectorType.CSS.value))
        except ValueError:
            selector_type = SelectorType.HYBRID
        return cls(
            selector=str(data["selector"]),
            confidence=float(data.get("confidence", 0.0)),
            reasoning=data.get("reasoning", ""),
            selector_type=selector_type
        )


class PredictionClient:
    """Posts reference elements to the prediction service and parses proposals.

    The response body is ``{"predictions": [{"selector", "confidence",
    "reasoning", "selector_type"}]}``; predictions are returned in the order
    the service sent them.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url if base_url is not None else settings.PREDICTION_SERVICE_URL) or ""
        self.timeout = timeout if timeout is not None else settings.PREDICTION_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def predict(self, reference: Optional[ElementIdentification],
                      failure_details: FailureDetails) -> List[Prediction]:
        """Request selector predictions without blocking the event loop.

        Raises:
            requests.RequestException: On transport or HTTP errors
        """
        payload = {
            "reference_identification": reference.to_dict() if reference else None,
            "failure_details": failure_details.to_dict()
        }
        data = await asyncio.get_event_loop().run_in_executor(None, self._post, payload)

        predictions = []
        for item in data.get("predictions", []):
            try:
                predictions.append(Prediction.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed prediction {item!r}: {e}")
        logger.debug(f"Prediction service returned {len(predictions)} predictions")
        return predictions

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            f"{self.base_url.rstrip('/')}/predict",
            json=payload,
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()
