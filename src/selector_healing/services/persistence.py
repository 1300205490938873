"""
Persistence of identifications and healing sessions.

The orchestrator schedules writes through the PersistenceSink port after
meaningful transitions and never waits on them; a write that keeps failing
raises PersistenceFailure inside the scheduled task, where it is logged.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..core.exceptions import PersistenceFailure
from ..core.models import ElementIdentification, HealingSession

logger = logging.getLogger(__name__)


class PersistenceSink(ABC):
    """PersistIdentification / PersistHealingSession port."""

    @abstractmethod
    async def persist_identification(self, identification: ElementIdentification) -> None:
        pass

    @abstractmethod
    async def persist_healing_session(self, session: HealingSession) -> None:
        pass


class JsonFilePersistence(PersistenceSink):
    """Writes one JSON document per record under the data directory."""

    def __init__(self, storage_path: Optional[str] = None, max_retries: int = 3,
                 retry_delay: float = 0.5):
        """
        Initialize JSON file persistence.

        Args:
            storage_path: Root directory; defaults to settings.DATA_DIR
            max_retries: Write attempts before giving up
            retry_delay: Seconds between attempts
        """
        self.storage_path = Path(storage_path or settings.DATA_DIR)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._write_lock = asyncio.Lock()

    @property
    def identifications_dir(self) -> Path:
        return self.storage_path / "identifications"

    @property
    def sessions_dir(self) -> Path:
        return self.storage_path / "sessions"

    async def persist_identification(self, identification: ElementIdentification) -> None:
        await self._write(self.identifications_dir / f"{identification.id}.json", identification.to_dict())

    async def persist_healing_session(self, session: HealingSession) -> None:
        await self._write(self.sessions_dir / f"{session.id}.json", session.to_dict())

    def load_identification(self, identification_id: str) -> Optional[ElementIdentification]:
        path = self.identifications_dir / f"{identification_id}.json"
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return ElementIdentification.from_dict(json.load(f))

    def load_session_data(self, session_id: str) -> Optional[Dict[str, Any]]:
        path = self.sessions_dir / f"{session_id}.json"
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def list_session_ids(self) -> List[str]:
        if not self.sessions_dir.exists():
            return []
        return sorted(path.stem for path in self.sessions_dir.glob("*.json"))

    async def _write(self, path: Path, data: Dict[str, Any]) -> None:
        last_error: Optional[Exception] = None
        async with self._write_lock:
            for attempt in range(1, self.max_retries + 1):
                try:
                    self._write_file(path, data)
                    logger.debug(f"Persisted {path.name}")
                    return
                except (OSError, TypeError, ValueError) as e:
                    last_error = e
                    logger.warning(f"Write of {path} failed (attempt {attempt}/{self.max_retries}): {e}")
                    if attempt < self.max_retries:
                        await asyncio.sleep(self.retry_delay)

        raise PersistenceFailure(f"Could not persist {path.name} after {self.max_retries} attempts: {last_error}")

    def _write_file(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)
        temp_path.replace(path)
