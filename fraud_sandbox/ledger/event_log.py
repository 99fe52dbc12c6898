"""
Process-wide, append-only event log.

Every mutating call appends one structured line (timestamp, category tag,
message). The UI layer reads it; this core never truncates it.
Each append is mirrored to the python logger.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from fraud_sandbox.features.clock import Clock


logger = logging.getLogger(__name__)


class EventLogEntry(BaseModel):
    timestamp: datetime
    category: str  # SYSTEM, BANKING, AUTH, SECURITY, TRANSFER, BLOCKED, DEFENSE, SOC, THREAT-INTEL, ATO...
    message: str

    class Config:
        frozen = True

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] [{self.category}] {self.message}"


class EventLog:

    def __init__(self, clock: Clock):
        self.clock = clock
        self._entries: List[EventLogEntry] = []

    def append(self, category: str, message: str, when: Optional[datetime] = None) -> EventLogEntry:
        entry = EventLogEntry(
            timestamp=when or self.clock.now(),
            category=category,
            message=message,
        )
        self._entries.append(entry)
        logger.info(f"[{category}] {message}")
        return entry

    def entries(self, category: Optional[str] = None) -> List[EventLogEntry]:
        if category is None:
            return list(self._entries)
        return [e for e in self._entries if e.category == category]

    def lines(self) -> List[str]:
        return [e.format() for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
