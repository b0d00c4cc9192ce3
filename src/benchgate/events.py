"""Gate event emission"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, Any, List, Optional

from .tasks.models import utcnow

logger = logging.getLogger(__name__)

QUALITY_ASSESSED = "quality.assessed"
CONTAMINATION_ANALYZED = "contamination.analyzed"
STATUS_CHANGED = "task.status_changed"


class EventSink(ABC):
    """Receives gate events; delivery is best effort"""

    @abstractmethod
    async def emit(self, event_type: str, data: Dict[str, Any], task_id: Optional[str] = None):
        """Deliver one event"""


class LoggingEventSink(EventSink):
    """Writes events to the log and keeps the most recent ones in memory"""

    def __init__(self, buffer_size: int = 1000, level: int = logging.INFO):
        self.event_buffer = deque(maxlen=buffer_size)
        self.level = level
        self.stats = {"events_emitted": 0}

    async def emit(self, event_type: str, data: Dict[str, Any], task_id: Optional[str] = None):
        event = {
            "type": event_type,
            "data": data,
            "task_id": task_id,
            "timestamp": utcnow().isoformat(),
            "sequence": self.stats["events_emitted"],
        }
        self.event_buffer.append(event)
        self.stats["events_emitted"] += 1
        logger.log(self.level, f"Event {event_type} for {task_id}: {json.dumps(data, default=str)}")

    def events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Buffered events, optionally of one type"""
        if event_type is None:
            return list(self.event_buffer)
        return [e for e in self.event_buffer if e["type"] == event_type]


async def emit_safely(
    sink: Optional[EventSink],
    event_type: str,
    data: Dict[str, Any],
    task_id: Optional[str] = None,
):
    """Emit through ``sink``; failures are logged and never propagate"""
    if sink is None:
        return
    try:
        await sink.emit(event_type, data, task_id)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Event sink failed for {event_type} ({task_id}): {e}")
