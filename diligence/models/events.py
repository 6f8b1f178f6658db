from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    RESEARCH_STARTED = "research_started"
    SECTION_STARTED = "section_started"
    SECTION_COMPLETED = "section_completed"
    RESEARCH_COMPLETE = "research_complete"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> str:
        return json.dumps(self.data, default=str)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {self.payload()}\n\n"
