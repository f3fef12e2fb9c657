"""Event models published on the pub/sub bus."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class SessionEvent:
    """Session lifecycle event, one per controller transition."""
    event_id: str
    event_type: str  # target state name, e.g. "recording", "failed"
    session_id: Optional[str] = None
    previous_state: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
