"""Services layer for voice2model application logic."""

from .events import SessionEventPublisher
from .notifier import ClientNotifier, MODEL_READY_EVENT
from .session_controller import SessionController

__all__ = [
    "SessionEventPublisher",
    "ClientNotifier",
    "MODEL_READY_EVENT",
    "SessionController",
]
