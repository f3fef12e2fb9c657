"""aiohttp web surface."""

from .app import create_app, CONTROLLER_KEY, NOTIFIER_KEY, FILE_MANAGER_KEY

__all__ = ["create_app", "CONTROLLER_KEY", "NOTIFIER_KEY", "FILE_MANAGER_KEY"]
