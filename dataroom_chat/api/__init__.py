"""FastAPI host for the chat UI.

Endpoints:
    - GET /health: Backend configuration readiness
    - /: NiceGUI chat page (mounted by main.py)
"""

from dataroom_chat.api.app import HealthResponse, create_app

__all__ = ["HealthResponse", "create_app"]
