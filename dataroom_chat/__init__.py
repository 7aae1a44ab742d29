"""Dataroom Chat - streaming query client for the dataroom search service.

Holds a persistent WebSocket connection to the reasoning/search backend,
submits natural-language questions and rebuilds the structured answer
(thinking steps, cited sources, final text, errors) from partial frames.

Components:
    - client: connection manager, message router, token and history clients
    - parsing: incremental answer parser for the streamed markup
    - session: update coalescer, session state and query lifecycle
    - models: wire frames and the chat message model
    - api: FastAPI host application
    - ui: NiceGUI chat page
"""

__version__ = "0.1.0"
