"""Test package for Dataroom Chat.

Structure:
    - unit/: Parser, coalescer, session state and handler tests
    - integration/: Query flow over an in-memory WebSocket, history REST
      client, FastAPI host

Leverages pytest with pytest-check for soft assertions. Async tests run
under pytest-asyncio auto mode.
"""
