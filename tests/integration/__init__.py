"""Integration tests for components working together as a system.

Coverage:
    - Query flow: session, handler, router and connection manager end to end
    - Connection manager against an in-memory WebSocket
    - Chat history against httpx.MockTransport
    - FastAPI host endpoints via ASGITransport

No backend is required; only the network edges are replaced.
"""
