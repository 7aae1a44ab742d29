"""Unit tests for individual components in isolation.

Coverage:
    - models/: Wire frame validation and serialization
    - parsing/: Incremental answer parsing and citations
    - client/: Configuration, token providers, frame routing
    - session/: Coalescing, session state, frame handling

No network access. Redraw ticks are driven manually by the tests.
"""
