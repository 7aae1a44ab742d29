"""NiceGUI interface - thin visualization layer for the query session.

Responsibilities:
    - Question/answer log with reasoning steps, batches and citation badges
    - Progress indicator while a query streams
    - Inline error banner with retry
    - New chat and backend chat history

Contains no protocol or parsing logic; renders SessionContext snapshots.
"""
