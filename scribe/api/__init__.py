"""
Transport boundary for the scribe service.

Design intent:
- Expose the streaming WebSocket, the one-shot upload, and small status endpoints.
- Keep message validation explicit and failure replies predictable.
- Orchestrate the session manager and pipeline without embedding domain logic in handlers.
"""
