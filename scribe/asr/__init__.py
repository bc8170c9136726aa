"""
Audio/transcript accumulation boundary for the scribe service.

Design intent:
- Buffer opaque audio fragments until the client marks a chunk boundary.
- Keep the transcript as an ordered, append-only log of per-flush segments.
- Stay free of provider and transport concerns.
"""
