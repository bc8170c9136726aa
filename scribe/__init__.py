"""
Encounter scribe service package.

Design intent:
- Stream or upload encounter audio, transcribe it, and summarize it into a SOAP note.
- Keep session/state handling (internal_core) separate from the transport (api).
- Treat speech-to-text and language-model backends as swappable providers.
"""
