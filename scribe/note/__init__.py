"""
Clinical note boundary for the scribe service.

Design intent:
- Turn a finished transcript into a fixed SOAP + red-flags summary.
- Treat model output as untrusted text: validate against the schema, fall back on failure.
- Share one transcribe -> summarize path between streaming finalize and one-shot upload.
"""
