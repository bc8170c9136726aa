from __future__ import annotations


class ScribeError(RuntimeError):
    """Base class for errors reported back to a caller instead of crashing it."""


class ProviderError(ScribeError):
    def __init__(self, code: str, message: str, provider_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name


class InvalidStateTransition(ScribeError):
    def __init__(self, session_id: str, state: str, event: str):
        super().__init__(f"Cannot apply '{event}' while session is '{state}'.")
        self.session_id = session_id
        self.state = state
        self.event = event


class MalformedModelOutput(ScribeError):
    def __init__(self, raw: str, reason: str):
        super().__init__(f"Model output is not a valid summary: {reason}")
        self.raw = raw
        self.reason = reason


class UploadError(ScribeError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BufferLimitExceeded(ScribeError):
    def __init__(self, limit_bytes: int):
        super().__init__(f"Buffered audio would exceed {limit_bytes} bytes; send chunkEnd first.")
        self.limit_bytes = limit_bytes


class SessionNotFound(KeyError):
    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Unknown session_id: {self.session_id}"
