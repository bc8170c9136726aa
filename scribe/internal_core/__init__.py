from .config import ScribeConfig, load_config
from .errors import (
    BufferLimitExceeded,
    InvalidStateTransition,
    MalformedModelOutput,
    ProviderError,
    ScribeError,
    SessionNotFound,
    UploadError,
)

__all__ = [
    "ScribeConfig",
    "load_config",
    "BufferLimitExceeded",
    "InvalidStateTransition",
    "MalformedModelOutput",
    "ProviderError",
    "ScribeError",
    "SessionNotFound",
    "UploadError",
]
