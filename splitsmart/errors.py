"""
Error taxonomy shared by the engines and the HTTP layer.

Every error carries an HTTP status and a short ``kind`` string; the
handler registered in ``splitsmart.main`` renders them as
``{"detail": ..., "error": kind, ...extra}``.
"""
from __future__ import annotations

from typing import Any, Optional


class SplitSmartError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "error": self.kind}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


class NotFoundError(SplitSmartError):
    """Referenced id does not exist or does not belong to the expected parent."""
    status_code = 404
    kind = "not_found"


class InvalidRequestError(SplitSmartError):
    status_code = 400
    kind = "validation"


class ConflictError(SplitSmartError):
    """Uniqueness violated by a concurrent write; re-read state and retry."""
    status_code = 409
    kind = "conflict"


class UpstreamError(SplitSmartError):
    """Receipt parser / suggestion model unavailable or returned garbage."""
    status_code = 502
    kind = "upstream_failure"

    def __init__(self, message: str, raw: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, raw=raw)
        self.raw = raw
        if status_code is not None:
            self.status_code = status_code


class StoreError(SplitSmartError):
    status_code = 503
    kind = "store_failure"

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message, retryable=retryable)
        self.retryable = retryable


class CodeGenerationError(StoreError):
    kind = "code_generation"

    def __init__(self, message: str):
        super().__init__(message, retryable=False)
