from __future__ import annotations


class JournalSyncError(Exception):
    """Base error for every remote/document operation.

    `code` is a stable snake_case identifier surfaced by the CLI and the API.
    """

    code = "journalsync_error"

    def __init__(self, message: str = "", *, code: str | None = None):
        self.message = message or self.code
        if code:
            self.code = code
        super().__init__(self.message)

    def to_payload(self) -> dict[str, object]:
        return {"ok": False, "code": self.code, "error": self.message}


class NotConfiguredError(JournalSyncError):
    code = "not_configured"


class InvalidRepositoryIdentifierError(JournalSyncError):
    code = "repository_invalid"


class NetworkError(JournalSyncError):
    code = "network_error"

    def __init__(self, message: str = "", *, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class AuthError(JournalSyncError):
    code = "auth_failed"


class NotFoundError(JournalSyncError):
    code = "not_found"


class ConflictError(JournalSyncError):
    code = "conflict"


class ValidationError(JournalSyncError):
    code = "validation_failed"


class RateLimitedError(JournalSyncError):
    code = "rate_limited"


class DecodeError(JournalSyncError):
    code = "decode_failed"


class UnknownStatusError(JournalSyncError):
    code = "api_error"

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"api_error_status_{status_code}")
        self.status_code = status_code

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        payload["status_code"] = self.status_code
        return payload


class CancelledError(JournalSyncError):
    code = "cancelled"


class IndexStoreError(JournalSyncError):
    code = "index_store_failed"
