"""Domain errors raised by services and translated to HTTP responses in main."""

from typing import Any


class QuestError(Exception):
    status_code = 500
    code = "SERVER_ERROR"
    message = "Internal server error"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if code:
            self.code = code

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidInputError(QuestError):
    status_code = 400
    code = "INVALID_INPUT"
    message = "Invalid input"


class LinkRejectedError(InvalidInputError):
    message = "Link is invalid or blocked"

    def __init__(self, code: str, *, chain: list[dict] | None = None):
        super().__init__(code=code)
        self.chain = chain or []


class UnauthorizedError(QuestError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Not authorized"


class InvalidCredentialsError(UnauthorizedError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class ForbiddenError(QuestError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Access denied"


class NotEligibleError(ForbiddenError):
    code = "NOT_ELIGIBLE"
    message = "Access denied. The diagnostic is not completed or the subscription is inactive."


class SessionNotFoundError(QuestError):
    status_code = 404
    code = "SESSION_NOT_FOUND"
    message = "Diagnostic session not found"


class RevisionConflictError(QuestError):
    status_code = 409
    code = "REVISION_CONFLICT"
    message = "Progress was updated from another device."

    def __init__(self, current: dict[str, Any]):
        super().__init__()
        self.current = current

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), **self.current}


class UpstreamError(QuestError):
    status_code = 502
    code = "UPSTREAM_ERROR"
    message = "Upstream service failed"


class ProviderError(UpstreamError):
    """A single OCR/AI strategy could not produce a usable result."""

    code = "PROVIDER_FAILED"
