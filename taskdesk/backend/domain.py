from enum import Enum
from typing import Dict, List, Optional, Sequence

class Identity:
    """The principal a bearer credential resolves to."""

    def __init__(self, id: Optional[str], email: Optional[str] = None):
        self.id = id
        self.email = email

    @property
    def is_anonymous(self) -> bool:
        return self.id is None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"id": self.id, "email": self.email}

    def __eq__(self, other):
        return isinstance(other, Identity) and (self.id, self.email) == (other.id, other.email)

    def __repr__(self):
        return f"Identity(id={self.id!r}, email={self.email!r})"

ANONYMOUS = Identity(None)

class Session:
    """A credential issued by the identity provider on sign-in."""

    def __init__(self, token: str, identity: Identity):
        self.token = token
        self.identity = identity

    def to_dict(self) -> Dict[str, object]:
        return {"access_token": self.token, "user": self.identity.to_dict()}

class RequestContext:
    """Verified identity plus the raw token, attached to each protected request."""

    def __init__(self, identity: Identity, token: Optional[str] = None):
        self.identity = identity
        self.token = token

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.id

class RejectReason(str, Enum):
    MISSING_HEADER = "MissingHeader"
    BAD_FORMAT = "BadFormat"
    MISSING_TOKEN = "MissingToken"
    INVALID_OR_EXPIRED = "InvalidOrExpired"

class AppError(Exception):
    """Base class for errors that map onto an HTTP status and error label."""
    status_code = 500
    label = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class ValidationError(AppError):
    status_code = 400
    label = "Validation Error"

    def __init__(self, failures: Sequence[str]):
        if isinstance(failures, str):
            failures = [failures]
        self.failures: List[str] = list(failures)
        super().__init__("; ".join(self.failures))

class AuthRejected(AppError):
    status_code = 401
    label = "Unauthorized"

    MESSAGES = {
        RejectReason.MISSING_HEADER: "Missing Authorization header",
        RejectReason.BAD_FORMAT: "Invalid Authorization header format. Use: Bearer <token>",
        RejectReason.MISSING_TOKEN: "Missing access token",
        RejectReason.INVALID_OR_EXPIRED: "Invalid or expired token",
    }

    def __init__(self, reason: RejectReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or self.MESSAGES[reason])

class NotFound(AppError):
    status_code = 404
    label = "Not Found"

class StoreError(AppError):
    status_code = 500
    label = "Database Error"

class PayloadTooLarge(AppError):
    status_code = 413
    label = "Payload Too Large"

class ProviderError(Exception):
    """Identity provider refused or failed a call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

class ConfigError(Exception):
    """Required configuration is missing or malformed."""
    pass
