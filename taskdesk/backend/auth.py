import logging
from typing import Optional

from fastapi import Header, Request

from .domain import ANONYMOUS, AuthRejected, ProviderError, RejectReason, RequestContext
from .identity import IdentityProvider

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

class IdentityVerifier:
    """
    Turns an ``Authorization`` header into a RequestContext.

    The header must read ``Bearer <token>``; the token is handed to the
    identity provider, which is the only judge of signature and expiry.
    The resolved identity is the sole source of ownership downstream.
    """

    def __init__(self, provider: IdentityProvider, debug: bool = False):
        self.provider = provider
        self.debug = debug

    @staticmethod
    def extract_token(authorization: Optional[str]) -> str:
        if authorization is None:
            raise AuthRejected(RejectReason.MISSING_HEADER)
        if not authorization.startswith(BEARER_PREFIX):
            raise AuthRejected(RejectReason.BAD_FORMAT)
        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            raise AuthRejected(RejectReason.MISSING_TOKEN)
        return token

    def verify(self, authorization: Optional[str]) -> RequestContext:
        token = self.extract_token(authorization)
        try:
            identity = self.provider.resolve_token(token)
        except ProviderError as e:
            logger.warning("token verification failed: %s", e.message)
            raise AuthRejected(RejectReason.INVALID_OR_EXPIRED)
        if identity is None or identity.is_anonymous:
            logger.warning("token verification failed: no user found")
            raise AuthRejected(RejectReason.INVALID_OR_EXPIRED)
        if self.debug:
            logger.debug("authenticated %s (%s)", identity.email, identity.id)
        return RequestContext(identity, token)

    def verify_optional(self, authorization: Optional[str]) -> RequestContext:
        """Same checks as ``verify`` but falls back to the anonymous identity."""
        try:
            return self.verify(authorization)
        except AuthRejected:
            return RequestContext(ANONYMOUS)

# -------------------------------
# FastAPI dependencies
# -------------------------------

def require_identity(request: Request, authorization: Optional[str] = Header(None)) -> RequestContext:
    ctx = request.app.state.verifier.verify(authorization)
    request.state.auth = ctx
    return ctx

def optional_identity(request: Request, authorization: Optional[str] = Header(None)) -> RequestContext:
    ctx = request.app.state.verifier.verify_optional(authorization)
    request.state.auth = ctx
    return ctx
