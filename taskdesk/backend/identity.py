"""
Identity providers: resolve a bearer token to an Identity and issue tokens.

LocalIdentityProvider keeps users and sessions in memory and is meant for
development and tests. SupabaseIdentityProvider delegates every call to a
Supabase Auth (GoTrue) endpoint.
"""

import logging
import secrets
import threading
from typing import Any, Dict, Optional

import httpx

from .domain import Identity, ProviderError, Session
from .utils import hash_password, make_id, time_now, verify_password

logger = logging.getLogger(__name__)

class IdentityProvider:
    def resolve_token(self, token: str) -> Identity:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> Session:
        raise NotImplementedError

    def sign_up(self, email: str, password: str) -> Identity:
        raise NotImplementedError

    def close(self) -> None:
        pass

class LocalIdentityProvider(IdentityProvider):
    """Handles user registration, login, and token resolution in memory."""

    MIN_PASSWORD_LENGTH = 6

    def __init__(self):
        self.users: Dict[str, Dict[str, str]] = {}
        self.active: Dict[str, str] = {}
        self.lock = threading.Lock()

    def sign_up(self, email: str, password: str) -> Identity:
        email = email.strip().lower()
        with self.lock:
            if email in self.users:
                raise ProviderError("Email already exists", 400)
            if len(password) < self.MIN_PASSWORD_LENGTH:
                raise ProviderError(f"Password must be at least {self.MIN_PASSWORD_LENGTH} characters long", 400)
            uid = make_id("usr")
            self.users[email] = {"id": uid, "password_hash": hash_password(password), "created_time": time_now()}
            logger.info("registered user %s", uid)
            return Identity(uid, email)

    def sign_in(self, email: str, password: str) -> Session:
        email = email.strip().lower()
        with self.lock:
            user = self.users.get(email)
            if not user or not verify_password(password, user["password_hash"]):
                raise ProviderError("Invalid login credentials", 400)
            token = secrets.token_urlsafe(32)
            self.active[token] = email
            return Session(token, Identity(user["id"], email))

    def issue_token(self, user_id: str, email: Optional[str] = None) -> str:
        """Mint a session for a known id without a password (fixtures, scripts)."""
        email = (email or f"{user_id}@example.com").lower()
        with self.lock:
            self.users.setdefault(email, {"id": user_id, "password_hash": hash_password(secrets.token_hex(8)),
                                          "created_time": time_now()})
            token = secrets.token_urlsafe(32)
            self.active[token] = email
            return token

    def revoke(self, token: str) -> bool:
        with self.lock:
            return self.active.pop(token, None) is not None

    def resolve_token(self, token: str) -> Identity:
        email = self.active.get(token)
        if email is None or email not in self.users:
            raise ProviderError("Invalid or expired session token", 401)
        return Identity(self.users[email]["id"], email)

class SupabaseIdentityProvider(IdentityProvider):
    """Resolves and issues tokens through Supabase Auth's REST API."""

    def __init__(self, url: str, service_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.client = httpx.Client(
            base_url=f"{url.rstrip('/')}/auth/v1",
            timeout=timeout,
            transport=transport,
            headers={"apikey": service_key, "Content-Type": "application/json"},
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"status {response.status_code}"
        if isinstance(body, dict):
            for key in ("error_description", "msg", "message", "error"):
                if body.get(key):
                    return str(body[key])
        return f"status {response.status_code}"

    def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"Identity provider unreachable: {e}")
        if response.status_code >= 400:
            raise ProviderError(self._error_message(response), response.status_code)
        try:
            body = response.json()
        except ValueError:
            raise ProviderError(f"Identity provider sent an unreadable reply ({response.status_code})")
        if not isinstance(body, dict):
            raise ProviderError("Identity provider sent an unexpected reply")
        return body

    @staticmethod
    def _identity(user: Optional[Dict[str, Any]]) -> Identity:
        if not user or not user.get("id"):
            raise ProviderError("No user found", 401)
        return Identity(user["id"], user.get("email"))

    def resolve_token(self, token: str) -> Identity:
        user = self._call("GET", "/user", headers={"Authorization": f"Bearer {token}"})
        return self._identity(user)

    def sign_in(self, email: str, password: str) -> Session:
        data = self._call("POST", "/token", params={"grant_type": "password"},
                          json={"email": email, "password": password})
        if not data.get("access_token"):
            raise ProviderError("No access token issued", 401)
        return Session(data["access_token"], self._identity(data.get("user")))

    def sign_up(self, email: str, password: str) -> Identity:
        data = self._call("POST", "/signup", json={"email": email, "password": password})
        return self._identity(data.get("user") or data)

    def close(self) -> None:
        self.client.close()
