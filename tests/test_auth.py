import pytest

from taskdesk.backend.auth import IdentityVerifier
from taskdesk.backend.domain import ANONYMOUS, AuthRejected, Identity, ProviderError, RejectReason
from taskdesk.backend.identity import IdentityProvider, LocalIdentityProvider

from conftest import bearer


class BrokenProvider(IdentityProvider):
    def resolve_token(self, token):
        raise ProviderError("provider unreachable")


class NobodyProvider(IdentityProvider):
    def resolve_token(self, token):
        return None


@pytest.fixture
def provider():
    return LocalIdentityProvider()


@pytest.fixture
def verifier(provider):
    return IdentityVerifier(provider)


@pytest.mark.parametrize("header,reason", [
    (None, RejectReason.MISSING_HEADER),
    ("Token abc", RejectReason.BAD_FORMAT),
    ("bearer abc", RejectReason.BAD_FORMAT),
    ("Bearer", RejectReason.BAD_FORMAT),
    ("Bearer ", RejectReason.MISSING_TOKEN),
    ("Bearer    ", RejectReason.MISSING_TOKEN),
    ("Bearer not-a-session", RejectReason.INVALID_OR_EXPIRED),
])
def test_verify_rejection_reasons(verifier, header, reason):
    with pytest.raises(AuthRejected) as exc_info:
        verifier.verify(header)
    assert exc_info.value.reason is reason
    assert exc_info.value.status_code == 401


def test_verify_resolves_identity_and_keeps_token(verifier, provider):
    token = provider.issue_token("user-a", "alice@example.com")
    ctx = verifier.verify(f"Bearer {token}")
    assert ctx.identity == Identity("user-a", "alice@example.com")
    assert ctx.user_id == "user-a"
    assert ctx.token == token


def test_provider_failure_is_invalid_or_expired():
    with pytest.raises(AuthRejected) as exc_info:
        IdentityVerifier(BrokenProvider()).verify("Bearer abc")
    assert exc_info.value.reason is RejectReason.INVALID_OR_EXPIRED
    assert exc_info.value.message == "Invalid or expired token"


def test_absent_identity_is_invalid_or_expired():
    with pytest.raises(AuthRejected) as exc_info:
        IdentityVerifier(NobodyProvider()).verify("Bearer abc")
    assert exc_info.value.reason is RejectReason.INVALID_OR_EXPIRED


def test_revoked_token_rejected(verifier, provider):
    token = provider.issue_token("user-a")
    assert provider.revoke(token)
    with pytest.raises(AuthRejected):
        verifier.verify(f"Bearer {token}")


@pytest.mark.parametrize("header", [None, "Basic dXNlcg==", "Bearer bogus"])
def test_optional_variant_falls_back_to_anonymous(verifier, header):
    ctx = verifier.verify_optional(header)
    assert ctx.identity is ANONYMOUS
    assert ctx.identity.is_anonymous
    assert ctx.token is None


def test_optional_variant_still_resolves_valid_token(verifier, provider):
    token = provider.issue_token("user-a")
    assert verifier.verify_optional(f"Bearer {token}").user_id == "user-a"


def test_local_provider_sign_up_and_sign_in(provider):
    identity = provider.sign_up("New@Example.com", "secret1")
    session = provider.sign_in("new@example.com", "secret1")
    assert session.identity == identity
    assert provider.resolve_token(session.token) == identity


def test_local_provider_rejects_bad_credentials(provider):
    provider.sign_up("a@example.com", "secret1")
    with pytest.raises(ProviderError, match="Email already exists"):
        provider.sign_up("a@example.com", "secret2")
    with pytest.raises(ProviderError, match="at least 6"):
        provider.sign_up("b@example.com", "short")
    with pytest.raises(ProviderError, match="Invalid login credentials"):
        provider.sign_in("a@example.com", "wrong-password")


# -------------------------------
# HTTP gate
# -------------------------------

PROTECTED = [
    ("GET", "/tasks"),
    ("POST", "/tasks"),
    ("GET", "/tasks/{task}"),
    ("PATCH", "/tasks/{task}"),
    ("DELETE", "/tasks/{task}"),
    ("GET", "/notes"),
    ("POST", "/notes"),
    ("GET", "/notes/{note}"),
    ("PATCH", "/notes/{note}"),
    ("DELETE", "/notes/{note}"),
]


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Token abc"},
    {"Authorization": "Bearer expired-or-forged"},
])
@pytest.mark.parametrize("method,path", PROTECTED)
def test_protected_routes_reject_without_valid_credential(client, store, alice, method, path, headers):
    task = client.post("/tasks", json={"title": "keep me"}, headers=alice).json()["data"]
    note = client.post("/notes", json={"content": "keep me"}, headers=alice).json()["data"]
    before = store.select("tasks", {}) + store.select("notes", {})

    url = path.format(task=task["id"], note=note["id"])
    body = {"title": "hijack", "content": "hijack", "completed": True}
    response = client.request(method, url, headers=headers, json=body if method in ("POST", "PATCH") else None)

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.json()["error"] == "Unauthorized"
    assert store.select("tasks", {}) + store.select("notes", {}) == before


def test_missing_header_message(client):
    response = client.get("/tasks")
    assert response.json() == {
        "success": False,
        "error": "Unauthorized",
        "message": "Missing Authorization header",
    }


def test_auth_runs_before_body_parsing(client, store):
    response = client.post("/tasks", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 401
    assert store.row_count() == 0


def test_register_then_login_then_use_token(client):
    created = client.post("/auth/register", json={"email": "carol@example.com", "password": "secret1"})
    assert created.status_code == 201
    user_id = created.json()["data"]["id"]

    login = client.post("/auth/login", json={"email": "carol@example.com", "password": "secret1"})
    assert login.status_code == 200
    token = login.json()["data"]["access_token"]
    assert login.json()["data"]["user"]["id"] == user_id

    task = client.post("/tasks", json={"title": "from carol"}, headers=bearer(token))
    assert task.json()["data"]["user_id"] == user_id


def test_register_duplicate_and_bad_login(client):
    client.post("/auth/register", json={"email": "dave@example.com", "password": "secret1"})
    again = client.post("/auth/register", json={"email": "dave@example.com", "password": "secret1"})
    assert again.status_code == 400
    assert again.json()["message"] == "Email already exists"

    bad = client.post("/auth/login", json={"email": "dave@example.com", "password": "nope-nope"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid login credentials"


def test_register_rejects_malformed_email(client):
    response = client.post("/auth/register", json={"email": "not-an-email", "password": "secret1"})
    assert response.status_code == 400
    assert response.json()["error"] == "Validation Error"


def test_root_uses_optional_identity(client, alice):
    anonymous = client.get("/")
    assert anonymous.status_code == 200
    assert anonymous.json()["data"]["authenticated_as"] is None

    signed_in = client.get("/", headers=alice)
    assert signed_in.json()["data"]["authenticated_as"]["id"] == "user-a"

    forged = client.get("/", headers=bearer("forged"))
    assert forged.status_code == 200
    assert forged.json()["data"]["authenticated_as"] is None
