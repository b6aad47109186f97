"""Tests for SessionAuthority and the double-submit CSRF guard."""
import jwt
import pytest

from filevue_backend.credentials import hash_password
from filevue_backend.csrf import CsrfGuard
from filevue_backend.errors import (
    AuthenticationError,
    CsrfError,
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
    SessionInvalidated,
    Unauthenticated,
)
from filevue_backend.sessions import SessionAuthority

SECRET = "unit-test-secret"


@pytest.fixture
def authority(clock, password_hash):
    return SessionAuthority(
        secret=SECRET,
        username="admin",
        stored_password=password_hash,
        ttl_seconds=60,
        clock=clock,
    )


class TestLogin:
    def test_login_mints_verifiable_token(self, authority):
        result = authority.login("admin", "correct horse battery staple")
        principal = authority.authenticate(result.token)
        assert principal.subject == "admin"
        assert principal.session_epoch == 1
        assert result.expires_in == 60
        assert result.csrf_token

    def test_wrong_password(self, authority):
        with pytest.raises(InvalidCredentials):
            authority.login("admin", "wrong")

    def test_wrong_username(self, authority):
        with pytest.raises(InvalidCredentials):
            authority.login("root", "correct horse battery staple")

    def test_missing_credentials(self, authority):
        with pytest.raises(InvalidInput):
            authority.login("admin", "")

    def test_plaintext_password_is_hashed_at_startup(self, clock):
        authority = SessionAuthority(secret=SECRET, username="u", stored_password="plain", clock=clock)
        assert authority._stored_password.startswith("scrypt:")
        assert authority.login("u", "plain").token


class TestAuthenticate:
    def test_missing_token(self, authority):
        with pytest.raises(Unauthenticated):
            authority.authenticate(None)

    def test_garbage_token(self, authority):
        with pytest.raises(InvalidToken):
            authority.authenticate("not-a-jwt")

    def test_forged_signature(self, authority, clock):
        claims = {"sub": "admin", "iat": int(clock()), "exp": int(clock()) + 60, "sv": 1}
        forged = jwt.encode(claims, "some-other-secret", algorithm="HS256")
        with pytest.raises(InvalidToken):
            authority.authenticate(forged)

    def test_missing_epoch_claim(self, authority, clock):
        claims = {"sub": "admin", "iat": int(clock()), "exp": int(clock()) + 60}
        token = jwt.encode(claims, SECRET, algorithm="HS256")
        with pytest.raises(InvalidToken):
            authority.authenticate(token)

    def test_expiry_follows_injected_clock(self, authority, clock):
        token = authority.login("admin", "correct horse battery staple").token
        clock.advance(59)
        authority.authenticate(token)
        clock.advance(1)
        with pytest.raises(InvalidToken):
            authority.authenticate(token)

    def test_invalidate_all_kills_earlier_tokens(self, authority):
        old = authority.login("admin", "correct horse battery staple").token
        assert authority.invalidate_all() == 2
        with pytest.raises(SessionInvalidated):
            authority.authenticate(old)
        fresh = authority.login("admin", "correct horse battery staple").token
        assert authority.authenticate(fresh).session_epoch == 2

    def test_failures_share_one_public_message(self, authority):
        """Clients cannot tell a forged token from a stale one."""
        messages = set()
        for token in (None, "junk"):
            with pytest.raises(AuthenticationError) as excinfo:
                authority.authenticate(token)
            messages.add(excinfo.value.detail)
        old = authority.login("admin", "correct horse battery staple").token
        authority.invalidate_all()
        with pytest.raises(AuthenticationError) as excinfo:
            authority.authenticate(old)
        messages.add(excinfo.value.detail)
        assert messages == {"Authentication required."}

    def test_status_and_logout_never_raise(self, authority):
        token = authority.login("admin", "correct horse battery staple").token
        assert authority.status(token) is True
        assert authority.status("junk") is False
        assert authority.logout(token) == "admin"
        assert authority.logout(None) is None


class TestAuthDisabled:
    @pytest.fixture
    def open_authority(self, clock):
        return SessionAuthority(secret=SECRET, username=None, stored_password=None, clock=clock)

    def test_everyone_is_anonymous(self, open_authority):
        assert not open_authority.auth_required
        assert open_authority.authenticate(None).is_anonymous

    def test_login_not_available(self, open_authority):
        with pytest.raises(InvalidInput):
            open_authority.login("a", "b")

    def test_csrf_guard_disabled(self, open_authority):
        assert not open_authority.csrf.applies_to("POST")


class TestCsrfGuard:
    @pytest.fixture
    def guard(self):
        return CsrfGuard(enabled=True)

    def test_issued_tokens_are_unique(self, guard):
        assert guard.issue() != guard.issue()

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    def test_safe_methods_exempt(self, guard, method):
        assert not guard.applies_to(method)

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_mutating_methods_checked(self, guard, method):
        assert guard.applies_to(method)

    def test_matching_pair_passes(self, guard):
        token = guard.issue()
        guard.validate(token, token)

    @pytest.mark.parametrize(
        "cookie,header,reason",
        [
            (None, "t", "missing_csrf_cookie"),
            ("t", None, "missing_csrf_header"),
            ("t", "u", "csrf_token_mismatch"),
        ],
    )
    def test_rejections(self, guard, cookie, header, reason):
        with pytest.raises(CsrfError) as excinfo:
            guard.validate(cookie, header)
        assert excinfo.value.reason == reason
        assert excinfo.value.status_code == 403

    def test_disabled_guard_accepts_anything(self):
        CsrfGuard(enabled=False).validate(None, None)


def test_distinct_secrets_do_not_cross_validate(clock):
    stored = hash_password("pw")
    a = SessionAuthority(secret="a", username="u", stored_password=stored, clock=clock)
    b = SessionAuthority(secret="b", username="u", stored_password=stored, clock=clock)
    with pytest.raises(InvalidToken):
        b.authenticate(a.login("u", "pw").token)
