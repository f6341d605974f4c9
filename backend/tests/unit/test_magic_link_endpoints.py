"""Tests for the magic link endpoints.

POST /api/v1/magic-link/generate answers identically for every well-formed
email and does its work in a background task. GET /api/v1/magic-link/verify
collapses every token rejection into one 401.
"""

from datetime import UTC, datetime, timedelta

import pytest

from app.api.deps import get_session_exchanger, get_verifier
from app.main import app
from app.repositories.magic_link_token_repository import SUPERSEDED_REASON
from tests.conftest import (
    TEST_EMAIL,
    create_user,
    fetch_tokens,
    insert_token,
    set_user_role,
)

_ROOT_URL = "/api/v1/magic-link"
_GENERATE_URL = "/api/v1/magic-link/generate"
_VERIFY_URL = "/api/v1/magic-link/verify"

_ACK = {
    "success": True,
    "message": "If your email exists in our system, a magic link has been sent",
}
_INVALID_EMAIL = {"success": False, "message": "Please provide a valid email address"}
_INVALID_LINK = {
    "success": False,
    "message": "Invalid or expired link. Please request a new one.",
}


class _FailingExchanger:
    async def exchange(self, db, user, context):
        raise RuntimeError("session store unavailable")


class _ExplodingVerifier:
    async def verify(self, db, token, context, *, now=None):
        raise RuntimeError("unexpected")


class TestRootEndpoint:
    """GET /magic-link."""

    async def test_returns_plain_text(self, magic_link_client):
        response = await magic_link_client.get(_ROOT_URL)
        assert response.status_code == 200
        assert response.text == "Magic Link Authentication Endpoint"


class TestGenerate:
    """POST /magic-link/generate."""

    async def test_known_email_acknowledged_and_sent(
        self, magic_link_client, session_factory, notifier
    ):
        await create_user(session_factory)

        response = await magic_link_client.post(
            _GENERATE_URL, json={"email": TEST_EMAIL}
        )

        assert response.status_code == 200
        assert response.json() == _ACK
        assert len(notifier.sent) == 1
        assert notifier.sent[0].verification_url.startswith(
            f"http://testserver{_VERIFY_URL}?token="
        )

    async def test_unknown_email_gets_identical_response(
        self, magic_link_client, session_factory, notifier
    ):
        """No account enumeration: body and status match the known case."""
        response = await magic_link_client.post(
            _GENERATE_URL, json={"email": "nobody@x.com"}
        )

        assert response.status_code == 200
        assert response.json() == _ACK
        assert notifier.sent == []
        rows = await fetch_tokens(session_factory, "nobody@x.com")
        assert rows[0].email_error == "User does not exist"

    async def test_email_is_trimmed_and_lowercased(
        self, magic_link_client, session_factory, notifier
    ):
        await create_user(session_factory)

        response = await magic_link_client.post(
            _GENERATE_URL, json={"email": "  A@X.COM "}
        )

        assert response.status_code == 200
        assert len(await fetch_tokens(session_factory, TEST_EMAIL)) == 1
        assert len(notifier.sent) == 1

    @pytest.mark.parametrize(
        "email",
        ["", "   ", "not-an-email", "a@b", "a b@x.com", "a@@x.com", "@x.com"],
    )
    async def test_malformed_email_rejected(
        self, magic_link_client, session_factory, email
    ):
        response = await magic_link_client.post(_GENERATE_URL, json={"email": email})

        assert response.status_code == 400
        assert response.json() == _INVALID_EMAIL

    async def test_missing_email_rejected(self, magic_link_client):
        response = await magic_link_client.post(_GENERATE_URL, json={})
        assert response.status_code == 400
        assert response.json() == _INVALID_EMAIL

    @pytest.mark.parametrize("email", [123, True, ["a@x.com"], {"a": "b"}])
    async def test_non_string_email_gets_email_message(
        self, magic_link_client, email
    ):
        response = await magic_link_client.post(_GENERATE_URL, json={"email": email})

        assert response.status_code == 400
        assert response.json() == _INVALID_EMAIL

    async def test_non_string_redirect_falls_back_to_default(
        self, magic_link_client, session_factory, notifier
    ):
        await create_user(session_factory)

        response = await magic_link_client.post(
            _GENERATE_URL, json={"email": TEST_EMAIL, "redirectUrl": 5}
        )

        assert response.status_code == 200
        assert response.json() == _ACK
        assert notifier.sent[0].verification_url.startswith(
            f"http://testserver{_VERIFY_URL}?token="
        )

    async def test_missing_body_rejected(self, magic_link_client):
        response = await magic_link_client.post(_GENERATE_URL)
        assert response.status_code == 400
        assert response.json() == _INVALID_EMAIL

    async def test_redirect_url_accepted_in_camel_case(
        self, magic_link_client, session_factory, notifier
    ):
        await create_user(session_factory)

        await magic_link_client.post(
            _GENERATE_URL,
            json={
                "email": TEST_EMAIL,
                "redirectUrl": "http://localhost:3000/auth/callback",
            },
        )

        assert notifier.sent[0].verification_url.startswith(
            "http://localhost:3000/auth/callback?token="
        )

    async def test_rate_limited_requests_still_acknowledged(
        self, magic_link_client, session_factory, notifier
    ):
        """Six requests in an hour (ceiling 5): six acks, five emails."""
        await create_user(session_factory)

        responses = [
            await magic_link_client.post(_GENERATE_URL, json={"email": TEST_EMAIL})
            for _ in range(6)
        ]

        assert all(r.status_code == 200 for r in responses)
        assert all(r.json() == _ACK for r in responses)
        assert len(notifier.sent) == 5
        rows = await fetch_tokens(session_factory)
        assert rows[-1].email_error == "Rate limit exceeded"
        assert not any(r.used is False for r in rows)


class TestVerify:
    """GET /magic-link/verify."""

    async def _issue(self, client, session_factory, notifier) -> str:
        await create_user(session_factory)
        await client.post(_GENERATE_URL, json={"email": TEST_EMAIL})
        return notifier.sent[-1].token

    async def test_success_returns_session(
        self, magic_link_client, session_factory, notifier, test_settings
    ):
        token = await self._issue(magic_link_client, session_factory, notifier)

        response = await magic_link_client.get(_VERIFY_URL, params={"token": token})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Authentication successful"
        data = body["data"]
        assert data["user"]["email"] == TEST_EMAIL
        assert data["user"]["first_name"] == "Ada"
        assert data["user"]["last_name"] == "Lovelace"
        assert set(data["user"]) == {"id", "email", "first_name", "last_name"}
        assert data["expires"] == test_settings.access_token_ttl_minutes * 60 * 1000
        assert response.headers["Authorization"] == f"Bearer {data['access_token']}"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert response.headers["Cache-Control"] == "no-store, max-age=0"

    async def test_success_sets_refresh_cookie(
        self, magic_link_client, session_factory, notifier, test_settings
    ):
        token = await self._issue(magic_link_client, session_factory, notifier)

        response = await magic_link_client.get(_VERIFY_URL, params={"token": token})

        cookie = response.headers["set-cookie"]
        refresh = response.json()["data"]["refresh_token"]
        assert cookie.startswith(f"{test_settings.refresh_cookie_name}={refresh}")
        assert "HttpOnly" in cookie
        assert "SameSite=lax" in cookie

    async def test_cross_site_origin_gets_samesite_none(
        self, magic_link_client, session_factory, notifier
    ):
        token = await self._issue(magic_link_client, session_factory, notifier)

        response = await magic_link_client.get(
            _VERIFY_URL,
            params={"token": token},
            headers={"Origin": "http://localhost:3000"},
        )

        cookie = response.headers["set-cookie"]
        assert "SameSite=none" in cookie
        assert "Secure" in cookie

    async def test_link_can_be_clicked_twice(
        self, magic_link_client, session_factory, notifier
    ):
        """A link previewer following the link first does not burn it."""
        token = await self._issue(magic_link_client, session_factory, notifier)

        first = await magic_link_client.get(_VERIFY_URL, params={"token": token})
        second = await magic_link_client.get(_VERIFY_URL, params={"token": token})

        assert first.status_code == 200
        assert second.status_code == 200

    async def test_superseded_link_rejected(
        self, magic_link_client, session_factory, notifier
    ):
        old = await self._issue(magic_link_client, session_factory, notifier)
        await magic_link_client.post(_GENERATE_URL, json={"email": TEST_EMAIL})
        new = notifier.sent[-1].token

        stale = await magic_link_client.get(_VERIFY_URL, params={"token": old})
        fresh = await magic_link_client.get(_VERIFY_URL, params={"token": new})

        assert stale.status_code == 401
        assert stale.json() == _INVALID_LINK
        assert fresh.status_code == 200
        rows = {r.token: r for r in await fetch_tokens(session_factory)}
        assert rows[old].email_error == SUPERSEDED_REASON

    async def test_missing_token_is_400(self, magic_link_client):
        response = await magic_link_client.get(_VERIFY_URL)
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Invalid or missing token",
        }

    async def test_rejections_share_one_message(
        self, magic_link_client, session_factory
    ):
        """Unknown, expired, used and orphaned tokens are indistinguishable."""
        await create_user(session_factory)
        now = datetime.now(UTC)
        expired = await insert_token(
            session_factory,
            created_at=now - timedelta(minutes=30),
            expires_at=now - timedelta(minutes=15),
        )
        used = await insert_token(session_factory, used=True)
        orphan = await insert_token(session_factory, email="gone@x.com")

        for token in ("0" * 64, expired.token, used.token, orphan.token):
            response = await magic_link_client.get(
                _VERIFY_URL, params={"token": token}
            )
            assert response.status_code == 401
            assert response.json() == _INVALID_LINK

    async def test_role_change_after_issue_rejected(
        self, magic_link_client, session_factory, notifier, test_settings
    ):
        token = await self._issue(magic_link_client, session_factory, notifier)
        test_settings.magic_link_allowed_roles = ["admin"]
        await set_user_role(session_factory, TEST_EMAIL, "viewer")

        response = await magic_link_client.get(_VERIFY_URL, params={"token": token})

        assert response.status_code == 401
        assert response.json() == _INVALID_LINK

    async def test_session_exchange_failure_is_500_and_retryable(
        self, magic_link_client, session_factory, notifier
    ):
        token = await self._issue(magic_link_client, session_factory, notifier)
        app.dependency_overrides[get_session_exchanger] = lambda: _FailingExchanger()

        failed = await magic_link_client.get(_VERIFY_URL, params={"token": token})
        del app.dependency_overrides[get_session_exchanger]
        retried = await magic_link_client.get(_VERIFY_URL, params={"token": token})

        assert failed.status_code == 500
        assert failed.json() == {
            "success": False,
            "message": "An error occurred during authentication. Please try again.",
        }
        assert retried.status_code == 200

    async def test_unexpected_error_is_generic_500(self, magic_link_client):
        app.dependency_overrides[get_verifier] = lambda: _ExplodingVerifier()

        response = await magic_link_client.get(_VERIFY_URL, params={"token": "abc"})

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "message": "An error occurred while processing your request",
        }

    @pytest.mark.parametrize("length", [256, 300, 1000])
    async def test_oversized_token_gets_invalid_link(
        self, magic_link_client, length
    ):
        """Over-long tokens get the same 401 as any unknown token."""
        response = await magic_link_client.get(
            _VERIFY_URL, params={"token": "f" * length}
        )
        assert response.status_code == 401
        assert response.json() == _INVALID_LINK


class TestVerifyIpThrottle:
    """Per-IP slowapi throttle on verify."""

    async def test_verify_is_throttled_per_ip(self, magic_link_client):
        from app.core.config import settings
        from app.core.rate_limiting import limiter

        limiter.enabled = True
        limit = int(settings.rate_limit_verify.split("/")[0])

        for _ in range(limit):
            response = await magic_link_client.get(_VERIFY_URL)
            assert response.status_code == 400

        response = await magic_link_client.get(_VERIFY_URL)
        assert response.status_code == 429
        assert response.json() == {
            "success": False,
            "message": "Too many requests. Please try again later.",
        }
        assert "Retry-After" in response.headers
