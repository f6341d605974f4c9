"""Shared dependencies for API endpoints.

Builds the magic link components from the configuration snapshot. Each
component receives its collaborators explicitly, so tests swap any of
them through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, settings
from app.core.database import get_db, get_session_factory
from app.core.email import MagicLinkNotifier, ResendEmailNotifier
from app.services.eligibility_gate import RoleEligibilityGate
from app.services.magic_link_issuer import MagicLinkIssuer
from app.services.magic_link_types import UNKNOWN_CLIENT, RequestContext
from app.services.magic_link_verifier import MagicLinkVerifier
from app.services.session_exchange_service import (
    JWTSessionExchanger,
    SessionExchanger,
)


def get_settings() -> Settings:
    """Return the process-wide configuration snapshot."""
    return settings


AppSettings = Annotated[Settings, Depends(get_settings)]


def get_request_context(request: Request) -> RequestContext:
    """Capture caller details recorded on ledger rows and sessions.

    Prefers the socket peer address; falls back to the first
    X-Forwarded-For entry, then to "unknown".
    """
    ip_address = request.client.host if request.client else ""
    if not ip_address:
        forwarded = request.headers.get("x-forwarded-for", "")
        ip_address = forwarded.split(",")[0].strip()
    return RequestContext(
        ip_address=ip_address or UNKNOWN_CLIENT,
        user_agent=request.headers.get("user-agent") or UNKNOWN_CLIENT,
        origin=request.headers.get("origin"),
    )


def get_notifier(app_settings: AppSettings) -> MagicLinkNotifier:
    """Email notifier used by the issuance pipeline."""
    return ResendEmailNotifier(app_settings)


def get_eligibility_gate(app_settings: AppSettings) -> RoleEligibilityGate:
    """Role policy shared by issuance and verification."""
    return RoleEligibilityGate.from_settings(app_settings)


def get_session_exchanger(app_settings: AppSettings) -> SessionExchanger:
    """Credential minting for verified identities."""
    return JWTSessionExchanger(app_settings)


def get_issuer(
    app_settings: AppSettings,
    session_factory: Annotated[
        async_sessionmaker[AsyncSession], Depends(get_session_factory)
    ],
    notifier: Annotated[MagicLinkNotifier, Depends(get_notifier)],
    gate: Annotated[RoleEligibilityGate, Depends(get_eligibility_gate)],
) -> MagicLinkIssuer:
    """Issuer wired with its own session factory for post-response work."""
    return MagicLinkIssuer(
        settings=app_settings,
        session_factory=session_factory,
        notifier=notifier,
        gate=gate,
    )


def get_verifier(
    gate: Annotated[RoleEligibilityGate, Depends(get_eligibility_gate)],
    exchanger: Annotated[SessionExchanger, Depends(get_session_exchanger)],
) -> MagicLinkVerifier:
    """Verifier wired with the role policy and session exchange."""
    return MagicLinkVerifier(gate=gate, exchanger=exchanger)


# Reusable type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
ClientContext = Annotated[RequestContext, Depends(get_request_context)]
Issuer = Annotated[MagicLinkIssuer, Depends(get_issuer)]
Verifier = Annotated[MagicLinkVerifier, Depends(get_verifier)]
