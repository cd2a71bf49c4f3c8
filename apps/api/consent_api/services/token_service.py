"""Issuing and consuming emailed credentials."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from consent_api.core.config import settings
from consent_api.core.security import generate_token
from consent_api.models.issued_token import IssuedToken, TokenPurpose
from consent_api.repositories.token_repository import TokenRepository


class TokenIssuer:
    """Creates unguessable single-purpose tokens and enforces their windows.

    Tokens carry 256 bits of randomness and never encode user data.
    Unsubscribe tokens never expire and are never consumed, so the link in
    every email keeps working.
    """

    def __init__(self, tokens: TokenRepository) -> None:
        self.tokens = tokens

    @staticmethod
    def expiry_for(purpose: TokenPurpose) -> timedelta | None:
        if purpose is TokenPurpose.EMAIL_VERIFICATION:
            return timedelta(hours=settings.email_verification_expiry_hours)
        if purpose is TokenPurpose.DSR_VERIFICATION:
            return timedelta(days=settings.dsr_verification_expiry_days)
        return None

    @staticmethod
    def export_expiry() -> timedelta:
        """Lifetime of an export download link."""
        return settings.export_expiry

    def issue(
        self, purpose: TokenPurpose, owner_id: UUID, now: datetime | None = None
    ) -> IssuedToken:
        """Stage a new token in the caller's session; it persists with the caller's commit."""
        issued_at = now or datetime.now(UTC)
        window = self.expiry_for(purpose)
        return self.tokens.add(
            IssuedToken(
                token=generate_token(),
                purpose=purpose,
                owner_id=owner_id,
                issued_at=issued_at,
                expires_at=issued_at + window if window else None,
            )
        )

    async def lookup(self, token: str, purpose: TokenPurpose) -> IssuedToken | None:
        return await self.tokens.find(token, purpose)

    async def consume(self, token: str, purpose: TokenPurpose, now: datetime) -> bool:
        """True only for the one caller that consumed ``token``."""
        return await self.tokens.mark_consumed(token, purpose, now)

    async def unsubscribe_token_for(self, subscriber_id: UUID) -> IssuedToken:
        """The subscriber's standing unsubscribe token, issuing one if missing."""
        existing = await self.tokens.find_for_owner(subscriber_id, TokenPurpose.UNSUBSCRIBE)
        return existing or self.issue(TokenPurpose.UNSUBSCRIBE, subscriber_id)

    async def reissue(self, purpose: TokenPurpose, owner_id: UUID) -> IssuedToken:
        """Revoke outstanding tokens of ``purpose`` for the owner and issue a fresh one."""
        await self.tokens.revoke_unconsumed(owner_id, purpose)
        return self.issue(purpose, owner_id)

    async def restart(self, purpose: TokenPurpose, owner_id: UUID) -> IssuedToken:
        """Like ``reissue``, but consumed tokens are dropped too and stop resolving."""
        await self.tokens.delete_for_owner(owner_id, purpose)
        return self.issue(purpose, owner_id)
