"""
Token Service: single-use, time-limited review credentials.

A review token is the reviewer's only credential. It is looked up by exact
primary key, never by prefix, and its lifecycle is

    active ──> consumed    (decision submitted, exactly once)
       └────> expired      (re-send or sweep)

Expiry is also computed on every read: a token past ``expires_at`` is
rejected even while its stored status is still ``active``.
"""

import logging
from datetime import timedelta
from typing import Sequence
from uuid import UUID

from ..core.clock import Clock, as_utc, utc_now
from ..core.config import get_settings
from ..core.errors import (
    ActiveTokenExistsError,
    RecordConflictError,
    TokenConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from ..core.security import generate_review_token, mask_token, tokens_match
from ..core.store import RecordStore
from ..models import AuditAction, ReviewToken, TokenStatus
from .audit import AuditService

logger = logging.getLogger(__name__)

MAX_TOKEN_LENGTH = 255


class TokenService:
    """Issues, validates and consumes review tokens."""

    def __init__(
        self,
        store: RecordStore,
        clock: Clock = utc_now,
        ttl: timedelta | None = None,
    ):
        self._store = store
        self._clock = clock
        self._ttl = ttl or timedelta(days=get_settings().review_token_ttl_days)
        self._audit = AuditService(store)

    # =========================================================================
    # ISSUE
    # =========================================================================

    async def issue(
        self,
        application_id: UUID,
        reviewer_id: UUID,
        *,
        resend: bool = False,
        actor: str = "system",
    ) -> ReviewToken:
        """
        Mint a new active token bound to (application, reviewer).

        Only one usable token may exist per application. With ``resend`` the
        current ones are expired first; without it an existing usable token
        raises ActiveTokenExistsError.

        The database allows one active row per application, so of two
        concurrent re-sends exactly one stores its token; the other also gets
        ActiveTokenExistsError and its transaction must be rolled back.
        """
        now = self._clock()
        active = await self.active_tokens(application_id)

        if active and not resend:
            if any(as_utc(t.expires_at) >= now for t in active):
                raise ActiveTokenExistsError(
                    f"Application {application_id} already has an active review token"
                )

        if active:
            await self._expire(active, actor=actor, reason="resend" if resend else "lapsed")

        token = ReviewToken(
            token=generate_review_token(),
            application_id=application_id,
            reviewer_id=reviewer_id,
            status=TokenStatus.ACTIVE,
            created_at=now,
            expires_at=now + self._ttl,
        )
        try:
            await self._store.put(token)
        except RecordConflictError:
            # A concurrent issue or re-send stored its token first
            raise ActiveTokenExistsError(
                f"Application {application_id} already has an active review token"
            )

        await self._audit.log_event(
            action=AuditAction.ISSUE_TOKEN,
            resource_type="application",
            resource_id=application_id,
            actor=actor,
            details={
                "reviewer_id": str(reviewer_id),
                "expires_at": token.expires_at.isoformat(),
                "resend": resend,
            },
        )
        logger.info(
            f"Issued review token {mask_token(token.token)} for application {application_id}"
        )
        return token

    # =========================================================================
    # VALIDATE (read-only)
    # =========================================================================

    async def validate(self, token_value: str) -> ReviewToken:
        """
        Return the token record if it can still be used.

        Read-only, so the review page can be loaded any number of times
        before a decision is submitted.

        Raises:
            TokenNotFoundError: unknown or malformed value
            TokenConsumedError: a decision was already submitted
            TokenExpiredError: superseded by a re-send or past expires_at
        """
        if not token_value or len(token_value) > MAX_TOKEN_LENGTH:
            raise TokenNotFoundError("Review token not found")

        record = await self._store.get(ReviewToken, token_value)
        if record is None or not tokens_match(token_value, record.token):
            raise TokenNotFoundError("Review token not found")

        return self._check_usable(record)

    def _check_usable(self, record: ReviewToken) -> ReviewToken:
        if record.status == TokenStatus.CONSUMED:
            raise TokenConsumedError("Review token has already been used")
        if record.status == TokenStatus.EXPIRED or self.is_expired(record):
            raise TokenExpiredError("Review token has expired")
        return record

    def is_expired(self, record: ReviewToken) -> bool:
        return self._clock() > as_utc(record.expires_at)

    # =========================================================================
    # CONSUME (single use)
    # =========================================================================

    async def consume(self, token_value: str) -> ReviewToken:
        """
        Mark the token consumed. At most one caller ever succeeds.

        The status check and the write are one conditional update, so two
        concurrent submissions cannot both pass.
        """
        record = await self.validate(token_value)
        now = self._clock()

        if now > as_utc(record.expires_at):
            raise TokenExpiredError("Review token has expired")

        consumed = await self._store.compare_and_swap(
            ReviewToken,
            record.token,
            expected={"status": TokenStatus.ACTIVE},
            updated={"status": TokenStatus.CONSUMED, "consumed_at": now},
        )

        if not consumed:
            current = await self._store.get(ReviewToken, record.token)
            if current is not None and current.status == TokenStatus.EXPIRED:
                raise TokenExpiredError("Review token has expired")
            logger.info(f"Review token {mask_token(record.token)} lost a consume race")
            raise TokenConsumedError("Review token has already been used")

        await self._audit.log_event(
            action=AuditAction.CONSUME_TOKEN,
            resource_type="application",
            resource_id=record.application_id,
            actor=f"reviewer:{record.reviewer_id}",
            details={"reviewer_id": str(record.reviewer_id)},
        )
        return await self._store.get(ReviewToken, record.token)

    # =========================================================================
    # EXPIRY
    # =========================================================================

    async def active_tokens(self, application_id: UUID) -> Sequence[ReviewToken]:
        return await self._store.query(
            ReviewToken,
            ReviewToken.application_id == application_id,
            ReviewToken.status == TokenStatus.ACTIVE,
        )

    async def expire_for_application(self, application_id: UUID, actor: str = "system") -> int:
        """Expire every active token of an application. Returns how many changed."""
        return await self._expire(await self.active_tokens(application_id), actor=actor, reason="revoked")

    async def sweep_expired(self) -> int:
        """Persist the computed expiry of active tokens past ``expires_at``."""
        stale = await self._store.query(
            ReviewToken,
            ReviewToken.status == TokenStatus.ACTIVE,
            ReviewToken.expires_at < self._clock(),
        )
        return await self._expire(stale, actor="system", reason="lapsed")

    async def _expire(self, tokens: Sequence[ReviewToken], actor: str, reason: str) -> int:
        count = 0
        for token in tokens:
            expired = await self._store.compare_and_swap(
                ReviewToken,
                token.token,
                expected={"status": TokenStatus.ACTIVE},
                updated={"status": TokenStatus.EXPIRED},
            )
            if not expired:
                continue
            count += 1
            await self._audit.log_event(
                action=AuditAction.EXPIRE_TOKEN,
                resource_type="application",
                resource_id=token.application_id,
                actor=actor,
                details={"reason": reason},
            )
        return count
