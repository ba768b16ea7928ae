"""Bookkeeping for downstream effects that failed after a committed decision."""

import logging
from typing import Any, Sequence
from uuid import UUID

from ..core.clock import Clock, utc_now
from ..core.store import RecordStore
from ..models import AuditAction, EffectFailure, EffectKind
from .audit import AuditService

logger = logging.getLogger(__name__)


class FollowUpService:
    """Records failed effects and tracks their retries."""

    def __init__(self, store: RecordStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock
        self._audit = AuditService(store)

    async def record_failure(
        self,
        application_id: UUID,
        effect: EffectKind,
        error: Exception | str,
        payload: dict[str, Any] | None = None,
    ) -> EffectFailure:
        failure = EffectFailure(
            application_id=application_id,
            effect=effect,
            payload=payload or {},
            last_error=str(error)[:2000],
            attempts=1,
            created_at=self._clock(),
        )
        await self._store.put(failure)
        await self._audit.log_event(
            action=AuditAction.EFFECT_FAILED,
            resource_type="application",
            resource_id=application_id,
            actor="system",
            details={"effect": effect.value, "error": str(error)[:500]},
        )
        logger.warning(f"{effect.value} failed for application {application_id}: {error}")
        return failure

    async def open_failures(
        self,
        effect: EffectKind | None = None,
        application_id: UUID | None = None,
        limit: int | None = None,
    ) -> Sequence[EffectFailure]:
        criteria = [EffectFailure.resolved_at.is_(None)]
        if effect is not None:
            criteria.append(EffectFailure.effect == effect)
        if application_id is not None:
            criteria.append(EffectFailure.application_id == application_id)
        return await self._store.query(
            EffectFailure, *criteria, order_by=EffectFailure.created_at, limit=limit
        )

    async def resolve(self, failure: EffectFailure, actor: str = "system") -> bool:
        resolved = await self._store.compare_and_swap(
            EffectFailure,
            failure.id,
            expected={"resolved_at": None},
            updated={"resolved_at": self._clock()},
        )
        if resolved:
            await self._audit.log_event(
                action=AuditAction.EFFECT_RESOLVED,
                resource_type="application",
                resource_id=failure.application_id,
                actor=actor,
                details={"effect": EffectKind(failure.effect).value, "attempts": failure.attempts},
            )
        return resolved

    async def record_retry_failure(self, failure: EffectFailure, error: Exception | str) -> None:
        await self._store.compare_and_swap(
            EffectFailure,
            failure.id,
            expected={"resolved_at": None},
            updated={
                "attempts": EffectFailure.attempts + 1,
                "last_error": str(error)[:2000],
            },
        )
        logger.warning(
            f"Retry of {EffectKind(failure.effect).value} for application "
            f"{failure.application_id} failed again: {error}"
        )
