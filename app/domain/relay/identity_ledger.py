"""Identity ledger: trial window and block list over the identity store."""

from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from app.domain.utils.clock import utc_now
from app.schemas import IdentityRecord
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .identity_store import IdentityStore
from .relay_models import AccessDecision

TRIAL_DURATION = timedelta(hours=24)


class IdentityLedger:
    """Decides whether an identity may open a feed and flips block flags."""

    def __init__(
        self,
        store: IdentityStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._clock = clock

    async def check_access(self, identity: str) -> AccessDecision:
        """Register unseen identities and evaluate block flag and trial window.

        Storage faults yield STORAGE_ERROR, which callers must treat as a denial.
        """
        try:
            record = await self._store.find(identity)
            if record is None:
                if await self._store.insert(identity, self._clock()):
                    logger.info("Registered new identity {}", identity)
                    return AccessDecision.ALLOWED
                record = await self._store.find(identity)
                if record is None:
                    logger.error("Identity {} reported as existing but cannot be read", identity)
                    return AccessDecision.STORAGE_ERROR
        except AppError as exc:
            logger.warning("Access check for {} failed: {} {}", identity, exc.errcode, exc.erresid)
            return AccessDecision.STORAGE_ERROR

        return self._evaluate(record)

    def _evaluate(self, record: IdentityRecord) -> AccessDecision:
        if record.blocked:
            return AccessDecision.BLOCKED
        if self._clock() - record.trial_start > TRIAL_DURATION:
            return AccessDecision.TRIAL_EXPIRED
        return AccessDecision.ALLOWED

    async def toggle_block(self, identity: str) -> bool:
        """Flip the block flag and return the new value.

        Raises:
            AppError: E_IDENTITY_NOT_FOUND for unknown identities, E_STORAGE_ERROR on faults.
        """
        record = await self._store.find(identity)
        if record is None:
            raise AppError(
                errcode=AppErrorCode.E_IDENTITY_NOT_FOUND,
                errmesg=f"Identity {identity} not found",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        blocked = not record.blocked
        if not await self._store.set_blocked(identity, expected=record.blocked, blocked=blocked):
            # Another toggle won the race; report what the store now holds
            fresh = await self._store.find(identity)
            if fresh is None:
                raise AppError(
                    errcode=AppErrorCode.E_IDENTITY_NOT_FOUND,
                    errmesg=f"Identity {identity} not found",
                    status_code=HttpStatusCode.NOT_FOUND,
                )
            logger.warning("Concurrent block toggle on {}, now blocked={}", identity, fresh.blocked)
            return fresh.blocked

        logger.info("Identity {} blocked={}", identity, blocked)
        return blocked

    async def list_identities(self) -> list[IdentityRecord]:
        return await self._store.list_all()
