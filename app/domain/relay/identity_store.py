"""Durable identity storage backed by Beanie."""

from datetime import datetime
from typing import Protocol

from beanie.odm.operators.update.general import Set
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.schemas import IdentityRecord
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class IdentityStore(Protocol):
    """Key-value store of identity records keyed by identity."""

    async def find(self, identity: str) -> IdentityRecord | None: ...

    async def insert(self, identity: str, trial_start: datetime) -> bool:
        """Insert a fresh record; False when the identity already exists."""
        ...

    async def set_blocked(self, identity: str, expected: bool, blocked: bool) -> bool:
        """Set `blocked` only if it currently equals `expected`; False when nothing matched."""
        ...

    async def list_all(self) -> list[IdentityRecord]:
        """All records ordered by trial start, newest first."""
        ...


def _storage_error(operation: str, identity: str | None, exc: Exception) -> AppError:
    logger.error("Identity store {} failed for {}: {}: {}", operation, identity, type(exc).__name__, exc)
    return AppError(
        errcode=AppErrorCode.E_STORAGE_ERROR,
        errmesg=f"Identity store {operation} failed: {exc}",
        status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
    )


class BeanieIdentityStore:
    """IdentityStore over the `identities` collection.

    Driver and validation faults are raised as AppError(E_STORAGE_ERROR).
    """

    async def find(self, identity: str) -> IdentityRecord | None:
        try:
            return await IdentityRecord.find_one(IdentityRecord.identity == identity)
        except (PyMongoError, ValidationError) as exc:
            raise _storage_error("find", identity, exc) from exc

    async def insert(self, identity: str, trial_start: datetime) -> bool:
        try:
            await IdentityRecord(identity=identity, trial_start=trial_start).insert()
            return True
        except DuplicateKeyError:
            logger.info("Identity {} inserted concurrently, keeping existing record", identity)
            return False
        except (PyMongoError, ValidationError) as exc:
            raise _storage_error("insert", identity, exc) from exc

    async def set_blocked(self, identity: str, expected: bool, blocked: bool) -> bool:
        try:
            result = await IdentityRecord.find_one(
                IdentityRecord.identity == identity,
                IdentityRecord.blocked == expected,
            ).update(Set({IdentityRecord.blocked: blocked}))  # type: ignore[arg-type]
        except PyMongoError as exc:
            raise _storage_error("update", identity, exc) from exc
        return bool(result and result.modified_count)

    async def list_all(self) -> list[IdentityRecord]:
        try:
            return await IdentityRecord.find_all().sort(-IdentityRecord.trial_start).to_list()  # type: ignore[operator]
        except (PyMongoError, ValidationError) as exc:
            raise _storage_error("list", None, exc) from exc
