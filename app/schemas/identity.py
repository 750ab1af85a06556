"""Identity ODM schema."""

from datetime import datetime, timezone
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator
from pymongo import DESCENDING, IndexModel


class IdentityRecord(Document):
    """Trial and block state of one subscriber identity (network origin)."""

    identity: Indexed(str, unique=True)  # type: ignore[valid-type]
    trial_start: datetime
    blocked: bool = Field(default=False)

    @field_validator("trial_start", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Accept Extended JSON (`{"$date": ...}`, e.g. from mongoimport) and pin naive values to UTC."""
        if isinstance(v, dict) and "$date" in v:
            v = datetime.fromisoformat(v["$date"].replace("Z", "+00:00"))
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    class Settings:
        name = "identities"
        indexes = [
            IndexModel([("trial_start", DESCENDING)], name="trial_start_desc"),
        ]


__all__ = ["IdentityRecord"]
