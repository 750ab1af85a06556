"""Beanie ODM schemas for MongoDB collections."""

from .identity import IdentityRecord
from .init import DOCUMENT_MODELS, init_beanie_odm
from .relay_state import RelayState

__all__ = [
    "DOCUMENT_MODELS",
    "IdentityRecord",
    "RelayState",
    "init_beanie_odm",
]
