from typing import Any

from pydantic import BaseModel


class InboundMessage(BaseModel):
    """Envelope of every client frame: {"event": name, "data": payload}."""

    event: str
    data: Any = None
