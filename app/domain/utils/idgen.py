from uuid import uuid4


def new_id(prefix: str | None = None) -> str:
    value = uuid4().hex
    return f"{prefix}{value}" if prefix else value


def new_connection_id() -> str:
    return new_id("cn_")
