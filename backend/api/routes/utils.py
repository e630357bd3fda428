# backend/api/routes/utils.py

from __future__ import annotations

import re
from typing import Optional

from fastapi import Request

from core.errors import InvalidRequest

# User and room ids end up as store keys (file names, redis keys)
ID_PATTERN = re.compile(r"[\w@-][\w.@-]{0,127}")

TRUE_VALUES = {"true", "1"}
FALSE_VALUES = {"false", "0"}


def require_id(value: Optional[str]) -> str:
    """Return ``value`` if it is a well-formed user/room id, else raise InvalidRequest."""
    if value is None or not ID_PATTERN.fullmatch(value):
        raise InvalidRequest(f"Malformed id {value!r}")
    return value


def require_text(value: Optional[str]) -> str:
    if value is None:
        raise InvalidRequest("Missing message text")
    return value


def parse_flag(value: Optional[str]) -> bool:
    """Parse the roomlock ``lock`` parameter: true/1 or false/0."""
    if value is not None:
        lowered = value.lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise InvalidRequest(f"Malformed lock flag {value!r}")


async def wait_for_disconnect(request: Request) -> None:
    """
    Return once the client connection behind ``request`` is gone.

    Reads the ASGI receive channel until it reports http.disconnect. The
    request body (empty for these GETs) is consumed along the way.
    """
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return
