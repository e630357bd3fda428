# backend/client/poller.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from core.config import settings
from models.models import Message

logger = logging.getLogger(__name__)

# Seconds to wait before re-polling after a failed receive
RETRY_DELAY = settings.CLIENT_RETRY_DELAY


class ChatClientError(Exception):
    """The server answered with a non-200 status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class SlimChatClient:
    """
    Async client for one room of a SlimChat server.

    Receiving is a long-poll loop: each receive request stays open until the
    server has something for us, then we immediately poll again. Any failure
    (server refusal, dropped connection, timeout) is followed by a fixed
    ``retry_delay`` pause before the next poll.

    Usage:
        client = SlimChatClient("http://localhost:8080", room_id)
        await client.send("alice", "hi")
        await client.listen("bob", handle_message)
    """

    def __init__(
        self,
        base_url: str,
        room_id: str,
        *,
        retry_delay: float = RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.room_id = room_id
        self.retry_delay = retry_delay
        # No read timeout: a receive legitimately stays open for a long time
        self.http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "SlimChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _get(self, **params: str) -> httpx.Response:
        response = await self.http.get("/", params={**params, "room": self.room_id})
        if response.status_code != 200:
            raise ChatClientError(response.status_code, response.text)
        return response

    async def send(self, sender: str, text: str) -> None:
        await self._get(type="send", sender=sender, data=text)

    async def receive(self, receiver: str) -> List[Message]:
        """One long poll. Returns the message(s) it was answered with, oldest first."""
        payload = (await self._get(type="receive", receiver=receiver)).json()
        if payload["type"] == "queue":
            return [Message.from_payload(item) for item in payload["data"]]
        return [Message.from_payload(payload)]

    async def history(self, receiver: str) -> List[Message]:
        raw = (await self._get(type="history", receiver=receiver)).text
        return [
            Message(room=self.room_id, **json.loads(line))
            for line in raw.splitlines()
            if line.strip()
        ]

    async def stats(self, receiver: str) -> Dict[str, Union[str, int]]:
        return (await self._get(type="stats", receiver=receiver)).json()

    async def set_lock(self, user_id: str, lock: bool) -> None:
        await self._get(type="roomlock", userID=user_id, lock="true" if lock else "false")

    async def listen(
        self,
        receiver: str,
        handler: Callable[[Message], Awaitable[Any]],
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Poll forever (or until ``stop`` is set), calling ``handler`` per message.
        """
        while stop is None or not stop.is_set():
            logger.debug("requesting messages..")
            try:
                messages = await self.receive(receiver)
            except (httpx.HTTPError, ChatClientError) as e:
                logger.warning("Receive failed (%s), retrying in %.1fs", e, self.retry_delay)
                await asyncio.sleep(self.retry_delay)
                continue
            for message in messages:
                await handler(message)
