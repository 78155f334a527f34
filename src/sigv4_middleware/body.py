"""Read-once ASGI request body buffering with replay.

The signer needs the full body to hash it, but the ASGI ``receive``
channel can only be drained once. ``BufferedBody`` drains it into memory and
hands out fresh ``receive`` callables that re-deliver the same bytes to the
next application.
"""

from __future__ import annotations

import logging

from starlette.types import Message, Receive

from sigv4_middleware.errors import BodyReadError

logger = logging.getLogger(__name__)


class BufferedBody:
    """An in-memory copy of a request body that can be replayed.

    Attributes:
        data: The complete body bytes.
    """

    def __init__(self, data: bytes = b"") -> None:
        self.data = data

    def __len__(self) -> int:
        return len(self.data)

    @classmethod
    async def read(cls, receive: Receive) -> BufferedBody:
        """Drain every ``http.request`` message from ``receive``.

        Args:
            receive: The ASGI receive channel of the inbound request.

        Returns:
            The buffered body.

        Raises:
            BodyReadError: If the client disconnects or the transport fails
                before the final body chunk arrives.
        """
        chunks: list[bytes] = []
        while True:
            try:
                message = await receive()
            except OSError as exc:
                raise BodyReadError(f"Failed to read request body: {exc}") from exc

            if message["type"] == "http.disconnect":
                raise BodyReadError()
            if message["type"] != "http.request":
                logger.debug("Ignoring unexpected ASGI message while buffering: %s", message["type"])
                continue

            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return cls(b"".join(chunks))

    def replay(self, receive: Receive) -> Receive:
        """Return a fresh receive channel that yields the buffered body first.

        Each call returns an independent view. After the body message has
        been delivered, further calls are forwarded to the original
        ``receive`` so the downstream app still observes disconnects.
        """
        delivered = False

        async def replay_receive() -> Message:
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": self.data, "more_body": False}
            return await receive()

        return replay_receive
