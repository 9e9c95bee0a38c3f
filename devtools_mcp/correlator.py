"""
Request/response correlation for one tool-server connection.

Every outgoing request gets the next integer id and a future. Incoming
frames are matched back to that future by id alone, so replies may arrive
in any order. Each request is bounded by a timeout; whichever of reply or
timeout comes first removes the pending entry, and the other is ignored.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable

from devtools_mcp.errors import (
    ChannelClosed,
    MalformedFrame,
    RemoteToolError,
    RequestTimeout,
)
from devtools_mcp.transport import (
    JsonRpcNotification,
    JsonRpcRequest,
    LineBuffer,
    decode_frame,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass
class PendingRequest:
    """An in-flight request waiting for its reply."""
    id: int
    method: str
    future: asyncio.Future
    deadline: float
    timeout: float
    timer: asyncio.TimerHandle | None = None


class MessageCorrelator:
    """
    Multiplexes concurrent requests over one frame writer.

    Usage:
        correlator = MessageCorrelator(transport.write, timeout=30.0)
        transport.on_data = correlator.feed
        result = await correlator.send_request("tools/list", {})
    """

    def __init__(
        self,
        write: Callable[[bytes], None],
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        name: str = "tool-server",
    ):
        self._write = write
        self.timeout = timeout
        self.name = name
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingRequest] = {}
        self._buffer = LineBuffer()
        self.last_id = 0

    @property
    def outstanding(self) -> int:
        return len(self._pending)

    def pending_ids(self) -> list[int]:
        return sorted(self._pending)

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Send a request and wait for the matching reply.

        Raises:
            RemoteToolError: the server answered with an error object.
            RequestTimeout: no reply within the timeout.
            ChannelClosed: the process went away before replying.
        """
        loop = asyncio.get_running_loop()
        timeout = self.timeout if timeout is None else timeout
        request_id = next(self._ids)
        self.last_id = request_id
        # Encoding fails (TypeError, ValueError) before anything is registered.
        frame = JsonRpcRequest(method=method, params=params or {}, id=request_id).encode()

        pending = PendingRequest(
            id=request_id,
            method=method,
            future=loop.create_future(),
            deadline=loop.time() + timeout,
            timeout=timeout,
        )
        self._pending[request_id] = pending

        try:
            self._write(frame)
        except BaseException:
            self._pending.pop(request_id, None)
            raise
        logger.debug(f"[{self.name}] -> #{request_id} {method}")

        pending.timer = loop.call_at(pending.deadline, self._expire, request_id)
        try:
            return await pending.future
        finally:
            # Covers a caller that stopped waiting: the id must not linger.
            if self._pending.get(request_id) is pending:
                del self._pending[request_id]
            pending.timer.cancel()

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification. No id is allocated and no reply is expected."""
        self._write(JsonRpcNotification(method=method, params=params or {}).encode())
        logger.debug(f"[{self.name}] -> notification {method}")

    def feed(self, data: bytes) -> None:
        """Consume raw bytes from the transport; complete frames are dispatched."""
        for frame in self._buffer.feed(data):
            self.handle_frame(frame)

    def handle_frame(self, frame: bytes) -> None:
        try:
            message = decode_frame(frame)
        except MalformedFrame as e:
            logger.warning(f"[{self.name}] dropping malformed frame ({e.message}): {frame[:200]!r}")
            return

        if isinstance(message, JsonRpcNotification):
            logger.debug(f"[{self.name}] <- notification {message.method} (ignored)")
            return

        pending = self._pending.pop(message.id, None) if isinstance(message.id, int) else None
        if pending is None:
            logger.debug(f"[{self.name}] <- #{message.id} has no pending request, dropped")
            return

        if pending.timer is not None:
            pending.timer.cancel()
        if pending.future.done():
            return

        logger.debug(f"[{self.name}] <- #{message.id} {pending.method}")
        if message.is_error:
            pending.future.set_exception(
                RemoteToolError(message.error_message, code=message.error_code)
            )
        else:
            pending.future.set_result(message.result)

    def fail_all(self, reason: str) -> int:
        """Reject every outstanding request with ChannelClosed. Returns how many."""
        pending_requests = list(self._pending.values())
        self._pending.clear()
        self._buffer.clear()
        for pending in pending_requests:
            if pending.timer is not None:
                pending.timer.cancel()
            if not pending.future.done():
                pending.future.set_exception(ChannelClosed(f"{pending.method}: {reason}"))
        if pending_requests:
            logger.warning(f"[{self.name}] rejected {len(pending_requests)} pending request(s): {reason}")
        return len(pending_requests)

    def _expire(self, request_id: int) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning(f"[{self.name}] #{request_id} {pending.method} timed out")
        pending.future.set_exception(RequestTimeout(pending.method, pending.timeout))
