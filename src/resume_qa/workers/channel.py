"""Request/response correlation over a one-way message transport."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from resume_qa.errors import ChannelClosed, RequestTimeout, WorkerRuntimeError

logger = structlog.get_logger(__name__)

_ENVELOPE_KEYS = ("type", "requestId", "success")


@dataclass(slots=True)
class PendingRequest:
    request_id: str
    type: str
    future: asyncio.Future[dict[str, Any]]
    deadline: float
    timer: asyncio.TimerHandle


class RequestChannel:
    """Turns fire-and-forget `post` calls into awaitable requests.

    Every request is removed from the correlation table by `_settle`, which is
    reached exactly once per request from whichever of reply, timeout or close
    happens first. Later arrivals for the same id are dropped.
    """

    def __init__(
        self,
        name: str,
        post: Callable[[dict[str, Any]], None],
        *,
        timeout: float = 5.0,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self._post = post
        self._pending: dict[str, PendingRequest] = {}
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def send(
        self,
        type: str,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        if self._closed:
            raise ChannelClosed(f"{self.name} channel is closed")

        loop = asyncio.get_running_loop()
        request_id = f"{self.name}-{uuid.uuid4().hex[:12]}"
        wait = self.timeout if timeout is None else timeout
        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        timer = loop.call_later(
            wait,
            self._settle,
            request_id,
            None,
            RequestTimeout(f"{self.name} request {type} timed out after {wait:.1f}s"),
        )
        self._pending[request_id] = PendingRequest(
            request_id=request_id,
            type=type,
            future=future,
            deadline=loop.time() + wait,
            timer=timer,
        )

        try:
            self._post({"type": type, "payload": payload, "requestId": request_id})
        except Exception as exc:
            self._settle(
                request_id,
                None,
                WorkerRuntimeError(f"{self.name} could not post {type}: {exc}"),
            )

        try:
            return await future
        finally:
            self._settle(request_id, None, ChannelClosed(f"{self.name} request {type} was abandoned"))

    def dispatch(self, message: dict[str, Any]) -> bool:
        """Route a reply to its pending request.

        Returns False for messages without a ``requestId`` so the caller can
        treat them as lifecycle signals.
        """
        request_id = message.get("requestId")
        if not request_id:
            return False

        if request_id not in self._pending:
            logger.warning(
                "late_reply_dropped",
                channel=self.name,
                request_id=request_id,
                message_type=message.get("type"),
            )
            return True

        if message.get("success") is False or message.get("error"):
            error = message.get("error") or "unknown worker error"
            self._settle(request_id, None, WorkerRuntimeError(str(error)))
        else:
            reply = {key: value for key, value in message.items() if key not in _ENVELOPE_KEYS}
            self._settle(request_id, reply, None)
        return True

    def close(self) -> None:
        """Fail every pending request with `ChannelClosed`."""
        self._closed = True
        for request_id in list(self._pending):
            self._settle(request_id, None, ChannelClosed(f"{self.name} channel closed"))

    def _settle(
        self,
        request_id: str,
        reply: dict[str, Any] | None,
        error: Exception | None,
    ) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        pending.timer.cancel()
        if pending.future.done():
            return
        if error is not None:
            if isinstance(error, RequestTimeout):
                logger.warning(
                    "request_timed_out",
                    channel=self.name,
                    request_id=request_id,
                    request_type=pending.type,
                )
            pending.future.set_exception(error)
        else:
            pending.future.set_result(reply or {})
