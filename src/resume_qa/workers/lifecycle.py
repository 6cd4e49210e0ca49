"""Startup state machine and request surface for one service worker."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import structlog

from resume_qa.config import ProgressCallback
from resume_qa.errors import WorkerInitFailure, WorkerInitTimeout
from resume_qa.workers.channel import RequestChannel
from resume_qa.workers.transport import WorkerTransport

logger = structlog.get_logger(__name__)

_READY_SIGNALS = frozenset({"ready", "initialized"})
_PROGRESS_SIGNALS = frozenset({"progress", "downloadProgress"})
_ERROR_SIGNALS = frozenset({"error", "workerError"})


class WorkerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"
    MODEL_LOADING = "model_loading"
    READY_FOR_QUERIES = "ready_for_queries"
    FAILED = "failed"
    TERMINATED = "terminated"


class ServiceHandle:
    """Owns one worker transport and its request channel.

    Lifecycle signals (messages without a ``requestId``) drive the state
    machine; every other message is a reply routed through the channel.
    """

    def __init__(
        self,
        name: str,
        transport: WorkerTransport,
        *,
        request_timeout: float = 5.0,
        ready_timeout: float = 30.0,
        model_load_timeout: float = 300.0,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.name = name
        self.state = WorkerState.UNINITIALIZED
        self.error: str | None = None
        self.ready_timeout = ready_timeout
        self.model_load_timeout = model_load_timeout
        self._transport = transport
        self._on_progress = on_progress
        self._changed = asyncio.Event()
        self.channel = RequestChannel(name, transport.post, timeout=request_timeout)

    @property
    def is_ready(self) -> bool:
        return self.state is WorkerState.READY_FOR_QUERIES

    def start(self) -> None:
        if self.state is not WorkerState.UNINITIALIZED:
            raise RuntimeError(f"{self.name} service already started")
        self._set_state(WorkerState.STARTING)
        self._transport.start(self._on_message)
        logger.info("worker_started", service=self.name)

    async def wait_until_ready(self) -> None:
        """Wait for the ready signal.

        The deadline starts at `ready_timeout` and is extended once to
        `model_load_timeout` when model loading is first observed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ready_timeout
        extended = False

        while True:
            if self.state is WorkerState.READY_FOR_QUERIES:
                return
            if self.state is WorkerState.FAILED:
                raise WorkerInitFailure(f"{self.name} service failed to start: {self.error}")
            if self.state is WorkerState.TERMINATED:
                raise WorkerInitFailure(f"{self.name} service terminated during startup")
            if self.state is WorkerState.MODEL_LOADING and not extended:
                deadline = loop.time() + self.model_load_timeout
                extended = True

            remaining = deadline - loop.time()
            if remaining <= 0:
                self._set_state(WorkerState.FAILED)
                self.error = "startup timed out"
                raise WorkerInitTimeout(
                    f"{self.name} service not ready after "
                    f"{self.model_load_timeout if extended else self.ready_timeout:.0f}s"
                )

            self._changed.clear()
            try:
                await asyncio.wait_for(self._changed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                continue

    async def request(
        self,
        message_type: str,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return await self.channel.send(message_type, payload, timeout=timeout)

    def terminate(self) -> None:
        if self.state is WorkerState.TERMINATED:
            return
        self.channel.close()
        if self.state is not WorkerState.UNINITIALIZED:
            self._transport.terminate()
        self._set_state(WorkerState.TERMINATED)
        logger.info("worker_terminated", service=self.name)

    def _on_message(self, message: dict[str, Any]) -> None:
        if self.state is WorkerState.TERMINATED:
            return
        if self.channel.dispatch(message):
            return

        message_type = message.get("type")
        if message_type == "workerReady":
            if self.state is WorkerState.STARTING:
                self._set_state(WorkerState.READY)
        elif message_type in _PROGRESS_SIGNALS:
            self._handle_progress(message)
        elif message_type in _READY_SIGNALS:
            if message.get("success", True):
                self._set_state(WorkerState.READY_FOR_QUERIES)
                self._report_progress(100.0)
                logger.info("worker_ready", service=self.name)
            else:
                self._fail(str(message.get("error") or "initialization failed"))
        elif message_type in _ERROR_SIGNALS:
            if self.state is not WorkerState.READY_FOR_QUERIES:
                self._fail(str(message.get("error") or message_type))
            else:
                logger.warning("worker_error_signal", service=self.name, error=message.get("error"))
        else:
            logger.debug("worker_message_ignored", service=self.name, message_type=message_type)

    def _handle_progress(self, message: dict[str, Any]) -> None:
        if self.state in (WorkerState.STARTING, WorkerState.READY):
            self._set_state(WorkerState.MODEL_LOADING)
        progress = message.get("progress")
        if isinstance(progress, dict):
            progress = progress.get("progress")
        if isinstance(progress, (int, float)):
            self._report_progress(float(progress))

    def _report_progress(self, percent: float) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(self.name, percent)
        except Exception as exc:
            logger.warning("progress_callback_failed", service=self.name, error=str(exc))

    def _fail(self, error: str) -> None:
        self.error = error
        self._set_state(WorkerState.FAILED)
        logger.error("worker_failed", service=self.name, error=error)

    def _set_state(self, state: WorkerState) -> None:
        self.state = state
        self._changed.set()
