"""Thread-hosted service workers reachable only through messages."""

from __future__ import annotations

import asyncio
import copy
import importlib
import queue
import threading
from collections.abc import Callable
from typing import Any, Protocol

import structlog

from resume_qa.workers.services import ServiceBackend

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[dict[str, Any]], None]


class WorkerTransport(Protocol):
    """Minimal contract between a service handle and its worker."""

    def start(self, on_message: MessageHandler) -> None:
        """Begin delivering worker messages to `on_message` on the running loop."""

    def post(self, message: dict[str, Any]) -> None:
        """Send one request message to the worker."""

    def terminate(self) -> None:
        """Stop the worker; no further messages are delivered."""


WorkerFactory = Callable[[str, str], WorkerTransport]


def load_backend_factory(path: str) -> Callable[[], ServiceBackend]:
    """Resolve a ``"module:attribute"`` path to a backend factory."""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Service path must look like 'module:attribute': {path}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if factory is None or not callable(factory):
        raise ValueError(f"Service path does not name a callable: {path}")
    return factory


def thread_worker_factory(name: str, path: str) -> WorkerTransport:
    return ThreadWorker(name, load_backend_factory(path))


class ThreadWorker:
    """Runs one `ServiceBackend` in a daemon thread with a queue inbox.

    Messages are deep-copied in both directions. Replies are delivered on the
    event loop that was running when `start` was called. Python threads cannot
    be killed, so `terminate` only stops delivery and ends the thread once the
    current request finishes.
    """

    def __init__(self, name: str, backend_factory: Callable[[], ServiceBackend]) -> None:
        self.name = name
        self._backend_factory = backend_factory
        self._inbox: queue.Queue[dict[str, Any] | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_message: MessageHandler | None = None
        self._terminated = threading.Event()

    def start(self, on_message: MessageHandler) -> None:
        if self._thread is not None:
            raise RuntimeError(f"Worker already started: {self.name}")
        self._loop = asyncio.get_running_loop()
        self._on_message = on_message
        self._thread = threading.Thread(target=self._run, name=f"resume-qa-{self.name}", daemon=True)
        self._thread.start()

    def post(self, message: dict[str, Any]) -> None:
        if self._terminated.is_set():
            raise RuntimeError(f"Worker terminated: {self.name}")
        self._inbox.put(copy.deepcopy(message))

    def terminate(self) -> None:
        if self._terminated.is_set():
            return
        self._terminated.set()
        self._inbox.put(None)

    def _emit(self, message: dict[str, Any]) -> None:
        if self._terminated.is_set() or self._loop is None or self._on_message is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._on_message, copy.deepcopy(message))
        except RuntimeError:
            # Loop already closed.
            self._terminated.set()

    def _run(self) -> None:
        self._emit({"type": "workerReady"})
        try:
            backend = self._backend_factory()
            backend.load(lambda percent, status="loading": self._emit_progress(backend, percent, status))
        except Exception as exc:
            logger.error("worker_startup_failed", worker=self.name, error=str(exc))
            self._emit({"type": "initialized", "success": False, "error": str(exc)})
            return
        self._emit({"type": backend.ready_signal, "success": True})

        while True:
            message = self._inbox.get()
            if message is None or self._terminated.is_set():
                break
            self._handle(backend, message)

    def _emit_progress(self, backend: ServiceBackend, percent: float, status: str) -> None:
        if backend.progress_signal == "progress":
            self._emit({"type": "progress", "progress": {"progress": percent, "status": status}})
        else:
            self._emit({"type": backend.progress_signal, "progress": percent, "status": status})

    def _handle(self, backend: ServiceBackend, message: dict[str, Any]) -> None:
        message_type = str(message.get("type", ""))
        request_id = message.get("requestId")
        envelope = {"type": message_type, "requestId": request_id}
        try:
            fields = backend.handle(message_type, message.get("payload") or {})
        except Exception as exc:
            logger.warning(
                "worker_request_failed",
                worker=self.name,
                request_type=message_type,
                error=str(exc),
            )
            self._emit({**envelope, "success": False, "error": str(exc)})
            return
        self._emit({**envelope, "success": True, **fields})
