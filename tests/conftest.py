import asyncio
import copy
from collections.abc import Callable
from typing import Any

import pytest

Handler = Callable[[dict[str, Any]], Any]

READY_SIGNALS = [{"type": "workerReady"}, {"type": "ready", "success": True}]


class FakeWorker:
    """In-loop worker transport that answers requests from a handler table.

    A handler returns the reply fields, or an exception to reply with
    ``success: false``. Requests without a handler are never answered.
    """

    def __init__(
        self,
        name: str,
        handlers: dict[str, Handler] | None = None,
        startup: list[dict[str, Any]] | None = None,
    ) -> None:
        self.name = name
        self.handlers = handlers or {}
        self.startup = READY_SIGNALS if startup is None else startup
        self.posted: list[dict[str, Any]] = []
        self.terminated = False
        self._on_message: Callable[[dict[str, Any]], None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def start(self, on_message: Callable[[dict[str, Any]], None]) -> None:
        self._on_message = on_message
        self._loop = asyncio.get_running_loop()
        for message in self.startup:
            self._loop.call_soon(self.emit, message)

    def post(self, message: dict[str, Any]) -> None:
        self.posted.append(copy.deepcopy(message))
        handler = self.handlers.get(message["type"])
        if handler is None:
            return
        reply = handler(copy.deepcopy(message["payload"]))
        envelope: dict[str, Any] = {"type": message["type"], "requestId": message["requestId"]}
        if isinstance(reply, Exception):
            envelope.update(success=False, error=str(reply))
        else:
            envelope.update(success=True, **reply)
        assert self._loop is not None
        self._loop.call_soon(self.emit, envelope)

    def emit(self, message: dict[str, Any]) -> None:
        if not self.terminated and self._on_message is not None:
            self._on_message(copy.deepcopy(message))

    def terminate(self) -> None:
        self.terminated = True

    def requests(self, message_type: str | None = None) -> list[dict[str, Any]]:
        return [m for m in self.posted if message_type is None or m["type"] == message_type]


class FakeWorkerFactory:
    """Builds one `FakeWorker` per service name and keeps them for assertions."""

    def __init__(
        self,
        handlers: dict[str, dict[str, Handler]],
        startup: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.handlers = handlers
        self.startup = startup or {}
        self.workers: dict[str, FakeWorker] = {}

    def __call__(self, name: str, path: str) -> FakeWorker:
        worker = FakeWorker(name, self.handlers.get(name, {}), self.startup.get(name))
        self.workers[name] = worker
        return worker

    def total_requests(self) -> int:
        return sum(len(worker.posted) for worker in self.workers.values())


def constant_embedding_handlers(vector: list[float]) -> dict[str, Handler]:
    """Every text maps to the same vector, so every chunk is a perfect match."""
    return {
        "generateEmbedding": lambda payload: {"embedding": list(vector)},
        "generateBatchEmbeddings": lambda payload: {
            "embeddings": [list(vector) for _ in payload["texts"]]
        },
    }


@pytest.fixture
def embedding_handlers() -> dict[str, Handler]:
    return constant_embedding_handlers([0.6, 0.8, 0.0])


@pytest.fixture
def make_worker_factory() -> Callable[..., FakeWorkerFactory]:
    return FakeWorkerFactory
