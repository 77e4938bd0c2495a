from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from src.config.configuration import ReactorConfiguration
from src.reactor.events import EventBus
from src.reactor.notifications import RecordingNotifier
from src.reactor.reactor import Reactor
from src.reactor.sender import MessageSender
from src.reactor.state import ConversationState

from .thread.store import SQLiteThreadStore

logger = logging.getLogger(__name__)


@dataclass
class ReactorRuntime:
    """Everything the HTTP surface shares: store, state, bus and the reactor on top."""

    configuration: ReactorConfiguration
    store: SQLiteThreadStore
    state: ConversationState = field(default_factory=ConversationState)
    bus: EventBus = field(default_factory=EventBus)
    notifier: RecordingNotifier = field(default_factory=RecordingNotifier)
    reactor: Reactor = field(init=False)
    sender: MessageSender = field(init=False)

    def __post_init__(self) -> None:
        self.reactor = Reactor(self.bus, self.state, self.store, self.notifier, self.configuration)
        self.sender = MessageSender(self.bus, self.state, self.store)

    async def start(self) -> None:
        await self.store.init()
        threads = await self.store.list_threads()
        self.state.threads.set(threads)
        for thread in threads:
            self.state.set_thread_messages(thread.id, await self.store.get_messages(thread.id))
        self.reactor.activate()
        self.sender.activate()
        logger.info("Reactor runtime started with %d thread(s)", len(threads))

    async def stop(self) -> None:
        self.sender.deactivate()
        self.reactor.deactivate()
        await self.store.close()


_RUNTIME: Optional[ReactorRuntime] = None


def initialise_runtime() -> ReactorRuntime:
    """Create the runtime from environment configuration."""
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME

    configuration = ReactorConfiguration.from_env()
    runtime = ReactorRuntime(configuration=configuration, store=SQLiteThreadStore(configuration.db_path))
    _RUNTIME = runtime
    logger.info("Initialised reactor runtime with DB path %s", runtime.store.db_path)
    return runtime


def set_runtime(runtime: Optional[ReactorRuntime]) -> None:
    global _RUNTIME
    _RUNTIME = runtime


def get_runtime() -> ReactorRuntime:
    if _RUNTIME is None:
        raise RuntimeError("Reactor runtime has not been initialised")
    return _RUNTIME
