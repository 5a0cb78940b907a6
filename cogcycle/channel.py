"""Ordered, non-blocking transport between the host and the orchestrator.

Two mailboxes: commands flow host -> orchestrator, events flow back.
Either side may live on its own thread and event loop; a send from a
foreign thread is scheduled onto the consumer's loop, which keeps FIFO
order because call_soon_threadsafe callbacks run in submission order.
"""

import asyncio
import logging
import threading

logger = logging.getLogger("cogcycle.channel")

# Marks end of stream in a mailbox
CLOSED = object()


class ChannelClosed(Exception):
    pass


class Mailbox:
    """Single-consumer FIFO queue that accepts puts from any thread."""

    def __init__(self, name: str):
        self.name = name
        self._queue: asyncio.Queue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._backlog: list = []
        self._lock = threading.Lock()
        self.closed = False

    def bind(self, loop: asyncio.AbstractEventLoop):
        """Attach the mailbox to the loop its consumer runs on."""
        with self._lock:
            if self._loop is loop:
                return
            self._loop = loop
            self._queue = asyncio.Queue()
            backlog, self._backlog = self._backlog, []
            for item in backlog:
                self._deliver(item)

    def put(self, item):
        with self._lock:
            if self._loop is None:
                # No consumer yet; hold until bind()
                self._backlog.append(item)
                return
            self._deliver(item)

    def _deliver(self, item):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
        else:
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
            except RuntimeError:
                logger.warning(f"{self.name}: consumer loop is closed, dropping message")

    async def get(self):
        if self._loop is not asyncio.get_running_loop():
            self.bind(asyncio.get_running_loop())
        item = await self._queue.get()
        if item is CLOSED:
            # Leave the marker for any other waiter
            self._queue.put_nowait(CLOSED)
            raise ChannelClosed(self.name)
        return item

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.put(CLOSED)


class MessageChannel:
    """Bidirectional command/event channel handed to the orchestrator."""

    def __init__(self):
        self.commands = Mailbox("commands")
        self.events = Mailbox("events")

    # --- Host side ---

    def post(self, command):
        """Queue a command for the orchestrator. Never blocks."""
        if self.commands.closed:
            raise ChannelClosed("commands")
        self.commands.put(command)

    async def next_event(self):
        return await self.events.get()

    async def iter_events(self):
        """Yield events until the channel is closed."""
        while True:
            try:
                yield await self.events.get()
            except ChannelClosed:
                return

    # --- Orchestrator side ---

    def send(self, message):
        """Emit an event to the host. Never blocks."""
        if self.events.closed:
            logger.warning(f"Event channel closed, dropping {message.type.value}")
            return
        self.events.put(message)

    async def next_command(self):
        return await self.commands.get()

    def close(self):
        self.commands.close()
        self.events.close()
