"""The wake loop — schedules cycles and keeps track of what they report."""

import asyncio
import logging
import time
from collections import deque

from cogcycle.channel import ChannelClosed, MessageChannel
from cogcycle.config import validate_cycle_settings
from cogcycle.memory import WorkingMemory
from cogcycle.messages import (
    Command,
    CycleConfig,
    CycleResult,
    Message,
    MessageType,
    now_ms,
)
from cogcycle.orchestrator import CycleOrchestrator, InlineWorker, ThreadedWorker
from cogcycle.strategies import build_strategies

logger = logging.getLogger("cogcycle.loop")

# Cap on the in-memory logs of events, tasks and insights
MAX_KEPT = 1000


class CognitiveLoop:
    """Host side of the channel.

    Wakes every `wake_interval_seconds`, posts a RUN_CYCLE command, and
    pumps the orchestrator's events: history, status, WebSocket fan-out.
    """

    def __init__(self, settings: dict, channel: MessageChannel, memory: WorkingMemory, worker):
        self.settings = dict(settings)
        self.channel = channel
        self.memory = memory
        self.worker = worker

        self.state: str = "idle"  # idle | thinking | consolidating | error
        self.running: bool = False
        self.is_active: bool = False
        self.next_wake_time: float | None = None
        self.total_cycles: int = 0
        self.failed_cycles: int = 0
        self.last_cycle: CycleResult | None = None
        self.history: deque[CycleResult] = deque(maxlen=self.settings["history_limit"])
        self.events: deque[dict] = deque(maxlen=MAX_KEPT)
        self.tasks: deque[dict] = deque(maxlen=MAX_KEPT)
        self.insights: deque[dict] = deque(maxlen=MAX_KEPT)
        self.transport_faults: int = 0

        self._pending: set[str] = set()  # cycle ids posted, no terminal event yet
        self._timed_out: set[str] = set()  # failed by the liveness window, terminal still due
        self._cycle_seq: int = 0
        self._start_time = time.time()
        self._ws_clients: set = set()
        self._pings: deque[asyncio.Future] = deque()
        self._pump_task: asyncio.Task | None = None
        self._reschedule = asyncio.Event()
        self._resumed = asyncio.Event()

    @classmethod
    def from_config(cls, settings: dict) -> "CognitiveLoop":
        """Wire memory, strategies, channel and worker from config."""
        memory = WorkingMemory(
            capacity=settings["working_memory_capacity"],
            review_delay=settings["review_delay_seconds"],
            goals=settings["goals"],
        )
        gate, insights, tasks = build_strategies(settings)
        channel = MessageChannel()
        orchestrator = CycleOrchestrator(channel, memory, gate, insights, tasks)
        if settings["worker_mode"] == "inline":
            worker = InlineWorker(orchestrator)
        else:
            worker = ThreadedWorker(orchestrator)
        return cls(settings, channel, memory, worker)

    # --- WebSocket fan-out ---

    def add_ws_client(self, ws):
        self._ws_clients.add(ws)

    def remove_ws_client(self, ws):
        self._ws_clients.discard(ws)

    async def _broadcast(self, message: dict):
        dead = set()
        for ws in self._ws_clients:
            try:
                await ws.send_json(message)
            except Exception:
                dead.add(ws)
        self._ws_clients -= dead

    # --- Lifecycle ---

    async def start(self):
        """Start the worker and the event pump (no wake timer)."""
        if self._pump_task:
            return
        self.channel.events.bind(asyncio.get_running_loop())
        await self.worker.start()
        self._pump_task = asyncio.create_task(self._pump())
        logger.info(f"Cognitive loop started ({self.settings['worker_mode']} worker)")

    async def run(self):
        """Wake loop: a cycle every wake_interval_seconds until shutdown."""
        self.running = True
        self.is_active = True
        self._resumed.set()
        await self.start()
        logger.info(
            f"Starting wake cycles (interval: {self.settings['wake_interval_seconds']}s)"
        )

        while self.running:
            if not self.is_active:
                self.next_wake_time = None
                await self._resumed.wait()
                continue
            interval = self.settings["wake_interval_seconds"]
            self.next_wake_time = time.time() + interval
            self._reschedule.clear()
            try:
                await asyncio.wait_for(self._reschedule.wait(), timeout=interval)
            except asyncio.TimeoutError:
                if self.running and self.is_active:
                    self.trigger_cycle()

    async def shutdown(self):
        """Stop waking, stop the worker, drain the remaining events."""
        self.running = False
        self.is_active = False
        self.next_wake_time = None
        self._reschedule.set()
        self._resumed.set()
        await self.worker.stop()
        self.channel.close()
        if self._pump_task:
            await self._pump_task
            self._pump_task = None
        for fut in self._pings:
            if not fut.done():
                fut.set_result(False)
        self._pings.clear()
        logger.info("Cognitive loop shut down")

    def pause(self):
        self.is_active = False
        self._resumed.clear()
        self._reschedule.set()
        logger.info("Paused")

    def resume(self):
        if self.is_active or not self.running:
            return
        self.is_active = True
        self._resumed.set()
        self._reschedule.set()
        logger.info("Resumed")

    def wake_now(self) -> str:
        """Run a cycle immediately and restart the wake timer."""
        logger.info("Immediate wake triggered")
        cycle_id = self.trigger_cycle()
        self._reschedule.set()
        return cycle_id

    def trigger_cycle(self) -> str:
        """Post a RUN_CYCLE command with the current settings. Non-blocking."""
        self._cycle_seq += 1
        cycle_id = f"cycle-{now_ms()}-{self._cycle_seq}"
        config = CycleConfig(
            max_tasks=self.settings["max_tasks_per_cycle"],
            consolidation_threshold=self.settings["consolidation_threshold"],
        )
        self._pending.add(cycle_id)
        self.state = "thinking"
        self.channel.post(Command.run_cycle(cycle_id, config))
        logger.info(f"Starting cognitive cycle {cycle_id}")
        return cycle_id

    async def ping(self, timeout: float = 5.0) -> bool:
        """Liveness check: True if the orchestrator answers with PONG in time."""
        fut = asyncio.get_running_loop().create_future()
        self._pings.append(fut)
        self.channel.post(Command.ping())
        try:
            return await asyncio.wait_for(fut, timeout=timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            if fut in self._pings:
                self._pings.remove(fut)

    # --- Status & config ---

    def get_status(self) -> dict:
        return {
            "is_active": self.is_active,
            "current_state": self.state,
            "last_cycle": self.last_cycle.to_dict() if self.last_cycle else None,
            "next_wake_time": self.next_wake_time,
            "total_cycles": self.total_cycles,
            "failed_cycles": self.failed_cycles,
            "uptime": time.time() - self._start_time,
            "outstanding": sorted(self._pending),
        }

    def get_history(self, limit: int = 20) -> list[dict]:
        if limit <= 0:
            return []
        return [c.to_dict() for c in list(self.history)[-limit:]]

    def update_config(self, **changes) -> dict:
        """Merge and validate new settings; takes effect from the next cycle."""
        updated = {**self.settings, **changes}
        validate_cycle_settings(updated)
        self.settings = updated
        if "working_memory_capacity" in changes:
            self.memory.capacity = updated["working_memory_capacity"]
        if "history_limit" in changes:
            self.history = deque(self.history, maxlen=updated["history_limit"])
        logger.info(f"Configuration updated: {changes}")
        if self.is_active:
            self._reschedule.set()
        return self.settings

    # --- Event pump ---

    async def _pump(self):
        window = self.settings["liveness_window_seconds"]
        while True:
            try:
                if self._pending and window:
                    message = await asyncio.wait_for(self.channel.next_event(), timeout=window)
                else:
                    message = await self.channel.next_event()
            except ChannelClosed:
                break
            except asyncio.TimeoutError:
                # Silence while cycles are outstanding: give them up as failed
                timed_out = sorted(self._pending)
                self._pending.clear()
                self._timed_out.update(timed_out)
                self.failed_cycles += len(timed_out)
                self.transport_faults += 1
                self.state = "error"
                logger.warning(f"No events for {window}s; cycles marked failed: {timed_out}")
                continue
            try:
                await self._handle_event(message)
            except Exception:
                logger.exception(f"Failed to handle {message.type.value}")

    async def _handle_event(self, message: Message):
        entry = {"timestamp": now_ms(), **message.to_dict()}
        self.events.append(entry)
        await self._broadcast(message.to_dict())

        data = message.data
        kind = message.type

        if kind is MessageType.STATUS_UPDATE:
            logger.debug(f"[{data.get('cycleId')}] {data.get('message')}")

        elif kind is MessageType.MEMORY_CONSOLIDATED:
            self.state = "consolidating"
            moved = self.memory.consolidate(data["itemsConsolidated"])
            logger.info(f"Memory consolidated: {moved} items")

        elif kind is MessageType.INSIGHT_GENERATED:
            self.insights.append(data)
            logger.info(f"Insight: {data['content']} (confidence: {data['confidence']})")

        elif kind is MessageType.TASK_CREATED:
            self.tasks.append(data)
            logger.info(f"Autonomous task created: {data['description']} (goal: {data['parentGoal']})")

        elif kind is MessageType.CYCLE_COMPLETE:
            cycle = CycleResult.from_dict(data)
            if self._late(cycle.id):
                return
            self._finish(cycle.id)
            self.last_cycle = cycle
            self.total_cycles += 1
            self.history.append(cycle)
            logger.info(
                f"Cycle {cycle.id} complete ({cycle.duration_ms}ms, {cycle.tasks_completed} tasks)"
            )

        elif kind is MessageType.CYCLE_CANCELLED:
            if self._late(data["cycleId"]):
                return
            self._finish(data["cycleId"])
            logger.info(f"Cycle {data['cycleId']} cancelled")

        elif kind is MessageType.ERROR:
            cycle_id = data.get("cycleId")
            if "command" in data:
                # Rejected command; no cycle ended
                logger.warning(f"Command {data['command']} rejected: {data['error']}")
                return
            logger.error(f"Worker error ({cycle_id or 'no cycle'}): {data['error']}")
            if cycle_id is not None and self._late(cycle_id):
                return
            if cycle_id in self._pending:
                self._pending.discard(cycle_id)
                self.failed_cycles += 1
            elif cycle_id is None and self.last_cycle:
                # Worker-level fault, not tied to a cycle
                self.last_cycle.errors.append(data["error"])
            self.state = "error"

        elif kind is MessageType.PONG:
            while self._pings:
                fut = self._pings.popleft()
                if not fut.done():
                    fut.set_result(True)
                    break

    def _late(self, cycle_id: str) -> bool:
        """True for the terminal event of a cycle already failed by the liveness window."""
        if cycle_id not in self._timed_out:
            return False
        self._timed_out.discard(cycle_id)
        logger.warning(f"Cycle {cycle_id} ended after it was marked failed; ignoring")
        return True

    def _finish(self, cycle_id: str):
        self._pending.discard(cycle_id)
        if not self._pending:
            self.state = "idle"
