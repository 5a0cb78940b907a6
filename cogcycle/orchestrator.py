"""The cognitive cycle — review, consolidate, derive insights, emit tasks.

A cycle narrates itself over the channel: progress events as each phase
produces something, then exactly one terminal event (CYCLE_COMPLETE,
ERROR or CYCLE_CANCELLED).
"""

import asyncio
import inspect
import logging
import math
import threading
import time

from cogcycle.channel import ChannelClosed, MessageChannel
from cogcycle.messages import (
    COMMAND_ALIASES,
    CommandType,
    CycleRequest,
    CycleResult,
    Message,
    ProtocolError,
    Task,
    now_ms,
    parse_command,
    task_id,
)

logger = logging.getLogger("cogcycle.orchestrator")

# Posted on the command mailbox to make serve() return
STOP = object()

# Wire tags that request a cycle
RUN_CYCLE_TAGS = (CommandType.RUN_CYCLE.value, *COMMAND_ALIASES)


class CycleCancelled(Exception):
    pass


class CycleOrchestrator:
    def __init__(
        self,
        channel: MessageChannel,
        memory,
        gate,
        insight_strategy,
        task_strategy,
    ):
        self.channel = channel
        self.memory = memory
        self.gate = gate
        self.insight_strategy = insight_strategy
        self.task_strategy = task_strategy
        # cycle_id -> (task, cancel token) for cycles still running
        self._outstanding: dict[str, tuple[asyncio.Task, asyncio.Event]] = {}
        self._accepted = 0  # cycles started so far

    @property
    def outstanding(self) -> list[str]:
        return list(self._outstanding)

    # --- Command handling ---

    async def serve(self):
        """Consume commands until STOP or the channel closes."""
        logger.info("Orchestrator serving")
        while True:
            try:
                raw = await self.channel.next_command()
            except ChannelClosed:
                break
            if raw is STOP:
                break
            try:
                await self.handle_command(raw)
            except Exception as e:
                logger.exception("Failed to handle command")
                self.channel.send(Message.error(f"Failed to handle command: {e}"))
        await self.shutdown()
        logger.info("Orchestrator stopped")

    async def handle_command(self, raw):
        try:
            command = parse_command(raw)
        except ProtocolError as e:
            logger.warning(f"Rejected command: {e}")
            if (
                e.cycle_id is not None
                and e.command_type in RUN_CYCLE_TAGS
                and e.cycle_id not in self._outstanding
            ):
                # A requested cycle that never started: this ERROR is its terminal
                self.channel.send(Message.error(str(e), e.cycle_id))
            else:
                self.channel.send(Message.rejected(str(e), e.command_type, e.cycle_id))
            return

        if command.type is CommandType.PING:
            self.channel.send(Message.pong())
        elif command.type is CommandType.RUN_CYCLE:
            self.start_cycle(command.request)
        elif command.type is CommandType.CANCEL_CYCLE:
            self.cancel(command.cycle_id)

    def start_cycle(self, request: CycleRequest) -> asyncio.Task | None:
        """Schedule a cycle as its own task. Rejects ids already running."""
        cycle_id = request.cycle_id
        if cycle_id in self._outstanding:
            logger.warning(f"Cycle {cycle_id} rejected: already running")
            self.channel.send(
                Message.rejected(
                    f"Cycle {cycle_id} is already running", CommandType.RUN_CYCLE.value, cycle_id
                )
            )
            return None

        cancel = asyncio.Event()
        sequence = self._accepted
        self._accepted += 1
        task = asyncio.create_task(
            self.run_cycle(request, cancel, sequence), name=f"cycle-{cycle_id}"
        )
        self._outstanding[cycle_id] = (task, cancel)
        task.add_done_callback(lambda _t: self._outstanding.pop(cycle_id, None))
        return task

    def cancel(self, cycle_id: str) -> bool:
        entry = self._outstanding.get(cycle_id)
        if entry is None:
            self.channel.send(
                Message.rejected(
                    f"Cannot cancel {cycle_id}: no such cycle running",
                    CommandType.CANCEL_CYCLE.value,
                    cycle_id,
                )
            )
            return False
        logger.info(f"Cancelling cycle {cycle_id}")
        entry[1].set()
        return True

    async def shutdown(self):
        """Cancel every outstanding cycle and wait for their terminal events."""
        entries = list(self._outstanding.values())
        for _, cancel in entries:
            cancel.set()
        if entries:
            await asyncio.gather(*(t for t, _ in entries), return_exceptions=True)

    # --- The cycle ---

    async def run_cycle(
        self, request: CycleRequest, cancel: asyncio.Event | None = None, sequence: int = 0
    ) -> CycleResult | None:
        """Run one cycle end to end. Returns the result, or None if it failed.

        `sequence` numbers the cycle among those this orchestrator started;
        task strategies use it instead of keeping their own counters.
        """
        cycle_id = request.cycle_id
        config = request.config
        started = time.monotonic()
        result = CycleResult(id=cycle_id, started_at=now_ms())

        # Announce
        self.channel.send(Message.status(cycle_id, "Starting cognitive cycle"))
        logger.info(f"Cycle {cycle_id} started")

        try:
            # Review
            state = await self._resolve(self.memory.review(), cancel)
            self._check(cancel)

            # Consolidation decision
            threshold = config.consolidation_threshold
            if self.gate.decide(threshold, state.pressure):
                count = self.gate.consolidated_count(state, threshold)
                if isinstance(count, bool) or not isinstance(count, int) or count < 1:
                    raise ValueError(f"consolidation gate returned invalid count {count!r}")
                self.channel.send(Message.consolidated(cycle_id, count))
                result.memory_consolidated = True
            self._check(cancel)

            # Insights
            insights = await self._resolve(self.insight_strategy.generate(state), cancel)
            for insight in insights:
                self.channel.send(Message.insight(cycle_id, insight))
                result.insight_contents.append(insight.content)
            self._check(cancel)

            # Tasks
            proposals = list(
                await self._resolve(
                    self.task_strategy.propose(state.goals, config.max_tasks, sequence), cancel
                )
            )
            tasks_generated = min(len(proposals), config.max_tasks)
            if len(proposals) > config.max_tasks:
                result.errors.append(
                    f"Task strategy proposed {len(proposals)} tasks; capped at {config.max_tasks}"
                )
            for i, proposal in enumerate(proposals[:tasks_generated]):
                task = Task(task_id(cycle_id, i), proposal.description, proposal.parent_goal)
                self.channel.send(Message.task(cycle_id, task))
            result.tasks_completed = tasks_generated
        except CycleCancelled:
            logger.info(f"Cycle {cycle_id} cancelled")
            self.channel.send(Message.cancelled(cycle_id))
            return None
        except asyncio.CancelledError:
            logger.info(f"Cycle {cycle_id} cancelled by shutdown")
            self.channel.send(Message.cancelled(cycle_id))
            raise
        except Exception as e:
            logger.exception(f"Cycle {cycle_id} failed")
            self.channel.send(Message.error(str(e) or type(e).__name__, cycle_id))
            return None

        # Finalize
        result.duration_ms = math.ceil((time.monotonic() - started) * 1000)
        self.channel.send(Message.complete(result))
        logger.info(
            f"Cycle {cycle_id} complete ({result.duration_ms}ms, "
            f"{result.tasks_completed} tasks, {len(result.insight_contents)} insights)"
        )
        return result

    @staticmethod
    def _check(cancel: asyncio.Event | None):
        if cancel is not None and cancel.is_set():
            raise CycleCancelled()

    async def _resolve(self, value, cancel):
        """Strategies may answer directly or with an awaitable."""
        if inspect.isawaitable(value):
            return await self._await(value, cancel)
        return value

    @staticmethod
    async def _await(awaitable, cancel: asyncio.Event | None):
        """Await, but give up as soon as the cancel token is set."""
        if cancel is None:
            return await awaitable
        if cancel.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise CycleCancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work.done():
            return work.result()
        work.cancel()
        raise CycleCancelled()


class InlineWorker:
    """Serves the orchestrator on the caller's event loop."""

    def __init__(self, orchestrator: CycleOrchestrator):
        self.orchestrator = orchestrator
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        self.orchestrator.channel.commands.bind(asyncio.get_running_loop())
        self._task = asyncio.create_task(self.orchestrator.serve())

    async def stop(self):
        if not self._task:
            return
        self.orchestrator.channel.commands.put(STOP)
        await self._task
        self._task = None


class ThreadedWorker:
    """Serves the orchestrator on a dedicated thread with its own event loop.

    Cycle work (and any blocking strategy) never touches the host's loop.
    """

    def __init__(self, orchestrator: CycleOrchestrator, join_timeout: float = 10.0):
        self.orchestrator = orchestrator
        self.join_timeout = join_timeout
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    async def start(self):
        self._ready.clear()
        self._thread = threading.Thread(
            target=asyncio.run, args=(self._main(),), name="cogcycle-worker", daemon=True
        )
        self._thread.start()
        await asyncio.to_thread(self._ready.wait, self.join_timeout)

    async def _main(self):
        self.orchestrator.channel.commands.bind(asyncio.get_running_loop())
        self._ready.set()
        try:
            await self.orchestrator.serve()
        except Exception as e:
            logger.exception("Worker thread crashed")
            self.orchestrator.channel.send(Message.error(f"Worker crashed: {e}"))

    async def stop(self):
        if not self._thread:
            return
        self.orchestrator.channel.commands.put(STOP)
        await asyncio.to_thread(self._thread.join, self.join_timeout)
        if self._thread.is_alive():
            logger.warning("Worker thread did not stop in time")
        self._thread = None
