"""Wire types exchanged between the host and the cycle orchestrator."""

import time
from dataclasses import dataclass, field
from enum import Enum


class MessageType(Enum):
    STATUS_UPDATE = "STATUS_UPDATE"
    MEMORY_CONSOLIDATED = "MEMORY_CONSOLIDATED"
    INSIGHT_GENERATED = "INSIGHT_GENERATED"
    TASK_CREATED = "TASK_CREATED"
    CYCLE_COMPLETE = "CYCLE_COMPLETE"
    CYCLE_CANCELLED = "CYCLE_CANCELLED"
    ERROR = "ERROR"
    PONG = "PONG"


TERMINAL_TYPES = frozenset(
    {MessageType.CYCLE_COMPLETE, MessageType.CYCLE_CANCELLED, MessageType.ERROR}
)


class CommandType(Enum):
    RUN_CYCLE = "RUN_CYCLE"
    PING = "PING"
    CANCEL_CYCLE = "CANCEL_CYCLE"


# Older hosts send EXECUTE_CYCLE
COMMAND_ALIASES = {"EXECUTE_CYCLE": CommandType.RUN_CYCLE}


class ProtocolError(ValueError):
    """A command the orchestrator cannot interpret."""

    def __init__(self, message: str, command_type=None, cycle_id: str | None = None):
        super().__init__(message)
        self.command_type = command_type
        self.cycle_id = cycle_id


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CycleConfig:
    max_tasks: int
    consolidation_threshold: float

    def __post_init__(self):
        if (
            isinstance(self.max_tasks, bool)
            or not isinstance(self.max_tasks, int)
            or self.max_tasks < 0
        ):
            raise ValueError(
                f"maxTasks must be a non-negative integer, got {self.max_tasks!r}"
            )
        threshold = self.consolidation_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise ValueError(f"consolidationThreshold must be a number, got {threshold!r}")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(
                f"consolidationThreshold must be within [0, 1], got {threshold!r}"
            )

    def to_dict(self) -> dict:
        return {
            "maxTasks": self.max_tasks,
            "consolidationThreshold": self.consolidation_threshold,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CycleConfig":
        """Accepts both the camelCase wire keys and snake_case."""
        if not isinstance(d, dict):
            raise ValueError(f"config must be an object, got {type(d).__name__}")
        max_tasks = d.get("maxTasks", d.get("max_tasks"))
        threshold = d.get("consolidationThreshold", d.get("consolidation_threshold"))
        if max_tasks is None or threshold is None:
            raise ValueError("config requires maxTasks and consolidationThreshold")
        return cls(max_tasks=max_tasks, consolidation_threshold=threshold)


@dataclass(frozen=True)
class CycleRequest:
    cycle_id: str
    config: CycleConfig

    def __post_init__(self):
        if not isinstance(self.cycle_id, str) or not self.cycle_id:
            raise ValueError("cycleId must be a non-empty string")


@dataclass
class Insight:
    content: str
    confidence: float

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"insight confidence must be within [0, 1], got {self.confidence!r}"
            )

    def to_dict(self) -> dict:
        return {"content": self.content, "confidence": self.confidence}


@dataclass
class TaskProposal:
    description: str
    parent_goal: str


@dataclass
class Task:
    id: str
    description: str
    parent_goal: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "parentGoal": self.parent_goal,
        }


def task_id(cycle_id: str, seq: int) -> str:
    return f"task-{cycle_id}-{seq}"


@dataclass
class CycleResult:
    id: str
    started_at: int
    duration_ms: int = 0
    tasks_completed: int = 0
    memory_consolidated: bool = False
    insight_contents: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "startedAt": self.started_at,
            "durationMs": self.duration_ms,
            "tasksCompleted": self.tasks_completed,
            "memoryConsolidated": self.memory_consolidated,
            "insightContents": list(self.insight_contents),
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CycleResult":
        return cls(
            id=d["id"],
            started_at=d["startedAt"],
            duration_ms=d.get("durationMs", 0),
            tasks_completed=d.get("tasksCompleted", 0),
            memory_consolidated=d.get("memoryConsolidated", False),
            insight_contents=list(d.get("insightContents", [])),
            errors=list(d.get("errors", [])),
        )


@dataclass
class Message:
    type: MessageType
    data: dict = field(default_factory=dict)
    cycle_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Ends a cycle. Errors not tied to a cycle end nothing."""
        return self.type in TERMINAL_TYPES and self.cycle_id is not None

    def to_dict(self) -> dict:
        d = {"type": self.type.value}
        if self.data:
            d["data"] = self.data
        return d

    # --- Constructors, one per event kind ---

    @classmethod
    def status(cls, cycle_id: str, text: str) -> "Message":
        return cls(
            MessageType.STATUS_UPDATE, {"message": text, "cycleId": cycle_id}, cycle_id
        )

    @classmethod
    def consolidated(cls, cycle_id: str, count: int) -> "Message":
        return cls(
            MessageType.MEMORY_CONSOLIDATED,
            {"itemsConsolidated": count, "timestamp": now_ms()},
            cycle_id,
        )

    @classmethod
    def insight(cls, cycle_id: str, insight: Insight) -> "Message":
        return cls(MessageType.INSIGHT_GENERATED, insight.to_dict(), cycle_id)

    @classmethod
    def task(cls, cycle_id: str, task: Task) -> "Message":
        return cls(MessageType.TASK_CREATED, task.to_dict(), cycle_id)

    @classmethod
    def complete(cls, result: CycleResult) -> "Message":
        return cls(MessageType.CYCLE_COMPLETE, result.to_dict(), result.id)

    @classmethod
    def cancelled(cls, cycle_id: str) -> "Message":
        return cls(MessageType.CYCLE_CANCELLED, {"cycleId": cycle_id}, cycle_id)

    @classmethod
    def error(cls, error: str, cycle_id: str | None = None) -> "Message":
        data = {"error": error}
        if cycle_id is not None:
            data["cycleId"] = cycle_id
        return cls(MessageType.ERROR, data, cycle_id)

    @classmethod
    def rejected(cls, error: str, command, cycle_id: str | None = None) -> "Message":
        """ERROR for a refused command. Carries no cycleId, so no cycle is ended."""
        data = {"error": error, "command": str(command)}
        if cycle_id is not None:
            data["rejectedCycleId"] = cycle_id
        return cls(MessageType.ERROR, data)

    @classmethod
    def pong(cls) -> "Message":
        return cls(MessageType.PONG)


@dataclass(frozen=True)
class Command:
    type: CommandType
    cycle_id: str | None = None
    config: CycleConfig | None = None

    @property
    def request(self) -> CycleRequest:
        return CycleRequest(self.cycle_id, self.config)

    def to_dict(self) -> dict:
        d = {"type": self.type.value}
        if self.cycle_id is not None:
            d["cycleId"] = self.cycle_id
        if self.config is not None:
            d["config"] = self.config.to_dict()
        return d

    @classmethod
    def run_cycle(cls, cycle_id: str, config: CycleConfig) -> "Command":
        return cls(CommandType.RUN_CYCLE, cycle_id, config)

    @classmethod
    def ping(cls) -> "Command":
        return cls(CommandType.PING)

    @classmethod
    def cancel(cls, cycle_id: str) -> "Command":
        return cls(CommandType.CANCEL_CYCLE, cycle_id)


def parse_command(raw) -> Command:
    """Turn a wire dict (or an already-built Command) into a Command.

    Raises ProtocolError for unknown types and malformed payloads.
    """
    if isinstance(raw, Command):
        return raw
    if not isinstance(raw, dict):
        raise ProtocolError(f"Unknown message type: {raw!r}", command_type=raw)

    type_str = raw.get("type")
    cycle_id = raw.get("cycleId", raw.get("cycle_id"))
    if not isinstance(type_str, str):
        raise ProtocolError(f"Unknown message type: {type_str!r}", command_type=type_str)
    if type_str in COMMAND_ALIASES:
        command_type = COMMAND_ALIASES[type_str]
    else:
        try:
            command_type = CommandType(type_str)
        except ValueError:
            raise ProtocolError(
                f"Unknown message type: {type_str}",
                command_type=type_str,
                cycle_id=cycle_id if isinstance(cycle_id, str) else None,
            )

    if command_type is CommandType.PING:
        return Command(CommandType.PING)

    if not isinstance(cycle_id, str) or not cycle_id:
        raise ProtocolError(
            f"{command_type.value} requires a non-empty cycleId",
            command_type=type_str,
        )
    if command_type is CommandType.CANCEL_CYCLE:
        return Command(CommandType.CANCEL_CYCLE, cycle_id)

    try:
        config = CycleConfig.from_dict(raw.get("config"))
    except ValueError as e:
        raise ProtocolError(
            f"Invalid config for cycle {cycle_id}: {e}",
            command_type=type_str,
            cycle_id=cycle_id,
        )
    return Command(CommandType.RUN_CYCLE, cycle_id, config)
