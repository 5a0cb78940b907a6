"""In-process working memory — the state a cycle reviews."""

import asyncio
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger("cogcycle.memory")


@dataclass(frozen=True)
class MemoryState:
    """Read-only snapshot handed to a cycle's strategies."""

    item_count: int
    capacity: int
    goals: tuple[str, ...] = ()
    topics: dict[str, int] = field(default_factory=dict)
    recent: tuple[str, ...] = ()
    long_term_count: int = 0

    @property
    def pressure(self) -> float:
        """Fill level of working memory, clamped to [0, 1]."""
        if self.capacity <= 0:
            return 1.0 if self.item_count else 0.0
        return min(1.0, self.item_count / self.capacity)


class WorkingMemory:
    """Short-lived memories awaiting consolidation into long-term memory.

    Only the host mutates it (add, consolidate); cycles read snapshots
    through review(), possibly from the worker thread. All access to the
    item lists goes through the lock.
    """

    def __init__(
        self,
        capacity: int = 50,
        review_delay: float = 0.1,
        goals: list[str] | None = None,
    ):
        self.capacity = capacity
        self.review_delay = review_delay
        self.goals: list[str] = list(goals or [])
        self.items: list[dict] = []
        self.long_term: list[dict] = []
        self._next_id: int = 0
        self._lock = threading.Lock()

    def add(self, content: str, topic: str = "general") -> dict:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "topic": topic,
            "content": content,
        }
        with self._lock:
            entry["id"] = f"m_{self._next_id:04d}"
            self.items.append(entry)
            self._next_id += 1
        logger.debug(f"Memory {entry['id']}: topic={topic}")
        return entry

    def add_goal(self, goal: str):
        with self._lock:
            if goal not in self.goals:
                self.goals.append(goal)

    def snapshot(self, recent: int = 10) -> MemoryState:
        with self._lock:
            items = list(self.items)
            goals = tuple(self.goals)
            long_term_count = len(self.long_term)
        return MemoryState(
            item_count=len(items),
            capacity=self.capacity,
            goals=goals,
            topics=dict(Counter(m["topic"] for m in items)),
            recent=tuple(m["content"] for m in items[-recent:]) if recent > 0 else (),
            long_term_count=long_term_count,
        )

    async def review(self) -> MemoryState:
        """Fetch the current state. Stands in for a real store round-trip."""
        if self.review_delay > 0:
            await asyncio.sleep(self.review_delay)
        return self.snapshot()

    def consolidate(self, count: int) -> int:
        """Move the oldest `count` items into long-term memory."""
        with self._lock:
            moved = self.items[:count]
            del self.items[:count]
            self.long_term.extend(moved)
        logger.info(
            f"Consolidated {len(moved)} memories "
            f"({len(self.items)} working, {len(self.long_term)} long-term)"
        )
        return len(moved)
