"""Pluggable policies a cycle consults: consolidation, insights, tasks.

Each family has a deterministic implementation for production and tests,
and a seeded random one that keeps the old placeholder behaviour.
"""

import asyncio
import logging
import math
import random
import re

from cogcycle.memory import MemoryState
from cogcycle.messages import Insight, TaskProposal
from cogcycle.prompts import insight_input

logger = logging.getLogger("cogcycle.strategies")

TASK_KINDS = ("research", "optimization", "analysis", "learning")


# --- Consolidation gates ---


class ConsolidationGate:
    def decide(self, threshold: float, pressure: float) -> bool:
        raise NotImplementedError

    def consolidated_count(self, state: MemoryState, threshold: float) -> int:
        raise NotImplementedError


class ThresholdGate(ConsolidationGate):
    """Consolidate once memory pressure rises above the threshold."""

    def decide(self, threshold: float, pressure: float) -> bool:
        return pressure > threshold

    def consolidated_count(self, state: MemoryState, threshold: float) -> int:
        # Bring the store back down to the threshold share of capacity
        keep = math.floor(threshold * state.capacity)
        return max(1, state.item_count - keep)


class RandomGate(ConsolidationGate):
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def decide(self, threshold: float, pressure: float) -> bool:
        return self.rng.random() > 0.5

    def consolidated_count(self, state: MemoryState, threshold: float) -> int:
        return self.rng.randint(5, 24)


# --- Insight strategies ---


class InsightStrategy:
    def generate(self, state: MemoryState) -> list[Insight]:
        raise NotImplementedError


class PatternInsightStrategy(InsightStrategy):
    """Cheap observations computed straight from the memory snapshot."""

    def __init__(self, min_topic_share: float = 0.4, pressure_warning: float = 0.8):
        self.min_topic_share = min_topic_share
        self.pressure_warning = pressure_warning

    def generate(self, state: MemoryState) -> list[Insight]:
        insights = []
        if state.item_count and state.topics:
            topic, count = max(state.topics.items(), key=lambda kv: (kv[1], kv[0]))
            share = count / state.item_count
            if share >= self.min_topic_share:
                insights.append(
                    Insight(
                        f"Recurring topic: {topic} ({count} of {state.item_count} recent items)",
                        round(share, 2),
                    )
                )
        if state.pressure >= self.pressure_warning:
            insights.append(
                Insight(
                    f"Recommendation: consolidate working memory ({state.item_count}/{state.capacity} slots used)",
                    round(state.pressure, 2),
                )
            )
        untouched = [g for g in state.goals if not self._mentions(state, g)]
        if state.goals and state.recent and untouched:
            insights.append(
                Insight(
                    f"Goals without recent activity: {', '.join(untouched)}",
                    round(len(untouched) / len(state.goals), 2),
                )
            )
        return insights

    @staticmethod
    def _mentions(state: MemoryState, goal: str) -> bool:
        key = goal.removeprefix("goal-").lower()
        return any(key in content.lower() for content in state.recent)


class RandomInsightStrategy(InsightStrategy):
    CATALOG = (
        Insight("User frequently researches AI topics in afternoon hours", 0.82),
        Insight("Pattern detected: longer conversations on Tuesdays", 0.65),
        Insight("Goal progress: 75% toward research objective", 0.88),
        Insight("Recommendation: consolidate learning from last 3 sessions", 0.71),
    )

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def generate(self, state: MemoryState) -> list[Insight]:
        count = self.rng.randrange(3)
        return list(self.CATALOG[:count])


_INSIGHT_LINE = re.compile(r"^\s*([01](?:\.\d+)?|\.\d+)\s*\|\s*(.+?)\s*$")


def parse_insight_lines(text: str, limit: int) -> list[Insight]:
    """Parse `confidence | content` lines; malformed lines are skipped."""
    insights = []
    for line in text.splitlines():
        match = _INSIGHT_LINE.match(line)
        if not match:
            if line.strip():
                logger.warning(f"Skipping unparseable insight line: {line[:80]}")
            continue
        confidence = max(0.0, min(1.0, float(match.group(1))))
        insights.append(Insight(match.group(2), confidence))
        if len(insights) >= limit:
            break
    return insights


class LLMInsightStrategy(InsightStrategy):
    """Ask the configured model for insights. The call runs in a thread."""

    def __init__(self, max_insights: int = 3, chat_fn=None):
        self.max_insights = max_insights
        if chat_fn is None:
            from cogcycle.providers import complete

            chat_fn = complete
        self.chat_fn = chat_fn

    async def generate(self, state: MemoryState) -> list[Insight]:
        instructions, input_list = insight_input(state, self.max_insights)
        text = await asyncio.to_thread(self.chat_fn, input_list, instructions)
        return parse_insight_lines(text, self.max_insights)


# --- Task strategies ---


class TaskStrategy:
    def propose(self, goals, max_tasks: int, sequence: int = 0) -> list[TaskProposal]:
        raise NotImplementedError


class GoalTaskStrategy(TaskStrategy):
    """Round-robin over goals, cycling through task kinds.

    Cycle `sequence` starts `sequence * proposals_per_cycle` steps into the
    rotation, so concurrent cycles share no counter.
    """

    def __init__(self, proposals_per_cycle: int = 3):
        self.proposals_per_cycle = proposals_per_cycle

    def propose(self, goals, max_tasks: int, sequence: int = 0) -> list[TaskProposal]:
        goals = list(goals)
        if not goals:
            return []
        count = min(self.proposals_per_cycle, max_tasks)
        start = sequence * self.proposals_per_cycle
        proposals = []
        for i in range(count):
            n = start + i
            goal = goals[n % len(goals)]
            kind = TASK_KINDS[n % len(TASK_KINDS)]
            proposals.append(TaskProposal(f"Autonomous {kind} task", goal))
        return proposals


class RandomTaskStrategy(TaskStrategy):
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def propose(self, goals, max_tasks: int, sequence: int = 0) -> list[TaskProposal]:
        count = min(self.rng.randrange(5), max_tasks)
        return [
            TaskProposal(
                f"Autonomous {self.rng.choice(TASK_KINDS)} task",
                f"goal-{self.rng.randrange(10)}",
            )
            for _ in range(count)
        ]


def build_strategies(settings: dict) -> tuple[ConsolidationGate, InsightStrategy, TaskStrategy]:
    """Instantiate the strategies named in config."""
    rng = random.Random(settings.get("random_seed"))

    gate = RandomGate(rng) if settings["consolidation_gate"] == "random" else ThresholdGate()

    if settings["insight_strategy"] == "random":
        insights = RandomInsightStrategy(rng)
    elif settings["insight_strategy"] == "llm":
        insights = LLMInsightStrategy()
    else:
        insights = PatternInsightStrategy()

    if settings["task_strategy"] == "random":
        tasks = RandomTaskStrategy(rng)
    else:
        tasks = GoalTaskStrategy(settings.get("proposals_per_cycle", 3))

    return gate, insights, tasks
