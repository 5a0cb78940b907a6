"""Shared stubs for the cycle tests."""

import asyncio

from cogcycle.channel import MessageChannel
from cogcycle.memory import MemoryState
from cogcycle.messages import Insight, TaskProposal
from cogcycle.orchestrator import CycleOrchestrator
from cogcycle.strategies import ThresholdGate


class StubMemory:
    """review() returns a fixed state, optionally after a delay or a release."""

    def __init__(self, state=None, delay=0.0, error=None, release=None):
        self.state = state or MemoryState(item_count=10, capacity=50, goals=("goal-1",))
        self.delay = delay
        self.error = error
        self.release = release
        self.reviews = 0

    async def review(self):
        self.reviews += 1
        if self.release is not None:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.state


class StaticInsights:
    def __init__(self, insights=()):
        self.insights = list(insights)

    def generate(self, state):
        return list(self.insights)


class StaticTasks:
    """Proposes `count` tasks no matter what cap it is given."""

    def __init__(self, count):
        self.count = count

    def propose(self, goals, max_tasks, sequence=0):
        return [TaskProposal(f"Proposal {i}", "goal-1") for i in range(self.count)]


def make_orchestrator(memory=None, insights=(), tasks=0, gate=None):
    channel = MessageChannel()
    orchestrator = CycleOrchestrator(
        channel,
        memory or StubMemory(),
        gate or ThresholdGate(),
        insights if hasattr(insights, "generate") else StaticInsights(insights),
        tasks if hasattr(tasks, "propose") else StaticTasks(tasks),
    )
    return channel, orchestrator


async def collect(channel, terminals=1, timeout=2.0):
    """Read events until `terminals` terminal messages have arrived."""
    messages = []
    seen = 0
    while seen < terminals:
        message = await asyncio.wait_for(channel.next_event(), timeout)
        messages.append(message)
        if message.is_terminal:
            seen += 1
    return messages


async def collect_until(channel, predicate, timeout=2.0):
    """Read events until one satisfies `predicate`; returns all read."""
    messages = []
    while True:
        message = await asyncio.wait_for(channel.next_event(), timeout)
        messages.append(message)
        if predicate(message):
            return messages


def insight(content, confidence=0.5):
    return Insight(content, confidence)
