"""Prompts for the LLM-backed insight strategy."""

INSIGHT_PROMPT = """You review the working memory of a personal assistant between conversations.

Look for patterns: recurring topics, habits, progress toward the listed goals, and things worth remembering long-term.

Reply with at most {max_insights} insights, one per line, in the form:
<confidence between 0 and 1> | <one-sentence insight>

No preamble, no numbering, no blank lines. If nothing stands out, reply with an empty message."""


def insight_input(state, max_insights: int) -> tuple[str, list[dict]]:
    """Build (instructions, input_list) for one insight request."""
    topics = ", ".join(
        f"{topic} ({count})"
        for topic, count in sorted(state.topics.items(), key=lambda kv: -kv[1])
    )
    recent = "\n".join(f"- {content}" for content in state.recent) or "(empty)"
    goals = ", ".join(state.goals) or "(none)"
    content = f"""## Working memory
{state.item_count} of {state.capacity} slots used.

## Topics
{topics or '(none)'}

## Active goals
{goals}

## Most recent items
{recent}"""
    return (
        INSIGHT_PROMPT.format(max_insights=max_insights),
        [{"role": "user", "content": content}],
    )
