"""Text completions for the LLM insight strategy.

OpenAI goes through the Responses API; OpenRouter and custom (local)
endpoints go through Chat Completions on their base_url.
"""

import logging

import httpx
import openai
from cogcycle.config import config

logger = logging.getLogger("cogcycle.providers")

DEFAULT_MAX_TOKENS = 300


def _log_http_error(response: httpx.Response) -> None:
    """httpx response hook: log the body of failed calls before the SDK retries."""
    if response.status_code < 400:
        return
    try:
        response.read()
        body = response.text[:1000] or "(empty)"
    except httpx.HTTPError:
        body = "(unreadable)"
    logger.error(f"Provider HTTP {response.status_code} from {response.url}: {body}")


def _uses_responses_api(settings: dict) -> bool:
    return settings["provider"] == "openai"


def _make_client(settings: dict) -> openai.OpenAI:
    base_url = settings.get("base_url")
    if not base_url:
        return openai.OpenAI(api_key=settings["api_key"])
    return openai.OpenAI(
        # Local servers ignore the key but the SDK insists on one
        api_key=settings["api_key"] or "local",
        base_url=base_url,
        max_retries=5,
        http_client=httpx.Client(event_hooks={"response": [_log_http_error]}),
    )


def _to_messages(input_list: list, instructions: str | None) -> list[dict]:
    """Responses-style input -> Chat Completions messages.

    Only role dicts are kept; instructions lead as the system message.
    """
    messages = [{"role": "system", "content": instructions}] if instructions else []
    messages.extend(
        item for item in input_list if isinstance(item, dict) and "role" in item
    )
    return messages


def _response_text(response) -> str:
    """Pull the text out of either API's response object."""
    if hasattr(response, "choices"):
        return response.choices[0].message.content or ""
    parts = [
        content.text
        for item in response.output
        if item.type == "message"
        for content in item.content
        if hasattr(content, "text")
    ]
    return "\n".join(parts)


def complete(
    input_list: list,
    instructions: str | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    settings: dict | None = None,
) -> str:
    """One blocking completion; returns the reply text ("" if there was none)."""
    settings = settings or config
    client = _make_client(settings)
    if _uses_responses_api(settings):
        kwargs = {
            "model": settings["model"],
            "input": input_list,
            "max_output_tokens": max_tokens,
        }
        if instructions:
            kwargs["instructions"] = instructions
        response = client.responses.create(**kwargs)
    else:
        messages = _to_messages(input_list, instructions)
        logger.info(
            f"Completion request: model={settings['model']} "
            f"provider={settings['provider']} messages={len(messages)}"
        )
        response = client.chat.completions.create(
            model=settings["model"], messages=messages, max_tokens=max_tokens
        )
    return _response_text(response)
