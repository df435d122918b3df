"""
LLM client abstraction -- provider-agnostic wrapper.

Supported providers:
  mock      -- rule-based QuerySpec JSON for the prompt (offline dev, no key)
  openai    -- OpenAI ChatCompletion in JSON mode (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-5-sonnet default)

Every call is bounded by ``Settings.llm_timeout_seconds``; the SDK raises
on expiry and the caller decides how to recover.
"""
from __future__ import annotations

import json
from typing import Any

from src.core.config import get_settings
from src.core.logging import get_logger
from src.governance.validator import fallback_spec

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-5-sonnet-20240620"



def _call_mock(prompt: str, system: str, timeout: float) -> str:
    """Answer like an oracle would, using the keyword rules on *prompt*."""
    logger.info("LLM mock mode -- returning rule-based spec")
    return json.dumps(fallback_spec(prompt).to_payload())



def _call_openai(prompt: str, system: str, timeout: float) -> str:
    """Call OpenAI ChatCompletion API, asking for a JSON object."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise RuntimeError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
    response = client.chat.completions.create(
        model=settings.llm_model or _OPENAI_DEFAULT_MODEL,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=0.0,
        max_tokens=512,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text



def _call_anthropic(prompt: str, system: str, timeout: float) -> str:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise RuntimeError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
    response = client.messages.create(
        model=settings.llm_model or _ANTHROPIC_DEFAULT_MODEL,
        max_tokens=512,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text



_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def call_llm(
    prompt: str,
    provider: str | None = None,
    system: str = "You are a helpful analytics assistant.",
    timeout: float | None = None,
) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The user prompt text.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.
    system : str
        System instructions.
    timeout : float, optional
        Seconds before the call is abandoned; defaults to settings.
    """
    settings = get_settings()
    if provider is None:
        provider = settings.llm_provider.lower()
    if timeout is None:
        timeout = settings.llm_timeout_seconds

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  prompt_len=%d  timeout=%.1fs", provider, len(prompt), timeout)
    return fn(prompt, system, timeout)
