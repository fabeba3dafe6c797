"""
LLM inference service.

Backends (settings.llm_backend):
  ollama  -> {ollama_url}/api/chat with JSON mode
  openai  -> {openai_base_url}/chat/completions (any OpenAI-compatible server)

Usage:
    raw_text = await chat(system_prompt, user_prompt)
"""
from __future__ import annotations

import logging

import httpx

from recall.config import settings

logger = logging.getLogger(__name__)


class LLMUnavailableError(Exception):
    """Raised when the configured LLM backend cannot be reached."""


class LLMConfigError(Exception):
    """Raised when the LLM backend settings are unusable. Never retried."""


async def _chat_ollama(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
    json_mode: bool,
) -> str:
    payload = {
        "model": settings.llm_model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "stream": False,
        "options": {"num_predict": max_tokens, "temperature": temperature},
    }
    if json_mode:
        payload["format"] = "json"
    async with httpx.AsyncClient() as client:
        res = await client.post(
            f"{settings.ollama_url}/api/chat",
            json=payload,
            timeout=settings.llm_timeout,
        )
        res.raise_for_status()
        return res.json()["message"]["content"]


async def _chat_openai(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
    json_mode: bool,
) -> str:
    if not settings.openai_api_key:
        raise LLMConfigError("No API key configured for the openai backend.")
    payload = {
        "model": settings.llm_model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    async with httpx.AsyncClient() as client:
        res = await client.post(
            f"{settings.openai_base_url}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {settings.openai_api_key}"},
            timeout=settings.llm_timeout,
        )
        res.raise_for_status()
        content = res.json()["choices"][0]["message"]["content"]
    if not content:
        raise LLMUnavailableError("Empty completion from openai backend.")
    return content


async def chat(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int | None = None,
    temperature: float | None = None,
    json_mode: bool = True,
) -> str:
    """
    Send a chat request to the configured backend and return the raw reply text.

    Raises LLMConfigError when the backend is unknown or lacks an API key,
    and LLMUnavailableError when it cannot be reached.
    HTTP error statuses propagate as httpx.HTTPStatusError.
    """
    max_tokens = max_tokens or settings.llm_max_tokens
    temperature = settings.llm_temperature if temperature is None else temperature

    if settings.llm_backend == "ollama":
        call = _chat_ollama
    elif settings.llm_backend == "openai":
        call = _chat_openai
    else:
        raise LLMConfigError(f"Unknown LLM backend: {settings.llm_backend}")

    try:
        return await call(system_prompt, user_prompt, max_tokens, temperature, json_mode)
    except httpx.TransportError as e:
        logger.warning("%s backend unreachable: %s", settings.llm_backend, e)
        raise LLMUnavailableError(f"{settings.llm_backend} backend unreachable: {e}") from e
