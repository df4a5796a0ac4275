# src/taskpulse/llm/client.py

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a friendly personal assistant that helps the user stay on top of their plans. "
    "Write a single short chat message addressed to the user. No preamble, no signature."
)

# How long a model that returned 404 is left out of rotation.
BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError, httpx.TimeoutException))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


class OpenRouterMessageGenerator:
    """
    Message generator backed by an OpenAI-compatible endpoint (OpenRouter).

    Behavior:
    - Tries models in the configured order.
    - 404 (model not available) -> model is parked for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        models: list[str],
        extra_headers: dict[str, str] | None = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        client: OpenAI | None = None,
    ) -> None:
        if client is None:
            if not api_key or not str(api_key).strip():
                raise RuntimeError("LLM API key is not set. Set TASKPULSE_OPENROUTER_API_KEY in your .env.")
            if not base_url or not base_url.strip():
                raise RuntimeError("LLM base URL is not set. Set TASKPULSE_OPENROUTER_BASE_URL in your .env.")
            # Automatic retries are disabled so fallback across models stays quick.
            client = OpenAI(
                base_url=base_url,
                api_key=str(api_key),
                timeout=httpx.Timeout(connect=connect_timeout, read=read_timeout, write=10.0, pool=connect_timeout),
                max_retries=0,
            )

        self._client = client
        self._models = [m.strip() for m in models if m and m.strip()]
        self._headers = dict(extra_headers or {})
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

        if not self._models:
            raise RuntimeError("LLM model list is empty. Set TASKPULSE_LLM_MODELS in your .env.")

    @classmethod
    def from_settings(cls, settings) -> OpenRouterMessageGenerator:
        return cls(
            api_key=getattr(settings, "openrouter_api_key", None),
            base_url=getattr(settings, "openrouter_base_url", "") or "",
            models=list(getattr(settings, "llm_models", []) or []),
            extra_headers=dict(getattr(settings, "extra_headers", {}) or {}),
        )

    def _complete(self, model: str, messages: list[dict[str, str]], owner_id: str) -> str:
        resp: Any = self._client.chat.completions.create(
            model=model,
            messages=messages,
            extra_headers=self._headers or None,
            user=owner_id,
        )
        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError):
            content = None
        return (content or "").strip()

    def generate_personalized_message(self, owner_id: str, prompt_hint: str) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt_hint},
        ]

        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            t0 = time.monotonic()
            try:
                text = self._complete(model, messages, owner_id)
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError(
                        "LLM authentication failed. Check your API key (TASKPULSE_OPENROUTER_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                elif _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                elif _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                else:
                    logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            if text:
                logger.info("LLM: message for owner=%s from model=%s (%.2fs)", owner_id, model, time.monotonic() - t0)
                return text

            last_error = RuntimeError(f"Model returned no content: {model}")

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
            raise RuntimeError("All LLM models failed.") from last_error

        raise RuntimeError("All LLM models failed.")
