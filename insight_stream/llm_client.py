from __future__ import annotations

import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from openai import APIConnectionError, APITimeoutError, AzureOpenAI, OpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from insight_stream import settings
from insight_stream.llm_gate import validate_schema
from insight_stream.logger import get_logger

logger = get_logger(__name__)

AZURE_API_VERSION = "2024-02-15-preview"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class LLMCircuitOpenError(RuntimeError):
    pass


@dataclass
class CircuitBreaker:
    """Opens after ``threshold`` consecutive failures and rejects calls for ``cooldown`` seconds."""

    threshold: int = 5
    cooldown: float = 60.0
    failures: int = 0
    open_until: float = 0.0

    @property
    def is_open(self) -> bool:
        return time.monotonic() < self.open_until

    def guard(self) -> None:
        if self.is_open:
            raise LLMCircuitOpenError("Analysis service is cooling down after repeated failures. Try again later.")

    def record_success(self) -> None:
        self.failures = 0
        self.open_until = 0.0

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.threshold:
            self.open_until = time.monotonic() + self.cooldown
            logger.warning("Analysis circuit opened for %ss after %s failures", self.cooldown, self.failures)


class LLMClient(ABC):
    @abstractmethod
    def generate_json(
        self, schema: dict[str, Any], system_prompt: str, user_prompt: str, timeout: int = settings.LLM_TIMEOUT_SECONDS
    ) -> dict[str, Any]:
        raise NotImplementedError


class OpenAIJsonClient(LLMClient):
    """JSON-mode chat completions against OpenAI or an Azure deployment."""

    def __init__(self, client: OpenAI | AzureOpenAI, model: str, breaker: CircuitBreaker | None = None) -> None:
        self.client = client
        self.model = model
        self.breaker = breaker or CircuitBreaker()

    # Transport errors only: a bad answer is a terminal failure for the request.
    @retry(
        retry=retry_if_exception_type((APIConnectionError, APITimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _complete(self, messages: list[dict[str, str]], timeout: int) -> dict[str, Any]:
        self.breaker.guard()
        response = self.client.chat.completions.create(
            model=self.model,
            temperature=0,
            response_format={"type": "json_object"},
            messages=messages,
            timeout=timeout,
        )
        content = response.choices[0].message.content
        if not content:
            raise RuntimeError("Analysis service returned an empty answer.")
        return json.loads(content)

    def generate_json(
        self, schema: dict[str, Any], system_prompt: str, user_prompt: str, timeout: int = settings.LLM_TIMEOUT_SECONDS
    ) -> dict[str, Any]:
        instructions = (
            f"{system_prompt}\n"
            "Answer with one JSON object and no markdown fences.\n"
            f"It must satisfy this JSON Schema:\n{json.dumps(schema, ensure_ascii=True)}"
        )
        messages = [{"role": "system", "content": instructions}, {"role": "user", "content": user_prompt}]
        try:
            payload = self._complete(messages, timeout)
            validate_schema(payload, schema)
        except LLMCircuitOpenError:
            raise
        except Exception:
            self.breaker.record_failure()
            logger.exception("Analysis request to %s failed", self.model)
            raise
        self.breaker.record_success()
        return payload


def _azure_settings() -> tuple[str, str, str] | None:
    values = tuple(
        os.getenv(name, "").strip()
        for name in ("AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_DEPLOYMENT")
    )
    return values if all(values) else None


def create_llm_client_from_env() -> LLMClient:
    """Build the analysis client from ``AI_PROVIDER`` (openai or azure), falling back to whichever is configured."""
    provider = os.getenv("AI_PROVIDER", "openai").strip().lower()
    if provider not in {"azure", "openai"}:
        raise RuntimeError("Unsupported AI_PROVIDER. Use 'azure' or 'openai'.")

    azure = _azure_settings()
    openai_key = os.getenv("OPENAI_API_KEY", "").strip()

    if azure and (provider == "azure" or not openai_key):
        endpoint, api_key, deployment = azure
        client = AzureOpenAI(api_key=api_key, azure_endpoint=endpoint, api_version=AZURE_API_VERSION)
        return OpenAIJsonClient(client, model=deployment)
    if openai_key:
        model = os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL).strip()
        return OpenAIJsonClient(OpenAI(api_key=openai_key), model=model)
    raise RuntimeError("No analysis provider configured. Set OPENAI_API_KEY or the AZURE_OPENAI_* variables.")
