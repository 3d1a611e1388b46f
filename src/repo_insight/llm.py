import json
import logging
import re
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from repo_insight import prompts
from repo_insight.config import LLMConfig
from repo_insight.remote import RemoteClient, RemoteError, RetryCallback

logger = logging.getLogger(__name__)

MAX_EMBEDDING_INPUT = 8_000

_OPENING_FENCE = re.compile(r"^```[\w-]*\s*")
_CLOSING_FENCE = re.compile(r"\s*```$")


class LLMError(RemoteError):
    pass


class ResponseShapeError(LLMError):
    def __init__(self, detail: str, status_code: int = 502):
        self.detail = detail
        super().__init__(f"AI returned invalid data ({detail}). Please try again.", status_code)


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", text))
    return text.strip()


def parse_analysis_json(text: str | None) -> dict[str, Any]:
    if not text:
        raise ResponseShapeError("empty response")
    content = strip_code_fences(text)
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.debug(f"Unparseable LLM response (first 500 chars): {content[:500]}")
        raise ResponseShapeError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ResponseShapeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _as_llm_error(exc: openai.OpenAIError) -> LLMError:
    if isinstance(exc, openai.APIStatusError):
        return LLMError(f"OpenAI API error: {exc.status_code} {exc.message}", status_code=exc.status_code)
    return LLMError(f"Failed to reach the LLM API: {exc}")


class LLMClient:
    """Chat-completion and embedding calls against an OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-large",
        remote: RemoteClient | None = None,
        timeout: float = 90.0,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        http_client: httpx.AsyncClient | None = None,
    ):
        # Retries are handled by RemoteClient, not the SDK.
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0, http_client=http_client)
        self._remote = remote or RemoteClient()
        self.model = model
        self.embedding_model = embedding_model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(
        cls,
        cfg: LLMConfig,
        api_key: str,
        remote: RemoteClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "LLMClient":
        return cls(
            api_key=api_key,
            base_url=cfg.openai_base_url,
            model=cfg.model_name,
            embedding_model=cfg.embedding_model,
            remote=remote,
            timeout=cfg.llm_timeout,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            http_client=http_client,
        )

    async def _complete(self, prompt: str) -> dict[str, Any]:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompts.ANALYSIS_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except openai.OpenAIError as exc:
            raise _as_llm_error(exc) from exc

        if not response.choices or response.choices[0].message is None:
            raise ResponseShapeError("no choices in response")
        return parse_analysis_json(response.choices[0].message.content)

    async def analyze(self, prompt: str, on_retry: RetryCallback | None = None) -> dict[str, Any]:
        logger.info(f"Requesting analysis from {self.model} ({len(prompt)} chars)")
        return await self._remote.call(lambda: self._complete(prompt), on_retry=on_retry)

    async def embed(self, text: str) -> list[float] | None:
        if not text or not text.strip():
            return None
        try:
            response = await self._client.embeddings.create(
                model=self.embedding_model,
                input=text[:MAX_EMBEDDING_INPUT],
            )
        except openai.OpenAIError as exc:
            logger.warning(f"Embedding request failed: {_as_llm_error(exc)}")
            return None
        if not response.data:
            return None
        return list(response.data[0].embedding)
