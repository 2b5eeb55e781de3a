"""
Chat model client for the business coach.

``OpenAIChatModel`` wraps the async OpenAI client with the same retry
policy the rest of the backend uses: back off on rate limits, retry
timeouts and 5xx errors, give up immediately on 4xx. Tool invocations are
returned raw (name plus JSON argument string); parsing them is the
orchestrator's job.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from app.features.business_coach.domain.errors import ModelUnavailableError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class ModelToolCall:
    id: str
    name: str
    arguments: str


@dataclass(slots=True)
class ModelResponse:
    content: str | None
    model: str
    total_tokens: int = 0
    tool_calls: list[ModelToolCall] = field(default_factory=list)


class ChatModel(Protocol):
    model_name: str

    @property
    def available(self) -> bool: ...

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int,
        temperature: float,
    ) -> ModelResponse: ...

    async def health_check(self) -> dict[str, Any]: ...


def _extract_tool_calls(message: Any) -> list[ModelToolCall]:
    """Collect tool calls from either the ``tool_calls`` list or a legacy ``function_call``."""
    calls: list[ModelToolCall] = []
    for tool_call in getattr(message, "tool_calls", None) or []:
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        calls.append(
            ModelToolCall(
                id=tool_call.id or f"call_{uuid.uuid4().hex[:12]}",
                name=function.name,
                arguments=function.arguments or "{}",
            )
        )

    function_call = getattr(message, "function_call", None)
    if not calls and function_call is not None:
        calls.append(
            ModelToolCall(
                id=f"call_{uuid.uuid4().hex[:12]}",
                name=function_call.name,
                arguments=function_call.arguments or "{}",
            )
        )
    return calls


class OpenAIChatModel:
    """Chat completions with tool calling, backed by ``AsyncOpenAI``."""

    def __init__(
        self,
        api_key: str | None,
        model: str,
        *,
        request_timeout: float = 30.0,
        max_retries: int = 2,
        client: AsyncOpenAI | None = None,
    ):
        self.model_name = model
        self.max_retries = max_retries
        self.request_timeout = request_timeout
        self.client = client
        if self.client is None and api_key:
            # The SDK's own retries are disabled; retries happen in complete().
            self.client = AsyncOpenAI(api_key=api_key, timeout=request_timeout, max_retries=0)
            logger.info("OpenAI client initialized", model=model, timeout=request_timeout)
        elif self.client is None:
            logger.warning("OPENAI_API_KEY not configured, coach replies will use fallback text")

    @property
    def available(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int,
        temperature: float,
    ) -> ModelResponse:
        """
        Run one chat completion.

        Raises:
            ModelUnavailableError: client missing, retries exhausted, or no choices returned
        """
        if not self.client:
            raise ModelUnavailableError("OpenAI client not initialized", recoverable=False)

        request: dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        response = None
        last_error: Exception | None = None
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                response = await self.client.chat.completions.create(**request)
                break

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)
                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    attempt=attempt + 1,
                    wait_time=wait_time,
                    error=str(e),
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning(
                    "OpenAI API timeout, retrying",
                    attempt=attempt + 1,
                    timeout=self.request_timeout,
                )

            except openai.APIStatusError as e:
                last_error = e
                if 400 <= e.status_code < 500:
                    logger.error("OpenAI client error (not retrying)", status_code=e.status_code)
                    break
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except openai.APIError as e:
                last_error = e
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

        if response is None:
            logger.error(
                "OpenAI API call failed after all retries",
                attempts=attempts,
                final_error=str(last_error),
            )
            raise ModelUnavailableError(f"OpenAI API failed: {last_error}") from last_error

        if not response.choices:
            raise ModelUnavailableError("Empty response from OpenAI API")

        message = response.choices[0].message
        return ModelResponse(
            content=message.content,
            model=response.model or self.model_name,
            total_tokens=response.usage.total_tokens if response.usage else 0,
            tool_calls=_extract_tool_calls(message),
        )

    async def health_check(self) -> dict[str, Any]:
        health_data: dict[str, Any] = {
            "healthy": self.client is not None,
            "service": "openai_chat_model",
            "client_initialized": self.client is not None,
            "configuration": {
                "model": self.model_name,
                "timeout_seconds": self.request_timeout,
                "max_retries": self.max_retries,
            },
        }
        if not self.client:
            health_data["api_connectivity"] = "client_not_initialized"
            return health_data

        try:
            await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model_name,
                    messages=[{"role": "user", "content": "Test"}],
                    max_tokens=1,
                ),
                timeout=5,
            )
            health_data["api_connectivity"] = "ok"
        except Exception as api_error:
            health_data["healthy"] = False
            health_data["api_connectivity"] = "error"
            health_data["api_error"] = str(api_error)
        return health_data
