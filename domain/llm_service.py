import asyncio
import logging
from typing import Self

import openai

from config import Config
from domain.aopenai import openai_client_factory, quick_chat
from domain.breaker import CircuitBreaker, CircuitOpenError, trip_after


logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The LLM api failed or gave back nothing usable."""


class UpstreamTimeoutError(UpstreamError):
    pass


class LLMService:
    """Single prompt completions behind a circuit breaker.

    One instance per process. Every request shares its breaker.
    """

    @classmethod
    def from_config(cls, config: Config) -> Self:
        breaker = CircuitBreaker(
            "llm",
            max_requests=config.breaker_max_requests,
            interval=config.breaker_interval,
            timeout=config.breaker_timeout,
            ready_to_trip=trip_after(config.breaker_failure_threshold),
        )
        return cls(
            openai_client_factory(config),
            model=config.llm_model,
            breaker=breaker,
        )

    def __init__(
        self,
        openai_client: openai.AsyncClient,
        *,
        model: str,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.openai_client = openai_client
        self.model = model
        self.breaker = CircuitBreaker("llm") if breaker is None else breaker

    async def _complete(self, prompt: str, timeout: float | None) -> str:
        async with asyncio.timeout(timeout):
            content = await quick_chat(
                prompt, openai_client=self.openai_client, model=self.model
            )
        if not content:
            raise UpstreamError("LLM returned an empty completion.")
        return content

    async def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        """Complete `prompt`, giving up after `timeout` seconds.

        Raises `CircuitOpenError` without calling the api while the breaker is
        open, `UpstreamTimeoutError` when the deadline passes and `UpstreamError`
        for anything the api gets wrong.
        """
        logger.debug("Prompt: %s", prompt)
        try:
            return await self.breaker.call(self._complete, prompt, timeout)
        except CircuitOpenError as e:
            logger.warning("LLM call rejected: %s", e)
            raise
        except (TimeoutError, openai.APITimeoutError) as e:
            logger.error("LLM call timed out after %ss", timeout)
            raise UpstreamTimeoutError(f"LLM call timed out after {timeout}s") from e
        except openai.OpenAIError as e:
            logger.error("LLM API call failed: %r", e)
            raise UpstreamError(f"LLM API call failed: {e}") from e
        except UpstreamError as e:
            logger.error("LLM API call failed: %s", e)
            raise

    async def close(self) -> None:
        await self.openai_client.close()
