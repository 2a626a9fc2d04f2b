import httpx
import openai

from config import Config


MAX_TOKENS = 1000
TIMEOUT = 60 * 2


def openai_client_factory(config: Config) -> openai.AsyncClient:
    """Client for any OpenAI compatible endpoint.

    Retries are off. Failures go straight to the circuit breaker.
    """
    return openai.AsyncClient(
        api_key=config.llm_api_key,
        base_url=config.llm_base_url,
        max_retries=0,
        http_client=httpx.AsyncClient(timeout=TIMEOUT),
    )


async def quick_chat(
    msg: str,
    *,
    openai_client: openai.AsyncClient,
    model: str,
    max_tokens: int = MAX_TOKENS,
) -> str | None:
    resp = await openai_client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": msg}],
        max_tokens=max_tokens,
    )
    if not resp.choices:
        return None
    return resp.choices[0].message.content
