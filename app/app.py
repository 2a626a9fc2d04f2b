import asyncio
import contextlib
import functools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import pydantic
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route

import config
from app.schemas import InvalidOrderRequest, parse_order_request
from domain.breaker import CircuitOpenError
from domain.llm_service import LLMService, UpstreamError, UpstreamTimeoutError
from domain.services import generate_order


logger = logging.getLogger(__name__)

T = TypeVar("T")

JSON = dict[str, Any]


DISCONNECT_POLL = 0.5


class ClientDisconnected(Exception):
    pass


def aJSONResponse(route: Callable[..., Awaitable[JSON | tuple[JSON, int]]]):
    @functools.wraps(route)
    async def wrapper(*args: Any, **kwargs: Any) -> JSONResponse:
        resp = await route(*args, **kwargs)
        if not isinstance(resp, tuple):
            data, code = resp, 200
        else:
            data, code = resp
        return JSONResponse(data, status_code=code)

    return wrapper


async def _until_disconnected(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL)


async def cancel_on_disconnect(request: Request, coro: Awaitable[T]) -> T:
    """Await `coro`, cancelling it if the client hangs up first."""
    work = asyncio.ensure_future(coro)
    watcher = asyncio.ensure_future(_until_disconnected(request))
    try:
        done, _ = await asyncio.wait(
            {work, watcher}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        watcher.cancel()
        if not work.done():
            work.cancel()

    if work not in done:
        raise ClientDisconnected
    return work.result()


async def health(request: Request) -> PlainTextResponse:
    return PlainTextResponse("OK")


@aJSONResponse
async def generate(request: Request) -> JSON | tuple[JSON, int]:
    try:
        body = await request.json()
    except ValueError:
        return {"error": "Invalid request body"}, 400

    try:
        order = parse_order_request(body)
    except pydantic.ValidationError:
        return {"error": "Invalid request body"}, 400
    except InvalidOrderRequest as e:
        return {"error": str(e)}, 400

    llm: LLMService = request.app.state.llm
    cfg: config.Config = request.app.state.config
    try:
        message = await cancel_on_disconnect(
            request,
            generate_order(order, llm=llm, timeout=cfg.request_timeout),
        )
    except CircuitOpenError:
        return {"error": "Order generation is temporarily unavailable"}, 503
    except UpstreamTimeoutError:
        return {"error": "Timed out generating order"}, 504
    except UpstreamError:
        return {"error": "Failed to generate order"}, 502
    except ClientDisconnected:
        logger.info("Client disconnected, order generation cancelled")
        return {"error": "Client closed request"}, 499

    return {"generatedMessage": message}


@contextlib.asynccontextmanager
async def lifespan(app: Starlette) -> AsyncIterator[None]:
    owned = getattr(app.state, "llm", None) is None
    if owned:
        app.state.llm = LLMService.from_config(app.state.config)
    yield
    if owned:
        await app.state.llm.close()


def create_app(
    llm: LLMService | None = None,
    cfg: config.Config | None = None,
) -> Starlette:
    cfg = config.Config() if cfg is None else cfg
    app = Starlette(
        debug=cfg.env == config.Env.local,
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/api/generate-order", generate, methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["Content-Type"],
            ),
        ],
        lifespan=lifespan,
    )
    app.state.config = cfg
    if llm is not None:
        app.state.llm = llm
    return app


app = create_app()
