import argparse
import asyncio
import logging
from pathlib import Path

from config import Config
from domain.formatting import sanitize_order_output
from domain.llm_service import LLMService
from domain.models import Mode, OrderRequest
from domain.prompts import build_prompt, detect_mode


logger = logging.getLogger(__name__)


async def generate_order(
    order: OrderRequest,
    *,
    llm: LLMService,
    timeout: float | None = None,
) -> str:
    """Append the next order line to `order.current_orders`."""
    prompt = build_prompt(order.mode, order.list_menu, order.current_orders)
    logger.info("Generating order: %r", order)
    raw = await llm.generate(prompt, timeout=timeout)
    return sanitize_order_output(raw)


def _read(path: Path | None) -> str:
    return "" if path is None else path.read_text()


async def main() -> None:
    from rich import print

    from logs import configure_logging

    parser = argparse.ArgumentParser(description="Generate the next lunch order.")
    parser.add_argument("--orders", type=Path, help="Current orders text file.")
    parser.add_argument("--menu", type=Path, help="Menu text file.")
    parser.add_argument("--mode", choices=[m.value for m in Mode])
    args = parser.parse_args()

    config = Config()
    configure_logging(config.log_level)

    list_menu, current_orders = _read(args.menu), _read(args.orders)
    mode = Mode(args.mode) if args.mode else detect_mode(list_menu, current_orders)
    order = OrderRequest(mode=mode, list_menu=list_menu, current_orders=current_orders)

    llm = LLMService.from_config(config)
    try:
        print(await generate_order(order, llm=llm, timeout=config.request_timeout))
    finally:
        await llm.close()


if __name__ == "__main__":
    asyncio.run(main())
