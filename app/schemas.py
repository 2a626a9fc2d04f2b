from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from domain.models import Mode, OrderRequest


class InvalidOrderRequest(Exception):
    pass


class GenerateOrderBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode: str | None = None
    list_menu: str | None = Field(default=None, alias="listMenu")
    current_orders: str | None = Field(default=None, alias="currentOrders")


def parse_order_request(body: Any) -> OrderRequest:
    """Raises `pydantic.ValidationError` for a body of the wrong shape and
    `InvalidOrderRequest` when the mode's required field is missing."""
    data = GenerateOrderBody.model_validate(body)

    # Unknown modes are treated as normal, current orders included.
    mode = Mode.parse(data.mode)
    current_orders = data.current_orders or ""
    if mode.needs_current_orders and not current_orders.strip():
        raise InvalidOrderRequest("Current orders is required")

    return OrderRequest(
        mode=mode,
        list_menu=data.list_menu or "",
        current_orders=current_orders,
    )
