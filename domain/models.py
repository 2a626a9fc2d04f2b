from enum import Enum


class Mode(Enum):
    NORMAL = "normal"
    NITRO = "nitro"
    FIRST_TOUCH = "first-touch"

    @classmethod
    def parse(cls, value: "str | Mode | None") -> "Mode":
        """Unknown or missing modes fall back to normal."""
        if isinstance(value, Mode):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NORMAL

    @property
    def needs_current_orders(self) -> bool:
        return self is not Mode.FIRST_TOUCH


class OrderRequest:
    def __init__(
        self,
        *,
        mode: Mode = Mode.NORMAL,
        list_menu: str = "",
        current_orders: str = "",
    ) -> None:
        self.mode = mode
        self.list_menu = list_menu
        self.current_orders = current_orders

    def __repr__(self) -> str:
        return (
            f"<OrderRequest(mode={self.mode.value}, "
            f"menu={len(self.list_menu)} chars, "
            f"orders={len(self.current_orders)} chars)>"
        )
