from domain.models import Mode


ORDERER = "miftah"

ROLE = """
You are an order formatter for an Indonesian office lunch catering WhatsApp group.""".strip()

APPEND_TASK = """
Your task: Generate a WhatsApp order message that:
1. Preserves all existing orders before the user
2. Appends the user's order at the next number
3. Maintains the exact format of previous orders"""

FIRST_ORDER_TASK = """
Your task: Generate the FIRST order for a new lunch order."""

ORDER_RULES = f"""
USER: {ORDERER}
ALWAYS USE: "nasi 1" (never "nasi 1/2")
LAUK COUNT: Exactly 2-3 lauk (no more, no less)
PROTEIN REQUIREMENT: At least 1 protein dish (e.g., fillet ayam, ati ampela, dendeng sapi, udang, ikan, ceker)"""

MENU_SECTION = """
AVAILABLE MENU:
{list_menu}"""

ORDERS_SECTION = """
CURRENT ORDERS:
{current_orders}"""

NO_MENU_NOTE = f"""
NOTE: No menu provided. Choose {ORDERER}'s order from dishes that appear in existing orders above."""

APPEND_INSTRUCTION = f"""
Generate ONLY the numbered order list with {ORDERER}'s order appended. Output nothing else."""

FIRST_ORDER_INSTRUCTION = f"""
OUTPUT FORMAT: 1. {ORDERER} : nasi 1, lauk 1, lauk 2

Generate ONLY order number 1. Output nothing else."""

# The result is pasted into WhatsApp as is.
OUTPUT_RULES = """
CRITICAL OUTPUT RULES:
- Output ONLY the numbered order list - nothing else
- NO introductory text (e.g., "Here's the order", "Below is")
- NO explanatory comments, notes, or bullet points
- NO concluding remarks or explanations
- NO markdown formatting (no code blocks, no bold text)
- Start immediately with "1." for the first order
- The output must be ready to paste directly into WhatsApp without any cleanup

FORMAT REQUIREMENTS:
- Use ":" as separator between name and items (e.g., "1. miftah : nasi 1, lauk 1")
- Use "," as separator between items
- NEVER use square brackets [] around items
- Use plain text format only: 1. name : item1, item2, item3"""


def detect_mode(list_menu: str, current_orders: str) -> Mode:
    """Guess the mode from which inputs were filled in."""
    if not current_orders.strip():
        return Mode.FIRST_TOUCH
    if not list_menu.strip():
        return Mode.NITRO
    return Mode.NORMAL


def _sections(mode: Mode, list_menu: str, current_orders: str) -> list[str]:
    match mode:
        case Mode.FIRST_TOUCH:
            return [
                FIRST_ORDER_TASK,
                ORDER_RULES,
                MENU_SECTION.format(list_menu=list_menu),
                FIRST_ORDER_INSTRUCTION,
            ]
        case Mode.NITRO:
            return [
                APPEND_TASK,
                ORDER_RULES,
                ORDERS_SECTION.format(current_orders=current_orders),
                NO_MENU_NOTE,
                APPEND_INSTRUCTION,
            ]
        case Mode.NORMAL:
            menu = [MENU_SECTION.format(list_menu=list_menu)] if list_menu.strip() else []
            return [
                APPEND_TASK,
                ORDER_RULES,
                *menu,
                ORDERS_SECTION.format(current_orders=current_orders),
                APPEND_INSTRUCTION,
            ]
        case _:
            return _sections(Mode.NORMAL, list_menu, current_orders)


def build_prompt(
    mode: Mode | str | None,
    list_menu: str = "",
    current_orders: str = "",
) -> str:
    sections = _sections(Mode.parse(mode), list_menu or "", current_orders or "")
    return "\n".join([ROLE, *sections, OUTPUT_RULES])
