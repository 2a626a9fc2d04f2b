def sanitize_order_output(text: str) -> str:
    """Clean model output so it can be pasted straight into the group.

    Square brackets are dropped and the ` - ` separator some models use is
    swapped for ` : `. Anything else passes through untouched.
    """
    text = text.replace("[", "").replace("]", "")
    # " - - " overlaps, one pass leaves " : - ".
    while " - " in text:
        text = text.replace(" - ", " : ")
    return text
