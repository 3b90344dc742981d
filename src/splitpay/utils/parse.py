from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from splitpay.models import CENT


CURRENCY_SYMBOLS = "€$£"

_AMOUNT_RE = re.compile(r"^\d+(\.\d{1,2})?$")


def parse_amount(text: str) -> Decimal:
    """
    Parse a user-typed money amount into a positive two-decimal Decimal.

    Accepted forms:
    - 12
    - 12.5 / 12.50
    - 12,50
    - €12.50, $ 12.50
    """
    value = text.strip().lstrip(CURRENCY_SYMBOLS).strip().replace(",", ".")
    if not value:
        raise ValueError("Amount is empty")

    if not _AMOUNT_RE.match(value):
        raise ValueError(f"Invalid amount: {text!r}")

    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {text!r}") from exc

    if amount <= 0:
        raise ValueError("Amount must be positive")

    return amount.quantize(CENT)
