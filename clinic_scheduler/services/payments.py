"""Price parsing and the paid/unpaid flag carried by appointments."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from clinic_scheduler.services.errors import ValidationFailed

MAX_MONEY_CENTS = 1_000_000_000
_MONEY_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]{1,2})?)\s*$")


class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"


def parse_payment_status(value: Any, default: PaymentStatus | None = PaymentStatus.UNPAID) -> PaymentStatus:
    if value in (None, ""):
        if default is None:
            raise ValidationFailed("payment_status_required", "payment_status")
        return default
    try:
        return PaymentStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationFailed("payment_status_invalid", "payment_status") from exc


def parse_money_to_cents(value: Any, field_name: str = "price") -> int:
    """Accept ``12``, ``12.5`` or ``"1,200.00"`` and return integer cents."""

    if isinstance(value, bool):
        raise ValidationFailed(f"{field_name}_invalid", field_name)
    if isinstance(value, int):
        cents = value * 100
    else:
        txt = str(value if value is not None else "").strip().replace(",", "")
        m = _MONEY_RE.match(txt)
        if not m:
            raise ValidationFailed(f"{field_name}_invalid", field_name)
        cents = int(round(float(m.group(1)) * 100))
    return cents_guard(cents, field_name)


def cents_guard(value_cents: Any, field_name: str = "price_cents") -> int:
    try:
        cents = int(value_cents)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(f"{field_name}_invalid", field_name) from exc
    if isinstance(value_cents, bool) or cents < 0:
        raise ValidationFailed(f"{field_name}_negative", field_name)
    if cents > MAX_MONEY_CENTS:
        raise ValidationFailed(f"{field_name}_too_large", field_name)
    return cents


def price_from_payload(payload: dict[str, Any]) -> int | None:
    """``price_cents`` wins over a decimal ``price``; None when neither is sent."""

    if payload.get("price_cents") not in (None, ""):
        return cents_guard(payload["price_cents"], "price_cents")
    if payload.get("price") not in (None, ""):
        return parse_money_to_cents(payload["price"], "price")
    return None


def money(cents: int) -> str:
    return f"{(cents or 0) / 100:.2f}"
