"""
Formatting helpers for emails and messages.
Amounts use the Indian numbering system (lakh grouping).
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union


def _group_indian(integer_part: str) -> str:
    """Group digits as 12,34,567 (last three, then pairs)."""
    if len(integer_part) <= 3:
        return integer_part
    head, tail = integer_part[:-3], integer_part[-3:]
    reversed_head = head[::-1]
    groups = [reversed_head[i:i+2] for i in range(0, len(reversed_head), 2)]
    return ','.join(groups)[::-1] + ',' + tail


def money_inr(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount in rupees with exactly 2 decimals.

    Examples:
        money_inr(250) -> "₹250.00"
        money_inr(1234567.5) -> "₹12,34,567.50"
        money_inr(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    integer_part, decimal_part = f"{abs(num):.2f}".split(".")
    return f"{sign}₹{_group_indian(integer_part)}.{decimal_part}"


def date_in(value: Union[date, datetime, str, None]) -> str:
    """
    Format a date as DD/MM/YYYY. ISO strings are accepted.

    Examples:
        date_in(date(2025, 9, 11)) -> "11/09/2025"
        date_in("2025-09-11T10:30:00") -> "11/09/2025"
    """
    if value is None or value == "":
        return "-"

    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")
