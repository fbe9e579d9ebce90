"""
Number formatting for printed amounts.

- format_amount: whole-unit rounding with space-grouped thousands
- number_to_french: amount in words (0 .. 999 999 999 999)
- format_phone_local: local phone number grouped by pairs
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float, str, Decimal, None]

_UNITS = ["zéro", "un", "deux", "trois", "quatre", "cinq", "six", "sept", "huit", "neuf"]
_TEENS = ["dix", "onze", "douze", "treize", "quatorze", "quinze", "seize",
          "dix-sept", "dix-huit", "dix-neuf"]
_TENS = ["", "", "vingt", "trente", "quarante", "cinquante", "soixante"]

MAX_SPELLED = 999_999_999_999


def _to_decimal(value: Number) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip().replace(" ", "").replace(",", "."))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def round_amount(value: Number) -> int:
    """Round to the nearest whole currency unit (half up). Invalid or negative input gives 0."""
    amount = _to_decimal(value)
    if amount is None or amount < 0:
        return 0
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_amount(value: Number) -> str:
    """
    Format an amount for display.

    Examples:
        >>> format_amount(1234567)
        '1 234 567'
        >>> format_amount(float('nan'))
        '0'
    """
    return f"{round_amount(value):,}".replace(",", " ")


def _under_100(n: int) -> str:
    if n < 10:
        return _UNITS[n]
    if n < 20:
        return _TEENS[n - 10]

    tens, unit = divmod(n, 10)
    if tens <= 6:
        base = _TENS[tens]
        if unit == 0:
            return base
        if unit == 1:
            return f"{base} et un"
        return f"{base}-{_UNITS[unit]}"
    if tens == 7:
        # 70..79 = soixante + 10..19
        if n == 71:
            return "soixante et onze"
        return f"soixante-{_TEENS[unit]}"
    if tens == 8:
        if unit == 0:
            return "quatre-vingts"
        return f"quatre-vingt-{_UNITS[unit]}"
    return f"quatre-vingt-{_TEENS[unit]}"


def _under_1000(n: int, final: bool = True) -> str:
    hundreds, rest = divmod(n, 100)
    parts = []
    if hundreds:
        word = "cent" if hundreds == 1 else f"{_UNITS[hundreds]} cent"
        # "deux cents" only when nothing follows
        if rest == 0 and hundreds > 1 and final:
            word += "s"
        parts.append(word)
    if rest:
        word = _under_100(rest)
        if not final and word.endswith("quatre-vingts"):
            word = word[:-1]
        parts.append(word)
    return " ".join(parts)


def number_to_french(value: Number) -> str:
    """
    Spell an amount in French words.

    Decimals are truncated, "mille" is invariable and "quatre-vingts" /
    "cents" only take the plural mark when nothing follows them. Amounts
    beyond MAX_SPELLED give an empty string.
    """
    amount = _to_decimal(value)
    if amount is None:
        return ""
    n = int(amount)
    if abs(n) > MAX_SPELLED:
        return ""
    if n == 0:
        return "zéro"
    if n < 0:
        return f"moins {number_to_french(-n)}"

    billions, rest = divmod(n, 1_000_000_000)
    millions, rest = divmod(rest, 1_000_000)
    thousands, units = divmod(rest, 1_000)

    parts = []
    if billions:
        if billions == 1:
            parts.append("un milliard")
        else:
            parts.append(f"{_under_1000(billions)} milliards")
    if millions:
        if millions == 1:
            parts.append("un million")
        else:
            parts.append(f"{_under_1000(millions)} millions")
    if thousands:
        if thousands == 1:
            parts.append("mille")
        else:
            parts.append(f"{_under_1000(thousands, final=False)} mille")
    if units:
        parts.append(_under_1000(units))

    return re.sub(r"\s+", " ", " ".join(parts)).strip()


def format_phone_local(number: str) -> str:
    """Group the digits of a local number by two ("79239027" -> "79 23 90 27")."""
    digits = re.sub(r"\D", "", number or "")
    if len(digits) % 2:
        return digits
    return " ".join(digits[i:i + 2] for i in range(0, len(digits), 2))
