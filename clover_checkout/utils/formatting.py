"""Formatting helpers shared by notes, refunds and payment processing"""

import html
import re

_POSTAL_NOISE = re.compile(r"[\s\-]+")


def format_postal_code(postal_code: str | None) -> str:
    """Normalize a ZIP/postal code so "h0h 0h0" and "H0H0H0" compare equal"""
    if not postal_code:
        return ""
    return _POSTAL_NOISE.sub("", postal_code).upper()


def line_description(name: str, quantity: int) -> str:
    """Line description as it appears on the Clover receipt, e.g. "Mug x 2" """
    return f"{name} x {quantity}"


def escape(value) -> str:
    return html.escape(str(value), quote=True)
