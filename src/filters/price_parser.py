# src/filters/price_parser.py

"""Locale-tolerant price normalisation."""

import logging
import re

logger = logging.getLogger("listing_watch.filters")


class PriceParser:
    """Turn a locale-formatted price string into a comparable float."""

    _KEEP_RE = re.compile(r"[^\d.,]")
    _SEPARATORS = ",."

    @staticmethod
    def parse(raw: str | None) -> float | None:
        """Parse ``raw`` into a float, or ``None`` when indeterminate.

        Currency symbols, whitespace and words are discarded. When the
        residue contains separators, the rightmost one is treated as the
        decimal separator if one or two digits follow it; every other
        separator groups thousands. ``"€ 12,99"``, ``"12.99"`` and
        ``"EUR 12,99 "`` all parse to ``12.99``; ``"€ 1.299,00"`` and
        ``"1,299.00"`` both parse to ``1299.0``. A bare leading
        separator as in ``".50"`` means a zero integer part.

        Never raises.
        """
        if not raw:
            return None
        cleaned = PriceParser._KEEP_RE.sub("", str(raw))
        cleaned = cleaned.rstrip(PriceParser._SEPARATORS)
        if not any(ch.isdigit() for ch in cleaned):
            return None

        last_sep = max(cleaned.rfind(","), cleaned.rfind("."))
        if last_sep == -1:
            normalised = cleaned
        else:
            integer_part = cleaned[:last_sep]
            fraction = cleaned[last_sep + 1:]
            integer_digits = re.sub(r"[.,]", "", integer_part)
            if 1 <= len(fraction) <= 2 and fraction.isdigit():
                normalised = f"{integer_digits or '0'}.{fraction}"
            else:
                normalised = integer_digits + re.sub(r"[.,]", "", fraction)

        try:
            return float(normalised)
        except ValueError:
            logger.debug("Unparsable price %r (residue %r)", raw, normalised)
            return None

    @staticmethod
    def same_price(left: str | None, right: str | None) -> bool:
        """Return True when two raw strings normalise to the same value."""
        a = PriceParser.parse(left)
        b = PriceParser.parse(right)
        return a is not None and a == b
