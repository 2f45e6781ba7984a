"""Utility helpers shared across DB Explorer.

Classes:
    ValidationUtils: Input validation helpers
    FormatUtils: Text formatting for human-readable reports

Functions:
    safe_cast: Convert a value, falling back to a default
    safe_ratio: Division guarded against zero and non-numeric input
    coalesce: First non-None value
"""

import math
import re
from typing import Any, List, Optional, Sequence, TypeVar, Union

T = TypeVar("T")


class ValidationUtils:
    """Collection of validation utility functions."""

    IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]{0,127}$")

    @classmethod
    def validate_identifier(cls, identifier: str, *, allow_empty: bool = False) -> bool:
        """Validate a record identifier usable as a file name.

        Args:
            identifier: Identifier to validate
            allow_empty: Whether empty strings are valid

        Returns:
            True if identifier is valid

        Example:
            >>> ValidationUtils.validate_identifier("3f9a0c1e")
            True
            >>> ValidationUtils.validate_identifier("../etc/passwd")
            False
        """
        if not identifier:
            return allow_empty
        return bool(cls.IDENTIFIER_PATTERN.match(identifier))


class FormatUtils:
    """Formatting helpers for diagnostic text output."""

    @staticmethod
    def format_cell(value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, float):
            return f"{value:g}"
        return str(value).replace("\n", " ")

    @classmethod
    def render_table(
        cls,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        max_width: int = 60,
    ) -> str:
        """Render rows as a boxed plain-text table.

        Args:
            columns: Header labels
            rows: Row values in column order
            max_width: Cells wider than this are truncated

        Returns:
            Multi-line table string

        Example:
            >>> print(FormatUtils.render_table(["id", "detail"], [[2, "SCAN users"]]))
            +----+------------+
            | id | detail     |
            +----+------------+
            | 2  | SCAN users |
            +----+------------+
        """
        header = [cls.truncate(str(c), max_width) for c in columns]
        body = [
            [cls.truncate(cls.format_cell(v), max_width) for v in row]
            for row in rows
        ]
        widths = [len(h) for h in header]
        for row in body:
            for i, cell in enumerate(row[: len(widths)]):
                widths[i] = max(widths[i], len(cell))

        separator = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

        def line(cells: Sequence[str]) -> str:
            padded = list(cells) + [""] * (len(widths) - len(cells))
            return "| " + " | ".join(c.ljust(w) for c, w in zip(padded, widths)) + " |"

        out = [separator, line(header), separator]
        out.extend(line(row) for row in body)
        out.append(separator)
        return "\n".join(out)

    @staticmethod
    def truncate(text: str, max_length: int, *, suffix: str = "...") -> str:
        if len(text) <= max_length:
            return text
        return text[: max(0, max_length - len(suffix))] + suffix

    @staticmethod
    def bytes_to_gb(size_bytes: Union[int, float], *, decimal_places: int = 2) -> float:
        return round(float(size_bytes) / (1024 ** 3), decimal_places)


def safe_cast(value: Any, target_type: type, *, default: Any = None) -> Any:
    """Cast value to target_type, returning default when conversion fails."""
    if value is None:
        return default
    try:
        result = target_type(value)
    except (TypeError, ValueError, ArithmeticError):
        return default
    if isinstance(result, float) and not math.isfinite(result):
        return default
    return result


def safe_ratio(numerator: Any, denominator: Any, *, scale: float = 1.0, default: float = 0) -> float:
    """Divide two numbers, returning default for zero, missing or non-finite input.

    Example:
        >>> safe_ratio(1200, 0)
        0
        >>> safe_ratio(95, 100, scale=100)
        95.0
    """
    num = safe_cast(numerator, float)
    den = safe_cast(denominator, float)
    if num is None or not den:
        return default
    result = num / den * scale
    return result if math.isfinite(result) else default


def coalesce(*values: Optional[T]) -> Optional[T]:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def dedupe_names(names: Sequence[str]) -> List[str]:
    """Make column labels unique while keeping their order.

    Example:
        >>> dedupe_names(["id", "name", "id"])
        ['id', 'name', 'id_1']
    """
    seen = set()
    result = []
    for name in names:
        label = name if name else "column"
        candidate = label
        suffix = 1
        while candidate in seen:
            candidate = f"{label}_{suffix}"
            suffix += 1
        seen.add(candidate)
        result.append(candidate)
    return result
