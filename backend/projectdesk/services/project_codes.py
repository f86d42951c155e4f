"""
Project code sequencing — human-readable codes of the form ``YYYY-NNN``.

The sequence restarts every calendar year. Numbering is a pure read-then-
compute over a snapshot of existing codes with no reservation step, so two
callers working from the same snapshot receive the same code. Uniqueness is
enforced by the ``uq_projects_code`` constraint in the database; callers
retry with a fresh snapshot on conflict (see ProjectService.create_project).
"""
import re
from typing import Iterable, Optional

CODE_WIDTH = 3

# Lenient integer parse of the suffix: optional whitespace and sign, then digits.
# Anything after the digits is ignored ("012b" -> 12).
_SUFFIX_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_suffix(suffix: str) -> Optional[int]:
    match = _SUFFIX_INT.match(suffix)
    if not match:
        return None
    return int(match.group(1))


def code_prefix(year: int) -> str:
    return f"{int(year)}-"


def format_project_code(year: int, sequence: int) -> str:
    """Zero-pad to at least three digits; longer sequences are kept whole."""
    return f"{code_prefix(year)}{sequence:0{CODE_WIDTH}d}"


def next_project_code(year: int, existing_codes: Iterable[Optional[str]]) -> str:
    """
    Next free code for *year* given every code already issued.

    Only codes starting with exactly ``"{year}-"`` are considered; codes with
    an unparseable suffix are skipped. Never fails: an empty snapshot yields
    ``"{year}-001"``.
    """
    prefix = code_prefix(year)
    highest = 0
    for code in existing_codes:
        text = "" if code is None else str(code)
        if not text.startswith(prefix):
            continue
        parsed = _parse_suffix(text[len(prefix):])
        if parsed is not None and parsed > highest:
            highest = parsed
    return format_project_code(year, highest + 1)


def first_project_code(year: int) -> str:
    """Fallback when the existing codes cannot be read at all."""
    return format_project_code(year, 1)
