"""
Best-effort syntax repair for generated code.

Both passes are idempotent: running repair on already repaired code changes
nothing.

Known limitation: brace counting is purely lexical. Braces inside string
literals or comments are counted too, so valid code such as
    const s = "{";
gets an extra closing brace appended.
"""

from __future__ import annotations
import logging
import re
from typing import Tuple

logger = logging.getLogger(__name__)

_UNTERMINATED_DOUBLE = re.compile(r'className="([^"\n]*?)$', re.MULTILINE)
_UNTERMINATED_SINGLE = re.compile(r"className='([^'\n]*?)$", re.MULTILINE)


def close_attribute_quotes(code: str) -> str:
    """Close className string literals left open at end of line"""
    code = _UNTERMINATED_DOUBLE.sub(r'className="\1"', code)
    return _UNTERMINATED_SINGLE.sub(r"className='\1'", code)


def balance_braces(code: str) -> Tuple[str, int]:
    """Append closing braces when '{' outnumbers '}'. Returns (code, added)."""
    missing = code.count("{") - code.count("}")
    if missing <= 0:
        return code, 0
    return code + "\n" + "\n".join("}" * missing), missing


def repair_code(code: str) -> Tuple[str, bool]:
    """
    Repair one file.

    Returns:
        (repaired_code, changed)
    """
    quoted = close_attribute_quotes(code)
    repaired, added = balance_braces(quoted)
    if added:
        logger.info(f"[Repair] Fixed {added} missing braces")
    if quoted != code:
        logger.info("[Repair] Closed unterminated className strings")
    return repaired, repaired != code


def repair(code: str) -> str:
    return repair_code(code)[0]
