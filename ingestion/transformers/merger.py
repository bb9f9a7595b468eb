"""
Merge provider results into one set of update fields with explicit precedence
"""

import math
from typing import Any, Dict, Iterable, Optional
from schemas.queue import ProviderResult
from ingestion.transformers.field_mapping import LOGICAL_FIELDS, ZERO_VALID_FIELDS
import logging

logger = logging.getLogger(__name__)


def is_usable(value: Any, allow_zero: bool = False) -> bool:
    """
    Null, NaN and infinity never count as supplied. Zero counts only when
    allow_zero is set; upstream APIs report 0 for prices they do not have.
    """
    if value is None:
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return allow_zero or value != 0
    return True


def merge_fields(results: Iterable[ProviderResult]) -> Dict[str, Any]:
    """
    Coalesce fields across providers in priority order.

    For each logical field the first successful provider with a usable
    value wins; later providers only fill fields still missing.

    Args:
        results: Provider results, highest priority first

    Returns:
        Dictionary of logical field -> value, containing only usable values
    """
    merged: Dict[str, Any] = {}

    for result in results:
        if not result.ok:
            continue
        for name, value in result.fields.items():
            if name not in LOGICAL_FIELDS:
                logger.debug(f"{result.provider}: ignoring unknown field {name}")
                continue
            if name in merged or not is_usable(value, allow_zero=name in ZERO_VALID_FIELDS):
                continue
            merged[name] = value

    return merged


def parse_float(value: Any) -> Optional[float]:
    """Safely parse float value"""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> Optional[int]:
    """Safely parse int value"""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(float(value))  # Handle "10.0" strings
    except (ValueError, TypeError, OverflowError):
        return None
