# dental_kpi/utils/monthly_patchers.py
# Incremental monthly summary patches applied after a single daily entry is created or deleted.

import logging
from typing import Dict, Any, List

from dental_kpi.utils.core_data_processing import (
    apply_contribution, entry_contribution, entry_period,
    find_monthly_summary, normalize_clinic_configuration
)

logger = logging.getLogger(__name__)

PATCH_CREATE = 1
PATCH_DELETE = -1


def patch_monthly_summary(
    summaries: List[Dict[str, Any]],
    clinic: Dict[str, Any],
    category: str,
    entry: Dict[str, Any],
    sign: int
) -> bool:
    """
    Applies one entry's contribution to the stored summary of its month.

    Uses the same contribution rules as the full aggregation pass. Deletes
    (sign=-1) floor every touched value at zero.

    If no summary exists yet for the entry's month the patch does nothing and
    returns False: the value shows up after the next full reload, which builds
    the bucket from the complete entry list.

    Args:
        summaries: The clinic's stored monthly summaries (patched in place).
        clinic: Clinic record, used for category, cabinet, source and campaign lookups.
        category: Daily entry category.
        entry: The created or deleted entry.
        sign: PATCH_CREATE or PATCH_DELETE.

    Returns:
        True if a summary was patched.
    """
    module_log_prefix = "MonthlyPatcher"
    if sign not in (PATCH_CREATE, PATCH_DELETE):
        raise ValueError(f"Patch sign must be {PATCH_CREATE} or {PATCH_DELETE}, got {sign}")

    period = entry_period(entry)
    if period is None:
        logger.warning(f"({module_log_prefix}) Entry {entry.get('id')} has an unparseable date {entry.get('date')!r}; not patched.")
        return False
    year, month = period
    summary = find_monthly_summary(summaries, month, year)
    if summary is None:
        logger.debug(f"({module_log_prefix}) No summary for clinic {clinic.get('id')} {month:02d}/{year}; "
                     f"'{category}' entry {entry.get('id')} will appear after the next reload.")
        return False

    configuration = normalize_clinic_configuration(clinic.get('configuration'), source_context=module_log_prefix)
    delta = entry_contribution(category, entry, configuration)
    if not delta:
        return False
    apply_contribution(summary, delta, sign=sign)
    return True


def patch_entry_replaced(
    summaries: List[Dict[str, Any]],
    clinic: Dict[str, Any],
    category: str,
    old_entry: Dict[str, Any],
    new_entry: Dict[str, Any]
) -> None:
    """An edit is the old entry's removal followed by the new entry's creation."""
    patch_monthly_summary(summaries, clinic, category, old_entry, PATCH_DELETE)
    patch_monthly_summary(summaries, clinic, category, new_entry, PATCH_CREATE)
