# dental_kpi/pages/clinic_components/kpi_calculator.py
# Derives the monthly clinic KPIs (value, change vs previous month, status vs target).

import logging
from typing import Dict, Any, List, Optional

from dental_kpi.config import app_config

logger = logging.getLogger(__name__)

STATUS_SUCCESS = app_config.KPI_STATUS_SUCCESS
STATUS_WARNING = app_config.KPI_STATUS_WARNING
STATUS_DANGER = app_config.KPI_STATUS_DANGER


# --- Status Rules ---
def get_ratio_status(value: float, target: float, inverse: bool = False) -> str:
    """
    Ratio-to-target rule. Inverse metrics (lower is better) have no warning tier.
    A non-positive target gives ratio 0, never a division error.
    """
    if inverse:
        return STATUS_SUCCESS if value <= target else STATUS_DANGER
    ratio = value / target if target > 0 else 0
    if ratio >= 1:
        return STATUS_SUCCESS
    if ratio >= getattr(app_config, 'KPI_WARNING_RATIO', 0.9):
        return STATUS_WARNING
    return STATUS_DANGER


def get_range_status(value: float, range_min: float, range_max: float) -> str:
    if range_min <= value <= range_max:
        return STATUS_SUCCESS
    if value >= range_min * getattr(app_config, 'KPI_RANGE_WARNING_FACTOR', 0.9):
        return STATUS_WARNING
    return STATUS_DANGER


def get_points_status(value: float, target: float, tolerance_points: float) -> str:
    """Percent metrics judged by distance to target in points; danger exactly when the matching alert fires."""
    if value >= target:
        return STATUS_SUCCESS
    if value >= target - tolerance_points:
        return STATUS_WARNING
    return STATUS_DANGER


def calculate_change(current: float, previous: Optional[float], relative: bool = True) -> float:
    """Percentage change (relative) or plain difference; 0 without a previous value to compare against."""
    if previous is None:
        return 0.0
    if relative:
        return round((current - previous) / previous * 100, 1) if previous else 0.0
    return round(current - previous, 1)


# --- Value Helpers ---
def _num(summary: Optional[Dict[str, Any]], field: str) -> float:
    if not summary:
        return 0.0
    try:
        return float(summary.get(field) or 0)
    except (TypeError, ValueError):
        return 0.0


def _safe_pct(numerator: float, denominator: float) -> float:
    return round(numerator / denominator * 100, 1) if denominator > 0 else 0.0


def _range_bounds(target: Any) -> tuple:
    target = target if isinstance(target, dict) else {}
    return float(target.get('min', 0) or 0), float(target.get('max', 0) or 0)


def acceptance_rate_from_summary(s: Dict[str, Any]) -> float:
    return _safe_pct(_num(s, 'plans_accepted'), _num(s, 'plans_presented_adults') + _num(s, 'plans_presented_kids'))


def occupancy_rate_from_summary(s: Dict[str, Any]) -> float:
    cabinets = s.get('cabinets') or []
    occupied = sum(float(c.get('hours_occupied') or 0) for c in cabinets)
    available = sum(float(c.get('hours_available') or 0) for c in cabinets)
    return _safe_pct(occupied, available)


def _avg_ticket(s: Dict[str, Any]) -> float:
    accepted = _num(s, 'plans_accepted')
    return round(_num(s, 'revenue_accepted_plans') / accepted, 2) if accepted > 0 else 0.0


def _revenue_per_cabinet(s: Dict[str, Any]) -> float:
    cabinet_count = len(s.get('cabinets') or [])
    return round(_num(s, 'revenue_total') / cabinet_count, 2) if cabinet_count > 0 else 0.0


# id, display name, unit, value function
_KPI_VALUE_FUNCTIONS: List[tuple] = [
    ("revenue_monthly", "Faturação Mensal", "currency", lambda s: round(_num(s, 'revenue_total'), 2)),
    ("aligners_started", "Alinhadores Iniciados", "number", lambda s: _num(s, 'aligners_started')),
    ("avg_ticket", "Ticket Médio", "currency", _avg_ticket),
    ("acceptance_rate", "Taxa de Aceitação", "percent", acceptance_rate_from_summary),
    ("occupancy_rate", "Taxa de Ocupação", "percent", occupancy_rate_from_summary),
    ("nps", "NPS", "number", lambda s: _num(s, 'nps')),
    ("integration_rate", "Taxa de Integração", "percent",
     lambda s: _safe_pct(_num(s, 'appointments_integrated'), _num(s, 'appointments_total'))),
    ("attendance_rate", "Taxa de Comparência", "percent",
     lambda s: _safe_pct(_num(s, 'first_consultations_attended'), _num(s, 'first_consultations_scheduled'))),
    ("follow_up_rate", "Taxa de Follow-up", "percent",
     lambda s: _safe_pct(_num(s, 'plans_not_accepted_follow_up'), _num(s, 'plans_not_accepted'))),
    ("wait_time", "Tempo Médio de Espera", "time", lambda s: round(_num(s, 'avg_wait_time'), 1)),
    ("complaints", "Reclamações", "number", lambda s: _num(s, 'complaints')),
    ("leads", "Leads", "number", lambda s: _num(s, 'leads')),
    ("revenue_per_cabinet", "Faturação por Gabinete", "currency", _revenue_per_cabinet),
    ("plans_presented", "Planos Apresentados", "number",
     lambda s: _num(s, 'plans_presented_adults') + _num(s, 'plans_presented_kids')),
    ("referrals", "Recomendações Espontâneas", "number", lambda s: _num(s, 'referrals_spontaneous')),
]


def _status_and_target(kpi_id: str, value: float, targets: Dict[str, Any], current: Dict[str, Any]) -> tuple:
    tolerances = getattr(app_config, 'KPI_POINTS_TOLERANCE', {})
    if kpi_id in ("aligners_started", "leads"):
        range_min, range_max = _range_bounds(targets.get(f"target_{kpi_id.split('_')[0]}_range"))
        return get_range_status(value, range_min, range_max), f"{range_min:g}-{range_max:g}"
    if kpi_id in tolerances:
        target = float(targets.get(f"target_{kpi_id}", 0) or 0)
        return get_points_status(value, target, tolerances[kpi_id]), target
    if kpi_id in ("wait_time", "complaints"):
        target = float(targets.get(f"target_{kpi_id}", 0) or 0)
        return get_ratio_status(value, target, inverse=True), target
    if kpi_id == "revenue_monthly":
        target = float(targets.get('target_revenue', 0) or 0)
    elif kpi_id == "plans_presented":
        plans_target = targets.get('target_plans_presented') or {}
        target = float(plans_target.get('adults', 0) or 0) + float(plans_target.get('kids', 0) or 0)
    elif kpi_id == "referrals":
        # Compared against the clinic's own referral baseline for the month
        target = _num(current, 'referrals_base_2025')
    else:
        target = float(targets.get(f"target_{kpi_id}", 0) or 0)
    return get_ratio_status(value, target), target


def calculate_clinic_kpis(
    current_summary: Optional[Dict[str, Any]],
    previous_summary: Optional[Dict[str, Any]],
    targets: Dict[str, Any]
) -> List[Dict[str, Any]]:
    """
    Computes the monthly KPI list for one clinic.

    Args:
        current_summary: Monthly summary of the reporting month.
        previous_summary: Monthly summary of the month before, if any.
        targets: Resolved monthly targets (see ClinicDataService.get_targets).

    Returns:
        List of KPI dicts {id, name, value, unit, change, status, target};
        empty when there is no summary for the month.
    """
    module_log_prefix = "ClinicKPICalculator"
    if not current_summary:
        logger.info(f"({module_log_prefix}) No monthly summary available; no KPIs computed.")
        return []
    targets = targets or {}

    kpis: List[Dict[str, Any]] = []
    for kpi_id, name, unit, value_fn in _KPI_VALUE_FUNCTIONS:
        value = value_fn(current_summary)
        previous_value = value_fn(previous_summary) if previous_summary else None
        status, target = _status_and_target(kpi_id, value, targets, current_summary)
        kpis.append({
            "id": kpi_id, "name": name, "value": value, "unit": unit,
            # currency moves are relative; rates, counts and minutes move in points/units
            "change": calculate_change(value, previous_value, relative=(unit == "currency")),
            "status": status, "target": target,
        })
    logger.info(f"({module_log_prefix}) Computed {len(kpis)} KPIs for {current_summary.get('clinic_id')} "
                f"{current_summary.get('month')}/{current_summary.get('year')}.")
    return kpis
