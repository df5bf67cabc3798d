# dental_kpi/pages/clinic_components/alert_generator.py
# Evaluates the monthly alert rules for a clinic summary against its targets.

import logging
from typing import List, Dict, Any, Optional

from dental_kpi.config import app_config
from dental_kpi.pages.clinic_components.kpi_calculator import (
    acceptance_rate_from_summary, occupancy_rate_from_summary
)
from dental_kpi.pages.clinic_components.summary_generator import format_kpi_value

logger = logging.getLogger(__name__)


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _alert(alert_id: str, rule: str, message: str, severity: str) -> Dict[str, Any]:
    return {"id": alert_id, "rule": rule, "message": message, "severity": severity}


def calculate_clinic_alerts(
    summary: Optional[Dict[str, Any]],
    targets: Dict[str, Any]
) -> List[Dict[str, Any]]:
    """
    Runs the fixed, ordered alert rule list against one monthly summary.

    Every rule is independent and adds at most one alert; the output keeps rule order.

    Args:
        summary: Monthly summary of the reporting month.
        targets: Resolved monthly targets.

    Returns:
        List of alert dicts {id, rule, message, severity}.
    """
    module_log_prefix = "ClinicAlertGenerator"
    if not summary:
        logger.info(f"({module_log_prefix}) No monthly summary available; no alerts evaluated.")
        return []
    targets = targets or {}
    warning = app_config.ALERT_SEVERITY_WARNING
    destructive = app_config.ALERT_SEVERITY_DESTRUCTIVE
    alerts: List[Dict[str, Any]] = []

    # Rule 1: revenue below 90% of target
    revenue = _num(summary.get('revenue_total'))
    target_revenue = _num(targets.get('target_revenue'))
    if target_revenue > 0 and revenue < target_revenue * app_config.ALERT_REVENUE_MIN_RATIO:
        achieved_pct = revenue / target_revenue * 100
        alerts.append(_alert(
            "billing", "Faturação",
            f"Faturação em {achieved_pct:.0f}% da meta ({format_kpi_value(revenue, 'currency')} de {format_kpi_value(target_revenue, 'currency')}).",
            destructive
        ))

    # Rule 2: aligners started below range minimum
    aligners = _num(summary.get('aligners_started'))
    aligners_min = _num((targets.get('target_aligners_range') or {}).get('min'))
    if aligners < aligners_min:
        alerts.append(_alert(
            "aligners", "Alinhadores",
            f"Alinhadores iniciados ({aligners:.0f}) abaixo do mínimo de {aligners_min:.0f}.",
            destructive
        ))

    # Rule 3: acceptance rate more than 10 points below target
    acceptance = acceptance_rate_from_summary(summary)
    target_acceptance = _num(targets.get('target_acceptance_rate'))
    if acceptance < target_acceptance - app_config.ALERT_ACCEPTANCE_POINTS_BELOW:
        alerts.append(_alert(
            "acceptance_rate", "Taxa de Aceitação",
            f"Taxa de aceitação de {acceptance:.1f}% face à meta de {target_acceptance:.0f}%.",
            warning
        ))

    # Rule 4: leads below range minimum
    leads = _num(summary.get('leads'))
    leads_min = _num((targets.get('target_leads_range') or {}).get('min'))
    if leads < leads_min:
        alerts.append(_alert(
            "leads", "Leads",
            f"Leads ({leads:.0f}) abaixo do mínimo de {leads_min:.0f}.",
            warning
        ))

    # Rule 5: occupancy more than 15 points below target
    occupancy = occupancy_rate_from_summary(summary)
    target_occupancy = _num(targets.get('target_occupancy_rate'))
    if occupancy < target_occupancy - app_config.ALERT_OCCUPANCY_POINTS_BELOW:
        alerts.append(_alert(
            "occupancy", "Taxa de Ocupação",
            f"Ocupação dos gabinetes de {occupancy:.1f}% face à meta de {target_occupancy:.0f}%.",
            warning
        ))

    # Rule 6: NPS more than 10 points below target
    nps = _num(summary.get('nps'))
    target_nps = _num(targets.get('target_nps'))
    if nps < target_nps - app_config.ALERT_NPS_POINTS_BELOW:
        alerts.append(_alert(
            "nps", "NPS",
            f"NPS de {nps:.0f} face à meta de {target_nps:.0f}.",
            warning
        ))

    # Rule 7: average wait more than 5 minutes above target
    wait_time = _num(summary.get('avg_wait_time'))
    target_wait = _num(targets.get('target_wait_time'))
    if wait_time > target_wait + app_config.ALERT_WAIT_TIME_MINUTES_ABOVE:
        alerts.append(_alert(
            "wait_time", "Tempo de Espera",
            f"Tempo médio de espera de {wait_time:.1f} min face à meta de {target_wait:.0f} min.",
            warning
        ))

    # Rule 8: complaints above cap
    complaints = _num(summary.get('complaints'))
    complaints_cap = _num(targets.get('target_complaints'))
    if complaints > complaints_cap:
        alerts.append(_alert(
            "complaints", "Reclamações",
            f"{complaints:.0f} reclamações registadas (máximo {complaints_cap:.0f}).",
            destructive
        ))

    logger.info(f"({module_log_prefix}) {len(alerts)} alerts for {summary.get('clinic_id')} "
                f"{summary.get('month')}/{summary.get('year')}.")
    return alerts
