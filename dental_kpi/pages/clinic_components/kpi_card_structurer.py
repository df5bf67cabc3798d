# dental_kpi/pages/clinic_components/kpi_card_structurer.py
# Structures computed clinic KPIs into keyword sets for render_web_kpi_card.

import logging
from typing import Dict, Any, List, Optional

from dental_kpi.pages.clinic_components.summary_generator import format_kpi_value

logger = logging.getLogger(__name__)

KPI_ICONS = {
    "revenue_monthly": "💶", "aligners_started": "🦷", "avg_ticket": "🧾",
    "acceptance_rate": "✅", "occupancy_rate": "🪑", "nps": "⭐",
    "integration_rate": "🔗", "attendance_rate": "📅", "follow_up_rate": "📞",
    "wait_time": "⏱️", "complaints": "⚠️", "leads": "📣",
    "revenue_per_cabinet": "🏥", "plans_presented": "📋", "referrals": "🤝",
}
# Lower is better for these; a falling value is good news
_INVERSE_KPIS = {"wait_time", "complaints"}


def structure_clinic_kpi_cards(kpis: List[Dict[str, Any]], locale: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Converts KPI dicts into render_web_kpi_card keyword arguments.

    Args:
        kpis: Output of calculate_clinic_kpis.
        locale: Display locale for currency formatting.

    Returns:
        List of dicts with title, value_str, icon, status_level, delta, delta_is_positive, help_text.
    """
    cards: List[Dict[str, Any]] = []
    for kpi in kpis or []:
        change = kpi.get("change", 0) or 0
        delta_suffix = "%" if kpi.get("unit") == "currency" else (" p.p." if kpi.get("unit") == "percent" else "")
        target = kpi.get("target")
        target_str = target if isinstance(target, str) else format_kpi_value(float(target or 0), kpi.get("unit", "number"), locale)
        cards.append({
            "title": kpi.get("name", kpi.get("id")),
            "value_str": format_kpi_value(kpi.get("value", 0), kpi.get("unit", "number"), locale),
            "icon": KPI_ICONS.get(kpi.get("id"), "●"),
            "status_level": str(kpi.get("status", "neutral")).upper(),
            "delta": f"{change:+.1f}{delta_suffix} vs mês anterior" if change else None,
            "delta_is_positive": (change < 0) if kpi.get("id") in _INVERSE_KPIS else (change > 0),
            "help_text": f"Meta: {target_str}",
        })
    logger.debug(f"(ClinicKPICardStructurer) Structured {len(cards)} KPI cards.")
    return cards
