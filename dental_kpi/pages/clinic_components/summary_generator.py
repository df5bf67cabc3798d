# dental_kpi/pages/clinic_components/summary_generator.py
# Builds the monthly meeting summary (strengths, critical points, actions) from KPIs and alerts.

import logging
from typing import List, Dict, Any, Optional

from dental_kpi.config import app_config

logger = logging.getLogger(__name__)

ALERT_ACTION_MAP = {
    "acceptance_rate": "Agendar treino de apresentação de planos e objeções com a equipa.",
    "leads": "Rever campanhas digitais e programar ações de recomendação de pacientes satisfeitos.",
    "billing": "Rever estratégia comercial e volume de primeiras consultas.",
    "ticket": "Analisar mix de tratamentos e tabela de preços.",
    "occupancy": "Otimizar agenda e confirmar presenças para reduzir ociosidade.",
    "nps": "Realizar inquérito de satisfação detalhado e contactar detratores.",
    "complaints": "Gerir reclamações pendentes e dar formação à equipa em atendimento.",
    "aligners": "Focar em campanhas de alinhadores e formação clínica.",
    "wait_time": "Rever marcações e pontualidade para reduzir atrasos.",
}


def _format_number(value: float, decimals: int) -> str:
    # pt formatting: '.' for thousands, ',' for decimals
    formatted = f"{value:,.{decimals}f}"
    return formatted.replace(",", "\x00").replace(".", ",").replace("\x00", ".")


def format_kpi_value(value: float, unit: str, locale: Optional[str] = None) -> str:
    locale = locale or app_config.DEFAULT_LOCALE
    if unit == "currency":
        symbol = app_config.CURRENCY_BY_LOCALE.get(locale, "€")
        return f"{_format_number(value, 0)} {symbol}" if locale == "pt-PT" else f"{symbol} {_format_number(value, 0)}"
    if unit == "percent":
        return f"{value:.1f}%"
    if unit == "ratio":
        return f"{value:.2f}x"
    if unit == "time":
        return f"{value:g} min"
    return _format_number(value, 0) if float(value).is_integer() else _format_number(value, 1)


def _format_change(change: float) -> str:
    return f"+{change:.1f}%" if change > 0 else f"{change:.1f}%"


def generate_meeting_summary(
    clinic_name: str,
    month: int,
    year: int,
    kpis: List[Dict[str, Any]],
    alerts: List[Dict[str, Any]],
    locale: Optional[str] = None
) -> Dict[str, Any]:
    """
    Summarizes a month for the clinic management meeting.

    Strengths are the best-moving success KPIs, critical points the worst-moving
    danger KPIs, and actions come from the first alerts.

    Returns:
        Dict with 'strengths', 'critical_points', 'actions' and a plain-text 'full_text'.
    """
    top_n = getattr(app_config, 'SUMMARY_TOP_N', 3)

    def _item(kpi: Dict[str, Any]) -> Dict[str, Any]:
        return {"name": kpi["name"], "value": format_kpi_value(kpi["value"], kpi["unit"], locale), "change": kpi["change"]}

    strengths = [_item(k) for k in sorted(
        (k for k in kpis if k.get("status") == app_config.KPI_STATUS_SUCCESS),
        key=lambda k: k.get("change", 0), reverse=True)[:top_n]]
    critical_points = [_item(k) for k in sorted(
        (k for k in kpis if k.get("status") == app_config.KPI_STATUS_DANGER),
        key=lambda k: k.get("change", 0))[:top_n]]
    actions = [
        ALERT_ACTION_MAP.get(alert.get("id"), f"Analisar {alert.get('rule')} e traçar plano de correção.")
        for alert in alerts[:top_n]
    ]

    month_name = app_config.MONTH_NAMES[month - 1] if 1 <= month <= 12 else str(month)
    lines = [f"📋 *Resumo de Performance - {clinic_name}*", f"📅 {month_name} {year}", "", "✅ *Pontos Fortes*"]
    if strengths:
        lines.extend(f"• {s['name']}: {s['value']} ({_format_change(s['change'])} vs mês ant.)" for s in strengths)
    else:
        lines.append("• Nenhum ponto forte destacado este mês.")
    lines.extend(["", "⚠️ *Pontos Críticos*"])
    if critical_points:
        lines.extend(f"• {c['name']}: {c['value']} ({_format_change(c['change'])} vs mês ant.)" for c in critical_points)
    else:
        lines.append("• Nenhum ponto crítico destacado este mês.")
    lines.extend(["", "🚀 *Ações Recomendadas*"])
    if actions:
        lines.extend(f"• {a}" for a in actions)
    else:
        lines.append("• Manter monitorização dos indicadores.")

    logger.debug(f"(MeetingSummary) {clinic_name} {month_name} {year}: {len(strengths)} strengths, "
                 f"{len(critical_points)} critical points, {len(actions)} actions")
    return {
        "strengths": strengths,
        "critical_points": critical_points,
        "actions": actions,
        "full_text": "\n".join(lines) + "\n",
    }
