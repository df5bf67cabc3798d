# dental_kpi/tests/test_summary_generator.py
# Pytest tests for meeting summaries and KPI value formatting.

from dental_kpi.pages.clinic_components.summary_generator import (
    format_kpi_value, generate_meeting_summary, ALERT_ACTION_MAP
)
from dental_kpi.pages.clinic_components.kpi_card_structurer import structure_clinic_kpi_cards


def _kpi(kpi_id, status, change, value=10, unit="number"):
    return {"id": kpi_id, "name": kpi_id.title(), "value": value, "unit": unit,
            "change": change, "status": status, "target": 10}


def test_format_kpi_value_by_unit():
    assert format_kpi_value(8000, "currency", "pt-PT") == "8.000 €"
    assert format_kpi_value(1234567.8, "currency", "pt-BR") == "R$ 1.234.568"
    assert format_kpi_value(70, "percent") == "70.0%"
    assert format_kpi_value(12.5, "time") == "12.5 min"
    assert format_kpi_value(1500, "number") == "1.500"
    assert format_kpi_value(2.5, "number") == "2,5"


def test_summary_picks_top_movers():
    kpis = [
        _kpi("a", "success", 5), _kpi("b", "success", 15), _kpi("c", "success", 1), _kpi("d", "success", 9),
        _kpi("e", "danger", -20), _kpi("f", "danger", -2), _kpi("g", "warning", -50),
    ]
    summary = generate_meeting_summary("Clínica Teste", 3, 2025, kpis, [])
    assert [s['name'] for s in summary['strengths']] == ["B", "D", "A"]
    assert [c['name'] for c in summary['critical_points']] == ["E", "F"]
    assert summary['actions'] == []
    assert "Março 2025" in summary['full_text']
    assert "Manter monitorização dos indicadores." in summary['full_text']


def test_summary_actions_follow_alerts():
    alerts = [
        {"id": "billing", "rule": "Faturação", "message": "", "severity": "destructive"},
        {"id": "custom", "rule": "Stock", "message": "", "severity": "warning"},
        {"id": "nps", "rule": "NPS", "message": "", "severity": "warning"},
        {"id": "complaints", "rule": "Reclamações", "message": "", "severity": "destructive"},
    ]
    summary = generate_meeting_summary("Clínica Teste", 1, 2025, [], alerts)
    assert summary['actions'] == [
        ALERT_ACTION_MAP["billing"], "Analisar Stock e traçar plano de correção.", ALERT_ACTION_MAP["nps"]
    ]
    assert "Nenhum ponto forte destacado este mês." in summary['full_text']
    assert summary['full_text'].endswith("\n")


def test_structure_kpi_cards():
    cards = structure_clinic_kpi_cards([
        _kpi("revenue_monthly", "success", 12.5, value=8000, unit="currency"),
        _kpi("wait_time", "danger", -2.0, value=12, unit="time"),
        _kpi("nps", "warning", 0.0, value=70),
    ])
    assert cards[0]['value_str'] == "8.000 €"
    assert cards[0]['status_level'] == "SUCCESS"
    assert cards[0]['delta'] == "+12.5% vs mês anterior"
    assert cards[0]['delta_is_positive'] is True
    assert cards[1]['delta_is_positive'] is True
    assert cards[2]['delta'] is None
    assert cards[2]['help_text'] == "Meta: 10"
