# dental_kpi/tests/test_data_store.py
# Pytest tests for ClinicDataService: optimistic mutations, rollback, targets and reloads.

import pytest
from unittest.mock import MagicMock

from dental_kpi.config import app_config
from dental_kpi.utils.api_client import ApiError, PermissionDeniedError, NotFoundError
from dental_kpi.utils.core_data_processing import empty_monthly_summary, load_seed_data
from dental_kpi.utils.data_store import (
    ClinicDataService, MSG_LOCAL_ONLY, MSG_NO_PERMISSION, MSG_NOT_FOUND, MSG_SAVED, MSG_DELETED,
    LEVEL_SUCCESS, LEVEL_WARNING, LEVEL_ERROR,
)

CLINIC_ID = "clinic-test"
NEW_FINANCIAL_ENTRY = {"date": "2025-03-28", "category_id": "cat-den", "value": 400, "cabinet_id": "gab-2"}


def _march_revenue(service):
    return service.get_monthly_summary(CLINIC_ID, 3, 2025)['revenue_total']


# --- Create ---
def test_create_entry_patches_summary_and_persists(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.create_daily_entry.return_value = {"id": "server-id"}
    result = data_service_dental.create_entry(CLINIC_ID, "financial", NEW_FINANCIAL_ENTRY)

    assert result.ok and result.level == LEVEL_SUCCESS and result.message == MSG_SAVED
    assert result.entry['id'] == "server-id"
    assert _march_revenue(data_service_dental) == pytest.approx(4150.75)
    assert mock_api_client_dental.create_daily_entry.call_args.args[:2] == ("financial", CLINIC_ID)
    assert any(e['id'] == "server-id" for e in data_service_dental.get_entries(CLINIC_ID, "financial"))


def test_create_entry_rolls_back_on_api_error(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.create_daily_entry.side_effect = ApiError("boom", status=500)
    entries_before = data_service_dental.get_entries(CLINIC_ID, "financial")
    result = data_service_dental.create_entry(CLINIC_ID, "financial", NEW_FINANCIAL_ENTRY)

    assert not result.ok and result.level == LEVEL_ERROR
    assert "boom" in result.message
    assert data_service_dental.get_entries(CLINIC_ID, "financial") == entries_before
    assert _march_revenue(data_service_dental) == pytest.approx(3750.75)


def test_create_entry_forbidden_shows_permission_message(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.create_daily_entry.side_effect = PermissionDeniedError("Forbidden", status=403)
    result = data_service_dental.create_entry(CLINIC_ID, "financial", NEW_FINANCIAL_ENTRY)

    assert not result.ok
    assert result.message == MSG_NO_PERMISSION
    assert _march_revenue(data_service_dental) == pytest.approx(3750.75)


def test_create_entry_without_token_stays_local(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.has_token = False
    result = data_service_dental.create_entry(CLINIC_ID, "financial", NEW_FINANCIAL_ENTRY)

    assert result.ok and result.local_only
    assert result.level == LEVEL_WARNING and result.message == MSG_LOCAL_ONLY
    assert _march_revenue(data_service_dental) == pytest.approx(4150.75)
    mock_api_client_dental.create_daily_entry.assert_not_called()


def test_create_entry_without_client_stays_local(sample_clinic_dental, sample_entries_dental):
    service = ClinicDataService(clinics=[sample_clinic_dental])
    service.load_entries(CLINIC_ID, sample_entries_dental)
    result = service.create_entry(CLINIC_ID, "financial", NEW_FINANCIAL_ENTRY)
    assert result.local_only


def test_create_entry_in_month_without_summary_updates_only_entries(data_service_dental):
    result = data_service_dental.create_entry(CLINIC_ID, "financial", {**NEW_FINANCIAL_ENTRY, "date": "2025-07-01"})
    assert result.ok
    assert data_service_dental.get_monthly_summary(CLINIC_ID, 7, 2025) is None
    data_service_dental.rebuild_monthly_summaries(CLINIC_ID)
    assert data_service_dental.get_monthly_summary(CLINIC_ID, 7, 2025)['revenue_total'] == pytest.approx(400)


def test_undo_reverts_a_successful_create(data_service_dental):
    result = data_service_dental.create_entry(CLINIC_ID, "financial", NEW_FINANCIAL_ENTRY)
    result.undo()
    assert _march_revenue(data_service_dental) == pytest.approx(3750.75)
    assert len(data_service_dental.get_entries(CLINIC_ID, "financial")) == 5


def test_prospecting_create_for_same_date_updates_existing(data_service_dental):
    result = data_service_dental.create_entry(CLINIC_ID, "prospecting", {
        "date": "2025-03-07", "scheduled": 1, "email": 1, "sms": 0, "whatsapp": 0, "instagram": 0, "phone": 0,
    })
    assert result.ok
    prospecting = data_service_dental.get_entries(CLINIC_ID, "prospecting")
    assert len(prospecting) == 1 and prospecting[0]['id'] == "p1"
    assert data_service_dental.get_monthly_summary(CLINIC_ID, 3, 2025)['leads'] == 1


def test_unknown_category_and_clinic_raise(data_service_dental):
    with pytest.raises(ValueError):
        data_service_dental.create_entry(CLINIC_ID, "payroll", {"date": "2025-03-01"})
    with pytest.raises(KeyError):
        data_service_dental.create_entry("nope", "financial", NEW_FINANCIAL_ENTRY)


# --- Update / Delete ---
def test_update_entry_replaces_contribution(data_service_dental, mock_api_client_dental):
    result = data_service_dental.update_entry(CLINIC_ID, "financial", {"id": "f2", "date": "2025-03-10", "category_id": "cat-den", "value": 1000, "cabinet_id": "gab-2"})
    assert result.ok
    assert _march_revenue(data_service_dental) == pytest.approx(3950.75)
    mock_api_client_dental.update_daily_entry.assert_called_once()


def test_update_unknown_entry_is_not_found(data_service_dental):
    result = data_service_dental.update_entry(CLINIC_ID, "financial", {"id": "missing", "value": 1})
    assert not result.ok and result.message == MSG_NOT_FOUND


def test_delete_entry_success(data_service_dental, mock_api_client_dental):
    result = data_service_dental.delete_entry(CLINIC_ID, "financial", "f1")
    assert result.ok and result.message == MSG_DELETED
    assert _march_revenue(data_service_dental) == pytest.approx(2250.25)
    mock_api_client_dental.delete_daily_entry.assert_called_once_with("financial", CLINIC_ID, "f1")


def test_delete_entry_rolls_back_in_place(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.delete_daily_entry.side_effect = ApiError("timeout")
    ids_before = [e['id'] for e in data_service_dental.get_entries(CLINIC_ID, "financial")]
    result = data_service_dental.delete_entry(CLINIC_ID, "financial", "f2")

    assert not result.ok
    assert [e['id'] for e in data_service_dental.get_entries(CLINIC_ID, "financial")] == ids_before
    assert _march_revenue(data_service_dental) == pytest.approx(3750.75)


def test_delete_unknown_entry_is_not_found(data_service_dental, mock_api_client_dental):
    result = data_service_dental.delete_entry(CLINIC_ID, "financial", "missing")
    assert result.message == MSG_NOT_FOUND
    mock_api_client_dental.delete_daily_entry.assert_not_called()


# --- Targets ---
def test_targets_not_found_uses_clinic_then_default_values(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.get_targets.side_effect = NotFoundError("no targets", status=404)
    targets = data_service_dental.get_targets(CLINIC_ID, 3, 2025)
    assert targets['target_revenue'] == 30000
    assert targets['target_nps'] == app_config.DEFAULT_MONTHLY_TARGETS['target_nps']


def test_targets_from_api_are_cached(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.get_targets.return_value = {"target_revenue": 15000, "clinic_id": CLINIC_ID}
    first = data_service_dental.get_targets(CLINIC_ID, 3, 2025)
    second = data_service_dental.get_targets(CLINIC_ID, 3, 2025)
    assert first['target_revenue'] == second['target_revenue'] == 15000
    assert 'clinic_id' not in first
    mock_api_client_dental.get_targets.assert_called_once_with(CLINIC_ID, 2025, 3)


def test_targets_api_error_falls_back_without_caching(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.get_targets.side_effect = ApiError("down")
    assert data_service_dental.get_targets(CLINIC_ID, 3, 2025)['target_revenue'] == 30000
    data_service_dental.get_targets(CLINIC_ID, 3, 2025)
    assert mock_api_client_dental.get_targets.call_count == 2


def test_save_targets_rolls_back_on_error(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.get_targets.side_effect = NotFoundError("none", status=404)
    mock_api_client_dental.save_targets.side_effect = ApiError("nope")
    result = data_service_dental.save_targets(CLINIC_ID, 3, 2025, {"target_revenue": 99999})
    assert not result.ok
    assert data_service_dental.get_targets(CLINIC_ID, 3, 2025)['target_revenue'] == 30000


def test_save_targets_success_is_used_by_kpis(data_service_dental):
    assert data_service_dental.save_targets(CLINIC_ID, 3, 2025, {"target_revenue": 3000}).ok
    kpis = {k['id']: k for k in data_service_dental.calculate_kpis(CLINIC_ID, 3, 2025)}
    assert kpis['revenue_monthly']['target'] == 3000
    assert kpis['revenue_monthly']['status'] == app_config.KPI_STATUS_SUCCESS


# --- Reload & Backend Fields ---
def test_reload_replaces_entries(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.list_daily_entries.side_effect = lambda category, clinic_id: (
        [{"id": "r1", "date": "2025-03-02", "category_id": "cat-ali", "value": 100}] if category == "financial" else []
    )
    assert data_service_dental.reload_clinic(CLINIC_ID) is True
    assert _march_revenue(data_service_dental) == pytest.approx(100)
    assert data_service_dental.get_entries(CLINIC_ID, "consultation") == []
    assert data_service_dental.get_monthly_summary(CLINIC_ID, 4, 2025)["revenue_total"] == 0.0


def test_stored_summary_without_entries_survives_load(data_service_dental, sample_clinic_dental):
    historical = empty_monthly_summary(sample_clinic_dental, 1, 2020)
    historical.update({"revenue_total": 12345.0, "plans_accepted": 4})
    data_service_dental.add_monthly_summary(historical)

    data_service_dental.load_entries(CLINIC_ID, {"financial": [
        {"id": "n1", "date": "2025-03-05", "category_id": "cat-den", "value": 50}
    ]})
    january = data_service_dental.get_monthly_summary(CLINIC_ID, 1, 2020)
    assert january["revenue_total"] == 12345.0
    assert january["plans_accepted"] == 4
    assert _march_revenue(data_service_dental) == pytest.approx(50)


def test_reload_failure_keeps_local_state(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.list_daily_entries.side_effect = ApiError("offline")
    assert data_service_dental.reload_clinic(CLINIC_ID) is False
    assert len(data_service_dental.get_entries(CLINIC_ID, "financial")) == 5
    assert _march_revenue(data_service_dental) == pytest.approx(3750.75)


def test_backend_fields_survive_rebuild(data_service_dental):
    data_service_dental.merge_backend_monthly_fields(CLINIC_ID, [{"month": 3, "year": 2025, "nps": 91, "revenue_total": 1}])
    data_service_dental.rebuild_monthly_summaries(CLINIC_ID)
    march = data_service_dental.get_monthly_summary(CLINIC_ID, 3, 2025)
    assert march['nps'] == 91
    assert march['revenue_total'] == pytest.approx(3750.75)


def test_load_monthly_data_merges_backend_records(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.list_monthly_data.return_value = [{"month": 5, "year": 2025, "complaints": 4}]
    assert data_service_dental.load_monthly_data(CLINIC_ID, 2025) is True
    assert data_service_dental.get_monthly_summary(CLINIC_ID, 5, 2025)['complaints'] == 4


# --- Derived Views ---
def test_kpis_and_alerts_for_month_without_summary_are_empty(data_service_dental):
    assert data_service_dental.calculate_kpis(CLINIC_ID, 12, 2030) == []
    assert data_service_dental.calculate_alerts(CLINIC_ID, 12, 2030) == []


def test_generate_summary_mentions_clinic(data_service_dental, mock_api_client_dental):
    mock_api_client_dental.get_targets.side_effect = NotFoundError("none", status=404)
    summary = data_service_dental.generate_summary(CLINIC_ID, 3, 2025)
    assert "Clínica Teste" in summary['full_text']
    assert set(summary) == {"strengths", "critical_points", "actions", "full_text"}


def test_service_from_bundled_seed(sample_seed_path_dental):
    service = ClinicDataService.from_seed(load_seed_data(sample_seed_path_dental), api_client=MagicMock(has_token=False))
    september = service.get_monthly_summary("clinic-1", 9, 2025)
    assert september['nps'] == 88
    assert september['aligners_started'] == 1
    assert service.get_targets("clinic-1", 9, 2025)['target_revenue'] == 12000
    assert service.get_targets("clinic-1", 8, 2025)['target_revenue'] == 45000
    assert len(service.calculate_kpis("clinic-1", 9, 2025)) == 15
