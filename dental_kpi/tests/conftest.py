# dental_kpi/tests/conftest.py
# Pytest fixtures for testing the "Dental KPI Co-Pilot" application.

import pytest
import sys
import os
from unittest.mock import MagicMock

# --- Path Setup for Imports ---
# Add the repository root (parent of 'dental_kpi') to sys.path so the package imports without installation.
_current_conftest_dir = os.path.dirname(os.path.abspath(__file__))
_project_root_dir = os.path.abspath(os.path.join(_current_conftest_dir, os.pardir, os.pardir))

if _project_root_dir not in sys.path:
    sys.path.insert(0, _project_root_dir)

# --- Critical Project Module Imports ---
try:
    from dental_kpi.config import app_config
    from dental_kpi.utils.core_data_processing import empty_monthly_summary
    from dental_kpi.utils.data_store import ClinicDataService
except ImportError as e:
    print(f"FATAL ERROR in conftest.py: Could not import core project modules. Tests will not run correctly.")
    print(f"PYTHONPATH currently is: {sys.path}")
    print(f"Attempted to add: {_project_root_dir}")
    print(f"Error details: {e}")
    raise


# --- Fixture for a Sample Clinic ---
@pytest.fixture
def sample_clinic_dental() -> dict:
    """A clinic with tagged categories, two cabinets and a small source/campaign list."""
    return {
        "id": "clinic-test",
        "name": "Clínica Teste",
        "target_revenue": 30000,
        "configuration": {
            "categories": [
                {"id": "cat-ali", "name": "Alinhadores", "kind": "aligners"},
                {"id": "cat-ped", "name": "Odontopediatria", "kind": "pediatrics"},
                {"id": "cat-den", "name": "Dentisteria", "kind": "dentistry"},
                {"id": "cat-cir", "name": "Cirurgia", "kind": "other"},
            ],
            "cabinets": [
                {"id": "gab-1", "name": "Gabinete 1", "standard_hours": 8},
                {"id": "gab-2", "name": "Gabinete 2", "standard_hours": 8},
            ],
            "doctors": [{"id": "doc-1", "name": "Dra. Ana"}],
            "sources": [{"id": "src-1", "name": "Instagram"}, {"id": "src-2", "name": "Google"}],
            "campaigns": [{"id": "camp-1", "name": "Verão"}],
        },
    }


# --- Fixture for Sample Daily Entries (two months) ---
@pytest.fixture
def sample_entries_dental() -> dict:
    return {
        "financial": [
            {"id": "f1", "date": "2025-03-03", "category_id": "cat-ali", "value": 1500.50, "cabinet_id": "gab-1"},
            {"id": "f2", "date": "2025-03-10", "category_id": "cat-den", "value": 800, "cabinet_id": "gab-2"},
            {"id": "f3", "date": "2025-03-17", "category_id": "cat-ped", "value": 250.25, "cabinet_id": "gab-1"},
            {"id": "f4", "date": "2025-03-24T15:30:00Z", "category_id": "cat-cir", "value": 1200, "cabinet_id": "gab-2"},
            {"id": "f5", "date": "2025-04-02", "category_id": "cat-ali", "value": 2000, "cabinet_id": "gab-1"},
        ],
        "consultation": [
            {"id": "c1", "date": "2025-03-04", "patient_group": "adult", "stage": "accepted", "plan_presented_value": 3000, "plan_value": 2800},
            {"id": "c2", "date": "2025-03-05", "patient_group": "kid", "stage": "not_accepted", "plan_presented_value": 900, "follow_up": True},
            {"id": "c3", "date": "2025-03-06", "patient_group": "adult", "plan_created": True, "plan_presented": True},
            {"id": "c4", "date": "2025-04-07", "patient_group": "adult", "stage": "attended"},
        ],
        "prospecting": [
            {"id": "p1", "date": "2025-03-07", "scheduled": 3, "email": 2, "sms": 1, "whatsapp": 4, "instagram": 5, "phone": 3},
        ],
        "cabinet": [
            {"id": "k1", "date": "2025-03-31", "cabinet_id": "gab-1", "hours_available": 100, "hours_used": 80},
            {"id": "k2", "date": "2025-03-31", "cabinet_id": "gab-2", "hours_available": 100, "hours_used": 60},
        ],
        "service-time": [
            {"id": "s1", "date": "2025-03-11", "scheduled_time": "10:00", "actual_start_time": "10:10", "delay_reason": "paciente"},
            {"id": "s2", "date": "2025-03-12", "scheduled_time": "15:00", "actual_start_time": "15:20", "delay_reason": "medico"},
        ],
        "source": [
            {"id": "o1", "date": "2025-03-04", "source_id": "src-1", "campaign_id": "camp-1", "is_referral": False},
            {"id": "o2", "date": "2025-03-05", "source_id": "src-9", "is_referral": True},
        ],
        "consultation-control": [
            {"id": "cc1", "date": "2025-03-31", "no_show": 2, "rescheduled": 3, "cancelled": 1, "old_patient_booking": 4},
        ],
        "aligners": [
            {"id": "a1", "date": "2025-03-04", "treatment_plan_created": True},
            {"id": "a2", "date": "2025-03-20", "treatment_plan_created": False},
        ],
        "orders": [
            {"id": "or1", "date": "2025-03-15", "total": 300},
        ],
    }


# --- Fixture for Monthly Targets ---
@pytest.fixture
def sample_targets_dental() -> dict:
    targets = dict(app_config.DEFAULT_MONTHLY_TARGETS)
    targets.update({
        "target_revenue": 10000,
        "target_aligners_range": {"min": 6, "max": 10},
        "target_acceptance_rate": 80,
        "target_occupancy_rate": 80,
        "target_nps": 80,
        "target_wait_time": 10,
        "target_complaints": 2,
        "target_leads_range": {"min": 20, "max": 40},
    })
    return targets


# --- Fixture for a Hand-Built Monthly Summary ---
@pytest.fixture
def sample_summary_dental(sample_clinic_dental) -> dict:
    """A March 2025 summary that meets most of sample_targets_dental."""
    summary = empty_monthly_summary(sample_clinic_dental, 3, 2025)
    summary.update({
        "revenue_total": 12000.0,
        "revenue_accepted_plans": 9000.0,
        "plans_presented_adults": 8, "plans_presented_kids": 2, "plans_accepted": 9,
        "plans_not_accepted": 1, "plans_not_accepted_follow_up": 1,
        "aligners_started": 7, "leads": 30,
        "first_consultations_scheduled": 10, "first_consultations_attended": 9,
        "appointments_integrated": 9, "appointments_total": 10,
        "avg_wait_time": 8.0, "nps": 85, "complaints": 1,
        "referrals_spontaneous": 3, "referrals_base_2025": 2,
    })
    summary["cabinets"][0].update({"revenue": 7000.0, "hours_available": 100.0, "hours_occupied": 90.0})
    summary["cabinets"][1].update({"revenue": 5000.0, "hours_available": 100.0, "hours_occupied": 80.0})
    return summary


# --- Fixtures for the Data Service ---
@pytest.fixture
def mock_api_client_dental() -> MagicMock:
    """API client double with a token; individual tests set side effects."""
    client = MagicMock()
    client.has_token = True
    client.create_daily_entry.return_value = None
    client.update_daily_entry.return_value = None
    client.delete_daily_entry.return_value = None
    client.save_targets.return_value = None
    return client


@pytest.fixture
def data_service_dental(sample_clinic_dental, sample_entries_dental, mock_api_client_dental) -> ClinicDataService:
    service = ClinicDataService(api_client=mock_api_client_dental, clinics=[sample_clinic_dental])
    service.load_entries(sample_clinic_dental["id"], sample_entries_dental)
    return service


@pytest.fixture
def sample_seed_path_dental() -> str:
    return app_config.SEED_CLINIC_JSON
