# dental_kpi/utils/session_service.py
# Creates the per-session ClinicDataService and keeps it in Streamlit session state.

import logging
from datetime import date
from typing import Optional

import streamlit as st

from dental_kpi.utils.api_client import DentalKpiApiClient
from dental_kpi.utils.core_data_processing import load_seed_data
from dental_kpi.utils.data_store import ClinicDataService

logger = logging.getLogger(__name__)

SESSION_SERVICE_KEY = "dental_kpi_data_service"


def build_data_service(seed_path: Optional[str] = None, api_client: Optional[DentalKpiApiClient] = None) -> ClinicDataService:
    """
    Seeds a service from the offline JSON, then refreshes each clinic from the API
    when a token is available.
    """
    api_client = api_client or DentalKpiApiClient()
    service = ClinicDataService.from_seed(load_seed_data(seed_path, source_context="SessionService"), api_client=api_client)
    if not api_client.has_token:
        logger.info("(SessionService) No API token found; running on local seed data only.")
        return service
    current_year = date.today().year
    for clinic in service.list_clinics():
        if service.reload_clinic(clinic['id']):
            service.load_monthly_data(clinic['id'], current_year)
    return service


def get_data_service() -> ClinicDataService:
    if SESSION_SERVICE_KEY not in st.session_state:
        st.session_state[SESSION_SERVICE_KEY] = build_data_service()
    return st.session_state[SESSION_SERVICE_KEY]
