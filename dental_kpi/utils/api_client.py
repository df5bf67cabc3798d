# dental_kpi/utils/api_client.py
# REST client for the Dental KPI backend (clinics, daily entries, monthly targets).

import os
import re
import logging
import requests
from typing import Dict, Any, List, Optional, Callable

from dental_kpi.config import app_config

logger = logging.getLogger(__name__)

# Maps keyed by display names; their keys are data, not field names
_OPAQUE_KEY_FIELDS = {
    'revenue_by_category', 'revenueByCategory',
    'source_distribution', 'sourceDistribution',
    'campaign_distribution', 'campaignDistribution',
}
# Backend field names that do not follow plain camelCase
_CAMEL_CASE_OVERRIDES = {
    "target_nps": "targetNPS",
}


class ApiError(Exception):
    """Non-2xx response or transport failure from the backend."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class PermissionDeniedError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


# --- Key Conversion ---
def to_snake_case(name: str) -> str:
    return re.sub(r'(?<=[a-z0-9])([A-Z])', r'_\1', name).lower()


def to_camel_case(name: str) -> str:
    if name in _CAMEL_CASE_OVERRIDES:
        return _CAMEL_CASE_OVERRIDES[name]
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(obj: Any, converter: Callable[[str], str]) -> Any:
    if isinstance(obj, list):
        return [convert_keys(item, converter) for item in obj]
    if isinstance(obj, dict):
        converted = {}
        for key, value in obj.items():
            new_key = converter(key) if isinstance(key, str) else key
            converted[new_key] = value if key in _OPAQUE_KEY_FIELDS else convert_keys(value, converter)
        return converted
    return obj


# --- Token Storage ---
def load_api_token(token_file: Optional[str] = None) -> Optional[str]:
    """Bearer token from the environment, else from the persisted token file."""
    env_token = os.getenv(app_config.API_TOKEN_ENV_VAR)
    if env_token and env_token.strip():
        return env_token.strip()
    path = token_file or app_config.API_TOKEN_FILE
    if not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            token = f.read().strip()
    except OSError as e:
        logger.warning(f"Could not read API token file {path}: {e}")
        return None
    return token or None


def clear_api_token(token_file: Optional[str] = None) -> None:
    path = token_file or app_config.API_TOKEN_FILE
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove API token file {path}: {e}")


class DentalKpiApiClient:
    """
    Thin wrapper over the backend REST API.

    Responses are returned with snake_case keys; request bodies are sent camelCase.
    403 raises PermissionDeniedError, 404 raises NotFoundError, any other failure
    raises ApiError. A 401 also drops the stored token.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None,
                 token_file: Optional[str] = None):
        self.base_url = (base_url or app_config.API_BASE_URL).rstrip("/")
        self.token_file = token_file
        self.token = token if token is not None else load_api_token(token_file)
        self.timeout = timeout or app_config.API_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = convert_keys(payload, to_camel_case) if payload is not None else None
        try:
            response = self.session.request(method, url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"(ApiClient) {method} {url} failed: {e}")
            raise ApiError(f"Falha de comunicação com o servidor: {e}") from e

        if response.status_code == 204 or not response.content:
            data = None
        else:
            try:
                data = response.json()
            except ValueError:
                data = None

        if response.ok:
            return convert_keys(data, to_snake_case)

        message = (data.get('error') or data.get('message')) if isinstance(data, dict) else None
        message = message or f"HTTP {response.status_code}"
        # 4xx are expected outcomes (missing targets, permissions); only log them at info
        log_fn = logger.info if 400 <= response.status_code < 500 else logger.error
        log_fn(f"(ApiClient) {method} {url} -> {response.status_code}: {message}")
        if response.status_code == 401:
            self.token = None
            clear_api_token(self.token_file)
        if response.status_code == 403:
            raise PermissionDeniedError(message, status=403, payload=data)
        if response.status_code == 404:
            raise NotFoundError(message, status=404, payload=data)
        raise ApiError(message, status=response.status_code, payload=data)

    # --- Clinics ---
    def get_clinic(self, clinic_id: str) -> Dict[str, Any]:
        return self._request("GET", f"clinics/{clinic_id}")

    # --- Daily Entries ---
    def list_daily_entries(self, category: str, clinic_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"daily-entries/{category}/{clinic_id}") or []

    def create_daily_entry(self, category: str, clinic_id: str, entry: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request("POST", f"daily-entries/{category}/{clinic_id}", payload=entry)

    def update_daily_entry(self, category: str, clinic_id: str, entry_id: str, entry: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request("PUT", f"daily-entries/{category}/{clinic_id}/{entry_id}", payload=entry)

    def delete_daily_entry(self, category: str, clinic_id: str, entry_id: str) -> None:
        self._request("DELETE", f"daily-entries/{category}/{clinic_id}/{entry_id}")

    # --- Targets & Monthly Data ---
    def get_targets(self, clinic_id: str, year: int, month: int) -> Dict[str, Any]:
        return self._request("GET", f"targets/{clinic_id}/{year}/{month}")

    def save_targets(self, clinic_id: str, year: int, month: int, targets: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request("PUT", f"targets/{clinic_id}/{year}/{month}", payload=targets)

    def list_monthly_data(self, clinic_id: str, year: int) -> List[Dict[str, Any]]:
        return self._request("GET", f"monthly-data/{clinic_id}/{year}") or []
