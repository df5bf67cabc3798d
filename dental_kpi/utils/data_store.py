# dental_kpi/utils/data_store.py
# Session-scoped data service: clinics, daily entries, monthly summaries and targets.

import copy
import uuid
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Callable, Tuple

from dental_kpi.config import app_config
from dental_kpi.utils.api_client import ApiError, NotFoundError, PermissionDeniedError
from dental_kpi.utils.core_data_processing import (
    DAILY_DERIVED_FIELDS, aggregate_daily_to_monthly, empty_monthly_summary,
    find_monthly_summary, merge_monthly_summaries, normalize_clinic_configuration,
    previous_period
)
from dental_kpi.utils.monthly_patchers import (
    PATCH_CREATE, PATCH_DELETE, patch_entry_replaced, patch_monthly_summary
)
from dental_kpi.pages.clinic_components.kpi_calculator import calculate_clinic_kpis
from dental_kpi.pages.clinic_components.alert_generator import calculate_clinic_alerts
from dental_kpi.pages.clinic_components.summary_generator import generate_meeting_summary

logger = logging.getLogger(__name__)

LEVEL_SUCCESS = "success"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"

MSG_SAVED = "Registo guardado com sucesso."
MSG_DELETED = "Registo eliminado com sucesso."
MSG_LOCAL_ONLY = "Sessão não autenticada: alteração guardada apenas localmente."
MSG_NO_PERMISSION = "Sem permissão para esta operação."
MSG_NOT_FOUND = "Registo não encontrado."
MSG_TARGETS_SAVED = "Metas guardadas com sucesso."


@dataclass
class MutationResult:
    """
    Outcome of a create/update/delete/save.

    The local change is applied before the result is returned. `undo` reverts
    that local change (entry list and monthly summary); it is None once the
    mutation has already been rolled back.
    """
    ok: bool
    message: str = ""
    level: str = LEVEL_SUCCESS
    entry: Optional[Dict[str, Any]] = None
    local_only: bool = False
    undo: Optional[Callable[[], None]] = None


class ClinicDataService:
    """
    Owns clinics, their daily entries, monthly summaries and monthly targets for one session.

    Construct once per session and pass it to whatever needs the data; there is no
    module-level store. An api_client is optional: without one (or without a token)
    writes stay local and are reported as such.
    """

    def __init__(self, api_client: Any = None, clinics: Optional[List[Dict[str, Any]]] = None):
        self.api_client = api_client
        self._clinics: Dict[str, Dict[str, Any]] = {}
        self._entries: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self._monthly: Dict[str, List[Dict[str, Any]]] = {}
        self._targets: Dict[Tuple[str, int, int], Dict[str, Any]] = {}
        # (year, month) periods whose entry-derived fields came from the last aggregation
        self._aggregated_periods: Dict[str, set] = {}
        for clinic in clinics or []:
            self.add_clinic(clinic)

    @classmethod
    def from_seed(cls, seed: Dict[str, Any], api_client: Any = None) -> "ClinicDataService":
        """Builds a service from an offline seed (see core_data_processing.load_seed_data)."""
        service = cls(api_client=api_client, clinics=seed.get('clinics', []))
        for clinic_id, entries_by_category in (seed.get('entries') or {}).items():
            if service.get_clinic(clinic_id):
                service.load_entries(clinic_id, entries_by_category)
        for clinic_id, records in (seed.get('monthly_data') or {}).items():
            if service.get_clinic(clinic_id):
                service.merge_backend_monthly_fields(clinic_id, records)
        for clinic_id, target_records in (seed.get('targets') or {}).items():
            for record in target_records:
                targets = {k: v for k, v in record.items() if k not in ('year', 'month', 'clinic_id')}
                service.set_targets(clinic_id, record['month'], record['year'], targets)
        return service

    @property
    def _can_sync(self) -> bool:
        return self.api_client is not None and bool(getattr(self.api_client, 'has_token', False))

    # --- Clinics ---
    def list_clinics(self) -> List[Dict[str, Any]]:
        return list(self._clinics.values())

    def get_clinic(self, clinic_id: str) -> Optional[Dict[str, Any]]:
        return self._clinics.get(clinic_id)

    def add_clinic(self, clinic: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(clinic)
        stored['configuration'] = normalize_clinic_configuration(stored.get('configuration'), source_context="ClinicDataService")
        self._clinics[stored['id']] = stored
        self._entries.setdefault(stored['id'], {category: [] for category in app_config.DAILY_ENTRY_CATEGORIES})
        self._monthly.setdefault(stored['id'], [])
        return stored

    def update_clinic_config(self, clinic_id: str, configuration: Dict[str, Any]) -> None:
        clinic = self._require_clinic(clinic_id)
        clinic['configuration'] = normalize_clinic_configuration(configuration, source_context="ClinicDataService")

    def load_clinic(self, clinic_id: str) -> Dict[str, Any]:
        """Fetches a clinic from the API and stores it. Raises ApiError on failure."""
        if self.api_client is None:
            raise ApiError("Sem ligação ao servidor configurada.")
        return self.add_clinic(self.api_client.get_clinic(clinic_id))

    def _require_clinic(self, clinic_id: str) -> Dict[str, Any]:
        clinic = self.get_clinic(clinic_id)
        if clinic is None:
            raise KeyError(f"Unknown clinic: {clinic_id}")
        return clinic

    # --- Daily Entries ---
    def get_entries(self, clinic_id: str, category: str) -> List[Dict[str, Any]]:
        return list(self._entries.get(clinic_id, {}).get(category, []))

    def get_prospecting_entry(self, clinic_id: str, entry_date: str) -> Optional[Dict[str, Any]]:
        return next((e for e in self._entries.get(clinic_id, {}).get("prospecting", []) if e.get('date') == entry_date), None)

    def load_entries(self, clinic_id: str, entries_by_category: Dict[str, List[Dict[str, Any]]]) -> None:
        """Replaces the local entries of the given categories and rebuilds the monthly summaries."""
        self._require_clinic(clinic_id)
        clinic_entries = self._entries[clinic_id]
        for category, entries in entries_by_category.items():
            if category not in app_config.DAILY_ENTRY_CATEGORIES:
                logger.warning(f"(ClinicDataService) Ignoring unknown entry category '{category}' for clinic {clinic_id}.")
                continue
            clinic_entries[category] = [copy.deepcopy(e) for e in entries or []]
        self.rebuild_monthly_summaries(clinic_id)

    def reload_clinic(self, clinic_id: str) -> bool:
        """
        Fetches every entry category from the API, replaces local entries and re-aggregates.

        Local state is left untouched if any fetch fails.
        """
        module_log_prefix = "ClinicReload"
        self._require_clinic(clinic_id)
        if self.api_client is None:
            logger.warning(f"({module_log_prefix}) No API client configured; clinic {clinic_id} not reloaded.")
            return False
        fetched: Dict[str, List[Dict[str, Any]]] = {}
        try:
            for category in app_config.DAILY_ENTRY_CATEGORIES:
                fetched[category] = self.api_client.list_daily_entries(category, clinic_id)
        except ApiError as e:
            logger.error(f"({module_log_prefix}) Reload of clinic {clinic_id} failed at '{category}': {e}")
            return False
        self.load_entries(clinic_id, fetched)
        logger.info(f"({module_log_prefix}) Clinic {clinic_id} reloaded: {sum(len(v) for v in fetched.values())} entries.")
        return True

    def rebuild_monthly_summaries(self, clinic_id: str) -> None:
        """
        Re-aggregates all local entries into the stored summaries.

        Only periods with entries are replaced. A period built by an earlier
        aggregation that has lost all its entries is reset to zero; summaries
        stored through add_monthly_summary are never touched.
        """
        clinic = self._require_clinic(clinic_id)
        buckets = aggregate_daily_to_monthly(clinic, self._entries[clinic_id])
        aggregated = set(buckets)
        for period_key in self._aggregated_periods.get(clinic_id, set()) - aggregated:
            year, month = period_key
            buckets[period_key] = empty_monthly_summary(clinic, month, year)
        self._monthly[clinic_id] = merge_monthly_summaries(self._monthly.get(clinic_id, []), buckets)
        self._aggregated_periods[clinic_id] = aggregated

    def create_entry(self, clinic_id: str, category: str, entry: Dict[str, Any]) -> MutationResult:
        """
        Adds an entry locally, patches its month, then persists it.

        Prospecting entries are one per date: creating one for a date that already
        has an entry updates the existing one instead.
        """
        clinic = self._require_clinic(clinic_id)
        self._check_category(category)
        if category == "prospecting":
            existing = self.get_prospecting_entry(clinic_id, entry.get('date'))
            if existing is not None:
                return self.update_entry(clinic_id, category, {**entry, 'id': existing['id']})

        stored = copy.deepcopy(entry)
        stored.setdefault('id', uuid.uuid4().hex)
        entries = self._entries[clinic_id][category]
        summaries = self._monthly[clinic_id]
        entries.append(stored)
        patch_monthly_summary(summaries, clinic, category, stored, PATCH_CREATE)

        def undo() -> None:
            idx = next((i for i, e in enumerate(entries) if e is stored), None)
            if idx is not None:
                entries.pop(idx)
                patch_monthly_summary(summaries, clinic, category, stored, PATCH_DELETE)

        def remote() -> None:
            saved = self.api_client.create_daily_entry(category, clinic_id, stored)
            if isinstance(saved, dict) and saved.get('id'):
                stored['id'] = saved['id']

        return self._commit(remote, undo, stored, MSG_SAVED, f"create '{category}' entry")

    def update_entry(self, clinic_id: str, category: str, entry: Dict[str, Any]) -> MutationResult:
        clinic = self._require_clinic(clinic_id)
        self._check_category(category)
        entries = self._entries[clinic_id][category]
        idx = next((i for i, e in enumerate(entries) if e.get('id') == entry.get('id')), None)
        if idx is None:
            return MutationResult(ok=False, message=MSG_NOT_FOUND, level=LEVEL_ERROR)

        old_entry = entries[idx]
        new_entry = copy.deepcopy(entry)
        summaries = self._monthly[clinic_id]
        entries[idx] = new_entry
        patch_entry_replaced(summaries, clinic, category, old_entry, new_entry)

        def undo() -> None:
            current_idx = next((i for i, e in enumerate(entries) if e is new_entry), None)
            if current_idx is not None:
                entries[current_idx] = old_entry
                patch_entry_replaced(summaries, clinic, category, new_entry, old_entry)

        def remote() -> None:
            self.api_client.update_daily_entry(category, clinic_id, new_entry['id'], new_entry)

        return self._commit(remote, undo, new_entry, MSG_SAVED, f"update '{category}' entry {new_entry['id']}")

    def delete_entry(self, clinic_id: str, category: str, entry_id: str) -> MutationResult:
        clinic = self._require_clinic(clinic_id)
        self._check_category(category)
        entries = self._entries[clinic_id][category]
        idx = next((i for i, e in enumerate(entries) if e.get('id') == entry_id), None)
        if idx is None:
            return MutationResult(ok=False, message=MSG_NOT_FOUND, level=LEVEL_ERROR)

        removed = entries.pop(idx)
        summaries = self._monthly[clinic_id]
        patch_monthly_summary(summaries, clinic, category, removed, PATCH_DELETE)

        def undo() -> None:
            if not any(e is removed for e in entries):
                entries.insert(min(idx, len(entries)), removed)
                patch_monthly_summary(summaries, clinic, category, removed, PATCH_CREATE)

        def remote() -> None:
            self.api_client.delete_daily_entry(category, clinic_id, entry_id)

        return self._commit(remote, undo, removed, MSG_DELETED, f"delete '{category}' entry {entry_id}")

    def _check_category(self, category: str) -> None:
        if category not in app_config.DAILY_ENTRY_CATEGORIES:
            raise ValueError(f"Unknown daily entry category: {category}")

    def _commit(self, remote: Callable[[], None], undo: Callable[[], None], entry: Dict[str, Any],
                success_message: str, description: str) -> MutationResult:
        """Runs the remote half of an optimistic mutation; rolls back the local half on failure."""
        module_log_prefix = "ClinicDataService"
        if not self._can_sync:
            logger.warning(f"({module_log_prefix}) No API token; {description} kept local only.")
            return MutationResult(ok=True, message=MSG_LOCAL_ONLY, level=LEVEL_WARNING,
                                  entry=copy.deepcopy(entry), local_only=True, undo=undo)
        try:
            remote()
        except PermissionDeniedError as e:
            undo()
            logger.warning(f"({module_log_prefix}) Permission denied on {description}: {e}")
            return MutationResult(ok=False, message=MSG_NO_PERMISSION, level=LEVEL_ERROR)
        except ApiError as e:
            undo()
            logger.error(f"({module_log_prefix}) {description} failed and was rolled back: {e}")
            return MutationResult(ok=False, message=f"Erro ao sincronizar com o servidor: {e}", level=LEVEL_ERROR)
        logger.info(f"({module_log_prefix}) {description} persisted.")
        return MutationResult(ok=True, message=success_message, level=LEVEL_SUCCESS,
                              entry=copy.deepcopy(entry), undo=undo)

    # --- Monthly Summaries ---
    def list_monthly_summaries(self, clinic_id: str) -> List[Dict[str, Any]]:
        return list(self._monthly.get(clinic_id, []))

    def get_monthly_summary(self, clinic_id: str, month: int, year: int) -> Optional[Dict[str, Any]]:
        return find_monthly_summary(self._monthly.get(clinic_id, []), month, year)

    def add_monthly_summary(self, summary: Dict[str, Any]) -> None:
        """Stores a summary, replacing any existing one for the same (clinic, month, year)."""
        summaries = self._monthly.setdefault(summary['clinic_id'], [])
        self._aggregated_periods.get(summary['clinic_id'], set()).discard((int(summary['year']), int(summary['month'])))
        existing = find_monthly_summary(summaries, summary['month'], summary['year'])
        if existing is not None:
            summaries[summaries.index(existing)] = copy.deepcopy(summary)
        else:
            summaries.append(copy.deepcopy(summary))
            summaries.sort(key=lambda s: (s['year'], s['month']))

    def merge_backend_monthly_fields(self, clinic_id: str, records: List[Dict[str, Any]]) -> None:
        """Applies backend-owned fields (NPS, complaints, agenda, ...) without touching entry-derived ones."""
        clinic = self._require_clinic(clinic_id)
        for record in records or []:
            month, year = int(record['month']), int(record['year'])
            summary = self.get_monthly_summary(clinic_id, month, year)
            if summary is None:
                summary = empty_monthly_summary(clinic, month, year)
                self.add_monthly_summary(summary)
                summary = self.get_monthly_summary(clinic_id, month, year)
            for field, value in record.items():
                if field not in DAILY_DERIVED_FIELDS and field not in ('id', 'clinic_id', 'month', 'year'):
                    summary[field] = copy.deepcopy(value)

    def load_monthly_data(self, clinic_id: str, year: int) -> bool:
        if not self._can_sync:
            return False
        try:
            records = self.api_client.list_monthly_data(clinic_id, year)
        except ApiError as e:
            logger.error(f"(ClinicDataService) Could not load monthly data for {clinic_id}/{year}: {e}")
            return False
        self.merge_backend_monthly_fields(clinic_id, records)
        return True

    # --- Targets ---
    def _fallback_targets(self, clinic_id: str) -> Dict[str, Any]:
        targets = copy.deepcopy(app_config.DEFAULT_MONTHLY_TARGETS)
        clinic = self.get_clinic(clinic_id) or {}
        for key in targets:
            if clinic.get(key) is not None:
                targets[key] = copy.deepcopy(clinic[key])
        return targets

    def set_targets(self, clinic_id: str, month: int, year: int, targets: Dict[str, Any]) -> None:
        resolved = self._fallback_targets(clinic_id)
        resolved.update(copy.deepcopy(targets))
        self._targets[(clinic_id, int(year), int(month))] = resolved

    def get_targets(self, clinic_id: str, month: int, year: int) -> Dict[str, Any]:
        """
        Resolves monthly targets: month record (cached, else fetched) over the
        clinic's static targets over the configured defaults.

        A 404 from the API is the normal "no month record" case.
        """
        key = (clinic_id, int(year), int(month))
        if key in self._targets:
            return copy.deepcopy(self._targets[key])
        if self._can_sync:
            try:
                record = self.api_client.get_targets(clinic_id, year, month)
            except NotFoundError:
                logger.debug(f"(ClinicTargets) No month targets for {clinic_id} {month:02d}/{year}; using defaults.")
            except ApiError as e:
                logger.warning(f"(ClinicTargets) Could not fetch targets for {clinic_id} {month:02d}/{year}: {e}")
            else:
                if isinstance(record, dict) and record:
                    self.set_targets(clinic_id, month, year,
                                     {k: v for k, v in record.items() if k in app_config.DEFAULT_MONTHLY_TARGETS})
                    return copy.deepcopy(self._targets[key])
        return self._fallback_targets(clinic_id)

    def save_targets(self, clinic_id: str, month: int, year: int, targets: Dict[str, Any]) -> MutationResult:
        self._require_clinic(clinic_id)
        key = (clinic_id, int(year), int(month))
        previous = self._targets.get(key)
        self.set_targets(clinic_id, month, year, targets)
        saved = self._targets[key]

        def undo() -> None:
            if previous is None:
                self._targets.pop(key, None)
            else:
                self._targets[key] = previous

        def remote() -> None:
            self.api_client.save_targets(clinic_id, year, month, saved)

        return self._commit(remote, undo, saved, MSG_TARGETS_SAVED, f"save targets {clinic_id} {month:02d}/{year}")

    # --- Derived Views ---
    def calculate_kpis(self, clinic_id: str, month: int, year: int) -> List[Dict[str, Any]]:
        current = self.get_monthly_summary(clinic_id, month, year)
        if current is None or self.get_clinic(clinic_id) is None:
            return []
        prev_month, prev_year = previous_period(month, year)
        previous = self.get_monthly_summary(clinic_id, prev_month, prev_year)
        return calculate_clinic_kpis(current, previous, self.get_targets(clinic_id, month, year))

    def calculate_alerts(self, clinic_id: str, month: int, year: int) -> List[Dict[str, Any]]:
        current = self.get_monthly_summary(clinic_id, month, year)
        if current is None or self.get_clinic(clinic_id) is None:
            return []
        return calculate_clinic_alerts(current, self.get_targets(clinic_id, month, year))

    def generate_summary(self, clinic_id: str, month: int, year: int, locale: Optional[str] = None) -> Dict[str, Any]:
        clinic = self._require_clinic(clinic_id)
        return generate_meeting_summary(
            clinic.get('name', clinic_id), month, year,
            self.calculate_kpis(clinic_id, month, year),
            self.calculate_alerts(clinic_id, month, year),
            locale=locale
        )
