# dental_kpi/utils/core_data_processing.py
# Core data loading, cleaning, and daily-to-monthly aggregation utilities for Dental KPI Co-Pilot.

import streamlit as st
import pandas as pd
import numpy as np
import os
import copy
import json
import logging
from typing import List, Dict, Any, Optional, Tuple

from dental_kpi.config import app_config

logger = logging.getLogger(__name__)

CONSULTATION_STAGES = ["attended", "created", "presented", "accepted", "not_accepted"]
_STAGE_RANK = {"attended": 0, "created": 1, "presented": 2, "accepted": 3, "not_accepted": 3}

# Fields recomputed from daily entries; everything else on a summary is owned by the backend
DAILY_DERIVED_FIELDS = [
    'revenue_total', 'revenue_aligners', 'revenue_pediatrics', 'revenue_dentistry', 'revenue_others',
    'revenue_accepted_plans', 'revenue_by_category', 'cabinets',
    'plans_presented_adults', 'plans_presented_kids', 'plans_created', 'plans_created_total_value',
    'plans_accepted', 'plans_accepted_total_value', 'plans_not_accepted', 'plans_not_accepted_follow_up',
    'aligners_started', 'leads', 'leads_by_channel', 'first_consultations_scheduled',
    'first_consultations_attended', 'avg_wait_time', 'wait_time_total_minutes', 'wait_time_samples',
    'referrals_spontaneous', 'source_distribution', 'campaign_distribution', 'delay_reasons',
    'entry_counts', 'consultation_control',
]
# Maps whose keys come from configured display names; zeroed keys are dropped on subtraction
_DYNAMIC_MAP_FIELDS = ['revenue_by_category', 'source_distribution', 'campaign_distribution']
_FIXED_MAP_FIELDS = ['leads_by_channel', 'delay_reasons', 'entry_counts', 'consultation_control']
_CABINET_NUMERIC_FIELDS = ['revenue', 'hours_available', 'hours_occupied']
_CONSULTATION_CONTROL_FIELDS = ['no_show', 'rescheduled', 'cancelled', 'old_patient_booking']
_CONFIG_LIST_KEYS = ['categories', 'cabinets', 'doctors', 'sources', 'campaigns', 'payment_sources', 'aligner_brands']


# --- I. Core Helper Functions ---
def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _to_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return float(value)
    if _is_missing(value):
        return default
    converted = pd.to_numeric(value, errors='coerce')
    return default if pd.isna(converted) else float(converted)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "sim")
    if _is_missing(value):
        return False
    return bool(value)


def _round_value(value: float) -> float:
    return round(value, 2)


def _parse_entry_dates(values: List[Any]) -> pd.Series:
    """Parses ISO dates (or ISO timestamps, truncated to the date part); unparseable values become NaT."""
    as_text = pd.Series(values, dtype=object).astype(str).str.slice(0, 10)
    return pd.to_datetime(as_text, format="%Y-%m-%d", errors='coerce')


def entry_period(entry: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    """Returns (year, month) for an entry's date, or None when the date cannot be parsed."""
    parsed = _parse_entry_dates([entry.get('date')]).iloc[0]
    if pd.isna(parsed):
        return None
    return int(parsed.year), int(parsed.month)


def _minutes_from_hhmm(value: Any) -> Optional[int]:
    if _is_missing(value):
        return None
    try:
        hours_str, minutes_str = str(value).strip().split(":")[:2]
        hours, minutes = int(hours_str), int(minutes_str)
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def _lookup_record(records: List[Dict[str, Any]], record_id: Any) -> Optional[Dict[str, Any]]:
    if _is_missing(record_id):
        return None
    for record in records or []:
        if str(record.get('id')) == str(record_id):
            return record
    return None


# --- II. Clinic Configuration ---
def infer_category_kind(category_name: Optional[str]) -> str:
    name_lower = str(category_name or "").lower()
    for kind, keywords in app_config.CATEGORY_KIND_KEYWORDS.items():
        if any(keyword in name_lower for keyword in keywords):
            return kind
    return app_config.CATEGORY_KIND_OTHER


def normalize_clinic_configuration(configuration: Optional[Dict[str, Any]], source_context: str = "ConfigNormalizer") -> Dict[str, Any]:
    """
    Returns a copy of a clinic configuration with every list present and every
    category carrying a valid `kind` tag.

    Categories without a tag (older records) get one inferred from their name.
    Aggregation only ever reads the tag, so renaming a category never moves its revenue.
    """
    normalized = copy.deepcopy(configuration) if isinstance(configuration, dict) else {}
    for key in _CONFIG_LIST_KEYS:
        if not isinstance(normalized.get(key), list):
            normalized[key] = []
    for category in normalized['categories']:
        kind = category.get('kind')
        if kind not in app_config.CATEGORY_KINDS:
            inferred_kind = infer_category_kind(category.get('name'))
            logger.warning(f"({source_context}) Category '{category.get('name')}' ({category.get('id')}) has no valid kind "
                           f"(got {kind!r}); tagged as '{inferred_kind}'.")
            category['kind'] = inferred_kind
    return normalized


# --- III. Data Loading Functions ---
@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS)
def load_seed_data(file_path: Optional[str] = None, source_context: str = "DataLoader") -> Dict[str, Any]:
    """
    Loads the offline seed (clinics, daily entries, backend monthly fields, targets) from JSON.

    Returns an empty seed structure when the file is missing or unreadable.
    """
    actual_file_path = file_path or app_config.SEED_CLINIC_JSON
    empty_seed = {"clinics": [], "entries": {}, "monthly_data": {}, "targets": {}}
    logger.info(f"({source_context}) Loading seed data from: {actual_file_path}")
    if not os.path.exists(actual_file_path):
        logger.error(f"({source_context}) Seed data file not found: {actual_file_path}")
        return empty_seed
    try:
        with open(actual_file_path, encoding="utf-8") as f:
            raw_seed = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"({source_context}) Error loading seed data: {e}")
        return empty_seed
    seed = {key: raw_seed.get(key, default) for key, default in empty_seed.items()}
    logger.info(f"({source_context}) Seed loaded: {len(seed['clinics'])} clinics, "
                f"{sum(len(v) for cats in seed['entries'].values() for v in cats.values())} daily entries")
    return seed


# --- IV. Monthly Summary Construction ---
def empty_monthly_summary(clinic: Dict[str, Any], month: int, year: int) -> Dict[str, Any]:
    clinic_id = clinic.get('id')
    configuration = clinic.get('configuration') or {}
    return {
        'id': f"{clinic_id}-{year}-{month:02d}",
        'clinic_id': clinic_id, 'month': month, 'year': year,
        'revenue_total': 0.0, 'revenue_aligners': 0.0, 'revenue_pediatrics': 0.0,
        'revenue_dentistry': 0.0, 'revenue_others': 0.0, 'revenue_accepted_plans': 0.0,
        'revenue_by_category': {},
        'cabinets': [
            {'id': cab.get('id'), 'name': cab.get('name'), 'revenue': 0.0, 'hours_available': 0.0, 'hours_occupied': 0.0}
            for cab in configuration.get('cabinets', [])
        ],
        'plans_presented_adults': 0, 'plans_presented_kids': 0,
        'plans_created': 0, 'plans_created_total_value': 0.0,
        'plans_accepted': 0, 'plans_accepted_total_value': 0.0,
        'plans_not_accepted': 0, 'plans_not_accepted_follow_up': 0,
        'aligners_started': 0,
        'appointments_integrated': 0, 'appointments_total': 0,
        'leads': 0, 'leads_by_channel': {channel: 0 for channel in app_config.PROSPECTING_CHANNELS},
        'first_consultations_scheduled': 0, 'first_consultations_attended': 0,
        'avg_wait_time': 0.0, 'wait_time_total_minutes': 0.0, 'wait_time_samples': 0,
        'agenda_owner': {'operational': 0, 'planning': 0, 'sales': 0, 'leadership': 0},
        'nps': 0, 'referrals_spontaneous': 0, 'referrals_base_2025': 0,
        'complaints': 0, 'expenses': 0.0, 'marketing_cost': 0.0,
        'source_distribution': {}, 'campaign_distribution': {},
        'delay_reasons': {'patient': 0, 'doctor': 0},
        'entry_counts': {category: 0 for category in app_config.SUMMARY_CATEGORIES},
        'consultation_control': {field: 0 for field in _CONSULTATION_CONTROL_FIELDS},
    }


def resolve_consultation_stage(entry: Dict[str, Any]) -> str:
    """Explicit `stage` wins; otherwise the furthest stage flagged on the entry."""
    stage = entry.get('stage')
    if stage in _STAGE_RANK:
        return stage
    if _to_bool(entry.get('plan_accepted')):
        return "accepted"
    if _to_bool(entry.get('plan_presented')):
        return "not_accepted" if _to_bool(entry.get('plan_not_accepted')) else "presented"
    if _to_bool(entry.get('plan_created')):
        return "created"
    return "attended"


def entry_contribution(category: str, entry: Dict[str, Any], configuration: Dict[str, Any]) -> Dict[str, Any]:
    """
    Computes what a single daily entry adds to its monthly summary.

    The returned delta uses summary field names. Map fields hold per-key deltas and
    `cabinets` is keyed by cabinet id. The same delta is added on create and
    subtracted on delete, so both paths stay consistent with a full re-aggregation.

    Args:
        category: Daily entry category (e.g. 'financial', 'service-time').
        entry: Daily entry record (snake_case keys).
        configuration: Normalized clinic configuration.

    Returns:
        Delta dictionary; empty for categories that do not feed the summary.
    """
    delta: Dict[str, Any] = {}
    if category not in app_config.SUMMARY_CATEGORIES:
        return delta
    delta['entry_counts'] = {category: 1}

    if category == "financial":
        value = _to_float(entry.get('value'))
        category_record = _lookup_record(configuration.get('categories', []), entry.get('category_id'))
        category_name = category_record.get('name') if category_record else app_config.FALLBACK_CATEGORY_NAME
        kind = category_record.get('kind', app_config.CATEGORY_KIND_OTHER) if category_record else app_config.CATEGORY_KIND_OTHER
        delta['revenue_total'] = value
        delta[app_config.REVENUE_FIELD_BY_KIND.get(kind, 'revenue_others')] = value
        delta['revenue_by_category'] = {category_name: value}
        if not _is_missing(entry.get('cabinet_id')):
            cabinet_record = _lookup_record(configuration.get('cabinets', []), entry.get('cabinet_id'))
            delta['cabinets'] = {str(entry['cabinet_id']): {
                'name': cabinet_record.get('name') if cabinet_record else app_config.FALLBACK_CABINET_NAME,
                'revenue': value,
            }}

    elif category == "consultation":
        stage = resolve_consultation_stage(entry)
        rank = _STAGE_RANK[stage]
        presented_value = _to_float(entry.get('plan_presented_value'))
        accepted_value = _to_float(entry.get('plan_value'), default=presented_value)
        delta['first_consultations_attended'] = 1
        if rank >= _STAGE_RANK["created"]:
            delta['plans_created'] = 1
            delta['plans_created_total_value'] = presented_value or accepted_value
        if rank >= _STAGE_RANK["presented"]:
            group_field = 'plans_presented_kids' if str(entry.get('patient_group', 'adult')).lower() == 'kid' else 'plans_presented_adults'
            delta[group_field] = 1
        if stage == "accepted":
            delta['plans_accepted'] = 1
            delta['plans_accepted_total_value'] = accepted_value
            delta['revenue_accepted_plans'] = accepted_value
        elif stage == "not_accepted":
            delta['plans_not_accepted'] = 1
            if _to_bool(entry.get('follow_up')):
                delta['plans_not_accepted_follow_up'] = 1

    elif category == "prospecting":
        channel_counts = {channel: _to_float(entry.get(channel)) for channel in app_config.PROSPECTING_CHANNELS}
        delta['leads_by_channel'] = channel_counts
        delta['leads'] = sum(channel_counts.values())
        delta['first_consultations_scheduled'] = _to_float(entry.get('scheduled'))

    elif category == "cabinet":
        cabinet_record = _lookup_record(configuration.get('cabinets', []), entry.get('cabinet_id'))
        cabinet_key = str(entry.get('cabinet_id')) if not _is_missing(entry.get('cabinet_id')) else app_config.FALLBACK_CABINET_NAME
        delta['cabinets'] = {cabinet_key: {
            'name': cabinet_record.get('name') if cabinet_record else app_config.FALLBACK_CABINET_NAME,
            'hours_available': _to_float(entry.get('hours_available')),
            'hours_occupied': _to_float(entry.get('hours_used')),
        }}

    elif category == "service-time":
        scheduled = _minutes_from_hhmm(entry.get('scheduled_time'))
        actual = _minutes_from_hhmm(entry.get('actual_start_time'))
        if scheduled is not None and actual is not None:
            delta['wait_time_total_minutes'] = float(max(0, actual - scheduled))
            delta['wait_time_samples'] = 1
        reason = str(entry.get('delay_reason') or "").lower()
        if reason == app_config.DELAY_REASON_PATIENT:
            delta['delay_reasons'] = {'patient': 1}
        elif reason == app_config.DELAY_REASON_DOCTOR:
            delta['delay_reasons'] = {'doctor': 1}

    elif category == "source":
        source_record = _lookup_record(configuration.get('sources', []), entry.get('source_id'))
        campaign_record = _lookup_record(configuration.get('campaigns', []), entry.get('campaign_id'))
        delta['source_distribution'] = {source_record.get('name') if source_record else app_config.FALLBACK_SOURCE_NAME: 1}
        delta['campaign_distribution'] = {campaign_record.get('name') if campaign_record else app_config.FALLBACK_CAMPAIGN_NAME: 1}
        if _to_bool(entry.get('is_referral')):
            delta['referrals_spontaneous'] = 1

    elif category == "consultation-control":
        delta['consultation_control'] = {field: _to_float(entry.get(field)) for field in _CONSULTATION_CONTROL_FIELDS}

    elif category == "aligners":
        if _to_bool(entry.get('treatment_plan_created')):
            delta['aligners_started'] = 1

    return delta


def apply_contribution(summary: Dict[str, Any], delta: Dict[str, Any], sign: int = 1) -> Dict[str, Any]:
    """
    Adds (sign=1) or subtracts (sign=-1) an entry delta on a summary, in place.

    Subtraction floors every touched value at zero. Values are rounded to cents
    after each step so add/subtract sequences restore the previous state exactly.
    """
    def _combine(current: Any, change: float) -> float:
        combined = _round_value(_to_float(current) + sign * change)
        return max(0.0, combined) if sign < 0 else combined

    for field, change in delta.items():
        if field == 'cabinets':
            cabinets = summary.setdefault('cabinets', [])
            for cabinet_id, cabinet_delta in change.items():
                cabinet = next((c for c in cabinets if str(c.get('id')) == cabinet_id), None)
                if cabinet is None:
                    if sign < 0:
                        continue
                    cabinet = {'id': cabinet_id, 'name': cabinet_delta.get('name'), 'revenue': 0.0, 'hours_available': 0.0, 'hours_occupied': 0.0}
                    cabinets.append(cabinet)
                for cab_field in _CABINET_NUMERIC_FIELDS:
                    if cab_field in cabinet_delta:
                        cabinet[cab_field] = _combine(cabinet.get(cab_field), cabinet_delta[cab_field])
        elif field in _DYNAMIC_MAP_FIELDS or field in _FIXED_MAP_FIELDS:
            target_map = summary.setdefault(field, {})
            for key, key_change in change.items():
                new_value = _combine(target_map.get(key, 0), key_change)
                if sign < 0 and field in _DYNAMIC_MAP_FIELDS and new_value <= 0:
                    target_map.pop(key, None)
                else:
                    target_map[key] = new_value
        else:
            summary[field] = _combine(summary.get(field, 0), change)

    samples = _to_float(summary.get('wait_time_samples'))
    summary['avg_wait_time'] = _round_value(_to_float(summary.get('wait_time_total_minutes')) / samples) if samples > 0 else 0.0
    return summary


# --- V. Aggregation Functions ---
def aggregate_daily_to_monthly(
    clinic: Dict[str, Any],
    entries_by_category: Dict[str, List[Dict[str, Any]]],
    source_context: str = "MonthlyAggregator"
) -> Dict[Tuple[int, int], Dict[str, Any]]:
    """
    Folds all of a clinic's daily entries into one summary per (year, month).

    Args:
        clinic: Clinic record; its configuration is normalized before use.
        entries_by_category: Mapping of category to list of daily entries.
        source_context: Prefix for log lines.

    Returns:
        Dictionary keyed by (year, month) with freshly built summaries.
    """
    configuration = normalize_clinic_configuration(clinic.get('configuration'), source_context=source_context)
    clinic_for_buckets = {**clinic, 'configuration': configuration}
    buckets: Dict[Tuple[int, int], Dict[str, Any]] = {}
    logger.info(f"({source_context}) Aggregating daily entries for clinic {clinic.get('id')}")

    for category in app_config.SUMMARY_CATEGORIES:
        entries = entries_by_category.get(category) or []
        if not entries:
            continue
        period_df = pd.DataFrame({'entry_date': _parse_entry_dates([e.get('date') for e in entries])})
        invalid_dates = period_df['entry_date'].isna()
        if invalid_dates.any():
            logger.warning(f"({source_context}) Skipping {int(invalid_dates.sum())} '{category}' entries with unparseable dates.")
        period_df = period_df[~invalid_dates].copy()
        period_df['year'] = period_df['entry_date'].dt.year
        period_df['month'] = period_df['entry_date'].dt.month
        for (year, month), group in period_df.groupby(['year', 'month']):
            period_key = (int(year), int(month))
            if period_key not in buckets:
                buckets[period_key] = empty_monthly_summary(clinic_for_buckets, period_key[1], period_key[0])
            for position in group.index:
                apply_contribution(buckets[period_key], entry_contribution(category, entries[position], configuration))

    logger.info(f"({source_context}) Built {len(buckets)} monthly summaries for clinic {clinic.get('id')}")
    return buckets


def merge_monthly_summaries(
    existing_summaries: List[Dict[str, Any]],
    computed_buckets: Dict[Tuple[int, int], Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Merges freshly computed buckets into the stored summaries of one clinic.

    Matching periods get their daily-derived fields overwritten (shallow), which keeps
    backend fields such as NPS or complaints. New periods are inserted as-is.
    """
    merged = [copy.deepcopy(s) for s in existing_summaries or []]
    index_by_period = {(s.get('year'), s.get('month')): i for i, s in enumerate(merged)}
    for period_key, bucket in computed_buckets.items():
        if period_key in index_by_period:
            target = merged[index_by_period[period_key]]
            for field in DAILY_DERIVED_FIELDS:
                target[field] = copy.deepcopy(bucket[field])
        else:
            merged.append(copy.deepcopy(bucket))
    merged.sort(key=lambda s: (s.get("year") or 0, s.get("month") or 0))
    return merged


def find_monthly_summary(summaries: List[Dict[str, Any]], month: int, year: int) -> Optional[Dict[str, Any]]:
    for summary in summaries or []:
        if summary.get('month') == month and summary.get('year') == year:
            return summary
    return None


def previous_period(month: int, year: int) -> Tuple[int, int]:
    return (12, year - 1) if month == 1 else (month - 1, year)
