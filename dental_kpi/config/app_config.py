# dental_kpi/config/app_config.py
# Configuration for "Dental KPI Co-Pilot" - multi-clinic monthly KPI dashboard

import os
import logging
from datetime import datetime

# --- Configure Logging ---
LOG_LEVEL = os.getenv("DENTAL_KPI_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger(__name__)

# --- Path Validation ---
def validate_path(path, description):
    """Validate file or directory path, log warning if missing."""
    if not os.path.exists(path):
        logger.warning(f"{description} not found: {path}")
    return path

# --- I. Core System & Directory Configuration ---
BASE_APP_ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DATA_SOURCES_DIR = validate_path(os.path.join(BASE_APP_ROOT_DIR, "data_sources"), "Data sources directory")
ASSETS_DIR = validate_path(os.path.join(BASE_APP_ROOT_DIR, "assets"), "Assets directory")
STYLE_CSS_PATH_WEB = validate_path(os.path.join(ASSETS_DIR, "style_web_reports.css"), "CSS stylesheet")

# Offline seed used when no API is configured
SEED_CLINIC_JSON = os.getenv("DENTAL_KPI_SEED_JSON", os.path.join(DATA_SOURCES_DIR, "sample_clinic.json"))

APP_NAME = "Dental KPI Co-Pilot"
APP_VERSION = "1.2.0"
ORGANIZATION_NAME = "Dental KPI"
APP_FOOTER_TEXT = f"© {datetime.now().year} {ORGANIZATION_NAME}. Indicadores mensais para clínicas dentárias."
SUPPORT_CONTACT_INFO = "suporte@dentalkpi.pt"

# --- II. REST API ---
API_BASE_URL = os.getenv("DENTAL_KPI_API_URL", "http://localhost:3001/api").rstrip("/")
API_TIMEOUT_SECONDS = float(os.getenv("DENTAL_KPI_API_TIMEOUT", "15"))
API_TOKEN_ENV_VAR = "DENTAL_KPI_API_TOKEN"
API_TOKEN_FILE = os.getenv("DENTAL_KPI_TOKEN_FILE", os.path.join(os.path.expanduser("~"), ".dental_kpi", "token"))
CACHE_TTL_SECONDS = 600

# --- III. Daily Entry Semantics ---
DAILY_ENTRY_CATEGORIES = [
    "financial", "consultation", "prospecting", "cabinet", "service-time",
    "source", "consultation-control", "aligners", "orders", "advance-invoice",
]
# Orders and advance invoices are stored but never folded into a monthly summary
SUMMARY_CATEGORIES = [
    "financial", "consultation", "prospecting", "cabinet", "service-time",
    "source", "consultation-control", "aligners",
]
PROSPECTING_CHANNELS = ["email", "sms", "whatsapp", "instagram", "phone"]

CATEGORY_KIND_ALIGNERS = "aligners"
CATEGORY_KIND_PEDIATRICS = "pediatrics"
CATEGORY_KIND_DENTISTRY = "dentistry"
CATEGORY_KIND_OTHER = "other"
CATEGORY_KINDS = [CATEGORY_KIND_ALIGNERS, CATEGORY_KIND_PEDIATRICS, CATEGORY_KIND_DENTISTRY, CATEGORY_KIND_OTHER]
# Only used to tag legacy category records that arrive without a kind
CATEGORY_KIND_KEYWORDS = {
    CATEGORY_KIND_ALIGNERS: ["alinhador"],
    CATEGORY_KIND_PEDIATRICS: ["pediatr"],
    CATEGORY_KIND_DENTISTRY: ["dentist"],
}
REVENUE_FIELD_BY_KIND = {
    CATEGORY_KIND_ALIGNERS: "revenue_aligners",
    CATEGORY_KIND_PEDIATRICS: "revenue_pediatrics",
    CATEGORY_KIND_DENTISTRY: "revenue_dentistry",
    CATEGORY_KIND_OTHER: "revenue_others",
}

FALLBACK_CATEGORY_NAME = "Sem categoria"
FALLBACK_CABINET_NAME = "Gabinete desconhecido"
FALLBACK_SOURCE_NAME = "Desconhecido"
FALLBACK_CAMPAIGN_NAME = "Geral"

DELAY_REASON_PATIENT = "paciente"
DELAY_REASON_DOCTOR = "medico"

# --- IV. Targets & Thresholds ---
DEFAULT_MONTHLY_TARGETS = {
    "target_revenue": 50000,
    "target_aligners_range": {"min": 10, "max": 15},
    "target_avg_ticket": 2500,
    "target_acceptance_rate": 70,
    "target_occupancy_rate": 80,
    "target_nps": 90,
    "target_integration_rate": 85,
    "target_agenda_distribution": {"operational": 60, "planning": 15, "sales": 15, "leadership": 10},
    "target_attendance_rate": 90,
    "target_follow_up_rate": 80,
    "target_wait_time": 10,
    "target_complaints": 5,
    "target_leads_range": {"min": 50, "max": 80},
    "target_revenue_per_cabinet": 25000,
    "target_plans_presented": {"adults": 20, "kids": 10},
}

KPI_STATUS_SUCCESS = "success"
KPI_STATUS_WARNING = "warning"
KPI_STATUS_DANGER = "danger"
KPI_WARNING_RATIO = 0.9
KPI_RANGE_WARNING_FACTOR = 0.9
# Percent KPIs judged by points below target instead of the ratio rule
KPI_POINTS_TOLERANCE = {"acceptance_rate": 10}

ALERT_SEVERITY_WARNING = "warning"
ALERT_SEVERITY_DESTRUCTIVE = "destructive"
ALERT_REVENUE_MIN_RATIO = 0.9
ALERT_ACCEPTANCE_POINTS_BELOW = 10
ALERT_OCCUPANCY_POINTS_BELOW = 15
ALERT_NPS_POINTS_BELOW = 10
ALERT_WAIT_TIME_MINUTES_ABOVE = 5

SUMMARY_TOP_N = 3

# --- V. Presentation ---
DEFAULT_LOCALE = "pt-PT"
CURRENCY_BY_LOCALE = {"pt-PT": "€", "pt-BR": "R$"}
MONTH_NAMES = [
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
]

WEB_PLOT_DEFAULT_HEIGHT = 400
WEB_PLOT_COMPACT_HEIGHT = 320

# --- VI. Color Palette ---
COLOR_STATUS_SUCCESS = "#388E3C"
COLOR_STATUS_WARNING = "#FBC02D"
COLOR_STATUS_DANGER = "#D32F2F"
COLOR_STATUS_NEUTRAL = "#757575"
COLOR_ACTION_PRIMARY = "#1976D2"
COLOR_ACTION_SECONDARY = "#546E7A"
COLOR_ACCENT_BRIGHT = "#4D7BF3"
COLOR_POSITIVE_DELTA = "#27AE60"
COLOR_NEGATIVE_DELTA = "#C0392B"
COLOR_TEXT_DARK = "#343a40"
COLOR_TEXT_HEADINGS_MAIN = "#1A2557"
COLOR_BG_PAGE = "#f8f9fa"
COLOR_BG_CONTENT = "#ffffff"
COLOR_BORDER_LIGHT = "#dee2e6"
COLOR_BORDER_MEDIUM = "#ced4da"

CATEGORY_KIND_COLORS = {
    CATEGORY_KIND_ALIGNERS: "#3B82F6",
    CATEGORY_KIND_PEDIATRICS: "#F59E0B",
    CATEGORY_KIND_DENTISTRY: "#10B981",
    CATEGORY_KIND_OTHER: "#6B7280",
}

# Excel export header styling
EXPORT_HEADER_FILL = "1A2557"
EXPORT_HEADER_FONT_COLOR = "FFFFFF"

# --- End of Configuration ---
