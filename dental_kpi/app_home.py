# dental_kpi/app_home.py
# Main landing page for "Dental KPI Co-Pilot": network overview of every clinic's latest month.

import streamlit as st
import sys
import os
import logging

# --- Path Setup ---
# `streamlit run dental_kpi/app_home.py` only puts dental_kpi/ on sys.path; the package root is one level up.
_current_file_dir_app_home = os.path.dirname(os.path.abspath(__file__))
_project_root_dir_app_home = os.path.abspath(os.path.join(_current_file_dir_app_home, os.pardir))
if _project_root_dir_app_home not in sys.path:
    sys.path.insert(0, _project_root_dir_app_home)

try:
    from dental_kpi.config import app_config
    from dental_kpi.utils.session_service import get_data_service
    from dental_kpi.pages.clinic_components.summary_generator import format_kpi_value
except ImportError as e_import_home:
    error_msg_app_home = (
        f"CRITICAL IMPORT ERROR in app_home.py: {e_import_home}. "
        f"Python Path: {sys.path}. Project root: {_project_root_dir_app_home}."
    )
    print(error_msg_app_home, file=sys.stderr)
    raise ImportError(error_msg_app_home) from e_import_home

st.set_page_config(
    page_title=f"{app_config.APP_NAME} - Visão Geral",
    page_icon="🦷",
    layout="wide",
    initial_sidebar_state="expanded",
    menu_items={
        'Get Help': f"mailto:{app_config.SUPPORT_CONTACT_INFO}",
        'About': f"### {app_config.APP_NAME} (v{app_config.APP_VERSION})\nIndicadores mensais para a gestão de clínicas dentárias."
    }
)

# --- Logging Setup ---
log_level_main_app = getattr(logging, str(app_config.LOG_LEVEL).upper(), logging.INFO)
logging.basicConfig(
    level=log_level_main_app, format=app_config.LOG_FORMAT, datefmt=app_config.LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)], force=True
)
logger = logging.getLogger(__name__)


# --- CSS Loading ---
@st.cache_resource
def load_app_home_styles(css_file_path: str):
    if os.path.exists(css_file_path):
        try:
            with open(css_file_path, encoding="utf-8") as f_css:
                st.markdown(f'<style>{f_css.read()}</style>', unsafe_allow_html=True)
            logger.info(f"Global web CSS loaded by app_home: {css_file_path}")
        except OSError as e:
            logger.error(f"Error reading global CSS {css_file_path} in app_home: {e}")
            st.error("Erro ao carregar os estilos da aplicação.")
    else:
        logger.warning(f"Global web CSS file not found by app_home: {css_file_path}. Default styles apply.")


if hasattr(app_config, 'STYLE_CSS_PATH_WEB'):
    load_app_home_styles(app_config.STYLE_CSS_PATH_WEB)

# --- App Header ---
st.title(f"🦷 {app_config.APP_NAME}")
st.subheader("Indicadores mensais, metas e alertas para a sua rede de clínicas")
st.divider()

service = get_data_service()
api_client = service.api_client
if api_client is not None and api_client.has_token:
    st.success(f"Ligado ao servidor: {api_client.base_url}")
else:
    st.info("Sessão não autenticada: os dados vêm do ficheiro local e as alterações não são sincronizadas.")

# --- Clinic Overview ---
st.header("Visão Geral das Clínicas")
clinics = service.list_clinics()
if not clinics:
    st.warning("Nenhuma clínica disponível.")

cols_overview = st.columns(2)
for i, clinic in enumerate(clinics):
    summaries = service.list_monthly_summaries(clinic['id'])
    with cols_overview[i % 2]:
        with st.container(border=True):
            st.subheader(clinic.get('name', clinic['id']))
            if not summaries:
                st.caption("Ainda sem resumos mensais.")
                continue
            latest = summaries[-1]
            month, year = latest['month'], latest['year']
            st.caption(f"Último mês com dados: {app_config.MONTH_NAMES[month - 1]} {year}")
            kpis = {k['id']: k for k in service.calculate_kpis(clinic['id'], month, year)}
            alerts = service.calculate_alerts(clinic['id'], month, year)
            metric_cols = st.columns(3)
            for col, kpi_id in zip(metric_cols, ("revenue_monthly", "acceptance_rate", "aligners_started")):
                kpi = kpis.get(kpi_id)
                if kpi:
                    col.metric(kpi['name'], format_kpi_value(kpi['value'], kpi['unit']),
                               delta=f"{kpi['change']:+.1f}" if kpi['change'] else None)
            critical = sum(1 for a in alerts if a['severity'] == app_config.ALERT_SEVERITY_DESTRUCTIVE)
            st.markdown(f"<small>{len(alerts)} alerta(s) ativo(s), {critical} crítico(s).</small>", unsafe_allow_html=True)

st.divider()
if st.button("Abrir Painel da Clínica", type="primary", key="nav_clinic_dashboard_main_page"):
    st.switch_page("pages/1_clinic_dashboard.py")

# --- Sidebar Content ---
st.sidebar.header(f"{app_config.APP_NAME}")
st.sidebar.divider()
st.sidebar.markdown(f"**{app_config.ORGANIZATION_NAME}**")
st.sidebar.markdown(f"Suporte: [{app_config.SUPPORT_CONTACT_INFO}](mailto:{app_config.SUPPORT_CONTACT_INFO})")
st.sidebar.divider()
st.sidebar.caption(app_config.APP_FOOTER_TEXT)

logger.info(f"{app_config.APP_NAME} (v{app_config.APP_VERSION}) - Overview page (app_home.py) loaded.")
