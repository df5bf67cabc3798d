# dental_kpi/pages/1_clinic_dashboard.py
# Monthly clinic KPI console for Dental KPI Co-Pilot: KPIs, alerts, breakdowns, entries and exports.

import streamlit as st
import sys
import os

# --- Robust Path Setup for Imports ---
_current_file_directory_clinic = os.path.dirname(os.path.abspath(__file__))
_project_root_directory_clinic = os.path.abspath(os.path.join(_current_file_directory_clinic, os.pardir, os.pardir))
if _project_root_directory_clinic not in sys.path:
    sys.path.insert(0, _project_root_directory_clinic)

try:
    from dental_kpi.config import app_config
    from dental_kpi.utils.session_service import get_data_service
    from dental_kpi.utils.report_export import export_kpi_report_excel
    from dental_kpi.utils.ui_visualization_helpers import (
        render_web_kpi_card, render_web_alert_banner,
        plot_annotated_line_chart_web, plot_bar_chart_web, plot_donut_chart_web
    )
    from dental_kpi.pages.clinic_components.kpi_card_structurer import structure_clinic_kpi_cards
except ImportError as e_import_clinic:
    error_msg_clinic = (
        f"CRITICAL IMPORT ERROR in 1_clinic_dashboard.py: {e_import_clinic}. "
        f"Current Python Path: {sys.path}. "
        f"Attempted to add to path: {_project_root_directory_clinic}."
    )
    print(error_msg_clinic, file=sys.stderr)
    st.error(error_msg_clinic)
    st.stop()

import logging
import pandas as pd
from datetime import date

st.set_page_config(
    page_title=f"Painel da Clínica - {app_config.APP_NAME}",
    layout="wide",
    initial_sidebar_state="expanded"
)
logger = logging.getLogger(__name__)


def _show_mutation_result(result) -> None:
    notify = {"success": st.success, "warning": st.warning}.get(result.level, st.error)
    notify(result.message)


# --- Sidebar Filters ---
service = get_data_service()
clinics = service.list_clinics()
if not clinics:
    st.warning("Nenhuma clínica disponível. Verifique a ligação ao servidor ou o ficheiro de dados local.")
    st.stop()

st.sidebar.header("🗓️ Filtros")
clinic_names = {c['id']: c.get('name', c['id']) for c in clinics}
selected_clinic_id = st.sidebar.selectbox(
    "Clínica:", options=list(clinic_names), format_func=clinic_names.get, key="clinic_dashboard_clinic"
)
available_periods = [(s['year'], s['month']) for s in service.list_monthly_summaries(selected_clinic_id)]
default_year, default_month = available_periods[-1] if available_periods else (date.today().year, date.today().month)
selected_month = st.sidebar.selectbox(
    "Mês:", options=list(range(1, 13)), index=default_month - 1,
    format_func=lambda m: app_config.MONTH_NAMES[m - 1], key="clinic_dashboard_month"
)
selected_year = st.sidebar.number_input("Ano:", min_value=2015, max_value=2100, value=default_year, step=1, key="clinic_dashboard_year")
selected_year = int(selected_year)

if st.sidebar.button("🔄 Recarregar dados do servidor"):
    if service.reload_clinic(selected_clinic_id):
        service.load_monthly_data(selected_clinic_id, selected_year)
        st.sidebar.success("Dados atualizados.")
    else:
        st.sidebar.error("Não foi possível recarregar os dados.")

clinic = service.get_clinic(selected_clinic_id)
period_label = f"{app_config.MONTH_NAMES[selected_month - 1]} {selected_year}"
st.title(f"🦷 {clinic.get('name', selected_clinic_id)} - Indicadores Mensais")
st.markdown(f"**Período:** {period_label}")
st.divider()

summary = service.get_monthly_summary(selected_clinic_id, selected_month, selected_year)
kpis = service.calculate_kpis(selected_clinic_id, selected_month, selected_year)
alerts = service.calculate_alerts(selected_clinic_id, selected_month, selected_year)

# --- Section 1: KPI Cards ---
st.header("📊 Indicadores")
if kpis:
    kpi_cards = structure_clinic_kpi_cards(kpis)
    kpi_columns = st.columns(4)
    for i, card_kwargs in enumerate(kpi_cards):
        with kpi_columns[i % 4]:
            render_web_kpi_card(**card_kwargs)
else:
    st.info(f"Sem dados agregados para {period_label}. Os registos diários deste mês aparecem após a próxima recarga.")

# --- Section 2: Alerts ---
st.header("🚨 Alertas")
if alerts:
    for alert in alerts:
        render_web_alert_banner(alert['rule'], alert['message'], alert['severity'])
elif summary:
    st.success("Nenhum alerta ativo para este mês.")

# --- Section 3: Breakdowns ---
if summary:
    st.header("🔍 Detalhe do Mês")
    col_left, col_right = st.columns(2)
    with col_left:
        revenue_df = pd.DataFrame(list(summary.get('revenue_by_category', {}).items()), columns=['categoria', 'faturacao'])
        st.plotly_chart(plot_donut_chart_web(revenue_df, 'categoria', 'faturacao', "Faturação por Categoria",
                                             values_are_absolute_counts=False), use_container_width=True)
        leads_df = pd.DataFrame(list(summary.get('leads_by_channel', {}).items()), columns=['canal', 'leads'])
        st.plotly_chart(plot_bar_chart_web(leads_df, 'canal', 'leads', "Leads por Canal", y_is_count=True), use_container_width=True)
    with col_right:
        cabinets_df = pd.DataFrame(summary.get('cabinets') or [])
        if not cabinets_df.empty:
            cabinets_df['ocupacao_pct'] = (cabinets_df['hours_occupied'] / cabinets_df['hours_available'].where(cabinets_df['hours_available'] > 0)).fillna(0) * 100
        st.plotly_chart(plot_bar_chart_web(cabinets_df, 'name', 'ocupacao_pct', "Ocupação por Gabinete (%)",
                                           y_axis_label="Ocupação (%)", x_axis_label="Gabinete"), use_container_width=True)
        sources_df = pd.DataFrame(list(summary.get('source_distribution', {}).items()), columns=['origem', 'pacientes'])
        st.plotly_chart(plot_donut_chart_web(sources_df, 'origem', 'pacientes', "Origem dos Pacientes"), use_container_width=True)

    history = service.list_monthly_summaries(selected_clinic_id)
    revenue_series = pd.Series(
        [s.get('revenue_total', 0) for s in history],
        index=pd.Index([f"{s['year']}-{s['month']:02d}" for s in history], name="Mês")
    )
    targets = service.get_targets(selected_clinic_id, selected_month, selected_year)
    st.plotly_chart(plot_annotated_line_chart_web(revenue_series, "Evolução da Faturação", y_axis_label="Faturação",
                                                  target_ref_line=targets.get('target_revenue')), use_container_width=True)
st.divider()

# --- Section 4: Financial Entries ---
st.header("✍️ Registos Financeiros")
configuration = clinic.get('configuration', {})
with st.form("financial_entry_form", clear_on_submit=True):
    entry_date = st.date_input("Data", value=date.today())
    entry_value = st.number_input("Valor", min_value=0.0, step=50.0)
    category_options = {c['id']: c['name'] for c in configuration.get('categories', [])}
    cabinet_options = {c['id']: c['name'] for c in configuration.get('cabinets', [])}
    category_id = st.selectbox("Categoria", options=list(category_options), format_func=category_options.get) if category_options else None
    cabinet_id = st.selectbox("Gabinete", options=list(cabinet_options), format_func=cabinet_options.get) if cabinet_options else None
    if st.form_submit_button("Guardar"):
        result = service.create_entry(selected_clinic_id, "financial", {
            "date": entry_date.isoformat(), "value": entry_value,
            "category_id": category_id, "cabinet_id": cabinet_id,
        })
        _show_mutation_result(result)

financial_entries = [
    e for e in service.get_entries(selected_clinic_id, "financial")
    if str(e.get('date', '')).startswith(f"{selected_year}-{selected_month:02d}")
]
if financial_entries:
    st.dataframe(pd.DataFrame(financial_entries), use_container_width=True, hide_index=True)
    entry_to_delete = st.selectbox("Eliminar registo:", options=[e['id'] for e in financial_entries], key="financial_entry_delete")
    if st.button("🗑️ Eliminar"):
        _show_mutation_result(service.delete_entry(selected_clinic_id, "financial", entry_to_delete))
else:
    st.caption("Sem registos financeiros neste mês.")
st.divider()

# --- Section 5: Meeting Summary & Export ---
st.header("📝 Resumo para Reunião")
if kpis:
    meeting_summary = service.generate_summary(selected_clinic_id, selected_month, selected_year)
    st.code(meeting_summary['full_text'], language=None)
    report_bytes = export_kpi_report_excel(
        clinic.get('name', selected_clinic_id), selected_month, selected_year,
        kpis, alerts, service.list_monthly_summaries(selected_clinic_id)
    )
    st.download_button(
        "📥 Exportar Excel", data=report_bytes,
        file_name=f"kpis_{selected_clinic_id}_{selected_year}_{selected_month:02d}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
else:
    st.caption("O resumo fica disponível quando existirem indicadores para o mês selecionado.")

st.divider()
st.caption(app_config.APP_FOOTER_TEXT)
