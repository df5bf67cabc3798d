# dental_kpi/utils/report_export.py
# Tabular report export (DataFrames and styled Excel workbook) for KPIs, alerts and monthly summaries.

import io
import logging
from typing import List, Dict, Any, Optional

import pandas as pd
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter

from dental_kpi.config import app_config

logger = logging.getLogger(__name__)

KPI_EXPORT_COLUMNS = {
    "name": "Indicador", "value": "Valor", "unit": "Unidade",
    "change": "Variação", "status": "Estado", "target": "Meta",
}
ALERT_EXPORT_COLUMNS = {"rule": "Regra", "message": "Mensagem", "severity": "Severidade"}


def kpis_to_dataframe(kpis: List[Dict[str, Any]]) -> pd.DataFrame:
    if not kpis:
        return pd.DataFrame(columns=list(KPI_EXPORT_COLUMNS.values()))
    df = pd.DataFrame(kpis)
    df['target'] = df['target'].astype(str)
    return df[list(KPI_EXPORT_COLUMNS)].rename(columns=KPI_EXPORT_COLUMNS)


def alerts_to_dataframe(alerts: List[Dict[str, Any]]) -> pd.DataFrame:
    if not alerts:
        return pd.DataFrame(columns=list(ALERT_EXPORT_COLUMNS.values()))
    return pd.DataFrame(alerts)[list(ALERT_EXPORT_COLUMNS)].rename(columns=ALERT_EXPORT_COLUMNS)


def monthly_summaries_to_dataframe(summaries: List[Dict[str, Any]]) -> pd.DataFrame:
    """One row per month; nested maps become dotted columns, cabinets get their own sheet."""
    if not summaries:
        return pd.DataFrame()
    rows = [{k: v for k, v in s.items() if k != 'cabinets'} for s in summaries]
    df = pd.json_normalize(rows, sep='.')
    leading = [c for c in ('clinic_id', 'year', 'month') if c in df.columns]
    return df[leading + [c for c in df.columns if c not in leading and c != 'id']]


def cabinets_to_dataframe(summaries: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = [
        {'year': s.get('year'), 'month': s.get('month'), **cabinet}
        for s in summaries or [] for cabinet in s.get('cabinets') or []
    ]
    return pd.DataFrame(rows)


def _style_sheet(worksheet) -> None:
    header_font = Font(bold=True, color=app_config.EXPORT_HEADER_FONT_COLOR)
    header_fill = PatternFill(start_color=app_config.EXPORT_HEADER_FILL, end_color=app_config.EXPORT_HEADER_FILL, fill_type='solid')
    thin = Side(style='thin')
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    for cell in worksheet[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center', vertical='center')
        cell.border = border
    for column_cells in worksheet.columns:
        max_length = max((len(str(c.value)) for c in column_cells if c.value is not None), default=0)
        worksheet.column_dimensions[get_column_letter(column_cells[0].column)].width = min(max_length + 2, 60)


def export_kpi_report_excel(
    clinic_name: str,
    month: int,
    year: int,
    kpis: List[Dict[str, Any]],
    alerts: List[Dict[str, Any]],
    summaries: Optional[List[Dict[str, Any]]] = None
) -> bytes:
    """
    Writes the month's KPIs and alerts (and optionally the monthly summaries) to an xlsx workbook.

    Returns:
        Workbook content as bytes, ready for st.download_button or a file write.
    """
    month_label = app_config.MONTH_NAMES[month - 1] if 1 <= month <= 12 else str(month)
    sheets = {
        "KPIs": kpis_to_dataframe(kpis),
        "Alertas": alerts_to_dataframe(alerts),
    }
    if summaries:
        sheets["Resumos Mensais"] = monthly_summaries_to_dataframe(summaries)
        sheets["Gabinetes"] = cabinets_to_dataframe(summaries)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            _style_sheet(writer.sheets[sheet_name])
        writer.book.properties.title = f"{clinic_name} - {month_label} {year}"
    logger.info(f"(ReportExport) Excel report built for {clinic_name} {month_label} {year}: {', '.join(sheets)}")
    return buffer.getvalue()
