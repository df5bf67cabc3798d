# dental_kpi/utils/ui_visualization_helpers.py
# UI and Plotting helpers for Dental KPI Co-Pilot web dashboards.

import streamlit as st
import plotly.graph_objects as go
import plotly.express as px
import pandas as pd
import logging
import plotly.io as pio
import html
from typing import Optional, Dict, Any, Union

from dental_kpi.config import app_config

logger = logging.getLogger(__name__)

# Fallback config values
COLOR_STATUS_SUCCESS = getattr(app_config, 'COLOR_STATUS_SUCCESS', '#388E3C')
COLOR_STATUS_WARNING = getattr(app_config, 'COLOR_STATUS_WARNING', '#FBC02D')
COLOR_STATUS_DANGER = getattr(app_config, 'COLOR_STATUS_DANGER', '#D32F2F')
COLOR_STATUS_NEUTRAL = getattr(app_config, 'COLOR_STATUS_NEUTRAL', '#757575')
COLOR_ACTION_PRIMARY = getattr(app_config, 'COLOR_ACTION_PRIMARY', '#1976D2')
COLOR_ACTION_SECONDARY = getattr(app_config, 'COLOR_ACTION_SECONDARY', '#546E7A')
COLOR_POSITIVE_DELTA = getattr(app_config, 'COLOR_POSITIVE_DELTA', '#27AE60')
COLOR_NEGATIVE_DELTA = getattr(app_config, 'COLOR_NEGATIVE_DELTA', '#C0392B')
COLOR_TEXT_DARK = getattr(app_config, 'COLOR_TEXT_DARK', '#343a40')
COLOR_TEXT_HEADINGS_MAIN = getattr(app_config, 'COLOR_TEXT_HEADINGS_MAIN', '#1A2557')
COLOR_ACCENT_BRIGHT = getattr(app_config, 'COLOR_ACCENT_BRIGHT', '#4D7BF3')
COLOR_BACKGROUND_CONTENT = getattr(app_config, 'COLOR_BG_CONTENT', '#FFFFFF')
COLOR_BACKGROUND_PAGE = getattr(app_config, 'COLOR_BG_PAGE', '#F8F9FA')
COLOR_BORDER_LIGHT = getattr(app_config, 'COLOR_BORDER_LIGHT', '#DEE2E6')
COLOR_BORDER_MEDIUM = getattr(app_config, 'COLOR_BORDER_MEDIUM', '#CED4DA')
WEB_PLOT_DEFAULT_HEIGHT = getattr(app_config, 'WEB_PLOT_DEFAULT_HEIGHT', 400)
WEB_PLOT_COMPACT_HEIGHT = getattr(app_config, 'WEB_PLOT_COMPACT_HEIGHT', 320)
CATEGORY_KIND_COLORS = getattr(app_config, 'CATEGORY_KIND_COLORS', {})


# Core Theming and Color Utilities
def _get_theme_color(index: Any = 0, fallback_color: Optional[str] = None, color_type: str = "general") -> str:
    color_map_direct = {
        "success": COLOR_STATUS_SUCCESS, "warning": COLOR_STATUS_WARNING,
        "danger": COLOR_STATUS_DANGER, "neutral": COLOR_STATUS_NEUTRAL,
        "action_primary": COLOR_ACTION_PRIMARY, "action_secondary": COLOR_ACTION_SECONDARY,
        "positive_delta": COLOR_POSITIVE_DELTA, "negative_delta": COLOR_NEGATIVE_DELTA,
        "text_dark": COLOR_TEXT_DARK, "headings_main": COLOR_TEXT_HEADINGS_MAIN,
        "accent_bright": COLOR_ACCENT_BRIGHT
    }
    if color_type in color_map_direct:
        return color_map_direct[color_type]
    if color_type == "category_kind" and index in CATEGORY_KIND_COLORS:
        return CATEGORY_KIND_COLORS[index]
    final_fallback = fallback_color if fallback_color else COLOR_ACTION_PRIMARY
    try:
        colorway = px.colors.qualitative.Plotly
        active_template = pio.templates[pio.templates.default]
        if active_template.layout.colorway:
            colorway = active_template.layout.colorway
        num_idx = index if isinstance(index, int) else abs(hash(str(index)))
        return colorway[num_idx % len(colorway)]
    except (KeyError, AttributeError, ValueError) as e:
        logger.warning(f"Error retrieving color (index: {index}, type: {color_type}): {e}")
        return final_fallback


def set_dental_plotly_theme_web():
    theme_font_family = '-apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif'
    dental_colorway = [
        COLOR_ACTION_PRIMARY, COLOR_STATUS_SUCCESS, COLOR_STATUS_WARNING,
        COLOR_STATUS_DANGER, COLOR_ACTION_SECONDARY, "#00ACC1", "#5E35B1", "#FF7043"
    ]
    layout_config = {
        'font': dict(family=theme_font_family, size=11, color=COLOR_TEXT_DARK),
        'paper_bgcolor': COLOR_BACKGROUND_CONTENT,
        'plot_bgcolor': COLOR_BACKGROUND_PAGE,
        'colorway': dental_colorway,
        'xaxis': dict(gridcolor=COLOR_BORDER_LIGHT, linecolor=COLOR_BORDER_MEDIUM, zerolinecolor=COLOR_BORDER_MEDIUM, zerolinewidth=1, title_font_size=12, tickfont_size=10, automargin=True),
        'yaxis': dict(gridcolor=COLOR_BORDER_LIGHT, linecolor=COLOR_BORDER_MEDIUM, zerolinecolor=COLOR_BORDER_MEDIUM, zerolinewidth=1, title_font_size=12, tickfont_size=10, automargin=True),
        'title': dict(font=dict(family=theme_font_family, size=15, color=COLOR_TEXT_HEADINGS_MAIN), x=0.03, xanchor='left', y=0.95, yanchor='top', pad=dict(t=20)),
        'legend': dict(bgcolor='rgba(255,255,255,0.9)', bordercolor=COLOR_BORDER_LIGHT, borderwidth=0.5, orientation='h', yanchor='bottom', y=1.02, xanchor='right', x=1, font_size=10),
        'margin': dict(l=60, r=20, t=70, b=55)
    }
    pio.templates["dental_web_theme"] = go.layout.Template(layout=go.Layout(**layout_config))
    pio.templates.default = "plotly+dental_web_theme"
    logger.info("Plotly theme 'dental_web_theme' set.")

set_dental_plotly_theme_web()


# HTML-Based UI Components
def render_web_kpi_card(title: str, value_str: str, icon: str = "●", status_level: str = "NEUTRAL",
                        delta: Optional[str] = None, delta_is_positive: Optional[bool] = None,
                        help_text: Optional[str] = None, units: Optional[str] = ""):
    st.markdown("""
    <style>
    .kpi-card { border: 1px solid #DEE2E6; padding: 10px; border-radius: 5px; background: #FFFFFF; }
    .status-success { border-left: 5px solid #388E3C; }
    .status-warning { border-left: 5px solid #FBC02D; }
    .status-danger { border-left: 5px solid #D32F2F; background-color: #FFF5F5; }
    .kpi-title { font-size: 14px; color: #1A2557; margin: 0; }
    .kpi-value { font-size: 18px; font-weight: bold; margin: 5px 0; }
    .kpi-units { font-size: 12px; color: #6c757d; }
    .kpi-delta.positive { color: #27AE60; font-size: 12px; }
    .kpi-delta.negative { color: #C0392B; font-size: 12px; }
    </style>
    """, unsafe_allow_html=True)
    css_status_class = f"status-{status_level.lower().replace('_', '-')}"
    delta_html = f'<p class="kpi-delta {"positive" if delta_is_positive else "negative"}">{html.escape(str(delta))}</p>' if delta else ''
    tooltip_attr = f'title="{html.escape(str(help_text))}"' if help_text else ''
    units_html = f"<span class='kpi-units'>{html.escape(str(units))}</span>" if units else ""
    kpi_card_html = f"""
    <div class="kpi-card {css_status_class}" {tooltip_attr}>
        <div class="kpi-card-header">
            <div class="kpi-icon">{html.escape(str(icon))}</div>
            <h3 class="kpi-title">{html.escape(str(title)[:100])}</h3>
        </div>
        <div class="kpi-body">
            <p class="kpi-value">{html.escape(str(value_str))}{units_html}</p>
            {delta_html}
        </div>
    </div>
    """
    st.markdown(kpi_card_html, unsafe_allow_html=True)


def render_web_alert_banner(rule: str, message: str, severity: str):
    st.markdown("""
    <style>
    .alert-banner { padding: 8px 12px; border-radius: 4px; margin-bottom: 6px; font-size: 13px; }
    .alert-banner.severity-destructive { background: #FDECEA; border-left: 5px solid #D32F2F; }
    .alert-banner.severity-warning { background: #FFF8E1; border-left: 5px solid #FBC02D; }
    .alert-rule { font-weight: bold; margin-right: 6px; }
    </style>
    """, unsafe_allow_html=True)
    alert_html = f"""
    <div class="alert-banner severity-{html.escape(severity.lower())}">
        <span class="alert-rule">{html.escape(rule)}</span>
        <span class="alert-message">{html.escape(message)}</span>
    </div>
    """
    st.markdown(alert_html, unsafe_allow_html=True)


# Plotly Chart Generation
def _create_empty_plot_figure(title_str: str, height_val: Optional[int], message: str = "Sem dados disponíveis.") -> go.Figure:
    fig = go.Figure()
    fig.update_layout(
        title_text=f"{title_str}: {message}",
        height=height_val or WEB_PLOT_DEFAULT_HEIGHT,
        xaxis={'visible': False}, yaxis={'visible': False},
        annotations=[dict(text=message, xref="paper", yref="paper", showarrow=False, font=dict(size=12))]
    )
    return fig


def plot_annotated_line_chart_web(
    data_series: pd.Series, title: str, y_axis_label: str = "Valor",
    line_color: Optional[str] = None,
    target_ref_line: Optional[float] = None, target_ref_label: Optional[str] = None,
    chart_height: Optional[int] = None, y_is_count: bool = False
) -> go.Figure:
    final_height = chart_height or WEB_PLOT_COMPACT_HEIGHT
    if not isinstance(data_series, pd.Series) or data_series.empty:
        return _create_empty_plot_figure(title, final_height)
    series_clean = pd.to_numeric(data_series, errors='coerce')
    if series_clean.isnull().all():
        return _create_empty_plot_figure(title, final_height, "Dados não numéricos.")
    fig = go.Figure()
    color = line_color or _get_theme_color(0)
    y_hover = 'd' if y_is_count else ',.1f'
    fig.add_trace(go.Scatter(
        x=series_clean.index.astype(str), y=series_clean.values, mode="lines+markers", name=y_axis_label,
        line=dict(color=color, width=2), marker=dict(size=5),
        hovertemplate=f'<b>Mês</b>: %{{x}}<br><b>{y_axis_label}</b>: %{{y:{y_hover}}}<extra></extra>'
    ))
    if target_ref_line is not None:
        label = target_ref_label or f"Meta: {target_ref_line:,.2f}"
        fig.add_hline(
            y=target_ref_line, line_dash="dash", line_color=COLOR_STATUS_WARNING,
            line_width=1.2, annotation_text=label,
            annotation_position="bottom right", annotation_font_size=9
        )
    y_axis_config = dict(title_text=y_axis_label, rangemode='tozero')
    if y_is_count:
        y_axis_config['tickformat'] = 'd'
    fig.update_layout(
        title_text=title, xaxis_title=series_clean.index.name or "Mês", yaxis=y_axis_config,
        height=final_height, hovermode="x unified"
    )
    return fig


def plot_bar_chart_web(
    df: pd.DataFrame, x_col: str, y_col: str, title: str,
    color_col: Optional[str] = None, barmode: str = 'group', orientation: str = 'v',
    y_axis_label: Optional[str] = None, x_axis_label: Optional[str] = None,
    chart_height: Optional[int] = None, text_auto: Union[bool, str] = True,
    sort_by: Optional[str] = None, sort_ascending: bool = True,
    y_is_count: bool = False, color_map: Optional[Dict] = None
) -> go.Figure:
    final_height = chart_height or WEB_PLOT_DEFAULT_HEIGHT
    if not isinstance(df, pd.DataFrame) or df.empty or x_col not in df.columns or y_col not in df.columns:
        return _create_empty_plot_figure(title, final_height)
    df_plot = df.copy()
    df_plot[x_col] = df_plot[x_col].astype(str)
    df_plot[y_col] = pd.to_numeric(df_plot[y_col], errors='coerce')
    if y_is_count:
        df_plot[y_col] = df_plot[y_col].round().astype('Int64')
    df_plot.dropna(subset=[x_col, y_col], inplace=True)
    if df_plot.empty:
        return _create_empty_plot_figure(title, final_height, f"Sem dados válidos para x={x_col}, y={y_col}.")
    if sort_by and sort_by in df_plot.columns:
        df_plot.sort_values(by=sort_by, ascending=sort_ascending, inplace=True, na_position='last')
    y_title_text = y_axis_label or y_col.replace('_', ' ').title()
    x_title_text = x_axis_label or x_col.replace('_', ' ').title()
    legend_title = color_col.replace('_', ' ').title() if color_col and color_col in df_plot.columns else None
    fig = px.bar(
        df_plot, x=x_col, y=y_col, title=title, color=color_col, barmode=barmode,
        orientation=orientation, height=final_height,
        labels={y_col: y_title_text, x_col: x_title_text},
        text_auto=text_auto, color_discrete_map=color_map
    )
    fig.update_traces(
        marker_line_width=0.5, marker_line_color='rgba(0,0,0,0.2)',
        textfont_size=9, textangle=0,
        textposition='auto' if orientation == 'v' else 'outside',
        cliponaxis=False
    )
    val_axis = {'title_text': y_title_text if orientation == 'v' else x_title_text}
    if y_is_count:
        val_axis['tickformat'] = 'd'
        val_axis['rangemode'] = 'tozero'
    if orientation == 'v':
        fig.update_layout(yaxis=val_axis, xaxis={'title_text': x_title_text})
    else:
        fig.update_layout(xaxis=val_axis, yaxis={'title_text': y_title_text, 'categoryorder': 'total ascending' if sort_ascending else 'total descending'})
    fig.update_layout(uniformtext_minsize=7, uniformtext_mode='hide', legend_title_text=legend_title)
    return fig


def plot_donut_chart_web(
    df: pd.DataFrame, labels_col: str, values_col: str, title: str,
    chart_height: Optional[int] = None, color_map: Optional[Dict] = None,
    pull_amount: float = 0.03, center_annotation_text: Optional[str] = None,
    values_are_absolute_counts: bool = True
) -> go.Figure:
    final_height = chart_height or (WEB_PLOT_COMPACT_HEIGHT + 40)
    if not isinstance(df, pd.DataFrame) or df.empty or labels_col not in df.columns or values_col not in df.columns:
        return _create_empty_plot_figure(title, final_height)
    df_plot = df.copy()
    df_plot[values_col] = pd.to_numeric(df_plot[values_col], errors='coerce').fillna(0)
    df_plot = df_plot[df_plot[values_col] > 0]
    if df_plot.empty:
        return _create_empty_plot_figure(title, final_height, "Sem valores positivos.")
    df_plot.sort_values(by=values_col, ascending=False, inplace=True)
    df_plot[labels_col] = df_plot[labels_col].astype(str)
    plot_colors = [color_map.get(lbl, _get_theme_color(i)) for i, lbl in enumerate(df_plot[labels_col])] if color_map \
        else [_get_theme_color(i) for i in range(len(df_plot))]
    hover_val_format = 'd' if values_are_absolute_counts else ',.2f'
    fig = go.Figure(data=[go.Pie(
        labels=df_plot[labels_col], values=df_plot[values_col],
        hole=0.55, pull=[pull_amount if i < min(3, len(df_plot)) else 0 for i in range(len(df_plot))],
        textinfo='label+percent', insidetextorientation='radial',
        hovertemplate=f'<b>%{{label}}</b><br>Valor: %{{value:{hover_val_format}}}<br>Percentagem: %{{percent}}<extra></extra>',
        marker=dict(colors=plot_colors, line=dict(color=COLOR_BACKGROUND_CONTENT, width=1.5)),
        sort=False
    )])
    annotations = [dict(text=str(center_annotation_text), x=0.5, y=0.5, font_size=14, showarrow=False, font_color=COLOR_TEXT_DARK)] if center_annotation_text else None
    fig.update_layout(
        title_text=title, height=final_height, showlegend=True,
        legend=dict(orientation="v", yanchor="middle", y=0.5, xanchor="right", x=1.15, font_size=8),
        annotations=annotations, margin=dict(l=20, r=100, t=60, b=5)
    )
    return fig
