"""
Plotly figures for the dashboard views.

Builders take the core structures (AggregateTable, Distribution, Marker) and
never touch raw rows, so every figure reflects exactly what the aggregation
layer computed.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import plotly.graph_objects as go

from collisions.aggregations import AggregateTable
from collisions.breakdown import Distribution, Marker
from collisions.filters import Metric
from collisions.scales import ColorScale, rgba_string, to_rgba
from collisions.utils import BOROUGH_COLORS

NYC_CENTER = {'lat': 40.7128, 'lon': -74.006}
PIE_COLORS = ['#FFCD56', '#FF6384', '#36A2EB']
MARKER_COLOR = 'rgba(238, 55, 56, 0.69)'
TITLE_COLOR = '#9A9EAC'
BOUNDARY_FILL_ALPHA = 0.2

PLOTLY_CONFIG = {
    'scrollZoom': True,
    'displaylogo': False,
    'modeBarButtonsToRemove': ['lasso2d', 'select2d'],
}


def line_figure(table: AggregateTable, metric: Metric) -> go.Figure:
    """One line per borough over the years; customdata carries the borough for click navigation."""
    fig = go.Figure()
    for borough, values in table.series().items():
        fig.add_trace(go.Scatter(
            x=list(table.outer_keys),
            y=values,
            mode='lines+markers',
            name=borough,
            line=dict(color=BOROUGH_COLORS.get(borough)),
            marker=dict(size=10),
            customdata=[borough] * len(values),
        ))
    fig.update_layout(
        template='plotly_white',
        title=dict(text=f'Yearly {metric.label} Data by Borough', font=dict(color=TITLE_COLOR)),
        xaxis_title='Year',
        yaxis=dict(rangemode='tozero'),
        legend=dict(orientation='h', y=1.1),
        margin=dict(t=60, b=30),
    )
    fig.update_xaxes(type='category')
    return fig


def radar_figure(table: AggregateTable, title: str = 'Total Injury Trend Across an Average Day') -> go.Figure:
    totals = table.outer_totals()
    axes = [str(k) for k in totals]
    values = list(totals.values())
    fig = go.Figure()
    if axes:
        fig.add_trace(go.Scatterpolar(
            r=values + values[:1],
            theta=axes + axes[:1],
            fill='toself',
            name='Total',
            hovertemplate='%{theta}: %{r:.1f}<extra></extra>',
        ))
    polar = dict(radialaxis=dict(visible=True))
    # empty table: radial axis stays on autorange
    if table.max_value() > 0:
        polar['radialaxis']['range'] = [0, table.max_value()]
    fig.update_layout(template='plotly_white', title=title, polar=polar, showlegend=False)
    return fig


def matrix_figure(table: AggregateTable, selected: Optional[Tuple[str, str]] = None) -> go.Figure:
    """
    Vehicle x month heat-grid. Cell colour comes from ColorScale so an all-zero
    table renders every cell at the floor colour.
    """
    scale = ColorScale(table.max_value())
    months = [str(m) for m in table.outer_keys]
    vehicles = [str(v) for v in table.inner_keys]
    frame = table.to_frame()

    z = [[scale.intensity(frame.at[m, v]) for m in table.outer_keys] for v in table.inner_keys]
    text = [['' if frame.at[m, v] == 0 else f'{frame.at[m, v]:g}' for m in table.outer_keys] for v in table.inner_keys]

    fig = go.Figure(go.Heatmap(
        z=z,
        x=months,
        y=vehicles,
        text=text,
        texttemplate='%{text}',
        zmin=0,
        zmax=1,
        colorscale=scale.plotly_colorscale(),
        showscale=False,
        hovertemplate='%{y} in %{x}: %{text}<extra></extra>',
        xgap=1,
        ygap=1,
    ))
    if selected is not None and selected[0] in months and selected[1] in vehicles:
        fig.add_trace(go.Scatter(
            x=[selected[0]],
            y=[selected[1]],
            mode='markers',
            marker=dict(symbol='square-open', size=28, color='#FF6384', line=dict(width=3)),
            hoverinfo='skip',
            showlegend=False,
        ))
    fig.update_layout(
        template='plotly_white',
        xaxis=dict(side='top', type='category'),
        yaxis=dict(autorange='reversed', type='category'),
        margin=dict(t=40, b=20),
        height=max(300, 28 * len(vehicles) + 80),
    )
    return fig


def pie_figure(distribution: Distribution, title: str) -> Optional[go.Figure]:
    """Victim split; None when every category is zero so the caller renders nothing."""
    if distribution.is_empty:
        return None
    fig = go.Figure(go.Pie(
        labels=Distribution.labels(),
        values=list(distribution),
        marker=dict(colors=PIE_COLORS),
        sort=False,
    ))
    fig.update_layout(template='plotly_white', title=title)
    return fig


def _marker_hover(marker: Marker) -> str:
    lines = [
        f'<b>{marker.neighborhood}, {marker.borough}</b>',
        f'Total incidents: {marker.total_incidents}',
        '',
        f'Total injured: {marker.total_injured}',
    ]
    lines += [f'  - {label}: {value:g}' for label, value in zip(Distribution.labels(), marker.injured)]
    lines += ['', f'Total killed: {marker.total_killed}']
    lines += [f'  - {label}: {value:g}' for label, value in zip(Distribution.labels(), marker.killed)]
    return '<br>'.join(lines)


def boundary_traces(boundaries: Optional[Dict]) -> List[go.Choroplethmap]:
    """One outline layer per borough, drawn in the borough's colour."""
    if not boundaries:
        return []
    traces = []
    for feature in boundaries.get('features', []):
        borough = feature.get('id')
        color = BOROUGH_COLORS.get(borough, BOROUGH_COLORS['Manhattan'])
        fill = rgba_string(to_rgba(color)[:3] + (BOUNDARY_FILL_ALPHA,))
        traces.append(go.Choroplethmap(
            geojson={'type': 'FeatureCollection', 'features': [feature]},
            locations=[borough],
            z=[1],
            colorscale=[[0.0, fill], [1.0, fill]],
            showscale=False,
            marker=dict(line=dict(color=color, width=1.5)),
            name=borough,
            hovertemplate=f'{borough}<extra></extra>',
        ))
    return traces


def marker_map_figure(
        markers: Sequence[Marker],
        boundaries: Optional[Dict] = None,
        center: Dict[str, float] = None,
        zoom: float = 9.6,
        ) -> go.Figure:
    """Neighborhood markers over the borough outlines (outlines are skipped when boundaries is None)."""
    center = center or NYC_CENTER
    fig = go.Figure(boundary_traces(boundaries))
    fig.add_trace(go.Scattermap(
        lat=[m.lat for m in markers],
        lon=[m.lon for m in markers],
        mode='markers',
        marker=dict(size=[m.size * 2 for m in markers], color=MARKER_COLOR, sizemode='diameter'),
        text=[_marker_hover(m) for m in markers],
        hoverinfo='text',
    ))
    fig.update_layout(
        map=dict(style='carto-darkmatter', center=center, zoom=zoom),
        margin=dict(l=0, r=0, t=0, b=0),
        height=600,
        showlegend=False,
    )
    return fig
