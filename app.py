import streamlit as st
import pandas as pd
from pathlib import Path
import sys
from functools import partial
from typing import Any, Dict, List, Optional

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from collisions.aggregations import monthly_by_vehicle, time_bucket_totals, top_vehicle_types, yearly_by_borough
from collisions.breakdown import neighborhood_markers, victim_distribution
from collisions.config import DATASETS, load_settings
from collisions.data import CollisionDatasetDownloader, CollisionDataStore, load_dataset
from collisions.figures import PLOTLY_CONFIG, line_figure, marker_map_figure, matrix_figure, pie_figure, radar_figure
from collisions.filters import ALL_LABEL, UNSELECTED, FilterState, Metric, Selection
from collisions.utils import BOROUGHS
from collisions.utils.logger_config import setup_logger

logger = setup_logger('dashboard')

VIEWS = {
    'trends': 'Trends',
    'geomap': 'GeoMap & daily pattern',
    'matrix': 'Vehicle matrix',
}
DEFAULT_VIEW = 'trends'

# everything the map view needs, fetched together on page load
GEOMAP_SOURCES = ('geomap', 'spider', 'centroids', 'boundaries')


@st.cache_resource(show_spinner=False)
def get_downloader() -> CollisionDatasetDownloader:
    return CollisionDatasetDownloader(load_settings())


def get_store() -> CollisionDataStore:
    if 'store' not in st.session_state:
        st.session_state['store'] = CollisionDataStore()
    return st.session_state['store']


def loaders_for(names: List[str]) -> Dict:
    downloader = get_downloader()
    loaders = {}
    for name in names:
        if name == 'centroids':
            loaders[name] = lambda: (downloader.load_centroids(), None)
        elif name == 'boundaries':
            loaders[name] = lambda: (downloader.load_boundaries(), None)
        else:
            loaders[name] = partial(load_dataset, downloader, name)
    return loaders


def preload(*names: str) -> None:
    """Fetch every name not yet held, in parallel. Failures are remembered until the user retries."""
    store = get_store()
    failed = st.session_state.setdefault('failed', {})
    pending = [n for n in names if not store.is_loaded(n) and n not in failed]
    if not pending:
        return
    with st.spinner(f'Loading {", ".join(pending)} data...'):
        errors = store.load_all(loaders_for(pending), max_workers=get_downloader().max_workers)
    failed.update({name: str(e) for name, e in errors.items()})


def get_dataset(name: str) -> Optional[Any]:
    """Loaded table for name, or None while it is unavailable."""
    preload(name)
    return get_store().get(name)


def clicked_points(event) -> List[dict]:
    if isinstance(event, dict):
        return event.get('selection', {}).get('points', []) or []
    return []


def navigate(view: str, state: Optional[FilterState] = None) -> None:
    params = {'view': view}
    if state is not None:
        params.update(state.to_query_params())
    st.query_params.from_dict(params)
    st.rerun()


def year_options(rows: Optional[pd.DataFrame]) -> List[str]:
    if rows is None or rows.empty:
        return [ALL_LABEL]
    return [ALL_LABEL] + sorted(rows['year'].dropna().unique().tolist(), key=int)


def borough_options(rows: Optional[pd.DataFrame]) -> List[str]:
    if rows is None:
        return list(BOROUGHS)
    present = set(rows['borough'].dropna().unique().tolist())
    return [b for b in BOROUGHS if b in present]


def render_trends() -> None:
    st.header('Injuries and fatalities by borough')
    st.caption('Click a point to open the vehicle matrix for that year and borough.')
    rows = get_dataset('accidents')

    columns = st.columns(2, gap='large')
    for column, metric in zip(columns, Metric):
        with column:
            if rows is None:
                show_unavailable('accidents', f'{metric.label.lower()} data')
                continue
            table = yearly_by_borough(rows, metric)
            event = st.plotly_chart(
                line_figure(table, metric),
                use_container_width=True,
                config=PLOTLY_CONFIG,
                key=f'trend-{metric.value}',
                on_select='rerun',
                selection_mode=('points',),
            )
            points = clicked_points(event)
            if not points:
                continue
            point = points[0]
            year_index = point.get('point_index')
            curve = point.get('curve_number')
            if year_index is None or curve is None:
                continue
            state = (
                FilterState()
                .with_year(table.outer_keys[year_index])
                .with_borough(table.inner_keys[curve])
                .with_metric(metric)
            )
            logger.info(f'Trend click -> matrix {state.to_query_params()}')
            navigate('matrix', state)


def render_geomap() -> None:
    st.header('Where collisions happen')
    preload(*GEOMAP_SOURCES)
    geomap = get_dataset('geomap')
    spider = get_dataset('spider')
    centroids = get_dataset('centroids') or {}
    boundaries = get_dataset('boundaries')

    state: FilterState = st.session_state.get('geomap_state', FilterState())
    year = st.selectbox('Select Year', year_options(geomap), key='geomap-year')
    state = state.with_year(year)

    left, right = st.columns([3, 2], gap='large')
    with left:
        if geomap is None:
            show_unavailable('geomap', 'map data')
        else:
            vehicles = [None] + top_vehicle_types(geomap, state)
            # keyed by year so a year change also clears the widget
            vehicle = st.selectbox(
                'Select Vehicle Type',
                vehicles,
                format_func=lambda v: 'Type' if v is None else v,
                key=f'geomap-vehicle-{year}',
            )
            state = state.select_vehicle(vehicle)
            markers = neighborhood_markers(geomap, state, centroids)
            st.plotly_chart(marker_map_figure(markers, boundaries), use_container_width=True, config=PLOTLY_CONFIG, key='geomap')
            if state.year.is_all or not state.vehicle.is_selected:
                st.caption('Pick a year and a vehicle type to place neighborhood markers.')
            elif not markers:
                st.caption('No collisions recorded for this year and vehicle type.')

    with right:
        if spider is None:
            show_unavailable('spider', 'daily pattern data')
        else:
            picked = st.multiselect(
                'Select Borough(s)',
                borough_options(spider),
                placeholder='All boroughs',
                key='radar-boroughs',
            )
            table = time_bucket_totals(spider, state.with_borough(picked))
            title = f'Total {state.metric.label} Trend Across an Average Day'
            st.plotly_chart(radar_figure(table, title), use_container_width=True, config=PLOTLY_CONFIG, key='radar')

    st.session_state['geomap_state'] = state


def render_matrix() -> None:
    incoming = FilterState.from_query_params(st.query_params)
    rows = get_dataset('matrix')
    st.header('Vehicle type by month')
    if rows is None:
        show_unavailable('matrix', 'matrix data')
        return

    years = year_options(rows)
    boroughs = [ALL_LABEL] + borough_options(rows)
    metrics = list(Metric)
    current_year = incoming.to_query_params()['year']
    current_borough = incoming.to_query_params()['borough']

    c1, c2, c3 = st.columns(3)
    year = c1.selectbox('Select Year', years, index=years.index(current_year) if current_year in years else 0)
    metric = c2.selectbox(
        'Select Type',
        metrics,
        index=metrics.index(incoming.metric),
        format_func=lambda m: m.value.title(),
    )
    borough = c3.selectbox(
        'Select Borough',
        boroughs,
        index=boroughs.index(current_borough) if current_borough in boroughs else 0,
    )
    state = incoming.with_year(year).with_borough(borough).with_metric(metric)
    if state.to_query_params() != incoming.to_query_params():
        st.query_params.update(state.to_query_params())

    table = monthly_by_vehicle(rows, state)
    if table.is_empty:
        st.info('No collisions recorded for this selection.')
        return

    cell: Selection = st.session_state.get('matrix_cell', UNSELECTED)
    st.plotly_chart(matrix_figure(table, cell.value), use_container_width=True, config=PLOTLY_CONFIG, key='matrix')

    st.subheader('Victims for one cell')
    m_col, v_col, b_col = st.columns([2, 2, 1])
    month = m_col.selectbox('Month', list(table.outer_keys), key='matrix-month')
    vehicle = v_col.selectbox('Vehicle', list(table.inner_keys), key='matrix-vehicle')
    b_col.write('')
    if b_col.button('Show / hide', key='matrix-toggle'):
        cell = cell.toggle((month, vehicle))
        st.session_state['matrix_cell'] = cell
        st.rerun()

    if not cell.is_selected:
        return
    sel_month, sel_vehicle = cell.value
    if sel_month not in table.outer_keys or sel_vehicle not in table.inner_keys:
        st.caption('The selected cell is not part of the current table.')
        return
    distribution = victim_distribution(rows, state, month=sel_month, vehicle=sel_vehicle)
    fig = pie_figure(distribution, f'{state.metric.label} victims: {sel_vehicle}, {sel_month}')
    if fig is None:
        st.caption('No pedestrian, cyclist or motorist victims recorded for this cell.')
    else:
        st.plotly_chart(fig, use_container_width=True, config=PLOTLY_CONFIG, key='matrix-pie')


def show_unavailable(name: str, what: str) -> None:
    error = st.session_state.get('failed', {}).get(name)
    if error:
        st.warning(f'Could not load {what}. Use "Retry failed loads" in the sidebar.')
    else:
        st.info(f'Loading {what}...')


def render_data_notes() -> None:
    store = get_store()
    notes = []
    for name in DATASETS:
        report = store.report(name)
        if report is not None:
            notes.append(f'{name}: {report.rows_kept:,} rows kept, {report.rows_dropped:,} skipped')
    failed = st.session_state.get('failed', {})
    if not notes and not failed:
        return

    st.sidebar.markdown('---')
    st.sidebar.subheader('Data notes')
    for note in notes:
        st.sidebar.caption(note)
    for name, error in failed.items():
        st.sidebar.caption(f'{name}: unavailable ({error})')
    if failed and st.sidebar.button('Retry failed loads', key='retry-loads'):
        st.session_state['failed'] = {}
        st.rerun()


def main():
    st.set_page_config(page_title='NYC Motor Vehicle Collisions', layout='wide')

    view = st.query_params.get('view', DEFAULT_VIEW)
    if view not in VIEWS:
        view = DEFAULT_VIEW

    st.sidebar.header('NYC motor vehicle collisions')
    keys = list(VIEWS)
    choice = st.sidebar.radio('View', keys, index=keys.index(view), format_func=VIEWS.get)
    if choice != view:
        navigate(choice)

    if view == 'trends':
        render_trends()
    elif view == 'geomap':
        render_geomap()
    else:
        render_matrix()

    render_data_notes()


if __name__ == '__main__':
    main()
