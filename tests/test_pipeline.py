import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import sys

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from collisions.aggregations import (
    group_and_reduce,
    monthly_by_vehicle,
    time_bucket_totals,
    top_vehicle_types,
    yearly_by_borough,
)
from collisions.breakdown import Distribution, marker_size, neighborhood_markers, victim_distribution
from collisions.data.preprocessing import UNSPECIFIED, normalize_rows, standardize_columns
from collisions.filters import FilterState, Metric
from collisions.scales import MATRIX_FLOOR, ColorScale, LinearScale, rgba_string
from collisions.utils import BOROUGHS, normalize_borough
from collisions.utils.exceptions import DataProcessingError, MalformedRowError


# Test data
@pytest.fixture
def raw_accidents():
    return pd.DataFrame({
        'date': ['2019-03-01', None, '2020-07-14', '2020-08-02'],
        'borough': ['STATEN ISLAND', 'Brooklyn', 'queens', 'Jersey City'],
        'number_of_persons_injured': ['2', '1', 'x', '4'],
        'number_of_persons_killed': ['0', '0', '1', '0'],
    }, dtype=object)


@pytest.fixture
def example_rows():
    raw = pd.DataFrame([
        {'year': '2019', 'borough': 'Brooklyn', 'total_injured': '5'},
        {'year': '2019', 'borough': 'Brooklyn', 'total_killed': '1'},
        {'year': '2020', 'borough': 'Queens', 'total_injured': '3'},
    ])
    rows, _ = normalize_rows(raw, 'accidents')
    return rows


@pytest.fixture
def matrix_rows():
    raw = pd.DataFrame({
        'year': ['2021', '2021', '2021', '2021', '2022'],
        'month': ['11', '2', '2', '3', '2'],
        'borough': ['Bronx', 'Bronx', 'Queens', 'Bronx', 'Bronx'],
        'vehicle': ['Sedan', 'Sedan', 'Taxi', 'Sedan', 'Bus'],
        'total_injured': ['4', '2', '1', '0', '7'],
        'total_killed': ['0', '1', '0', '0', '0'],
        'Pedestrians Injured': ['1', '2', '0', '0', '3'],
        'Cyclists Injured': ['1', '0', '1', '0', '0'],
        'Motorists Injured': ['2', '0', '0', '0', '4'],
        'Pedestrians Killed': ['0', '1', '0', '0', '0'],
        'Cyclists Killed': ['0', '0', '0', '0', '0'],
        'Motorists Killed': ['0', '0', '0', '0', '0'],
    })
    rows, _ = normalize_rows(raw, 'matrix')
    return rows


@pytest.fixture
def geomap_rows():
    raw = pd.DataFrame({
        'borough': ['Queens', 'Queens', 'Manhattan', 'Queens'],
        'neighborhood': ['Astoria', 'Astoria', 'Harlem', 'Astoria'],
        'year': ['2020', '2020', '2020', '2021'],
        'vehicle': ['Sedan', 'Sedan', 'Sedan', 'Sedan'],
        'total_incidents': ['60', '40', '12', '500'],
        'total_injured': ['3', '2', '1', '9'],
        'total_killed': ['0', '1', '0', '0'],
        'pedestrian_injured': ['1', '0', '1', '4'],
        'cyclist_injured': ['0', '0', '0', '0'],
        'motorist_injured': ['2', '2', '0', '5'],
        'pedestrian_killed': ['0', '1', '0', '0'],
        'cyclist_killed': ['0', '0', '0', '0'],
        'motorist_killed': ['0', '0', '0', '0'],
    })
    rows, _ = normalize_rows(raw, 'geomap')
    return rows


class TestNormalization:
    def test_standardize_columns(self):
        df = pd.DataFrame(columns=['Pedestrians Injured', ' TIME_BIN ', 'Borough'])
        result = standardize_columns(df)
        assert list(result.columns) == ['pedestrian_injured', 'time', 'borough']

    def test_borough_labels(self):
        assert normalize_borough('STATEN ISLAND') == 'Staten Island'
        assert normalize_borough('  staten   island ') == 'Staten Island'
        assert normalize_borough('Jersey City') is None
        assert normalize_borough(np.nan) is None

    def test_rows_without_year_or_borough_are_dropped(self, raw_accidents):
        rows, report = normalize_rows(raw_accidents, 'accidents')

        assert rows['borough'].tolist() == ['Staten Island', 'Queens']
        assert rows['year'].tolist() == ['2019', '2020']
        assert report.rows_in == 4
        assert report.rows_kept == 2
        assert report.rows_dropped == 2
        assert report.missing_year == 1
        assert report.missing_borough == 1

    def test_non_numeric_counts_become_zero(self, raw_accidents):
        rows, report = normalize_rows(raw_accidents, 'accidents')

        assert rows['total_injured'].tolist() == [2, 0]
        assert rows['total_killed'].tolist() == [0, 1]
        assert report.coerced_values == {'total_injured': 1}
        assert report.as_record()['coerced_values'] == 1

    def test_missing_count_columns_default_to_zero(self, raw_accidents):
        rows, _ = normalize_rows(raw_accidents, 'accidents')
        assert rows['pedestrian_injured'].tolist() == [0, 0]
        assert rows['total_incidents'].tolist() == [0, 0]

    def test_year_prefers_explicit_column(self):
        raw = pd.DataFrame({'year': ['2018', None], 'date': ['2019-01-01', '2021-05-05'], 'borough': ['Bronx', 'Bronx']})
        rows, _ = normalize_rows(raw, 'accidents')
        assert rows['year'].tolist() == ['2018', '2021']

    def test_year_from_unpadded_date(self):
        raw = pd.DataFrame({'date': ['03/15/2017'], 'borough': ['Manhattan']})
        rows, _ = normalize_rows(raw, 'accidents')
        assert rows['year'].tolist() == ['2017']

    def test_strict_mode_raises(self, raw_accidents):
        with pytest.raises(MalformedRowError) as exc_info:
            normalize_rows(raw_accidents, 'accidents', strict=True)
        assert exc_info.value.row_indices == (1, 3)

    def test_missing_required_column(self):
        raw = pd.DataFrame({'year': ['2019'], 'total_injured': ['1']})
        with pytest.raises(DataProcessingError):
            normalize_rows(raw, 'accidents')

    def test_no_year_source(self):
        raw = pd.DataFrame({'borough': ['Bronx'], 'total_injured': ['1']})
        with pytest.raises(DataProcessingError):
            normalize_rows(raw, 'accidents')

    def test_unknown_variant(self, raw_accidents):
        with pytest.raises(DataProcessingError):
            normalize_rows(raw_accidents, 'weather')

    def test_plural_headers_are_aliased(self, matrix_rows):
        assert 'pedestrian_injured' in matrix_rows.columns
        assert 'pedestrians_injured' not in matrix_rows.columns
        assert matrix_rows['month'].tolist() == [11, 2, 2, 3, 2]

    def test_input_is_not_modified(self, raw_accidents):
        before = raw_accidents.copy()
        normalize_rows(raw_accidents, 'accidents')
        pd.testing.assert_frame_equal(raw_accidents, before)


class TestGrouping:
    def test_zero_filled_table(self, example_rows):
        table = group_and_reduce(example_rows, 'year', 'borough', 'total_injured')
        assert table.to_dict() == {
            '2019': {'Brooklyn': 5, 'Queens': 0},
            '2020': {'Brooklyn': 0, 'Queens': 3},
        }

    def test_yearly_by_borough_covers_all_boroughs(self, example_rows):
        table = yearly_by_borough(example_rows, Metric.INJURED)
        assert table.inner_keys == BOROUGHS
        assert table.outer_keys == ('2019', '2020')
        assert table.cell('2020', 'Queens') == 3
        assert table.cell('2020', 'Manhattan') == 0

        killed = yearly_by_borough(example_rows, Metric.KILLED)
        assert killed.cell('2019', 'Brooklyn') == 1

    def test_sum_is_preserved(self, example_rows):
        table = group_and_reduce(example_rows, 'year', 'borough', 'total_injured')
        assert table.total() == example_rows['total_injured'].sum()

    def test_row_order_does_not_matter(self, matrix_rows):
        shuffled = matrix_rows.sample(frac=1, random_state=7).reset_index(drop=True)
        left = group_and_reduce(matrix_rows, 'year', 'borough', 'total_injured')
        right = group_and_reduce(shuffled, 'year', 'borough', 'total_injured')
        assert left.to_dict() == right.to_dict()
        assert left.outer_keys == right.outer_keys

    def test_recompute_is_identical(self, matrix_rows):
        state = FilterState().with_year('2021')
        assert monthly_by_vehicle(matrix_rows, state) == monthly_by_vehicle(matrix_rows, state)

    def test_single_key_grouping(self, example_rows):
        table = group_and_reduce(example_rows, 'year', field='total_injured')
        assert table.inner_keys == ('total_injured',)
        assert table.outer_totals() == {'2019': 5, '2020': 3}

    def test_empty_input(self, example_rows):
        table = group_and_reduce(example_rows.iloc[0:0], 'year', 'borough')
        assert table.is_empty
        assert table.max_value() == 0
        assert table.total() == 0

    def test_unknown_group_key(self, example_rows):
        with pytest.raises(DataProcessingError):
            group_and_reduce(example_rows, 'colour')

    def test_matrix_months_in_calendar_order(self, matrix_rows):
        table = monthly_by_vehicle(matrix_rows, FilterState().with_year('2021').with_borough('Bronx'))
        assert table.outer_keys == ('February', 'March', 'November')
        assert table.inner_keys == ('Sedan',)
        assert table.cell('November', 'Sedan') == 4

    def test_matrix_zero_fills_vehicles(self, matrix_rows):
        table = monthly_by_vehicle(matrix_rows, FilterState().with_year('2021'))
        assert table.cell('March', 'Taxi') == 0
        assert table.cell('February', 'Taxi') == 1

    def test_time_bucket_totals_with_borough_set(self):
        raw = pd.DataFrame({
            'year': ['2020', '2020', '2020', '2020'],
            'borough': ['Queens', 'Bronx', 'Brooklyn', 'Queens'],
            'time_bin': ['Morning', 'Morning', 'Night', 'Night'],
            'total_injured': ['1', '2', '5', '3'],
        })
        rows, _ = normalize_rows(raw, 'spider')

        both = time_bucket_totals(rows, FilterState().with_borough(['Queens', 'Bronx']))
        assert both.outer_totals() == {'Morning': 3, 'Night': 3}

        everyone = time_bucket_totals(rows, FilterState().with_borough([]))
        assert everyone.outer_totals() == {'Morning': 3, 'Night': 8}


class TestTopVehicles:
    @pytest.fixture
    def vehicle_rows(self):
        return pd.DataFrame({
            'year': ['2020'] * 8 + ['2021'],
            'borough': ['Queens'] * 9,
            'vehicle': ['Taxi', 'Sedan', 'SUV', 'Sedan', 'Taxi', 'SUV', 'Sedan', 'Bus', 'Bike'],
        })

    def test_ranked_by_row_count_with_stable_ties(self, vehicle_rows):
        state = FilterState().with_year('2020')
        assert top_vehicle_types(vehicle_rows, state) == ['Sedan', 'Taxi', 'SUV', 'Bus']

    def test_truncated_to_n(self, vehicle_rows):
        assert top_vehicle_types(vehicle_rows, FilterState().with_year('2020'), n=2) == ['Sedan', 'Taxi']

    def test_repeated_calls_agree(self, vehicle_rows):
        state = FilterState()
        first = top_vehicle_types(vehicle_rows, state)
        assert all(top_vehicle_types(vehicle_rows, state) == first for _ in range(5))

    def test_no_rows(self, vehicle_rows):
        assert top_vehicle_types(vehicle_rows, FilterState().with_year('1999')) == []


class TestBreakdown:
    def test_all_zero_distribution(self, matrix_rows):
        state = FilterState().with_year('2021').with_borough('Bronx').with_metric(Metric.KILLED)
        result = victim_distribution(matrix_rows, state, month='March', vehicle='Sedan')
        assert list(result) == [0, 0, 0]
        assert result.is_empty

    def test_distribution_for_cell(self, matrix_rows):
        state = FilterState().with_year('2021').with_borough('Bronx')
        result = victim_distribution(matrix_rows, state, month='November', vehicle='Sedan')
        assert result == Distribution(1, 1, 2)
        assert not result.is_empty

    def test_distribution_month_number(self, matrix_rows):
        state = FilterState().with_year('2021')
        assert victim_distribution(matrix_rows, state, month=2) == Distribution(2, 1, 0)

    def test_vehicle_defaults_to_selection(self, matrix_rows):
        state = FilterState().with_year('2021').select_vehicle('Taxi')
        assert victim_distribution(matrix_rows, state) == Distribution(0, 1, 0)

    def test_marker_size_bounds(self):
        assert marker_size(5) == 2
        assert marker_size(100) == 10
        assert marker_size(10000) == 50

    def test_no_markers_without_year_or_vehicle(self, geomap_rows):
        centroids = {'Astoria': (40.77, -73.93)}
        assert neighborhood_markers(geomap_rows, FilterState().select_vehicle('Sedan'), centroids) == []
        assert neighborhood_markers(geomap_rows, FilterState().with_year('2020'), centroids) == []

    def test_markers_skip_unknown_neighborhoods(self, geomap_rows):
        centroids = {'Astoria': (40.77, -73.93)}
        state = FilterState().with_year('2020').select_vehicle('Sedan')
        markers = neighborhood_markers(geomap_rows, state, centroids)

        assert len(markers) == 1
        marker = markers[0]
        assert marker.neighborhood == 'Astoria'
        assert marker.borough == 'Queens'
        assert (marker.lat, marker.lon) == (40.77, -73.93)
        assert marker.total_incidents == 100
        assert marker.size == 10
        assert marker.total_injured == 5
        assert tuple(marker.injured) == (1, 0, 4)
        assert tuple(marker.killed) == (1, 0, 0)


class TestScales:
    def test_zero_domain_maps_to_floor(self):
        scale = ColorScale(0)
        assert scale.domain == (0.0, 0.0)
        assert scale(0) == rgba_string(MATRIX_FLOOR)
        assert scale(12) == rgba_string(MATRIX_FLOOR)
        assert scale.intensity(12) == 0.0

    def test_color_interpolation(self):
        scale = ColorScale(10)
        assert scale(0) == 'rgba(54, 162, 235, 0)'
        assert scale(10) == 'rgba(54, 162, 235, 1)'
        assert scale.color(5) == (54, 162, 235, 0.5)

    def test_linear_scale(self):
        assert LinearScale((0, 10), (0, 100))(5) == 50
        assert LinearScale((0, 10), clamp=True)(20) == 1.0
        assert LinearScale((3, 3), (1, 2))(7) == 1.0
        assert LinearScale((3, 3)).is_degenerate

    def test_hex_colours(self):
        scale = ColorScale(4, floor='#000000', ceil='#FFFFFF')
        assert scale.color(2) == (128, 128, 128, 1.0)
        with pytest.raises(ValueError):
            ColorScale(4, floor='#FFF')


class TestBlankLabels:
    @pytest.fixture
    def blank_vehicle_rows(self):
        raw = pd.DataFrame({
            'year': ['2021', '2021', '2021'],
            'month': ['3', '3', '13'],
            'borough': ['Bronx', 'Bronx', 'Bronx'],
            'vehicle': ['Sedan', '  ', 'Sedan'],
            'total_injured': ['2', '5', '4'],
        })
        return normalize_rows(raw, 'matrix')

    def test_blank_vehicle_kept_as_unspecified(self, blank_vehicle_rows):
        rows, report = blank_vehicle_rows
        assert rows['vehicle'].tolist() == ['Sedan', UNSPECIFIED, 'Sedan']
        assert report.unlabeled_values == {'vehicle': 1}
        assert report.as_record()['unlabeled_values'] == 1

    def test_matrix_keeps_every_labelled_row(self, blank_vehicle_rows):
        rows, _ = blank_vehicle_rows
        table = monthly_by_vehicle(rows, FilterState().with_year('2021'))

        assert table.cell('March', UNSPECIFIED) == 5
        assert table.total() == 7
        # the month-13 row has no month key and is counted, not summed
        assert table.excluded == 1
        assert table.total() + rows.loc[rows['month'].isna(), 'total_injured'].sum() == rows['total_injured'].sum()

    def test_grouping_preserves_sum_without_missing_keys(self, blank_vehicle_rows):
        rows, _ = blank_vehicle_rows
        table = group_and_reduce(rows, 'year', 'vehicle', 'total_injured')
        assert table.excluded == 0
        assert table.total() == rows['total_injured'].sum()
