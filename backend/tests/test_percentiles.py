"""
Tests for scaling/percentiles.py — mid-rank seeding and table packaging.
"""

import os
import sys
import pytest
import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scaling.cohort import build_index
from scaling.errors import NonFiniteResultError
from scaling.percentiles import calculate_raw_percentile_rank, check_finite, to_dataframe


@pytest.fixture
def cohort_df():
    return pd.DataFrame({
        "student_id": [1, 1, 1, 2, 2, 2, 3, 3, 3],
        "subject_id": [1, 2, 3, 1, 2, 3, 1, 2, 3],
        "result": [85.0, 70.0, 60.0, 90.0, 75.0, 65.0, 80.0, 68.0, 58.0],
    })


class TestRawPercentileRank:
    """Tests for calculate_raw_percentile_rank."""

    def test_distinct_results(self, cohort_df):
        table = calculate_raw_percentile_rank(build_index(cohort_df))
        assert table[(1, 80.0)] == pytest.approx(1 / 6)
        assert table[(1, 85.0)] == pytest.approx(0.5)
        assert table[(1, 90.0)] == pytest.approx(5 / 6)

    def test_one_entry_per_distinct_pair(self, cohort_df):
        table = calculate_raw_percentile_rank(build_index(cohort_df))
        assert len(table) == 9

    def test_ties_share_mid_rank(self):
        df = pd.DataFrame({
            "student_id": [1, 2, 3, 4],
            "subject_id": [1, 1, 1, 1],
            "result": [50.0, 50.0, 70.0, 80.0],
        })
        table = calculate_raw_percentile_rank(build_index(df))
        assert len(table) == 3
        assert table[(1, 50.0)] == pytest.approx(0.25)
        assert table[(1, 70.0)] == pytest.approx(0.625)
        assert table[(1, 80.0)] == pytest.approx(0.875)

    def test_partial_subject_scaled_by_whole_cohort(self):
        df = pd.DataFrame({
            "student_id": [1, 2, 3, 4, 1, 2],
            "subject_id": [1, 1, 1, 1, 2, 2],
            "result": [1.0, 2.0, 3.0, 4.0, 10.0, 20.0],
        })
        table = calculate_raw_percentile_rank(build_index(df))
        assert table[(2, 10.0)] == pytest.approx(0.125)
        assert table[(2, 20.0)] == pytest.approx(0.375)

    def test_values_within_unit_interval(self, cohort_df):
        table = calculate_raw_percentile_rank(build_index(cohort_df))
        assert all(0 <= v <= 1 for v in table.values())


class TestToDataframe:
    """Tests for the r output table."""

    def test_columns_and_rows(self, cohort_df):
        idx = build_index(cohort_df)
        r = to_dataframe(idx, calculate_raw_percentile_rank(idx))
        assert list(r.columns) == ["subject_id", "result", "percentile"]
        assert len(r) == 9

    def test_rows_ordered_by_subject_then_result(self, cohort_df):
        idx = build_index(cohort_df)
        r = to_dataframe(idx, calculate_raw_percentile_rank(idx))
        first = r[r["subject_id"] == 1]["result"].tolist()
        assert first == [80.0, 85.0, 90.0]


class TestCheckFinite:
    """Tests for the non-finite guard."""

    def test_finite_passes(self):
        check_finite([0.1, 0.5, 1.0], "percentile")

    def test_nan_raises(self):
        with pytest.raises(NonFiniteResultError):
            check_finite([0.1, float("nan")], "percentile")

    def test_inf_raises(self):
        with pytest.raises(NonFiniteResultError):
            check_finite([float("inf")], "polyscore")
