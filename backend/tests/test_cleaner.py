"""
Tests for scaling/cleaner.py — triple preparation, key encoding, rejection of bad rows.
"""

import os
import sys
import pytest
import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scaling.cleaner import encode_keys, generate_preparation_report, prepare_results
from scaling.errors import InvalidInputError
from scaling.parser import parse_upload

SAMPLE_CSV = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_cohort.csv")


@pytest.fixture
def sample_df():
    sheets = parse_upload(SAMPLE_CSV)
    return list(sheets.values())[0]


class TestEncodeKeys:
    """Tests for integer key encoding."""

    def test_integer_strings_are_kept(self):
        keys, labels = encode_keys(pd.Series(["10", "20", "10"]))
        assert keys.tolist() == [10, 20, 10]
        assert labels == {}

    def test_labels_numbered_by_first_appearance(self):
        keys, labels = encode_keys(pd.Series(["English", "Maths", "English", "Art"]))
        assert keys.tolist() == [1, 2, 1, 3]
        assert labels == {1: "English", 2: "Maths", 3: "Art"}

    def test_fractional_ids_are_encoded(self):
        keys, labels = encode_keys(pd.Series([1.5, 2.0]))
        assert keys.tolist() == [1, 2]
        assert labels == {1: "1.5", 2: "2.0"}


class TestPrepareResults:
    """Tests for the prepare_results function."""

    def test_returns_triples_and_report(self, sample_df):
        triples, report = prepare_results(sample_df)
        assert list(triples.columns) == ["student_id", "subject_id", "result"]
        assert len(triples) == 48
        assert isinstance(report, dict)

    def test_dtypes(self, sample_df):
        triples, _ = prepare_results(sample_df)
        assert str(triples["student_id"].dtype) == "int64"
        assert str(triples["subject_id"].dtype) == "int64"
        assert str(triples["result"].dtype) == "float64"

    def test_subject_labels_recorded(self, sample_df):
        _, report = prepare_results(sample_df)
        subjects = report["labels"]["subject_id"]
        assert subjects[1] == "Mathematical Methods"
        assert len(subjects) == 6
        assert report["students"] == 12
        assert report["subjects"] == 6

    def test_explicit_mapping(self):
        df = pd.DataFrame({"cand": [" 1", "2 "], "course": ["7", "7"], "mark": ["55.5", "61"]})
        triples, _ = prepare_results(df, {"student_id": "cand", "subject_id": "course", "result": "mark"})
        assert triples["student_id"].tolist() == [1, 2]
        assert triples["result"].tolist() == [55.5, 61.0]

    def test_empty_table_raises(self):
        with pytest.raises(InvalidInputError):
            prepare_results(pd.DataFrame(columns=["student_id", "subject_id", "result"]))

    def test_missing_column_raises(self):
        df = pd.DataFrame({"student_id": [1], "result": [50]})
        with pytest.raises(InvalidInputError, match="subject_id"):
            prepare_results(df)

    def test_missing_result_is_not_imputed(self):
        df = pd.DataFrame({"student_id": ["1", "2"], "subject_id": ["1", "1"], "result": ["50", ""]})
        with pytest.raises(InvalidInputError):
            prepare_results(df)

    def test_missing_id_raises(self):
        df = pd.DataFrame({"student_id": ["1", " "], "subject_id": ["1", "1"], "result": ["50", "60"]})
        with pytest.raises(InvalidInputError):
            prepare_results(df)

    def test_duplicates_are_reported_not_dropped(self):
        df = pd.DataFrame({"student_id": [1, 1], "subject_id": [3, 3], "result": [50, 70]})
        triples, report = prepare_results(df)
        assert len(triples) == 2
        assert report["duplicate_pairs"] == 1
        assert report["warnings"]


class TestGeneratePreparationReport:
    """Tests for the text report."""

    def test_report_mentions_counts(self, sample_df):
        _, report = prepare_results(sample_df)
        text = generate_preparation_report(report)
        assert "48 rows" in text
        assert "12 students" in text
