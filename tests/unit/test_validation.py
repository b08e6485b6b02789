"""Unit tests for parameter validation and display helpers."""

import pytest

from analysis_dedup.errors import DedupError, ValidationError
from analysis_dedup.params.summary import extract_key_parameters, get_parameter_summary
from analysis_dedup.params.validation import ensure_valid_parameters, validate_parameters


class TestValidateParameters:
    """Test raw parameter validation."""

    def test_valid_parameters(self):
        assert validate_parameters({"companyName": "Acme", "size": 10, "tags": ["a"]}) == []

    def test_empty_parameters_are_valid(self):
        assert validate_parameters({}) == []

    @pytest.mark.parametrize("value", [None, "text", 42, ["a"]])
    def test_must_be_an_object(self, value):
        assert validate_parameters(value) == ["Parameters must be an object"]

    def test_circular_references(self):
        params = {"name": "acme"}
        params["self"] = params
        assert validate_parameters(params) == ["Parameters contain circular references"]

    @pytest.mark.parametrize("number", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers(self, number):
        assert validate_parameters({"x": number}) == ["Parameters contain non-finite numbers"]

    def test_non_serializable_values(self):
        errors = validate_parameters({"x": object()})
        assert len(errors) == 1
        assert errors[0].startswith("Parameters contain non-serializable values")

    def test_too_large(self):
        errors = validate_parameters({"x": "a" * 100}, max_bytes=50)
        assert len(errors) == 1
        assert errors[0].startswith("Parameters are too large")


class TestEnsureValidParameters:
    """Test the raising variant."""

    def test_valid_passes(self):
        ensure_valid_parameters({"a": 1})

    def test_invalid_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid_parameters("not a map")

        assert exc_info.value.errors == ["Parameters must be an object"]
        assert isinstance(exc_info.value, DedupError)
        assert "Parameters must be an object" in str(exc_info.value)


class TestParameterSummary:
    """Test the one-line parameter summary."""

    def test_no_parameters(self):
        assert get_parameter_summary({}) == "No parameters"
        assert get_parameter_summary({"blank": " "}) == "No parameters"

    def test_short_values(self):
        summary = get_parameter_summary({"companyName": "Acme Inc", "size": 10})
        assert summary == 'companyName: "acme inc", size: 10'

    def test_long_strings_are_truncated(self):
        summary = get_parameter_summary({"description": "A very long description of the company"})
        assert summary == "description: a very long descript..."

    def test_more_than_three_keys(self):
        summary = get_parameter_summary({"a": 1, "b": 2, "c": 3, "d": 4, "e": 5})
        assert summary == "a: 1, b: 2, c: 3 (+2 more)"


def test_extract_key_parameters():
    params = {"companyName": "Acme", "industry": None, "size": 0}
    assert extract_key_parameters(params, ["companyName", "industry", "size", "missing"]) == {
        "companyName": "Acme",
        "size": 0,
    }
