"""Tests for name-based sex inference."""

import pytest

from etl import inference
from etl.inference import infer_sex


def test_known_name():
    assert infer_sex("JUAN", "spain") == "male"


def test_unknown_name_is_none():
    assert infer_sex("QXZWRTPLK", "spain") is None


@pytest.mark.parametrize("name", ["", None])
def test_empty_name_is_none(name):
    assert infer_sex(name) is None


def test_invalid_country_is_none():
    """Test a library error is swallowed."""
    assert infer_sex("JUAN", "atlantis") is None


def test_detector_error_is_none(monkeypatch):
    class Broken:
        def get_gender(self, name, country):
            raise RuntimeError("corrupt dataset")

    monkeypatch.setattr(inference, "_get_detector", lambda: Broken())

    assert infer_sex("ANA") is None
