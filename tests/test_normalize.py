"""
Tests for the normalization engine.
"""

import json

import pytest
from jsonschema import validate

from healthrecords.gateway import load_schema
from healthrecords.normalize import MISSING_VALUE, UNAVAILABLE_SUMMARY, ExtractionResult, normalize

IRREGULAR_OUTPUTS = [
    None,
    0,
    3.5,
    True,
    "",
    "not json at all",
    "[1, 2, 3]",
    "null",
    b'{"aiAnalysis": {"conditions": ["Asthma"]}}',
    [],
    [{"parameters": {"BP": "120/80"}}],
    {},
    {"parameters": "garbage"},
    {"parameters": [1, 2]},
    {"parameters": '{"Glucose": 99}'},
    {"parameters": {"BP": {"systolic": 120, "diastolic": 80}, "Pulse": 72.0, "Fasting": True}},
    {"aiAnalysis": '{"conditions": "[\\"Asthma\\", \\"Eczema\\"]"}'},
    {"aiAnalysis": {"conditions": [None, "", "  ", 5, {"name": "Gout"}]}},
    {"aiAnalysis": {"conditions": "5", "medications": 12}},
    {"aiAnalysis": None, "conditions": "Influenza", "summary": "Seasonal flu."},
    {"aiAnalysis": {"summary": ["Line one", None, "Line two"], "recommendations": {"diet": "low salt"}}},
    {"aiAnalysis": {"medications": {"a": "Aspirin", "b": None}, "recommendations": None, "summary": 42}},
]


def assert_canonical(result):
    assert isinstance(result, ExtractionResult)
    assert isinstance(result.parameters, dict)
    assert all(isinstance(k, str) and isinstance(v, str) for k, v in result.parameters.items())
    for items in (result.conditions, result.medications):
        assert isinstance(items, list)
        assert all(isinstance(item, str) and item.strip() for item in items)
    assert isinstance(result.recommendations, str)
    assert isinstance(result.summary, str)
    validate(instance=result.to_dict(), schema=load_schema())


@pytest.mark.parametrize("raw", IRREGULAR_OUTPUTS)
def test_normalize_is_total(raw):
    assert_canonical(normalize(raw))


@pytest.mark.parametrize("raw", IRREGULAR_OUTPUTS)
def test_normalize_is_a_fixed_point(raw):
    once = normalize(raw)
    assert normalize(once) == once
    assert normalize(once.to_dict()) == once
    assert normalize(json.dumps(once.to_dict())) == once


def test_string_condition_becomes_single_item():
    result = normalize({"aiAnalysis": {"conditions": "Hypertension"}})

    assert result.conditions == ["Hypertension"]
    assert result.medications == []
    assert result.parameters == {}
    assert result.summary == ""
    assert result.recommendations == ""


def test_null_parameter_and_object_medications():
    raw = {"parameters": {"BP": None}, "aiAnalysis": {"medications": {"0": "Metformin 500mg"}}}

    result = normalize(raw)

    assert result.parameters == {"BP": MISSING_VALUE}
    assert result.medications == ["Metformin 500mg"]


def test_embedded_json_list_is_parsed():
    result = normalize({"aiAnalysis": {"conditions": '["Asthma", null, "Eczema"]'}})
    assert result.conditions == ["Asthma", "Eczema"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("null", []),
        ('{"a": "Asthma", "b": null}', ["Asthma"]),
        ('"Asthma"', ["Asthma"]),
        ("42", ["42"]),
        ("Asthma, mild", ["Asthma, mild"]),
    ],
)
def test_embedded_json_scalars_follow_list_rules(raw, expected):
    assert normalize({"aiAnalysis": {"conditions": raw}}).conditions == expected
    assert normalize({"aiAnalysis": {"medications": raw}}).medications == expected


def test_object_values_are_serialized_compactly():
    result = normalize({"parameters": {"BP": {"systolic": 120, "diastolic": 80}, "Pulse": 72.0}})

    assert result.parameters["BP"] == '{"systolic":120,"diastolic":80}'
    assert result.parameters["Pulse"] == "72"


def test_nested_objects_in_lists_are_stringified():
    result = normalize({"aiAnalysis": {"medications": [{"name": "Lisinopril", "dose": "10mg"}]}})
    assert result.medications == ['{"name":"Lisinopril","dose":"10mg"}']


def test_json_text_input():
    raw = json.dumps({"parameters": {"TSH": 2.1}, "aiAnalysis": {"summary": "Normal thyroid."}})

    result = normalize(raw)

    assert result.parameters == {"TSH": "2.1"}
    assert result.summary == "Normal thyroid."


@pytest.mark.parametrize("raw", [None, "", "{broken", "[]", 17])
def test_unparseable_output_gives_empty_result(raw):
    result = normalize(raw)
    assert result == ExtractionResult.empty()
    assert result.is_empty


def test_flat_output_without_analysis_block():
    result = normalize({"parameters": {}, "conditions": ["Anemia"], "recommendations": "Iron supplements"})

    assert result.conditions == ["Anemia"]
    assert result.recommendations == "Iron supplements"


def test_unavailable_placeholder():
    placeholder = ExtractionResult.unavailable()

    assert placeholder.parameters == {}
    assert placeholder.conditions == []
    assert placeholder.medications == []
    assert placeholder.summary == UNAVAILABLE_SUMMARY
    assert normalize(placeholder) == placeholder
