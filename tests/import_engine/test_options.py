import json

import pytest

from import_engine.options import ImportOptions, OptionsError, DEFAULT_RATINGS


def test_defaults_when_blank():
    options = ImportOptions.from_json(None)
    assert options.map_ratings is True
    assert options.ratings == DEFAULT_RATINGS


def test_per_star_override():
    options = ImportOptions.from_json(json.dumps({"ratings": {"star3": "Accepted"}}))
    assert options.judgment_for(3) == "Accepted"
    assert options.judgment_for(1) == "Rejected"


def test_unjudged_maps_to_none():
    options = ImportOptions.from_json(json.dumps({"ratings": {"star5": "Unjudged"}}))
    assert options.judgment_for(5) is None


@pytest.mark.parametrize("raw", [
    "{not json",
    "[]",
    json.dumps({"map_ratings": "yes"}),
    json.dumps({"ratings": {"star1": "Loved"}}),
])
def test_invalid_options_rejected(raw):
    with pytest.raises(OptionsError):
        ImportOptions.from_json(raw)


def test_json_shape_survives_storage():
    options = ImportOptions(map_ratings=False)
    assert ImportOptions.from_json(options.to_json()) == options
