import pydantic
import pytest

from models import (
    Decision,
    DeconstructionFields,
    ScenarioFields,
    ScoreResponse,
    Stage,
    clamp_score,
)


@pytest.mark.parametrize(
    "raw,expected",
    [(142, 100), (-5, 0), (73, 73), ("88", 88), (64.6, 65), (0, 0), (100, 100)],
)
def test_clamp_score(raw, expected):
    assert clamp_score(raw) == expected


@pytest.mark.parametrize("raw", [None, "high", True, [50]])
def test_clamp_score_rejects_non_numbers(raw):
    with pytest.raises(ValueError):
        clamp_score(raw)


def test_score_response_clamps_out_of_range_values():
    response = ScoreResponse(
        overall_score=70,
        clarity_score=142,
        bias_score=-5,
        reversibility_score=50,
        analysis_depth_score=60,
        explanation="ok",
    )
    assert response.clarity_score == 100
    assert response.bias_score == 0


def test_stage_parse():
    assert Stage.parse(3) is Stage.BIAS_CHECK
    assert Stage.parse(99) is None
    assert Stage.parse(None) is None
    assert Stage.SCENARIOS > Stage.DECONSTRUCT


def test_stage_fields_reject_unknown_keys():
    with pytest.raises(pydantic.ValidationError):
        ScenarioFields.model_validate({"best_case_scenario": "ok", "is_locked": True})


def test_stage_fields_reject_bad_enum_values():
    with pytest.raises(pydantic.ValidationError):
        DeconstructionFields.model_validate({"time_horizon": "forever"})


def test_stage_fields_present_skips_nulls_and_strips():
    fields = DeconstructionFields.model_validate(
        {"time_horizon": "weeks", "biggest_fear": "  failing  ", "future_regret": None}
    )
    assert fields.present() == {"time_horizon": "weeks", "biggest_fear": "failing"}


def test_stage_fields_reject_blank_text():
    with pytest.raises(pydantic.ValidationError):
        ScenarioFields.model_validate({"worst_case_scenario": "   "})


def test_decision_parses_stored_bias_list():
    decision = Decision(
        id="d1",
        user_id="u1",
        title="t",
        description=None,
        detected_biases='["Sunk Cost"]',
    )
    assert decision.detected_biases == ["Sunk Cost"]
    assert decision.description == ""


def test_empty_bias_list_is_distinct_from_unanalyzed():
    analyzed = Decision(id="d1", user_id="u1", title="t", detected_biases="[]")
    unanalyzed = Decision(id="d2", user_id="u1", title="t")
    assert analyzed.detected_biases == []
    assert analyzed.has("detected_biases")
    assert not unanalyzed.has("detected_biases")


def test_missing_treats_blank_text_as_unanswered():
    decision = Decision(id="d1", user_id="u1", title="t", biggest_fear=" ")
    assert decision.missing(["biggest_fear", "title"]) == ["biggest_fear"]
