from datetime import timedelta

import pytest

from conftest import BIAS_TEXT, DECONSTRUCTION_ANSWERS, SCENARIO_ANSWERS
from errors import DecisionLocked, NotFound, PersistenceError, ValidationError
from models import CreateDecisionRequest, LockRequest, ReflectionInput, Stage, View
from workflow import render

FINAL = LockRequest(
    final_decision="Join the startup",
    key_reasons="Growth, ownership, and a team I trust",
    risks_accepted="Lower salary for two years",
)


@pytest.fixture
def free_decision(workflow):
    return workflow.create("free-user", CreateDecisionRequest(title="Buy a house?"))


def test_create_starts_at_first_stage(workflow, decision):
    assert decision.stage == Stage.DECONSTRUCT
    assert not decision.is_locked
    assert decision.status == "in_progress"
    assert workflow.render(decision) == View.DECONSTRUCT


def test_paid_scenario_advances_and_keeps_insight(workflow, fake_analyst, paid_subject, decision):
    workflow.update_fields(paid_subject, decision.id, Stage.DECONSTRUCT, DECONSTRUCTION_ANSWERS)
    result = workflow.advance(paid_subject, decision.id)
    assert not result.entitlement_required
    assert result.decision.stage == Stage.SCENARIOS

    insight = workflow.analyze(paid_subject, decision.id, Stage.DECONSTRUCT)
    for _ in range(2):
        reloaded = workflow.load_or_init(paid_subject, decision.id)
        assert reloaded.ai_insight_summary == insight.outputs["ai_insight_summary"]
        assert workflow.analyze(paid_subject, decision.id, Stage.DECONSTRUCT).cached
    assert len(fake_analyst.calls) == 1


def test_free_subject_gets_entitlement_signal(workflow, free_decision):
    workflow.update_fields("free-user", free_decision.id, Stage.DECONSTRUCT, DECONSTRUCTION_ANSWERS)

    result = workflow.advance("free-user", free_decision.id)

    assert result.entitlement_required
    assert workflow.load_or_init("free-user", free_decision.id).stage == Stage.DECONSTRUCT


def test_upgrade_takes_effect_on_next_advance(workflow, store, free_decision):
    workflow.update_fields("free-user", free_decision.id, Stage.DECONSTRUCT, DECONSTRUCTION_ANSWERS)
    assert workflow.advance("free-user", free_decision.id).entitlement_required

    store.set_access_tier("free-user", "paid")
    result = workflow.advance("free-user", free_decision.id)
    assert result.decision.stage == Stage.SCENARIOS


def test_advance_with_missing_inputs_does_not_move(workflow, paid_subject, decision):
    workflow.update_fields(
        paid_subject, decision.id, Stage.DECONSTRUCT, {"time_horizon": "weeks"}
    )
    with pytest.raises(ValidationError) as e:
        workflow.advance(paid_subject, decision.id)
    assert e.value.missing == [
        "is_reversible",
        "do_nothing_outcome",
        "biggest_fear",
        "future_regret",
    ]
    assert workflow.load_or_init(paid_subject, decision.id).stage == Stage.DECONSTRUCT


def test_stage_never_decreases(workflow, paid_subject, decision):
    stages = [decision.stage]
    workflow.update_fields(paid_subject, decision.id, Stage.DECONSTRUCT, DECONSTRUCTION_ANSWERS)
    stages.append(workflow.advance(paid_subject, decision.id).decision.stage)
    workflow.update_fields(paid_subject, decision.id, Stage.SCENARIOS, SCENARIO_ANSWERS)
    stages.append(workflow.advance(paid_subject, decision.id).decision.stage)
    # Editing an earlier stage keeps the current one
    edited = workflow.update_fields(
        paid_subject, decision.id, Stage.DECONSTRUCT, {"biggest_fear": "Regret"}
    )
    stages.append(edited.stage)
    stages.append(workflow.advance(paid_subject, decision.id).decision.stage)

    assert stages == [1, 2, 3, 3, 4]
    assert edited.biggest_fear == "Regret"


def test_fields_for_unreached_stage_are_rejected(workflow, paid_subject, decision):
    with pytest.raises(ValidationError):
        workflow.update_fields(paid_subject, decision.id, Stage.SCENARIOS, SCENARIO_ANSWERS)
    assert workflow.load_or_init(paid_subject, decision.id).best_case_scenario is None


def test_fields_outside_the_stage_set_are_rejected(workflow, paid_subject, decision):
    with pytest.raises(ValidationError) as e:
        workflow.update_fields(
            paid_subject,
            decision.id,
            Stage.DECONSTRUCT,
            {"biggest_fear": "x", "ai_insight_summary": "forged"},
        )
    assert e.value.missing == ["ai_insight_summary"]
    assert workflow.load_or_init(paid_subject, decision.id).ai_insight_summary is None


def test_null_does_not_blank_an_answer(workflow, paid_subject, decision):
    workflow.update_fields(paid_subject, decision.id, Stage.DECONSTRUCT, {"biggest_fear": "x"})
    updated = workflow.update_fields(
        paid_subject, decision.id, Stage.DECONSTRUCT, {"biggest_fear": None}
    )
    assert updated.biggest_fear == "x"


def test_analysis_of_unreached_stage_is_rejected(workflow, fake_analyst, paid_subject, decision):
    with pytest.raises(ValidationError):
        workflow.analyze(paid_subject, decision.id, Stage.SCENARIOS)
    with pytest.raises(ValidationError):
        workflow.analyze(paid_subject, decision.id, Stage.LOCK)
    assert fake_analyst.calls == []


def test_other_subjects_cannot_see_a_decision(workflow, decision):
    with pytest.raises(NotFound):
        workflow.load_or_init("someone-else", decision.id)
    with pytest.raises(NotFound):
        workflow.advance("someone-else", decision.id)
    with pytest.raises(NotFound):
        workflow.load_or_init("someone-else", "missing")


def test_render_routes_unknown_stages_to_dashboard(workflow, store, paid_subject, decision):
    corrupted = store.merge(decision.id, {"stage": 42})
    assert render(corrupted) == View.DASHBOARD
    with pytest.raises(ValidationError):
        workflow.advance(paid_subject, decision.id)

    unlocked_complete = store.merge(decision.id, {"stage": Stage.COMPLETE.value})
    assert render(unlocked_complete) == View.DASHBOARD


def test_render_locked_is_always_complete(store, decision):
    for stage in (1, 3, 42):
        assert render(store.merge(decision.id, {"stage": stage, "is_locked": True})) == View.COMPLETE


def test_lock_with_empty_final_decision_fails_cleanly(workflow, paid_subject, decision_at_lock):
    with pytest.raises(ValidationError) as e:
        workflow.lock(
            paid_subject,
            decision_at_lock.id,
            LockRequest(final_decision="  ", key_reasons="Because"),
        )
    assert e.value.missing == ["final_decision"]

    current = workflow.load_or_init(paid_subject, decision_at_lock.id)
    assert not current.is_locked
    assert current.locked_at is None
    assert current.key_reasons is None
    assert current.decision_summary is None
    assert current.stage == Stage.LOCK


def test_lock_before_final_stage_fails(workflow, paid_subject, decision):
    with pytest.raises(ValidationError):
        workflow.lock(paid_subject, decision.id, FINAL)
    assert not workflow.load_or_init(paid_subject, decision.id).is_locked


def test_lock_sets_every_terminal_field(workflow, fake_analyst, paid_subject, decision_at_lock):
    fake_analyst.text = BIAS_TEXT
    workflow.analyze(paid_subject, decision_at_lock.id, Stage.BIAS_CHECK)

    locked = workflow.lock(paid_subject, decision_at_lock.id, FINAL)

    assert locked.is_locked
    assert locked.locked_at is not None
    assert locked.stage == Stage.COMPLETE
    assert locked.status == "completed"
    assert locked.final_decision == FINAL.final_decision
    assert locked.biases_acknowledged == "Sunk Cost, Status Quo"
    assert locked.decision_summary.startswith("Decision: Should I join the startup?")
    assert "Lower salary for two years" in locked.decision_summary
    assert workflow.render(locked) == View.COMPLETE


def test_locked_decision_is_frozen(workflow, fake_analyst, paid_subject, decision_at_lock):
    workflow.analyze(paid_subject, decision_at_lock.id, Stage.DECONSTRUCT)
    workflow.lock(paid_subject, decision_at_lock.id, FINAL)
    calls = len(fake_analyst.calls)

    with pytest.raises(DecisionLocked):
        workflow.update_fields(paid_subject, decision_at_lock.id, Stage.LOCK, {"key_reasons": "x"})
    with pytest.raises(DecisionLocked):
        workflow.advance(paid_subject, decision_at_lock.id)
    with pytest.raises(DecisionLocked):
        workflow.lock(paid_subject, decision_at_lock.id, FINAL)
    with pytest.raises(DecisionLocked):
        workflow.analyze(paid_subject, decision_at_lock.id, Stage.SECOND_ORDER)

    # Stored analysis stays readable
    assert workflow.analyze(paid_subject, decision_at_lock.id, Stage.DECONSTRUCT).cached
    assert len(fake_analyst.calls) == calls
    assert workflow.load_or_init(paid_subject, decision_at_lock.id).key_reasons == FINAL.key_reasons


def test_score_and_reflections_after_lock(workflow, paid_subject, decision_at_lock):
    with pytest.raises(ValidationError):
        workflow.score(paid_subject, decision_at_lock.id)
    with pytest.raises(ValidationError):
        workflow.reflect(paid_subject, decision_at_lock.id, ReflectionInput(aged_well=True))

    workflow.lock(paid_subject, decision_at_lock.id, FINAL)

    score = workflow.score(paid_subject, decision_at_lock.id)
    assert score.overall_score == 72

    workflow.reflect(paid_subject, decision_at_lock.id, ReflectionInput(aged_well=False))
    workflow.reflect(paid_subject, decision_at_lock.id, ReflectionInput(aged_well=True))
    assert len(workflow.reflections(paid_subject, decision_at_lock.id)) == 2


def test_list_for_subject(workflow, paid_subject, decision, free_decision):
    assert [d.id for d in workflow.list_for_subject(paid_subject)] == [decision.id]


def test_lock_store_failure_leaves_decision_unlocked(
    monkeypatch, workflow, store, paid_subject, decision_at_lock
):
    def failing_merge(*args, **kwargs):
        raise PersistenceError("Decision store unavailable, try again")

    monkeypatch.setattr(store, "merge", failing_merge)
    with pytest.raises(PersistenceError):
        workflow.lock(paid_subject, decision_at_lock.id, FINAL)
    monkeypatch.undo()

    current = store.get(decision_at_lock.id)
    assert not current.is_locked
    assert current.locked_at is None
    assert current.final_decision is None
    assert current.decision_summary is None
    assert current.stage == Stage.LOCK


def test_store_failure_on_update_and_advance_changes_nothing(
    monkeypatch, workflow, store, paid_subject, decision
):
    workflow.update_fields(paid_subject, decision.id, Stage.DECONSTRUCT, DECONSTRUCTION_ANSWERS)

    def failing_merge(*args, **kwargs):
        raise PersistenceError("Decision store unavailable, try again")

    monkeypatch.setattr(store, "merge", failing_merge)
    with pytest.raises(PersistenceError):
        workflow.update_fields(
            paid_subject, decision.id, Stage.DECONSTRUCT, {"biggest_fear": "Changed"}
        )
    with pytest.raises(PersistenceError):
        workflow.advance(paid_subject, decision.id)
    monkeypatch.undo()

    current = store.get(decision.id)
    assert current.biggest_fear == DECONSTRUCTION_ANSWERS["biggest_fear"]
    assert current.stage == Stage.DECONSTRUCT


def test_lock_timestamp_is_utc(workflow, store, paid_subject, decision_at_lock):
    workflow.lock(paid_subject, decision_at_lock.id, FINAL)
    locked = store.get(decision_at_lock.id)
    assert locked.locked_at.utcoffset() == timedelta(0)
    assert locked.created_at.utcoffset() == timedelta(0)
