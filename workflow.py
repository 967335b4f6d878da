"""The guided decision workflow.

All transition rules live here: the host application calls these operations
and renders whatever ``render`` selects, instead of re-implementing step
logic per screen.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import pydantic
import structlog

from analysis import (
    DECONSTRUCTION_INPUTS,
    MAX_COMPARED,
    MIN_COMPARED,
    SCENARIO_INPUTS,
    STAGE_OUTPUTS,
)
from errors import DecisionLocked, NotFound, ValidationError
from models import (
    STAGE_FIELDS,
    AnalysisResult,
    BiasProfile,
    CreateDecisionRequest,
    Decision,
    DecisionComparison,
    DecisionReflection,
    DecisionScore,
    LockRequest,
    ReflectionInput,
    Stage,
    View,
)

logger = structlog.get_logger(__name__)

# Inputs that must be answered before leaving a stage. Stages missing from
# this map cannot be left through ``advance``.
REQUIRED_INPUTS = {
    Stage.DECONSTRUCT: DECONSTRUCTION_INPUTS,
    Stage.SCENARIOS: SCENARIO_INPUTS,
    Stage.BIAS_CHECK: (),
    Stage.SECOND_ORDER: (),
}

STAGE_VIEWS = {
    Stage.DECONSTRUCT: View.DECONSTRUCT,
    Stage.SCENARIOS: View.SCENARIOS,
    Stage.BIAS_CHECK: View.BIAS_CHECK,
    Stage.SECOND_ORDER: View.SECOND_ORDER,
    Stage.LOCK: View.LOCK,
}


@dataclass
class AdvanceResult:
    """Outcome of ``advance``. ``entitlement_required`` means nothing changed
    and the subject should be sent to the upgrade path."""

    decision: Decision
    entitlement_required: bool = False


def render(decision: Decision) -> View:
    if decision.is_locked:
        return View.COMPLETE
    stage = Stage.parse(decision.stage)
    # Unknown or inconsistent stage values go back to the dashboard.
    return STAGE_VIEWS.get(stage, View.DASHBOARD)


def build_summary(decision: Decision, final_decision, key_reasons, risks_accepted):
    biases = ", ".join(decision.detected_biases or []) or "None detected"
    return (
        f"Decision: {decision.title}\n\n{final_decision}\n\n"
        f"Key Reasons:\n{key_reasons}\n\n"
        f"Risks Accepted:\n{risks_accepted or 'None specified'}\n\n"
        f"Biases Acknowledged:\n{biases}"
    )


def _field_errors(error: pydantic.ValidationError) -> list[str]:
    return [".".join(str(part) for part in item["loc"]) for item in error.errors()]


class DecisionWorkflow:
    def __init__(self, store, gate, orchestrator):
        self.store = store
        self.gate = gate
        self.orchestrator = orchestrator

    def create(self, subject_id: str, request: CreateDecisionRequest) -> Decision:
        decision = self.store.insert(
            {
                "user_id": subject_id,
                "title": request.title,
                "description": request.description.strip(),
                "category": request.category.value,
                "status": "in_progress",
                "stage": Stage.DECONSTRUCT.value,
                "is_locked": False,
            }
        )
        logger.info("decision_created", decision_id=decision.id, subject_id=subject_id)
        return decision

    def list_for_subject(self, subject_id: str) -> list[Decision]:
        return self.store.list_for_subject(subject_id)

    def load_or_init(self, subject_id: str, decision_id: str) -> Decision:
        decision = self.store.get(decision_id)
        if decision is None or decision.user_id != subject_id:
            raise NotFound(decision_id)
        return decision

    def render(self, decision: Decision) -> View:
        return render(decision)

    def update_fields(self, subject_id: str, decision_id: str, stage, fields: dict) -> Decision:
        """Merge answers for ``stage`` without moving the decision forward.

        Earlier stages may be edited; stages not reached yet may not.
        """
        decision = self.load_or_init(subject_id, decision_id)
        if decision.is_locked:
            raise DecisionLocked(decision_id)

        target = Stage.parse(stage)
        if target not in STAGE_FIELDS:
            raise ValidationError(f"Stage {stage} has no editable fields")
        current = Stage.parse(decision.stage)
        if current is None or target > current:
            raise ValidationError(f"Stage {target.name} has not been reached yet")

        try:
            validated = STAGE_FIELDS[target].model_validate(fields)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid fields for {target.name}", missing=_field_errors(e)
            ) from e

        changes = validated.present()
        if not changes:
            return decision
        merged = self.store.merge(decision_id, changes, only_if={"is_locked": False})
        if merged is None:
            raise DecisionLocked(decision_id)
        logger.info(
            "decision_fields_updated",
            decision_id=decision_id,
            stage=target.name,
            fields=sorted(changes),
        )
        return merged

    def advance(self, subject_id: str, decision_id: str) -> AdvanceResult:
        decision = self.load_or_init(subject_id, decision_id)
        if decision.is_locked:
            raise DecisionLocked(decision_id)

        stage = Stage.parse(decision.stage)
        if stage not in REQUIRED_INPUTS:
            raise ValidationError(f"Cannot advance from stage {decision.stage}")
        missing = decision.missing(REQUIRED_INPUTS[stage])
        if missing:
            raise ValidationError(
                f"Complete {stage.name} before continuing", missing=missing
            )

        if not self.gate.check(subject_id, stage):
            return AdvanceResult(decision=decision, entitlement_required=True)

        merged = self.store.merge(
            decision_id,
            {"stage": stage.value + 1},
            only_if={"stage": stage.value, "is_locked": False},
        )
        if merged is None:
            raise ValidationError("Decision changed while advancing, reload and retry")
        logger.info(
            "decision_advanced",
            decision_id=decision_id,
            from_stage=stage.name,
            to_stage=Stage(merged.stage).name,
        )
        return AdvanceResult(decision=merged)

    def analyze(self, subject_id: str, decision_id: str, stage) -> AnalysisResult:
        decision = self.load_or_init(subject_id, decision_id)
        target = Stage.parse(stage)
        if target not in STAGE_OUTPUTS:
            raise ValidationError(f"Stage {stage} has no analysis")
        current = Stage.parse(decision.stage)
        if not decision.is_locked and (current is None or target > current):
            raise ValidationError(f"Stage {target.name} has not been reached yet")
        return self.orchestrator.analyze(target, decision)

    def lock(self, subject_id: str, decision_id: str, final: LockRequest) -> Decision:
        decision = self.load_or_init(subject_id, decision_id)
        if decision.is_locked:
            raise DecisionLocked(decision_id)

        final_decision = (final.final_decision or "").strip()
        key_reasons = (final.key_reasons or "").strip()
        risks_accepted = (final.risks_accepted or "").strip() or None
        missing = [
            name
            for name, value in (
                ("final_decision", final_decision),
                ("key_reasons", key_reasons),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                "Fill in your decision and key reasons", missing=missing
            )
        if Stage.parse(decision.stage) != Stage.LOCK:
            raise ValidationError("Finish the earlier stages before locking")

        fields = {
            "final_decision": final_decision,
            "key_reasons": key_reasons,
            "risks_accepted": risks_accepted,
            "biases_acknowledged": ", ".join(decision.detected_biases or []) or None,
            "decision_summary": build_summary(
                decision, final_decision, key_reasons, risks_accepted
            ),
            "is_locked": True,
            "locked_at": datetime.now(timezone.utc),
            "status": "completed",
            "stage": Stage.COMPLETE.value,
        }
        merged = self.store.merge(
            decision_id,
            fields,
            only_if={"is_locked": False, "stage": Stage.LOCK.value},
        )
        if merged is None:
            current = self.store.get(decision_id)
            if current is not None and current.is_locked:
                raise DecisionLocked(decision_id)
            raise ValidationError("Decision changed while locking, reload and retry")
        logger.info("decision_locked", decision_id=decision_id)
        return merged

    def score(self, subject_id: str, decision_id: str) -> DecisionScore:
        decision = self.load_or_init(subject_id, decision_id)
        if not decision.is_locked:
            raise ValidationError("Lock the decision before scoring it")
        return self.orchestrator.score(decision)

    def reflect(
        self, subject_id: str, decision_id: str, reflection: ReflectionInput
    ) -> DecisionReflection:
        decision = self.load_or_init(subject_id, decision_id)
        if not decision.is_locked:
            raise ValidationError("Lock the decision before reflecting on it")
        created = self.orchestrator.reflect(decision, reflection)
        logger.info(
            "reflection_added",
            decision_id=decision_id,
            reflection_type=created.reflection_type.value,
        )
        return created

    def reflections(self, subject_id: str, decision_id: str) -> list[DecisionReflection]:
        self.load_or_init(subject_id, decision_id)
        return self.store.list_reflections(decision_id)

    def bias_profile(self, subject_id: str) -> BiasProfile:
        return self.orchestrator.bias_profile(subject_id)

    def stored_bias_profile(self, subject_id: str) -> BiasProfile | None:
        return self.store.get_bias_profile(subject_id)

    def compare(self, subject_id: str, decision_ids: list[str], title=None) -> DecisionComparison:
        """Compare 2 to 4 of the subject's locked decisions and keep the result."""
        unique_ids = list(dict.fromkeys(decision_ids))
        if not MIN_COMPARED <= len(unique_ids) <= MAX_COMPARED:
            raise ValidationError(
                f"Choose {MIN_COMPARED} to {MAX_COMPARED} different decisions to compare"
            )
        decisions = [self.load_or_init(subject_id, decision_id) for decision_id in unique_ids]
        unlocked = [decision.id for decision in decisions if not decision.is_locked]
        if unlocked:
            raise ValidationError("Only locked decisions can be compared", missing=unlocked)

        comparison = self.orchestrator.compare(subject_id, decisions, title)
        logger.info(
            "decisions_compared", comparison_id=comparison.id, decisions=len(decisions)
        )
        return comparison

    def comparisons(self, subject_id: str) -> list[DecisionComparison]:
        return self.store.list_comparisons(subject_id)
