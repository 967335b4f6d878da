"""Per-stage analysis through the external text analysis service.

Each stage's output is produced at most once: a stored output is returned
as-is, and a fresh result is written only if the output is still absent when
the write lands. Failures leave the record untouched.
"""

import re
from datetime import datetime, timezone

import structlog

from errors import AnalysisError, DecisionLocked, Malformed, NotFound, ValidationError
from models import (
    SCORE_FIELDS,
    AnalysisResult,
    BiasProfile,
    Decision,
    DecisionComparison,
    DecisionReflection,
    DecisionScore,
    ReflectionInput,
    ReflectionType,
    RiskTolerance,
    ScoreResponse,
    Stage,
    clamp_score,
)
from prompts import (
    BIAS_PROMPT,
    BIAS_SYSTEM_PROMPT,
    COMPARISON_DECISION,
    COMPARISON_PROMPT,
    COMPARISON_SYSTEM_PROMPT,
    INSIGHT_PROMPT,
    INSIGHT_SYSTEM_PROMPT,
    PROFILE_DECISION,
    PROFILE_PROMPT,
    PROFILE_SYSTEM_PROMPT,
    REFLECTION_PROMPT,
    REFLECTION_SYSTEM_PROMPT,
    SCENARIO_PROMPT,
    SCENARIO_SYSTEM_PROMPT,
    SCORE_PROMPT,
    SCORE_SYSTEM_PROMPT,
    SECOND_ORDER_PROMPT,
    SECOND_ORDER_SYSTEM_PROMPT,
)

logger = structlog.get_logger(__name__)

BIAS_VOCABULARY = (
    "confirmation bias",
    "sunk cost",
    "status quo",
    "overconfidence",
    "loss aversion",
    "anchoring",
    "availability heuristic",
    "fear avoidance",
    "optimism bias",
    "recency bias",
    "bandwagon effect",
)

DECONSTRUCTION_INPUTS = (
    "time_horizon",
    "is_reversible",
    "do_nothing_outcome",
    "biggest_fear",
    "future_regret",
)
SCENARIO_INPUTS = (
    "best_case_scenario",
    "likely_case_scenario",
    "worst_case_scenario",
)

# Fields each stage's analysis is built from. All must be answered.
ANALYSIS_INPUTS = {
    Stage.DECONSTRUCT: DECONSTRUCTION_INPUTS,
    Stage.SCENARIOS: SCENARIO_INPUTS,
    Stage.BIAS_CHECK: DECONSTRUCTION_INPUTS + SCENARIO_INPUTS,
    Stage.SECOND_ORDER: SCENARIO_INPUTS,
}

# The first field of each tuple marks the stage as analyzed.
STAGE_OUTPUTS = {
    Stage.DECONSTRUCT: ("ai_insight_summary",),
    Stage.SCENARIOS: ("ai_scenario_analysis",),
    Stage.BIAS_CHECK: ("ai_bias_explanation", "detected_biases"),
    Stage.SECOND_ORDER: ("ai_second_order_analysis",),
}

MIN_PROFILE_DECISIONS = 2
MIN_COMPARED, MAX_COMPARED = 2, 4

RESPONSE_LABELS = {
    "time_horizon": "Time horizon",
    "is_reversible": "Reversibility",
    "do_nothing_outcome": "If do nothing",
    "biggest_fear": "Biggest fear",
    "future_regret": "Future regret",
    "best_case_scenario": "Best case scenario",
    "likely_case_scenario": "Most likely scenario",
    "worst_case_scenario": "Worst case scenario",
}


def derive_bias_labels(text: str) -> list[str]:
    """Scan free text for known bias names.

    Case-insensitive, one label per name, ordered by first appearance, each
    word capitalized. No match is a valid result.
    """
    found = []
    for name in BIAS_VOCABULARY:
        match = re.search(r"\b" + re.escape(name) + r"\b", text or "", re.IGNORECASE)
        if match:
            found.append((match.start(), name))
    found.sort(key=lambda item: item[0])

    labels = []
    for _, name in found:
        label = " ".join(word.capitalize() for word in name.split())
        if label not in labels:
            labels.append(label)
    return labels


def derive_risk_tolerance(text: str) -> RiskTolerance:
    match = re.search(r"risk tolerance[\s:*]*(low|medium|high)", text or "", re.IGNORECASE)
    if match is None:
        return RiskTolerance.MEDIUM
    return RiskTolerance(match.group(1).capitalize())


def reflection_type_for(locked_at: datetime, now: datetime | None = None) -> ReflectionType:
    now = now or datetime.now(timezone.utc)
    if locked_at.tzinfo is None:
        locked_at = locked_at.replace(tzinfo=timezone.utc)
    days = (now - locked_at).days
    if days >= 180:
        return ReflectionType.ONE_EIGHTY_DAY
    if days >= 90:
        return ReflectionType.NINETY_DAY
    return ReflectionType.THIRTY_DAY


def _prompt_values(decision: Decision) -> dict:
    values = {
        name: (value if value not in (None, "") else "Not specified")
        for name, value in decision.model_dump().items()
    }
    values["description"] = decision.description or "N/A"
    values["detected_biases"] = ", ".join(decision.detected_biases or []) or "None detected"
    return values


def build_prompt(stage: Stage, decision: Decision) -> tuple[str, str]:
    """Fixed template substitution for a stage. Deterministic for a given record."""
    values = _prompt_values(decision)
    if stage == Stage.DECONSTRUCT:
        return INSIGHT_SYSTEM_PROMPT, INSIGHT_PROMPT.format(**values)
    if stage == Stage.SCENARIOS:
        return SCENARIO_SYSTEM_PROMPT, SCENARIO_PROMPT.format(**values)
    if stage == Stage.BIAS_CHECK:
        responses = "\n".join(
            f"{RESPONSE_LABELS[name]}: {getattr(decision, name)}"
            for name in ANALYSIS_INPUTS[Stage.BIAS_CHECK]
        )
        return BIAS_SYSTEM_PROMPT, BIAS_PROMPT.format(responses=responses, **values)
    if stage == Stage.SECOND_ORDER:
        return SECOND_ORDER_SYSTEM_PROMPT, SECOND_ORDER_PROMPT.format(**values)
    raise ValidationError(f"Stage {stage.name} has no analysis")


def _stored_outputs(stage: Stage, decision: Decision) -> dict:
    return {name: getattr(decision, name) for name in STAGE_OUTPUTS[stage]}


class AnalysisOrchestrator:
    def __init__(self, store, analyst):
        self.store = store
        self.analyst = analyst

    def analyze(self, stage: Stage, decision: Decision) -> AnalysisResult:
        if stage not in STAGE_OUTPUTS:
            raise ValidationError(f"Stage {stage.name} has no analysis")

        marker = STAGE_OUTPUTS[stage][0]
        if decision.has(marker):
            logger.info("analysis_cached", decision_id=decision.id, stage=stage.name)
            return AnalysisResult(
                stage=stage, outputs=_stored_outputs(stage, decision), cached=True
            )
        if decision.is_locked:
            raise DecisionLocked(decision.id)

        missing = decision.missing(ANALYSIS_INPUTS[stage])
        if missing:
            raise ValidationError(
                f"Answer all questions before analyzing {stage.name}", missing=missing
            )

        system_prompt, user_prompt = build_prompt(stage, decision)
        logger.info("analysis_started", decision_id=decision.id, stage=stage.name)
        try:
            text = self.analyst.complete(system_prompt, user_prompt)
        except AnalysisError as e:
            logger.warning(
                "analysis_failed", decision_id=decision.id, stage=stage.name, error=e.code
            )
            raise

        outputs = {marker: text}
        if stage == Stage.BIAS_CHECK:
            outputs["detected_biases"] = derive_bias_labels(text)

        merged = self.store.merge(
            decision.id,
            outputs,
            only_if={"is_locked": False},
            only_if_absent=(marker,),
        )
        if merged is None:
            # Another call stored first, or the decision was locked meanwhile.
            current = self.store.get(decision.id)
            if current is None:
                raise NotFound(decision.id)
            if not current.has(marker):
                raise DecisionLocked(decision.id)
            logger.info("analysis_race_lost", decision_id=decision.id, stage=stage.name)
            return AnalysisResult(
                stage=stage, outputs=_stored_outputs(stage, current), cached=True
            )

        logger.info("analysis_stored", decision_id=decision.id, stage=stage.name)
        return AnalysisResult(stage=stage, outputs=_stored_outputs(stage, merged))

    def score(self, decision: Decision) -> DecisionScore:
        existing = self.store.get_score(decision.id)
        if existing is not None:
            return existing
        if not decision.is_locked:
            raise ValidationError("Only locked decisions can be scored")

        prompt = SCORE_PROMPT.format(**_prompt_values(decision))
        response = self.analyst.complete(
            SCORE_SYSTEM_PROMPT, prompt, response_model=ScoreResponse
        )
        values = response if isinstance(response, dict) else response.model_dump()
        try:
            fields = {name: clamp_score(values.get(name)) for name in SCORE_FIELDS}
        except ValueError as e:
            raise Malformed(f"Score response could not be parsed: {e}") from e
        fields["explanation"] = str(values.get("explanation") or "")

        score = self.store.insert_score(decision.id, fields)
        logger.info(
            "decision_scored", decision_id=decision.id, overall=score.overall_score
        )
        return score

    def reflect(self, decision: Decision, reflection: ReflectionInput) -> DecisionReflection:
        if not decision.is_locked or decision.locked_at is None:
            raise ValidationError("Only locked decisions can be reflected on")

        reflection_type = reflection_type_for(decision.locked_at)
        values = _prompt_values(decision)
        values.update(
            reflection_type=reflection_type.value.replace("_", " "),
            aged_well="Yes" if reflection.aged_well else "No",
            what_surprised=reflection.what_surprised or "Not provided",
            what_differently=reflection.what_differently or "Not provided",
        )
        text = self.analyst.complete(
            REFLECTION_SYSTEM_PROMPT, REFLECTION_PROMPT.format(**values)
        )
        return self.store.insert_reflection(
            {
                "decision_id": decision.id,
                "user_id": decision.user_id,
                "reflection_type": reflection_type.value,
                "aged_well": reflection.aged_well,
                "what_surprised": reflection.what_surprised,
                "what_differently": reflection.what_differently,
                "ai_reflection_analysis": text,
            }
        )

    def bias_profile(self, subject_id: str) -> BiasProfile:
        """Profile the subject's locked decisions.

        The stored profile is reused until another decision has been locked.
        """
        decisions = [
            decision
            for decision in reversed(self.store.list_for_subject(subject_id))
            if decision.is_locked
        ]
        if len(decisions) < MIN_PROFILE_DECISIONS:
            raise ValidationError(
                f"Lock at least {MIN_PROFILE_DECISIONS} decisions to build a bias profile"
            )

        existing = self.store.get_bias_profile(subject_id)
        if existing is not None and existing.total_decisions_analyzed == len(decisions):
            logger.info("bias_profile_cached", subject_id=subject_id)
            return existing

        listing = "\n\n".join(
            PROFILE_DECISION.format(number=number, **_prompt_values(decision))
            for number, decision in enumerate(decisions, start=1)
        )
        text = self.analyst.complete(
            PROFILE_SYSTEM_PROMPT,
            PROFILE_PROMPT.format(count=len(decisions), decisions=listing),
        )
        profile = self.store.upsert_bias_profile(
            subject_id,
            {
                "common_biases": derive_bias_labels(text),
                "risk_tolerance": derive_risk_tolerance(text).value,
                "ai_profile_summary": text,
                "total_decisions_analyzed": len(decisions),
            },
        )
        logger.info(
            "bias_profile_stored",
            subject_id=subject_id,
            decisions=len(decisions),
            biases=profile.common_biases,
        )
        return profile

    def compare(self, subject_id: str, decisions: list[Decision], title=None) -> DecisionComparison:
        listing = "\n\n".join(
            COMPARISON_DECISION.format(number=number, **_prompt_values(decision))
            for number, decision in enumerate(decisions, start=1)
        )
        text = self.analyst.complete(
            COMPARISON_SYSTEM_PROMPT,
            COMPARISON_PROMPT.format(count=len(decisions), decisions=listing),
        )
        title = (title or "").strip() or "Comparison: " + " vs ".join(
            decision.title for decision in decisions
        )
        return self.store.insert_comparison(
            {
                "user_id": subject_id,
                "title": title[:255],
                "decision_ids": [decision.id for decision in decisions],
                "ai_comparison_analysis": text,
            }
        )
