import os

# Keep imports of the app module from creating a database file in the repo.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JSON_LOGS", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from analysis import AnalysisOrchestrator
from database import Base
from entitlement import AccessTierLookup, EntitlementGate
from models import CreateDecisionRequest, Stage
from store import DecisionStore
from workflow import DecisionWorkflow

BIAS_TEXT = (
    "You may be anchored by sunk cost: two years already spent. "
    "Later, the Status Quo feels safe. Again, the sunk cost is visible."
)

DECONSTRUCTION_ANSWERS = {
    "time_horizon": "1-2 years",
    "is_reversible": "partially",
    "do_nothing_outcome": "Stay in the current role and keep commuting",
    "biggest_fear": "The startup folds within a year",
    "future_regret": "Never having tried",
}

SCENARIO_ANSWERS = {
    "best_case_scenario": "The company grows and I lead a team",
    "likely_case_scenario": "Steady work with more responsibility",
    "worst_case_scenario": "Laid off after eight months",
}


class FakeAnalyst:
    """Scripted stand-in for the text analysis service that counts calls."""

    def __init__(self):
        self.calls = []
        self.text = "- Insight one\n- Insight two"
        self.error = None
        self.score = {
            "overall_score": 72,
            "clarity_score": 80,
            "bias_score": 65,
            "reversibility_score": 70,
            "analysis_depth_score": 60,
            "explanation": "Clear reasons, limited second-order thinking.",
        }

    def complete(self, system_prompt, user_prompt, response_model=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "response_model": response_model,
            }
        )
        if self.error is not None:
            raise self.error
        if response_model is not None:
            return self.score
        return self.text


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path}/test.db", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return DecisionStore(session_factory)


@pytest.fixture
def fake_analyst():
    return FakeAnalyst()


@pytest.fixture
def orchestrator(store, fake_analyst):
    return AnalysisOrchestrator(store, fake_analyst)


@pytest.fixture
def workflow(store, orchestrator):
    return DecisionWorkflow(store, EntitlementGate(AccessTierLookup(store)), orchestrator)


@pytest.fixture
def paid_subject(store):
    store.set_access_tier("paid-user", "paid")
    return "paid-user"


@pytest.fixture
def decision(workflow, paid_subject):
    return workflow.create(
        paid_subject,
        CreateDecisionRequest(
            title="Should I join the startup?",
            description="Offer from a seed-stage company",
            category="career",
        ),
    )


@pytest.fixture
def decision_at_lock(workflow, paid_subject, decision):
    """A decision walked through every stage up to LOCK."""
    workflow.update_fields(paid_subject, decision.id, Stage.DECONSTRUCT, DECONSTRUCTION_ANSWERS)
    workflow.advance(paid_subject, decision.id)
    workflow.update_fields(paid_subject, decision.id, Stage.SCENARIOS, SCENARIO_ANSWERS)
    workflow.advance(paid_subject, decision.id)
    workflow.advance(paid_subject, decision.id)
    return workflow.advance(paid_subject, decision.id).decision
