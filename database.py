from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class DecisionRecord(Base):
    __tablename__ = "decisions"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)  # Owner, fixed at insert
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String, nullable=False, default="general")
    status = Column(String, nullable=False, default="in_progress")
    stage = Column(Integer, nullable=False, default=1)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime(timezone=True))

    # Stage inputs
    time_horizon = Column(String)
    is_reversible = Column(String)
    do_nothing_outcome = Column(Text)
    biggest_fear = Column(Text)
    future_regret = Column(Text)
    best_case_scenario = Column(Text)
    likely_case_scenario = Column(Text)
    worst_case_scenario = Column(Text)
    second_order_effects = Column(Text)
    final_decision = Column(Text)
    key_reasons = Column(Text)
    risks_accepted = Column(Text)

    # Stage outputs
    ai_insight_summary = Column(Text)
    ai_scenario_analysis = Column(Text)
    detected_biases = Column(Text)  # JSON list; NULL until analyzed
    ai_bias_explanation = Column(Text)
    ai_second_order_analysis = Column(Text)
    decision_summary = Column(Text)
    biases_acknowledged = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class DecisionScoreRecord(Base):
    __tablename__ = "decision_scores"
    __table_args__ = (UniqueConstraint("decision_id"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    decision_id = Column(String, ForeignKey("decisions.id"), nullable=False)
    overall_score = Column(Integer, nullable=False)
    clarity_score = Column(Integer, nullable=False)
    bias_score = Column(Integer, nullable=False)
    reversibility_score = Column(Integer, nullable=False)
    analysis_depth_score = Column(Integer, nullable=False)
    explanation = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ReflectionRecord(Base):
    __tablename__ = "decision_reflections"
    id = Column(String, primary_key=True)
    decision_id = Column(String, ForeignKey("decisions.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    reflection_type = Column(String, nullable=False)
    aged_well = Column(Boolean, nullable=False)
    what_surprised = Column(Text)
    what_differently = Column(Text)
    ai_reflection_analysis = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SubjectAccess(Base):
    __tablename__ = "subject_access"
    user_id = Column(String, primary_key=True)
    access_tier = Column(String, nullable=False, default="free")
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class BiasProfileRecord(Base):
    __tablename__ = "bias_profiles"
    user_id = Column(String, primary_key=True)  # One profile per subject
    common_biases = Column(Text, nullable=False, default="[]")  # JSON list
    risk_tolerance = Column(String)
    fear_patterns = Column(Text)
    overconfidence_patterns = Column(Text)
    ai_profile_summary = Column(Text)
    total_decisions_analyzed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class ComparisonRecord(Base):
    __tablename__ = "decision_comparisons"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    decision_ids = Column(Text, nullable=False)  # JSON list
    ai_comparison_analysis = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
