"""SQLAlchemy-backed record store for decisions and their satellites.

Every write is a single statement committed in its own short-lived session,
so concurrent merges on the same decision never interleave within a row.
Conditional merges (``only_if`` / ``only_if_absent``) are compare-and-set
updates: they either apply in full or report that the condition did not hold.
"""

import json
from contextlib import contextmanager
from uuid import uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import (
    BiasProfileRecord,
    ComparisonRecord,
    DecisionRecord,
    DecisionScoreRecord,
    ReflectionRecord,
    SubjectAccess,
)
from errors import PersistenceError
from models import (
    BiasProfile,
    Decision,
    DecisionComparison,
    DecisionReflection,
    DecisionScore,
)

logger = structlog.get_logger(__name__)


def _encode(fields):
    encoded = dict(fields)
    if encoded.get("detected_biases") is not None:
        encoded["detected_biases"] = json.dumps(list(encoded["detected_biases"]))
    return encoded


class DecisionStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("store_write_failed", error=str(e))
            raise PersistenceError("Decision store unavailable, try again") from e
        finally:
            session.close()

    # Decisions

    def get(self, decision_id: str) -> Decision | None:
        with self._session() as session:
            record = session.get(DecisionRecord, decision_id)
            if record is None:
                return None
            return Decision.model_validate(record)

    def list_for_subject(self, user_id: str) -> list[Decision]:
        with self._session() as session:
            records = session.scalars(
                select(DecisionRecord)
                .where(DecisionRecord.user_id == user_id)
                .order_by(DecisionRecord.created_at.desc())
            ).all()
            return [Decision.model_validate(record) for record in records]

    def insert(self, fields: dict) -> Decision:
        with self._session() as session:
            record = DecisionRecord(id=str(uuid4()), **_encode(fields))
            session.add(record)
            session.commit()
            session.refresh(record)
            return Decision.model_validate(record)

    def merge(
        self,
        decision_id: str,
        fields: dict,
        *,
        only_if: dict | None = None,
        only_if_absent=(),
    ) -> Decision | None:
        """Shallow field-level update. Returns the merged record, or None when
        the row is missing or a condition did not hold."""
        conditions = [DecisionRecord.id == decision_id]
        for name, value in (only_if or {}).items():
            conditions.append(getattr(DecisionRecord, name) == value)
        for name in only_if_absent:
            conditions.append(getattr(DecisionRecord, name).is_(None))

        statement = (
            update(DecisionRecord)
            .where(*conditions)
            .values(**_encode(fields))
            .execution_options(synchronize_session=False)
        )
        with self._session() as session:
            result = session.execute(statement)
            session.commit()
            if result.rowcount == 0:
                return None
        return self.get(decision_id)

    # Scores

    def get_score(self, decision_id: str) -> DecisionScore | None:
        with self._session() as session:
            record = session.scalars(
                select(DecisionScoreRecord).where(
                    DecisionScoreRecord.decision_id == decision_id
                )
            ).first()
            if record is None:
                return None
            return DecisionScore.model_validate(record)

    def insert_score(self, decision_id: str, fields: dict) -> DecisionScore:
        """Store the score unless one already exists; the stored row wins."""
        with self._session() as session:
            record = DecisionScoreRecord(decision_id=decision_id, **fields)
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
            else:
                session.refresh(record)
                return DecisionScore.model_validate(record)

        logger.info("score_already_stored", decision_id=decision_id)
        existing = self.get_score(decision_id)
        if existing is None:
            raise PersistenceError("Score write conflicted but nothing was stored")
        return existing

    # Reflections

    def insert_reflection(self, fields: dict) -> DecisionReflection:
        with self._session() as session:
            record = ReflectionRecord(id=str(uuid4()), **fields)
            session.add(record)
            session.commit()
            session.refresh(record)
            return DecisionReflection.model_validate(record)

    def list_reflections(self, decision_id: str) -> list[DecisionReflection]:
        with self._session() as session:
            records = session.scalars(
                select(ReflectionRecord)
                .where(ReflectionRecord.decision_id == decision_id)
                .order_by(ReflectionRecord.created_at.desc())
            ).all()
            return [DecisionReflection.model_validate(record) for record in records]

    # Access tiers

    def get_access_tier(self, user_id: str) -> str | None:
        with self._session() as session:
            record = session.get(SubjectAccess, user_id)
            return record.access_tier if record is not None else None

    def set_access_tier(self, user_id: str, tier: str) -> None:
        with self._session() as session:
            record = session.get(SubjectAccess, user_id)
            if record is None:
                session.add(SubjectAccess(user_id=user_id, access_tier=tier))
            else:
                record.access_tier = tier
            session.commit()

    # Bias profiles

    def get_bias_profile(self, user_id: str) -> BiasProfile | None:
        with self._session() as session:
            record = session.get(BiasProfileRecord, user_id)
            if record is None:
                return None
            return BiasProfile.model_validate(record)

    def upsert_bias_profile(self, user_id: str, fields: dict) -> BiasProfile:
        """One profile per subject; a new analysis replaces the previous one."""
        encoded = dict(fields)
        encoded["common_biases"] = json.dumps(list(fields.get("common_biases") or []))
        with self._session() as session:
            record = session.get(BiasProfileRecord, user_id)
            if record is None:
                record = BiasProfileRecord(user_id=user_id, **encoded)
                session.add(record)
            else:
                for name, value in encoded.items():
                    setattr(record, name, value)
            session.commit()
            session.refresh(record)
            return BiasProfile.model_validate(record)

    # Comparisons

    def insert_comparison(self, fields: dict) -> DecisionComparison:
        encoded = dict(fields, decision_ids=json.dumps(list(fields["decision_ids"])))
        with self._session() as session:
            record = ComparisonRecord(id=str(uuid4()), **encoded)
            session.add(record)
            session.commit()
            session.refresh(record)
            return DecisionComparison.model_validate(record)

    def list_comparisons(self, user_id: str) -> list[DecisionComparison]:
        with self._session() as session:
            records = session.scalars(
                select(ComparisonRecord)
                .where(ComparisonRecord.user_id == user_id)
                .order_by(ComparisonRecord.created_at.desc())
            ).all()
            return [DecisionComparison.model_validate(record) for record in records]
