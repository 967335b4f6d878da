import pytest

from entitlement import AccessTierLookup, EntitlementGate, can_advance
from models import AccessTier, Stage


@pytest.mark.parametrize("stage", list(Stage))
def test_paid_subjects_advance_from_every_stage(stage):
    assert can_advance(AccessTier.PAID, stage)


@pytest.mark.parametrize("stage", list(Stage))
def test_free_subjects_never_pass_the_first_stage(stage):
    assert not can_advance(AccessTier.FREE, stage)


def test_unknown_subject_defaults_to_free(store):
    assert AccessTierLookup(store).get_access_tier("nobody") == AccessTier.FREE


def test_unrecognized_tier_is_treated_as_free(store):
    store.set_access_tier("odd", "platinum")
    assert AccessTierLookup(store).get_access_tier("odd") == AccessTier.FREE


def test_gate_rechecks_tier_on_every_call(store):
    gate = EntitlementGate(AccessTierLookup(store))
    assert not gate.check("upgrader", Stage.DECONSTRUCT)

    store.set_access_tier("upgrader", "paid")
    assert gate.check("upgrader", Stage.DECONSTRUCT)

    store.set_access_tier("upgrader", "free")
    assert not gate.check("upgrader", Stage.DECONSTRUCT)
