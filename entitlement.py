import structlog

from models import AccessTier, Stage

logger = structlog.get_logger(__name__)

# Free subjects may work inside this stage but never move past it.
FREE_BOUNDARY = Stage.DECONSTRUCT


def can_advance(tier: AccessTier, from_stage: Stage) -> bool:
    """Pure entitlement policy for a forward transition out of ``from_stage``."""
    if tier == AccessTier.PAID:
        return True
    return from_stage < FREE_BOUNDARY


class AccessTierLookup:
    """Reads the subject's tier as maintained by the billing integration."""

    def __init__(self, store):
        self.store = store

    def get_access_tier(self, subject_id: str) -> AccessTier:
        tier = self.store.get_access_tier(subject_id)
        if tier is None:
            return AccessTier.FREE
        try:
            return AccessTier(tier)
        except ValueError:
            logger.warning("unknown_access_tier", subject_id=subject_id, tier=tier)
            return AccessTier.FREE


class EntitlementGate:
    def __init__(self, lookup: AccessTierLookup):
        self.lookup = lookup

    def check(self, subject_id: str, from_stage: Stage) -> bool:
        # Looked up on every call: tiers change independently of decisions.
        tier = self.lookup.get_access_tier(subject_id)
        allowed = can_advance(tier, from_stage)
        if not allowed:
            logger.info(
                "entitlement_denied",
                subject_id=subject_id,
                tier=tier.value,
                from_stage=from_stage.name,
            )
        return allowed
