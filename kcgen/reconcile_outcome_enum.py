from enum import Enum


class ReconcileOutcomeEnum(Enum):
    """What happened to a single object during reconciliation."""

    Created = "created"
    Existing = "existing"
    Failed = "failed"
