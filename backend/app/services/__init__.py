"""Business services."""

from app.services.expiration_listener import ExpirationListener
from app.services.outcome_service import (
    build_auditor,
    build_reconciler,
    build_verifier,
    reconciliation_loop,
)

__all__ = [
    "ExpirationListener",
    "build_auditor",
    "build_reconciler",
    "build_verifier",
    "reconciliation_loop",
]
