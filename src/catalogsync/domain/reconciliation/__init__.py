"""Catalog reconciliation core: registry, gate, loop guard, adapter, cascade, orchestrator."""

from __future__ import annotations

from .adapter import (
    DeleteOutcome,
    DeleteResult,
    PlatformAdapter,
    UnknownPlatformError,
    UpsertAction,
    UpsertResult,
)
from .cascade import CascadePropagator
from .gate import ChangeGate, GateDecision
from .loop_guard import LoopGuard
from .orchestrator import PlatformReport, ReconciliationOrchestrator, ReconciliationReport
from .registry import ExternalIdRegistry

__all__ = [
    "CascadePropagator",
    "ChangeGate",
    "DeleteOutcome",
    "DeleteResult",
    "ExternalIdRegistry",
    "GateDecision",
    "LoopGuard",
    "PlatformAdapter",
    "PlatformReport",
    "ReconciliationOrchestrator",
    "ReconciliationReport",
    "UnknownPlatformError",
    "UpsertAction",
    "UpsertResult",
]
