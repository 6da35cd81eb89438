"""Per-unit state machine and run summary."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..models import ListingContent, ProductRecord

logger = logging.getLogger(__name__)


class UnitState(str, Enum):
    """Lifecycle of a design unit. Transitions only move forward."""

    PENDING = "pending"
    CONTENT_GENERATED = "content_generated"
    UPLOADED = "uploaded"
    SYNCED = "synced"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UnitState.SYNCED, UnitState.FAILED)


# Allowed successor of each non-terminal success state
_NEXT_STATE = {
    UnitState.PENDING: UnitState.CONTENT_GENERATED,
    UnitState.CONTENT_GENERATED: UnitState.UPLOADED,
    UnitState.UPLOADED: UnitState.SYNCED,
}


class Stage(str, Enum):
    """Pipeline stage a unit can fail in."""

    CONTENT = "content"
    UPLOAD = "upload"
    SYNC = "sync"


@dataclass
class UnitOutcome:
    """Progress and final result for one design unit."""

    name: str
    state: UnitState = UnitState.PENDING
    failed_stage: Optional[Stage] = None
    reason: Optional[str] = None
    error_type: Optional[str] = None
    known_limitation: bool = False
    content: Optional[ListingContent] = None
    design_url: Optional[str] = None
    mockup_urls: List[str] = field(default_factory=list)
    record: Optional[ProductRecord] = None
    log_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.state is UnitState.SYNCED

    def advance(self, state: UnitState) -> None:
        """Move to the next success state.

        Raises:
            ValueError: If ``state`` is not the direct successor.
        """
        expected = _NEXT_STATE.get(self.state)
        if state is not expected:
            raise ValueError(f"{self.name}: cannot move from {self.state.value} to {state.value}")
        self.state = state

    def fail(self, stage: Stage, error: BaseException) -> None:
        """Mark the unit failed at ``stage``.

        Raises:
            ValueError: If the unit already reached a terminal state.
        """
        if self.state.is_terminal:
            raise ValueError(f"{self.name}: already terminal ({self.state.value})")
        self.state = UnitState.FAILED
        self.failed_stage = stage
        self.reason = str(error)
        self.error_type = type(error).__name__
        self.known_limitation = bool(getattr(error, "known_limitation", False))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "reason": self.reason,
            "error_type": self.error_type,
            "known_limitation": self.known_limitation,
            "design_url": self.design_url,
            "mockup_urls": list(self.mockup_urls),
            "product": self.record.to_dict() if self.record else None,
            "log_path": str(self.log_path) if self.log_path else None,
        }


@dataclass
class RunSummary:
    """Outcomes of a run, in the order units were enumerated."""

    dry_run: bool = False
    outcomes: List[UnitOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.state is UnitState.FAILED)

    @property
    def known_limitations(self) -> int:
        return sum(1 for o in self.outcomes if o.known_limitation)

    @property
    def failures(self) -> List[UnitOutcome]:
        return [o for o in self.outcomes if o.state is UnitState.FAILED]

    @property
    def by_state(self) -> Dict[str, int]:
        """Count of units per terminal state (failures split by stage)."""
        counts: Dict[str, int] = {}
        for outcome in self.outcomes:
            key = outcome.state.value
            if outcome.failed_stage is not None:
                key = f"{key}:{outcome.failed_stage.value}"
            counts[key] = counts.get(key, 0) + 1
        return counts

    def add(self, outcome: UnitOutcome) -> None:
        self.outcomes.append(outcome)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "dry_run": self.dry_run,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "known_limitations": self.known_limitations,
            "by_state": self.by_state,
            "units": [o.to_dict() for o in self.outcomes],
        }


__all__ = ["UnitState", "Stage", "UnitOutcome", "RunSummary"]
