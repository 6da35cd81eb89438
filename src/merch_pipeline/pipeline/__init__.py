"""Pipeline orchestration: sequencer, per-unit state, result log and report."""

from .report import render_report, write_report
from .result_log import ResultLog
from .sequencer import PipelineSequencer, build_sequencer
from .state import RunSummary, Stage, UnitOutcome, UnitState

__all__ = [
    "PipelineSequencer",
    "build_sequencer",
    "ResultLog",
    "RunSummary",
    "Stage",
    "UnitOutcome",
    "UnitState",
    "render_report",
    "write_report",
]
