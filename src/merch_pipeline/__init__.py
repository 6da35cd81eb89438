"""Merch pipeline: listing copy, asset hosting and print-on-demand product sync."""

from .config import RunConfig, load_run_config
from .models import DesignUnit, ListingContent, ProductRecord, RetryPolicy, UploadResult
from .pipeline import PipelineSequencer, RunSummary, build_sequencer

__version__ = "0.3.0"

__all__ = [
    "RunConfig",
    "load_run_config",
    "DesignUnit",
    "ListingContent",
    "ProductRecord",
    "RetryPolicy",
    "UploadResult",
    "PipelineSequencer",
    "RunSummary",
    "build_sequencer",
]
