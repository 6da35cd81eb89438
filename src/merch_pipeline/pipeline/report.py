"""Markdown run report."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from .state import RunSummary, UnitState

logger = logging.getLogger(__name__)


def render_report(summary: RunSummary) -> str:
    """Render a run summary as markdown.

    Args:
        summary: Completed run summary.

    Returns:
        Markdown text.
    """
    mode = "DRY RUN" if summary.dry_run else "LIVE"
    content_lines = [
        "# Product Sync Report",
        "",
        f"**Mode:** {mode}",
        f"**Date:** {datetime.now(timezone.utc).isoformat()}",
        "",
        "## Summary",
        "",
        f"- **Processed:** {summary.processed}",
        f"- **Succeeded:** {summary.succeeded}",
        f"- **Failed:** {summary.failed}",
    ]
    if summary.known_limitations:
        content_lines.append(f"- **Known store limitations:** {summary.known_limitations}")

    # Per-unit table
    content_lines.extend(["", "## Units", ""])
    if summary.outcomes:
        content_lines.append("| # | Design | State | Product | Note |")
        content_lines.append("|---|--------|-------|---------|------|")
        for idx, outcome in enumerate(summary.outcomes, start=1):
            if outcome.state is UnitState.SYNCED:
                state = "✅ synced"
                product = outcome.record.id if outcome.record else ""
                note = (outcome.record.external_url if outcome.record else None) or ""
            else:
                stage = outcome.failed_stage.value if outcome.failed_stage else "?"
                state = f"❌ failed ({stage})"
                product = ""
                note = f"{outcome.error_type}: {outcome.reason}"
                if outcome.known_limitation:
                    note = f"known limitation. {note}"
            note = note.replace("|", "\\|").replace("\n", " ")
            content_lines.append(f"| {idx:02d} | {outcome.name} | {state} | {product} | {note} |")
    else:
        content_lines.append("(No units processed)")

    # State counts
    content_lines.extend(["", "## Terminal States", ""])
    for state, count in sorted(summary.by_state.items()):
        content_lines.append(f"- {state}: {count}")

    content_lines.extend(["", "---", "**Generated:** merch-pipeline"])
    return "\n".join(content_lines) + "\n"


def write_report(summary: RunSummary, path: Path) -> Path:
    """Write the markdown report to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_report(summary))
    logger.info(f"Report saved: {path}")
    return path


__all__ = ["render_report", "write_report"]
