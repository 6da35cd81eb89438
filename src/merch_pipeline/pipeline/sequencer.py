"""Pipeline sequencer.

Drives each design unit through content generation, asset upload and
product sync, one unit at a time, and collects a run summary. A failing unit
is recorded and skipped; only missing credentials stop the run.
"""
from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol, Sequence

from ..config import RunConfig
from ..content import ContentGenerator, ContentSettings, DryRunContentGenerator
from ..credentials import resolve_store_credentials
from ..errors import MissingCredentialsError, PipelineError
from ..hosting import build_uploader
from ..models import DesignUnit, ListingContent, ProductRecord, UploadResult
from ..printful import DryRunProductSync, PrintfulClient, ProductSyncAdapter
from .result_log import ResultLog
from .state import RunSummary, Stage, UnitOutcome, UnitState

logger = logging.getLogger(__name__)


class ListingSource(Protocol):
    def generate(self, name: str) -> ListingContent: ...


class Uploader(Protocol):
    def upload(self, path) -> UploadResult: ...


class ProductSync(Protocol):
    def sync(
        self,
        unit: DesignUnit,
        design_url: str,
        content: ListingContent,
        mockup_urls: Sequence[str] = (),
        price: Optional[str] = None,
    ) -> ProductRecord: ...


class PipelineSequencer:
    """Run design units through content → upload → sync."""

    def __init__(
        self,
        config: RunConfig,
        content_generator: ListingSource,
        uploader: Uploader,
        product_sync: ProductSync,
        result_log: ResultLog,
    ):
        self.config = config
        self.content_generator = content_generator
        self.uploader = uploader
        self.product_sync = product_sync
        self.result_log = result_log

    def process(self, unit: DesignUnit) -> UnitOutcome:
        """Drive one unit to a terminal state.

        Raises:
            MissingCredentialsError: Run-level misconfiguration.
        """
        outcome = UnitOutcome(name=unit.name)
        stage = Stage.CONTENT

        try:
            # Step 1: Listing content
            logger.info(f"Step 1: Generating listing content for {unit.name}...")
            content = self.content_generator.generate(unit.name)
            outcome.content = content
            outcome.advance(UnitState.CONTENT_GENERATED)

            # Step 2: Design and mockups
            stage = Stage.UPLOAD
            logger.info(f"Step 2: Uploading design for {unit.name}...")
            design = self.uploader.upload(unit.source_image_path)
            outcome.design_url = design.url
            for mockup_path in unit.mockup_paths:
                outcome.mockup_urls.append(self.uploader.upload(mockup_path).url)
            if unit.mockup_paths:
                logger.info(f"  ✓ Uploaded {len(outcome.mockup_urls)} mockup(s)")
            outcome.advance(UnitState.UPLOADED)

            # Step 3: Store product
            stage = Stage.SYNC
            logger.info(f"Step 3: Syncing product for {unit.name}...")
            outcome.record = self.product_sync.sync(
                unit, design.url, content, mockup_urls=tuple(outcome.mockup_urls)
            )
            outcome.advance(UnitState.SYNCED)

        except MissingCredentialsError:
            raise
        except PipelineError as e:
            outcome.fail(stage, e)
            logger.error(
                f"✗ {unit.name} failed at {stage.value} stage: {type(e).__name__}: {e}"
            )
            if outcome.known_limitation:
                logger.info(f"  ({unit.name}: rejection is a known limitation of the {self.config.store} store)")
            return outcome
        except Exception as e:
            outcome.fail(stage, e)
            logger.exception(f"✗ {unit.name} failed at {stage.value} stage with an unexpected error")
            return outcome

        try:
            outcome.log_path = self.result_log.append(
                unit,
                outcome.record,
                content,
                design.url,
                mockup_urls=outcome.mockup_urls,
                dry_run=self.config.dry_run,
            )
        except OSError as e:
            # product exists remotely; keep the unit synced
            logger.error(f"Could not write product log for {unit.name}: {e}")

        logger.info(f"✓ {unit.name} synced")
        return outcome

    def run(self, units: Sequence[DesignUnit]) -> RunSummary:
        """Process ``units`` in order and return the run summary.

        Raises:
            MissingCredentialsError: Run-level misconfiguration.
        """
        summary = RunSummary(dry_run=self.config.dry_run)
        mode = "DRY RUN" if self.config.dry_run else f"{self.config.store} store"

        logger.info("=" * 60)
        logger.info(f"Processing {len(units)} design(s) ({mode})")
        logger.info("=" * 60)

        for index, unit in enumerate(units, start=1):
            logger.info("")
            logger.info(f"[{index}/{len(units)}] {unit.name}")
            logger.info("-" * 60)
            summary.add(self.process(unit))

        logger.info("")
        logger.info("=" * 60)
        logger.info(
            f"Run complete: processed {summary.processed}, "
            f"succeeded {summary.succeeded}, failed {summary.failed}"
        )
        logger.info("=" * 60)
        return summary


def build_sequencer(
    config: RunConfig,
    env: Optional[Mapping[str, str]] = None,
) -> PipelineSequencer:
    """Wire a sequencer for ``config``.

    Dry runs get placeholder collaborators and never read credentials.

    Raises:
        MissingCredentialsError: A required key is not configured.
    """
    if config.dry_run:
        logger.info("[dry-run] Using placeholder content, uploads and product sync")
        return PipelineSequencer(
            config,
            DryRunContentGenerator(),
            build_uploader(config, env),
            DryRunProductSync(config),
            ResultLog(config.results_dir),
        )

    credentials = resolve_store_credentials(config.store, env)
    logger.info(f"Using {credentials}")
    return PipelineSequencer(
        config,
        ContentGenerator(ContentSettings.from_env(env), config.retry),
        build_uploader(config, env),
        ProductSyncAdapter(PrintfulClient(credentials), config),
        ResultLog(config.results_dir),
    )


__all__ = ["PipelineSequencer", "build_sequencer"]
