from __future__ import annotations

import json
from pathlib import Path

import pytest

from merch_pipeline.config import RunConfig
from merch_pipeline.content import ContentGenerator, DryRunContentGenerator
from merch_pipeline.discovery import units_from_names
from merch_pipeline.errors import (
    DomainRejectionError,
    ExhaustedRetriesError,
    MalformedContentError,
    MissingCredentialsError,
    TransientTransportError,
)
from merch_pipeline.hosting import AssetUploader, DryRunUploader
from merch_pipeline.models import DesignUnit, ListingContent, ProductRecord, UploadResult
from merch_pipeline.pipeline import (
    PipelineSequencer,
    ResultLog,
    RunSummary,
    Stage,
    UnitOutcome,
    UnitState,
    build_sequencer,
    render_report,
    write_report,
)
from merch_pipeline.printful import DryRunProductSync, ProductSyncAdapter


class FakeGenerator:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []

    def generate(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]
        return ListingContent(title=f"{name} Sweatshirt", description="Cozy", tags=[name.lower()])


class FakeUploader:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []

    def upload(self, path):
        path = Path(path)
        self.calls.append(path.name)
        if path.name in self.failures:
            raise self.failures[path.name]
        return UploadResult(url=f"https://files.example/{path.name}")


class FakeSync:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []

    def sync(self, unit, design_url, content, mockup_urls=(), price=None):
        self.calls.append((unit.name, design_url, tuple(mockup_urls)))
        if unit.name in self.failures:
            raise self.failures[unit.name]
        return ProductRecord(id=f"pf-{unit.slug}", external_url=None)


def unit(name, mockups=()):
    return DesignUnit(
        name=name,
        source_image_path=Path("export") / f"{name}.png",
        mockup_paths=tuple(Path("export-mockups") / name / m for m in mockups),
    )


def make_sequencer(tmp_path, generator=None, uploader=None, sync=None, **config):
    return PipelineSequencer(
        RunConfig(results_dir=tmp_path / "product-info", **config),
        generator or FakeGenerator(),
        uploader or FakeUploader(),
        sync or FakeSync(),
        ResultLog(tmp_path / "product-info"),
    )


# -- sequencer ---------------------------------------------------------------


def test_all_units_succeed(tmp_path):
    sequencer = make_sequencer(tmp_path)
    summary = sequencer.run([unit("TACO"), unit("MOLE")])

    assert (summary.processed, summary.succeeded, summary.failed) == (2, 2, 0)
    assert [o.state for o in summary.outcomes] == [UnitState.SYNCED, UnitState.SYNCED]
    assert all(o.log_path and o.log_path.exists() for o in summary.outcomes)


def test_failed_unit_does_not_stop_the_run(tmp_path):
    rejection = DomainRejectionError("store rejected product", status_code=400, known_limitation=True)
    sync = FakeSync({"B": rejection})
    summary = make_sequencer(tmp_path, sync=sync).run([unit("A"), unit("B"), unit("C")])

    assert [o.name for o in summary.outcomes] == ["A", "B", "C"]
    assert [o.state for o in summary.outcomes] == [UnitState.SYNCED, UnitState.FAILED, UnitState.SYNCED]
    assert (summary.processed, summary.succeeded, summary.failed) == (3, 2, 1)
    assert summary.known_limitations == 1

    failed = summary.outcomes[1]
    assert failed.failed_stage is Stage.SYNC
    assert failed.error_type == "DomainRejectionError"
    assert failed.design_url == "https://files.example/B.png"
    assert failed.log_path is None
    assert len(list((tmp_path / "product-info").glob("*.json"))) == 2


def test_content_failure_skips_later_stages(tmp_path):
    generator = FakeGenerator({"MOLE": MalformedContentError("no tags")})
    uploader = FakeUploader()
    sync = FakeSync()
    summary = make_sequencer(tmp_path, generator, uploader, sync).run([unit("MOLE"), unit("TACO")])

    mole = summary.outcomes[0]
    assert mole.state is UnitState.FAILED
    assert mole.failed_stage is Stage.CONTENT
    assert uploader.calls == ["TACO.png"]
    assert [c[0] for c in sync.calls] == ["TACO"]


def test_mockups_uploaded_in_order_and_passed_to_sync(tmp_path):
    uploader = FakeUploader()
    sync = FakeSync()
    make_sequencer(tmp_path, uploader=uploader, sync=sync).run(
        [unit("TACO", mockups=("1-black.png", "2-navy.png"))]
    )

    assert uploader.calls == ["TACO.png", "1-black.png", "2-navy.png"]
    assert sync.calls[0][2] == (
        "https://files.example/1-black.png",
        "https://files.example/2-navy.png",
    )


def test_exhausted_upload_fails_at_upload_stage(tmp_path):
    error = ExhaustedRetriesError(TransientTransportError("503"), attempts=3, description="upload")
    uploader = FakeUploader({"2-navy.png": error})
    summary = make_sequencer(tmp_path, uploader=uploader).run(
        [unit("TACO", mockups=("1-black.png", "2-navy.png"))]
    )

    outcome = summary.outcomes[0]
    assert outcome.failed_stage is Stage.UPLOAD
    assert outcome.error_type == "ExhaustedRetriesError"


def test_missing_credentials_abort_the_run(tmp_path):
    sync = FakeSync({"A": MissingCredentialsError("PRINTFUL_API_KEY")})
    with pytest.raises(MissingCredentialsError):
        make_sequencer(tmp_path, sync=sync).run([unit("A"), unit("B")])
    assert [c[0] for c in sync.calls] == ["A"]


def test_unexpected_error_is_recorded(tmp_path, caplog):
    sync = FakeSync({"A": KeyError("id")})
    summary = make_sequencer(tmp_path, sync=sync).run([unit("A"), unit("B")])

    assert summary.outcomes[0].error_type == "KeyError"
    assert summary.outcomes[1].succeeded
    assert any(r.exc_info for r in caplog.records)


def test_log_write_failure_keeps_unit_synced(tmp_path, monkeypatch):
    def broken(*args, **kwargs):
        raise OSError("disk full")

    sequencer = make_sequencer(tmp_path)
    monkeypatch.setattr(sequencer.result_log, "append", broken)
    summary = sequencer.run([unit("TACO")])

    assert summary.outcomes[0].succeeded
    assert summary.outcomes[0].log_path is None


def test_dry_run_scenario_makes_no_network_calls(tmp_path, no_network):
    config = RunConfig(dry_run=True, results_dir=tmp_path / "product-info")
    units = units_from_names(["TACO", "MOLE"], tmp_path / "export", tmp_path / "export-mockups")

    summary = build_sequencer(config, env={}).run(units)

    assert (summary.processed, summary.succeeded, summary.failed) == (2, 2, 0)
    assert summary.dry_run
    assert [o.record.id for o in summary.outcomes] == ["dry-run-taco", "dry-run-mole"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["product-info"]
    logs = sorted((tmp_path / "product-info").glob("*.json"))
    assert len(logs) == 2
    entry = json.loads(logs[0].read_text(encoding="utf-8"))
    assert entry["dry_run"] is True


def test_build_sequencer_dry_run_uses_placeholders(tmp_path):
    sequencer = build_sequencer(RunConfig(dry_run=True, results_dir=tmp_path), env={})
    assert isinstance(sequencer.content_generator, DryRunContentGenerator)
    assert isinstance(sequencer.uploader, DryRunUploader)
    assert isinstance(sequencer.product_sync, DryRunProductSync)


def test_build_sequencer_live_requires_store_credentials():
    with pytest.raises(MissingCredentialsError) as info:
        build_sequencer(RunConfig(), env={"OPENROUTER_API_KEY": "k"})
    assert info.value.key == "PRINTFUL_API_KEY"


def test_build_sequencer_live_wires_adapters(tmp_path):
    env = {
        "PRINTFUL_API_KEY": "pf",
        "PRINTFUL_STORE_ID": "123",
        "OPENROUTER_API_KEY": "or",
        "CLOUDINARY_CLOUD_NAME": "demo",
        "CLOUDINARY_API_KEY": "k",
        "CLOUDINARY_API_SECRET": "s",
    }
    sequencer = build_sequencer(RunConfig(results_dir=tmp_path), env=env)

    assert isinstance(sequencer.content_generator, ContentGenerator)
    assert isinstance(sequencer.uploader, AssetUploader)
    assert isinstance(sequencer.product_sync, ProductSyncAdapter)
    assert sequencer.product_sync.client.credentials.store_id == "123"


# -- state -------------------------------------------------------------------


def test_outcome_moves_forward_only():
    outcome = UnitOutcome(name="TACO")
    with pytest.raises(ValueError):
        outcome.advance(UnitState.UPLOADED)
    outcome.advance(UnitState.CONTENT_GENERATED)
    outcome.advance(UnitState.UPLOADED)
    outcome.advance(UnitState.SYNCED)
    with pytest.raises(ValueError):
        outcome.fail(Stage.SYNC, RuntimeError("late"))


def test_summary_counts_by_state():
    ok = UnitOutcome(name="A", state=UnitState.SYNCED)
    bad = UnitOutcome(name="B")
    bad.fail(Stage.UPLOAD, ValueError("nope"))
    summary = RunSummary(outcomes=[ok, bad])

    assert summary.by_state == {"synced": 1, "failed:upload": 1}
    data = summary.to_dict()
    assert data["processed"] == 2
    assert data["units"][1]["failed_stage"] == "upload"
    json.dumps(data)


# -- result log --------------------------------------------------------------


def test_result_log_avoids_collisions(tmp_path, monkeypatch):
    monkeypatch.setattr("merch_pipeline.pipeline.result_log.time.time", lambda: 1700000000.0)
    log = ResultLog(tmp_path)
    content = ListingContent("T", "D", ["t"])
    record = ProductRecord(id="1", external_url=None)

    first = log.append(unit("TACO"), record, content, "https://x/TACO.png")
    second = log.append(unit("TACO"), record, content, "https://x/TACO.png")

    assert first.name == "taco-1700000000000.json"
    assert second.name == "taco-1700000000001.json"


def test_result_log_read_all(tmp_path):
    log = ResultLog(tmp_path / "info")
    assert log.read_all() == []

    content = ListingContent("T", "D", ["t"])
    record = ProductRecord(id="1", external_url=None)
    log.append(unit("TACO"), record, content, "https://x/TACO.png")
    log.append(unit("MOLE"), record, content, "https://x/MOLE.png", dry_run=True)
    (tmp_path / "info" / "broken.json").write_text("{", encoding="utf-8")

    assert len(log.read_all()) == 2
    mole = log.read_all(word="MOLE")
    assert len(mole) == 1
    assert mole[0]["listing"]["tags"] == ["t"]
    assert mole[0]["product"]["id"] == "1"


# -- report ------------------------------------------------------------------


def test_report_lists_units(tmp_path):
    rejection = DomainRejectionError("only Manual Order / API platform", known_limitation=True)
    summary = make_sequencer(tmp_path, sync=FakeSync({"B": rejection})).run([unit("A"), unit("B")])

    text = render_report(summary)
    assert "**Processed:** 2" in text
    assert "**Failed:** 1" in text
    assert "| 01 | A | ✅ synced | pf-a |" in text
    assert "known limitation" in text

    path = write_report(summary, tmp_path / "reports" / "run.md")
    assert path.read_text(encoding="utf-8").startswith("# Product Sync Report")
