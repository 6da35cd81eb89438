from __future__ import annotations

import json
from pathlib import Path

import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
import pytest

from merch_pipeline.config import RunConfig
from merch_pipeline.errors import (
    AssetTooLargeError,
    AuthenticationError,
    ExhaustedRetriesError,
    InvalidInputError,
    MissingCredentialsError,
    RemoteRequestError,
    TransientTransportError,
)
from merch_pipeline.hosting import (
    AssetHost,
    AssetUploader,
    CloudinaryHost,
    CloudinarySettings,
    DropboxHost,
    DropboxSettings,
    DryRunUploader,
    HostedFile,
    build_host,
    build_uploader,
    validate_asset,
)
from merch_pipeline.hosting.dropbox import to_direct_link

from conftest import FakeResponse

SHARED = "https://www.dropbox.com/s/abc123/TACO.png?dl=0"
DIRECT = "https://dl.dropboxusercontent.com/s/abc123/TACO.png"

CLOUDINARY_ENV = {
    "CLOUDINARY_CLOUD_NAME": "demo",
    "CLOUDINARY_API_KEY": "key",
    "CLOUDINARY_API_SECRET": "secret",
}


class FakeHost(AssetHost):
    name = "fake"

    def __init__(self, failures=()):
        self.failures = list(failures)
        self.calls = 0

    def upload(self, path: Path) -> HostedFile:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return HostedFile(url=f"https://files.example/{path.name}")


# -- local validation -------------------------------------------------------


def test_validate_asset_returns_size(png_file):
    assert validate_asset(png_file, 10_000) == png_file.stat().st_size


def test_missing_file_rejected_before_upload(tmp_path, policy, sleeps):
    host = FakeHost()
    uploader = AssetUploader(host, policy, 10_000, sleep=sleeps)
    with pytest.raises(InvalidInputError):
        uploader.upload(tmp_path / "missing.png")
    assert host.calls == 0


def test_oversized_file_rejected_before_upload(png_file, policy, sleeps):
    host = FakeHost()
    uploader = AssetUploader(host, policy, max_bytes=10, sleep=sleeps)
    with pytest.raises(AssetTooLargeError) as info:
        uploader.upload(png_file)
    assert info.value.max_bytes == 10
    assert host.calls == 0
    assert sleeps.delays == []


def test_non_image_rejected(tmp_path):
    path = tmp_path / "notes.png"
    path.write_text("not an image", encoding="utf-8")
    with pytest.raises(InvalidInputError):
        validate_asset(path, 10_000)


def test_directory_rejected(tmp_path):
    with pytest.raises(InvalidInputError):
        validate_asset(tmp_path, 10_000)


# -- uploader retry ----------------------------------------------------------


def test_uploader_records_successful_attempt(png_file, policy, sleeps):
    host = FakeHost([TransientTransportError("reset"), TransientTransportError("reset")])
    result = AssetUploader(host, policy, 10_000, sleep=sleeps).upload(png_file)

    assert result.url == "https://files.example/TACO.png"
    assert result.attempt == 3
    assert host.calls == 3


def test_uploader_exhausts(png_file, policy, sleeps):
    host = FakeHost([TransientTransportError("down")] * 3)
    with pytest.raises(ExhaustedRetriesError):
        AssetUploader(host, policy, 10_000, sleep=sleeps).upload(png_file)
    assert host.calls == 3


def test_dry_run_uploader_needs_no_file(tmp_path):
    result = DryRunUploader().upload(tmp_path / "ghost.png")
    assert result.url == "https://example.com/dry-run/ghost.png"
    assert result.attempt == 1


# -- Dropbox -----------------------------------------------------------------


class FakeDropbox:
    """Route ``requests.post`` calls to canned Dropbox responses."""

    def __init__(self):
        self.calls = []
        self.shared = False
        self.include_metadata = True
        self.upload_statuses = []

    def __call__(self, url, headers=None, timeout=None, **kwargs):
        self.calls.append((url, headers, kwargs))
        if url.endswith("/2/files/upload"):
            if self.upload_statuses:
                return FakeResponse(self.upload_statuses.pop(0), {"error_summary": "busy"})
            arg = json.loads(headers["Dropbox-API-Arg"])
            return FakeResponse(200, {"path_display": arg["path"]})
        if url.endswith("/create_shared_link_with_settings"):
            if not self.shared:
                self.shared = True
                return FakeResponse(200, {"url": SHARED})
            error = {".tag": "shared_link_already_exists"}
            if self.include_metadata:
                error["shared_link_already_exists"] = {"metadata": {"url": SHARED}}
            return FakeResponse(
                409,
                {"error_summary": "shared_link_already_exists/metadata/..", "error": error},
            )
        if url.endswith("/list_shared_links"):
            return FakeResponse(
                200,
                {"links": [{"url": SHARED, "path_lower": kwargs["json"]["path"].lower()}]},
            )
        raise AssertionError(f"unexpected URL {url}")

    def urls(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_dropbox(monkeypatch):
    fake = FakeDropbox()
    monkeypatch.setattr("merch_pipeline.hosting.dropbox.requests.post", fake)
    return fake


def test_direct_link_rewrite():
    assert to_direct_link(SHARED) == DIRECT


def test_dropbox_upload_and_share(png_file, fake_dropbox):
    host = DropboxHost(DropboxSettings(access_token="tok"))
    hosted = host.upload(png_file)

    assert hosted == HostedFile(url=DIRECT, reconciled=False)
    _, headers, _ = fake_dropbox.calls[0]
    assert headers["Authorization"] == "Bearer tok"
    assert json.loads(headers["Dropbox-API-Arg"])["path"] == "/printful_uploads/TACO.png"


def test_dropbox_reupload_reconciles_existing_link(png_file, fake_dropbox, policy, sleeps):
    uploader = AssetUploader(DropboxHost(DropboxSettings(access_token="tok")), policy, 10_000, sleep=sleeps)

    first = uploader.upload(png_file)
    second = uploader.upload(png_file)

    assert first.url == second.url == DIRECT
    assert second.reconciled is True
    assert second.attempt == 1
    assert sleeps.delays == []


def test_dropbox_conflict_without_metadata_lists_links(png_file, fake_dropbox):
    fake_dropbox.shared = True
    fake_dropbox.include_metadata = False
    hosted = DropboxHost(DropboxSettings(access_token="tok")).upload(png_file)

    assert hosted.url == DIRECT
    assert hosted.reconciled
    assert fake_dropbox.urls()[-1].endswith("/list_shared_links")


def test_dropbox_server_error_is_retried(png_file, fake_dropbox, policy, sleeps):
    fake_dropbox.upload_statuses = [503]
    uploader = AssetUploader(DropboxHost(DropboxSettings(access_token="tok")), policy, 10_000, sleep=sleeps)

    result = uploader.upload(png_file)
    assert result.attempt == 2
    assert sleeps.delays == [2.0]


def test_dropbox_client_error_is_permanent(png_file, fake_dropbox, policy, sleeps):
    fake_dropbox.upload_statuses = [400]
    uploader = AssetUploader(DropboxHost(DropboxSettings(access_token="tok")), policy, 10_000, sleep=sleeps)
    with pytest.raises(RemoteRequestError):
        uploader.upload(png_file)
    assert sleeps.delays == []


def test_dropbox_refreshes_expired_token(png_file, monkeypatch):
    calls = []

    def fake_post(url, headers=None, timeout=None, **kwargs):
        calls.append((url, headers))
        if url.endswith("/oauth2/token"):
            assert kwargs["data"]["grant_type"] == "refresh_token"
            return FakeResponse(200, {"access_token": "fresh"})
        if headers["Authorization"] == "Bearer stale":
            return FakeResponse(401, {"error_summary": "expired_access_token/"})
        if url.endswith("/2/files/upload"):
            return FakeResponse(200, {"path_display": "/printful_uploads/TACO.png"})
        return FakeResponse(200, {"url": SHARED})

    monkeypatch.setattr("merch_pipeline.hosting.dropbox.requests.post", fake_post)
    settings = DropboxSettings(
        access_token="stale", refresh_token="r", app_key="k", app_secret="s"
    )
    hosted = DropboxHost(settings).upload(png_file)

    assert hosted.url == DIRECT
    assert calls[1][0].endswith("/oauth2/token")
    assert calls[-1][1]["Authorization"] == "Bearer fresh"


def test_dropbox_expired_token_without_refresh_is_auth_error(png_file, monkeypatch):
    monkeypatch.setattr(
        "merch_pipeline.hosting.dropbox.requests.post",
        lambda url, **kw: FakeResponse(401, {"error_summary": "expired_access_token/"}),
    )
    with pytest.raises(AuthenticationError):
        DropboxHost(DropboxSettings(access_token="stale")).upload(png_file)


def test_dropbox_settings_require_token():
    with pytest.raises(MissingCredentialsError) as info:
        DropboxSettings.from_env({})
    assert info.value.key == "DROPBOX_ACCESS_TOKEN"


def test_dropbox_settings_accept_refresh_credentials():
    settings = DropboxSettings.from_env(
        {"DROPBOX_REFRESH_TOKEN": "r", "DROPBOX_APP_KEY": "k", "DROPBOX_APP_SECRET": "s"}
    )
    assert settings.can_refresh
    assert settings.access_token is None


# -- Cloudinary --------------------------------------------------------------


def cloudinary_host():
    return CloudinaryHost(CloudinarySettings.from_env(CLOUDINARY_ENV))


def test_cloudinary_upload(png_file, monkeypatch):
    seen = {}

    def fake_upload(file, **options):
        seen.update(options, file=file)
        return {"secure_url": "https://res.cloudinary.com/demo/image/upload/v1/printful_uploads/TACO.png"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    hosted = cloudinary_host().upload(png_file)

    assert hosted.url.endswith("/printful_uploads/TACO.png")
    assert not hosted.reconciled
    assert seen["public_id"] == "printful_uploads/TACO"
    assert seen["overwrite"] is False
    assert seen["cloud_name"] == "demo"


def test_cloudinary_already_exists_fetches_resource(png_file, monkeypatch):
    def fake_upload(file, **options):
        raise cloudinary.exceptions.AlreadyExists("Resource already exists")

    def fake_resource(public_id, **options):
        assert public_id == "printful_uploads/TACO"
        return {"secure_url": "https://res.cloudinary.com/demo/image/upload/v9/printful_uploads/TACO.png"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    monkeypatch.setattr(cloudinary.api, "resource", fake_resource)
    hosted = cloudinary_host().upload(png_file)

    assert hosted.reconciled
    assert "/v9/" in hosted.url


def test_cloudinary_existing_flag_marks_reconciled(png_file, monkeypatch):
    monkeypatch.setattr(
        cloudinary.uploader,
        "upload",
        lambda file, **o: {"secure_url": "https://res.cloudinary.com/x.png", "existing": True},
    )
    assert cloudinary_host().upload(png_file).reconciled


def test_cloudinary_bad_request_is_permanent(png_file, monkeypatch):
    def fake_upload(file, **options):
        raise cloudinary.exceptions.BadRequest("Invalid image file")

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    with pytest.raises(RemoteRequestError):
        cloudinary_host().upload(png_file)


def test_cloudinary_general_error_is_transient(png_file, monkeypatch):
    def fake_upload(file, **options):
        raise cloudinary.exceptions.GeneralError("Server returned unexpected status code - 502")

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    with pytest.raises(TransientTransportError):
        cloudinary_host().upload(png_file)


def test_cloudinary_settings_name_missing_variable():
    env = dict(CLOUDINARY_ENV)
    del env["CLOUDINARY_API_SECRET"]
    with pytest.raises(MissingCredentialsError) as info:
        CloudinarySettings.from_env(env)
    assert info.value.key == "CLOUDINARY_API_SECRET"


# -- factory -----------------------------------------------------------------


def test_build_uploader_dry_run_needs_no_credentials():
    assert isinstance(build_uploader(RunConfig(dry_run=True), env={}), DryRunUploader)


def test_build_host_selects_backend():
    assert isinstance(build_host(RunConfig(host="cloudinary"), CLOUDINARY_ENV), CloudinaryHost)
    dropbox = build_host(RunConfig(host="dropbox"), {"DROPBOX_ACCESS_TOKEN": "tok"})
    assert isinstance(dropbox, DropboxHost)
    assert dropbox.folder == "/printful_uploads"


def test_build_uploader_live():
    uploader = build_uploader(RunConfig(), CLOUDINARY_ENV)
    assert isinstance(uploader, AssetUploader)
    assert isinstance(uploader.host, CloudinaryHost)
