from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from merch_pipeline.models import RetryPolicy


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, payload: Any = None, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = "" if payload is None else str(payload)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=2.0, backoff_multiplier=1.5)


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    path = tmp_path / "TACO.png"
    Image.new("RGB", (16, 16), color=(0, 0, 0)).save(path)
    return path


@pytest.fixture
def no_network(monkeypatch):
    """Fail the test on any outbound HTTP call."""

    import cloudinary.api
    import cloudinary.uploader
    import requests

    def _blocked(*args, **kwargs):
        raise AssertionError(f"unexpected network call: {args} {kwargs}")

    monkeypatch.setattr(requests, "request", _blocked)
    monkeypatch.setattr(requests, "get", _blocked)
    monkeypatch.setattr(requests, "post", _blocked)
    monkeypatch.setattr(requests, "put", _blocked)
    monkeypatch.setattr(requests.Session, "request", _blocked)
    monkeypatch.setattr(cloudinary.uploader, "upload", _blocked)
    monkeypatch.setattr(cloudinary.api, "resource", _blocked)
