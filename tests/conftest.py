"""Shared fixtures for merge tests."""
import itertools
import json
from pathlib import Path

import pytest

from listing_merge.config import MergeSettings


def write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def sequential_ids(prefix: str = "new"):
    counter = itertools.count(1)
    return lambda: f"{prefix}_{next(counter)}"


@pytest.fixture
def settings(tmp_path: Path) -> MergeSettings:
    return MergeSettings(
        old_dir=tmp_path / "old",
        new_dir=tmp_path / "new",
        platforms=("olx",),
        screenshots_dir=tmp_path / "screenshots",
        logs_dir=tmp_path / "logs",
    )
