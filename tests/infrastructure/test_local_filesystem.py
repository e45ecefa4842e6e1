"""Tests for filesystem infrastructure components."""

from pathlib import Path

import pandas as pd
import pytest

from aso_metadata_engine.infrastructure import LocalFileSystem
from aso_metadata_engine.infrastructure.filesystem import JsonObjectExpectedError


class TestLocalFileSystemCsv:
    """Tests for LocalFileSystem CSV handling."""

    def test_csv_round_trip_keeps_text(self, tmp_path: Path) -> None:
        fs = LocalFileSystem()
        path = tmp_path / "nested" / "listings.csv"
        df = pd.DataFrame({"app_id": ["007"], "title": ["Pimsleur"], "subtitle": [""]})

        fs.write_csv(df, path)
        out = fs.read_csv(path)

        assert out["app_id"].tolist() == ["007"]
        assert out["subtitle"].tolist() == [""]


class TestLocalFileSystemJson:
    """Tests for LocalFileSystem JSON handling."""

    def test_json_round_trip(self, tmp_path: Path) -> None:
        fs = LocalFileSystem()
        path = tmp_path / "registry" / "formula.json"

        fs.write_json({"version": "2.0.0", "weights": {"title": 0.65}}, path)

        assert fs.read_json(path) == {"version": "2.0.0", "weights": {"title": 0.65}}

    def test_read_json_rejects_non_objects(self, tmp_path: Path) -> None:
        fs = LocalFileSystem()
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(JsonObjectExpectedError):
            fs.read_json(path)


class TestLocalFileSystemText:
    """Tests for LocalFileSystem text and directory helpers."""

    def test_read_text_and_exists(self, tmp_path: Path) -> None:
        fs = LocalFileSystem()
        path = tmp_path / "aso-engine.toml"

        assert not fs.exists(path)
        path.write_text("schema_version = 1\n", encoding="utf-8")

        assert fs.exists(path)
        assert fs.read_text(path) == "schema_version = 1\n"

    def test_text_is_read_only(self) -> None:
        assert not hasattr(LocalFileSystem(), "write_text")

    def test_mkdir_is_idempotent(self, tmp_path: Path) -> None:
        fs = LocalFileSystem()
        path = tmp_path / "data" / "audit"

        fs.mkdir(path)
        fs.mkdir(path)

        assert path.is_dir()
