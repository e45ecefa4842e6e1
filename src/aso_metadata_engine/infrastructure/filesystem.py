"""Filesystem implementation backed by the local disk.

Usage example:
    from pathlib import Path

    from aso_metadata_engine.infrastructure.filesystem import LocalFileSystem

    fs = LocalFileSystem()
    fs.write_json({"version": "2.0.0"}, Path("data/registry.json"))
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing_extensions import override

import pandas as pd

from ..protocols import FileSystem


class JsonObjectExpectedError(ValueError):
    """Raised when a JSON file does not contain an object at the top level."""

    def __init__(self, path: str) -> None:
        super().__init__(f"JSON file must contain an object: {path}")


class LocalFileSystem(FileSystem):
    """Local filesystem implementation."""

    @override
    def read_csv(self, path: Path) -> pd.DataFrame:
        return pd.read_csv(path, dtype=str, keep_default_na=False)

    @override
    def write_csv(self, df: pd.DataFrame, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)

    @override
    def read_json(self, path: Path) -> dict[str, object]:
        payload: object = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise JsonObjectExpectedError(str(path))
        return {str(key): value for key, value in payload.items()}

    @override
    def write_json(self, data: Mapping[str, object], path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(dict(data), ensure_ascii=False, indent=2), encoding="utf-8")

    @override
    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    @override
    def exists(self, path: Path) -> bool:
        return path.exists()

    @override
    def mkdir(self, path: Path, parents: bool = True) -> None:
        path.mkdir(parents=parents, exist_ok=True)
