"""Tests for CLI composition root wiring."""

from __future__ import annotations

import typer

from aso_metadata_engine import composition
from aso_metadata_engine.config import EngineConfig
from aso_metadata_engine.infrastructure import LocalFileSystem


def test_build_cli_dependencies_uses_local_filesystem() -> None:
    deps = composition.build_cli_dependencies(config=EngineConfig())

    assert isinstance(deps.fs, LocalFileSystem)


def test_build_cli_dependencies_returns_fresh_dependencies() -> None:
    config = EngineConfig(market="de")

    first = composition.build_cli_dependencies(config=config)
    second = composition.build_cli_dependencies(config=config)

    assert first.fs is not second.fs


def test_composition_exposes_app() -> None:
    assert isinstance(composition.app, typer.Typer)
