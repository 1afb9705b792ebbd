from __future__ import annotations

import os
from collections.abc import Callable, Generator

import pytest

from adapters.layout.constraint_solver import ConstraintLayoutEngine
from app.config import AppSettings, EngineSettings


def _clear_fd_env() -> None:
    for key in list(os.environ):
        if key.startswith("FD_"):
            os.environ.pop(key, None)


_clear_fd_env()


@pytest.fixture(autouse=True)
def clear_fd_env() -> Generator[None, None, None]:
    _clear_fd_env()
    yield
    _clear_fd_env()


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        viewport_width=800.0,
        viewport_height=600.0,
        default_width=100.0,
        default_height=100.0,
        frame_width=200.0,
        frame_height=200.0,
        char_width_ratio=0.6,
        undo_limit=100,
        duplicate_offset=20.0,
    )


@pytest.fixture
def engine_settings_factory(engine_settings: EngineSettings) -> Callable[..., EngineSettings]:
    def _factory(**overrides: object) -> EngineSettings:
        return engine_settings.model_copy(update=overrides)

    return _factory


@pytest.fixture
def app_settings(engine_settings: EngineSettings) -> AppSettings:
    return AppSettings(engine=engine_settings)


@pytest.fixture
def app_settings_factory(
    engine_settings_factory: Callable[..., EngineSettings],
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(engine=engine_settings_factory(**overrides))

    return _factory


@pytest.fixture
def layout_engine(engine_settings: EngineSettings) -> ConstraintLayoutEngine:
    return ConstraintLayoutEngine(engine_settings.to_layout_config())
