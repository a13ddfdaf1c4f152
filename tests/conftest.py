from __future__ import annotations

from pathlib import Path

import pytest

from credsweep.common.config_loader import load_settings


@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


@pytest.fixture
def write_file():
    def _write(path: Path, content, encoding: str = "utf-8") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_bytes(content.encode(encoding))
        return path

    return _write
