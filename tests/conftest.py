from __future__ import annotations

from pathlib import Path

import pytest

from .util import build_pe, cv_record


@pytest.fixture
def write_pe(tmp_path: Path):
    """Write a crafted PE image to `tmp_path / name` and return its path."""

    def _write(name: str = "ntdll.dll", record: bytes | None = None, debug_type: int = 2,
               with_debug: bool = True) -> Path:
        if record is None:
            record = cv_record()
        path = tmp_path / name
        path.write_bytes(build_pe(record if with_debug else None, debug_type))
        return path

    return _write
