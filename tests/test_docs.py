from __future__ import annotations

import importlib
import re
from pathlib import Path

import pytest

DOCS_INDEX = Path(__file__).resolve().parents[1] / "docs" / "index.rst"


def _documented_modules() -> list[str]:
    return re.findall(r"^\.\. automodule:: (\S+)$", DOCS_INDEX.read_text(), flags=re.MULTILINE)


def test_docs_cover_the_rate_limiter_package():
    modules = _documented_modules()
    assert "conversion_service.security.rate_limiter" in modules
    assert "conversion_service.security.redis_rate_limiter" in modules


@pytest.mark.parametrize("module", _documented_modules())
def test_documented_modules_import(module):
    importlib.import_module(module)
