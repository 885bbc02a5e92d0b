from __future__ import annotations

import sys
from typing import Any
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "replay: browser-backed tests that replay recorded portal traffic (set SCRAPER_TEST_MODE=replay)",
    )
