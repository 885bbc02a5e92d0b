from __future__ import annotations

from pathlib import Path
from typing import Union

from ..banks import BankCode
from .har import HarLog, load_har


def _bank_dir(root: Union[str, Path], bank: Union[BankCode, str]) -> Path:
    code = bank.value if isinstance(bank, BankCode) else str(bank)
    return Path(root) / code.lower()


def markup_fixture_path(root: Union[str, Path], bank: Union[BankCode, str], scenario: str) -> Path:
    return _bank_dir(root, bank) / f"{scenario}.html"


def load_markup_fixture(root: Union[str, Path], bank: Union[BankCode, str], scenario: str) -> str:
    """
    Flattened-markup fixtures live at `<root>/<bank>/<scenario>.html`.
    """
    path = markup_fixture_path(root, bank, scenario)
    if not path.exists():
        raise FileNotFoundError(f"No {bank} markup fixture for scenario {scenario!r}: {path}")
    return path.read_text(encoding="utf-8")


def load_recording(root: Union[str, Path], bank: Union[BankCode, str], scenario: str) -> HarLog:
    """
    Replay recordings live at `<root>/<bank>/recordings/<scenario>.har.json`.
    """
    path = _bank_dir(root, bank) / "recordings" / f"{scenario}.har.json"
    if not path.exists():
        raise FileNotFoundError(f"No {bank} recording for scenario {scenario!r}: {path}")
    return load_har(path)
