from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BankCode(str, Enum):
    BBVA = "BBVA"
    INTERBANK = "INTERBANK"
    BCP = "BCP"


@dataclass(frozen=True)
class BankInfo:
    code: BankCode
    display_name: str
    base_url: str


KNOWN_BANKS: dict[BankCode, BankInfo] = {
    BankCode.BBVA: BankInfo(BankCode.BBVA, "BBVA Perú (Net Cash)", "https://www.bbvanetcash.pe"),
    BankCode.INTERBANK: BankInfo(BankCode.INTERBANK, "Interbank", "https://empresas.interbank.pe"),
    BankCode.BCP: BankInfo(BankCode.BCP, "BCP", "https://www.viabcp.com"),
}


def parse_bank_code(value: str) -> BankCode:
    s = (value or "").strip().upper()
    try:
        return BankCode(s)
    except ValueError:
        known = ", ".join(c.value for c in BankCode)
        raise ValueError(f"Unknown bank code {value!r} (known: {known})") from None
