from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

from .banks import BankCode
from .bbva import parser as bbva_parser
from .errors import ErrorCause, ScraperError
from .models import Balance, Transaction


@dataclass(frozen=True)
class BankParsers:
    balances: Callable[[str], list[Balance]]
    transactions: Callable[[str], list[Transaction]]


# Closed dispatch: a bank is either here or unsupported.
BANK_PARSERS: Mapping[BankCode, BankParsers] = MappingProxyType(
    {
        BankCode.BBVA: BankParsers(
            balances=bbva_parser.parse_account_balances,
            transactions=bbva_parser.parse_transactions,
        ),
    }
)


def parsers_for(bank_code: BankCode, operation: str) -> BankParsers:
    try:
        return BANK_PARSERS[bank_code]
    except KeyError:
        raise ScraperError(
            bank_code=getattr(bank_code, "value", str(bank_code)),
            operation=operation,
            cause=ErrorCause.UNKNOWN,
            details="no parser registered for this bank",
        ) from None


def parse_balances(bank_code: BankCode, markup: str) -> list[Balance]:
    return parsers_for(bank_code, "parse_balances").balances(markup)


def parse_transactions(bank_code: BankCode, markup: str) -> list[Transaction]:
    return parsers_for(bank_code, "parse_transactions").transactions(markup)
