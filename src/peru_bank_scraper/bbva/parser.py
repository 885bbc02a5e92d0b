from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from bs4 import BeautifulSoup, Tag

from ..banks import BankCode
from ..errors import ParsingFailed
from ..models import Balance, Currency, Direction, Transaction
from ..portal.login import LoginErrorInfo
from ..util.dates import parse_bank_date
from ..util.money import parse_spanish_amount
from .selectors import BbvaSelectors


logger = logging.getLogger(__name__)

CURRENCY_SYMBOL_PEN = "S/"
CURRENCY_SYMBOL_USD = "$"
CURRENCY_CODE_PEN = "PEN"
CURRENCY_CODE_USD = "USD"

_CURRENCY_BY_SYMBOL = {
    CURRENCY_SYMBOL_PEN: Currency.PEN,
    CURRENCY_SYMBOL_USD: Currency.USD,
}
_CURRENCY_BY_CODE = {
    CURRENCY_CODE_PEN: Currency.PEN,
    CURRENCY_CODE_USD: Currency.USD,
}

MSG_UNAVAILABLE = "Bank service temporarily unavailable or rate limited"
MSG_FORBIDDEN = "Access forbidden - possible bot detection"

# Operation date, value date, code, document number, concept, amount, office.
TRANSACTION_COLUMNS = 7

DEFAULT_SELECTORS = BbvaSelectors()


class ViewMode(str, Enum):
    LIST = "list"
    TILE = "tile"


def _fail(details: str, *, operation: str, row_index: Optional[int] = None) -> ParsingFailed:
    return ParsingFailed(details, bank_code=BankCode.BBVA.value, operation=operation, row_index=row_index)


def _soup(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or "", "html.parser")


def currency_from_symbol(symbol: str) -> Currency:
    try:
        return _CURRENCY_BY_SYMBOL[symbol]
    except KeyError:
        raise ValueError(f"unknown currency symbol: {symbol!r}") from None


def currency_from_code(code: str) -> Currency:
    try:
        return _CURRENCY_BY_CODE[code]
    except KeyError:
        raise ValueError(f"unknown currency code: {code!r}") from None


def detect_view_mode(doc: BeautifulSoup, selectors: BbvaSelectors = DEFAULT_SELECTORS) -> Optional[ViewMode]:
    # List view carries both balances, so it wins when both layouts are present.
    if doc.select_one(selectors.account_table) is not None:
        return ViewMode.LIST
    if doc.select_one(selectors.account_card) is not None:
        return ViewMode.TILE
    return None


# --- Accounts ---


def parse_account_balances(
    markup: str,
    *,
    fetched_at: Optional[datetime] = None,
    selectors: BbvaSelectors = DEFAULT_SELECTORS,
) -> list[Balance]:
    """
    Parse the accounts page in either layout.

    List view: one `Balance` per row with available and booked amounts.
    Tile view: one `Balance` per card with the available amount only (booked floors at 0).
    """
    doc = _soup(markup)
    fetched_at = fetched_at or datetime.now(timezone.utc)

    mode = detect_view_mode(doc, selectors)
    if mode == ViewMode.LIST:
        return _parse_list_view(doc, fetched_at, selectors)
    if mode == ViewMode.TILE:
        return _parse_tile_view(doc, fetched_at, selectors)
    raise _fail("no account elements found", operation="parse_balances")


def _parse_list_view(doc: BeautifulSoup, fetched_at: datetime, selectors: BbvaSelectors) -> list[Balance]:
    balances: list[Balance] = []
    for i, table in enumerate(doc.select(selectors.account_table)):
        code = table.get(selectors.account_table_currency_attr)
        if code is None:
            raise _fail(f"table {i} missing {selectors.account_table_currency_attr}", operation="parse_balances")
        try:
            currency = currency_from_code(code)
        except ValueError as e:
            raise _fail(f"table {i}: {e}", operation="parse_balances") from e

        rows = table.select(selectors.account_row)
        if not rows:
            raise _fail(f"table {i} has no account rows", operation="parse_balances")

        for j, row in enumerate(rows):
            try:
                balances.append(_parse_list_row(row, currency, fetched_at, selectors))
            except ValueError as e:
                raise _fail(f"table {i} row {j}: {e}", operation="parse_balances", row_index=j) from e
    return balances


def _parse_list_row(row: Tag, currency: Currency, fetched_at: datetime, selectors: BbvaSelectors) -> Balance:
    desc = row.select_one(selectors.account_description)
    account_id = (desc.get("text") or "").strip() if desc is not None else ""
    if not account_id:
        raise ValueError("missing account description")

    available = _amount_attr(row, selectors.available_balance)
    if not available:
        raise ValueError("missing available balance amount")
    booked = _amount_attr(row, selectors.accounted_balance)
    if not booked:
        raise ValueError("missing accounted balance amount")

    return Balance(
        account_id=account_id,
        currency=currency,
        available_amount=_non_negative(parse_spanish_amount(available), "available balance"),
        booked_amount=_non_negative(parse_spanish_amount(booked), "accounted balance"),
        fetched_at=fetched_at,
    )


def _amount_attr(row: Tag, selector: str) -> str:
    el = row.select_one(selector)
    if el is None:
        return ""
    return (el.get("amount") or "").strip()


def _non_negative(cents: int, label: str) -> int:
    if cents < 0:
        raise ValueError(f"negative {label}: {cents}")
    return cents


def _parse_tile_view(doc: BeautifulSoup, fetched_at: datetime, selectors: BbvaSelectors) -> list[Balance]:
    balances: list[Balance] = []
    for i, card in enumerate(doc.select(selectors.account_card)):
        amount = (card.get(selectors.card_amount_attr) or "").strip()
        if not amount:
            # The "Todas las cuentas" overview card has no amount.
            logger.debug("Skipping account card %s without an amount (id=%r)", i, card.get("id"))
            continue
        try:
            currency = currency_from_symbol(card.get(selectors.card_currency_attr) or "")
            cents = _non_negative(parse_spanish_amount(amount), "available balance")
        except ValueError as e:
            raise _fail(f"card {i}: {e}", operation="parse_balances", row_index=i) from e

        balances.append(
            Balance(
                account_id=(card.get("id") or "").strip(),
                currency=currency,
                available_amount=cents,
                booked_amount=0,
                fetched_at=fetched_at,
            )
        )

    if not balances:
        raise _fail("tile view has no account cards with an amount", operation="parse_balances")
    return balances


# --- Transactions ---


@dataclass(frozen=True)
class BbvaRow:
    """
    One row of the movements table as BBVA shows it. `amount` is signed cents.
    """

    operation_date: date
    value_date: date
    code: str
    document_number: str
    concept: str
    amount: int
    office: str
    # Sign of the raw text, kept separately so "-0.00" still reads as a debit.
    negative: bool = False

    def to_transaction(self) -> Transaction:
        # Direction follows the raw sign only: "0.00" carries no "-" and is a credit, "-0.00" is a debit.
        # An `amount > 0` check would call "0.00" a debit; zero rows move no money either way.
        debit = self.negative or self.amount < 0
        return Transaction(
            id=self.document_number,
            reference=None,
            operation_date=self.operation_date,
            value_date=self.value_date,
            description=self.concept,
            amount=abs(self.amount),
            direction=Direction.DEBIT if debit else Direction.CREDIT,
            balance_after=None,
            bank_specific_code=self.code or None,
            extra={"code": self.code, "office": self.office},
        )


def _cell_value(cell: Tag) -> str:
    # Cells wrap bbva-table-body-* components that carry the value in an attribute.
    for attr in ("amount", "text"):
        holder = cell if cell.has_attr(attr) else cell.find(attrs={attr: True})
        if holder is not None:
            return (holder.get(attr) or "").strip()
    return " ".join(cell.get_text(" ", strip=True).split())


def parse_transaction_row(row: Tag) -> BbvaRow:
    cells = row.find_all("td", recursive=False) or row.find_all("td")
    if len(cells) < TRANSACTION_COLUMNS:
        raise ValueError(f"expected {TRANSACTION_COLUMNS} cells, got {len(cells)}")

    values = [_cell_value(c) for c in cells[:TRANSACTION_COLUMNS]]
    op_raw, value_raw, code, doc_number, concept, amount_raw, office = values

    if not doc_number:
        raise ValueError("missing document number")

    return BbvaRow(
        operation_date=parse_bank_date(op_raw),
        value_date=parse_bank_date(value_raw),
        code=code,
        document_number=doc_number,
        concept=concept,
        amount=parse_spanish_amount(amount_raw),
        office=office,
        negative=amount_raw.lstrip().startswith("-"),
    )


def has_no_movements(doc: BeautifulSoup, selectors: BbvaSelectors = DEFAULT_SELECTORS) -> bool:
    table = doc.select_one(selectors.transactions_table)
    if table is None:
        return False
    return table.get("state") == selectors.no_results_state


def parse_transactions(markup: str, *, selectors: BbvaSelectors = DEFAULT_SELECTORS) -> list[Transaction]:
    """
    Parse the movements table.

    A table flagged `state="noresults"` is a legitimate empty result. Any row that fails to parse
    fails the whole call with the row index; rows are never skipped.
    """
    doc = _soup(markup)

    if has_no_movements(doc, selectors):
        return []

    table = doc.select_one(selectors.transactions_table)
    if table is None:
        raise _fail(f"table not found with selector: {selectors.transactions_table}", operation="parse_transactions")

    rows = table.select(selectors.transaction_row)
    if not rows:
        raise _fail("transactions table has no rows and no noresults state", operation="parse_transactions")

    transactions: list[Transaction] = []
    for i, row in enumerate(rows):
        try:
            parsed = parse_transaction_row(row)
        except ValueError as e:
            raise _fail(f"failed to parse row: {i}: {e}", operation="parse_transactions", row_index=i) from e
        transactions.append(parsed.to_transaction())
    return transactions


# --- Login ---


def detect_login_error(
    markup: str,
    status: Optional[int],
    *,
    selectors: BbvaSelectors = DEFAULT_SELECTORS,
) -> Optional[LoginErrorInfo]:
    """
    Inspect the login submission status and the resulting page for a BBVA error.

    Returns None when neither the status nor the markup signals an error.
    """
    if status in (503, 429):
        return LoginErrorInfo(code="", message=MSG_UNAVAILABLE, http_status=status)
    if status == 403:
        return LoginErrorInfo(code="", message=MSG_FORBIDDEN, http_status=status)

    doc = _soup(markup)
    code_el = doc.select_one(selectors.login_error_code)
    msg_el = doc.select_one(selectors.login_error_message)
    if msg_el is None or not msg_el.get_text(strip=True):
        msg_el = doc.select_one(selectors.login_error_title)

    code = code_el.get_text(strip=True) if code_el is not None else ""
    message = " ".join(msg_el.get_text(" ", strip=True).split()) if msg_el is not None else ""

    if not code and not message:
        return None
    return LoginErrorInfo(code=code, message=message, http_status=status)


def has_login_success_marker(markup: str, *, selectors: BbvaSelectors = DEFAULT_SELECTORS) -> bool:
    return _soup(markup).select_one(selectors.login_success_marker) is not None
