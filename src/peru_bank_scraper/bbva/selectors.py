from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BbvaSelectors:
    """
    BBVA Net Cash Peru is a Web Components portal; selectors may change with each redesign.
    Keep all selectors and attribute names here. They target the flattened markup, not the live DOM.
    """

    # Login (live page)
    company_input: str = "#empresa"
    user_input: str = "#usuario"
    password_input: str = "#clave_acceso_ux"
    login_button: str = "button#aceptar, button#enviarSenda"

    # Login outcome (flattened markup)
    login_success_marker: str = "table#kyop-boby-table"
    login_error_code: str = "div.error-code.error-title"
    login_error_message: str = "span#error-message"
    login_error_title: str = "h1.title"

    # Accounts: list view (one table per currency, both balances per row)
    account_table: str = "bbva-btge-accounts-solution-table.accountsTable"
    account_table_currency_attr: str = "list-group-currency"
    account_row: str = "tbody tr:not(.tb_column_header)"
    account_description: str = "bbva-table-body-text.accountDescription"
    available_balance: str = "bbva-table-body-amount.availableBalance"
    accounted_balance: str = "bbva-table-body-amount.accountedBalance"

    # Accounts: tile view (available balance only)
    account_card: str = "bbva-btge-card-product-select"
    card_amount_attr: str = "product-amount"
    card_currency_attr: str = "product-amount-currency"

    # Transactions
    transactions_table: str = "bbva-btge-accounts-solution-table#moviments-table"
    transaction_row: str = "tbody tr:not(.tb_column_header)"
    no_results_state: str = "noresults"
