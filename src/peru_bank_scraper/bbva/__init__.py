from .parser import ViewMode, detect_login_error, parse_account_balances, parse_transactions
from .selectors import BbvaSelectors

__all__ = [
    "BbvaSelectors",
    "ViewMode",
    "detect_login_error",
    "parse_account_balances",
    "parse_transactions",
]
