from .cancel import CancelToken
from .dates import format_bank_date, parse_bank_date
from .money import cents_to_money_str, parse_spanish_amount

__all__ = [
    "CancelToken",
    "parse_bank_date",
    "format_bank_date",
    "parse_spanish_amount",
    "cents_to_money_str",
]
