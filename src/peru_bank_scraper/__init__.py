from .banks import BankCode
from .errors import ErrorCause, OperationCancelled, ParsingFailed, ScraperError
from .models import Balance, Credentials, Currency, Direction, Session, Transaction

__all__ = [
    "BankCode",
    "ErrorCause",
    "ScraperError",
    "ParsingFailed",
    "OperationCancelled",
    "Balance",
    "Transaction",
    "Currency",
    "Direction",
    "Credentials",
    "Session",
]

__version__ = "0.1.0"
