"""
Persistence layer. Import the models here so Base.metadata knows every table
before DBStorage.reload() calls create_all().
"""
from models.base_model import Base
from models.user import User
from models.account import Account
from models.refresh_token import RefreshToken
from models.activation_token import ActivationToken
from models.transaction import Transaction, TransactionKind
from models.db_storage import DBStorage

__all__ = [
    "Base",
    "User",
    "Account",
    "RefreshToken",
    "ActivationToken",
    "Transaction",
    "TransactionKind",
    "DBStorage",
]
