"""
In-memory ledger: users, accounts, transactions, login logs.

The Ledger is the only writer of balances and lockout state. It does not
take locks itself; FraudSandbox holds its store lock around every call
that mutates it.
"""
import hashlib
import itertools
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from fraud_sandbox.errors import NotFoundError
from fraud_sandbox.features.time_utils import amount_for_day, get_history_slice
from fraud_sandbox.ledger.schema import Account, LoginLog, Transaction, User


logger = logging.getLogger(__name__)


def simulated_hash(password: str) -> str:
    """Bcrypt-looking digest. Not a real password hash."""
    digest = hashlib.sha256(password.encode("utf-8")).hexdigest()[:22]
    return f"$2b$10${digest}.simulated"


def verify_hash(password: str, password_hash: str) -> bool:
    return simulated_hash(password) == password_hash


class IdGenerator:
    """Sequential, prefixed ids: txn_00001, login_00002, ..."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next(self, prefix: str) -> str:
        return f"{prefix}_{next(self._counter):05d}"


class Ledger:

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.accounts: Dict[str, Account] = {}
        self._by_number: Dict[str, str] = {}
        self.transactions: List[Transaction] = []
        self.login_logs: List[LoginLog] = []

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> User:
        assert user.id not in self.users, f"Duplicate user id {user.id}"
        self.users[user.id] = user
        return user

    def add_account(self, account: Account) -> Account:
        assert account.user_id in self.users, f"Account {account.id} has no owner"
        assert account.account_number not in self._by_number, "Duplicate account number"
        self.accounts[account.id] = account
        self._by_number[account.account_number] = account.id
        return account

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def require_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def find_user_by_username(self, username: str) -> Optional[User]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def find_account(self, account_number: str) -> Optional[Account]:
        account_id = self._by_number.get(account_number)
        return self.accounts.get(account_id) if account_id else None

    def require_account(self, account_number: str) -> Account:
        account = self.find_account(account_number)
        if account is None:
            raise NotFoundError(f"Account {account_number} not found")
        return account

    def accounts_of(self, user_id: str) -> List[Account]:
        return [a for a in self.accounts.values() if a.user_id == user_id]

    def is_account_number_taken(self, account_number: str) -> bool:
        return account_number in self._by_number

    # ------------------------------------------------------------------
    # Windowed reads (all take the caller's single clock reading)
    # ------------------------------------------------------------------

    def recent_transactions(self, user_id: str, now: datetime, window: timedelta) -> List[Transaction]:
        return get_history_slice(self.transactions, lambda t: t.from_user_id, user_id, now, window)

    def recent_logins(self, user_id: str, now: datetime, window: timedelta) -> List[LoginLog]:
        return get_history_slice(self.login_logs, lambda l: l.user_id, user_id, now, window)

    def transferred_today(self, account: Account, today: date) -> Decimal:
        return amount_for_day(account.daily_transferred, account.daily_transfer_date, today)

    def total_balance(self) -> Decimal:
        return sum((a.balance for a in self.accounts.values()), Decimal("0.00"))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for txn in self.transactions:
            if txn.id == transaction_id:
                return txn
        return None

    def record_blocked(self, txn: Transaction) -> Transaction:
        assert txn.status == "blocked"
        self.transactions.append(txn)
        return txn

    def commit_transfer(self, txn: Transaction, today: date) -> Transaction:
        """
        Move the money and append the record in one step.
        Callers validate first; anything wrong here is a programming error.
        """
        sender = self.accounts.get(txn.from_account_id)
        recipient = self.accounts.get(txn.to_account_id)
        assert sender is not None and recipient is not None, "Transfer references unknown account"
        assert sender.id != recipient.id, "Self-transfer reached commit"
        assert txn.status in ("completed", "flagged")

        new_sender_balance = sender.balance - txn.amount
        assert new_sender_balance >= 0, f"Overdraft on {sender.account_number}"
        new_daily = self.transferred_today(sender, today) + txn.amount

        sender.balance = new_sender_balance
        sender.daily_transferred = new_daily
        sender.daily_transfer_date = today
        recipient.balance = recipient.balance + txn.amount
        self.transactions.append(txn)

        logger.debug(
            f"Committed {txn.id}: {sender.account_number} -> {recipient.account_number} "
            f"{txn.amount} (sender now {sender.balance})"
        )
        return txn

    def record_review(self, transaction_id: str, review_status: str, reviewer: str, note: Optional[str]) -> Transaction:
        txn = self.get_transaction(transaction_id)
        assert txn is not None, f"Alert references unknown transaction {transaction_id}"
        txn.review_status = review_status
        txn.reviewed_by = reviewer
        txn.review_note = note
        return txn

    # ------------------------------------------------------------------
    # Logins / lockout
    # ------------------------------------------------------------------

    def record_login(self, log: LoginLog) -> LoginLog:
        self.login_logs.append(log)
        return log

    def get_login_log(self, login_log_id: str) -> Optional[LoginLog]:
        for log in self.login_logs:
            if log.id == login_log_id:
                return log
        return None

    def register_failed_login(
            self,
            user: User,
            now: datetime,
            max_failed_attempts: Optional[int],
            lockout_minutes: int) -> bool:
        """
        Count one wrong password. Returns True if this attempt locked the user.
        `max_failed_attempts` is None when the lockout control is disabled.
        """
        user.failed_login_attempts += 1
        if max_failed_attempts is not None and user.failed_login_attempts >= max_failed_attempts:
            user.is_locked = True
            user.lockout_until = now + timedelta(minutes=lockout_minutes)
            return True
        return False

    def clear_lock(self, user: User) -> None:
        user.is_locked = False
        user.lockout_until = None
        user.failed_login_attempts = 0

    def freeze_accounts(self, user_id: str) -> List[str]:
        frozen = []
        for account in self.accounts_of(user_id):
            account.is_frozen = True
            frozen.append(account.account_number)
        return frozen
