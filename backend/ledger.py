# backend/ledger.py
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Dict, Optional, Protocol

import redis.asyncio as redis

from .model import Account

logger = logging.getLogger(__name__)

ACCOUNT_KEY_PREFIX = "account:"        # account:{id} -> hash(name, credit_balance)
ACCOUNT_LOCK_PREFIX = "lock:account:"  # lock:account:{id}


class AccountStore(Protocol):
    async def find_by_id(self, account_id: str) -> Optional[Account]: ...

    async def save(self, account: Account) -> None: ...

    def lock(self, account_id: str) -> AsyncContextManager: ...


class InMemoryAccountStore:
    """
    Dict-backed store for tests and local runs. Per-account asyncio locks,
    dropped again once no request holds or waits for them.
    """

    def __init__(self, accounts: Optional[Dict[str, Account]] = None):
        self._accounts: Dict[str, Account] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        for account in (accounts or {}).values():
            self.add(account)

    def add(self, account: Account) -> Account:
        self._accounts[account.id] = account.model_copy()
        return account

    async def find_by_id(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def save(self, account: Account) -> None:
        self._accounts[account.id] = account.model_copy()

    @asynccontextmanager
    async def lock(self, account_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._lock_users[account_id] = self._lock_users.get(account_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[account_id] -= 1
            if not self._lock_users[account_id]:
                del self._lock_users[account_id]
                del self._locks[account_id]


class RedisAccountStore:
    """
    Accounts as Redis hashes. The per-account lock is a Redis lock, so
    concurrent requests for one account are serialized across processes.
    """

    def __init__(self, rds: redis.Redis, lock_timeout: float = 240):
        self.rds = rds
        self.lock_timeout = lock_timeout

    async def find_by_id(self, account_id: str) -> Optional[Account]:
        data = await self.rds.hgetall(f"{ACCOUNT_KEY_PREFIX}{account_id}")
        if not data:
            return None
        return Account(
            id=account_id,
            name=data.get("name") or None,
            credit_balance=int(data.get("credit_balance", 0)),
        )

    async def save(self, account: Account) -> None:
        mapping = {"credit_balance": account.credit_balance}
        if account.name is not None:
            mapping["name"] = account.name
        await self.rds.hset(f"{ACCOUNT_KEY_PREFIX}{account.id}", mapping=mapping)

    def lock(self, account_id: str):
        return self.rds.lock(
            f"{ACCOUNT_LOCK_PREFIX}{account_id}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_timeout,
        )


@dataclass(frozen=True)
class CreditDecision:
    allowed: bool
    balance: int


class CreditLedger:
    """
    Gate generation on the account balance and debit one credit per success.
    """

    def __init__(self, store: AccountStore):
        self.store = store

    @asynccontextmanager
    async def hold(self, account_id: str) -> AsyncIterator[None]:
        """
        Serialize one account's read -> debit window.
        """
        async with self.store.lock(account_id):
            yield

    def reserve(self, account: Account) -> CreditDecision:
        if account.credit_balance > 0:
            return CreditDecision(allowed=True, balance=account.credit_balance)
        logger.info("[Ledger] Account %s has no credit (balance=%d)", account.id, account.credit_balance)
        return CreditDecision(allowed=False, balance=account.credit_balance)

    async def debit(self, account: Account) -> int:
        account.credit_balance = max(0, account.credit_balance - 1)
        await self.store.save(account)
        logger.info("[Ledger] Debited account %s, balance=%d", account.id, account.credit_balance)
        return account.credit_balance
