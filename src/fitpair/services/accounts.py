"""Account lifecycle business logic."""

import logging
from dataclasses import dataclass
from typing import Protocol

from fitpair.domain.errors import StorageError, StorageFault
from fitpair.domain.models import Account, StatsRecord

_logger = logging.getLogger(__name__)


class AccountRepository(Protocol):
    """Persistence interface for accounts and their stats rows."""

    async def get_by_email(self, email: str) -> Account | None:
        """Return the account for an email, if present."""

    async def get_by_id(self, account_id: int) -> Account | None:
        """Return the account for an id, if present."""

    async def create_account(
        self, email: str, credential_hash: str, display_name: str
    ) -> Account:
        """Create and return a new account row."""

    async def create_stats(self, stats: StatsRecord) -> None:
        """Create the stats row for an account."""

    async def delete_account(self, account_id: int) -> None:
        """Delete an account; owned rows cascade."""


class CredentialStore(Protocol):
    """One-way credential hashing and verification."""

    def hash_credential(self, secret: str) -> str:
        """Return an opaque hash for a secret."""

    def verify_credential(self, secret: str, credential_hash: str) -> bool:
        """Return True when the secret matches the hash."""


@dataclass
class AccountService:
    """Application service for registration and sign-in."""

    repository: AccountRepository
    credentials: CredentialStore

    async def register(self, email: str, secret: str, display_name: str) -> Account:
        """Create an account together with its default stats.

        Raises DuplicateKey when the email is taken. When the stats row
        cannot be written the account row is removed again and StorageFault
        is raised; if that cleanup fails too the account id is logged for
        manual reconciliation.
        """
        credential_hash = self.credentials.hash_credential(secret)
        account = await self.repository.create_account(
            email=normalize_email(email),
            credential_hash=credential_hash,
            display_name=display_name,
        )
        try:
            await self.repository.create_stats(StatsRecord(account_id=account.id))
        except StorageError as exc:
            _logger.error(
                "Stats creation failed after account insert: account_id=%s error=%s",
                account.id,
                exc,
            )
            try:
                await self.repository.delete_account(account.id)
            except StorageError:
                _logger.exception(
                    "Account row left without stats, reconcile manually: "
                    "account_id=%s",
                    account.id,
                )
            raise StorageFault(
                "Registration did not complete", detail=str(exc)
            ) from exc
        _logger.info("Registered account: account_id=%s", account.id)
        return account

    async def authenticate(self, email: str, secret: str) -> Account | None:
        """Return the account when the credentials match."""
        account = await self.repository.get_by_email(normalize_email(email))
        if account is None:
            return None
        if not self.credentials.verify_credential(secret, account.credential_hash):
            return None
        return account

    async def get_account(self, account_id: int) -> Account | None:
        """Return the account for an id."""
        return await self.repository.get_by_id(account_id)


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address."""
    return email.strip().lower()
