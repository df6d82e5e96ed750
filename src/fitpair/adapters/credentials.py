"""bcrypt-backed credential store."""

from dataclasses import dataclass

import bcrypt

from fitpair.services.accounts import CredentialStore


@dataclass
class BcryptCredentialStore(CredentialStore):
    """Hashes secrets with bcrypt."""

    rounds: int = 12

    def hash_credential(self, secret: str) -> str:
        """Return a bcrypt hash of the secret."""
        hashed = bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds))
        return hashed.decode("utf-8")

    def verify_credential(self, secret: str, credential_hash: str) -> bool:
        """Return True when the secret matches the stored hash."""
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), credential_hash.encode("utf-8"))
        except ValueError:
            return False
