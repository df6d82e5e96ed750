"""Signed session tokens."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

ALGORITHM = "HS256"


class InvalidToken(Exception):
    """The session token is malformed, expired or badly signed."""


@dataclass
class JwtTokenIssuer:
    """Issues and validates HS256 session tokens bound to an account id."""

    secret: str
    ttl_days: int = 7

    def issue(self, account_id: int, email: str) -> str:
        """Return a signed token for the account."""
        now = datetime.now(tz=UTC)
        payload = {
            "sub": str(account_id),
            "email": email,
            "iat": now,
            "exp": now + timedelta(days=self.ttl_days),
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def validate(self, token: str) -> int:
        """Return the account id bound to a valid token."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except jwt.PyJWTError as exc:
            raise InvalidToken(str(exc)) from exc
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.isdigit():
            raise InvalidToken("Token subject is not an account id")
        return int(subject)
