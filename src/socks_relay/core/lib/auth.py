"""Username/password credential checking (RFC 1929).

The connection handler only depends on ``Authenticator.validate``; the
credential source behind it is pluggable:

- ``StaticCredentials``: one configured username/password pair
- ``CredentialTable``: several pairs, e.g. loaded from a file
- ``CallableAuthenticator``: defers to an external store

Comparisons go through ``hmac.compare_digest`` and always evaluate both the
username and the password so that a wrong username is not answered faster
than a wrong password.

Example:
    authenticator = StaticCredentials("intern", "password123")
    authenticator.validate("intern", "password123")  # True
"""

import hmac
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from pathlib import Path

from loguru import logger


def _equal(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode(), right.encode())


class Authenticator(ABC):
    """Interface for credential sources."""

    @abstractmethod
    def validate(self, username: str, password: str) -> bool:
        """Return True when the pair is accepted."""


class StaticCredentials(Authenticator):
    """Single configured username/password pair."""

    def __init__(self, username: str, password: str) -> None:
        self.username = username
        self._password = password

    def validate(self, username: str, password: str) -> bool:
        user_ok = _equal(username, self.username)
        password_ok = _equal(password, self._password)
        return user_ok & password_ok

    def __repr__(self) -> str:
        return f"StaticCredentials(username={self.username!r})"


class CredentialTable(Authenticator):
    """Several username/password pairs.

    Every entry is compared on each call so the time taken does not depend
    on which entry matched.
    """

    def __init__(self, credentials: Mapping[str, str]) -> None:
        self._credentials = tuple(credentials.items())

    def __len__(self) -> int:
        return len(self._credentials)

    def validate(self, username: str, password: str) -> bool:
        matched = False
        for known_user, known_password in self._credentials:
            user_ok = _equal(username, known_user)
            password_ok = _equal(password, known_password)
            matched |= user_ok & password_ok
        return matched

    def __repr__(self) -> str:
        return f"CredentialTable(entries={len(self._credentials)})"


class CallableAuthenticator(Authenticator):
    """Adapter for an external credential store's ``check`` callable."""

    def __init__(self, check: Callable[[str, str], bool]) -> None:
        self._check = check

    def validate(self, username: str, password: str) -> bool:
        return bool(self._check(username, password))


def load_credentials(path: Path) -> CredentialTable:
    """Load ``username:password`` lines into a CredentialTable.

    Blank lines and lines starting with ``#`` are skipped. The password is
    everything after the first colon.

    Args:
        path: Credentials file

    Returns:
        CredentialTable: Table holding every entry of the file

    Raises:
        ValueError: If a line has no colon or an empty username
    """
    credentials: dict[str, str] = {}
    with path.open(encoding="utf-8") as f:
        for lineno, raw in enumerate(f, start=1):
            line = raw.rstrip("\r\n")
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            username, sep, password = line.partition(":")
            if not sep or not username:
                raise ValueError(f"{path}:{lineno}: expected 'username:password'")
            credentials[username] = password

    logger.debug(f"Loaded {len(credentials)} credential entries from {path}")
    return CredentialTable(credentials)
