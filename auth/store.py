"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts (the Credential Store).

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE constraint on the normalized email column.
  The database, not application code, decides which of two concurrent
  creates wins; the loser's IntegrityError becomes DuplicateIdentity.

  bcrypt runs before the INSERT and outside any lock, so a slow hash for one
  signup never stalls another account's request.

DB path: auth/gymcoach_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or identity/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from auth.validation import normalize_email, validate_signup
from core.errors import DuplicateIdentity, ValidationError

logger = logging.getLogger("gymcoach.auth.store")

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'gymcoach_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("display_name", String(255), nullable=False),
    Column("email", String(254), nullable=False, unique=True),  # normalized
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    # AUTOINCREMENT keeps ids monotonic even after deletes
    sqlite_autoincrement=True,
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account rows.

    Usage:
        store = AccountStore()
        account_id = store.create_account("Ada", "ada@example.com", "correct horse")
        account = store.find_by_email("ADA@example.com ")
        store.verify_secret(account, "correct horse")  # True
        store.close()
    """

    def __init__(self, db_url: str = DEFAULT_DB_URL, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self.bcrypt_rounds = bcrypt_rounds
        # Same cost as real hashes so authenticate() takes equal time for
        # unknown emails and wrong passwords.
        self._dummy_hash = hash_password("gymcoach-timing-dummy", bcrypt_rounds)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_account(self, display_name: str, email: str, password: str) -> int:
        """Validate, hash, and insert a new account. Returns the assigned id.

        Raises:
            ValidationError:   one or more fields violate their constraints.
            DuplicateIdentity: the normalized email is already registered.
        """
        errors = validate_signup(display_name, email, password)
        if errors:
            raise ValidationError(errors)

        normalized = normalize_email(email)
        password_hash = hash_password(password, self.bcrypt_rounds)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        display_name=display_name.strip(),
                        email=normalized,
                        password_hash=password_hash,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateIdentity("An account with that email already exists.") from exc
        account_id = result.inserted_primary_key[0]
        logger.info("Account %d created", account_id)
        return account_id

    def delete_account(self, account_id: int) -> bool:
        """Permanently delete an account. Returns True if a row was removed.

        Tokens already issued for the account stay cryptographically valid;
        GET /api/me reports 404 for them.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_recent(self, limit: int = 20) -> list[Account]:
        """Return the newest accounts first (operator CLI)."""
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().order_by(_accounts.c.id.desc()).limit(limit)).fetchall()
        return [_row_to_account(r) for r in rows]

    def count_accounts(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM accounts")).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def verify_secret(self, account: Account, password: str) -> bool:
        """Check a plaintext password against the account's stored bcrypt hash."""
        return verify_password(password, account.password_hash)

    def authenticate(self, email: str, password: str) -> Account | None:
        """Return the account if email and password match, else None.

        Always runs bcrypt whether or not the account exists. This prevents an
        attacker from enumerating registered emails by measuring response time:
        - Unknown email: bcrypt runs against the dummy hash (same cost)
        - Wrong password: bcrypt runs against the real hash (same cost)
        """
        account = self.find_by_email(email)
        if account is None:
            verify_password(password, self._dummy_hash)
            return None
        if not self.verify_secret(account, password):
            return None
        return account

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        display_name=row.display_name,
        email=row.email,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )
