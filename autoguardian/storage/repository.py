"""
Repository pattern for data access.

Handles profiles, the append-only usage tables and the waitlist.
"""

import json
import secrets
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from autoguardian.core.errors import DuplicateWaitlistEntry
from autoguardian.core.requests import Identity
from autoguardian.core.usage_gate import Tier

from .db import DEFAULT_DB_PATH, get_connection
from .models import RECORD_TYPES, ConsultationRecord, Profile, UsageRecord, WaitlistEntry

_VEHICLE_COLUMNS = """
                user_id TEXT NOT NULL REFERENCES profiles(id),
                created_at TEXT NOT NULL,
                vehicle_year INTEGER,
                vehicle_make TEXT NOT NULL,
                vehicle_model TEXT NOT NULL,
                result TEXT NOT NULL"""

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        tier TEXT NOT NULL DEFAULT 'free',
        access_token TEXT UNIQUE,
        stripe_customer_id TEXT,
        stripe_subscription_id TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS consultations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,{_VEHICLE_COLUMNS},
        vehicle_mileage INTEGER,
        description TEXT NOT NULL,
        severity TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS obd_lookups (
        id INTEGER PRIMARY KEY AUTOINCREMENT,{_VEHICLE_COLUMNS},
        code TEXT NOT NULL,
        severity TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS quote_checks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,{_VEHICLE_COLUMNS},
        input_type TEXT NOT NULL,
        quote_text TEXT,
        overall_verdict TEXT,
        total_quoted REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS waitlist (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE,
        source TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_consultations_user_created ON consultations (user_id, created_at)",
]


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    The usage tables are append-only ledgers. No UPDATE or DELETE
    operations are ever performed on them.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


def _row_to_profile(row: sqlite3.Row) -> Profile:
    return Profile(
        user_id=row["id"],
        email=row["email"],
        tier=Tier.parse(row["tier"]),
        access_token=row["access_token"],
        stripe_customer_id=row["stripe_customer_id"],
        stripe_subscription_id=row["stripe_subscription_id"],
    )


def _check_table(table: str) -> str:
    if table not in RECORD_TYPES:
        raise ValueError(f"Unknown record table: {table}")
    return table


class UsageRepository:
    """Repository for profiles, usage records and the waitlist.

    Every call opens and closes its own connection, so one instance can be
    shared by concurrent request handlers.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize(self) -> None:
        initialize_schema(self.db_path)

    # Profiles

    def create_profile(
        self,
        email: str,
        tier: Tier = Tier.FREE,
        user_id: Optional[str] = None,
    ) -> Profile:
        """Create a profile with a fresh access token."""
        profile = Profile(
            user_id=user_id or str(uuid.uuid4()),
            email=email.strip().lower(),
            tier=tier,
            access_token=secrets.token_urlsafe(32),
        )
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO profiles (id, email, tier, access_token) VALUES (?, ?, ?, ?)",
                (profile.user_id, profile.email, profile.tier.value, profile.access_token),
            )
            conn.commit()
        finally:
            conn.close()
        return profile

    def get_profile(self, user_id: str) -> Optional[Profile]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
            return _row_to_profile(row) if row else None
        finally:
            conn.close()

    def find_by_stripe_customer(self, customer_id: str) -> Optional[Profile]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM profiles WHERE stripe_customer_id = ?", (customer_id,)
            ).fetchone()
            return _row_to_profile(row) if row else None
        finally:
            conn.close()

    def get_identity_by_token(self, token: str) -> Optional[Identity]:
        """Resolve a bearer token to an identity, or None if unknown."""
        if not token:
            return None
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT id, email FROM profiles WHERE access_token = ?", (token,)
            ).fetchone()
            return Identity(user_id=row["id"], email=row["email"]) if row else None
        finally:
            conn.close()

    def get_tier(self, user_id: str) -> Tier:
        """Current tier; owners without a profile row are on the free tier."""
        profile = self.get_profile(user_id)
        return profile.tier if profile else Tier.FREE

    def _update_profile(self, user_id: str, **values: Any) -> bool:
        assignments = ", ".join(f"{column} = ?" for column in values)
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"UPDATE profiles SET {assignments} WHERE id = ?",
                (*values.values(), user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def set_tier(self, user_id: str, tier: Tier) -> bool:
        """Change a profile's tier. Returns False if the profile doesn't exist."""
        return self._update_profile(user_id, tier=tier.value)

    def set_stripe_customer(self, user_id: str, customer_id: str) -> bool:
        return self._update_profile(user_id, stripe_customer_id=customer_id)

    def set_subscription(self, user_id: str, subscription_id: Optional[str]) -> bool:
        return self._update_profile(user_id, stripe_subscription_id=subscription_id)

    # Usage records

    def insert_record(self, record: UsageRecord) -> None:
        """Append one usage record to its table."""
        row = record.to_row()
        table = _check_table(record.table)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            conn.commit()
        finally:
            conn.close()

    def count_records_since(self, table: str, user_id: str, since: datetime) -> int:
        """Count the owner's records in ``table`` created at or after ``since``."""
        table = _check_table(table)
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {table} WHERE user_id = ? AND created_at >= ?",
                (user_id, since.isoformat()),
            ).fetchone()
            return row[0] or 0
        finally:
            conn.close()

    def count_consultations_since(self, user_id: str, since: datetime) -> int:
        return self.count_records_since(ConsultationRecord.table, user_id, since)

    def fetch_recent_records(
        self,
        table: str,
        user_id: str,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """Fetch the owner's records, newest first, with ``result`` decoded."""
        table = _check_table(table)
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT * FROM {table} WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            )
            records = []
            for row in cursor.fetchall():
                record = dict(row)
                record["result"] = json.loads(record["result"])
                records.append(record)
            return records
        finally:
            conn.close()

    # Waitlist

    def add_to_waitlist(self, entry: WaitlistEntry) -> WaitlistEntry:
        """Insert a waitlist entry.

        Raises:
            DuplicateWaitlistEntry: If the email is already on the list
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO waitlist (email, source, created_at) VALUES (?, ?, ?)",
                (entry.email, entry.source, entry.created_at.isoformat()),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateWaitlistEntry() from e
        finally:
            conn.close()
        return entry

    def list_waitlist(self, limit: int = 100) -> List[WaitlistEntry]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT email, source, created_at FROM waitlist ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
            return [
                WaitlistEntry(
                    email=row["email"],
                    source=row["source"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()
