import re
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Tuple

from ...domain.errors import Conflict, NotFound, StorageFailure
from ...domain.filters import Condition, FilterCriteria, Matcher, Page, PageResult
from ...domain.models import (
    AuditLog,
    AuditLogEntry,
    BasicStatus,
    ClientMetadata,
    Company,
    LoginSession,
    User,
    UserRole,
    VerificationCode,
)
from ...domain.ports.persistence import PersistenceGateway

_SAFE_COLUMN = re.compile(r"^(?:[a-z]\.)?[a-z_]+$")

_SESSION_COLUMNS = (
    "id",
    "user_id",
    "ip_address",
    "city",
    "region",
    "country",
    "browser",
    "os",
    "device_type",
    "user_agent",
    "login_time",
    "logout_time",
)


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    phone_number TEXT UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'USER',
                    status TEXT NOT NULL DEFAULT 'Active',
                    img TEXT,
                    signature TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS verification_codes (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    token TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    resend_attempts INTEGER NOT NULL DEFAULT 1,
                    last_attempt_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_verification_codes_user_expires
                    ON verification_codes(user_id, expires_at);

                CREATE TABLE IF NOT EXISTS login_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    ip_address TEXT,
                    city TEXT,
                    region TEXT,
                    country TEXT,
                    browser TEXT,
                    os TEXT,
                    device_type TEXT,
                    user_agent TEXT,
                    login_time TEXT NOT NULL,
                    logout_time TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_login_sessions_user
                    ON login_sessions(user_id, login_time DESC);

                CREATE TABLE IF NOT EXISTS audit_logs (
                    id TEXT PRIMARY KEY,
                    action TEXT NOT NULL,
                    method TEXT NOT NULL,
                    request_payload TEXT NOT NULL,
                    response_payload TEXT NOT NULL,
                    response_length INTEGER,
                    status_code INTEGER NOT NULL,
                    ip_address TEXT NOT NULL,
                    user_agent TEXT NOT NULL,
                    user_id TEXT,
                    user_role TEXT NOT NULL DEFAULT 'unknown',
                    success INTEGER NOT NULL,
                    login_history_id TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_audit_logs_created
                    ON audit_logs(created_at DESC);

                CREATE TABLE IF NOT EXISTS companies (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    logo TEXT,
                    email TEXT,
                    phone_number TEXT,
                    address TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    # UserRepository API ----------------------------------------------------
    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE phone_number = ?", (phone_number,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def create_user(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        role: UserRole,
        status: BasicStatus = BasicStatus.ACTIVE,
        phone_number: Optional[str] = None,
        img: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> User:
        user_id = self._new_id()
        now = self._now()
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO users (
                        id, first_name, last_name, email, phone_number, password_hash,
                        role, status, img, signature, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        first_name,
                        last_name,
                        email.strip().lower(),
                        phone_number,
                        password_hash,
                        role.value,
                        status.value,
                        img,
                        signature,
                        now,
                        now,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise Conflict("Email or phone number already in use") from exc
        user = self.get_user_by_id(user_id)
        if not user:
            raise StorageFailure("Failed to persist user")
        return user

    def update_user(
        self,
        user_id: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: Optional[UserRole] = None,
        status: Optional[BasicStatus] = None,
        img: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> User:
        fields = {
            "first_name": first_name,
            "last_name": last_name,
            "email": email.strip().lower() if email else None,
            "phone_number": phone_number,
            "password_hash": password_hash,
            "role": role.value if role else None,
            "status": status.value if status else None,
            "img": img,
            "signature": signature,
        }
        self._update_row("users", user_id, fields)
        user = self.get_user_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def list_users(self, criteria: FilterCriteria, page: Page) -> PageResult:
        where, params = self._where(criteria)
        with self._lock:
            total = self._conn.execute(f"SELECT COUNT(*) FROM users{where}", params).fetchone()[0]
            rows = self._conn.execute(
                f"SELECT * FROM users{where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
                [*params, page.limit, page.offset],
            ).fetchall()
        return PageResult(items=[self._row_to_user(row) for row in rows], total=total, page=page)

    # VerificationCodeRepository API ----------------------------------------
    def get_or_create_live_code(
        self,
        user_id: str,
        *,
        now: datetime,
        token: str,
        expires_at: datetime,
    ) -> Tuple[VerificationCode, bool]:
        now_iso = self._iso(now)
        with self._lock, self._conn:
            # Serialises concurrent logins for the same user across processes as well.
            self._conn.execute("BEGIN IMMEDIATE")
            row = self._conn.execute(
                """
                SELECT * FROM verification_codes
                WHERE user_id = ? AND expires_at > ?
                ORDER BY created_at ASC LIMIT 1
                """,
                (user_id, now_iso),
            ).fetchone()
            created = False
            if row is None:
                code_id = self._new_id()
                self._conn.execute(
                    """
                    INSERT INTO verification_codes (
                        id, user_id, token, expires_at, resend_attempts,
                        last_attempt_at, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, 1, ?, ?, ?)
                    """,
                    (code_id, user_id, token, self._iso(expires_at), now_iso, now_iso, now_iso),
                )
                row = self._conn.execute(
                    "SELECT * FROM verification_codes WHERE id = ?", (code_id,)
                ).fetchone()
                created = True
        return self._row_to_code(row), created

    def get_live_code(self, user_id: str, now: datetime) -> Optional[VerificationCode]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT * FROM verification_codes
                WHERE user_id = ? AND expires_at > ?
                ORDER BY created_at ASC LIMIT 1
                """,
                (user_id, self._iso(now)),
            ).fetchone()
        return self._row_to_code(row) if row else None

    def update_code_attempts(
        self,
        code_id: str,
        *,
        resend_attempts: int,
        last_attempt_at: datetime,
    ) -> VerificationCode:
        with self._lock, self._conn:
            self._conn.execute(
                """
                UPDATE verification_codes
                SET resend_attempts = ?, last_attempt_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (resend_attempts, self._iso(last_attempt_at), self._now(), code_id),
            )
            row = self._conn.execute(
                "SELECT * FROM verification_codes WHERE id = ?", (code_id,)
            ).fetchone()
        if not row:
            raise NotFound("Verification code not found")
        return self._row_to_code(row)

    def consume_code(self, code_id: str) -> bool:
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM verification_codes WHERE id = ?", (code_id,))
            return cur.rowcount == 1

    def purge_expired_codes(self, now: datetime) -> int:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM verification_codes WHERE expires_at <= ?", (self._iso(now),)
            )
            return cur.rowcount

    # LoginSessionRepository API --------------------------------------------
    def create_login_session(
        self,
        user_id: str,
        metadata: ClientMetadata,
        login_time: datetime,
    ) -> LoginSession:
        session_id = self._new_id()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO login_sessions (
                    id, user_id, ip_address, city, region, country, browser,
                    os, device_type, user_agent, login_time
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    user_id,
                    metadata.ip_address,
                    metadata.city,
                    metadata.region,
                    metadata.country,
                    metadata.browser,
                    metadata.os,
                    metadata.device_type,
                    metadata.user_agent,
                    self._iso(login_time),
                ),
            )
        session = self.get_login_session(session_id)
        if not session:
            raise StorageFailure("Failed to persist login session")
        return session

    def get_login_session(self, session_id: str) -> Optional[LoginSession]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM login_sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def close_login_session(self, session_id: str, logout_time: datetime) -> Optional[LoginSession]:
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE login_sessions SET logout_time = ? WHERE id = ? AND logout_time IS NULL",
                (self._iso(logout_time), session_id),
            )
        return self.get_login_session(session_id)

    # AuditLogRepository API ------------------------------------------------
    def record_audit_log(self, entry: AuditLogEntry) -> AuditLog:
        log_id = self._new_id()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO audit_logs (
                    id, action, method, request_payload, response_payload,
                    response_length, status_code, ip_address, user_agent,
                    user_id, user_role, success, login_history_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    log_id,
                    entry.action,
                    entry.method,
                    entry.request_payload,
                    entry.response_payload,
                    entry.response_length,
                    entry.status_code,
                    entry.ip_address,
                    entry.user_agent,
                    entry.user_id,
                    entry.user_role,
                    int(entry.success),
                    entry.login_history_id,
                    self._now(),
                ),
            )
            row = self._conn.execute("SELECT * FROM audit_logs WHERE id = ?", (log_id,)).fetchone()
        return self._row_to_audit_log(row)

    def list_audit_logs(self, criteria: FilterCriteria, page: Page) -> PageResult:
        where, params = self._where(criteria)
        session_columns = ", ".join(f"s.{column} AS s_{column}" for column in _SESSION_COLUMNS)
        base = "FROM audit_logs a LEFT JOIN login_sessions s ON s.id = a.login_history_id"
        with self._lock:
            total = self._conn.execute(f"SELECT COUNT(*) {base}{where}", params).fetchone()[0]
            rows = self._conn.execute(
                f"SELECT a.*, {session_columns} {base}{where} "
                "ORDER BY a.created_at DESC LIMIT ? OFFSET ?",
                [*params, page.limit, page.offset],
            ).fetchall()
        items = []
        for row in rows:
            log = self._row_to_audit_log(row)
            if row["s_id"] is not None:
                log.login_session = self._row_to_session(
                    {column: row[f"s_{column}"] for column in _SESSION_COLUMNS}
                )
            items.append(log)
        return PageResult(items=items, total=total, page=page)

    # CompanyRepository API -------------------------------------------------
    def create_company(
        self,
        *,
        name: str,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        logo: Optional[str] = None,
    ) -> Company:
        company_id = self._new_id()
        now = self._now()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO companies (
                    id, name, logo, email, phone_number, address, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (company_id, name, logo, email, phone_number, address, now, now),
            )
        company = self.get_company(company_id)
        if not company:
            raise StorageFailure("Failed to persist company")
        return company

    def get_company(self, company_id: str) -> Optional[Company]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM companies WHERE id = ?", (company_id,)).fetchone()
        return self._row_to_company(row) if row else None

    def update_company(
        self,
        company_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        address: Optional[str] = None,
        logo: Optional[str] = None,
    ) -> Company:
        self._update_row(
            "companies",
            company_id,
            {
                "name": name,
                "email": email,
                "phone_number": phone_number,
                "address": address,
                "logo": logo,
            },
        )
        company = self.get_company(company_id)
        if not company:
            raise NotFound("Company not found")
        return company

    def list_companies(self, criteria: FilterCriteria, page: Page) -> PageResult:
        where, params = self._where(criteria)
        with self._lock:
            total = self._conn.execute(f"SELECT COUNT(*) FROM companies{where}", params).fetchone()[0]
            rows = self._conn.execute(
                f"SELECT * FROM companies{where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
                [*params, page.limit, page.offset],
            ).fetchall()
        return PageResult(items=[self._row_to_company(row) for row in rows], total=total, page=page)

    # Helpers ----------------------------------------------------------------
    def _update_row(self, table: str, row_id: str, fields: dict) -> None:
        updates = []
        params: List[Any] = []
        for column, value in fields.items():
            if value is None:
                continue
            updates.append(f"{column} = ?")
            params.append(value)
        if not updates:
            return
        updates.append("updated_at = ?")
        params.append(self._now())
        params.append(row_id)
        statement = f"UPDATE {table} SET {', '.join(updates)} WHERE id = ?"
        try:
            with self._lock, self._conn:
                self._conn.execute(statement, params)
        except sqlite3.IntegrityError as exc:
            raise Conflict("Email or phone number already in use") from exc

    @classmethod
    def _where(cls, criteria: FilterCriteria) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        for condition in criteria.conditions:
            clause, value = cls._condition_sql(condition)
            clauses.append(clause)
            params.append(value)
        if criteria.search is not None:
            parts = []
            for column in criteria.search.columns:
                cls._check_column(column)
                parts.append(f"LOWER({column}) LIKE ? ESCAPE '\\'")
                params.append(cls._like_pattern(criteria.search.term))
            clauses.append("(" + " OR ".join(parts) + ")")
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    @classmethod
    def _condition_sql(cls, condition: Condition) -> Tuple[str, Any]:
        cls._check_column(condition.column)
        value = condition.value
        if isinstance(value, bool):
            value = int(value)
        elif hasattr(value, "value"):
            value = value.value
        if condition.matcher is Matcher.EXACT:
            return f"{condition.column} = ?", value
        return f"LOWER({condition.column}) LIKE ? ESCAPE '\\'", cls._like_pattern(str(value))

    @staticmethod
    def _check_column(column: str) -> None:
        if not _SAFE_COLUMN.match(column):
            raise ValueError(f"Unsupported filter column: {column}")

    @staticmethod
    def _like_pattern(term: str) -> str:
        escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @classmethod
    def _now(cls) -> str:
        return cls._iso(datetime.now(timezone.utc))

    @staticmethod
    def _iso(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")

    @staticmethod
    def _parse_datetime(value: str) -> datetime:
        result = datetime.fromisoformat(value)
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _parse_optional(self, value: Optional[str]) -> Optional[datetime]:
        return self._parse_datetime(value) if value else None

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            phone_number=row["phone_number"],
            password_hash=row["password_hash"],
            role=UserRole(row["role"]),
            status=BasicStatus(row["status"]),
            img=row["img"],
            signature=row["signature"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_code(self, row: sqlite3.Row) -> VerificationCode:
        return VerificationCode(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            expires_at=self._parse_datetime(row["expires_at"]),
            resend_attempts=row["resend_attempts"],
            last_attempt_at=self._parse_optional(row["last_attempt_at"]),
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_session(self, row) -> LoginSession:
        return LoginSession(
            id=row["id"],
            user_id=row["user_id"],
            ip_address=row["ip_address"],
            city=row["city"],
            region=row["region"],
            country=row["country"],
            browser=row["browser"],
            os=row["os"],
            device_type=row["device_type"],
            user_agent=row["user_agent"],
            login_time=self._parse_datetime(row["login_time"]),
            logout_time=self._parse_optional(row["logout_time"]),
        )

    def _row_to_audit_log(self, row: sqlite3.Row) -> AuditLog:
        return AuditLog(
            id=row["id"],
            action=row["action"],
            method=row["method"],
            request_payload=row["request_payload"],
            response_payload=row["response_payload"],
            response_length=row["response_length"],
            status_code=row["status_code"],
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            user_id=row["user_id"],
            user_role=row["user_role"],
            success=bool(row["success"]),
            login_history_id=row["login_history_id"],
            created_at=self._parse_datetime(row["created_at"]),
        )

    def _row_to_company(self, row: sqlite3.Row) -> Company:
        return Company(
            id=row["id"],
            name=row["name"],
            logo=row["logo"],
            email=row["email"],
            phone_number=row["phone_number"],
            address=row["address"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )
