"""
Database layer for JobRadius.

Owns the job_locations table (one resolved coordinate per job) and reads
the jobs, employers and users tables maintained by the job platform, all in
SQLite.
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

# Coordinates are stored as fixed-precision text (~1 cm) so they read back
# exactly as written
COORDINATE_FORMAT = ".7f"


def format_coordinate(value: float) -> str:
    """Render a coordinate for storage."""
    return format(float(value), COORDINATE_FORMAT)


@dataclass
class JobRecord:
    """The address-relevant slice of a job owned by the job platform."""
    job_id: int
    employer_id: Optional[int]
    address_text: Optional[str]


@dataclass
class JobLocation:
    """A resolved coordinate for one job."""
    job_id: int
    employer_id: Optional[int]
    raw_address: str
    latitude: float
    longitude: float
    display_name: Optional[str]
    used_default: bool
    updated_at: datetime


@dataclass
class LocatedJob:
    """A job location joined with its job and employer summary."""
    job_id: int
    latitude: float
    longitude: float
    raw_address: str
    title: str
    salary: Optional[str]
    job_type: Optional[str]
    requirements: Optional[str]
    created_at: Optional[str]
    employer_id: Optional[int]
    company_name: Optional[str]
    company_logo: Optional[str]
    industry: Optional[str]
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    user_username: Optional[str] = None
    user_avatar: Optional[str] = None


class Database:
    """SQLite location store."""

    def __init__(self, db_path: str = "jobs.db", timeout: float = 5.0):
        """
        Initialize database connection.

        Args:
            db_path: Path to the SQLite database file.
            timeout: Seconds to wait for a locked database before failing.
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._init_database()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Any sqlite3 error raised inside the block surfaces as StoreUnavailable.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            logger.error(f"Cannot open database {self.db_path}: {e}")
            raise StoreUnavailable(f"Location store unavailable: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error on {self.db_path}: {e}")
            raise StoreUnavailable(f"Location store unavailable: {e}") from e
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize the database schema."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Tables owned by the job platform; created here so a fresh
            # database is usable standalone
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY,
                    email TEXT,
                    username TEXT,
                    avatar TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS employers (
                    id INTEGER PRIMARY KEY,
                    user_id INTEGER,
                    company_name TEXT NOT NULL,
                    company_logo TEXT,
                    industry TEXT,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY,
                    employer_id INTEGER,
                    title TEXT NOT NULL,
                    salary TEXT,
                    job_type TEXT,
                    requirements TEXT,
                    location TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (employer_id) REFERENCES employers(id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS job_locations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job_id INTEGER UNIQUE NOT NULL,
                    employer_id INTEGER,
                    raw_address TEXT NOT NULL,
                    latitude TEXT NOT NULL,
                    longitude TEXT NOT NULL,
                    display_name TEXT,
                    used_default BOOLEAN DEFAULT FALSE,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (job_id) REFERENCES jobs(id)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_job_locations_employer
                ON job_locations(employer_id)
            """)

            # Migrate databases created before display_name/used_default existed
            cursor.execute("PRAGMA table_info(job_locations)")
            columns = [row[1] for row in cursor.fetchall()]
            if "display_name" not in columns:
                cursor.execute("ALTER TABLE job_locations ADD COLUMN display_name TEXT")
                logger.info("Migrated database: added display_name column")
            if "used_default" not in columns:
                cursor.execute(
                    "ALTER TABLE job_locations ADD COLUMN used_default BOOLEAN DEFAULT FALSE"
                )
                logger.info("Migrated database: added used_default column")

            cursor.execute("PRAGMA table_info(employers)")
            if "user_id" not in [row[1] for row in cursor.fetchall()]:
                cursor.execute("ALTER TABLE employers ADD COLUMN user_id INTEGER")
                logger.info("Migrated database: added employers.user_id column")

            conn.commit()

    # ---- Job platform data ---------------------------------------------------

    def upsert_user(
        self,
        user_id: int,
        email: Optional[str] = None,
        username: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> None:
        """Insert or replace the account record behind an employer."""
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO users (id, email, username, avatar)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    username = excluded.username,
                    avatar = excluded.avatar
            """, (user_id, email, username, avatar))
            conn.commit()

    def upsert_employer(
        self,
        employer_id: int,
        company_name: str,
        company_logo: Optional[str] = None,
        industry: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> None:
        """Insert or replace an employer record."""
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO employers (id, user_id, company_name, company_logo, industry)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    company_name = excluded.company_name,
                    company_logo = excluded.company_logo,
                    industry = excluded.industry
            """, (employer_id, user_id, company_name, company_logo, industry))
            conn.commit()

    def upsert_job(
        self,
        job_id: int,
        title: str,
        location: Optional[str],
        employer_id: Optional[int] = None,
        salary: Optional[str] = None,
        job_type: Optional[str] = None,
        requirements: Optional[str] = None,
    ) -> None:
        """Insert or replace a job record."""
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO jobs (id, employer_id, title, salary, job_type, requirements, location)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    employer_id = excluded.employer_id,
                    title = excluded.title,
                    salary = excluded.salary,
                    job_type = excluded.job_type,
                    requirements = excluded.requirements,
                    location = excluded.location
            """, (job_id, employer_id, title, salary, job_type, requirements, location))
            conn.commit()

    def get_job(self, job_id: int) -> Optional[JobRecord]:
        """
        Get the address-relevant fields of a job.

        Args:
            job_id: The ID of the job.

        Returns:
            The JobRecord, or None if the job does not exist.
        """
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT id, employer_id, location FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
            if row is None:
                return None
            return JobRecord(
                job_id=row["id"],
                employer_id=row["employer_id"],
                address_text=row["location"],
            )

    def get_unresolved_job_ids(self, include_defaults: bool = False) -> list[int]:
        """
        Get jobs that have an address but no resolved location.

        Args:
            include_defaults: Also return jobs whose stored location is the
                fallback coordinate.

        Returns:
            Job IDs in ascending order.
        """
        with self.get_connection() as conn:
            cursor = conn.execute(f"""
                SELECT j.id FROM jobs j
                LEFT JOIN job_locations l ON l.job_id = j.id
                WHERE j.location IS NOT NULL AND TRIM(j.location) != ''
                  AND (l.job_id IS NULL{" OR l.used_default" if include_defaults else ""})
                ORDER BY j.id
            """)
            return [row[0] for row in cursor.fetchall()]

    # ---- Job locations -------------------------------------------------------

    def is_resolved(self, job_id: int) -> bool:
        """
        Check whether a job already has a stored location.

        Args:
            job_id: The ID of the job.

        Returns:
            True if a job_locations row exists with both coordinates.
        """
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT 1 FROM job_locations
                WHERE job_id = ? AND latitude IS NOT NULL AND longitude IS NOT NULL
            """, (job_id,)).fetchone()
            return row is not None

    def get_location(self, job_id: int) -> Optional[JobLocation]:
        """
        Get the stored location of a job.

        Args:
            job_id: The ID of the job.

        Returns:
            The JobLocation, or None if the job was never resolved.
        """
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM job_locations WHERE job_id = ?", (job_id,)
            ).fetchone()
            return self._row_to_location(row) if row else None

    def upsert_location(
        self,
        job_id: int,
        employer_id: Optional[int],
        raw_address: str,
        latitude: float,
        longitude: float,
        display_name: Optional[str] = None,
        used_default: bool = False,
    ) -> JobLocation:
        """
        Insert or update the location of a job in one atomic statement.

        Re-resolving a job overwrites its row; concurrent writers for the
        same job converge on the last write.

        Args:
            job_id: The ID of the job.
            employer_id: Owning employer, copied from the job.
            raw_address: Address text the coordinate was resolved from.
            latitude: Resolved latitude.
            longitude: Resolved longitude.
            display_name: Provider's name for the matched place.
            used_default: True if the coordinate is the fallback.

        Returns:
            The stored JobLocation.
        """
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO job_locations (
                    job_id, employer_id, raw_address, latitude, longitude,
                    display_name, used_default, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(job_id) DO UPDATE SET
                    employer_id = excluded.employer_id,
                    raw_address = excluded.raw_address,
                    latitude = excluded.latitude,
                    longitude = excluded.longitude,
                    display_name = excluded.display_name,
                    used_default = excluded.used_default,
                    updated_at = CURRENT_TIMESTAMP
            """, (
                job_id, employer_id, raw_address,
                format_coordinate(latitude), format_coordinate(longitude),
                display_name, used_default,
            ))
            row = conn.execute(
                "SELECT * FROM job_locations WHERE job_id = ?", (job_id,)
            ).fetchone()
            conn.commit()
            return self._row_to_location(row)

    def get_located_jobs(self) -> list[LocatedJob]:
        """
        Get every resolved location joined with its job and employer.

        A single query; locations whose job no longer exists are left out.

        Returns:
            List of LocatedJob objects ordered by job ID.
        """
        with self.get_connection() as conn:
            cursor = conn.execute("""
                SELECT
                    l.job_id, l.latitude, l.longitude, l.raw_address,
                    j.title, j.salary, j.job_type, j.requirements, j.created_at,
                    j.employer_id, e.company_name, e.company_logo, e.industry,
                    u.id AS user_id, u.email AS user_email,
                    u.username AS user_username, u.avatar AS user_avatar
                FROM job_locations l
                JOIN jobs j ON j.id = l.job_id
                LEFT JOIN employers e ON e.id = j.employer_id
                LEFT JOIN users u ON u.id = e.user_id
                ORDER BY l.job_id
            """)
            located = []
            for row in cursor.fetchall():
                try:
                    latitude = float(row["latitude"])
                    longitude = float(row["longitude"])
                except (TypeError, ValueError):
                    logger.warning(
                        f"Skipping job {row['job_id']}: unreadable stored coordinates "
                        f"({row['latitude']!r}, {row['longitude']!r})"
                    )
                    continue
                located.append(LocatedJob(
                    job_id=row["job_id"],
                    latitude=latitude,
                    longitude=longitude,
                    raw_address=row["raw_address"],
                    title=row["title"],
                    salary=row["salary"],
                    job_type=row["job_type"],
                    requirements=row["requirements"],
                    created_at=row["created_at"],
                    employer_id=row["employer_id"],
                    company_name=row["company_name"],
                    company_logo=row["company_logo"],
                    industry=row["industry"],
                    user_id=row["user_id"],
                    user_email=row["user_email"],
                    user_username=row["user_username"],
                    user_avatar=row["user_avatar"],
                ))
            return located

    def get_stats(self) -> dict:
        """
        Get database statistics.

        Returns:
            Dictionary with various statistics.
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()

            stats = {}

            cursor.execute("SELECT COUNT(*) FROM jobs")
            stats["total_jobs"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM job_locations")
            stats["resolved_jobs"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM job_locations WHERE used_default")
            stats["default_locations"] = cursor.fetchone()[0]

            stats["unresolved_jobs"] = len(self.get_unresolved_job_ids())

            return stats

    def _row_to_location(self, row: sqlite3.Row) -> JobLocation:
        """Convert a database row to a JobLocation object."""
        return JobLocation(
            job_id=row["job_id"],
            employer_id=row["employer_id"],
            raw_address=row["raw_address"],
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            display_name=row["display_name"],
            used_default=bool(row["used_default"]),
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else datetime.now(),
        )
