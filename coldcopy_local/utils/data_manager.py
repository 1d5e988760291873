"""
Local Data Manager for ColdCopy Local
Handles SQLite storage of uploaded files, jobs and prospect rows
"""

import sqlite3
import json
import os
from typing import Dict, Any, List, Optional, Sequence
import logging
from pathlib import Path


JOB_STATUSES = ('queued', 'running', 'paused', 'completed', 'failed')
ROW_STATUSES = ('queued', 'running', 'completed', 'failed')

# Columns update_prospect may write; ``followups`` is stored as followups_json.
_PROSPECT_UPDATABLE = {
    'status', 'error', 'scraped_content', 'subject', 'email_body', 'followups',
}

_PROSPECT_INPUT_FIELDS = (
    'first_name', 'last_name', 'email', 'company', 'website', 'activity_context', 'our_services',
)


class LocalDataManager:
    """
    Manages local data storage using a SQLite database.
    Provides the file, job and prospect records used by bulk generation.
    """

    # Class-level tracking to prevent multiple initializations
    _initialized_databases = set()
    _initialization_lock = False

    def __init__(self, data_dir: str = "./coldcopy_data"):
        """
        Initialize data manager with specified data directory.

        Args:
            data_dir: Directory path for storing local data
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / "coldcopy.db"
        self.config_dir = self.data_dir / "config"
        self.uploads_dir = self.data_dir / "uploads"
        self.exports_dir = self.data_dir / "exports"
        self.logs_dir = self.data_dir / "logs"

        self.logger = logging.getLogger("coldcopy.data_manager")

        self._create_directories()

        self._init_database_optimized()

    def _create_directories(self) -> None:
        """Create necessary directories for data storage."""
        for directory in [self.data_dir, self.config_dir, self.uploads_dir, self.exports_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        # Worker threads write concurrently; wait for locks instead of failing.
        return sqlite3.connect(self.db_path, timeout=30)

    def _init_database_optimized(self) -> None:
        """
        Initialize the database once per process and path.
        A class-level flag keeps concurrent instances from racing the schema setup.
        """
        db_path_str = str(self.db_path)

        if db_path_str in LocalDataManager._initialized_databases:
            self.logger.debug("Database already initialized in this process, skipping initialization")
            return

        if LocalDataManager._initialization_lock:
            self.logger.debug("Database initialization in progress by another instance, skipping")
            return

        LocalDataManager._initialization_lock = True
        try:
            if db_path_str in LocalDataManager._initialized_databases:
                return

            self.logger.info("Performing database initialization")
            self._init_database()
            LocalDataManager._initialized_databases.add(db_path_str)

        finally:
            LocalDataManager._initialization_lock = False

    def _init_database(self) -> None:
        """Initialize SQLite database with required tables."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("PRAGMA journal_mode = WAL")

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS files (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        original_filename TEXT NOT NULL,
                        stored_path TEXT NOT NULL,
                        header_json TEXT NOT NULL,
                        column_map_json TEXT NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS jobs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        file_id INTEGER NOT NULL,
                        settings_json TEXT,
                        status TEXT NOT NULL,
                        total_rows INTEGER NOT NULL DEFAULT 0,
                        processed_rows INTEGER NOT NULL DEFAULT 0,
                        error_count INTEGER NOT NULL DEFAULT 0,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        started_at TIMESTAMP,
                        finished_at TIMESTAMP,
                        FOREIGN KEY (file_id) REFERENCES files(id)
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS prospects (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        file_id INTEGER NOT NULL,
                        job_id INTEGER NOT NULL,
                        row_index INTEGER NOT NULL,
                        status TEXT NOT NULL,
                        error TEXT,
                        first_name TEXT,
                        last_name TEXT,
                        email TEXT,
                        company TEXT,
                        website TEXT,
                        activity_context TEXT,
                        our_services TEXT,
                        original_row_json TEXT,
                        scraped_content TEXT,
                        subject TEXT,
                        email_body TEXT,
                        followups_json TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (job_id, row_index),
                        FOREIGN KEY (job_id) REFERENCES jobs(id)
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_prospects_job_status ON prospects(job_id, status)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_jobs_file ON jobs(file_id)")

                conn.commit()
                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    # Files

    def save_file(
        self,
        original_filename: str,
        stored_path: str,
        headers: Sequence[str],
        column_map: Dict[str, Optional[str]]
    ) -> int:
        """
        Save an uploaded file record.

        Args:
            original_filename: Sanitized original file name
            stored_path: Path of the stored CSV
            headers: Header row
            column_map: Field name -> header mapping

        Returns:
            New file id
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO files (original_filename, stored_path, header_json, column_map_json)
                    VALUES (?, ?, ?, ?)
                """, (original_filename, stored_path, json.dumps(list(headers)), json.dumps(column_map)))
                conn.commit()
                file_id = cursor.lastrowid
                self.logger.debug(f"Saved file record {file_id}: {original_filename}")
                return file_id

        except Exception as e:
            self.logger.error(f"Failed to save file: {str(e)}")
            raise

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        """
        Get a file record by ID.

        Returns:
            File dictionary with decoded ``headers`` and ``column_map``, or None
        """
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM files WHERE id = ?", (file_id,))
                row = cursor.fetchone()

                if row:
                    result = dict(row)
                    result['headers'] = json.loads(result['header_json'])
                    result['column_map'] = json.loads(result['column_map_json'])
                    return result
                return None

        except Exception as e:
            self.logger.error(f"Failed to get file: {str(e)}")
            raise

    # Jobs

    def create_job(self, file_id: int, settings: Dict[str, Any]) -> int:
        """
        Create a queued job for a file.

        Args:
            file_id: Uploaded file id
            settings: Generation settings stored as settings_json

        Returns:
            New job id
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO jobs (file_id, settings_json, status, total_rows, processed_rows, error_count)
                    VALUES (?, ?, 'queued', 0, 0, 0)
                """, (file_id, json.dumps(settings)))
                conn.commit()
                job_id = cursor.lastrowid
                self.logger.debug(f"Created job {job_id} for file {file_id}")
                return job_id

        except Exception as e:
            self.logger.error(f"Failed to create job: {str(e)}")
            raise

    def insert_job_rows(self, job_id: int, file_id: int, rows: Sequence[Dict[str, Any]]) -> int:
        """
        Insert one queued prospect per row in a single transaction.

        On failure nothing is inserted and the job is marked failed.

        Args:
            job_id: Job id
            file_id: File id
            rows: Dicts with prospect input fields and ``original_row``

        Returns:
            Number of prospect rows stored for the job, also written to total_rows
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                for row_index, row in enumerate(rows):
                    values = [str(row.get(field) or '') for field in _PROSPECT_INPUT_FIELDS]
                    cursor.execute("""
                        INSERT INTO prospects
                        (file_id, job_id, row_index, status, first_name, last_name, email, company,
                         website, activity_context, our_services, original_row_json)
                        VALUES (?, ?, ?, 'queued', ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (file_id, job_id, row_index, *values, json.dumps(row.get('original_row') or {})))

                cursor.execute("SELECT COUNT(1) FROM prospects WHERE job_id = ?", (job_id,))
                total = cursor.fetchone()[0]
                cursor.execute("UPDATE jobs SET total_rows = ? WHERE id = ?", (total, job_id))
                conn.commit()
                self.logger.debug(f"Inserted {total} rows for job {job_id}")
                return total

        except Exception as e:
            self.logger.error(f"Failed to insert rows for job {job_id}: {str(e)}")
            self.set_job_status(job_id, 'failed', finished=True)
            raise

    def find_reusable_job(self, file_id: int) -> Optional[Dict[str, Any]]:
        """Latest job for a file that has not failed, or None."""
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT * FROM jobs
                    WHERE file_id = ? AND status IN ('queued', 'running', 'paused', 'completed')
                    ORDER BY id DESC LIMIT 1
                """, (file_id,))
                row = cursor.fetchone()
                return self._deserialize_job_row(row) if row else None

        except Exception as e:
            self.logger.error(f"Failed to find reusable job: {str(e)}")
            raise

    def get_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        """
        Get job record by ID.

        Returns:
            Job dictionary with decoded ``settings`` (None when missing or invalid)
        """
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
                row = cursor.fetchone()
                return self._deserialize_job_row(row) if row else None

        except Exception as e:
            self.logger.error(f"Failed to get job: {str(e)}")
            raise

    def list_jobs(self, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM jobs ORDER BY id DESC LIMIT ?", (limit,))
                return [self._deserialize_job_row(row) for row in cursor.fetchall()]

        except Exception as e:
            self.logger.error(f"Failed to list jobs: {str(e)}")
            raise

    def list_active_job_ids(self) -> List[int]:
        """Ids of jobs in ``queued`` or ``running`` state."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT id FROM jobs WHERE status IN ('queued', 'running') ORDER BY id ASC")
                return [row[0] for row in cursor.fetchall()]

        except Exception as e:
            self.logger.error(f"Failed to list active jobs: {str(e)}")
            raise

    def set_job_status(self, job_id: int, status: str, finished: bool = False) -> None:
        """
        Set a job's status.

        Args:
            job_id: Job id
            status: One of JOB_STATUSES
            finished: Also stamp ``finished_at``
        """
        if status not in JOB_STATUSES:
            raise ValueError(f"Invalid job status: {status}")

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                if finished:
                    cursor.execute(
                        "UPDATE jobs SET status = ?, finished_at = CURRENT_TIMESTAMP WHERE id = ?",
                        (status, job_id)
                    )
                else:
                    cursor.execute("UPDATE jobs SET status = ? WHERE id = ?", (status, job_id))
                conn.commit()
                self.logger.debug(f"Job {job_id} status -> {status}")

        except Exception as e:
            self.logger.error(f"Failed to set job status: {str(e)}")
            raise

    def mark_job_running(self, job_id: int, only_if_active: bool = True) -> None:
        """
        Move a job to ``running``, keeping the first ``started_at``.

        Args:
            job_id: Job id
            only_if_active: Only change jobs currently queued or running
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                query = ("UPDATE jobs SET status = 'running', "
                         "started_at = COALESCE(started_at, CURRENT_TIMESTAMP) WHERE id = ?")
                if only_if_active:
                    query += " AND status IN ('queued', 'running')"
                cursor.execute(query, (job_id,))
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to mark job running: {str(e)}")
            raise

    def pause_job(self, job_id: int) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    UPDATE jobs SET status = 'paused'
                    WHERE id = ? AND status IN ('queued', 'running', 'paused')
                """, (job_id,))
                conn.commit()
                self.logger.info(f"Paused job {job_id}")

        except Exception as e:
            self.logger.error(f"Failed to pause job: {str(e)}")
            raise

    def increment_processed(self, job_id: int) -> None:
        """
        Count one finished row. Failed rows call ``increment_errors`` first.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    UPDATE jobs
                    SET processed_rows = processed_rows + 1
                    WHERE id = ?
                """, (job_id,))
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to increment processed rows: {str(e)}")
            raise

    def increment_errors(self, job_id: int) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("UPDATE jobs SET error_count = error_count + 1 WHERE id = ?", (job_id,))
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to increment errors: {str(e)}")
            raise

    def complete_job_if_done(self, job_id: int) -> bool:
        """
        Mark a job completed once every row has been processed.

        Returns:
            True when this call flipped the job to ``completed``
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    UPDATE jobs SET status = 'completed', finished_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND total_rows > 0 AND processed_rows >= total_rows
                      AND status <> 'completed'
                """, (job_id,))
                conn.commit()
                return cursor.rowcount > 0

        except Exception as e:
            self.logger.error(f"Failed to complete job: {str(e)}")
            raise

    def delete_job(self, job_id: int) -> bool:
        """
        Delete a job, its prospects and its file record, then the stored upload.

        Returns:
            False when the job does not exist
        """
        job = self.get_job(job_id)
        if not job:
            return False
        file_record = self.get_file(job['file_id'])

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM prospects WHERE job_id = ?", (job_id,))
                cursor.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
                if file_record:
                    cursor.execute("DELETE FROM prospects WHERE file_id = ?", (file_record['id'],))
                    cursor.execute("DELETE FROM jobs WHERE file_id = ?", (file_record['id'],))
                    cursor.execute("DELETE FROM files WHERE id = ?", (file_record['id'],))
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to delete job {job_id}: {str(e)}")
            raise

        stored_path = file_record.get('stored_path') if file_record else None
        if stored_path and os.path.exists(stored_path):
            try:
                os.remove(stored_path)
            except OSError as e:
                self.logger.warning(f"Could not remove stored upload {stored_path}: {str(e)}")

        self.logger.info(f"Deleted job {job_id}")
        return True

    def _deserialize_job_row(self, row: sqlite3.Row) -> Dict[str, Any]:
        result = dict(row)
        settings = None
        if result.get('settings_json'):
            try:
                settings = json.loads(result['settings_json'])
            except ValueError:
                self.logger.warning(f"Job {result.get('id')} has invalid settings_json")
        result['settings'] = settings if isinstance(settings, dict) else None
        return result

    # Prospects

    def get_prospect(self, prospect_id: int) -> Optional[Dict[str, Any]]:
        """
        Get prospect record by ID.

        Returns:
            Prospect dictionary with decoded ``followups`` and ``original_row``
        """
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM prospects WHERE id = ?", (prospect_id,))
                row = cursor.fetchone()
                return self._deserialize_prospect_row(row) if row else None

        except Exception as e:
            self.logger.error(f"Failed to get prospect: {str(e)}")
            raise

    def update_prospect(self, prospect_id: int, **fields: Any) -> None:
        """
        Update prospect columns; ``updated_at`` is always refreshed.

        Args:
            prospect_id: Prospect id
            **fields: Columns from the updatable set; ``followups`` takes a list
        """
        unknown = set(fields) - _PROSPECT_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update prospect fields: {', '.join(sorted(unknown))}")

        assignments = []
        values: List[Any] = []
        for key, value in fields.items():
            if key == 'followups':
                assignments.append("followups_json = ?")
                values.append(json.dumps(value if value is not None else []))
            else:
                assignments.append(f"{key} = ?")
                values.append(value)
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        values.append(prospect_id)

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(f"UPDATE prospects SET {', '.join(assignments)} WHERE id = ?", values)
                conn.commit()

        except Exception as e:
            self.logger.error(f"Failed to update prospect {prospect_id}: {str(e)}")
            raise

    def list_pending_prospect_ids(self, job_id: int) -> List[int]:
        """Queued prospect ids of a job in ascending row order."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT id FROM prospects
                    WHERE job_id = ? AND status = 'queued'
                    ORDER BY row_index ASC
                """, (job_id,))
                return [row[0] for row in cursor.fetchall()]

        except Exception as e:
            self.logger.error(f"Failed to list pending prospects: {str(e)}")
            raise

    def get_job_rows(self, job_id: int, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """
        Page through a job's generated rows.

        Args:
            job_id: Job id
            limit: Page size, clamped to 1..200
            offset: Rows to skip

        Returns:
            Row summaries ordered by row index
        """
        limit = min(200, max(1, int(limit)))
        offset = max(0, int(offset))

        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT id, row_index, status, error, subject, email_body, followups_json
                    FROM prospects WHERE job_id = ?
                    ORDER BY row_index ASC LIMIT ? OFFSET ?
                """, (job_id, limit, offset))
                return [self._deserialize_prospect_row(row) for row in cursor.fetchall()]

        except Exception as e:
            self.logger.error(f"Failed to get job rows: {str(e)}")
            raise

    def get_job_outputs(self, job_id: int) -> List[Dict[str, Any]]:
        """All prospects of a job ordered by row index, for export."""
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM prospects WHERE job_id = ? ORDER BY row_index ASC", (job_id,))
                return [self._deserialize_prospect_row(row) for row in cursor.fetchall()]

        except Exception as e:
            self.logger.error(f"Failed to get job outputs: {str(e)}")
            raise

    def _deserialize_prospect_row(self, row: sqlite3.Row) -> Dict[str, Any]:
        result = dict(row)
        followups: Any = []
        if result.get('followups_json'):
            try:
                followups = json.loads(result['followups_json'])
            except ValueError:
                followups = []
        result['followups'] = followups if isinstance(followups, list) else []

        if 'original_row_json' in result:
            original: Any = {}
            if result.get('original_row_json'):
                try:
                    original = json.loads(result['original_row_json'])
                except ValueError:
                    original = {}
            result['original_row'] = original if isinstance(original, dict) else {}
        return result
