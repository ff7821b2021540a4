import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..db import dict_factory, get_db_connection
from ..errors import NotFoundError
from ..models import CallResult, CurrentUnit, Job, JobInput, JobOptions


def _row_to_job(row: Dict[str, Any]) -> Job:
    current = json.loads(row["current_json"]) if row.get("current_json") else {}
    return Job(
        id=row["id"],
        service_kind=row["service_kind"],
        status=row["status"],
        vendor_ids=json.loads(row["vendor_ids_json"] or "[]"),
        repetitions=row["repetitions"],
        total=row["total"],
        completed=row["completed"],
        failed=row["failed"],
        current=CurrentUnit(**current),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        error=row.get("error"),
    )


class JobStore:
    """SQLite persistence for jobs and their ordered results."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = db_path

    def _connect(self):
        return get_db_connection(self.db_path)

    def create(self, job: Job, inputs: List[JobInput], options: JobOptions) -> None:
        conn = self._connect()
        cursor = conn.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO jobs (id, service_kind, status, vendor_ids_json, inputs_json, options_json,
                                  repetitions, total, completed, failed, current_json, started_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?, ?)
                """,
                (
                    job.id,
                    job.service_kind,
                    job.status,
                    json.dumps(job.vendor_ids),
                    json.dumps([i.model_dump() for i in inputs]),
                    options.model_dump_json(),
                    job.repetitions,
                    job.total,
                    job.current.model_dump_json(),
                    job.started_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def update(self, job_id: str, **fields: Any) -> None:
        """Update scalar job columns; ``current`` is serialized to JSON."""
        if not fields:
            return
        if "current" in fields:
            current = fields.pop("current")
            fields["current_json"] = current.model_dump_json() if isinstance(current, CurrentUnit) else json.dumps(current)
        columns = ", ".join(f"{name} = ?" for name in fields)
        conn = self._connect()
        cursor = conn.cursor()
        try:
            cursor.execute(f"UPDATE jobs SET {columns} WHERE id = ?", (*fields.values(), job_id))
            conn.commit()
        finally:
            conn.close()

    def append_result(self, job_id: str, seq: int, result: CallResult, completed: int, failed: int) -> None:
        """Persist one result, then the counters that report it."""
        conn = self._connect()
        cursor = conn.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO job_results (job_id, seq, vendor_id, input_index, run_index, status, result_json)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    seq,
                    result.vendor_id,
                    result.input_index,
                    result.run_index,
                    result.status,
                    result.model_dump_json(),
                ),
            )
            conn.commit()
            cursor.execute("UPDATE jobs SET completed = ?, failed = ? WHERE id = ?", (completed, failed, job_id))
            conn.commit()
        finally:
            conn.close()

    def get(self, job_id: str, with_results: bool = True) -> Job:
        conn = self._connect()
        conn.row_factory = dict_factory
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
            row = cursor.fetchone()
            if not row:
                raise NotFoundError(f"Job not found: {job_id}")
            job = _row_to_job(row)
        finally:
            conn.close()
        if with_results:
            job.results = self.get_results(job_id)
        return job

    def get_results(self, job_id: str, cursor_pos: int = 0) -> List[CallResult]:
        conn = self._connect()
        cursor = conn.cursor()
        try:
            cursor.execute(
                "SELECT result_json FROM job_results WHERE job_id = ? AND seq >= ? ORDER BY seq",
                (job_id, cursor_pos),
            )
            rows = cursor.fetchall()
        finally:
            conn.close()
        return [CallResult(**json.loads(r[0])) for r in rows]

    def list(self, limit: int = 50) -> List[Job]:
        conn = self._connect()
        conn.row_factory = dict_factory
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT * FROM jobs ORDER BY created_at DESC, rowid DESC LIMIT ?", (limit,))
            return [_row_to_job(row) for row in cursor.fetchall()]
        finally:
            conn.close()
