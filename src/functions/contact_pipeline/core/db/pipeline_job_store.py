"""Per-owner pipeline job rows used by the scheduled step driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from src.shared.batch import retry_on_network_error

from ..contracts import JobStatus, Stage

logger = logging.getLogger(__name__)

COUNTER_PREFIXES: Dict[Stage, str] = {
    Stage.ENRICHMENT: "enrich",
    Stage.EXTRACTION: "thesis",
    Stage.EMBEDDING: "embed",
}
COUNTER_FIELDS = ("processed", "succeeded", "failed")


def counter_column(stage: Stage, field_name: str) -> str:
    return f"{COUNTER_PREFIXES[stage]}_{field_name}"


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


@dataclass(slots=True)
class JobRecord:
    """Snapshot of a ``pipeline_jobs`` row."""

    id: str
    owner_id: str
    enabled: bool = True
    status: str = JobStatus.IDLE.value
    current_stage: Stage = Stage.ENRICHMENT
    stage_cursor: Optional[str] = None
    counters: Dict[str, int] = field(default_factory=dict)
    error_count: int = 0
    last_error: Optional[str] = None
    last_run_at: Optional[str] = None
    completed_at: Optional[str] = None
    locked_by: Optional[str] = None
    lease_expires_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JobRecord":
        try:
            stage = Stage(row.get("current_stage") or Stage.ENRICHMENT.value)
        except ValueError:
            logger.warning(
                "Unknown stage %r on pipeline job %s, restarting at enrichment",
                row.get("current_stage"),
                row.get("id"),
            )
            stage = Stage.ENRICHMENT
        counters = {
            counter_column(s, name): int(row.get(counter_column(s, name)) or 0)
            for s in Stage
            for name in COUNTER_FIELDS
        }
        return cls(
            id=str(row["id"]),
            owner_id=str(row["owned_by_profile"]),
            enabled=bool(row.get("enabled", True)),
            status=row.get("status") or JobStatus.IDLE.value,
            current_stage=stage,
            stage_cursor=row.get("stage_cursor"),
            counters=counters,
            error_count=int(row.get("error_count") or 0),
            last_error=row.get("last_error"),
            last_run_at=row.get("last_run_at"),
            completed_at=row.get("completed_at"),
            locked_by=row.get("locked_by"),
            lease_expires_at=row.get("lease_expires_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "enabled": self.enabled,
            "status": self.status,
            "current_stage": self.current_stage.value,
            "stage_cursor": self.stage_cursor,
            "counters": dict(self.counters),
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_run_at": self.last_run_at,
            "completed_at": self.completed_at,
        }


class PipelineJobStore:
    """Reads and mutates pipeline job rows, including the worker lease."""

    def __init__(
        self,
        client: Any,
        *,
        table: str = "pipeline_jobs",
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.client = client
        self.table = table
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _execute(self, query: Any) -> Any:
        return retry_on_network_error(
            query.execute,
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
        )

    def _update(self, job_id: str, fields: Dict[str, Any]) -> List[Dict[str, Any]]:
        response = self._execute(self.client.table(self.table).update(fields).eq("id", job_id))
        return response.data or []

    def list_schedulable(self, owner_id: Optional[str] = None) -> List[JobRecord]:
        """Enabled jobs that are not marked failed, optionally for one owner."""
        query = (
            self.client.table(self.table)
            .select("*")
            .eq("enabled", True)
            .neq("status", JobStatus.FAILED.value)
        )
        if owner_id:
            query = query.eq("owned_by_profile", owner_id)
        response = self._execute(query.order("id"))
        return [JobRecord.from_row(row) for row in response.data or []]

    def get(self, owner_id: str) -> Optional[JobRecord]:
        response = self._execute(
            self.client.table(self.table).select("*").eq("owned_by_profile", owner_id).limit(1)
        )
        rows = response.data or []
        return JobRecord.from_row(rows[0]) if rows else None

    def load_row(self, job_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(self.client.table(self.table).select("*").eq("id", job_id).limit(1))
        rows = response.data or []
        return rows[0] if rows else None

    def update_fields(self, job_id: str, fields: Dict[str, Any]) -> None:
        self._update(job_id, fields)

    def mark_running(self, job: JobRecord, now: datetime) -> None:
        self._update(job.id, {"status": JobStatus.RUNNING.value, "last_run_at": _iso(now)})
        job.status = JobStatus.RUNNING.value
        job.last_run_at = _iso(now)

    def finish_step(
        self,
        job: JobRecord,
        status: JobStatus,
        *,
        completed_at: Optional[datetime] = None,
    ) -> None:
        """Persist the post-step status and clear the consecutive error count."""
        fields: Dict[str, Any] = {
            "status": status.value,
            "error_count": 0,
            "last_error": None,
            "completed_at": _iso(completed_at) if completed_at else None,
        }
        self._update(job.id, fields)
        job.status = status.value
        job.error_count = 0
        job.last_error = None
        job.completed_at = fields["completed_at"]

    def record_failure(
        self,
        job: JobRecord,
        message: str,
        error_count: int,
        status: JobStatus,
    ) -> None:
        """Persist the last error, the consecutive error count and the resulting status."""
        self._update(
            job.id,
            {"last_error": message, "error_count": error_count, "status": status.value},
        )
        job.error_count = error_count
        job.last_error = message
        job.status = status.value
        if status is JobStatus.FAILED:
            logger.error(
                "Pipeline job for owner %s marked failed after %d consecutive errors",
                job.owner_id,
                error_count,
            )

    def reset(self, owner_id: str) -> Optional[JobRecord]:
        """Clear failure state, counters and cursor so scheduling resumes."""
        fields: Dict[str, Any] = {
            "status": JobStatus.RUNNING.value,
            "error_count": 0,
            "last_error": None,
            "current_stage": Stage.ENRICHMENT.value,
            "stage_cursor": None,
            "completed_at": None,
            "locked_by": None,
            "lease_expires_at": None,
        }
        for stage in Stage:
            for name in COUNTER_FIELDS:
                fields[counter_column(stage, name)] = 0
        response = self._execute(
            self.client.table(self.table).update(fields).eq("owned_by_profile", owner_id)
        )
        rows = response.data or []
        return JobRecord.from_row(rows[0]) if rows else None

    def enable(self, owner_id: str) -> JobRecord:
        """Create or enable the owner's job row."""
        existing = self.get(owner_id)
        if existing is not None:
            self._update(existing.id, {"enabled": True})
            existing.enabled = True
            return existing
        response = self._execute(
            self.client.table(self.table).insert(
                {
                    "owned_by_profile": owner_id,
                    "enabled": True,
                    "status": JobStatus.RUNNING.value,
                    "current_stage": Stage.ENRICHMENT.value,
                }
            )
        )
        return JobRecord.from_row((response.data or [])[0])

    # ------------------------------------------------------------------
    # Lease
    # ------------------------------------------------------------------
    def acquire_lease(self, job: JobRecord, token: str, now: datetime, lease_seconds: int) -> bool:
        """Claim the job with a conditional update on the lease columns.

        Only rows whose lease is empty or already expired are updated, so at
        most one worker sees its token written back.
        """
        fields = {
            "locked_by": token,
            "lease_expires_at": _iso(now + timedelta(seconds=lease_seconds)),
        }
        free = self._execute(
            self.client.table(self.table)
            .update(fields)
            .eq("id", job.id)
            .is_("lease_expires_at", "null")
        ).data or []
        if not free:
            free = self._execute(
                self.client.table(self.table)
                .update(fields)
                .eq("id", job.id)
                .lt("lease_expires_at", _iso(now))
            ).data or []
        acquired = any(row.get("locked_by") == token for row in free)
        if acquired:
            job.locked_by = token
            job.lease_expires_at = fields["lease_expires_at"]
        else:
            logger.info("Pipeline job for owner %s is leased by another worker", job.owner_id)
        return acquired

    def release_lease(self, job: JobRecord, token: str) -> None:
        self._execute(
            self.client.table(self.table)
            .update({"locked_by": None, "lease_expires_at": None})
            .eq("id", job.id)
            .eq("locked_by", token)
        )
        job.locked_by = None
        job.lease_expires_at = None
