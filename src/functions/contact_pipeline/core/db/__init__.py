"""Database access for the contact pipeline."""

from .contact_store import ContactStore
from .pipeline_job_store import JobRecord, PipelineJobStore

__all__ = ["ContactStore", "JobRecord", "PipelineJobStore"]
