"""
Codec — serialize and deserialize job records to/from JSON using Pydantic v2.

The id is the field name inside the `jobs` hash, so it is not repeated in
the record itself.

Wire format (one hash value):
-----------------------------
{"status": "waiting", "data": {"id": 0, "data": "a"}}
"""
from __future__ import annotations

from typing import Any

from redqueue.domain.models import Job, JobRecord


def encode_record(job: Job[Any]) -> str:
    """Serialize a Job's status and data to a JSON string."""
    return job.model_dump_json(include={"status", "data"})


def decode_record(
    job_id: str,
    raw: str | bytes,
    model: type[Job[Any]] = Job,
) -> Job[Any]:
    """Deserialize a stored record back into a Job carrying `job_id`."""
    record = JobRecord.model_validate_json(raw)
    return model(id=job_id, status=record.status, data=record.data)
