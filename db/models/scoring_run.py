"""
Scoring Run Model

One row per batch rescoring run: which period it scored, how many teams
succeeded or failed, and the error when the run as a whole failed.
"""

import uuid
from datetime import datetime
from typing import Optional

from peewee import CharField, DateTimeField, IntegerField, TextField, UUIDField

from db.base import BaseModel


class RunStatus:
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class ScoringRun(BaseModel):
    id = UUIDField(primary_key=True, default=uuid.uuid4)
    pipeline_name = CharField(max_length=50, index=True)
    period_key = CharField(max_length=10, null=True)  # "2026-10-14" or "2026-W42"
    started_at = DateTimeField()
    completed_at = DateTimeField(null=True)
    status = CharField(max_length=20, index=True)
    records_processed = IntegerField(default=0)  # teams scored
    records_failed = IntegerField(default=0)  # teams skipped after an error
    error_message = TextField(null=True)

    class Meta:
        table_name = "scoring_runs"

    def __repr__(self) -> str:
        return f"<ScoringRun(pipeline={self.pipeline_name}, period={self.period_key}, status={self.status})>"

    @classmethod
    def start_run(cls, pipeline_name: str, period_key: Optional[str] = None) -> "ScoringRun":
        return cls.create(
            id=uuid.uuid4(),
            pipeline_name=pipeline_name,
            period_key=period_key,
            started_at=datetime.utcnow(),
            status=RunStatus.RUNNING,
        )

    def finish(
        self,
        status: str,
        records_processed: int,
        records_failed: int,
        error_message: Optional[str] = None,
    ) -> None:
        self.status = status
        self.completed_at = datetime.utcnow()
        self.records_processed = records_processed
        self.records_failed = records_failed
        self.error_message = error_message
        self.save()
