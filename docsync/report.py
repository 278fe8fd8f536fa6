"""
Per-cycle reporting.

A CycleReport aggregates one CollectionReport per synced collection. Failures
are recorded here instead of aborting the cycle, so one bad document or one
rejected column never hides the state of the rest.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class DocumentFailure:
    natural_key: Optional[str]
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"natural_key": self.natural_key, "error_type": self.error_type, "message": self.message}


@dataclass
class SchemaFailure:
    column: Optional[str]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"column": self.column, "message": self.message}


@dataclass
class CollectionReport:
    collection: str
    table: str
    documents_seen: int = 0
    rows_written: int = 0
    table_created: bool = False
    columns_added: List[str] = field(default_factory=list)
    columns_widened: List[str] = field(default_factory=list)
    schema_failures: List[SchemaFailure] = field(default_factory=list)
    document_failures: List[DocumentFailure] = field(default_factory=list)
    aborted: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.aborted is None and not self.schema_failures and not self.document_failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "table": self.table,
            "documents_seen": self.documents_seen,
            "rows_written": self.rows_written,
            "table_created": self.table_created,
            "columns_added": list(self.columns_added),
            "columns_widened": list(self.columns_widened),
            "schema_failures": [f.to_dict() for f in self.schema_failures],
            "document_failures": [f.to_dict() for f in self.document_failures],
            "aborted": self.aborted,
        }


@dataclass
class CycleReport:
    cycle: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    collections: List[CollectionReport] = field(default_factory=list)
    interrupted: bool = False

    @property
    def documents_seen(self) -> int:
        return sum(c.documents_seen for c in self.collections)

    @property
    def rows_written(self) -> int:
        return sum(c.rows_written for c in self.collections)

    @property
    def failure_count(self) -> int:
        return sum(
            len(c.schema_failures) + len(c.document_failures) + (1 if c.aborted else 0)
            for c in self.collections
        )

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.collections)

    @property
    def elapsed_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self) -> "CycleReport":
        self.finished_at = datetime.now(timezone.utc)
        return self

    def summary(self) -> str:
        return (
            f"cycle {self.cycle}: {len(self.collections)} collections, "
            f"{self.rows_written}/{self.documents_seen} documents written, "
            f"{self.failure_count} failures in {self.elapsed_seconds:.2f}s"
            + (" (interrupted)" if self.interrupted else "")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "documents_seen": self.documents_seen,
            "rows_written": self.rows_written,
            "failures": self.failure_count,
            "interrupted": self.interrupted,
            "collections": [c.to_dict() for c in self.collections],
        }
