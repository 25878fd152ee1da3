"""
Response Documents
==================

Plain dataclasses for the JSON documents returned by the Engine API.
Each class knows how to build itself from the decoded JSON (``from_dict``)
and how to turn itself back into the wire representation (``to_dict``),
omitting fields that are not set.

Result documents such as buckets, anomaly records, influencers, category
definitions and model snapshots are defined entirely by the server; the
client passes them through as dictionaries inside ``Pagination`` and
``SingleDocument`` wrappers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .error_codes import ErrorCodes

T = TypeVar("T")


@dataclass
class ApiError:
    """An error reported by the API: machine readable code plus message."""

    error_code: ErrorCodes = ErrorCodes.UNKNOWN_ERROR
    message: Optional[str] = None
    cause: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApiError":
        code = data.get("errorCode")
        return cls(
            error_code=ErrorCodes.from_code(code) if code is not None else ErrorCodes.UNKNOWN_ERROR,
            message=data.get("message"),
            cause=data.get("cause"),
        )

    @classmethod
    def unknown(cls, message: str) -> "ApiError":
        """Build the synthetic error used when the server gave no details."""
        return cls(error_code=ErrorCodes.UNKNOWN_ERROR, message=message)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"errorCode": int(self.error_code)}
        if self.message is not None:
            out["message"] = self.message
        if self.cause is not None:
            out["cause"] = self.cause
        return out

    def __str__(self) -> str:
        return f"{self.error_code.name} ({int(self.error_code)}): {self.message or ''}"


@dataclass
class DataCounts:
    """Counts of what the server did with the uploaded data for one job."""

    # (JSON key, attribute) pairs; the server omits keys it has no value for
    FIELDS = (
        ("bucketCount", "bucket_count"),
        ("processedRecordCount", "processed_record_count"),
        ("processedFieldCount", "processed_field_count"),
        ("inputBytes", "input_bytes"),
        ("inputRecordCount", "input_record_count"),
        ("inputFieldCount", "input_field_count"),
        ("invalidDateCount", "invalid_date_count"),
        ("missingFieldCount", "missing_field_count"),
        ("outOfOrderTimeStampCount", "out_of_order_time_stamp_count"),
        ("failedTransformCount", "failed_transform_count"),
        ("excludedRecordCount", "excluded_record_count"),
    )

    bucket_count: Optional[int] = None
    processed_record_count: int = 0
    processed_field_count: int = 0
    input_bytes: int = 0
    input_record_count: int = 0
    input_field_count: int = 0
    invalid_date_count: int = 0
    missing_field_count: int = 0
    out_of_order_time_stamp_count: int = 0
    failed_transform_count: int = 0
    excluded_record_count: int = 0
    latest_record_time_stamp: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataCounts":
        counts = cls()
        for key, attr in cls.FIELDS:
            if data.get(key) is not None:
                setattr(counts, attr, int(data[key]))
        counts.latest_record_time_stamp = data.get("latestRecordTimeStamp")
        return counts

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, attr in self.FIELDS:
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        if self.latest_record_time_stamp is not None:
            out["latestRecordTimeStamp"] = self.latest_record_time_stamp
        return out

    def add(self, other: "DataCounts") -> None:
        """Accumulate ``other`` into this object."""
        for _, attr in self.FIELDS:
            theirs = getattr(other, attr)
            if theirs is None:
                continue
            mine = getattr(self, attr)
            setattr(self, attr, theirs if mine is None else mine + theirs)
        if other.latest_record_time_stamp is not None:
            self.latest_record_time_stamp = other.latest_record_time_stamp


@dataclass
class DataPostResponse:
    """Outcome of a data upload for a single job: counts or an error."""

    job_id: Optional[str] = None
    upload_summary: Optional[DataCounts] = None
    error: Optional[ApiError] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataPostResponse":
        summary = data.get("uploadSummary")
        error = data.get("error")
        return cls(
            job_id=data.get("jobId"),
            upload_summary=DataCounts.from_dict(summary) if summary else None,
            error=ApiError.from_dict(error) if error else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.job_id is not None:
            out["jobId"] = self.job_id
        if self.upload_summary is not None:
            out["uploadSummary"] = self.upload_summary.to_dict()
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out


@dataclass
class MultiDataPostResult:
    """The response to a data upload: one ``DataPostResponse`` per job."""

    responses: List[DataPostResponse] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MultiDataPostResult":
        return cls(responses=[DataPostResponse.from_dict(r) for r in data.get("responses") or []])

    def to_dict(self) -> Dict[str, Any]:
        return {"responses": [r.to_dict() for r in self.responses]}

    def add_result(self, response: DataPostResponse) -> None:
        self.responses.append(response)

    def an_error_occurred(self) -> bool:
        """``True`` if any of the per-job responses carries an error."""
        return any(r.error is not None for r in self.responses)

    def first_error(self) -> Optional[ApiError]:
        for response in self.responses:
            if response.error is not None:
                return response.error
        return None

    def merge(self, other: "MultiDataPostResult") -> None:
        """Fold ``other`` into this result, summing counts per job.

        The most recent error reported for a job replaces any earlier one.
        """
        by_job = {r.job_id: r for r in self.responses}
        for response in other.responses:
            mine = by_job.get(response.job_id)
            if mine is None:
                copy = DataPostResponse(job_id=response.job_id, error=response.error)
                if response.upload_summary is not None:
                    copy.upload_summary = DataCounts()
                    copy.upload_summary.add(response.upload_summary)
                self.responses.append(copy)
                by_job[response.job_id] = copy
                continue
            if response.upload_summary is not None:
                if mine.upload_summary is None:
                    mine.upload_summary = DataCounts()
                mine.upload_summary.add(response.upload_summary)
            if response.error is not None:
                mine.error = response.error


@dataclass
class Pagination:
    """A page of documents plus links to the neighbouring pages."""

    hit_count: int = 0
    skip: int = 0
    take: int = 0
    next_page: Optional[str] = None
    previous_page: Optional[str] = None
    documents: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pagination":
        return cls(
            hit_count=int(data.get("hitCount") or 0),
            skip=int(data.get("skip") or 0),
            take=int(data.get("take") or 0),
            next_page=data.get("nextPage"),
            previous_page=data.get("previousPage"),
            documents=list(data.get("documents") or []),
        )

    @property
    def document_count(self) -> int:
        return len(self.documents)

    def is_all_results(self) -> bool:
        """``True`` if this page holds every hit."""
        return len(self.documents) == self.hit_count


@dataclass
class SingleDocument:
    """Wrapper for one document and whether it exists."""

    exists: bool = False
    type: Optional[str] = None
    document: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SingleDocument":
        return cls(
            exists=bool(data.get("exists", False)),
            type=data.get("type"),
            document=data.get("document"),
        )


@dataclass
class Acknowledgement:
    acknowledgement: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Acknowledgement":
        return cls(acknowledgement=bool(data.get("acknowledgement", False)))


@dataclass
class ApiResult(Generic[T]):
    """The outcome of one request: either ``value`` or ``error``.

    ``status_code`` is the HTTP status of the response.  A 404 accepted as
    an empty document is still ``ok``.
    """

    value: Optional[T] = None
    error: Optional[ApiError] = None
    status_code: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None
