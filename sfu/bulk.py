"""
Bulk API 2.0 Module

Drives one ingest job from creation to a terminal state and collects its
per-row results.
"""
import csv
import io
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from .errors import (
    BulkConnectionError,
    CloseError,
    EmptyPayloadError,
    InvalidJobSpecError,
    InvalidTargetError,
    JobCreationError,
    PollError,
    PollTimeoutError,
    TransportError,
    UploadError,
)


logger = logging.getLogger(__name__)

Row = Dict[str, str]

STATE_OPEN = 'Open'
STATE_UPLOAD_COMPLETE = 'UploadComplete'
STATE_JOB_COMPLETE = 'JobComplete'
STATE_FAILED = 'Failed'
STATE_ABORTED = 'Aborted'

TERMINAL_STATES = frozenset({STATE_JOB_COMPLETE, STATE_FAILED, STATE_ABORTED})

# Lifecycle rank used to keep a handle from moving backwards
_STATE_RANK = {
    STATE_OPEN: 0,
    STATE_UPLOAD_COMPLETE: 1,
    'Queued': 2,
    'InProgress': 2,
    STATE_JOB_COMPLETE: 3,
    STATE_FAILED: 3,
    STATE_ABORTED: 3,
}


class BulkOperation(Enum):
    """Write operations supported by ingest jobs."""

    INSERT = 'Insert'
    UPDATE = 'Update'
    UPSERT = 'Upsert'
    DELETE = 'Delete'

    @property
    def api_name(self) -> str:
        return self.value.lower()

    @classmethod
    def parse(cls, text: str) -> 'BulkOperation':
        """Parse an operation name in any case ('upsert', 'UPSERT', ...)."""
        for operation in cls:
            if operation.value.lower() == (text or '').strip().lower():
                return operation
        raise InvalidJobSpecError(
            f"Operation must be Insert, Update, Upsert, or Delete, got {text!r}"
        )


def validate_operation(operation, upsert_key_field: Optional[str] = None) -> BulkOperation:
    """
    Check that an upsert key is given for upserts and only for upserts.

    Args:
        operation: BulkOperation or its name
        upsert_key_field: External id field name, if any

    Returns:
        The parsed BulkOperation

    Raises:
        InvalidJobSpecError: On an unknown operation or a key mismatch
    """
    if not isinstance(operation, BulkOperation):
        operation = BulkOperation.parse(operation)
    if operation is BulkOperation.UPSERT and not upsert_key_field:
        raise InvalidJobSpecError("External ID field is required for Upsert.")
    if operation is not BulkOperation.UPSERT and upsert_key_field:
        raise InvalidJobSpecError(
            f"External ID field is only valid for Upsert, not {operation.value}."
        )
    return operation


class IngestTransport(Protocol):
    """Calls the orchestrator needs from a Salesforce connection."""

    def probe(self): ...

    def describe(self, object_type: str) -> Dict[str, Any]: ...

    def create_ingest_job(self, job_request: Dict[str, Any]) -> Dict[str, Any]: ...

    def upload_job_content(self, job_id: str, payload: str, timeout: float): ...

    def close_job(self, job_id: str, timeout: float) -> Dict[str, Any]: ...

    def get_job_status(self, job_id: str) -> Dict[str, Any]: ...

    def get_successful_results(self, job_id: str) -> str: ...

    def get_failed_results(self, job_id: str) -> str: ...


@dataclass(frozen=True)
class JobSpec:
    """
    What to write: target object, operation and CSV payload.

    Attributes:
        target_entity: API name of the object (e.g. 'Contact')
        operation: Write operation
        payload: CSV text with a header row
        upsert_key_field: External id field, required for upserts only
    """

    target_entity: str
    operation: BulkOperation
    payload: str
    upsert_key_field: Optional[str] = None

    def __post_init__(self):
        if not self.target_entity or not self.target_entity.strip():
            raise InvalidJobSpecError("Target object name is required.")
        object.__setattr__(self, 'operation', validate_operation(self.operation, self.upsert_key_field))

    def to_job_request(self) -> Dict[str, Any]:
        """Body for the job creation endpoint."""
        request = {
            'object': self.target_entity,
            'operation': self.operation.api_name,
            'contentType': 'CSV',
            'lineEnding': 'LF',
        }
        if self.upsert_key_field:
            request['externalIdFieldName'] = self.upsert_key_field
        return request


@dataclass
class JobHandle:
    """A created job and the furthest lifecycle state observed for it."""

    job_id: str
    state: str = STATE_OPEN
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, reported_state: Optional[str], info: Optional[Dict[str, Any]] = None):
        """
        Record a state reported by Salesforce.

        States that rank below the current one are ignored. Unknown states
        are accepted as opaque, non-terminal values. The job info is only
        kept from reports whose state is accepted.
        """
        if reported_state and reported_state != self.state:
            current_rank = _STATE_RANK.get(self.state, 2)
            new_rank = _STATE_RANK.get(reported_state, current_rank)
            if new_rank < current_rank:
                logger.warning("Job %s reported state %s after %s; keeping %s",
                               self.job_id, reported_state, self.state, self.state)
                return
            self.state = reported_state
        if info is not None:
            self.info = info


@dataclass
class ResultSets:
    """Parsed successful and failed result rows for one job."""

    accepted: List[Row] = field(default_factory=list)
    rejected: List[Row] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)


@dataclass
class JobOutcome:
    """Final status of an ingest job plus its result rows."""

    job_id: str
    state: str
    records_processed: int = 0
    records_failed: int = 0
    total_processing_time: Optional[int] = None
    accepted: List[Row] = field(default_factory=list)
    rejected: List[Row] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)
    results_fetched: bool = False


def parse_result_csv(text: Optional[str]) -> List[Row]:
    """
    Parse a results CSV into row mappings.

    The header row defines the keys in order. Values are kept as strings.
    A blank body yields an empty list.

    Raises:
        ValueError: If a row has more cells than the header
    """
    if text is None or not text.strip():
        return []

    reader = csv.reader(io.StringIO(text.strip('\r\n')))
    header = next(reader)
    rows = []
    for line_number, cells in enumerate(reader, start=2):
        if not any(cell.strip() for cell in cells):
            continue
        if len(cells) > len(header):
            raise ValueError(
                f"line {line_number} has {len(cells)} cells but the header has {len(header)}"
            )
        cells = cells + [''] * (len(header) - len(cells))
        rows.append(dict(zip(header, cells)))
    return rows


def _fetch_rows(fetch: Callable[[str], str], job_id: str, label: str,
                diagnostics: List[str]) -> List[Row]:
    try:
        return parse_result_csv(fetch(job_id))
    except (TransportError, ValueError, csv.Error) as e:
        message = f"Could not fetch {label} results for job {job_id}: {e}"
        logger.warning(message)
        diagnostics.append(message)
        return []


def fetch_outcome(transport: IngestTransport, job_id: str) -> ResultSets:
    """
    Retrieve and parse both result sets of a finished job.

    Each fetch is independent; a failure becomes an empty list and a
    diagnostic message.
    """
    results = ResultSets()
    results.accepted = _fetch_rows(transport.get_successful_results, job_id, 'successful',
                                   results.diagnostics)
    results.rejected = _fetch_rows(transport.get_failed_results, job_id, 'failed',
                                   results.diagnostics)
    return results


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class BulkJobOrchestrator:
    """Runs ingest jobs against one transport. Nothing is retried."""

    def __init__(self, transport: IngestTransport,
                 poll_interval_seconds: float = 5.0,
                 max_poll_attempts: int = 60,
                 upload_timeout_seconds: float = 300.0,
                 close_timeout_seconds: float = 60.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be at least 1")
        self.transport = transport
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.upload_timeout_seconds = upload_timeout_seconds
        self.close_timeout_seconds = close_timeout_seconds
        self._sleep = sleep

    def run_job(self, spec: JobSpec) -> JobOutcome:
        """
        Create, upload, close and poll one job, then fetch its results.

        Args:
            spec: Target object, operation and payload

        Returns:
            JobOutcome with the final state, counts and result rows

        Raises:
            BulkJobError: Subclass naming the step that failed
        """
        if not spec.payload or not spec.payload.strip():
            raise EmptyPayloadError("CSV payload is empty.")

        self._preflight(spec)
        handle = self._create(spec)
        self._upload(handle, spec.payload)
        self._close(handle)
        self._poll(handle)
        return self._build_outcome(handle)

    def _preflight(self, spec: JobSpec):
        try:
            self.transport.probe()
        except TransportError as e:
            raise BulkConnectionError(str(e)) from e

        try:
            self.transport.describe(spec.target_entity)
        except TransportError as e:
            raise InvalidTargetError(str(e)) from e

    def _create(self, spec: JobSpec) -> JobHandle:
        logger.info("Creating %s job for %s", spec.operation.api_name, spec.target_entity)
        try:
            info = self.transport.create_ingest_job(spec.to_job_request())
        except TransportError as e:
            raise JobCreationError(str(e)) from e

        job_id = (info or {}).get('id')
        if not job_id:
            raise JobCreationError(f"Job creation response has no id: {info!r}")
        logger.info("Job created with ID %s", job_id)
        return JobHandle(job_id=job_id, state=STATE_OPEN, info=info)

    def _upload(self, handle: JobHandle, payload: str):
        logger.info("Uploading %d bytes of CSV data to job %s",
                    len(payload.encode('utf-8')), handle.job_id)
        try:
            self.transport.upload_job_content(handle.job_id, payload, self.upload_timeout_seconds)
        except TransportError as e:
            raise UploadError(str(e), job_id=handle.job_id) from e

    def _close(self, handle: JobHandle):
        try:
            info = self.transport.close_job(handle.job_id, self.close_timeout_seconds)
        except TransportError as e:
            raise CloseError(str(e), job_id=handle.job_id) from e
        handle.advance(STATE_UPLOAD_COMPLETE, info or handle.info)
        logger.info("Job %s closed", handle.job_id)

    def _poll(self, handle: JobHandle):
        for attempt in range(1, self.max_poll_attempts + 1):
            if attempt > 1:
                self._sleep(self.poll_interval_seconds)
            try:
                info = self.transport.get_job_status(handle.job_id)
            except TransportError as e:
                raise PollError(str(e), job_id=handle.job_id) from e

            info = info or {}
            handle.advance(info.get('state'), info)
            logger.info("Job %s status: %s, records processed: %s (poll %d/%d)",
                        handle.job_id, handle.state, info.get('numberRecordsProcessed', 0),
                        attempt, self.max_poll_attempts)
            if handle.is_terminal:
                return

        raise PollTimeoutError(
            f"Job did not finish after {self.max_poll_attempts} status checks "
            f"(last state {handle.state}); it is still running on Salesforce.",
            job_id=handle.job_id,
            last_state=handle.state,
            attempts=self.max_poll_attempts,
        )

    def _build_outcome(self, handle: JobHandle) -> JobOutcome:
        info = handle.info
        outcome = JobOutcome(
            job_id=handle.job_id,
            state=handle.state,
            records_processed=_as_int(info.get('numberRecordsProcessed')),
            records_failed=_as_int(info.get('numberRecordsFailed')),
            total_processing_time=info.get('totalProcessingTime'),
        )
        if info.get('errorMessage'):
            outcome.diagnostics.append(f"Job error: {info['errorMessage']}")

        has_records = outcome.records_processed > 0 or outcome.records_failed > 0
        if outcome.state != STATE_JOB_COMPLETE and not has_records:
            logger.info("Job %s ended %s with no processed records; skipping results",
                        handle.job_id, outcome.state)
            return outcome

        results = fetch_outcome(self.transport, handle.job_id)
        outcome.accepted = results.accepted
        outcome.rejected = results.rejected
        outcome.diagnostics.extend(results.diagnostics)
        outcome.results_fetched = True
        logger.info("Job %s finished %s: %d successful, %d failed result rows",
                    handle.job_id, outcome.state, len(outcome.accepted), len(outcome.rejected))
        return outcome


def run_bulk_job(transport: IngestTransport, spec: JobSpec, **settings) -> JobOutcome:
    """Run one ingest job with a fresh orchestrator."""
    return BulkJobOrchestrator(transport, **settings).run_job(spec)
