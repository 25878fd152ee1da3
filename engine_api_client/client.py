"""
Engine API Client
=================

An HTTP client for the Engine RESTful API.  It contains methods to create
and manage jobs, upload data, and query results and logs.

Each client owns one ``requests.Session`` (and so one connection pool)
plus a single request thread used by streaming uploads.  Both are created
by ``open()`` and released by ``close()``; the client is a context
manager so the usual pattern is::

    with EngineApiClient("http://localhost:8080/engine/v2") as client:
        job_id = client.create_job(job_config)
        with open("data.csv", "rb") as data:
            result = client.streaming_upload(job_id, data)
        client.close_job(job_id)

The client is not reentrant: each instance may only be used for one
interaction with the server at any time.  Create several clients for
parallel interactions.

Operations that fail because the server returned an error status do not
raise.  They return ``False``, an empty string or an empty document and
record the parsed error, available from ``last_error`` until the next
operation replaces it.  The generic ``get`` and ``post`` methods return an
``ApiResult`` holding either the value or the error.  Transport failures
(connection refused, timeouts) raise ``EngineApiIOError``.
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, Optional, Sequence, Union
from urllib.parse import quote, urlencode

import requests
from requests.adapters import HTTPAdapter

from .config import Config
from .error_codes import EngineApiIOError
from .data import ApiError, ApiResult, MultiDataPostResult, Pagination, SingleDocument
from .job_config import Detector, JobConfiguration, TransformConfig
from .request_builders import (
    AlertRequestBuilder,
    BucketRequestBuilder,
    BucketsRequestBuilder,
    CategoryDefinitionRequestBuilder,
    CategoryDefinitionsRequestBuilder,
    InfluencersRequestBuilder,
    ModelSnapshotsRequestBuilder,
    RecordsRequestBuilder,
)
from .upload import StreamingUploader

LOGGER = logging.getLogger(__name__)

APPLICATION_JSON = "application/json"
JSON_HEADERS = {"Content-Type": APPLICATION_JSON, "Content-Encoding": "UTF-8"}


def encode(value: str) -> str:
    """Percent-encode ``value`` for use as a single URL path segment."""
    return quote(str(value), safe="")


def _bool(value: bool) -> str:
    return "true" if value else "false"


class EngineApiClient:
    """HTTP client for the Engine REST API.

    :param base_url: The base URL for the REST API including the version
        number, e.g. ``http://localhost:8080/engine/v2``.  Overrides the
        value in ``config``.
    :param config: Optional client configuration; defaults are used when
        omitted.
    :param session: Optional pre-built ``requests.Session``.  An injected
        session is closed together with the client.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        config: Optional[Config] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or Config()
        if base_url:
            self.config = replace(self.config, base_url=base_url)
        self._injected_session = session
        self._session: Optional[requests.Session] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._last_error: Optional[ApiError] = None
        self._uploader = StreamingUploader(self)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "EngineApiClient":
        """Start the connection pool and the upload request thread."""
        if self._session is not None:
            return self
        session = self._injected_session
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.pool_connections,
                pool_maxsize=self.config.pool_maxsize,
            )
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session
        self._executor = self._new_executor()
        LOGGER.debug("Opened client for %s", self.base_url)
        return self

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="engine-api-request")

    def _abandon_request(self, future: "Future[Any]") -> None:
        """Detach a request nobody waits for any more.

        The request thread it occupies is retired without joining it and a
        fresh one takes its place, so neither ``close()`` nor the next upload
        queue up behind it.  Closing the session later drops its connection.
        """
        future.cancel()
        executor = self._executor
        if executor is not None:
            executor.shutdown(wait=False)
            self._executor = self._new_executor()

    def close(self) -> None:
        """Stop the request thread and close the connection pool.

        :raises EngineApiIOError: If the pool could not be shut down.
        """
        session, executor = self._session, self._executor
        self._session = None
        self._executor = None
        try:
            if executor is not None:
                executor.shutdown(wait=True)
            if session is not None:
                session.close()
        except Exception as exc:
            raise EngineApiIOError(f"Failed to close the HTTP client: {exc}") from exc

    def __enter__(self) -> "EngineApiClient":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def last_error(self) -> Optional[ApiError]:
        """The error from the most recent operation, or ``None``."""
        return self._last_error

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _set_last_error(self, error: Optional[ApiError]) -> None:
        self._last_error = error

    def _send(self, method: str, url: str, streaming: bool = False, **kwargs: Any) -> requests.Response:
        """Issue one request, wrapping transport failures in ``EngineApiIOError``."""
        if self._session is None:
            raise EngineApiIOError("The client is not open")
        # uploads wait on the server for as long as it takes to process the data
        timeout = (self.config.timeout, None) if streaming else self.config.timeout
        try:
            return self._session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            LOGGER.error("An error occurred while executing an HTTP request: %s", exc)
            raise EngineApiIOError(str(exc)) from exc

    def _submit(self, method: str, url: str, **kwargs: Any) -> "Future[requests.Response]":
        """Run ``_send`` on the request thread."""
        if self._executor is None:
            raise EngineApiIOError("The client is not open")
        return self._executor.submit(self._send, method, url, **kwargs)

    def _read_json(self, content: str) -> Any:
        if not content or not content.strip():
            return None
        try:
            return json.loads(content)
        except ValueError as exc:
            raise EngineApiIOError(f"Could not parse response content as JSON: {content!r}") from exc

    def _parse_api_error(self, content: str, msg: str) -> ApiError:
        """Parse an error body, falling back to an unknown error carrying ``msg``."""
        if not content or not content.strip():
            return ApiError.unknown(msg)
        try:
            data = json.loads(content)
        except ValueError:
            return ApiError.unknown(msg)
        if not isinstance(data, dict) or ("errorCode" not in data and "message" not in data):
            return ApiError.unknown(msg)
        return ApiError.from_dict(data)

    def _execute(self, method: str, url: str, activity: str, ok_statuses: Iterable[int] = (200,),
                 **kwargs: Any) -> bool:
        """Send a request and report whether the status was one of ``ok_statuses``."""
        response = self._send(method, url, **kwargs)
        if response.status_code in tuple(ok_statuses):
            self._set_last_error(None)
            return True
        content = response.text or ""
        msg = f"Error {activity}. Status code = {response.status_code}, Returned content: {content}"
        LOGGER.error(msg)
        self._set_last_error(self._parse_api_error(content, msg))
        return False

    def _request_document(
        self,
        method: str,
        url: str,
        converter: Optional[Callable[[Any], Any]] = None,
        error_on_404: bool = False,
        **kwargs: Any,
    ) -> ApiResult:
        response = self._send(method, url, **kwargs)
        content = response.text or ""

        # 404 responses carry empty paging documents so still read them
        if response.status_code == 200 or (response.status_code == 404 and not error_on_404):
            data = self._read_json(content)
            if converter is not None:
                data = converter(data if data is not None else {})
            self._set_last_error(None)
            return ApiResult(value=data, status_code=response.status_code)

        msg = (
            f"{method} returned status code {response.status_code} for url {url}. "
            f"Returned content = {content}"
        )
        LOGGER.error(msg)
        self._set_last_error(self._parse_api_error(content, msg))
        return ApiResult(error=self.last_error, status_code=response.status_code)

    def get(self, url: str, converter: Optional[Callable[[Any], Any]] = None,
            error_on_404: bool = False) -> ApiResult:
        """A generic HTTP GET to any URL.

        If the response code is 200, or 404 and ``error_on_404`` is false,
        the content is decoded from JSON and passed through ``converter``.
        A 404 is not considered an error by default: it means the API
        returned an empty document.  This is useful for paging through
        results via the ``next_page`` / ``previous_page`` links of a
        ``Pagination``.

        :param url: The full URL to GET.
        :param converter: Turns the decoded JSON into the result value.
        :param error_on_404: Treat a 404 status code as an error.
        :returns: An ``ApiResult`` with either ``value`` or ``error``.
        """
        return self._request_document("GET", url, converter, error_on_404)

    def post(self, url: str, converter: Optional[Callable[[Any], Any]] = None,
             error_on_404: bool = False) -> ApiResult:
        """A generic HTTP POST without a body; see ``get`` for the semantics."""
        return self._request_document("POST", url, converter, error_on_404)

    def _url(self, *segments: str, params: Optional[Dict[str, str]] = None) -> str:
        url = self.base_url + "".join("/" + encode(s) for s in segments)
        if params:
            url += "?" + urlencode(params)
        return url

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def get_jobs(self) -> Pagination:
        """Get details of all the jobs.

        :returns: A page of job documents; empty if the request failed.
        """
        url = self.base_url + "/jobs"
        LOGGER.debug("GET jobs: %s", url)
        result = self.get(url, Pagination.from_dict)
        return result.value if result.ok else Pagination()

    def get_job(self, job_id: str, error_on_404: bool = False) -> Optional[SingleDocument]:
        """Get the job with the given id.

        :param error_on_404: Record a missing job as an error.
        :returns: A ``SingleDocument`` (``exists`` is false if the job was
            not found), or ``None`` if an error was recorded.
        """
        url = self._url("jobs", job_id)
        LOGGER.debug("GET job: %s", url)
        result = self.get(url, SingleDocument.from_dict, error_on_404)
        return result.value if result.ok else None

    def create_job(self, job_config: Union[JobConfiguration, str]) -> str:
        """Create a new job.

        :param job_config: A ``JobConfiguration`` or its JSON string.
        :returns: The new job's id, or an empty string if there was an error.
        """
        payload = job_config.to_json() if isinstance(job_config, JobConfiguration) else job_config
        url = self.base_url + "/jobs"
        LOGGER.debug("Create job: %s", url)

        response = self._send("POST", url, data=payload.encode("utf-8"), headers=JSON_HEADERS)
        content = response.text or ""

        if response.status_code == 201:
            self._set_last_error(None)
            msg = self._read_json(content) or {}
            if "id" in msg:
                return msg["id"]
            LOGGER.error("Job created but no 'id' field in returned content")
            LOGGER.error("Response Content = %s", content)
        else:
            msg = f"Error creating job status code = {response.status_code}. Returned content: {content}"
            LOGGER.error(msg)
            self._set_last_error(self._parse_api_error(content, msg))
        return ""

    def update_job(self, job_id: str, update_json: str) -> bool:
        """Submit a request to update a job.

        :param update_json: JSON with the fields to update and their new values.
        """
        url = self._url("jobs", job_id, "update")
        LOGGER.debug("PUT update job: %s", url)
        return self._execute("PUT", url, "updating job", data=update_json.encode("utf-8"),
                             headers=JSON_HEADERS)

    def set_job_description(self, job_id: str, description: str) -> bool:
        return self.update_job(job_id, json.dumps({"description": description}))

    def delete_job(self, job_id: str) -> bool:
        """Delete a job.  Returns ``True`` if it existed and was deleted."""
        url = self._url("jobs", job_id)
        LOGGER.debug("DELETE job: %s", url)
        return self._execute("DELETE", url, "deleting job")

    def pause_job(self, job_id: str) -> bool:
        """Pause a job: it still accepts data but does not analyse it."""
        url = self._url("jobs", job_id, "pause")
        LOGGER.debug("Pause job: %s", url)
        return self._execute("POST", url, "pausing job")

    def resume_job(self, job_id: str) -> bool:
        url = self._url("jobs", job_id, "resume")
        LOGGER.debug("Resume job: %s", url)
        return self._execute("POST", url, "resuming job")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, endpoint: str, payload: str, activity: str) -> bool:
        url = f"{self.base_url}/validate/{endpoint}"
        LOGGER.debug("Validate %s %s, at: %s", endpoint, payload, url)
        return self._execute("POST", url, activity, data=payload.encode("utf-8"), headers=JSON_HEADERS)

    def validate_detector(self, detector: Union[Detector, str]) -> bool:
        payload = detector.to_json() if isinstance(detector, Detector) else detector
        return self._validate("detector", payload, "validating detector")

    def validate_transform(self, transform: Union[TransformConfig, str]) -> bool:
        payload = transform.to_json() if isinstance(transform, TransformConfig) else transform
        return self._validate("transform", payload, "validating transform")

    def validate_transforms(self, transforms: Union[Sequence[TransformConfig], str]) -> bool:
        if isinstance(transforms, str):
            payload = transforms
        else:
            payload = json.dumps([t.to_dict() for t in transforms])
        return self._validate("transforms", payload, "validating transforms")

    # ------------------------------------------------------------------
    # Schedulers
    # ------------------------------------------------------------------

    def start_scheduler(self, job_id: str, start: str = "", end: str = "") -> bool:
        """Start the scheduler of a job.

        :param start: Start (inclusive) of the interval to analyse.
        :param end: End (exclusive) of the interval to analyse.
        """
        params = {"start": start, "end": end} if (start or end) else None
        url = self._url("schedulers", job_id, "start", params=params)
        LOGGER.debug("Start scheduler: %s", url)
        return self._execute("POST", url, "starting scheduler")

    def stop_scheduler(self, job_id: str) -> bool:
        url = self._url("schedulers", job_id, "stop")
        LOGGER.debug("Stop scheduler: %s", url)
        return self._execute("POST", url, "stopping scheduler")

    # ------------------------------------------------------------------
    # Data upload
    # ------------------------------------------------------------------

    def _convert_multi_data_post_result(self, content: str) -> MultiDataPostResult:
        """Parse an upload response, recording the first per-job error."""
        data = self._read_json(content)
        result = MultiDataPostResult.from_dict(data if isinstance(data, dict) else {})
        error = result.first_error()
        if error is not None:
            self._set_last_error(error)
        return result

    def chunked_upload(self, job_id: str, stream: BinaryIO, aggregate: bool = False) -> MultiDataPostResult:
        """Read ``stream`` in blocks and upload each block as its own request.

        By default the returned result is the response to the last block.
        Pass ``aggregate=True`` to sum the counts of all blocks instead.
        """
        return self._uploader.chunked_upload(
            self._url("data", job_id), stream, self.config.chunk_size, aggregate
        )

    def streaming_upload(
        self,
        job_ids: Union[str, Sequence[str]],
        stream: BinaryIO,
        compressed: bool = False,
        reset_start: str = "",
        reset_end: str = "",
    ) -> MultiDataPostResult:
        """Stream the whole of ``stream`` to one or more jobs in a single request.

        The stream is closed once it has been consumed.

        :param job_ids: A job id, or a list of job ids to send the same data to.
        :param compressed: Is the data gzip compressed?
        :param reset_start: Start (inclusive) of the time range to reset buckets for.
        :param reset_end: End (inclusive) of the time range to reset buckets for.
        :returns: The per-job processed counts and errors.
        """
        if isinstance(job_ids, str):
            job_ids = [job_ids]
        post_url = f"{self.base_url}/data/{','.join(encode(j) for j in job_ids)}"
        if reset_start or reset_end:
            post_url += "?" + urlencode({"resetStart": reset_start or "", "resetEnd": reset_end or ""})
        return self._uploader.upload_stream(
            stream, post_url, compressed, MultiDataPostResult(), True,
            self._convert_multi_data_post_result,
        )

    def file_upload(
        self,
        job_id: str,
        data_file: Union[str, Path],
        compressed: bool = False,
        reset_start: str = "",
        reset_end: str = "",
    ) -> MultiDataPostResult:
        """Upload the contents of ``data_file``, which must match the job's data format."""
        with open(data_file, "rb") as stream:
            return self.streaming_upload(job_id, stream, compressed, reset_start, reset_end)

    def preview_upload(self, job_id: str, stream: BinaryIO) -> str:
        """Stream data to the preview endpoint and return the preview text."""
        post_url = self._url("preview", job_id)
        return self._uploader.upload_stream(stream, post_url, False, "", False, lambda content: content)

    def flush_job(
        self,
        job_id: str,
        calc_interim: bool = False,
        advance_time: Optional[Union[datetime, int]] = None,
        start: str = "",
        end: str = "",
    ) -> bool:
        """Flush the job so no uploaded data is left waiting in buffers.

        :param calc_interim: Calculate interim results for the selected
            buckets from the partial data uploaded so far.  Without
            ``start`` and ``end`` this covers all available buckets.
        :param advance_time: Finalize up to this time (a datetime or epoch
            milliseconds) and ignore later input with an earlier time.
        :param start: Start (inclusive) of the interim results range.
        :param end: End (exclusive) of the interim results range.
        """
        params = {"calcInterim": _bool(calc_interim), "start": start or "", "end": end or ""}
        if advance_time is not None:
            if isinstance(advance_time, datetime):
                advance_time = int(advance_time.timestamp() * 1000)
            params["advanceTime"] = str(advance_time)
        url = self._url("data", job_id, "flush", params=params)
        LOGGER.debug("Flushing job %s", url)
        return self._execute("POST", url, f"flushing job {job_id}")

    def close_job(self, job_id: str) -> bool:
        """Finish the job after all the data has been uploaded."""
        url = self._url("data", job_id, "close")
        LOGGER.debug("Closing job %s", url)
        return self._execute("POST", url, f"closing job {job_id}", ok_statuses=(200, 202))

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def prepare_get_buckets(self, job_id: str) -> BucketsRequestBuilder:
        return BucketsRequestBuilder(self, job_id)

    def prepare_get_bucket(self, job_id: str, bucket_timestamp: str) -> BucketRequestBuilder:
        return BucketRequestBuilder(self, job_id, bucket_timestamp)

    def prepare_get_records(self, job_id: str) -> RecordsRequestBuilder:
        return RecordsRequestBuilder(self, job_id)

    def prepare_get_influencers(self, job_id: str) -> InfluencersRequestBuilder:
        return InfluencersRequestBuilder(self, job_id)

    def prepare_get_category_definitions(self, job_id: str) -> CategoryDefinitionsRequestBuilder:
        return CategoryDefinitionsRequestBuilder(self, job_id)

    def get_category_definition(self, job_id: str, category_id: str) -> SingleDocument:
        return CategoryDefinitionRequestBuilder(self, job_id, category_id).get()

    def prepare_get_alerts(self, job_id: str) -> AlertRequestBuilder:
        return AlertRequestBuilder(self, job_id)

    # ------------------------------------------------------------------
    # Model snapshots
    # ------------------------------------------------------------------

    def prepare_get_model_snapshots(self, job_id: str) -> ModelSnapshotsRequestBuilder:
        return ModelSnapshotsRequestBuilder(self, job_id)

    def set_model_snapshot_description(self, job_id: str, snapshot_id: str, description: str) -> SingleDocument:
        """Set the description of a model snapshot and return the updated snapshot."""
        url = self._url("modelsnapshots", job_id, snapshot_id, "description")
        LOGGER.debug("PUT update ModelSnapshot description: %s", url)
        payload = json.dumps({"description": description}).encode("utf-8")
        result = self._request_document("PUT", url, SingleDocument.from_dict, True,
                                        data=payload, headers=JSON_HEADERS)
        return result.value if result.ok else SingleDocument()

    def _revert_model_snapshot(self, job_id: str, selector: Dict[str, str],
                               delete_intervening_results: bool) -> SingleDocument:
        params = dict(selector)
        params["deleteInterveningResults"] = _bool(delete_intervening_results)
        url = self._url("modelsnapshots", job_id, "revert", params=params)
        LOGGER.debug("POST revert ModelSnapshot: %s", url)
        result = self._request_document("POST", url, SingleDocument.from_dict, True)
        return result.value if result.ok else SingleDocument()

    def revert_model_snapshot_by_description(self, job_id: str, description: str,
                                             delete_intervening_results: bool = False) -> SingleDocument:
        return self._revert_model_snapshot(job_id, {"description": description}, delete_intervening_results)

    def revert_model_snapshot_by_time(self, job_id: str, time: str,
                                      delete_intervening_results: bool = False) -> SingleDocument:
        """Revert to the snapshot at ``time``, or the most recent one before it."""
        return self._revert_model_snapshot(job_id, {"time": time}, delete_intervening_results)

    def revert_model_snapshot_by_id(self, job_id: str, snapshot_id: str,
                                    delete_intervening_results: bool = False) -> SingleDocument:
        return self._revert_model_snapshot(job_id, {"snapshotId": snapshot_id}, delete_intervening_results)

    def delete_model_snapshot(self, job_id: str, snapshot_id: str) -> bool:
        url = self._url("modelsnapshots", job_id, snapshot_id)
        LOGGER.debug("DELETE ModelSnapshot: %s", url)
        return self._execute("DELETE", url, "deleting snapshot")

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def _get_string_content(self, url: str) -> str:
        response = self._send("GET", url)
        content = response.text or ""
        if response.status_code == 200:
            self._set_last_error(None)
            return content
        msg = f"Error reading string content. Status code = {response.status_code}. Returned content: {content}"
        LOGGER.error(msg)
        self._set_last_error(self._parse_api_error(content, msg))
        return ""

    def tail_log(self, job_id: str, line_count: int = 10, logfile_name: Optional[str] = None) -> str:
        """Return the last ``line_count`` lines of a job's log file.

        :param logfile_name: Name of the log file without the ``.log``
            suffix; defaults to the job's analysis process log.
        """
        segments = ["logs", job_id] + ([logfile_name] if logfile_name else []) + ["tail"]
        url = self._url(*segments, params={"lines": str(line_count)})
        LOGGER.debug("GET tail log %s", url)
        return self._get_string_content(url)

    def download_log(self, job_id: str, logfile_name: str) -> str:
        """Download one log file of a job as text."""
        url = self._url("logs", job_id, logfile_name)
        LOGGER.debug("GET log file %s", url)
        return self._get_string_content(url)

    def _download_zip(self, url: str) -> Optional[zipfile.ZipFile]:
        LOGGER.debug("GET download %s", url)
        response = self._send("GET", url)
        if response.status_code == 200:
            self._set_last_error(None)
            return zipfile.ZipFile(io.BytesIO(response.content))
        content = response.text or ""
        msg = f"Error downloading {url}. Status code = {response.status_code}. Returned content: {content}"
        LOGGER.error(msg)
        self._set_last_error(self._parse_api_error(content, msg))
        return None

    def download_all_logs(self, job_id: str) -> Optional[zipfile.ZipFile]:
        """Download all log files of a job as a zip archive."""
        return self._download_zip(self._url("logs", job_id))

    def download_elasticsearch_logs(self) -> Optional[zipfile.ZipFile]:
        return self._download_zip(self._url("logs", "elasticsearch"))

    def download_engine_logs(self) -> Optional[zipfile.ZipFile]:
        return self._download_zip(self._url("logs", "engine_api"))

    def download_support_bundle(self) -> Optional[zipfile.ZipFile]:
        return self._download_zip(self._url("support"))
