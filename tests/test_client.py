"""
Tests for the job, scheduler, snapshot and log operations of the client.
"""

import io
import json
import zipfile
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import BASE_URL, FakeResponse
from engine_api_client import (
    AnalysisConfig,
    Config,
    DataDescription,
    Detector,
    EngineApiClient,
    EngineApiIOError,
    ErrorCodes,
    JobConfiguration,
    Pagination,
    SingleDocument,
    TransformConfig,
)


class TestLifecycle:
    def test_base_url_trailing_slash_is_stripped(self):
        assert EngineApiClient(BASE_URL + "/").base_url == BASE_URL

    def test_base_url_argument_does_not_modify_the_config(self):
        cfg = Config()
        engine = EngineApiClient("http://engine:8080/engine/v2", config=cfg)
        assert engine.base_url == "http://engine:8080/engine/v2"
        assert cfg.base_url == "http://localhost:8080/engine/v2"

    def test_context_manager_closes_session(self, session):
        with EngineApiClient(BASE_URL, session=session) as engine:
            assert engine.get_jobs() == Pagination()
        assert session.closed

    def test_closed_client_raises(self, session):
        engine = EngineApiClient(BASE_URL, session=session)
        engine.open()
        engine.close()
        with pytest.raises(EngineApiIOError):
            engine.get_jobs()

    def test_close_is_idempotent(self, client):
        client.close()
        client.close()

    def test_close_failure_is_wrapped(self, session):
        session.close = MagicMock(side_effect=RuntimeError("boom"))
        engine = EngineApiClient(BASE_URL, session=session).open()
        with pytest.raises(EngineApiIOError):
            engine.close()

    def test_open_builds_pooled_session(self):
        cfg = Config(pool_connections=2, pool_maxsize=8)
        with patch("engine_api_client.client.requests.Session") as session_cls:
            engine = EngineApiClient(config=cfg).open()
            session = session_cls.return_value
            assert session.mount.call_count == 2
            adapter = session.mount.call_args_list[0].args[1]
            assert adapter._pool_connections == 2
            assert adapter._pool_maxsize == 8
            engine.close()
            session.close.assert_called_once()

    def test_transport_error_is_wrapped(self, client, session):
        session.queue(requests.Timeout("timed out"))
        with pytest.raises(EngineApiIOError) as excinfo:
            client.get_jobs()
        assert isinstance(excinfo.value.__cause__, requests.Timeout)


class TestGenericGet:
    def test_success_is_converted(self, client, session):
        session.queue(FakeResponse(200, {"hitCount": 1, "documents": [{"id": "a"}]}))
        result = client.get(f"{BASE_URL}/jobs", Pagination.from_dict)
        assert result.ok
        assert result.status_code == 200
        assert result.value.documents == [{"id": "a"}]

    def test_404_is_an_empty_document_by_default(self, client, session):
        session.queue(FakeResponse(404, {"hitCount": 0, "documents": []}))
        result = client.get(f"{BASE_URL}/results/farequote/buckets", Pagination.from_dict)
        assert result.ok
        assert result.status_code == 404
        assert client.last_error is None

    def test_404_is_an_error_when_requested(self, client, session):
        session.queue(FakeResponse(404, {"errorCode": 20101, "message": "No job"}))
        result = client.get(f"{BASE_URL}/jobs/missing", error_on_404=True)
        assert not result.ok
        assert result.error.error_code == ErrorCodes.MISSING_JOB_ERROR
        assert client.last_error == result.error

    def test_unparseable_error_body_becomes_unknown(self, client, session):
        session.queue(FakeResponse(500, "Internal Server Error"))
        result = client.get(f"{BASE_URL}/jobs")
        assert result.error.error_code == ErrorCodes.UNKNOWN_ERROR
        assert "500" in result.error.message

    def test_malformed_success_body_raises(self, client, session):
        session.queue(FakeResponse(200, "{not json"))
        with pytest.raises(EngineApiIOError):
            client.get(f"{BASE_URL}/jobs")

    def test_post_uses_post(self, client, session):
        session.queue(FakeResponse(200, {"acknowledgement": True}))
        result = client.post(f"{BASE_URL}/jobs/farequote/pause")
        assert session.calls[0].method == "POST"
        assert result.value == {"acknowledgement": True}


class TestJobs:
    @pytest.fixture
    def job_config(self):
        return JobConfiguration(
            id="farequote",
            description="Farequote example",
            analysis_config=AnalysisConfig(
                bucket_span=3600,
                detectors=[Detector(function="metric", field_name="responsetime", by_field_name="airline")],
            ),
            data_description=DataDescription(format="delimited", time_field="time",
                                             time_format="yyyy-MM-dd HH:mm:ssX"),
        )

    def test_create_job_returns_id(self, client, session, job_config):
        session.queue(FakeResponse(201, {"id": "farequote"}))

        assert client.create_job(job_config) == "farequote"

        call = session.calls[0]
        assert call.method == "POST"
        assert call.url == f"{BASE_URL}/jobs"
        assert call.headers["Content-Type"] == "application/json"
        sent = json.loads(call.body)
        assert sent["id"] == "farequote"
        assert sent["analysisConfig"]["detectors"][0]["byFieldName"] == "airline"
        assert sent["dataDescription"]["format"] == "DELIMITED"

    def test_create_job_accepts_json(self, client, session):
        session.queue(FakeResponse(201, {"id": "generated-id"}))
        assert client.create_job('{"analysisConfig": {"detectors": []}}') == "generated-id"

    def test_create_job_error(self, client, session, job_config):
        session.queue(FakeResponse(400, {"errorCode": 10110, "message": "Job id taken"}))
        assert client.create_job(job_config) == ""
        assert client.last_error.error_code == ErrorCodes.JOB_ID_TAKEN

    def test_create_job_without_id_in_response(self, client, session, job_config):
        session.queue(FakeResponse(201, {"created": True}))
        assert client.create_job(job_config) == ""
        assert client.last_error is None

    def test_get_job_not_found(self, client, session):
        session.queue(FakeResponse(404, {"exists": False, "type": "job"}))
        doc = client.get_job("missing")
        assert doc == SingleDocument(exists=False, type="job")
        assert client.last_error is None

    def test_get_job_not_found_is_error(self, client, session):
        session.queue(FakeResponse(404, {"errorCode": 20101, "message": "No job"}))
        assert client.get_job("missing", error_on_404=True) is None
        assert client.last_error.error_code == ErrorCodes.MISSING_JOB_ERROR

    def test_get_job_found(self, client, session):
        session.queue(FakeResponse(200, {"exists": True, "type": "job", "document": {"id": "farequote"}}))
        doc = client.get_job("farequote")
        assert doc.exists
        assert doc.document["id"] == "farequote"
        assert session.calls[0].url == f"{BASE_URL}/jobs/farequote"

    def test_get_jobs_error_returns_empty_page(self, client, session):
        session.queue(FakeResponse(500, ""))
        assert client.get_jobs() == Pagination()
        assert client.last_error.error_code == ErrorCodes.UNKNOWN_ERROR

    def test_update_job_uses_put(self, client, session):
        session.queue(FakeResponse(200, {"acknowledgement": True}))
        assert client.set_job_description("farequote", "new description")
        call = session.calls[0]
        assert call.method == "PUT"
        assert call.url == f"{BASE_URL}/jobs/farequote/update"
        assert json.loads(call.body) == {"description": "new description"}

    @pytest.mark.parametrize("operation, method, path", [
        ("delete_job", "DELETE", "/jobs/farequote"),
        ("pause_job", "POST", "/jobs/farequote/pause"),
        ("resume_job", "POST", "/jobs/farequote/resume"),
        ("stop_scheduler", "POST", "/schedulers/farequote/stop"),
    ])
    def test_simple_job_operations(self, client, session, operation, method, path):
        session.queue(FakeResponse(200, {"acknowledgement": True}))
        assert getattr(client, operation)("farequote") is True
        assert session.calls[0].method == method
        assert session.calls[0].url == BASE_URL + path

    def test_failed_operation_records_error(self, client, session):
        session.queue(FakeResponse(400, {"errorCode": 60123, "message": "Cannot pause"}))
        assert client.pause_job("farequote") is False
        assert client.last_error.error_code == ErrorCodes.CANNOT_PAUSE_JOB

    def test_success_clears_previous_error(self, client, session):
        session.queue(FakeResponse(500, ""), FakeResponse(200, ""))
        client.delete_job("farequote")
        assert client.last_error is not None
        client.delete_job("farequote")
        assert client.last_error is None

    def test_errors_are_recorded_through_the_setter(self, client, session):
        session.queue(FakeResponse(400, {"errorCode": 60124, "message": "Cannot resume"}), FakeResponse(200, ""))
        original = EngineApiClient._set_last_error
        with patch.object(EngineApiClient, "_set_last_error", autospec=True, side_effect=original) as setter:
            client.resume_job("farequote")
            client.resume_job("farequote")
        recorded = [call.args[1] for call in setter.call_args_list]
        assert recorded[0].error_code == ErrorCodes.CANNOT_RESUME_JOB
        assert recorded[1] is None
        assert client.last_error is None

    def test_job_id_is_encoded(self, client, session):
        client.delete_job("my job/1")
        assert session.calls[0].url == f"{BASE_URL}/jobs/my%20job%2F1"


class TestSchedulers:
    def test_start_without_range(self, client, session):
        assert client.start_scheduler("farequote")
        assert session.calls[0].url == f"{BASE_URL}/schedulers/farequote/start"

    def test_start_with_range(self, client, session):
        client.start_scheduler("farequote", start="2016-01-01T00:00:00Z", end="now")
        assert session.calls[0].url == (
            f"{BASE_URL}/schedulers/farequote/start?start=2016-01-01T00%3A00%3A00Z&end=now"
        )


class TestValidation:
    def test_valid_detector(self, client, session):
        session.queue(FakeResponse(200, {"acknowledgement": True}))
        assert client.validate_detector(Detector(function="count"))
        assert session.calls[0].url == f"{BASE_URL}/validate/detector"
        assert json.loads(session.calls[0].body) == {"function": "count"}

    def test_invalid_detector_records_error(self, client, session):
        session.queue(FakeResponse(400, {"errorCode": 10105, "message": "Unknown function 'foo'"}))
        assert client.validate_detector('{"function": "foo"}') is False
        assert client.last_error.error_code == ErrorCodes.UNKNOWN_FUNCTION

    def test_validate_transforms_sends_list(self, client, session):
        transforms = [TransformConfig("concat", inputs=["a", "b"], outputs=["ab"])]
        assert client.validate_transforms(transforms)
        assert session.calls[0].url == f"{BASE_URL}/validate/transforms"
        assert json.loads(session.calls[0].body) == [
            {"transform": "concat", "inputs": ["a", "b"], "outputs": ["ab"]}
        ]

    def test_validate_transform(self, client, session):
        assert client.validate_transform(TransformConfig("domain_split", inputs=["host"]))
        assert session.calls[0].url == f"{BASE_URL}/validate/transform"


class TestFlushAndClose:
    def test_flush_default_url(self, client, session):
        assert client.flush_job("farequote")
        assert session.calls[0].url == f"{BASE_URL}/data/farequote/flush?calcInterim=false&start=&end="

    def test_flush_with_interim_range_and_advance_time(self, client, session):
        advance = datetime(2016, 1, 1, tzinfo=timezone.utc)
        client.flush_job("farequote", calc_interim=True, advance_time=advance, start="1", end="2")
        assert session.calls[0].url == (
            f"{BASE_URL}/data/farequote/flush?calcInterim=true&start=1&end=2&advanceTime=1451606400000"
        )

    def test_close_job_accepts_202(self, client, session):
        session.queue(FakeResponse(202, ""))
        assert client.close_job("farequote")
        assert session.calls[0].url == f"{BASE_URL}/data/farequote/close"

    def test_close_job_failure(self, client, session):
        session.queue(FakeResponse(404, {"errorCode": 20101, "message": "No job"}))
        assert client.close_job("missing") is False
        assert client.last_error.error_code == ErrorCodes.MISSING_JOB_ERROR


class TestModelSnapshots:
    def test_revert_by_time(self, client, session):
        session.queue(FakeResponse(200, {"exists": True, "type": "modelSnapshot", "document": {"snapshotId": "1"}}))
        doc = client.revert_model_snapshot_by_time("farequote", "1400000000", delete_intervening_results=True)
        assert doc.exists
        assert session.calls[0].method == "POST"
        assert session.calls[0].url == (
            f"{BASE_URL}/modelsnapshots/farequote/revert?time=1400000000&deleteInterveningResults=true"
        )

    def test_revert_by_description_and_id(self, client, session):
        client.revert_model_snapshot_by_description("farequote", "before upgrade")
        client.revert_model_snapshot_by_id("farequote", "42")
        assert session.calls[0].url.endswith("revert?description=before+upgrade&deleteInterveningResults=false")
        assert session.calls[1].url.endswith("revert?snapshotId=42&deleteInterveningResults=false")

    def test_revert_error_returns_empty_document(self, client, session):
        session.queue(FakeResponse(404, {"errorCode": 60119, "message": "No such snapshot"}))
        assert client.revert_model_snapshot_by_id("farequote", "1") == SingleDocument()
        assert client.last_error.error_code == ErrorCodes.NO_SUCH_MODEL_SNAPSHOT

    def test_set_description(self, client, session):
        session.queue(FakeResponse(200, {"exists": True, "document": {"description": "new"}}))
        doc = client.set_model_snapshot_description("farequote", "1", "new")
        assert doc.document == {"description": "new"}
        assert session.calls[0].method == "PUT"
        assert session.calls[0].url == f"{BASE_URL}/modelsnapshots/farequote/1/description"

    def test_delete_snapshot(self, client, session):
        assert client.delete_model_snapshot("farequote", "1")
        assert session.calls[0].method == "DELETE"
        assert session.calls[0].url == f"{BASE_URL}/modelsnapshots/farequote/1"


class TestLogs:
    def test_tail_log(self, client, session):
        session.queue(FakeResponse(200, "line 1\nline 2\n"))
        assert client.tail_log("farequote", 2) == "line 1\nline 2\n"
        assert session.calls[0].url == f"{BASE_URL}/logs/farequote/tail?lines=2"

    def test_tail_named_log(self, client, session):
        client.tail_log("farequote", logfile_name="engine_api")
        assert session.calls[0].url == f"{BASE_URL}/logs/farequote/engine_api/tail?lines=10"

    def test_download_log_error(self, client, session):
        session.queue(FakeResponse(404, {"errorCode": 50102, "message": "Missing log file"}))
        assert client.download_log("farequote", "nope") == ""
        assert client.last_error.error_code == ErrorCodes.MISSING_LOG_FILE

    def test_download_all_logs_returns_zip(self, client, session):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("farequote/autodetect.log", "started")
        session.queue(FakeResponse(200, content=buffer.getvalue()))

        archive = client.download_all_logs("farequote")

        assert archive.namelist() == ["farequote/autodetect.log"]
        assert session.calls[0].url == f"{BASE_URL}/logs/farequote"

    @pytest.mark.parametrize("operation, path", [
        ("download_elasticsearch_logs", "/logs/elasticsearch"),
        ("download_engine_logs", "/logs/engine_api"),
        ("download_support_bundle", "/support"),
    ])
    def test_zip_download_errors(self, client, session, operation, path):
        session.queue(FakeResponse(500, {"errorCode": 70101, "message": "Bundle failed"}))
        assert getattr(client, operation)() is None
        assert session.calls[0].url == BASE_URL + path
        assert client.last_error.error_code == ErrorCodes.SUPPORT_BUNDLE_EXECUTION_ERROR
