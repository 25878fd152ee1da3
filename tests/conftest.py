import json
from types import SimpleNamespace

import pytest

from engine_api_client import EngineApiClient

BASE_URL = "http://localhost:8080/engine/v2"


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code=200, body=None, content=None):
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        self.status_code = status_code
        self.text = body or ""
        self.content = content if content is not None else self.text.encode("utf-8")


class FakeSession:
    """Records requests and answers them from a queue of responses.

    Streaming bodies (generators) are drained before answering, like a
    server that reads the whole request.  Set ``handler`` to take full
    control of a request instead.
    """

    def __init__(self):
        self.calls = []
        self.responses = []
        self.handler = None
        self.closed = False

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, timeout=None, data=None, headers=None):
        call = SimpleNamespace(method=method, url=url, timeout=timeout, headers=headers or {}, body=None)
        self.calls.append(call)
        if self.handler is not None:
            return self.handler(call, data)
        if data is not None and not isinstance(data, (bytes, str)):
            data = b"".join(data)
        call.body = data
        response = self.responses.pop(0) if self.responses else FakeResponse(200, "")
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


@pytest.fixture
def session():
    """Fake HTTP session injected into the client."""
    return FakeSession()


@pytest.fixture
def client(session):
    """An open client talking to the fake session."""
    engine = EngineApiClient(BASE_URL, session=session)
    engine.open()
    yield engine
    engine.close()


@pytest.fixture
def upload_summary():
    """A successful upload response for job ``farequote``."""
    return {
        "responses": [
            {
                "jobId": "farequote",
                "uploadSummary": {
                    "processedRecordCount": 10,
                    "processedFieldCount": 30,
                    "inputBytes": 512,
                    "inputRecordCount": 10,
                    "inputFieldCount": 40,
                    "invalidDateCount": 0,
                    "missingFieldCount": 0,
                    "outOfOrderTimeStampCount": 0,
                    "failedTransformCount": 0,
                    "excludedRecordCount": 0,
                    "latestRecordTimeStamp": "2014-06-27T00:00:00.000+0000",
                },
            }
        ]
    }
