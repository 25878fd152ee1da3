"""
Result Queries
==============

Fluent builders for the results endpoints.  A builder is obtained from the
client (``client.prepare_get_buckets(job_id)`` and friends), configured by
chaining setter calls and executed with ``get()``::

    page = (client.prepare_get_records("farequote")
            .start("2014-05-20T00:00:00Z")
            .anomaly_score_threshold(80.0)
            .sort_field("normalizedProbability")
            .descending(True)
            .take(50)
            .get())

Query parameters are sent in the order they were first set.  Setting the
same parameter twice keeps the latest value.  When the server returns no
document (an error or an empty body) ``get()`` returns an empty
``Pagination`` or ``SingleDocument`` and the error is available from the
client's ``last_error``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Union
from urllib.parse import quote, urlencode

from .data import Pagination, SingleDocument

if TYPE_CHECKING:
    from .client import EngineApiClient

LOGGER = logging.getLogger(__name__)

START = "start"
END = "end"
SORT = "sort"
DESCENDING = "desc"
SKIP = "skip"
TAKE = "take"
INCLUDE_INTERIM = "includeInterim"
EXPAND = "expand"
DESCRIPTION = "description"

ANOMALY_SCORE = "anomalyScore"
MAX_NORMALIZED_PROBABILITY = "maxNormalizedProbability"
NORMALIZED_PROBABILITY = "normalizedProbability"

ALERT_TIMEOUT = "timeout"
ALERT_SCORE = "score"
ALERT_PROBABILITY = "probability"
ALERT_ON = "alertOn"
ALERT_ON_BUCKET = "bucket"
ALERT_ON_INFLUENCER = "influencer"
ALERT_ON_BUCKET_INFLUENCER = "bucketinfluencer"


def _bool(value: bool) -> str:
    return "true" if value else "false"


class HttpGetRequester:
    """Issues the GET for a builder and substitutes empty documents."""

    def __init__(self, client: "EngineApiClient") -> None:
        self._client = client

    def get_page(self, url: str) -> Pagination:
        LOGGER.debug("GET %s", url)
        result = self._client.get(url, Pagination.from_dict)
        if not result.ok or result.value is None:
            return Pagination()
        return result.value

    def get_single_document(self, url: str) -> SingleDocument:
        LOGGER.debug("GET %s", url)
        result = self._client.get(url, SingleDocument.from_dict)
        if not result.ok or result.value is None:
            return SingleDocument()
        return result.value

    def get(self, url: str) -> Optional[Dict[str, Any]]:
        """GET a plain document; a 404 is treated as an error."""
        LOGGER.debug("GET %s", url)
        result = self._client.get(url, error_on_404=True)
        return result.value if result.ok else None


class BaseJobRequestBuilder:
    """Holds the client, the job id and the ordered query parameters."""

    def __init__(self, client: "EngineApiClient", job_id: str) -> None:
        self._client = client
        self._job_id = job_id
        self._params: Dict[str, str] = {}

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def params(self) -> Dict[str, str]:
        return dict(self._params)

    def _set(self, key: str, value: str) -> "BaseJobRequestBuilder":
        self._params[key] = value
        return self

    def _requester(self) -> HttpGetRequester:
        return HttpGetRequester(self._client)

    def _url(self, *segments: str) -> str:
        url = self._client.base_url + "".join("/" + quote(str(s), safe="") for s in segments)
        if self._params:
            url += "?" + urlencode(self._params)
        return url

    def url(self) -> str:
        """The full URL ``get()`` would request."""
        raise NotImplementedError


class PagingMixin:
    def skip(self, value: int):
        return self._set(SKIP, str(int(value)))

    def take(self, value: int):
        return self._set(TAKE, str(int(value)))


class DateRangeMixin:
    """``start`` and ``end`` accept epoch seconds or an ISO 8601 string."""

    def start(self, value: Union[int, str]):
        return self._set(START, str(value))

    def end(self, value: Union[int, str]):
        return self._set(END, str(value))


class SortMixin:
    def sort_field(self, field: str):
        return self._set(SORT, field)

    def descending(self, descending: bool):
        return self._set(DESCENDING, _bool(descending))


class InterimMixin:
    def include_interim(self, include: bool):
        return self._set(INCLUDE_INTERIM, _bool(include))


class BucketsRequestBuilder(PagingMixin, DateRangeMixin, InterimMixin, BaseJobRequestBuilder):
    """Query a page of buckets.  GET ``/results/{job}/buckets``."""

    def expand(self, should_expand: bool) -> "BucketsRequestBuilder":
        """Include each bucket's anomaly records in the response."""
        return self._set(EXPAND, _bool(should_expand))

    def anomaly_score_threshold(self, value: float) -> "BucketsRequestBuilder":
        return self._set(ANOMALY_SCORE, str(float(value)))

    def normalized_probability_threshold(self, value: float) -> "BucketsRequestBuilder":
        return self._set(MAX_NORMALIZED_PROBABILITY, str(float(value)))

    def url(self) -> str:
        return self._url("results", self._job_id, "buckets")

    def get(self) -> Pagination:
        return self._requester().get_page(self.url())


class BucketRequestBuilder(InterimMixin, BaseJobRequestBuilder):
    """Get a single bucket by its timestamp."""

    def __init__(self, client: "EngineApiClient", job_id: str, bucket_timestamp: str) -> None:
        super().__init__(client, job_id)
        self._bucket_timestamp = bucket_timestamp

    def expand(self, should_expand: bool) -> "BucketRequestBuilder":
        return self._set(EXPAND, _bool(should_expand))

    def url(self) -> str:
        return self._url("results", self._job_id, "buckets", self._bucket_timestamp)

    def get(self) -> SingleDocument:
        return self._requester().get_single_document(self.url())


class RecordsRequestBuilder(PagingMixin, DateRangeMixin, SortMixin, InterimMixin, BaseJobRequestBuilder):
    """Query a page of anomaly records.  GET ``/results/{job}/records``."""

    def anomaly_score_threshold(self, value: float) -> "RecordsRequestBuilder":
        return self._set(ANOMALY_SCORE, str(float(value)))

    def normalized_probability_threshold(self, value: float) -> "RecordsRequestBuilder":
        return self._set(NORMALIZED_PROBABILITY, str(float(value)))

    def url(self) -> str:
        return self._url("results", self._job_id, "records")

    def get(self) -> Pagination:
        return self._requester().get_page(self.url())


class InfluencersRequestBuilder(PagingMixin, DateRangeMixin, SortMixin, InterimMixin, BaseJobRequestBuilder):
    def anomaly_score_threshold(self, value: float) -> "InfluencersRequestBuilder":
        return self._set(ANOMALY_SCORE, str(float(value)))

    def url(self) -> str:
        return self._url("results", self._job_id, "influencers")

    def get(self) -> Pagination:
        return self._requester().get_page(self.url())


class CategoryDefinitionsRequestBuilder(PagingMixin, BaseJobRequestBuilder):
    def url(self) -> str:
        return self._url("results", self._job_id, "categorydefinitions")

    def get(self) -> Pagination:
        return self._requester().get_page(self.url())


class CategoryDefinitionRequestBuilder(BaseJobRequestBuilder):
    def __init__(self, client: "EngineApiClient", job_id: str, category_id: str) -> None:
        super().__init__(client, job_id)
        self._category_id = category_id

    def url(self) -> str:
        return self._url("results", self._job_id, "categorydefinitions", self._category_id)

    def get(self) -> SingleDocument:
        return self._requester().get_single_document(self.url())


class ModelSnapshotsRequestBuilder(PagingMixin, DateRangeMixin, SortMixin, BaseJobRequestBuilder):
    """Query a page of model snapshots.  GET ``/modelsnapshots/{job}``."""

    def description(self, description: str) -> "ModelSnapshotsRequestBuilder":
        return self._set(DESCRIPTION, description)

    def url(self) -> str:
        return self._url("modelsnapshots", self._job_id)

    def get(self) -> Pagination:
        return self._requester().get_page(self.url())


class AlertRequestBuilder(BaseJobRequestBuilder):
    """Long poll for an alert on a job.

    The request blocks on the server until an alert fires or the timeout
    expires.  Alert types accumulate: calling ``alert_on_buckets()`` and
    then ``alert_on_influencers()`` subscribes to both.
    """

    def timeout(self, seconds: int) -> "AlertRequestBuilder":
        return self._set(ALERT_TIMEOUT, str(int(seconds)))

    def score(self, threshold: float) -> "AlertRequestBuilder":
        return self._set(ALERT_SCORE, str(float(threshold)))

    def probability(self, threshold: float) -> "AlertRequestBuilder":
        return self._set(ALERT_PROBABILITY, str(float(threshold)))

    def include_interim(self) -> "AlertRequestBuilder":
        return self._set(INCLUDE_INTERIM, "true")

    def alert_on_buckets(self) -> "AlertRequestBuilder":
        return self._add_alert_type(ALERT_ON_BUCKET)

    def alert_on_influencers(self) -> "AlertRequestBuilder":
        return self._add_alert_type(ALERT_ON_INFLUENCER)

    def alert_on_bucket_influencers(self) -> "AlertRequestBuilder":
        return self._add_alert_type(ALERT_ON_BUCKET_INFLUENCER)

    def _add_alert_type(self, alert_type: str) -> "AlertRequestBuilder":
        if ALERT_ON in self._params:
            alert_type = self._params[ALERT_ON] + "," + alert_type
        return self._set(ALERT_ON, alert_type)

    def url(self) -> str:
        return self._url("alerts_longpoll", self._job_id)

    def get(self) -> Optional[Dict[str, Any]]:
        """Wait for the alert.

        :returns: The alert document, or ``None`` if an error was recorded.
        """
        return self._requester().get(self.url())
