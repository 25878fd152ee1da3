"""
Engine API Client Package
=========================

This package is a Python client for the Engine RESTful API.  It can create
and manage anomaly detection jobs, upload data to them, either in blocks
or as a single streamed request, and read back results, alerts, model
snapshots and log files.

Note: importing the package does not open any connections.  Create an
``EngineApiClient`` (ideally in a ``with`` block) to talk to the server,
or use the ``stream-file`` command line tool defined in
``stream_file.py`` to upload a file.
"""

from .client import EngineApiClient, EngineApiIOError
from .config import Config
from .data import (
    Acknowledgement,
    ApiError,
    ApiResult,
    DataCounts,
    DataPostResponse,
    MultiDataPostResult,
    Pagination,
    SingleDocument,
)
from .error_codes import ErrorCodes
from .job_config import (
    AnalysisConfig,
    AnalysisLimits,
    DataDescription,
    Detector,
    JobConfiguration,
    ModelDebugConfig,
    TransformConfig,
)

__version__ = "1.0.0"

__all__ = [
    "EngineApiClient",
    "EngineApiIOError",
    "Config",
    "ErrorCodes",
    "ApiError",
    "ApiResult",
    "Acknowledgement",
    "DataCounts",
    "DataPostResponse",
    "MultiDataPostResult",
    "Pagination",
    "SingleDocument",
    "AnalysisConfig",
    "AnalysisLimits",
    "DataDescription",
    "Detector",
    "JobConfiguration",
    "ModelDebugConfig",
    "TransformConfig",
]
