"""
Error Codes
===========

Static error codes returned by the Engine API alongside an error message.
The codes are grouped in the following way:

* ``10XXX`` – job creation and configuration
* ``20XXX`` – data store errors
* ``30XXX`` – data upload errors
* ``40XXX`` – native process errors
* ``50XXX`` – reading log files
* ``60XXX`` – errors from the REST API itself
* ``70XXX`` – support bundle generation
"""

from __future__ import annotations

import logging
from enum import IntEnum

LOGGER = logging.getLogger(__name__)


class ErrorCodes(IntEnum):
    """Numeric error codes carried in the ``errorCode`` field of an error."""

    # Unknown errors, typically caused by internal server errors
    UNKNOWN_ERROR = 0

    JOB_CONFIG_PARSE_ERROR = 10101
    JOB_CONFIG_UNKNOWN_FIELD_ERROR = 10102
    UNKNOWN_JOB_REFERENCE = 10103
    INVALID_VALUE = 10104
    UNKNOWN_FUNCTION = 10105
    INVALID_FIELD_SELECTION = 10106
    INCOMPLETE_CONFIGURATION = 10107
    INVALID_DATE_FORMAT = 10108
    LICENSE_VIOLATION = 10109
    JOB_ID_TAKEN = 10110
    PROHIBITIED_CHARACTER_IN_JOB_ID = 10111
    JOB_ID_TOO_LONG = 10112
    PROHIBITIED_CHARACTER_IN_FIELD_NAME = 10113
    INVALID_FUNCTION = 10114
    INVALID_UPDATE_KEY = 10115
    DETECTOR_PARSE_ERROR = 10116
    DETECTOR_UNKNOWN_FIELD_ERROR = 10117
    ENCRYPTION_FAILURE_ERROR = 10118
    INVALID_EXCLUDEFREQUENT_SETTING = 10119

    UNKNOWN_TRANSFORM = 10201
    TRANSFORM_INVALID_INPUT_COUNT = 10202
    TRANSFORM_OUTPUTS_UNUSED = 10203
    TRANSFORM_HAS_CIRCULAR_DEPENDENCY = 10204
    DUPLICATED_TRANSFORM_OUTPUT_NAME = 10205
    TRANSFORM_INVALID_ARGUMENT_COUNT = 10206
    DATA_FORMAT_IS_SINGLE_LINE_BUT_NO_TRANSFORMS = 10207
    TRANSFORM_REQUIRES_CONDITION = 10208
    UNKNOWN_OPERATOR = 10209
    CONDITION_INVALID_ARGUMENT = 10210
    TRANSFORM_INVALID_OUTPUT_COUNT = 10211
    TRANSFORM_INPUTS_CANNOT_BE_EMPTY_STRINGS = 10212
    TRANSFORM_OUTPUTS_CANNOT_BE_EMPTY_STRINGS = 10213
    TRANSFORM_INVALID_ARGUMENT = 10214
    TRANSFORM_PARSE_ERROR = 10215
    TRANSFORM_UNKNOWN_FIELD_ERROR = 10216

    SCHEDULER_UNKNOWN_DATASOURCE = 10301
    SCHEDULER_FIELD_NOT_SUPPORTED_FOR_DATASOURCE = 10302
    SCHEDULER_INVALID_OPTION_VALUE = 10303
    SCHEDULER_REQUIRES_BUCKET_SPAN = 10304
    SCHEDULER_ELASTICSEARCH_DOES_NOT_SUPPORT_LATENCY = 10305
    SCHEDULER_AGGREGATIONS_REQUIRES_SUMMARY_COUNT_FIELD = 10306
    SCHEDULER_ELASTICSEARCH_REQUIRES_DATAFORMAT_ELASTICSEARCH = 10307
    SCHEDULER_INCOMPLETE_CREDENTIALS = 10308
    SCHEDULER_MULTIPLE_PASSWORDS = 10309

    DATA_STORE_ERROR = 20001
    MISSING_JOB_ERROR = 20101

    DATA_ERROR = 30001
    MISSING_FIELD = 30101
    UNCOMPRESSED_DATA = 30102
    TOO_MANY_BAD_DATES = 30103
    TOO_MANY_BAD_RECORDS = 30104
    TOO_MANY_OUT_OF_ORDER_RECORDS = 30105
    TOO_MANY_JOBS_RUNNING_CONCURRENTLY = 30106
    MALFORMED_JSON = 30107

    NATIVE_PROCESS_ERROR = 40001
    NATIVE_PROCESS_START_ERROR = 40101
    NATIVE_PROCESS_WRITE_ERROR = 40102
    NATIVE_PROCESS_CONCURRENT_USE_ERROR = 40103
    NATIVE_PROCESS_FLUSH_INTERRUPTED = 40104

    CANNOT_OPEN_DIRECTORY = 50101
    MISSING_LOG_FILE = 50102
    INVALID_LOG_FILE_PATH = 50103

    UNPARSEABLE_DATE_ARGUMENT = 60101
    INVALID_SORT_FIELD = 60102
    JOB_NOT_RUNNING = 60103
    INVALID_THRESHOLD_ARGUMENT = 60104
    INVALID_TIMEOUT_ARGUMENT = 60105
    INVALID_FLUSH_PARAMS = 60106
    END_DATE_BEFORE_START_DATE = 60107
    INVALID_BUCKET_RESET_RANGE_PARAMS = 60108
    BUCKET_RESET_NOT_SUPPORTED = 60109
    INVALID_SKIP_PARAM = 60110
    INVALID_TAKE_PARAM = 60111
    UNKNOWN_ALERT_TYPE = 60112
    CANNOT_ALERT_ON_PROB = 60113
    CANNOT_START_JOB_SCHEDULER = 60114
    CANNOT_STOP_JOB_SCHEDULER = 60115
    NO_SUCH_SCHEDULED_JOB = 60116
    ACTION_NOT_ALLOWED_FOR_SCHEDULED_JOB = 60117
    INVALID_REVERT_PARAMS = 60118
    NO_SUCH_MODEL_SNAPSHOT = 60119
    JOB_NOT_CLOSED = 60120
    INVALID_DESCRIPTION_PARAMS = 60121
    DESCRIPTION_ALREADY_USED = 60122
    CANNOT_PAUSE_JOB = 60123
    CANNOT_RESUME_JOB = 60124
    CANNOT_DELETE_HIGHEST_PRIORITY = 60125
    CANNOT_UPDATE_JOB_SCHEDULER = 60126

    SUPPORT_BUNDLE_EXECUTION_ERROR = 70101

    @classmethod
    def from_code(cls, code: int) -> "ErrorCodes":
        """Map a numeric code to its enum member.

        Codes this client does not know about (e.g. from a newer server)
        are reported as ``UNKNOWN_ERROR``.
        """
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            LOGGER.warning("Unrecognised error code %r, treating as UNKNOWN_ERROR", code)
            return cls.UNKNOWN_ERROR


class EngineApiIOError(IOError):
    """A request could not be completed at the transport level."""
