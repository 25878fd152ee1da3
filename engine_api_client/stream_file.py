"""
Stream File CLI
===============

Upload the contents of a file to a job's data endpoint using a single
streaming request.  Typical usage::

    stream-file http://localhost:8080/engine/v2/data/farequote farequote.csv
    stream-file http://localhost:8080/engine/v2/data/farequote data.csv.gz --compressed --close

The first argument is the full URL of the job's data endpoint; the job id
is its last path segment and the API base URL is everything before
``/data``.  With ``--close`` the job is closed once the upload finishes.

On success the time taken is printed.  Logging output can be increased
with the ``--verbose`` flag.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional, Tuple

from .client import EngineApiClient, EngineApiIOError
from .config import Config

LOGGER = logging.getLogger(__name__)


def split_data_url(url: str) -> Tuple[str, str]:
    """Split a data endpoint URL into ``(base_url, job_id)``.

    :raises ValueError: If the URL has no ``/data`` segment.
    """
    url = url.rstrip("/")
    head, _, job_id = url.rpartition("/")
    if not job_id or not head.endswith("/data"):
        raise ValueError(f"Not a job data endpoint: {url}")
    return head[:-len("/data")], job_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stream-file",
        description="Stream a data file to an Engine API job",
    )
    parser.add_argument(
        "data_endpoint",
        help="Full URL of the job's data endpoint, e.g. http://localhost:8080/engine/v2/data/<job_id>",
    )
    parser.add_argument("data_file", help="File to upload")
    parser.add_argument("--compressed", action="store_true", help="The file is gzip compressed")
    parser.add_argument("--close", action="store_true", help="Close the job after the file is uploaded")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        base_url, job_id = split_data_url(args.data_endpoint)
    except ValueError as exc:
        parser.error(str(exc))

    cfg = Config.from_env()
    cfg.base_url = base_url
    try:
        with EngineApiClient(config=cfg) as client:
            start = time.monotonic()
            uploaded = client.file_upload(job_id, args.data_file, compressed=args.compressed)
            upload_error = uploaded.first_error() or client.last_error
            if args.close:
                client.close_job(job_id)
            elapsed_ms = int((time.monotonic() - start) * 1000)
    except (EngineApiIOError, OSError) as exc:
        LOGGER.error("Failed to upload %s: %s", args.data_file, exc)
        return 1

    if upload_error is not None:
        LOGGER.error("Upload of %s failed: %s", args.data_file, upload_error)
        return 1

    print(f"{args.data_file} uploaded in {elapsed_ms}ms")
    return 0


if __name__ == "__main__":
    sys.exit(main())
