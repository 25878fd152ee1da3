"""
Data Upload
===========

This module moves the contents of a byte stream to a job's data endpoint.
Two strategies are supported:

* **Chunked upload** – the stream is read in fixed size blocks (at most
  4 MiB) and every block is POSTed as a separate request.  The next block
  is only read once the previous request has been answered.  The data is
  not split on record boundaries; the server reassembles records that
  straddle two blocks.
* **Streaming upload** – a single request whose body is supplied
  incrementally.  The request runs on the client's request thread while
  the calling thread reads the source stream and hands each block to a
  ``DeferredContent`` body.  The server may reject the upload before all
  data has been sent (for example when the job does not exist) and close
  the connection; the calling thread notices this between reads and stops
  producing instead of writing into a closed sink.

Buffers used by the streaming upload start at the maximum size and then
follow ``choose_buffer_size``: a short read shrinks the next buffer to
the size actually read, a full read grows it by at least 1 KiB (or 10%)
up to the maximum.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterator, Optional, TypeVar

from .config import MAX_BUFFER_SIZE
from .data import ApiError, MultiDataPostResult
from .error_codes import EngineApiIOError

if TYPE_CHECKING:
    from .client import EngineApiClient

LOGGER = logging.getLogger(__name__)

MIN_BUFFER_GROWTH = 1024
BUFFER_GROWTH_FACTOR = 0.1
OCTET_STREAM = "application/octet-stream"

T = TypeVar("T")

_END = object()


def choose_buffer_size(bytes_read: int, current_buffer_size: int) -> int:
    """Return the capacity of the next read buffer.

    :param bytes_read: Number of bytes the previous read returned.
    :param current_buffer_size: Capacity of the previous buffer.
    """
    if bytes_read >= MAX_BUFFER_SIZE:
        return MAX_BUFFER_SIZE
    if bytes_read < current_buffer_size:
        return bytes_read
    growth = max(MIN_BUFFER_GROWTH, int(BUFFER_GROWTH_FACTOR * current_buffer_size))
    return min(MAX_BUFFER_SIZE, current_buffer_size + growth)


class DeferredContent:
    """A request body whose bytes are offered by another thread.

    The producer calls ``offer`` for each block and ``close`` when done;
    the HTTP layer iterates ``chunks()``.  The backlog is bounded so a slow
    connection applies back pressure to the producer.  Once the consumer
    goes away (the generator is closed) or the request completes, ``closed``
    becomes true and further offers are refused.
    """

    def __init__(self, max_backlog: int = 4, poll_interval: float = 0.1) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_backlog)
        self._closed = threading.Event()
        self._poll_interval = poll_interval

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, chunk: bytes) -> bool:
        """Queue ``chunk`` for sending.

        :returns: ``False`` if the body was closed before the chunk could
            be queued.
        """
        while not self._closed.is_set():
            try:
                self._queue.put(chunk, timeout=self._poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def close(self) -> None:
        self._closed.set()
        try:
            self._queue.put_nowait(_END)
        except queue.Full:
            # the consumer notices the closed flag once the backlog drains
            pass

    def chunks(self) -> Iterator[bytes]:
        """Yield queued blocks until the producer closes the body."""
        try:
            while True:
                try:
                    item = self._queue.get(timeout=self._poll_interval)
                except queue.Empty:
                    if self._closed.is_set():
                        return
                    continue
                if item is _END:
                    return
                yield item
        finally:
            self._closed.set()


class UploadCompletion:
    """Completion handler for a streaming upload request.

    Registered as the done callback of the request future.  It records the
    response (or the transport failure), closes the request body so the
    producer stops, and releases anyone blocked in ``wait``.
    """

    def __init__(self, content: DeferredContent) -> None:
        self._content = content
        self._done = threading.Event()
        self._fired = False
        self._lock = threading.Lock()
        self.status_code = 0
        self.text = ""
        self.exception: Optional[BaseException] = None

    def is_set(self) -> bool:
        return self._done.is_set()

    def __call__(self, future: "Future[Any]") -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
        try:
            response = future.result()
            self.status_code = response.status_code
            self.text = response.text or ""
        except Exception as exc:
            # re-raised by the waiting thread
            self.exception = exc
        finally:
            self._content.close()
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)


class StreamingUploader:
    """Runs chunked and streaming uploads on behalf of an ``EngineApiClient``."""

    def __init__(self, client: "EngineApiClient") -> None:
        self._client = client
        self._in_flight = threading.Lock()

    def _acquire(self) -> None:
        if not self._in_flight.acquire(blocking=False):
            raise RuntimeError(
                "An upload is already in progress on this client; "
                "use a separate EngineApiClient for parallel uploads"
            )

    def chunked_upload(
        self,
        post_url: str,
        stream: BinaryIO,
        chunk_size: int = MAX_BUFFER_SIZE,
        aggregate: bool = False,
    ) -> MultiDataPostResult:
        """POST ``stream`` to ``post_url`` one block at a time.

        :param chunk_size: Block size; capped at the 4 MiB maximum.
        :param aggregate: If ``False`` the returned result is the response
            to the last block only.  If ``True`` the counts of every block
            are summed per job.
        :returns: The upload summary.
        """
        self._acquire()
        try:
            return self._chunked_upload(post_url, stream, min(chunk_size, MAX_BUFFER_SIZE), aggregate)
        finally:
            self._in_flight.release()

    def _chunked_upload(
        self, post_url: str, stream: BinaryIO, chunk_size: int, aggregate: bool
    ) -> MultiDataPostResult:
        client = self._client
        LOGGER.debug("Uploading chunked data to %s", post_url)

        upload_count = 0
        upload_summary = MultiDataPostResult()
        client._set_last_error(None)

        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            upload_count += 1
            LOGGER.info("Upload %d", upload_count)

            response = client._send(
                "POST", post_url, data=chunk, headers={"Content-Type": OCTET_STREAM}
            )
            content = response.text or ""

            if response.status_code != 202:
                msg = (
                    f"Upload of chunk {upload_count} failed, status code = "
                    f"{response.status_code}. Returned content: {content}"
                )
                LOGGER.error(msg)
                try:
                    chunk_result = client._convert_multi_data_post_result(content)
                except EngineApiIOError:
                    chunk_result = MultiDataPostResult()
                if client.last_error is None:
                    client._set_last_error(ApiError.unknown(msg))
            else:
                chunk_result = MultiDataPostResult.from_dict(client._read_json(content) or {})

            if aggregate:
                upload_summary.merge(chunk_result)
            else:
                upload_summary = chunk_result

        return upload_summary

    def upload_stream(
        self,
        stream: BinaryIO,
        post_url: str,
        compressed: bool,
        default_return_value: T,
        convert_response_on_error: bool,
        convert_content: Callable[[str], T],
    ) -> T:
        """Send ``stream`` as the body of a single POST to ``post_url``.

        :param compressed: Set ``Content-Encoding: gzip``.
        :param default_return_value: Returned if the upload fails without a
            parseable result, or if waiting for completion is abandoned.
        :param convert_response_on_error: On a failure status with a body,
            convert the body with ``convert_content`` (which records any
            per-job error) instead of parsing it as an ``ApiError``.
        :param convert_content: Turns the response text into the result.
        """
        self._acquire()
        try:
            return self._upload_stream(
                stream, post_url, compressed, default_return_value,
                convert_response_on_error, convert_content,
            )
        finally:
            self._in_flight.release()

    def _upload_stream(
        self,
        stream: BinaryIO,
        post_url: str,
        compressed: bool,
        default_return_value: T,
        convert_response_on_error: bool,
        convert_content: Callable[[str], T],
    ) -> T:
        client = self._client
        LOGGER.debug("Uploading data to %s", post_url)
        client._set_last_error(None)

        content = DeferredContent()
        completion = UploadCompletion(content)
        headers = {"Content-Type": OCTET_STREAM}
        if compressed:
            headers["Content-Encoding"] = "gzip"

        future = client._submit(
            "POST", post_url, data=content.chunks(), headers=headers, streaming=True
        )
        future.add_done_callback(completion)

        buffer_size = MAX_BUFFER_SIZE
        try:
            while not content.closed and not completion.is_set():
                data = stream.read(buffer_size)
                if not data:
                    break
                if not content.offer(data):
                    LOGGER.debug("Request body closed by the server, stopping upload")
                    break
                buffer_size = choose_buffer_size(len(data), buffer_size)
        finally:
            content.close()
            stream.close()

        if not completion.wait(client.config.upload_timeout):
            LOGGER.error("Gave up waiting for the upload to %s to complete", post_url)
            client._abandon_request(future)
            return default_return_value

        if completion.exception is not None:
            raise completion.exception

        text = completion.text
        if completion.status_code != 202:
            msg = (
                f"Streaming upload failed, status code = {completion.status_code}. "
                f"Returned content: {text}"
            )
            LOGGER.error(msg)
            if text:
                if convert_response_on_error:
                    try:
                        result = convert_content(text)
                    except EngineApiIOError:
                        result = default_return_value
                    if client.last_error is None:
                        # a plain error document rather than per-job responses
                        client._set_last_error(client._parse_api_error(text, msg))
                    return result
                client._set_last_error(client._parse_api_error(text, msg))
            else:
                client._set_last_error(ApiError.unknown(msg))
            return default_return_value

        return convert_content(text)
