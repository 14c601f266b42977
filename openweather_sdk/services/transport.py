from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set, TypeVar
from urllib.parse import urlsplit

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util import Timeout
from urllib3.util.retry import Retry

from ..config import TransportSettings
from ..errors import RequestCancelledError, ShutdownError, TransportError

logger = structlog.get_logger()

T = TypeVar("T")


class PendingCall:
    """One GET request that can be executed once and cancelled from any thread.

    Cancelling fails the call's futures at once and closes the response if
    one has arrived. A worker still waiting for headers finds the call
    cancelled when they come in and drops the response unread. The pool's
    call timeout aborts the same way but surfaces as a plain
    ``TransportError``.
    """

    def __init__(self, pool: "TransportPool", url: str, params: Mapping[str, Any]) -> None:
        self.url = url
        self.params = dict(params)
        self.host = urlsplit(url).hostname or ""
        self._pool = pool
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None
        self._abort_callbacks: List[Callable[[TransportError], None]] = []
        self._cancelled = False
        self._timed_out = False
        self._executed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_abort_callback(self, fn: Callable[[TransportError], None]) -> None:
        """Call ``fn`` with the abort error as soon as the call is cancelled or times out."""
        with self._lock:
            if not self._cancelled:
                self._abort_callbacks.append(fn)
                return
        fn(self._abort_error())

    def cancel(self) -> None:
        self._abort(timed_out=False)

    def _expire(self) -> None:
        self._abort(timed_out=True)

    def _abort(self, timed_out: bool) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._timed_out = timed_out
            response = self._response
            callbacks, self._abort_callbacks = self._abort_callbacks, []
        if response is not None:
            response.close()
        error = self._abort_error()
        for fn in callbacks:
            fn(error)

    def _abort_error(self) -> TransportError:
        if self._timed_out:
            return TransportError(f"call to {self.host} timed out")
        return RequestCancelledError("Request was cancelled")

    def _check_cancelled(self) -> None:
        if self._cancelled:
            raise self._abort_error()

    def execute(self) -> requests.Response:
        """Send the request and read the whole body. The connection goes back to the pool."""
        with self._lock:
            if self._executed:
                raise TransportError("call has already been executed")
            self._executed = True

        self._pool._register(self)
        deadline = threading.Timer(self.call_timeout_s, self._expire)
        deadline.daemon = True
        deadline.start()
        try:
            with self._pool._slot(self.host, self.call_timeout_s):
                self._check_cancelled()
                try:
                    response = self._pool.session.get(
                        self.url, params=self.params, timeout=self._pool.timeout, stream=True
                    )
                except (requests.RequestException, OSError) as e:
                    self._check_cancelled()
                    raise TransportError(str(e)) from e

                with self._lock:
                    aborted = self._cancelled
                    if not aborted:
                        self._response = response
                if aborted:
                    response.close()
                    raise self._abort_error()
                try:
                    # closing the response from cancel() cuts this read short
                    _ = response.content
                except (requests.RequestException, OSError, ValueError) as e:
                    self._check_cancelled()
                    raise TransportError(str(e)) from e
                self._check_cancelled()
                return response
        finally:
            deadline.cancel()
            self._pool._unregister(self)

    @property
    def call_timeout_s(self) -> float:
        return self._pool.call_timeout_s


class CallFuture(Future):
    """Future bound to a ``PendingCall``.

    The future is running from birth, so ``cancel()`` never flips it to the
    stdlib cancelled state. It aborts the call and the future completes
    with ``RequestCancelledError`` right away, without waiting for the
    worker. Whatever the worker produces afterwards is dropped.
    """

    def __init__(self, call: PendingCall) -> None:
        super().__init__()
        self.call = call
        self._complete_lock = threading.Lock()
        self.set_running_or_notify_cancel()
        call.add_abort_callback(self._abort)

    def complete(self, result: Any = None, error: Optional[BaseException] = None) -> bool:
        """Settle the future unless it is already done; the first outcome wins."""
        with self._complete_lock:
            if self.done():
                return False
            if error is not None:
                self.set_exception(error)
            else:
                self.set_result(result)
            return True

    def _abort(self, error: TransportError) -> None:
        self.complete(error=error)

    def cancel(self) -> bool:
        if self.done():
            return False
        self.call.cancel()
        return True


class TransportPool:
    """Connection-pooled HTTP transport shared by one or more fetchers.

    ``max_concurrent_requests`` caps in-flight calls both overall and per
    destination host. Async calls run on ``settings.executor`` if given,
    otherwise on an executor owned (and shut down) by the pool.
    """

    def __init__(self, settings: TransportSettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.limit = settings.max_concurrent_requests
        self.call_timeout_s = settings.call_timeout.total_seconds()
        # urllib3 has one socket timeout for send and receive once connected
        self.timeout = Timeout(
            connect=settings.connect_timeout.total_seconds(),
            read=min(settings.read_timeout, settings.write_timeout).total_seconds(),
        )
        self.session = session or self._build_session(self.limit)

        self._owns_executor = settings.executor is None
        self._executor = settings.executor or ThreadPoolExecutor(
            max_workers=self.limit, thread_name_prefix="openweather-http"
        )
        self._global_slots = threading.BoundedSemaphore(self.limit)
        self._host_slots: Dict[str, threading.BoundedSemaphore] = {}
        self._lock = threading.Lock()
        self._active: Set[PendingCall] = set()
        self._futures: Set[CallFuture] = set()
        self._shutdown = False

    @staticmethod
    def _build_session(limit: int) -> requests.Session:
        s = requests.Session()
        # no retries: retry policy belongs to the caller
        adapter = HTTPAdapter(
            pool_maxsize=limit,
            max_retries=Retry(total=0, raise_on_status=False),
        )
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        return s

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def new_call(self, url: str, params: Mapping[str, Any]) -> PendingCall:
        if self._shutdown:
            raise ShutdownError("TransportPool")
        return PendingCall(self, url, params)

    def enqueue(self, call: PendingCall, handler: Callable[[requests.Response], T]) -> "Future[T]":
        """Run ``call`` on the executor and complete the returned future with ``handler(response)``."""
        future = CallFuture(call)
        with self._lock:
            if self._shutdown:
                raise ShutdownError("TransportPool")
            self._futures.add(future)
        future.add_done_callback(self._discard_future)

        def run() -> None:
            if future.done():
                return
            try:
                result = handler(call.execute())
            except Exception as e:
                future.complete(error=e)
            else:
                future.complete(result)

        try:
            self._executor.submit(run)
        except RuntimeError as e:
            # executor already shut down
            future.cancel()
            raise ShutdownError("TransportPool executor") from e
        return future

    def _discard_future(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def _register(self, call: PendingCall) -> None:
        with self._lock:
            if self._shutdown:
                raise ShutdownError("TransportPool")
            self._active.add(call)

    def _unregister(self, call: PendingCall) -> None:
        with self._lock:
            self._active.discard(call)

    @contextmanager
    def _slot(self, host: str, timeout_s: float) -> Iterator[None]:
        with self._lock:
            host_slots = self._host_slots.setdefault(host, threading.BoundedSemaphore(self.limit))
        if not self._global_slots.acquire(timeout=timeout_s):
            raise TransportError("timed out waiting for a free request slot")
        try:
            if not host_slots.acquire(timeout=timeout_s):
                raise TransportError(f"timed out waiting for a free request slot for {host}")
            try:
                yield
            finally:
                host_slots.release()
        finally:
            self._global_slots.release()

    def shutdown(self) -> None:
        """Cancel in-flight calls, refuse new ones and release pooled connections.

        Safe to call repeatedly; failures releasing resources are logged only.
        """
        with self._lock:
            if self._shutdown:
                logger.debug("transport_already_shut_down")
                return
            self._shutdown = True
            futures = list(self._futures)
            calls = list(self._active)

        logger.info("transport_shutdown", in_flight=len(calls), queued=len(futures))
        for future in futures:
            future.cancel()
        for call in calls:
            call.cancel()

        if self._owns_executor:
            try:
                self._executor.shutdown(wait=False, cancel_futures=True)
            except Exception as e:
                logger.warning("transport_executor_shutdown_failed", error=str(e))

        try:
            self.session.close()
        except Exception as e:
            logger.warning("transport_session_close_failed", error=str(e))

        logger.info("transport_shutdown_complete")


def build_transport(settings: TransportSettings, session: Optional[requests.Session] = None) -> TransportPool:
    pool = TransportPool(settings, session=session)
    logger.debug(
        "transport_init",
        max_concurrent_requests=pool.limit,
        call_timeout_s=pool.call_timeout_s,
        owns_executor=pool._owns_executor,
    )
    return pool
