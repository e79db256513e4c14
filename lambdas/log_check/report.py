# lambdas/log_check/report.py
"""
Report assembly.

The pipeline thread pushes formatted lines into a ReportStreamer (a bounded
queue). A ReportWriter running in its own thread drains it into a temporary
file and dispatches the file as one email every time it grows past
max_report_size, then once more for whatever is left when the stream closes.
"""
import os
import queue
import tempfile
import threading
from typing import Callable, Optional

from .errors import ReportDispatchError, ReportStreamClosedError, RunCancelledError

# How long a blocked put waits before checking cancellation again.
_PUT_POLL_SECONDS = 0.1

_END_OF_STREAM = object()


class ReportStreamer:
    """Bounded channel of report lines with an explicit close."""

    def __init__(self, maxsize: int = 1000):
        self._queue = queue.Queue(maxsize=maxsize)
        self._consumer_gone = threading.Event()

    def _put(self, item, cancel_event: Optional[threading.Event]) -> None:
        while True:
            if self._consumer_gone.is_set():
                raise ReportStreamClosedError("The report writer stopped reading")
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelledError("Cancelled while streaming the report")
            try:
                self._queue.put(item, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def put(self, line: str, cancel_event: Optional[threading.Event] = None) -> None:
        """Blocks while the channel is full."""
        self._put(line, cancel_event)

    def close(self) -> None:
        """Signals the end of the report. Never raises, so it can run in a finally block."""
        try:
            self._put(_END_OF_STREAM, None)
        except ReportStreamClosedError:
            pass

    def abandon(self) -> None:
        """Called by the consumer when it stops early, to unblock the producer."""
        self._consumer_gone.set()

    def __iter__(self):
        while True:
            item = self._queue.get()
            if item is _END_OF_STREAM:
                return
            yield item


class ReportWriter:
    """
    Accumulates lines in a temporary file and dispatches it in size-bounded chunks.

    dispatch(subject, fragment) is called with the chunk's HTML fragment and raises
    ReportDispatchError on failure. A failed chunk is reported and dropped; the
    writer keeps going with a fresh chunk.
    """

    def __init__(
        self,
        dispatch: Callable[[str, str], None],
        max_report_size: int,
        subject: str,
        report_dir: Optional[str] = None,
    ):
        self.dispatch = dispatch
        self.max_report_size = max_report_size
        self.subject = subject
        self.report_dir = report_dir
        self.chunks_dispatched = 0
        self.dispatch_failures = 0
        self.error: Optional[BaseException] = None
        self._chunk_number = 0
        self._file = None
        self._size = 0
        self._lines_since_flush = 0

    def _open_chunk(self) -> None:
        self._file = tempfile.NamedTemporaryFile(
            mode='w', encoding='utf-8', newline='', prefix='logcheck-report-', suffix='.html',
            dir=self.report_dir, delete=False,
        )
        self._size = 0
        self._lines_since_flush = 0

    def _chunk_subject(self, numbered: bool) -> str:
        if numbered:
            return f"{self.subject} (part {self._chunk_number})"
        return self.subject

    def _remove_chunk(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            print(f"⚠️ Could not remove report file '{path}': {e}")

    def _close_and_dispatch(self, numbered: bool) -> None:
        """Closes the current chunk, sends it when it holds lines and deletes the file."""
        path = self._file.name
        self._file.close()
        self._file = None
        try:
            if self._lines_since_flush == 0:
                return
            self._chunk_number += 1
            subject = self._chunk_subject(numbered)
            with open(path, 'r', encoding='utf-8', newline='') as f:
                fragment = f.read()
            try:
                self.dispatch(subject, fragment)
                self.chunks_dispatched += 1
            except ReportDispatchError as e:
                self.dispatch_failures += 1
                print(f"⚠️ Could not send report chunk '{subject}': {e}")
        finally:
            self._remove_chunk(path)

    def write(self, line: str) -> None:
        self._file.write(line)
        self._size += len(line.encode('utf-8'))
        self._lines_since_flush += 1
        if self._size > self.max_report_size:
            print(f"Report chunk reached {self._size} bytes (max {self.max_report_size}). Sending it.")
            self._close_and_dispatch(numbered=True)
            self._open_chunk()

    def run(self, streamer: ReportStreamer) -> None:
        """Drains the streamer until it is closed, then dispatches the remainder."""
        try:
            self._open_chunk()
            for line in streamer:
                self.write(line)
            # The last chunk is numbered only if earlier parts were already sent.
            self._close_and_dispatch(numbered=self._chunk_number > 0)
        except Exception as e:
            self.error = e
            print(f"❌ Report writer failed: {e}")
            streamer.abandon()
            if self._file is not None:
                self._file.close()
                self._remove_chunk(self._file.name)
                self._file = None

    def start(self, streamer: ReportStreamer) -> threading.Thread:
        thread = threading.Thread(target=self.run, args=(streamer,), name="report-writer", daemon=True)
        thread.start()
        return thread
