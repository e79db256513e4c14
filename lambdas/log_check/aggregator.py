# lambdas/log_check/aggregator.py
import json
from typing import Any, Dict, Iterator, Optional

from .formatter import SECTION_SEPARATOR, format_event_line, format_stream_header
from .models import ContainerInfo, LogLine, StreamBucket
from .rules import ContainerFilter, RuleMatcher


def parse_log_line(message: str) -> Optional[LogLine]:
    """
    Decodes the fluentd/fluent-bit envelope written for Kubernetes containers:
    {"log": "...", "kubernetes": {"pod_name", "container_image", "container_name", "namespace_name"}}

    Returns None when the message is not a JSON object or holds text that is not valid
    UTF-8 once decoded. Unknown fields are ignored and a
    missing kubernetes block gives an empty container identity.
    """
    try:
        payload = json.loads(message)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(payload, dict):
        return None

    kubernetes = payload.get("kubernetes")
    if not isinstance(kubernetes, dict):
        kubernetes = {}
    container = ContainerInfo(
        pod_name=str(kubernetes.get("pod_name") or ""),
        container_image=str(kubernetes.get("container_image") or ""),
        container_name=str(kubernetes.get("container_name") or ""),
        namespace_name=str(kubernetes.get("namespace_name") or ""),
    )
    log = payload.get("log")
    line = LogLine(log="" if log is None else str(log), container=container)

    # JSON escapes can decode to lone surrogates, which no report can be written with.
    try:
        for text in (line.log, container.pod_name, container.container_image,
                     container.container_name, container.namespace_name):
            text.encode('utf-8')
    except UnicodeEncodeError:
        return None
    return line


class StreamAggregator:
    """
    Groups the events that survive the rules by log stream.

    Exclusion applies to a whole stream: one event from an ignored image or
    container name drops everything the stream produced in the window,
    including events accepted before it. That is why nothing can be emitted
    before every page has been observed.
    """

    def __init__(self, rule_matcher: RuleMatcher, container_filter: ContainerFilter, verbose: bool = False):
        self.rule_matcher = rule_matcher
        self.container_filter = container_filter
        self.verbose = verbose
        self.buckets: Dict[str, StreamBucket] = {}
        self.events_seen = 0
        self.events_ignored = 0
        self.malformed_events = 0
        self.streams_emitted = 0
        self.lines_emitted = 0

    def _get_bucket(self, stream_name: str) -> StreamBucket:
        bucket = self.buckets.get(stream_name)
        if bucket is None:
            bucket = StreamBucket(stream_name=stream_name)
            self.buckets[stream_name] = bucket
        return bucket

    def observe(self, event: Dict[str, Any]) -> None:
        """Classifies one FilterLogEvents event and stores it if it survives."""
        self.events_seen += 1
        line = parse_log_line(event.get("message", ""))
        if line is None:
            self.malformed_events += 1
            print(f"⚠️ Warning: Could not parse event {event.get('eventId', '?')} "
                  f"from stream '{event.get('logStreamName', '?')}'. Skipping.")
            return

        bucket = self._get_bucket(event.get("logStreamName", ""))

        if self.rule_matcher.matches_any_rule(line.log):
            self.events_ignored += 1
            return

        container = line.container
        if (self.container_filter.is_image_ignored(container.container_image)
                or self.container_filter.is_container_ignored(container.container_name)):
            if not bucket.is_excluded and self.verbose:
                print(f"Stream '{bucket.stream_name}' excluded (image '{container.container_image}', "
                      f"container '{container.container_name}').")
            bucket.exclude()
            return

        if bucket.is_excluded:
            return

        bucket.identify(container)
        bucket.append(int(event.get("timestamp", 0)), line.log)

    @property
    def streams_excluded(self) -> int:
        return sum(1 for bucket in self.buckets.values() if bucket.is_excluded)

    def drain(self) -> Iterator[str]:
        """
        Yields the report lines: streams in ascending name order, each as a header
        followed by its events sorted by timestamp, then a separator line.
        Excluded and empty streams produce nothing.
        """
        for stream_name in sorted(self.buckets):
            bucket = self.buckets[stream_name]
            if bucket.is_excluded or not bucket.events:
                continue

            yield from format_stream_header(stream_name, bucket.container or ContainerInfo())
            # sorted() is stable: events sharing a timestamp keep their arrival order.
            for timestamp, message in sorted(bucket.events, key=lambda e: e[0]):
                yield format_event_line(timestamp, message)
                self.lines_emitted += 1
            yield SECTION_SEPARATOR
            self.streams_emitted += 1
