# lambdas/log_check/app.py
import json
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import boto3

from .aggregator import StreamAggregator
from .cloudwatch import create_logs_client, fetch_events, find_log_group, previous_hour_window
from .errors import (
    ConfigurationError,
    LogCheckError,
    LogGroupNotFoundError,
    ReportStreamClosedError,
    RunCancelledError,
)
from .formatter import format_html_body, format_timestamp
from .mailers import ReportSender, build_senders, dispatch_report
from .models import AppSettings, LogCheckResult, load_settings
from .rate_limiter import events_limiter, log_groups_limiter
from .report import ReportStreamer, ReportWriter
from .rules import ContainerFilter, RuleMatcher, load_rules


def build_matchers(settings: AppSettings) -> tuple[RuleMatcher, ContainerFilter]:
    """Loads the rules directory and compiles the ignore lists."""
    rules = load_rules(settings.resolved_rules_dir())
    return (
        RuleMatcher(rules),
        ContainerFilter(settings.images_to_ignore, settings.container_names_to_ignore),
    )


def run_log_check(
    settings: AppSettings,
    logs_client,
    senders: Sequence[ReportSender],
    rule_matcher: RuleMatcher,
    container_filter: ContainerFilter,
    cancel_event: Optional[threading.Event] = None,
    now: Optional[datetime] = None,
) -> LogCheckResult:
    """
    Scans the previous full hour of the configured log group and mails what the
    rules and ignore lists let through.

    Events are fetched and aggregated in the calling thread while a writer thread
    turns report lines into emails. Lines only start flowing once every page has
    been read, since a late event can still exclude a whole stream.

    Raises:
        ConfigurationError: If no log group is configured.
        LogGroupNotFoundError: If the log group does not exist.
        CloudWatchError: If a CloudWatch Logs call fails.
        RunCancelledError: If cancel_event is set before the run completes.
    """
    if not settings.log_group:
        raise ConfigurationError("No log group configured (loggroup)")
    cancel_event = cancel_event or threading.Event()

    # Step 1: Make sure the log group exists
    if not find_log_group(logs_client, log_groups_limiter(), settings.log_group, cancel_event):
        raise LogGroupNotFoundError(settings.log_group)

    # Step 2: Compute the window
    start_ms, end_ms = previous_hour_window(now)
    print(f"Scanning '{settings.log_group}' from {format_timestamp(start_ms)} UTC to {format_timestamp(end_ms)} UTC")
    result = LogCheckResult(log_group=settings.log_group, start_ms=start_ms, end_ms=end_ms)

    footer = f"Log group: {settings.log_group} | Window: {format_timestamp(start_ms)} - {format_timestamp(end_ms)} UTC"

    def dispatch(subject: str, fragment: str) -> None:
        html_body = format_html_body(fragment, subject, footer)
        dispatch_report(senders, settings, subject, html_body)

    # Step 3: Start the writer before producing anything
    streamer = ReportStreamer(maxsize=settings.report_channel_size)
    writer = ReportWriter(
        dispatch=dispatch,
        max_report_size=settings.mail.max_report_size,
        subject=settings.mail.subject,
        report_dir=settings.report_dir,
    )
    writer_thread = writer.start(streamer)

    aggregator = StreamAggregator(rule_matcher, container_filter, verbose=settings.is_debug)
    try:
        # Step 4: Fetch every page and bucket the events per stream
        for event in fetch_events(logs_client, events_limiter(), settings.log_group, start_ms, end_ms, cancel_event):
            aggregator.observe(event)

        # Step 5: Emit the streams in order
        for line in aggregator.drain():
            streamer.put(line, cancel_event)
    except ReportStreamClosedError:
        # The writer died; its own error is raised below.
        pass
    finally:
        streamer.close()
        writer_thread.join()

    if writer.error is not None:
        raise writer.error

    result.events_seen = aggregator.events_seen
    result.events_ignored = aggregator.events_ignored
    result.malformed_events = aggregator.malformed_events
    result.streams_emitted = aggregator.streams_emitted
    result.streams_excluded = aggregator.streams_excluded
    result.lines_emitted = aggregator.lines_emitted
    result.reports_dispatched = writer.chunks_dispatched
    result.dispatch_failures = writer.dispatch_failures

    if result.lines_emitted == 0:
        print("ℹ️ No log lines left after filtering. No report sent.")
    else:
        print(f"✅ Reported {result.lines_emitted} lines from {result.streams_emitted} streams "
              f"in {result.reports_dispatched} email(s).")
    return result


def handler(event: Dict[str, Any], context: object) -> Dict[str, Any]:
    """
    Main Lambda handler, triggered every hour by an EventBridge schedule.
    The YAML configuration path is read from LOGCHECK_CONFIG; without it the
    settings come from the environment only.
    """
    print(f"Received event: {json.dumps(event, default=str)}")

    try:
        settings = load_settings(os.environ.get("LOGCHECK_CONFIG"))
        if not settings.log_group:
            raise ConfigurationError("No log group configured (loggroup)")
        rule_matcher, container_filter = build_matchers(settings)
        session = boto3.session.Session(region_name=settings.aws_region)
        senders = build_senders(settings, session)
    except ConfigurationError as e:
        print(f"❌ FATAL: {e}")
        return {"statusCode": 500, "body": json.dumps({"error": str(e)})}

    try:
        result = run_log_check(
            settings,
            create_logs_client(session),
            senders,
            rule_matcher,
            container_filter,
            now=datetime.now(timezone.utc),
        )
    except LogGroupNotFoundError as e:
        print(f"❌ {e}")
        return {"statusCode": 404, "body": json.dumps({"error": str(e)})}
    except RunCancelledError as e:
        print(f"ℹ️ Run cancelled: {e}")
        return {"statusCode": 499, "body": json.dumps({"error": "cancelled"})}
    except LogCheckError as e:
        print(f"❌ Log check failed: {e}")
        # Re-raise so the invocation is recorded as failed
        raise

    return {"statusCode": 200, "body": json.dumps(result.__dict__)}
