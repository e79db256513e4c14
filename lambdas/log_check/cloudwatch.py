# lambdas/log_check/cloudwatch.py
"""CloudWatch Logs access: log group lookup, paginated FilterLogEvents and the scan window."""
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import CloudWatchError, RunCancelledError
from .rate_limiter import RateLimiter

# Standard retry mode retries throttled calls with backoff inside botocore.
_BOTO_CONFIG = Config(retries={"mode": "standard", "max_attempts": 5})


def create_logs_client(session: Optional[boto3.session.Session] = None, region_name: Optional[str] = None):
    """Creates a CloudWatch Logs client, from the given session when there is one."""
    session = session or boto3.session.Session()
    return session.client('logs', region_name=region_name, config=_BOTO_CONFIG)


def _error_message(e: Exception) -> str:
    if isinstance(e, ClientError):
        return e.response.get('Error', {}).get('Message', str(e))
    return str(e)


def previous_hour_window(now: Optional[datetime] = None) -> Tuple[int, int]:
    """
    Returns the previous full UTC clock hour as [start_ms, end_ms) in epoch milliseconds.
    At 10:07 UTC the window is 09:00:00.000 to 10:00:00.000.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    end = now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
    start = end - timedelta(hours=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def find_log_group(
    logs_client,
    limiter: RateLimiter,
    log_group: str,
    cancel_event: Optional[threading.Event] = None,
) -> bool:
    """
    Pages through DescribeLogGroups until log_group is found (exact, case-sensitive
    match) or the listing has no more pages.

    Raises:
        RunCancelledError: If the run was cancelled while waiting for the rate limiter.
        CloudWatchError: If a DescribeLogGroups call fails.
    """
    kwargs: Dict[str, Any] = {"logGroupNamePrefix": log_group}
    page_count = 0
    while True:
        if not limiter.acquire(cancel_event):
            raise RunCancelledError("Cancelled while looking up the log group")
        try:
            response = logs_client.describe_log_groups(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise CloudWatchError(f"DescribeLogGroups failed: {_error_message(e)}") from e
        page_count += 1

        for group in response.get("logGroups", []):
            if group.get("logGroupName") == log_group:
                print(f"Found log group '{log_group}' after {page_count} page(s).")
                return True

        next_token = response.get("nextToken")
        if not next_token:
            return False
        kwargs["nextToken"] = next_token


def fetch_events(
    logs_client,
    limiter: RateLimiter,
    log_group: str,
    start_ms: int,
    end_ms: int,
    cancel_event: Optional[threading.Event] = None,
) -> Iterator[Dict[str, Any]]:
    """
    Generates every event of log_group in [start_ms, end_ms), interleaved across
    streams and ordered by time by CloudWatch. Pages are fetched one at a time,
    each after a token from the limiter.

    Raises:
        RunCancelledError: If the run was cancelled before a page was requested.
        CloudWatchError: If a FilterLogEvents call fails. Events already yielded
            cannot make up a complete report, so the run has to stop.
    """
    kwargs: Dict[str, Any] = {
        "logGroupName": log_group,
        "startTime": start_ms,
        # endTime is inclusive for FilterLogEvents.
        "endTime": end_ms - 1,
        "interleaved": True,
    }
    page_count = 0
    event_count = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError("Cancelled while fetching log events")
        if not limiter.acquire(cancel_event):
            raise RunCancelledError("Cancelled while waiting for the events rate limiter")

        try:
            response = logs_client.filter_log_events(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise CloudWatchError(f"FilterLogEvents failed on page {page_count + 1}: {_error_message(e)}") from e
        page_count += 1

        events = response.get("events", [])
        next_token = response.get("nextToken")
        if not events and not next_token:
            break

        event_count += len(events)
        yield from events

        if not next_token:
            break
        kwargs["nextToken"] = next_token

    print(f"Fetched {event_count} events from '{log_group}' in {page_count} page(s).")
