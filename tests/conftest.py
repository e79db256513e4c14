# tests/conftest.py
import json
from unittest.mock import MagicMock

import pytest

from lambdas.log_check.models import AppSettings


def make_event(stream: str, timestamp: int, log: str, container_name: str = "app",
               container_image: str = "registry.local/app:1.0", pod_name: str = "app-0") -> dict:
    """Builds a FilterLogEvents event carrying a Kubernetes log envelope."""
    return {
        "logStreamName": stream,
        "timestamp": timestamp,
        "message": json.dumps({
            "log": log,
            "stream": "stdout",
            "kubernetes": {
                "pod_name": pod_name,
                "container_image": container_image,
                "container_name": container_name,
                "namespace_name": "default",
            },
        }),
        "eventId": f"{stream}-{timestamp}",
    }


def make_logs_client(log_groups=("my-group",), pages=None) -> MagicMock:
    """
    Fake CloudWatch Logs client: one DescribeLogGroups page listing log_groups and
    FilterLogEvents pages served in order, chained by nextToken.
    """
    pages = pages if pages is not None else [[]]
    client = MagicMock()
    client.describe_log_groups.return_value = {
        "logGroups": [{"logGroupName": name} for name in log_groups],
    }
    responses = []
    for i, events in enumerate(pages):
        response = {"events": events}
        if i < len(pages) - 1:
            response["nextToken"] = f"token-{i + 1}"
        responses.append(response)
    client.filter_log_events.side_effect = responses
    return client


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    rules_dir = tmp_path / "rules"
    rules_dir.mkdir()
    return AppSettings(
        _env_file=None,
        loggroup="my-group",
        rulesdir=str(rules_dir),
        mailconfiguration={"from_email": "logcheck@example.com", "sendto": "ops@example.com",
                           "subject": "Log report", "maxreportsize": 10_000},
        report_dir=str(tmp_path),
    )
