# cli/push_log.py
"""
Writes a few sample Kubernetes log events into a CloudWatch log stream, so a
live log check has something to report.

    python cli/push_log.py my-log-group my-stream
"""
import argparse
import json
import os
import time

import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv

# Load environment variables from a .env file for local testing
load_dotenv()

AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")


def create_log_payload(message: str, container_name: str, container_image: str,
                       pod_name: str = "sample-pod-0", namespace: str = "default") -> dict:
    """Builds one event envelope in the format fluent-bit ships container logs."""
    return {
        "log": message,
        "stream": "stdout",
        "kubernetes": {
            "pod_name": pod_name,
            "namespace_name": namespace,
            "container_name": container_name,
            "container_image": container_image,
        },
    }


def ensure_log_stream(logs_client, log_group: str, log_stream: str) -> None:
    """Creates the log group and stream when they do not exist yet."""
    for create, kwargs in (
        (logs_client.create_log_group, {"logGroupName": log_group}),
        (logs_client.create_log_stream, {"logGroupName": log_group, "logStreamName": log_stream}),
    ):
        try:
            create(**kwargs)
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceAlreadyExistsException':
                raise


def push_log_events(logs_client, log_group: str, log_stream: str, payloads: list[dict]) -> None:
    now_ms = int(time.time() * 1000)
    # Events of one PutLogEvents call must be in chronological order.
    events = [
        {"timestamp": now_ms + i, "message": json.dumps(payload)}
        for i, payload in enumerate(payloads)
    ]
    print(f"--- Putting {len(events)} events into {log_group}/{log_stream} ---")
    logs_client.put_log_events(logGroupName=log_group, logStreamName=log_stream, logEvents=events)
    print("✅ Success! Log events sent.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Push sample container logs to CloudWatch Logs.")
    parser.add_argument("log_group")
    parser.add_argument("log_stream")
    args = parser.parse_args()

    client = boto3.client('logs', region_name=AWS_REGION)
    sample_payloads = [
        create_log_payload("ERROR: Database connection failed: timeout expired.", "api", "registry.local/api:1.4.2"),
        create_log_payload("GET /healthz 200", "api", "registry.local/api:1.4.2"),
        create_log_payload("WARN: API response time exceeded threshold.", "api", "registry.local/api:1.4.2"),
        create_log_payload("sidecar heartbeat", "istio-proxy", "docker.io/istio/proxyv2:1.20.0"),
    ]
    try:
        ensure_log_stream(client, args.log_group, args.log_stream)
        push_log_events(client, args.log_group, args.log_stream, sample_payloads)
    except ClientError as e:
        print(f"\n❌ Failed to push log events.")
        print(f"Error: {e.response['Error']['Message']}")
