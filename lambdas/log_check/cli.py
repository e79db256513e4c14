# lambdas/log_check/cli.py
"""
Runs one log check from a workstation or a cron job:

    logcheck -c config.yml [-p my-sso-profile] [--no-wait]
"""
import argparse
import signal
import sys
import threading
import time
from importlib.metadata import PackageNotFoundError, version
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from .app import build_matchers, run_log_check
from .cloudwatch import create_logs_client
from .errors import LogCheckError, RunCancelledError
from .mailers import build_senders
from .models import load_settings

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def get_version() -> str:
    try:
        return version("cloudwatch-logcheck")
    except PackageNotFoundError:
        return "development"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="logcheck",
        description="Mail the lines of a CloudWatch log group that no rule explains, for the previous hour.",
    )
    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument("-p", "--profile", help="AWS profile (SSO or shared config) to authenticate with")
    parser.add_argument("-v", "--version", action="store_true", help="Print the version and exit")
    parser.add_argument("--no-wait", action="store_true",
                        help="Do not wait for CloudWatch ingestion before scanning")
    return parser.parse_args(argv)


def print_identity(session: boto3.session.Session) -> None:
    """Prints the AWS identity the run will use."""
    identity = session.client('sts').get_caller_identity()
    print(f"AWS account: {identity.get('Account')}")
    print(f"AWS user id: {identity.get('UserId')}")
    print(f"AWS arn: {identity.get('Arn')}")


def install_signal_handlers(cancel_event: threading.Event) -> None:
    def _cancel(signum, frame):
        print(f"Received signal {signum}. Cancelling the run...")
        cancel_event.set()

    signal.signal(signal.SIGINT, _cancel)
    signal.signal(signal.SIGTERM, _cancel)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.version:
        print(get_version())
        return EXIT_OK

    # Load environment variables from a .env file for local runs
    load_dotenv()

    if not args.config:
        print("❌ ERROR: configuration file is mandatory (-c config.yml)", file=sys.stderr)
        return EXIT_FAILURE

    cancel_event = threading.Event()
    try:
        settings = load_settings(args.config)
        print(f"Log level: {settings.debug_level}. Log group: {settings.log_group}")
        rule_matcher, container_filter = build_matchers(settings)

        session = boto3.session.Session(profile_name=args.profile, region_name=settings.aws_region)
        if args.profile:
            print(f"Using AWS profile '{args.profile}'")
        print_identity(session)
        senders = build_senders(settings, session)

        install_signal_handlers(cancel_event)
        if not args.no_wait and settings.ingestion_delay_seconds:
            print(f"Waiting {settings.ingestion_delay_seconds}s for CloudWatch ingestion...")
            if cancel_event.wait(settings.ingestion_delay_seconds):
                raise RunCancelledError("Cancelled while waiting for ingestion")

        started = time.monotonic()
        result = run_log_check(settings, create_logs_client(session), senders,
                               rule_matcher, container_filter, cancel_event=cancel_event)
        print(f"Log check finished in {time.monotonic() - started:.1f}s: {result}")
        return EXIT_OK
    except RunCancelledError as e:
        print(f"ℹ️ Run cancelled: {e}")
        return EXIT_CANCELLED
    except LogCheckError as e:
        print(f"❌ ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (ClientError, BotoCoreError) as e:
        print(f"❌ ERROR: AWS authentication failed: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
