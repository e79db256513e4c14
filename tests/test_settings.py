# tests/test_settings.py
import pytest

from lambdas.log_check.errors import ConfigurationError
from lambdas.log_check.models import (
    DEFAULT_MAX_REPORT_SIZE,
    DEFAULT_RULES_DIR,
    BucketState,
    ContainerInfo,
    StreamBucket,
    load_settings,
)

CONFIG_YAML = """
loggroup: /aws/containerinsights/prod/application
rulesdir: /etc/logcheck/rules
imagesToIgnore:
  - istio/proxyv2
containerNameToIgnore:
  - ^fluent-bit$
  - ^aws-node$
aws_region: eu-west-3
debuglevel: debug
smtp:
  server: smtp.example.com
  port: 587
  login: user
  password: secret
  tls: true
mailgun:
  domain: mg.example.com
  apikey: key-123
mailconfiguration:
  from_email: logcheck@example.com
  sendto: ops@example.com, dev@example.com
  subject: "[prod] log check"
  maxreportsize: 500000
"""


def test_load_settings_from_yaml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "config.yml"
    config_file.write_text(CONFIG_YAML)

    settings = load_settings(str(config_file))

    assert settings.log_group == "/aws/containerinsights/prod/application"
    assert str(settings.resolved_rules_dir()) == "/etc/logcheck/rules"
    assert settings.images_to_ignore == ["istio/proxyv2"]
    assert settings.container_names_to_ignore == ["^fluent-bit$", "^aws-node$"]
    assert settings.aws_region == "eu-west-3"
    assert settings.is_debug
    assert settings.smtp.is_configured()
    assert settings.mailgun.api_key == "key-123"
    assert not settings.ses.is_configured()
    assert settings.mail.sendto == ["ops@example.com", "dev@example.com"]
    assert settings.mail.max_report_size == 500000


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "config.yml"
    config_file.write_text("loggroup: my-group\n")

    settings = load_settings(str(config_file))

    assert settings.resolved_rules_dir() == DEFAULT_RULES_DIR
    assert settings.mail.max_report_size == DEFAULT_MAX_REPORT_SIZE
    assert settings.report_channel_size == 1000
    assert settings.ingestion_delay_seconds == 120
    assert not settings.smtp.is_configured()
    assert not settings.mailgun.is_configured()


def test_environment_fills_what_the_file_leaves_out(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOGGROUP", "from-env")
    monkeypatch.setenv("MAILGUN__DOMAIN", "mg.env.example.com")

    settings = load_settings()

    assert settings.log_group == "from-env"
    assert settings.mailgun.domain == "mg.env.example.com"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="Cannot read"):
        load_settings(str(tmp_path / "nope.yml"))


def test_invalid_yaml(tmp_path):
    config_file = tmp_path / "config.yml"
    config_file.write_text("loggroup: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Cannot parse"):
        load_settings(str(config_file))


def test_invalid_values(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "config.yml"
    config_file.write_text("mailconfiguration:\n  maxreportsize: -1\n")
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_settings(str(config_file))


def test_stream_bucket_states():
    bucket = StreamBucket("s")
    assert bucket.state is BucketState.UNSET

    bucket.identify(ContainerInfo(container_name="first"))
    bucket.identify(ContainerInfo(container_name="second"))
    assert bucket.state is BucketState.IDENTIFIED
    assert bucket.container.container_name == "first"

    bucket.exclude()
    bucket.identify(ContainerInfo(container_name="third"))
    assert bucket.is_excluded
    assert bucket.container.container_name == "first"


def test_report_size_under_smtp_is_still_honoured(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "config.yml"
    config_file.write_text(
        "loggroup: my-group\n"
        "smtp:\n  server: relay.local\n  port: 25\n  login: u\n  password: p\n  maxreportsize: 500\n"
        "mailconfiguration:\n  from_email: logcheck@example.com\n  sendto: ops@example.com\n"
    )

    settings = load_settings(str(config_file))

    assert settings.mail.max_report_size == 500
    assert settings.mail.sendto == ["ops@example.com"]
    assert settings.smtp.tls is False


def test_mailconfiguration_report_size_wins_over_smtp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "config.yml"
    config_file.write_text(
        "smtp:\n  maxreportsize: 500\n"
        "mailconfiguration:\n  maxreportsize: 800\n"
    )

    assert load_settings(str(config_file)).mail.max_report_size == 800


def test_report_size_under_smtp_without_mailconfiguration(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "config.yml"
    config_file.write_text("smtp:\n  maxreportsize: 700\n")

    assert load_settings(str(config_file)).mail.max_report_size == 700
