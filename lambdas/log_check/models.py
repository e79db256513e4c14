# lambdas/log_check/models.py
"""
Settings and plain-dataclass models for the log check.

Settings come from a YAML file (keys as written by operators), environment
variables and an optional .env file. Values passed in explicitly (the YAML
content) win over the environment.
"""
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

# Rules shipped with the function, used when no rules directory is configured.
DEFAULT_RULES_DIR = Path(__file__).parent / "default_rules"

DEFAULT_MAX_REPORT_SIZE = 2_000_000  # bytes


class SmtpConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')
    server: str = ""
    port: int = 0
    login: str = ""
    password: str = ""
    tls: bool = False

    def is_configured(self) -> bool:
        return bool(self.server and self.port and self.login and self.password)


class MailgunConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')
    domain: str = ""
    api_key: str = Field("", alias='apikey')
    base_url: str = "https://api.mailgun.net/v3"

    def is_configured(self) -> bool:
        return bool(self.domain and self.api_key)


class SesConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')
    enabled: bool = False
    # Falls back to the top-level aws_region when empty.
    region: str = ""

    def is_configured(self) -> bool:
        return self.enabled


class MailConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')
    from_email: str = ""
    from_name: str = ""
    sendto: List[str] = Field(default_factory=list)
    subject: str = "[Alert] CloudWatch Log Check"
    max_report_size: int = Field(DEFAULT_MAX_REPORT_SIZE, alias='maxreportsize', gt=0)

    @field_validator('sendto', mode='before')
    @classmethod
    def _split_recipients(cls, value):
        # "a@x.com, b@y.com" is accepted like the RECIPIENT_EMAIL variable of the alert lambdas
        if value is None:
            return []
        if isinstance(value, str):
            return [email.strip() for email in value.split(",") if email.strip()]
        return value


class AppSettings(BaseSettings):
    """
    Manages configuration using Pydantic BaseSettings.
    It reads the environment (and a .env file) for anything the YAML file does not set.
    """
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_nested_delimiter='__',
        extra='ignore',
        populate_by_name=True,
    )

    log_group: str = Field("", alias='loggroup')
    rules_dir: Optional[str] = Field(None, alias='rulesdir')
    images_to_ignore: List[str] = Field(default_factory=list, alias='imagesToIgnore')
    container_names_to_ignore: List[str] = Field(default_factory=list, alias='containerNameToIgnore')
    aws_region: str = Field("us-east-1", alias='aws_region')
    debug_level: str = Field("info", alias='debuglevel')

    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    mailgun: MailgunConfig = Field(default_factory=MailgunConfig)
    ses: SesConfig = Field(default_factory=SesConfig)
    mail: MailConfig = Field(default_factory=MailConfig, alias='mailconfiguration')

    # Seconds to wait before scanning so CloudWatch has ingested the last minutes of the hour.
    ingestion_delay_seconds: int = Field(120, alias='ingestion_delay', ge=0)
    report_channel_size: int = Field(1000, alias='report_channel_size', gt=0)
    report_dir: Optional[str] = Field(None, alias='report_dir')

    @model_validator(mode='before')
    @classmethod
    def _report_size_from_smtp(cls, data):
        # Older files set the report size as smtp.maxreportsize
        if not isinstance(data, dict):
            return data
        smtp = data.get('smtp')
        if not isinstance(smtp, dict) or 'maxreportsize' not in smtp:
            return data
        mail_key = 'mail' if 'mail' in data else 'mailconfiguration'
        mail = data.get(mail_key)
        if mail is None:
            mail = {}
        if not isinstance(mail, dict) or 'maxreportsize' in mail or 'max_report_size' in mail:
            return data
        data = dict(data)
        data[mail_key] = {**mail, 'maxreportsize': smtp['maxreportsize']}
        return data

    def resolved_rules_dir(self) -> Path:
        if self.rules_dir:
            return Path(self.rules_dir)
        return DEFAULT_RULES_DIR

    @property
    def is_debug(self) -> bool:
        return self.debug_level.lower() == "debug"


def load_settings(config_path: Optional[str] = None) -> AppSettings:
    """
    Builds the settings from an optional YAML file plus the environment.

    Raises:
        ConfigurationError: If the file cannot be read or parsed, or the values are invalid.
    """
    data = {}
    if config_path:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file '{config_path}': {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse configuration file '{config_path}': {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file '{config_path}' must contain a mapping")

    try:
        return AppSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


# Data models
@dataclass(frozen=True)
class ContainerInfo:
    """Kubernetes identity of the container that wrote a log line."""
    pod_name: str = ""
    container_image: str = ""
    container_name: str = ""
    namespace_name: str = ""


@dataclass(frozen=True)
class LogLine:
    """A decoded log envelope: the line text and its container."""
    log: str
    container: ContainerInfo


class BucketState(enum.Enum):
    UNSET = "unset"
    IDENTIFIED = "identified"
    EXCLUDED = "excluded"


@dataclass
class StreamBucket:
    """
    Accepted events of one log stream.
    The header identity is the first non-ignored container seen on the stream;
    once EXCLUDED the bucket never goes back and is never emitted.
    """
    stream_name: str
    state: BucketState = BucketState.UNSET
    container: Optional[ContainerInfo] = None
    events: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def is_excluded(self) -> bool:
        return self.state is BucketState.EXCLUDED

    def identify(self, container: ContainerInfo) -> None:
        if self.state is BucketState.UNSET:
            self.state = BucketState.IDENTIFIED
            self.container = container

    def exclude(self) -> None:
        self.state = BucketState.EXCLUDED

    def append(self, timestamp: int, message: str) -> None:
        self.events.append((timestamp, message))


@dataclass
class LogCheckResult:
    """Counters for one run, returned by the pipeline and printed by the entry points."""
    log_group: str
    start_ms: int
    end_ms: int
    events_seen: int = 0
    events_ignored: int = 0
    malformed_events: int = 0
    streams_emitted: int = 0
    streams_excluded: int = 0
    lines_emitted: int = 0
    reports_dispatched: int = 0
    dispatch_failures: int = 0
