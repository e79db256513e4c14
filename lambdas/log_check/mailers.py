# lambdas/log_check/mailers.py
"""
Mail transports used to deliver report chunks.

Every sender exposes send(from_email, from_name, subject, html_body, recipients)
and raises ReportDispatchError when the message could not be handed over.
"""
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import List, Optional, Protocol, Sequence

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigurationError, ReportDispatchError
from .models import AppSettings, MailgunConfig, SmtpConfig


class ReportSender(Protocol):
    name: str

    def send(self, from_email: str, from_name: str, subject: str, html_body: str, recipients: Sequence[str]) -> None:
        ...


def _sender_address(from_email: str, from_name: str) -> str:
    return formataddr((from_name, from_email)) if from_name else from_email


class SesReportSender:
    """Sends the report through Amazon SES."""
    name = "ses"

    def __init__(self, ses_client):
        self.ses = ses_client

    def send(self, from_email, from_name, subject, html_body, recipients):
        try:
            self.ses.send_email(
                Destination={'ToAddresses': list(recipients)},
                Message={
                    'Body': {'Html': {'Charset': "UTF-8", 'Data': html_body}},
                    'Subject': {'Charset': "UTF-8", 'Data': subject},
                },
                Source=_sender_address(from_email, from_name),
            )
        except ClientError as e:
            raise ReportDispatchError(f"AWS SES error: {e.response['Error']['Message']}") from e
        except BotoCoreError as e:
            raise ReportDispatchError(f"AWS SES error: {e}") from e


class SmtpReportSender:
    """Sends the report through an SMTP relay, upgrading the connection with STARTTLS when tls is set."""
    name = "smtp"

    def __init__(self, config: SmtpConfig, timeout: int = 30):
        if not (config.server and config.login and config.password):
            raise ConfigurationError("SMTP login, password and server are mandatory")
        if not config.port:
            raise ConfigurationError("SMTP port is mandatory")
        self.config = config
        self.timeout = timeout

    def _build_message(self, from_email, from_name, subject, html_body, recipients) -> EmailMessage:
        message = EmailMessage()
        message['From'] = _sender_address(from_email, from_name)
        message['To'] = ", ".join(recipients)
        message['Subject'] = subject
        message.set_content(html_body, subtype='html', charset='utf-8')
        return message

    def send(self, from_email, from_name, subject, html_body, recipients):
        message = self._build_message(from_email, from_name, subject, html_body, recipients)
        try:
            with smtplib.SMTP(self.config.server, self.config.port, timeout=self.timeout) as smtp:
                if self.config.tls:
                    smtp.starttls(context=ssl.create_default_context())
                smtp.login(self.config.login, self.config.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise ReportDispatchError(f"SMTP error via {self.config.server}:{self.config.port}: {e}") from e


class MailgunReportSender:
    """Sends the report through the Mailgun messages API."""
    name = "mailgun"

    def __init__(self, config: MailgunConfig, timeout: int = 10):
        if not config.is_configured():
            raise ConfigurationError("Mailgun domain and api key are mandatory")
        self.config = config
        self.timeout = timeout

    def send(self, from_email, from_name, subject, html_body, recipients):
        url = f"{self.config.base_url.rstrip('/')}/{self.config.domain}/messages"
        try:
            response = requests.post(
                url,
                auth=("api", self.config.api_key),
                data={
                    "from": _sender_address(from_email, from_name),
                    "to": list(recipients),
                    "subject": subject,
                    "html": html_body,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ReportDispatchError(f"Mailgun error: {e}") from e
        print(f"Mailgun accepted the message: {response.text.strip()}")


def build_senders(settings: AppSettings, session: Optional[boto3.session.Session] = None) -> List[ReportSender]:
    """
    Builds one sender per configured transport.

    Raises:
        ConfigurationError: If no transport is configured or the mail addresses are missing.
    """
    mail = settings.mail
    if not mail.from_email or not mail.sendto:
        raise ConfigurationError("mailconfiguration.from_email and mailconfiguration.sendto are mandatory")

    senders: List[ReportSender] = []
    if settings.mailgun.is_configured():
        senders.append(MailgunReportSender(settings.mailgun))
    if settings.smtp.is_configured():
        senders.append(SmtpReportSender(settings.smtp))
    if settings.ses.is_configured():
        session = session or boto3.session.Session()
        ses_client = session.client('ses', region_name=settings.ses.region or settings.aws_region)
        senders.append(SesReportSender(ses_client))

    if not senders:
        raise ConfigurationError("No mail transport configured (smtp, mailgun or ses)")
    print(f"Report transports: {', '.join(s.name for s in senders)}")
    return senders


def dispatch_report(senders: Sequence[ReportSender], settings: AppSettings, subject: str, html_body: str) -> None:
    """
    Sends the report through every sender. A failing transport does not stop the others.

    Raises:
        ReportDispatchError: If at least one transport failed.
    """
    mail = settings.mail
    failures = []
    for sender in senders:
        try:
            sender.send(mail.from_email, mail.from_name, subject, html_body, mail.sendto)
            print(f"✅ Report '{subject}' sent with {sender.name} to: {', '.join(mail.sendto)}")
        except ReportDispatchError as e:
            failures.append(f"{sender.name}: {e}")
    if failures:
        raise ReportDispatchError("; ".join(failures))
