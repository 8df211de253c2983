import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from academy_office.application.errors import ConfigurationError
from academy_office.config import settings


def smtp_is_configured() -> bool:
    return bool(settings.smtp_host)


def send_email(*, to_email: str, subject: str, body_text: str) -> None:
    if not smtp_is_configured():
        raise ConfigurationError("SMTP host is not configured")
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
    message["To"] = to_email
    message.attach(MIMEText(body_text, "plain", "utf-8"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_user and settings.smtp_password:
            server.login(settings.smtp_user, settings.smtp_password)
        server.send_message(message)
