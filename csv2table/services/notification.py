from __future__ import annotations

import logging
import smtplib
from collections.abc import Callable, Sequence
from email.message import EmailMessage
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from ..models.config_models import EmailConfig
from ..models.processing_result import ImportFileStatus

"""Email notification of a run's outcome.

Subject and body are Jinja2 templates rendered with:
- success_count: number of imported files
- error_count: number of failed files
- files: the ImportFileStatus list (file_name, error, row_count)

The success templates are used when every file was imported, the error
templates as soon as one file failed. Bodies are sent as HTML.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "NotificationError",
    "email_configured",
    "build_context",
    "render_message",
    "send_notification",
]

DEFAULT_SUCCESS_SUBJECT = "csv2table: imported {{ success_count }} file(s)"
DEFAULT_ERROR_SUBJECT = "csv2table: import errors"

DEFAULT_BODY = """
Hello,<br/><br/>

{% if success_count %}
    Successfully imported {{ success_count }} file(s).<br/>
{% endif %}
{% if error_count %}
    <span style="color:red">{{ error_count }} file(s) produced errors.</span><br/>
{% endif %}

<ol>
{% for file in files %}
    <li>
    {% if file.error %}
        {{ file.file_name }}: Error: {{ file.error }}
    {% else %}
        {{ file.file_name }}: Imported {{ file.row_count }} rows
    {% endif %}
    </li>
{% endfor %}
</ol>

Bye.
"""

DEFAULT_SMTP_PORT = 25

_subject_env = Environment(undefined=StrictUndefined, autoescape=False)
_body_env = Environment(undefined=StrictUndefined, autoescape=True)


class NotificationError(Exception):
    pass


def email_configured(cfg: EmailConfig | None) -> bool:
    """True if an SMTP server, a sender and at least one recipient are set."""
    return bool(cfg is not None and cfg.smtp_server and cfg.from_addr and cfg.to)


def build_context(statuses: Sequence[ImportFileStatus]) -> dict[str, Any]:
    success_count = sum(1 for s in statuses if s.succeeded)
    return {
        "success_count": success_count,
        "error_count": len(statuses) - success_count,
        "files": list(statuses),
    }


def render_message(cfg: EmailConfig, statuses: Sequence[ImportFileStatus]) -> EmailMessage:
    """Render subject and body into an EmailMessage.

    Raises:
        NotificationError: If a template is invalid
    """
    context = build_context(statuses)
    if context["error_count"]:
        subject_tpl = cfg.error_subject or DEFAULT_ERROR_SUBJECT
        body_tpl = cfg.error_body or DEFAULT_BODY
    else:
        subject_tpl = cfg.success_subject or DEFAULT_SUCCESS_SUBJECT
        body_tpl = cfg.success_body or DEFAULT_BODY

    try:
        subject = _subject_env.from_string(subject_tpl).render(context)
        body = _body_env.from_string(body_tpl).render(context)
    except TemplateError as e:
        raise NotificationError(f"invalid email template: {e}") from e

    msg = EmailMessage()
    # 件名に改行が含まれるとヘッダ不正になるため 1 行に畳む
    msg["Subject"] = " ".join(subject.split())
    msg["From"] = cfg.from_addr
    msg["To"] = ", ".join(cfg.to)
    if cfg.cc:
        msg["Cc"] = ", ".join(cfg.cc)
    if cfg.bcc:
        msg["Bcc"] = ", ".join(cfg.bcc)
    msg.set_content(body, subtype="html")
    return msg


def _split_server(smtp_server: str) -> tuple[str, int]:
    host, sep, port = smtp_server.rpartition(":")
    if not sep:
        return smtp_server, DEFAULT_SMTP_PORT
    try:
        return host, int(port)
    except ValueError as e:
        raise NotificationError(f"invalid smtpServer port: {smtp_server!r}") from e


def send_notification(
    cfg: EmailConfig | None,
    statuses: Sequence[ImportFileStatus],
    smtp_factory: Callable[..., Any] = smtplib.SMTP,
) -> bool:
    """Send the outcome email if configured and enabled for this outcome.

    Returns:
        True if an email was sent

    Raises:
        NotificationError: If rendering or SMTP delivery fails
    """
    if cfg is None or not email_configured(cfg):
        logger.debug("email not configured, skipping notification")
        return False

    failed = any(not s.succeeded for s in statuses)
    if failed and not cfg.send_on_error:
        return False
    if not failed and not cfg.send_on_success:
        return False

    msg = render_message(cfg, statuses)
    host, port = _split_server(cfg.smtp_server)
    auth = cfg.plain_auth

    try:
        with smtp_factory(host, port) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if auth.username:
                smtp.login(auth.username, auth.password)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise NotificationError(f"failed sending email via {cfg.smtp_server}: {e}") from e

    logger.info(f"notification sent to {', '.join(cfg.to)}")
    return True
