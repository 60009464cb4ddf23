from __future__ import annotations

import smtplib

import pytest

from csv2table.models.config_models import EmailConfig, PlainAuth
from csv2table.models.processing_result import ImportFileStatus
from csv2table.services.notification import (
    NotificationError,
    build_context,
    email_configured,
    render_message,
    send_notification,
)

OK = ImportFileStatus(file_name="a.csv", error=None, row_count=10)
FAILED = ImportFileStatus(file_name="b.csv", error="row 2: expected 3 columns, got 1", row_count=0)


def _cfg(**kwargs) -> EmailConfig:
    kwargs.setdefault("from_addr", "etl@example.com")
    kwargs.setdefault("to", ("ops@example.com",))
    kwargs.setdefault("smtp_server", "smtp.example.com:587")
    return EmailConfig(**kwargs)


class FakeSMTP:
    instances: list[FakeSMTP] = []

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.calls: list[str] = []
        self.sent = []
        self.login_args = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")

    def ehlo(self):
        self.calls.append("ehlo")

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.login_args = (user, password)

    def send_message(self, msg):
        self.sent.append(msg)


@pytest.fixture(autouse=True)
def _clear_smtp():
    FakeSMTP.instances.clear()


def test_build_context_counts():
    ctx = build_context([OK, FAILED])
    assert ctx["success_count"] == 1
    assert ctx["error_count"] == 1
    assert ctx["files"] == [OK, FAILED]


def test_email_configured():
    assert email_configured(_cfg())
    assert not email_configured(None)
    assert not email_configured(_cfg(to=()))
    assert not email_configured(_cfg(smtp_server=""))


def test_render_success_message_defaults():
    msg = render_message(_cfg(), [OK])
    assert msg["Subject"] == "csv2table: imported 1 file(s)"
    assert msg["To"] == "ops@example.com"
    body = msg.get_content()
    assert "a.csv: Imported 10 rows" in body
    assert msg.get_content_subtype() == "html"


def test_render_error_message_uses_error_templates():
    cfg = _cfg(error_subject="{{ error_count }} failed", error_body="{% for f in files %}{{ f.file_name }};{% endfor %}")
    msg = render_message(cfg, [OK, FAILED])
    assert msg["Subject"] == "1 failed"
    assert msg.get_content().strip() == "a.csv;b.csv;"


def test_render_body_escapes_html():
    status = ImportFileStatus(file_name="<x>.csv", error=None, row_count=1)
    body = render_message(_cfg(), [status]).get_content()
    assert "&lt;x&gt;.csv" in body


def test_render_invalid_template():
    with pytest.raises(NotificationError, match="invalid email template"):
        render_message(_cfg(success_subject="{{ unknown_var }}"), [OK])


def test_send_notification_delivers():
    cfg = _cfg(cc=("lead@example.com",), bcc=("audit@example.com",), plain_auth=PlainAuth(username="etl", password="pw"))
    assert send_notification(cfg, [OK], smtp_factory=FakeSMTP) is True
    [smtp] = FakeSMTP.instances
    assert (smtp.host, smtp.port) == ("smtp.example.com", 587)
    assert smtp.calls == ["ehlo", "starttls", "ehlo", "quit"]
    assert smtp.login_args == ("etl", "pw")
    [msg] = smtp.sent
    assert msg["Cc"] == "lead@example.com"
    assert msg["Bcc"] == "audit@example.com"


def test_send_notification_default_port_and_no_login():
    send_notification(_cfg(smtp_server="mail.local"), [OK], smtp_factory=FakeSMTP)
    [smtp] = FakeSMTP.instances
    assert smtp.port == 25
    assert smtp.login_args is None


def test_send_notification_respects_flags():
    assert send_notification(_cfg(send_on_success=False), [OK], smtp_factory=FakeSMTP) is False
    assert send_notification(_cfg(send_on_error=False), [OK, FAILED], smtp_factory=FakeSMTP) is False
    assert send_notification(None, [OK], smtp_factory=FakeSMTP) is False
    assert FakeSMTP.instances == []


def test_send_notification_smtp_failure():
    class BrokenSMTP(FakeSMTP):
        def send_message(self, msg):
            raise smtplib.SMTPRecipientsRefused({"ops@example.com": (550, b"no such user")})

    with pytest.raises(NotificationError, match="failed sending email via smtp.example.com:587"):
        send_notification(_cfg(), [OK], smtp_factory=BrokenSMTP)


def test_send_notification_invalid_port():
    with pytest.raises(NotificationError, match="invalid smtpServer port"):
        send_notification(_cfg(smtp_server="smtp.example.com:abc"), [OK], smtp_factory=FakeSMTP)
