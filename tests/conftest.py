import re
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from utils.mail import mail
from utils.otp_service import OtpPolicy, OtpService
from utils.otp_store import OtpStore

CODE_RE = re.compile(r"\b(\d{6})\b")


class FakeClock:
    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(app):
    with mail.record_messages() as messages:
        yield messages


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def frozen_app(app, clock):
    """App whose OTP service reads the fake clock."""
    app.extensions['otp_service'].now = clock
    return app


@pytest.fixture
def sent():
    return []


@pytest.fixture
def service(app, clock, sent):
    def send_code(contact, code, purpose, ttl):
        sent.append({'contact': contact, 'code': code, 'purpose': purpose, 'ttl': ttl})

    return OtpService(
        store=OtpStore(db.session),
        send_code=send_code,
        secret=app.config['OTP_SECRET'],
        policy=OtpPolicy.from_config(app.config),
        now=clock,
    )


def code_from(message):
    return CODE_RE.search(message.body).group(1)


def wrong_code(code):
    return f"{(int(code) + 1) % 1_000_000:06d}"
