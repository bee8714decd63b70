from smtplib import SMTPException

import pytest

from conftest import code_from, wrong_code
from models import db
from models.otp import OtpRecord
from models.pending_registration import PendingRegistration
from models.user import User
from utils.auth_utils import hash_password

CONTACT = 'a@x.com'
PASSWORD = 'Secret123'


def request_otp(client, contact=CONTACT, **fields):
    return client.post('/auth/request-otp', json={'contact': contact, **fields})


def verify(client, code, contact=CONTACT):
    return client.post('/auth/verify-otp', json={'contact': contact, 'code': code})


def make_user(email='member@x.com', password=PASSWORD, **fields):
    user = User(email=email, name=fields.pop('name', 'Member'), password_hash=hash_password(password),
                email_verified=True, **fields)
    db.session.add(user)
    db.session.commit()
    return user


def test_health(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'healthy'


def test_signup_code_lifecycle(client, outbox):
    resp = request_otp(client)
    assert resp.status_code == 200
    assert resp.get_json()['expiresIn'] == 300
    assert len(outbox) == 1
    assert outbox[0].recipients == [CONTACT]
    code = code_from(outbox[0])

    resp = verify(client, wrong_code(code))
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid_otp'
    assert resp.get_json()['attemptsRemaining'] == 4

    resp = verify(client, code)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['verified'] is True
    assert body['verificationToken']

    resp = verify(client, code)
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'otp_already_used'


def test_expired_code(frozen_app, client, clock, outbox):
    request_otp(client)
    code = code_from(outbox[0])
    clock.advance(seconds=301)

    resp = verify(client, code)
    assert resp.status_code == 410
    assert resp.get_json()['error'] == 'otp_expired'


def test_attempt_cap_over_http(client, outbox):
    request_otp(client)
    code = code_from(outbox[0])
    bad = wrong_code(code)

    for remaining in (4, 3, 2, 1):
        body = verify(client, bad).get_json()
        assert body['error'] == 'invalid_otp'
        assert body['attemptsRemaining'] == remaining

    resp = verify(client, bad)
    assert resp.status_code == 429
    assert resp.get_json()['error'] == 'too_many_attempts'

    resp = verify(client, code)
    assert resp.get_json()['error'] == 'too_many_attempts'


def test_verify_without_request(client):
    resp = verify(client, '123456')
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'otp_not_found'


@pytest.mark.parametrize('payload, error', [
    ({'contact': 'not-an-email'}, 'invalid_email'),
    ({}, 'invalid_email'),
])
def test_request_otp_rejects_bad_email(client, outbox, payload, error):
    resp = client.post('/auth/request-otp', json=payload)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == error
    assert outbox == []
    assert OtpRecord.query.count() == 0


@pytest.mark.parametrize('code', ['12345', '1234567', 'abcdef', '12 456', ''])
def test_verify_rejects_malformed_code(client, code):
    resp = verify(client, code)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid_code_format'


def test_request_otp_for_existing_account(client, outbox):
    make_user(email=CONTACT)
    resp = request_otp(client)
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'user_exists'
    assert outbox == []


def test_request_otp_validates_profile_fields(client, outbox):
    resp = request_otp(client, name='A', age=400)
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['error'] == 'validation_error'
    assert {d['field'] for d in body['details']} == {'name', 'age'}
    assert outbox == []


def test_request_otp_rejects_weak_password(client):
    resp = request_otp(client, name='Alice', password='short')
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'validation_error'


def test_verify_creates_account_from_pending_profile(client, outbox):
    request_otp(client, name='Alice Doe', password=PASSWORD, phone='+1 555 0100', age=34,
                bloodType='O+', medicalConditions='asthma')
    pending = PendingRegistration.query.filter_by(email=CONTACT).one()
    assert pending.password_hash != PASSWORD

    resp = verify(client, code_from(outbox[0]))
    assert resp.status_code == 200
    user = resp.get_json()['user']
    assert user['email'] == CONTACT
    assert user['name'] == 'Alice Doe'
    assert user['blood_type'] == 'O+'
    assert user['age'] == 34
    assert user['email_verified'] is True
    assert PendingRegistration.query.count() == 0

    # logged in by the verification
    profile = client.get('/profile')
    assert profile.status_code == 200
    assert profile.get_json()['user']['medical_conditions'] == 'asthma'


def test_signup_with_verification_token(client, outbox):
    request_otp(client)
    token = verify(client, code_from(outbox[0])).get_json()['verificationToken']

    resp = client.post('/auth/signup', json={'verificationToken': token, 'name': 'Bob', 'password': PASSWORD})
    assert resp.status_code == 201
    assert resp.get_json()['user']['email'] == CONTACT

    resp = client.post('/auth/signup', json={'verificationToken': token, 'name': 'Bob', 'password': PASSWORD})
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'user_exists'


def test_signup_rejects_bad_token(client):
    resp = client.post('/auth/signup', json={'verificationToken': 'garbage', 'name': 'Bob', 'password': PASSWORD})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid_verification_token'


def test_signup_requires_name(client, outbox):
    request_otp(client)
    token = verify(client, code_from(outbox[0])).get_json()['verificationToken']

    resp = client.post('/auth/signup', json={'verificationToken': token, 'password': PASSWORD})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'validation_error'


# ---------- resend ----------

def test_resend_without_pending_registration(client):
    resp = client.post('/auth/resend-otp', json={'contact': CONTACT})
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'no_pending_registration'


def test_resend_replaces_code_and_keeps_profile(frozen_app, client, clock, outbox):
    request_otp(client, name='Alice Doe', password=PASSWORD)
    first = code_from(outbox[0])
    clock.advance(seconds=20)

    resp = client.post('/auth/resend-otp', json={'contact': CONTACT})
    assert resp.status_code == 200
    assert resp.get_json()['expiresIn'] == 300
    second = code_from(outbox[1])

    if first != second:
        assert verify(client, first).get_json()['error'] == 'invalid_otp'
    resp = verify(client, second)
    assert resp.get_json()['user']['name'] == 'Alice Doe'


def test_resend_rate_limited(frozen_app, client, clock, outbox):
    request_otp(client)
    for _ in range(3):
        clock.advance(seconds=5)
        assert client.post('/auth/resend-otp', json={'contact': CONTACT}).status_code == 200
    clock.advance(seconds=5)

    resp = client.post('/auth/resend-otp', json={'contact': CONTACT})
    assert resp.status_code == 429
    body = resp.get_json()
    assert body['error'] == 'rate_limited'
    # the first resend (t=5 s) leaves the window at t=305 s
    assert body['retryAfter'] == 285
    assert resp.headers['Retry-After'] == '285'
    assert len(outbox) == 4


def test_request_otp_rate_limited(frozen_app, client, clock, outbox):
    for _ in range(5):
        assert request_otp(client).status_code == 200
        clock.advance(seconds=1)

    resp = request_otp(client)
    assert resp.status_code == 429
    assert resp.get_json()['error'] == 'rate_limited'
    assert OtpRecord.query.count() == 5


def test_email_failure_then_resend(app, client, outbox):
    service = app.extensions['otp_service']
    working = service.send_code

    def broken(*args):
        raise SMTPException('relay refused')

    service.send_code = broken
    resp = request_otp(client, name='Alice Doe', password=PASSWORD)
    assert resp.status_code == 502
    body = resp.get_json()
    assert body['error'] == 'email_delivery_failed'
    assert body['expiresIn'] == 300
    assert OtpRecord.query.count() == 1
    assert PendingRegistration.query.filter_by(email=CONTACT).count() == 1

    service.send_code = working
    resp = client.post('/auth/resend-otp', json={'contact': CONTACT})
    assert resp.status_code == 200
    assert verify(client, code_from(outbox[-1])).get_json()['user']['name'] == 'Alice Doe'


# ---------- login ----------

def test_login_and_logout(client):
    make_user()
    resp = client.post('/auth/login', json={'email': 'Member@X.com ', 'password': PASSWORD})
    assert resp.status_code == 200
    assert resp.get_json()['user']['email'] == 'member@x.com'
    assert client.get('/profile').status_code == 200

    assert client.post('/auth/logout').status_code == 200
    assert client.get('/profile').status_code == 401


def test_login_wrong_password(client):
    make_user()
    resp = client.post('/auth/login', json={'email': 'member@x.com', 'password': 'Wrong1234'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'invalid_credentials'


def test_login_has_no_demo_account(client):
    resp = client.post('/auth/login', json={'email': 'test@example.com', 'password': 'Test1234'})
    assert resp.status_code == 401


def test_login_inactive_account(client):
    make_user(is_active=False)
    resp = client.post('/auth/login', json={'email': 'member@x.com', 'password': PASSWORD})
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'account_inactive'


# ---------- password reset ----------

def test_password_reset_flow(client, outbox):
    make_user()
    resp = client.post('/auth/password-reset/request', json={'contact': 'member@x.com'})
    assert resp.status_code == 200
    assert resp.get_json()['expiresIn'] == 600
    assert outbox[0].subject == 'Reset Your Password'
    code = code_from(outbox[0])

    resp = client.post('/auth/password-reset/confirm',
                       json={'contact': 'member@x.com', 'code': code, 'password': 'NewSecret456'})
    assert resp.status_code == 200
    assert resp.get_json()['reset'] is True

    assert client.post('/auth/login', json={'email': 'member@x.com', 'password': PASSWORD}).status_code == 401
    assert client.post('/auth/login', json={'email': 'member@x.com', 'password': 'NewSecret456'}).status_code == 200


def test_password_reset_for_unknown_email_looks_the_same(client, outbox):
    resp = client.post('/auth/password-reset/request', json={'contact': 'nobody@x.com'})
    assert resp.status_code == 200
    assert resp.get_json()['expiresIn'] == 600
    assert outbox == []
    assert OtpRecord.query.count() == 0


def test_password_reset_weak_password_keeps_code(client, outbox):
    make_user()
    client.post('/auth/password-reset/request', json={'contact': 'member@x.com'})
    code = code_from(outbox[0])

    resp = client.post('/auth/password-reset/confirm',
                       json={'contact': 'member@x.com', 'code': code, 'password': 'weak'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'validation_error'

    resp = client.post('/auth/password-reset/confirm',
                       json={'contact': 'member@x.com', 'code': code, 'password': 'NewSecret456'})
    assert resp.status_code == 200


def test_password_reset_code_does_not_verify_signup(client, outbox):
    make_user()
    client.post('/auth/password-reset/request', json={'contact': 'member@x.com'})
    resp = verify(client, code_from(outbox[0]), contact='member@x.com')
    assert resp.get_json()['error'] == 'otp_not_found'


def test_password_reset_resend(frozen_app, client, clock, outbox):
    make_user()
    client.post('/auth/password-reset/request', json={'contact': 'member@x.com'})
    clock.advance(seconds=30)

    resp = client.post('/auth/password-reset/resend', json={'contact': 'member@x.com'})
    assert resp.status_code == 200
    assert len(outbox) == 2


# ---------- signup form ownership ----------

def test_second_signup_form_cannot_take_over_account(client, outbox):
    request_otp(client, contact='v@x.com', name='Victim', password='VictimPass1')
    request_otp(client, contact='v@x.com', name='Mallory', password='Attacker99X')
    assert PendingRegistration.query.filter_by(email='v@x.com').count() == 0

    resp = verify(client, code_from(outbox[-1]), contact='v@x.com')
    assert resp.status_code == 200
    body = resp.get_json()
    assert 'user' not in body
    assert User.query.filter_by(email='v@x.com').count() == 0
    assert client.post('/auth/login', json={'email': 'v@x.com', 'password': 'Attacker99X'}).status_code == 401

    # the inbox owner chooses the password
    resp = client.post('/auth/signup', json={'verificationToken': body['verificationToken'],
                                             'name': 'Victim', 'password': 'VictimPass1'})
    assert resp.status_code == 201
    assert client.post('/auth/login', json={'email': 'v@x.com', 'password': 'VictimPass1'}).status_code == 200


def test_form_is_only_used_with_its_own_code(client, outbox):
    request_otp(client, name='Alice Doe', password=PASSWORD)
    pending = PendingRegistration.query.filter_by(email=CONTACT).one()
    pending.otp_record_id = 'not-the-issued-record'
    db.session.commit()

    body = verify(client, code_from(outbox[0])).get_json()
    assert 'user' not in body
    assert body['verificationToken']
    assert User.query.count() == 0


def test_form_of_a_used_code_is_replaced(client, outbox):
    request_otp(client, name='Alice Doe')
    assert 'user' not in verify(client, code_from(outbox[0])).get_json()

    request_otp(client, name='Alice Smith', password=PASSWORD)
    resp = verify(client, code_from(outbox[1]))
    assert resp.get_json()['user']['name'] == 'Alice Smith'


def test_concurrent_signup_forms_do_not_fail(client, outbox, monkeypatch):
    db.session.add(PendingRegistration(email=CONTACT, name='Other Tab'))
    db.session.commit()
    # both requests looked for a pending form before either stored one
    monkeypatch.setattr('routes.auth._pending_for', lambda contact: None)

    resp = request_otp(client, name='Alice Doe', password=PASSWORD)
    assert resp.status_code == 200
    assert PendingRegistration.query.filter_by(email=CONTACT).count() == 0

    body = verify(client, code_from(outbox[0])).get_json()
    assert body['verificationToken']
    assert User.query.count() == 0


# ---------- malformed input ----------

def test_non_ascii_digits_do_not_touch_the_record(client, outbox):
    request_otp(client)

    resp = verify(client, '١٢٣٤٥٦')
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid_code_format'
    assert OtpRecord.query.filter_by(contact=CONTACT).one().attempts == 0


@pytest.mark.parametrize('body', [['a@x.com'], 'a@x.com', 42])
@pytest.mark.parametrize('path', ['/auth/request-otp', '/auth/verify-otp', '/auth/login',
                                  '/auth/password-reset/request'])
def test_json_body_must_be_an_object(client, outbox, path, body):
    resp = client.post(path, json=body)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'validation_error'
    assert outbox == []
