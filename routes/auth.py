"""
Authentication routes: OTP signup, login, password reset by OTP.
All endpoints take JSON (or form) and answer JSON; failures are OtpError
subclasses rendered by the app-level error handler.
"""
import logging

from flask import Blueprint, jsonify, request
from flask_login import login_user, logout_user
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.otp import PURPOSE_PASSWORD_RESET, PURPOSE_REGISTRATION
from models.pending_registration import PendingRegistration
from models.user import User
from utils.auth_utils import hash_password, verify_password
from utils.errors import (
    EmailDeliveryFailed,
    InfrastructureError,
    InvalidCodeFormat,
    InvalidCredentials,
    InvalidEmail,
    InvalidVerificationToken,
    AccountInactive,
    OtpNotFound,
    UserExists,
    ValidationError,
)
from utils.logger import mask_email
from utils.otp_service import get_otp_service
from utils.profile import RegistrationProfile
from utils.validators import normalize_email, validate_email, validate_otp_code, validate_password
from utils.verification_token import (
    create_registration_verification_token,
    verify_registration_verification_token,
)

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

OTP_SUCCESS_MSG = "Verification code sent. Check your email."
OTP_VERIFY_SUCCESS_MSG = "Email verified successfully."
RESET_REQUEST_MSG = "If an account exists with that email, a reset code has been sent."


def request_data():
    """The JSON object body, or the form when the body is not JSON."""
    data = request.get_json(silent=True)
    if data is None:
        return request.form
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def commit_or_raise(action):
    """Commit db.session; map database failures to InfrastructureError."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error while {action}: {str(e)}", exc_info=True)
        raise InfrastructureError() from e


def _contact_from(data, *keys):
    for key in keys:
        if data.get(key):
            contact = normalize_email(data.get(key))
            break
    else:
        contact = ''
    if not validate_email(contact):
        raise InvalidEmail()
    return contact


def _code_from(data):
    code = str(data.get('code') or data.get('otp') or '').strip()
    if not validate_otp_code(code):
        raise InvalidCodeFormat()
    return code


def _checked_password(data, required):
    password = data.get('password') or ''
    if not password and not required:
        return None
    is_valid, error = validate_password(password)
    if not is_valid:
        raise ValidationError(error, details=[{'field': 'password', 'message': error}])
    return password


def _pending_for(contact):
    return PendingRegistration.query.filter_by(email=contact).first()


def _drop_pending(contact):
    PendingRegistration.query.filter_by(email=contact).delete()
    commit_or_raise('dropping pending registration')


def _is_awaiting_code(pending):
    """True while the code this form was sent with can still be verified or resent."""
    if pending.otp_record_id is None:
        return False
    record = get_otp_service().store.get(pending.otp_record_id)
    return record is not None and not record.consumed


def _store_pending_registration(contact, profile, password, record_id):
    """
    Hold the signup form until the code issued with it (record_id) is verified.

    A form still waiting on its code is never replaced. Both submissions are
    dropped and whoever reads the new code finishes through the verification
    token and /auth/signup. Returns True when a form is held.
    """
    pending = _pending_for(contact)
    if pending is not None and _is_awaiting_code(pending):
        _drop_pending(contact)
        logger.warning("Second signup form for %s while a code was pending; form data dropped",
                       mask_email(contact))
        return False
    if not profile.provided() and password is None:
        if pending is not None:
            _drop_pending(contact)
        return False

    if pending is None:
        pending = PendingRegistration(email=contact)
        db.session.add(pending)
    pending.clear()
    profile.apply_to(pending)
    if password is not None:
        pending.password_hash = hash_password(password)
    pending.otp_record_id = record_id
    try:
        commit_or_raise('saving pending registration')
    except IntegrityError:
        # A concurrent request stored a form for the same email.
        _drop_pending(contact)
        logger.warning("Concurrent signup forms for %s; form data dropped", mask_email(contact))
        return False
    return True


def _rebind_pending(contact, record_id):
    """A resent code carries the form submitted earlier."""
    pending = _pending_for(contact)
    if pending is not None:
        pending.otp_record_id = record_id
        commit_or_raise('rebinding pending registration')


def _create_user(email, profile, password_hash):
    if not profile.name:
        raise ValidationError("Name is required.", details=[{'field': 'name', 'message': 'Name is required.'}])
    if User.query.filter_by(email=email).first():
        raise UserExists()
    user = User(email=email, password_hash=password_hash, email_verified=True, is_active=True)
    profile.apply_to(user)
    db.session.add(user)
    PendingRegistration.query.filter_by(email=email).delete()
    try:
        commit_or_raise('creating user')
    except IntegrityError:
        raise UserExists()
    logger.info("User created: %s", mask_email(email))
    return user


# ---------- OTP signup ----------

@auth_bp.route('/request-otp', methods=['POST'])
def request_otp():
    """
    Send a signup code. Input: contact (email), optional profile fields and password.
    Profile fields are held until the code is verified.
    """
    data = request_data()
    contact = _contact_from(data, 'contact', 'email')
    profile = RegistrationProfile.from_json(data)
    password = _checked_password(data, required=False)

    if User.query.filter_by(email=contact).first():
        raise UserExists()

    service = get_otp_service()
    try:
        service.purge_expired()
    except InfrastructureError:
        logger.warning("Skipping OTP housekeeping; store unavailable")

    try:
        result = service.issue(contact, PURPOSE_REGISTRATION)
    except EmailDeliveryFailed as e:
        # The record exists, so keep the form data for a later resend.
        _store_pending_registration(contact, profile, password, e.record_id)
        raise
    _store_pending_registration(contact, profile, password, result.record_id)
    return jsonify({"success": True, "message": OTP_SUCCESS_MSG, "expiresIn": result.expires_in})


@auth_bp.route('/verify-otp', methods=['POST'])
def verify_otp():
    """
    Verify a signup code. Input: contact, code.
    Creates and logs in the account when a complete signup form is pending,
    otherwise returns a verificationToken for /auth/signup.
    """
    data = request_data()
    contact = _contact_from(data, 'contact', 'email')
    code = _code_from(data)

    record = get_otp_service().verify(contact, code, PURPOSE_REGISTRATION)

    pending = _pending_for(contact)
    if pending is not None and pending.otp_record_id == record.id and pending.is_complete():
        user = _create_user(contact, RegistrationProfile.from_model(pending), pending.password_hash)
        login_user(user, remember=True)
        return jsonify({
            "success": True,
            "verified": True,
            "message": OTP_VERIFY_SUCCESS_MSG,
            "user": user.to_dict(),
        })

    return jsonify({
        "success": True,
        "verified": True,
        "message": OTP_VERIFY_SUCCESS_MSG,
        "verificationToken": create_registration_verification_token(contact),
    })


@auth_bp.route('/resend-otp', methods=['POST'])
def resend_otp():
    """Resend a signup code; the pending form data is reused as is."""
    contact = _contact_from(request_data(), 'contact', 'email')
    try:
        result = get_otp_service().resend(contact, PURPOSE_REGISTRATION)
    except EmailDeliveryFailed as e:
        _rebind_pending(contact, e.record_id)
        raise
    _rebind_pending(contact, result.record_id)
    return jsonify({"success": True, "message": OTP_SUCCESS_MSG, "expiresIn": result.expires_in})


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Create the account for an email verified earlier. Input: verificationToken, name, password, profile."""
    data = request_data()
    email = verify_registration_verification_token(data.get('verificationToken') or data.get('verification_token'))
    if email is None:
        raise InvalidVerificationToken()
    profile = RegistrationProfile.from_json(data)
    password = _checked_password(data, required=True)

    user = _create_user(email, profile, hash_password(password))
    login_user(user, remember=True)
    return jsonify({"success": True, "message": "Registration successful.", "user": user.to_dict()}), 201


# ---------- login ----------

@auth_bp.route('/login', methods=['POST'])
def login():
    """Email + password login."""
    data = request_data()
    email = normalize_email(data.get('email'))
    password = data.get('password') or ''
    if not email or not password:
        raise ValidationError("Email and password are required.")

    user = User.query.filter_by(email=email).first()
    if user is None or not verify_password(user.password_hash, password):
        logger.warning("Failed login for %s", mask_email(email))
        raise InvalidCredentials()
    if not user.is_active:
        raise AccountInactive()

    login_user(user, remember=True)
    logger.info("Login: %s", mask_email(email))
    return jsonify({"success": True, "message": "Login successful.", "user": user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return jsonify({"success": True, "message": "You have been logged out."})


# ---------- password reset ----------

@auth_bp.route('/password-reset/request', methods=['POST'])
def password_reset_request():
    """
    Send a reset code if the account exists. The response is the same
    either way so the endpoint cannot be used to probe for accounts.
    """
    contact = _contact_from(request_data(), 'contact', 'email')
    service = get_otp_service()
    expires_in = service.ttl_for(PURPOSE_PASSWORD_RESET)

    user = User.query.filter_by(email=contact).first()
    if user is not None and user.is_active:
        try:
            expires_in = service.issue(contact, PURPOSE_PASSWORD_RESET).expires_in
        except EmailDeliveryFailed:
            # Still answer with the generic message; resend can recover.
            logger.error("Password reset code for %s was stored but not delivered", mask_email(contact))

    return jsonify({"success": True, "message": RESET_REQUEST_MSG, "expiresIn": expires_in})


@auth_bp.route('/password-reset/resend', methods=['POST'])
def password_reset_resend():
    contact = _contact_from(request_data(), 'contact', 'email')
    result = get_otp_service().resend(contact, PURPOSE_PASSWORD_RESET)
    return jsonify({"success": True, "message": RESET_REQUEST_MSG, "expiresIn": result.expires_in})


@auth_bp.route('/password-reset/confirm', methods=['POST'])
def password_reset_confirm():
    """Input: contact, code, password. The code is consumed only if the password is acceptable."""
    data = request_data()
    contact = _contact_from(data, 'contact', 'email')
    code = _code_from(data)
    password = _checked_password(data, required=True)

    get_otp_service().verify(contact, code, PURPOSE_PASSWORD_RESET)

    user = User.query.filter_by(email=contact).first()
    if user is None:
        raise OtpNotFound()
    user.password_hash = hash_password(password)
    commit_or_raise('resetting password')
    logger.info("Password reset for %s", mask_email(contact))
    return jsonify({"success": True, "reset": True, "message": "Your password has been reset. Please log in."})
