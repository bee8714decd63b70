"""
OTP engine: issue, verify and resend one-time codes.

The service owns no state of its own. Records live in the injected store and
mail goes through the injected ``send_code`` callable, so the same object can
be built once per Flask app and shared by every request.

Verification order for the newest record of a contact:
consumed -> expired -> attempt cap -> hash comparison.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict

from flask import current_app

from models.otp import (
    PURPOSE_PASSWORD_RESET,
    PURPOSE_REGISTRATION,
    SEND_KIND_ISSUE,
    SEND_KIND_RESEND,
)
from utils.errors import (
    EmailDeliveryFailed,
    InfrastructureError,
    NoPendingRegistration,
    OtpAlreadyUsed,
    OtpExpired,
    OtpNotFound,
    InvalidOtp,
    RateLimited,
    TooManyAttempts,
)
from utils.logger import mask_email
from utils.otp_helper import generate_otp, generate_salt, hash_otp, otp_expires_at, verify_otp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueResult:
    record_id: str
    expires_at: datetime
    expires_in: int


@dataclass(frozen=True)
class OtpPolicy:
    ttl_seconds: Dict[str, int]
    max_attempts: int = 5
    max_sends: int = 5
    send_window_seconds: int = 15 * 60
    resend_limit: int = 3
    resend_window_seconds: int = 5 * 60
    retention_hours: int = 24

    @classmethod
    def from_config(cls, config):
        return cls(
            ttl_seconds={
                PURPOSE_REGISTRATION: config['OTP_TTL_SECONDS'],
                PURPOSE_PASSWORD_RESET: config['RESET_OTP_TTL_SECONDS'],
            },
            max_attempts=config['OTP_MAX_ATTEMPTS'],
            max_sends=config['OTP_MAX_SENDS_PER_WINDOW'],
            send_window_seconds=config['OTP_SEND_WINDOW_SECONDS'],
            resend_limit=config['OTP_RESEND_LIMIT'],
            resend_window_seconds=config['OTP_RESEND_WINDOW_SECONDS'],
            retention_hours=config['OTP_RETENTION_HOURS'],
        )


class OtpService:
    def __init__(
        self,
        store,
        send_code: Callable[[str, str, str, int], None],
        secret: str,
        policy: OtpPolicy,
        now: Callable[[], datetime] = datetime.utcnow,
        log_codes: bool = False,
    ):
        self.store = store
        self.send_code = send_code
        self.secret = secret
        self.policy = policy
        self.now = now
        self.log_codes = log_codes

    def ttl_for(self, purpose):
        return self.policy.ttl_seconds[purpose]

    # ---------- issuance ----------

    def issue(self, contact: str, purpose: str = PURPOSE_REGISTRATION) -> IssueResult:
        """
        Create a fresh code for contact and email it.

        Raises RateLimited before touching anything, InfrastructureError if the
        record could not be stored (no email is sent), and EmailDeliveryFailed
        if the record was stored but the email failed.
        """
        now = self.now()
        self._check_rate(contact, purpose, now, self.policy.max_sends, self.policy.send_window_seconds)
        return self._create_and_send(contact, purpose, now, SEND_KIND_ISSUE)

    def resend(self, contact: str, purpose: str = PURPOSE_REGISTRATION) -> IssueResult:
        """
        Re-issue for a contact whose newest record is still unconsumed.
        Expired or locked records still count as pending. Only resends count
        toward the resend window; the issue window counts every send.
        """
        now = self.now()
        latest = self.store.latest(contact, purpose)
        if latest is None or latest.consumed:
            raise NoPendingRegistration()
        self._check_rate(contact, purpose, now, self.policy.resend_limit, self.policy.resend_window_seconds,
                         kind=SEND_KIND_RESEND)
        return self._create_and_send(contact, purpose, now, SEND_KIND_RESEND)

    def _check_rate(self, contact, purpose, now, limit, window_seconds, kind=None):
        window = timedelta(seconds=window_seconds)
        sends = self.store.sends_since(contact, purpose, now - window, kind=kind)
        if len(sends) < limit:
            return
        # The request is allowed again once enough sends age out of the window.
        frees_at = sends[len(sends) - limit] + window
        retry_after = math.ceil((frees_at - now).total_seconds())
        logger.warning("OTP rate limit hit for %s (%s, %d sends)", mask_email(contact), purpose, len(sends))
        raise RateLimited(retry_after)

    def _create_and_send(self, contact, purpose, now, kind):
        ttl = self.ttl_for(purpose)
        code = generate_otp()
        salt = generate_salt()
        record = self.store.add_record(
            contact=contact,
            purpose=purpose,
            code_hash=hash_otp(code, salt, self.secret),
            salt=salt,
            created_at=now,
            expires_at=otp_expires_at(ttl, now),
            send_kind=kind,
        )
        result = IssueResult(record_id=record.id, expires_at=record.expires_at, expires_in=ttl)
        if self.log_codes:
            logger.debug("OTP %s for %s: %s", kind, contact, code)
        else:
            logger.info("OTP %s for %s (%s)", kind, mask_email(contact), purpose)

        try:
            self.send_code(contact, code, purpose, ttl)
        except Exception as e:
            logger.error("OTP email to %s failed: %s", mask_email(contact), e, exc_info=True)
            raise EmailDeliveryFailed(expires_in=ttl, record_id=result.record_id) from e
        return result

    # ---------- verification ----------

    def verify(self, contact: str, candidate_code: str, purpose: str = PURPOSE_REGISTRATION):
        """
        Check candidate_code against the newest record for contact.
        Returns the consumed record; every failure raises its own OtpError.
        """
        now = self.now()
        cap = self.policy.max_attempts
        record = self.store.latest(contact, purpose)
        if record is None:
            logger.warning("OTP verification attempted with no record for %s", mask_email(contact))
            raise OtpNotFound()
        self._check_state(record, now)

        if not verify_otp(candidate_code, record.salt, record.code_hash, self.secret):
            record_id = record.id
            if not self.store.increment_attempts(record_id, cap):
                self._raise_current_state(record_id, now)
            attempts = self.store.get(record_id).attempts
            remaining = max(0, cap - attempts)
            logger.warning("Invalid OTP for %s (attempt %d/%d)", mask_email(contact), attempts, cap)
            if remaining == 0:
                raise TooManyAttempts()
            raise InvalidOtp(remaining)

        if not self.store.mark_consumed(record.id, cap, now):
            self._raise_current_state(record.id, now)
        logger.info("OTP verified for %s (%s)", mask_email(contact), purpose)
        return record

    def _check_state(self, record, now):
        if record.consumed:
            logger.warning("OTP verification attempted with consumed record %s", record.id[:8])
            raise OtpAlreadyUsed()
        if record.is_expired(now):
            raise OtpExpired()
        if record.attempts_exceeded(self.policy.max_attempts):
            raise TooManyAttempts()

    def _raise_current_state(self, record_id, now):
        """A conditional update matched nothing: another request changed the record first."""
        record = self.store.get(record_id)
        if record is None:
            raise OtpNotFound()
        self._check_state(record, now)
        raise InfrastructureError("Verification conflicted with another request. Please retry.")

    # ---------- housekeeping ----------

    def purge_expired(self):
        """Drop records and send-log rows older than the retention period."""
        cutoff = self.now() - timedelta(hours=self.policy.retention_hours)
        records, logs = self.store.purge(expired_before=cutoff, sent_before=cutoff)
        if records or logs:
            logger.info("Purged %d OTP records and %d send-log rows", records, logs)
        return records, logs


def init_otp_service(app, store, send_code):
    """Build the app-wide OtpService and register it on app.extensions."""
    service = OtpService(
        store=store,
        send_code=send_code,
        secret=app.config['OTP_SECRET'],
        policy=OtpPolicy.from_config(app.config),
        log_codes=app.debug,
    )
    app.extensions['otp_service'] = service
    return service


def get_otp_service() -> OtpService:
    return current_app.extensions['otp_service']
