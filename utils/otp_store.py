"""
Persistence for OTP records and the send log.
The store wraps one SQLAlchemy session. All attempts/consumed changes are
single conditional UPDATE statements so concurrent verifies cannot lose writes.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from models.otp import OtpRecord, OtpSendLog
from utils.errors import InfrastructureError

logger = logging.getLogger(__name__)


class OtpStore:
    """OTP record store backed by a SQLAlchemy session (usually ``db.session``)."""

    def __init__(self, session):
        self.session = session

    @contextmanager
    def _guard(self, operation):
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("OTP store %s failed: %s", operation, e, exc_info=True)
            raise InfrastructureError() from e

    def add_record(self, *, contact, purpose, code_hash, salt, created_at, expires_at, send_kind):
        """Insert a record and its send-log row in one commit."""
        with self._guard('insert'):
            record = OtpRecord(
                contact=contact,
                purpose=purpose,
                code_hash=code_hash,
                salt=salt,
                created_at=created_at,
                expires_at=expires_at,
                consumed=False,
                attempts=0,
            )
            self.session.add(record)
            self.session.add(OtpSendLog(contact=contact, purpose=purpose, kind=send_kind, sent_at=created_at))
            self.session.commit()
            return record

    def latest(self, contact, purpose):
        """Newest record for contact+purpose, or None."""
        with self._guard('select'):
            return (
                self.session.query(OtpRecord)
                .filter(OtpRecord.contact == contact, OtpRecord.purpose == purpose)
                .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
                .first()
            )

    def get(self, record_id):
        with self._guard('select'):
            record = self.session.get(OtpRecord, record_id)
            if record is not None:
                self.session.refresh(record)
            return record

    def increment_attempts(self, record_id, cap):
        """attempts += 1 while unconsumed and under cap. Returns True if a row changed."""
        with self._guard('update'):
            changed = (
                self.session.query(OtpRecord)
                .filter(
                    OtpRecord.id == record_id,
                    OtpRecord.consumed.is_(False),
                    OtpRecord.attempts < cap,
                )
                .update({OtpRecord.attempts: OtpRecord.attempts + 1}, synchronize_session=False)
            )
            self.session.commit()
            return changed == 1

    def mark_consumed(self, record_id, cap, now):
        """consumed = true while unconsumed, unexpired and under cap. Returns True if a row changed."""
        with self._guard('update'):
            changed = (
                self.session.query(OtpRecord)
                .filter(
                    OtpRecord.id == record_id,
                    OtpRecord.consumed.is_(False),
                    OtpRecord.attempts < cap,
                    OtpRecord.expires_at > now,
                )
                .update({OtpRecord.consumed: True}, synchronize_session=False)
            )
            self.session.commit()
            return changed == 1

    def sends_since(self, contact, purpose, since, kind=None):
        """Send timestamps for contact+purpose strictly after since, oldest first. kind=None counts every send."""
        with self._guard('select'):
            query = self.session.query(OtpSendLog.sent_at).filter(
                OtpSendLog.contact == contact,
                OtpSendLog.purpose == purpose,
                OtpSendLog.sent_at > since,
            )
            if kind is not None:
                query = query.filter(OtpSendLog.kind == kind)
            rows = query.order_by(OtpSendLog.sent_at.asc()).all()
            return [row.sent_at for row in rows]

    def purge(self, expired_before, sent_before):
        """Delete records expired before expired_before and log rows older than sent_before."""
        with self._guard('delete'):
            records = (
                self.session.query(OtpRecord)
                .filter(OtpRecord.expires_at < expired_before)
                .delete(synchronize_session=False)
            )
            logs = (
                self.session.query(OtpSendLog)
                .filter(OtpSendLog.sent_at < sent_before)
                .delete(synchronize_session=False)
            )
            self.session.commit()
            return records, logs
