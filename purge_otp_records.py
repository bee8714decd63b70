"""
Housekeeping sweep for OTP rows past the retention period.
Run: python purge_otp_records.py
     or from cron, e.g. hourly.
"""
import sys


def main():
    from app import create_app
    from utils.errors import InfrastructureError
    from utils.otp_service import get_otp_service

    app = create_app()
    with app.app_context():
        try:
            records, logs = get_otp_service().purge_expired()
        except InfrastructureError as e:
            print("[ERROR]", e)
            return 1
        print(f"[SUCCESS] Removed {records} OTP records and {logs} send-log rows.")
        return 0


if __name__ == '__main__':
    sys.exit(main())
