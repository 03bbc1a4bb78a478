import logging
import os
from http import HTTPStatus
from unittest.mock import MagicMock, patch

import pytest

from config import Settings
from main import configure_file_logging
from notifier import LoggingNotifier, SmtpNotifier, build_notifier, invitation_link
from utils.errors import ConflictError, NotFoundError
from utils.log_context import LogContext
from utils.result import Result


class TestSettings:
    """
    Tests for reading settings from the environment.
    """

    def test_from_env_maps_variables(self):
        """
        Test that environment variables populate the matching fields.
        """
        settings = Settings.from_env({
            "APP_ENV": "development",
            "DATABASE_URL": "sqlite://",
            "TOKEN_TTL_DAYS": "3",
            "SMTP_PORT": "2525",
            "SMTP_PASS": "hunter2",
        })

        assert settings.is_development is True
        assert settings.database_url == "sqlite://"
        assert settings.token_ttl_days == 3
        assert settings.smtp_port == 2525
        assert settings.smtp_password == "hunter2"

    def test_blank_values_keep_defaults(self):
        """
        Test that unset or empty variables fall back to the defaults.
        """
        settings = Settings.from_env({"JWT_SECRET": "", "MAX_UPLOAD_BYTES": ""})

        assert settings.jwt_secret == Settings().jwt_secret
        assert settings.max_upload_bytes == 10 * 1024 * 1024
        assert settings.is_development is False


class TestNotifier:
    """
    Tests for invitation e-mail delivery.
    """

    def test_build_notifier_prefers_explicit_notifier(self, settings):
        """
        Test the notifier selection order.

        Args:
            settings: Fixture providing settings without an SMTP host
        """
        explicit = MagicMock()

        assert build_notifier(settings, explicit) is explicit
        assert isinstance(build_notifier(settings), LoggingNotifier)
        assert isinstance(build_notifier(settings.model_copy(update={"smtp_host": "mail.test"})), SmtpNotifier)

    def test_invitation_link_joins_cleanly(self):
        """
        Test that a trailing slash on the frontend URL is not doubled.
        """
        assert invitation_link("http://frontend.test/", "abc") == "http://frontend.test/invitations/abc"

    def test_smtp_message_contents(self, settings):
        """
        Test the subject, recipients and link of the invitation e-mail.

        Args:
            settings: Fixture providing settings
        """
        notifier = SmtpNotifier(settings.model_copy(update={"from_email": "noreply@example.com"}))

        message = notifier.build_message("guest@example.com", "admin@example.com", "Sales", "Ada Admin", "tok")

        assert message["Subject"] == "Invitation to join Sales"
        assert message["To"] == "guest@example.com"
        assert "noreply@example.com" in message["From"]
        html = message.get_body(preferencelist=("html",)).get_content()
        assert "http://frontend.test/invitations/tok" in html

    def test_smtp_send_logs_in_when_user_configured(self, settings):
        """
        Test the SMTP conversation with a mocked relay.

        Args:
            settings: Fixture providing settings
        """
        configured = settings.model_copy(update={"smtp_host": "mail.test", "smtp_user": "bot", "smtp_password": "pw"})

        with patch("smtplib.SMTP") as smtp_cls:
            SmtpNotifier(configured).send_invitation_email("guest@example.com", "admin@example.com", "Sales", "Ada", "tok")

        smtp = smtp_cls.return_value.__enter__.return_value
        smtp_cls.assert_called_once_with("mail.test", 587, timeout=10)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot", "pw")
        smtp.send_message.assert_called_once()


class TestResult:
    """
    Tests for the Result envelope.
    """

    def test_success_envelope(self):
        """
        Test the success dictionary layout.
        """
        assert Result.created({"id": 1}, message="Made").to_dict() == {
            "success": True,
            "status_code": 201,
            "status": "Created",
            "message": "Made",
            "data": {"id": 1},
        }

    def test_from_error_keeps_status_and_type(self):
        """
        Test that a failure remembers its error class and status.
        """
        result = Result.from_error(ConflictError("Duplicate"))

        assert result.is_failure()
        assert result.status_code == HTTPStatus.CONFLICT
        assert result.to_dict()["error"] == "Duplicate"
        assert result.error_type is ConflictError

    def test_default_messages(self):
        """
        Test that errors without a message use their class default.
        """
        assert Result.from_error(NotFoundError()).message == "Resource not found"


class TestLogging:
    """
    Tests for logging helpers.
    """

    def test_log_context_reraises_and_records_duration(self, caplog):
        """
        Test that LogContext logs the failure and does not swallow it.

        Args:
            caplog: Pytest fixture capturing log records
        """
        caplog.set_level(logging.INFO)

        with pytest.raises(ValueError):
            with LogContext("sample operation", request_id="req-1") as context:
                raise ValueError("bad")

        assert context.duration is not None
        assert "Failed sample operation" in caplog.text

    def test_configure_file_logging_adds_one_handler(self, tmp_path):
        """
        Test that the daily file handler is added once per log file.

        Args:
            tmp_path: Pytest temporary directory
        """
        log_dir = str(tmp_path / "logs")
        root = logging.getLogger()
        before = list(root.handlers)
        try:
            configure_file_logging(log_dir)
            configure_file_logging(log_dir)
            added = [handler for handler in root.handlers if handler not in before]

            assert len(added) == 1
            assert os.path.dirname(added[0].baseFilename) == os.path.abspath(log_dir)
        finally:
            for handler in root.handlers[:]:
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
