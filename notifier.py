import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

from config import Settings

logger = logging.getLogger(__name__)

INVITATION_TEMPLATE = """\
<html>
  <body>
    <h2>You're invited to join {project_name}</h2>
    <p>{inviter_name} has invited {email} to collaborate on <strong>{project_name}</strong>.</p>
    <p><a href="{invite_link}">Accept the invitation</a></p>
    <p>This invitation expires in 7 days.</p>
  </body>
</html>
"""


class InvitationNotifier(Protocol):
    def send_invitation_email(
        self, to_email: str, from_email: str, project_name: str, inviter_name: str, token: str
    ) -> None:
        ...


def invitation_link(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/invitations/{token}"


def render_invitation(email: str, project_name: str, inviter_name: str, invite_link: str) -> str:
    return INVITATION_TEMPLATE.format(
        email=email,
        project_name=project_name,
        inviter_name=inviter_name,
        invite_link=invite_link,
    )


class SmtpNotifier:
    """Sends invitation e-mails through the configured SMTP relay"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def build_message(
        self, to_email: str, from_email: str, project_name: str, inviter_name: str, token: str
    ) -> EmailMessage:
        sender = self.settings.from_email or from_email
        message = EmailMessage()
        message["From"] = f"{self.settings.from_name} <{sender}>"
        message["To"] = to_email
        message["Subject"] = f"Invitation to join {project_name}"
        html = render_invitation(
            to_email, project_name, inviter_name, invitation_link(self.settings.frontend_url, token)
        )
        message.set_content(f"{inviter_name} invited you to join {project_name}.")
        message.add_alternative(html, subtype="html")
        return message

    def send_invitation_email(
        self, to_email: str, from_email: str, project_name: str, inviter_name: str, token: str
    ) -> None:
        message = self.build_message(to_email, from_email, project_name, inviter_name, token)
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            smtp.starttls()
            if self.settings.smtp_user:
                smtp.login(self.settings.smtp_user, self.settings.smtp_password or "")
            smtp.send_message(message)
        logger.info("Invitation e-mail sent", extra={"to_email": to_email, "project_name": project_name})


class LoggingNotifier:
    """Logs the invitation link instead of sending mail; used when no SMTP host is set"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send_invitation_email(
        self, to_email: str, from_email: str, project_name: str, inviter_name: str, token: str
    ) -> None:
        logger.info(
            "Invitation e-mail not sent (no SMTP host configured)",
            extra={
                "to_email": to_email,
                "from_email": from_email,
                "project_name": project_name,
                "invite_link": invitation_link(self.settings.frontend_url, token),
            }
        )


def build_notifier(settings: Settings, notifier: Optional[InvitationNotifier] = None) -> InvitationNotifier:
    if notifier is not None:
        return notifier
    if settings.smtp_host:
        return SmtpNotifier(settings)
    return LoggingNotifier(settings)
