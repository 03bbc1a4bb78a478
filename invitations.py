import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    Invitation,
    InvitationStatus,
    Project,
    ProjectMember,
    ProjectRole,
    User,
    utcnow,
)
from notifier import InvitationNotifier
from repository import Repository
from security import TokenSigner
from utils.errors import (
    AppError,
    ConflictError,
    ForbiddenError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from utils.result import Result

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def person_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"first_name": user.first_name, "last_name": user.last_name, "email": user.email}


def project_summary(project: Project) -> Dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "type": project.type,
    }


class InvitationLifecycle:
    """
    Issues, previews and accepts project invitations.

    An invitation is PENDING until accepted exactly once. Expiry is not a
    stored state: it is computed from ``expires_at`` against the clock on
    every read, and expired or already-accepted invitations are inert.

    Args:
        session: Database session; the lifecycle commits its own writes
        signer: Signs and verifies invitation tokens
        notifier: Receives the invitation e-mail, best effort
        clock: Returns the current naive-UTC time
    """

    def __init__(
        self,
        session: Session,
        signer: TokenSigner,
        notifier: InvitationNotifier,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.signer = signer
        self.notifier = notifier
        self.clock = clock
        self.invitations = Repository(session, Invitation)
        self.members = Repository(session, ProjectMember)
        self.projects = Repository(session, Project)
        self.users = Repository(session, User)

    def issue(self, email: str, project_id: str, role: str, issuer_id: str) -> Result[Dict[str, Any]]:
        """
        Create a PENDING invitation and notify the invitee.

        Args:
            email: Address of the person being invited
            project_id: Project the invitation grants access to
            role: ADMIN or MEMBER, applied on acceptance
            issuer_id: Id of the admin sending the invitation

        Returns:
            Result with ``{email, project_id, token}``; ConflictError when the
            address already belongs to a member or has a live pending invitation
        """
        try:
            if role not in (ProjectRole.ADMIN, ProjectRole.MEMBER):
                raise ValidationError("role must be one of: ADMIN, MEMBER")

            project = self.projects.get(project_id)
            issuer = self.users.get(issuer_id)
            if project is None or issuer is None:
                raise NotFoundError("Project or user not found")

            invitee = self.users.find_one(email=email)
            if invitee is not None and self.members.exists(user_id=invitee.id, project_id=project_id):
                raise ConflictError("User is already a member of this project")

            now = self.clock()
            if self.invitations.exists(
                Invitation.expires_at >= now,
                email=email,
                project_id=project_id,
                status=InvitationStatus.PENDING,
            ):
                raise ConflictError("A pending invitation already exists for this email")

            token = self.signer.issue_invitation_token(email, project_id)
            invitation = self.invitations.add(
                Invitation(
                    email=email,
                    project_id=project_id,
                    invited_by_id=issuer.id,
                    token=token,
                    role=role,
                    status=InvitationStatus.PENDING,
                    expires_at=now + self.signer.ttl,
                )
            )
            self.session.commit()
        except AppError as e:
            self.session.rollback()
            logger.warning(
                "Invitation not issued",
                extra={"project_id": project_id, "invitee": email, "error": e.message}
            )
            return Result.from_error(e)

        logger.info(
            "Invitation issued",
            extra={"invitation_id": invitation.id, "project_id": project_id, "invitee": email, "role": role}
        )
        self._notify(invitation, project, issuer)

        return Result.ok(
            {"email": email, "project_id": project_id, "token": token},
            message="Invitation sent successfully",
        )

    def _notify(self, invitation: Invitation, project: Project, issuer: User) -> None:
        # Fire-and-forget: a delivery failure never undoes the invitation
        try:
            self.notifier.send_invitation_email(
                invitation.email,
                issuer.email,
                project.name,
                issuer.full_name,
                invitation.token,
            )
        except Exception as e:
            logger.error(
                "Failed to send invitation e-mail",
                extra={"invitation_id": invitation.id, "error": str(e), "error_type": type(e).__name__}
            )

    def inspect(self, token: str) -> Result[Dict[str, Any]]:
        """
        Preview a pending invitation without changing it.

        Returns:
            Result with the invitation email, role, expiry, project and inviter;
            InvalidTokenError for bad, expired or already processed invitations
        """
        try:
            invitation = self._load_pending(token)
            project = self.projects.get(invitation.project_id)
            creator = self.users.get(project.creator_id) if project is not None else None
            if project is None or creator is None:
                raise NotFoundError("Project or creator not found")
            inviter = self.users.get(invitation.invited_by_id)
        except AppError as e:
            return Result.from_error(e)

        return Result.ok(
            {
                "invitation": {
                    "email": invitation.email,
                    "role": invitation.role,
                    "expires_at": invitation.expires_at.isoformat(),
                    "project": {**project_summary(project), "creator": person_summary(creator)},
                    "inviter": person_summary(inviter),
                }
            },
            message="Invitation details retrieved successfully",
        )

    def accept(self, token: str, user_id: str) -> Result[Dict[str, Any]]:
        """
        Accept a pending invitation on behalf of the authenticated user.

        The membership insert and the PENDING -> ACCEPTED update are committed
        together. If the user already belongs to the project the invitation is
        still marked ACCEPTED, but a ConflictError is reported.

        Args:
            token: Invitation token from the e-mail link
            user_id: Id of the authenticated user

        Returns:
            Result with ``{project, role}`` on success
        """
        try:
            invitation = self._load_pending(token)

            project = self.projects.get(invitation.project_id)
            if project is None:
                raise NotFoundError("Project not found")

            user = self.users.get(user_id)
            if user is None:
                raise NotFoundError("User not found")

            if user.email != invitation.email:
                raise ForbiddenError("This invitation is not for your email address")

            if self.members.exists(user_id=user.id, project_id=invitation.project_id):
                self._mark_accepted(invitation)
                self.session.commit()
                logger.info(
                    "Invitation closed for existing member",
                    extra={"invitation_id": invitation.id, "user_id": user.id}
                )
                raise ConflictError("You are already a member of this project")

            self._join(invitation, user)
        except AppError as e:
            self.session.rollback()
            logger.warning("Invitation not accepted", extra={"user_id": user_id, "error": e.message})
            return Result.from_error(e)

        logger.info(
            "Invitation accepted",
            extra={"invitation_id": invitation.id, "project_id": project.id, "user_id": user.id}
        )
        return Result.ok(
            {"project": project_summary(project), "role": invitation.role},
            message="Invitation accepted successfully",
        )

    def _join(self, invitation: Invitation, user: User) -> None:
        """Insert the membership and close the invitation in one transaction."""
        try:
            self.members.add(
                ProjectMember(user_id=user.id, project_id=invitation.project_id, role=invitation.role)
            )
            if not self._mark_accepted(invitation):
                self.session.rollback()
                raise InvalidTokenError("Invitation has already been processed")
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("You are already a member of this project") from None

    def _mark_accepted(self, invitation: Invitation) -> bool:
        """Conditionally move the invitation to ACCEPTED; False if it was no longer pending."""
        result = self.session.execute(
            update(Invitation)
            .where(Invitation.id == invitation.id, Invitation.status == InvitationStatus.PENDING)
            .values(status=InvitationStatus.ACCEPTED)
        )
        return result.rowcount == 1

    def _load_pending(self, token: str) -> Invitation:
        """
        Verify the token and return its invitation if it is still usable.

        Raises:
            InvalidTokenError: Bad signature or payload, unknown record,
                expired invitation, or invitation no longer PENDING
        """
        if not token:
            raise InvalidTokenError("Invitation token is required")

        self.signer.verify_invitation_token(token)

        invitation = self.invitations.find_one(token=token)
        if invitation is None or invitation.expires_at < self.clock():
            raise InvalidTokenError("Invalid or expired invitation")
        if invitation.status != InvitationStatus.PENDING:
            raise InvalidTokenError("Invitation has already been processed")
        return invitation
