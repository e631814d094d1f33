"""
Status Transition Gateway.

Owns every change to ``Application.status``: checks the actor, consults the
transition table, writes the status and a history row in one transaction,
then sends the outcome email for terminal statuses. Email failure is logged
and never undoes the status change.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import Conflict, NotFound, PreconditionFailed, Unauthorized
from core.integrations.email import NotificationDispatcher
from core.security import AccountIdentity
from core.utils.datetime import isoformat
from database.models.applications import (
    ActorKind,
    Application,
    ApplicationStatus,
    RECRUITER_TARGETS,
    SYSTEM_TARGETS,
)
from database.stores import ApplicationStore
from api.services.notifications import render_outcome_notice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who is asking for a status change."""

    kind: ActorKind
    account_id: Optional[int] = None
    company_id: Optional[int] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind=ActorKind.SYSTEM)

    @classmethod
    def recruiter(cls, account_id: int, company_id: Optional[int]) -> "Actor":
        return cls(kind=ActorKind.RECRUITER, account_id=account_id, company_id=company_id)

    @classmethod
    def from_identity(cls, identity: AccountIdentity) -> "Actor":
        if not identity.is_recruiter:
            raise Unauthorized("Only recruiters can change application status")
        return cls.recruiter(identity.account_id, identity.company_id)


@dataclass(frozen=True)
class AdvanceResult:
    application_id: int
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    changed: bool
    notified: bool = False


def serialize_application(application: Application) -> Dict[str, Any]:
    """Read model returned by the API."""
    job = application.job_posting
    return {
        "id": application.id,
        "status": application.status.value,
        "candidate_id": application.candidate_id,
        "job_posting_id": application.job_posting_id,
        "interview_session_id": application.interview_session_id,
        "applied_at": isoformat(application.applied_at),
        "updated_at": isoformat(application.updated_at),
        "job": {
            "id": job.id,
            "title": job.title,
            "company_id": job.company_id,
            "company_name": job.company.name if job.company else None,
        } if job else None,
        "history": [
            {
                "from_status": entry.from_status.value if entry.from_status else None,
                "to_status": entry.to_status.value,
                "actor_kind": entry.actor_kind.value,
                "actor_account_id": entry.actor_account_id,
                "reason": entry.reason,
                "changed_at": isoformat(entry.changed_at),
            }
            for entry in application.status_history
        ],
    }


class StatusTransitionGateway:
    """Validates and applies application status transitions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    @staticmethod
    def authorize(actor: Actor, application: Application, target: ApplicationStatus) -> None:
        """
        Check ``actor`` may request ``target`` on ``application``.

        Raises:
            Unauthorized: wrong actor kind for the target, or a recruiter
                acting for a company that does not own the job posting
        """
        if actor.kind is ActorKind.SYSTEM:
            if target not in SYSTEM_TARGETS:
                raise Unauthorized(f"The system cannot move an application to {target.value}")
            return

        if target not in RECRUITER_TARGETS:
            raise Unauthorized(f"Recruiters cannot move an application to {target.value}")
        if actor.company_id is None or actor.company_id != application.job_posting.company_id:
            raise Unauthorized("Application does not belong to your company")

    async def advance(
        self,
        application_id: int,
        target: ApplicationStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> AdvanceResult:
        """
        Move an application to ``target``.

        Requesting the current status is a successful no-op. Moves not in
        the transition table raise PreconditionFailed; losing a race with a
        concurrent change raises Conflict.
        """
        async with self.session_factory() as db:
            async with db.begin():
                store = ApplicationStore(db)
                application = await store.get_with_context(application_id)
                if application is None:
                    raise NotFound(f"Application {application_id} not found")

                self.authorize(actor, application, target)
                current = application.status

                if current == target:
                    return AdvanceResult(application_id, current, target, changed=False)

                if not current.can_transition_to(target):
                    raise PreconditionFailed(
                        f"Cannot move application from {current.value} to {target.value}"
                    )

                if not await store.compare_and_set_status(application_id, current, target):
                    raise Conflict("Application status changed concurrently, reload and retry")

                await store.add_history(
                    application_id,
                    from_status=current,
                    to_status=target,
                    actor_kind=actor.kind,
                    actor_account_id=actor.account_id,
                    reason=reason,
                )

                candidate_email = application.candidate.account.email
                job_title = application.job_posting.title
                company_name = application.job_posting.company.name

        logger.info(
            f"Application {application_id} advanced {current.value} -> {target.value} "
            f"by {actor.kind.value}"
            + (f" {actor.account_id}" if actor.account_id else ""),
            extra={"application_id": application_id},
        )

        notified = False
        if target.is_terminal():
            notified = await self._notify(application_id, target, candidate_email, job_title, company_name)

        return AdvanceResult(application_id, current, target, changed=True, notified=notified)

    async def _notify(
        self,
        application_id: int,
        status: ApplicationStatus,
        candidate_email: str,
        job_title: str,
        company_name: str,
    ) -> bool:
        notice = render_outcome_notice(status, candidate_email, job_title, company_name)
        if notice is None:
            return False
        try:
            await self.dispatcher.send(
                notice.to, notice.subject, notice.body_html, from_name=notice.from_name
            )
        except Exception as e:
            logger.error(
                f"Outcome email for application {application_id} failed: {type(e).__name__}: {e}",
                extra={"application_id": application_id},
            )
            return False
        return True

    async def get_application(
        self, application_id: int, identity: AccountIdentity
    ) -> Dict[str, Any]:
        """
        Read one application.

        Visible to recruiters of the owning company and to the candidate who
        applied.
        """
        async with self.session_factory() as db:
            application = await ApplicationStore(db).get_with_context(application_id)
            if application is None:
                raise NotFound(f"Application {application_id} not found")

            if identity.is_recruiter:
                if identity.company_id != application.job_posting.company_id:
                    raise Unauthorized("Application does not belong to your company")
            elif application.candidate.account_id != identity.account_id:
                raise Unauthorized("Application does not belong to you")

            return serialize_application(application)
