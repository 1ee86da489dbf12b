"""Application lifecycle: submission, status transitions, withdrawal and admissions."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union

from career_portal.applications.transitions import ensure_legal, is_reopen, parse_status
from career_portal.config import settings
from career_portal.core.eligibility import (
    IneligibilityReason,
    can_apply,
    count_active_course_applications,
    has_active_application,
    is_open,
)
from career_portal.core.errors import (
    CareerPortalError,
    ConflictError,
    ForbiddenError,
    IneligibleError,
    InvalidTransitionError,
    NotFoundError,
    TransientStoreError,
)
from career_portal.core.models import (
    Actor,
    ActorRole,
    AdmissionRecord,
    Application,
    ApplicationStatus,
    Candidate,
    CourseApplicationStatus,
    JobApplicationStatus,
    Opportunity,
    OpportunityKind,
    OpportunityStatus,
    Organization,
    OrganizationKind,
    initial_status_for,
    utcnow,
)
from career_portal.notifications.notifier import Notifier
from career_portal.organizations.approval import is_candidate_visible
from career_portal.store.base import Collections, EntityStore, call_with_timeout
from career_portal.utils.logging import get_logger, log_actor

logger = get_logger(__name__)


class ApplicationLifecycleManager:
    """Creates applications and moves them through their status machine.

    The opportunity's ``current_application_count`` is owned here: course
    seats are reserved with a compare-and-swap loop before the application is
    written, job postings are incremented atomically after it. Either way the
    application write and the counter update are treated as one unit and the
    first write is compensated when the second fails.
    """

    def __init__(
        self,
        store: EntityStore,
        notifier: Optional[Notifier] = None,
        organization_limit: Optional[int] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.logger = logger.bind(component="application_lifecycle")
        self.store = store
        self.notifier = notifier
        self.organization_limit = organization_limit or settings.organization_application_limit
        self.timeout = timeout or settings.store_timeout_seconds
        self.max_retries = max_retries or settings.counter_max_retries
        self.clock = clock

        # Serializes submissions, reopenings and withdrawals per candidate.
        # Entries live only while some coroutine holds or waits for the lock.
        self._candidate_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def _call(self, awaitable, operation: str) -> Any:
        return await call_with_timeout(awaitable, self.timeout, operation)

    @asynccontextmanager
    async def _candidate_lock(self, candidate_id: str) -> AsyncIterator[None]:
        lock = self._candidate_locks.get(candidate_id)
        if lock is None:
            lock = self._candidate_locks[candidate_id] = asyncio.Lock()
        self._lock_users[candidate_id] = self._lock_users.get(candidate_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[candidate_id] -= 1
            if not self._lock_users[candidate_id]:
                del self._lock_users[candidate_id]
                del self._candidate_locks[candidate_id]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_application(self, application_id: str) -> Application:
        document = await self._call(
            self.store.get(Collections.APPLICATIONS, application_id), "get_application"
        )
        return Application.model_validate(document)

    async def _get_opportunity(self, opportunity_id: str) -> Opportunity:
        document = await self._call(
            self.store.get(Collections.OPPORTUNITIES, opportunity_id), "get_opportunity"
        )
        return Opportunity.model_validate(document)

    async def _get_organization(self, organization_id: str) -> Organization:
        document = await self._call(
            self.store.get(Collections.ORGANIZATIONS, organization_id), "get_organization"
        )
        return Organization.model_validate(document)

    async def _query_applications(self, filters, operation: str) -> List[Application]:
        documents = await self._call(
            self.store.query(Collections.APPLICATIONS, filters, order_by=[("submitted_at", True)]),
            operation,
        )
        return [Application.model_validate(doc) for doc in documents]

    async def list_candidate_applications(
        self, candidate_id: str, kind: Optional[OpportunityKind] = None
    ) -> List[Application]:
        """Applications of one candidate, newest first."""
        filters = [("candidate_id", "==", candidate_id)]
        if kind:
            filters.append(("kind", "==", OpportunityKind(kind)))
        return await self._query_applications(filters, "list_candidate_applications")

    async def list_organization_applications(
        self,
        organization_id: str,
        actor: Actor,
        kind: Optional[OpportunityKind] = None,
        status: Optional[Union[str, ApplicationStatus]] = None,
    ) -> List[Application]:
        """Applications received by an organization, newest first."""
        if actor is None or not actor.acts_for(organization_id):
            raise ForbiddenError(
                "Only staff of the organization may list its applications",
                organization_id=organization_id,
            )
        filters = [("organization_id", "==", organization_id)]
        if kind:
            filters.append(("kind", "==", OpportunityKind(kind)))
            if status is not None:
                filters.append(("status", "==", parse_status(kind, status)))
        elif status is not None:
            filters.append(("status", "==", getattr(status, "value", status)))
        return await self._query_applications(filters, "list_organization_applications")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_application(
        self, candidate: Candidate, opportunity: Union[Opportunity, str]
    ) -> Application:
        """
        Create an application for ``candidate`` on ``opportunity``.

        The opportunity and the candidate's applications are re-read from the
        store so the decision is made on current data.

        Args:
            candidate: Applying candidate's profile
            opportunity: Target opportunity or its id

        Returns:
            The stored application in its initial status

        Raises:
            NotFoundError: opportunity missing or not visible to candidates
            IneligibleError: an eligibility rule failed
            ConflictError: the seat reservation lost too many races
            TransientStoreError: a store call failed
        """
        opportunity_id = getattr(opportunity, "id", opportunity)

        async with self._candidate_lock(candidate.id):
            current = await self._get_opportunity(opportunity_id)
            organization = await self._visible_organization(current)
            existing = await self.list_candidate_applications(candidate.id)

            now = self.clock()
            decision = can_apply(
                candidate.id,
                current,
                existing,
                now=now,
                organization_limit=self.organization_limit,
            )
            if not decision.allowed:
                self.logger.info(
                    "Application rejected by eligibility check",
                    candidate_id=candidate.id,
                    opportunity_id=opportunity_id,
                    reason=decision.reason.value
                )
                raise IneligibleError(decision.reason)

            application = Application(
                kind=current.kind,
                candidate_id=candidate.id,
                opportunity_id=current.id,
                organization_id=current.organization_id,
                status=initial_status_for(current.kind),
                submitted_at=now,
                last_updated_at=now,
                last_updated_by=candidate.id,
                candidate_name=candidate.name,
                candidate_email=candidate.email,
                opportunity_title=current.title,
                organization_name=organization.name,
            )

            if current.is_course:
                await self._reserve_seat(current)
                try:
                    await self._call(
                        self.store.create(Collections.APPLICATIONS, application.model_dump(), application.id),
                        "create_application",
                    )
                except Exception:
                    await self._release_seat(current.id)
                    raise
            else:
                await self._call(
                    self.store.create(Collections.APPLICATIONS, application.model_dump(), application.id),
                    "create_application",
                )
                try:
                    await self._call(
                        self.store.atomic_increment(
                            Collections.OPPORTUNITIES, current.id, "current_application_count", 1
                        ),
                        "increment_counter",
                    )
                except Exception:
                    await self._discard_application(application)
                    raise

        self.logger.info(
            "Application submitted",
            application_id=application.id,
            candidate_id=candidate.id,
            opportunity_id=current.id,
            kind=current.kind.value
        )
        return application

    async def _visible_organization(self, opportunity: Opportunity) -> Organization:
        try:
            organization = await self._get_organization(opportunity.organization_id)
        except NotFoundError:
            organization = None
        if not is_candidate_visible(organization):
            raise NotFoundError(Collections.OPPORTUNITIES, opportunity.id)
        return organization

    async def _reserve_seat(self, opportunity: Opportunity) -> None:
        """Claim one seat with compare-and-swap, re-reading on contention."""
        observed = opportunity
        for attempt in range(self.max_retries):
            closed_reason = is_open(observed, self.clock())
            if closed_reason is not None:
                raise IneligibleError(closed_reason)
            count = observed.current_application_count
            if count >= observed.capacity:
                raise IneligibleError(IneligibilityReason.OPPORTUNITY_FULL)

            swapped = await self._call(
                self.store.compare_and_set(
                    Collections.OPPORTUNITIES, observed.id, "current_application_count", count, count + 1
                ),
                "reserve_seat",
            )
            if swapped:
                return

            self.logger.debug(
                "Seat reservation contended",
                opportunity_id=observed.id,
                attempt=attempt + 1,
                observed_count=count
            )
            observed = await self._get_opportunity(observed.id)

        raise ConflictError(
            f"Could not reserve a seat after {self.max_retries} attempts",
            opportunity_id=opportunity.id,
        )

    async def _release_seat(self, opportunity_id: str) -> None:
        try:
            await self._call(
                self.store.atomic_increment(
                    Collections.OPPORTUNITIES, opportunity_id, "current_application_count", -1
                ),
                "release_seat",
            )
        except CareerPortalError as e:
            self.logger.warning(
                "Seat release failed, reconciling counter",
                opportunity_id=opportunity_id,
                error=str(e)
            )
            await self._reconcile_after_failure(opportunity_id)

    async def _discard_application(self, application: Application) -> None:
        try:
            await self._call(
                self.store.delete(Collections.APPLICATIONS, application.id),
                "discard_application",
            )
        except CareerPortalError as e:
            self.logger.warning(
                "Application rollback failed, reconciling counter",
                application_id=application.id,
                opportunity_id=application.opportunity_id,
                error=str(e)
            )
            await self._reconcile_after_failure(application.opportunity_id)

    async def _reconcile_after_failure(self, opportunity_id: str) -> None:
        # The caller re-raises the original failure
        try:
            await self.reconcile_counter(opportunity_id)
        except CareerPortalError as e:
            self.logger.error(
                "Counter reconciliation failed",
                opportunity_id=opportunity_id,
                error=str(e)
            )

    async def reconcile_counter(self, opportunity_id: str) -> int:
        """Recompute ``current_application_count`` from the stored applications."""
        documents = await self._call(
            self.store.query(Collections.APPLICATIONS, [("opportunity_id", "==", opportunity_id)]),
            "count_applications",
        )
        count = len(documents)
        await self._call(
            self.store.update(
                Collections.OPPORTUNITIES, opportunity_id, {"current_application_count": count}
            ),
            "reconcile_counter",
        )
        self.logger.info("Counter reconciled", opportunity_id=opportunity_id, count=count)
        return count

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def transition_status(
        self,
        application_id: str,
        new_status: Union[str, ApplicationStatus],
        actor: Actor,
    ) -> Application:
        """
        Move an application to ``new_status`` on behalf of its organization.

        Raises:
            ForbiddenError: actor is neither admin nor staff of the organization
            InvalidTransitionError: the move is not in the transition table,
                or a course decision is reopened after admissions were published
            IneligibleError: reopening a rejected application would break the
                duplicate or per-institution rules
        """
        application = await self.get_application(application_id)
        if actor is None or not actor.acts_for(application.organization_id):
            raise ForbiddenError(
                "Only the owning organization may change application status",
                application_id=application_id,
            )

        target = parse_status(application.kind, new_status)
        if not is_reopen(application.kind, application.status, target):
            return await self._apply_transition(application, target, actor)

        # A reopened application competes with the candidate's own submissions
        async with self._candidate_lock(application.candidate_id):
            application = await self.get_application(application_id)
            return await self._apply_transition(application, target, actor)

    async def _apply_transition(
        self, application: Application, target: ApplicationStatus, actor: Actor
    ) -> Application:
        current = application.status
        ensure_legal(application.kind, current, target)

        if is_reopen(application.kind, current, target):
            await self._ensure_not_published(application, target)
            if application.is_rejected:
                await self._ensure_reopen_allowed(application)

        application_id = application.id
        changes = {
            "status": target,
            "last_updated_at": self.clock(),
            "last_updated_by": actor.id,
        }
        await self._call(
            self.store.update(Collections.APPLICATIONS, application_id, changes),
            "transition_status",
        )

        self.logger.info(
            "Application status changed",
            application_id=application_id,
            previous=current.value,
            status=target.value,
            **log_actor(actor)
        )
        return application.model_copy(update=changes)

    async def _ensure_not_published(self, application: Application, target: ApplicationStatus) -> None:
        published = await self._call(
            self.store.query(
                Collections.ADMISSIONS,
                [
                    ("organization_id", "==", application.organization_id),
                    ("published_at", ">=", application.submitted_at),
                ],
            ),
            "find_admissions",
        )
        if published:
            raise InvalidTransitionError(
                application.status,
                target,
                message="Admissions covering this application have been published",
            )

    async def _ensure_reopen_allowed(self, application: Application) -> None:
        existing = await self.list_candidate_applications(application.candidate_id)
        if has_active_application(
            application.candidate_id, application.opportunity_id, existing, exclude_id=application.id
        ):
            raise IneligibleError(IneligibilityReason.ALREADY_APPLIED)
        held = count_active_course_applications(
            application.candidate_id, application.organization_id, existing, exclude_id=application.id
        )
        if held >= self.organization_limit:
            raise IneligibleError(IneligibilityReason.ORGANIZATION_LIMIT_REACHED)

    async def withdraw(self, application_id: str, actor: Actor) -> None:
        """
        Candidate withdraws a pending course application.

        The record is deleted and the course counter released by one.
        """
        application = await self.get_application(application_id)
        if application.kind != OpportunityKind.COURSE:
            raise ForbiddenError("Only course applications can be withdrawn", application_id=application_id)
        if actor is None or actor.role != ActorRole.STUDENT or actor.id != application.candidate_id:
            raise ForbiddenError("Only the applicant may withdraw", application_id=application_id)

        async with self._candidate_lock(application.candidate_id):
            application = await self.get_application(application_id)
            if application.status != CourseApplicationStatus.PENDING:
                raise ForbiddenError(
                    f"Cannot withdraw a {application.status.value} application",
                    application_id=application_id,
                )

            await self._call(
                self.store.delete(Collections.APPLICATIONS, application_id),
                "withdraw_application",
            )
            try:
                await self._call(
                    self.store.atomic_increment(
                        Collections.OPPORTUNITIES,
                        application.opportunity_id,
                        "current_application_count",
                        -1,
                    ),
                    "release_seat",
                )
            except CareerPortalError as e:
                self.logger.warning(
                    "Seat release after withdrawal failed, reconciling counter",
                    application_id=application_id,
                    opportunity_id=application.opportunity_id,
                    error=str(e)
                )
                try:
                    await self.reconcile_counter(application.opportunity_id)
                except CareerPortalError as reconcile_error:
                    raise TransientStoreError(
                        "Application withdrawn but the course counter could not be updated",
                        opportunity_id=application.opportunity_id,
                    ) from reconcile_error

        self.logger.info(
            "Application withdrawn",
            application_id=application_id,
            opportunity_id=application.opportunity_id,
            **log_actor(actor)
        )

    # ------------------------------------------------------------------
    # Admissions
    # ------------------------------------------------------------------

    @staticmethod
    def admission_record_id(organization_id: str, period: str) -> str:
        return f"{organization_id}_{period.strip()}"

    async def publish_admissions(self, organization_id: str, period: str, actor: Actor) -> AdmissionRecord:
        """
        Finalize an institution's decisions for ``period``.

        Statuses are left untouched; publishing only freezes reopening and
        notifies applicants. Publishing the same period again returns the
        existing record.
        """
        if actor is None or not actor.acts_for(organization_id):
            raise ForbiddenError(
                "Only the institution may publish its admissions",
                organization_id=organization_id,
            )
        organization = await self._get_organization(organization_id)
        if organization.kind != OrganizationKind.INSTITUTION:
            raise ForbiddenError("Only institutions publish admissions", organization_id=organization_id)

        stats = await self.admission_stats(organization_id)
        record = AdmissionRecord(
            id=self.admission_record_id(organization_id, period),
            organization_id=organization_id,
            period=period,
            published_at=self.clock(),
            published_by=actor.id,
            admitted=stats["admitted"],
            rejected=stats["rejected"],
            pending=stats["pending"],
        )
        try:
            await self._call(
                self.store.create(Collections.ADMISSIONS, record.model_dump(), record.id),
                "publish_admissions",
            )
        except ConflictError:
            existing = await self._call(
                self.store.get(Collections.ADMISSIONS, record.id), "get_admissions"
            )
            self.logger.info(
                "Admissions already published",
                organization_id=organization_id,
                period=record.period
            )
            return AdmissionRecord.model_validate(existing)

        self.logger.info(
            "Admissions published",
            organization_id=organization_id,
            period=record.period,
            admitted=record.admitted,
            rejected=record.rejected,
            pending=record.pending,
            **log_actor(actor)
        )

        await self._notify_admissions(organization, record)
        return record

    async def _notify_admissions(self, organization: Organization, record: AdmissionRecord) -> None:
        if self.notifier is None:
            return
        applications = await self._query_applications(
            [("organization_id", "==", organization.id), ("kind", "==", OpportunityKind.COURSE)],
            "list_admission_applications",
        )
        for application in applications:
            try:
                await self.notifier.notify(
                    application.candidate_id,
                    f"{organization.name} has published admissions for {record.period}: "
                    f"your application to {application.opportunity_title} is {application.status.value}.",
                    category="admissions",
                    data={
                        "application_id": application.id,
                        "organization_id": organization.id,
                        "period": record.period,
                        "status": application.status.value,
                    },
                )
            except CareerPortalError as e:
                self.logger.warning(
                    "Admission notification failed",
                    application_id=application.id,
                    candidate_id=application.candidate_id,
                    error=str(e)
                )

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    async def admission_stats(self, organization_id: str) -> Dict[str, int]:
        """Course application counts by decision for one institution."""
        applications = await self._query_applications(
            [("organization_id", "==", organization_id), ("kind", "==", OpportunityKind.COURSE)],
            "admission_stats",
        )
        stats = {"total": len(applications), "admitted": 0, "rejected": 0, "pending": 0}
        for application in applications:
            if application.status.value in stats:
                stats[application.status.value] += 1
        return stats

    async def company_analytics(self, organization_id: str) -> Dict[str, Any]:
        """Job posting and applicant pipeline counts for one company."""
        jobs = await self._call(
            self.store.query(
                Collections.OPPORTUNITIES,
                [("organization_id", "==", organization_id), ("kind", "==", OpportunityKind.JOB)],
            ),
            "company_jobs",
        )
        applications = await self._query_applications(
            [("organization_id", "==", organization_id), ("kind", "==", OpportunityKind.JOB)],
            "company_applications",
        )

        status_counts = {status.value: 0 for status in JobApplicationStatus}
        for application in applications:
            status_counts[application.status.value] += 1

        return {
            "jobs_posted": len(jobs),
            "active_jobs": sum(1 for job in jobs if job.get("status") == OpportunityStatus.ACTIVE),
            "applications_received": len(applications),
            "status_counts": status_counts,
        }

    async def system_stats(self, actor: Actor) -> Dict[str, int]:
        """Platform-wide counts for the admin dashboard."""
        if actor is None or not actor.is_admin:
            raise ForbiddenError("Only administrators may view system statistics")

        candidates, organizations, jobs, course_applications = await asyncio.gather(
            self._call(self.store.query(Collections.CANDIDATES), "count_candidates"),
            self._call(
                self.store.query(Collections.ORGANIZATIONS, [("is_active", "==", True)]),
                "count_organizations",
            ),
            self._call(
                self.store.query(
                    Collections.OPPORTUNITIES,
                    [("kind", "==", OpportunityKind.JOB), ("status", "==", OpportunityStatus.ACTIVE)],
                ),
                "count_job_postings",
            ),
            self._query_applications([("kind", "==", OpportunityKind.COURSE)], "count_course_applications"),
        )

        return {
            "candidates": len(candidates),
            "active_institutions": sum(
                1 for org in organizations if org.get("kind") == OrganizationKind.INSTITUTION
            ),
            "active_companies": sum(
                1 for org in organizations if org.get("kind") == OrganizationKind.COMPANY
            ),
            "active_job_postings": len(jobs),
            "course_applications": len(course_applications),
            "pending_applications": sum(
                1 for app in course_applications if app.status == CourseApplicationStatus.PENDING
            ),
        }
