"""Service wiring shared by the HTTP routes."""

from dataclasses import dataclass
from typing import Optional

from career_portal.applications.lifecycle import ApplicationLifecycleManager
from career_portal.candidates.profiles import ProfileService
from career_portal.matching.scorer import MatchScorer
from career_portal.notifications.notifier import StoreNotifier
from career_portal.opportunities.catalog import OpportunityCatalog
from career_portal.organizations.approval import ApprovalWorkflowManager
from career_portal.store.base import EntityStore
from career_portal.store.memory import InMemoryEntityStore


@dataclass
class PortalServices:
    """Engine components bound to one store."""
    store: EntityStore
    notifier: StoreNotifier
    approvals: ApprovalWorkflowManager
    catalog: OpportunityCatalog
    profiles: ProfileService
    lifecycle: ApplicationLifecycleManager
    scorer: MatchScorer

    @classmethod
    def build(cls, store: Optional[EntityStore] = None) -> "PortalServices":
        store = store or InMemoryEntityStore()
        notifier = StoreNotifier(store)
        catalog = OpportunityCatalog(store)
        profiles = ProfileService(store)
        return cls(
            store=store,
            notifier=notifier,
            approvals=ApprovalWorkflowManager(store),
            catalog=catalog,
            profiles=profiles,
            lifecycle=ApplicationLifecycleManager(store, notifier=notifier),
            scorer=MatchScorer(store, profiles=profiles, catalog=catalog),
        )
