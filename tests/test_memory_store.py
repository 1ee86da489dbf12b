"""Tests for the in-memory entity store."""

import asyncio

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from career_portal.core.errors import ConflictError, NotFoundError, TransientStoreError
from career_portal.store.base import call_with_timeout, matches, sort_documents
from career_portal.store.memory import InMemoryEntityStore


class TestQueryHelpers:
    """Filter and ordering helpers shared by store adapters."""

    def test_filters_are_conjunctive(self):
        document = {"status": "pending", "score": 70, "skills": ["python", "sql"]}
        assert matches(document, [("status", "==", "pending"), ("score", ">=", 60)])
        assert not matches(document, [("status", "==", "pending"), ("score", ">", 70)])
        assert matches(document, [("skills", "contains", "sql")])
        assert matches(document, [("status", "in", ["pending", "new"])])
        assert matches(document, [("status", "not_in", ["hired"])])

    def test_comparisons_skip_missing_fields(self):
        assert not matches({}, [("score", "<", 10)])
        assert matches({}, [("score", "==", None)])

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            matches({"a": 1}, [("a", "~", 1)])

    def test_multi_key_sort_with_missing_values(self):
        documents = [
            {"id": "a", "rank": 2, "name": "x"},
            {"id": "b", "rank": None, "name": "y"},
            {"id": "c", "rank": 2, "name": "a"},
            {"id": "d", "rank": 5, "name": "b"},
        ]
        ordered = sort_documents(documents, [("rank", True), ("name", False)])
        assert [d["id"] for d in ordered] == ["d", "c", "a", "b"]

    @given(values=st.lists(st.integers(min_value=-100, max_value=100), max_size=20))
    @settings(max_examples=50)
    def test_sort_property(self, values):
        """
        Property: Ordered Results

        Sorting ascending by a numeric field yields non-decreasing values.
        """
        documents = [{"id": str(i), "value": v} for i, v in enumerate(values)]
        ordered = [d["value"] for d in sort_documents(documents, [("value", False)])]
        assert ordered == sorted(values)


class TestInMemoryEntityStore:
    """CRUD, counters, subscriptions and fault injection."""

    @pytest.fixture
    def store(self):
        return InMemoryEntityStore()

    @pytest.mark.asyncio
    async def test_create_get_update_delete(self, store):
        entity_id = await store.create("opportunities", {"title": "Data Science", "tags": ["ml"]})
        document = await store.get("opportunities", entity_id)
        assert document["id"] == entity_id
        assert document["title"] == "Data Science"

        await store.update("opportunities", entity_id, {"title": "Applied Data Science"})
        assert (await store.get("opportunities", entity_id))["title"] == "Applied Data Science"

        await store.delete("opportunities", entity_id)
        with pytest.raises(NotFoundError):
            await store.get("opportunities", entity_id)

    @pytest.mark.asyncio
    async def test_duplicate_create_conflicts(self, store):
        await store.create("admissions", {"period": "2025"}, "org-1_2025")
        with pytest.raises(ConflictError):
            await store.create("admissions", {"period": "2025"}, "org-1_2025")

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store):
        await store.create("opportunities", {"tags": ["ml"]}, "opp-1")
        document = await store.get("opportunities", "opp-1")
        document["tags"].append("changed")

        assert (await store.get("opportunities", "opp-1"))["tags"] == ["ml"]

    @pytest.mark.asyncio
    async def test_missing_documents(self, store):
        with pytest.raises(NotFoundError):
            await store.update("applications", "ghost", {"status": "admitted"})
        with pytest.raises(NotFoundError):
            await store.atomic_increment("opportunities", "ghost", "applicant_count", 1)

    @pytest.mark.asyncio
    async def test_compare_and_set(self, store):
        await store.create("opportunities", {"applicant_count": 3}, "opp-1")

        assert await store.compare_and_set("opportunities", "opp-1", "applicant_count", 2, 4) is False
        assert await store.compare_and_set("opportunities", "opp-1", "applicant_count", 3, 4) is True
        assert (await store.get("opportunities", "opp-1"))["applicant_count"] == 4

    @given(deltas=st.lists(st.integers(min_value=-3, max_value=3), min_size=1, max_size=30))
    @settings(max_examples=30, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_concurrent_increments_property(self, deltas):
        """
        Property: Serialized Increments

        Concurrent atomic increments never lose an update.
        """
        async def run_test():
            store = InMemoryEntityStore()
            await store.create("opportunities", {"applicant_count": 0}, "opp-1")
            await asyncio.gather(*[
                store.atomic_increment("opportunities", "opp-1", "applicant_count", delta)
                for delta in deltas
            ])
            document = await store.get("opportunities", "opp-1")
            assert document["applicant_count"] == sum(deltas)

        asyncio.run(run_test())

    @pytest.mark.asyncio
    async def test_fail_next(self, store):
        store.fail_next("create", count=2)
        for _ in range(2):
            with pytest.raises(TransientStoreError):
                await store.create("applications", {"status": "pending"})
        assert await store.create("applications", {"status": "pending"}, "app-1") == "app-1"

    @pytest.mark.asyncio
    async def test_latency_hits_timeout(self):
        store = InMemoryEntityStore(latency=0.2)
        with pytest.raises(TransientStoreError):
            await call_with_timeout(store.query("applications"), 0.01, "query")

    @pytest.mark.asyncio
    async def test_subscription_delivers_snapshots(self, store):
        await store.create("applications", {"candidate_id": "c1"}, "app-1")
        subscription = store.subscribe("applications", [("candidate_id", "==", "c1")])

        first = await subscription.__anext__()
        assert [d["id"] for d in first.documents] == ["app-1"]

        await store.create("applications", {"candidate_id": "c1"}, "app-2")
        second = await subscription.__anext__()
        assert {d["id"] for d in second.documents} == {"app-1", "app-2"}

        subscription.unsubscribe()
        assert store.active_subscriptions == 0
        with pytest.raises(StopAsyncIteration):
            await subscription.__anext__()

    @pytest.mark.asyncio
    async def test_error_event_ends_subscription(self, store):
        subscription = store.subscribe("applications")
        assert store.emit_error("applications") == 1

        events = [event async for event in subscription]

        assert [event.is_error for event in events] == [False, True]
        assert store.active_subscriptions == 0


if __name__ == "__main__":
    pytest.main([__file__])
