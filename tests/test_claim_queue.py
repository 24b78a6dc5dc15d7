"""Tests for claiming due schedules."""

import asyncio
from datetime import timedelta

import pytest

from cadence.repositories.workflow_repo import WorkflowRepository
from cadence.services.claim_queue import ClaimQueue
from tests.conftest import T0, at


class TestDueSelection:
    @pytest.mark.asyncio
    async def test_only_due_schedules_returned(self, queue, make_linked):
        fast, _ = await make_linked(60)
        slow, _ = await make_linked(120)

        batch = await queue.claim_due(10, at(90))

        assert [item.schedule_id for item in batch] == [fast.id]
        assert slow.id not in {item.schedule_id for item in batch}

    @pytest.mark.asyncio
    async def test_nothing_due_returns_empty(self, queue, make_linked):
        await make_linked(60)
        assert await queue.claim_due(10, at(59)) == []

    @pytest.mark.asyncio
    async def test_empty_store(self, queue):
        assert await queue.claim_due(5, T0) == []

    @pytest.mark.asyncio
    async def test_due_exactly_at_boundary(self, queue, make_linked):
        schedule, _ = await make_linked(60)
        batch = await queue.claim_due(10, at(60))
        assert [item.schedule_id for item in batch] == [schedule.id]

    @pytest.mark.asyncio
    async def test_naive_now_is_treated_as_utc(self, queue, make_linked):
        schedule, _ = await make_linked(60)
        batch = await queue.claim_due(10, at(60).replace(tzinfo=None))
        assert [item.schedule_id for item in batch] == [schedule.id]

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self, queue):
        with pytest.raises(ValueError, match="max_batch_size"):
            await queue.claim_due(0, T0)


class TestClaimAdvancesDueTime:
    @pytest.mark.asyncio
    async def test_claim_then_reclaim(self, queue, make_linked):
        schedule, _ = await make_linked(60)

        assert len(await queue.claim_due(10, at(60))) == 1
        assert await queue.claim_due(10, at(61)) == []
        again = await queue.claim_due(10, at(120))
        assert [item.schedule_id for item in again] == [schedule.id]

    @pytest.mark.asyncio
    async def test_updated_at_becomes_now(self, queue, schedules, make_linked):
        schedule, _ = await make_linked(60)
        await queue.claim_due(10, at(75))

        after = await schedules.view_schedule(schedule.id)
        assert after.updated_at == at(75)
        assert after.due_at == at(135)
        assert after.due_at - schedule.due_at >= timedelta(seconds=schedule.update_interval)

    @pytest.mark.asyncio
    async def test_snapshot_is_pre_claim_state(self, queue, make_linked):
        schedule, _ = await make_linked(60)
        [item] = await queue.claim_due(10, at(60))

        assert item.schedule.updated_at == T0
        assert item.schedule.due_at == at(60)
        assert item.schedule.metadata == {"interval": 60}
        assert item.claimed_at == at(60)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_sorted_by_due_time(self, queue, make_linked):
        await make_linked(90)
        await make_linked(30)
        await make_linked(60)

        batch = await queue.claim_due(10, at(100))

        due = [item.schedule.due_at for item in batch]
        assert due == [at(30), at(60), at(90)]

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self, queue, make_linked):
        a, _ = await make_linked(60)
        b, _ = await make_linked(60)

        batch = await queue.claim_due(10, at(60))

        assert [item.schedule_id for item in batch] == sorted([a.id, b.id])

    @pytest.mark.asyncio
    async def test_batch_of_one_takes_earliest(self, queue, make_linked):
        a, _ = await make_linked(60)
        b, _ = await make_linked(60)
        first, second = sorted([a.id, b.id])

        batch = await queue.claim_due(1, at(60))
        assert [item.schedule_id for item in batch] == [first]

        batch = await queue.claim_due(1, at(60))
        assert [item.schedule_id for item in batch] == [second]

    @pytest.mark.asyncio
    async def test_batch_bound(self, queue, make_linked):
        for _ in range(7):
            await make_linked(10)

        for n in (1, 2, 3):
            assert len(await queue.claim_due(n, at(10))) <= n


class TestSoftDeleteExclusion:
    @pytest.mark.asyncio
    async def test_deleted_schedule_never_claimed(self, queue, schedules, make_linked):
        schedule, _ = await make_linked(60)
        await schedules.delete_schedule(schedule.id, now=at(1))

        assert await queue.claim_due(10, at(600)) == []

    @pytest.mark.asyncio
    async def test_schedule_of_deleted_workflow_never_claimed(self, queue, database, schedules, make_linked):
        schedule, workflow_id = await make_linked(60)
        # Flag only the workflow; the schedule row itself stays live.
        async with database.transaction() as session:
            await WorkflowRepository(session).soft_delete(workflow_id, at(1))

        assert await queue.claim_due(10, at(600)) == []
        assert (await schedules.view_schedule(schedule.id)).deleted_at is None

    @pytest.mark.asyncio
    async def test_unlinked_schedule_never_claimed(self, queue, schedules):
        await schedules.create_schedule("ws-1", 60, now=T0)
        assert await queue.claim_due(10, at(600)) == []


class TestFanOut:
    @pytest.mark.asyncio
    async def test_one_item_per_live_workflow(self, queue, schedules, workflows, make_linked):
        schedule, first_wf = await make_linked(60)
        second = await workflows.create_workflow("ws-1", "second", now=T0)
        await schedules.replace_workflow_links(second.id, [schedule.id])

        batch = await queue.claim_due(10, at(60))

        assert sorted(item.workflow_id for item in batch) == sorted([first_wf, second.id])
        assert {item.schedule_id for item in batch} == {schedule.id}
        assert batch[0].schedule == batch[1].schedule
        assert (await schedules.view_schedule(schedule.id)).updated_at == at(60)

    @pytest.mark.asyncio
    async def test_split_fanout_is_deferred(self, queue, schedules, workflows, make_linked):
        early, _ = await make_linked(30)
        late, _ = await make_linked(60)
        extra = await workflows.create_workflow("ws-1", "extra", now=T0)
        await schedules.replace_workflow_links(extra.id, [late.id])

        batch = await queue.claim_due(2, at(60))
        assert [item.schedule_id for item in batch] == [early.id]
        assert (await schedules.view_schedule(late.id)).updated_at == T0

        batch = await queue.claim_due(2, at(60))
        assert [item.schedule_id for item in batch] == [late.id, late.id]

    @pytest.mark.asyncio
    async def test_partial_fanout_when_alone(self, queue, schedules, workflows, make_linked):
        schedule, _ = await make_linked(60)
        for name in ("b", "c"):
            wf = await workflows.create_workflow("ws-1", name, now=T0)
            await schedules.replace_workflow_links(wf.id, [schedule.id])

        batch = await queue.claim_due(2, at(60))

        assert len(batch) == 2
        assert (await schedules.view_schedule(schedule.id)).updated_at == at(60)


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_abort_leaves_rows_due(self, queue, make_linked):
        schedule, _ = await make_linked(60)

        with pytest.raises(RuntimeError, match="dispatch failed"):
            async with queue.claim(10, at(60)) as batch:
                assert [item.schedule_id for item in batch] == [schedule.id]
                raise RuntimeError("dispatch failed")

        again = await queue.claim_due(10, at(60))
        assert [item.schedule_id for item in again] == [schedule.id]

    @pytest.mark.asyncio
    async def test_dispatch_connection_error_is_not_a_store_error(self, queue, make_linked):
        schedule, _ = await make_linked(60)

        with pytest.raises(ConnectionRefusedError, match="worker endpoint refused"):
            async with queue.claim(10, at(60)):
                raise ConnectionRefusedError("worker endpoint refused")

        again = await queue.claim_due(10, at(60))
        assert [item.schedule_id for item in again] == [schedule.id]

    @pytest.mark.asyncio
    async def test_claim_context_commits_on_success(self, queue, schedules, make_linked):
        schedule, _ = await make_linked(60)

        async with queue.claim(10, at(60)) as batch:
            assert len(batch) == 1

        assert (await schedules.view_schedule(schedule.id)).updated_at == at(60)
        assert await queue.claim_due(10, at(60)) == []


class TestMutualExclusion:
    @pytest.mark.asyncio
    async def test_concurrent_claimers_never_overlap(self, database, make_linked):
        created = set()
        for _ in range(20):
            schedule, _ = await make_linked(60)
            created.add(schedule.id)

        now = at(60)
        claimers = [ClaimQueue(database) for _ in range(10)]
        results = await asyncio.gather(*(q.claim_due(5, now) for q in claimers))

        claimed = [item.schedule_id for batch in results for item in batch]
        # Drain whatever the first round left behind.
        while True:
            batch = await claimers[0].claim_due(5, now)
            if not batch:
                break
            claimed.extend(item.schedule_id for item in batch)

        assert len(claimed) == 20
        assert set(claimed) == created

    @pytest.mark.asyncio
    async def test_held_claim_blocks_second_claimer(self, database, make_linked):
        schedule, _ = await make_linked(60)
        first, second = ClaimQueue(database), ClaimQueue(database)

        async with first.claim(10, at(60)) as batch:
            assert len(batch) == 1
            contender = asyncio.create_task(second.claim_due(10, at(60)))
            await asyncio.sleep(0.2)
            assert not contender.done()

        assert await contender == []
