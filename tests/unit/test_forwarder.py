"""Tests for overdue forwarding."""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from fieldops.core import db_client
from fieldops.core.errors import InvalidTransitionError
from fieldops.domain.log import TaskAction
from fieldops.domain.task import Task, TaskStatus
from fieldops.modules.tasks import forwarder, service
from tests.unit.conftest import FROZEN_NOW


YESTERDAY_AFTERNOON = datetime(2024, 3, 14, 17, 0, tzinfo=UTC)
TOMORROW_MIDNIGHT = datetime(2024, 3, 16, 0, 0, tzinfo=UTC)


@pytest.mark.unit
class TestOverdueRule:
    """Tests for the pure overdue predicate and forward_task."""

    def test_due_before_today_is_overdue(self):
        """Test a Planned task due yesterday is overdue."""
        task = Task(id="1", title="t", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        assert forwarder.is_overdue(task, FROZEN_NOW, UTC)

    def test_due_earlier_today_is_not_overdue(self):
        """Test a deadline that passed this morning waits until tomorrow."""
        task = Task(id="1", title="t", status=TaskStatus.PLANNED, due_date=FROZEN_NOW - timedelta(hours=2))
        assert not forwarder.is_overdue(task, FROZEN_NOW, UTC)

    @pytest.mark.parametrize("status", [TaskStatus.NOT_STARTED, TaskStatus.PENDING, TaskStatus.COMPLETED])
    def test_only_planned_tasks(self, status):
        """Test tasks outside Planned are never overdue."""
        task = Task(id="1", title="t", status=status, due_date=YESTERDAY_AFTERNOON)
        assert not forwarder.is_overdue(task, FROZEN_NOW, UTC)

    def test_day_boundary_uses_configured_timezone(self):
        """Test the calendar day is taken in the forwarding timezone."""
        new_york = ZoneInfo("America/New_York")
        # 03:00 UTC on the 15th is still 23:00 on the 14th in New York
        now = datetime(2024, 3, 15, 3, 0, tzinfo=UTC)
        task = Task(id="1", title="t", status=TaskStatus.PLANNED, due_date=datetime(2024, 3, 14, 12, 0, tzinfo=UTC))

        assert forwarder.is_overdue(task, now, UTC)
        assert not forwarder.is_overdue(task, now, new_york)

    def test_next_day_in_timezone(self):
        """Test the new due date is local midnight of the next day."""
        new_york = ZoneInfo("America/New_York")
        now = datetime(2024, 3, 15, 3, 0, tzinfo=UTC)
        assert forwarder.start_of_next_day(now, new_york) == datetime(2024, 3, 15, 0, 0, tzinfo=new_york)

    def test_forward_task_fields(self):
        """Test forwarding sets status, forwarded_at and both due dates."""
        task = Task(id="1", title="t", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        forwarded = forwarder.forward_task(task, FROZEN_NOW, UTC)

        assert forwarded.status == TaskStatus.PENDING
        assert forwarded.forwarded_at == FROZEN_NOW
        assert forwarded.original_due_date == YESTERDAY_AFTERNOON
        assert forwarded.due_date == TOMORROW_MIDNIGHT

    def test_forward_task_rejects_not_overdue(self):
        """Test forwarding a task that is not overdue raises."""
        task = Task(id="1", title="t", status=TaskStatus.PLANNED, due_date=TOMORROW_MIDNIGHT)
        with pytest.raises(InvalidTransitionError):
            forwarder.forward_task(task, FROZEN_NOW, UTC)


@pytest.mark.unit
class TestForwardOverdueTasks:
    """Tests for the forwarding batch."""

    async def test_forwards_overdue_only(self, patched_db, frozen_clock):
        """Test only overdue Planned tasks move to Pending."""
        overdue = await service.create_task(title="overdue", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        today = await service.create_task(
            title="today", status=TaskStatus.PLANNED, due_date=FROZEN_NOW - timedelta(hours=1)
        )
        active = await service.create_task(title="active", due_date=YESTERDAY_AFTERNOON)

        result = await forwarder.forward_overdue_tasks()

        assert result.forwarded == [overdue.id]
        assert result.failed == []

        moved = await service.get_task(task_id=overdue.id)
        assert moved.status == TaskStatus.PENDING
        assert moved.original_due_date == YESTERDAY_AFTERNOON
        assert moved.due_date == TOMORROW_MIDNIGHT
        assert moved.forwarded_at == FROZEN_NOW
        assert moved.version == 2

        assert (await service.get_task(task_id=today.id)).status == TaskStatus.PLANNED
        assert (await service.get_task(task_id=active.id)).status == TaskStatus.NOT_STARTED

    async def test_second_run_same_day_is_noop(self, patched_db, frozen_clock):
        """Test re-running the batch forwards nothing new."""
        task = await service.create_task(title="overdue", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)

        await forwarder.forward_overdue_tasks()
        frozen_clock.advance(timedelta(hours=3))
        second = await forwarder.forward_overdue_tasks()

        assert second.forwarded == []
        assert second.scanned == 0
        stored = patched_db._collections["tasks"][task.id]
        assert stored["version"] == 2

    async def test_original_due_date_survives_reforwarding(self, patched_db, frozen_clock):
        """Test the first pre-forwarding deadline is kept through a return to Planned."""
        task = await service.create_task(title="overdue", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)

        await forwarder.forward_overdue_tasks()
        returned = await service.transition_task(task_id=task.id, action=TaskAction.RETURNED_TO_PLANNED)
        assert returned.status == TaskStatus.PLANNED
        assert returned.due_date == YESTERDAY_AFTERNOON

        await forwarder.forward_overdue_tasks()
        again = await service.get_task(task_id=task.id)

        assert again.status == TaskStatus.PENDING
        assert again.original_due_date == YESTERDAY_AFTERNOON

    async def test_failure_on_one_task_continues(self, patched_db, frozen_clock, monkeypatch):
        """Test a write failure is reported and the rest of the batch proceeds."""
        broken = await service.create_task(title="broken", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        fine = await service.create_task(
            title="fine", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON - timedelta(days=1)
        )

        real_update = patched_db.update_record

        async def fail_for_broken(collection, record_id, data, expected_version=None):
            if record_id == broken.id:
                msg = "disk full"
                raise db_client.DatabaseError(msg)
            return await real_update(collection, record_id, data, expected_version)

        monkeypatch.setattr("fieldops.core.db_client.update_record", fail_for_broken)

        result = await forwarder.forward_overdue_tasks()

        assert result.forwarded == [fine.id]
        assert [failure.task_id for failure in result.failed] == [broken.id]
        assert "disk full" in result.failed[0].error
        assert (await service.get_task(task_id=broken.id)).status == TaskStatus.PLANNED

    async def test_unreadable_row_does_not_stop_batch(self, patched_db, frozen_clock):
        """Test a row that cannot be decoded is reported and the other tasks are forwarded."""
        corrupt = await service.create_task(title="corrupt", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        fine = await service.create_task(
            title="fine", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON - timedelta(days=1)
        )
        patched_db._collections["tasks"][corrupt.id]["total_pause_duration_ms"] = "garbage"

        result = await forwarder.forward_overdue_tasks()

        assert result.scanned == 2
        assert result.forwarded == [fine.id]
        assert [failure.task_id for failure in result.failed] == [corrupt.id]
        assert "garbage" in result.failed[0].error
        assert patched_db._collections["tasks"][corrupt.id]["status"] == "Planned"

    async def test_failed_scan_raises(self, patched_db, frozen_clock):
        """Test a failed query surfaces so the scheduler can retry."""
        patched_db.fail_on.add(("list", "tasks"))
        with pytest.raises(db_client.DatabaseError):
            await forwarder.forward_overdue_tasks()


@pytest.mark.unit
class TestForwardingQueries:
    """Tests for stats and the pending list."""

    async def test_stats(self, patched_db, frozen_clock):
        """Test counts before and after a run."""
        await service.create_task(title="a", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        await service.create_task(title="b", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON)
        await service.create_task(title="c", status=TaskStatus.PLANNED, due_date=TOMORROW_MIDNIGHT)

        before = await forwarder.forwarding_stats()
        assert (before.pending, before.forwarded_total, before.overdue_planned) == (0, 0, 2)

        await forwarder.forward_overdue_tasks()

        after = await forwarder.forwarding_stats()
        assert (after.pending, after.forwarded_total, after.overdue_planned) == (2, 2, 0)

    async def test_pending_list_for_worker(self, patched_db, frozen_clock):
        """Test the pending list filters by worker."""
        mine = await service.create_task(
            title="mine", assigned_to="w1", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON
        )
        await service.create_task(
            title="theirs", assigned_to="w2", status=TaskStatus.PLANNED, due_date=YESTERDAY_AFTERNOON
        )
        await forwarder.forward_overdue_tasks()

        pending = await forwarder.list_pending_tasks(worker_id="w1")
        assert [task.id for task in pending] == [mine.id]
