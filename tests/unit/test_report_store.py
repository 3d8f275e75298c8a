"""Unit tests for the report configuration store."""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from astra.core.exceptions import NotFoundError, ValidationError, PersistenceError
from astra.models import AstraChat, ReportTemplate, UserReport, ScheduleType, ReportFrequency
from astra.services.report_state import ReportsState
from astra.services.report_store import ReportStore, REPORT_NOT_FOUND
from astra.services.schedule import utc_now


@pytest.fixture
def state():
    return ReportsState()


@pytest.fixture
def store(db, user, state):
    return ReportStore(db, state, user)


@pytest.fixture
def report(store):
    return store.create({"title": "Daily KPIs", "prompt": "Summarize yesterday's KPIs"})


def reject_writes(db, event):
    """Make SQLite abort every INSERT or UPDATE on the reports table."""
    db.execute(text(
        f"CREATE TRIGGER reject_report_{event.lower()} BEFORE {event} ON astra_reports "
        "BEGIN SELECT RAISE(ABORT, 'storage unavailable'); END"
    ))
    db.commit()


class TestCreate:
    """Test report creation."""

    def test_create_scheduled_report(self, store, state, user):
        """Scheduled reports get a next run within the next day."""
        before = utc_now()

        report = store.create({
            "title": "Daily KPIs",
            "prompt": "Summarize yesterday's KPIs",
            "schedule_time": "09:30",
        })

        assert report is not None
        assert report.user_id == user.id
        assert report.schedule_type == ScheduleType.SCHEDULED
        assert report.schedule_frequency == ReportFrequency.DAILY
        assert report.is_active is True
        assert report.last_run_at is None
        assert before < report.next_run_at <= before + timedelta(hours=25)
        assert state.reports == [report]

    def test_create_manual_report_has_no_next_run(self, store):
        """Manual reports never get a next_run_at."""
        report = store.create({
            "title": "Ad hoc",
            "prompt": "Anything new?",
            "schedule_type": "manual",
        })

        assert report.schedule_type == ScheduleType.MANUAL
        assert report.next_run_at is None

    def test_weekly_requires_start_day(self, store, db):
        """Weekly reports without a day are rejected before any write."""
        with pytest.raises(ValidationError) as exc_info:
            store.create({
                "title": "Weekly",
                "prompt": "Week in review",
                "schedule_frequency": "weekly",
            })

        assert exc_info.value.details["field"] == "schedule_day"
        assert db.query(UserReport).count() == 0

    def test_weekly_with_weekday(self, store):
        """Weekday names are accepted case-insensitively."""
        report = store.create({
            "title": "Weekly",
            "prompt": "Week in review",
            "schedule_frequency": "weekly",
            "schedule_day": "Monday",
        })

        assert report.schedule_day == "monday"
        assert report.next_run_at is not None

    @pytest.mark.parametrize("day", ["0", "29", "31", "first"])
    def test_monthly_day_out_of_range(self, store, day):
        """Monthly start day must be 1..28."""
        with pytest.raises(ValidationError):
            store.create({
                "title": "Monthly",
                "prompt": "Month in review",
                "schedule_frequency": "monthly",
                "schedule_day": day,
            })

    def test_manual_report_does_not_need_day(self, store):
        """Start day only matters for scheduled reports."""
        report = store.create({
            "title": "Manual weekly",
            "prompt": "Week in review",
            "schedule_type": "manual",
            "schedule_frequency": "weekly",
        })

        assert report is not None

    @pytest.mark.parametrize("field", ["title", "prompt"])
    def test_blank_text_rejected(self, store, field):
        data = {"title": "Daily KPIs", "prompt": "Summarize"}
        data[field] = "   "

        with pytest.raises(ValidationError):
            store.create(data)

    def test_invalid_schedule_time_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create({"title": "T", "prompt": "P", "schedule_time": "7 o'clock"})

    def test_storage_failure_returns_none(self, user, state):
        """Write errors leave an error message instead of raising."""
        db = MagicMock()
        db.commit.side_effect = SQLAlchemyError("connection lost")
        store = ReportStore(db, state, user)

        assert store.create({"title": "T", "prompt": "P"}) is None
        assert state.error == "Failed to create report"
        db.rollback.assert_called_once()

    def test_database_error_leaves_session_usable(self, db, store, state, user):
        """A rejected insert is rolled back before anything else touches the session."""
        reject_writes(db, "INSERT")

        assert store.create({"title": "T", "prompt": "P"}) is None
        assert state.error == "Failed to create report"
        assert store.list_reports() == []
        assert user.email == "dana@example.com"


class TestReads:
    """Test listing reports, templates and messages."""

    def test_list_reports_newest_first_and_scoped(self, db, store, user, other_user):
        older = UserReport(user_id=user.id, title="Older", prompt="p", created_at=datetime(2024, 1, 1))
        newer = UserReport(user_id=user.id, title="Newer", prompt="p", created_at=datetime(2024, 2, 1))
        foreign = UserReport(user_id=other_user.id, title="Foreign", prompt="p")
        db.add_all([older, newer, foreign])
        db.commit()

        reports = store.list_reports()

        assert [r.title for r in reports] == ["Newer", "Older"]
        assert store.state.is_loading is False

    def test_list_reports_failure_keeps_previous(self, user, state):
        """A failed reload keeps what was already loaded."""
        previous = [MagicMock()]
        state.reports = previous
        db = MagicMock()
        db.query.side_effect = SQLAlchemyError("timeout")

        reports = ReportStore(db, state, user).list_reports()

        assert reports is previous
        assert state.error == "Failed to load reports"
        assert state.is_loading is False

    def test_list_templates_active_only(self, db, store):
        db.add_all([
            ReportTemplate(name="Weekly digest", prompt_template="p"),
            ReportTemplate(name="Daily KPIs", prompt_template="p"),
            ReportTemplate(name="Retired", prompt_template="p", is_active=False),
        ])
        db.commit()

        templates = store.list_templates()

        assert [t.name for t in templates] == ["Daily KPIs", "Weekly digest"]

    def test_report_includes_template(self, db, store):
        template = ReportTemplate(name="Daily KPIs", prompt_template="Summarize KPIs")
        db.add(template)
        db.commit()

        report = store.create({
            "title": "From template",
            "prompt": template.prompt_template,
            "report_template_id": template.id,
        })

        assert store.list_reports()[0].template.name == "Daily KPIs"
        assert report.report_template_id == template.id


class TestUpdate:
    """Test partial updates."""

    def test_non_schedule_change_keeps_next_run(self, db, store, report):
        """Editing the title does not touch next_run_at."""
        sentinel = datetime(2030, 1, 1, 12, 0)
        report.next_run_at = sentinel
        db.commit()

        updated = store.update(report.id, {"title": "Renamed"})

        assert updated.title == "Renamed"
        assert updated.next_run_at == sentinel

    def test_schedule_change_recomputes_next_run(self, db, store, report):
        """Changing the time recomputes next_run_at."""
        sentinel = datetime(2030, 1, 1, 12, 0)
        report.next_run_at = sentinel
        db.commit()

        updated = store.update(report.id, {"schedule_time": "18:00"})

        assert updated.schedule_time == "18:00"
        assert updated.next_run_at != sentinel
        assert updated.next_run_at <= utc_now() + timedelta(hours=25)

    def test_switch_to_manual_clears_next_run(self, store, report):
        updated = store.update(report.id, {"schedule_type": "manual"})

        assert updated.next_run_at is None

    def test_invalid_update_changes_nothing(self, db, store, report):
        """Validation runs against the merged result before writing."""
        with pytest.raises(ValidationError):
            store.update(report.id, {"schedule_frequency": "weekly"})

        db.refresh(report)
        assert report.schedule_frequency == ReportFrequency.DAILY

    def test_cannot_update_other_users_report(self, db, report, other_user):
        """Scoping by user hides other users' reports."""
        other_state = ReportsState()
        other_store = ReportStore(db, other_state, other_user)

        assert other_store.update(report.id, {"title": "Hijacked"}) is None
        assert other_state.error == REPORT_NOT_FOUND

        db.refresh(report)
        assert report.title == "Daily KPIs"

    def test_toggle_active(self, store, report):
        """Pausing keeps the schedule."""
        next_run = report.next_run_at

        paused = store.toggle_active(report.id, False)

        assert paused.is_active is False
        assert paused.next_run_at == next_run

    def test_unknown_fields_ignored(self, store, report):
        updated = store.update(report.id, {"user_id": "someone-else", "title": "Kept"})

        assert updated.user_id == store.user.id
        assert updated.title == "Kept"

    def test_database_error_leaves_session_usable(self, db, store, state, report):
        """A failed commit is rolled back and the stored row is unchanged."""
        reject_writes(db, "UPDATE")

        assert store.update(report.id, {"title": "New"}) is None
        assert state.error == "Failed to update report"
        assert store.get_report(report.id).title == "Daily KPIs"

    @pytest.mark.parametrize("field", ["is_active", "schedule_type", "schedule_frequency", "schedule_time"])
    def test_null_required_field_rejected(self, db, store, report, field):
        """Explicit nulls for required columns are validation errors."""
        with pytest.raises(ValidationError) as exc_info:
            store.update(report.id, {field: None})

        assert exc_info.value.details["field"] == field
        db.refresh(report)
        assert getattr(report, field) is not None

    def test_null_optional_field_cleared(self, store, report):
        updated = store.update(report.id, {"report_template_id": None, "schedule_day": None})

        assert updated.report_template_id is None
        assert updated.schedule_day is None


class TestDelete:
    """Test report deletion."""

    def test_delete_keeps_messages(self, db, store, report):
        """Past report messages survive their report."""
        store.add_report_message("Report text", {"report_title": report.title})

        assert store.delete(report.id) is True

        assert db.query(UserReport).count() == 0
        assert [m.message for m in store.load_report_messages()] == ["Report text"]
        assert store.state.reports == []

    def test_delete_missing_report(self, store, state):
        assert store.delete("does-not-exist") is False
        assert state.error == REPORT_NOT_FOUND

    def test_cannot_delete_other_users_report(self, db, report, other_user):
        other_store = ReportStore(db, ReportsState(), other_user)

        assert other_store.delete(report.id) is False
        assert db.query(UserReport).count() == 1


class TestExecutionBookkeeping:
    """Test mark_executed and report messages."""

    def test_mark_executed_moves_next_run_from_execution_time(self, store, report):
        executed_at = datetime(2024, 7, 15, 11, 0, 5)

        store.mark_executed(report, executed_at=executed_at)

        assert report.last_run_at == executed_at
        assert report.next_run_at == datetime(2024, 7, 16, 11, 0)

    def test_mark_executed_manual_report(self, store):
        report = store.create({"title": "T", "prompt": "P", "schedule_type": "manual"})

        store.mark_executed(report, executed_at=datetime(2024, 7, 15, 11, 0))

        assert report.last_run_at == datetime(2024, 7, 15, 11, 0)
        assert report.next_run_at is None

    def test_mark_executed_failure_raises(self, user, state):
        db = MagicMock()
        db.commit.side_effect = SQLAlchemyError("deadlock")
        report = UserReport(title="T", prompt="P", schedule_type=ScheduleType.MANUAL)

        with pytest.raises(PersistenceError):
            ReportStore(db, state, user).mark_executed(report)

    def test_add_report_message(self, store, user):
        message = store.add_report_message(
            "Revenue is up",
            {"report_title": "Daily KPIs", "is_manual_run": True},
            prompt="Summarize",
            model_used="n8n-workflow",
            response_time_ms=120,
        )

        assert message.mode == "reports"
        assert message.message_type == "astra"
        assert message.user_name == "Dana"
        assert message.user_email == user.email
        assert message.message_metadata["report_title"] == "Daily KPIs"
        assert message.astra_prompt == "Summarize"
        assert message.visualization is False

    def test_load_messages_reports_mode_only(self, db, store, user):
        store.add_report_message("Report", {})
        db.add(AstraChat(user_id=user.id, message="hello", mode="private"))
        db.commit()

        messages = store.load_report_messages()

        assert [m.message for m in messages] == ["Report"]
        assert store.state.messages == messages

    def test_delete_report_message(self, store):
        message = store.add_report_message("Report", {})
        store.load_report_messages()

        store.delete_report_message(message.id)

        assert store.load_report_messages() == []
        assert store.state.messages == []

    def test_cannot_delete_other_users_message(self, db, store, other_user):
        message = store.add_report_message("Report", {})
        other_store = ReportStore(db, ReportsState(), other_user)

        with pytest.raises(NotFoundError):
            other_store.delete_report_message(message.id)
