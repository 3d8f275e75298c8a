"""Unit tests for database models."""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from astra.models import (
    Base, User, ReportTemplate, UserReport, ScheduleType, ReportFrequency, AstraChat
)


@pytest.fixture(scope="function")
def db_session():
    """Create test database session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture
def owner(db_session):
    user = User(email="dana@example.com", name="Dana")
    db_session.add(user)
    db_session.commit()
    return user


class TestUserModel:
    """Test User model."""

    def test_display_name_prefers_name(self):
        assert User(name="Dana", email="dana@example.com").display_name == "Dana"

    def test_display_name_falls_back_to_email(self):
        assert User(email="eli.w@example.com").display_name == "eli.w"

    def test_display_name_default(self):
        assert User().display_name == "User"


class TestUserReportModel:
    """Test UserReport model."""

    def test_defaults(self, db_session, owner):
        report = UserReport(user_id=owner.id, title="Daily KPIs", prompt="Summarize")
        db_session.add(report)
        db_session.commit()

        assert len(report.id) == 36
        assert report.schedule_type == ScheduleType.SCHEDULED
        assert report.schedule_frequency == ReportFrequency.DAILY
        assert report.schedule_time == "07:00"
        assert report.visualization_mode == "text"
        assert report.is_active is True
        assert report.is_scheduled
        assert report.next_run_at is None
        assert report.created_at is not None

    def test_enums_stored_as_values(self, db_session, owner):
        report = UserReport(
            user_id=owner.id,
            title="Weekly",
            prompt="p",
            schedule_type=ScheduleType.MANUAL,
            schedule_frequency=ReportFrequency.WEEKLY,
        )
        db_session.add(report)
        db_session.commit()

        row = db_session.execute(
            text("SELECT schedule_type, schedule_frequency FROM astra_reports")
        ).one()
        assert tuple(row) == ("manual", "weekly")

    def test_template_relationship(self, db_session, owner):
        template = ReportTemplate(name="Daily KPIs", prompt_template="Summarize KPIs", category="performance")
        db_session.add(template)
        db_session.commit()

        report = UserReport(user_id=owner.id, title="T", prompt="p", report_template_id=template.id)
        db_session.add(report)
        db_session.commit()

        assert report.template.name == "Daily KPIs"
        assert owner.reports == [report]


class TestAstraChatModel:
    """Test AstraChat model."""

    def test_metadata_column(self, db_session, owner):
        message = AstraChat(
            user_id=owner.id,
            message="Report text",
            mode="reports",
            message_type="astra",
            message_metadata={"report_title": "Daily KPIs"},
        )
        db_session.add(message)
        db_session.commit()

        row = db_session.execute(text("SELECT metadata FROM astra_chats")).one()
        assert "Daily KPIs" in row[0]
        assert message.visualization is False
        assert message.response_time_ms == 0
