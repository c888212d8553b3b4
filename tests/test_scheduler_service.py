"""Tests for scheduler service."""

from unittest.mock import Mock

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from src.database.store import MarketDataStore, StoreError
from src.services.collection_pipeline import CollectionResult
from src.services.scheduler_service import JOB_ID, CollectorScheduler


@st.composite
def crontab_strategy(draw):
    """Generate valid five-field crontab expressions."""
    minute = draw(st.one_of(st.integers(0, 59).map(str), st.sampled_from(["*/5", "*/30", "*"])))
    hour = draw(st.one_of(st.integers(0, 23).map(str), st.just("*")))
    weekday = draw(st.sampled_from(["*", "1-5", "mon-fri"]))
    return f"{minute} {hour} * * {weekday}"


@pytest.fixture
def pipeline():
    mock = Mock()
    mock.run.return_value = CollectionResult(count=2, categories=["kospi", "gold"])
    return mock


@pytest.fixture
def session_factory():
    return Mock(side_effect=lambda: Mock())


class TestCollectorScheduler:
    """Test suite for CollectorScheduler."""

    def test_scheduler_initialization(self, pipeline, session_factory):
        """Test that scheduler initializes correctly."""
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="*/30 * * * *")

        assert scheduler.is_running is False
        assert scheduler.scheduler is not None
        assert scheduler.timezone == "Asia/Seoul"

    @given(crontab_strategy())
    @settings(max_examples=20, deadline=None)
    def test_collection_is_scheduled(self, schedule):
        """
        **Feature: money-weather, Property 3: Collection runs on its crontab**

        For any valid crontab, starting the scheduler registers exactly one
        collection job.
        """
        scheduler = CollectorScheduler(Mock(), Mock(), schedule=schedule, timezone="Asia/Seoul")

        scheduler.start()
        try:
            assert scheduler.is_running is True
            jobs = scheduler.scheduler.get_jobs()
            assert [job.id for job in jobs] == [JOB_ID]
            assert jobs[0].max_instances == 1
        finally:
            scheduler.stop()

    def test_invalid_crontab_is_rejected(self, pipeline, session_factory):
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="every thirty minutes")

        with pytest.raises(ValueError):
            scheduler.start()
        assert scheduler.is_running is False

    def test_starting_twice_keeps_one_job(self, pipeline, session_factory):
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="*/30 * * * *")

        scheduler.start()
        scheduler.start()
        try:
            assert len(scheduler.scheduler.get_jobs()) == 1
        finally:
            scheduler.stop()

    def test_execute_collection_runs_pipeline_with_fresh_session(self, pipeline, session_factory):
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="*/30 * * * *")

        result = scheduler.execute_collection()

        assert result.count == 2
        store, = pipeline.run.call_args.args
        assert isinstance(store, MarketDataStore)
        assert pipeline.run.call_args.kwargs == {"trigger": "scheduler"}
        session_factory.assert_called_once()
        store.db_session.close.assert_called_once()

    @pytest.mark.parametrize("error", [StoreError("locked"), RuntimeError("boom")])
    def test_execute_collection_never_raises(self, pipeline, error):
        session = Mock()
        pipeline.run.side_effect = error
        scheduler = CollectorScheduler(pipeline, lambda: session, schedule="*/30 * * * *")

        assert scheduler.execute_collection() is None
        session.close.assert_called_once()

    def test_status_when_stopped(self, pipeline, session_factory):
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="0 9 * * 1-5")

        assert scheduler.get_status() == {
            "running": False,
            "schedule": "0 9 * * 1-5",
            "timezone": "Asia/Seoul",
            "next_run_time": None,
        }

    def test_status_when_running(self, pipeline, session_factory):
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="0 9 * * 1-5")

        scheduler.start()
        try:
            status = scheduler.get_status()
        finally:
            scheduler.stop()

        assert status["running"] is True
        assert "T09:00:00" in status["next_run_time"]

    def test_scheduler_stop(self, pipeline, session_factory):
        """Test that scheduler can be stopped."""
        scheduler = CollectorScheduler(pipeline, session_factory, schedule="*/30 * * * *")
        scheduler.start()

        scheduler.stop()

        assert scheduler.is_running is False
