"""Tests for a single route check cycle."""
import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commute_monitor.config import get_settings
from commute_monitor.models import MonitorSettings, Notification, RouteHistory
from commute_monitor.services.route_checker import CheckStatus, RouteChecker, RouteLocks
from commute_monitor.services.store import RouteStore
from commute_monitor.services.travel_time import TravelTimeResult


def _checker(db_session, provider, publisher, locks=None):
    return RouteChecker(db_session, provider=provider, publisher=publisher, locks=locks)


async def _run_checks(db_session, route_id, provider, publisher):
    checker = _checker(db_session, provider, publisher)
    return [await checker.check_route(route_id) for _ in range(len(provider.durations))]


class TestCheckScenario:
    async def test_three_checks_all_notifications(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        route = make_route(interval=5)

        results = await _run_checks(db_session, route.id, fake_provider([20, 25, 22]), publisher)

        assert all(r.is_success for r in results)
        db_session.refresh(route)
        assert route.current_time == 22
        assert route.min_time == 20
        assert route.max_time == 25
        assert route.avg_time == 22
        assert route.change == -3
        assert route.last_checked is not None

        histories = RouteStore(db_session).get_route_histories(route.id)
        assert [h.travel_time for h in histories] == [20, 25, 22]
        assert [h.change for h in histories] == [None, 5, -3]
        assert [r.notification.type for r in results] == ["new", "increase", "decrease"]

    async def test_result_carries_written_entities(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        route = make_route()

        result = (await _run_checks(db_session, route.id, fake_provider([33]), publisher))[0]

        assert result.status == CheckStatus.OK
        assert result.route.id == route.id
        assert result.history.travel_time == 33
        assert result.history.change is None
        assert route.name in result.notification.message
        assert result.notification.is_read is False

    async def test_min_le_current_le_max_invariant(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        route = make_route()
        checker = _checker(db_session, fake_provider([40, 12, 55, 30, 30, 9]), publisher)

        for _ in range(6):
            result = await checker.check_route(route.id)
            r = result.route
            assert r.min_time <= r.current_time <= r.max_time


class TestNotificationGating:
    async def test_first_check_notifies_even_when_disabled(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        monitor_settings.enable_notifications = False
        monitor_settings.notification_type = "increase"
        db_session.commit()
        route = make_route()

        results = await _run_checks(db_session, route.id, fake_provider([20, 40]), publisher)

        assert results[0].notification.type == "new"
        assert results[1].notification is None
        assert db_session.query(Notification).count() == 1

    async def test_significant_plus_four_is_quiet(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        monitor_settings.notification_type = "significant"
        db_session.commit()
        route = make_route()

        results = await _run_checks(db_session, route.id, fake_provider([20, 24]), publisher)

        assert results[1].is_success
        assert results[1].notification is None

    @pytest.mark.parametrize("second", [25, 15])
    async def test_significant_five_notifies(self, db_session, monitor_settings, make_route, publisher, fake_provider, second):
        monitor_settings.notification_type = "significant"
        db_session.commit()
        route = make_route()

        results = await _run_checks(db_session, route.id, fake_provider([20, second]), publisher)

        assert results[1].notification is not None
        assert results[1].notification.type == ("increase" if second > 20 else "decrease")

    async def test_increase_only_ignores_decreases(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        monitor_settings.notification_type = "increase"
        db_session.commit()
        route = make_route()

        results = await _run_checks(db_session, route.id, fake_provider([30, 29, 10, 11]), publisher)

        assert [r.notification.type if r.notification else None for r in results] == [
            "new", None, None, "increase"
        ]


class TestFailures:
    async def test_not_found(self, db_session, monitor_settings, provider, publisher):
        result = await _checker(db_session, provider, publisher).check_route(999)

        assert result.status == CheckStatus.NOT_FOUND
        assert provider.calls == []

    async def test_unconfigured_makes_no_provider_call(self, db_session, make_route, provider, publisher):
        route = make_route()

        result = await _checker(db_session, provider, publisher).check_route(route.id)

        assert result.status == CheckStatus.UNCONFIGURED
        assert provider.calls == []
        assert db_session.query(RouteHistory).count() == 0
        assert db_session.query(Notification).count() == 0

    async def test_provider_failure_writes_nothing(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        route = make_route()
        checker = _checker(db_session, fake_provider([20, None]), publisher)

        await checker.check_route(route.id)
        result = await checker.check_route(route.id)

        assert result.status == CheckStatus.PROVIDER_FAILURE
        db_session.refresh(route)
        assert route.current_time == 20
        assert route.change is None
        assert db_session.query(RouteHistory).count() == 1
        assert db_session.query(Notification).count() == 1

    async def test_provider_exception_is_a_provider_failure(self, db_session, monitor_settings, make_route, publisher):
        class ExplodingProvider:
            async def fetch_travel_time(self, source, destination, api_key):
                raise RuntimeError("socket closed")

        route = make_route()
        result = await _checker(db_session, ExplodingProvider(), publisher).check_route(route.id)

        assert result.status == CheckStatus.PROVIDER_FAILURE
        assert db_session.query(RouteHistory).count() == 0

    async def test_route_deleted_while_fetching_is_not_found(self, db_session, monitor_settings, make_route, publisher):
        class DeletingProvider:
            """Deletes the route from another session while the request is in flight."""

            async def fetch_travel_time(self, source, destination, api_key):
                other = Session(bind=db_session.get_bind())
                try:
                    RouteStore(other).delete_route(route_id)
                finally:
                    other.close()
                return TravelTimeResult(20, "20 mins", "12.3 km")

        route = make_route()
        route_id = route.id

        result = await _checker(db_session, DeletingProvider(), publisher).check_route(route_id)

        assert result.status == CheckStatus.NOT_FOUND
        assert "deleted during the check" in result.error_message
        assert RouteStore(db_session).get_route(route_id) is None
        assert db_session.query(RouteHistory).count() == 0
        assert db_session.query(Notification).count() == 0

    async def test_notification_write_failure_keeps_earlier_writes(
        self, db_session, monitor_settings, make_route, publisher, fake_provider
    ):
        route = make_route()
        checker = _checker(db_session, fake_provider([20]), publisher)

        with patch.object(RouteStore, "create_notification", side_effect=SQLAlchemyError("disk I/O error")):
            result = await checker.check_route(route.id)

        assert result.status == CheckStatus.PERSISTENCE_FAILURE
        assert "notification insert" in result.error_message
        db_session.refresh(route)
        assert route.current_time == 20
        assert db_session.query(RouteHistory).count() == 1
        assert db_session.query(Notification).count() == 0

    async def test_history_write_failure_stops_the_cycle(self, db_session, monitor_settings, make_route, publisher, fake_provider):
        route = make_route()
        checker = _checker(db_session, fake_provider([20]), publisher)

        with patch.object(RouteStore, "create_route_history", side_effect=SQLAlchemyError("locked")):
            result = await checker.check_route(route.id)

        assert result.status == CheckStatus.PERSISTENCE_FAILURE
        db_session.refresh(route)
        assert route.current_time is None
        assert db_session.query(Notification).count() == 0


class TestApiKeyOverride:
    async def test_env_key_is_used_and_written_back(
        self, db_session, monitor_settings, make_route, provider, publisher, monkeypatch
    ):
        monkeypatch.setattr(get_settings(), "google_maps_api_key", "env-key-5678")
        provider.durations = [20]
        route = make_route()

        result = await _checker(db_session, provider, publisher).check_route(route.id)

        assert result.is_success
        assert provider.calls[0][2] == "env-key-5678"
        db_session.expire_all()
        assert MonitorSettings.get_or_create(db_session).api_key == "env-key-5678"


class TestConcurrentChecks:
    async def test_same_route_checks_are_serialised(self, db_session, monitor_settings, make_route, publisher):
        class SlowProvider:
            def __init__(self):
                self.durations = [20, 30]
                self.active = 0
                self.max_active = 0

            async def fetch_travel_time(self, source, destination, api_key):
                self.active += 1
                self.max_active = max(self.max_active, self.active)
                await asyncio.sleep(0.01)
                self.active -= 1
                minutes = self.durations.pop(0)
                return TravelTimeResult(minutes, f"{minutes} mins", "5 km")

        route = make_route()
        provider = SlowProvider()
        locks = RouteLocks()
        scheduled = _checker(db_session, provider, publisher, locks)
        manual = _checker(db_session, provider, publisher, locks)

        first, second = await asyncio.gather(
            scheduled.check_route(route.id),
            manual.check_route(route.id),
        )

        assert provider.max_active == 1
        assert first.history.change is None
        assert second.history.change == 10
