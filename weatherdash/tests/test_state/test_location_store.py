"""Tests for the location store: batch load, current location, add/delete/refresh."""

import asyncio
import itertools
import logging
import random
from unittest.mock import MagicMock

import httpx
import pytest
import respx

from weatherdash.errors import NetworkFailure, NotConfigured, NotFound
from weatherdash.ingest.geocode_client import (
    CURRENT_LOCATION_LABEL,
    GeocodeClient,
    GeocodeResult,
)
from weatherdash.ingest.geolocation import FixedGeolocationSource, UnsupportedGeolocationSource
from weatherdash.ingest.registry_client import RegistryClient
from weatherdash.ingest.weather_client import WeatherClient
from weatherdash.models.common import CURRENT, FetchState
from weatherdash.models.forecast import PlaceLabel
from weatherdash.models.location import PENDING_PREFIX, Location
from weatherdash.models.reporting import NotificationLevel
from weatherdash.reporting.notifier import Notifier
from weatherdash.state.location_store import LocationStore
from weatherdash.state.persistence import LocationPersistence
from weatherdash.storage import client_storage_repo

METEO_URL = "https://test-meteo.example.com/v1/forecast"

OSLO = Location(id="loc-a", name="Oslo", latitude=59.91, longitude=10.75)
LIMA = Location(id="loc-b", name="Lima", latitude=-12.05, longitude=-77.04)
PERTH = Location(id="loc-c", name="Perth", latitude=-31.95, longitude=115.86)


def _fail_for(latitudes: set[float], record_factory):
    def fetch(lat, lon):
        if lat in latitudes:
            raise NetworkFailure("Forecast request failed: HTTP 502", 502)
        return record_factory(lat, lon)
    return fetch


def _assert_subset_invariant(store: LocationStore):
    allowed = {CURRENT} | {loc.id for loc in store.locations}
    assert set(store.forecasts) <= allowed
    assert set(store.failures) <= allowed


class TestBatchLoad:
    def test_no_saved_locations(self, store, weather):
        asyncio.run(store.load())
        assert store.locations == []
        assert store.forecasts == {}
        weather.fetch_forecast.assert_not_called()

    def test_all_succeed(self, store, persistence, weather):
        persistence.save([OSLO, LIMA])
        asyncio.run(store.load())

        assert store.locations == [OSLO, LIMA]
        assert set(store.forecasts) == {"loc-a", "loc-b"}
        assert store.forecasts["loc-a"].label == PlaceLabel("Oslo")
        assert store.entry("loc-b").state == FetchState.READY
        assert weather.fetch_forecast.call_count == 2

    def test_partial_failure_commits_once(self, store, persistence, weather, record_factory):
        persistence.save([OSLO, LIMA, PERTH])
        weather.fetch_forecast.side_effect = _fail_for({LIMA.latitude}, record_factory)
        commits: list[set[str]] = []
        store.subscribe(lambda s: commits.append(set(s.forecasts)))

        asyncio.run(store.load())

        assert set(store.forecasts) == {"loc-a", "loc-c"}
        # First commit publishes the restored sequence, the second the whole batch
        assert commits == [set(), {"loc-a", "loc-c"}]
        assert store.entry("loc-b").state == FetchState.ERRORED
        assert "502" in store.entry("loc-b").error
        assert store.entry("loc-a").state == FetchState.READY
        errors = store.notifier.errors()
        assert len(errors) == 1
        assert "Lima" in errors[0].message

    def test_fetches_run_concurrently(self, store, persistence, weather, record_factory):
        persistence.save([OSLO, LIMA, PERTH])
        started: list[float] = []

        async def run():
            release = asyncio.Event()

            async def fetch(lat, lon):
                started.append(lat)
                if len(started) == 3:
                    release.set()
                # deadlocks into a timeout unless all three are in flight together
                await asyncio.wait_for(release.wait(), timeout=1.0)
                return record_factory(lat, lon)

            weather.fetch_forecast.side_effect = fetch
            await store.load()

        asyncio.run(run())
        assert len(started) == 3
        assert set(store.forecasts) == {"loc-a", "loc-b", "loc-c"}

    def test_corrupt_storage_is_silent(self, store, tmp_db, weather):
        client_storage_repo.set_item(tmp_db, "weatherLocations", "[{oops")
        asyncio.run(store.load())
        assert store.locations == []
        assert store.notifier.history == []
        weather.fetch_forecast.assert_not_called()

    def test_location_deleted_mid_batch_is_dropped(
        self, store, persistence, weather, record_factory
    ):
        persistence.save([OSLO, LIMA])

        def fetch(lat, lon):
            if lat == LIMA.latitude:
                store.delete_location("loc-b")
            return record_factory(lat, lon)

        weather.fetch_forecast.side_effect = fetch
        asyncio.run(store.load())

        assert [loc.id for loc in store.locations] == ["loc-a"]
        assert set(store.forecasts) == {"loc-a"}
        _assert_subset_invariant(store)

    def test_close_discards_batch(self, store, persistence, weather, record_factory):
        persistence.save([OSLO])
        calls = []
        store.subscribe(lambda s: calls.append(set(s.forecasts)))

        def fetch(lat, lon):
            store.close()
            return record_factory(lat, lon)

        weather.fetch_forecast.side_effect = fetch
        asyncio.run(store.load())

        assert store.forecasts == {}
        assert calls == [set()]

    @respx.mock
    def test_malformed_payload_isolated_to_its_location(
        self, weather, geocoder, persistence, forecast_payload
    ):
        def respond(request):
            body = dict(forecast_payload)
            if request.url.params["latitude"] == str(LIMA.latitude):
                body["latitude"] = None
            return httpx.Response(200, json=body)

        respx.get(METEO_URL).mock(side_effect=respond)
        client = WeatherClient(base_url=METEO_URL, timeout=1.0)
        persistence.save([OSLO, LIMA])
        store = LocationStore(client, geocoder, persistence, notifier=Notifier())

        asyncio.run(store.load())

        assert set(store.forecasts) == {"loc-a"}
        assert store.entry("loc-a").state == FetchState.READY
        assert store.entry("loc-b").state == FetchState.ERRORED
        assert "Malformed" in store.entry("loc-b").error

    def test_item_failure_logged_with_traceback(self, store, persistence, weather, caplog):
        persistence.save([OSLO])
        weather.fetch_forecast.side_effect = NetworkFailure("down")

        with caplog.at_level(logging.ERROR, logger="weatherdash.state.location_store"):
            asyncio.run(store.load())

        record = next(
            r for r in caplog.records
            if r.name == "weatherdash.state.location_store" and "Oslo" in r.getMessage()
        )
        assert record.exc_info is not None


class TestCurrentLocation:
    def test_uninitialized_before_position(self, store):
        assert store.entry(CURRENT).state == FetchState.UNINITIALIZED
        assert store.entry().state == FetchState.UNINITIALIZED

    def test_ready_with_reverse_label(self, store, weather, geocoder):
        asyncio.run(store.locate_current(FixedGeolocationSource(52.52, 13.41)))

        entry = store.entry(CURRENT)
        assert entry.state == FetchState.READY
        assert entry.record.label == PlaceLabel("Berlin", "Deutschland")
        weather.fetch_forecast.assert_awaited_once_with(52.52, 13.41)
        geocoder.reverse.assert_awaited_once_with(52.52, 13.41)
        assert store.position == (52.52, 13.41)

    def test_loading_published_before_ready(self, store):
        states = []
        store.subscribe(lambda s: states.append(s.entry(CURRENT).state))
        asyncio.run(store.load_current(52.52, 13.41))
        assert states == [FetchState.LOADING, FetchState.READY]

    @respx.mock
    def test_reverse_failure_degrades_silently(self, weather, persistence):
        respx.get("https://test-nominatim.example.com/reverse").mock(
            side_effect=httpx.ConnectError("down")
        )
        geocoder = GeocodeClient(reverse_url="https://test-nominatim.example.com/reverse")
        store = LocationStore(weather, geocoder, persistence, notifier=Notifier())

        ok = asyncio.run(store.load_current(52.52, 13.41))

        assert ok
        entry = store.entry(CURRENT)
        assert entry.state == FetchState.READY
        assert entry.record.label == PlaceLabel(name="Current Location", country="")
        assert store.notifier.history == []

    def test_reverse_exception_still_ready(self, store, geocoder):
        geocoder.reverse.side_effect = RuntimeError("unexpected")
        asyncio.run(store.load_current(1.0, 2.0))
        assert store.entry(CURRENT).record.label == CURRENT_LOCATION_LABEL
        assert store.notifier.errors() == []

    def test_weather_failure_errors(self, store, weather):
        weather.fetch_forecast.side_effect = NetworkFailure("Forecast request failed: boom")
        ok = asyncio.run(store.load_current(1.0, 2.0))

        assert not ok
        entry = store.entry(CURRENT)
        assert entry.state == FetchState.ERRORED
        assert "boom" in entry.error
        assert CURRENT not in store.forecasts
        note = store.notifier.errors()[0]
        assert note.message == "Failed to fetch weather data"
        assert note.kind == "NetworkFailure"

    def test_geolocation_error(self, store, weather):
        asyncio.run(store.locate_current(UnsupportedGeolocationSource()))

        entry = store.entry(CURRENT)
        assert entry.state == FetchState.ERRORED
        assert entry.error == "Geolocation is not supported"
        assert store.notifier.errors()[0].message == (
            "Geolocation Error: Geolocation is not supported"
        )
        weather.fetch_forecast.assert_not_called()

    def test_locate_current_reports_outcome(self, store, weather):
        assert asyncio.run(store.locate_current(FixedGeolocationSource(52.52, 13.41)))
        assert weather.fetch_forecast.await_count == 1
        assert not asyncio.run(store.locate_current(UnsupportedGeolocationSource()))


class TestAddLocation:
    def test_success(self, store, geocoder, persistence):
        geocoder.forward.return_value = GeocodeResult(51.5, -0.12, "London", "United Kingdom")

        location = asyncio.run(store.add_location("  london "))

        geocoder.forward.assert_awaited_once_with("london")
        assert location is not None
        assert location.id.startswith(PENDING_PREFIX)
        assert location.name == "London"
        assert store.locations == [location]
        assert store.active == location.id
        assert store.entry().state == FetchState.READY
        assert store.entry().record.label == PlaceLabel("London")
        assert persistence.load() == [location]
        assert store.notifier.history[-1].level == NotificationLevel.SUCCESS

    def test_appends_after_existing(self, store, geocoder, persistence):
        persistence.save([OSLO])
        store.restore()
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")

        location = asyncio.run(store.add_location("quito"))
        assert [loc.id for loc in persistence.load()] == ["loc-a", location.id]

    def test_blank_query_ignored(self, store, geocoder):
        assert asyncio.run(store.add_location("   ")) is None
        geocoder.forward.assert_not_called()

    @respx.mock
    def test_not_found_leaves_state_unchanged(self, weather, persistence):
        respx.get("https://test-geocode.example.com/json").mock(
            return_value=httpx.Response(200, json={"results": []})
        )
        geocoder = GeocodeClient(
            api_key="k", forward_url="https://test-geocode.example.com/json"
        )
        persistence.save([OSLO])
        store = LocationStore(weather, geocoder, persistence, notifier=Notifier())
        asyncio.run(store.load())
        before = (store.locations, store.forecasts, store.active)

        result = asyncio.run(store.add_location("zzz-invalid-query"))

        assert result is None
        assert (store.locations, store.forecasts, store.active) == before
        assert persistence.load() == [OSLO]
        note = store.notifier.errors()[-1]
        assert note.kind == NotFound.__name__
        assert note.message.startswith("Failed to find location")

    def test_not_configured(self, store, geocoder):
        geocoder.forward.side_effect = NotConfigured("Geocoding API key is not configured")
        assert asyncio.run(store.add_location("paris")) is None
        assert store.notifier.errors()[-1].kind == "NotConfigured"
        assert store.locations == []

    def test_forecast_failure_keeps_location(self, store, geocoder, weather):
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")
        weather.fetch_forecast.side_effect = NetworkFailure("down")

        location = asyncio.run(store.add_location("quito"))

        assert store.locations == [location]
        assert store.entry(location.id).state == FetchState.ERRORED
        assert store.notifier.errors()[-1].message == "Failed to fetch weather for Quito"

    def test_mirrors_to_registry(self, weather, geocoder, persistence):
        registry = MagicMock(spec=RegistryClient)
        registry.create_location.return_value = {"id": "srv-1"}
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")
        store = LocationStore(weather, geocoder, persistence, registry=registry)

        location = asyncio.run(store.add_location("quito"))

        registry.create_location.assert_awaited_once_with("Quito", 1.0, 2.0)
        # the local id stays authoritative
        assert location.id != "srv-1"

    def test_registry_failure_is_not_surfaced(self, weather, geocoder, persistence):
        registry = MagicMock(spec=RegistryClient)
        registry.create_location.side_effect = NetworkFailure("Request failed: refused")
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")
        store = LocationStore(weather, geocoder, persistence, notifier=Notifier(), registry=registry)

        location = asyncio.run(store.add_location("quito"))

        assert store.entry(location.id).state == FetchState.READY
        assert store.notifier.errors() == []

    def test_colliding_ids_are_reminted(self, weather, geocoder, persistence):
        ids = iter(["temp-1", "temp-1", "temp-1", "temp-2"])
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")
        store = LocationStore(weather, geocoder, persistence, id_factory=lambda: next(ids))

        first = asyncio.run(store.add_location("quito"))
        second = asyncio.run(store.add_location("quito"))
        assert (first.id, second.id) == ("temp-1", "temp-2")

    def test_closed_during_fetch_discards_result(self, store, geocoder, weather, record_factory):
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")

        def fetch(lat, lon):
            store.close()
            return record_factory(lat, lon)

        weather.fetch_forecast.side_effect = fetch
        location = asyncio.run(store.add_location("quito"))
        assert store.forecasts == {location.id: None}

    def test_slow_registry_does_not_delay_forecast(self, weather, geocoder, persistence):
        registry = MagicMock(spec=RegistryClient)
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")
        store = LocationStore(weather, geocoder, persistence, registry=registry)
        seen = {}

        async def run():
            release = asyncio.Event()

            async def create_location(name, latitude, longitude):
                await release.wait()
                return {"id": "srv-1"}

            registry.create_location.side_effect = create_location
            task = asyncio.create_task(store.add_location("quito"))
            for _ in range(100):
                await asyncio.sleep(0)
                if store.locations and store.entry(store.locations[0].id).state == FetchState.READY:
                    break
            seen["state"] = store.entry(store.locations[0].id).state
            seen["pending"] = not task.done()
            release.set()
            return await task

        location = asyncio.run(run())

        assert seen == {"state": FetchState.READY, "pending": True}
        assert store.entry(location.id).state == FetchState.READY
        registry.create_location.assert_awaited_once_with("Quito", 1.0, 2.0)


class TestSearch:
    def test_preview_does_not_mutate(self, store, geocoder, persistence, weather):
        persistence.save([OSLO])
        store.restore()
        commits = []
        store.subscribe(lambda s: commits.append(s.active))
        geocoder.forward.return_value = GeocodeResult(51.5, -0.12, "London", "United Kingdom")

        preview = asyncio.run(store.search(" london "))

        assert preview.location.name == "London"
        assert preview.location.is_pending
        assert preview.forecast.label == PlaceLabel("London", "United Kingdom")
        weather.fetch_forecast.assert_awaited_once_with(51.5, -0.12)
        assert store.locations == [OSLO]
        assert store.forecasts == {}
        assert persistence.load() == [OSLO]
        assert commits == []
        assert store.notifier.history[-1].message == "Location found"

    def test_geocode_failure(self, store, geocoder, weather):
        geocoder.forward.side_effect = NotFound("Location not found: 'zzz'")

        assert asyncio.run(store.search("zzz")) is None
        note = store.notifier.errors()[-1]
        assert note.message.startswith("Failed to find location")
        assert note.kind == "NotFound"
        weather.fetch_forecast.assert_not_called()

    def test_forecast_failure(self, store, geocoder, weather):
        geocoder.forward.return_value = GeocodeResult(1.0, 2.0, "Quito")
        weather.fetch_forecast.side_effect = NetworkFailure("down")

        assert asyncio.run(store.search("quito")) is None
        assert store.notifier.errors()[-1].kind == "NetworkFailure"
        assert store.locations == []

    def test_blank_query(self, store, geocoder):
        assert asyncio.run(store.search("  ")) is None
        geocoder.forward.assert_not_called()


class TestDeleteLocation:
    def test_removes_location_and_forecast(self, store, persistence):
        persistence.save([OSLO, LIMA])
        asyncio.run(store.load())

        assert store.delete_location("loc-a")

        assert store.locations == [LIMA]
        assert set(store.forecasts) == {"loc-b"}
        assert persistence.load() == [LIMA]
        assert store.notifier.history[-1].message == "Location removed successfully"

    def test_active_resets_to_current(self, store, persistence):
        persistence.save([OSLO, LIMA])
        asyncio.run(store.load())
        store.select("loc-b")

        store.delete_location("loc-b")
        assert store.active == CURRENT

    def test_inactive_delete_keeps_selection(self, store, persistence):
        persistence.save([OSLO, LIMA])
        asyncio.run(store.load())
        store.select("loc-b")

        store.delete_location("loc-a")
        assert store.active == "loc-b"

    def test_last_delete_clears_storage(self, store, persistence, tmp_db):
        persistence.save([OSLO])
        asyncio.run(store.load())

        store.delete_location("loc-a")

        assert client_storage_repo.get_item(tmp_db, "weatherLocations") is None
        assert store.locations == []

    def test_delete_removes_failure(self, store, persistence, weather):
        persistence.save([OSLO])
        weather.fetch_forecast.side_effect = NetworkFailure("down")
        asyncio.run(store.load())
        assert "loc-a" in store.failures

        store.delete_location("loc-a")
        assert store.failures == {}

    def test_unknown_id(self, store):
        assert not store.delete_location("nope")
        assert not store.delete_location(CURRENT)


class TestRefresh:
    def test_saved_success_shows_loading_first(self, store, persistence, weather):
        persistence.save([OSLO])
        asyncio.run(store.load())
        store.select("loc-a")
        states = []
        store.subscribe(lambda s: states.append(s.entry("loc-a").state))

        assert asyncio.run(store.refresh())

        assert states == [FetchState.LOADING, FetchState.READY]
        assert weather.fetch_forecast.call_count == 2
        assert store.notifier.history[-1].message == "Weather data for Oslo refreshed"

    def test_only_active_entity_fetched(self, store, persistence, weather):
        persistence.save([OSLO, LIMA])
        asyncio.run(store.load())
        store.select("loc-b")
        weather.fetch_forecast.reset_mock()

        asyncio.run(store.refresh())
        weather.fetch_forecast.assert_awaited_once_with(LIMA.latitude, LIMA.longitude)

    def test_failure_restores_previous(self, store, persistence, weather):
        persistence.save([OSLO])
        asyncio.run(store.load())
        previous = store.forecasts["loc-a"]
        weather.fetch_forecast.side_effect = NetworkFailure("down")

        assert not asyncio.run(store.refresh("loc-a"))

        assert store.forecasts["loc-a"] is previous
        assert store.entry("loc-a").state == FetchState.READY
        note = store.notifier.errors()[-1]
        assert note.message == "Failed to refresh weather for Oslo"
        assert note.kind == "NetworkFailure"

    def test_failure_without_previous_errors(self, store, persistence, weather):
        persistence.save([OSLO])
        weather.fetch_forecast.side_effect = NetworkFailure("down")
        asyncio.run(store.load())

        asyncio.run(store.refresh("loc-a"))
        assert store.entry("loc-a").state == FetchState.ERRORED
        assert "loc-a" not in store.forecasts

    def test_current(self, store, weather, geocoder):
        asyncio.run(store.load_current(52.52, 13.41))
        asyncio.run(store.refresh())

        assert weather.fetch_forecast.call_count == 2
        assert geocoder.reverse.call_count == 2
        assert store.notifier.history[-1].message == "Weather data refreshed"

    def test_current_failure_restores_previous(self, store, weather):
        asyncio.run(store.load_current(52.52, 13.41))
        previous = store.forecasts[CURRENT]
        weather.fetch_forecast.side_effect = NetworkFailure("down")

        assert not asyncio.run(store.refresh(CURRENT))
        assert store.forecasts[CURRENT] is previous
        assert store.notifier.errors()[-1].message == "Failed to refresh weather data"

    def test_current_without_position(self, store, weather):
        assert not asyncio.run(store.refresh())
        weather.fetch_forecast.assert_not_called()

    def test_unknown_location(self, store, weather):
        assert not asyncio.run(store.refresh("nope"))
        weather.fetch_forecast.assert_not_called()


class TestSelect:
    def test_switch_and_back(self, store, persistence):
        persistence.save([OSLO])
        store.restore()
        store.select("loc-a")
        assert store.active == "loc-a"
        store.select(CURRENT)
        assert store.active == CURRENT

    def test_unknown_raises(self, store):
        with pytest.raises(KeyError):
            store.select("nope")

    def test_entry_unknown_raises(self, store):
        with pytest.raises(KeyError):
            store.entry("nope")

    def test_unsubscribe(self, store, persistence):
        persistence.save([OSLO])
        store.restore()
        calls = []
        unsubscribe = store.subscribe(lambda s: calls.append(s.active))
        store.select("loc-a")
        unsubscribe()
        store.select(CURRENT)
        assert calls == ["loc-a"]


class TestInvariants:
    def test_random_add_delete_sequences(self, weather, geocoder, tmp_db):
        rng = random.Random(7)
        # a small id pool forces collisions
        pool = itertools.cycle([f"temp-{i}" for i in range(5)])
        geocoder.forward.side_effect = lambda q: GeocodeResult(
            rng.uniform(-80, 80), rng.uniform(-170, 170), q
        )
        store = LocationStore(
            weather, geocoder, LocationPersistence(tmp_db), id_factory=lambda: next(pool)
        )

        for step in range(60):
            if store.locations and rng.random() < 0.4:
                victim = rng.choice(store.locations)
                was_active = store.active == victim.id
                store.delete_location(victim.id)
                if was_active:
                    assert store.active == CURRENT
            elif len(store.locations) < 5:
                asyncio.run(store.add_location(f"place-{step}"))

            ids = [loc.id for loc in store.locations]
            assert len(ids) == len(set(ids))
            assert store.active == CURRENT or store.active in ids
            _assert_subset_invariant(store)
            assert LocationPersistence(tmp_db).load() == store.locations
