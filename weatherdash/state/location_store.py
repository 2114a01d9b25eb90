"""Saved locations, the active tab and the forecast kept for each of them.

The store is the single writer of three pieces of state:

* the ordered sequence of saved locations (persisted whole on every change),
* the forecast map keyed by location id or ``CURRENT``; a key that is absent
  or mapped to ``None`` means "loading",
* the active selection.

Fetch failures are kept in a parallel ``failures`` map so the presentation
can tell an errored tab from one that is still loading. Both maps only ever
hold ``CURRENT`` or ids of saved locations.

All network work is awaited on one event loop. Each operation derives its
next state from the last committed one; the startup batch load waits for
every sibling fetch to settle and then commits once.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace

from weatherdash.errors import WeatherDashError
from weatherdash.ingest.geocode_client import CURRENT_LOCATION_LABEL, GeocodeClient
from weatherdash.ingest.geolocation import GeolocationSource
from weatherdash.ingest.registry_client import RegistryClient
from weatherdash.ingest.weather_client import WeatherClient
from weatherdash.models.common import CURRENT, LocationId
from weatherdash.models.forecast import ForecastEntry, ForecastRecord, PlaceLabel
from weatherdash.models.location import Location, LocationPreview, new_pending_id
from weatherdash.reporting.notifier import Notifier
from weatherdash.state.persistence import LocationPersistence

logger = logging.getLogger(__name__)

Listener = Callable[["LocationStore"], None]

# (location id, record or None, failure or None)
_FetchOutcome = tuple[LocationId, ForecastRecord | None, WeatherDashError | None]


class LocationStore:
    def __init__(
        self,
        weather: WeatherClient,
        geocoder: GeocodeClient,
        persistence: LocationPersistence,
        notifier: Notifier | None = None,
        registry: RegistryClient | None = None,
        id_factory: Callable[[], LocationId] = new_pending_id,
    ):
        self.weather = weather
        self.geocoder = geocoder
        self.persistence = persistence
        self.notifier = notifier or Notifier()
        self.registry = registry
        self.id_factory = id_factory

        self._locations: list[Location] = []
        self._forecasts: dict[LocationId, ForecastRecord | None] = {}
        self._failures: dict[LocationId, str] = {}
        self._active: LocationId = CURRENT
        self._position: tuple[float, float] | None = None
        self._listeners: list[Listener] = []
        self._closed = False

    # --- Read side ---

    @property
    def locations(self) -> list[Location]:
        return list(self._locations)

    @property
    def forecasts(self) -> dict[LocationId, ForecastRecord | None]:
        return dict(self._forecasts)

    @property
    def failures(self) -> dict[LocationId, str]:
        return dict(self._failures)

    @property
    def active(self) -> LocationId:
        return self._active

    @property
    def position(self) -> tuple[float, float] | None:
        return self._position

    def get_location(self, location_id: LocationId) -> Location | None:
        for loc in self._locations:
            if loc.id == location_id:
                return loc
        return None

    def entry(self, location_id: LocationId | None = None) -> ForecastEntry:
        """Tagged forecast state for a tab (defaults to the active one)."""
        location_id = location_id or self._active
        if location_id != CURRENT and self.get_location(location_id) is None:
            raise KeyError(f"Unknown location id: {location_id}")
        if location_id in self._failures:
            return ForecastEntry.errored(self._failures[location_id])
        if location_id == CURRENT and self._position is None:
            return ForecastEntry.uninitialized()
        record = self._forecasts.get(location_id)
        if record is None:
            return ForecastEntry.loading()
        return ForecastEntry.ready(record)

    # --- Listeners ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener after every committed state change. Returns an unsubscribe."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def close(self) -> None:
        """Stop committing; results of fetches still in flight are dropped."""
        self._closed = True
        self._listeners.clear()

    def _commit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # --- Startup ---

    def restore(self) -> list[Location]:
        """Read the persisted sequence without fetching any forecast."""
        self._locations = self.persistence.load()
        self._commit()
        return self.locations

    async def load(self) -> None:
        """Read saved locations and fetch all their forecasts in parallel.

        Results are merged in one commit after every fetch has settled.
        """
        self.restore()
        if not self._locations:
            return

        batch = list(self._locations)
        outcomes = await asyncio.gather(*(self._fetch_saved(loc) for loc in batch))
        if self._closed:
            logger.debug("Store closed, discarding batch of %d forecasts", len(outcomes))
            return

        forecasts = dict(self._forecasts)
        failures = dict(self._failures)
        failed_names = []
        for (location_id, record, error), loc in zip(outcomes, batch, strict=True):
            if self.get_location(location_id) is None:
                continue
            if record is not None:
                forecasts[location_id] = record
                failures.pop(location_id, None)
            else:
                forecasts.pop(location_id, None)
                failures[location_id] = str(error)
                failed_names.append(loc.name)

        self._forecasts = forecasts
        self._failures = failures
        logger.info(
            "Loaded forecasts for %d of %d saved locations",
            len(batch) - len(failed_names), len(batch),
        )
        if failed_names:
            self.notifier.error(f"Failed to fetch weather for {', '.join(failed_names)}")
        self._commit()

    async def locate_current(self, source: GeolocationSource) -> bool:
        """Resolve the device position once, then load its forecast."""
        result = await source.locate()
        if self._closed:
            return False
        if not result.ok:
            self._failures = {**self._failures, CURRENT: result.error or "Position unavailable"}
            self.notifier.error(f"Geolocation Error: {result.error}")
            self._commit()
            return False
        assert result.latitude is not None and result.longitude is not None
        return await self.load_current(result.latitude, result.longitude)

    async def load_current(self, latitude: float, longitude: float) -> bool:
        """Fetch the current-location forecast and label for a known position."""
        self._position = (latitude, longitude)
        self._mark_loading(CURRENT)
        try:
            record = await self._fetch_current(latitude, longitude)
        except WeatherDashError as e:
            if self._closed:
                return False
            self._forecasts = {k: v for k, v in self._forecasts.items() if k != CURRENT}
            self._failures = {**self._failures, CURRENT: str(e)}
            self.notifier.error("Failed to fetch weather data", e)
            self._commit()
            return False
        if self._closed:
            return False
        self._set_record(CURRENT, record)
        self._commit()
        return True

    # --- User actions ---

    async def search(self, query: str) -> LocationPreview | None:
        """Geocode a query and fetch a preview forecast without saving anything.

        The preview carries a pending id that is not reserved. Returns None
        when either step fails.
        """
        query = query.strip()
        if not query:
            return None

        try:
            place = await self.geocoder.forward(query)
            record = await self.weather.fetch_forecast(place.latitude, place.longitude)
        except WeatherDashError as e:
            if not self._closed:
                self.notifier.error(f"Failed to find location: {e}", e)
            return None
        if self._closed:
            return None

        location = Location(
            id=self._mint_id(),
            name=place.name,
            latitude=place.latitude,
            longitude=place.longitude,
        )
        self.notifier.success("Location found")
        return LocationPreview(
            location=location,
            forecast=replace(record, label=PlaceLabel(place.name, place.country or "")),
        )

    async def add_location(self, query: str) -> Location | None:
        """Geocode a search, save the result, fetch its forecast and select it.

        The registry mirror runs alongside the fetch and never delays the
        forecast. Returns None when the search fails; nothing is mutated in
        that case.
        """
        query = query.strip()
        if not query:
            return None

        try:
            place = await self.geocoder.forward(query)
        except WeatherDashError as e:
            if not self._closed:
                self.notifier.error(f"Failed to find location: {e}", e)
            return None
        if self._closed:
            return None

        location = Location(
            id=self._mint_id(),
            name=place.name,
            latitude=place.latitude,
            longitude=place.longitude,
        )
        self._locations = [*self._locations, location]
        self.persistence.save(self._locations)
        self._forecasts = {**self._forecasts, location.id: None}
        self._active = location.id
        self.notifier.success("Location added successfully")
        self._commit()

        mirror = asyncio.create_task(self._mirror(location))
        self._apply_saved_outcome(await self._fetch_saved(location))
        await mirror
        return location

    def delete_location(self, location_id: LocationId) -> bool:
        if self.get_location(location_id) is None:
            return False

        self._locations = [loc for loc in self._locations if loc.id != location_id]
        self._forecasts = {k: v for k, v in self._forecasts.items() if k != location_id}
        self._failures = {k: v for k, v in self._failures.items() if k != location_id}
        if self._active == location_id:
            self._active = CURRENT
        self.persistence.save(self._locations)
        self.notifier.success("Location removed successfully")
        self._commit()
        return True

    def select(self, location_id: LocationId) -> None:
        """Switch the active tab."""
        if location_id != CURRENT and self.get_location(location_id) is None:
            raise KeyError(f"Unknown location id: {location_id}")
        self._active = location_id
        self._commit()

    async def refresh(self, location_id: LocationId | None = None) -> bool:
        """Re-fetch one tab (the active one by default).

        The tab shows the loading sentinel while the request is in flight. On
        failure the previous forecast is put back and an error is reported.
        """
        location_id = location_id or self._active
        if location_id == CURRENT:
            return await self._refresh_current()

        location = self.get_location(location_id)
        if location is None:
            logger.warning("Refresh requested for unknown location %s", location_id)
            return False

        previous = self._forecasts.get(location_id)
        self._mark_loading(location_id)
        _, record, error = await self._fetch_saved(location)
        if self._closed or self.get_location(location_id) is None:
            return False
        if record is None:
            self._restore(location_id, previous, str(error))
            self.notifier.error(f"Failed to refresh weather for {location.name}", error)
            self._commit()
            return False
        self._set_record(location_id, record)
        self.notifier.success(f"Weather data for {location.name} refreshed")
        self._commit()
        return True

    async def _refresh_current(self) -> bool:
        if self._position is None:
            logger.info("Refresh of current location skipped, position unknown")
            return False

        previous = self._forecasts.get(CURRENT)
        self._mark_loading(CURRENT)
        try:
            record = await self._fetch_current(*self._position)
        except WeatherDashError as e:
            if self._closed:
                return False
            self._restore(CURRENT, previous, str(e))
            self.notifier.error("Failed to refresh weather data", e)
            self._commit()
            return False
        if self._closed:
            return False
        self._set_record(CURRENT, record)
        self.notifier.success("Weather data refreshed")
        self._commit()
        return True

    # --- Fetch helpers ---

    async def _fetch_current(self, latitude: float, longitude: float) -> ForecastRecord:
        forecast, label = await asyncio.gather(
            self.weather.fetch_forecast(latitude, longitude),
            self.geocoder.reverse(latitude, longitude),
            return_exceptions=True,
        )
        if isinstance(forecast, BaseException):
            raise forecast
        if not isinstance(label, PlaceLabel):
            label = CURRENT_LOCATION_LABEL
        return replace(forecast, label=label)

    async def _fetch_saved(self, location: Location) -> _FetchOutcome:
        """Fetch one saved location's forecast without raising."""
        try:
            record = await self.weather.fetch_forecast(location.latitude, location.longitude)
        except WeatherDashError as e:
            logger.exception("Failed to fetch weather for %s", location.name)
            return location.id, None, e
        return location.id, replace(record, label=PlaceLabel(name=location.name)), None

    async def _mirror(self, location: Location) -> None:
        if self.registry is None:
            return
        try:
            await self.registry.create_location(
                location.name, location.latitude, location.longitude
            )
        except WeatherDashError as e:
            logger.warning("Registry mirror failed for %s: %s", location.name, e)

    def _apply_saved_outcome(self, outcome: _FetchOutcome) -> None:
        location_id, record, error = outcome
        location = self.get_location(location_id)
        if self._closed or location is None:
            return
        if record is None:
            self._forecasts = {k: v for k, v in self._forecasts.items() if k != location_id}
            self._failures = {**self._failures, location_id: str(error)}
            self.notifier.error(f"Failed to fetch weather for {location.name}", error)
        else:
            self._set_record(location_id, record)
        self._commit()

    # --- State helpers ---

    def _mint_id(self) -> LocationId:
        taken = {loc.id for loc in self._locations} | {CURRENT}
        new_id = self.id_factory()
        while new_id in taken:
            new_id = self.id_factory()
        return new_id

    def _mark_loading(self, location_id: LocationId) -> None:
        self._forecasts = {**self._forecasts, location_id: None}
        self._failures = {k: v for k, v in self._failures.items() if k != location_id}
        self._commit()

    def _set_record(self, location_id: LocationId, record: ForecastRecord) -> None:
        self._forecasts = {**self._forecasts, location_id: record}
        self._failures = {k: v for k, v in self._failures.items() if k != location_id}

    def _restore(
        self, location_id: LocationId, previous: ForecastRecord | None, reason: str
    ) -> None:
        if previous is not None:
            self._set_record(location_id, previous)
            return
        self._forecasts = {k: v for k, v in self._forecasts.items() if k != location_id}
        self._failures = {**self._failures, location_id: reason}
