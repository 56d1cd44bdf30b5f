import asyncio
import json
import logging
import re
import time as time_module
from datetime import datetime, timedelta
from typing import Any, TypeVar

import httpx
from bs4 import BeautifulSoup
from pydantic import ValidationError

from app.config import settings
from app.errors import (
    AffiliationNotFound,
    ConfigNotFound,
    CourseNotFound,
    RemoteServiceError,
)
from app.models.chronogolf import (
    Affiliation,
    AppConfig,
    Course,
    RemoteRecord,
    Reservation,
    RoundLine,
    SessionInfo,
    TeeTime,
)
from app.providers.base import ReservationProvider

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=RemoteRecord)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

CONFIG_PATTERN = re.compile(r"^\s*window\.CHRONOGOLF_CONFIG = ({.*})\s*;?\s*$", re.MULTILINE)


def affiliation_type_ids(affiliation: Affiliation, num_players: int) -> str:
    """One affiliation type id per player, comma separated."""
    return ",".join([str(affiliation.affiliation_type_id)] * num_players)


def build_reservation_payload(
    affiliation: Affiliation,
    course: Course,
    tee_time: TeeTime,
    num_players: int,
    user_id: int | None,
    round_lines: list[RoundLine],
) -> dict[str, Any]:
    """
    Build the body for POST /private_api/reservations.

    The logged-in user owns the first round; the remaining players are
    anonymous guests. Every round carries the same priced line items.
    """
    lines = [line.model_dump(exclude_none=True) for line in round_lines]
    primary = {
        "affiliation_type_id": affiliation.affiliation_type_id,
        "state": "reserved",
        "user_id": user_id,
        "round_lines_attributes": lines,
    }
    secondary = {
        "affiliation_type_id": affiliation.affiliation_type_id,
        "state": "reserved",
        "round_lines_attributes": lines,
    }
    return {
        "reservation": {
            "agreed_on_terms": True,
            "club_id": affiliation.organization_id,
            "holes": course.holes,
            "made_online": True,
            "source": "chronogolf",
            "state": "confirmed",
            "teetime_id": tee_time.id,
            "rounds_attributes": [primary] + [dict(secondary) for _ in range(num_players - 1)],
        }
    }


class ChronogolfProvider(ReservationProvider):
    """
    HTTP client for the Chronogolf private JSON API.

    Chronogolf guards its API with a Rails CSRF token that is only published in
    an inline ``window.CHRONOGOLF_CONFIG`` script on the club's widget page, so
    the page is scraped once before the first API call. The session cookie
    lives in the client's cookie jar and is refreshed every
    ``login_every_hours``.
    """

    def __init__(
        self,
        email: str | None = None,
        password: str | None = None,
        base_url: str | None = None,
        course_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.email = settings.chronogolf_email if email is None else email
        self.password = settings.chronogolf_password if password is None else password
        self.base_url = (base_url or settings.chronogolf_base_url).rstrip("/")
        self.course_id = course_id or settings.course_id

        if not self.email or not self.password:
            logger.warning(
                "Chronogolf credentials not configured. "
                "Set CHRONOGOLF_EMAIL and CHRONOGOLF_PASSWORD environment variables."
            )

        self._client = client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self._session_lock = asyncio.Lock()
        self._app_config: AppConfig | None = None
        self._session: SessionInfo | None = None
        self._last_login: float | None = None

    @property
    def home_url(self) -> str:
        return f"{self.base_url}/en/club/{self.course_id}/widget?medium=widget&source=club"

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/private_api"

    @property
    def session(self) -> SessionInfo | None:
        return self._session

    async def __aenter__(self) -> "ChronogolfProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        accept: str = "application/json",
    ) -> httpx.Response:
        headers = {"Referer": self.home_url, "Origin": self.base_url, "Accept": accept}
        if self._app_config and self._app_config.csrf_token:
            headers["X-CSRF-Token"] = self._app_config.csrf_token

        logger.info(f"{method}: {url}")
        try:
            response = await self._client.request(
                method, url, params=params, json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"{method} {url} failed: {e}") from e

        if not response.is_success:
            raise RemoteServiceError(f"{method} {url}", response.status_code, response.text)
        return response

    async def _json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
    ) -> Any:
        response = await self._request(method, url, params=params, payload=payload)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(
                f"{method} {url} returned invalid JSON", response.status_code, response.text
            ) from e

    @staticmethod
    def _decode(model: type[R], data: Any, what: str) -> R:
        try:
            return model.model_validate(data if data is not None else {})
        except ValidationError as e:
            raise RemoteServiceError(f"unexpected {what} payload: {e}") from e

    def _decode_list(self, model: type[R], data: Any, what: str) -> list[R]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteServiceError(f"expected a list of {what}, got {type(data).__name__}")
        return [self._decode(model, item, what) for item in data]

    async def fetch_config(self) -> AppConfig:
        """Scrape the embedded app config (and its CSRF token) from the widget page."""
        response = await self._request("GET", self.home_url, accept="text/html")
        soup = BeautifulSoup(response.text, "html.parser")

        for script in soup.find_all("script"):
            match = CONFIG_PATTERN.search(script.get_text())
            if not match:
                continue
            try:
                raw = json.loads(match.group(1))
            except ValueError as e:
                raise ConfigNotFound(f"app config on {self.home_url} is not valid JSON") from e
            config = self._decode(AppConfig, raw, "app config")
            if not config.csrf_token:
                raise ConfigNotFound(f"app config on {self.home_url} has no CSRF token")
            self._app_config = config
            return config

        raise ConfigNotFound(f"failed to find app config on {self.home_url}")

    def _session_is_stale(self) -> bool:
        if self._session is None or self._last_login is None:
            return True
        return time_module.monotonic() - self._last_login > settings.login_every_hours * 3600

    async def ensure_logged_in(self) -> None:
        async with self._session_lock:
            if self._app_config is None:
                await self.fetch_config()
            if self._session_is_stale():
                await self._login()

    async def _login(self) -> SessionInfo:
        data = await self._json(
            "POST",
            f"{self.api_url}/sessions",
            payload={"session": {"email": self.email, "password": self.password}},
        )
        session = self._decode(SessionInfo, data, "session")
        self._session = session
        self._last_login = time_module.monotonic()
        logger.info(f"Logged in to Chronogolf as user {session.id}")
        return session

    async def _logged_in_session(self) -> SessionInfo:
        await self.ensure_logged_in()
        if self._session is None:
            raise RemoteServiceError("not logged in to Chronogolf")
        return self._session

    async def affiliation(self) -> Affiliation:
        session = await self._logged_in_session()
        for affiliation in session.affiliations:
            if str(affiliation.organization_id) == self.course_id:
                return affiliation
        raise AffiliationNotFound(f"no affiliation matches course {self.course_id}")

    async def courses(self) -> list[Course]:
        await self.ensure_logged_in()
        data = await self._json("GET", f"{self.api_url}/clubs/{self.course_id}/courses")
        return self._decode_list(Course, data, "courses")

    async def course(self) -> Course:
        courses = await self.courses()
        if not courses:
            raise CourseNotFound(f"no courses found for club {self.course_id}")
        return courses[0]

    async def tee_times(
        self, affiliation: Affiliation, course: Course, day: str, num_players: int
    ) -> list[TeeTime]:
        await self.ensure_logged_in()
        data = await self._json(
            "GET",
            f"{self.api_url}/teetimes",
            params={
                "affiliation_type_ids": affiliation_type_ids(affiliation, num_players),
                "date": day[:10],
                "course_id": course.id,
            },
        )
        return self._decode_list(TeeTime, data, "tee times")

    async def reservation_options(
        self, affiliation: Affiliation, course: Course, tee_time: TeeTime, num_players: int
    ) -> Reservation:
        await self.ensure_logged_in()
        data = await self._json(
            "GET",
            f"{self.api_url}/reservations/options",
            params={
                "affiliation_type_ids": affiliation_type_ids(affiliation, num_players),
                "teetime_id": tee_time.id,
                "nb_holes": course.holes,
            },
        )
        options = self._decode_list(Reservation, data, "reservation options")
        if not options:
            raise RemoteServiceError(f"no reservation options for tee time {tee_time.id}")
        return options[0]

    async def reserve(
        self, affiliation: Affiliation, course: Course, tee_time: TeeTime, num_players: int
    ) -> Reservation:
        options = await self.reservation_options(affiliation, course, tee_time, num_players)
        if not options.rounds:
            raise RemoteServiceError("no rounds present in reservation options")

        session = await self._logged_in_session()
        payload = build_reservation_payload(
            affiliation,
            course,
            tee_time,
            num_players,
            session.id,
            options.rounds[0].round_lines,
        )
        data = await self._json("POST", f"{self.api_url}/reservations", payload=payload)
        if isinstance(data, dict) and isinstance(data.get("reservation"), dict):
            data = data["reservation"]
        return self._decode(Reservation, data if isinstance(data, dict) else {}, "reservation")

    async def upcoming_reservations(self) -> list[Reservation]:
        session = await self._logged_in_session()
        user_id = session.id
        data = await self._json(
            "GET",
            f"{self.api_url}/users/{user_id}/reservations",
            params={"page": 1, "per_page": 1000, "status": "upcoming", "user_id": user_id},
        )
        return self._decode_list(Reservation, data, "reservations")

    async def close(self) -> None:
        await self._client.aclose()


class MockChronogolfProvider(ReservationProvider):
    """Mock provider for testing without hitting the real booking system."""

    COURSE_ID = 1
    AFFILIATION_TYPE_ID = 100

    def __init__(self) -> None:
        self.reservations: list[Reservation] = []

    async def ensure_logged_in(self) -> None:
        pass

    async def affiliation(self) -> Affiliation:
        return Affiliation(
            id=1,
            role="member",
            organization_id=int(settings.course_id),
            organization_type="Club",
            affiliation_type_id=self.AFFILIATION_TYPE_ID,
        )

    async def course(self) -> Course:
        return Course(id=self.COURSE_ID, name="Mock Course", holes=18)

    async def tee_times(
        self, affiliation: Affiliation, course: Course, day: str, num_players: int
    ) -> list[TeeTime]:
        base_time = datetime.strptime(day[:10], "%Y-%m-%d").replace(hour=7)
        times = []
        for i in range(20):
            start = base_time + timedelta(minutes=i * 8)
            times.append(
                TeeTime(
                    id=i + 1,
                    course_id=course.id,
                    date=day[:10],
                    start_time=start.strftime("%H:%M"),
                    free_slots=4,
                )
            )
        return times

    async def reserve(
        self, affiliation: Affiliation, course: Course, tee_time: TeeTime, num_players: int
    ) -> Reservation:
        reservation = Reservation(
            id=len(self.reservations) + 1,
            club_id=affiliation.organization_id,
            teetime_id=tee_time.id,
            state="confirmed",
            holes=course.holes,
            teetime=tee_time,
        )
        self.reservations.append(reservation)
        return reservation

    async def upcoming_reservations(self) -> list[Reservation]:
        return list(self.reservations)

    async def close(self) -> None:
        pass
