"""
Tests for scheduled job endpoints in app/api/jobs.py.

These tests verify the external scheduler integration endpoint including
OIDC and API key authentication and the sweep report it returns.
"""

from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytz
from fastapi.testclient import TestClient

from app.config import settings
from app.context import AppContext
from app.models.schemas import PendingRequest, QueueState, SweepItemStatus, SweepTrigger
from app.providers.chronogolf_provider import MockChronogolfProvider
from app.services.booking_service import BookingService
from app.services.queue_service import PendingQueue
from app.services.scheduler import SweepScheduler

API_KEY_HEADERS = {"X-Scheduler-API-Key": "test-api-key"}


def fixed_clock() -> datetime:
    return pytz.timezone(settings.timezone).localize(datetime(2018, 5, 10))


@pytest.fixture
def context(tmp_path: Path) -> Iterator[AppContext]:
    """Install an application context with "now" pinned to 2018-05-10."""
    from app.main import app

    queue = PendingQueue(tmp_path / "queue.json", clock=fixed_clock)
    booking_service = BookingService(MockChronogolfProvider(), notifier=AsyncMock())
    scheduler = SweepScheduler(queue, booking_service, clock=fixed_clock)
    context = AppContext(
        queue=queue, booking_service=booking_service, scheduler=scheduler, clock=fixed_clock
    )
    app.state.context = context
    yield context
    app.state.context = None


@pytest.fixture
def test_client(context: AppContext) -> TestClient:
    """Create a TestClient for the FastAPI app."""
    from app.main import app

    return TestClient(app)


class TestJobsAuthentication:
    """Tests for authentication on the jobs endpoint."""

    def test_missing_credentials_returns_401(self, test_client: TestClient) -> None:
        """Test that a request without any credentials is rejected."""
        response = test_client.post("/jobs/sweep")

        assert response.status_code == 401
        assert "Authentication required" in response.json()["detail"]

    def test_invalid_api_key_returns_401(self, test_client: TestClient) -> None:
        """Test that invalid API key returns 401."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "correct-key"

            response = test_client.post(
                "/jobs/sweep",
                headers={"X-Scheduler-API-Key": "wrong-key"},
            )

            assert response.status_code == 401
            assert "Invalid scheduler API key" in response.json()["detail"]

    def test_unconfigured_api_key_returns_500(self, test_client: TestClient) -> None:
        """Test that unconfigured API key on server returns 500."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = ""

            response = test_client.post(
                "/jobs/sweep",
                headers={"X-Scheduler-API-Key": "any-key"},
            )

            assert response.status_code == 500
            assert "Scheduler API key not configured" in response.json()["detail"]

    def test_valid_api_key_succeeds(self, test_client: TestClient) -> None:
        """Test that valid API key allows access."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "test-api-key"

            response = test_client.post("/jobs/sweep", headers=API_KEY_HEADERS)

            assert response.status_code == 200

    def test_valid_oidc_token_succeeds(self, test_client: TestClient) -> None:
        """Test that a token from the expected service account allows access."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_service_account = "sweeper@project.iam.gserviceaccount.com"

            with patch("app.api.jobs.id_token.verify_oauth2_token") as mock_verify:
                mock_verify.return_value = {"email": "sweeper@project.iam.gserviceaccount.com"}

                response = test_client.post(
                    "/jobs/sweep", headers={"Authorization": "Bearer good-token"}
                )

                assert response.status_code == 200
                assert mock_verify.call_args.args[0] == "good-token"

    def test_oidc_token_from_other_account_returns_401(self, test_client: TestClient) -> None:
        """Test that a valid token for a different service account is rejected."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_service_account = "sweeper@project.iam.gserviceaccount.com"

            with patch("app.api.jobs.id_token.verify_oauth2_token") as mock_verify:
                mock_verify.return_value = {"email": "intruder@example.com"}

                response = test_client.post(
                    "/jobs/sweep", headers={"Authorization": "Bearer other-token"}
                )

                assert response.status_code == 401

    def test_invalid_oidc_token_falls_back_to_api_key(self, test_client: TestClient) -> None:
        """Test that a bad token does not block a valid API key."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "test-api-key"

            with patch(
                "app.api.jobs.id_token.verify_oauth2_token",
                side_effect=ValueError("Token expired"),
            ):
                response = test_client.post(
                    "/jobs/sweep",
                    headers={"Authorization": "Bearer stale-token", **API_KEY_HEADERS},
                )

                assert response.status_code == 200


class TestJobsSweep:
    """Tests for the sweep endpoint."""

    def test_empty_queue(self, test_client: TestClient) -> None:
        """Test that sweeping an empty queue returns an empty report."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "test-api-key"

            response = test_client.post("/jobs/sweep", headers=API_KEY_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["total_pending"] == 0
        assert data["booked"] == 0
        assert data["failed"] == 0
        assert data["remaining"] == 0
        assert data["results"] == []
        assert "executed_at" in data

    def test_mixed_results(self, test_client: TestClient, context: AppContext) -> None:
        """Test that bookable requests are booked and the rest stay queued."""
        state = QueueState(
            pending=[
                PendingRequest(day="2018-05-17T07:10", players=4),
                PendingRequest(day="2018-05-30T07:10", players=4),
            ]
        )
        context.queue.path.write_text(state.model_dump_json(by_alias=True))
        context.queue.load()

        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "test-api-key"

            response = test_client.post("/jobs/sweep", headers=API_KEY_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["total_pending"] == 2
        assert data["booked"] == 1
        assert data["remaining"] == 1
        assert data["results"][0]["status"] == SweepItemStatus.BOOKED.value
        assert data["results"][0]["tee_time"] == "2018-05-17T07:16"
        assert data["results"][1]["status"] == SweepItemStatus.NOT_YET_BOOKABLE.value
        assert [r.day for r in context.queue.pending] == ["2018-05-30T07:10"]

    def test_sweep_is_manual_trigger(self, test_client: TestClient, context: AppContext) -> None:
        """Test that the endpoint runs the scheduler's sweep as a manual trigger."""
        with patch("app.api.jobs.settings") as mock_settings:
            mock_settings.scheduler_api_key = "test-api-key"

            with patch.object(
                context.scheduler, "run_sweep", wraps=context.scheduler.run_sweep
            ) as mock_sweep:
                response = test_client.post("/jobs/sweep", headers=API_KEY_HEADERS)

        assert response.status_code == 200
        mock_sweep.assert_awaited_once_with(SweepTrigger.MANUAL)
