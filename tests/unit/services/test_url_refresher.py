"""Unit tests for UrlRefresher."""

from datetime import timedelta

import pytest
from botocore.exceptions import ClientError

from refresher.enums import ArtifactFamily, FailureReason
from refresher.exceptions import RefreshFailedError
from refresher.models.domain import Artifact
from refresher.services.url_refresher import UrlRefresher
from tests.support import NOW, FakeProvider, FixedClock

WINDOW = timedelta(days=7)


def make_artifact(**overrides) -> Artifact:
    data = dict(
        id="a1",
        family=ArtifactFamily.AUDIO_RECORD,
        storage_path="audio/a1.mp3",
        access_url="https://old.example/a1",
        url_expires_at=NOW - timedelta(days=1),
    )
    data.update(overrides)
    return Artifact(**data)


class TestUrlRefresher:
    async def test_expiry_is_call_time_plus_window(self, provider: FakeProvider):
        refresher = UrlRefresher(provider, WINDOW, clock=FixedClock())

        result = await refresher.refresh(make_artifact())

        assert result.url_expires_at == NOW + WINDOW
        assert result.access_url.startswith("https://")
        assert provider.calls == [("audio/a1.mp3", WINDOW)]

    async def test_expiry_ignores_previous_expiry(self, provider: FakeProvider):
        refresher = UrlRefresher(provider, WINDOW, clock=FixedClock())
        far_future = make_artifact(url_expires_at=NOW + timedelta(days=300))

        result = await refresher.refresh(far_future)

        assert result.url_expires_at == NOW + WINDOW

    async def test_provider_error_becomes_refresh_failed(self):
        provider = FakeProvider(failures={"audio/a1.mp3": RuntimeError("boom")})
        refresher = UrlRefresher(provider, WINDOW, clock=FixedClock())

        with pytest.raises(RefreshFailedError) as exc_info:
            await refresher.refresh(make_artifact())

        assert exc_info.value.reason == FailureReason.REFRESH_FAILED
        assert exc_info.value.artifact_id == "a1"
        assert "boom" in str(exc_info.value)

    async def test_client_error_message_is_kept(self):
        error = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
            "HeadObject",
        )
        provider = FakeProvider(failures={"audio/a1.mp3": error})
        refresher = UrlRefresher(provider, WINDOW, clock=FixedClock())

        with pytest.raises(RefreshFailedError, match="AccessDenied: Access Denied"):
            await refresher.refresh(make_artifact())

    @pytest.mark.parametrize("bad_url", ["", "   ", "ftp://host/x", "not-a-url", None])
    async def test_unusable_url_becomes_refresh_failed(self, bad_url):
        provider = FakeProvider(url_for=lambda path: bad_url)
        refresher = UrlRefresher(provider, WINDOW, clock=FixedClock())

        with pytest.raises(RefreshFailedError, match="empty or invalid URL"):
            await refresher.refresh(make_artifact())

    async def test_missing_storage_path_is_not_sent_to_provider(
        self, provider: FakeProvider
    ):
        refresher = UrlRefresher(provider, WINDOW, clock=FixedClock())

        with pytest.raises(RefreshFailedError):
            await refresher.refresh(make_artifact(storage_path=""))

        assert provider.calls == []

    def test_non_positive_window_is_rejected(self, provider: FakeProvider):
        with pytest.raises(ValueError):
            UrlRefresher(provider, timedelta(0))
