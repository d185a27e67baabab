"""Shared test doubles and row helpers."""

import asyncio
from datetime import datetime, timedelta

from refresher.database import Database
from refresher.models.orm import AudioRecordModel, ChunkModel, FlashcardModel

BUCKET = "audio-bucket"
NOW = datetime(2026, 3, 1, 12, 0, 0)


def s3_url(path: str, bucket: str = BUCKET) -> str:
    return (
        f"https://{bucket}.s3.us-east-1.amazonaws.com/{path}"
        "?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Expires=604800&X-Amz-Signature=abc"
    )


class FakeProvider:
    """In-memory SignedUrlProvider.

    Paths listed in `failures` raise; `delay` makes every call sleep first.
    """

    def __init__(
        self,
        *,
        failures: dict[str, Exception] | None = None,
        delay: float = 0.0,
        url_for=None,
    ) -> None:
        self.failures = failures or {}
        self.delay = delay
        self.url_for = url_for or s3_url
        self.calls: list[tuple[str, timedelta]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def mint_url(self, storage_path: str, validity_window: timedelta) -> str:
        self.calls.append((storage_path, validity_window))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if storage_path in self.failures:
                raise self.failures[storage_path]
            return self.url_for(storage_path)
        finally:
            self.in_flight -= 1


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


async def add_audio_record(
    db: Database,
    record_id: str,
    *,
    storage_path: str | None,
    expires_at: datetime | None,
    audio_url: str | None = None,
) -> None:
    async with db.session() as session:
        session.add(
            AudioRecordModel(
                id=record_id,
                text=f"text for {record_id}",
                storage_path=storage_path,
                audio_url=audio_url if audio_url is not None else (
                    s3_url(storage_path) if storage_path else None
                ),
                audio_url_expires_at=expires_at,
            )
        )


async def add_flashcard(
    db: Database,
    card_id: str,
    *,
    url: str | None,
    expires_at: datetime | None,
) -> None:
    async with db.session() as session:
        session.add(
            FlashcardModel(
                id=card_id,
                question=f"question {card_id}",
                question_audio_url=url,
                question_audio_url_expires_at=expires_at,
            )
        )


async def add_chunk(
    db: Database,
    chunk_id: str,
    *,
    url: str | None,
    expires_at: datetime | None,
) -> None:
    async with db.session() as session:
        session.add(
            ChunkModel(
                id=chunk_id,
                text=f"chunk {chunk_id}",
                chunk_audio=url,
                chunk_audio_expires_at=expires_at,
            )
        )


async def get_row(db: Database, model, row_id: str):
    async with db.session() as session:
        return await session.get(model, row_id)
