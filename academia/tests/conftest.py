"""Pytest fixtures for the gamification tests."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from academia.database.init_db import create_session_factory, create_tables
from academia.gamification.repository import GamificationRepository
from academia.gamification.service import GamificationService


@pytest.fixture()
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'gamification.db'}"


@pytest_asyncio.fixture()
async def engine(database_url):
    engine = create_async_engine(database_url)
    await create_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def repository(engine) -> GamificationRepository:
    return GamificationRepository(create_session_factory(engine))


@pytest_asyncio.fixture()
async def service(repository) -> GamificationService:
    service = GamificationService(repository, max_retries=3)
    await service.initialize()
    return service


class FakeSortedSets:
    """In-memory stand-in for the Redis sorted-set commands the leaderboard mirror uses."""

    def __init__(self):
        self.sets = {}
        self.ttls = {}

    async def zadd(self, key, mapping, gt=False):
        members = self.sets.setdefault(key, {})
        for member, score in mapping.items():
            if gt and member in members and members[member] >= score:
                continue
            members[member] = float(score)

    async def expire(self, key, seconds):
        self.ttls[key] = seconds

    async def zscore(self, key, member):
        return self.sets.get(key, {}).get(member)

    async def zcount(self, key, low, high):
        return sum(1 for score in self.sets.get(key, {}).values() if low <= score <= high)

    async def zrevrank(self, key, member):
        members = self.sets.get(key, {})
        if member not in members:
            return None
        # Redis breaks score ties by member, highest first
        ordered = sorted(members.items(), key=lambda item: (item[1], item[0]), reverse=True)
        return [name for name, _ in ordered].index(member)


@pytest.fixture()
def sorted_sets() -> FakeSortedSets:
    return FakeSortedSets()
