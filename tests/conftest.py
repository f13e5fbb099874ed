"""服务层测试配置 -- StoreGroup、已登记用户、各类身份"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from ipstudio.core.models import IdentityContext
from ipstudio.core.services import (
    AccountDirectory,
    CharacterRegistry,
    ProfileView,
    TaskLifecycleStore,
)
from ipstudio.core.store import StoreGroup, create_store_group


class FakeClock:
    """可控时钟：每次读取前进 1 毫秒"""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now

    def rewind(self, delta: timedelta) -> None:
        self.now -= delta


@pytest_asyncio.fixture
async def stores(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的 StoreGroup"""
    group = await create_store_group(str(tmp_path / "sqlite" / "ipstudio.db"))
    yield group
    await group.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def accounts(stores: StoreGroup, clock: FakeClock) -> AccountDirectory:
    """已登记 u1、u2 两个用户的用户目录"""
    directory = AccountDirectory(stores, clock=clock)
    await directory.register_user("u1", email="u1@example.com", metadata={"username": "fox"})
    await directory.register_user("u2", email="u2@example.com")
    return directory


@pytest_asyncio.fixture
async def lifecycle(stores: StoreGroup, clock: FakeClock, accounts) -> TaskLifecycleStore:
    return TaskLifecycleStore(stores, clock=clock)


@pytest_asyncio.fixture
async def registry(stores: StoreGroup, clock: FakeClock, accounts) -> CharacterRegistry:
    return CharacterRegistry(stores, clock=clock)


@pytest_asyncio.fixture
async def profiles(stores: StoreGroup, accounts) -> ProfileView:
    return ProfileView(stores)


@pytest.fixture
def u1() -> IdentityContext:
    return IdentityContext.user("u1")


@pytest.fixture
def u2() -> IdentityContext:
    return IdentityContext.user("u2")


@pytest.fixture
def anon() -> IdentityContext:
    return IdentityContext.anonymous()


@pytest.fixture
def worker() -> IdentityContext:
    return IdentityContext.service()
