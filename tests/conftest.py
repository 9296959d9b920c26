"""Pytest configuration and shared fixtures."""

from typing import AsyncIterator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cayman_watch.core.database import DatabaseClient, create_session_maker
from cayman_watch.core.oracle_client import BaseOracleClient
from cayman_watch.core.pipeline_config import PipelineConfig
from cayman_watch.models.documents import Document, DocumentKind
from cayman_watch.repositories.pipeline_storage import PipelineStorage

GAZETTE_TEXT = """CAYMAN ISLANDS GAZETTE
CONTENTS
Liquidation Notices....................Pg.12
Final Meeting Notices..................Pg.14
Grand Court Notices....................None

Published by authority of the Cabinet Office, George Town, Grand Cayman.
This issue carries public notices received by the Gazette Office before the
publication deadline. Notices are printed as submitted and the Gazette Office
accepts no responsibility for errors in the text supplied by advertisers.
Subscriptions and single copies may be obtained from the Gazette Office during
normal business hours. Enquiries should be directed to the Gazette Office by
telephone or in person. Back issues are available on request for a period of
twelve months from the date of publication.

COMMERCIAL
Liquidation Notices
ALPHA HOLDINGS LTD (In Voluntary Liquidation)
Registration No: 123456
Date of Liquidation: 5 March 2024
Voluntary Liquidator: John Smith
Contact: john.smith@example.com

Final Meeting Notices
ALPHA HOLDINGS LTD
Final Meeting Date: 30 April 2024

GOVERNMENT
Appointments and other government notices
"""


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory SQLite engine with the full schema.

    Yields:
        AsyncEngine: Engine shared by every session in the test
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await DatabaseClient(engine).create_tables()
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def storage(session_maker) -> PipelineStorage:
    return PipelineStorage(session_maker)


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """Default configuration without delays.

    Returns:
        PipelineConfig: Config with zero backoff and inter-batch delay
    """
    return PipelineConfig(backoff_base_ms=0, inter_batch_delay_ms=0)


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def mock_oracle() -> AsyncMock:
    """Oracle whose ``invoke`` each test configures.

    Returns:
        AsyncMock: Mocked oracle client
    """
    return AsyncMock(spec=BaseOracleClient)


@pytest.fixture
def gazette_text() -> str:
    return GAZETTE_TEXT


@pytest.fixture
def gazette_document(gazette_text: str) -> Document:
    return Document(kind=DocumentKind.GAZETTE, text=gazette_text, title="Gazette No. 5 of 2024")
