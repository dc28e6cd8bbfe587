"""
Unit tests for the request session dependency.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rental_engine.core.database import get_db


def session_factory(in_transaction: bool):
    session = MagicMock()
    session.in_transaction = MagicMock(return_value=in_transaction)
    session.rollback = AsyncMock()

    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory, session


async def run_request(factory):
    with patch("rental_engine.core.database.AsyncSessionLocal", factory):
        requests = get_db()
        session = await requests.__anext__()
        with pytest.raises(StopAsyncIteration):
            await requests.__anext__()
    return session


class TestGetDb:

    async def test_open_transaction_is_rolled_back(self):
        factory, session = session_factory(in_transaction=True)

        assert await run_request(factory) is session
        session.rollback.assert_awaited_once()

    async def test_committed_request_left_alone(self):
        factory, session = session_factory(in_transaction=False)

        await run_request(factory)
        session.rollback.assert_not_awaited()
