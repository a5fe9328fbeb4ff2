"""Shared pytest fixtures for Stayline tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from stayline.domain.access import AuthContext  # noqa: E402

PROPERTY_ID = "11111111-1111-1111-1111-111111111111"


@pytest.fixture
def staff_ctx() -> AuthContext:
    return AuthContext.staff(PROPERTY_ID, actor_id="staff-1")


@pytest.fixture
def service_ctx() -> AuthContext:
    return AuthContext.service(PROPERTY_ID)


@pytest.fixture
def mock_cur() -> MagicMock:
    return MagicMock()
