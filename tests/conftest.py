"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock, patch

import pytest
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")

from copilot.adapters.sql_gateway import sql_gateway  # noqa: E402
from copilot.models.tool import ToolContext  # noqa: E402


class FakeGateway:
    """Stands in for the SQL gateway: answers statements by substring and records them."""

    def __init__(self):
        self.rules = []
        self.calls = []

    def on(self, fragment, result):
        """Answer statements containing ``fragment`` with rows, a callable(sql) or an exception."""
        self.rules.append((fragment.lower(), result))
        return self

    async def execute(self, sql, context):
        self.calls.append(sql)
        lowered = sql.lower()
        for fragment, result in self.rules:
            if fragment in lowered:
                if isinstance(result, Exception):
                    raise result
                if callable(result):
                    return result(sql)
                return result
        return []

    def statements(self, fragment):
        return [sql for sql in self.calls if fragment.lower() in sql.lower()]


@pytest.fixture
def gateway():
    fake = FakeGateway()
    with patch.object(sql_gateway, "execute", AsyncMock(side_effect=fake.execute)):
        yield fake


@pytest.fixture
def tool_context():
    return ToolContext(
        project_ref="default",
        connection_string="encrypted-connection",
        headers={"Authorization": "Bearer test-token"},
    )
