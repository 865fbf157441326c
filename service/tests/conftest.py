"""
Shared fixtures for relay tests.
"""

import pytest

from chatter.config import Settings
from chatter.services.model_bridge import ModelBridge
from chatter.services.workspace import WorkspaceSnapshot
from chatter.telegram_bot.handlers import CommandRouter

from fakes import AUTHORIZED_USER, SECRET, FakeBackend, FakeTelegram, FakeWorkspace


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def workspace():
    return FakeWorkspace(
        snapshot=WorkspaceSnapshot(
            file_id="/work/demo-project/app.py",
            language="python",
            first_lines="import os\nprint(os.getcwd())",
            line_count=2,
        )
    )


@pytest.fixture
def bridge(backend, workspace):
    return ModelBridge(backend, workspace, timeout=5)


@pytest.fixture
def router(bridge, telegram, workspace):
    return CommandRouter(bridge, telegram, workspace)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        telegram_bot_token="123456:TEST-TOKEN",
        telegram_webhook_secret=SECRET,
        telegram_allowed_user_id=AUTHORIZED_USER,
    )
