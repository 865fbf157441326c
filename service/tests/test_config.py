"""
Tests for settings, the credential store and the webhook setup helper.
"""

import asyncio

import httpx
import pytest

from chatter.config import CredentialStore, Settings, generate_secret_token
from chatter.services.errors import ConfigurationError
from chatter.telegram_bot.telegram_api import TelegramClient
from chatter.webhook_setup import main, register_webhook, remove_webhook, webhook_url


class TestCredentialStore:

    def test_complete(self, settings):
        store = CredentialStore(settings)
        assert store.get_bot_token() == "123456:TEST-TOKEN"
        assert store.get_secret_token() == "s3cr3t-token-value"
        assert store.get_authorized_user_id() == 424242
        assert store.missing() == []

    def test_empty_values_are_absent(self):
        store = CredentialStore(Settings(_env_file=None, telegram_bot_token="", telegram_webhook_secret=""))
        assert store.get_bot_token() is None
        assert store.get_secret_token() is None
        assert store.missing() == [
            "TELEGRAM_BOT_TOKEN",
            "TELEGRAM_WEBHOOK_SECRET",
            "TELEGRAM_ALLOWED_USER_ID",
        ]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "env-token")
        monkeypatch.setenv("TELEGRAM_ALLOWED_USER_ID", "777")
        settings = Settings(_env_file=None)
        assert settings.telegram_bot_token == "env-token"
        assert settings.telegram_allowed_user_id == 777


class TestSecretToken:

    def test_length_and_alphabet(self):
        token = generate_secret_token()
        assert len(token) == 32
        assert token.isalnum()

    def test_tokens_differ(self):
        assert generate_secret_token() != generate_secret_token()


class TestWebhookSetup:

    def test_webhook_url(self):
        assert webhook_url("https://abc.ngrok.app/") == "https://abc.ngrok.app/webhook"

    def test_register(self, settings):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": True})

        client = TelegramClient("t", api_base="https://telegram.test", transport=httpx.MockTransport(handler))
        url = asyncio.run(register_webhook("https://abc.ngrok.app", settings, client))

        assert url == "https://abc.ngrok.app/webhook"
        assert requests[0].url.path == "/bott/setWebhook"
        assert b"secret_token=s3cr3t-token-value" in requests[0].content

    def test_register_requires_secret(self, settings):
        incomplete = settings.model_copy(update={"telegram_webhook_secret": ""})
        with pytest.raises(ConfigurationError):
            asyncio.run(register_webhook("https://abc.ngrok.app", incomplete))

    def test_remove(self, settings):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": True})

        client = TelegramClient("t", api_base="https://telegram.test", transport=httpx.MockTransport(handler))
        asyncio.run(remove_webhook(settings, client))
        assert requests[0].url.path == "/bott/deleteWebhook"

    def test_cli_secret(self, capsys):
        assert main(["secret"]) == 0
        assert len(capsys.readouterr().out.strip()) == 32
