"""
Webhook registration helper.

Run:
    python -m chatter.webhook_setup secret
    python -m chatter.webhook_setup set https://abc123.ngrok.app
    python -m chatter.webhook_setup delete

`set` points Telegram at <public-url>/webhook and tells it to send the
configured TELEGRAM_WEBHOOK_SECRET with every update.
"""

import argparse
import asyncio
import sys

from chatter.config import Settings, generate_secret_token, get_settings
from chatter.services.errors import ChatterError, ConfigurationError
from chatter.telegram_bot.telegram_api import TelegramClient


def webhook_url(public_url: str) -> str:
    return public_url.rstrip("/") + "/webhook"


async def register_webhook(public_url: str, settings: Settings, client: TelegramClient = None) -> str:
    if not settings.telegram_bot_token or not settings.telegram_webhook_secret:
        raise ConfigurationError("TELEGRAM_BOT_TOKEN and TELEGRAM_WEBHOOK_SECRET must be set")

    url = webhook_url(public_url)
    client = client or TelegramClient.from_settings(settings)
    try:
        await client.set_webhook(url, settings.telegram_webhook_secret)
    finally:
        await client.close()
    return url


async def remove_webhook(settings: Settings, client: TelegramClient = None) -> None:
    if not settings.telegram_bot_token:
        raise ConfigurationError("TELEGRAM_BOT_TOKEN must be set")

    client = client or TelegramClient.from_settings(settings)
    try:
        await client.delete_webhook()
    finally:
        await client.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="chatter.webhook_setup", description=__doc__.split("\n\n")[0])
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("secret", help="print a fresh webhook secret")
    set_parser = commands.add_parser("set", help="register the webhook with Telegram")
    set_parser.add_argument("public_url", help="public base URL of this server")
    commands.add_parser("delete", help="remove the webhook")
    args = parser.parse_args(argv)

    if args.command == "secret":
        print(generate_secret_token())
        return 0

    settings = get_settings()
    try:
        if args.command == "set":
            url = asyncio.run(register_webhook(args.public_url, settings))
            print(f"Webhook set to {url}")
        else:
            asyncio.run(remove_webhook(settings))
            print("Webhook deleted")
    except ChatterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
