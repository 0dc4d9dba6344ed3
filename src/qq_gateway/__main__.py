"""CLI entry point for qq-gateway."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from qq_gateway.app import QQGatewayApp
from qq_gateway.config import AppConfig, load_config
from qq_gateway.log import setup_logging
from qq_gateway.qq.accounts import list_account_ids, resolve_account
from qq_gateway.qq.probe import probe_account
from qq_gateway.qq.send import send_message
from qq_gateway.qq.targets import normalize_target


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="qq-gateway",
        description="QQ channel gateway for chat agents over a OneBot 11 bridge (NapCatQQ)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_config_args(subparsers.add_parser("start", help="Start the gateway"))
    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))
    _add_config_args(subparsers.add_parser("accounts", help="List QQ accounts"))

    probe_parser = subparsers.add_parser("probe", help="Check the bridge login and status")
    _add_config_args(probe_parser)
    probe_parser.add_argument("-a", "--account", default=None, help="Account id")
    probe_parser.add_argument("-t", "--timeout", type=int, default=5000, help="Timeout in ms")

    send_parser = subparsers.add_parser("send", help="Send a message")
    _add_config_args(send_parser)
    send_parser.add_argument("target", help="<qqNumber>, user:<qqNumber> or group:<groupId>")
    send_parser.add_argument("text", help="Message text")
    send_parser.add_argument("-a", "--account", default=None, help="Account id")
    send_parser.add_argument("--media", default=None, help="Image URL or file to attach")

    args = parser.parse_args()

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "accounts":
        _list_accounts(args.config, args.env)
    elif args.command == "probe":
        _probe(args.config, args.env, args.account, args.timeout)
    elif args.command == "send":
        _send(args.config, args.env, args.target, args.text, args.account, args.media)
    elif args.command == "start":
        _run(args.config, args.env)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and edit it first")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Agents: {', '.join(a.id for a in config.agents) or '(default: main)'}")
    print(f"  Bindings: {len(config.bindings)}")
    print(f"  Anthropic: {'configured' if config.anthropic else 'missing'}")
    print(f"  Bridge autostart: {config.bridge.autostart}")
    for account_id in list_account_ids(config):
        account = resolve_account(config, account_id)
        print(f"    - {account.account_id} [{'enabled' if account.enabled else 'disabled'}]")
        if not account.ws_url:
            print("        warning: wsUrl not configured (required for receiving messages)")


def _list_accounts(config_path: str, env_path: str) -> None:
    config = _load_or_exit(config_path, env_path)
    for account_id in list_account_ids(config):
        account = resolve_account(config, account_id)
        print(f"{account.account_id}" + (f" ({account.name})" if account.name else ""))
        print(f"    enabled : {account.enabled}")
        print(f"    http    : {account.http_url}")
        print(f"    ws      : {account.ws_url or '(not configured)'}")
        print(f"    token   : {account.token_source.value}")


def _probe(config_path: str, env_path: str, account_id: str | None, timeout_ms: int) -> None:
    config = _load_or_exit(config_path, env_path)
    account = resolve_account(config, account_id)
    result = asyncio.run(probe_account(account, timeout_ms))
    if not result.ok:
        print(f"[{account.account_id}] probe failed: {result.error}", file=sys.stderr)
        sys.exit(1)
    print(f"[{account.account_id}] {result.nickname} ({result.self_id}) - {result.status}")


def _send(
    config_path: str,
    env_path: str,
    target: str,
    text: str,
    account_id: str | None,
    media: str | None,
) -> None:
    config = _load_or_exit(config_path, env_path)
    account = resolve_account(config, account_id)
    try:
        result = asyncio.run(send_message(normalize_target(target), text, account, media_url=media))
    except Exception as e:
        print(f"Send failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Sent (message_id={result.message_id or 'unknown'})")


def _run(config_path: str, env_path: str) -> None:
    """Load config and start the application."""
    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, json_logs=config.log_json)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        app = QQGatewayApp(config)
        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except ValueError as e:
        print(f"Startup error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
