"""Multi-account resolution: config merge, token precedence, and default-account fallback."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from qq_gateway.config import AppConfig, QQAccountConfig
from qq_gateway.core.routing import list_bound_account_ids, resolve_default_agent_bound_account_id
from qq_gateway.core.session import normalize_account_id
from qq_gateway.core.types import CHANNEL_ID, DEFAULT_ACCOUNT_ID, TokenSource
from qq_gateway.log import get_logger

logger = get_logger(__name__)

DEFAULT_HTTP_URL = "http://localhost:3000"
ACCESS_TOKEN_ENV = "QQ_ACCESS_TOKEN"
DEBUG_ACCOUNTS_ENV = "QQ_DEBUG_ACCOUNTS"

_TRUTHY = {"1", "true", "yes", "on"}


def _debug(event: str, **kw: object) -> None:
    if os.environ.get(DEBUG_ACCOUNTS_ENV, "").strip().lower() in _TRUTHY:
        logger.warning(event, **kw)


@dataclass(frozen=True, slots=True)
class ResolvedAccount:
    account_id: str
    enabled: bool
    http_url: str
    access_token: str
    token_source: TokenSource
    config: QQAccountConfig
    ws_url: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.http_url.strip())


class TokenResolution(NamedTuple):
    token: str
    source: TokenSource


TokenStrategy = Callable[[QQAccountConfig], Optional[TokenResolution]]


def token_from_env(_merged: QQAccountConfig) -> TokenResolution | None:
    """Process-wide override; applies to every account alike."""
    token = os.environ.get(ACCESS_TOKEN_ENV, "").strip()
    return TokenResolution(token, TokenSource.ENV) if token else None


def token_from_file(merged: QQAccountConfig) -> TokenResolution | None:
    if not merged.token_file:
        return None
    try:
        token = Path(merged.token_file).expanduser().read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        _debug("qq_token_file_unreadable", path=merged.token_file, error=str(e))
        return None
    return TokenResolution(token, TokenSource.TOKEN_FILE) if token else None


def token_from_config(merged: QQAccountConfig) -> TokenResolution | None:
    token = (merged.access_token or "").strip()
    return TokenResolution(token, TokenSource.CONFIG) if token else None


# First strategy to yield a token wins.
TOKEN_STRATEGIES: tuple[TokenStrategy, ...] = (token_from_env, token_from_file, token_from_config)


def resolve_access_token(
    merged: QQAccountConfig,
    strategies: tuple[TokenStrategy, ...] = TOKEN_STRATEGIES,
) -> TokenResolution:
    for strategy in strategies:
        resolution = strategy(merged)
        if resolution is not None:
            return resolution
    return TokenResolution("", TokenSource.NONE)


def _configured_account_ids(config: AppConfig) -> list[str]:
    return list({normalize_account_id(key) for key in config.channels.qq.accounts if key})


def list_account_ids(config: AppConfig) -> list[str]:
    """Configured account keys plus accounts referenced by bindings; never empty."""
    ids = set(_configured_account_ids(config)) | set(list_bound_account_ids(config, CHANNEL_ID))
    _debug("qq_list_account_ids", ids=sorted(ids))
    if not ids:
        return [DEFAULT_ACCOUNT_ID]
    return sorted(ids)


def resolve_default_account_id(config: AppConfig) -> str:
    bound_default = resolve_default_agent_bound_account_id(config, CHANNEL_ID)
    if bound_default:
        return bound_default
    ids = list_account_ids(config)
    if DEFAULT_ACCOUNT_ID in ids:
        return DEFAULT_ACCOUNT_ID
    return ids[0] if ids else DEFAULT_ACCOUNT_ID


def _account_section(config: AppConfig, account_id: str) -> QQAccountConfig | None:
    accounts = config.channels.qq.accounts
    if account_id in accounts:
        return accounts[account_id]
    normalized = normalize_account_id(account_id)
    for key, section in accounts.items():
        if normalize_account_id(key) == normalized:
            return section
    return None


def merge_account_config(config: AppConfig, account_id: str) -> QQAccountConfig:
    """Base channel fields provide defaults; fields set on the account override them."""
    base = config.channels.qq.model_dump(exclude={"accounts"}, exclude_none=True)
    section = _account_section(config, account_id)
    overrides = section.model_dump(exclude_none=True) if section else {}
    return QQAccountConfig.model_validate({**base, **overrides})


def _resolve(config: AppConfig, account_id: str) -> ResolvedAccount:
    merged = merge_account_config(config, account_id)
    base_enabled = config.channels.qq.enabled is not False
    enabled = base_enabled and merged.enabled is not False
    token = resolve_access_token(merged)
    http_url = (merged.http_url or "").strip() or DEFAULT_HTTP_URL
    ws_url = (merged.ws_url or "").strip() or None

    _debug(
        "qq_resolve_account",
        account_id=account_id,
        enabled=enabled,
        token_source=token.source.value,
        http_url=http_url,
        ws_url=ws_url,
    )
    return ResolvedAccount(
        account_id=account_id,
        enabled=enabled,
        name=(merged.name or "").strip() or None,
        http_url=http_url,
        ws_url=ws_url,
        access_token=token.token,
        token_source=token.source,
        config=merged,
    )


def _looks_unconfigured(account: ResolvedAccount) -> bool:
    return account.token_source is TokenSource.NONE and account.http_url == DEFAULT_HTTP_URL


def resolve_account(config: AppConfig, account_id: str | None = None) -> ResolvedAccount:
    """Resolve one account. Missing configuration yields an unusable account, never an error.

    Without an explicit id, an unconfigured default slot falls back to the
    configured default account (e.g. the one the default agent is bound to)
    when that one has a token.
    """
    explicit = bool((account_id or "").strip())
    primary = _resolve(config, normalize_account_id(account_id))
    if explicit or not _looks_unconfigured(primary):
        return primary

    fallback_id = resolve_default_account_id(config)
    if fallback_id == primary.account_id:
        return primary
    fallback = _resolve(config, fallback_id)
    if fallback.token_source is not TokenSource.NONE:
        return fallback
    return primary


def list_enabled_accounts(config: AppConfig) -> list[ResolvedAccount]:
    accounts = [resolve_account(config, account_id) for account_id in list_account_ids(config)]
    return [account for account in accounts if account.enabled]
