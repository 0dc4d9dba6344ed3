"""Delivery target grammar shared by every outbound path.

``group:<id>`` and bare numeric strings address a group; anything else
addresses a user, with an optional ``user:`` prefix. Note that a bare QQ
number therefore means a *group*: direct targets should be written
``user:<qq>``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from qq_gateway.core.types import PeerKind

_NUMERIC = re.compile(r"^-?\d+$")
_CHANNEL_PREFIX = re.compile(r"^qq:", re.IGNORECASE)

GROUP_PREFIX = "group:"
USER_PREFIX = "user:"


@dataclass(frozen=True, slots=True)
class DeliveryTarget:
    kind: PeerKind
    id: str

    @property
    def is_group(self) -> bool:
        return self.kind is PeerKind.GROUP


def parse_target(to: str) -> DeliveryTarget:
    target = to.strip()
    if target.startswith(GROUP_PREFIX) or _NUMERIC.match(target):
        return DeliveryTarget(PeerKind.GROUP, target.removeprefix(GROUP_PREFIX))
    return DeliveryTarget(PeerKind.DM, target.removeprefix(USER_PREFIX))


def format_chat_id(is_group: bool, peer_id: str) -> str:
    return f"{GROUP_PREFIX}{peer_id}" if is_group else f"{USER_PREFIX}{peer_id}"


def normalize_target(target: str) -> str:
    """Drop a leading ``qq:`` channel prefix."""
    return _CHANNEL_PREFIX.sub("", target.strip())


def looks_like_id(target: str) -> bool:
    return bool(_NUMERIC.match(target.strip()))
