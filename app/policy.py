from __future__ import annotations

import copy
import enum
from dataclasses import dataclass
from typing import Any, Dict

from database import get_active_policy, upsert_policy
from errors import OrderingError
from timeutil import TimeOfDay, format_time, is_before, parse_time


class PayRatePolicy(str, enum.Enum):
    """Which hourly rate prices approved hours when payroll is (re)run."""

    CURRENT = "current"
    SNAPSHOT_AT_APPROVAL = "snapshot_at_approval"


@dataclass(frozen=True)
class ShopHours:
    """Closed daily window applied uniformly to every day of the week."""

    open: TimeOfDay
    close: TimeOfDay

    @property
    def open_label(self) -> str:
        return format_time(self.open)

    @property
    def close_label(self) -> str:
        return format_time(self.close)

    @classmethod
    def from_labels(cls, open_label: str, close_label: str) -> "ShopHours":
        hours = cls(parse_time(open_label), parse_time(close_label))
        if not is_before(hours.open, hours.close):
            raise OrderingError(hours.open_label, hours.close_label)
        return hours


BASELINE_POLICY: Dict[str, Any] = {
    "name": "Shop Defaults",
    "shop_hours": {"open": "09:00", "close": "21:00"},
    "payroll": {"rate_policy": PayRatePolicy.CURRENT.value},
    "timesheets": {"allow_resubmit_rejected": False},
}


def load_active_policy(conn) -> Dict:
    """Return the active policy payload as a dict."""
    if conn is None:
        return build_default_policy()
    if callable(conn):
        with conn() as session:
            policy = get_active_policy(session)
            return _normalize_policy(policy.params_dict() if policy else {})
    policy = get_active_policy(conn)
    return _normalize_policy(policy.params_dict() if policy else {})


def _normalize_policy(policy: Dict) -> Dict:
    """Fill missing sections from the baseline so callers never see partial payloads."""
    if not isinstance(policy, dict):
        policy = {}
    normalized = copy.deepcopy(policy)
    for section, defaults in BASELINE_POLICY.items():
        if section == "name":
            continue
        current = normalized.get(section)
        if not isinstance(current, dict):
            normalized[section] = copy.deepcopy(defaults)
            continue
        for key, value in defaults.items():
            current.setdefault(key, value)
    return normalized


def shop_hours(policy: Dict) -> ShopHours:
    cfg = (policy or {}).get("shop_hours") or {}
    defaults = BASELINE_POLICY["shop_hours"]
    return ShopHours.from_labels(cfg.get("open", defaults["open"]), cfg.get("close", defaults["close"]))


def rate_policy(policy: Dict) -> PayRatePolicy:
    raw = ((policy or {}).get("payroll") or {}).get("rate_policy")
    try:
        return PayRatePolicy(str(raw or PayRatePolicy.CURRENT.value).strip().lower())
    except ValueError:
        return PayRatePolicy.CURRENT


def allow_resubmit_rejected(policy: Dict) -> bool:
    return bool(((policy or {}).get("timesheets") or {}).get("allow_resubmit_rejected", False))


def validate_policy(params: Dict) -> Dict:
    """Normalize an incoming policy payload, raising ValueError on bad values."""
    normalized = _normalize_policy(params)
    shop_hours(normalized)
    raw_rate = normalized["payroll"].get("rate_policy")
    try:
        PayRatePolicy(str(raw_rate).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported rate_policy '{raw_rate}'.") from exc
    return normalized


def build_default_policy() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the policy safely."""
    return copy.deepcopy(BASELINE_POLICY)


def ensure_default_policy(session_factory) -> None:
    """Seed the baseline policy exactly once so validation has shop hours to work with."""

    with session_factory() as session:
        if get_active_policy(session):
            return
        defaults = build_default_policy()
        name = defaults.get("name", "Shop Defaults")
        params = {key: value for key, value in defaults.items() if key != "name"}
        upsert_policy(session, name, params, edited_by="system")
