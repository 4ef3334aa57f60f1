"""
Access decision state machine for a single validation event.

Observed status transitions:
    active_temporal -> expired | blocked | in_review_admin
Only administrative actions move a record back to active_temporal or into
blocked; the pipeline itself only ever demotes active_temporal to expired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..core.config import settings
from . import status_catalog as statuses

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DenialState:
    consecutive_denied_accesses: int
    alert_triggered: bool


@dataclass(frozen=True)
class ObservedDecision:
    has_access: bool
    reason: str
    response_type: str
    message: str
    # Status name to persist, None keeps the current one
    new_status: Optional[str] = None
    force_alert: bool = False


def apply_denial_transition(
    current: DenialState,
    granted: bool,
    force_alert: bool = False,
    threshold: Optional[int] = None,
) -> DenialState:
    """
    Shared denial-counter transition for registered and observed users.

    A grant resets the counter and clears the alert. A denial increments the
    counter by one and raises the alert once the counter reaches the threshold,
    or immediately when ``force_alert`` is set.
    """
    threshold = settings.denied_attempts_threshold if threshold is None else threshold
    if granted:
        return DenialState(consecutive_denied_accesses=0, alert_triggered=False)

    count = (current.consecutive_denied_accesses or 0) + 1
    return DenialState(
        consecutive_denied_accesses=count,
        alert_triggered=count >= threshold or force_alert,
    )


def registered_has_access(
    status_name: Optional[str],
    zone_ids: Iterable[str],
    requested_zone_id: Optional[str],
) -> bool:
    """Active status and membership of the requested zone; no expiry dimension"""
    if status_name != statuses.ACTIVE or not requested_zone_id:
        return False
    return requested_zone_id in set(zone_ids)


def evaluate_observed_access(
    status_name: Optional[str],
    expires_at: datetime,
    now: datetime,
    zone_id: Optional[str] = None,
) -> ObservedDecision:
    if status_name == statuses.ACTIVE_TEMPORAL and expires_at >= now:
        return ObservedDecision(
            has_access=True,
            reason=f"Observed user updated for zone: {zone_id}",
            response_type="observed_user_updated",
            message="Access Granted (Observed User Updated).",
        )

    if status_name == statuses.BLOCKED:
        return ObservedDecision(
            has_access=False,
            reason="Access Denied: User is blocked.",
            response_type="observed_user_access_denied_blocked",
            message="Access Denied (Observed User Blocked).",
            force_alert=True,
        )

    if expires_at < now or status_name == statuses.EXPIRED:
        return ObservedDecision(
            has_access=False,
            reason="Access Denied: Access expired or status is expired.",
            response_type="observed_user_access_denied_expired",
            message="Access Denied (Observed User Expired/Status Expired).",
            new_status=statuses.EXPIRED if status_name != statuses.EXPIRED else None,
        )

    if status_name == statuses.IN_REVIEW_ADMIN:
        return ObservedDecision(
            has_access=False,
            reason="Access Denied: User is in review by admin.",
            response_type="observed_user_access_denied_other_status",
            message="Access Denied (User in Review).",
        )

    logger.warning(f"Observed user has unrecognized status for access: {status_name}")
    return ObservedDecision(
        has_access=False,
        reason=f"Access Denied: Invalid status for access: {status_name}.",
        response_type="observed_user_access_denied_other_status",
        message="Access Denied (Invalid Status).",
    )


def accumulate_zones(existing: Optional[Iterable[str]], zone_id: Optional[str]) -> list:
    """Set union preserving first-seen order; blank zone ids are ignored"""
    zones = list(dict.fromkeys(existing or []))
    if zone_id and zone_id.strip() and zone_id not in zones:
        zones.append(zone_id)
    return zones
