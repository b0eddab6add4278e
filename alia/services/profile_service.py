"""Profile lookups for the session machine."""
from __future__ import annotations

import time
from typing import Callable, Optional

from flask import current_app

from alia import db
from alia.domain import ProfileSnapshot
from alia.errors import ProfileUnavailableError
from alia.models import Profile


def get_profile(user_id) -> Optional[ProfileSnapshot]:
    """Fetch-by-id. Missing or malformed profiles come back as None."""
    profile = db.session.get(Profile, user_id)
    if profile is None or profile.plan is None:
        return None
    return profile.to_snapshot()


def fetch_profile_with_retry(user_id, delay: float, sleep: Optional[Callable[[float], None]] = None) -> ProfileSnapshot:
    """Fetch a profile right after sign-up or login.

    A missing profile at that point is treated as replication lag: retried
    exactly once after `delay` seconds, then reported as unavailable.
    """
    profile = get_profile(user_id)
    if profile is not None:
        return profile

    current_app.logger.warning("Profile for user %s not found, retrying in %ss", user_id, delay)
    (sleep or time.sleep)(delay)
    db.session.expire_all()

    profile = get_profile(user_id)
    if profile is None:
        current_app.logger.error("Profile for user %s still missing after retry", user_id)
        raise ProfileUnavailableError()
    return profile
