from __future__ import annotations

import secrets
from typing import Optional

from feedserver.domain.models import AuthenticationOptions

API_KEY_HEADER_NAME = "X-NuGet-ApiKey"


def is_push_authentication_required(options: AuthenticationOptions) -> bool:
    return len(options.api_keys) > 0


def verify_api_key(options: AuthenticationOptions, api_key: Optional[str]) -> bool:
    """
    Check an API key sent by a client against the configured keys.

    With no keys configured every push is accepted.
    """
    if not is_push_authentication_required(options):
        return True
    if not api_key:
        return False

    supplied = api_key.encode("utf-8")
    matched = False
    # Compare against every key so timing does not reveal which one matched.
    for configured in options.api_keys:
        if secrets.compare_digest(configured.key.encode("utf-8"), supplied):
            matched = True
    return matched
