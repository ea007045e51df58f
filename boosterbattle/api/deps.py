"""
Shared request dependencies.

Identity comes from the auth gateway in front of the service, which puts
the authenticated user id in a trusted header.
"""

from typing import Annotated

from fastapi import Depends, Request

from boosterbattle.config import settings
from boosterbattle.models.errors import AuthError
from boosterbattle.services.rate_limits import get_pack_rate_limiter


def get_current_user(request: Request) -> str:
    """
    Resolve the caller's user id.

    Raises:
        AuthError: If the identity header is missing or blank
    """
    user_id = request.headers.get(settings.user_id_header, "").strip()
    if not user_id:
        raise AuthError(
            "Authentication required.",
            detail=f"missing header {settings.user_id_header}",
        )
    return user_id


CurrentUser = Annotated[str, Depends(get_current_user)]


def enforce_pack_rate_limit(user_id: CurrentUser) -> None:
    """
    Consult the pack limiter before the endpoint touches the store.

    Keyed on the authenticated player, so forwarding headers cannot spread
    one player's requests over several budgets.
    """
    get_pack_rate_limiter().check(user_id)
