import hmac
from typing import Optional

from fastapi import Header, Request

from launchpad.core.errors import AuthenticationError, ConfigurationError


def get_launchpad(request: Request):
    """The application object wired in launchpad.main"""
    return request.app.state.launchpad


async def require_admin(request: Request, x_api_key: Optional[str] = Header(None)) -> None:
    expected = get_launchpad(request).settings.admin_api_key
    if not expected:
        raise ConfigurationError("Admin API key not configured")
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise AuthenticationError("Unauthorized")
