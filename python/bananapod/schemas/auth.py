"""Auth request schemas."""

from bananapod.schemas.common import ApiModel


class AuthCheckRequest(ApiModel):
    """Login with a user key. Blank or missing keys are rejected by the handler."""

    user_key: str | None = None
