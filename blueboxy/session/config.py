"""Session configuration settings."""

from pydantic import BaseModel
from pydantic import Field


class SessionConfig(BaseModel):
    """Session configuration settings."""

    # Secure storage
    keychain_service: str = Field(
        default="com.blueboxy.app",
        description="Service name under which secrets are stored in the secure store",
    )

    # Storage keys
    user_id_key: str = Field(default="blueboxy.userId", description="Secure store account for the user id")
    auth_token_key: str = Field(default="blueboxy.authToken", description="Secure store account for the access token")
    refresh_token_key: str = Field(
        default="blueboxy.refreshToken", description="Secure store account for the refresh token"
    )
    user_data_key: str = Field(default="blueboxy.userData", description="General store key for the user profile")
    session_expiry_key: str = Field(
        default="blueboxy.sessionExpiry", description="General store key for the session expiry"
    )

    # Validation
    validation_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between background session validity checks (default: 1 minute)",
    )
    refresh_threshold: float = Field(
        default=300.0,
        ge=0,
        description="Refresh tokens when the session expires within this many seconds (default: 5 minutes)",
    )
