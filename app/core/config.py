"""
VID Verifier configuration constants.

Constants are organized into:
- PROTOCOL: Fixed values of the Verified ID presentation flow
- IDENTITY: Entra ID / Key Vault settings for the request service token
- ENDPOINTS: Upstream and downstream URLs
- OPERATIONAL: Deployment-specific settings (env vars)
"""

import os

# =============================================================================
# PROTOCOL CONSTANTS
# =============================================================================

# Status recorded when the request service accepts a presentation request
STATUS_REQUEST_CREATED: str = "request_created"

# Terminal status sent by the request service once the wallet presentation
# has been verified. Only this status triggers notifications and the
# caller callback.
STATUS_PRESENTATION_VERIFIED: str = "presentation_verified"

# Status reported to the caller in the result callback
CALLER_STATUS_VERIFIED: str = "verified"

# Label used in notifications when the caller did not send a display name
DEFAULT_CALLER_NAME: str = "Verified ID verification"

# Request contexts stay readable this long past the presentation expiry so a
# late callback can still be correlated.
RETENTION_GRACE_SECONDS: int = 5 * 60

# Route the request service posts presentation events to
CALLBACK_ROUTE: str = "/api/callback"

# =============================================================================
# IDENTITY SETTINGS (token acquisition for the request service)
# =============================================================================

VID_TENANT_ID: str = os.getenv("VID_TENANT_ID", "")
VID_CLIENT_ID: str = os.getenv("VID_CLIENT_ID", "")

# Either a direct client secret, or a Key Vault URL + secret name
VID_CLIENT_SECRET: str = os.getenv("VID_CLIENT_SECRET", "")
VID_KEY_VAULT_URL: str = os.getenv("VID_KEY_VAULT_URL", "")
VID_CLIENT_SECRET_NAME: str = os.getenv("VID_CLIENT_SECRET_NAME", "")

# Application ID of the Verified ID request service
VID_CLIENT_API_RESOURCE: str = os.getenv(
    "VID_CLIENT_API_RESOURCE", "3db474b9-6a0c-4840-96ac-1fceb342124f/.default"
)

VID_AUTHORITY_HOST: str = os.getenv(
    "VID_AUTHORITY_HOST", "https://login.microsoftonline.com"
)

# =============================================================================
# ENDPOINTS
# =============================================================================

VID_REQUEST_SERVICE_URL: str = os.getenv(
    "VID_REQUEST_SERVICE_URL",
    "https://verifiedid.did.msidentity.com/v1.0/verifiableCredentials/createPresentationRequest",
)

# Verifier DID that signs presentation requests
VID_DEFAULT_AUTHORITY: str = os.getenv(
    "VID_DEFAULT_AUTHORITY",
    "did:web:eu-syntheticsdocumentprovider.azurewebsites.net",
)

VID_DEFAULT_CREDENTIAL_TYPE: str = os.getenv(
    "VID_DEFAULT_CREDENTIAL_TYPE", "VerifiedEmployee"
)

# Public base URL of this service, used to build the callback address
VID_ORIGIN: str = os.getenv("VID_ORIGIN", "").rstrip("/")

# Teams incoming webhook. Empty disables notifications.
VID_TEAMS_NOTIFICATIONS_ENDPOINT: str = os.getenv(
    "VID_TEAMS_NOTIFICATIONS_ENDPOINT", ""
)

# =============================================================================
# OPERATIONAL SETTINGS (deployment-specific, via environment variables)
# =============================================================================

# Timeout for every outbound HTTP call (seconds)
VID_HTTP_TIMEOUT: float = float(os.getenv("VID_HTTP_TIMEOUT", "10.0"))

# How often expired request contexts are swept from memory (seconds)
VID_CACHE_SWEEP_INTERVAL: float = float(os.getenv("VID_CACHE_SWEEP_INTERVAL", "60"))

# Admin endpoint visibility
# Default: True for dev, set to False in production deployments
ADMIN_ENDPOINT_ENABLED: bool = os.getenv("ADMIN_ENDPOINT_ENABLED", "true").lower() == "true"


def callback_url() -> str:
    """Absolute URL the request service should post presentation events to."""
    return f"{VID_ORIGIN}{CALLBACK_ROUTE}"


def missing_settings() -> list[str]:
    """Return names of required settings that are not configured.

    The client secret requirement is satisfied by either VID_CLIENT_SECRET or
    the VID_KEY_VAULT_URL / VID_CLIENT_SECRET_NAME pair.
    """
    missing = []
    if not VID_TENANT_ID:
        missing.append("VID_TENANT_ID")
    if not VID_CLIENT_ID:
        missing.append("VID_CLIENT_ID")
    if not VID_CLIENT_SECRET and not (VID_KEY_VAULT_URL and VID_CLIENT_SECRET_NAME):
        missing.append("VID_CLIENT_SECRET")
    if not VID_ORIGIN:
        missing.append("VID_ORIGIN")
    if not VID_TEAMS_NOTIFICATIONS_ENDPOINT:
        missing.append("VID_TEAMS_NOTIFICATIONS_ENDPOINT")
    return missing
