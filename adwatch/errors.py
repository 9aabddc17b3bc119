"""Error taxonomy shared by the token vault, synchronizers and budget monitor.

Every class carries the HTTP status and machine-readable ``code`` the API
layer renders, so services can raise without knowing about FastAPI.
"""


class AdwatchError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ConfigurationError(AdwatchError):
    """A required setting (credential, developer token, key) is missing."""

    status_code = 400
    code = "configuration_error"


class ValidationError(AdwatchError):
    status_code = 400
    code = "bad_request"


class NotFoundError(AdwatchError):
    status_code = 404
    code = "not_found"


class ReauthorizationRequired(AdwatchError):
    """The integration can no longer be used until the user reconnects it."""

    status_code = 403
    code = "reauthorization_required"


class MissingRefreshTokenError(ReauthorizationRequired):
    code = "missing_refresh_token"


class AccessRevokedError(AdwatchError):
    status_code = 403
    code = "access_revoked"


class InactiveAccountError(ValidationError):
    code = "account_inactive"


class ProviderAPIError(AdwatchError):
    """Non-2xx response from an ad platform or OAuth endpoint."""

    status_code = 500
    code = "provider_error"

    def __init__(
        self,
        message: str = "",
        *,
        provider: str = "",
        http_status: int | None = None,
        error_code: int | None = None,
        body: str = "",
    ):
        super().__init__(message)
        self.provider = provider
        self.http_status = http_status
        self.error_code = error_code
        self.body = body[:500]


class ResourceGoneError(ProviderAPIError):
    """Remote object no longer exists (Graph API code 100 / "does not exist")."""

    code = "resource_gone"


class ProviderAuthError(ProviderAPIError):
    """Provider rejected the token (OAuthException, expired session, 401)."""

    status_code = 403
    code = "reauthorization_required"
