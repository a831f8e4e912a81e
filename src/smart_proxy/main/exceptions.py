class AadProxyError(Exception):
    pass


class OpenIdConfigurationError(AadProxyError):
    """The IdP metadata could not be fetched or is missing required endpoints."""


# Name used in the error-kind vocabulary of the proxy
MetadataFetchError = OpenIdConfigurationError


class MissingParameterError(AadProxyError):
    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"Missing required parameter '{parameter}'")


class InvalidParameterError(AadProxyError):
    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Invalid parameter '{parameter}': {reason}")


class StateDecodeError(AadProxyError):
    """The compound state returned by the IdP is not base64url JSON."""


class LaunchContextDecodeError(StateDecodeError):
    """The launch context embedded in the compound state is malformed."""


class CodeDecodeError(AadProxyError):
    """The compound authorization code is not base64url JSON with a code."""


class TokenResponseError(AadProxyError):
    """The IdP reported success but its token response is not a JSON object."""


class IdpUnavailableError(AadProxyError):
    """The IdP token endpoint could not be reached."""


# Map exceptions to (status code, OAuth error, description).
# A description of None means str(exc) is used.
EXCEPTION_MAP = {
    MissingParameterError: (400, "invalid_request", None),
    InvalidParameterError: (400, "invalid_request", None),
    StateDecodeError: (500, "server_error", "Unable to decode the authorization state"),
    CodeDecodeError: (500, "server_error", "Unable to decode the authorization code"),
    TokenResponseError: (502, "server_error", "Invalid token response from identity provider"),
    IdpUnavailableError: (502, "server_error", "Identity provider is unreachable"),
    OpenIdConfigurationError: (
        503,
        "temporarily_unavailable",
        "Identity provider configuration is unavailable",
    ),
}
