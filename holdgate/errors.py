class GatewayError(RuntimeError):
    """The remote order API could not be reached or rejected the whole request."""


class ReleaseRefusedError(PermissionError):
    """A hold release was requested before every note was acknowledged."""


class ShopNotInstalledError(LookupError):
    """No offline access token is stored for the shop."""
