"""Exception classes for the cluster add-ons."""


class AddonError(Exception):
    """Base exception for add-on errors."""

    pass


class InvalidInputError(AddonError):
    """Raised when an add-on is composed without a usable cluster identity."""

    pass


class ConfigurationError(AddonError):
    """Raised when the CDK context for an add-on is invalid."""

    pass
