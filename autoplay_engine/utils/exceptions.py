"""Custom exception types used across the autoplay engine."""


class UserFacingError(Exception):
    """Errors whose message can be shown to users as-is."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class KeyValueUnavailableError(RuntimeError):
    """Raised when the key-value backend cannot serve a request."""


class SearchBackendError(RuntimeError):
    """Raised by a search backend when a lookup fails to load."""


class ConfigurationError(Exception):
    """Deployment or configuration mistake detected at runtime."""


class RateLimitRuleNotFoundError(ConfigurationError, KeyError):
    """A caller asked for a rate limit rule that was never registered."""

    def __init__(self, rule_name: str):
        super().__init__(f"Rate limit rule '{rule_name}' not found")
        self.rule_name = rule_name

    def __str__(self) -> str:
        return self.args[0]
