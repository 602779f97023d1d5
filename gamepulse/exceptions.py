# gamepulse/exceptions.py

"""
Exception hierarchy shared by providers, channels and watchers.
"""


class GamePulseError(Exception):
    """Base class for all GamePulse errors."""
    pass


class ProviderError(GamePulseError):
    """Transient failure talking to a league data source."""
    pass


class CircuitBreakerError(ProviderError):
    """Raised when a provider's circuit breaker is open."""
    pass


class ChannelError(GamePulseError):
    """Delivery failure inside a notification channel."""
    pass


class ChannelNotConfiguredError(ChannelError):
    """Raised when a channel is used without credentials."""
    pass
