"""Exception types raised by the voice quality engine."""


class VoiceQualityError(Exception):
    """Base class for engine errors."""


class ConfigError(VoiceQualityError, ValueError):
    """Invalid or unreadable analyzer configuration."""


class DeviceUnavailableError(VoiceQualityError, RuntimeError):
    """The audio backend or the requested input device is not available."""
