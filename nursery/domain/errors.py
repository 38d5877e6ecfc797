"""Exceptions raised by the monitoring pipeline."""


class NurseryError(Exception):
    """Base error"""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message}"


class InvalidConfigError(NurseryError):
    """Configuration rejected before being applied"""


class DataSourceError(NurseryError):
    """Sensor data could not be fetched or decoded"""


class ChannelNotReadyError(NurseryError):
    """A notification channel cannot be used with the current settings"""
