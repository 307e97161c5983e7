"""Custom exceptions for the application."""


class SyncError(Exception):
    """Base exception for entity sync errors."""
    pass


class ConfigurationError(SyncError):
    """Exception raised for invalid service configuration."""
    pass


class DataSourceError(SyncError):
    """Exception raised when a data source returns an unusable result."""
    pass


class ConnectionClosedError(SyncError):
    """Exception raised when a closed status connection is required to be open."""
    pass
