# Configuration package for service settings and notification policies

from .config_manager import (
    ConfigManager,
    ConfigurationError,
    NotificationConfig,
    DatabaseConfig,
    BrokerConfig,
    WorkerConfig
)

__all__ = [
    'ConfigManager',
    'ConfigurationError',
    'NotificationConfig',
    'DatabaseConfig',
    'BrokerConfig',
    'WorkerConfig'
]
