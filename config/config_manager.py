"""
Configuration management for the ticket service.

This module loads the JSON configuration file, applies environment
overrides and exposes typed sections for storage, broker, workers and
notification policies.
"""

import json
import os
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any, Mapping
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ('SMS', 'EMAIL')
IMPORTANCE_KEYS = ('low', 'medium', 'high', 'critical')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

ENV_OVERRIDES = {
    'DATABASE_URL': ('database', 'url'),
    'REDIS_URL': ('broker', 'url'),
}


def _string_list(name: str, value: Any) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{name} must be a list of strings")
    return value


@dataclass
class NotificationConfig:
    """Delivery policy for one kind of notification."""

    type: str = 'EMAIL'
    recipients: List[str] = field(default_factory=list)
    sender: str = ''
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Invalid notification type: {self.type}. Must be one of {NOTIFICATION_TYPES}")

        _string_list('recipients', self.recipients)
        _string_list('cc', self.cc)
        _string_list('bcc', self.bcc)

        if not isinstance(self.sender, str):
            raise ValueError("sender must be a string")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationConfig':
        return cls(
            type=data.get('type', 'EMAIL'),
            recipients=data.get('recipients') or [],
            sender=data.get('sender', ''),
            cc=data.get('cc') or [],
            bcc=data.get('bcc') or []
        )


@dataclass
class DatabaseConfig:
    """SQLite file and connection pool settings."""

    url: str = 'tickets.db'
    pool_size: int = 5
    timeout: float = 30.0

    def __post_init__(self):
        if not self.url:
            raise ValueError("database url is required")
        if not isinstance(self.pool_size, int) or self.pool_size <= 0:
            raise ValueError(f"Invalid pool_size: {self.pool_size}")
        if not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            raise ValueError(f"Invalid database timeout: {self.timeout}")


@dataclass
class BrokerConfig:
    """Redis connection and subject naming."""

    url: str = 'redis://localhost:6379/0'
    prefix: str = 'kiosk'
    block_ms: Optional[int] = 1000
    reply_ttl: int = 30
    request_timeout: float = 15.0

    def __post_init__(self):
        if not self.url:
            raise ValueError("broker url is required")
        if not self.prefix:
            raise ValueError("broker prefix is required")
        if self.block_ms is not None and (not isinstance(self.block_ms, int) or self.block_ms < 0):
            raise ValueError(f"Invalid block_ms: {self.block_ms}")
        if not isinstance(self.reply_ttl, int) or self.reply_ttl <= 0:
            raise ValueError(f"Invalid reply_ttl: {self.reply_ttl}")
        if not isinstance(self.request_timeout, (int, float)) or self.request_timeout <= 0:
            raise ValueError(f"Invalid request_timeout: {self.request_timeout}")


@dataclass
class WorkerConfig:
    """Per entity handler deadlines, in seconds."""

    ticket_deadline: float = 5.0
    comment_deadline: float = 10.0

    def __post_init__(self):
        for name in ('ticket_deadline', 'comment_deadline'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"Invalid {name}: {value}")


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""
    pass


def _default_notifications() -> Dict[str, Any]:
    policy = {'type': 'EMAIL', 'recipients': [], 'sender': '', 'cc': [], 'bcc': []}
    return {
        'ticket': {'new': {level: dict(policy) for level in IMPORTANCE_KEYS}},
        'comment': {'new': dict(policy)}
    }


class ConfigManager:
    """Loads and validates the service configuration."""

    def __init__(self, config_file: str = "config.json", environ: Optional[Mapping[str, str]] = None):
        """
        Initialize ConfigManager.

        Args:
            config_file: Path to the configuration file
            environ: Environment used for overrides (defaults to os.environ)
        """
        self.config_file = Path(config_file)
        self.environ = os.environ if environ is None else environ
        self.raw_config: Dict[str, Any] = {}
        self._load_configuration()

    def _load_configuration(self):
        """Load configuration from file with error handling."""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    self.raw_config = json.load(f)
                logger.info(f"Configuration loaded successfully from {self.config_file}")
            else:
                logger.info(f"Configuration file {self.config_file} not found, using defaults")
                self._create_default_config()

            self._apply_environment()
            self._build_sections()

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file: {e}")
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}")
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Invalid configuration: {e}")
            raise ConfigurationError(f"Invalid configuration: {e}")
        except OSError as e:
            logger.error(f"Error loading configuration: {e}")
            raise ConfigurationError(f"Error loading configuration: {e}")

    def _create_default_config(self):
        """Create default configuration file."""
        default_config = self.default_config()
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(default_config, f, indent=2)

        self.raw_config = default_config
        logger.info(f"Created default configuration file at {self.config_file}")

    @staticmethod
    def default_config() -> Dict[str, Any]:
        return {
            'log_level': 'INFO',
            'log_dir': 'logs',
            'database': asdict(DatabaseConfig()),
            'broker': asdict(BrokerConfig()),
            'workers': asdict(WorkerConfig()),
            'notifier': {'subject': 'notifier.notifications'},
            'notifications': _default_notifications()
        }

    def _apply_environment(self):
        for variable, (section, key) in ENV_OVERRIDES.items():
            value = self.environ.get(variable)
            if value:
                self.raw_config.setdefault(section, {})[key] = value
                logger.debug(f"{variable} overrides {section}.{key}")

        if self.environ.get('LOG_LEVEL'):
            self.raw_config['log_level'] = self.environ['LOG_LEVEL']

    def _build_sections(self):
        self.database = DatabaseConfig(**self.raw_config.get('database', {}))
        self.broker = BrokerConfig(**self.raw_config.get('broker', {}))
        self.workers = WorkerConfig(**self.raw_config.get('workers', {}))
        self.notifier_subject: str = (self.raw_config.get('notifier') or {}).get('subject', '')
        self.log_level: str = str(self.raw_config.get('log_level', 'INFO')).upper()
        self.log_dir: str = self.raw_config.get('log_dir', 'logs')

        notifications = self.raw_config.get('notifications') or {}
        self.notifications: Dict[str, NotificationConfig] = {}

        ticket_policies = ((notifications.get('ticket') or {}).get('new')) or {}
        for level, policy in ticket_policies.items():
            self.notifications[f"ticket.new.{level}"] = NotificationConfig.from_dict(policy)

        comment_policy = (notifications.get('comment') or {}).get('new')
        if comment_policy is not None:
            self.notifications["comment.new"] = NotificationConfig.from_dict(comment_policy)

    def to_dict(self) -> Dict[str, Any]:
        ticket_policies = {
            key.rsplit('.', 1)[1]: policy.to_dict()
            for key, policy in self.notifications.items() if key.startswith('ticket.new.')
        }
        notifications: Dict[str, Any] = {'ticket': {'new': ticket_policies}}
        if 'comment.new' in self.notifications:
            notifications['comment'] = {'new': self.notifications['comment.new'].to_dict()}

        return {
            'log_level': self.log_level,
            'log_dir': self.log_dir,
            'database': asdict(self.database),
            'broker': asdict(self.broker),
            'workers': asdict(self.workers),
            'notifier': {'subject': self.notifier_subject},
            'notifications': notifications
        }

    def save_configuration(self):
        """Save current configuration to file, keeping a backup of the old one."""
        try:
            if self.config_file.exists():
                self.config_file.replace(self.config_file.with_suffix('.bak'))

            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f, indent=2)

            logger.info(f"Configuration saved to {self.config_file}")

        except OSError as e:
            logger.error(f"Error saving configuration: {e}")
            raise ConfigurationError(f"Error saving configuration: {e}")

    def validate_configuration(self) -> List[str]:
        """
        Validate the current configuration.

        Section values are checked when they are built; this reports
        problems that only show up across sections.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.log_level not in LOG_LEVELS:
            errors.append(f"Invalid log_level: {self.log_level}. Must be one of {list(LOG_LEVELS)}")

        if self.notifications and not self.notifier_subject:
            errors.append("Notifications are configured but notifier.subject is empty")

        for level in IMPORTANCE_KEYS:
            if f"ticket.new.{level}" not in self.notifications:
                errors.append(f"Missing notification policy: ticket.new.{level}")

        for key in self.notifications:
            if key != 'comment.new' and key.rsplit('.', 1)[1] not in IMPORTANCE_KEYS:
                errors.append(f"Unknown importance level in notification policy: {key}")

        if self.broker.request_timeout <= max(self.workers.ticket_deadline, self.workers.comment_deadline):
            errors.append("broker.request_timeout should exceed the worker deadlines")

        return errors

    def reload_configuration(self):
        """Reload configuration from file."""
        self.raw_config = {}
        self._load_configuration()
        logger.info("Configuration reloaded")
