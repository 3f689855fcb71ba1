"""
Configuration management for the Mixer ping bot.

This module handles loading, validating, and updating configuration settings
from YAML files, providing a centralized interface for all configuration needs.
Every section has built-in defaults, so the configuration file is optional.
"""

import copy
import yaml
from typing import Dict, Any, Optional
from pathlib import Path
import logging


DEFAULT_CONFIG: Dict[str, Any] = {
    'mixer': {
        'api_base_url': 'https://mixer.com/api/v1',
        'token_env': 'mixer_token',
        'token_lifetime_days': 365,
        'request_timeout': 10
    },
    'chat': {
        'channel_id': None,
        'handshake_timeout': 10,
        'connect_message': "Hi! I'm connected!"
    },
    'bot': {
        'command_prefix': '!ping',
        'greeting_template': "Hi {username}! I'm pingbot! Write !ping and I will pong back!",
        'pong_template': '@{username} PONG!',
        'ignore_own_messages': False
    }
}


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigurationManager:
    """Manages application configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to the configuration file, or None to run on
                built-in defaults
        """
        self.config_path = Path(config_path) if config_path else None
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)

        # Load configuration on initialization
        self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file on top of the defaults.

        Returns:
            The loaded configuration dictionary

        Raises:
            ConfigurationError: If config file cannot be loaded or is invalid
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path is None:
            self.validate_config(config)
            self.config = config
            self.logger.info("No configuration file given, using defaults")
            return self.config

        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                loaded = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading config file: {e}")

        if not isinstance(loaded, dict):
            raise ConfigurationError("Configuration file must contain a mapping")

        self._deep_update(config, loaded)
        self.validate_config(config)
        self.config = config
        self.logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration structure and values.

        Args:
            config: Configuration dictionary to validate

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        for section in DEFAULT_CONFIG:
            if not isinstance(config.get(section), dict):
                raise ConfigurationError(f"Missing required configuration section: {section}")

        self._validate_mixer(config['mixer'])
        self._validate_chat(config['chat'])
        self._validate_bot(config['bot'])

        return True

    def _validate_mixer(self, mixer: Dict[str, Any]) -> None:
        """Validate mixer configuration."""
        for field in ['api_base_url', 'token_env']:
            if not isinstance(mixer.get(field), str) or not mixer[field].strip():
                raise ConfigurationError(f"mixer.{field} must be a non-empty string")

        if not self._is_positive_number(mixer.get('token_lifetime_days')):
            raise ConfigurationError("mixer.token_lifetime_days must be a positive number")

        if not self._is_positive_number(mixer.get('request_timeout')):
            raise ConfigurationError("mixer.request_timeout must be a positive number")

    def _validate_chat(self, chat: Dict[str, Any]) -> None:
        """Validate chat configuration."""
        channel_id = chat.get('channel_id')
        if channel_id is not None:
            if isinstance(channel_id, bool) or not isinstance(channel_id, int) or channel_id <= 0:
                raise ConfigurationError("chat.channel_id must be a positive integer or null")

        if not self._is_positive_number(chat.get('handshake_timeout')):
            raise ConfigurationError("chat.handshake_timeout must be a positive number")

        if not isinstance(chat.get('connect_message'), str) or not chat['connect_message'].strip():
            raise ConfigurationError("chat.connect_message must be a non-empty string")

    def _validate_bot(self, bot: Dict[str, Any]) -> None:
        """Validate bot behavior configuration."""
        if not isinstance(bot.get('command_prefix'), str) or not bot['command_prefix'].strip():
            raise ConfigurationError("bot.command_prefix must be a non-empty string")

        for field in ['greeting_template', 'pong_template']:
            template = bot.get(field)
            if not isinstance(template, str) or '{username}' not in template:
                raise ConfigurationError(f"bot.{field} must be a string containing {{username}}")

        if not isinstance(bot.get('ignore_own_messages'), bool):
            raise ConfigurationError("bot.ignore_own_messages must be a boolean")

    @staticmethod
    def _is_positive_number(value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0

    def update_config(self, updates: Dict[str, Any]) -> None:
        """Update configuration with new values.

        Args:
            updates: Dictionary of configuration updates

        Raises:
            ConfigurationError: If updates are invalid
        """
        updated_config = copy.deepcopy(self.config)
        self._deep_update(updated_config, updates)
        self.validate_config(updated_config)

        self.config = updated_config
        self.logger.info("Configuration updated successfully")

    def _deep_update(self, base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
        """Recursively update nested dictionaries."""
        for key, value in update_dict.items():
            if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
                self._deep_update(base_dict[key], value)
            else:
                base_dict[key] = value

    def get_mixer_config(self) -> Dict[str, Any]:
        """Get Mixer REST API configuration."""
        return self.config.get('mixer', {})

    def get_chat_config(self) -> Dict[str, Any]:
        """Get chat socket configuration."""
        return self.config.get('chat', {})

    def get_bot_config(self) -> Dict[str, Any]:
        """Get bot behavior configuration."""
        return self.config.get('bot', {})

    def get_config(self) -> Dict[str, Any]:
        """Get the complete configuration dictionary.

        Returns:
            A copy of the complete configuration dictionary
        """
        return copy.deepcopy(self.config)
