"""
Configuration management for the contact results service
Handles notification credentials and settings with defaults and user overrides
"""
import os
import json
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

class Config:
    """Manages credentials and configuration settings"""

    # Default credentials (can be overridden)
    DEFAULT_KEYS = {
        'telegram_bot_token': None,
        'telegram_chat_id': None,
    }

    # Default settings
    DEFAULT_SETTINGS = {
        'database_path': 'parsing_results.db',
        'output_dir': 'output',
        'attachment_limit_bytes': 25 * 1024 * 1024,  # Gmail limit
        'notify_console': True,
        'notify_telegram': False,
        'telegram_timeout': 10,
        'log_level': 'INFO',
        'log_file': 'contact_results.log',
        'recent_results_limit': 50,
        'search_limit': 50,
    }

    def __init__(self, config_file: str = 'config.json'):
        """Initialize configuration with optional config file"""
        self.config_file = Path(config_file)
        self.api_keys = self.DEFAULT_KEYS.copy()
        self.settings = self.DEFAULT_SETTINGS.copy()

        # Load from environment variables
        self._load_from_env()

        # Load from config file if exists
        if self.config_file.exists():
            self._load_from_file()

    def _load_from_env(self):
        """Load credentials and overrides from environment variables"""
        env_mapping = {
            'TELEGRAM_BOT_TOKEN': 'telegram_bot_token',
            'TELEGRAM_CHAT_ID': 'telegram_chat_id',
        }

        for env_var, key_name in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                self.api_keys[key_name] = value

        database_path = os.getenv('CONTACT_RESULTS_DB')
        if database_path:
            self.settings['database_path'] = database_path

        log_level = os.getenv('LOG_LEVEL')
        if log_level:
            self.settings['log_level'] = log_level.upper()

    def _load_from_file(self):
        """Load configuration from JSON file"""
        try:
            with open(self.config_file, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load config file {self.config_file}: {e}")
            return

        # Update credentials
        if 'api_keys' in data:
            for key, value in data['api_keys'].items():
                if value:  # Only update if value is provided
                    self.api_keys[key] = value

        # Update settings
        if 'settings' in data:
            self.settings.update(data['settings'])

    def save_to_file(self):
        """Save current configuration to file"""
        data = {
            'api_keys': self.api_keys,
            'settings': self.settings
        }

        with open(self.config_file, 'w') as f:
            json.dump(data, f, indent=2)

    def create_sample_config(self, path: str = 'config.sample.json') -> str:
        """Create a sample configuration file"""
        sample_data = {
            'api_keys': {
                'telegram_bot_token': 'your-telegram-bot-token-here',
                'telegram_chat_id': 'your-telegram-chat-id-here',
            },
            'settings': self.DEFAULT_SETTINGS
        }

        with open(path, 'w') as f:
            json.dump(sample_data, f, indent=2)

        logger.info(f"Created {path} - copy to config.json and fill in your credentials")
        return path

    def get_api_key(self, service: str) -> Optional[str]:
        """Get credential for a specific service"""
        return self.api_keys.get(service)

    def set_api_key(self, service: str, key: str):
        """Set credential for a specific service"""
        self.api_keys[service] = key

    def get_setting(self, setting: str):
        """Get a specific setting value"""
        return self.settings.get(setting)

    def set_setting(self, setting: str, value):
        """Set a specific setting value"""
        self.settings[setting] = value

    @property
    def database_path(self) -> str:
        return self.settings['database_path']

    @property
    def output_dir(self) -> str:
        return self.settings['output_dir']

    @property
    def attachment_limit(self) -> int:
        return int(self.settings['attachment_limit_bytes'])

    def telegram_configured(self) -> bool:
        """Both the bot token and the chat id are needed to notify"""
        return bool(self.api_keys.get('telegram_bot_token') and self.api_keys.get('telegram_chat_id'))

    def validate_keys(self) -> Dict[str, bool]:
        """Check which credentials are configured"""
        return {
            service: bool(key) for service, key in self.api_keys.items()
        }
