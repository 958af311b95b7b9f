import os
import json
from pathlib import Path
from dotenv import load_dotenv
from .logging_config import setup_app_logging
import logging

# Load environment variables from .env file
load_dotenv()

# Get the config directory path (where this file is located)
CONFIG_DIR = Path(__file__).parent

PROJECT_ROOT = CONFIG_DIR.parent

# Load configuration from config.json
config_path = CONFIG_DIR / 'config.json'
with open(config_path, 'r', encoding='utf-8') as f:
    CONFIG = json.load(f)

# CONFIG is the in-memory runtime representation of config.json; derived values are added below.
CONFIG['project_root'] = str(PROJECT_ROOT) # Store as string for easier use

# Environment variables (secrets only; everything else lives in config.json)
ENV = {
    'OPENAI_API_KEY': os.getenv('OPENAI_API_KEY'),
    'OPENAI_ASSISTANT_ID': os.getenv('OPENAI_ASSISTANT_ID'),
}

def validate_config():
    """Validate that all required configuration sections are present.

    Secrets are not checked here: the OpenAI key is only required when the OpenAI
    assistant client is actually built (see `llm_cloud.provider`), so the mock provider
    and the test-suite can import this package without credentials.
    """
    required_sections = ['assistant', 'classifier', 'storage']
    for section in required_sections:
        if section not in CONFIG:
            raise ValueError(f"Missing configuration section: {section}")

    max_tags = CONFIG['classifier'].get('max_tags', 5)
    if not isinstance(max_tags, int) or max_tags < 1:
        raise ValueError(f"classifier.max_tags must be a positive integer, got {max_tags!r}")

    strategy = str(CONFIG['classifier'].get('strategy', 'stateful')).lower()
    if strategy not in ('stateful', 'disposable'):
        raise ValueError(f"Unsupported classifier strategy: {strategy}")

# Validate configuration on module import
validate_config()

# --- Helper function to get config value from CONFIG or environment variable ---
def get_config_value(json_keys: list, env_var_name: str, default_value: any = None):
    """
    Retrieves a configuration value.
    Priority:
    1. Environment variable (if env_var_name is provided and variable is set).
    2. Value from CONFIG dictionary (using json_keys).
    3. default_value.
    """
    # Try environment variable first
    if env_var_name:
        env_value = os.getenv(env_var_name)
        if env_value is not None:
            # Attempt to match type of default_value if it's bool, int or float
            if isinstance(default_value, bool):
                if env_value.lower() == 'true': return True
                if env_value.lower() == 'false': return False
            elif isinstance(default_value, int):
                try:
                    return int(env_value)
                except ValueError:
                    pass # Fall through to JSON or default if not a valid int
            elif isinstance(default_value, float):
                try:
                    return float(env_value)
                except ValueError:
                    pass
            else:
                return env_value # Return as string if no type match
            # Unparseable typed env value: ignore it and fall through

    # Try from CONFIG dictionary (loaded from JSON)
    current_level = CONFIG
    try:
        for key in json_keys:
            current_level = current_level[key]
        if isinstance(default_value, bool) and isinstance(current_level, bool):
            return current_level
        if isinstance(default_value, float) and isinstance(current_level, (int, float)) and not isinstance(current_level, bool):
            return float(current_level)
        if isinstance(current_level, (str, int, bool, float, list, dict)): # Check if it's a typical JSON type
             return current_level
    except (KeyError, TypeError):
        pass # Key not found or CONFIG structure not as expected, fall through to default

    # Fallback to default value
    return default_value

# --- Assistant / classifier / storage settings ---
# Environment variables take precedence over config.json, so deployments can tune
# the poll loop or switch providers without editing the file.
CONFIG['assistant'] = {
    'provider': get_config_value(['assistant', 'provider'], 'ASSISTANT_PROVIDER', 'openai'),
    'assistant_id': ENV['OPENAI_ASSISTANT_ID'] or get_config_value(['assistant', 'assistant_id'], None, ''),
    'base_url': get_config_value(['assistant', 'base_url'], 'OPENAI_BASE_URL', 'https://api.openai.com/v1'),
    'timeout': get_config_value(['assistant', 'timeout'], 'ASSISTANT_TIMEOUT', 30.0),
}

CONFIG['classifier'] = {
    'max_tags': get_config_value(['classifier', 'max_tags'], 'MAX_TAGS', 5),
    'strategy': get_config_value(['classifier', 'strategy'], 'CLASSIFIER_STRATEGY', 'stateful'),
    'poll_interval_s': get_config_value(['classifier', 'poll_interval_s'], 'POLL_INTERVAL_S', 0.5),
    'max_wait_s': get_config_value(['classifier', 'max_wait_s'], 'MAX_WAIT_S', 60.0),
    'fallback_summary': get_config_value(['classifier', 'fallback_summary'], 'FALLBACK_SUMMARY', 'apology'),
}

sqlite_path = Path(get_config_value(['storage', 'sqlite_path'], 'SQLITE_PATH', 'user_data/memo_classifier.db'))
if not sqlite_path.is_absolute():
    sqlite_path = PROJECT_ROOT / sqlite_path

CONFIG['storage'] = {
    'backend': get_config_value(['storage', 'backend'], 'STORAGE_BACKEND', 'sqlite'),
    'sqlite_path': str(sqlite_path),
}

CONFIG['pruning'] = {
    'enabled': get_config_value(['pruning', 'enabled'], 'PRUNING_ENABLED', True),
    'max_idle_days': get_config_value(['pruning', 'max_idle_days'], 'PRUNING_MAX_IDLE_DAYS', 30),
    'interval_hours': get_config_value(['pruning', 'interval_hours'], 'PRUNING_INTERVAL_HOURS', 24),
}

CONFIG['dispatcher'] = {
    'max_workers': get_config_value(['dispatcher', 'max_workers'], 'DISPATCHER_MAX_WORKERS', 8),
    'per_user_ordering': get_config_value(['dispatcher', 'per_user_ordering'], 'DISPATCHER_PER_USER_ORDERING', True),
}

# --- Logging Configuration ---
# Defaults for logging config are also in logging_config.py's setup_app_logging function's signature
# or can be specified in config.json. Environment variables take precedence.
CONFIG['logging'] = {
    'level': get_config_value(['logging', 'level'], 'LOG_LEVEL', 'INFO'),
    'file_path': get_config_value(['logging', 'file_path'], 'LOG_FILE_PATH', 'logs/memo_classifier.log'),
    'max_bytes': get_config_value(['logging', 'max_bytes'], 'LOG_MAX_BYTES', 5*1024*1024), # 5MB
    'backup_count': get_config_value(['logging', 'backup_count'], 'LOG_BACKUP_COUNT', 3),
    'date_format': get_config_value(
        ['logging', 'date_format'],
        'LOG_DATE_FORMAT',
        '%Y-%m-%d %H:%M:%S'
    )
}

# --- Setup Application Logging ---
setup_app_logging(config=CONFIG.get('logging'))

config_init_logger = logging.getLogger(__name__) # Get logger for this module AFTER logging is setup
config_init_logger.info(
    "Configuration loaded: provider=%s strategy=%s storage=%s",
    CONFIG['assistant']['provider'],
    CONFIG['classifier']['strategy'],
    CONFIG['storage']['backend'],
)
