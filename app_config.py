import os
import json
import logging

logger = logging.getLogger(__name__)

CONFIG_FILE = "config/viewer_config.json"

DEFAULT_CONFIG = {
    'output_folder': 'outputs',
    'max_content_length': 100 * 1024 * 1024,  # 100MB
    'geoapify_key': '',
    'search_cache_file': 'config/search_cache.json',
    'search_min_length': 3,
    'log_level': 'INFO',
    'port': 5000,
}

# environment variable -> (config key, converter)
ENV_OVERRIDES = {
    'PORT': ('port', int),
    'GEOAPIFY_KEY': ('geoapify_key', str),
    'TIMELINE_LOG_LEVEL': ('log_level', str),
    'TIMELINE_OUTPUT_FOLDER': ('output_folder', str),
}


def load_config(config_file=CONFIG_FILE, environ=None):
    """Defaults, then the JSON config file if present, then environment overrides"""
    config = dict(DEFAULT_CONFIG)

    if config_file and os.path.exists(config_file):
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                saved = json.load(f)
            if isinstance(saved, dict):
                config.update(saved)
            else:
                logger.warning(f"Ignoring {config_file}: expected a JSON object")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config from {config_file}: {e}")

    environ = os.environ if environ is None else environ
    for env_key, (config_key, convert) in ENV_OVERRIDES.items():
        if environ.get(env_key):
            try:
                config[config_key] = convert(environ[env_key])
            except ValueError:
                logger.warning(f"Ignoring invalid {env_key}={environ[env_key]!r}")

    return config


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )
