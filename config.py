"""
Configuration module for the Blueprint Meal Planner
===================================================

This module centralizes all configuration for the meal-plan generation
pipeline:
- OpenRouter API (cloud LLM that drafts each day of the plan)
- Generation discipline (attempt ceiling, backoff, temperature schedule)
- Logging (console + rotating file under data/logs)

CONFIGURATION:
- data/config.yaml: User-specific settings (chat model, token caps, timeouts)
- data/secrets.yaml: Credentials (openrouter API key)

Usage:
    from config import CHAT_MODEL, GENERATION_CONFIG, get_config_value

SETUP:
    1. config.yaml.example is copied to data/config.yaml on first import
    2. Edit data/config.yaml to pick a chat model
    3. Set OPENROUTER_API_KEY (env var or data/secrets.yaml)
"""

import os
import logging
import logging.handlers
import shutil
from pathlib import Path
from typing import Optional, Dict, Any

import yaml


# =============================================================================
# USER CONFIGURATION LOADING
# =============================================================================

# Project root directory (where this file lives)
PROJECT_ROOT = Path(__file__).parent

# Data directory - the canonical location for all runtime data
DATA_DIR = PROJECT_ROOT / "data"

CONFIG_PATH = DATA_DIR / "config.yaml"
SECRETS_PATH = DATA_DIR / "secrets.yaml"
EXAMPLE_CONFIG_PATH = PROJECT_ROOT / "config.yaml.example"

REQUIRED_SECTIONS = ["llm", "generation"]
REQUIRED_FIELDS = [
    ("llm", "chat_model"),
    ("llm", "max_tokens"),
    ("llm", "revision_max_tokens"),
]


def _config_error(title: str, *lines: str) -> str:
    body = "\n".join(lines)
    return f"\n{'='*60}\nERROR: {title}\n{'='*60}\n{body}\n{'='*60}"


def _load_user_config(config_path: Path = CONFIG_PATH) -> Dict[str, Any]:
    """
    Load user configuration from data/config.yaml.

    A missing config is created from config.yaml.example so a fresh checkout
    boots; anything else that is wrong fails immediately.

    Returns:
        Dict containing user configuration

    Raises:
        FileNotFoundError: If neither config.yaml nor the example exist
        ValueError: If YAML is invalid or missing required fields
    """
    if not config_path.exists():
        if EXAMPLE_CONFIG_PATH.exists():
            config_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(EXAMPLE_CONFIG_PATH, config_path)
            print(f"[config] Created {config_path} from config.yaml.example")
        else:
            raise FileNotFoundError(_config_error(
                "config.yaml not found",
                f"Expected location: {config_path}",
                f"Also missing: {EXAMPLE_CONFIG_PATH}",
            ))

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(_config_error(
            "config.yaml has invalid YAML syntax",
            f"File: {config_path}",
            f"Error: {e}",
        )) from e

    if config is None:
        raise ValueError(_config_error(
            "config.yaml is empty",
            f"File: {config_path}",
            "Please copy config.yaml.example and customize it.",
        ))

    missing_sections = [s for s in REQUIRED_SECTIONS if s not in config]
    if missing_sections:
        raise ValueError(_config_error(
            "config.yaml missing required sections",
            f"Missing: {missing_sections}",
            f"Required sections: {REQUIRED_SECTIONS}",
        ))

    missing_fields = [
        f"{section}.{key}" for section, key in REQUIRED_FIELDS
        if key not in (config.get(section) or {})
    ]
    if missing_fields:
        raise ValueError(_config_error(
            "config.yaml missing required fields",
            f"Missing: {missing_fields}",
        ))

    return config


# Load user config at module initialization (FAIL FAST)
USER_CONFIG = _load_user_config()

# Use standard logging for config.py (foundational module)
logger = logging.getLogger(__name__)


def reload_user_config() -> Dict[str, Any]:
    """
    Reload data/config.yaml into the in-memory USER_CONFIG.

    Modules that imported individual constants (e.g., CHAT_MODEL) keep their
    old values; read GENERATION_CONFIG / USER_CONFIG at runtime for knobs.

    Returns:
        dict: The reloaded USER_CONFIG
    """
    global USER_CONFIG, CHAT_MODEL, LLM_TIMEOUT

    USER_CONFIG = _load_user_config()
    CHAT_MODEL = USER_CONFIG["llm"]["chat_model"]
    LLM_TIMEOUT = USER_CONFIG["llm"].get("request_timeout_seconds", 120)
    GENERATION_CONFIG.update(_build_generation_config(USER_CONFIG))

    logger.info("🔄 User config reloaded from disk")
    return USER_CONFIG


# =============================================================================
# SECRETS
# =============================================================================
"""
Credential storage in data/secrets.yaml.
Environment variables take priority over file-based secrets.
"""


def load_secrets() -> Dict[str, Any]:
    """
    Load secrets from data/secrets.yaml.

    Returns:
        dict with key 'openrouter_api_key' (may be None).
        Returns empty dict if the file doesn't exist or can't be read.
    """
    if not SECRETS_PATH.exists():
        return {}

    try:
        with open(SECRETS_PATH, 'r') as f:
            data = yaml.safe_load(f) or {}
        return {
            'openrouter_api_key': (data.get('openrouter') or {}).get('api_key'),
        }
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"⚠️ Failed to load secrets from {SECRETS_PATH}: {e}")
        return {}


# =============================================================================
# CHAT LLM CONFIGURATION
# =============================================================================
"""
OpenRouter provides the chat model that drafts and revises meal plans,
through its OpenAI-compatible chat completions endpoint.
"""

CHAT_API_URL = "https://openrouter.ai/api/v1"
CHAT_MODEL = USER_CONFIG["llm"]["chat_model"]
LLM_TIMEOUT = USER_CONFIG["llm"].get("request_timeout_seconds", 120)


def load_chat_api_key() -> Optional[str]:
    """
    Load OpenRouter API key from environment variable or secrets file.

    Priority order:
    1. Environment variable OPENROUTER_API_KEY
    2. File: data/secrets.yaml

    Returns:
        str: The API key if found, None otherwise
    """
    env_key = os.getenv("OPENROUTER_API_KEY", "").strip()
    if env_key:
        logger.debug("🔑 Using OPENROUTER_API_KEY from env var")
        return env_key

    file_key = load_secrets().get('openrouter_api_key')
    if file_key:
        logger.debug(f"🔑 Using OPENROUTER_API_KEY from {SECRETS_PATH}")
        return file_key

    logger.warning("⚠️ No OPENROUTER_API_KEY found in env var or data/secrets.yaml")
    return None


# =============================================================================
# GENERATION CONFIGURATION
# =============================================================================

def _build_generation_config(user_config: Dict[str, Any]) -> Dict[str, Any]:
    llm = user_config.get("llm") or {}
    generation = user_config.get("generation") or {}
    return {
        "max_attempts": generation.get("max_attempts", 3),
        "backoff_base_ms": generation.get("backoff_base_ms", 1000),
        "backoff_cap_ms": generation.get("backoff_cap_ms", 5000),
        "temperature_start": generation.get("temperature_start", 0.7),
        "temperature_step": generation.get("temperature_step", 0.2),
        "temperature_floor": generation.get("temperature_floor", 0.3),
        "full_system_prompt_days": generation.get("full_system_prompt_days", 2),
        "orchestrator_corrective_retries": generation.get("orchestrator_corrective_retries", 1),
        "max_tokens": llm.get("max_tokens", 4000),
        "revision_max_tokens": llm.get("revision_max_tokens", 2000),
    }


GENERATION_CONFIG = _build_generation_config(USER_CONFIG)


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": (USER_CONFIG.get("logging") or {}).get("console_level", "INFO"),
            "formatter": "standard",
            "stream": "ext://sys.stdout"
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(DATA_DIR / "logs" / "meal_planner.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }
    },
    "root": {
        "level": "DEBUG",
        "handlers": ["console", "file"]
    }
}


def get_config_value(section: str, key: str, default=None):
    """
    Get a user configuration value by section and key.

    Args:
        section: Configuration section name (e.g. "llm")
        key: Configuration key name
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = USER_CONFIG.get(section)
    if not isinstance(section_config, dict):
        return default
    return section_config.get(key, default)


if __name__ == "__main__":
    print("Blueprint Meal Planner configuration")
    print(f"  Config:      {CONFIG_PATH}")
    print(f"  Chat model:  {CHAT_MODEL}")
    print(f"  API URL:     {CHAT_API_URL}")
    print(f"  API key:     {'configured' if load_chat_api_key() else 'missing'}")
    for key, value in GENERATION_CONFIG.items():
        print(f"  {key}: {value}")
