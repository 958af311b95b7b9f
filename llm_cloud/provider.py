"""
provider.py – External assistant SDK client. Build and return a configured OpenAI client
----------------------------------------------------------------------------------------
In the overall data-flow this file sits at the infrastructure layer.
It is the single place where the OpenAI SDK client is constructed.

Validation happens at client creation time (not import time) so that the
module stays importable for tests and for the mock provider, while a
missing key still fails loudly as soon as the real client is requested.
"""

import logging
import os
from typing import Dict, List, Optional, Tuple

from openai import OpenAI
from config import CONFIG

logger = logging.getLogger(__name__)


def require_any_env(var_names: List[str]) -> Tuple[str, str]:
    """
    Check that at least one of the specified environment variables is present and non-empty.

    The function never logs or returns anything but the name of the variable that was
    found plus its value for the caller, so secrets stay out of log files.

    Args:
        var_names (List[str]): Environment variable names to check, in order of preference.

    Returns:
        Tuple[str, str]: (selected_var_name, value).

    Raises:
        RuntimeError: If none of the variables are present or all are empty.
    """
    for var_name in var_names:
        value = os.getenv(var_name, "")
        if value:
            return var_name, value

    var_list = ", ".join(var_names)
    raise RuntimeError(
        f"Missing required environment variable. Set one of: {var_list}"
    )


def validate_env_for_provider(config: Dict) -> None:
    """
    Validate that required environment variables are present for the configured provider.

    Args:
        config (Dict): The configuration dictionary, expected to contain an 'assistant'
            section with a 'provider' key.

    Raises:
        ValueError: If the provider does not use the OpenAI SDK.
        RuntimeError: If OPENAI_API_KEY is missing or empty.
    """
    assistant_config = config.get("assistant", {})
    provider = str(assistant_config.get("provider", "openai")).strip().lower()

    if provider != "openai":
        raise ValueError(f"Provider {provider!r} does not use the OpenAI SDK client")

    selected_var, _ = require_any_env(["OPENAI_API_KEY"])
    logger.info("Using environment variable: %s", selected_var)


def get_client(config: Optional[Dict] = None) -> OpenAI:
    """
    Build and return a configured OpenAI client for the Assistants API.

    Args:
        config (Optional[Dict]): Configuration with an "assistant" section. Defaults to the global CONFIG.

    Returns:
        OpenAI: A ready-to-use client configured from the "assistant" section.

    Raises:
        RuntimeError: If OPENAI_API_KEY is missing.
        ValueError: If the configured provider is not "openai".
    """
    config = config if config is not None else CONFIG
    validate_env_for_provider(config)

    assistant_config = config.get("assistant", {})
    _, api_key = require_any_env(["OPENAI_API_KEY"])
    base_url = assistant_config.get("base_url") or "https://api.openai.com/v1"
    logger.info("Assistant provider selected: openai | base_url=%s", base_url)

    return OpenAI(
        base_url=base_url,
        api_key=api_key,
        timeout=assistant_config.get("timeout", 30),  # seconds – explicit is better than implicit
        # The run driver owns retries at the turn level; keep SDK retries short.
        max_retries=1,
    )
