"""
Central configuration for donor analysis runs.

History limits, prompt budgets and concurrency come from config/analysis.yaml.
A missing or unreadable file falls back to the defaults below.

Environment variables:
  - DONOR_JOURNEY_CONFIG: alternate path to the analysis YAML file
  - DONOR_JOURNEY_LLM_MODEL: force a model for every LLM task
  - DONOR_DB_HOST / DONOR_DB_PORT / DONOR_DB_USER / DONOR_DB_PASSWORD / DONOR_DB_DATABASE:
    database connection (see donor_journey.db.client)
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Settings for one analysis run.

    Attributes:
        communication_thread_limit: Threads fetched per donor (newest first)
        messages_per_thread: Messages fetched per thread
        donation_limit: Donations fetched per donor (newest first)
        prompt_max_donations: Donations rendered into a prompt
        prompt_max_threads: Threads rendered into a prompt
        prompt_messages_per_thread: Messages rendered per thread
        prompt_max_message_chars: Truncate each rendered message to this length
        max_concurrency: Donors analyzed at the same time
        model: Optional model name overriding task-based selection
    """

    communication_thread_limit: int = 20
    messages_per_thread: int = 25
    donation_limit: int = 50

    prompt_max_donations: int = 5
    prompt_max_threads: int = 5
    prompt_messages_per_thread: int = 2
    prompt_max_message_chars: int = 500

    max_concurrency: int = 5
    model: Optional[str] = None


def get_project_root() -> Path:
    return Path(__file__).parent.parent


def get_config_path() -> Path:
    """Path to the analysis YAML, honoring DONOR_JOURNEY_CONFIG."""
    env_path = os.environ.get("DONOR_JOURNEY_CONFIG")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return get_project_root() / "config" / "analysis.yaml"


def load_analysis_config(config_path: Optional[Path] = None) -> AnalysisConfig:
    """
    Load analysis settings from YAML.

    Unknown keys are ignored. ``DONOR_JOURNEY_LLM_MODEL`` overrides ``model``.

    Args:
        config_path: Optional explicit path (defaults to get_config_path())

    Returns:
        AnalysisConfig
    """
    if config_path is None:
        config_path = get_config_path()

    values: dict = {}
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        section = raw.get("analysis", raw)
        known = {f.name for f in fields(AnalysisConfig)}
        values = {k: v for k, v in section.items() if k in known}
        logger.debug(f"Loaded analysis config from {config_path}: {values}")
    except FileNotFoundError:
        logger.warning(f"Analysis config not found at {config_path}, using defaults")
    except (yaml.YAMLError, AttributeError) as e:
        logger.warning(f"Failed to load analysis config from {config_path}, using defaults: {e}")

    config = AnalysisConfig(**values)

    model_override = os.environ.get("DONOR_JOURNEY_LLM_MODEL")
    if model_override:
        config.model = model_override

    if config.max_concurrency < 1:
        logger.warning(f"max_concurrency={config.max_concurrency} is invalid, using 1")
        config.max_concurrency = 1

    return config
