"""Configuration management for constrained_markov.

Provides settings loading, presets and random source management for
reproducible generation.
"""

from .settings import get_config, set_config, Settings, load_config_file
from .random_state import (make_random_source, spawn_random_sources,
                           create_deterministic_seed, get_environment_seed, resolve_seed)
from .defaults import GENERATION_CONFIGS, UNSEEN_CONTEXT_OPTIONS, DefaultConfig, validate_config

__all__ = [
    'get_config',
    'set_config',
    'Settings',
    'load_config_file',
    'make_random_source',
    'spawn_random_sources',
    'create_deterministic_seed',
    'get_environment_seed',
    'resolve_seed',
    'GENERATION_CONFIGS',
    'UNSEEN_CONTEXT_OPTIONS',
    'DefaultConfig',
    'validate_config',
]
