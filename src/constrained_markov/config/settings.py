"""Main configuration settings with YAML, JSON and TOML loading support."""

import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, Union
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ImportError:
    try:
        import tomli as tomllib  # Fallback for older Python
    except ImportError:
        tomllib = None

from .defaults import GENERATION_CONFIGS, UNSEEN_CONTEXT_OPTIONS, DefaultConfig, validate_config
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Sections of a nested config file merged into the flat settings
CONFIG_SECTIONS = ('training', 'model', 'generation', 'output', 'processing')

# Keys whose values are passed through untouched by numeric coercion
RAW_KEYS = ('constraints',)


def _convert_numeric_values(obj):
    """Convert numeric-looking strings (YAML sometimes loads them as strings)."""
    if isinstance(obj, dict):
        return {k: v if k in RAW_KEYS else _convert_numeric_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_convert_numeric_values(item) for item in obj]
    elif isinstance(obj, str):
        try:
            if '.' in obj or 'e' in obj.lower():
                return float(obj)
            else:
                return int(obj)
        except ValueError:
            return obj
    else:
        return obj


def load_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load a JSON, YAML or TOML configuration file into a flat dictionary.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to a ``.json``, ``.yml``, ``.yaml`` or ``.toml`` file

    Returns
    -------
    Dict[str, Any]
        Parsed configuration with section tables flattened

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ConfigurationError
        If the extension is unsupported or the file does not hold a mapping
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.json':
        data = json.loads(path.read_text())
    elif suffix in {'.yml', '.yaml'}:
        try:
            import yaml  # type: ignore
        except ModuleNotFoundError as exc:
            raise ModuleNotFoundError(
                "PyYAML is required for YAML config files. Install with 'pip install PyYAML'"
            ) from exc
        data = yaml.safe_load(path.read_text())
    elif suffix == '.toml':
        if tomllib is None:
            raise ImportError("tomllib not available. Install tomli for Python < 3.11")
        with open(path, 'rb') as f:
            data = tomllib.load(f)
    else:
        raise ConfigurationError(f"Unsupported config type: {path.suffix}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping, "
                                 f"got {type(data).__name__}")

    # Handle nested configuration structure, then flat keys
    settings_data: Dict[str, Any] = {}
    for section in CONFIG_SECTIONS:
        if isinstance(data.get(section), dict):
            settings_data.update(data[section])
    for key, value in data.items():
        if key not in CONFIG_SECTIONS:
            settings_data[key] = value

    return _convert_numeric_values(settings_data)


@dataclass
class Settings:
    """Main configuration settings for constrained generation.

    Can be loaded from YAML, JSON or TOML files. The keys ``training_file``,
    ``markov_order`` and ``constraints`` are the ones a minimal config needs.
    With ``hidden_model`` set, training tokens are read as ``observed:hidden``
    pairs split on ``token_separator`` and constraint lines may constrain
    both layers.
    """

    # Training
    training_file: Optional[str] = None
    markov_order: int = 1
    unseen_context: str = "reject"
    hidden_model: bool = False
    token_separator: str = ":"

    # Generation
    constraints: Any = None
    sequence_length: Optional[int] = None
    n_sequences: int = 1
    random_seed: Optional[int] = None

    # Output
    output_file: Optional[str] = None

    # Processing
    n_parallel: int = 1
    verbose: bool = False

    def __post_init__(self):
        """Validate settings after initialization."""
        if isinstance(self.markov_order, bool) or not isinstance(self.markov_order, int) \
                or self.markov_order < 1:
            raise ConfigurationError(f"markov_order must be a positive integer, got {self.markov_order!r}")
        if self.unseen_context not in UNSEEN_CONTEXT_OPTIONS:
            raise ConfigurationError(f"unseen_context must be one of {UNSEEN_CONTEXT_OPTIONS}, "
                                     f"got {self.unseen_context!r}")
        if self.sequence_length is not None and (
                isinstance(self.sequence_length, bool) or not isinstance(self.sequence_length, int)
                or self.sequence_length < 1):
            raise ConfigurationError(f"sequence_length must be a positive integer, got {self.sequence_length!r}")
        if isinstance(self.n_sequences, bool) or not isinstance(self.n_sequences, int) or self.n_sequences < 1:
            raise ConfigurationError(f"n_sequences must be a positive integer, got {self.n_sequences!r}")
        if isinstance(self.n_parallel, bool) or not isinstance(self.n_parallel, int) or self.n_parallel < 1:
            raise ConfigurationError(f"n_parallel must be a positive integer, got {self.n_parallel!r}")
        if self.random_seed is not None and (isinstance(self.random_seed, bool)
                                             or not isinstance(self.random_seed, int)
                                             or self.random_seed < 0):
            raise ConfigurationError(f"random_seed must be a non-negative integer, got {self.random_seed!r}")
        if not isinstance(self.hidden_model, bool):
            raise ConfigurationError(f"hidden_model must be true or false, got {self.hidden_model!r}")
        if not isinstance(self.token_separator, str) or len(self.token_separator) != 1:
            raise ConfigurationError(f"token_separator must be a single character, got {self.token_separator!r}")
        if self.training_file is not None:
            self.training_file = str(self.training_file)
        if self.output_file is not None:
            self.output_file = str(self.output_file)

        temp_config = DefaultConfig(
            markov_order=self.markov_order,
            unseen_context=self.unseen_context,
            sequence_length=self.sequence_length,
            n_sequences=self.n_sequences,
            n_parallel=self.n_parallel,
        )
        warnings = validate_config(temp_config)
        if warnings and self.verbose:
            for warning in warnings:
                logger.warning("Configuration warning: %s", warning)

    @classmethod
    def from_preset(cls, preset: str, **overrides) -> 'Settings':
        """Create settings from a preset configuration.

        Parameters
        ----------
        preset : str
            Preset name ('minimal', 'melody', 'lyrics')
        **overrides
            Settings fields replacing preset values

        Returns
        -------
        Settings
            Settings object with preset values
        """
        if preset not in GENERATION_CONFIGS:
            raise ConfigurationError(f"Unknown preset '{preset}'. Available: {list(GENERATION_CONFIGS.keys())}")

        config = GENERATION_CONFIGS[preset]
        values = dict(
            markov_order=config.markov_order,
            unseen_context=config.unseen_context,
            sequence_length=config.sequence_length,
            n_sequences=config.n_sequences,
            n_parallel=config.n_parallel,
        )
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        unknown = sorted(set(data) - set(cls.__dataclass_fields__))
        if unknown:
            raise ConfigurationError(f"Unknown configuration key(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'Settings':
        """Load settings from a YAML, JSON or TOML file.

        Parameters
        ----------
        config_path : Union[str, Path]
            Path to configuration file

        Returns
        -------
        Settings
            Settings object with values from the file

        Raises
        ------
        FileNotFoundError
            If the file doesn't exist
        ConfigurationError
            If the file holds unknown keys or invalid values
        """
        settings = cls.from_dict(load_config_file(config_path))
        logger.debug("Loaded settings from %s", config_path)
        return settings

    def update(self, **kwargs) -> 'Settings':
        """Create new Settings with updated values.

        ``None`` values are ignored, so parsed command-line flags that were
        not given leave the current value in place.

        Parameters
        ----------
        **kwargs
            Settings fields to update

        Returns
        -------
        Settings
            New Settings object with updated values
        """
        current_dict = asdict(self)
        current_dict.update({k: v for k, v in kwargs.items() if v is not None})
        return Settings.from_dict(current_dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Global configuration instance
_GLOBAL_CONFIG: Optional[Settings] = None

DEFAULT_CONFIG_PATHS = (
    'config.yaml',
    'config.yml',
    'constrained_markov.yaml',
    'constrained_markov.toml',
)


def find_default_config() -> Optional[Path]:
    """First existing default configuration file in the working directory."""
    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Path(path)
    return None


def get_config(config_path: Optional[Union[str, Path]] = None,
               preset: Optional[str] = None,
               reload: bool = False) -> Settings:
    """Get global configuration settings.

    Parameters
    ----------
    config_path : Optional[Union[str, Path]]
        Path to a configuration file. If None, looks for default locations.
    preset : Optional[str]
        Preset configuration name used when no file is found.
    reload : bool
        Force reload configuration even if already loaded

    Returns
    -------
    Settings
        Global configuration settings
    """
    global _GLOBAL_CONFIG

    if _GLOBAL_CONFIG is not None and not reload:
        return _GLOBAL_CONFIG

    if config_path is None:
        config_path = find_default_config()

    if config_path is not None:
        _GLOBAL_CONFIG = Settings.from_file(config_path)
    elif preset is not None:
        _GLOBAL_CONFIG = Settings.from_preset(preset)
    else:
        _GLOBAL_CONFIG = Settings()

    return _GLOBAL_CONFIG


def set_config(settings: Optional[Settings]) -> None:
    """Set global configuration settings.

    Parameters
    ----------
    settings : Optional[Settings]
        Settings object to use as global configuration, or None to reset
    """
    global _GLOBAL_CONFIG
    _GLOBAL_CONFIG = settings
