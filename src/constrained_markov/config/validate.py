"""Environment validation for constrained_markov dependencies."""

import sys
from typing import Dict
from packaging import version


def check_environment(min_numpy: str = "1.22", min_yaml: str = "5.1") -> None:
    """Check that environment meets minimum dependency requirements.

    Parameters
    ----------
    min_numpy : str, default="1.22"
        Minimum required NumPy version
    min_yaml : str, default="5.1"
        Minimum required PyYAML version

    Raises
    ------
    RuntimeError
        If any dependency requirements are not met

    Examples
    --------
    >>> check_environment()  # Uses default minimums
    >>> check_environment(min_numpy="1.21")
    """
    errors = []

    if sys.version_info < (3, 8):
        errors.append(f"Python 3.8+ required, found {sys.version_info.major}.{sys.version_info.minor}")

    try:
        import numpy as np
        numpy_version = np.__version__
        if version.parse(numpy_version) < version.parse(min_numpy):
            errors.append(f"NumPy {min_numpy}+ required, found {numpy_version}")
    except ImportError:
        errors.append("NumPy not installed - required for mass tables and random streams")

    try:
        import yaml
        yaml_version = yaml.__version__
        if version.parse(yaml_version) < version.parse(min_yaml):
            errors.append(f"PyYAML {min_yaml}+ required, found {yaml_version}")
    except ImportError:
        errors.append("PyYAML not installed - required for YAML configuration files")

    if errors:
        error_msg = "Environment validation failed:\n" + "\n".join(f"  - {err}" for err in errors)
        error_msg += "\n\nTo install required dependencies:\n  pip install numpy PyYAML packaging"
        raise RuntimeError(error_msg)


def get_dependency_versions() -> Dict[str, str]:
    """Get versions of all relevant dependencies.

    Returns
    -------
    dict
        Dictionary mapping package names to version strings
    """
    versions = {
        'python': f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    }

    try:
        import numpy as np
        versions['numpy'] = np.__version__
    except ImportError:
        versions['numpy'] = 'not installed'

    try:
        import yaml
        versions['pyyaml'] = yaml.__version__
    except ImportError:
        versions['pyyaml'] = 'not installed'

    try:
        import packaging
        versions['packaging'] = packaging.__version__
    except ImportError:
        versions['packaging'] = 'not installed'

    try:
        import pronouncing
        versions['pronouncing'] = getattr(pronouncing, '__version__', 'installed')
    except ImportError:
        versions['pronouncing'] = 'not installed'

    # TOML support
    try:
        import tomllib  # noqa: F401
        versions['tomllib'] = 'built-in (3.11+)'
    except ImportError:
        try:
            import tomli
            versions['tomli'] = getattr(tomli, '__version__', 'installed')
        except ImportError:
            versions['tomli'] = 'not installed'

    return versions


def print_environment_info() -> None:
    """Print environment information."""
    versions = get_dependency_versions()

    print("constrained_markov - Environment Information")
    print("=" * 44)

    print("\nCore Dependencies:")
    for pkg in ['python', 'numpy', 'pronouncing']:
        print(f"  {pkg:12}: {versions[pkg]}")

    print("\nConfiguration:")
    for pkg in ['pyyaml', 'packaging', 'tomllib', 'tomli']:
        if pkg in versions:
            print(f"  {pkg:12}: {versions[pkg]}")

    print("\nSystem Information:")
    print(f"  Platform     : {sys.platform}")
