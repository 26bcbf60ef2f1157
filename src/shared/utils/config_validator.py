"""
Configuration validation utilities.

Typed readers for environment variables. Every failure raises
ConfigurationError with the variable name in the message.
"""

import os
from typing import Any, Callable, List, Optional, TypeVar

N = TypeVar("N", int, float)

TRUE_VALUES = ("true", "yes", "on", "1")
FALSE_VALUES = ("false", "no", "off", "0")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _missing(label: str, description: Optional[str] = None) -> ConfigurationError:
    desc_msg = f" ({description})" if description else ""
    return ConfigurationError(
        f"Missing required environment variable: {label}{desc_msg}\n"
        f"Please set it in your .env file or environment."
    )


def require_env(name: str, description: Optional[str] = None) -> str:
    """
    Require an environment variable to be set.

    Args:
        name: Environment variable name
        description: Optional description of what the variable is used for

    Raises:
        ConfigurationError: If the environment variable is not set or empty
    """
    value = os.getenv(name)
    if not value:
        raise _missing(name, description)
    return value


def require_any_env(names: List[str], description: Optional[str] = None) -> str:
    """Return the first non-empty variable among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    raise _missing(f"one of {', '.join(names)}", description)


def _bounded_env(
    name: str,
    cast: Callable[[str], N],
    kind: str,
    default: Optional[N],
    min_value: Optional[N],
    max_value: Optional[N],
) -> N:
    raw = os.getenv(name)
    if not raw:
        if default is None:
            raise _missing(name)
        return default

    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {kind} value for {name}: '{raw}'")

    if min_value is not None and value < min_value:
        raise ConfigurationError(f"Value for {name} ({value}) is below minimum allowed value ({min_value})")
    if max_value is not None and value > max_value:
        raise ConfigurationError(f"Value for {name} ({value}) exceeds maximum allowed value ({max_value})")
    return value


def validate_int_env(name: str, default: Optional[int] = None, min_value: Optional[int] = None,
                     max_value: Optional[int] = None) -> int:
    """
    Read an integer environment variable within optional bounds.

    Raises:
        ConfigurationError: If unset without a default, not an integer, or out of range
    """
    return _bounded_env(name, int, "integer", default, min_value, max_value)


def validate_float_env(name: str, default: Optional[float] = None, min_value: Optional[float] = None,
                       max_value: Optional[float] = None) -> float:
    """Read a numeric environment variable within optional bounds."""
    return _bounded_env(name, float, "numeric", default, min_value, max_value)


def validate_bool_env(name: str, default: bool = False) -> bool:
    """
    Read a boolean environment variable.

    Accepts: true, false, yes, no, on, off, 1, 0 (case-insensitive)
    """
    raw = os.getenv(name)
    if not raw:
        return default

    lowered = raw.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"Invalid boolean value for {name}: '{raw}'\n"
        f"Expected one of: {', '.join(TRUE_VALUES + FALSE_VALUES)}"
    )


def validate_choice_env(name: str, choices: List[str], default: Optional[str] = None) -> str:
    """Read a case-insensitive choice; the result is lower-cased."""
    raw = os.getenv(name)
    if not raw:
        if default is None:
            raise _missing(name)
        return default

    if raw.lower() not in {choice.lower() for choice in choices}:
        raise ConfigurationError(f"Invalid value for {name}: '{raw}'\nAllowed values: {', '.join(choices)}")
    return raw.lower()


def check_config_override(override: Optional[Any], env_name: str,
                          required: bool = True) -> Optional[Any]:
    """
    Return a programmatic override if given, otherwise the environment value.

    Raises:
        ConfigurationError: If required and neither override nor env is set
    """
    if override is not None:
        return override

    value = os.getenv(env_name)
    if required and not value:
        raise ConfigurationError(
            f"Missing required configuration: {env_name}\n"
            f"Provide via environment variable or programmatic override."
        )
    return value
