# =============================================================================
# Configuration Loading
# =============================================================================

import os
import re
import time
import tomllib
from pathlib import Path

import platformdirs
from loguru import logger

from .errors import Error, ErrorType, Result
from .logging_config import APP_NAME

CONFIG_ENV_VAR = "TMUX_LAYOUT_CONFIG"
COMMAND_ENV_VAR = "TMUX_LAYOUT_COMMAND"

# Default configuration - safe values that work without user config
DEFAULT_CONFIG = {
    "tmux": {
        "command": None,    # None = use the project's tmux_command, then "tmux"
    },
    "document": {
        "format": "yaml",   # Serialization used for frozen projects
    },
    "freeze": {
        # Foreground commands that mean "idle shell" - not recorded on freeze
        "shell_commands": ["bash", "zsh", "sh", "fish", "dash", "ksh", "tcsh", "csh", "nu"],
    },
    "logging": {
        "level": "INFO",
    },
}

SUPPORTED_FORMATS = ("yaml", "json")

# loguru built-in levels accepted by logging.level (case-insensitive)
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


def config_path() -> Path:
    """
    Resolve the settings file location.

    TMUX_LAYOUT_CONFIG wins; otherwise the per-user config directory
    (~/.config/tmux-layout/config.toml on Linux).
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_config_dir(appname=APP_NAME)) / "config.toml"


def extract_toml_error_context(error: tomllib.TOMLDecodeError, file_path: Path) -> dict:
    """
    Extract line context from TOML parse error.

    Args:
        error: The TOMLDecodeError exception
        file_path: Path to the TOML file

    Returns:
        Dict with line_number, line_content, and formatted_message
    """
    error_str = str(error)
    line_number = None
    line_content = None

    # Common formats: "line 15", "at line 15", "(line 15)"
    line_match = re.search(r'line\s+(\d+)', error_str, re.IGNORECASE)
    if line_match:
        line_number = int(line_match.group(1))

    if line_number and file_path.exists():
        try:
            lines = file_path.read_text().splitlines()
            if 0 < line_number <= len(lines):
                line_content = lines[line_number - 1].rstrip()
        except OSError:
            line_content = None

    if line_number:
        formatted = f"Error on line {line_number}"
        if line_content:
            display_line = line_content[:50] + "..." if len(line_content) > 50 else line_content
            formatted += f": {display_line}"
        formatted += f"\n\nDetails: {error_str}"
    else:
        formatted = f"TOML parse error: {error_str}"

    return {
        "line_number": line_number,
        "line_content": line_content,
        "formatted_message": formatted,
        "raw_error": error_str
    }


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dictionary."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def apply_environment(config: dict, environ: dict | None = None) -> dict:
    """Overlay environment overrides (TMUX_LAYOUT_COMMAND) on a config."""
    environ = os.environ if environ is None else environ
    command = environ.get(COMMAND_ENV_VAR)
    if command:
        return deep_merge(config, {"tmux": {"command": command}})
    return config


def validate_config(config: dict, config_path: Path) -> Result[dict]:
    """Check the few settings whose type the compiler relies on."""
    for section in DEFAULT_CONFIG:
        if not isinstance(config.get(section), dict):
            return Result.err(Error(
                error_type=ErrorType.VALIDATION_ERROR,
                message=f"[{section}] must be a table, got {type(config.get(section)).__name__}",
                context={"config_path": str(config_path), "section": section}
            ))

    doc_format = config["document"]["format"]
    if doc_format not in SUPPORTED_FORMATS:
        return Result.err(Error(
            error_type=ErrorType.VALIDATION_ERROR,
            message=f"document.format must be one of {', '.join(SUPPORTED_FORMATS)}, got {doc_format!r}",
            context={"config_path": str(config_path)}
        ))

    command = config["tmux"].get("command")
    if command is not None and (not isinstance(command, str) or not command.strip()):
        return Result.err(Error(
            error_type=ErrorType.VALIDATION_ERROR,
            message="tmux.command cannot be empty",
            context={"config_path": str(config_path)}
        ))

    shells = config["freeze"]["shell_commands"]
    if not isinstance(shells, list) or not all(isinstance(s, str) for s in shells):
        return Result.err(Error(
            error_type=ErrorType.VALIDATION_ERROR,
            message="freeze.shell_commands must be a list of strings",
            context={"config_path": str(config_path)}
        ))

    level = config["logging"]["level"]
    if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
        return Result.err(Error(
            error_type=ErrorType.VALIDATION_ERROR,
            message=f"logging.level must be one of {', '.join(LOG_LEVELS)}, got {level!r}",
            context={"config_path": str(config_path)}
        ))

    return Result.ok(config)


def load_config_from_path(config_path: Path) -> Result[dict]:
    """
    Load settings from specified TOML file with defaults fallback.

    Args:
        config_path: Path to the settings TOML file

    Returns:
        Result[dict]: Ok with merged config, or Err with error details
    """
    start_time = time.perf_counter()
    logger.debug(
        "Loading config from path",
        operation="load_config_from_path",
        status="started",
        config_path=str(config_path)
    )

    if not config_path.exists():
        logger.error(
            "Config file not found",
            operation="load_config_from_path",
            status="failed",
            config_path=str(config_path)
        )
        return Result.err(Error(
            error_type=ErrorType.FILE_NOT_FOUND,
            message=f"Config file not found: {config_path}",
            context={"config_path": str(config_path)}
        ))

    try:
        with open(config_path, "rb") as f:
            user_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        error_context = extract_toml_error_context(e, config_path)
        logger.error(
            "Invalid TOML syntax in configuration file",
            operation="load_config_from_path",
            status="failed",
            file=str(config_path),
            line_number=error_context["line_number"],
            line_content=error_context["line_content"],
            error=error_context["formatted_message"]
        )
        return Result.err(Error(
            error_type=ErrorType.PARSE_ERROR,
            message=error_context["formatted_message"],
            context={"config_path": str(config_path), "line_number": error_context["line_number"]},
            original_exception=e
        ))
    except PermissionError as e:
        logger.error(
            "Config file is not readable",
            operation="load_config_from_path",
            status="failed",
            config_path=str(config_path),
            error=str(e)
        )
        return Result.err(Error(
            error_type=ErrorType.PERMISSION_ERROR,
            message=f"Config file is not readable: {config_path}",
            context={"config_path": str(config_path)},
            original_exception=e
        ))

    merged = deep_merge(DEFAULT_CONFIG, user_config)
    duration_ms = int((time.perf_counter() - start_time) * 1000)

    logger.debug(
        "Config loaded successfully",
        operation="load_config_from_path",
        status="success",
        config_path=str(config_path),
        metrics={"duration_ms": duration_ms}
    )

    return validate_config(merged, config_path)


def load_settings(environ: dict | None = None) -> Result[dict]:
    """
    Load user settings, falling back to DEFAULT_CONFIG when no file exists.

    Environment overrides are applied last.
    """
    path = config_path()
    if not path.exists():
        logger.debug(
            "Settings file does not exist, using defaults",
            operation="load_settings",
            status="default",
            file=str(path)
        )
        return Result.ok(apply_environment(DEFAULT_CONFIG, environ))

    result = load_config_from_path(path)
    if result.is_err():
        return result
    return Result.ok(apply_environment(result.value, environ))
