"""Configuration Management with Pydantic.

This module implements configuration models using Pydantic for parsing and
validation of YAML/JSON configuration files with environment variable overrides.
"""

import os
import threading
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger(__name__)

# Constants
DEFAULT_TASK_NAME = "default"
DEFAULT_BUILD_FILE = "taskweave_build.py"
DEFAULT_CONFIG_FILES = ("taskweave.yaml", "taskweave.yml", "taskweave.json")
MAX_WORKERS = 32
TRUE_VALUES = ("true", "1", "yes", "on")


class RunnerConfig(BaseModel):
    """Task runner behaviour.

    Attributes:
        default_task: Task run when no task name is given
        fail_fast: Stop scheduling new tasks after the first failure
        allow_overwrite: Let a later registration replace a task of the same name
        parallel: Run independent tasks concurrently on worker threads
        max_workers: Maximum concurrent tasks in parallel mode
    """

    default_task: str = Field(
        default=DEFAULT_TASK_NAME,
        min_length=1,
        description="Task run when no task name is given",
    )
    fail_fast: bool = Field(
        default=False,
        description="Abort the whole run on the first task failure",
    )
    allow_overwrite: bool = Field(
        default=True,
        description="Allow re-registering a task name (last one wins)",
    )
    parallel: bool = Field(
        default=False,
        description="Execute independent tasks concurrently",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=MAX_WORKERS,
        description="Maximum concurrent tasks in parallel mode",
    )

    @field_validator("default_task")
    @classmethod
    def validate_default_task(cls, v: str) -> str:
        """Reject the '.' alias as a configured name; it always means the default.

        Raises:
            ValueError: If the name is '.'
        """
        if v == ".":
            msg = "default_task must be a real task name, '.' is reserved"
            raise ValueError(msg)
        return v

    model_config = {"str_strip_whitespace": True}


class TaskweaveConfig(BaseModel):
    """Top-level configuration.

    Attributes:
        runner: Task runner behaviour
        build_file: Build script loaded by the command line
        logging_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render logs as JSON instead of console lines
    """

    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    build_file: str = Field(
        default=DEFAULT_BUILD_FILE,
        min_length=1,
        description="Path to the build script",
    )
    logging_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(
        default=False,
        description="Use JSON log rendering",
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "TaskweaveConfig":
        """Load configuration from a YAML (or JSON) file.

        Args:
            path: Path to the configuration file

        Returns:
            Parsed and validated TaskweaveConfig instance

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        logger.info("loading_configuration", path=str(config_path))

        try:
            with config_path.open() as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.exception("yaml_parse_error", error=str(e), path=str(config_path))
            msg = f"Invalid YAML in configuration file: {e}"
            raise ValueError(msg) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            msg = "Configuration file must contain a mapping"
            raise ValueError(msg)

        config = cls(**cls._apply_env_overrides(config_data))
        logger.info(
            "configuration_loaded",
            default_task=config.runner.default_task,
            fail_fast=config.runner.fail_fast,
            parallel=config.runner.parallel,
        )
        return config

    @classmethod
    def from_env(cls) -> "TaskweaveConfig":
        """Build a configuration from defaults plus environment overrides only."""
        return cls(**cls._apply_env_overrides({}))

    @classmethod
    def _apply_env_overrides(cls, config_data: dict) -> dict:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: TASKWEAVE_<SECTION>_<KEY>
        Example: TASKWEAVE_RUNNER_FAIL_FAST, TASKWEAVE_LOGGING_LEVEL

        Args:
            config_data: Base configuration dictionary from file

        Returns:
            Configuration dictionary with environment overrides applied
        """
        env_overrides = {
            ("runner", "default_task"): "TASKWEAVE_RUNNER_DEFAULT_TASK",
            ("runner", "fail_fast"): "TASKWEAVE_RUNNER_FAIL_FAST",
            ("runner", "allow_overwrite"): "TASKWEAVE_RUNNER_ALLOW_OVERWRITE",
            ("runner", "parallel"): "TASKWEAVE_RUNNER_PARALLEL",
            ("runner", "max_workers"): "TASKWEAVE_RUNNER_MAX_WORKERS",
            ("build_file",): "TASKWEAVE_BUILD_FILE",
            ("logging_level",): "TASKWEAVE_LOGGING_LEVEL",
            ("json_logs",): "TASKWEAVE_JSON_LOGS",
        }
        bool_vars = {
            "TASKWEAVE_RUNNER_FAIL_FAST",
            "TASKWEAVE_RUNNER_ALLOW_OVERWRITE",
            "TASKWEAVE_RUNNER_PARALLEL",
            "TASKWEAVE_JSON_LOGS",
        }

        for path, env_var in env_overrides.items():
            value = os.environ.get(env_var)
            if value is None:
                continue

            current = config_data
            for key in path[:-1]:
                if not isinstance(current.get(key), dict):
                    current[key] = {}
                current = current[key]

            if env_var in bool_vars:
                value = value.strip().lower() in TRUE_VALUES
            elif env_var == "TASKWEAVE_RUNNER_MAX_WORKERS":
                value = int(value)

            current[path[-1]] = value
            logger.debug("env_override_applied", env_var=env_var, config_path=".".join(path))

        return config_data

    def validate_config(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of validation warning messages (empty if no warnings)
        """
        warnings = []

        if self.runner.parallel and self.runner.max_workers == 1:
            warnings.append("Parallel mode with max_workers=1 runs tasks one at a time")

        if not self.runner.parallel and self.runner.max_workers != RunnerConfig().max_workers:
            warnings.append("max_workers is ignored unless parallel is enabled")

        if not self.runner.allow_overwrite:
            warnings.append("Task overwriting is disabled - re-declared tasks will fail the build")

        return warnings


class ConfigManager:
    """Configuration manager using singleton pattern."""

    _instance: TaskweaveConfig | None = None
    _init_lock: threading.Lock = threading.Lock()

    @classmethod
    def load_config(cls, config_path: str | Path | None = None) -> TaskweaveConfig:
        """Load configuration from file.

        Args:
            config_path: Path to configuration file. If None, looks for
                taskweave.yaml, taskweave.yml or taskweave.json in the current
                directory and falls back to defaults plus environment overrides.

        Returns:
            Loaded TaskweaveConfig instance

        Raises:
            FileNotFoundError: If an explicit config file is not found
            ValueError: If the config file is invalid
        """
        if config_path is None:
            for default_name in DEFAULT_CONFIG_FILES:
                default_path = Path(default_name)
                if default_path.exists():
                    config_path = default_path
                    break
            else:
                logger.debug("no_configuration_file_using_defaults")
                return TaskweaveConfig.from_env()

        return TaskweaveConfig.from_yaml(config_path)

    @classmethod
    def get_config(
        cls,
        config_path: str | Path | None = None,
        reload: bool = False,
    ) -> TaskweaveConfig:
        """Get configuration instance (singleton pattern).

        Uses double-checked locking so concurrent callers load the file once.

        Args:
            config_path: Path to configuration file. Only used on first call or when reload=True.
            reload: If True, force reload configuration from file.

        Returns:
            TaskweaveConfig instance
        """
        if cls._instance is not None and not reload:
            return cls._instance

        with cls._init_lock:
            if cls._instance is None or reload:
                cls._instance = cls.load_config(config_path)

            return cls._instance

    @classmethod
    def reset_config(cls) -> None:
        """Reset the configuration instance."""
        cls._instance = None


def load_config(config_path: str | Path | None = None) -> TaskweaveConfig:
    """Load configuration from file."""
    return ConfigManager.load_config(config_path)


def get_config(config_path: str | Path | None = None, reload: bool = False) -> TaskweaveConfig:
    """Get configuration instance (singleton pattern)."""
    return ConfigManager.get_config(config_path, reload)


def reset_config() -> None:
    """Reset the configuration instance."""
    ConfigManager.reset_config()


__all__ = [
    "RunnerConfig",
    "TaskweaveConfig",
    "get_config",
    "load_config",
    "reset_config",
]
