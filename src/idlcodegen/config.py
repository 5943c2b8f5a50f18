"""
Configuration for the code generator.

Precedence: CLI flags > environment variables > ``.env`` file > defaults.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional

ENV_OUTPUT_DIR = "IDLCODEGEN_OUTPUT_DIR"
ENV_MODULE = "IDLCODEGEN_MODULE"
ENV_OVERRIDE_ROOT = "IDLCODEGEN_OVERRIDE_ROOT"
ENV_LOG_LEVEL = "IDLCODEGEN_LOG_LEVEL"

# How many directories above the working directory to search for a .env file
ENV_SEARCH_DEPTH = 5


def read_env_file(path: Path) -> Dict[str, str]:
    values = {}
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                values[key.strip()] = value.strip().strip("'\"")
    return values


def load_env(start: Optional[Path] = None) -> Optional[Path]:
    """
    Load a .env file from ``start`` (default: the working directory) or one
    of its parents. Variables already set in the environment are kept.

    Returns the file that was loaded, if any.
    """
    current = Path(start) if start is not None else Path.cwd()
    for _ in range(ENV_SEARCH_DEPTH):
        env_file = current / ".env"
        if env_file.is_file():
            for key, value in read_env_file(env_file).items():
                os.environ.setdefault(key, value)
            return env_file
        if current.parent == current:
            break
        current = current.parent
    return None


@dataclass
class CodegenConfig:
    output_dir: Path = Path("generated")
    module: Optional[str] = None  # defaults to the program name
    override_root: Optional[Path] = None  # defaults to the working directory
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "CodegenConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if env.get(ENV_OUTPUT_DIR):
            config.output_dir = Path(env[ENV_OUTPUT_DIR])
        if env.get(ENV_MODULE):
            config.module = env[ENV_MODULE]
        if env.get(ENV_OVERRIDE_ROOT):
            config.override_root = Path(env[ENV_OVERRIDE_ROOT])
        if env.get(ENV_LOG_LEVEL):
            config.log_level = env[ENV_LOG_LEVEL].upper()
        return config

    def with_overrides(self, **values) -> "CodegenConfig":
        """Copy with every non-``None`` keyword applied."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def load_config(**cli_values) -> CodegenConfig:
    """Resolve configuration from .env, the environment and CLI values."""
    load_env()
    return CodegenConfig.from_env().with_overrides(**cli_values)
