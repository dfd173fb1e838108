"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


CONFIG_FILENAME = "ambsheet.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "max_worlds": 100_000,
    "warn_worlds": 10_000,
    "random_seed": 0,
    "strict": False,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEFAULT_PROJECT_CONFIG = """\
# ambsheet project configuration

# Hard bound on worlds produced while evaluating a single cell.
max_worlds: 100000

# Cells producing more worlds than this emit a fanout_warning event.
warn_worlds: 10000

# Seed for normal() sampling.
random_seed: 0

# Raise formula errors instead of storing them as cell error values.
strict: false

logging_fsync: false
logging_tail_bytes: 2097152
"""


def load_project_config(project_dir: Path | None) -> dict[str, Any]:
    """Load project configuration from ``ambsheet.yaml``, with defaults.

    Args:
        project_dir: Project root, or None for defaults only.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: If the file does not contain a mapping.
    """
    config = dict(DEFAULT_CONFIG)
    if project_dir is None:
        return config
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)
    return config


def scaffold_project(target_dir: Path) -> Path:
    """Create an ambsheet project directory with default config and ``logs/``.

    Args:
        target_dir: Directory to create (must not already contain ambsheet.yaml).

    Returns:
        Path to the project directory.
    """
    target_dir = Path(target_dir).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    config_path = target_dir / CONFIG_FILENAME
    if config_path.exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")
    config_path.write_text(DEFAULT_PROJECT_CONFIG)

    (target_dir / "logs").mkdir(exist_ok=True)
    return target_dir
