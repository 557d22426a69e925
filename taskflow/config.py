# TaskFlow — configuration
# Settings come from a YAML file; SUPABASE_* environment variables override it.

import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

CONFIG_PATH = Path(__file__).parent.parent / "taskflow.yaml"

# Environment variable → config attribute
ENV_OVERRIDES = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_ANON_KEY": "supabase_anon_key",
    "SUPABASE_SERVICE_ROLE_KEY": "service_role_key",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class TaskflowConfig:
    """Runtime configuration for the board server and seed script."""

    # Remote data service
    supabase_url: str = ""
    supabase_anon_key: str = ""
    service_role_key: str = ""  # seed_user.py only; never served
    request_timeout: float = 10.0

    # Where the signed-in session is kept between restarts ("" = memory only)
    session_file: str = "~/.local/share/taskflow/session.json"

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def load(cls, path: Optional[str] = None) -> "TaskflowConfig":
        """Load from YAML (path, $TASKFLOW_CONFIG, or taskflow.yaml), then the environment."""
        cfg_path = Path(path or os.environ.get("TASKFLOW_CONFIG") or CONFIG_PATH)
        data = {}
        if cfg_path.exists():
            try:
                with open(cfg_path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping, got {type(data).__name__}")
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")

        known = {f.name for f in fields(cls)}
        cfg = cls(**{k: v for k, v in data.items() if k in known})

        for env_name, attr in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                setattr(cfg, attr, value)

        cfg.request_timeout = float(cfg.request_timeout)
        cfg.port = int(cfg.port)
        return cfg

    def validate(self, require_service_key: bool = False) -> "TaskflowConfig":
        if not self.supabase_url:
            raise ConfigError(
                "Supabase URL is not set.\n"
                "Set it:  export SUPABASE_URL=https://<project>.supabase.co"
            )
        if require_service_key:
            if not self.service_role_key:
                raise ConfigError(
                    "Environment variable SUPABASE_SERVICE_ROLE_KEY is not set.\n"
                    "Find it under Project Settings → API in the Supabase dashboard."
                )
        elif not self.supabase_anon_key:
            raise ConfigError(
                "Environment variable SUPABASE_ANON_KEY is not set.\n"
                "Set it:  export SUPABASE_ANON_KEY=your_anon_key"
            )
        return self


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [taskflow] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
