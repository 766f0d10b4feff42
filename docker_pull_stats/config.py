#!/usr/bin/env python3
"""
Configuration loading for docker-pull-stats.

Settings are read once from the environment at process start and passed
explicitly to every component that needs them.
"""

import json
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .models import Entity

DEFAULT_API_URL = "https://hub.docker.com/v2/repositories"


@dataclass(frozen=True)
class Settings:
    """Immutable process-wide configuration."""
    entities: Tuple[Entity, ...] = ()
    database_path: str = "docker_pulls.db"
    allow_db_fallback: bool = False
    database_fallback_path: str = "/tmp/docker_pulls.db"
    use_firestore: bool = False
    api_url: str = DEFAULT_API_URL
    request_pause: float = 0.1
    request_timeout: float = 30.0
    sync_interval: int = 3600
    port: int = 8000


def _parse_repository_list(payload, source: str) -> List[Entity]:
    """Parse the ``{"repositories": [{"org": ..., "repo": ...}]}`` shape."""
    if not isinstance(payload, dict) or not isinstance(payload.get("repositories", []), list):
        raise ValueError(f"{source} must be an object with a 'repositories' list")

    entities = []
    for item in payload.get("repositories", []):
        if isinstance(item, str):
            entities.append(Entity.parse(item))
            continue
        try:
            org, repo = item["org"], item["repo"]
        except (KeyError, TypeError):
            raise ValueError(f"{source} entries need 'org' and 'repo': {item!r}")
        if not org or not repo:
            raise ValueError(f"{source} entries need non-empty 'org' and 'repo': {item!r}")
        entities.append(Entity(str(org), str(repo)))
    return entities


def load_entities(environ: Mapping[str, str]) -> Tuple[Entity, ...]:
    """Load the tracked repositories from the environment."""
    raw_config = environ.get('DOCKER_CONFIG')
    config_file = environ.get('DOCKER_CONFIG_FILE')
    repositories = environ.get('DOCKER_REPOSITORIES')

    if raw_config:
        try:
            payload = json.loads(raw_config)
        except json.JSONDecodeError as e:
            raise ValueError(f"DOCKER_CONFIG is not valid JSON: {e}")
        entities = _parse_repository_list(payload, "DOCKER_CONFIG")
    elif config_file:
        try:
            with open(config_file, encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Could not read DOCKER_CONFIG_FILE {config_file}: {e}")
        entities = _parse_repository_list(payload, "DOCKER_CONFIG_FILE")
    elif repositories:
        entities = [Entity.parse(item) for item in repositories.split(",") if item.strip()]
    else:
        entities = []

    # Keep configuration order, drop repeats
    return tuple(dict.fromkeys(entities))


def _get_bool(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").lower() == "true"


def _get_number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got '{raw}'")
    return value


def load_configuration(environ: Optional[Dict[str, str]] = None) -> Settings:
    """Load configuration from environment variables."""
    if environ is None:
        environ = os.environ

    return Settings(
        entities=load_entities(environ),
        database_path=environ.get('DATABASE_PATH', 'docker_pulls.db'),
        allow_db_fallback=_get_bool(environ, 'ALLOW_DB_FALLBACK'),
        database_fallback_path=environ.get('DATABASE_FALLBACK_PATH', '/tmp/docker_pulls.db'),
        use_firestore=(_get_bool(environ, 'USE_FIRESTORE')
                       or environ.get('GAE_ENV', '').startswith('standard')),
        api_url=environ.get('DOCKER_HUB_API_URL', DEFAULT_API_URL).rstrip("/"),
        request_pause=_get_number(environ, 'REQUEST_PAUSE', 0.1, float),
        request_timeout=_get_number(environ, 'REQUEST_TIMEOUT', 30.0, float),
        sync_interval=_get_number(environ, 'SYNC_INTERVAL', 3600, int),
        port=_get_number(environ, 'PORT', 8000, int),
    )
