#!/usr/bin/env python3
"""
Database factory to switch between SQLite and Firestore based on configuration.
"""

import logging
import os

from .config import Settings

logger = logging.getLogger(__name__)


def _is_writable_directory(path: str) -> bool:
    """Create the directory if needed and check that a file can be written in it."""
    os.makedirs(path, mode=0o755, exist_ok=True)
    test_file = os.path.join(path, ".write_test")
    with open(test_file, 'w') as f:
        f.write("test")
    os.remove(test_file)
    return True


def resolve_database_path(settings: Settings) -> str:
    """
    Resolve the SQLite database path, testing the preferred path first and
    falling back if it is not writable and fallback is allowed.
    """
    primary_path = os.path.abspath(settings.database_path)
    parent_dir = os.path.dirname(primary_path) or "."

    try:
        _is_writable_directory(parent_dir)
        logger.info(f"Using primary database path: {primary_path}")
        return primary_path
    except OSError as e:
        logger.warning(f"Primary database directory {parent_dir} is not writable: {e}")

    if settings.allow_db_fallback:
        fallback_path = os.path.abspath(settings.database_fallback_path)
        try:
            _is_writable_directory(os.path.dirname(fallback_path) or ".")
            logger.warning(f"Using fallback database path: {fallback_path}. Data may be ephemeral.")
            return fallback_path
        except OSError as e:
            logger.error(f"Fallback database path {fallback_path} also failed: {e}")

    # Let the DatabaseManager surface the error
    logger.error(f"All database paths failed, using primary path anyway: {primary_path}")
    return primary_path


def get_database_manager(settings: Settings):
    """
    Return appropriate database manager based on configuration.

    Firestore is used when USE_FIRESTORE is 'true' or when running on App Engine;
    otherwise SQLite.
    """
    if settings.use_firestore:
        try:
            from .firestore_db import FirestoreDatabaseManager
            logger.info("Using Firestore database")
            return FirestoreDatabaseManager()
        except ImportError as e:
            logger.warning(f"Failed to import Firestore: {e}. Falling back to SQLite.")
        except Exception as e:
            logger.warning(f"Failed to initialize Firestore: {e}. Falling back to SQLite.")

    from .app import DatabaseManager
    logger.info("Using SQLite database")
    return DatabaseManager(resolve_database_path(settings))
