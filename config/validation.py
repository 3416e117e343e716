# config/validation.py

"""
Environment variable validation, run at startup in production.
"""

import json
import os
import sys
from typing import List, Tuple

from sync_app.importer.registry import get_provider_registry


def _is_true(name: str) -> bool:
    return os.environ.get(name, "false").strip().lower() in {"1", "true", "yes", "on"}


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    if flask_env != "production":
        return True, []

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in ("your-secret-key", "your_secret_key"):
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your PostgreSQL connection string.")

    if _is_true("IMPORTER_ENABLED"):
        raw_providers = os.environ.get("IMPORTER_PROVIDERS", "csv,json")
        providers = [item.strip().lower() for item in raw_providers.split(",") if item.strip()]
        if not providers:
            errors.append("IMPORTER_PROVIDERS must name at least one provider when IMPORTER_ENABLED=true")
        unknown = sorted(set(providers) - set(get_provider_registry()))
        if unknown:
            errors.append(f"IMPORTER_PROVIDERS contains unknown providers: {', '.join(unknown)}")

    epsilon = os.environ.get("IMPORTER_LAST_RUN_EPSILON_SECONDS")
    if epsilon is not None:
        try:
            if int(epsilon) < 0:
                raise ValueError
        except ValueError:
            errors.append("IMPORTER_LAST_RUN_EPSILON_SECONDS must be a non-negative integer")

    if _is_true("IMPORTER_WORKER_ENABLED"):
        if not os.environ.get("CELERY_BROKER_URL"):
            errors.append("CELERY_BROKER_URL is required when IMPORTER_WORKER_ENABLED=true in production")
        if not os.environ.get("CELERY_RESULT_BACKEND"):
            errors.append("CELERY_RESULT_BACKEND is required when IMPORTER_WORKER_ENABLED=true in production")

    celery_config = os.environ.get("CELERY_CONFIG")
    if celery_config:
        try:
            json.loads(celery_config)
        except json.JSONDecodeError:
            errors.append("CELERY_CONFIG must be valid JSON")

    if _is_true("ENABLE_FILE_LOGGING") and not os.environ.get("LOG_DIR"):
        errors.append("LOG_DIR is required when ENABLE_FILE_LOGGING=true in production")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
