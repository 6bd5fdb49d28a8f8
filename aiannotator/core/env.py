"""Resolve the developer identifier written into provenance markers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Union

from dotenv import dotenv_values

__all__ = [
    "EMPLOYEE_ID_KEY",
    "read_env_file",
    "read_employee_id",
    "resolve_employee_id",
]

logger = logging.getLogger(__name__)

EMPLOYEE_ID_KEY = "EMPLOYEE_ID"

PathLike = Union[str, Path]


def read_env_file(path: PathLike) -> dict[str, str]:
    """Parse ``path`` without touching ``os.environ``; blank values are dropped."""

    values = dotenv_values(Path(path), encoding="utf-8")
    return {key: value.strip() for key, value in values.items() if value and value.strip()}


def read_employee_id(roots: Iterable[PathLike], env_file_name: str = ".env") -> Optional[str]:
    """Return ``EMPLOYEE_ID`` from the first workspace root that defines it.

    Falls back to the process environment when no env file provides a value.
    """

    for root in roots:
        env_path = Path(root) / env_file_name
        if not env_path.is_file():
            continue
        try:
            employee_id = read_env_file(env_path).get(EMPLOYEE_ID_KEY)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to read %s: %s", env_path, exc)
            continue
        if employee_id:
            return employee_id

    env_value = os.environ.get(EMPLOYEE_ID_KEY, "").strip()
    if env_value:
        logger.debug("Using %s from the process environment", EMPLOYEE_ID_KEY)
        return env_value
    return None


def resolve_employee_id(
    roots: Iterable[PathLike],
    env_file_name: str = ".env",
    placeholder: str = "UNKNOWN",
) -> str:
    """Like :func:`read_employee_id` but substitute ``placeholder`` when missing."""

    employee_id = read_employee_id(roots, env_file_name)
    if employee_id is None:
        logger.warning(
            "%s not found in %s, annotations will use %r", EMPLOYEE_ID_KEY, env_file_name, placeholder
        )
        return placeholder
    return employee_id
