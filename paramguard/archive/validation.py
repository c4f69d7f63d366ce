"""
ParamGuard Format Validation

Syntax-level checks for CONFIG_FILE content. Full schema validation is
left to external validators, which can be plugged in through the
``Validator`` callable type.
"""

import configparser
import json
import logging
import re
import tomllib
from dataclasses import dataclass, field
from typing import Callable, List

import yaml

from .models import ConfigFormat

logger = logging.getLogger(__name__)


ENV_LINE = re.compile(r"^(export\s+)?[A-Za-z_][A-Za-z0-9_]*=.*$")


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


Validator = Callable[[ConfigFormat, str], ValidationResult]


def _validate_env(content: str) -> List[str]:
    errors = []
    for lineno, line in enumerate(content.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if not ENV_LINE.match(stripped):
            errors.append(f"line {lineno}: expected KEY=VALUE")
    return errors


def validate(fmt: ConfigFormat, content: str) -> ValidationResult:
    """Check that ``content`` parses as ``fmt``."""
    try:
        if fmt == ConfigFormat.JSON:
            json.loads(content)
        elif fmt == ConfigFormat.YAML:
            yaml.safe_load(content)
        elif fmt == ConfigFormat.TOML:
            tomllib.loads(content)
        elif fmt == ConfigFormat.INI:
            configparser.ConfigParser().read_string(content)
        elif fmt == ConfigFormat.ENV:
            errors = _validate_env(content)
            return ValidationResult(valid=not errors, errors=errors)
    except (
        json.JSONDecodeError,
        yaml.YAMLError,
        tomllib.TOMLDecodeError,
        configparser.Error,
    ) as e:
        logger.debug(f"{fmt.value} content rejected: {e}")
        return ValidationResult(valid=False, errors=[str(e)])

    return ValidationResult(valid=True)
