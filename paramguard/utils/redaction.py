"""
ParamGuard Log Redaction

Scrubs secret-looking values from log output. Configuration payloads are
full of credentials, so every handler installed by ``configure_logging``
passes records through ``RedactingFilter``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern


@dataclass
class RedactionPattern:
    pattern: Pattern
    replacement: str
    description: str


class SensitiveDataRedactor:
    """
    Redacts credentials from strings and dictionaries.
    """

    def __init__(self):
        self.patterns: List[RedactionPattern] = [
            # KEY=value assignments whose key names a secret
            RedactionPattern(
                re.compile(
                    r"\b([A-Za-z0-9_.-]*(?:password|passwd|pwd|secret|token|api[_-]?key)"
                    r"[A-Za-z0-9_.-]*)(\s*[=:]\s*)[\"']?[^\"'\s&,;]+[\"']?",
                    re.I,
                ),
                r"\1\2[REDACTED]",
                "Secret assignments",
            ),
            RedactionPattern(
                re.compile(r"Bearer\s+[a-zA-Z0-9_.-]{20,}", re.I),
                "Bearer [REDACTED]",
                "Bearer tokens",
            ),
            RedactionPattern(
                re.compile(r"(mongodb|postgres(?:ql)?|mysql|redis|amqp):\/\/[^:\s]+:[^@\s]+@", re.I),
                r"\1://[REDACTED]:[REDACTED]@",
                "Connection strings",
            ),
            RedactionPattern(
                re.compile(
                    r"-----BEGIN\s+(?:[A-Z]+\s+)?PRIVATE\s+KEY-----[\s\S]*?"
                    r"-----END\s+(?:[A-Z]+\s+)?PRIVATE\s+KEY-----"
                ),
                "[REDACTED_PRIVATE_KEY]",
                "Private keys",
            ),
            RedactionPattern(
                re.compile(r"AKIA[0-9A-Z]{16}"), "[REDACTED_AWS_KEY]", "AWS access keys"
            ),
            RedactionPattern(
                re.compile(r"ghp_[a-zA-Z0-9]{20,}"),
                "[REDACTED_GITHUB_TOKEN]",
                "GitHub personal access tokens",
            ),
        ]

        self.sensitive_fields = {
            "password",
            "passwd",
            "pwd",
            "secret",
            "token",
            "api_key",
            "apikey",
            "payload",
            "plaintext",
            "private_key",
            "encryption_key",
        }

    def redact(self, text: str) -> str:
        """Redact sensitive data from a string."""
        if not isinstance(text, str):
            return str(text)

        result = text
        for pattern in self.patterns:
            result = pattern.pattern.sub(pattern.replacement, result)
        return result

    def redact_dict(self, data: Dict[str, Any], depth: int = 0) -> Dict[str, Any]:
        """Redact sensitive fields and values from a dictionary."""
        if depth > 10:
            return data

        result = {}
        for key, value in data.items():
            if key.lower() in self.sensitive_fields:
                result[key] = "[REDACTED]"
            elif isinstance(value, dict):
                result[key] = self.redact_dict(value, depth + 1)
            elif isinstance(value, str):
                result[key] = self.redact(value)
            else:
                result[key] = value
        return result


class RedactingFilter(logging.Filter):
    """Logging filter that redacts the formatted message in place."""

    def __init__(self, redactor: Optional[SensitiveDataRedactor] = None):
        super().__init__()
        self._redactor = redactor or SensitiveDataRedactor()

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redactor.redact(record.getMessage())
        record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with redaction on every handler."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    root = logging.getLogger()
    # basicConfig is a no-op once handlers exist
    root.setLevel(numeric_level)
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())
