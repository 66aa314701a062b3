"""Secret redaction for audit payloads.

Payloads are redacted before they are hashed, so the chain commits to the
redacted form and secrets never reach disk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SecretType(str, Enum):
    """Kinds of secrets that can be detected."""

    API_KEY = "api_key"
    AUTH_TOKEN = "auth_token"
    AWS_KEY = "aws_key"
    JWT = "jwt"
    PASSWORD = "password"
    PRIVATE_KEY = "private_key"
    GENERIC_SECRET = "generic_secret"


@dataclass
class RedactionPattern:
    """A regex that detects one kind of secret and its replacement."""

    secret_type: SecretType
    pattern: re.Pattern
    replacement: str = "[REDACTED]"
    description: str = ""


_PATTERNS: list[RedactionPattern] = [
    RedactionPattern(
        SecretType.API_KEY,
        re.compile(r"(?<![A-Za-z0-9])sk-ant-[a-zA-Z0-9\-_]{20,}"),
        "[REDACTED:ANTHROPIC_KEY]",
        "Anthropic API key",
    ),
    RedactionPattern(
        SecretType.API_KEY,
        re.compile(r"(?<![A-Za-z0-9])sk-[a-zA-Z0-9]{20,}"),
        "[REDACTED:OPENAI_KEY]",
        "OpenAI API key",
    ),
    RedactionPattern(
        SecretType.API_KEY,
        re.compile(r"(?<![A-Za-z0-9])gh[pousr]_[a-zA-Z0-9]{36}"),
        "[REDACTED:GITHUB_TOKEN]",
        "GitHub token",
    ),
    RedactionPattern(
        SecretType.API_KEY,
        re.compile(r"(?<![A-Za-z0-9])xox[baprs]-[a-zA-Z0-9\-]{10,}"),
        "[REDACTED:SLACK_TOKEN]",
        "Slack token",
    ),
    RedactionPattern(
        SecretType.AWS_KEY,
        re.compile(r"(?<![A-Za-z0-9])AKIA[0-9A-Z]{16}"),
        "[REDACTED:AWS_ACCESS_KEY]",
        "AWS Access Key ID",
    ),
    RedactionPattern(
        SecretType.AUTH_TOKEN,
        re.compile(r"[Bb]earer\s+[a-zA-Z0-9\-_\.]+"),
        "[REDACTED:BEARER_TOKEN]",
        "Bearer token",
    ),
    RedactionPattern(
        SecretType.JWT,
        re.compile(r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*"),
        "[REDACTED:JWT]",
        "JSON Web Token",
    ),
    RedactionPattern(
        SecretType.PASSWORD,
        re.compile(r"(?i)(password|passwd)[\"']?\s*[:=]\s*[\"']?[^\s\"',}]{3,}"),
        r"\1=[REDACTED]",
        "Password assignment",
    ),
    RedactionPattern(
        SecretType.PRIVATE_KEY,
        re.compile(
            r"-----BEGIN ([A-Z]+ )?PRIVATE KEY-----.*?-----END ([A-Z]+ )?PRIVATE KEY-----",
            re.DOTALL,
        ),
        "[REDACTED:PRIVATE_KEY]",
        "Private key block",
    ),
    RedactionPattern(
        SecretType.GENERIC_SECRET,
        re.compile(
            r"(?i)(api[_-]?key|access[_-]?token|client[_-]?secret|secret[_-]?key)[\"']?\s*[:=]\s*[\"']?[a-zA-Z0-9\-_/+=]{8,}"
        ),
        r"\1=[REDACTED]",
        "Generic key=value secret",
    ),
]

# Whole key names, optionally prefixed (db_password), whose string values are replaced
_SENSITIVE_KEYS = re.compile(r"(?i)(?:[a-z0-9]+_)*(password|passwd|secret|token|api_?key|credentials?|private_key)")


@dataclass
class RedactionConfig:
    """Configuration for the redactor."""

    redact_types: set[SecretType] = field(default_factory=lambda: set(SecretType))
    custom_patterns: list[RedactionPattern] = field(default_factory=list)
    max_depth: int = 16


class Redactor:
    """Redacts secrets from strings and nested JSON-like structures."""

    def __init__(self, config: RedactionConfig | None = None):
        self.config = config or RedactionConfig()
        self._patterns = [p for p in _PATTERNS if p.secret_type in self.config.redact_types]
        self._patterns.extend(self.config.custom_patterns)

    def redact_string(self, text: str) -> str:
        if not text:
            return text
        for pattern in self._patterns:
            text = pattern.pattern.sub(pattern.replacement, text)
        return text

    def redact_value(self, value: Any, depth: int = 0) -> Any:
        """Recursively redact a value. Keys are never rewritten."""
        if depth > self.config.max_depth:
            return "[MAX_DEPTH_EXCEEDED]"
        if isinstance(value, str):
            return self.redact_string(value)
        if isinstance(value, dict):
            result = {}
            for key, item in value.items():
                if isinstance(item, str) and item and _SENSITIVE_KEYS.fullmatch(str(key)):
                    result[key] = "[REDACTED]"
                else:
                    result[key] = self.redact_value(item, depth + 1)
            return result
        if isinstance(value, (list, tuple)):
            return [self.redact_value(item, depth + 1) for item in value]
        return value


__all__ = [
    "SecretType",
    "RedactionPattern",
    "RedactionConfig",
    "Redactor",
]
