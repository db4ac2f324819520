from __future__ import annotations

from typing import Optional


class SiteError(Exception):
    """Base error for a build. Carries the offending path and the stage."""

    stage = "build"

    def __init__(self, message: str, path: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.path = path
        if stage:
            self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.path:
            return f"{self.path}: {message}"
        return message


class ConfigError(SiteError):
    stage = "config"


class ParseError(SiteError):
    stage = "parse"


class TemplateError(SiteError):
    stage = "template"


class OutputError(SiteError):
    stage = "write"
