"""Audit configuration files."""

import asyncio
from pathlib import Path

import yaml
from pydantic import Field, ValidationError

from site_audit.debugger import DebugConfig
from site_audit.models.base import Model
from site_audit.models.options import TestOptions


class AuditConfig(Model):
    """Contents of an audit YAML file."""

    urls: tuple[str, ...] = Field(default=(), description="Pages to audit")
    sitemap: str | None = Field(
        default=None, description="Sitemap URL or path to discover pages from"
    )
    analyzers: tuple[str, ...] | None = Field(
        default=None,
        description="Analyzer keys to load; every registered analyzer when unset",
    )
    options: TestOptions = Field(default_factory=TestOptions)
    debug: DebugConfig = Field(default_factory=DebugConfig)


async def load_audit_config(path: Path) -> AuditConfig:
    """Load and validate an audit configuration file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed configuration

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is empty, not valid YAML, or fails validation

    """
    try:
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"Config file not found: {path}") from None

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        raise ValueError(f"Empty config file: {path}")
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config schema in {path}: expected a mapping")

    try:
        return AuditConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid config schema in {path}: {exc}") from exc
