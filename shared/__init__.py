"""Shared configuration and utilities."""
from .config import AgentConfig, Configuration, normalize_provider
from .logs import enable_planner_logging

__all__ = ["AgentConfig", "Configuration", "normalize_provider", "enable_planner_logging"]
