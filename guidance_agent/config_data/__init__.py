"""Config package — YAML-based configuration for rules and prompts."""

from guidance_agent.config_data.loader import (
    get_prompts,
    get_verification_rules,
)

__all__ = ["get_prompts", "get_verification_rules"]
