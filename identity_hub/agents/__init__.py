"""AI agents package."""

from identity_hub.agents.identity_agent import (
    IdentityAgent,
    build_prompt,
    parse_agent_response,
)

__all__ = [
    "IdentityAgent",
    "build_prompt",
    "parse_agent_response",
]
