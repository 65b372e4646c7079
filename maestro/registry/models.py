"""Pydantic models describing agent personas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class AgentPersona(BaseModel):
    """Loadable descriptor of a specialized agent."""

    id: str
    name: str
    title: Optional[str] = None
    role: str = ""
    icon: Optional[str] = None
    instructions: str = ""
    capabilities: List[str] = Field(default_factory=list)
    typical_outputs: List[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("persona id must be a non-empty string")
        return v.strip()

    def system_prompt(self) -> str:
        """Return the instructions handed to the language model."""
        header = f"You are {self.name}"
        if self.title:
            header += f", {self.title}"
        lines = [header + "."]
        if self.role:
            lines.append(f"Your role: {self.role}.")
        if self.capabilities:
            lines.append("Capabilities: " + ", ".join(self.capabilities) + ".")
        if self.typical_outputs:
            lines.append("You usually produce: " + ", ".join(self.typical_outputs) + ".")
        if self.instructions:
            lines.append(self.instructions)
        return "\n".join(lines)
