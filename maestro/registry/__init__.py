"""Agent persona registry."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import PersonaNotFoundError
from .defaults import DEFAULT_PERSONAS
from .models import AgentPersona


class PersonaRegistry:
    """Lookup table of agent personas keyed by id.

    Starts from the built-in personas; YAML files loaded later override
    entries with the same id.
    """

    def __init__(
        self,
        personas: Optional[Iterable[AgentPersona]] = None,
        include_defaults: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._personas: Dict[str, AgentPersona] = {}
        if include_defaults:
            for persona in DEFAULT_PERSONAS:
                self.register(persona)
        for persona in personas or []:
            self.register(persona)

    def register(self, persona: AgentPersona) -> None:
        self._personas[persona.id] = persona

    def load_directory(self, path: str | Path) -> int:
        """Load every ``*.yaml``/``*.yml`` persona file under ``path``.

        Files that do not describe a valid persona are skipped with a
        warning. Returns the number of personas loaded.
        """
        directory = Path(path).expanduser()
        if not directory.is_dir():
            self._log.warning(f"Persona directory not found: {directory}")
            return 0

        loaded = 0
        for file in sorted(directory.iterdir()):
            if file.suffix not in (".yaml", ".yml"):
                continue
            try:
                data = yaml.safe_load(file.read_text()) or {}
                data.setdefault("id", file.stem)
                self.register(AgentPersona.model_validate(data))
                loaded += 1
            except (yaml.YAMLError, PydanticValidationError, AttributeError) as e:
                self._log.warning(f"Skipping persona file {file.name}: {e}")
        self._log.info(f"Loaded {loaded} personas from {directory}")
        return loaded

    def get(self, agent_id: str) -> AgentPersona:
        """Return the persona for ``agent_id``.

        Compound ids such as ``pm/architect`` fall back to their first and
        then second part.
        """
        persona = self._personas.get(agent_id)
        if persona is None and "/" in agent_id:
            for part in agent_id.split("/"):
                persona = self._personas.get(part.strip())
                if persona is not None:
                    self._log.info(f"Using persona '{persona.id}' for '{agent_id}'")
                    break
        if persona is None:
            raise PersonaNotFoundError(agent_id)
        return persona

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._personas

    def list(self) -> List[AgentPersona]:
        return list(self._personas.values())


__all__ = ["AgentPersona", "DEFAULT_PERSONAS", "PersonaRegistry"]
