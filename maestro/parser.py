"""Load workflow templates from YAML into validated definitions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import yaml
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .contracts import Route, Step, StepCondition, WorkflowDefinition
from .exceptions import DefinitionError

BUNDLED_TEMPLATES = Path(__file__).parent / "templates"

# Agents that own well-known named steps when the template omits ``agent``.
STEP_AGENTS = {
    "enhancement_classification": "analyst",
    "routing_decision": "system",
    "documentation_check": "analyst",
    "project_analysis": "architect",
    "architecture_decision": "architect",
}
DEFAULT_STEP_AGENT = "analyst"

_step_adapter = TypeAdapter(Step)


class DefinitionParser:
    """Turn ``<name>.yaml`` templates into :class:`WorkflowDefinition` objects.

    Templates are looked up in ``search_paths`` in order, then in the
    bundled templates directory. Parsed definitions are cached by name.
    """

    def __init__(
        self,
        search_paths: Optional[Iterable[str | Path]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.search_paths: List[Path] = [Path(p).expanduser() for p in search_paths or []]
        if BUNDLED_TEMPLATES not in self.search_paths:
            self.search_paths.append(BUNDLED_TEMPLATES)
        self._log = logger or logging.getLogger(__name__)
        self._cache: Dict[str, WorkflowDefinition] = {}

    # ------------------------------------------------------------------
    def _find(self, name: str) -> Optional[Path]:
        for directory in self.search_paths:
            for suffix in (".yaml", ".yml"):
                candidate = directory / f"{name}{suffix}"
                if candidate.is_file():
                    return candidate
        return None

    def exists(self, name: str) -> bool:
        return name in self._cache or self._find(name) is not None

    def list_templates(self) -> List[str]:
        """Return the names of all templates that can be parsed."""
        names: Set[str] = set()
        for directory in self.search_paths:
            if not directory.is_dir():
                continue
            for file in directory.iterdir():
                if file.suffix in (".yaml", ".yml"):
                    names.add(file.stem)
        return sorted(names)

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    def _load(self, name: str) -> tuple[Path, Dict[str, Any]]:
        path = self._find(name)
        if path is None:
            raise DefinitionError(f"Workflow template '{name}' not found")
        try:
            data = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise DefinitionError(f"Malformed workflow template '{name}': {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("workflow"), dict):
            raise DefinitionError(
                f"Invalid workflow format: missing 'workflow' root key in {path.name}"
            )
        sequence = data["workflow"].get("sequence")
        if not isinstance(sequence, list):
            raise DefinitionError(f"Workflow template '{name}' has no 'sequence' list")
        return path, data["workflow"]

    def _flatten(self, name: str, chain: List[str]) -> List[Dict[str, Any]]:
        """Return the raw sequence of ``name`` with includes expanded."""
        if name in chain:
            cycle = " -> ".join(chain + [name])
            raise DefinitionError(f"Workflow template include cycle: {cycle}")
        _, workflow = self._load(name)

        entries: List[Dict[str, Any]] = []
        for entry in workflow["sequence"]:
            if not isinstance(entry, dict):
                raise DefinitionError(
                    f"Workflow template '{name}' has a malformed step: {entry!r}"
                )
            if "include" in entry:
                entries.extend(self._flatten(str(entry["include"]), chain + [name]))
            else:
                entries.append(entry)
        return entries

    def parse(self, name: str) -> WorkflowDefinition:
        """Parse the template called ``name``.

        Raises:
            DefinitionError: The template is missing, malformed, includes
                itself or contains no executable step.
        """
        if name in self._cache:
            return self._cache[name]

        path, workflow = self._load(name)
        entries = self._flatten(name, [])

        steps = []
        seen_ids: Set[str] = set()
        for index, entry in enumerate(entries):
            raw = self._build_step(entry, index, seen_ids)
            try:
                steps.append(_step_adapter.validate_python(raw))
            except PydanticValidationError as e:
                raise DefinitionError(
                    f"Invalid step {index} in workflow template '{name}': {e}"
                ) from e
            seen_ids.add(raw["id"])

        if not steps:
            raise DefinitionError(f"Workflow template '{name}' has no executable steps")

        self._check_dependencies(name, steps)

        definition = WorkflowDefinition(
            name=name,
            title=workflow.get("name") or name,
            description=str(workflow.get("description") or "").strip(),
            steps=steps,
            handoff_prompts={
                str(k): str(v) for k, v in (workflow.get("handoff_prompts") or {}).items()
            },
            source_path=str(path),
        )
        self._cache[name] = definition
        self._log.info(f"Parsed workflow template '{name}' with {len(steps)} steps")
        return definition

    # ------------------------------------------------------------------
    def _build_step(
        self, entry: Dict[str, Any], index: int, seen_ids: Set[str]
    ) -> Dict[str, Any]:
        step_name = entry.get("step")
        step_id = str(entry.get("id") or step_name or f"step_{index}")
        if step_id in seen_ids:
            step_id = f"{step_id}_{index}"

        raw: Dict[str, Any] = {
            "id": step_id,
            "index": index,
            "description": str(entry.get("notes") or entry.get("description") or "").strip(),
        }
        if entry.get("condition") is not None:
            try:
                raw["condition"] = StepCondition.parse(entry["condition"])
            except ValueError as e:
                raise DefinitionError(f"Invalid condition on step {index}: {e}") from e

        if "routes" in entry:
            raw["kind"] = "routing"
            raw["decision"] = entry.get("decision") or step_name or step_id
            raw["routes"] = _parse_routes(entry["routes"], index)
            if entry.get("default_route"):
                raw["default_route"] = entry["default_route"]
            return raw

        if "repeats" in entry or "cycle" in entry:
            raw["kind"] = "cycle"
            raw["repeats"] = entry.get("repeats") or entry.get("cycle")
            raw["agent_id"] = entry.get("agent")
            return raw

        agent = entry.get("agent")
        if not agent and step_name:
            agent = STEP_AGENTS.get(step_name, DEFAULT_STEP_AGENT)
        if not agent:
            raise DefinitionError(f"Step {index} names neither an agent nor a step")
        raw.update(
            kind="agent",
            agent_id=agent,
            action=entry.get("action"),
            requires=_as_list(entry.get("requires")),
            creates=entry.get("creates"),
            uses=entry.get("uses"),
            optional=bool(entry.get("optional", False)),
        )
        return raw

    def _check_dependencies(self, name: str, steps: List[Any]) -> None:
        produced: Set[str] = set()
        for step in steps:
            for required in getattr(step, "requires", []):
                if required not in produced:
                    self._log.warning(
                        f"Step {step.index} of '{name}' requires '{required}' "
                        f"which no earlier step creates"
                    )
            creates = getattr(step, "creates", None)
            if creates:
                produced.add(creates)


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _parse_routes(value: Any, index: int) -> Dict[str, Route]:
    if not isinstance(value, dict):
        raise DefinitionError(f"Routes on step {index} must be a mapping")
    routes: Dict[str, Route] = {}
    for route_name, body in value.items():
        if isinstance(body, dict):
            routes[str(route_name)] = Route.model_validate(body)
        else:
            routes[str(route_name)] = Route(description=str(body or ""))
    return routes
