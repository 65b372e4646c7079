import pytest

from fixtures.generators import ScriptedGenerator
from maestro.config import MaestroConfig, RecoveryConfig
from maestro.notifications import InMemoryNotifier
from maestro.orchestrator import Orchestrator
from maestro.parser import DefinitionParser
from maestro.persistence import InMemoryWorkflowRepository
from maestro.vcs import InMemoryVersionControl

THREE_STEP = """
workflow:
  name: Three Step
  sequence:
    - agent: pm
      creates: prd.md
    - agent: architect
      creates: architecture.md
      requires: prd.md
    - agent: dev
      creates: implementation.md
      requires: architecture.md
  handoff_prompts:
    architect: The PRD is ready.
"""

ROUTED = """
workflow:
  name: Routed
  sequence:
    - step: classify
      agent: analyst
    - step: routing_decision
      decision: scope
      routes:
        single_story:
          terminal: true
        major_enhancement:
          description: full planning
    - agent: pm
      creates: prd.md
      condition: scope == major_enhancement
"""

ASK = """
workflow:
  name: Ask First
  sequence:
    - step: interview
      agent: analyst
      creates: project-brief.md
    - agent: pm
      creates: prd.md
      requires: project-brief.md
"""

BROKEN = """
workflow:
  name: Broken
  sequence:
    - agent: ghost
      creates: nothing.md
"""

OPTIONAL_REVIEW = """
workflow:
  name: Optional Review
  sequence:
    - agent: pm
      creates: prd.md
    - agent: qa
      creates: review.md
      optional: true
    - agent: dev
      creates: implementation.md
      requires: prd.md
"""

NEEDS_INPUT = """
workflow:
  name: Needs Input
  sequence:
    - agent: dev
      creates: implementation.md
      requires: architecture.md
"""


@pytest.fixture
def template_dir(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    for name, body in {
        "three-step": THREE_STEP,
        "routed": ROUTED,
        "ask": ASK,
        "broken": BROKEN,
        "needs-input": NEEDS_INPUT,
        "optional-review": OPTIONAL_REVIEW,
    }.items():
        (directory / f"{name}.yaml").write_text(body)
    return directory


@pytest.fixture
def config():
    return MaestroConfig(
        recovery=RecoveryConfig(max_attempts=2, initial_delay=0, max_delay=0, jitter=0)
    )


@pytest.fixture
def make_orchestrator(template_dir, config):
    """Build an orchestrator wired to in-memory collaborators."""

    def factory(generator=None, settings=None, **overrides):
        params = {
            "repository": InMemoryWorkflowRepository(),
            "notifier": InMemoryNotifier(),
            "vcs": InMemoryVersionControl(),
            "parser": DefinitionParser([template_dir]),
        }
        params.update(overrides)
        return Orchestrator(
            settings or config, generator=generator or ScriptedGenerator(), **params
        )

    return factory
