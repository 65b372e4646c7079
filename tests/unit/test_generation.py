import pytest
from pydantic_ai.models.test import TestModel

from maestro.generation import AgentContext, PydanticAIGenerator
from maestro.registry import PersonaRegistry


@pytest.fixture
def persona():
    return PersonaRegistry().get("pm")


@pytest.fixture
def context():
    return AgentContext(
        workflow_id="workflow_1",
        goal="Build a reading list app",
        step_id="step_1",
        step_index=1,
        agent_id="pm",
        action="Write the PRD",
        creates="prd.md",
        handoff_prompt="The brief is ready.",
        artifacts={"project-brief.md": "# Brief"},
        routing_decisions={"scope": "major_enhancement"},
        answers=["web only"],
    )


def test_render_prompt(context):
    prompt = context.render_prompt()
    assert prompt.startswith("Goal: Build a reading list app")
    assert "Your task: Write the PRD" in prompt
    assert "Produce the document 'prd.md'." in prompt
    assert "Handoff note: The brief is ready." in prompt
    assert "--- project-brief.md ---\n# Brief" in prompt
    assert "scope=major_enhancement" in prompt
    assert "- web only" in prompt


def test_build_agent_uses_persona(persona):
    generator = PydanticAIGenerator(TestModel())
    agent = generator.build_agent(persona)
    assert agent.name == "pm"


@pytest.mark.asyncio
async def test_generate_falls_back_to_step_artifact(persona, context):
    model = TestModel(custom_output_args={"content": "# PRD\n\nScope", "decisions": {"ui": "yes"}})
    result = await PydanticAIGenerator(model).generate(persona, context)

    assert result.success
    assert result.content == "# PRD\n\nScope"
    assert [a.name for a in result.artifacts] == ["prd.md"]
    assert result.artifacts[0].content == "# PRD\n\nScope"
    assert result.decisions == {"ui": "yes"}
    assert result.provider == "TestModel"


@pytest.mark.asyncio
async def test_generate_keeps_named_artifacts(persona, context):
    model = TestModel(
        custom_output_args={
            "content": "Two documents",
            "artifacts": [
                {"name": "prd.md", "content": "# PRD"},
                {"name": "epic-1.md", "content": "# Epic"},
            ],
        }
    )
    result = await PydanticAIGenerator(model).generate(persona, context)
    assert [a.name for a in result.artifacts] == ["prd.md", "epic-1.md"]


@pytest.mark.asyncio
async def test_generate_requests_input(persona, context):
    model = TestModel(
        custom_output_args={
            "content": "I need to know the platform",
            "needs_input": True,
            "question": "Which platform?",
            "options": ["web", "mobile"],
            "response_type": "choice",
            "decision_key": "platform",
        }
    )
    result = await PydanticAIGenerator(model).generate(persona, context)

    assert result.elicitation_required
    assert result.artifacts == []
    assert result.elicitation_data["prompt"] == "Which platform?"
    assert result.elicitation_data["options"] == ["web", "mobile"]
    assert result.elicitation_data["decision_key"] == "platform"
