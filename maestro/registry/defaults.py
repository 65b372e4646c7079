"""Built-in agent personas."""

from __future__ import annotations

from .models import AgentPersona

DEFAULT_PERSONAS = [
    AgentPersona(
        id="analyst",
        name="Business Analyst",
        icon="📊",
        role="Business analysis",
        capabilities=["requirements_analysis", "business_research", "stakeholder_analysis"],
        typical_outputs=["project_brief", "analysis_report", "stakeholder_map"],
    ),
    AgentPersona(
        id="pm",
        name="Product Manager",
        icon="📋",
        role="Product management",
        capabilities=["product_strategy", "roadmap_planning", "prd_creation"],
        typical_outputs=["prd", "user_stories", "acceptance_criteria", "roadmap"],
    ),
    AgentPersona(
        id="architect",
        name="System Architect",
        icon="🏗️",
        role="System architecture",
        capabilities=["system_design", "technology_selection", "architecture_documentation"],
        typical_outputs=["architecture", "technical_specifications", "design_patterns"],
    ),
    AgentPersona(
        id="ux-expert",
        name="UX Expert",
        icon="🎨",
        role="User experience design",
        capabilities=["user_research", "interface_design", "usability_testing"],
        typical_outputs=["front_end_spec", "user_flows", "design_system"],
    ),
    AgentPersona(
        id="dev",
        name="Developer",
        icon="💻",
        role="Implementation",
        capabilities=["code_implementation", "technical_problem_solving", "code_review"],
        typical_outputs=["source_code", "configuration_files", "implementation_notes"],
    ),
    AgentPersona(
        id="qa",
        name="Quality Assurance",
        icon="🧪",
        role="Quality assurance",
        capabilities=["test_planning", "test_execution", "quality_validation"],
        typical_outputs=["test_plan", "test_cases", "quality_report"],
    ),
    AgentPersona(
        id="sm",
        name="Scrum Master",
        icon="⚡",
        role="Process facilitation",
        capabilities=["process_facilitation", "team_coordination", "story_preparation"],
        typical_outputs=["story", "sprint_plan", "retrospective_notes"],
    ),
    AgentPersona(
        id="po",
        name="Product Owner",
        icon="🎯",
        role="Backlog ownership",
        capabilities=["backlog_management", "stakeholder_communication", "priority_setting"],
        typical_outputs=["backlog", "epic", "acceptance_criteria"],
    ),
    AgentPersona(
        id="system",
        name="Workflow System",
        role="Coordinates the other agents",
    ),
]
