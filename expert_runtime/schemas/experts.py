"""Expert and skill definitions."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, model_validator

from ..constants import BASE_SKILL_NAME
from .base import BaseSchema


class McpStdioSkill(BaseSchema):
    """Tool server spawned as a subprocess and spoken to over stdio."""

    type: Literal["mcpStdioSkill"] = "mcpStdioSkill"
    name: str
    description: Optional[str] = None
    rule: Optional[str] = None
    pick: List[str] = Field(default_factory=list)
    omit: List[str] = Field(default_factory=list)
    command: str
    package_name: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    required_env: List[str] = Field(default_factory=list)
    lazy_init: bool = True


class McpSseSkill(BaseSchema):
    """Remote tool server reached over Server-Sent Events."""

    type: Literal["mcpSseSkill"] = "mcpSseSkill"
    name: str
    description: Optional[str] = None
    rule: Optional[str] = None
    pick: List[str] = Field(default_factory=list)
    omit: List[str] = Field(default_factory=list)
    endpoint: str


class McpHttpSkill(BaseSchema):
    """Remote tool server reached over streamable HTTP."""

    type: Literal["mcpHttpSkill"] = "mcpHttpSkill"
    name: str
    description: Optional[str] = None
    rule: Optional[str] = None
    pick: List[str] = Field(default_factory=list)
    omit: List[str] = Field(default_factory=list)
    endpoint: str


class InteractiveTool(BaseSchema):
    name: str
    description: Optional[str] = None
    input_json_schema: str


class InteractiveSkill(BaseSchema):
    """Tools answered by a human or UI outside the run."""

    type: Literal["interactiveSkill"] = "interactiveSkill"
    name: str
    description: Optional[str] = None
    rule: Optional[str] = None
    tools: Dict[str, InteractiveTool] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _name_tools_from_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("tools"), dict):
            tools = {}
            for key, tool in data["tools"].items():
                if isinstance(tool, dict) and "name" not in tool:
                    tool = {**tool, "name": key}
                tools[key] = tool
            data = {**data, "tools": tools}
        return data


McpSkill = Union[McpStdioSkill, McpSseSkill, McpHttpSkill]

Skill = Annotated[
    Union[McpStdioSkill, McpSseSkill, McpHttpSkill, InteractiveSkill],
    Field(discriminator="type"),
]


def default_base_skill() -> McpStdioSkill:
    return McpStdioSkill(
        name=BASE_SKILL_NAME,
        description="Base skill",
        command="npx",
        args=["-y", BASE_SKILL_NAME],
        lazy_init=False,
    )


class Expert(BaseSchema):
    """An LLM-backed agent definition: instruction, skills and allowed delegates.

    Skills are keyed by name; a skill given without ``name`` takes its key.
    """

    key: str
    name: str
    version: str
    description: Optional[str] = None
    instruction: str
    skills: Dict[str, Skill] = Field(default_factory=lambda: {BASE_SKILL_NAME: default_base_skill()})
    delegates: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    provider_tools: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _name_skills_from_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("skills"), dict):
            skills = {}
            for key, skill in data["skills"].items():
                if isinstance(skill, dict) and "name" not in skill:
                    skill = {**skill, "name": key}
                skills[key] = skill
            data = {**data, "skills": skills}
        return data
