"""Exception hierarchy for the expert runtime.

Configuration and structural failures raise these errors and abort the run.
Tool-level failures never surface here: skill managers convert them into tool
result text so the model can react to them.
"""

from __future__ import annotations


class ExpertRuntimeError(Exception):
    pass


class SkillManagerError(ExpertRuntimeError):
    pass


class SkillNotInitializedError(SkillManagerError):
    def __init__(self, skill_name: str) -> None:
        super().__init__(f"Skill {skill_name} is not initialized")


class SkillAlreadyInitializedError(SkillManagerError):
    def __init__(self, skill_name: str, *, in_flight: bool = False) -> None:
        state = "initializing" if in_flight else "initialized"
        super().__init__(f"Skill {skill_name} is already {state}")


class SkillConfigurationError(SkillManagerError):
    def __init__(self, skill_name: str, message: str) -> None:
        self.skill_name = skill_name
        super().__init__(f"Skill {skill_name} {message}")


class ToolNotFoundError(SkillManagerError):
    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool {tool_name} not found")


class DelegateExpertNotFoundError(SkillManagerError):
    def __init__(self, expert_key: str) -> None:
        self.expert_key = expert_key
        super().__init__(f'Delegate expert "{expert_key}" not found in experts')


class ExpertNotFoundError(ExpertRuntimeError):
    def __init__(self, expert_key: str) -> None:
        self.expert_key = expert_key
        super().__init__(f'Expert "{expert_key}" not found')


class DelegationError(ExpertRuntimeError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Delegation error: {message}")


class RunStateError(ExpertRuntimeError):
    pass


class CheckpointNotFoundError(ExpertRuntimeError):
    def __init__(self, job_id: str, checkpoint_id: str) -> None:
        super().__init__(f"Checkpoint not found: job '{job_id}', checkpoint '{checkpoint_id}'")
