"""Skill managers backed by MCP tool servers."""

from __future__ import annotations

import ipaddress
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

from mcp.client.stdio import get_default_environment

from ..constants import BASE_SKILL_NAME, BASE_SKILL_VERSION
from ..core.logging_config import get_logger
from ..errors import SkillConfigurationError, SkillNotInitializedError
from ..helpers.listener import EventListener
from ..schemas.events import SkillConnectedEvent, SkillDisconnectedEvent, SkillStartingEvent
from ..schemas.experts import McpHttpSkill, McpSseSkill, McpStdioSkill
from ..schemas.tools import ToolDefinition
from .base import BaseSkillManager, SkillType, ToolContent, filter_by_pick_omit
from .builtin import create_base_server
from .converters import convert_tool_result, handle_tool_error
from .transport import (
    InMemoryMCPTransport,
    MCPTransport,
    SessionHolder,
    SseMCPTransport,
    StdioMCPTransport,
    StreamableHttpMCPTransport,
)

logger = get_logger(__name__)

McpSkill = Union[McpStdioSkill, McpSseSkill, McpHttpSkill]


def get_command_args(skill: McpStdioSkill) -> Tuple[str, List[str]]:
    """Return the ``(command, args)`` used to spawn a stdio skill.

    Exactly one of ``package_name`` and ``args`` must be set; ``npx`` always
    gets ``-y`` so it never prompts.
    """
    if skill.package_name and skill.args:
        raise SkillConfigurationError(skill.name, "has both packageName and args. Please provide only one of them.")
    if not skill.package_name and not skill.args:
        raise SkillConfigurationError(skill.name, "has no packageName or args. Please provide one of them.")
    args = list(skill.args) if skill.args else [skill.package_name]
    if skill.command == "npx" and "-y" not in args:
        args = ["-y", *args]
    return skill.command, args


def is_private_or_local_host(hostname: str) -> bool:
    host = hostname.strip("[]").lower()
    if host in ("localhost", "localhost.localdomain") or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified


def validate_endpoint(skill: Union[McpSseSkill, McpHttpSkill]) -> str:
    parsed = urlparse(skill.endpoint)
    if parsed.scheme != "https":
        raise SkillConfigurationError(skill.name, f"endpoint must use HTTPS: {skill.endpoint}")
    if not parsed.hostname or is_private_or_local_host(parsed.hostname):
        raise SkillConfigurationError(skill.name, f"endpoint cannot use private/local IP: {skill.endpoint}")
    return skill.endpoint


class _SessionBackedManager(BaseSkillManager):
    """Shared session handling for managers that talk MCP."""

    type: SkillType = "mcp"

    def __init__(self, job_id: str, run_id: str, event_listener: Optional[EventListener] = None) -> None:
        super().__init__(job_id, run_id, event_listener)
        self._holder: Optional[SessionHolder] = None

    async def _connect(self, transport: MCPTransport) -> Optional[Dict[str, Any]]:
        holder = self._holder = SessionHolder(transport, self.name)
        session = await holder.open()
        tools = await session.list_tools()
        self._tool_definitions = [
            ToolDefinition(
                skill_name=self.name,
                name=tool.name,
                description=tool.description,
                input_schema=tool.inputSchema,
            )
            for tool in tools.tools
        ]
        return holder.server_info

    async def call_tool(self, tool_name: str, args: Dict[str, Any]) -> List[ToolContent]:
        if not self._initialized or self._holder is None:
            raise SkillNotInitializedError(self.name)
        try:
            result = await self._holder.session.call_tool(tool_name, args)
        except Exception as e:
            return handle_tool_error(e, tool_name)
        return convert_tool_result(result, tool_name, args)

    async def _do_close(self) -> None:
        if self._holder is None:
            return
        holder, self._holder = self._holder, None
        was_open = holder.is_open
        await holder.close()
        if was_open:
            await self._emit(SkillDisconnectedEvent(job_id=self.job_id, run_id=self.run_id, skill_name=self.name))


class McpSkillManager(_SessionBackedManager):
    """One configured MCP skill, reached over stdio, SSE or streamable HTTP."""

    def __init__(
        self,
        skill: McpSkill,
        env: Dict[str, str],
        job_id: str,
        run_id: str,
        event_listener: Optional[EventListener] = None,
    ) -> None:
        super().__init__(job_id, run_id, event_listener)
        self.skill = skill
        self.name = skill.name
        self.lazy_init = isinstance(skill, McpStdioSkill) and skill.lazy_init and skill.name != BASE_SKILL_NAME
        self._env = env

    def _stdio_env(self, skill: McpStdioSkill) -> Dict[str, str]:
        required: Dict[str, str] = {}
        for name in skill.required_env:
            value = self._env.get(name)
            if not value:
                raise SkillConfigurationError(skill.name, f"requires environment variable {name}")
            required[name] = value
        return {**get_default_environment(), **required}

    def _build_transport(self) -> Tuple[MCPTransport, Optional[str], List[str]]:
        skill = self.skill
        if isinstance(skill, McpStdioSkill):
            env = self._stdio_env(skill)
            command, args = get_command_args(skill)
            return StdioMCPTransport(command, args, env), command, args
        endpoint = validate_endpoint(skill)
        if isinstance(skill, McpSseSkill):
            return SseMCPTransport(endpoint), None, []
        return StreamableHttpMCPTransport(endpoint), None, []

    async def _do_init(self) -> None:
        started = time.monotonic()
        transport, command, args = self._build_transport()
        await self._emit(
            SkillStartingEvent(job_id=self.job_id, run_id=self.run_id, skill_name=self.name, command=command, args=args)
        )
        server_info = await self._connect(transport)
        logger.debug("Skill %s connected with %d tools", self.name, len(self._tool_definitions))
        await self._emit(
            SkillConnectedEvent(
                job_id=self.job_id,
                run_id=self.run_id,
                skill_name=self.name,
                server_info=server_info,
                total_duration_ms=int((time.monotonic() - started) * 1000),
            )
        )

    def _filter_tools(self, tools: Sequence[ToolDefinition]) -> List[ToolDefinition]:
        return filter_by_pick_omit(tools, self.skill.pick, self.skill.omit)


class InMemoryBaseSkillManager(_SessionBackedManager):
    """The bundled base skill, served in-process with no subprocess spawn."""

    name = BASE_SKILL_NAME
    lazy_init = False

    def __init__(
        self,
        job_id: str,
        run_id: str,
        event_listener: Optional[EventListener] = None,
        skill: Optional[McpStdioSkill] = None,
        root: Optional[str] = None,
    ) -> None:
        super().__init__(job_id, run_id, event_listener)
        self.skill = skill
        self._root = root

    async def _do_init(self) -> None:
        started = time.monotonic()
        server_info = {"name": BASE_SKILL_NAME, "version": BASE_SKILL_VERSION}
        await self._connect(InMemoryMCPTransport(create_base_server(self._root), server_info))
        await self._emit(
            SkillConnectedEvent(
                job_id=self.job_id,
                run_id=self.run_id,
                skill_name=self.name,
                server_info=server_info,
                total_duration_ms=int((time.monotonic() - started) * 1000),
            )
        )

    def _filter_tools(self, tools: Sequence[ToolDefinition]) -> List[ToolDefinition]:
        if self.skill is None:
            return list(tools)
        return filter_by_pick_omit(tools, self.skill.pick, self.skill.omit)
