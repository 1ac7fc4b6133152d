"""Tool catalog and invoker.

Tools are grouped into categories (gmail, github, slack, ...). A job lists the
categories it may use; the catalog turns those into tool specs for the
completion service and routes calls named `<category>_<function>` to the
category's function table.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Union

from jobrunner.errors import ToolInvocationError
from jobrunner.tools.schema_validator import ToolArgumentValidator

logger = logging.getLogger(__name__)

ToolFunction = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]

PENDING_APPROVAL_STATUS = "pending-approval"


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]

    def to_api(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


@dataclass(frozen=True)
class ToolResult:
    success: bool
    data: Any
    requires_approval: bool = False


@dataclass(frozen=True)
class ToolCategory:
    name: str
    specs: tuple[ToolSpec, ...]
    functions: Mapping[str, ToolFunction] = field(default_factory=dict)


def split_tool_name(full_name: str) -> tuple[str, str]:
    category, sep, function = full_name.partition("_")
    if not sep or not category or not function:
        raise ToolInvocationError(f"Invalid tool name format: {full_name}", code="INVALID_TOOL_NAME")
    return category, function


def _requires_approval(data: Any) -> bool:
    return isinstance(data, Mapping) and data.get("status") == PENDING_APPROVAL_STATUS


class ToolCatalog:
    def __init__(self, categories: Iterable[ToolCategory] = (), *, validator: ToolArgumentValidator | None = None):
        self._categories: dict[str, ToolCategory] = {}
        self._validator = validator or ToolArgumentValidator()
        for category in categories:
            self.register(category)

    def register(self, category: ToolCategory) -> None:
        for spec in category.specs:
            self._validator.register(spec.name, spec.input_schema)
        self._categories[category.name] = category

    def categories(self) -> list[str]:
        return sorted(self._categories)

    def tools_for_categories(self, names: Iterable[str]) -> list[ToolSpec]:
        specs: list[ToolSpec] = []
        for name in names:
            category = self._categories.get(name)
            if category is None:
                logger.warning("unknown_tool_category", extra={"event": "unknown_tool_category", "tool": name})
                continue
            specs.extend(category.specs)
        return specs

    async def invoke(self, full_name: str, arguments: dict[str, Any]) -> ToolResult:
        category_name, function_name = split_tool_name(full_name)

        category = self._categories.get(category_name)
        if category is None:
            raise ToolInvocationError(f"Unknown tool category: {category_name}", code="UNKNOWN_TOOL_CATEGORY")

        function = category.functions.get(function_name)
        if function is None:
            raise ToolInvocationError(f"Unknown function: {function_name} in {category_name}", code="UNKNOWN_TOOL_FUNCTION")

        self._validator.validate(full_name, arguments)

        try:
            data = function(arguments)
            if inspect.isawaitable(data):
                data = await data
        except ToolInvocationError:
            raise
        except Exception as e:
            raise ToolInvocationError(f"Tool execution failed: {e}", code="TOOL_EXECUTION_FAILED", details={"tool": full_name}) from e

        return ToolResult(success=True, data=data, requires_approval=_requires_approval(data))


def default_catalog() -> ToolCatalog:
    """Catalog with the built-in mock connectors."""
    from jobrunner.tools import github, gmail, slack

    return ToolCatalog([gmail.CATEGORY, github.CATEGORY, slack.CATEGORY])
