"""JSON Schema validation for tool call arguments.

Every tool declares an `input_schema` (JSON Schema Draft 2020-12). Arguments
proposed by the completion service, or replayed by the approval workflow, are
validated before the tool function runs so a malformed call fails with a
structured error instead of a KeyError deep inside a connector.

Validation errors are surfaced with stable JSON Pointer-like paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import SchemaError

from jobrunner.errors import ConfigurationError, ToolInvocationError


@dataclass(frozen=True)
class ArgumentViolation:
    path: str
    message: str


def _escape_json_pointer_token(token: str) -> str:
    # RFC 6901 escaping.
    return token.replace("~", "~0").replace("/", "~1")


def _json_pointer(path: Iterable[Any]) -> str:
    parts = [str(p) if isinstance(p, int) else _escape_json_pointer_token(str(p)) for p in path]
    return "/" + "/".join(parts) if parts else "/"


class ToolArgumentValidator:
    """Builds (and caches) one validator per tool schema."""

    def __init__(self, *, strict_formats: bool = True):
        self._strict_formats = strict_formats
        self._validators: dict[str, Draft202012Validator] = {}

    def register(self, tool_name: str, schema: dict[str, Any]) -> None:
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as e:
            raise ConfigurationError(f"Invalid input_schema for tool {tool_name}: {e.message}") from e
        format_checker = FormatChecker() if self._strict_formats else None
        self._validators[tool_name] = Draft202012Validator(schema, format_checker=format_checker)

    def violations(self, tool_name: str, arguments: Any) -> list[ArgumentViolation]:
        validator = self._validators.get(tool_name)
        if validator is None:
            return []
        found = [ArgumentViolation(path=_json_pointer(err.absolute_path), message=err.message) for err in validator.iter_errors(arguments)]
        # Stable order: helps tests and makes errors easier to scan.
        found.sort(key=lambda v: (v.path, v.message))
        return found

    def validate(self, tool_name: str, arguments: Any) -> None:
        found = self.violations(tool_name, arguments)
        if found:
            raise ToolInvocationError(
                f"{tool_name} arguments failed schema validation ({len(found)} violation(s))",
                code="INVALID_TOOL_ARGUMENTS",
                details=[{"path": v.path, "message": v.message} for v in found],
            )
