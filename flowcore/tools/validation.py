import json

import jsonschema

from flowcore.tools.base import BaseTool, normalize_schema


class ToolValidator:
    @staticmethod
    def parse_arguments(args: str) -> tuple[dict | None, str | None]:
        """Parse the raw argument string a model produced into a dict."""
        try:
            parsed = json.loads(args or "{}")
        except json.JSONDecodeError as e:
            return None, f"arguments are not valid JSON: {e}"
        if parsed is None:
            parsed = {}
        if not isinstance(parsed, dict):
            return None, "arguments must be a JSON object"
        return parsed, None

    @staticmethod
    def validate(tool: BaseTool, arguments: dict) -> tuple[bool, str | None]:
        try:
            jsonschema.validate(
                instance=arguments,
                schema=normalize_schema(tool.parameters),
            )
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
