"""Parse backend output and extract structured data.

Reasoning backends usually answer with JSON wrapped in markdown code blocks,
sometimes with explanations before or after it. These helpers recover the
structured content regardless of the surrounding text.
"""

import json
import re
from typing import Any, Dict

from .exceptions import OutputParseError


class OutputParser:
    """Parse backend output and extract structured content."""

    @staticmethod
    def extract_json(output: str, strict: bool = True) -> Any:
        """Extract a JSON value from backend output.

        Args:
            output: Raw output text
            strict: If True, raise error if no JSON found.
                   If False, return empty dict if no JSON found.

        Returns:
            Parsed JSON (usually a dictionary)

        Raises:
            OutputParseError: If JSON cannot be found or parsed (when strict=True)
        """
        if not output or not output.strip():
            if strict:
                raise OutputParseError("Output is empty")
            return {}

        json_content = None

        # 1. Code blocks: ```json\n{...}\n``` or ```\n{...}\n```
        code_block_pattern = r"```(?:json)?\s*\n([\s\S]*?)\n```"
        for match in re.findall(code_block_pattern, output, re.MULTILINE):
            try:
                json_content = json.loads(match.strip())
                break
            except json.JSONDecodeError:
                continue

        # 2. Raw JSON between the outermost braces or brackets
        if json_content is None:
            obj_start = output.find("{")
            obj_end = output.rfind("}")
            arr_start = output.find("[")
            arr_end = output.rfind("]")

            # Prefer objects over arrays
            if obj_start != -1 and obj_end > obj_start:
                try:
                    json_content = json.loads(output[obj_start : obj_end + 1])
                except json.JSONDecodeError:
                    pass

            if json_content is None and arr_start != -1 and arr_end > arr_start:
                try:
                    json_content = json.loads(output[arr_start : arr_end + 1])
                except json.JSONDecodeError:
                    pass

        if json_content is None:
            if strict:
                raise OutputParseError(
                    f"No valid JSON found in output. Output preview: {output[:200]}..."
                )
            return {}

        return json_content

    @staticmethod
    def extract_json_object(output: str) -> Dict[str, Any]:
        """Extract a JSON object, rejecting other JSON values.

        Raises:
            OutputParseError: If no JSON object can be found
        """
        result = OutputParser.extract_json(output, strict=True)
        if not isinstance(result, dict):
            raise OutputParseError(f"Expected JSON object, got {type(result).__name__}")
        return result

    @staticmethod
    def parse_bool(value: Any, default: bool = False) -> bool:
        """Interpret loosely typed boolean fields ("true", "yes", 1)."""
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("true", "yes", "y", "1"):
                return True
            if lowered in ("false", "no", "n", "0"):
                return False
        return default

    @staticmethod
    def sanitize_output(output: str, max_length: int = 10000) -> str:
        """Sanitize output for logging/display.

        Args:
            output: Raw output
            max_length: Maximum length to return

        Returns:
            Sanitized output string
        """
        if not output:
            return ""

        # Remove ANSI color codes
        ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
        cleaned = ansi_escape.sub("", output)

        if len(cleaned) > max_length:
            cleaned = cleaned[:max_length] + f"\n... (truncated {len(cleaned) - max_length} characters)"

        return cleaned.strip()
