"""Mock backends for testing."""

from .backend_mocks import (
    MockResultLibrary,
    ScriptedExecutionBackend,
    ScriptedReasoningBackend,
    plan_dict,
)

__all__ = [
    "MockResultLibrary",
    "ScriptedExecutionBackend",
    "ScriptedReasoningBackend",
    "plan_dict",
]
