"""Shared pytest fixtures and utilities for agentloop tests."""

from pathlib import Path
from typing import Any, Callable, Generator

import pytest
import yaml

from agentloop.backends.workspace import Workspace
from agentloop.core.plan import ExecutionPlan
from agentloop.core.state_machine import TaskStateMachine
from agentloop.orchestrator import (
    Evaluator,
    ExecutionEngine,
    Orchestrator,
    PlanStorage,
    Planner,
    RetryPolicy,
)
from agentloop.tracking.activity_logger import ActivityLogger
from tests.mocks import (
    MockResultLibrary,
    ScriptedExecutionBackend,
    ScriptedReasoningBackend,
    plan_dict,
)


# ============================================================================
# Directory and File Fixtures
# ============================================================================


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """Create a workspace rooted in a temporary directory.

    Returns:
        Workspace whose directories already exist
    """
    ws = Workspace(tmp_path / "workspace")
    ws.ensure_exists()
    return ws


@pytest.fixture
def input_file(tmp_path: Path) -> Path:
    """Create a small CSV file to use as task input.

    Returns:
        Path to the CSV file
    """
    path = tmp_path / "inputs" / "sales.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("region,amount\nnorth,10\nsouth,20\n", encoding="utf-8")
    return path


@pytest.fixture
def config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a configuration file with test-friendly values.

    Yields:
        Path to the YAML configuration file
    """
    config_path = tmp_path / "config.yaml"
    config_data = {
        "agent": {
            "max_retry_attempts": 2,
            "backoff_base_seconds": 0,
            "backoff_max_seconds": 0,
        },
        "workspace": {
            "directory": str(tmp_path / "workspace"),
            "plans_dir": str(tmp_path / "plans"),
        },
        "logging": {"output_dir": str(tmp_path / "logs")},
    }
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config_data, f)

    yield config_path


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def fast_retry_policy() -> RetryPolicy:
    """Retry policy with no backoff delay.

    Returns:
        RetryPolicy allowing 3 attempts per step
    """
    return RetryPolicy(base_delay=0.0, max_delay=0.0, max_attempts=3)


@pytest.fixture
def reasoning_backend() -> ScriptedReasoningBackend:
    """Provide a reasoning backend that plans two steps by default."""
    return ScriptedReasoningBackend()


@pytest.fixture
def execution_backend() -> Generator[ScriptedExecutionBackend, None, None]:
    """Provide an execution backend where every step succeeds by default."""
    backend = ScriptedExecutionBackend()
    yield backend
    backend.reset()


@pytest.fixture
def sample_plan() -> ExecutionPlan:
    """Provide a valid three-step plan."""
    return ExecutionPlan.from_dict("Summarise sales.csv by region", plan_dict(3))


@pytest.fixture
def activity_logger(tmp_path: Path) -> ActivityLogger:
    """Provide an activity logger writing under a temporary directory."""
    return ActivityLogger("test-session", tmp_path / "logs")


@pytest.fixture
def make_orchestrator(
    reasoning_backend: ScriptedReasoningBackend,
    execution_backend: ScriptedExecutionBackend,
    fast_retry_policy: RetryPolicy,
) -> Callable[..., Orchestrator]:
    """Factory for orchestrators wired to the scripted backends.

    Keyword arguments are passed to ``Orchestrator``; ``plan_storage`` goes
    to the planner, ``retry_policy`` and ``max_attempts`` to the engine.

    Returns:
        Callable building an Orchestrator
    """

    def factory(**kwargs: Any) -> Orchestrator:
        plan_storage = kwargs.pop("plan_storage", None)
        max_attempts = kwargs.pop("max_attempts", None)
        retry_policy = kwargs.pop("retry_policy", fast_retry_policy)
        evaluator = Evaluator(reasoning_backend)
        engine = ExecutionEngine(
            execution_backend, evaluator, retry_policy, max_attempts=max_attempts
        )
        kwargs.setdefault("state_machine", TaskStateMachine())
        return Orchestrator(
            planner=Planner(reasoning_backend, plan_storage),
            execution_engine=engine,
            evaluator=evaluator,
            **kwargs,
        )

    return factory


@pytest.fixture
def plan_storage(tmp_path: Path) -> PlanStorage:
    """Provide plan storage in a temporary directory."""
    return PlanStorage(tmp_path / "plans")


@pytest.fixture
def mock_results():
    """Provide the MockResultLibrary for easy access."""
    return MockResultLibrary


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may be slow)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line(
        "markers", "subprocess: mark test as spawning real processes"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test")
