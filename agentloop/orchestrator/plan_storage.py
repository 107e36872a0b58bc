"""Storage and retrieval of execution plans.

Every plan version produced for a task is saved as JSON in the plans
directory (``.agentloop/plans/`` by default) as ``<task_id>.v<version>.json``,
so refinements can be inspected after a run.
"""

import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from agentloop.core.plan import ExecutionPlan

logger = logging.getLogger(__name__)

_VERSION_FILE = re.compile(r"^(?P<task_id>.+)\.v(?P<version>\d+)\.json$")


class PlanStorage:
    """Manages storage and retrieval of execution plans."""

    def __init__(self, plans_dir: Optional[Path] = None):
        """Initialize plan storage.

        Args:
            plans_dir: Directory for storing plans (defaults to .agentloop/plans/)
        """
        if plans_dir is None:
            plans_dir = Path.cwd() / ".agentloop" / "plans"

        self.plans_dir = Path(plans_dir)
        self.plans_dir.mkdir(parents=True, exist_ok=True)

    def _plan_file(self, task_id: str, version: int) -> Path:
        return self.plans_dir / f"{task_id}.v{version}.json"

    def save_plan(self, task_id: str, plan: ExecutionPlan) -> Path:
        """Save one plan version.

        Args:
            task_id: Task identifier
            plan: Plan to save

        Returns:
            Path to saved plan file
        """
        plan_file = self._plan_file(task_id, plan.version)

        with open(plan_file, "w", encoding="utf-8") as f:
            json.dump(plan.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

        return plan_file

    def load_plan(self, task_id: str, version: Optional[int] = None) -> Optional[ExecutionPlan]:
        """Load a plan version.

        Args:
            task_id: Task identifier
            version: Version to load; the latest when omitted

        Returns:
            ExecutionPlan if found and readable, None otherwise
        """
        if version is None:
            versions = self.list_versions(task_id)
            if not versions:
                return None
            version = versions[-1]

        plan_file = self._plan_file(task_id, version)
        if not plan_file.exists():
            return None

        try:
            with open(plan_file, "r", encoding="utf-8") as f:
                return ExecutionPlan.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable plan file %s: %s", plan_file, e)
            return None

    def list_versions(self, task_id: str) -> List[int]:
        """List the saved versions for a task, oldest first."""
        versions = []
        for path in self.plans_dir.glob(f"{glob_escape(task_id)}.v*.json"):
            match = _VERSION_FILE.match(path.name)
            if match and match.group("task_id") == task_id:
                versions.append(int(match.group("version")))
        return sorted(versions)

    def plan_exists(self, task_id: str) -> bool:
        """Check if any plan version exists for a task."""
        return bool(self.list_versions(task_id))

    def delete_plan(self, task_id: str) -> bool:
        """Delete every saved version for a task.

        Returns:
            True if anything was deleted
        """
        versions = self.list_versions(task_id)
        for version in versions:
            self._plan_file(task_id, version).unlink()
        return bool(versions)

    def list_plans(self) -> List[str]:
        """List all task IDs that have plans."""
        if not self.plans_dir.exists():
            return []

        task_ids = set()
        for path in self.plans_dir.glob("*.json"):
            match = _VERSION_FILE.match(path.name)
            if match:
                task_ids.add(match.group("task_id"))
        return sorted(task_ids)

    def get_plan_summary(self, task_id: str) -> Optional[str]:
        """Get a brief summary of the latest plan, or None if not found."""
        plan = self.load_plan(task_id)
        if plan is None:
            return None

        return (
            f"v{plan.version}: {len(plan.steps)} steps, "
            f"complexity: {plan.complexity}, "
            f"summary: {plan.summary}"
        )


def glob_escape(value: str) -> str:
    """Escape glob metacharacters in a literal path component."""
    return re.sub(r"([*?\[])", r"[\1]", value)
