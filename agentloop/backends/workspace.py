"""Local directory workspace for step execution."""

import logging
import shutil
import time
from pathlib import Path
from typing import List, Set

logger = logging.getLogger(__name__)

SCRIPTS_DIR = ".agentloop_scripts"


class Workspace:
    """Directory steps run in.

    Generated scripts and prompts are kept in a hidden sub-directory so they
    are never reported as step outputs.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser().resolve()
        self.scripts_dir = self.root / SCRIPTS_DIR
        self._staged: Set[Path] = set()

    def ensure_exists(self) -> None:
        """Create the workspace directories if needed."""
        self.scripts_dir.mkdir(parents=True, exist_ok=True)

    def save_script(self, file_name: str, content: str) -> Path:
        """Write content under a unique name in the scripts directory."""
        self.ensure_exists()
        path = _unique_path(self.scripts_dir / file_name)
        path.write_text(content, encoding="utf-8")
        logger.debug("Saved script to %s", path)
        return path

    def stage_input(self, source: Path) -> Path:
        """Copy an input file into the workspace root under a unique name.

        Raises:
            FileNotFoundError: If the source file does not exist
        """
        source = Path(source).expanduser()
        if not source.is_file():
            raise FileNotFoundError(f"Input file not found: {source}")

        self.ensure_exists()
        target = _unique_path(self.root / source.name)
        shutil.copy2(source, target)
        self._staged.add(target)
        logger.debug("Copied input file %s to %s", source, target)
        return target

    def collect_outputs(self, since: float) -> List[str]:
        """List files modified at or after ``since`` (epoch seconds).

        Staged inputs and generated scripts are excluded. Paths are relative
        to the workspace root.
        """
        if not self.root.exists():
            return []

        outputs = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file() or path in self._staged:
                continue
            if self.scripts_dir in path.parents:
                continue
            if path.stat().st_mtime >= since:
                outputs.append(str(path.relative_to(self.root)))
        return outputs

    def read_file(self, name: str) -> str:
        """Read a workspace file as text.

        Raises:
            ValueError: If the name points outside the workspace
            FileNotFoundError: If the file does not exist
        """
        path = (self.root / name).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Path escapes workspace: {name}")
        return path.read_text(encoding="utf-8")

    def cleanup(self) -> None:
        """Remove generated scripts and prompts."""
        if self.scripts_dir.exists():
            shutil.rmtree(self.scripts_dir)

    @staticmethod
    def now() -> float:
        """Timestamp to pass to ``collect_outputs``."""
        return time.time()


def _unique_path(path: Path) -> Path:
    """Append ``_1``, ``_2``, ... to the stem until the path is free."""
    candidate = path
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        counter += 1
    return candidate
