"""
Template diffing between the deployed and the local template.
"""

import difflib
import logging
import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import List, Union

from .cloudformation.errors import DifferConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DIFFER = "diff -u"
BUILTIN_DIFFER = "builtin"


class ExternalDiffer:
    """Run an external diff program over the two templates."""

    def __init__(self, command: str = DEFAULT_DIFFER):
        self.command = command
        try:
            self.argv: List[str] = shlex.split(command)
        except ValueError:
            raise DifferConfigurationError(command)
        if not self.argv:
            raise DifferConfigurationError(command)

    def diff(self, current: str, local_path: Union[str, Path]) -> str:
        """Diff the deployed template text against the local template file."""
        local_path = Path(local_path)
        fd, tmp_path = tempfile.mkstemp(suffix=local_path.suffix, prefix="cliff-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(current)

            try:
                result = subprocess.run(
                    self.argv + [tmp_path, str(local_path)],
                    capture_output=True,
                    text=True,
                )
            except FileNotFoundError:
                raise DifferConfigurationError(self.command)

            # diff(1) exits 1 when the inputs differ
            if result.returncode > 1:
                logger.warning(
                    f"{self.argv[0]} exited with {result.returncode}: {result.stderr.strip()}"
                )
            return result.stdout
        finally:
            os.unlink(tmp_path)


class UnifiedDiffer:
    """In-process unified diff, for hosts without a diff program."""

    def __init__(self, context: int = 3):
        self.context = context

    def diff(self, current: str, local_path: Union[str, Path]) -> str:
        local_path = Path(local_path)
        local = local_path.read_text(encoding="utf-8")
        lines = difflib.unified_diff(
            current.splitlines(),
            local.splitlines(),
            fromfile="deployed",
            tofile=str(local_path),
            n=self.context,
            lineterm="",
        )
        text = "\n".join(lines)
        return f"{text}\n" if text else ""


def get_differ(command: str = DEFAULT_DIFFER):
    """Build the differ named by a configured command."""
    if command.strip() == BUILTIN_DIFFER:
        return UnifiedDiffer()
    return ExternalDiffer(command)
