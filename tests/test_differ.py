"""
Tests for template diffing.
"""

import shutil
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from cliff.cloudformation.errors import DifferConfigurationError
from cliff.differ import ExternalDiffer, UnifiedDiffer, get_differ

DATA = Path(__file__).parent / "data"


class TestUnifiedDiffer:
    """Test the in-process differ."""

    def test_single_hunk(self) -> None:
        """Test one changed field yields one hunk with old and new lines."""
        deployed = (DATA / "template-before.yml").read_text()

        diff = UnifiedDiffer().diff(deployed, DATA / "template-after.yml")

        lines = diff.splitlines()
        assert lines[0] == "--- deployed"
        assert lines[1].endswith("template-after.yml")
        assert [line for line in lines if line.startswith("@@")] == ["@@ -1,5 +1,5 @@"]
        assert "-      TableName: test" in lines
        assert "+      TableName: test2" in lines

    def test_identical(self) -> None:
        """Test identical templates produce no output."""
        local = DATA / "template-after.yml"
        assert UnifiedDiffer().diff(local.read_text(), local) == ""


class TestExternalDiffer:
    """Test the external diff program wrapper."""

    @pytest.mark.parametrize("command", ["", "   ", "'unbalanced"])
    def test_invalid_command(self, command) -> None:
        """Test unusable commands are rejected up front."""
        with pytest.raises(DifferConfigurationError):
            ExternalDiffer(command)

    def test_invocation(self, tmp_path) -> None:
        """Test the deployed template is written to a temp file first."""
        local = tmp_path / "template.yml"
        local.write_text("new\n")
        seen = {}

        def fake_run(argv, **kwargs):
            seen["argv"] = argv
            seen["deployed"] = Path(argv[-2]).read_text()
            return Mock(returncode=1, stdout="diff output", stderr="")

        with patch("cliff.differ.subprocess.run", side_effect=fake_run):
            output = ExternalDiffer("diff -u").diff("old\n", local)

        assert output == "diff output"
        assert seen["argv"][:2] == ["diff", "-u"]
        assert seen["argv"][-1] == str(local)
        assert seen["argv"][-2].endswith(".yml")
        assert seen["deployed"] == "old\n"
        # temp file is removed afterwards
        assert not Path(seen["argv"][-2]).exists()

    def test_missing_program(self, tmp_path) -> None:
        """Test a missing executable is a configuration error."""
        local = tmp_path / "template.yml"
        local.write_text("new\n")

        with pytest.raises(DifferConfigurationError):
            ExternalDiffer("cliff-no-such-differ -u").diff("old\n", local)

    @pytest.mark.skipif(shutil.which("diff") is None, reason="diff not installed")
    def test_diff_program(self) -> None:
        """Test the default diff program output."""
        deployed = (DATA / "template-before.yml").read_text()

        diff = ExternalDiffer().diff(deployed, DATA / "template-after.yml")

        assert "-      TableName: test\n" in diff
        assert "+      TableName: test2\n" in diff


class TestGetDiffer:
    """Test differ selection."""

    def test_builtin(self) -> None:
        assert isinstance(get_differ("builtin"), UnifiedDiffer)

    def test_external(self) -> None:
        differ = get_differ("colordiff -u")
        assert isinstance(differ, ExternalDiffer)
        assert differ.argv == ["colordiff", "-u"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
