"""Unit tests for path helper functions."""

from pathlib import Path

from chain_deployments.paths import (
    get_bundle_dir,
    get_default_state_dir,
    get_output_paths,
    get_record_path,
)


class TestGetDefaultStateDir:
    """Test the get_default_state_dir function."""

    def test_returns_path_in_working_directory(self, tmp_path: Path, monkeypatch):
        """Test that default state dir is in the current working directory."""
        monkeypatch.chdir(tmp_path)
        state_dir = get_default_state_dir()

        assert isinstance(state_dir, Path)
        assert state_dir.name == ".chain-deployments"
        assert state_dir.parent == Path.cwd()

    def test_returns_absolute_path(self):
        """Test that returned path is absolute."""
        assert get_default_state_dir().is_absolute()


class TestGetOutputPaths:
    """Test the get_output_paths function."""

    def test_returns_tuple_of_three_paths(self):
        """Test that function returns deployments, reports and verification dirs."""
        result = get_output_paths()

        assert isinstance(result, tuple)
        assert len(result) == 3
        assert all(isinstance(p, Path) for p in result)

    def test_default_paths_under_state_dir(self, tmp_path: Path, monkeypatch):
        """Test that default paths live in ./.chain-deployments/."""
        monkeypatch.chdir(tmp_path)
        deployments_dir, reports_dir, verification_dir = get_output_paths()

        expected = Path.cwd() / ".chain-deployments"
        assert deployments_dir == expected / "deployments"
        assert reports_dir == expected / "reports"
        assert verification_dir == expected / "verification"

    def test_custom_output_root(self, tmp_path: Path):
        """Test that a custom output root is honoured."""
        deployments_dir, reports_dir, verification_dir = get_output_paths(tmp_path / "out")

        assert deployments_dir == tmp_path / "out" / "deployments"
        assert reports_dir == tmp_path / "out" / "reports"
        assert verification_dir == tmp_path / "out" / "verification"

    def test_relative_output_root_is_made_absolute(self, tmp_path: Path, monkeypatch):
        """Test that relative output roots are resolved against the working directory."""
        monkeypatch.chdir(tmp_path)
        deployments_dir, _, _ = get_output_paths("out")

        assert deployments_dir.is_absolute()
        assert deployments_dir == Path.cwd() / "out" / "deployments"


class TestRecordAndBundlePaths:
    """Test per-deployment and per-contract path helpers."""

    def test_record_path_is_namespaced_by_deployment_id(self, tmp_path: Path):
        """Test that each deployment ID owns its own directory."""
        path = get_record_path(tmp_path, "DeployAllModule-lisk")

        assert path == tmp_path / "DeployAllModule-lisk" / "deployed_addresses.json"

    def test_bundle_dir_is_namespaced_by_network(self, tmp_path: Path):
        """Test that bundles are grouped by network then contract."""
        assert get_bundle_dir(tmp_path, "lisk", "SwapRouter") == tmp_path / "lisk" / "SwapRouter"
