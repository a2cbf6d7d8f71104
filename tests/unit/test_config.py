"""
Unit tests for configuration loading and SessionConfig.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from expertdeck import config as config_module
from expertdeck.config import (
    DEFAULT_EXPERTS,
    SessionConfig,
    TimeoutConfig,
    compute_session_hash,
    load_config,
)


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "home" / "config.yaml"
    monkeypatch.setattr(config_module, "CONFIG_PATH", path)
    return path


class TestLoadConfig:
    """Test reading the user config file"""

    def test_missing_file_is_empty(self, config_path):
        assert load_config() == {}

    def test_valid_file(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("num_experts: 2\nsession_prefix: deck\n")
        assert load_config() == {"num_experts": 2, "session_prefix": "deck"}

    def test_malformed_yaml_is_empty(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("experts: [unclosed\n")
        assert load_config() == {}

    def test_non_mapping_is_empty(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("- a\n- b\n")
        assert load_config() == {}


class TestTimeoutConfig:
    def test_defaults(self):
        timeouts = TimeoutConfig.from_dict(None)
        assert timeouts.agent_ready == 30.0
        assert timeouts.graceful_shutdown == 10.0
        assert timeouts.relocation_grace == 3.0
        assert timeouts.stuck_after == 600.0

    def test_partial_override(self):
        timeouts = TimeoutConfig.from_dict({"agent_ready": "5", "stuck_after": 60})
        assert timeouts.agent_ready == 5.0
        assert timeouts.stuck_after == 60.0
        assert timeouts.graceful_shutdown == 10.0

    def test_bad_values_fall_back(self):
        assert TimeoutConfig.from_dict({"agent_ready": "soon"}).agent_ready == 30.0


class TestSessionHash:
    def test_hash_is_eight_hex_chars(self, tmp_path):
        session_hash = compute_session_hash(tmp_path)
        assert len(session_hash) == 8
        int(session_hash, 16)

    def test_same_path_same_hash(self, tmp_path):
        (tmp_path / "a").mkdir()
        assert compute_session_hash(tmp_path / "a") == compute_session_hash(tmp_path / "a" / ".." / "a")

    def test_different_paths_differ(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        assert compute_session_hash(tmp_path / "a") != compute_session_hash(tmp_path / "b")


class TestSessionConfig:
    """Test building a session config for a project"""

    def test_defaults(self, tmp_path):
        config = SessionConfig.from_project(tmp_path, config_data={})

        assert config.experts == DEFAULT_EXPERTS
        assert config.num_experts == 4
        assert config.session_name == f"expertdeck-{compute_session_hash(tmp_path)}"
        assert config.data_root == tmp_path.resolve() / ".expertdeck"
        assert config.instructions_path == tmp_path.resolve() / "instructions"

    def test_num_experts_shrinks_and_grows(self, tmp_path):
        two = SessionConfig.from_project(tmp_path, num_experts=2, config_data={})
        six = SessionConfig.from_project(tmp_path, num_experts=6, config_data={})

        assert [e.name for e in two.experts] == ["architect", "frontend"]
        assert [e.name for e in six.experts][4:] == ["expert4", "expert5"]
        assert six.experts[5].role == "general"

    def test_num_experts_from_config(self, tmp_path):
        config = SessionConfig.from_project(tmp_path, config_data={"num_experts": 3})
        assert config.num_experts == 3

    def test_experts_from_config(self, tmp_path):
        config = SessionConfig.from_project(tmp_path, config_data={
            "experts": ["solo", {"name": "ops", "role": "backend", "color": "cyan"}, {}],
        })

        assert [e.name for e in config.experts] == ["solo", "ops", "expert2"]
        assert config.experts[0].role == "solo"
        assert config.experts[1].role == "backend"
        assert config.experts[1].color == "cyan"

    def test_claude_command_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLAUDE_COMMAND", "fake-claude")
        assert SessionConfig.from_project(tmp_path, config_data={}).claude_command == "fake-claude"

    def test_data_layout(self, tmp_path):
        config = SessionConfig.from_project(tmp_path, config_data={}, data_root=tmp_path / "data")

        assert config.status_file_path(2) == tmp_path / "data" / "queue" / "status" / "expert2"
        assert config.worktrees_path == tmp_path / "data" / "worktrees"

    def test_find_expert(self, tmp_path):
        config = SessionConfig.from_project(tmp_path, config_data={})

        assert config.find_expert("2") == 2
        assert config.find_expert("Backend") == 2
        assert config.find_expert("9") is None
        assert config.find_expert("nobody") is None

    def test_unknown_expert_names(self, tmp_path):
        config = SessionConfig.from_project(tmp_path, config_data={})
        assert config.get_expert_name(9) == "expert9"
        assert config.get_expert_role(9) == "general"
