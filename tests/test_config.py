"""Tests for analysis config loading."""

from donor_journey.config import AnalysisConfig, get_config_path, load_analysis_config


def _write(tmp_path, text):
    path = tmp_path / "analysis.yaml"
    path.write_text(text)
    return path


class TestLoadAnalysisConfig:
    def test_reads_analysis_section(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DONOR_JOURNEY_LLM_MODEL", raising=False)
        path = _write(tmp_path, "analysis:\n  donation_limit: 10\n  max_concurrency: 8\n")
        config = load_analysis_config(path)
        assert config.donation_limit == 10
        assert config.max_concurrency == 8
        assert config.communication_thread_limit == AnalysisConfig().communication_thread_limit

    def test_unknown_keys_ignored(self, tmp_path):
        path = _write(tmp_path, "analysis:\n  prompt_max_threads: 3\n  colour: blue\n")
        assert load_analysis_config(path).prompt_max_threads == 3

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DONOR_JOURNEY_LLM_MODEL", raising=False)
        assert load_analysis_config(tmp_path / "nope.yaml") == AnalysisConfig()

    def test_broken_yaml_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DONOR_JOURNEY_LLM_MODEL", raising=False)
        path = _write(tmp_path, "analysis: [unclosed\n")
        assert load_analysis_config(path) == AnalysisConfig()

    def test_env_model_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DONOR_JOURNEY_LLM_MODEL", "claude-haiku-4-5")
        path = _write(tmp_path, "analysis:\n  model: gpt-4o\n")
        assert load_analysis_config(path).model == "claude-haiku-4-5"

    def test_concurrency_clamped(self, tmp_path):
        path = _write(tmp_path, "analysis:\n  max_concurrency: 0\n")
        assert load_analysis_config(path).max_concurrency == 1

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "analysis:\n  donation_limit: 7\n")
        monkeypatch.setenv("DONOR_JOURNEY_CONFIG", str(path))
        assert get_config_path() == path.resolve()
        assert load_analysis_config().donation_limit == 7

    def test_shipped_config_loads(self, monkeypatch):
        monkeypatch.delenv("DONOR_JOURNEY_CONFIG", raising=False)
        assert get_config_path().exists()
        assert load_analysis_config().max_concurrency >= 1
