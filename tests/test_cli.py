"""
Tests for CLI commands.
"""

import json
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from symbiosis.cli.main import cli
from symbiosis.core.config import ConfigManager
from symbiosis.core.llm import InferenceAuthError
from symbiosis.core.persistence import PersistenceWorker
from symbiosis.core.pipeline import ConversationPipeline


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(temp_dir):
    """Point every ConfigManager() the CLI creates at a temp directory."""
    with patch("symbiosis.cli.main.ConfigManager", lambda: ConfigManager(base_dir=temp_dir)):
        yield temp_dir


def fake_pipeline(llm):
    def _build(settings, model=None):
        return ConversationPipeline(llm, settings=settings, worker=PersistenceWorker())

    return _build


class RejectingLLM:
    model = "test-model"

    def invoke(self, messages, schema, validator=None, label="LLM"):
        raise InferenceAuthError(self.model, 401)


class TestCliHelp:
    def test_main_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Symbiosis" in result.output
        assert "chat" in result.output
        assert "ask" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "symbiosis" in result.output


class TestAsk:
    def test_json_output(self, runner, scripted_llm):
        llm = scripted_llm({"Generation": {"response": "Hello there.", "mood": "joyful"}})

        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(llm)):
            result = runner.invoke(cli, ["ask", "hi", "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert payload["response"] == "Hello there."
        assert payload["mood"] == "JOYFUL"

    def test_rendered_output(self, runner, scripted_llm):
        llm = scripted_llm({"Generation": {"response": "Hello there.", "mood": "joyful"}})

        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(llm)):
            result = runner.invoke(cli, ["ask", "hi"])

        assert result.exit_code == 0
        assert "Hello there." in result.output
        assert "JOYFUL" in result.output

    def test_director_flag(self, runner, scripted_llm):
        llm = scripted_llm({"DirectorAI": {"intent": "CHAT", "response": "Hmm."}})

        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(llm)):
            result = runner.invoke(cli, ["ask", "thoughts?", "--director", "--json"])

        assert result.exit_code == 0
        assert "DirectorAI" in llm.labels()

    def test_auth_failure_exits(self, runner):
        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(RejectingLLM())):
            result = runner.invoke(cli, ["ask", "hi"])

        assert result.exit_code == 1
        assert "Authentication failed" in result.output

    def test_missing_api_key(self, runner, config_dir):
        os.environ.pop("OPENROUTER_API_KEY", None)

        result = runner.invoke(cli, ["ask", "hi"])

        assert result.exit_code == 1
        assert "OPENROUTER_API_KEY is not set" in result.output

    def test_invalid_settings_file(self, runner, temp_dir):
        bad = temp_dir / "symbiosis.yaml"
        bad.write_text("inference:\n  max_attempts: 0\n")

        result = runner.invoke(cli, ["--config", str(bad), "ask", "hi"])

        assert result.exit_code == 1
        assert "max_attempts" in result.output


class TestChat:
    def test_repl_round_trip(self, runner, scripted_llm):
        llm = scripted_llm({"Generation": {"response": "Nice to see you.", "mood": "joyful"}})

        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(llm)):
            result = runner.invoke(cli, ["chat"], input="hello\n/quit\n")

        assert result.exit_code == 0
        assert "Nice to see you." in result.output

    def test_mode_toggle(self, runner, scripted_llm):
        llm = scripted_llm({"DirectorAI": {"intent": "CHAT", "response": "Hmm."}})

        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(llm)):
            result = runner.invoke(cli, ["chat"], input="/director\nwho is here?\n/quit\n")

        assert result.exit_code == 0
        assert "director=True" in result.output
        assert llm.labels()[0] == "DirectorAI"

    def test_model_switch(self, runner, scripted_llm):
        llm = scripted_llm()

        with patch("symbiosis.cli.main.build_pipeline", fake_pipeline(llm)):
            result = runner.invoke(cli, ["chat"], input="/model openrouter/other\n/quit\n")

        assert result.exit_code == 0
        assert llm.model == "openrouter/other"


class TestConfigCommands:
    def test_set_and_list(self, runner, config_dir):
        result = runner.invoke(cli, ["config", "set", "SYMBIOSIS_STORE_URL", "https://s.example.com"])
        assert result.exit_code == 0
        assert "Saved SYMBIOSIS_STORE_URL" in result.output

        result = runner.invoke(cli, ["config", "list"])
        assert result.exit_code == 0
        assert "SYMBIOSIS_STORE_URL" in result.output

    def test_delete(self, runner, config_dir):
        runner.invoke(cli, ["config", "set", "SYMBIOSIS_MODEL", "m"])

        result = runner.invoke(cli, ["config", "delete", "SYMBIOSIS_MODEL"])
        assert "Deleted SYMBIOSIS_MODEL" in result.output

        result = runner.invoke(cli, ["config", "delete", "SYMBIOSIS_MODEL"])
        assert "Key not found" in result.output

    def test_list_empty(self, runner, config_dir):
        result = runner.invoke(cli, ["config", "list"])
        assert "Nothing configured" in result.output
