"""Tests for the command line interface."""

import pytest


@pytest.fixture
def runner(tmp_path, monkeypatch):
    from typer.testing import CliRunner
    monkeypatch.setenv("CLAXIS_HOME", str(tmp_path))
    monkeypatch.delenv("CLAXIS_DB_PATH", raising=False)
    monkeypatch.delenv("CLAXIS_ANALYTICS_WEBHOOK", raising=False)
    (tmp_path / "salons.yaml").write_text("salon-1:\n  business_name: Studio Nord\n")
    return CliRunner()


class TestCli:

    def test_route(self, runner):
        from claxis.cli import app
        result = runner.invoke(app, ["route", "salon-1", "conv-1", "Can I book?", "-t", "booking_request"])
        assert result.exit_code == 0
        assert "gemini_flash" in result.output

    def test_unknown_salon_exits_nonzero(self, runner):
        from claxis.cli import app
        result = runner.invoke(app, ["route", "ghost", "conv-1", "hello"])
        assert result.exit_code == 1
        assert "SALON_NOT_FOUND" in result.output

    def test_settings_then_route(self, runner):
        from claxis.cli import app
        result = runner.invoke(app, ["settings", "ai", "salon-1", "--set", "deepseek_enabled=true"])
        assert result.exit_code == 0

        result = runner.invoke(app, [
            "route", "salon-1", "conv-1", "My color went wrong", "-t", "complex_problem_solving"])
        assert "deepseek_r1" in result.output

    def test_invalid_setting(self, runner):
        from claxis.cli import app
        result = runner.invoke(app, ["settings", "window", "salon-1", "--set", "free_window_hours=100"])
        assert result.exit_code == 1
        assert "Free window hours" in result.output

    def test_inbound_then_cost(self, runner):
        from claxis.cli import app
        assert runner.invoke(app, ["inbound", "salon-1", "conv-1"]).exit_code == 0
        result = runner.invoke(app, ["cost", "salon-1", "conv-1"])
        assert result.exit_code == 0
        assert "open" in result.output

    def test_timing_and_savings(self, runner):
        from claxis.cli import app
        result = runner.invoke(app, ["timing", "salon-1", "conv-1", "Thanks!", "-u", "low"])
        assert result.exit_code == 0
        assert "Delay" in result.output

        result = runner.invoke(app, ["savings", "salon-1", "-d", "7"])
        assert result.exit_code == 0
        assert "Delayed replies" in result.output

    def test_usage_commands(self, runner):
        from claxis.cli import app
        runner.invoke(app, ["route", "salon-1", "conv-1", "hello"])
        assert runner.invoke(app, ["usage", "stats", "salon-1"]).exit_code == 0
        assert runner.invoke(app, ["usage", "performance", "salon-1"]).exit_code == 0
        assert runner.invoke(app, ["usage", "allocation", "salon-1", "-m", "quality"]).exit_code == 0
