import yaml
from typer.testing import CliRunner

from pit.cli import app

runner = CliRunner()


def invoke(tmp_path, *args, **kwargs):
    return runner.invoke(app, ["--data-file", str(tmp_path / "pit.yaml"), *args], **kwargs)


def setup_task(tmp_path):
    assert invoke(tmp_path, "init", "App").exit_code == 0
    assert invoke(tmp_path, "add-issue", "App/Login").exit_code == 0
    result = invoke(tmp_path, "add-task", "App/Login/Form", "--importance", "High", "--item", "a", "--item", "b")
    assert result.exit_code == 0, result.output


def test_validate_nonexistent_file(tmp_path):
    result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
    assert result.exit_code != 0
    assert "File not found" in result.output


def test_validate_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("projects: [")
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code != 0
    assert "Invalid workspace" in result.output


def test_validate_valid(tmp_path):
    path = tmp_path / "good.yaml"
    path.write_text(yaml.dump({"projects": [{"name": "P", "issues": [{"name": "I"}]}]}))
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 0
    assert "is valid" in result.output


def test_uninitialised_workspace(tmp_path):
    result = invoke(tmp_path, "status")
    assert result.exit_code != 0
    assert "not initialised" in result.output


def test_check_items_and_confirm_completion(tmp_path):
    setup_task(tmp_path)
    result = invoke(tmp_path, "check", "App/Login/Form", "1")
    assert "in_progress" in result.output
    result = invoke(tmp_path, "check", "App/Login/Form", "2", input="y\n")
    assert result.exit_code == 0
    assert "App/Login/Form: completed" in result.output
    result = invoke(tmp_path, "status")
    assert "100.0%" in result.output


def test_declining_completion_keeps_in_progress(tmp_path):
    setup_task(tmp_path)
    invoke(tmp_path, "check", "App/Login/Form", "1")
    result = invoke(tmp_path, "check", "App/Login/Form", "2", input="n\n")
    assert "App/Login/Form: in_progress" in result.output


def test_sticky_status_from_cli(tmp_path):
    setup_task(tmp_path)
    invoke(tmp_path, "set-status", "App/Login/Form", "on_hold")
    result = invoke(tmp_path, "check", "App/Login/Form", "1")
    assert "on_hold" in result.output


def test_preview_and_missing_task(tmp_path):
    setup_task(tmp_path)
    invoke(tmp_path, "add-task", "App/Login/Docs", "--status", "completed")
    result = invoke(tmp_path, "preview", "App/Login", "--limit", "1")
    assert result.exit_code == 0
    assert "Form [High]" in result.output
    assert "Docs" not in result.output
    result = invoke(tmp_path, "check", "App/Login/Nope", "1")
    assert result.exit_code != 0


def test_delete_asks_first(tmp_path):
    setup_task(tmp_path)
    result = invoke(tmp_path, "delete", "App/Login/Form", input="y\n")
    assert "Deleted" in result.output
    data = yaml.safe_load((tmp_path / "pit.yaml").read_text())
    assert "tasks" not in data["projects"][0]["issues"][0]


def test_duplicate_task_is_reported(tmp_path):
    setup_task(tmp_path)
    result = invoke(tmp_path, "add-task", "App/Login/Form")
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_unknown_log_level_is_reported(tmp_path):
    result = runner.invoke(app, ["--log-level", "bogus", "--data-file", str(tmp_path / "pit.yaml"), "init", "App"])
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "log_level" in result.output
    assert not (tmp_path / "pit.yaml").exists()
