import json

import pytest
from rich.console import Console

import results_cli
from results_store import ResultsStore
from task_context import UserContext


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'settings': {
        'database_path': str(tmp_path / "cli.db"),
        'output_dir': str(tmp_path / "exports"),
        'log_file': str(tmp_path / "cli.log"),
        'notify_console': False,
    }}))
    return path


@pytest.fixture
def output(monkeypatch):
    console = Console(record=True, width=200)
    monkeypatch.setattr(results_cli, "console", console)
    return console


@pytest.fixture
def results_file(tmp_path):
    path = tmp_path / "clinics.json"
    path.write_text(json.dumps({"results": {"results": [
        {"organizationName": "Alpha", "email": "info@alpha.pt"},
        {"organizationName": "Beta"},
    ]}}))
    return path


def _process(config_file, results_file, task_id="task_1"):
    return results_cli.main([
        '-c', str(config_file), 'process', str(results_file),
        '--task-id', task_id, '--user', 'user_a', '--query', 'clinics',
    ])


def test_process_saves_accepted_results(tmp_path, config_file, results_file):
    assert _process(config_file, results_file) == 0

    store = ResultsStore(str(tmp_path / "cli.db"))
    rows = store.get_results_for_task(UserContext("user_a"), "task_1")
    assert [r['organization_name'] for r in rows] == ["Alpha"]
    assert rows[0]['task_name'] == "clinics"


def test_process_reports_summary(config_file, results_file, output):
    _process(config_file, results_file)

    text = output.export_text()
    assert "Found 1 organizations with contact details (out of 2 analyzed)" in text
    assert "Saved 1 contacts" in text


def test_process_without_contacts(tmp_path, config_file, output):
    path = tmp_path / "no_contacts.json"
    path.write_text(json.dumps([{"name": f"Org {i}", "website": "https://org.pt"} for i in range(5)]))

    assert _process(config_file, path) == 0

    text = output.export_text()
    assert "No contacts found among 5 organizations" in text
    assert "Saved 0 contacts" not in text


def test_process_empty_results(tmp_path, config_file, output):
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"results": []}))

    assert _process(config_file, path) == 0
    assert "No organizations were found for this task" in output.export_text()


def test_names_with_markup_are_shown_verbatim(tmp_path, config_file, output):
    path = tmp_path / "markup.json"
    path.write_text(json.dumps([{"name": "Acme [/b] Ltd", "email": "a@a.pt"}]))
    _process(config_file, path, task_id="[bold]t")

    assert results_cli.main(['-c', str(config_file), 'results', '--user', 'user_a']) == 0
    assert results_cli.main(['-c', str(config_file), 'history', '--user', 'user_a']) == 0

    text = output.export_text()
    assert "Acme [/b] Ltd" in text
    assert "[bold]t" in text


def test_blank_user_is_rejected(config_file, results_file, output):
    code = results_cli.main([
        '-c', str(config_file), 'process', str(results_file), '--task-id', 't1', '--user', '  ',
    ])

    assert code == 2
    assert "Invalid results file" not in output.export_text()
    assert results_cli.main(['-c', str(config_file), 'stats', '--user', '']) == 2


def test_process_missing_file(tmp_path, config_file):
    assert _process(config_file, tmp_path / "nope.json") == 1


def test_browse_commands(config_file, results_file):
    _process(config_file, results_file)

    for command in (['history'], ['results'], ['results', '--search', 'alpha'], ['stats']):
        assert results_cli.main(['-c', str(config_file), *command, '--user', 'user_a']) == 0


def test_export(tmp_path, config_file, results_file):
    _process(config_file, results_file)

    code = results_cli.main([
        '-c', str(config_file), 'export', '--user', 'user_a', '--task-id', 'task_1', '-f', 'json',
    ])

    assert code == 0
    exported = list((tmp_path / "exports").glob("*.json"))
    assert len(exported) == 1


def test_export_unknown_task(config_file):
    assert results_cli.main(['-c', str(config_file), 'export', '--user', 'user_a', '--task-id', 'x']) == 1


def test_plan_attachments(tmp_path, config_file):
    path = tmp_path / "files.json"
    path.write_text(json.dumps([{"name": "a.pdf", "size": 1024, "upload_status": "uploaded"}]))

    assert results_cli.main(['-c', str(config_file), 'plan-attachments', str(path)]) == 0

    path.write_text(json.dumps([{"name": "a.pdf", "size": 1024, "upload_status": "failed"}]))
    assert results_cli.main(['-c', str(config_file), 'plan-attachments', str(path)]) == 1


def test_setup(tmp_path, config_file, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert results_cli.main(['-c', str(config_file), 'setup']) == 0
    assert (tmp_path / "config.sample.json").exists()
