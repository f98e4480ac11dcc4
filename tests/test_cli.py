"""Tests for the Command Line Interface (CLI) module."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_fetch_filter import cli
from git_fetch_filter.config import Config
from git_fetch_filter.constants import LOG_DIVIDER
from git_fetch_filter.schedule import MemoryStore, ScheduleEntry, ScheduleTable


@pytest.fixture(autouse=True)
def default_config(mocker: MagicMock) -> Config:
    """Isolates tests from the user's config file."""
    conf = Config()
    mocker.patch("git_fetch_filter.cli.Config.load", return_value=conf)
    return conf


@pytest.fixture
def table(mocker: MagicMock) -> ScheduleTable:
    """Replaces the crontab with an in-memory schedule table."""
    table = ScheduleTable(MemoryStore())
    mocker.patch("git_fetch_filter.cli.ScheduleTable", return_value=table)
    return table


def _entry(tag: str, log_path: Path) -> ScheduleEntry:
    return ScheduleEntry(
        repo_tag=tag,
        cron_expression="0 * * * *",
        env_vars={"GIT_REPO_DIR": f"/srv/{tag}"},
        command="/usr/local/bin/git-fetch-filter",
        log_path=str(log_path),
    )


# --- Flags ---


def test_help_exits_zero(capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["-h"])

    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert "[-r] [-l logfile] [-t] [-c] [-h]" in out
    assert "GIT_DEFAULT_BRANCH" in out


def test_unknown_flag_prints_usage_to_stderr_and_exits_one(
    capsys: pytest.CaptureFixture,
) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["-x"])

    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert "usage: git-fetch-filter" in captured.err
    assert "-x" in captured.err
    assert captured.out == ""


# --- Tail (-t) ---


def test_tail_single_entry_prints_last_lines(
    tmp_path: Path, table: ScheduleTable, capsys: pytest.CaptureFixture
) -> None:
    """Verifies -t prints the last 100 lines of the only configured log."""
    log = tmp_path / "api.log"
    log.write_text("".join(f"entry {i}\n" for i in range(150)))
    table.upsert(_entry("api", log))

    cli.main(["-t"])

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 100
    assert lines[0] == "entry 50"
    assert lines[-1] == "entry 149"


def test_tail_multiple_entries_prompts_for_choice(
    tmp_path: Path,
    table: ScheduleTable,
    mocker: MagicMock,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies that the user picks among several configured repositories."""
    (tmp_path / "api.log").write_text("api output\n")
    (tmp_path / "web.log").write_text("web output\n")
    table.upsert(_entry("api", tmp_path / "api.log"))
    table.upsert(_entry("web", tmp_path / "web.log"))
    mock_ask = mocker.patch("git_fetch_filter.cli.Prompt.ask", return_value="2")

    cli.main(["-t"])

    mock_ask.assert_called_once_with("Choose [1-2]")
    out = capsys.readouterr().out
    assert "web output" in out
    assert "api output" not in out


@pytest.mark.parametrize("pick", ["0", "3", "two"])
def test_tail_invalid_choice_exits_one(
    tmp_path: Path, table: ScheduleTable, mocker: MagicMock, pick: str
) -> None:
    table.upsert(_entry("api", tmp_path / "api.log"))
    table.upsert(_entry("web", tmp_path / "web.log"))
    mocker.patch("git_fetch_filter.cli.Prompt.ask", return_value=pick)

    with pytest.raises(SystemExit) as exc:
        cli.main(["-t"])
    assert exc.value.code == 1


def test_tail_missing_log_exits_one(
    tmp_path: Path, table: ScheduleTable, capsys: pytest.CaptureFixture
) -> None:
    table.upsert(_entry("api", tmp_path / "never-written.log"))

    with pytest.raises(SystemExit) as exc:
        cli.main(["-t"])

    assert exc.value.code == 1
    assert "Log file not found" in capsys.readouterr().err


def test_tail_without_entries_exits_one(
    table: ScheduleTable, capsys: pytest.CaptureFixture
) -> None:
    table.store.write(["0 3 * * * /usr/bin/true"])

    with pytest.raises(SystemExit) as exc:
        cli.main(["-t"])

    assert exc.value.code == 1
    assert "No cron jobs found" in capsys.readouterr().err


# --- Cron Setup (-c) ---


@pytest.fixture
def setup_env(mocker: MagicMock) -> MagicMock:
    """Mocks the executable lookup and git detection used by -c."""
    mocker.patch(
        "git_fetch_filter.cli.get_executable",
        return_value="/usr/local/bin/git-fetch-filter",
    )
    mock_cls = mocker.patch("git_fetch_filter.cli.GitRepo")
    mock_cls.return_value.detect_default_branch.return_value = "main"
    return mock_cls


def test_setup_schedule_installs_entry(
    tmp_path: Path, table: ScheduleTable, setup_env: MagicMock, mocker: MagicMock
) -> None:
    """Verifies the interactive flow produces one tagged entry per repo."""
    repo_dir = tmp_path / "webapp"
    repo_dir.mkdir()
    log = tmp_path / "logs" / "webapp.log"
    mock_ask = mocker.patch(
        "git_fetch_filter.cli.Prompt.ask",
        side_effect=[str(repo_dir), "origin", "main", "5", "45", str(log)],
    )

    cli.main(["-c"])

    entries = table.list_entries()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.repo_tag == "webapp"
    assert entry.cron_expression == "*/45 * * * *"
    assert entry.env_vars == {
        "GIT_REPO_DIR": str(repo_dir.resolve()),
        "GIT_REMOTE": "origin",
        "GIT_DEFAULT_BRANCH": "main",
    }
    assert entry.command == "/usr/local/bin/git-fetch-filter"
    assert entry.log_path == str(log)

    # The detected branch is offered as the default answer.
    mock_ask.assert_any_call("Default branch to always track", default="main")


def test_setup_schedule_rerun_replaces_entry(
    tmp_path: Path, table: ScheduleTable, setup_env: MagicMock, mocker: MagicMock
) -> None:
    repo_dir = tmp_path / "webapp"
    repo_dir.mkdir()
    answers = [str(repo_dir), "origin", "main", "1", str(tmp_path / "a.log")]
    mocker.patch("git_fetch_filter.cli.Prompt.ask", side_effect=answers)
    cli.setup_schedule(Config(), table)

    answers = [str(repo_dir), "origin", "main", "4", str(tmp_path / "b.log")]
    mocker.patch("git_fetch_filter.cli.Prompt.ask", side_effect=answers)
    cli.setup_schedule(Config(), table)

    entries = table.list_entries()
    assert len(entries) == 1
    assert entries[0].cron_expression == "0 */4 * * *"
    assert entries[0].log_path == str(tmp_path / "b.log")


def test_setup_schedule_falls_back_when_not_a_repo(
    tmp_path: Path, table: ScheduleTable, setup_env: MagicMock, mocker: MagicMock
) -> None:
    """Verifies the configured fallback is offered when detection fails."""
    setup_env.side_effect = ValueError("Not a git repository")
    mock_ask = mocker.patch(
        "git_fetch_filter.cli.Prompt.ask",
        side_effect=[str(tmp_path), "origin", "dev", "2", str(tmp_path / "x.log")],
    )

    cli.setup_schedule(Config(), table)

    mock_ask.assert_any_call("Default branch to always track", default="dev")
    assert table.list_entries()[0].cron_expression == "0 * * * *"


@pytest.mark.parametrize(
    ("answers", "message"),
    [
        (["{repo}", "origin", "main", "9"], "Invalid choice"),
        (["{repo}", "origin", "main", "5", "10"], "30 or greater"),
        (["{repo}", "origin", "my branch"], "Invalid branch name"),
        (["{repo}/missing"], "Directory not found"),
    ],
)
def test_setup_schedule_bad_input_exits_one_without_writing(
    tmp_path: Path,
    table: ScheduleTable,
    setup_env: MagicMock,
    mocker: MagicMock,
    capsys: pytest.CaptureFixture,
    answers: list[str],
    message: str,
) -> None:
    mocker.patch(
        "git_fetch_filter.cli.Prompt.ask",
        side_effect=[a.format(repo=tmp_path) for a in answers],
    )

    with pytest.raises(SystemExit) as exc:
        cli.main(["-c"])

    assert exc.value.code == 1
    assert message in capsys.readouterr().err
    assert table.store.read() == []


def test_get_executable_missing(mocker: MagicMock) -> None:
    mocker.patch("shutil.which", return_value=None)
    with pytest.raises(cli.RepoEnvironmentError, match="Ensure the package"):
        cli.get_executable()


# --- Fetch Run ---


@pytest.fixture
def git_repo(mocker: MagicMock) -> MagicMock:
    """Mocks GitRepo for fetch runs."""
    mock_cls = mocker.patch("git_fetch_filter.cli.GitRepo")
    repo = mock_cls.return_value
    repo.local_branches.return_value = ["main", "feature-a"]
    repo.remote_heads.return_value = ["main", "feature-a", "feature-b"]
    repo.detect_default_branch.return_value = "main"
    repo.fetch.return_value = ""
    return mock_cls


def test_run_fetch_logs_to_file(
    tmp_path: Path, git_repo: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies -l writes a divider and the run output to the log file."""
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    monkeypatch.delenv("GIT_REMOTE", raising=False)
    monkeypatch.delenv("GIT_DEFAULT_BRANCH", raising=False)
    log = tmp_path / "logs" / "run.log"

    cli.main(["-l", str(log)])

    content = log.read_text().splitlines()
    assert content[0] == LOG_DIVIDER
    assert any("Found remote ref for 'feature-a'" in line for line in content)
    assert content[-1].endswith("Done.")

    repo = git_repo.return_value
    remote, specs = repo.fetch.call_args.args
    assert remote == "origin"
    assert len(specs) == 2
    repo.remote_tracking_branches.assert_not_called()


def test_run_fetch_refresh_flag(
    tmp_path: Path, git_repo: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    monkeypatch.setenv("GIT_REMOTE", "upstream")
    monkeypatch.setenv("GIT_DEFAULT_BRANCH", "main")
    repo = git_repo.return_value
    repo.remote_tracking_branches.return_value = ["old"]

    cli.main(["-r"])

    repo.delete_remote_tracking.assert_called_once_with("upstream", "old")
    repo.detect_default_branch.assert_not_called()


def test_run_fetch_rotates_marked_log(
    tmp_path: Path,
    git_repo: MagicMock,
    default_config: Config,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Verifies an oversized log is cut to the limit before new output."""
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    default_config.limits.max_log_lines = 10
    log = tmp_path / "run.log"
    log.write_text(LOG_DIVIDER + "\n" + "".join(f"old {i}\n" for i in range(50)))

    cli.main(["-l", str(log)])

    content = log.read_text().splitlines()
    assert "old 39" not in content
    assert content[:10] == [f"old {i}" for i in range(40, 50)]
    assert content[10] == LOG_DIVIDER


def test_run_fetch_missing_directory_exits_one(
    tmp_path: Path,
    git_repo: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path / "nowhere"))

    with pytest.raises(SystemExit) as exc:
        cli.main([])

    assert exc.value.code == 1
    assert "not found" in capsys.readouterr().out
    git_repo.assert_not_called()


def test_run_fetch_not_a_repository_exits_one(
    tmp_path: Path,
    git_repo: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    git_repo.side_effect = ValueError("Not a git repository")

    with pytest.raises(SystemExit) as exc:
        cli.main([])

    assert exc.value.code == 1
    assert "is not a git repository" in capsys.readouterr().out


def test_run_fetch_git_failure_exits_one(
    tmp_path: Path,
    git_repo: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    git_repo.return_value.remote_heads.side_effect = RuntimeError(
        "Git error: could not read from remote"
    )

    with pytest.raises(SystemExit) as exc:
        cli.main([])

    assert exc.value.code == 1
    assert "could not read from remote" in capsys.readouterr().out


def test_run_fetch_invalid_default_branch_exits_one(
    tmp_path: Path,
    git_repo: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies a malformed GIT_DEFAULT_BRANCH is reported, not raised."""
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    monkeypatch.setenv("GIT_DEFAULT_BRANCH", "my branch")

    with pytest.raises(SystemExit) as exc:
        cli.main([])

    assert exc.value.code == 1
    out = capsys.readouterr().out
    assert "ERROR: GIT_DEFAULT_BRANCH: Invalid branch name 'my branch'" in out
    git_repo.return_value.fetch.assert_not_called()


def test_run_fetch_with_detached_head_fetches_normally(
    tmp_path: Path, mocker: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies a detached HEAD checkout still fetches its local branches."""
    monkeypatch.setenv("GIT_REPO_DIR", str(tmp_path))
    monkeypatch.setenv("GIT_DEFAULT_BRANCH", "main")
    calls: list[list[str]] = []

    def fake_git(cmd: list[str], **kwargs: object) -> MagicMock:
        calls.append(cmd)
        outputs = {
            "rev-parse": ".git\n",
            "branch": "(HEAD detached at e54e6aa)\nmain\n",
            "for-each-ref": "main\n",
            "ls-remote": "1111111111111111111111111111111111111111\trefs/heads/main\n",
            "fetch": "",
        }
        return MagicMock(stdout=outputs[cmd[1]])

    mocker.patch("subprocess.run", side_effect=fake_git)

    cli.main([])

    assert [
        "git",
        "fetch",
        "origin",
        "+refs/heads/main:refs/remotes/origin/main",
    ] in calls
