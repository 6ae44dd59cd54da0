import json

from typer.testing import CliRunner

from buildcopy.cli.cli import app

runner = CliRunner()


def _home(tmp_path):
    home = tmp_path / "home"
    for job in ("lib", "app"):
        (home / "jobs" / job).mkdir(parents=True)
        (home / "jobs" / job / "job.json").write_text("{}")
    for number, kept in ((1, False), (2, True)):
        build_dir = home / "jobs" / "lib" / "builds" / str(number)
        (build_dir / "archive").mkdir(parents=True)
        (build_dir / "archive" / f"lib-{number}.jar").write_text(f"jar {number}")
        (build_dir / "build.json").write_text(json.dumps({"keep_forever": kept}))
    app_dir = home / "jobs" / "app" / "builds" / "1"
    app_dir.mkdir(parents=True)
    (app_dir / "build.json").write_text("{}")
    return home


def test_builds_list(tmp_path):
    home = _home(tmp_path)

    result = runner.invoke(app, ["--home", str(home), "builds", "list", "lib"])

    assert result.exit_code == 0, result.output
    assert "lib" in result.output


def test_builds_list_unknown_job(tmp_path):
    result = runner.invoke(app, ["--home", str(_home(tmp_path)), "builds", "list", "nope"])

    assert result.exit_code == 1


def test_builds_pick(tmp_path):
    home = _home(tmp_path)

    result = runner.invoke(
        app, ["--home", str(home), "builds", "pick", "lib", "--selector", "lastCompleted", "--not", "--saved"]
    )

    assert result.exit_code == 0, result.output
    assert "Selected lib #1" in result.output


def test_builds_pick_rejects_bad_selector(tmp_path):
    result = runner.invoke(app, ["--home", str(_home(tmp_path)), "builds", "pick", "lib", "--selector", "bogus"])

    assert result.exit_code == 2


def test_copy_writes_files_and_records_provenance(tmp_path):
    home = _home(tmp_path)

    result = runner.invoke(
        app,
        ["--home", str(home), "copy", "lib", "--copier", "app#1", "--selector", "saved", "--target", "deps"],
    )

    assert result.exit_code == 0, result.output
    workspace = home / "jobs" / "app" / "builds" / "1" / "workspace"
    assert (workspace / "deps" / "lib-2.jar").read_text() == "jar 2"

    copier_data = json.loads((home / "jobs" / "app" / "builds" / "1" / "build.json").read_text())
    assert copier_data["copied_artifacts"] == [{"job": "lib", "number": 2, "files": ["lib-2.jar"]}]
    assert set(copier_data["fingerprints"]) == {"lib-2.jar"}
    source_data = json.loads((home / "jobs" / "lib" / "builds" / "2" / "build.json").read_text())
    assert source_data["keep_forever"] is True
    assert set(source_data["fingerprints"]) == {"lib-2.jar"}
    assert (home / "fingerprints.json").is_file()


def test_copy_unknown_project_fails(tmp_path):
    result = runner.invoke(app, ["--home", str(_home(tmp_path)), "copy", "nope", "--copier", "app#1"])

    assert result.exit_code == 1
    assert "Unable to find project" in result.output


def test_copy_optional_without_match(tmp_path):
    result = runner.invoke(
        app,
        ["--home", str(_home(tmp_path)), "copy", "lib", "--copier", "app#1", "--param", "X=1", "--optional"],
    )

    assert result.exit_code == 0, result.output
