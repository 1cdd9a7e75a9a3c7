import json
from pathlib import Path

from click.testing import CliRunner

from arbor import __version__
from arbor.cli import cli


def create_project(root: Path) -> Path:
    (root / "posts").mkdir(parents=True)
    (root / "index.md").write_text("# Home\n", encoding="utf-8")
    (root / "posts" / "a.md").write_text("---\ntitle: A\n---\nA\n", encoding="utf-8")
    return root


def test_cli_build(monkeypatch, tmp_path):
    project = create_project(tmp_path)
    monkeypatch.chdir(project)
    runner = CliRunner()

    result = runner.invoke(cli, ["build", "--quiet"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 2 pages" in result.output
    assert (project / "_site" / "posts" / "a" / "index.html").is_file()

    result = runner.invoke(cli, ["build", "--dest", "public", "--metrics"], catch_exceptions=False)
    assert result.exit_code == 0
    assert (project / "public" / "index.html").is_file()


def test_cli_build_saves_metrics(monkeypatch, tmp_path):
    project = create_project(tmp_path)
    monkeypatch.chdir(project)

    result = CliRunner().invoke(
        cli, ["build", "--quiet", "--metrics-file", "timings.json"], catch_exceptions=False
    )
    assert result.exit_code == 0
    rows = json.loads((project / "timings.json").read_text(encoding="utf-8"))
    names = {row["name"] for row in rows}
    assert {"Build", "Load", "Render", "Save"} <= names


def test_cli_build_reads_config_and_setup(monkeypatch, tmp_path):
    project = create_project(tmp_path)
    (project / "arbor.yaml").write_text("dest: out\n", encoding="utf-8")
    (project / "_config.py").write_text(
        "def setup(site):\n"
        "    site.preprocess('.md', lambda page, site: setattr(page, 'content', 'configured'))\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(project)

    result = CliRunner().invoke(cli, ["build"], catch_exceptions=False)
    assert result.exit_code == 0
    assert (project / "out" / "index.html").read_text(encoding="utf-8") == "<p>configured</p>\n"


def test_cli_build_reports_failures(monkeypatch, tmp_path):
    project = create_project(tmp_path)
    (project / "broken.md").write_text("---\ntitle: [oops\n---\nbody", encoding="utf-8")
    monkeypatch.chdir(project)

    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "File: /broken.md" in result.output


def test_cli_build_rejects_bad_configuration(monkeypatch, tmp_path):
    project = create_project(tmp_path)
    monkeypatch.chdir(project)

    result = CliRunner().invoke(cli, ["build", "--location", "nowhere"])
    assert result.exit_code == 1
    assert "Invalid site location" in result.output


def test_cli_run(monkeypatch, tmp_path):
    project = create_project(tmp_path)
    (project / "_config.py").write_text(
        "def setup(site):\n"
        "    site.script('ok', lambda site: True)\n"
        "    site.script('fail', lambda site: False)\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(project)
    runner = CliRunner()

    assert runner.invoke(cli, ["run", "ok"], catch_exceptions=False).exit_code == 0
    result = runner.invoke(cli, ["run", "fail"])
    assert result.exit_code == 1
    assert "Script failed: fail" in result.output


def test_version_option():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_module_main_entrypoint():
    from arbor.__main__ import main

    assert callable(main)


def test_main_invokes_cli(monkeypatch):
    import arbor.cli as cli_mod

    called = {}

    def fake_cli():
        called["ran"] = True

    monkeypatch.setattr(cli_mod, "cli", fake_cli)
    cli_mod.main()
    assert called["ran"]
