from pathlib import Path

import pytest

from arbor.config import ServerOptions, SiteOptions, load_config, load_setup
from arbor.errors import ConfigurationError
from arbor.site import Site


def test_defaults(tmp_path):
    options = load_config(tmp_path)
    assert options.cwd == tmp_path
    assert options.src == "."
    assert options.dest == "_site"
    assert options.includes == "_includes"
    assert options.location == "http://localhost"
    assert options.pretty_urls is True
    assert options.server == ServerOptions()


def test_config_file_and_overrides(tmp_path):
    (tmp_path / "arbor.yaml").write_text(
        "src: content\ndest: public\nlocation: https://example.com\n"
        "flags: [beta]\nserver:\n  port: 4000\n",
        encoding="utf-8",
    )
    options = load_config(tmp_path, dest="out", dev=None)
    assert options.src == "content"
    assert options.dest == "out"
    assert options.dev is False
    assert options.flags == ["beta"]
    assert options.location == "https://example.com"
    assert options.server.port == 4000


def test_yml_extension_is_accepted(tmp_path):
    (tmp_path / "arbor.yml").write_text("metrics: true\n", encoding="utf-8")
    assert load_config(tmp_path).metrics is True


def test_invalid_configuration(tmp_path):
    (tmp_path / "arbor.yaml").write_text("unknown_key: 1\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="unknown_key"):
        load_config(tmp_path)

    (tmp_path / "arbor.yaml").write_text("- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(tmp_path)

    (tmp_path / "arbor.yaml").write_text("src: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(tmp_path)

    with pytest.raises(ConfigurationError):
        SiteOptions(location="not a url")


def test_site_accepts_options_mappings_and_overrides(tmp_path):
    options = SiteOptions(cwd=tmp_path)
    assert Site(options).options is options
    assert Site(options, dev=True).options.dev is True
    assert Site({"cwd": tmp_path, "dest": "out"}).options.dest == "out"
    with pytest.raises(ConfigurationError):
        Site(cwd=tmp_path, nope=1)


def test_load_setup_applies_the_project_module(tmp_path):
    (tmp_path / "_config.py").write_text(
        "def setup(site):\n    site.data('configured', True)\n",
        encoding="utf-8",
    )
    site = Site(cwd=tmp_path)
    assert load_setup(site) is True
    assert site.extra_data == {"configured": True}


def test_load_setup_without_module(tmp_path):
    site = Site(cwd=tmp_path)
    assert load_setup(site) is False

    bad = tmp_path / "other.py"
    bad.write_text("value = 1\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_setup(site, Path(bad))
