"""Tests for the command-line entry point."""

from pathlib import Path

import pytest

from markbridge.cli import build_config, main, parse_args


class TestParseArgs:
    """Test argument parsing."""

    def test_url_is_default_command(self):
        args = parse_args(["https://wiki.example.com/display/ENG/Page", "--wait", "0"])
        assert args.command == "url"
        assert args.urls == ["https://wiki.example.com/display/ENG/Page"]
        assert args.wait == 0.0

    def test_file_command(self):
        args = parse_args(["file", "a.html", "b.html", "--base-url", "https://wiki.example.com"])
        assert args.command == "file"
        assert args.paths == [Path("a.html"), Path("b.html")]
        assert args.base_url == "https://wiki.example.com"

    def test_build_config(self, tmp_path):
        args = parse_args(
            ["url", "https://x/y", "--output", str(tmp_path), "--no-title", "--embed-images", "--timeout", "5"]
        )
        config = build_config(args)
        assert config.output_root == tmp_path.resolve()
        assert config.navigation_timeout == 5.0
        assert config.options.include_title is False
        assert config.options.include_front_matter is True
        assert config.options.embed_images is True


class TestMain:
    """Test end-to-end CLI runs on saved files."""

    def test_stdout(self, tmp_path, capsys, confluence_page):
        source = tmp_path / "page.html"
        source.write_text(confluence_page, encoding="utf-8")

        main(["file", str(source), "--stdout", "--no-front-matter"])

        out = capsys.readouterr().out
        assert out.startswith("# Release Notes\n")
        assert "| Name | Age |" in out

    def test_writes_files(self, tmp_path, confluence_page):
        source = tmp_path / "page.html"
        source.write_text(confluence_page, encoding="utf-8")
        output = tmp_path / "out"

        main(["file", str(source), "--output", str(output)])

        assert (output / "release-notes.md").read_text(encoding="utf-8").startswith("---\n")

    def test_all_failed_exits_nonzero(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(["file", str(tmp_path / "missing.html"), "--stdout"])
        assert excinfo.value.code == 1
