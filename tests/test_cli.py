"""Tests for the inkwell command-line interface."""

import pytest
import os
from pathlib import Path
from unittest.mock import patch

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from inkwell_pkg import cli


def cli_args(mode, content_dir, templates_dir, output_dir, *extra):
    return [mode, '--content', content_dir, '--templates', templates_dir, '--output', output_dir, *extra]


class TestCli:
    """Test cases for cli.main."""

    def test_build_hides_drafts(self, in_temp_dir, mock_content_dir, mock_templates_dir, mock_output_dir):
        cli.main(cli_args('build', mock_content_dir, mock_templates_dir, mock_output_dir))
        articles = Path(mock_output_dir) / 'articles'

        assert (articles / 'first-post' / 'index.html').exists()
        assert not (articles / 'work-in-progress').exists()
        assert not (articles / 'from-the-future').exists()

    def test_default_mode_is_build(self):
        assert cli.build_parser().parse_args([]).mode == 'build'

    def test_build_drafts_env_shows_drafts(self, in_temp_dir, monkeypatch, mock_content_dir, mock_templates_dir,
                                           mock_output_dir):
        monkeypatch.setenv('BUILD_DRAFTS', 'true')
        cli.main(cli_args('build', mock_content_dir, mock_templates_dir, mock_output_dir))

        assert (Path(mock_output_dir) / 'articles' / 'work-in-progress' / 'index.html').exists()

    def test_serve_builds_preview_then_serves(self, in_temp_dir, mock_content_dir, mock_templates_dir,
                                              mock_output_dir):
        with patch('inkwell_pkg.cli.serve') as mock_serve:
            cli.main(cli_args('serve', mock_content_dir, mock_templates_dir, mock_output_dir, '--port', '9000'))

        output_dir, port, generator = mock_serve.call_args[0]
        assert output_dir == mock_output_dir
        assert port == 9000
        assert generator.context.show_all_articles is True
        assert (Path(mock_output_dir) / 'articles' / 'from-the-future' / 'index.html').exists()

    def test_watch_builds_preview_then_watches(self, in_temp_dir, mock_content_dir, mock_templates_dir,
                                               mock_output_dir):
        with patch('inkwell_pkg.cli.watch') as mock_watch:
            cli.main(cli_args('watch', mock_content_dir, mock_templates_dir, mock_output_dir))

        generator = mock_watch.call_args[0][0]
        assert generator.context.show_all_articles is True

    def test_latest_limit_flag(self, in_temp_dir, mock_content_dir, mock_templates_dir, mock_output_dir):
        cli.main(cli_args('build', mock_content_dir, mock_templates_dir, mock_output_dir, '--latest-limit', '0'))
        index_html = (Path(mock_output_dir) / 'index.html').read_text()

        assert 'First Post' not in index_html

    def test_negative_latest_limit_rejected(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.build_parser().parse_args(['--latest-limit', '-1'])
        assert exc_info.value.code == 2
        assert 'must be zero or greater' in capsys.readouterr().err

    def test_missing_content_dir_exits_with_error(self, in_temp_dir, mock_templates_dir, mock_output_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(cli_args('build', '/nonexistent', mock_templates_dir, mock_output_dir))

        assert exc_info.value.code == 1
        assert 'Error: Content directory' in capsys.readouterr().err

    def test_config_file_is_used(self, in_temp_dir, mock_content_dir, mock_templates_dir, mock_output_dir):
        Path(in_temp_dir, 'inkwell.yml').write_text(
            f"content: {mock_content_dir}\ntemplates: {mock_templates_dir}\noutput: {mock_output_dir}\n"
            "articles_slug: writing\n"
        )
        cli.main([])

        assert (Path(mock_output_dir) / 'writing' / 'first-post' / 'index.html').exists()

    def test_init_creates_starter_project(self, in_temp_dir):
        cli.main(['--init', 'yml'])

        assert Path(in_temp_dir, 'inkwell.yml').exists()
        assert Path(in_temp_dir, 'src', 'articles', 'hello-world.md').exists()
        assert Path(in_temp_dir, 'src', 'assets', 'css', 'main.css').exists()

    def test_starter_project_builds_without_drafts(self, in_temp_dir):
        cli.main(['--init', 'yml'])
        cli.main([])

        assert Path(in_temp_dir, 'dist', 'index.html').exists()
        assert not Path(in_temp_dir, 'dist', 'articles', 'hello-world').exists()


class TestWatchHelpers:
    """Test cases for the watch loop helpers."""

    def test_snapshot_mtimes(self, mock_content_dir):
        mtimes = cli.snapshot_mtimes([mock_content_dir, None, '/nonexistent'])
        assert os.path.join(mock_content_dir, 'about.md') in mtimes

    def test_watch_rebuilds_on_change(self, in_temp_dir, mock_content_dir, mock_templates_dir, mock_output_dir):
        from inkwell_pkg.core import Inkwell
        generator = Inkwell(content_dir=mock_content_dir, templates_dir=mock_templates_dir,
                            output_dir=mock_output_dir)
        snapshots = [{'a': 1}, {'a': 2}]

        with patch.object(cli, 'snapshot_mtimes', side_effect=snapshots + [{'a': 2}]), \
                patch.object(cli.time, 'sleep', side_effect=[None, KeyboardInterrupt]), \
                patch.object(generator, 'build') as mock_build:
            cli.watch(generator, interval=0)

        mock_build.assert_called_once()

    def test_watch_survives_failed_rebuild(self, in_temp_dir, mock_content_dir, mock_templates_dir,
                                           mock_output_dir):
        from inkwell_pkg.core import Inkwell
        generator = Inkwell(content_dir=mock_content_dir, templates_dir=mock_templates_dir,
                            output_dir=mock_output_dir)
        snapshots = [{'a': 1}, {'a': 2}, {'a': 3}]

        with patch.object(cli, 'snapshot_mtimes', side_effect=snapshots), \
                patch.object(cli.time, 'sleep', side_effect=[None, None, KeyboardInterrupt]), \
                patch.object(generator, 'build', side_effect=[RuntimeError('undefined variable'), None]) as mock_build, \
                patch.object(generator.logger, 'error') as mock_error:
            cli.watch(generator, interval=0)

        assert mock_build.call_count == 2
        mock_error.assert_called_once_with("Rebuild failed: undefined variable")

    def test_snapshot_skips_excluded_dirs(self, temp_dir):
        root = Path(temp_dir)
        (root / 'dist').mkdir()
        (root / 'logs').mkdir()
        (root / 'post.md').write_text('post')
        (root / 'dist' / 'index.html').write_text('out')
        (root / 'logs' / 'build.log').write_text('log')

        mtimes = cli.snapshot_mtimes([temp_dir], [str(root / 'dist'), str(root / 'logs')])

        assert list(mtimes) == [str(root / 'post.md')]

    def test_watch_ignores_output_inside_content(self, in_temp_dir, mock_content_dir, mock_templates_dir):
        from inkwell_pkg.core import Inkwell
        output_dir = os.path.join(mock_content_dir, 'dist')
        generator = Inkwell(content_dir=mock_content_dir, templates_dir=mock_templates_dir,
                            output_dir=output_dir)
        generator.build()
        ticks = iter([lambda: Path(output_dir, 'new-page.html').write_text('x'), KeyboardInterrupt])

        def fake_sleep(_):
            tick = next(ticks)
            if tick is KeyboardInterrupt:
                raise KeyboardInterrupt
            tick()

        with patch.object(cli.time, 'sleep', side_effect=fake_sleep), \
                patch.object(generator, 'build') as mock_build:
            cli.watch(generator, interval=0)

        mock_build.assert_not_called()
