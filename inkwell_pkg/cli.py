#!/usr/bin/env python3
"""
Command-line interface for Inkwell.
"""

import os
import sys
import argparse
import time
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from .core import Inkwell
from .settings import InkwellSettings
from .visibility import BuildContext

RUN_MODES = ['build', 'serve', 'watch']

SAMPLE_ARTICLE = """---
title: "Hello, world"
date: {date}
tags:
  - article
  - meta
published: false
---

This is a draft. It shows up when you run `inkwell serve` or `inkwell watch`,
and stays out of production builds until you set `published: true`.
"""

SAMPLE_CSS = """body { font-family: sans-serif; max-width: 48rem; margin: 0 auto; padding: 1rem; }
.badge { text-transform: uppercase; font-size: 0.75rem; padding: 0.1rem 0.4rem; border-radius: 0.25rem; }
.badge-draft { background: #fde68a; }
.badge-scheduled { background: #bfdbfe; }
"""


def non_negative_int(value):
    """argparse type for counts that may be zero."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be zero or greater, got {number}")
    return number


def create_starter_structure() -> None:
    """Create a starter content tree with a draft article and a stylesheet."""
    current_dir = os.getcwd()

    for directory in [os.path.join('src', 'articles'), os.path.join('src', 'assets', 'css')]:
        dir_path = os.path.join(current_dir, directory)
        if os.path.exists(dir_path):
            print(f"Directory already exists: {directory}")
        else:
            os.makedirs(dir_path, exist_ok=True)
            print(f"Created directory: {directory}")

    starter_files = {
        os.path.join('src', 'articles', 'hello-world.md'): SAMPLE_ARTICLE.format(date=time.strftime('%Y-%m-%d')),
        os.path.join('src', 'assets', 'css', 'main.css'): SAMPLE_CSS,
    }
    for relative_path, content in starter_files.items():
        path = os.path.join(current_dir, relative_path)
        if os.path.exists(path):
            print(f"File already exists: {relative_path}")
            continue
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        print(f"Created file: {relative_path}")


def serve(output_dir: str, port: int, generator: Inkwell) -> None:
    """Serve the output directory until interrupted."""
    handler = partial(SimpleHTTPRequestHandler, directory=output_dir)
    with ThreadingHTTPServer(('127.0.0.1', port), handler) as httpd:
        generator.logger.info(f"Serving {output_dir} at http://127.0.0.1:{port}/")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            pass


def snapshot_mtimes(directories, exclude_dirs=None):
    """Map every file below the given directories to its modification time."""
    excluded = {os.path.abspath(d) for d in (exclude_dirs or []) if d}
    mtimes = {}
    for directory in directories:
        if not directory or not os.path.isdir(directory):
            continue
        for root, dirs, files in os.walk(directory):
            dirs[:] = [d for d in dirs if os.path.abspath(os.path.join(root, d)) not in excluded]
            for file in files:
                path = os.path.join(root, file)
                try:
                    mtimes[path] = os.path.getmtime(path)
                except OSError:
                    continue
    return mtimes


def watch(generator: Inkwell, interval: float = 1.0) -> None:
    """Rebuild whenever content, templates or assets change."""
    directories = [generator.content_dir, generator.templates_dir, generator.assets_dir]
    # Build output and log files change on every rebuild
    exclude_dirs = generator.loader.exclude_dirs + [os.path.join(os.getcwd(), 'logs')]
    generator.logger.info(f"Watching {', '.join(d for d in directories if d)} for changes")
    last_seen = snapshot_mtimes(directories, exclude_dirs)
    try:
        while True:
            time.sleep(interval)
            current = snapshot_mtimes(directories, exclude_dirs)
            if current != last_seen:
                generator.logger.info("Rebuilding after change...")
                last_seen = current
                try:
                    generator.build()
                except Exception as e:
                    generator.logger.error(f"Rebuild failed: {e}")
    except KeyboardInterrupt:
        pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Inkwell - Static blog generator')
    parser.add_argument('mode', nargs='?', choices=RUN_MODES, default='build',
                        help='build for production, or serve/watch a preview that includes drafts')
    parser.add_argument('--content', type=str,
                        help='Content directory containing markdown files')
    parser.add_argument('--output', type=str,
                        help='Output directory for generated site')
    parser.add_argument('--templates', type=str,
                        help='Templates directory')
    parser.add_argument('--assets', type=str,
                        help='Assets directory to copy to output')
    parser.add_argument('--articles-slug', type=str,
                        help="URL prefix for articles instead of 'articles'")
    parser.add_argument('--latest-limit', type=non_negative_int,
                        help='Number of articles shown on the home page')
    parser.add_argument('--site-title', type=str, help='Site title for metadata')
    parser.add_argument('--site-url', type=str, help='Public URL of the site')
    parser.add_argument('--minify', action='store_true', default=None,
                        help='Minify CSS and JS assets')
    parser.add_argument('--port', type=int, default=8080,
                        help='Port for serve mode')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file')
    parser.add_argument('--version', action='version', version='%(prog)s 1.0.0')
    return parser


def main(argv: list = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle init command
    if args.init:
        settings_loader = InkwellSettings()
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")

        print("\nCreating starter project structure...")
        create_starter_structure()

        print("\nYour new Inkwell blog is ready!")
        print("Run 'inkwell serve' to preview it, or 'inkwell' to build for production.")
        return

    # Load settings from configuration file
    settings_loader = InkwellSettings()
    settings_loader.load_settings()

    args_dict = {k: v for k, v in vars(args).items() if v is not None and k not in ('mode', 'port', 'init')}
    final_settings = settings_loader.merge_with_args(args_dict)

    output_dir = os.path.expanduser(final_settings['output'])

    # Resolved once per process and passed down explicitly
    context = BuildContext.from_run_mode(args.mode)

    overall_start_time = time.time()

    try:
        generator = Inkwell(
            content_dir=final_settings['content'],
            templates_dir=final_settings['templates'],
            output_dir=output_dir,
            assets_dir=final_settings['assets'],
            articles_slug=final_settings['articles_slug'],
            latest_limit=final_settings['latest_limit'],
            site_title=final_settings['site_title'],
            site_url=final_settings['site_url'],
            minify=final_settings['minify'],
            context=context
        )

        generator.build()

        total_time = time.time() - overall_start_time
        generator.logger.info(f"Site build completed in {total_time:.6f} seconds.")
        generator.logger.info(f"Total articles generated: {generator.articles_generated}")
        generator.logger.info(f"Total pages generated: {generator.pages_generated}")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.mode == 'serve':
        serve(output_dir, args.port, generator)
    elif args.mode == 'watch':
        watch(generator)


if __name__ == '__main__':
    main()
