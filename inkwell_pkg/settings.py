#!/usr/bin/env python3
"""
Settings loader for Inkwell.
Supports configuration from inkwell.yml, inkwell.yaml, or inkwell.json files.
"""

import os
import json
import yaml
from typing import Dict, Any, Optional


class InkwellSettings:
    """Load and manage Inkwell configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'content': 'src',
        'output': 'dist',
        'templates': os.path.join('src', '_includes'),
        'assets': os.path.join('src', 'assets'),
        'articles_slug': 'articles',
        'latest_limit': 9,
        'site_title': None,
        'site_url': None,
        'minify': False
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['inkwell.yml', 'inkwell.yaml', 'inkwell.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = self.DEFAULT_SETTINGS.copy()
        self.config_file_path = None

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            try:
                loaded_settings = self._load_config_file(config_file)
                if loaded_settings:
                    if not isinstance(loaded_settings, dict):
                        raise ValueError("top level must be a mapping")
                    self.settings.update(loaded_settings)
                    print(f"Loaded configuration from: {os.path.relpath(config_file)}")
            except Exception as e:
                print(f"Warning: Failed to load config file {config_file}: {e}")

        return self.settings.copy()

    def _find_config_file(self) -> Optional[str]:
        """Find the first available configuration file."""
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    return yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    return json.load(f) or {}
                else:
                    raise ValueError(f"Unsupported config file format: {file_ext}")
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        except PermissionError:
            raise PermissionError(f"Permission denied reading configuration file: {config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")
        except (IOError, OSError) as e:
            raise IOError(f"Error reading configuration file {config_path}: {e}")

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        if file_format not in ['yml', 'yaml', 'json']:
            raise ValueError(f"Unsupported config file format: {file_format}")

        filename = f'inkwell.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format in ['yml', 'yaml']:
                    f.write("# Inkwell Configuration File\n\n")
                    f.write("# Site information\n")
                    f.write("site_url: https://example.com\n")
                    f.write("site_title: My Blog\n\n")
                    f.write("# Build settings\n")
                    f.write("content: src\n")
                    f.write("output: dist\n")
                    f.write("templates: src/_includes\n")
                    f.write("assets: src/assets\n")
                    f.write("articles_slug: articles\n\n")
                    f.write("# Number of articles on the home page\n")
                    f.write("latest_limit: 9\n\n")
                    f.write("minify: false\n")
                elif file_format == 'json':
                    sample_config = {
                        'site_url': 'https://example.com',
                        'site_title': 'My Blog',
                        'content': 'src',
                        'output': 'dist',
                        'templates': 'src/_includes',
                        'assets': 'src/assets',
                        'articles_slug': 'articles',
                        'latest_limit': 9,
                        'minify': False
                    }
                    json.dump(sample_config, f, indent=2)
        except PermissionError:
            raise PermissionError(f"Permission denied creating configuration file: {config_path}")
        except (IOError, OSError) as e:
            raise IOError(f"Error writing configuration file {config_path}: {e}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command-line arguments

        Returns:
            Merged configuration dictionary
        """
        merged = self.settings.copy()

        for key, value in args_dict.items():
            if value is not None:
                merged[key] = value

        return merged
