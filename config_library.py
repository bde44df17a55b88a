#!/usr/bin/env python3
# config_library.py
"""
Config Library - Loader for VuFind-style INI and YAML configuration files

INI files follow the PHP conventions used by VuFind: 'key[] = value' lines
build lists, 'key[sub] = value' lines build maps, values may be quoted and
true/false style words become booleans. YAML files are read with PyYAML.
"""

import configparser
import copy
import logging
import os
import re
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional

import yaml

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("config_library")

TRUE_WORDS = ('true', 'on', 'yes')
FALSE_WORDS = ('false', 'off', 'no', 'none')

ARRAY_KEY_RE = re.compile(r'^(?P<name>[^\[\]]+)\[(?P<sub>[^\]]*)\]$')


class Config(Mapping):
    """
    Read-only view of a configuration tree. Nested mappings are returned as
    Config objects; missing attributes read as None.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data = data or {}

    def __getitem__(self, key: str) -> Any:
        value = self._data[key]
        return Config(value) if isinstance(value, dict) else value

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        return self.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def __repr__(self) -> str:
        return f"Config({self._data!r})"


def _convert_value(raw: str) -> Any:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    if value.lower() in TRUE_WORDS:
        return True
    if value.lower() in FALSE_WORDS:
        return False
    return value


def parse_ini(text: str) -> Dict[str, Dict[str, Any]]:
    """
    Parse VuFind-style INI text.

    Args:
        text: INI file contents

    Returns:
        Dictionary of section name to settings

    Raises:
        ValueError: If the text is not valid INI syntax
    """
    # configparser has no notion of repeated keys, so every 'key[]' line is
    # given a unique auto index before parsing.
    counters: Dict[str, int] = {}
    lines: List[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith('['):
            counters = {}
        match = re.match(r'^(\s*)([^=;#\s\[]+)\[\]\s*=(.*)$', line)
        if match:
            name = match.group(2)
            index = counters.get(name, 0)
            counters[name] = index + 1
            line = f"{match.group(1)}{name}[#{index}] ={match.group(3)}"
        lines.append(line)

    parser = configparser.ConfigParser(
        interpolation=None, strict=False, delimiters=('=',),
        comment_prefixes=(';', '#'), inline_comment_prefixes=(';',)
    )
    parser.optionxform = str
    try:
        parser.read_string('\n'.join(lines))
    except configparser.Error as e:
        raise ValueError(f"Invalid INI syntax: {e}") from e

    result: Dict[str, Dict[str, Any]] = {}
    for section in parser.sections():
        settings: Dict[str, Any] = {}
        for key, raw in parser.items(section, raw=True):
            value = _convert_value(raw)
            match = ARRAY_KEY_RE.match(key)
            if not match:
                settings[key] = value
                continue
            name, sub = match.group('name'), match.group('sub')
            if sub.startswith('#'):
                container = settings.setdefault(name, [])
                if isinstance(container, list):
                    container.append(value)
                else:
                    container[len(container)] = value
            else:
                container = settings.setdefault(name, {})
                if isinstance(container, list):
                    container = dict(enumerate(container))
                    settings[name] = container
                container[sub] = value
        result[section] = settings
    return result


class ConfigLoader:
    """
    Finds and caches configuration files by name.
    """

    def __init__(self, search_paths: Optional[List[str]] = None):
        """
        Initialize the loader.

        Args:
            search_paths: Directories to search in order (local overrides first)
        """
        self.search_paths = search_paths or ['config']
        self._cache: Dict[str, Config] = {}

    def get(self, name: str) -> Config:
        """
        Load a configuration by name ('config', 'searches', 'facets', ...).

        A name without extension is looked up as .ini first, then .yaml and
        .yml. A missing file yields an empty Config.

        Raises:
            ValueError: If an INI or YAML file cannot be parsed
        """
        if name in self._cache:
            return self._cache[name]

        path = self._find(name)
        if path is None:
            logger.warning(f"Configuration '{name}' not found in {self.search_paths}")
            config = Config({})
        else:
            logger.debug(f"Loading configuration from {path}")
            config = Config(self._load(path))

        self._cache[name] = config
        return config

    def _find(self, name: str) -> Optional[str]:
        candidates = [name] if os.path.splitext(name)[1] else [
            f"{name}.ini", f"{name}.yaml", f"{name}.yml"
        ]
        for directory in self.search_paths:
            for candidate in candidates:
                path = os.path.join(directory, candidate)
                if os.path.isfile(path):
                    return path
        return None

    def _load(self, path: str) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()

        if path.endswith(('.yaml', '.yml')):
            try:
                data = yaml.safe_load(content)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML syntax in {path}: {e}") from e
            return data or {}

        return parse_ini(content)
