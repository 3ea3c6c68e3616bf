# warbler - minidump triage
#
# This file is part of warbler.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
# SPDX-License-Identifier: GPL-3.0-only

'''
Configuration for warbler. The configuration file is in YAML format:

    general:
        truncate: 50
        hex_display_bytes: 64
        verbose: false
    yara:
        rules_directory: /path/to/rules
        rules_url: https://example.org/rules.zip
'''

import pathlib

from dataclasses import dataclass
from typing import Optional

# import YAML module for the configuration
from yaml import load
from yaml import YAMLError
try:
    from yaml import CLoader as Loader
except ImportError:
    from yaml import Loader

from .projector import DEFAULT_TRUNCATE


class ConfigException(Exception):
    '''Generic exception for parsing configuration files'''
    pass


@dataclass
class WarblerConfig:
    truncate: int = DEFAULT_TRUNCATE
    hex_display_bytes: int = 64
    verbose: bool = False
    rules_directory: Optional[pathlib.Path] = None
    rules_url: Optional[str] = None


def _positive_int(value):
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _section(config, name):
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigException(f"section '{name}' is not a YAML mapping")
    return section


def load_config(config_file):
    '''Read the configuration from an open file. Settings that are
    missing or of the wrong type keep their default value.'''
    try:
        config = load(config_file, Loader=Loader)
    except (YAMLError, PermissionError, UnicodeDecodeError) as e:
        raise ConfigException(e.args)

    warbler_config = WarblerConfig()
    if config is None:
        return warbler_config
    if not isinstance(config, dict):
        raise ConfigException("configuration is not a YAML mapping")

    general = _section(config, 'general')
    if _positive_int(general.get('truncate')):
        warbler_config.truncate = general['truncate']
    if _positive_int(general.get('hex_display_bytes')):
        warbler_config.hex_display_bytes = general['hex_display_bytes']
    if isinstance(general.get('verbose'), bool):
        warbler_config.verbose = general['verbose']

    yara_config = _section(config, 'yara')
    if isinstance(yara_config.get('rules_directory'), str):
        warbler_config.rules_directory = pathlib.Path(yara_config['rules_directory'])
    if isinstance(yara_config.get('rules_url'), str):
        warbler_config.rules_url = yara_config['rules_url']

    return warbler_config
