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
Scanning of memory segments with YARA rules.

Rule files are found recursively in a rules directory. Every rule file
is first compiled on its own, so a single broken file does not prevent
the other rules from being used.
'''

import io
import os
import pathlib
import shutil
import tarfile
import tempfile
import urllib.parse
import zipfile

from dataclasses import dataclass, field
from typing import Any, Dict, List

import requests
import yara

from .log import log

RULE_EXTENSIONS = ['.yar', '.yara']


class YaraScannerException(Exception):
    pass


class RuleRefreshError(YaraScannerException):
    pass


@dataclass
class MatchResult:
    rule: str
    namespace: str = ''
    tags: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
    strings: List[str] = field(default_factory=list)

    @classmethod
    def from_match(cls, match):
        return cls(rule=match.rule, namespace=match.namespace,
                   tags=list(match.tags), meta=dict(match.meta),
                   strings=[_string_identifier(s) for s in match.strings])

    def __str__(self):
        result = self.rule
        if self.tags:
            result += f' [{",".join(self.tags)}]'
        if self.meta:
            result += ' ' + ' '.join(f'{k}={v!r}' for k, v in self.meta.items())
        return result


def _string_identifier(string_match):
    # yara-python 4.3 and later return StringMatch objects, older
    # versions (offset, identifier, data) tuples
    identifier = getattr(string_match, 'identifier', None)
    if identifier is None:
        identifier = string_match[1]
    return identifier


def find_rule_files(rules_path):
    rules_path = pathlib.Path(rules_path)
    return sorted(p for p in rules_path.glob('**/*')
                  if p.suffix.lower() in RULE_EXTENSIONS and p.is_file())


class YaraScanner:
    def __init__(self, rules_path):
        self.rules_path = pathlib.Path(rules_path)
        self.rules = None
        self.rule_files = []
        self.ignored = 0

    def _namespace(self, rule_file):
        return str(rule_file.relative_to(self.rules_path))

    def validate_rule_file(self, rule_file):
        '''Compile a single rule file with a throwaway compiler'''
        try:
            yara.compile(filepath=str(rule_file))
        except yara.Error as e:
            log.debug(f'yara_scanner:validate_rule_file: {rule_file}: {e}')
            return False
        return True

    def _compile(self, rule_files):
        if not rule_files:
            return yara.compile(source='')
        return yara.compile(filepaths={self._namespace(f): str(f) for f in rule_files})

    def load_rules(self):
        '''Compile all valid rule files in rules_path. Returns the number
        of rule files that were ignored.'''
        rule_files = find_rule_files(self.rules_path)
        valid = [f for f in rule_files if self.validate_rule_file(f)]
        self.ignored = len(rule_files) - len(valid)

        try:
            self.rules = self._compile(valid)
            self.rule_files = valid
        except yara.Error:
            # files that compile on their own can still conflict with
            # each other, so add them one by one
            self.rule_files = []
            for rule_file in valid:
                try:
                    self.rules = self._compile(self.rule_files + [rule_file])
                    self.rule_files.append(rule_file)
                except yara.Error as e:
                    log.debug(f'yara_scanner:load_rules: cannot add {rule_file}: {e}')
                    self.ignored += 1
            if not self.rule_files:
                self.rules = self._compile([])

        if self.ignored > 0:
            log.warning(f'yara_scanner:load_rules: failed to load {self.ignored} yara rule files')
        log.debug(f'yara_scanner:load_rules: {self.rule_count} rules from {len(self.rule_files)} files')
        return self.ignored

    @property
    def rule_count(self):
        if self.rules is None:
            return 0
        return sum(1 for _ in self.rules)

    def scan(self, data):
        if self.rules is None:
            raise YaraScannerException('rules not loaded')
        return [MatchResult.from_match(m) for m in self.rules.match(data=data)]

    def scan_file(self, path):
        with open(path, 'rb') as scan_file:
            return self.scan(scan_file.read())


def _unpack_rule_bundle(content, url, directory):
    if zipfile.is_zipfile(io.BytesIO(content)):
        with zipfile.ZipFile(io.BytesIO(content)) as bundle:
            bundle.extractall(directory)
        return
    if tarfile.is_tarfile(io.BytesIO(content)):
        # a TarError (including members rejected by the filter) is
        # handled by the caller, the staging directory is then discarded
        with tarfile.open(fileobj=io.BytesIO(content), mode='r:*') as bundle:
            if hasattr(tarfile, 'data_filter'):
                bundle.extractall(directory, filter='data')
            else:
                bundle.extractall(directory)
        return

    # a single rule file
    name = pathlib.PurePosixPath(urllib.parse.urlparse(url).path).name or 'rules.yar'
    (pathlib.Path(directory) / name).write_bytes(content)


def refresh_rules(url, destination):
    '''Download the rule bundle at url and replace the contents of the
    destination directory with it. The destination is only touched when
    the download and unpacking succeeded.'''
    destination = pathlib.Path(destination)
    try:
        req = requests.get(url)
    except requests.exceptions.RequestException as e:
        raise RuleRefreshError(f'could not download {url}: {e}') from e

    if req.status_code != 200:
        raise RuleRefreshError(f'could not download {url}, got code {req.status_code}')

    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = pathlib.Path(tempfile.mkdtemp(dir=destination.parent, prefix='.rules-'))
    try:
        _unpack_rule_bundle(req.content, url, staging)
        if destination.exists():
            old = pathlib.Path(tempfile.mkdtemp(dir=destination.parent, prefix='.rules-old-'))
            os.replace(destination, old / destination.name)
            os.replace(staging, destination)
            shutil.rmtree(old)
        else:
            os.replace(staging, destination)
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        shutil.rmtree(staging, ignore_errors=True)
        raise RuleRefreshError(f'could not store rules from {url} in {destination}: {e}') from e

    log.info(f'yara_scanner:refresh_rules: updated {destination} from {url}')
    return destination
