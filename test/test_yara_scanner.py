import io
import tarfile
import zipfile

import pytest
import requests

from util import *

from warbler.yara_scanner import *


def test_load_valid_rules(tmp_path):
    write_rule(tmp_path, 'marker.yar', VALID_RULE)
    write_rule(tmp_path, 'other.yara', OTHER_RULE)
    scanner = YaraScanner(tmp_path)
    assert scanner.load_rules() == 0
    assert scanner.rule_count == 2


def test_load_rules_skips_invalid(tmp_path):
    write_rule(tmp_path, 'marker.yar', VALID_RULE)
    write_rule(tmp_path, 'broken.yar', INVALID_RULE)
    scanner = YaraScanner(tmp_path)
    assert scanner.load_rules() == 1
    assert scanner.rule_count == 1
    assert [f.name for f in scanner.rule_files] == ['marker.yar']


def test_load_rules_empty_directory(tmp_path):
    scanner = YaraScanner(tmp_path)
    assert scanner.load_rules() == 0
    assert scanner.rule_count == 0
    assert scanner.scan(b'warbler test marker') == []


def test_find_rule_files_nested(tmp_path):
    write_rule(tmp_path, 'a/b/nested.yar', VALID_RULE)
    write_rule(tmp_path, 'top.YARA', OTHER_RULE)
    write_rule(tmp_path, 'README.txt', 'not a rule')
    names = sorted(f.name for f in find_rule_files(tmp_path))
    assert names == ['nested.yar', 'top.YARA']


def test_scan_match(tmp_path):
    write_rule(tmp_path, 'marker.yar', VALID_RULE)
    write_rule(tmp_path, 'other.yar', OTHER_RULE)
    scanner = YaraScanner(tmp_path)
    scanner.load_rules()
    matches = scanner.scan(RANGE_1)
    assert [m.rule for m in matches] == ['warbler_marker']
    assert matches[0].namespace == 'marker.yar'
    assert matches[0].meta == {'description': 'warbler test marker'}
    assert matches[0].strings == ['$marker']
    assert str(matches[0]) == "warbler_marker description='warbler test marker'"


def test_scan_no_match(tmp_path):
    write_rule(tmp_path, 'marker.yar', VALID_RULE)
    scanner = YaraScanner(tmp_path)
    scanner.load_rules()
    assert scanner.scan(RANGE_0) == []


def test_scan_file(tmp_path, dump_file):
    rules = tmp_path / 'rules'
    write_rule(rules, 'marker.yar', VALID_RULE)
    scanner = YaraScanner(rules)
    scanner.load_rules()
    assert len(scanner.scan_file(dump_file)) == 1


def test_scan_without_rules(tmp_path):
    with pytest.raises(YaraScannerException):
        YaraScanner(tmp_path).scan(b'')


class FakeResponse:
    def __init__(self, content, status_code=200):
        self.content = content
        self.status_code = status_code


def zip_bundle(files):
    bundle = io.BytesIO()
    with zipfile.ZipFile(bundle, 'w') as zip_file:
        for name, content in files.items():
            zip_file.writestr(name, content)
    return bundle.getvalue()


def test_refresh_rules_zip(tmp_path, monkeypatch):
    rules = tmp_path / 'rules'
    write_rule(rules, 'old.yar', OTHER_RULE)
    content = zip_bundle({'new/marker.yar': VALID_RULE})
    monkeypatch.setattr('warbler.yara_scanner.requests.get', lambda url: FakeResponse(content))

    refresh_rules('https://example.org/rules.zip', rules)
    assert not (rules / 'old.yar').exists()
    assert (rules / 'new' / 'marker.yar').read_text() == VALID_RULE
    # no staging directories are left behind
    assert sorted(p.name for p in tmp_path.iterdir()) == ['rules']


def test_refresh_rules_new_directory(tmp_path, monkeypatch):
    rules = tmp_path / 'rules'
    content = zip_bundle({'marker.yar': VALID_RULE})
    monkeypatch.setattr('warbler.yara_scanner.requests.get', lambda url: FakeResponse(content))

    refresh_rules('https://example.org/rules.zip', rules)
    scanner = YaraScanner(rules)
    scanner.load_rules()
    assert scanner.rule_count == 1


def test_refresh_rules_single_file(tmp_path, monkeypatch):
    rules = tmp_path / 'rules'
    content = VALID_RULE.encode()
    monkeypatch.setattr('warbler.yara_scanner.requests.get', lambda url: FakeResponse(content))

    refresh_rules('https://example.org/download/warbler.yar', rules)
    assert (rules / 'warbler.yar').read_bytes() == content


def test_refresh_rules_bad_status(tmp_path, monkeypatch):
    rules = tmp_path / 'rules'
    write_rule(rules, 'old.yar', OTHER_RULE)
    monkeypatch.setattr('warbler.yara_scanner.requests.get', lambda url: FakeResponse(b'', 404))

    with pytest.raises(RuleRefreshError):
        refresh_rules('https://example.org/rules.zip', rules)
    assert (rules / 'old.yar').read_text() == OTHER_RULE


def test_refresh_rules_connection_error(tmp_path, monkeypatch):
    def fail(url):
        raise requests.exceptions.ConnectionError('no route to host')
    monkeypatch.setattr('warbler.yara_scanner.requests.get', fail)

    with pytest.raises(RuleRefreshError):
        refresh_rules('https://example.org/rules.zip', tmp_path / 'rules')
    assert not (tmp_path / 'rules').exists()


def tar_bundle(files, symlinks=None):
    bundle = io.BytesIO()
    with tarfile.open(fileobj=bundle, mode='w:gz') as tar_file:
        for name, content in files.items():
            data = content.encode()
            tarinfo = tarfile.TarInfo(name)
            tarinfo.size = len(data)
            tar_file.addfile(tarinfo, io.BytesIO(data))
        for name, target in (symlinks or {}).items():
            tarinfo = tarfile.TarInfo(name)
            tarinfo.type = tarfile.SYMTYPE
            tarinfo.linkname = target
            tar_file.addfile(tarinfo)
    return bundle.getvalue()


def test_refresh_rules_tar(tmp_path, monkeypatch):
    rules = tmp_path / 'rules'
    write_rule(rules, 'old.yar', OTHER_RULE)
    content = tar_bundle({'rules/marker.yar': VALID_RULE})
    monkeypatch.setattr('warbler.yara_scanner.requests.get', lambda url: FakeResponse(content))

    refresh_rules('https://example.org/rules.tar.gz', rules)
    assert sorted(str(p.relative_to(rules)) for p in rules.rglob('*')) == ['rules', 'rules/marker.yar']


@pytest.mark.skipif(not hasattr(tarfile, 'data_filter'), reason='tarfile extraction filters not available')
def test_refresh_rules_rejected_tar_member(tmp_path, monkeypatch):
    rules = tmp_path / 'rules'
    write_rule(rules, 'old.yar', OTHER_RULE)
    content = tar_bundle({'rules/marker.yar': VALID_RULE}, symlinks={'rules/passwd': '/etc/passwd'})
    monkeypatch.setattr('warbler.yara_scanner.requests.get', lambda url: FakeResponse(content))

    with pytest.raises(RuleRefreshError):
        refresh_rules('https://example.org/rules.tar.gz', rules)
    assert sorted(p.name for p in rules.iterdir()) == ['old.yar']
    assert sorted(p.name for p in tmp_path.iterdir()) == ['rules']
