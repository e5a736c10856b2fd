"""Tests for CLI module."""

import json

import pytest

from gallery.cli import create_parser, load_sources, main
from gallery.inventory import Inventory


@pytest.fixture
def sources_file(tmp_path, local_source):
    """Sources file holding the recursive local source."""
    path = tmp_path / 'sources.json'
    path.write_text(json.dumps({'sources': [local_source.to_dict()]}))
    return str(path)


@pytest.fixture
def cache_args(cache_config):
    return [
        '--cache-dir', cache_config.cache_dir,
        '--metadata', cache_config.metadata_path,
        '--server-inventory', cache_config.inventory_path,
    ]


class TestCreateParser:
    """Tests for argument parser creation."""

    def test_scan_command(self):
        """Test scan command parsing."""
        args = create_parser().parse_args(['scan', '-s', 'sources.json', '--source', 'A', '--source', 'B'])

        assert args.command == 'scan'
        assert args.sources == 'sources.json'
        assert args.inventory == 'inventory.json'
        assert args.source == ['A', 'B']

    def test_scan_requires_sources(self):
        """Test scan without a sources file is rejected."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(['scan'])

    def test_pregen_command(self):
        """Test pregen command parsing."""
        args = create_parser().parse_args(['pregen', '--limit', '10', '-b', '3', '-d', '0.5'])

        assert args.limit == 10
        assert args.batch_size == 3
        assert args.delay == 0.5

    def test_sweep_command(self):
        """Test sweep command parsing."""
        args = create_parser().parse_args(['sweep', '--max-bytes', '1000', '--cache-dir', '/tmp/c'])

        assert args.max_bytes == 1000
        assert args.cache_dir == '/tmp/c'


class TestMain:
    """Tests for main entry point."""

    def test_no_command(self):
        """Test running without command shows help."""
        assert main([]) == 1


class TestCmdScan:
    """Tests for scan command."""

    def test_scan_writes_inventory(self, sources_file, tmp_path):
        """Test a scan saves the reconciled inventory."""
        inventory_path = str(tmp_path / 'inventory.json')

        result = main(['scan', '-s', sources_file, '-i', inventory_path, '-q'])

        assert result == 0
        inventory = Inventory.load(inventory_path)
        assert inventory.total_pictures == 4
        assert inventory.get_source(1).picture_count == 4

    def test_scan_twice_keeps_ids(self, sources_file, tmp_path):
        """Test rescanning an unchanged folder keeps the inventory."""
        inventory_path = str(tmp_path / 'inventory.json')
        main(['scan', '-s', sources_file, '-i', inventory_path, '-q'])
        first = Inventory.load(inventory_path)

        main(['scan', '-s', sources_file, '-i', inventory_path, '-q'])
        second = Inventory.load(inventory_path)

        assert sorted(p.id for p in second.pictures) == sorted(p.id for p in first.pictures)

    def test_dry_run(self, sources_file, tmp_path, capsys):
        """Test a dry run saves nothing."""
        inventory_path = tmp_path / 'inventory.json'

        result = main(['scan', '-s', sources_file, '-i', str(inventory_path), '--dry-run'])

        assert result == 0
        assert not inventory_path.exists()
        assert '4 added' in capsys.readouterr().out

    def test_unknown_source(self, sources_file, tmp_path):
        """Test scoping to an unknown source fails."""
        result = main(['scan', '-s', sources_file, '-i', str(tmp_path / 'i.json'), '--source', 'Nope'])
        assert result == 1

    def test_missing_sources_file(self, tmp_path):
        """Test a missing sources file fails."""
        assert main(['scan', '-s', str(tmp_path / 'nope.json')]) == 1

    def test_source_errors_fail(self, tmp_path):
        """Test a failed source sets the exit code."""
        path = tmp_path / 'sources.json'
        path.write_text(json.dumps([{'id': 1, 'kind': 'local', 'name': 'Gone', 'path': str(tmp_path / 'gone')}]))

        result = main(['scan', '-s', str(path), '-i', str(tmp_path / 'i.json'), '-q'])

        assert result == 1

    def test_load_sources_list(self, tmp_path, local_source):
        """Test a bare list of sources is accepted."""
        path = tmp_path / 'sources.json'
        path.write_text(json.dumps([local_source.to_dict()]))

        assert [s.name for s in load_sources(str(path))] == ['Local Pictures']


class TestServerCommands:
    """Tests for rescan, pregen, sweep and report commands."""

    @pytest.fixture(autouse=True)
    def mount(self, server_root, monkeypatch):
        monkeypatch.delenv('SERVER_SOURCES', raising=False)
        monkeypatch.setenv('SERVER_MOUNT_ROOT', str(server_root))

    def test_rescan_then_pregen(self, cache_args, cache_config, capsys):
        """Test the server inventory can be built and warmed from the CLI."""
        assert main(['rescan', '-q'] + cache_args) == 0
        assert Inventory.load(cache_config.inventory_path).total_pictures == 2

        assert main(['pregen', '-q', '-d', '0'] + cache_args) == 0
        assert main(['pregen', '-q'] + cache_args) == 0

        assert main(['report'] + cache_args) == 0
        out = capsys.readouterr().out
        assert 'INVENTORY SUMMARY' in out
        assert 'Entries:     6' in out

    def test_pregen_without_inventory(self, cache_args):
        """Test pregen needs a server inventory."""
        assert main(['pregen', '-q'] + cache_args) == 1

    def test_sweep(self, cache_args, capsys):
        """Test a sweep over an empty cache."""
        assert main(['sweep'] + cache_args) == 0
        assert 'Evicted: 0' in capsys.readouterr().out

    def test_report_missing_inventory(self, cache_args):
        """Test report with non-existent inventory."""
        assert main(['report'] + cache_args) == 1

    def test_invalid_config(self, cache_args, monkeypatch):
        """Test an invalid environment configuration fails early."""
        monkeypatch.setenv('CACHE_TARGET_FRACTION', '2')
        assert main(['sweep'] + cache_args) == 1
