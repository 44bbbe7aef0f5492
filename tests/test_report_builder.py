#!/usr/bin/env python3
# test_report_builder.py - OpsReports Report Model and Writer Unit Tests
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team

import pytest
import os
import sys
import csv
import json
import argparse
import datetime
from unittest.mock import MagicMock

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report, CheckResult


class TestOverallStatus:
    """Test Report.overall_status"""

    def test_empty_report_passes(self):
        assert Report('x', 'X', ['a']).overall_status == 'PASS'

    def test_any_fail_check(self, sample_report):
        sample_report.add_check('fs-02', 'FAIL', 'Critical disk usage: C:')
        assert sample_report.overall_status == 'FAIL'

    def test_warn_check(self, sample_report):
        assert sample_report.overall_status == 'WARN'

    def test_errors_without_rows_fail(self):
        report = Report('x', 'X', ['a'])
        report.add_error('fs-01: access denied')
        assert report.overall_status == 'FAIL'

    def test_errors_with_rows_warn(self):
        report = Report('x', 'X', ['a'], rows=[{'a': 1}])
        report.add_error('fs-02: access denied')
        assert report.overall_status == 'WARN'

    def test_info_checks_do_not_raise_status(self):
        report = Report('x', 'X', ['a'])
        report.add_check('note', 'INFO', 'Rightsizing candidate')
        assert report.overall_status == 'PASS'

    def test_exit_codes(self, sample_report):
        assert report_builder.exit_code(sample_report) == 0
        sample_report.add_check('boom', 'FAIL', 'failed')
        assert report_builder.exit_code(sample_report) == 1


class TestReportModel:
    """Test Report helpers"""

    def test_counts(self, sample_report):
        sample_report.add_check('ok', 'PASS', 'fine')
        counts = sample_report.counts()
        assert counts['PASS'] == 1
        assert counts['WARN'] == 1
        assert counts['FAIL'] == 0

    def test_add_error_logs_through_support_module(self):
        opf = MagicMock()
        report = Report('x', 'X', ['a'])
        report.add_error('could not connect', opf)
        opf.write_output.assert_called_once_with('could not connect', level='ERROR')
        assert report.errors == ['could not connect']

    def test_add_check_details(self):
        report = Report('x', 'X', ['a'])
        check = report.add_check('rule 5', 'WARN', 'any/any', rule='allow-all')
        assert isinstance(check, CheckResult)
        assert check.details == {'rule': 'allow-all'}

    def test_to_json_handles_datetimes(self):
        report = Report('x', 'X', ['when'], rows=[{'when': datetime.datetime(2026, 10, 17, 8, 0)}])
        data = json.loads(report.to_json())
        assert data['overall_status'] == 'PASS'
        assert data['rows'][0]['when'] == '2026-10-17 08:00:00'


class TestFormatCell:
    """Test format_cell"""

    @pytest.mark.parametrize('value,expected', [
        (None, ''),
        (True, 'Yes'),
        (False, 'No'),
        (['a', 'b'], 'a, b'),
        (3.14159, '3.14'),
        (datetime.date(2026, 10, 17), '2026-10-17'),
        (42, '42'),
    ])
    def test_values(self, value, expected):
        assert report_builder.format_cell(value) == expected

    def test_list_separator(self):
        assert report_builder.format_cell(['ds-01', 'ds-02'], sep='; ') == 'ds-01; ds-02'


class TestFileOutput:
    """Test HTML/CSV/JSON writers"""

    def test_csv_has_one_row_per_record_in_column_order(self, sample_report, temp_dir):
        path = report_builder.write_csv(sample_report, os.path.join(temp_dir, 'out.csv'))
        with open(path, newline='') as f:
            rows = list(csv.reader(f))
        assert rows[0] == ['host', 'drive', 'status']
        assert len(rows) == 1 + len(sample_report.rows)
        assert rows[2] == ['fs-01', 'D:', 'WARN']

    def test_html_escapes_values(self, temp_dir):
        report = Report('x', 'Escaping', ['name', 'status'],
                        rows=[{'name': '<script>alert(1)</script>', 'status': 'FAIL'}])
        page = report_builder.generate_html_report(report)
        assert '<script>alert' not in page
        assert '&lt;script&gt;' in page
        assert 'class="status-fail"' in page

    def test_save_report_writes_three_files(self, sample_report, temp_dir):
        files = report_builder.save_report(sample_report, temp_dir, '20261017-080000')
        assert set(files) == {'html', 'csv', 'json'}
        assert files['html'].endswith('disk_monitor-20261017-080000.html')
        for path in files.values():
            assert os.path.isfile(path)
        with open(files['json']) as f:
            assert json.load(f)['report_id'] == 'disk_monitor'


class TestFinishReport:
    """Test finish_report"""

    def test_writes_files_and_index(self, mock_opf, sample_report, temp_dir):
        report_builder.finish_report(mock_opf, sample_report)
        names = os.listdir(temp_dir)
        assert any(n.startswith('disk_monitor-') and n.endswith('.html') for n in names)
        assert 'index.html' in names
        assert 'run-state.json' in names

    def test_dry_run_skips_files_but_indexes(self, mock_opf, sample_report, temp_dir):
        report_builder.finish_report(mock_opf, sample_report, write_files=False)
        names = os.listdir(temp_dir)
        assert not any(n.startswith('disk_monitor-') for n in names)
        assert 'run-state.json' in names

    def test_status_line_level(self, mock_opf, sample_report):
        report_builder.finish_report(mock_opf, sample_report, write_files=False)
        last = mock_opf.write_output.call_args
        assert last.kwargs['level'] == 'WARN'
        assert 'WARN' in last.args[0]


class TestArgumentTypes:
    """Test argparse helpers"""

    def test_positive_int(self):
        assert report_builder.positive_int('5') == 5
        with pytest.raises(argparse.ArgumentTypeError):
            report_builder.positive_int('0')
        with pytest.raises(argparse.ArgumentTypeError):
            report_builder.positive_int('x')

    def test_percent(self):
        assert report_builder.percent('85') == 85.0
        with pytest.raises(argparse.ArgumentTypeError):
            report_builder.percent('101')

    def test_base_parser_common_options(self):
        parser = report_builder.base_parser('disk_monitor', 'Disks')
        args = parser.parse_args(['--dry-run', '--output-dir', '/tmp/out', '-v'])
        assert args.dry_run and args.verbose
        assert args.output_dir == '/tmp/out'
