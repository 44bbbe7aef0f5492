#!/usr/bin/env python3
# test_service_health.py - OpsReports Service Health Unit Tests
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team

import pytest
import os
import sys
import datetime
from unittest.mock import MagicMock

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Reports import service_health

SSHD_ACTIVE = 'LoadState=loaded\nActiveState=active\nSubState=running\nUnitFileState=enabled\n'
NGINX_FAILED = 'LoadState=loaded\nActiveState=failed\nSubState=failed\nUnitFileState=enabled\n'
CUPS_STOPPED = 'LoadState=loaded\nActiveState=inactive\nSubState=dead\nUnitFileState=disabled\n'
MISSING_UNIT = 'LoadState=not-found\nActiveState=inactive\nSubState=dead\nUnitFileState=\n'


def completed(stdout='', returncode=0, stderr=''):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


def cert(days):
    return {
        'host': 'intranet.corp.local',
        'port': 443,
        'certname': 'intranet.corp.local',
        'issuer': 'OU= O=Corp CA',
        'expiration': datetime.date.today() + datetime.timedelta(days=days),
        'days_to_expire': days,
    }


class TestEvaluation:
    """Test status helpers"""

    @pytest.mark.parametrize('exists,running,start_mode,expected', [
        (False, False, '', ('FAIL', False)),
        (True, True, 'Manual', ('PASS', True)),
        (True, False, 'Automatic', ('FAIL', False)),
        (True, False, 'AutomaticDelayedStart', ('FAIL', False)),
        (True, False, 'enabled', ('FAIL', False)),
        (True, False, 'Manual', ('INFO', None)),
        (True, False, 'Disabled', ('INFO', None)),
    ])
    def test_service_state_status(self, exists, running, start_mode, expected):
        assert service_health.service_state_status(exists, running, start_mode) == expected

    @pytest.mark.parametrize('days,expected', [(-1, 'FAIL'), (0, 'WARN'), (29, 'WARN'), (30, 'PASS')])
    def test_cert_status(self, days, expected):
        assert service_health.cert_status(days, 30) == expected

    def test_health_percent_ignores_uncounted(self):
        rows = [{'healthy': True}, {'healthy': True}, {'healthy': False}, {'healthy': None}]
        assert service_health.health_percent(rows) == 66.7
        assert service_health.health_percent([{'healthy': None}]) == 100.0

    @pytest.mark.parametrize('percent,expected', [(100.0, 'PASS'), (80.0, 'WARN'), (79.9, 'FAIL')])
    def test_health_status(self, percent, expected):
        assert service_health.health_status(percent) == expected

    def test_entries(self):
        assert service_health.parse_tcp_entry('sql-01.corp.local:1433') == ('sql-01.corp.local', 1433)
        assert service_health.parse_url_entry('https://intranet/health, OK') == ('https://intranet/health', 'OK')
        assert service_health.parse_url_entry('http://x') == ('http://x', '')
        with pytest.raises(ValueError):
            service_health.parse_tcp_entry('no-port')


class TestServiceChecks:
    """Test Windows and Linux service collectors"""

    def test_linux_services_over_ssh(self, mock_opf):
        outputs = {'sshd': SSHD_ACTIVE, 'nginx': NGINX_FAILED, 'cups': CUPS_STOPPED, 'nope': MISSING_UNIT}
        mock_opf.ssh.side_effect = lambda cmd, host: completed(outputs[cmd.split()[-1]])

        rows = service_health.check_linux_services(mock_opf, 'web-01', ['sshd', 'nginx', 'cups', 'nope'])

        assert [(r['target'], r['status'], r['healthy']) for r in rows] == [
            ('sshd', 'PASS', True),
            ('nginx', 'FAIL', False),
            ('cups', 'INFO', None),
            ('nope', 'FAIL', False),
        ]
        assert rows[3]['detail'] == 'Unit not found'
        assert rows[0]['detail'] == 'active/running (enabled)'

    def test_linux_systemctl_error(self, mock_opf):
        mock_opf.ssh.return_value = completed('', 255, 'ssh: connect to host web-01 port 22: Connection refused')
        rows = service_health.check_linux_services(mock_opf, 'web-01', ['sshd'])
        assert rows[0]['status'] == 'FAIL'
        assert 'Connection refused' in rows[0]['detail']

    def test_windows_services_remote(self, mock_opf):
        mock_opf.run_powershell_json.return_value = [
            {'Name': 'W3SVC', 'DisplayName': 'World Wide Web Publishing Service', 'Status': 'Running',
             'StartType': 'Automatic'},
            {'Name': 'MSSQLSERVER', 'DisplayName': 'SQL Server', 'Status': 'Stopped', 'StartType': 'Automatic'},
        ]
        rows = service_health.check_windows_services(mock_opf, 'app-01', ['w3svc', 'MSSQLSERVER', 'Missing'])

        assert [r['status'] for r in rows] == ['PASS', 'FAIL', 'FAIL']
        assert rows[2]['detail'] == 'Service not found'
        script, host = mock_opf.run_powershell_json.call_args.args
        assert host == 'app-01'
        assert "'w3svc','MSSQLSERVER','Missing'" in script


class TestEndpointChecks:
    """Test TCP and URL checks"""

    def test_tcp(self, mock_opf):
        mock_opf.test_tcp_port.side_effect = [True, False]
        rows = service_health.check_tcp(mock_opf, ['sql-01:1433', 'bad-entry', 'dc-01:389'])
        assert [(r['host'], r['target'], r['status']) for r in rows] == [
            ('sql-01', '1433', 'PASS'), ('dc-01', '389', 'FAIL')]

    def test_url_with_expiring_certificate(self, mock_opf):
        mock_opf.get_ssl_cert_info.return_value = cert(10)
        rows = service_health.check_urls(mock_opf, ['https://intranet.corp.local:8443/health,OK'], 30)

        assert [r['check_type'] for r in rows] == ['url', 'certificate']
        mock_opf.get_url_status.assert_called_once_with('https://intranet.corp.local:8443/health',
                                                        expected_text='OK', timeout=15)
        mock_opf.get_ssl_cert_info.assert_called_once_with('intranet.corp.local', 8443)
        assert rows[1]['status'] == 'WARN'
        assert rows[1]['healthy'] is True

    def test_expired_certificate(self, mock_opf):
        mock_opf.get_ssl_cert_info.return_value = cert(-3)
        rows = service_health.check_urls(mock_opf, ['https://intranet.corp.local/'], 30)
        assert rows[1]['status'] == 'FAIL'
        assert 'expired 3 days ago' in rows[1]['detail']

    def test_http_url_has_no_certificate_row(self, mock_opf):
        mock_opf.get_url_status.return_value = (False, 'HTTP 503')
        rows = service_health.check_urls(mock_opf, ['http://legacy.corp.local/'], 30)
        assert len(rows) == 1
        assert rows[0]['status'] == 'FAIL'
        mock_opf.get_ssl_cert_info.assert_not_called()

    def test_certificate_error(self, mock_opf):
        mock_opf.get_ssl_cert_info.side_effect = ConnectionResetError('reset by peer')
        rows = service_health.check_urls(mock_opf, ['https://intranet.corp.local/'], 30)
        assert rows[1]['status'] == 'FAIL'
        assert 'reset by peer' in rows[1]['detail']


class TestMain:
    """Test main()"""

    def test_config_hosts_and_mixed_results(self, mock_opf):
        mock_opf.ssh.side_effect = lambda cmd, host: completed(SSHD_ACTIVE if 'sshd' in cmd else NGINX_FAILED)
        mock_opf.get_ssl_cert_info.return_value = cert(12)

        report = service_health.main(mock_opf, tcp=['web-01.corp.local:443'],
                                     urls=['https://web-01.corp.local/'])

        # sshd PASS, nginx FAIL, tcp PASS, url PASS, certificate WARN (healthy)
        assert len(report.rows) == 5
        assert report.score == 80.0
        assert report.checks[0].name == 'Overall health'
        assert report.checks[0].status == 'WARN'
        assert any(c.name == 'Certificate web-01.corp.local' for c in report.checks)
        assert report.summary['Unhealthy'] == 1

    def test_host_failure_adds_fail_row(self, mock_opf):
        mock_opf.run_powershell_json.side_effect = mock_opf.RemoteCommandError('WinRM timeout')
        report = service_health.main(mock_opf, hosts=['app-01:windows'], services=['W3SVC'])
        assert report.rows[0]['status'] == 'FAIL'
        assert report.errors
        assert report.overall_status == 'FAIL'

    def test_nothing_to_check(self, mock_opf):
        mock_opf.config.remove_section('SERVICES')
        report = service_health.main(mock_opf)
        assert report.errors
        assert report.rows == []

    def test_dry_run(self, mock_opf):
        report = service_health.main(mock_opf, dry_run=True, tcp=['sql-01:1433'])
        mock_opf.ssh.assert_not_called()
        mock_opf.test_tcp_port.assert_not_called()
        assert report.rows == []


class TestCli:
    """Test CLI validation"""

    def test_bad_tcp_entry(self):
        with pytest.raises(SystemExit) as exc:
            service_health.cli(['--tcp', 'sql-01'])
        assert exc.value.code == 2
