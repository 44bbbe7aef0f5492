#!/usr/bin/env python3
# service_health.py - OpsReports Service Health Check
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Verifies Windows services, systemd units, TCP ports, URLs and TLS certificates

import os
import sys
from urllib.parse import urlparse
from typing import List, Dict, Optional, Tuple

import psutil

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'service_health'
MODULE_DESCRIPTION = 'Services, TCP ports, URLs and certificates'

COLUMNS = ['host', 'check_type', 'target', 'status', 'detail', 'healthy']

DEFAULT_CERT_WARN_DAYS = 30

AUTOMATIC_START = ('automatic', 'auto', 'automaticdelayedstart', 'enabled', 'enabled-runtime', 'static', 'boot', 'system')

WINDOWS_SERVICE_SCRIPT = (
    "Get-Service -Name {names} -ErrorAction SilentlyContinue | "
    "Select-Object Name, DisplayName, @{{n='Status';e={{[string]$_.Status}}}}, "
    "@{{n='StartType';e={{[string]$_.StartType}}}}"
)

#==============================================================================
# EVALUATION
#==============================================================================

def service_state_status(exists: bool, running: bool, start_mode: str) -> Tuple[str, Optional[bool]]:
    """
    Health of one service

    :return: (status, healthy) - healthy None means not counted
    """
    if not exists:
        return 'FAIL', False
    if running:
        return 'PASS', True
    if str(start_mode).replace(' ', '').lower() in AUTOMATIC_START:
        return 'FAIL', False
    return 'INFO', None


def cert_status(days_to_expire: int, warn_days: int) -> str:
    if days_to_expire < 0:
        return 'FAIL'
    if days_to_expire < warn_days:
        return 'WARN'
    return 'PASS'


def health_percent(rows: List[Dict]) -> float:
    counted = [r for r in rows if r['healthy'] is not None]
    if not counted:
        return 100.0
    return round(sum(1 for r in counted if r['healthy']) / len(counted) * 100, 1)


def health_status(percent: float) -> str:
    if percent >= 100:
        return 'PASS'
    if percent >= 80:
        return 'WARN'
    return 'FAIL'


def _row(host, check_type, target, status, detail, healthy) -> Dict:
    return {
        'host': host,
        'check_type': check_type,
        'target': target,
        'status': status,
        'detail': detail,
        'healthy': healthy,
    }

#==============================================================================
# SERVICE COLLECTION
#==============================================================================

def parse_systemctl_show(text: str) -> Dict[str, str]:
    """Parse 'systemctl show -p ...' KEY=value output"""
    data = {}
    for line in (text or '').splitlines():
        if '=' in line:
            key, value = line.split('=', 1)
            data[key.strip()] = value.strip()
    return data


def check_windows_services(opf, host: str, services: List[str]) -> List[Dict]:
    """Service rows for a Windows host (psutil locally, Get-Service remotely)"""
    rows = []
    if opf.is_local(host) and hasattr(psutil, 'win_service_get'):
        for name in services:
            try:
                info = psutil.win_service_get(name).as_dict()
            except psutil.NoSuchProcess:
                rows.append(_row(host, 'service', name, 'FAIL', 'Service not found', False))
                continue
            status, healthy = service_state_status(True, info['status'] == 'running', info['start_type'])
            rows.append(_row(host, 'service', name, status, f"{info['status']} ({info['start_type']})", healthy))
        return rows

    names = ','.join(f"'{s}'" for s in services)
    items = opf.run_powershell_json(WINDOWS_SERVICE_SCRIPT.format(names=names), None if opf.is_local(host) else host)
    by_name = {str(i.get('Name', '')).lower(): i for i in items}
    for name in services:
        item = by_name.get(name.lower())
        if item is None:
            rows.append(_row(host, 'service', name, 'FAIL', 'Service not found', False))
            continue
        running = str(item.get('Status')) == 'Running'
        status, healthy = service_state_status(True, running, item.get('StartType', ''))
        rows.append(_row(host, 'service', name, status,
                         f"{item.get('Status')} ({item.get('StartType')})", healthy))
    return rows


def check_linux_services(opf, host: str, services: List[str]) -> List[Dict]:
    """Service rows for a Linux host via systemctl (local or over SSH)"""
    rows = []
    for name in services:
        cmd = f'systemctl show -p LoadState,ActiveState,SubState,UnitFileState {name}'
        if opf.is_local(host):
            result = opf.run_command(cmd)
        else:
            result = opf.ssh(cmd, host)
        if result.returncode != 0 and not result.stdout:
            rows.append(_row(host, 'service', name, 'FAIL',
                             f'systemctl failed: {(result.stderr or "").strip()[:120]}', False))
            continue
        state = parse_systemctl_show(result.stdout)
        exists = state.get('LoadState', 'not-found') != 'not-found'
        running = state.get('ActiveState') == 'active'
        status, healthy = service_state_status(exists, running, state.get('UnitFileState', ''))
        detail = f"{state.get('ActiveState', 'unknown')}/{state.get('SubState', '')} ({state.get('UnitFileState', '')})"
        rows.append(_row(host, 'service', name, status, detail if exists else 'Unit not found', healthy))
    return rows

#==============================================================================
# ENDPOINT CHECKS
#==============================================================================

def parse_tcp_entry(entry: str) -> Tuple[str, int]:
    host, port = entry.rsplit(':', 1)
    return host.strip(), int(port)


def parse_url_entry(entry: str) -> Tuple[str, str]:
    """'url[,expected text]' -> (url, expected)"""
    if ',' in entry:
        url, expected = entry.split(',', 1)
        return url.strip(), expected.strip()
    return entry.strip(), ''


def check_tcp(opf, entries: List[str]) -> List[Dict]:
    rows = []
    for entry in entries:
        try:
            host, port = parse_tcp_entry(entry)
        except ValueError:
            opf.write_output(f'Invalid TCPServices entry: {entry}', level='WARN')
            continue
        if opf.test_tcp_port(host, port, timeout=5):
            rows.append(_row(host, 'tcp', str(port), 'PASS', 'Port open', True))
        else:
            rows.append(_row(host, 'tcp', str(port), 'FAIL', 'Port closed or unreachable', False))
    return rows


def check_urls(opf, entries: List[str], cert_warn_days: int) -> List[Dict]:
    rows = []
    for entry in entries:
        url, expected = parse_url_entry(entry)
        parsed = urlparse(url)
        host = parsed.hostname or url
        ok, detail = opf.get_url_status(url, expected_text=expected or None, timeout=15)
        rows.append(_row(host, 'url', url, 'PASS' if ok else 'FAIL', detail, ok))

        if parsed.scheme != 'https':
            continue
        try:
            cert = opf.get_ssl_cert_info(host, parsed.port or 443)
        except Exception as e:
            rows.append(_row(host, 'certificate', url, 'FAIL', f'Certificate check failed: {e}', False))
            continue
        days = cert['days_to_expire']
        status = cert_status(days, cert_warn_days)
        if days < 0:
            detail = f"{cert['certname']} expired {-days} days ago ({cert['expiration']})"
        else:
            detail = f"{cert['certname']} expires in {days} days ({cert['expiration']}), {cert['issuer']}"
        rows.append(_row(host, 'certificate', url, status, detail, status != 'FAIL'))
    return rows

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for service_health

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: List checks without running them
    :param options: hosts, services, tcp, urls, cert_warn_days
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    hosts = options.get('hosts') or opf.get_config_list('SERVICES', 'Hosts')
    services = options.get('services') or opf.get_config_list('SERVICES', 'Services')
    tcp_entries = options.get('tcp') or opf.get_config_list('SERVICES', 'TCPServices')
    url_entries = options.get('urls') or opf.get_config_list('SERVICES', 'URLs')
    cert_warn_days = options.get('cert_warn_days') or opf.get_config_int('SERVICES', 'CertWarnDays',
                                                                         DEFAULT_CERT_WARN_DAYS)

    report = Report(MODULE_NAME, f'{opf.title_prefix} Service Health Report', COLUMNS,
                    parameters={'hosts': hosts, 'services': services, 'tcp': tcp_entries,
                                'urls': url_entries, 'cert_warn_days': cert_warn_days})

    if not (hosts and services) and not tcp_entries and not url_entries:
        report.add_error('Nothing to check: configure [SERVICES] Hosts/Services, TCPServices or URLs', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    if dry_run:
        for entry in hosts:
            opf.write_output(f'Would check services {services} on {entry}')
        for entry in tcp_entries:
            opf.write_output(f'Would test TCP {entry}')
        for entry in url_entries:
            opf.write_output(f'Would test URL {entry}')
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # TASK 1: Services
    #==========================================================================

    if services:
        for entry in hosts:
            host, os_type = opf.parse_host_entry(entry)
            if os_type == 'local':
                os_type = 'windows' if os.name == 'nt' else 'linux'
            opf.write_output(f'Checking {len(services)} services on {host} ({os_type})...')
            try:
                if os_type == 'linux':
                    rows = check_linux_services(opf, host, services)
                else:
                    rows = check_windows_services(opf, host, services)
            except Exception as e:
                report.add_error(f'{host}: service query failed - {e}', opf)
                report.rows.append(_row(host, 'service', ', '.join(services), 'FAIL', str(e), False))
                continue
            report.rows.extend(rows)

    #==========================================================================
    # TASK 2: TCP ports and URLs
    #==========================================================================

    if tcp_entries:
        opf.write_output(f'Testing {len(tcp_entries)} TCP endpoints...')
        report.rows.extend(check_tcp(opf, tcp_entries))

    if url_entries:
        opf.write_output(f'Testing {len(url_entries)} URLs...')
        report.rows.extend(check_urls(opf, url_entries, cert_warn_days))

    for row in report.rows:
        if row['status'] in ('FAIL', 'WARN'):
            opf.write_output(f"{row['host']} {row['check_type']} {row['target']}: {row['detail']}",
                             level=report_builder.STATUS_LEVELS[row['status']])

    #==========================================================================
    # Summary
    #==========================================================================

    percent = health_percent(report.rows)
    report.score = percent
    counted = [r for r in report.rows if r['healthy'] is not None]
    unhealthy = [r for r in counted if not r['healthy']]
    report.add_check('Overall health', health_status(percent),
                     f'{percent}% healthy ({len(counted) - len(unhealthy)}/{len(counted)})')
    for row in report.rows:
        if row['check_type'] == 'certificate' and row['status'] == 'WARN':
            report.add_check(f"Certificate {row['host']}", 'WARN', row['detail'])

    report.summary = {
        'Checks': len(report.rows),
        'Healthy': len(counted) - len(unhealthy),
        'Unhealthy': len(unhealthy),
        'Not counted': len(report.rows) - len(counted),
    }

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--hosts', nargs='+', help='Hosts as host[:windows|linux|local]')
    parser.add_argument('--services', nargs='+', help='Service names to check on every host')
    parser.add_argument('--tcp', nargs='+', help='TCP endpoints as host:port')
    parser.add_argument('--urls', nargs='+', help='URLs as url[,expected text]')
    parser.add_argument('--cert-warn-days', type=report_builder.positive_int,
                        help=f'Warn when certificates expire within this many days (default {DEFAULT_CERT_WARN_DAYS})')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    for entry in args.tcp or []:
        try:
            parse_tcp_entry(entry)
        except ValueError:
            parser.error(f'invalid --tcp entry {entry!r}, expected host:port')
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
