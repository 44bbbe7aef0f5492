#!/usr/bin/env python3
# port_scanner.py - OpsReports TCP Port Scanner
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Concurrent TCP connect scan of hosts, ranges and CIDR blocks with optional banner grab

import os
import sys
import time
import socket
import argparse
import ipaddress
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Dict

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'port_scanner'
MODULE_DESCRIPTION = 'TCP port scan of hosts, ranges and CIDR blocks'

COLUMNS = ['host', 'port', 'state', 'service', 'response_ms', 'banner']

MAX_TARGETS = 4096
MAX_THREADS = 256
DEFAULT_THREADS = 50
DEFAULT_TIMEOUT = 1.0
BANNER_LENGTH = 128

PORT_PROFILES = {
    'common': [21, 22, 23, 25, 53, 80, 110, 135, 139, 143, 443, 445, 993, 995,
               1433, 1723, 3306, 3389, 5432, 5900, 8080, 8443],
    'web': [80, 443, 8000, 8008, 8080, 8443, 8888],
    'windows': [53, 88, 135, 139, 389, 445, 464, 636, 3268, 3269, 3389, 5985, 5986],
    'database': [1433, 1521, 3306, 5432, 6379, 9200, 27017],
}

SERVICES = {
    21: 'ftp', 22: 'ssh', 23: 'telnet', 25: 'smtp', 53: 'dns', 80: 'http',
    88: 'kerberos', 110: 'pop3', 135: 'msrpc', 139: 'netbios-ssn', 143: 'imap',
    389: 'ldap', 443: 'https', 445: 'smb', 464: 'kpasswd', 636: 'ldaps',
    993: 'imaps', 995: 'pop3s', 1433: 'mssql', 1521: 'oracle', 1723: 'pptp',
    3268: 'globalcatalog', 3269: 'globalcatalog-ssl', 3306: 'mysql', 3389: 'rdp',
    5432: 'postgresql', 5900: 'vnc', 5985: 'winrm', 5986: 'winrm-https',
    6379: 'redis', 8000: 'http-alt', 8008: 'http-alt', 8080: 'http-proxy',
    8443: 'https-alt', 8888: 'http-alt', 9200: 'elasticsearch', 27017: 'mongodb',
}

# Open ports that expose legacy or sensitive services
RISKY_PORTS = {
    21: 'FTP (cleartext credentials)',
    23: 'Telnet (cleartext credentials)',
    135: 'MS RPC endpoint mapper',
    139: 'NetBIOS session service',
    445: 'SMB',
    1433: 'SQL Server',
    3306: 'MySQL',
    3389: 'Remote Desktop',
    5432: 'PostgreSQL',
    5900: 'VNC',
    6379: 'Redis',
    27017: 'MongoDB',
}

HTTP_PORTS = (80, 8000, 8008, 8080, 8888)

#==============================================================================
# TARGET AND PORT PARSING
#==============================================================================

def _add_target(targets: List[str], seen: set, target: str):
    if target in seen:
        return
    if len(targets) >= MAX_TARGETS:
        raise ValueError(f'More than {MAX_TARGETS} targets requested')
    seen.add(target)
    targets.append(target)


def _ip_range(start: str, end: str):
    first = ipaddress.ip_address(start)
    last = ipaddress.ip_address(end)
    if first.version != last.version:
        raise ValueError(f'Range {start}-{end} mixes IPv4 and IPv6')
    if int(first) > int(last):
        raise ValueError(f'Invalid range {start}-{end}: start is after end')
    if int(last) - int(first) + 1 > MAX_TARGETS:
        raise ValueError(f'Range {start}-{end} exceeds {MAX_TARGETS} targets')
    return [str(ipaddress.ip_address(n)) for n in range(int(first), int(last) + 1)]


def expand_targets(spec) -> List[str]:
    """
    Expand a target specification into a list of hosts

    Accepts a comma separated string (or list) of IPs, host names, CIDR
    blocks ('10.0.0.0/28'), last-octet ranges ('10.0.0.5-20') and full
    ranges ('10.0.0.5-10.0.0.20'). Order is preserved and duplicates removed.

    :raises ValueError: invalid range or more than MAX_TARGETS targets
    """
    if isinstance(spec, str):
        tokens = spec.replace('\n', ',').split(',')
    else:
        tokens = [t for item in spec for t in str(item).split(',')]

    targets = []
    seen = set()
    for token in tokens:
        token = token.strip()
        if not token:
            continue

        if '/' in token:
            network = ipaddress.ip_network(token, strict=False)
            if network.num_addresses > MAX_TARGETS + 2:
                raise ValueError(f'Network {token} exceeds {MAX_TARGETS} targets')
            # /31 and /32 have no network/broadcast address to drop
            hosts = list(network) if network.num_addresses <= 2 else list(network.hosts())
            for ip in hosts:
                _add_target(targets, seen, str(ip))
            continue

        if '-' in token:
            start, end = [p.strip() for p in token.split('-', 1)]
            try:
                start_ip = ipaddress.ip_address(start)
            except ValueError:
                start_ip = None
            if start_ip is not None:
                if end.isdigit() and start_ip.version == 4:
                    prefix = start.rsplit('.', 1)[0]
                    if int(end) > 255:
                        raise ValueError(f'Invalid range {token}: last octet above 255')
                    end = f'{prefix}.{end}'
                for ip in _ip_range(start, end):
                    _add_target(targets, seen, ip)
                continue

        # Single IP or host name (host names may contain '-')
        _add_target(targets, seen, token)

    return targets


def parse_ports(spec) -> List[int]:
    """
    Parse '22,80,8000-8010' or a profile name into a sorted list of ports

    :raises ValueError: for malformed specs or ports outside 1-65535
    """
    if isinstance(spec, (list, tuple)):
        spec = ','.join(str(s) for s in spec)
    spec = str(spec).strip()
    if spec.lower() in PORT_PROFILES:
        return sorted(PORT_PROFILES[spec.lower()])

    ports = set()
    for token in spec.split(','):
        token = token.strip()
        if not token:
            continue
        if token.lower() in PORT_PROFILES:
            ports.update(PORT_PROFILES[token.lower()])
            continue
        if '-' in token:
            low, high = [int(p) for p in token.split('-', 1)]
        else:
            low = high = int(token)
        if low < 1 or high > 65535:
            raise ValueError(f'Port {token} outside 1-65535')
        if low > high:
            raise ValueError(f'Invalid port range {token}')
        ports.update(range(low, high + 1))

    if not ports:
        raise ValueError('No ports specified')
    return sorted(ports)

#==============================================================================
# SCANNING
#==============================================================================

def grab_banner(sock: socket.socket, port: int, timeout: float) -> str:
    """Read the first line a service sends (HTTP ports are sent a HEAD request)"""
    try:
        sock.settimeout(min(timeout, 2.0))
        if port in HTTP_PORTS:
            sock.sendall(b'HEAD / HTTP/1.0\r\n\r\n')
        data = sock.recv(1024)
    except OSError:
        return ''
    text = data.decode('utf-8', errors='replace').strip()
    first_line = text.splitlines()[0] if text else ''
    return first_line[:BANNER_LENGTH]


def scan_port(host: str, port: int, timeout: float = DEFAULT_TIMEOUT, banner: bool = False) -> Dict:
    """
    TCP connect probe of one port

    :return: record with state open, closed (refused) or filtered (timeout/unreachable)
    """
    record = {
        'host': host,
        'port': port,
        'state': 'filtered',
        'service': SERVICES.get(port, ''),
        'response_ms': None,
        'banner': '',
    }
    start = time.perf_counter()
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except ConnectionRefusedError:
        record['state'] = 'closed'
        record['response_ms'] = round((time.perf_counter() - start) * 1000, 1)
        return record
    except OSError:
        return record

    record['response_ms'] = round((time.perf_counter() - start) * 1000, 1)
    record['state'] = 'open'
    try:
        if banner:
            record['banner'] = grab_banner(sock, port, timeout)
    finally:
        sock.close()
    return record


def scan_targets(hosts: List[str], ports: List[int], timeout: float = DEFAULT_TIMEOUT,
                 threads: int = DEFAULT_THREADS, banner: bool = False, opf=None) -> List[Dict]:
    """
    Scan every host/port pair with a bounded thread pool

    :return: records sorted by host order, then port
    """
    results = []
    total = len(hosts) * len(ports)
    host_order = {h: i for i, h in enumerate(hosts)}

    with ThreadPoolExecutor(max_workers=threads) as executor:
        future_to_probe = {
            executor.submit(scan_port, host, port, timeout, banner): (host, port)
            for host in hosts
            for port in ports
        }
        for done, future in enumerate(as_completed(future_to_probe), start=1):
            results.append(future.result())
            if opf is not None and done % 500 == 0:
                opf.write_output(f'Scan progress: {done}/{total} probes', level='DEBUG')

    results.sort(key=lambda r: (host_order[r['host']], r['port']))
    return results


def resolve_hosts(opf, report: Report, hosts: List[str]) -> List[str]:
    """Drop host names that do not resolve, recording an error for each"""
    resolved = []
    for host in hosts:
        try:
            socket.getaddrinfo(host, None)
            resolved.append(host)
        except socket.gaierror as e:
            report.add_error(f'{host}: name resolution failed - {e}', opf)
    return resolved


def analyze(report: Report, records: List[Dict], hosts: List[str]):
    """Add risky port checks and host summary"""
    open_records = [r for r in records if r['state'] == 'open']
    risky = [r for r in open_records if r['port'] in RISKY_PORTS]
    for r in risky:
        report.add_check(f"{r['host']}:{r['port']}", 'WARN',
                         f"Risky service open: {RISKY_PORTS[r['port']]}")
    if not risky:
        report.add_check('Risky ports', 'PASS', 'No risky services found open')

    hosts_with_open = {r['host'] for r in open_records}
    report.add_check('Scan summary', 'INFO',
                     f'{len(hosts)} hosts scanned, {len(hosts_with_open)} with open ports, '
                     f'{len(open_records)} open ports')
    report.summary = {
        'Hosts scanned': len(hosts),
        'Hosts with open ports': len(hosts_with_open),
        'Open ports': len(open_records),
        'Risky ports': len(risky),
    }

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for port_scanner

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: Expand targets/ports without probing
    :param options: targets, ports, timeout, threads, banner, show_closed
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    target_spec = options.get('targets') or opf.get_config_list('PORTSCAN', 'Targets')
    port_spec = options.get('ports') or opf.get_config_value('PORTSCAN', 'Ports', 'common')
    timeout = options.get('timeout') or opf.get_config_float('PORTSCAN', 'Timeout', DEFAULT_TIMEOUT)
    threads = options.get('threads') or opf.get_config_int('PORTSCAN', 'Threads', DEFAULT_THREADS)
    threads = max(1, min(threads, MAX_THREADS))
    banner = options.get('banner') or opf.get_config_bool('PORTSCAN', 'Banner', False)
    show_closed = options.get('show_closed') or opf.get_config_bool('PORTSCAN', 'ShowClosed', False)

    report = Report(MODULE_NAME, f'{opf.title_prefix} Port Scan Report', COLUMNS,
                    parameters={'targets': target_spec, 'ports': port_spec, 'timeout': timeout,
                                'threads': threads, 'banner': banner, 'show_closed': show_closed})

    try:
        hosts = expand_targets(target_spec)
        ports = parse_ports(port_spec)
    except ValueError as e:
        report.add_error(f'Invalid scan parameters: {e}', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    if not hosts:
        report.add_error('No scan targets configured ([PORTSCAN] Targets or --targets)', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    opf.write_output(f'{len(hosts)} hosts x {len(ports)} ports = {len(hosts) * len(ports)} probes '
                     f'with {threads} threads')

    if dry_run:
        for host in hosts:
            opf.write_output(f'Would scan {host}')
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # Scan
    #==========================================================================

    hosts = resolve_hosts(opf, report, hosts)
    start = time.perf_counter()
    records = scan_targets(hosts, ports, timeout, threads, banner, opf)
    elapsed = time.perf_counter() - start

    for r in records:
        if r['state'] == 'open':
            opf.write_output(f"{r['host']}:{r['port']} open {r['service']} {r['banner']}".rstrip())

    analyze(report, records, hosts)
    report.summary['Scan seconds'] = round(elapsed, 1)
    report.rows = records if show_closed else [r for r in records if r['state'] == 'open']

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def thread_count(value):
    """argparse type: worker threads 1..MAX_THREADS"""
    number = report_builder.positive_int(value)
    if number > MAX_THREADS:
        raise argparse.ArgumentTypeError(f'{value!r} exceeds the {MAX_THREADS} thread limit')
    return number


def timeout_seconds(value):
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f'{value!r} is not a number')
    if number <= 0:
        raise argparse.ArgumentTypeError('timeout must be positive')
    return number


def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--targets', help='IPs, host names, CIDR blocks or ranges, comma separated')
    parser.add_argument('--ports', help=f'Port list/ranges or profile ({", ".join(PORT_PROFILES)})')
    parser.add_argument('--timeout', type=timeout_seconds, help=f'Connect timeout seconds (default {DEFAULT_TIMEOUT})')
    parser.add_argument('--threads', type=thread_count, help=f'Worker threads 1-{MAX_THREADS} (default {DEFAULT_THREADS})')
    parser.add_argument('--banner', action='store_true', help='Grab service banners from open ports')
    parser.add_argument('--show-closed', action='store_true', help='Include closed and filtered ports in the output')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        if args.targets:
            expand_targets(args.targets)
        if args.ports:
            parse_ports(args.ports)
    except ValueError as e:
        parser.error(str(e))
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
