#!/usr/bin/env python3
# disk_monitor.py - OpsReports Disk Space Monitor
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Reports disk usage for local, Windows and Linux hosts against warning/critical thresholds

import os
import sys
from typing import List, Dict

import psutil

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'disk_monitor'
MODULE_DESCRIPTION = 'Disk space usage against warning/critical thresholds'

COLUMNS = ['host', 'drive', 'label', 'filesystem', 'size_gb', 'used_gb',
           'free_gb', 'percent_used', 'status']

DEFAULT_WARNING = 80.0
DEFAULT_CRITICAL = 90.0

# Pseudo filesystems that never fill up in a meaningful way
SKIP_FSTYPES = ('squashfs', 'tmpfs', 'overlay', 'devtmpfs', 'proc', 'sysfs',
                'cgroup', 'cgroup2', 'autofs', 'devpts', 'iso9660')

GB = 1024 ** 3

WINDOWS_DISK_SCRIPT = (
    'Get-CimInstance Win32_LogicalDisk -Filter "DriveType=3" | '
    'Select-Object DeviceID, VolumeName, FileSystem, Size, FreeSpace'
)

#==============================================================================
# THRESHOLDS AND PARSING
#==============================================================================

def disk_status(percent_used: float, free_gb: float, warning: float, critical: float,
                min_free_gb: float = 0.0) -> str:
    """
    Classify one disk

    :return: FAIL at/above critical or below min_free_gb, WARN at/above warning, else PASS
    """
    if percent_used >= critical or (min_free_gb and free_gb < min_free_gb):
        return 'FAIL'
    if percent_used >= warning:
        return 'WARN'
    return 'PASS'


def make_record(host, drive, label, filesystem, total_bytes, free_bytes) -> Dict:
    """Build a disk record (without status) from byte counts"""
    total_bytes = int(total_bytes or 0)
    free_bytes = int(free_bytes or 0)
    used_bytes = max(total_bytes - free_bytes, 0)
    percent_used = round(used_bytes / total_bytes * 100, 2) if total_bytes else 0.0
    return {
        'host': host,
        'drive': drive,
        'label': label or '',
        'filesystem': filesystem or '',
        'size_gb': round(total_bytes / GB, 2),
        'used_gb': round(used_bytes / GB, 2),
        'free_gb': round(free_bytes / GB, 2),
        'percent_used': percent_used,
    }


def parse_df_output(text: str, host: str) -> List[Dict]:
    """
    Parse 'df -PkT' output into disk records

    Expected columns: Filesystem Type 1024-blocks Used Available Capacity Mounted-on
    """
    records = []
    for line in (text or '').splitlines()[1:]:
        parts = line.split()
        if len(parts) < 7:
            continue
        device, fstype = parts[0], parts[1]
        if fstype in SKIP_FSTYPES:
            continue
        try:
            total_kb = int(parts[2])
            avail_kb = int(parts[4])
        except ValueError:
            continue
        if total_kb == 0:
            continue
        mount = ' '.join(parts[6:])
        records.append(make_record(host, mount, device, fstype, total_kb * 1024, avail_kb * 1024))
    return records


def parse_windows_disks(items: List[Dict], host: str) -> List[Dict]:
    """Convert Win32_LogicalDisk objects into disk records"""
    records = []
    for item in items:
        if not item.get('Size'):
            continue
        records.append(make_record(host, item.get('DeviceID', ''), item.get('VolumeName'),
                                   item.get('FileSystem'), item.get('Size'), item.get('FreeSpace')))
    return records

#==============================================================================
# COLLECTION
#==============================================================================

def collect_local(host: str = 'localhost') -> List[Dict]:
    """Collect disk records for the local machine with psutil"""
    records = []
    for part in psutil.disk_partitions(all=False):
        if part.fstype in SKIP_FSTYPES or not part.fstype:
            continue
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (PermissionError, OSError):
            # Unreadable mounts (empty card readers, stale network drives)
            continue
        records.append(make_record(host, part.mountpoint, part.device, part.fstype,
                                   usage.total, usage.free))
    return records


def collect_windows(opf, host: str) -> List[Dict]:
    items = opf.run_powershell_json(WINDOWS_DISK_SCRIPT, host)
    return parse_windows_disks(items, host)


def collect_linux(opf, host: str) -> List[Dict]:
    result = opf.ssh('df -PkT', host)
    if result.returncode != 0:
        raise opf.RemoteCommandError(f'{host}: df failed - {(result.stderr or "").strip()[:200]}')
    return parse_df_output(result.stdout, host)


def collect_host(opf, host: str, os_type: str) -> List[Dict]:
    if os_type == 'local':
        return collect_local(host)
    if os_type == 'linux':
        return collect_linux(opf, host)
    return collect_windows(opf, host)

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for disk_monitor

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: List targets without querying them
    :param options: hosts, warning, critical, min_free_gb
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    hosts = options.get('hosts') or opf.get_config_list('DISK', 'Hosts', ['localhost'])
    warning = options.get('warning')
    if warning is None:
        warning = opf.get_config_float('DISK', 'WarningPercent', DEFAULT_WARNING)
    critical = options.get('critical')
    if critical is None:
        critical = opf.get_config_float('DISK', 'CriticalPercent', DEFAULT_CRITICAL)
    min_free_gb = options.get('min_free_gb')
    if min_free_gb is None:
        min_free_gb = opf.get_config_float('DISK', 'MinFreeGB', 0.0)

    report = Report(MODULE_NAME, f'{opf.title_prefix} Disk Space Report', COLUMNS,
                    parameters={'hosts': hosts, 'warning': warning, 'critical': critical,
                                'min_free_gb': min_free_gb})

    if warning >= critical:
        report.add_error(f'Warning threshold {warning} must be lower than critical {critical}', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # Collect each host
    #==========================================================================

    for entry in hosts:
        host, os_type = opf.parse_host_entry(entry)
        if dry_run:
            opf.write_output(f'Would query disks on {host} ({os_type})')
            continue

        opf.write_output(f'Querying disks on {host} ({os_type})...')
        try:
            records = collect_host(opf, host, os_type)
        except Exception as e:
            report.add_error(f'{host}: disk query failed - {e}', opf)
            report.add_check(host, 'FAIL', f'Could not query disks: {e}')
            continue

        for record in records:
            record['status'] = disk_status(record['percent_used'], record['free_gb'],
                                           warning, critical, min_free_gb)
            report.rows.append(record)
            level = {'PASS': 'DEBUG', 'WARN': 'WARN', 'FAIL': 'ERROR'}[record['status']]
            opf.write_output(f"{host} {record['drive']}: {record['percent_used']}% used, "
                             f"{record['free_gb']} GB free", level=level)

        worst = [r for r in records if r['status'] != 'PASS']
        if not records:
            report.add_check(host, 'WARN', 'No fixed disks reported')
        elif any(r['status'] == 'FAIL' for r in worst):
            drives = ', '.join(r['drive'] for r in worst if r['status'] == 'FAIL')
            report.add_check(host, 'FAIL', f'Critical disk usage: {drives}')
        elif worst:
            drives = ', '.join(r['drive'] for r in worst)
            report.add_check(host, 'WARN', f'Disk usage above {warning}%: {drives}')
        else:
            report.add_check(host, 'PASS', f'{len(records)} disks below {warning}%')

    report.summary = {
        'Hosts': len(hosts),
        'Disks': len(report.rows),
        'Warning': sum(1 for r in report.rows if r['status'] == 'WARN'),
        'Critical': sum(1 for r in report.rows if r['status'] == 'FAIL'),
    }

    return report_builder.finish_report(opf, report, write_files=not dry_run)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--hosts', nargs='+', help='Hosts as host[:windows|linux|local]')
    parser.add_argument('--warning', type=report_builder.percent, help='Warning threshold percent (default 80)')
    parser.add_argument('--critical', type=report_builder.percent, help='Critical threshold percent (default 90)')
    parser.add_argument('--min-free-gb', type=float, help='Fail disks with less free space than this')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    warning = args.warning if args.warning is not None else DEFAULT_WARNING
    critical = args.critical if args.critical is not None else DEFAULT_CRITICAL
    if (args.warning is not None or args.critical is not None) and warning >= critical:
        parser.error(f'--warning ({warning}) must be lower than --critical ({critical})')
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
