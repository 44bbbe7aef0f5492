#!/usr/bin/env python3
# vm_resource_report.py - OpsReports VM Resource Report
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Inventories VM sizing, usage, snapshots and tools state from vCenter/ESXi

import os
import sys
import datetime
from typing import List, Dict, Tuple

from pyVmomi import vim

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'vm_resource_report'
MODULE_DESCRIPTION = 'VM sizing, usage, snapshots and VMware Tools state'

COLUMNS = ['name', 'power_state', 'guest_os', 'host', 'cluster', 'num_cpu', 'memory_mb',
           'cpu_usage_mhz', 'memory_usage_mb', 'memory_usage_pct', 'provisioned_gb', 'used_gb',
           'snapshots', 'oldest_snapshot_days', 'tools_status', 'uptime_hours', 'datastores']

DEFAULT_SNAPSHOT_DAYS = 7
MEMORY_WARN_PCT = 90
IDLE_CPU_PCT = 5
HOST_WARN_PCT = 85

GB = 1024 ** 3

#==============================================================================
# VM AND HOST RECORDS
#==============================================================================

def snapshot_list(tree) -> List[Tuple[str, datetime.datetime]]:
    """Flatten a snapshot tree into (name, createTime) pairs"""
    snapshots = []
    for node in tree or []:
        snapshots.append((node.name, node.createTime))
        snapshots.extend(snapshot_list(node.childSnapshotList))
    return snapshots


def age_days(when, now: datetime.datetime) -> int:
    if when.tzinfo is None:
        when = when.replace(tzinfo=datetime.timezone.utc)
    return (now - when).days


def host_cluster(host) -> str:
    parent = getattr(host, 'parent', None)
    if isinstance(parent, vim.ClusterComputeResource):
        return parent.name
    return ''


def vm_record(vm, now: datetime.datetime) -> Dict:
    """Flat record for one VM from its summary, runtime and snapshot tree"""
    summary = vm.summary
    config = summary.config
    stats = summary.quickStats
    runtime = vm.runtime

    host = runtime.host
    memory_mb = config.memorySizeMB or 0
    memory_used = stats.guestMemoryUsage or 0

    snapshots = snapshot_list(vm.snapshot.rootSnapshotList) if vm.snapshot else []
    oldest = max((age_days(created, now) for _, created in snapshots), default=None)

    storage = summary.storage
    committed = (storage.committed or 0) if storage else 0
    uncommitted = (storage.uncommitted or 0) if storage else 0

    uptime = stats.uptimeSeconds
    return {
        'name': config.name,
        'power_state': str(runtime.powerState),
        'guest_os': config.guestFullName or '',
        'host': host.name if host else '',
        'cluster': host_cluster(host) if host else '',
        'num_cpu': config.numCpu or 0,
        'memory_mb': memory_mb,
        'cpu_usage_mhz': stats.overallCpuUsage or 0,
        'memory_usage_mb': memory_used,
        'memory_usage_pct': round(memory_used / memory_mb * 100, 1) if memory_mb else 0.0,
        'provisioned_gb': round((committed + uncommitted) / GB, 2),
        'used_gb': round(committed / GB, 2),
        'snapshots': len(snapshots),
        'oldest_snapshot_days': oldest,
        'tools_status': str(vm.guest.toolsRunningStatus) if vm.guest else '',
        'uptime_hours': round(uptime / 3600, 1) if uptime else 0.0,
        'datastores': [ds.name for ds in vm.datastore],
        'cpu_mhz_per_core': host.summary.hardware.cpuMhz if host else 0,
    }


def vm_findings(record: Dict, snapshot_days: int) -> List[Tuple[str, str]]:
    """
    Evaluate one VM record

    :return: list of (status, message)
    """
    findings = []
    powered_on = record['power_state'] == 'poweredOn'

    if record['oldest_snapshot_days'] is not None and record['oldest_snapshot_days'] > snapshot_days:
        findings.append(('WARN', f"{record['snapshots']} snapshots, oldest {record['oldest_snapshot_days']} days"))
    if powered_on and record['tools_status'] != 'guestToolsRunning':
        findings.append(('WARN', f"VMware Tools not running ({record['tools_status'] or 'unknown'})"))
    if record['memory_usage_pct'] >= MEMORY_WARN_PCT:
        findings.append(('WARN', f"Memory usage {record['memory_usage_pct']}%"))

    capacity = record['num_cpu'] * record.get('cpu_mhz_per_core', 0)
    if powered_on and capacity:
        cpu_pct = record['cpu_usage_mhz'] / capacity * 100
        if cpu_pct < IDLE_CPU_PCT:
            findings.append(('INFO', f'Rightsizing candidate: CPU {cpu_pct:.1f}% of {record["num_cpu"]} vCPU'))
    return findings


def host_usage(host) -> Dict:
    """CPU and memory usage percent for one ESXi host"""
    hardware = host.summary.hardware
    stats = host.summary.quickStats
    cpu_capacity = (hardware.cpuMhz or 0) * (hardware.numCpuCores or 0)
    memory_mb = (hardware.memorySize or 0) / (1024 * 1024)
    return {
        'name': host.name,
        'cpu_pct': round((stats.overallCpuUsage or 0) / cpu_capacity * 100, 1) if cpu_capacity else 0.0,
        'memory_pct': round((stats.overallMemoryUsage or 0) / memory_mb * 100, 1) if memory_mb else 0.0,
    }


def skip_vm(vm) -> bool:
    """Templates and vSphere Cluster Services VMs are not reported"""
    config = vm.summary.config
    return bool(config.template) or str(config.name).startswith('vCLS')


def object_identity(obj, uuid):
    """
    Identity of a VM or host across sessions

    The same object seen through a vCenter and through its ESXi host shares
    one UUID; without a UUID the managed object id within its session is used.
    """
    if uuid:
        return uuid
    moid = getattr(obj, '_moId', None)
    if moid:
        return id(getattr(obj, '_stub', None)), moid
    return id(obj)


def vm_identity(vm):
    config = vm.summary.config
    return object_identity(vm, getattr(config, 'instanceUuid', None) or getattr(config, 'uuid', None))


def host_identity(host):
    return object_identity(host, getattr(host.summary.hardware, 'uuid', None))

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for vm_resource_report

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: List the vCenters without connecting
    :param options: vcenters, snapshot_days
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    vcenters = options.get('vcenters') or opf.get_config_list('VSPHERE', 'vCenters')
    snapshot_days = options.get('snapshot_days') or opf.get_config_int('VSPHERE', 'SnapshotDays',
                                                                       DEFAULT_SNAPSHOT_DAYS)

    report = Report(MODULE_NAME, f'{opf.title_prefix} VM Resource Report', COLUMNS,
                    parameters={'vcenters': vcenters, 'snapshot_days': snapshot_days})

    if not vcenters:
        report.add_error('No vCenters configured ([VSPHERE] vCenters or --vcenters)', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    if dry_run:
        for entry in vcenters:
            opf.write_output(f'Would inventory VMs on {entry.split(":")[0]}')
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # TASK 1: Connect
    #==========================================================================

    failed = opf.connect_vcenters(vcenters)
    for host in failed:
        report.add_error(f'{host}: could not connect', opf)
        report.add_check(host, 'FAIL', 'vCenter/ESXi connection failed')

    try:
        now = datetime.datetime.now(datetime.timezone.utc)

        #======================================================================
        # TASK 2: Virtual machines
        #======================================================================

        seen = set()
        for vm in opf.get_all_vms():
            try:
                if skip_vm(vm):
                    continue
                identity = vm_identity(vm)
                record = vm_record(vm, now)
            except Exception as e:
                report.add_error(f'{getattr(vm, "name", vm)}: could not read VM - {e}', opf)
                continue
            if identity in seen:
                continue
            seen.add(identity)

            for status, message in vm_findings(record, snapshot_days):
                report.add_check(record['name'], status, message)
                if status == 'WARN':
                    opf.write_output(f"{record['name']}: {message}", level='WARN')
            record.pop('cpu_mhz_per_core', None)
            report.rows.append(record)

        opf.write_output(f'{len(report.rows)} VMs inventoried')

        #======================================================================
        # TASK 3: Hosts
        #======================================================================

        seen_hosts = set()
        for host in opf.get_all_hosts():
            try:
                identity = host_identity(host)
                usage = host_usage(host)
            except Exception as e:
                report.add_error(f'{getattr(host, "name", host)}: could not read host - {e}', opf)
                continue
            if identity in seen_hosts:
                continue
            seen_hosts.add(identity)
            worst = max(usage['cpu_pct'], usage['memory_pct'])
            status = 'WARN' if worst >= HOST_WARN_PCT else 'PASS'
            report.add_check(f"Host {usage['name']}", status,
                             f"CPU {usage['cpu_pct']}%, memory {usage['memory_pct']}%")
    finally:
        opf.disconnect_vcenters()

    report.rows.sort(key=lambda r: r['name'].lower())
    powered_on = [r for r in report.rows if r['power_state'] == 'poweredOn']
    report.summary = {
        'VMs': len(report.rows),
        'Powered on': len(powered_on),
        'vCPU': sum(r['num_cpu'] for r in report.rows),
        'Memory GB': round(sum(r['memory_mb'] for r in report.rows) / 1024, 1),
        'Provisioned GB': round(sum(r['provisioned_gb'] for r in report.rows), 1),
        'Snapshots': sum(r['snapshots'] for r in report.rows),
    }
    if report.rows and not any(c.status in ('WARN', 'FAIL') for c in report.checks):
        report.add_check('VMs', 'PASS', f'{len(report.rows)} VMs without findings')

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--vcenters', nargs='+', help='vCenter/ESXi entries as host[:linux|esx[:user]]')
    parser.add_argument('--snapshot-days', type=report_builder.positive_int,
                        help=f'Warn on snapshots older than this (default {DEFAULT_SNAPSHOT_DAYS})')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
