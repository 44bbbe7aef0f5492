#!/usr/bin/env python3
# vm_bulk_deploy.py - OpsReports VM Bulk Deploy
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Clones VMs from vCenter templates as listed in a CSV file, one at a time

import os
import sys
import csv
import time
from dataclasses import dataclass
from typing import List, Dict, Optional

from pyVim.task import WaitForTask
from pyVmomi import vim

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'vm_bulk_deploy'
MODULE_DESCRIPTION = 'Clone VMs from templates listed in a CSV file'

COLUMNS = ['row', 'name', 'template', 'status', 'message', 'duration_s']

REQUIRED_FIELDS = ('name', 'template', 'cluster', 'datastore')
OPTIONAL_FIELDS = ('folder', 'cpu', 'memory_mb', 'network', 'annotation', 'power_on')

MAX_CPU = 128

# Deploy row status -> check status
ROW_CHECK_STATUS = {
    'VALIDATED': 'PASS',
    'DEPLOYED': 'PASS',
    'SKIPPED': 'INFO',
    'INVALID': 'FAIL',
    'FAILED': 'FAIL',
}

#==============================================================================
# DATA CLASSES
#==============================================================================

@dataclass
class DeploySpec:
    """One row of the deploy CSV (values as read)"""
    row: int
    name: str = ''
    template: str = ''
    cluster: str = ''
    datastore: str = ''
    folder: str = ''
    cpu: str = ''
    memory_mb: str = ''
    network: str = ''
    annotation: str = ''
    power_on: str = ''

    @property
    def cpu_count(self) -> Optional[int]:
        return int(self.cpu) if self.cpu else None

    @property
    def memory(self) -> Optional[int]:
        return int(self.memory_mb) if self.memory_mb else None

    def wants_power_on(self, default: bool = False) -> bool:
        if not self.power_on:
            return default
        return self.power_on.strip().lower() in ('1', 'true', 'yes', 'y', 'on')

#==============================================================================
# CSV INPUT AND VALIDATION
#==============================================================================

def load_deploy_csv(path: str) -> List[DeploySpec]:
    """
    Read the deploy CSV

    Header names are matched case-insensitively; unknown columns are ignored.
    Rows are numbered from 1 (first data row).
    """
    specs = []
    with open(path, newline='', encoding='utf-8-sig') as f:
        reader = csv.DictReader(f)
        for number, raw in enumerate(reader, start=1):
            values = {str(k).strip().lower(): (v or '').strip() for k, v in raw.items() if k}
            if not any(values.values()):
                continue
            fields = {key: values.get(key, '') for key in REQUIRED_FIELDS + OPTIONAL_FIELDS}
            specs.append(DeploySpec(row=number, **fields))
    return specs


def validate_specs(specs: List[DeploySpec]) -> Dict[int, List[str]]:
    """
    Check every row

    :return: dict of {row: [problems]} for rows with problems
    """
    problems = {}
    seen = {}
    for spec in specs:
        issues = []
        for field_name in REQUIRED_FIELDS:
            if not getattr(spec, field_name):
                issues.append(f'missing {field_name}')

        if spec.cpu:
            try:
                if not 1 <= spec.cpu_count <= MAX_CPU:
                    issues.append(f'cpu {spec.cpu} outside 1..{MAX_CPU}')
            except ValueError:
                issues.append(f'cpu {spec.cpu!r} is not an integer')
        if spec.memory_mb:
            try:
                if spec.memory < 1:
                    issues.append(f'memory_mb {spec.memory_mb} must be positive')
            except ValueError:
                issues.append(f'memory_mb {spec.memory_mb!r} is not an integer')

        if spec.name:
            key = spec.name.lower()
            if key in seen:
                issues.append(f'duplicate name (also row {seen[key]})')
            else:
                seen[key] = spec.row

        if issues:
            problems[spec.row] = issues
    return problems


def result_row(spec: DeploySpec, status: str, message: str, duration: float = 0.0) -> Dict:
    return {
        'row': spec.row,
        'name': spec.name,
        'template': spec.template,
        'status': status,
        'message': message,
        'duration_s': round(duration, 1),
    }

#==============================================================================
# CLONE
#==============================================================================

def nic_change(adapter, network):
    """VirtualDeviceSpec that moves an existing adapter to a network or portgroup"""
    nic_spec = vim.vm.device.VirtualDeviceSpec()
    nic_spec.operation = vim.vm.device.VirtualDeviceSpec.Operation.edit
    nic_spec.device = adapter
    if isinstance(network, vim.dvs.DistributedVirtualPortgroup):
        port = vim.dvs.PortConnection()
        port.portgroupKey = network.key
        port.switchUuid = network.config.distributedVirtualSwitch.uuid
        nic_spec.device.backing = vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo()
        nic_spec.device.backing.port = port
    else:
        nic_spec.device.backing = vim.vm.device.VirtualEthernetCard.NetworkBackingInfo()
        nic_spec.device.backing.network = network
        nic_spec.device.backing.deviceName = network.name
    connectable = vim.vm.device.VirtualDevice.ConnectInfo()
    connectable.connected = True
    connectable.startConnected = True
    nic_spec.device.connectable = connectable
    return nic_spec


def build_clone_spec(opf, spec: DeploySpec, template, cluster, datastore, network, power_on: bool):
    relocate = vim.vm.RelocateSpec()
    relocate.datastore = datastore
    relocate.pool = cluster.resourcePool

    config = vim.vm.ConfigSpec()
    if spec.cpu:
        config.numCPUs = spec.cpu_count
    if spec.memory_mb:
        config.memoryMB = spec.memory
    if spec.annotation:
        config.annotation = spec.annotation
    if network is not None:
        adapters = opf.get_network_adapter(template)
        if adapters:
            config.deviceChange = [nic_change(adapters[0], network)]

    clone_spec = vim.vm.CloneSpec()
    clone_spec.location = relocate
    clone_spec.config = config
    clone_spec.powerOn = power_on
    clone_spec.template = False
    return clone_spec


def deploy_vm(opf, spec: DeploySpec, power_on: bool) -> Dict:
    """Clone one VM and wait for the task; returns the result row"""
    started = time.time()

    if opf.get_vm_by_name(spec.name):
        return result_row(spec, 'SKIPPED', 'VM already exists')

    templates = opf.get_vm_by_name(spec.template)
    if not templates:
        return result_row(spec, 'FAILED', f'Template {spec.template} not found')
    template = templates[0]

    cluster = opf.get_cluster(spec.cluster)
    if cluster is None:
        return result_row(spec, 'FAILED', f'Cluster {spec.cluster} not found')
    datastore = opf.get_datastore(spec.datastore)
    if datastore is None:
        return result_row(spec, 'FAILED', f'Datastore {spec.datastore} not found')

    if spec.folder:
        folder = opf.get_folder(spec.folder)
        if folder is None:
            return result_row(spec, 'FAILED', f'Folder {spec.folder} not found')
    else:
        folder = opf.get_datacenter_for(template).vmFolder

    network = None
    if spec.network:
        network = opf.get_network(spec.network)
        if network is None:
            return result_row(spec, 'FAILED', f'Network {spec.network} not found')

    clone_spec = build_clone_spec(opf, spec, template, cluster, datastore, network, power_on)
    opf.write_output(f'Cloning {spec.template} -> {spec.name} on {spec.cluster}/{spec.datastore}...')
    try:
        task = template.CloneVM_Task(folder=folder, name=spec.name, spec=clone_spec)
        WaitForTask(task)
    except Exception as e:
        msg = getattr(e, 'msg', None) or str(e)
        return result_row(spec, 'FAILED', f'Clone failed: {msg}', time.time() - started)

    state = 'powered on' if power_on else 'powered off'
    return result_row(spec, 'DEPLOYED', f'Cloned from {spec.template} ({state})', time.time() - started)

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for vm_bulk_deploy

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: Validate the CSV only
    :param options: csv, vcenters, power_on
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    csv_path = os.path.expanduser(options.get('csv') or opf.get_config_value('DEPLOY', 'CsvFile'))
    vcenters = options.get('vcenters') or opf.get_config_list('VSPHERE', 'vCenters')
    power_on = options.get('power_on') or opf.get_config_bool('DEPLOY', 'PowerOn', False)

    report = Report(MODULE_NAME, f'{opf.title_prefix} VM Deploy Report', COLUMNS,
                    parameters={'csv': csv_path, 'vcenters': vcenters, 'power_on': power_on,
                                'dry_run': dry_run})

    if not csv_path:
        report.add_error('No deploy CSV given ([DEPLOY] CsvFile or --csv)', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # TASK 1: Read and validate
    #==========================================================================

    try:
        specs = load_deploy_csv(csv_path)
    except (OSError, csv.Error) as e:
        report.add_error(f'Could not read {csv_path}: {e}', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    problems = validate_specs(specs)
    opf.write_output(f'{len(specs)} rows read, {len(problems)} invalid')
    results = {}
    for spec in specs:
        if spec.row in problems:
            results[spec.row] = result_row(spec, 'INVALID', '; '.join(problems[spec.row]))
            opf.write_output(f'Row {spec.row} ({spec.name or "no name"}): {results[spec.row]["message"]}',
                             level='WARN')
        elif dry_run:
            results[spec.row] = result_row(spec, 'VALIDATED', 'Would clone' +
                                           (' and power on' if spec.wants_power_on(power_on) else ''))

    #==========================================================================
    # TASK 2: Deploy
    #==========================================================================

    pending = [s for s in specs if s.row not in results]
    if pending:
        if not vcenters:
            report.add_error('No vCenters configured ([VSPHERE] vCenters or --vcenters)', opf)
            connected = False
        else:
            failed = opf.connect_vcenters(vcenters)
            connected = len(failed) < len(vcenters)
            for host in failed:
                report.add_error(f'{host}: could not connect', opf)

        try:
            for spec in pending:
                if not connected:
                    results[spec.row] = result_row(spec, 'FAILED', 'No vCenter connection')
                    continue
                try:
                    results[spec.row] = deploy_vm(opf, spec, spec.wants_power_on(power_on))
                except Exception as e:
                    results[spec.row] = result_row(spec, 'FAILED', str(e))
                row = results[spec.row]
                level = {'DEPLOYED': 'PASS', 'SKIPPED': 'INFO'}.get(row['status'], 'ERROR')
                opf.write_output(f"{spec.name}: {row['status']} - {row['message']}", level=level)
        finally:
            opf.disconnect_vcenters()

    report.rows = [results[spec.row] for spec in specs]

    #==========================================================================
    # Summary
    #==========================================================================

    tally = {}
    for row in report.rows:
        tally[row['status']] = tally.get(row['status'], 0) + 1
    for status in ('VALIDATED', 'DEPLOYED', 'SKIPPED', 'INVALID', 'FAILED'):
        if tally.get(status):
            report.add_check(status.capitalize(), ROW_CHECK_STATUS[status], f'{tally[status]} rows')
    if not specs:
        report.add_check('Input', 'WARN', f'No rows in {csv_path}')

    report.summary = {'Rows': len(specs)}
    report.summary.update({status.capitalize(): count for status, count in tally.items()})

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--csv', help='Deploy CSV (name,template,cluster,datastore[,folder,cpu,memory_mb,...])')
    parser.add_argument('--vcenters', nargs='+', help='vCenter entries as host[:linux[:user]]')
    parser.add_argument('--power-on', action='store_true', help='Power on VMs whose power_on column is empty')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.csv and not os.path.isfile(args.csv):
        parser.error(f'--csv file not found: {args.csv}')
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
