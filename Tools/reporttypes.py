# reporttypes.py - OpsReports Report Registry and Loader
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Maps report ids to their modules and runs them in registry order

import os
import importlib.util
from typing import List, Optional, Dict, Any


class ReportLoader:
    """
    Manages report module lookup, loading and execution.

    Reports:
    - disk_monitor: Disk space usage against warning/critical thresholds
    - ad_report: Active Directory users, computers and privileged accounts
    - port_scanner: TCP port scan of hosts/ranges/CIDR blocks
    - firewall_audit: Rule base audit with compliance score
    - security_baseline: CIS/STIG Windows baseline check
    - service_health: Services, TCP ports, URLs and certificates
    - eventlog_analyzer: Windows event log grouping and notable events
    - vm_resource_report: vSphere VM inventory and utilisation
    - vm_bulk_deploy: CSV driven template clones
    - backup_verify: Veeam/Acronis/CSV backup job verification
    """

    # Registry order is the run order for 'all'
    REPORT_SEQUENCE: List[str] = [
        'disk_monitor',
        'service_health',
        'port_scanner',
        'firewall_audit',
        'security_baseline',
        'eventlog_analyzer',
        'ad_report',
        'vm_resource_report',
        'backup_verify',
        'vm_bulk_deploy',
    ]

    REPORT_INFO: Dict[str, Dict[str, Any]] = {
        'disk_monitor': {
            'name': 'Disk Space Monitor',
            'section': 'DISK',
            'requires': ['psutil', 'powershell', 'ssh'],
        },
        'ad_report': {
            'name': 'Active Directory Report',
            'section': 'AD',
            'requires': ['ldap'],
        },
        'port_scanner': {
            'name': 'Port Scanner',
            'section': 'PORTSCAN',
            'requires': ['tcp'],
        },
        'firewall_audit': {
            'name': 'Firewall Rule Audit',
            'section': 'FIREWALL',
            'requires': ['powershell', 'file'],
        },
        'security_baseline': {
            'name': 'Security Baseline Check',
            'section': 'BASELINE',
            'requires': ['powershell'],
        },
        'service_health': {
            'name': 'Service Health Check',
            'section': 'SERVICES',
            'requires': ['powershell', 'ssh', 'tcp', 'http'],
        },
        'eventlog_analyzer': {
            'name': 'Event Log Analyzer',
            'section': 'EVENTLOG',
            'requires': ['powershell', 'file'],
        },
        'vm_resource_report': {
            'name': 'VM Resource Report',
            'section': 'VSPHERE',
            'requires': ['vsphere'],
        },
        'vm_bulk_deploy': {
            'name': 'VM Bulk Deploy',
            'section': 'DEPLOY',
            'requires': ['vsphere', 'file'],
            # Changes infrastructure - only runs when named explicitly
            'explicit': True,
        },
        'backup_verify': {
            'name': 'Backup Verification',
            'section': 'BACKUP',
            'requires': ['http', 'file'],
        },
    }

    def __init__(self, reports_dir: str = None, override_dir: str = None):
        """
        :param reports_dir: Directory holding the bundled report modules
        :param override_dir: Optional directory whose <report_id>.py files take precedence
        """
        root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        self.reports_dir = reports_dir or os.path.join(root, 'Reports')
        self.override_dir = override_dir

    def get_report_info(self, report_id: str) -> Dict[str, Any]:
        """Get registry information about a report"""
        if report_id not in self.REPORT_INFO:
            raise KeyError(f'Unknown report {report_id}')
        return self.REPORT_INFO[report_id]

    def resolve(self, names: List[str]) -> List[str]:
        """
        Turn a list of report ids (or 'all') into registry-ordered ids

        :raises ValueError: for unknown report ids
        """
        if not names or 'all' in names:
            return [r for r in self.REPORT_SEQUENCE if not self.REPORT_INFO[r].get('explicit')]
        unknown = [n for n in names if n not in self.REPORT_INFO]
        if unknown:
            raise ValueError(f'Unknown report(s): {", ".join(unknown)}')
        return [r for r in self.REPORT_SEQUENCE if r in names]

    def get_module_path(self, report_id: str) -> Optional[str]:
        """
        Find the path to a report module, respecting the override hierarchy:

        1. {override_dir}/{report_id}.py  (site-specific override)
        2. {reports_dir}/{report_id}.py   (bundled report)

        :param report_id: Report id (module name without .py)
        :return: Full path to the module, or None if not found
        """
        filename = f'{report_id}.py'
        search_paths = []
        if self.override_dir:
            search_paths.append(os.path.join(self.override_dir, filename))
        search_paths.append(os.path.join(self.reports_dir, filename))

        for path in search_paths:
            if os.path.isfile(path):
                return path
        return None

    def load_module(self, report_id: str):
        """
        Dynamically load a report module

        :param report_id: Report id
        :return: Tuple of (module, module_path)
        """
        module_path = self.get_module_path(report_id)

        if not module_path:
            raise FileNotFoundError(f'Report module {report_id} not found')

        spec = importlib.util.spec_from_file_location(f'Reports.{report_id}', module_path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        return module, module_path

    def run_reports(self, opf, report_ids: List[str], dry_run: bool = False,
                    options: Dict[str, Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run reports in registry order; a report that raises is marked failed
        and the remaining reports still run.

        :param opf: opsfunctions module reference
        :param options: optional per-report keyword options for main()
        :return: dict of report_id -> Report, or the exception it raised
        """
        from Tools import run_dashboard

        options = options or {}
        results = {}
        for report_id in report_ids:
            info = self.get_report_info(report_id)
            opf.set_report(report_id)
            run_dashboard.mark_report(opf.output_dir, report_id, info['name'], run_dashboard.RunStatus.RUNNING)

            try:
                module, module_path = self.load_module(report_id)
                opf.write_output(f'Running {report_id} from {module_path}', level='DEBUG')
                results[report_id] = module.main(opf, dry_run=dry_run, **options.get(report_id, {}))
            except Exception as e:
                opf.write_output(f'Report {report_id} failed: {e}', level='ERROR')
                run_dashboard.mark_report(opf.output_dir, report_id, info['name'],
                                          run_dashboard.RunStatus.FAIL, str(e))
                results[report_id] = e
        return results

    def list_available_reports(self) -> Dict[str, str]:
        """
        List all reports and their module paths

        :return: Dictionary of report_id -> path
        """
        reports = {}
        for report_id in self.REPORT_SEQUENCE:
            path = self.get_module_path(report_id)
            reports[report_id] = path if path else 'NOT FOUND'
        return reports
