#!/usr/bin/env python3
# backup_verify.py - OpsReports Backup Verification
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Checks backup job results and RPO age from Veeam, Acronis or a CSV export

import os
import sys
import csv
import datetime
from typing import List, Dict, Optional, Tuple

import requests

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report
from opsfunctions import parse_ps_date

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'backup_verify'
MODULE_DESCRIPTION = 'Backup job results and RPO compliance'

COLUMNS = ['job', 'type', 'source', 'last_result', 'last_run', 'last_success',
           'age_hours', 'objects', 'repository', 'status', 'message']

SOURCES = ('veeam', 'acronis', 'csv')

DEFAULT_RPO_HOURS = 24
DEFAULT_VEEAM_PORT = 9419
DEFAULT_VEEAM_API_VERSION = '1.1-rev1'
PAGE_SIZE = 200
REQUEST_TIMEOUT = 30

RESULT_ALIASES = {
    'success': 'Success',
    'succeeded': 'Success',
    'ok': 'Success',
    'warning': 'Warning',
    'warn': 'Warning',
    'cancelled': 'Warning',
    'failed': 'Failed',
    'failure': 'Failed',
    'error': 'Failed',
    'abandoned': 'Failed',
}

#==============================================================================
# NORMALISATION AND EVALUATION
#==============================================================================

def normalize_result(value) -> str:
    """Map vendor result strings to Success / Warning / Failed / None"""
    return RESULT_ALIASES.get(str(value or '').strip().lower(), 'None')


def job_record(job, job_type, source, last_result, last_run=None, last_success=None,
               objects=None, repository='', enabled=True) -> Dict:
    return {
        'job': job,
        'type': job_type or '',
        'source': source,
        'last_result': normalize_result(last_result),
        'last_run': parse_ps_date(last_run),
        'last_success': parse_ps_date(last_success),
        'age_hours': None,
        'objects': objects,
        'repository': repository or '',
        'status': '',
        'message': '',
        'enabled': enabled,
    }


def evaluate_job(record: Dict, rpo_hours: float, now: datetime.datetime) -> Tuple[str, str]:
    """
    Status of one job

    Disabled jobs are INFO; otherwise Failed, never run, stale and Warning
    are checked in that order.
    """
    if not record['enabled']:
        return 'INFO', 'Job disabled'
    if record['last_result'] == 'Failed':
        return 'FAIL', 'Last run failed'
    if record['last_run'] is None and record['last_success'] is None:
        return 'WARN', 'Job has never run'

    if record['last_success'] is None:
        return 'FAIL', 'No successful run recorded'
    age = (now - record['last_success']).total_seconds() / 3600
    record['age_hours'] = round(age, 1)
    if age > rpo_hours:
        return 'FAIL', f'Last success {age:.1f}h ago exceeds RPO of {rpo_hours}h'
    if record['last_result'] == 'Warning':
        return 'WARN', 'Last run completed with warnings'
    if record['last_result'] == 'None':
        return 'WARN', 'Last result unknown'
    return 'PASS', f'Last success {age:.1f}h ago'


def success_rate(records: List[Dict]) -> float:
    evaluated = [r for r in records if r['status'] != 'INFO']
    if not evaluated:
        return 0.0
    return round(sum(1 for r in evaluated if r['status'] == 'PASS') / len(evaluated) * 100, 1)

#==============================================================================
# SOURCES
#==============================================================================

def load_jobs_csv(path: str) -> List[Dict]:
    """
    Read jobs from CSV: job, type, last_result, last_run, last_success
    (optional enabled, objects, repository)
    """
    records = []
    with open(path, newline='', encoding='utf-8-sig') as f:
        for raw in csv.DictReader(f):
            row = {str(k).strip().lower(): (v or '').strip() for k, v in raw.items() if k}
            if not row.get('job'):
                continue
            enabled = row.get('enabled', '').lower() not in ('false', 'no', '0', 'disabled')
            last_success = row.get('last_success')
            if not last_success and normalize_result(row.get('last_result')) in ('Success', 'Warning'):
                last_success = row.get('last_run')
            records.append(job_record(row['job'], row.get('type'), 'csv', row.get('last_result'),
                                      row.get('last_run'), last_success,
                                      row.get('objects') or None, row.get('repository'), enabled))
    return records


def veeam_token(session: requests.Session, base_url: str, user: str, password: str) -> str:
    response = session.post(f'{base_url}/api/oauth2/token',
                            data={'grant_type': 'password', 'username': user, 'password': password},
                            timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()['access_token']


def veeam_job_states(session: requests.Session, base_url: str) -> List[Dict]:
    """All job states from /api/v1/jobs/states, following skip/limit paging"""
    states = []
    skip = 0
    while True:
        response = session.get(f'{base_url}/api/v1/jobs/states',
                               params={'skip': skip, 'limit': PAGE_SIZE}, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        data = response.json()
        page = data.get('data', [])
        states.extend(page)
        total = data.get('pagination', {}).get('total', len(states))
        skip += len(page)
        if not page or skip >= total:
            return states


def veeam_record(state: Dict) -> Dict:
    last_result = state.get('lastResult')
    last_run = state.get('lastRun')
    last_success = last_run if normalize_result(last_result) in ('Success', 'Warning') else None
    return job_record(state.get('name'), state.get('type'), 'veeam', last_result, last_run, last_success,
                      state.get('objectsCount'), state.get('repositoryName'),
                      str(state.get('status', '')).lower() != 'disabled')


def collect_veeam(opf, server: str, port: int, user: str, password: str, api_version: str,
                  verify_ssl: bool = False) -> List[Dict]:
    base_url = f'https://{server}:{port}'
    with requests.Session() as session:
        session.verify = verify_ssl
        session.headers['x-api-version'] = api_version
        token = veeam_token(session, base_url, user, password)
        session.headers['Authorization'] = f'Bearer {token}'
        states = veeam_job_states(session, base_url)
    opf.write_output(f'Veeam {server}: {len(states)} jobs')
    return [veeam_record(s) for s in states]


def acronis_token(session: requests.Session, base_url: str, client_id: str, client_secret: str) -> str:
    response = session.post(f'{base_url}/api/2/idp/token', data={'grant_type': 'client_credentials'},
                            auth=(client_id, client_secret), timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()['access_token']


def _activity_time(activity: Dict) -> Optional[datetime.datetime]:
    return parse_ps_date(activity.get('completedAt') or activity.get('startedAt'))


def latest_activities(activities: List[Dict]) -> List[Dict]:
    """
    Reduce backup activities to one record per plan/resource

    The most recent activity supplies the result; the most recent ok or
    warning activity supplies last_success.
    """
    latest = {}
    success = {}
    for activity in activities:
        if 'backup' not in str(activity.get('type', '')).lower():
            continue
        plan = (activity.get('policy') or {}).get('name') or (activity.get('context') or {}).get('plan_name') or ''
        resource = (activity.get('resource') or {}).get('name') or ''
        key = (plan, resource)
        when = _activity_time(activity)
        if when is None:
            continue
        if key not in latest or when > latest[key][0]:
            latest[key] = (when, activity)
        code = (activity.get('result') or {}).get('code')
        if normalize_result(code) in ('Success', 'Warning') and (key not in success or when > success[key]):
            success[key] = when

    records = []
    for (plan, resource), (when, activity) in sorted(latest.items()):
        name = f'{plan} / {resource}' if plan and resource else (plan or resource)
        records.append(job_record(name, activity.get('type'), 'acronis',
                                  (activity.get('result') or {}).get('code'), when, success.get((plan, resource)),
                                  1, (activity.get('context') or {}).get('archive_name', '')))
    return records


def collect_acronis(opf, base_url: str, client_id: str, client_secret: str,
                    verify_ssl: bool = True) -> List[Dict]:
    base_url = base_url.rstrip('/')
    with requests.Session() as session:
        session.verify = verify_ssl
        token = acronis_token(session, base_url, client_id, client_secret)
        session.headers['Authorization'] = f'Bearer {token}'
        response = session.get(f'{base_url}/api/task_manager/v2/activities',
                               params={'order': 'desc(completedAt)', 'limit': 1000},
                               timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        activities = response.json().get('items', [])
    opf.write_output(f'Acronis {base_url}: {len(activities)} activities')
    return latest_activities(activities)

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for backup_verify

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: Show the source without querying it
    :param options: source, server, csv, rpo_hours
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    source = (options.get('source') or opf.get_config_value('BACKUP', 'Source', 'csv')).lower()
    rpo_hours = options.get('rpo_hours') or opf.get_config_float('BACKUP', 'RPOHours', DEFAULT_RPO_HOURS)
    verify_ssl = opf.get_config_bool('BACKUP', 'VerifySSL', False)

    report = Report(MODULE_NAME, f'{opf.title_prefix} Backup Verification Report', COLUMNS,
                    parameters={'source': source, 'rpo_hours': rpo_hours})

    if source not in SOURCES:
        report.add_error(f'Unknown source {source!r}, expected one of {", ".join(SOURCES)}', opf)
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # TASK 1: Collect jobs
    #==========================================================================

    records = []
    try:
        if source == 'veeam':
            server = options.get('server') or opf.get_config_value('BACKUP', 'VeeamServer')
            report.parameters['server'] = server
            if not server:
                report.add_error('No Veeam server configured ([BACKUP] VeeamServer or --server)', opf)
            elif dry_run:
                opf.write_output(f'Would query Veeam job states on {server}')
            else:
                records = collect_veeam(
                    opf, server,
                    opf.get_config_int('BACKUP', 'VeeamPort', DEFAULT_VEEAM_PORT),
                    opf.get_config_value('BACKUP', 'VeeamUser', 'administrator'),
                    opf.get_password('BACKUP'),
                    opf.get_config_value('BACKUP', 'VeeamApiVersion', DEFAULT_VEEAM_API_VERSION),
                    verify_ssl)
        elif source == 'acronis':
            url = options.get('server') or opf.get_config_value('BACKUP', 'AcronisUrl')
            report.parameters['server'] = url
            if not url:
                report.add_error('No Acronis URL configured ([BACKUP] AcronisUrl or --server)', opf)
            elif dry_run:
                opf.write_output(f'Would query Acronis activities on {url}')
            else:
                records = collect_acronis(
                    opf, url,
                    opf.get_config_value('BACKUP', 'AcronisClientId'),
                    opf.get_config_value('BACKUP', 'AcronisClientSecret'),
                    verify_ssl)
        else:
            path = os.path.expanduser(options.get('csv') or opf.get_config_value('BACKUP', 'CsvFile'))
            report.parameters['csv'] = path
            if not path:
                report.add_error('No CSV given ([BACKUP] CsvFile or --csv)', opf)
            elif dry_run:
                opf.write_output(f'Would read backup jobs from {path}')
            else:
                records = load_jobs_csv(path)
    except (requests.exceptions.RequestException, OSError, KeyError, ValueError) as e:
        report.add_error(f'{source}: could not collect backup jobs - {e}', opf)

    if dry_run or (report.errors and not records):
        return report_builder.finish_report(opf, report, write_files=not dry_run)

    #==========================================================================
    # TASK 2: Evaluate
    #==========================================================================

    now = datetime.datetime.now()
    for record in records:
        record['status'], record['message'] = evaluate_job(record, rpo_hours, now)
        record.pop('enabled')
        if record['status'] in ('FAIL', 'WARN'):
            report.add_check(record['job'], record['status'], record['message'])
            opf.write_output(f"{record['job']}: {record['message']}",
                             level=report_builder.STATUS_LEVELS[record['status']])
    report.rows = sorted(records, key=lambda r: (r['status'] != 'FAIL', r['status'] != 'WARN', str(r['job'])))

    rate = success_rate(report.rows)
    report.score = rate
    evaluated = [r for r in report.rows if r['status'] != 'INFO']
    if not records:
        report.add_check('Backup jobs', 'WARN', 'No backup jobs found')
    elif all(r['status'] == 'PASS' for r in evaluated):
        report.add_check('Backup jobs', 'PASS', f'All {len(evaluated)} jobs within {rpo_hours}h RPO')

    report.summary = {
        'Jobs': len(report.rows),
        'Success rate %': rate,
        'Failed': sum(1 for r in report.rows if r['status'] == 'FAIL'),
        'Warning': sum(1 for r in report.rows if r['status'] == 'WARN'),
        'Disabled': sum(1 for r in report.rows if r['status'] == 'INFO'),
    }

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--source', choices=SOURCES, help='Job source (default from config, else csv)')
    parser.add_argument('--server', help='Veeam server name or Acronis base URL')
    parser.add_argument('--csv', help='CSV export with job, type, last_result, last_run, last_success')
    parser.add_argument('--rpo-hours', type=report_builder.positive_int,
                        help=f'Maximum age of the last successful backup (default {DEFAULT_RPO_HOURS})')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.source in (None, 'csv') and args.csv and not os.path.isfile(args.csv):
        parser.error(f'--csv file not found: {args.csv}')
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
