#!/usr/bin/env python3
# report_builder.py - OpsReports Report Model and Output Writers
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Shared CheckResult/Report types, console tables and HTML/CSV/JSON writers

"""
Report Builder - common output path for every report tool

Each report module collects its records into a Report, adds CheckResults
for the conditions it evaluates, and hands the Report to finish_report(),
which:
- prints the checks and a preview of the records as console tables
- writes <report_id>-<stamp>.html / .csv / .json to the output directory
- records the run in the run index (index.html + run-state.json)
- logs a coloured overall status line
"""

import os
import csv
import json
import html
import socket
import argparse
import datetime
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict

from prettytable import PrettyTable

#==============================================================================
# CONFIGURATION
#==============================================================================

STATUSES = ('PASS', 'WARN', 'FAIL', 'INFO', 'SKIPPED', 'FIXED')

STATUS_ICONS = {
    'PASS': '✅',
    'FAIL': '❌',
    'WARN': '⚠️',
    'INFO': 'ℹ️',
    'FIXED': '🔧',
    'SKIPPED': '⏭️'
}

# Status -> write_output level
STATUS_LEVELS = {
    'PASS': 'PASS',
    'WARN': 'WARN',
    'FAIL': 'ERROR',
    'INFO': 'INFO',
    'SKIPPED': 'INFO',
    'FIXED': 'PASS',
}

CONSOLE_PREVIEW_ROWS = 25

# Arguments every report CLI accepts (not passed through to main())
COMMON_ARGS = ('config', 'output_dir', 'dry_run', 'verbose')

#==============================================================================
# DATA CLASSES
#==============================================================================

@dataclass
class CheckResult:
    """Result of a single check"""
    name: str
    status: str  # PASS, WARN, FAIL, INFO, SKIPPED, FIXED
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Report:
    """Complete result of one report run"""
    report_id: str
    title: str
    columns: List[str]
    rows: List[Dict[str, Any]] = field(default_factory=list)
    checks: List[CheckResult] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    score: Optional[float] = None
    errors: List[str] = field(default_factory=list)
    generated: str = field(default_factory=lambda: datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S'))
    hostname: str = field(default_factory=socket.gethostname)
    parameters: Dict[str, Any] = field(default_factory=dict)

    def add_check(self, name: str, status: str, message: str, **details) -> CheckResult:
        result = CheckResult(name, status, message, dict(details))
        self.checks.append(result)
        return result

    def add_error(self, message: str, opf=None):
        """Record a collection error (and log it when a support module is given)"""
        self.errors.append(message)
        if opf is not None:
            opf.write_output(message, level='ERROR')

    @property
    def overall_status(self) -> str:
        statuses = [c.status for c in self.checks]
        if 'FAIL' in statuses or (self.errors and not self.rows):
            return 'FAIL'
        if 'WARN' in statuses or self.errors:
            return 'WARN'
        return 'PASS'

    def counts(self) -> Dict[str, int]:
        """Number of checks per status"""
        tally = {status: 0 for status in STATUSES}
        for check in self.checks:
            tally[check.status] = tally.get(check.status, 0) + 1
        return tally

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['overall_status'] = self.overall_status
        data['counts'] = self.counts()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


def exit_code(report: Report) -> int:
    """0 for PASS/WARN, 1 for FAIL"""
    return 0 if report.overall_status in ('PASS', 'WARN') else 1

#==============================================================================
# CELL FORMATTING
#==============================================================================

def format_cell(value, sep=', ') -> str:
    """Render a record value for tables, CSV and HTML"""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, (list, tuple, set)):
        return sep.join(format_cell(v) for v in value)
    if isinstance(value, datetime.datetime):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, float):
        return str(round(value, 2))
    return str(value)

#==============================================================================
# CONSOLE OUTPUT
#==============================================================================

def print_results_table(title: str, results: List[CheckResult]):
    """Print check results as a table"""
    table = PrettyTable()
    table.field_names = ['Name', 'Status', 'Message']
    table.align = 'l'

    for result in results:
        status_icon = STATUS_ICONS.get(result.status, '❓')
        table.add_row([result.name, f'{status_icon} {result.status}', result.message[:80]])

    print(f'\n==== {title} ====')
    print(table)


def print_rows_table(report: Report, max_rows: int = CONSOLE_PREVIEW_ROWS):
    """Print the first records of a report as a table"""
    if not report.rows:
        return
    table = PrettyTable()
    table.field_names = report.columns
    table.align = 'l'
    for row in report.rows[:max_rows]:
        table.add_row([format_cell(row.get(col))[:40] for col in report.columns])

    print(f'\n==== {report.title} ====')
    print(table)
    if len(report.rows) > max_rows:
        print(f'... {len(report.rows) - max_rows} more rows in the CSV/HTML output')

#==============================================================================
# FILE OUTPUT
#==============================================================================

def write_csv(report: Report, path: str) -> str:
    """Write the report records as CSV in declared column order"""
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=report.columns, extrasaction='ignore')
        writer.writeheader()
        for row in report.rows:
            writer.writerow({col: format_cell(row.get(col), sep='; ') for col in report.columns})
    return path


def write_json(report: Report, path: str) -> str:
    with open(path, 'w', encoding='utf-8') as f:
        f.write(report.to_json())
    return path


def _status_class(value) -> str:
    text = str(value).upper()
    if text in STATUSES:
        return f' class="status-{text.lower()}"'
    return ''


def generate_html_report(report: Report) -> str:
    """Generate HTML report"""
    esc = html.escape
    overall = report.overall_status
    counts = report.counts()

    cards = ''
    if report.score is not None:
        cards += f'<div class="card"><span class="value">{report.score}</span><span class="label">Score</span></div>\n'
    for key, value in report.summary.items():
        cards += (f'<div class="card"><span class="value">{esc(format_cell(value))}</span>'
                  f'<span class="label">{esc(str(key))}</span></div>\n')

    params = ', '.join(f'{esc(str(k))}={esc(format_cell(v))}' for k, v in report.parameters.items()
                       if v not in (None, '', [], False))

    html_out = f'''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{esc(report.title)} - {esc(report.hostname)}</title>
    <style>
        body {{ font-family: 'Segoe UI', sans-serif; margin: 2rem; background: #f5f5f5; }}
        .container {{ max-width: 1400px; margin: 0 auto; background: white; padding: 2rem; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }}
        h1 {{ color: #1e293b; }}
        h2 {{ color: #334155; border-bottom: 2px solid #e2e8f0; padding-bottom: 0.5rem; }}
        .meta {{ color: #64748b; font-size: 0.9rem; }}
        .status-pass {{ color: #16a34a; font-weight: 600; }}
        .status-fail {{ color: #dc2626; font-weight: 600; }}
        .status-warn {{ color: #ca8a04; font-weight: 600; }}
        .status-info {{ color: #2563eb; }}
        .status-skipped {{ color: #6b7280; }}
        .status-fixed {{ color: #2563eb; }}
        .cards {{ display: flex; flex-wrap: wrap; gap: 1rem; margin: 1.5rem 0; }}
        .card {{ background: #f8fafc; border: 1px solid #e2e8f0; border-radius: 8px; padding: 1rem 1.5rem; min-width: 120px; }}
        .card .value {{ display: block; font-size: 1.5rem; font-weight: 700; color: #1e293b; }}
        .card .label {{ color: #64748b; font-size: 0.85rem; }}
        table {{ width: 100%; border-collapse: collapse; margin: 1rem 0; font-size: 0.9rem; }}
        th, td {{ padding: 0.5rem 0.75rem; text-align: left; border-bottom: 1px solid #e2e8f0; vertical-align: top; }}
        th {{ background: #f8fafc; font-weight: 600; position: sticky; top: 0; }}
        .overall-pass {{ background: #dcfce7; color: #166534; padding: 1rem; border-radius: 8px; }}
        .overall-warn {{ background: #fef9c3; color: #854d0e; padding: 1rem; border-radius: 8px; }}
        .overall-fail {{ background: #fee2e2; color: #991b1b; padding: 1rem; border-radius: 8px; }}
        .errors li {{ color: #991b1b; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>{esc(report.title)}</h1>
        <p class="meta">Generated: {esc(report.generated)} on {esc(report.hostname)}</p>
        <p class="meta">Parameters: {params or 'defaults'}</p>

        <div class="overall-{overall.lower()}">
            <strong>Overall Status: {overall}</strong>
            &nbsp; ({counts['PASS']} pass, {counts['WARN']} warn, {counts['FAIL']} fail, {counts['INFO']} info)
        </div>

        <div class="cards">
{cards}        </div>
'''

    if report.errors:
        html_out += '        <h2>Collection Errors</h2>\n        <ul class="errors">\n'
        for err in report.errors:
            html_out += f'            <li>{esc(err)}</li>\n'
        html_out += '        </ul>\n'

    if report.checks:
        html_out += '''
        <h2>Checks</h2>
        <table>
            <tr><th>Name</th><th>Status</th><th>Message</th></tr>
'''
        for check in report.checks:
            status_class = f'status-{check.status.lower()}'
            html_out += (f'            <tr><td>{esc(check.name)}</td><td class="{status_class}">{check.status}</td>'
                         f'<td>{esc(check.message)}</td></tr>\n')
        html_out += '        </table>\n'

    html_out += f'''
        <h2>Details ({len(report.rows)} records)</h2>
        <table>
            <tr>{''.join(f'<th>{esc(col)}</th>' for col in report.columns)}</tr>
'''
    for row in report.rows:
        cells = ''
        for col in report.columns:
            value = row.get(col)
            cls = _status_class(value) if col in ('status', 'state', 'severity') else ''
            cells += f'<td{cls}>{esc(format_cell(value))}</td>'
        html_out += f'            <tr>{cells}</tr>\n'
    html_out += '        </table>\n'

    html_out += '''
    </div>
</body>
</html>
'''
    return html_out


def save_report(report: Report, output_dir: str, stamp: str) -> Dict[str, str]:
    """
    Write HTML, CSV and JSON files for a report

    :return: dict of {'html': path, 'csv': path, 'json': path}
    """
    os.makedirs(output_dir, exist_ok=True)
    base = os.path.join(output_dir, f'{report.report_id}-{stamp}')
    files = {
        'html': f'{base}.html',
        'csv': f'{base}.csv',
        'json': f'{base}.json',
    }
    with open(files['html'], 'w', encoding='utf-8') as f:
        f.write(generate_html_report(report))
    write_csv(report, files['csv'])
    write_json(report, files['json'])
    return files

#==============================================================================
# REPORT COMPLETION
#==============================================================================

def finish_report(opf, report: Report, write_files: bool = True) -> Report:
    """
    Print, save and index a finished report, then log its overall status

    :param opf: opsfunctions module
    :param report: Report to finish
    :param write_files: False skips the HTML/CSV/JSON files (dry runs)
    """
    if report.checks:
        print_results_table(f'{report.title} - Checks', report.checks)
    print_rows_table(report)

    files = {}
    if write_files:
        try:
            files = save_report(report, opf.output_dir, opf.timestamp_slug())
            for kind, path in files.items():
                opf.write_output(f'{kind.upper()} written: {path}')
        except OSError as e:
            report.add_error(f'Could not write report files: {e}', opf)

    try:
        from Tools import run_dashboard
        run_dashboard.record_report(opf.output_dir, report, files, opf.get_elapsed_seconds())
    except OSError as e:
        opf.write_output(f'Could not update run index: {e}', level='WARN')

    counts = report.counts()
    status = report.overall_status
    opf.write_output(
        f'{report.title}: {status} - {len(report.rows)} records, '
        f'{counts["PASS"]} pass, {counts["WARN"]} warn, {counts["FAIL"]} fail, '
        f'{len(report.errors)} errors',
        level=STATUS_LEVELS[status]
    )
    return report

#==============================================================================
# STANDALONE CLI SUPPORT
#==============================================================================

def base_parser(module_name: str, description: str) -> argparse.ArgumentParser:
    """ArgumentParser with the options every report tool accepts"""
    parser = argparse.ArgumentParser(prog=module_name, description=description)
    parser.add_argument('--config', help='Path to config.ini')
    parser.add_argument('--output-dir', help='Directory for HTML/CSV/JSON/log output')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be queried without contacting systems')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable DEBUG output')
    return parser


def run_standalone(module, args: argparse.Namespace) -> int:
    """
    Initialize the support library and run one report module from its CLI

    :param module: Report module (exposes MODULE_NAME and main())
    :param args: Parsed arguments from the module's parser
    :return: Process exit code
    """
    import opsfunctions as opf
    opf.init(config_file=args.config, output_dir=args.output_dir,
             report=module.MODULE_NAME, verbose=args.verbose)
    options = {k: v for k, v in vars(args).items() if k not in COMMON_ARGS}
    report = module.main(opf, standalone=True, dry_run=args.dry_run, **options)
    return exit_code(report)


def positive_int(value):
    """argparse type: integer >= 1"""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f'{value!r} is not an integer')
    if number < 1:
        raise argparse.ArgumentTypeError(f'{value!r} must be at least 1')
    return number


def percent(value):
    """argparse type: number between 0 and 100"""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f'{value!r} is not a number')
    if not 0 <= number <= 100:
        raise argparse.ArgumentTypeError(f'{value!r} must be between 0 and 100')
    return number
