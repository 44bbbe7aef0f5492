#!/usr/bin/env python3
# run_dashboard.py - OpsReports Run Index Page
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Generates an auto-refreshing HTML index of the reports produced today

import os
import datetime
import json
import html
from typing import Dict, List, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum

#==============================================================================
# CONFIGURATION
#==============================================================================

INDEX_FILE = 'index.html'
STATE_FILE = 'run-state.json'
REFRESH_SECONDS = 30

#==============================================================================
# STATUS TYPES
#==============================================================================

class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    SKIPPED = "skipped"


@dataclass
class ReportEntry:
    report_id: str
    title: str
    status: RunStatus = RunStatus.PENDING
    started: str = ""
    finished: str = ""
    elapsed_seconds: float = 0.0
    message: str = ""
    score: Optional[float] = None
    # Item counts for the detail column
    total_items: int = 0
    pass_items: int = 0
    warn_items: int = 0
    fail_items: int = 0
    errors: int = 0
    files: Dict[str, str] = field(default_factory=dict)

    @property
    def details(self) -> str:
        """Detailed status message including item counts"""
        parts = [f'{self.total_items} records']
        if self.pass_items:
            parts.append(f'{self.pass_items} pass')
        if self.warn_items:
            parts.append(f'{self.warn_items} warn')
        if self.fail_items:
            parts.append(f'{self.fail_items} fail')
        if self.errors:
            parts.append(f'{self.errors} errors')
        text = ', '.join(parts)
        if self.message:
            return f'{text} - {self.message}'
        return text

#==============================================================================
# RUN INDEX CLASS
#==============================================================================

class RunIndex:
    """Generate and update the run index page for one output directory"""

    STATUS_ICONS = {
        RunStatus.PENDING: ('⏳', '#6b7280'),
        RunStatus.RUNNING: ('🔄', '#3b82f6'),
        RunStatus.PASS: ('✅', '#22c55e'),
        RunStatus.WARN: ('⚠️', '#eab308'),
        RunStatus.FAIL: ('❌', '#ef4444'),
        RunStatus.SKIPPED: ('⏭️', '#8b5cf6'),
    }

    def __init__(self, output_dir: str, load_state: bool = True):
        self.output_dir = output_dir
        self.run_date = datetime.date.today().isoformat()
        self.start_time = datetime.datetime.now()
        self.entries: Dict[str, ReportEntry] = {}

        # Reuse today's state so separate tool invocations share one index
        if load_state:
            self._load_state()

    @property
    def state_path(self) -> str:
        return os.path.join(self.output_dir, STATE_FILE)

    @property
    def index_path(self) -> str:
        return os.path.join(self.output_dir, INDEX_FILE)

    def _load_state(self):
        """Load state from JSON file if it exists and is from today"""
        if not os.path.exists(self.state_path):
            return
        try:
            with open(self.state_path, 'r') as f:
                state = json.load(f)
        except (OSError, ValueError):
            # Corrupt or unreadable state starts a fresh index
            return

        if state.get('run_date') != self.run_date:
            return
        if 'start_time' in state:
            self.start_time = datetime.datetime.fromisoformat(state['start_time'])
        for report_id, entry_state in state.get('reports', {}).items():
            entry_state = dict(entry_state)
            entry_state['status'] = RunStatus(entry_state.get('status', 'pending'))
            self.entries[report_id] = ReportEntry(**entry_state)

    def _save_state(self):
        """Save current state to JSON file"""
        state = {
            'run_date': self.run_date,
            'start_time': self.start_time.isoformat(),
            'reports': {}
        }
        for report_id, entry in self.entries.items():
            entry_state = asdict(entry)
            entry_state['status'] = entry.status.value
            state['reports'][report_id] = entry_state

        os.makedirs(self.output_dir, exist_ok=True)
        with open(self.state_path, 'w') as f:
            json.dump(state, f, indent=2)

    def update(self, report_id: str, title: str, status: RunStatus, message: str = '', **kwargs):
        """
        Update one report entry and rewrite state and index

        :param kwargs: any ReportEntry field (score, total_items, files, ...)
        """
        entry = self.entries.get(report_id) or ReportEntry(report_id, title)
        entry.title = title
        entry.status = status
        entry.message = message
        now = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        if status == RunStatus.RUNNING:
            entry.started = now
            entry.finished = ''
        elif status != RunStatus.PENDING:
            entry.finished = now
        for key, value in kwargs.items():
            if hasattr(entry, key):
                setattr(entry, key, value)
        self.entries[report_id] = entry
        self._save_state()
        self.generate_html()
        return entry

    def overall_status(self) -> RunStatus:
        statuses = [e.status for e in self.entries.values()]
        if not statuses:
            return RunStatus.PENDING
        if RunStatus.RUNNING in statuses:
            return RunStatus.RUNNING
        if RunStatus.FAIL in statuses:
            return RunStatus.FAIL
        if RunStatus.WARN in statuses:
            return RunStatus.WARN
        return RunStatus.PASS

    def _get_elapsed_time(self) -> str:
        elapsed = datetime.datetime.now() - self.start_time
        minutes = int(elapsed.total_seconds() // 60)
        seconds = int(elapsed.total_seconds() % 60)
        return f'{minutes}m {seconds}s'

    def generate_html(self) -> str:
        """Generate the HTML index page and write it to the output directory"""
        overall = self.overall_status()
        _, status_color = self.STATUS_ICONS[overall]
        esc = html.escape

        rows = ''
        for entry in self.entries.values():
            icon, color = self.STATUS_ICONS[entry.status]
            links = ' '.join(
                f'<a href="{esc(os.path.basename(path))}">{kind.upper()}</a>'
                for kind, path in entry.files.items()
            )
            score = '' if entry.score is None else f'{entry.score}'
            rows += f'''
                <tr>
                    <td>{icon}</td>
                    <td><strong>{esc(entry.title)}</strong><div class="rid">{esc(entry.report_id)}</div></td>
                    <td style="color: {color}; font-weight: 600;">{entry.status.value.upper()}</td>
                    <td>{esc(entry.details)}</td>
                    <td>{score}</td>
                    <td>{entry.elapsed_seconds:.1f}s</td>
                    <td>{esc(entry.finished or entry.started)}</td>
                    <td class="links">{links}</td>
                </tr>'''

        html_out = f'''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta http-equiv="refresh" content="{REFRESH_SECONDS}">
    <title>OpsReports - {self.run_date}</title>
    <style>
        :root {{
            --bg-primary: #0f172a;
            --bg-secondary: #1e293b;
            --bg-tertiary: #334155;
            --text-primary: #f8fafc;
            --text-secondary: #94a3b8;
            --accent-blue: #3b82f6;
            --accent-purple: #8b5cf6;
        }}

        * {{
            margin: 0;
            padding: 0;
            box-sizing: border-box;
        }}

        body {{
            font-family: 'Segoe UI', system-ui, -apple-system, sans-serif;
            background: var(--bg-primary);
            color: var(--text-primary);
            min-height: 100vh;
            padding: 2rem;
        }}

        .container {{
            max-width: 1300px;
            margin: 0 auto;
        }}

        header {{
            text-align: center;
            margin-bottom: 2rem;
            padding-bottom: 1.5rem;
            border-bottom: 1px solid var(--bg-tertiary);
        }}

        h1 {{
            font-size: 2.2rem;
            font-weight: 700;
            margin-bottom: 0.5rem;
            background: linear-gradient(135deg, var(--accent-blue), var(--accent-purple));
            -webkit-background-clip: text;
            -webkit-text-fill-color: transparent;
            background-clip: text;
        }}

        .status-badge {{
            display: inline-block;
            padding: 0.5rem 1.5rem;
            border-radius: 9999px;
            font-weight: 600;
            background: {status_color};
            color: white;
            margin: 1rem 0;
        }}

        .meta-info {{
            display: flex;
            justify-content: center;
            gap: 2rem;
            color: var(--text-secondary);
            font-size: 0.9rem;
        }}

        table {{
            width: 100%;
            border-collapse: collapse;
            background: var(--bg-secondary);
            border-radius: 1rem;
            overflow: hidden;
        }}

        th, td {{
            padding: 0.75rem 1rem;
            text-align: left;
            border-bottom: 1px solid var(--bg-tertiary);
        }}

        th {{
            color: var(--text-secondary);
            font-weight: 600;
            font-size: 0.85rem;
            text-transform: uppercase;
        }}

        .rid {{
            color: var(--text-secondary);
            font-size: 0.8rem;
        }}

        .links a {{
            color: var(--accent-blue);
            margin-right: 0.5rem;
            text-decoration: none;
        }}

        footer {{
            text-align: center;
            margin-top: 2rem;
            color: var(--text-secondary);
            font-size: 0.8rem;
        }}
    </style>
</head>
<body>
    <div class="container">
        <header>
            <h1>OpsReports Run Index</h1>
            <div class="status-badge">{overall.value.upper()}</div>
            <div class="meta-info">
                <span>Date: {self.run_date}</span>
                <span>Reports: {len(self.entries)}</span>
                <span>Elapsed: {self._get_elapsed_time()}</span>
            </div>
        </header>
        <table>
            <tr><th></th><th>Report</th><th>Status</th><th>Details</th><th>Score</th><th>Elapsed</th><th>Time</th><th>Files</th></tr>{rows}
        </table>
        <footer>Auto-refreshes every {REFRESH_SECONDS} seconds | Last updated: {datetime.datetime.now().strftime('%H:%M:%S')}</footer>
    </div>
</body>
</html>
'''
        os.makedirs(self.output_dir, exist_ok=True)
        with open(self.index_path, 'w', encoding='utf-8') as f:
            f.write(html_out)
        return html_out

#==============================================================================
# MODULE FUNCTIONS
#==============================================================================

def record_report(output_dir: str, report, files: Dict[str, str], elapsed: float) -> ReportEntry:
    """
    Record a finished Report in the run index of output_dir

    :param report: report_builder.Report
    :param files: dict of written output files by kind
    :param elapsed: seconds the report took
    """
    index = RunIndex(output_dir)
    counts = report.counts()
    return index.update(
        report.report_id,
        report.title,
        RunStatus(report.overall_status.lower()),
        message='; '.join(report.errors[:2]),
        score=report.score,
        total_items=len(report.rows),
        pass_items=counts['PASS'],
        warn_items=counts['WARN'],
        fail_items=counts['FAIL'],
        errors=len(report.errors),
        files=files,
        elapsed_seconds=round(elapsed, 1),
    )


def mark_report(output_dir: str, report_id: str, title: str, status: RunStatus, message: str = '') -> ReportEntry:
    """Mark a report pending/running/failed/skipped without a Report object"""
    index = RunIndex(output_dir)
    return index.update(report_id, title, status, message)


def reset_index(output_dir: str) -> 'RunIndex':
    """
    Start a fresh run index, discarding today's state

    :param output_dir: directory holding index.html and run-state.json
    """
    state_path = os.path.join(output_dir, STATE_FILE)
    if os.path.exists(state_path):
        os.remove(state_path)
    index = RunIndex(output_dir, load_state=False)
    index.generate_html()
    return index


def list_entries(output_dir: str) -> List[ReportEntry]:
    return list(RunIndex(output_dir).entries.values())
