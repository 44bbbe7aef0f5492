#!/usr/bin/env python3
# eventlog_analyzer.py - OpsReports Event Log Analyzer
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Groups Windows events from Get-WinEvent or an export file and flags notable IDs

import os
import sys
import csv
import json
from typing import List, Dict, Optional

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report
from opsfunctions import parse_ps_date

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'eventlog_analyzer'
MODULE_DESCRIPTION = 'Windows event log grouping and notable events'

COLUMNS = ['machine', 'log', 'provider', 'event_id', 'level', 'count',
           'first_seen', 'last_seen', 'notable', 'message']

# Windows event levels (0 LogAlways is reported as Information)
LEVELS = {
    'critical': 1,
    'error': 2,
    'warning': 3,
    'information': 4,
}
LEVEL_NAMES = {number: name.capitalize() for name, number in LEVELS.items()}

DEFAULT_LOGS = ['System', 'Application', 'Security']
DEFAULT_HOURS = 24
DEFAULT_MAX_EVENTS = 5000
SAMPLE_LENGTH = 200

# Event ID -> (description, threshold, status when count >= threshold)
NOTABLE_EVENTS = {
    4625: ('Failed logon', 10, 'FAIL'),
    4740: ('Account locked out', 1, 'WARN'),
    1102: ('Audit log cleared', 1, 'FAIL'),
    6008: ('Unexpected shutdown', 1, 'WARN'),
    41: ('Kernel power loss', 1, 'WARN'),
    7031: ('Service terminated unexpectedly', 1, 'WARN'),
    7034: ('Service crashed', 1, 'WARN'),
    1000: ('Application crash', 1, 'WARN'),
    4720: ('User account created', 1, 'INFO'),
    4732: ('Member added to security-enabled local group', 1, 'WARN'),
}

SECURITY_IDS = [4625, 4740, 1102, 4720, 4732]

EVENT_SCRIPT = (
    "try {{ Get-WinEvent -LogName '{log}' -FilterXPath '{xpath}' -MaxEvents {max_events} -ErrorAction Stop | "
    "Select-Object @{{n='TimeCreated';e={{$_.TimeCreated.ToString('o')}}}}, Id, Level, LevelDisplayName, "
    "ProviderName, LogName, MachineName, Message }} "
    "catch {{ if ($_.FullyQualifiedErrorId -notmatch 'NoMatchingEventsFound') {{ throw }} }}"
)

#==============================================================================
# NORMALISATION
#==============================================================================

def level_number(event: Dict) -> int:
    """Numeric severity of an event (1 critical .. 4 information)"""
    value = event.get('Level')
    try:
        number = int(value)
    except (TypeError, ValueError):
        name = str(event.get('LevelDisplayName') or value or '').strip().lower()
        number = LEVELS.get(name, 4)
    if number < 1 or number > 4:
        number = 4
    return number


def normalize_event(raw: Dict) -> Optional[Dict]:
    """Map a Get-WinEvent object (or export row) to a flat event dict"""
    try:
        event_id = int(raw.get('Id') or raw.get('EventID') or raw.get('EventId'))
    except (TypeError, ValueError):
        return None
    return {
        'time': parse_ps_date(raw.get('TimeCreated')),
        'event_id': event_id,
        'level': level_number(raw),
        'provider': raw.get('ProviderName') or raw.get('Source') or '',
        'log': raw.get('LogName') or '',
        'machine': raw.get('MachineName') or '',
        'message': ' '.join(str(raw.get('Message') or '').split()),
    }


def keep_event(event: Dict, min_level: int) -> bool:
    """Events at or above the minimum severity, plus every notable event ID"""
    return event['level'] <= min_level or event['event_id'] in NOTABLE_EVENTS

#==============================================================================
# INPUT
#==============================================================================

def load_events_file(path: str) -> List[Dict]:
    """Read raw events from a JSON export (array or single object) or CSV"""
    with open(path, encoding='utf-8-sig') as f:
        text = f.read()
    if path.lower().endswith('.json') or text.lstrip().startswith(('[', '{')):
        data = json.loads(text)
        return data if isinstance(data, list) else [data]
    return list(csv.DictReader(text.splitlines()))


def event_xpath(log: str, hours: int, min_level: int) -> str:
    """
    Get-WinEvent XPath filter for one log

    Security is selected by notable event ID only; other logs take every
    event at or above min_level plus the notable IDs at any level.
    """
    if log.lower() == 'security':
        selector = ' or '.join(f'EventID={i}' for i in SECURITY_IDS)
    else:
        notable = ' or '.join(f'EventID={i}' for i in sorted(NOTABLE_EVENTS))
        selector = f'(Level>=1 and Level<={min_level}) or {notable}'
    return f'*[System[({selector}) and TimeCreated[timediff(@SystemTime) <= {int(hours) * 3600000}]]]'


def collect_host(opf, host: str, logs: List[str], hours: int, min_level: int,
                 max_events: int) -> List[Dict]:
    """Query each event log on one host with Get-WinEvent"""
    target = None if opf.is_local(host) else host
    raw = []
    for log in logs:
        script = EVENT_SCRIPT.format(log=log, xpath=event_xpath(log, hours, min_level), max_events=max_events)
        items = opf.run_powershell_json(script, target, depth=2)
        opf.write_output(f'{host} {log}: {len(items)} events', level='DEBUG')
        for item in items:
            item.setdefault('MachineName', host)
            item.setdefault('LogName', log)
        raw.extend(items)
    return raw

#==============================================================================
# ANALYSIS
#==============================================================================

def group_events(events: List[Dict]) -> List[Dict]:
    """One row per (machine, log, provider, id, level), most frequent first"""
    groups = {}
    for event in events:
        key = (event['machine'], event['log'], event['provider'], event['event_id'], event['level'])
        group = groups.get(key)
        if group is None:
            notable = NOTABLE_EVENTS.get(event['event_id'])
            group = groups[key] = {
                'machine': event['machine'],
                'log': event['log'],
                'provider': event['provider'],
                'event_id': event['event_id'],
                'level': LEVEL_NAMES[event['level']],
                'count': 0,
                'first_seen': None,
                'last_seen': None,
                'notable': notable[0] if notable else '',
                'message': event['message'][:SAMPLE_LENGTH],
            }
        group['count'] += 1
        when = event['time']
        if when is not None:
            if group['first_seen'] is None or when < group['first_seen']:
                group['first_seen'] = when
            if group['last_seen'] is None or when > group['last_seen']:
                group['last_seen'] = when
    return sorted(groups.values(), key=lambda g: (-g['count'], g['machine'], g['event_id']))


def level_totals(events: List[Dict]) -> Dict[str, int]:
    totals = {LEVEL_NAMES[n]: 0 for n in sorted(LEVEL_NAMES)}
    for event in events:
        totals[LEVEL_NAMES[event['level']]] += 1
    return totals


def notable_findings(events: List[Dict]) -> List[Dict]:
    """
    Count notable event IDs per machine and apply their thresholds

    :return: list of {machine, event_id, description, count, status}
    """
    counts = {}
    for event in events:
        if event['event_id'] in NOTABLE_EVENTS:
            key = (event['machine'], event['event_id'])
            counts[key] = counts.get(key, 0) + 1

    findings = []
    for (machine, event_id), count in sorted(counts.items()):
        description, threshold, status = NOTABLE_EVENTS[event_id]
        findings.append({
            'machine': machine,
            'event_id': event_id,
            'description': description,
            'count': count,
            'status': status if count >= threshold else 'INFO',
        })
    return findings

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for eventlog_analyzer

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: Show the queries without running them
    :param options: hosts, logs, level, hours, max_events, input
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    input_file = os.path.expanduser(options.get('input') or opf.get_config_value('EVENTLOG', 'InputFile'))
    hosts = options.get('hosts') or opf.get_config_list('EVENTLOG', 'Hosts', ['localhost'])
    logs = options.get('logs') or opf.get_config_list('EVENTLOG', 'Logs', DEFAULT_LOGS)
    level = (options.get('level') or opf.get_config_value('EVENTLOG', 'Level', 'warning')).lower()
    hours = options.get('hours') or opf.get_config_int('EVENTLOG', 'Hours', DEFAULT_HOURS)
    max_events = options.get('max_events') or opf.get_config_int('EVENTLOG', 'MaxEvents', DEFAULT_MAX_EVENTS)

    report = Report(MODULE_NAME, f'{opf.title_prefix} Event Log Report', COLUMNS,
                    parameters={'input': input_file, 'hosts': None if input_file else hosts,
                                'logs': logs, 'level': level, 'hours': hours})

    if level not in LEVELS:
        report.add_error(f'Unknown level {level!r}, expected one of {", ".join(LEVELS)}', opf)
        return report_builder.finish_report(opf, report, write_files=False)
    min_level = LEVELS[level]

    #==========================================================================
    # TASK 1: Collect events
    #==========================================================================

    raw_events = []
    if input_file:
        if dry_run:
            opf.write_output(f'Would analyze events from {input_file}')
            return report_builder.finish_report(opf, report, write_files=False)
        opf.write_output(f'Reading events from {input_file}...')
        try:
            raw_events = load_events_file(input_file)
        except (OSError, ValueError) as e:
            report.add_error(f'Could not read {input_file}: {e}', opf)
            return report_builder.finish_report(opf, report)
    else:
        for host in hosts:
            host = opf.parse_host_entry(host)[0]
            if dry_run:
                opf.write_output(f'Would query {", ".join(logs)} on {host} (last {hours}h, {level} and above)')
                continue
            opf.write_output(f'Querying event logs on {host}...')
            try:
                raw_events.extend(collect_host(opf, host, logs, hours, min_level, max_events))
            except Exception as e:
                report.add_error(f'{host}: event query failed - {e}', opf)
                report.add_check(host, 'FAIL', f'Could not query event logs: {e}')
        if dry_run:
            return report_builder.finish_report(opf, report, write_files=False)

    events = []
    for raw in raw_events:
        event = normalize_event(raw)
        if event is not None and keep_event(event, min_level):
            events.append(event)
    opf.write_output(f'{len(events)} of {len(raw_events)} events at {level} or above or notable')

    #==========================================================================
    # TASK 2: Group and flag
    #==========================================================================

    report.rows = group_events(events)

    findings = notable_findings(events)
    for finding in findings:
        report.add_check(f"{finding['machine']} {finding['event_id']}", finding['status'],
                         f"{finding['description']}: {finding['count']} events")
        if finding['status'] != 'INFO':
            opf.write_output(f"{finding['machine']}: {finding['count']} x {finding['event_id']} "
                             f"({finding['description']})",
                             level=report_builder.STATUS_LEVELS[finding['status']])
    if not findings and events:
        report.add_check('Notable events', 'PASS', 'No notable event IDs found')
    elif not events and not report.errors:
        report.add_check('Events', 'PASS', f'No {level} or notable events found')

    totals = level_totals(events)
    report.summary = {'Events': len(events), 'Groups': len(report.rows)}
    report.summary.update(totals)

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--hosts', nargs='+', help='Windows hosts to query (default localhost)')
    parser.add_argument('--logs', nargs='+', help=f'Event logs (default {" ".join(DEFAULT_LOGS)})')
    parser.add_argument('--level', choices=list(LEVELS), help='Minimum severity (default warning)')
    parser.add_argument('--hours', type=report_builder.positive_int, help=f'Look back window (default {DEFAULT_HOURS})')
    parser.add_argument('--max-events', type=report_builder.positive_int, help='Maximum events per log')
    parser.add_argument('--input', help='Analyze an exported JSON or CSV file instead of live logs')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.input and not os.path.isfile(args.input):
        parser.error(f'--input file not found: {args.input}')
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
