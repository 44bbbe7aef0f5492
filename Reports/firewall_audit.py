#!/usr/bin/env python3
# firewall_audit.py - OpsReports Firewall Rule Audit
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Audits Windows, FortiGate, Check Point and CSV rule bases and scores compliance

"""
Firewall Audit - normalises a rule base and flags risky rules

Rule sources:
- windows    Get-NetFirewallRule with port/address filters (local or remote host)
- fortigate  'show full-configuration' / backup text (config firewall policy)
- checkpoint access rulebase JSON exported from the management API
- csv        name, enabled, action, direction, source, destination, service,
             protocol, logging, comment (lists separated by ';')

Every rule becomes a FirewallRule. Each Finding deducts from a 100 point
compliance score (critical 15, high 10, medium 5, low 2).
"""

import os
import sys
import csv
import json
import shlex
import ipaddress
from typing import List, Dict, Optional, Tuple
from dataclasses import dataclass, field

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'firewall_audit'
MODULE_DESCRIPTION = 'Firewall rule base audit with compliance score'

COLUMNS = ['position', 'name', 'enabled', 'action', 'direction', 'source', 'destination',
           'service', 'protocol', 'logging', 'findings', 'severity']

SOURCES = ['windows', 'fortigate', 'checkpoint', 'csv']

SEVERITY_DEDUCTIONS = {'critical': 15, 'high': 10, 'medium': 5, 'low': 2}
SEVERITY_ORDER = ['critical', 'high', 'medium', 'low']

CHECK_SEVERITY = {
    'any_any': 'critical',
    'risky_service': 'high',
    'permissive_source': 'medium',
    'wide_port_range': 'medium',
    'no_logging': 'medium',
    'duplicate': 'medium',
    'shadowed': 'medium',
    'disabled': 'low',
    'no_description': 'low',
}

WIDE_RANGE_PORTS = 1000

RISKY_SERVICE_PORTS = {
    21: 'FTP', 23: 'Telnet', 69: 'TFTP', 135: 'MS RPC', 139: 'NetBIOS',
    161: 'SNMP', 445: 'SMB', 1433: 'SQL Server', 3306: 'MySQL', 3389: 'RDP',
    5432: 'PostgreSQL', 5900: 'VNC', 6379: 'Redis', 27017: 'MongoDB',
}

# Well-known service object names (FortiGate predefined, Check Point, common aliases)
KNOWN_SERVICES = {
    'http': [(80, 80)], 'https': [(443, 443)], 'ssh': [(22, 22)], 'telnet': [(23, 23)],
    'ftp': [(21, 21)], 'tftp': [(69, 69)], 'smtp': [(25, 25)], 'dns': [(53, 53)],
    'domain-udp': [(53, 53)], 'domain-tcp': [(53, 53)], 'ntp': [(123, 123)],
    'snmp': [(161, 162)], 'ldap': [(389, 389)], 'ldaps': [(636, 636)],
    'rdp': [(3389, 3389)], 'remote_desktop_protocol': [(3389, 3389)],
    'smb': [(445, 445)], 'microsoft-ds': [(445, 445)], 'samba': [(139, 139), (445, 445)],
    'nbsession': [(139, 139)], 'mysql': [(3306, 3306)], 'ms-sql': [(1433, 1433)],
    'mssql': [(1433, 1433)], 'postgres': [(5432, 5432)], 'vnc': [(5900, 5900)],
    'imap': [(143, 143)], 'imaps': [(993, 993)], 'pop3': [(110, 110)], 'pop3s': [(995, 995)],
    'kerberos': [(88, 88)], 'winrm': [(5985, 5986)],
}

ANY_VALUES = ('any', 'all', '*', '', 'any4', 'any6', 'internet')

UNTRUSTED_INTERFACES = ('wan', 'internet', 'outside', 'untrust', 'external')

WINDOWS_RULES_SCRIPT = r'''
Get-NetFirewallRule -PolicyStore ActiveStore | ForEach-Object {
    $port = $_ | Get-NetFirewallPortFilter
    $addr = $_ | Get-NetFirewallAddressFilter
    [pscustomobject]@{
        Name          = $_.Name
        DisplayName   = $_.DisplayName
        Enabled       = [string]$_.Enabled
        Action        = [string]$_.Action
        Direction     = [string]$_.Direction
        Description   = $_.Description
        Protocol      = [string]$port.Protocol
        LocalPort     = @($port.LocalPort)
        RemotePort    = @($port.RemotePort)
        LocalAddress  = @($addr.LocalAddress)
        RemoteAddress = @($addr.RemoteAddress)
    }
}'''

#==============================================================================
# DATA CLASSES
#==============================================================================

@dataclass
class FirewallRule:
    """Vendor neutral firewall rule ('any' is the literal 'any')"""
    name: str
    enabled: bool
    action: str  # allow, deny
    direction: str  # inbound, outbound, forward
    sources: List[str]
    destinations: List[str]
    services: List[str]
    protocol: str = 'any'
    logging: Optional[bool] = None  # None = source has no per-rule logging
    comment: str = ''
    position: int = 0
    # Resolved destination port ranges; None = any port
    ports: Optional[List[Tuple[int, int]]] = None


@dataclass
class Finding:
    rule: FirewallRule
    check: str
    severity: str
    message: str

#==============================================================================
# NORMALISATION HELPERS
#==============================================================================

def normalize_list(values) -> List[str]:
    """Normalise an address/service list; any/all/* collapse to ['any']"""
    if values is None:
        return ['any']
    if isinstance(values, str):
        values = [v for v in values.replace(',', ';').split(';')]
    cleaned = [str(v).strip() for v in values if str(v).strip()]
    if not cleaned or any(v.lower() in ANY_VALUES for v in cleaned):
        return ['any']
    return cleaned


def normalize_action(value: str) -> str:
    value = str(value or '').strip().lower()
    if value in ('allow', 'accept', 'permit', 'pass'):
        return 'allow'
    return 'deny'


def normalize_direction(value: str) -> str:
    value = str(value or '').strip().lower()
    if value in ('in', 'inbound', 'ingress'):
        return 'inbound'
    if value in ('out', 'outbound', 'egress'):
        return 'outbound'
    return value or 'forward'


def parse_bool(value, default=True) -> bool:
    if value is None or str(value).strip() == '':
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'enable', 'enabled', 'on', 'y', 'log')


def parse_port_token(token: str) -> Optional[List[Tuple[int, int]]]:
    """
    Resolve one service token to port ranges

    Accepts '443', 'tcp/443', '8000-8100', 'udp/161-162' or a known name.
    :return: list of (low, high); None for unknown names
    """
    token = token.strip().lower()
    if '/' in token:
        token = token.split('/', 1)[1]
    if token in KNOWN_SERVICES:
        return KNOWN_SERVICES[token]
    try:
        if '-' in token:
            low, high = [int(p) for p in token.split('-', 1)]
        else:
            low = high = int(token)
    except ValueError:
        return None
    if low > high:
        low, high = high, low
    return [(low, high)]


def resolve_ports(services: List[str], custom: Dict[str, List[Tuple[int, int]]] = None) -> Optional[List[Tuple[int, int]]]:
    """Port ranges covered by a service list (None = any)"""
    if 'any' in services:
        return None
    custom = custom or {}
    ranges = []
    for service in services:
        if service in custom:
            ranges.extend(custom[service])
            continue
        resolved = parse_port_token(service)
        if resolved:
            ranges.extend(resolved)
    return ranges


def port_span(ranges: List[Tuple[int, int]]) -> int:
    return sum(high - low + 1 for low, high in ranges)

#==============================================================================
# RULE SOURCES
#==============================================================================

def parse_windows_rules(items: List[Dict]) -> List[FirewallRule]:
    """Convert Get-NetFirewallRule objects into FirewallRules"""
    rules = []
    for position, item in enumerate(items, start=1):
        direction = normalize_direction(item.get('Direction'))
        remote = normalize_list(item.get('RemoteAddress'))
        local = normalize_list(item.get('LocalAddress'))
        if direction == 'outbound':
            sources, destinations = local, remote
            services = normalize_list(item.get('RemotePort'))
        else:
            sources, destinations = remote, local
            services = normalize_list(item.get('LocalPort'))
        protocol = str(item.get('Protocol') or 'any').lower()
        rules.append(FirewallRule(
            name=item.get('DisplayName') or item.get('Name') or f'rule {position}',
            enabled=parse_bool(item.get('Enabled')),
            action=normalize_action(item.get('Action')),
            direction=direction,
            sources=sources,
            destinations=destinations,
            services=services,
            protocol=protocol,
            logging=None,
            comment=item.get('Description') or '',
            position=position,
            ports=resolve_ports(services),
        ))
    return rules


def _split_set_line(line: str) -> List[str]:
    try:
        return shlex.split(line)
    except ValueError:
        return line.split()


def _forti_port_ranges(values: List[str]) -> List[Tuple[int, int]]:
    ranges = []
    for value in values:
        # 'dst[:src]' - only the destination part matters
        resolved = parse_port_token(value.split(':', 1)[0])
        if resolved:
            ranges.extend(resolved)
    return ranges


def parse_fortigate_config(text: str) -> List[FirewallRule]:
    """
    Parse FortiGate configuration text into FirewallRules

    Reads 'config firewall policy' entries and resolves service names
    through 'config firewall service custom'.
    """
    stack = []
    current = None
    policies = []
    custom = {}
    wanted = ('firewall policy', 'firewall service custom')

    for raw in (text or '').splitlines():
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('config '):
            stack.append(line[7:].strip())
            continue
        if line == 'end':
            if stack:
                stack.pop()
            continue
        section = stack[-1] if stack else ''
        if section not in wanted:
            continue
        if line.startswith('edit '):
            current = {'_id': line[5:].strip().strip('"')}
        elif line == 'next':
            if current is not None:
                if section == 'firewall policy':
                    policies.append(current)
                else:
                    custom[current['_id']] = current
            current = None
        elif line.startswith('set ') and current is not None:
            parts = _split_set_line(line[4:])
            if parts:
                current[parts[0]] = parts[1:]

    custom_ports = {
        name: _forti_port_ranges(entry.get('tcp-portrange', []) + entry.get('udp-portrange', []))
        for name, entry in custom.items()
    }

    rules = []
    for position, policy in enumerate(policies, start=1):
        def value(key, default=''):
            values = policy.get(key)
            return ' '.join(values) if values else default

        services = normalize_list(policy.get('service'))
        srcintf = [i.lower() for i in policy.get('srcintf', [])]
        inbound = any(u in intf for intf in srcintf for u in UNTRUSTED_INTERFACES)
        rules.append(FirewallRule(
            name=value('name') or f"policy {policy['_id']}",
            enabled=value('status', 'enable') != 'disable',
            action=normalize_action(value('action', 'deny')),
            direction='inbound' if inbound else 'forward',
            sources=normalize_list(policy.get('srcaddr')),
            destinations=normalize_list(policy.get('dstaddr')),
            services=services,
            protocol='any' if 'any' in services else 'ip',
            logging=value('logtraffic', 'utm') != 'disable',
            comment=value('comments'),
            position=position,
            ports=resolve_ports(services, custom_ports),
        ))
    return rules


def _checkpoint_names(items, objects: Dict[str, Dict]) -> List[str]:
    names = []
    for item in items or []:
        if isinstance(item, str):
            item = objects.get(item, {'name': item})
        names.append(item.get('name', ''))
    return names


def _checkpoint_ports(items, objects: Dict[str, Dict]) -> Optional[List[Tuple[int, int]]]:
    ranges = []
    for item in items or []:
        if isinstance(item, str):
            item = objects.get(item, {'name': item})
        if str(item.get('name', '')).lower() == 'any':
            return None
        port = item.get('port')
        resolved = parse_port_token(str(port)) if port else parse_port_token(item.get('name', ''))
        if resolved:
            ranges.extend(resolved)
    return ranges


def parse_checkpoint_rulebase(data) -> List[FirewallRule]:
    """
    Convert a Check Point access rulebase (management API JSON) into FirewallRules

    Sections are flattened in order. Object UIDs are resolved through
    'objects-dictionary' when the export carries one.
    """
    if isinstance(data, str):
        data = json.loads(data)
    objects = {obj.get('uid'): obj for obj in data.get('objects-dictionary', []) if obj.get('uid')}

    flat = []

    def walk(entries):
        for entry in entries:
            if entry.get('type') == 'access-section' or 'rulebase' in entry:
                walk(entry.get('rulebase', []))
            else:
                flat.append(entry)

    walk(data.get('rulebase', []))

    rules = []
    for position, entry in enumerate(flat, start=1):
        action = entry.get('action', {})
        if isinstance(action, str):
            action = objects.get(action, {'name': action})
        track = entry.get('track', {})
        track_type = track.get('type', {}) if isinstance(track, dict) else track
        if isinstance(track_type, str):
            track_type = objects.get(track_type, {'name': track_type})
        services = normalize_list(_checkpoint_names(entry.get('service'), objects))
        rules.append(FirewallRule(
            name=entry.get('name') or f"rule {entry.get('rule-number', position)}",
            enabled=bool(entry.get('enabled', True)),
            action=normalize_action(action.get('name')),
            direction='forward',
            sources=normalize_list(_checkpoint_names(entry.get('source'), objects)),
            destinations=normalize_list(_checkpoint_names(entry.get('destination'), objects)),
            services=services,
            protocol='any' if 'any' in services else 'ip',
            logging=str(track_type.get('name', 'None')).lower() != 'none',
            comment=entry.get('comments', ''),
            position=position,
            ports=_checkpoint_ports(entry.get('service'), objects),
        ))
    return rules


def parse_rules_csv(path: str) -> List[FirewallRule]:
    """Read rules from a CSV export (header names are case-insensitive)"""
    rules = []
    with open(path, 'r', encoding='utf-8', errors='ignore', newline='') as f:
        sample = f.read(1024)
        f.seek(0)
        delimiter = '\t' if sample.count('\t') > sample.count(',') else ','
        reader = csv.DictReader(f, delimiter=delimiter)
        for position, row in enumerate(reader, start=1):
            row = {(k or '').strip().lower(): (v or '').strip() for k, v in row.items()}
            if not row.get('name'):
                continue
            services = normalize_list(row.get('service'))
            logging = row.get('logging', row.get('log'))
            rules.append(FirewallRule(
                name=row['name'],
                enabled=parse_bool(row.get('enabled')),
                action=normalize_action(row.get('action')),
                direction=normalize_direction(row.get('direction')),
                sources=normalize_list(row.get('source')),
                destinations=normalize_list(row.get('destination')),
                services=services,
                protocol=(row.get('protocol') or 'any').lower(),
                logging=None if logging in (None, '') else parse_bool(logging),
                comment=row.get('comment', row.get('description', '')),
                position=position,
                ports=resolve_ports(services),
            ))
    return rules

#==============================================================================
# AUDIT
#==============================================================================

def _is_any(values: List[str]) -> bool:
    return 'any' in values


def _address_covers(outer: List[str], inner: List[str]) -> bool:
    """True when every address in inner is contained in outer"""
    if _is_any(outer):
        return True
    if _is_any(inner):
        return False
    for addr in inner:
        covered = False
        for candidate in outer:
            if candidate == addr:
                covered = True
                break
            try:
                if ipaddress.ip_network(addr, strict=False).subnet_of(ipaddress.ip_network(candidate, strict=False)):
                    covered = True
                    break
            except (ValueError, TypeError):
                continue
        if not covered:
            return False
    return True


def _service_covers(outer: FirewallRule, inner: FirewallRule) -> bool:
    if outer.ports is None:
        return True
    if inner.ports is None:
        return False
    if not inner.ports:
        # Unresolvable services - compare by name
        return set(inner.services) <= set(outer.services)
    return all(any(lo <= i_lo and i_hi <= hi for lo, hi in outer.ports) for i_lo, i_hi in inner.ports)


def _protocol_covers(outer: str, inner: str) -> bool:
    return outer in ('any', 'ip') or outer == inner


def _match_key(rule: FirewallRule):
    return (frozenset(rule.sources), frozenset(rule.destinations), frozenset(rule.services),
            rule.protocol, rule.direction, rule.action)


def covers(earlier: FirewallRule, later: FirewallRule) -> bool:
    """True when earlier matches every packet later would match"""
    return (earlier.direction == later.direction
            and _protocol_covers(earlier.protocol, later.protocol)
            and _address_covers(earlier.sources, later.sources)
            and _address_covers(earlier.destinations, later.destinations)
            and _service_covers(earlier, later))


def audit_rules(rules: List[FirewallRule]) -> List[Finding]:
    """Run every audit check against an ordered rule base"""
    findings = []

    def add(rule, check, message):
        findings.append(Finding(rule, check, CHECK_SEVERITY[check], message))

    for index, rule in enumerate(rules):
        if not rule.enabled:
            add(rule, 'disabled', 'Rule is disabled')
        if not (rule.comment or '').strip():
            add(rule, 'no_description', 'Rule has no description')
        if not rule.enabled:
            continue

        allow = rule.action == 'allow'
        any_src = _is_any(rule.sources)
        any_any = allow and any_src and _is_any(rule.destinations) and _is_any(rule.services)

        if any_any:
            add(rule, 'any_any', 'Allows any source to any destination on any service')
        elif allow and any_src:
            if rule.ports is None:
                add(rule, 'risky_service', 'Allows all services from any source')
            else:
                exposed = sorted({name for port, name in RISKY_SERVICE_PORTS.items()
                                  if any(lo <= port <= hi for lo, hi in rule.ports)})
                if exposed:
                    add(rule, 'risky_service', f'Exposes {", ".join(exposed)} to any source')
            if rule.direction == 'inbound':
                add(rule, 'permissive_source', 'Inbound rule allows any source address')

        if allow and rule.ports and port_span(rule.ports) > WIDE_RANGE_PORTS:
            add(rule, 'wide_port_range', f'Allows {port_span(rule.ports)} ports')

        if allow and rule.logging is False:
            add(rule, 'no_logging', 'Traffic logging is disabled')

        # Compare against earlier enabled rules - O(n^2)
        key = _match_key(rule)
        for earlier in rules[:index]:
            if not earlier.enabled:
                continue
            if _match_key(earlier) == key:
                add(rule, 'duplicate', f'Duplicates rule {earlier.position} ({earlier.name})')
                break
            if covers(earlier, rule):
                add(rule, 'shadowed', f'Never matched: covered by rule {earlier.position} ({earlier.name})')
                break

    return findings


def compliance_score(findings: List[Finding]) -> int:
    """100 minus the severity deductions, floored at 0"""
    return max(0, 100 - sum(SEVERITY_DEDUCTIONS[f.severity] for f in findings))


def grade(score: float) -> str:
    if score >= 90:
        return 'A'
    if score >= 80:
        return 'B'
    if score >= 70:
        return 'C'
    if score >= 60:
        return 'D'
    return 'F'


def score_status(score: float) -> str:
    if score >= 80:
        return 'PASS'
    if score >= 60:
        return 'WARN'
    return 'FAIL'


def rule_rows(rules: List[FirewallRule], findings: List[Finding]) -> List[Dict]:
    by_rule = {}
    for finding in findings:
        by_rule.setdefault(id(finding.rule), []).append(finding)

    rows = []
    for rule in rules:
        rule_findings = by_rule.get(id(rule), [])
        severities = [f.severity for f in rule_findings]
        worst = next((s for s in SEVERITY_ORDER if s in severities), '')
        rows.append({
            'position': rule.position,
            'name': rule.name,
            'enabled': rule.enabled,
            'action': rule.action,
            'direction': rule.direction,
            'source': rule.sources,
            'destination': rule.destinations,
            'service': rule.services,
            'protocol': rule.protocol,
            'logging': '' if rule.logging is None else rule.logging,
            'findings': [f.check for f in rule_findings],
            'severity': worst,
        })
    return rows

#==============================================================================
# COLLECTION
#==============================================================================

def load_rules(opf, source: str, input_path: str = None, host: str = None) -> List[FirewallRule]:
    if source == 'windows':
        return parse_windows_rules(opf.run_powershell_json(WINDOWS_RULES_SCRIPT, host, depth=3))
    if not input_path:
        raise ValueError(f'--input is required for source {source}')
    if source == 'csv':
        return parse_rules_csv(input_path)
    with open(input_path, 'r', encoding='utf-8', errors='ignore') as f:
        text = f.read()
    if source == 'fortigate':
        return parse_fortigate_config(text)
    if source == 'checkpoint':
        return parse_checkpoint_rulebase(text)
    raise ValueError(f'Unknown rule source {source}')

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for firewall_audit

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: Show the rule source without reading it
    :param options: source, input, host
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    source = options.get('source') or opf.get_config_value('FIREWALL', 'Source', 'windows')
    input_path = options.get('input') or opf.get_config_value('FIREWALL', 'Input')
    host = options.get('host') or opf.get_config_value('FIREWALL', 'Host') or None

    report = Report(MODULE_NAME, f'{opf.title_prefix} Firewall Rule Audit ({source})', COLUMNS,
                    parameters={'source': source, 'input': input_path, 'host': host})

    if dry_run:
        opf.write_output(f'Would audit {source} rules from {input_path or host or "localhost"}')
        return report_builder.finish_report(opf, report, write_files=False)

    try:
        rules = load_rules(opf, source, os.path.expanduser(input_path) if input_path else None, host)
    except Exception as e:
        report.add_error(f'Could not load {source} rules: {e}', opf)
        return report_builder.finish_report(opf, report)

    opf.write_output(f'Loaded {len(rules)} rules, auditing...')
    findings = audit_rules(rules)
    score = compliance_score(findings)
    letter = grade(score)

    for finding in findings:
        if finding.severity in ('critical', 'high'):
            opf.write_output(f'[{finding.severity}] {finding.rule.name}: {finding.message}', level='WARN')

    report.rows = rule_rows(rules, findings)
    report.score = score
    report.add_check('Compliance score', score_status(score), f'Score {score}/100 (grade {letter})')
    for check, severity in CHECK_SEVERITY.items():
        count = sum(1 for f in findings if f.check == check)
        if count:
            report.add_check(check, 'INFO', f'{count} rules ({severity})')

    report.summary = {
        'Rules': len(rules),
        'Enabled': sum(1 for r in rules if r.enabled),
        'Findings': len(findings),
        'Grade': letter,
    }
    for severity in SEVERITY_ORDER:
        report.summary[severity.capitalize()] = sum(1 for f in findings if f.severity == severity)

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--source', choices=SOURCES, help='Rule source (default windows)')
    parser.add_argument('--input', help='Rule file for fortigate/checkpoint/csv sources')
    parser.add_argument('--host', help='Remote Windows host for the windows source')
    return parser


def cli(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.source in ('fortigate', 'checkpoint', 'csv') and args.input and not os.path.isfile(args.input):
        parser.error(f'--input file not found: {args.input}')
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
