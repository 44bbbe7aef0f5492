#!/usr/bin/env python3
# security_baseline.py - OpsReports Security Baseline Check
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Compares Windows password, lockout, audit, service and hardening settings with CIS/STIG values

import os
import sys
import csv
import io
from typing import List, Dict, Optional

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'security_baseline'
MODULE_DESCRIPTION = 'CIS/STIG Windows security baseline check'

COLUMNS = ['host', 'category', 'control', 'expected', 'actual', 'status', 'weight']

PROFILES = ['cis', 'stig']

# secedit key -> (low, high, weight); high None = no upper bound
POLICY_THRESHOLDS = {
    'cis': {
        'MinimumPasswordLength': (14, None, 2),
        'PasswordComplexity': (1, 1, 2),
        'MaximumPasswordAge': (1, 365, 1),
        'MinimumPasswordAge': (1, None, 1),
        'PasswordHistorySize': (24, None, 1),
        'LockoutBadCount': (1, 5, 2),
        'LockoutDuration': (15, None, 1),
        'ClearTextPassword': (0, 0, 3),
        'EnableGuestAccount': (0, 0, 2),
    },
    'stig': {
        'MinimumPasswordLength': (14, None, 2),
        'PasswordComplexity': (1, 1, 2),
        'MaximumPasswordAge': (1, 60, 1),
        'MinimumPasswordAge': (1, None, 1),
        'PasswordHistorySize': (24, None, 1),
        'LockoutBadCount': (1, 3, 2),
        'LockoutDuration': (15, None, 1),
        'ClearTextPassword': (0, 0, 3),
        'EnableGuestAccount': (0, 0, 2),
    },
}

# Lockout duration 0 (until an administrator unlocks) is compliant under STIG
ALLOWED_EXTRA = {
    'stig': {'LockoutDuration': (0,)},
}

POLICY_CATEGORY = {
    'MinimumPasswordLength': 'Password Policy',
    'PasswordComplexity': 'Password Policy',
    'MaximumPasswordAge': 'Password Policy',
    'MinimumPasswordAge': 'Password Policy',
    'PasswordHistorySize': 'Password Policy',
    'ClearTextPassword': 'Password Policy',
    'LockoutBadCount': 'Account Lockout',
    'LockoutDuration': 'Account Lockout',
    'EnableGuestAccount': 'Accounts',
}

# Audit subcategory -> accepted inclusion settings
AUDIT_EXPECTATIONS = {
    'Credential Validation': ('Success and Failure',),
    'Logon': ('Success and Failure',),
    'Account Lockout': ('Failure', 'Success and Failure'),
    'Security Group Management': ('Success and Failure',),
    'User Account Management': ('Success and Failure',),
    'Audit Policy Change': ('Success and Failure',),
    'Sensitive Privilege Use': ('Success and Failure',),
}

DISABLED_SERVICES = ['RemoteRegistry', 'TlntSvr', 'SNMP', 'Fax', 'XblGameSave', 'Spooler']

LSA_KEY = r'MACHINE\System\CurrentControlSet\Control\Lsa\LmCompatibilityLevel'

COLLECT_SCRIPT = r'''
$cfg = Join-Path $env:TEMP 'opsreports_secpol.cfg'
secedit /export /cfg $cfg | Out-Null
$secpol = Get-Content -LiteralPath $cfg -Raw
Remove-Item -LiteralPath $cfg -Force -ErrorAction SilentlyContinue | Out-Null
$audit = (auditpol /get /category:* /r) -join "`n"
$services = @(Get-Service -Name %SERVICES% -ErrorAction SilentlyContinue | ForEach-Object {
    [pscustomobject]@{ Name = $_.Name; Status = [string]$_.Status; StartType = [string]$_.StartType }
})
$fw = @(Get-NetFirewallProfile -ErrorAction SilentlyContinue | ForEach-Object {
    [pscustomobject]@{ Name = $_.Name; Enabled = [string]$_.Enabled }
})
$smb1 = try { (Get-SmbServerConfiguration -ErrorAction Stop).EnableSMB1Protocol } catch { $null }
$printShares = @(Get-CimInstance Win32_Share -ErrorAction SilentlyContinue | Where-Object { $_.Type -eq 1 }).Count
$lsa = Get-ItemProperty 'HKLM:\SYSTEM\CurrentControlSet\Control\Lsa' -ErrorAction SilentlyContinue
$sys = Get-ItemProperty 'HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Policies\System' -ErrorAction SilentlyContinue
$rdp = Get-ItemProperty 'HKLM:\SYSTEM\CurrentControlSet\Control\Terminal Server\WinStations\RDP-Tcp' -ErrorAction SilentlyContinue
[pscustomobject]@{
    SecPol               = $secpol
    AuditPol             = $audit
    Services             = $services
    Firewall             = $fw
    SMB1                 = $smb1
    PrintServer          = ($printShares -gt 0)
    LmCompatibilityLevel = $lsa.LmCompatibilityLevel
    EnableLUA            = $sys.EnableLUA
    UserAuthentication   = $rdp.UserAuthentication
}'''.replace('%SERVICES%', ','.join(DISABLED_SERVICES))

#==============================================================================
# PARSERS
#==============================================================================

def parse_secedit(text: str) -> Dict[str, str]:
    """Parse a secedit /export file into key=value pairs (section headers skipped)"""
    data = {}
    for raw in (text or '').splitlines():
        line = raw.strip().lstrip('\ufeff')
        if not line or line.startswith(';') or line.startswith('#') or line.startswith('['):
            continue
        if '=' not in line:
            continue
        key, value = line.split('=', 1)
        data[key.strip()] = value.strip().strip('"')
    return data


def parse_auditpol_csv(text: str) -> Dict[str, str]:
    """Parse 'auditpol /get /category:* /r' CSV into {subcategory: inclusion setting}"""
    lines = [line for line in (text or '').splitlines() if line.strip()]
    if not lines:
        return {}
    reader = csv.DictReader(io.StringIO('\n'.join(lines)))
    result = {}
    for row in reader:
        name = (row.get('Subcategory') or '').strip()
        if name:
            result[name] = (row.get('Inclusion Setting') or '').strip()
    return result


def _int(value) -> Optional[int]:
    if value is None or value == '':
        return None
    text = str(value).strip()
    # Registry values in secedit exports are 'type,value'
    if ',' in text:
        text = text.split(',', 1)[1]
    try:
        return int(text)
    except ValueError:
        return None


def _truthy(value) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('1', 'true', 'yes', 'enabled'):
        return True
    if text in ('0', 'false', 'no', 'disabled'):
        return False
    return None

#==============================================================================
# EVALUATION
#==============================================================================

def _expected_text(low, high, extra=()) -> str:
    if low == high:
        text = f'= {low}'
    elif high is None:
        text = f'>= {low}'
    else:
        text = f'{low}..{high}'
    if extra:
        text += ' (or ' + ', '.join(str(e) for e in extra) + ')'
    return text


def _result(category, control, expected, actual, passed: Optional[bool], weight) -> Dict:
    if passed is None:
        status = 'SKIPPED'
    else:
        status = 'PASS' if passed else 'FAIL'
    return {
        'category': category,
        'control': control,
        'expected': expected,
        'actual': '' if actual is None else str(actual),
        'status': status,
        'weight': weight,
    }


def evaluate_policy(secpol: Dict[str, str], profile: str) -> List[Dict]:
    """Password, lockout and guest account controls from secedit values"""
    results = []
    extras = ALLOWED_EXTRA.get(profile, {})
    for key, (low, high, weight) in POLICY_THRESHOLDS[profile].items():
        value = _int(secpol.get(key))
        extra = extras.get(key, ())
        if value is None:
            passed = None
        elif value in extra:
            passed = True
        else:
            passed = value >= low and (high is None or value <= high)
        results.append(_result(POLICY_CATEGORY[key], key, _expected_text(low, high, extra), value, passed, weight))
    return results


def evaluate_audit(audit: Dict[str, str]) -> List[Dict]:
    results = []
    for subcategory, accepted in AUDIT_EXPECTATIONS.items():
        setting = audit.get(subcategory)
        passed = None if not audit else (setting in accepted)
        results.append(_result('Audit Policy', subcategory, ' or '.join(accepted), setting or 'No Auditing',
                               passed, 1))
    return results


def evaluate_services(services: List[Dict], print_server: bool = False) -> List[Dict]:
    """Services that must be disabled or absent (Spooler only on non-print servers)"""
    by_name = {s.get('Name', '').lower(): s for s in services or []}
    results = []
    for name in DISABLED_SERVICES:
        if name == 'Spooler' and print_server:
            results.append(_result('Services', name, 'Disabled (not a print server)', 'print server', None, 1))
            continue
        svc = by_name.get(name.lower())
        if svc is None:
            results.append(_result('Services', name, 'Disabled or absent', 'absent', True, 1))
            continue
        start_type = svc.get('StartType', '')
        actual = f"{svc.get('Status', '')}/{start_type}"
        results.append(_result('Services', name, 'Disabled or absent', actual, start_type == 'Disabled', 1))
    return results


def evaluate_hardening(data: Dict, secpol: Dict[str, str]) -> List[Dict]:
    """Firewall, SMBv1, UAC, RDP NLA and LM compatibility controls"""
    results = []

    profiles = data.get('Firewall') or []
    if profiles:
        disabled = [p.get('Name') for p in profiles if _truthy(p.get('Enabled')) is not True]
        actual = 'all enabled' if not disabled else 'disabled: ' + ', '.join(disabled)
        results.append(_result('Firewall', 'Firewall profiles', 'All enabled', actual, not disabled, 3))
    else:
        results.append(_result('Firewall', 'Firewall profiles', 'All enabled', None, None, 3))

    smb1 = _truthy(data.get('SMB1'))
    results.append(_result('Network', 'SMBv1 server', 'Disabled', smb1,
                           None if smb1 is None else not smb1, 3))

    lua = _int(data.get('EnableLUA'))
    results.append(_result('UAC', 'EnableLUA', '= 1', lua, None if lua is None else lua == 1, 3))

    nla = _int(data.get('UserAuthentication'))
    results.append(_result('Remote Desktop', 'Network Level Authentication', '= 1', nla,
                           None if nla is None else nla == 1, 2))

    lm = _int(data.get('LmCompatibilityLevel'))
    if lm is None:
        lm = _int(secpol.get(LSA_KEY))
    results.append(_result('Network', 'LmCompatibilityLevel', '>= 5', lm, None if lm is None else lm >= 5, 2))

    return results


def evaluate_host(data: Dict, profile: str) -> List[Dict]:
    """Evaluate every control for one host's collected data"""
    secpol = parse_secedit(data.get('SecPol', ''))
    audit = parse_auditpol_csv(data.get('AuditPol', ''))
    results = []
    results.extend(evaluate_policy(secpol, profile))
    results.extend(evaluate_audit(audit))
    results.extend(evaluate_services(data.get('Services') or [], bool(data.get('PrintServer'))))
    results.extend(evaluate_hardening(data, secpol))
    return results


def baseline_score(results: List[Dict]) -> float:
    """Weighted pass percentage over evaluated (non-skipped) controls"""
    evaluated = [r for r in results if r['status'] != 'SKIPPED']
    total = sum(r['weight'] for r in evaluated)
    if not total:
        return 0.0
    passed = sum(r['weight'] for r in evaluated if r['status'] == 'PASS')
    return round(passed / total * 100, 1)


def score_status(score: float) -> str:
    if score >= 90:
        return 'PASS'
    if score >= 70:
        return 'WARN'
    return 'FAIL'

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def collect_host(opf, host: Optional[str]) -> Dict:
    items = opf.run_powershell_json(COLLECT_SCRIPT, host, depth=3)
    if not items:
        raise opf.RemoteCommandError(f'{host or "localhost"}: baseline collection returned no data')
    return items[0]


def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for security_baseline

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: List hosts without collecting
    :param options: hosts, profile
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    hosts = options.get('hosts') or opf.get_config_list('BASELINE', 'Hosts', ['localhost'])
    profile = (options.get('profile') or opf.get_config_value('BASELINE', 'Profile', 'cis')).lower()
    if profile not in PROFILES:
        opf.write_output(f'Unknown baseline profile {profile}, using cis', level='WARN')
        profile = 'cis'

    report = Report(MODULE_NAME, f'{opf.title_prefix} Security Baseline ({profile.upper()})', COLUMNS,
                    parameters={'hosts': hosts, 'profile': profile})

    scores = []
    for entry in hosts:
        host, _ = opf.parse_host_entry(entry)
        if dry_run:
            opf.write_output(f'Would collect baseline settings from {host}')
            continue

        opf.write_output(f'Collecting baseline settings from {host}...')
        try:
            data = collect_host(opf, None if opf.is_local(host) else host)
        except Exception as e:
            report.add_error(f'{host}: baseline collection failed - {e}', opf)
            report.add_check(host, 'FAIL', f'Could not collect settings: {e}')
            continue

        results = evaluate_host(data, profile)
        score = baseline_score(results)
        scores.append(score)
        failed = [r['control'] for r in results if r['status'] == 'FAIL']
        for r in results:
            r['host'] = host
            report.rows.append(r)

        status = score_status(score)
        message = f'Score {score}% ({len(failed)} failed controls)'
        if failed:
            message += ': ' + ', '.join(failed[:6]) + (' ...' if len(failed) > 6 else '')
        report.add_check(host, status, message, score=score)
        opf.write_output(f'{host}: {message}', level=report_builder.STATUS_LEVELS[status])

    if scores:
        report.score = round(sum(scores) / len(scores), 1)
    report.summary = {
        'Hosts': len(hosts),
        'Controls': len(report.rows),
        'Passed': sum(1 for r in report.rows if r['status'] == 'PASS'),
        'Failed': sum(1 for r in report.rows if r['status'] == 'FAIL'),
        'Skipped': sum(1 for r in report.rows if r['status'] == 'SKIPPED'),
    }

    return report_builder.finish_report(opf, report, write_files=not dry_run)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--hosts', nargs='+', help='Windows hosts to check (default localhost)')
    parser.add_argument('--profile', choices=PROFILES, help='Benchmark thresholds (default cis)')
    return parser


def cli(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
