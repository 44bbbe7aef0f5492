#!/usr/bin/env python3
# ad_report.py - OpsReports Active Directory Report
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Reports inactive, disabled, locked and privileged AD accounts over LDAP

import os
import sys
import datetime
from typing import List, Dict, Optional

from ldap3 import Server, Connection, ALL, NTLM, SIMPLE, SUBTREE

# Add project root to path for standalone execution
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Tools import report_builder
from Tools.report_builder import Report

#==============================================================================
# MODULE CONFIGURATION
#==============================================================================

MODULE_NAME = 'ad_report'
MODULE_DESCRIPTION = 'Active Directory users, computers and privileged accounts'

COLUMNS = ['name', 'sam_account_name', 'object_type', 'enabled', 'locked',
           'password_never_expires', 'privileged', 'last_logon', 'days_inactive',
           'password_age_days', 'created', 'operating_system', 'distinguished_name']

REPORT_TYPES = ['all', 'inactive', 'disabled', 'privileged', 'password', 'computers']

DEFAULT_INACTIVE_DAYS = 90
PAGE_SIZE = 500

# userAccountControl flags
UAC_ACCOUNTDISABLE = 0x0002
UAC_DONT_EXPIRE_PASSWORD = 0x10000

PRIVILEGED_GROUPS = (
    'Domain Admins',
    'Enterprise Admins',
    'Schema Admins',
    'Administrators',
    'Account Operators',
    'Backup Operators',
    'Server Operators',
    'Print Operators',
)

USER_FILTER = '(&(objectCategory=person)(objectClass=user))'
COMPUTER_FILTER = '(objectClass=computer)'

USER_ATTRIBUTES = ['cn', 'displayName', 'sAMAccountName', 'userAccountControl',
                   'lastLogonTimestamp', 'pwdLastSet', 'lockoutTime', 'whenCreated',
                   'adminCount', 'memberOf', 'distinguishedName']
COMPUTER_ATTRIBUTES = ['cn', 'sAMAccountName', 'userAccountControl', 'lastLogonTimestamp',
                       'pwdLastSet', 'whenCreated', 'operatingSystem', 'distinguishedName']

# Windows FILETIME epoch
FILETIME_EPOCH = datetime.datetime(1601, 1, 1)

#==============================================================================
# ATTRIBUTE CONVERSION
#==============================================================================

def filetime_to_datetime(value) -> Optional[datetime.datetime]:
    """
    Convert a FILETIME (100ns ticks since 1601) or ldap3-formatted value
    to a naive UTC datetime; 0, 'never' and the 1601 epoch give None
    """
    if value in (None, '', [], 0, '0'):
        return None
    if isinstance(value, list):
        value = value[0]
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return None if value.year <= 1601 else value
    try:
        ticks = int(value)
    except (TypeError, ValueError):
        return None
    # 0x7FFFFFFFFFFFFFFF means 'never'
    if ticks <= 0 or ticks >= 0x7FFFFFFFFFFFFFFF:
        return None
    return FILETIME_EPOCH + datetime.timedelta(microseconds=ticks // 10)


def generalized_time(value) -> Optional[datetime.datetime]:
    """Convert whenCreated (datetime or '20240131120000.0Z') to naive UTC"""
    if isinstance(value, list):
        value = value[0] if value else None
    if value in (None, ''):
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value
    try:
        return datetime.datetime.strptime(str(value)[:14], '%Y%m%d%H%M%S')
    except ValueError:
        return None


def _first(value, default=''):
    if isinstance(value, list):
        return value[0] if value else default
    return default if value is None else value


def _as_list(value) -> List:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def group_cn(dn: str) -> str:
    """CN of a group distinguished name ('CN=Domain Admins,CN=Users,...' -> 'Domain Admins')"""
    first = str(dn).split(',')[0]
    if first.upper().startswith('CN='):
        return first[3:]
    return first


def is_privileged(attrs: Dict) -> bool:
    if str(_first(attrs.get('adminCount'), 0)) == '1':
        return True
    groups = {group_cn(dn).lower() for dn in _as_list(attrs.get('memberOf'))}
    return any(g.lower() in groups for g in PRIVILEGED_GROUPS)


def _days_since(when: Optional[datetime.datetime], now: datetime.datetime) -> Optional[int]:
    if when is None:
        return None
    return max((now - when).days, 0)


def account_record(attrs: Dict, object_type: str, now: datetime.datetime) -> Dict:
    """
    Build a flat record from LDAP attributes

    :param attrs: attribute dict of one search entry
    :param object_type: 'user' or 'computer'
    :param now: reference time (naive UTC)
    """
    try:
        uac = int(_first(attrs.get('userAccountControl'), 0) or 0)
    except (TypeError, ValueError):
        uac = 0
    last_logon = filetime_to_datetime(attrs.get('lastLogonTimestamp'))
    pwd_last_set = filetime_to_datetime(attrs.get('pwdLastSet'))
    created = generalized_time(attrs.get('whenCreated'))
    lockout = filetime_to_datetime(attrs.get('lockoutTime'))

    return {
        'name': _first(attrs.get('displayName')) or _first(attrs.get('cn')),
        'sam_account_name': _first(attrs.get('sAMAccountName')),
        'object_type': object_type,
        'enabled': not bool(uac & UAC_ACCOUNTDISABLE),
        'locked': lockout is not None,
        'password_never_expires': bool(uac & UAC_DONT_EXPIRE_PASSWORD),
        'privileged': is_privileged(attrs) if object_type == 'user' else False,
        'last_logon': last_logon,
        'days_inactive': _days_since(last_logon, now),
        'password_age_days': _days_since(pwd_last_set, now),
        'created': created,
        'operating_system': _first(attrs.get('operatingSystem')),
        'distinguished_name': _first(attrs.get('distinguishedName')),
    }


def is_inactive(record: Dict, inactive_days: int, now: datetime.datetime) -> bool:
    """
    True when the account has not logged on within inactive_days

    An account that never logged on only counts once it is older than the threshold.
    """
    if record['days_inactive'] is not None:
        return record['days_inactive'] >= inactive_days
    created = record.get('created')
    if created is None:
        return True
    return (now - created).days >= inactive_days


def filter_records(records: List[Dict], report_type: str, inactive_days: int,
                   now: datetime.datetime) -> List[Dict]:
    """Select the records shown for a --type value"""
    users = [r for r in records if r['object_type'] == 'user']
    if report_type == 'all':
        return records
    if report_type == 'inactive':
        return [r for r in users if r['enabled'] and is_inactive(r, inactive_days, now)]
    if report_type == 'disabled':
        return [r for r in users if not r['enabled']]
    if report_type == 'privileged':
        return [r for r in users if r['privileged']]
    if report_type == 'password':
        return [r for r in users if r['enabled'] and r['password_never_expires']]
    if report_type == 'computers':
        return [r for r in records if r['object_type'] == 'computer']
    raise ValueError(f'Unknown report type {report_type}')


def analyze(report: Report, records: List[Dict], inactive_days: int, now: datetime.datetime):
    """Add AD hygiene checks for the collected accounts"""
    users = [r for r in records if r['object_type'] == 'user']
    computers = [r for r in records if r['object_type'] == 'computer']

    inactive = [r for r in users if r['enabled'] and is_inactive(r, inactive_days, now)]
    if inactive:
        report.add_check('Inactive users', 'WARN',
                         f'{len(inactive)} enabled users inactive for {inactive_days}+ days',
                         accounts=[r['sam_account_name'] for r in inactive])
    else:
        report.add_check('Inactive users', 'PASS', f'No enabled users inactive for {inactive_days}+ days')

    risky_admins = [r for r in users if r['enabled'] and r['privileged'] and r['password_never_expires']]
    if risky_admins:
        names = ', '.join(r['sam_account_name'] for r in risky_admins)
        report.add_check('Privileged password expiry', 'FAIL',
                         f'{len(risky_admins)} privileged accounts with non-expiring passwords: {names}')
    else:
        report.add_check('Privileged password expiry', 'PASS', 'All privileged passwords expire')

    locked = [r for r in users if r['locked']]
    report.add_check('Locked accounts', 'INFO', f'{len(locked)} accounts currently locked out',
                     accounts=[r['sam_account_name'] for r in locked])

    if computers:
        stale = [r for r in computers if r['enabled'] and is_inactive(r, inactive_days, now)]
        if stale:
            report.add_check('Stale computers', 'WARN',
                             f'{len(stale)} enabled computers inactive for {inactive_days}+ days')
        else:
            report.add_check('Stale computers', 'PASS', 'No stale computer accounts')

#==============================================================================
# LDAP COLLECTION
#==============================================================================

def connect_ldap(server_name: str, user: str, password: str, use_ssl: bool = False, port: int = None):
    """
    Bind to a domain controller

    NTLM is used for DOMAIN\\user names, SIMPLE bind for UPN/DN names.
    """
    port = port or (636 if use_ssl else 389)
    server = Server(server_name, port=port, use_ssl=use_ssl, get_info=ALL)
    authentication = NTLM if '\\' in user else SIMPLE
    return Connection(server, user=user, password=password, authentication=authentication,
                      auto_bind=True, raise_exceptions=True)


def default_base_dn(conn) -> str:
    info = conn.server.info
    if info is not None and 'defaultNamingContext' in info.other:
        return info.other['defaultNamingContext'][0]
    return ''


def search_accounts(conn, base_dn: str, search_filter: str, attributes: List[str]) -> List[Dict]:
    """Paged subtree search returning the attribute dict of every entry"""
    results = []
    entries = conn.extend.standard.paged_search(
        search_base=base_dn,
        search_filter=search_filter,
        search_scope=SUBTREE,
        attributes=attributes,
        paged_size=PAGE_SIZE,
        generator=True
    )
    for entry in entries:
        if entry.get('type') != 'searchResEntry':
            continue
        results.append(dict(entry.get('attributes', {})))
    return results

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def main(opf=None, standalone=False, dry_run=False, **options) -> Report:
    """
    Main entry point for ad_report

    :param opf: opsfunctions module
    :param standalone: Whether running from this module's CLI
    :param dry_run: Show the searches without binding
    :param options: type, inactive_days, server, base_dn
    """
    if opf is None:
        import opsfunctions as opf
        if not standalone:
            opf.init(report=MODULE_NAME)
    opf.set_report(MODULE_NAME)

    opf.write_output(f'Starting {MODULE_NAME}: {MODULE_DESCRIPTION}')

    report_type = options.get('type') or opf.get_config_value('AD', 'ReportType', 'all')
    inactive_days = options.get('inactive_days') or opf.get_config_int('AD', 'InactiveDays', DEFAULT_INACTIVE_DAYS)
    server_name = options.get('server') or opf.get_config_value('AD', 'Server')
    base_dn = options.get('base_dn') or opf.get_config_value('AD', 'BaseDN')
    user = opf.get_config_value('AD', 'User')
    use_ssl = opf.get_config_bool('AD', 'UseSSL', False)
    port = opf.get_config_int('AD', 'Port', 0) or None

    report = Report(MODULE_NAME, f'{opf.title_prefix} Active Directory Report ({report_type})', COLUMNS,
                    parameters={'server': server_name, 'base_dn': base_dn, 'type': report_type,
                                'inactive_days': inactive_days})

    if not server_name:
        report.add_error('No domain controller configured ([AD] Server)', opf)
        return report_builder.finish_report(opf, report, write_files=not dry_run)

    if dry_run:
        opf.write_output(f'Would bind to {server_name} as {user} and search {base_dn or "the default naming context"}')
        return report_builder.finish_report(opf, report, write_files=False)

    #==========================================================================
    # Collect accounts
    #==========================================================================

    now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
    records = []
    try:
        conn = connect_ldap(server_name, user, opf.get_password('AD'), use_ssl, port)
    except Exception as e:
        report.add_error(f'LDAP bind to {server_name} failed: {e}', opf)
        return report_builder.finish_report(opf, report)

    try:
        base_dn = base_dn or default_base_dn(conn)
        report.parameters['base_dn'] = base_dn
        opf.write_output(f'Searching users under {base_dn}...')
        for attrs in search_accounts(conn, base_dn, USER_FILTER, USER_ATTRIBUTES):
            records.append(account_record(attrs, 'user', now))

        if report_type in ('all', 'computers'):
            opf.write_output(f'Searching computers under {base_dn}...')
            for attrs in search_accounts(conn, base_dn, COMPUTER_FILTER, COMPUTER_ATTRIBUTES):
                records.append(account_record(attrs, 'computer', now))
    except Exception as e:
        report.add_error(f'LDAP search failed: {e}', opf)
    finally:
        conn.unbind()

    opf.write_output(f'Collected {len(records)} accounts')

    #==========================================================================
    # Analyze
    #==========================================================================

    analyze(report, records, inactive_days, now)
    report.rows = filter_records(records, report_type, inactive_days, now)

    users = [r for r in records if r['object_type'] == 'user']
    report.summary = {
        'Users': len(users),
        'Enabled': sum(1 for r in users if r['enabled']),
        'Disabled': sum(1 for r in users if not r['enabled']),
        'Privileged': sum(1 for r in users if r['privileged']),
        'Locked': sum(1 for r in users if r['locked']),
        'Computers': sum(1 for r in records if r['object_type'] == 'computer'),
        'Shown': len(report.rows),
    }

    return report_builder.finish_report(opf, report)

#==============================================================================
# STANDALONE EXECUTION
#==============================================================================

def build_parser():
    parser = report_builder.base_parser(MODULE_NAME, MODULE_DESCRIPTION)
    parser.add_argument('--type', choices=REPORT_TYPES, help='Accounts to list (default all)')
    parser.add_argument('--inactive-days', type=report_builder.positive_int,
                        help=f'Days without logon before an account is inactive (default {DEFAULT_INACTIVE_DAYS})')
    parser.add_argument('--server', help='Domain controller host name')
    parser.add_argument('--base-dn', help='Search base (default: domain naming context)')
    return parser


def cli(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return report_builder.run_standalone(sys.modules[__name__], args)


if __name__ == '__main__':
    sys.exit(cli())
