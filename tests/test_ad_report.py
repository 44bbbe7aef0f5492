#!/usr/bin/env python3
# test_ad_report.py - OpsReports Active Directory Report Unit Tests
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team

import pytest
import os
import sys
import datetime
from unittest.mock import MagicMock, patch

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Reports import ad_report

NOW = datetime.datetime(2026, 10, 17, 8, 0, 0)


def filetime(when: datetime.datetime) -> int:
    delta = when - ad_report.FILETIME_EPOCH
    return (delta.days * 86400 + delta.seconds) * 10 ** 7


def user_attrs(sam, days_since_logon=5, uac=512, groups=None, admin_count=0, lockout=0,
               created_days_ago=400, now=NOW):
    logon = filetime(now - datetime.timedelta(days=days_since_logon)) if days_since_logon is not None else 0
    return {
        'cn': [sam],
        'displayName': [],
        'sAMAccountName': sam,
        'userAccountControl': uac,
        'lastLogonTimestamp': logon,
        'pwdLastSet': filetime(now - datetime.timedelta(days=30)),
        'lockoutTime': lockout,
        'whenCreated': now - datetime.timedelta(days=created_days_ago),
        'adminCount': admin_count,
        'memberOf': groups or [],
        'distinguishedName': f'CN={sam},OU=Staff,DC=corp,DC=local',
    }


class TestConversions:
    """Test LDAP attribute conversion"""

    def test_filetime(self):
        when = datetime.datetime(2026, 1, 31, 12, 0)
        assert ad_report.filetime_to_datetime(filetime(when)) == when

    @pytest.mark.parametrize('value', [None, '', 0, '0', [], 0x7FFFFFFFFFFFFFFF, 'garbage'])
    def test_filetime_never(self, value):
        assert ad_report.filetime_to_datetime(value) is None

    def test_filetime_epoch_datetime_is_never(self):
        epoch = datetime.datetime(1601, 1, 1, tzinfo=datetime.timezone.utc)
        assert ad_report.filetime_to_datetime(epoch) is None

    def test_filetime_aware_datetime(self):
        aware = datetime.datetime(2026, 10, 1, 10, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))
        assert ad_report.filetime_to_datetime(aware) == datetime.datetime(2026, 10, 1, 8, 0)

    def test_generalized_time(self):
        assert ad_report.generalized_time('20240131120000.0Z') == datetime.datetime(2024, 1, 31, 12, 0, 0)
        assert ad_report.generalized_time(['20240131120000.0Z']) == datetime.datetime(2024, 1, 31, 12, 0, 0)
        assert ad_report.generalized_time('bad') is None
        assert ad_report.generalized_time([]) is None

    def test_group_cn(self):
        assert ad_report.group_cn('CN=Domain Admins,CN=Users,DC=corp,DC=local') == 'Domain Admins'
        assert ad_report.group_cn('Helpdesk') == 'Helpdesk'


class TestAccountRecord:
    """Test account_record flags"""

    def test_enabled_user(self):
        record = ad_report.account_record(user_attrs('jdoe'), 'user', NOW)
        assert record['name'] == 'jdoe'
        assert record['enabled'] is True
        assert record['locked'] is False
        assert record['days_inactive'] == 5
        assert record['password_age_days'] == 30
        assert record['privileged'] is False

    def test_disabled_never_expiring(self):
        record = ad_report.account_record(user_attrs('svc', uac=512 | 0x2 | 0x10000), 'user', NOW)
        assert record['enabled'] is False
        assert record['password_never_expires'] is True

    def test_privileged_by_group_or_admin_count(self):
        by_group = user_attrs('adm1', groups=['CN=Domain Admins,CN=Users,DC=corp,DC=local'])
        assert ad_report.account_record(by_group, 'user', NOW)['privileged'] is True
        by_count = user_attrs('adm2', admin_count=1)
        assert ad_report.account_record(by_count, 'user', NOW)['privileged'] is True

    def test_locked(self):
        attrs = user_attrs('locked', lockout=filetime(NOW - datetime.timedelta(hours=1)))
        assert ad_report.account_record(attrs, 'user', NOW)['locked'] is True

    def test_computer_never_privileged(self):
        attrs = user_attrs('WS01$', admin_count=1)
        attrs['operatingSystem'] = 'Windows 11 Enterprise'
        record = ad_report.account_record(attrs, 'computer', NOW)
        assert record['privileged'] is False
        assert record['operating_system'] == 'Windows 11 Enterprise'


class TestFiltering:
    """Test inactivity and --type filtering"""

    @pytest.fixture
    def records(self):
        return [
            ad_report.account_record(user_attrs('active'), 'user', NOW),
            ad_report.account_record(user_attrs('stale', days_since_logon=200), 'user', NOW),
            ad_report.account_record(user_attrs('newbie', days_since_logon=None, created_days_ago=3), 'user', NOW),
            ad_report.account_record(user_attrs('ghost', days_since_logon=None, created_days_ago=365), 'user', NOW),
            ad_report.account_record(user_attrs('gone', uac=514, days_since_logon=400), 'user', NOW),
            ad_report.account_record(user_attrs('admin', uac=512 | 0x10000, admin_count=1), 'user', NOW),
            ad_report.account_record(user_attrs('WS01$', days_since_logon=120), 'computer', NOW),
        ]

    def names(self, records):
        return [r['sam_account_name'] for r in records]

    def test_never_logged_on_counts_after_threshold(self, records):
        by_name = {r['sam_account_name']: r for r in records}
        assert ad_report.is_inactive(by_name['newbie'], 90, NOW) is False
        assert ad_report.is_inactive(by_name['ghost'], 90, NOW) is True

    @pytest.mark.parametrize('report_type,expected', [
        ('inactive', ['stale', 'ghost']),
        ('disabled', ['gone']),
        ('privileged', ['admin']),
        ('password', ['admin']),
        ('computers', ['WS01$']),
    ])
    def test_types(self, records, report_type, expected):
        assert self.names(ad_report.filter_records(records, report_type, 90, NOW)) == expected

    def test_all(self, records):
        assert len(ad_report.filter_records(records, 'all', 90, NOW)) == len(records)

    def test_unknown_type(self, records):
        with pytest.raises(ValueError):
            ad_report.filter_records(records, 'bogus', 90, NOW)

    def test_analyze_checks(self, records):
        report = ad_report.Report('ad_report', 'AD', ad_report.COLUMNS)
        ad_report.analyze(report, records, 90, NOW)
        checks = {c.name: c for c in report.checks}
        assert checks['Inactive users'].status == 'WARN'
        assert checks['Privileged password expiry'].status == 'FAIL'
        assert 'admin' in checks['Privileged password expiry'].message
        assert checks['Locked accounts'].status == 'INFO'
        assert checks['Stale computers'].status == 'WARN'


class TestLdap:
    """Test LDAP helpers with mocked ldap3 objects"""

    def test_ntlm_for_domain_user(self):
        with patch.object(ad_report, 'Server') as server, patch.object(ad_report, 'Connection') as conn:
            ad_report.connect_ldap('dc-01', 'CORP\\svc-report', 'pw', use_ssl=True)
        server.assert_called_once_with('dc-01', port=636, use_ssl=True, get_info=ad_report.ALL)
        assert conn.call_args.kwargs['authentication'] == ad_report.NTLM

    def test_simple_for_upn(self):
        with patch.object(ad_report, 'Server'), patch.object(ad_report, 'Connection') as conn:
            ad_report.connect_ldap('dc-01', 'svc-report@corp.local', 'pw')
        assert conn.call_args.kwargs['authentication'] == ad_report.SIMPLE

    def test_search_skips_referrals(self):
        conn = MagicMock()
        conn.extend.standard.paged_search.return_value = iter([
            {'type': 'searchResEntry', 'attributes': {'sAMAccountName': 'jdoe'}},
            {'type': 'searchResRef', 'uri': ['ldap://other']},
        ])
        results = ad_report.search_accounts(conn, 'DC=corp,DC=local', ad_report.USER_FILTER, ['sAMAccountName'])
        assert results == [{'sAMAccountName': 'jdoe'}]
        assert conn.extend.standard.paged_search.call_args.kwargs['paged_size'] == ad_report.PAGE_SIZE

    def test_default_base_dn(self):
        conn = MagicMock()
        conn.server.info.other = {'defaultNamingContext': ['DC=corp,DC=local']}
        assert ad_report.default_base_dn(conn) == 'DC=corp,DC=local'


class TestMain:
    """Test main() with LDAP patched out"""

    def test_no_server_is_error(self, mock_opf):
        report = ad_report.main(mock_opf)
        assert report.errors
        assert report.overall_status == 'FAIL'

    def test_dry_run_does_not_bind(self, mock_opf):
        with patch.object(ad_report, 'connect_ldap') as connect:
            report = ad_report.main(mock_opf, dry_run=True, server='dc-01')
        connect.assert_not_called()
        assert report.rows == []

    def test_bind_failure(self, mock_opf):
        with patch.object(ad_report, 'connect_ldap', side_effect=Exception('invalidCredentials')):
            report = ad_report.main(mock_opf, server='dc-01')
        assert 'invalidCredentials' in report.errors[0]

    def test_inactive_report(self, mock_opf):
        now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        users = [user_attrs('active', now=now), user_attrs('stale', days_since_logon=200, now=now)]
        conn = MagicMock()
        with patch.object(ad_report, 'connect_ldap', return_value=conn), \
                patch.object(ad_report, 'search_accounts', return_value=users) as search:
            report = ad_report.main(mock_opf, server='dc-01', base_dn='DC=corp,DC=local',
                                    type='inactive', inactive_days=90)
        assert [r['sam_account_name'] for r in report.rows] == ['stale']
        assert report.summary['Users'] == 2
        # computers are only searched for 'all' and 'computers'
        assert search.call_count == 1
        conn.unbind.assert_called_once()
