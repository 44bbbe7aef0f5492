#!/usr/bin/env python3
# test_firewall_audit.py - OpsReports Firewall Rule Audit Unit Tests
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team

import pytest
import os
import sys
import json

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Reports import firewall_audit
from Reports.firewall_audit import FirewallRule

FORTIGATE_CONFIG = '''
#config-version=FGT60F-7.2.5
config system global
    set hostname "fw-edge-01"
end
config firewall service custom
    edit "APP-8080"
        set tcp-portrange 8080
    next
end
config firewall policy
    edit 1
        set name "wan-to-web"
        set srcintf "wan1"
        set dstintf "lan"
        set srcaddr "all"
        set dstaddr "web-vip"
        set action accept
        set service "HTTPS" "APP-8080"
        set logtraffic all
        set comments "Public web"
    next
    edit 2
        set name "lan-out"
        set srcintf "lan"
        set dstintf "wan1"
        set srcaddr "all"
        set dstaddr "all"
        set action accept
        set service "ALL"
        set logtraffic disable
    next
    edit 3
        set name "old-vpn"
        set status disable
        set srcintf "ssl.root"
        set dstintf "lan"
        set srcaddr "vpn-users"
        set dstaddr "all"
        set action accept
        set service "ALL"
        set comments "retired"
    next
end
'''

CHECKPOINT_RULEBASE = {
    'rulebase': [
        {'type': 'access-section', 'name': 'Management', 'rulebase': [
            {'type': 'access-rule', 'rule-number': 1, 'name': 'ssh-admin',
             'source': ['uid-admins'], 'destination': ['uid-srv'], 'service': ['uid-ssh'],
             'action': 'uid-accept', 'track': {'type': 'uid-log'}, 'enabled': True,
             'comments': 'Admin SSH'},
        ]},
        {'type': 'access-rule', 'rule-number': 2, 'name': 'Cleanup rule',
         'source': ['uid-any'], 'destination': ['uid-any'], 'service': ['uid-any'],
         'action': 'uid-drop', 'track': {'type': 'uid-none'}, 'enabled': True,
         'comments': 'Drop everything else'},
    ],
    'objects-dictionary': [
        {'uid': 'uid-admins', 'name': 'Admins-Net'},
        {'uid': 'uid-srv', 'name': 'Servers'},
        {'uid': 'uid-ssh', 'name': 'ssh', 'port': '22'},
        {'uid': 'uid-accept', 'name': 'Accept'},
        {'uid': 'uid-drop', 'name': 'Drop'},
        {'uid': 'uid-log', 'name': 'Log'},
        {'uid': 'uid-none', 'name': 'None'},
        {'uid': 'uid-any', 'name': 'Any'},
    ],
}

RULES_CSV = '''Name,Enabled,Action,Direction,Source,Destination,Service,Protocol,Logging,Comment
Allow RDP,yes,allow,in,any,10.0.0.0/24,3389,tcp,yes,Jump hosts
Allow RDP server,yes,allow,in,any,10.0.0.5,3389,tcp,yes,Legacy server
Wide egress,yes,allow,out,10.0.0.0/24,any,1024-65535,tcp,no,
Old rule,no,allow,in,any,any,any,any,,legacy
'''


def make_rule(name, position, **kwargs):
    values = dict(enabled=True, action='allow', direction='inbound', sources=['10.0.0.0/24'],
                  destinations=['10.1.0.10'], services=['443'], protocol='tcp', logging=True,
                  comment='test rule')
    values.update(kwargs)
    rule = FirewallRule(name=name, position=position, **values)
    rule.ports = firewall_audit.resolve_ports(rule.services)
    return rule


@pytest.fixture
def rules_csv(temp_dir):
    path = os.path.join(temp_dir, 'rules.csv')
    with open(path, 'w', newline='') as f:
        f.write(RULES_CSV)
    return path


class TestNormalisation:
    """Test value normalisation helpers"""

    def test_normalize_list(self):
        assert firewall_audit.normalize_list('10.0.0.1; 10.0.0.2') == ['10.0.0.1', '10.0.0.2']
        assert firewall_audit.normalize_list(['Any']) == ['any']
        assert firewall_audit.normalize_list(None) == ['any']
        assert firewall_audit.normalize_list([]) == ['any']

    @pytest.mark.parametrize('value,expected', [
        ('Allow', 'allow'), ('accept', 'allow'), ('permit', 'allow'),
        ('Block', 'deny'), ('drop', 'deny'), (None, 'deny'),
    ])
    def test_normalize_action(self, value, expected):
        assert firewall_audit.normalize_action(value) == expected

    def test_parse_port_token(self):
        assert firewall_audit.parse_port_token('tcp/443') == [(443, 443)]
        assert firewall_audit.parse_port_token('9000-8000') == [(8000, 9000)]
        assert firewall_audit.parse_port_token('RDP') == [(3389, 3389)]
        assert firewall_audit.parse_port_token('app-custom') is None

    def test_resolve_ports_any(self):
        assert firewall_audit.resolve_ports(['any']) is None


class TestParsers:
    """Test vendor rule parsers"""

    def test_windows_rules(self):
        items = [
            {'Name': '{1}', 'DisplayName': 'Remote Desktop', 'Enabled': 'True', 'Action': 'Allow',
             'Direction': 'Inbound', 'Protocol': 'TCP', 'LocalPort': ['3389'], 'RemotePort': ['Any'],
             'LocalAddress': ['Any'], 'RemoteAddress': ['Any'], 'Description': ''},
            {'Name': 'Out-DNS', 'DisplayName': None, 'Enabled': 'False', 'Action': 'Block',
             'Direction': 'Outbound', 'Protocol': 'UDP', 'LocalPort': ['Any'], 'RemotePort': ['53'],
             'LocalAddress': ['Any'], 'RemoteAddress': ['10.0.0.53'], 'Description': 'dns'},
        ]
        rdp, dns = firewall_audit.parse_windows_rules(items)
        assert rdp.name == 'Remote Desktop'
        assert rdp.direction == 'inbound'
        assert rdp.sources == ['any']
        assert rdp.ports == [(3389, 3389)]
        assert rdp.logging is None
        assert dns.name == 'Out-DNS'
        assert dns.enabled is False
        assert dns.action == 'deny'
        assert dns.destinations == ['10.0.0.53']
        assert dns.services == ['53']

    def test_fortigate(self):
        rules = firewall_audit.parse_fortigate_config(FORTIGATE_CONFIG)
        assert [r.name for r in rules] == ['wan-to-web', 'lan-out', 'old-vpn']
        web, lan, vpn = rules
        assert web.direction == 'inbound'
        assert web.sources == ['any']
        assert sorted(web.ports) == [(443, 443), (8080, 8080)]
        assert web.logging is True
        assert web.comment == 'Public web'
        assert lan.direction == 'forward'
        assert lan.services == ['any'] and lan.ports is None
        assert lan.logging is False
        assert vpn.enabled is False

    def test_checkpoint(self):
        rules = firewall_audit.parse_checkpoint_rulebase(json.dumps(CHECKPOINT_RULEBASE))
        ssh, cleanup = rules
        assert ssh.position == 1
        assert ssh.action == 'allow'
        assert ssh.sources == ['Admins-Net']
        assert ssh.ports == [(22, 22)]
        assert ssh.logging is True
        assert cleanup.action == 'deny'
        assert cleanup.sources == ['any']
        assert cleanup.ports is None
        assert cleanup.logging is False

    def test_csv(self, rules_csv):
        rules = firewall_audit.parse_rules_csv(rules_csv)
        assert len(rules) == 4
        assert rules[0].ports == [(3389, 3389)]
        assert rules[2].direction == 'outbound'
        assert rules[2].logging is False
        assert rules[3].enabled is False
        assert rules[3].logging is None


class TestAudit:
    """Test audit checks and scoring"""

    def checks_for(self, findings, rule):
        return sorted(f.check for f in findings if f.rule is rule)

    def test_any_any(self):
        rule = make_rule('allow-all', 1, sources=['any'], destinations=['any'], services=['any'],
                         protocol='any')
        findings = firewall_audit.audit_rules([rule])
        assert self.checks_for(findings, rule) == ['any_any']
        assert findings[0].severity == 'critical'

    def test_risky_service_from_any(self):
        rule = make_rule('smb', 1, sources=['any'], services=['445'])
        findings = firewall_audit.audit_rules([rule])
        assert self.checks_for(findings, rule) == ['permissive_source', 'risky_service']

    def test_deny_rules_are_not_permissive(self):
        rule = make_rule('block', 1, action='deny', sources=['any'], destinations=['any'], services=['any'])
        assert firewall_audit.audit_rules([rule]) == []

    def test_duplicate(self):
        first = make_rule('web', 1)
        second = make_rule('web copy', 2)
        findings = firewall_audit.audit_rules([first, second])
        assert self.checks_for(findings, second) == ['duplicate']
        assert 'rule 1' in findings[0].message

    def test_shadowed_by_wider_rule(self):
        wide = make_rule('web all', 1, destinations=['10.1.0.0/16'], services=['443', '8443'])
        narrow = make_rule('web one', 2, destinations=['10.1.0.10'], services=['443'])
        findings = firewall_audit.audit_rules([wide, narrow])
        assert self.checks_for(findings, narrow) == ['shadowed']

    def test_not_shadowed_when_later_is_wider(self):
        narrow = make_rule('web one', 1, destinations=['10.1.0.10'])
        wide = make_rule('web all', 2, destinations=['10.1.0.0/16'])
        assert firewall_audit.audit_rules([narrow, wide]) == []

    def test_disabled_rules_do_not_shadow(self):
        first = make_rule('web', 1, enabled=False)
        second = make_rule('web copy', 2)
        findings = firewall_audit.audit_rules([first, second])
        assert self.checks_for(findings, first) == ['disabled']
        assert self.checks_for(findings, second) == []

    def test_wide_range_and_logging(self):
        rule = make_rule('egress', 1, services=['1024-65535'], logging=False, comment='')
        findings = firewall_audit.audit_rules([rule])
        assert self.checks_for(findings, rule) == ['no_description', 'no_logging', 'wide_port_range']

    @pytest.mark.parametrize('score,letter,status', [
        (100, 'A', 'PASS'), (90, 'A', 'PASS'), (85, 'B', 'PASS'), (79, 'C', 'WARN'),
        (65, 'D', 'WARN'), (59, 'F', 'FAIL'), (0, 'F', 'FAIL'),
    ])
    def test_grades(self, score, letter, status):
        assert firewall_audit.grade(score) == letter
        assert firewall_audit.score_status(score) == status

    def test_score_floor(self):
        rules = [make_rule(f'any {n}', n, sources=['any'], destinations=['any'], services=['any'],
                           comment='') for n in range(1, 10)]
        assert firewall_audit.compliance_score(firewall_audit.audit_rules(rules)) == 0


class TestMain:
    """Test main() over the CSV source"""

    def test_csv_audit(self, mock_opf, rules_csv):
        report = firewall_audit.main(mock_opf, source='csv', input=rules_csv)

        assert len(report.rows) == 4
        by_name = {r['name']: r for r in report.rows}
        assert by_name['Allow RDP']['findings'] == ['risky_service', 'permissive_source']
        assert by_name['Allow RDP server']['findings'] == ['risky_service', 'permissive_source', 'shadowed']
        assert by_name['Allow RDP server']['severity'] == 'high'
        assert sorted(by_name['Wide egress']['findings']) == ['no_description', 'no_logging', 'wide_port_range']
        assert by_name['Old rule']['findings'] == ['disabled']

        # 100 - (10+5) - (10+5+5) - (5+5+2) - 2
        assert report.score == 51
        assert report.summary['Grade'] == 'F'
        assert report.checks[0].name == 'Compliance score'
        assert report.checks[0].status == 'FAIL'

    def test_missing_input_is_error(self, mock_opf):
        report = firewall_audit.main(mock_opf, source='fortigate')
        assert '--input is required' in report.errors[0]

    def test_windows_source_uses_powershell(self, mock_opf):
        mock_opf.run_powershell_json.return_value = []
        report = firewall_audit.main(mock_opf, source='windows', host='fs-01')
        args = mock_opf.run_powershell_json.call_args.args
        assert args[1] == 'fs-01'
        assert report.score == 100

    def test_dry_run(self, mock_opf):
        report = firewall_audit.main(mock_opf, dry_run=True, source='windows')
        mock_opf.run_powershell_json.assert_not_called()
        assert report.rows == []


class TestCli:
    """Test CLI validation"""

    def test_missing_input_file(self):
        with pytest.raises(SystemExit) as exc:
            firewall_audit.cli(['--source', 'fortigate', '--input', '/nonexistent/fw.conf'])
        assert exc.value.code == 2
