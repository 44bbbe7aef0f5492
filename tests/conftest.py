#!/usr/bin/env python3
# conftest.py - OpsReports Pytest Configuration and Fixtures
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Shared fixtures for all test modules

import pytest
import os
import sys
import datetime
import tempfile
from unittest.mock import MagicMock, patch
from configparser import ConfigParser

# Add parent directory to path for imports
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

import opsfunctions

#==============================================================================
# FIXTURES - Mock Objects
#==============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def mock_config():
    """Create a ConfigParser with test values"""
    config = ConfigParser()

    config.add_section('GENERAL')
    config.set('GENERAL', 'Title', 'OpsReports')

    config.add_section('DISK')
    config.set('DISK', 'Hosts', 'localhost')
    config.set('DISK', 'WarningPercent', '80')
    config.set('DISK', 'CriticalPercent', '90')

    config.add_section('SERVICES')
    config.set('SERVICES', 'Hosts', '\nweb-01.corp.local:linux\n#old-01.corp.local:linux')
    config.set('SERVICES', 'Services', 'sshd,nginx')

    config.add_section('PORTSCAN')
    config.set('PORTSCAN', 'Targets', '10.1.10.1')
    config.set('PORTSCAN', 'Ports', 'web')

    config.add_section('VSPHERE')
    config.set('VSPHERE', 'vCenters', 'vcsa-01.corp.local:linux:administrator@vsphere.local')

    return config


@pytest.fixture
def mock_opf(temp_dir, mock_config):
    """
    Mock opsfunctions module

    Pure helpers (config access, host parsing, date parsing) are the real
    implementations reading mock_config; everything that touches a system
    is a MagicMock.
    """
    mock = MagicMock()

    mock.title_prefix = 'OpsReports'
    mock.output_dir = temp_dir
    mock.config = mock_config
    mock.RemoteCommandError = opsfunctions.RemoteCommandError

    # Real helpers
    mock.parse_host_entry = opsfunctions.parse_host_entry
    mock.is_local = opsfunctions.is_local
    mock.parse_ps_date = opsfunctions.parse_ps_date
    mock.timestamp_slug = opsfunctions.timestamp_slug
    mock.get_elapsed_seconds = MagicMock(return_value=1.5)

    # Mock methods
    mock.write_output = MagicMock()
    mock.set_report = MagicMock()
    mock.get_password = MagicMock(return_value='MOCK_PW_CHECK_VALUE')
    mock.run_command = MagicMock(return_value=MagicMock(returncode=0, stdout='', stderr=''))
    mock.ssh = MagicMock(return_value=MagicMock(returncode=0, stdout='', stderr=''))
    mock.run_powershell_json = MagicMock(return_value=[])
    mock.test_tcp_port = MagicMock(return_value=True)
    mock.get_url_status = MagicMock(return_value=(True, 'HTTP 200 in 12 ms'))
    mock.get_ssl_cert_info = MagicMock(return_value={
        'host': 'intranet.corp.local',
        'port': 443,
        'certname': 'intranet.corp.local',
        'issuer': 'OU= O=Corp CA',
        'expiration': datetime.date.today() + datetime.timedelta(days=200),
        'days_to_expire': 200,
    })
    mock.connect_vcenters = MagicMock(return_value=[])
    mock.get_all_vms = MagicMock(return_value=[])
    mock.get_all_hosts = MagicMock(return_value=[])

    with patch.object(opsfunctions, 'config', mock_config):
        mock.get_config_list = opsfunctions.get_config_list
        mock.get_config_value = opsfunctions.get_config_value
        mock.get_config_int = opsfunctions.get_config_int
        mock.get_config_float = opsfunctions.get_config_float
        mock.get_config_bool = opsfunctions.get_config_bool
        yield mock


@pytest.fixture
def real_opf(temp_dir):
    """The real opsfunctions module pointed at a temp output dir, console off"""
    with patch.multiple(opsfunctions, output_dir=temp_dir, console_output=False,
                        config=ConfigParser(), logfiles=[]):
        opsfunctions.set_report('pytest')
        yield opsfunctions

#==============================================================================
# FIXTURES - Mock Network Operations
#==============================================================================

@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for command execution tests"""
    with patch('subprocess.run') as mock_run:
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout='Success',
            stderr=''
        )
        yield mock_run


@pytest.fixture
def mock_socket():
    """Mock socket for network tests"""
    with patch('socket.socket') as mock_sock:
        mock_instance = MagicMock()
        mock_instance.connect_ex.return_value = 0
        mock_sock.return_value = mock_instance
        yield mock_sock


@pytest.fixture
def mock_requests():
    """Mock requests for HTTP tests"""
    with patch('requests.Session') as mock_session:
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.text = 'OK'

        mock_instance = MagicMock()
        mock_instance.get.return_value = mock_response
        mock_session.return_value = mock_instance

        yield mock_session

#==============================================================================
# FIXTURES - File System
#==============================================================================

@pytest.fixture
def sample_report():
    """A small finished-looking Report"""
    from Tools.report_builder import Report

    report = Report('disk_monitor', 'OpsReports Disk Space Report', ['host', 'drive', 'status'])
    report.rows = [
        {'host': 'fs-01', 'drive': 'C:', 'status': 'PASS'},
        {'host': 'fs-01', 'drive': 'D:', 'status': 'WARN'},
    ]
    report.add_check('fs-01', 'WARN', 'Disk usage above 80%: D:')
    report.summary = {'Hosts': 1, 'Disks': 2}
    return report


@pytest.fixture
def deploy_csv(temp_dir):
    """Create a sample deploy CSV file"""
    csv_path = os.path.join(temp_dir, 'deploy.csv')

    content = """name,template,cluster,datastore,folder,cpu,memory_mb,network,annotation,power_on
web-01,tpl-rhel9,cl-prod,ds-01,,2,4096,,Web server,yes
web-02,tpl-rhel9,cl-prod,ds-01,,two,4096,,,
,tpl-rhel9,cl-prod,ds-01,,,,,,
web-01,tpl-rhel9,cl-prod,ds-02,,200,,,,
"""

    with open(csv_path, 'w') as f:
        f.write(content)

    return csv_path


@pytest.fixture
def backup_csv(temp_dir):
    """Create a sample backup job CSV file"""
    csv_path = os.path.join(temp_dir, 'jobs.csv')
    now = datetime.datetime.now()
    recent = (now - datetime.timedelta(hours=2)).strftime('%Y-%m-%d %H:%M:%S')
    stale = (now - datetime.timedelta(hours=50)).strftime('%Y-%m-%d %H:%M:%S')

    content = f"""job,type,last_result,last_run,last_success,enabled
SQL Daily,Backup,Success,{recent},{recent},true
File Server,Backup,Failed,{recent},{stale},true
Exchange,Backup,Success,{stale},{stale},true
Archive,Backup,None,,,true
Old Job,Backup,Success,{stale},{stale},false
"""

    with open(csv_path, 'w') as f:
        f.write(content)

    return csv_path

#==============================================================================
# MARKERS
#==============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
