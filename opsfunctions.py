# opsfunctions.py - OpsReports Core Functions Library
# Version 1.2 - October 2026
# Author - Infrastructure Operations Team
# Shared config, logging, remote execution, network and vSphere helpers for the report tools

import os
import subprocess
import socket
import ssl
import shutil
import base64
import datetime
import time
import json
import re
import logging
import requests
import urllib3
import colorama
import OpenSSL
from colorama import Fore, Style
from pyVim import connect
from pyVmomi import vim
from configparser import ConfigParser
from typing import List, Optional, Tuple

# Default logging level is WARNING - keeps urllib3, ldap3 and pypsexec quiet
logging.basicConfig(level=logging.WARNING)
# Most managed endpoints use self-signed certificates
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

#==============================================================================
# STATIC VARIABLES
#==============================================================================

home = os.path.expanduser('~')
opsroot = f'{home}/opsreports'

configname = 'config.ini'
configini = os.environ.get('OPSREPORTS_CONFIG', f'{opsroot}/{configname}')
creds = f'{opsroot}/creds.txt'
output_dir = f'{opsroot}/reports'
sshpass = '/usr/bin/sshpass'

# Name of the report currently running (drives the log file name)
report_name = 'opsreport'
logfiles = []
title_prefix = 'OpsReports'

# Console output flag (set to False when the output is captured elsewhere)
console_output = True

LEVELS = ('DEBUG', 'INFO', 'PASS', 'WARN', 'ERROR')
log_level = 'INFO'
log_counts = {level: 0 for level in LEVELS}

LEVEL_COLORS = {
    'DEBUG': Style.DIM,
    'INFO': '',
    'PASS': Fore.GREEN,
    'WARN': Fore.YELLOW,
    'ERROR': Fore.RED,
}

start_time = datetime.datetime.now()

# Remote Windows execution
windows_transport = 'winrm'   # winrm or psexec
windows_user = ''
windows_port = 0              # 0 = transport default
windows_use_ssl = False
linux_user = 'root'
remote_timeout = 120

vcuser = 'administrator@vsphere.local'
sis = []     # all vCenter session instances

LOCAL_NAMES = ('', 'localhost', '127.0.0.1', '.')

# Config parser
config = ConfigParser()

# Password variable - shared password from creds.txt
_password = None


class RemoteCommandError(Exception):
    """Raised when a local or remote command cannot produce usable output"""

#==============================================================================
# INITIALIZATION
#==============================================================================

def init(config_file=None, **kwargs):
    """
    Initialize the opsfunctions module

    :param config_file: Path to config.ini (defaults to OPSREPORTS_CONFIG or ~/opsreports/config.ini)
    :param kwargs:
        output_dir - override the output directory
        report - name of the report about to run (sets the log file)
        verbose - enable DEBUG output
        console - enable/disable console output
    """
    global configini, output_dir, creds, title_prefix, log_level, console_output
    global windows_transport, windows_user, windows_port, windows_use_ssl, linux_user
    global remote_timeout, _password

    colorama.init()

    if config_file:
        configini = config_file

    if os.path.isfile(configini):
        config.read(configini)

    out = kwargs.get('output_dir') or get_config_value('GENERAL', 'OutputDir')
    if out:
        output_dir = os.path.expanduser(out)

    cfile = get_config_value('GENERAL', 'CredsFile')
    if cfile:
        creds = os.path.expanduser(cfile)

    title_prefix = get_config_value('GENERAL', 'Title', title_prefix)
    log_level = get_config_value('GENERAL', 'LogLevel', 'INFO').upper()
    if kwargs.get('verbose'):
        log_level = 'DEBUG'
    if 'console' in kwargs:
        console_output = kwargs['console']

    windows_transport = get_config_value('WINDOWS', 'Transport', 'winrm').lower()
    windows_user = get_config_value('WINDOWS', 'User', '')
    windows_port = get_config_int('WINDOWS', 'Port', 0)
    windows_use_ssl = get_config_bool('WINDOWS', 'UseSSL', False)
    linux_user = get_config_value('LINUX', 'User', 'root')
    remote_timeout = get_config_int('GENERAL', 'Timeout', 120)

    os.makedirs(output_dir, exist_ok=True)

    _password = None

    set_report(kwargs.get('report', report_name))
    write_output(f'opsfunctions initialized: config={configini}, output={output_dir}', level='DEBUG')


def set_report(name):
    """
    Point logging at the log file of the named report and reset the tallies

    :param name: Report id (e.g. 'disk_monitor')
    """
    global report_name, logfiles, start_time
    report_name = name
    day = datetime.datetime.now().strftime('%Y%m%d')
    logfiles = [os.path.join(output_dir, f'{name}-{day}.log')]
    start_time = datetime.datetime.now()
    for level in LEVELS:
        log_counts[level] = 0

#==============================================================================
# CONFIG HELPER FUNCTIONS
#==============================================================================

def get_config_list(section: str, option: str, fallback: list = None) -> list:
    """
    Get a config option as a list, filtering out commented lines.

    Multiline values are split by newline, single-line values by comma.
    Individual lines may be commented out with '#' or ';'.

    :param section: Config section name (e.g., 'DISK', 'SERVICES')
    :param option: Config option name (e.g., 'Hosts', 'URLs')
    :param fallback: Default value if option doesn't exist (default: empty list)
    :return: List of non-commented, non-empty values

    Example:
        # [DISK]
        # Hosts = #fs-01.corp.local:windows
        #   web-01.corp.local:linux
        get_config_list('DISK', 'Hosts')
        # Returns: ['web-01.corp.local:linux']
    """
    if fallback is None:
        fallback = []

    if not config.has_option(section, option):
        return fallback

    raw_value = config.get(section, option)
    if not raw_value:
        return fallback

    if '\n' in raw_value:
        lines = raw_value.split('\n')
    else:
        lines = raw_value.split(',')

    result = []
    for line in lines:
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith('#') or stripped.startswith(';'):
            continue
        result.append(stripped)

    return result


def get_config_value(section: str, option: str, fallback: str = '') -> str:
    """
    Get a config option value, returning fallback if unset or commented out.

    :param section: Config section name
    :param option: Config option name
    :param fallback: Default value if option doesn't exist or is commented
    :return: Config value or fallback
    """
    if not config.has_option(section, option):
        return fallback

    value = config.get(section, option).strip()

    if not value or value.startswith('#') or value.startswith(';'):
        return fallback

    return value


def get_config_int(section: str, option: str, fallback: int = 0) -> int:
    """Integer variant of get_config_value; malformed values fall back"""
    value = get_config_value(section, option)
    if not value:
        return fallback
    try:
        return int(value)
    except ValueError:
        write_output(f'Config {section}/{option} is not an integer: {value!r}', level='WARN')
        return fallback


def get_config_float(section: str, option: str, fallback: float = 0.0) -> float:
    """Float variant of get_config_value; malformed values fall back"""
    value = get_config_value(section, option)
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        write_output(f'Config {section}/{option} is not a number: {value!r}', level='WARN')
        return fallback


def get_config_bool(section: str, option: str, fallback: bool = False) -> bool:
    """Boolean variant of get_config_value (true/yes/on/1)"""
    value = get_config_value(section, option)
    if not value:
        return fallback
    return value.lower() in ('1', 'true', 'yes', 'on')

#==============================================================================
# PASSWORD FUNCTIONS
#==============================================================================

def get_password(section: str = None) -> str:
    """
    Get the password to use for a data source.

    A 'Password' option in the given config section wins; otherwise the
    shared password from the creds file (first line) is returned and cached.

    :param section: Optional config section (e.g. 'AD', 'BACKUP')
    :return: Password string, or empty string if not found
    """
    global _password
    if section:
        value = get_config_value(section, 'Password')
        if value:
            return value
    if _password is None:
        if os.path.isfile(creds):
            with open(creds, 'r') as f:
                _password = f.readline().strip()
    return _password if _password else ''

#==============================================================================
# OUTPUT AND LOGGING
#==============================================================================

def write_output(msg, level='INFO', **kwargs):
    """
    Write output to the report log file and optionally to the console

    :param msg: Message to write
    :param level: DEBUG, INFO, PASS, WARN or ERROR
    :param kwargs:
        logfile - specific logfile path
        console - override console output setting (True/False)
    """
    level = level.upper()
    if level not in LEVELS:
        level = 'INFO'
    if level == 'DEBUG' and log_level != 'DEBUG':
        return

    log_counts[level] += 1

    timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    formatted_msg = f'[{timestamp}] [{level}] {msg}'

    lfile = kwargs.get('logfile', None)
    print_to_console = kwargs.get('console', console_output)

    for lf in ([lfile] if lfile else logfiles):
        try:
            os.makedirs(os.path.dirname(lf) or '.', exist_ok=True)
            with open(lf, 'a', encoding='utf-8') as f:
                f.write(formatted_msg + '\n')
        except OSError as e:
            if print_to_console:
                print(f'Error writing to {lf}: {e}')

    if print_to_console:
        color = LEVEL_COLORS.get(level, '')
        if color:
            print(f'{color}{formatted_msg}{Style.RESET_ALL}')
        else:
            print(formatted_msg)


def get_elapsed_seconds() -> float:
    """Seconds since the current report started"""
    return (datetime.datetime.now() - start_time).total_seconds()


def timestamp_slug(when=None) -> str:
    """Timestamp used in output file names (YYYYmmdd-HHMMSS)"""
    when = when or datetime.datetime.now()
    return when.strftime('%Y%m%d-%H%M%S')

#==============================================================================
# COMMAND EXECUTION
#==============================================================================

def run_command(cmd, **kwargs):
    """
    Execute a shell command

    :param cmd: Command string or list
    :param kwargs: timeout, shell, capture_output
    :return: subprocess.CompletedProcess
    """
    timeout = kwargs.get('timeout', 300)
    shell = kwargs.get('shell', isinstance(cmd, str))
    capture = kwargs.get('capture_output', True)

    try:
        result = subprocess.run(
            cmd,
            shell=shell,
            capture_output=capture,
            text=True,
            timeout=timeout
        )
        return result
    except subprocess.TimeoutExpired:
        write_output(f'Command timed out: {cmd}', level='ERROR')
        return subprocess.CompletedProcess(cmd, 1, '', 'Timeout')
    except OSError as e:
        write_output(f'Command failed: {cmd} - {e}', level='ERROR')
        return subprocess.CompletedProcess(cmd, 1, '', str(e))


def ssh(command, target, password=None, **kwargs):
    """
    Execute command via SSH

    :param command: Command to execute
    :param target: user@host (host alone uses the [LINUX] User)
    :param password: SSH password (uses creds.txt if not provided)
    :return: subprocess.CompletedProcess
    """
    if password is None:
        password = get_password('LINUX')

    if '@' not in target:
        target = f'{linux_user}@{target}'

    ssh_options = kwargs.get('options', None)
    if ssh_options:
        options_str = f'-o {ssh_options}'
    else:
        options_str = '-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null -o ConnectTimeout=10'

    cmd = f'{sshpass} -p {password} ssh {options_str} {target} "{command}"'
    return run_command(cmd, timeout=kwargs.get('timeout', remote_timeout))


def is_local(host) -> bool:
    """True if host refers to the machine running the report"""
    if host is None:
        return True
    return host.strip().lower() in LOCAL_NAMES or host.strip().lower() == socket.gethostname().lower()


def parse_host_entry(entry: str, default_os: str = 'windows') -> Tuple[str, str]:
    """
    Split a 'host[:os]' config entry

    :param entry: Entry such as 'fs-01.corp.local:windows' or 'localhost'
    :param default_os: OS assumed for remote hosts without a suffix
    :return: (host, os) where os is windows, linux or local
    """
    parts = entry.split(':')
    host = parts[0].strip()
    os_type = parts[1].strip().lower() if len(parts) > 1 and parts[1].strip() else ''
    if not os_type:
        os_type = 'local' if is_local(host) else default_os
    return host, os_type

#==============================================================================
# POWERSHELL EXECUTION (LOCAL, WINRM, PSEXEC)
#==============================================================================

def run_powershell(script, host=None, **kwargs):
    """
    Run a PowerShell script locally or on a remote Windows host

    :param script: PowerShell script text
    :param host: Target host (None/localhost = local)
    :param kwargs: transport (winrm/psexec), user, password, timeout
    :return: subprocess.CompletedProcess
    """
    timeout = kwargs.get('timeout', remote_timeout)

    if is_local(host):
        exe = shutil.which('powershell') or shutil.which('pwsh')
        if not exe:
            return subprocess.CompletedProcess(script, 1, '', 'PowerShell is not available on this system')
        return run_command([exe, '-NoProfile', '-NonInteractive', '-Command', script],
                           shell=False, timeout=timeout)

    transport = kwargs.get('transport', windows_transport)
    user = kwargs.get('user', windows_user)
    pwd = kwargs.get('password', None)
    if pwd is None:
        pwd = get_password('WINDOWS')

    write_output(f'Running PowerShell on {host} via {transport}', level='DEBUG')

    if transport == 'psexec':
        return _run_powershell_psexec(script, host, user, pwd, timeout)
    return _run_powershell_winrm(script, host, user, pwd, timeout)


def _run_powershell_winrm(script, host, user, pwd, timeout):
    """Execute PowerShell over WinRM (NTLM)"""
    import winrm

    scheme = 'https' if windows_use_ssl else 'http'
    port = windows_port or (5986 if windows_use_ssl else 5985)
    try:
        session = winrm.Session(
            f'{scheme}://{host}:{port}/wsman',
            auth=(user, pwd),
            transport='ntlm',
            server_cert_validation='ignore',
            operation_timeout_sec=timeout,
            read_timeout_sec=timeout + 10
        )
        result = session.run_ps(script)
        return subprocess.CompletedProcess(
            script,
            result.status_code,
            result.std_out.decode('utf-8', errors='replace'),
            result.std_err.decode('utf-8', errors='replace')
        )
    except Exception as e:
        write_output(f'WinRM execution on {host} failed: {e}', level='ERROR')
        return subprocess.CompletedProcess(script, 1, '', str(e))


def _run_powershell_psexec(script, host, user, pwd, timeout):
    """Execute PowerShell over SMB with pypsexec (-EncodedCommand)"""
    from pypsexec.client import Client

    encoded = base64.b64encode(script.encode('utf-16-le')).decode('ascii')
    client = Client(host, username=user, password=pwd, encrypt=True)
    connected = False
    try:
        client.connect()
        connected = True
        client.create_service()
        stdout, stderr, rc = client.run_executable(
            'powershell.exe',
            arguments=f'-NoProfile -NonInteractive -EncodedCommand {encoded}',
            timeout_seconds=timeout
        )
        return subprocess.CompletedProcess(
            script, rc,
            (stdout or b'').decode('utf-8', errors='replace'),
            (stderr or b'').decode('utf-8', errors='replace')
        )
    except Exception as e:
        write_output(f'PsExec execution on {host} failed: {e}', level='ERROR')
        return subprocess.CompletedProcess(script, 1, '', str(e))
    finally:
        if connected:
            try:
                client.remove_service()
            except Exception as e:
                write_output(f'Could not remove PsExec service on {host}: {e}', level='DEBUG')
            client.disconnect()


def parse_powershell_json(text) -> list:
    """
    Parse ConvertTo-Json output into a list of dicts

    PowerShell emits a bare object for a single result and nothing at all
    for an empty pipeline, so both are normalised to lists.
    """
    text = (text or '').strip()
    if not text:
        return []
    # Strip a UTF-8 BOM emitted by some hosts
    text = text.lstrip('\ufeff')
    data = json.loads(text)
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return [data]


def run_powershell_json(script, host=None, **kwargs) -> list:
    """
    Run a PowerShell pipeline and return its objects as a list of dicts

    :raises RemoteCommandError: when the script fails or the output is not JSON
    """
    depth = kwargs.pop('depth', 4)
    wrapped = f'{script} | ConvertTo-Json -Depth {depth} -Compress'
    result = run_powershell(wrapped, host, **kwargs)
    target = host or 'localhost'
    if result.returncode != 0 and not (result.stdout or '').strip():
        raise RemoteCommandError(f'{target}: {(result.stderr or "no output").strip()[:300]}')
    try:
        return parse_powershell_json(result.stdout)
    except ValueError as e:
        raise RemoteCommandError(f'{target}: invalid JSON from PowerShell ({e})')


_PS_DATE = re.compile(r'/Date\((-?\d+)(?:[+-]\d{4})?\)/')


def parse_ps_date(value) -> Optional[datetime.datetime]:
    """
    Convert a PowerShell/ISO/epoch date value to a naive local datetime

    Accepts '/Date(1700000000000)/', ISO 8601 strings (with or without 'Z'),
    datetime objects and {'value': ...} wrappers; returns None if unparseable.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, dict):
        return parse_ps_date(value.get('value') or value.get('DateTime'))
    if isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(value)

    text = str(value).strip()
    match = _PS_DATE.search(text)
    if match:
        return datetime.datetime.fromtimestamp(int(match.group(1)) / 1000)

    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    # Trim fractional seconds beyond microseconds (.NET emits 7 digits)
    text = re.sub(r'(\.\d{6})\d+', r'\1', text)
    for fmt in (None, '%Y-%m-%d %H:%M:%S', '%m/%d/%Y %H:%M:%S', '%m/%d/%Y %I:%M:%S %p', '%Y-%m-%d'):
        try:
            if fmt is None:
                parsed = datetime.datetime.fromisoformat(text)
            else:
                parsed = datetime.datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    return None

#==============================================================================
# NETWORK TESTING
#==============================================================================

def test_tcp_port(host, port, **kwargs):
    """
    Test if a TCP port is open

    :param host: Hostname or IP
    :param port: Port number
    :return: True if port is open
    """
    timeout = kwargs.get('timeout', 5)

    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        result = sock.connect_ex((host, int(port)))
        sock.close()
        return result == 0
    except (OSError, ValueError):
        return False


def get_url_status(url, **kwargs) -> Tuple[bool, str]:
    """
    Fetch a URL and describe the outcome

    :param url: URL to test
    :param kwargs: expected_text, verify_ssl, timeout
    :return: (ok, detail)
    """
    expected_text = kwargs.get('expected_text', None)
    verify_ssl = kwargs.get('verify_ssl', False)
    timeout = kwargs.get('timeout', 10)

    try:
        session = requests.Session()
        session.trust_env = False  # Ignore proxy environment vars

        response = session.get(url, verify=verify_ssl, timeout=timeout, proxies=None)

        if response.status_code != 200:
            return False, f'HTTP {response.status_code}'

        if expected_text and expected_text not in response.text:
            return False, f'Expected text "{expected_text}" not found'

        elapsed_ms = int(response.elapsed.total_seconds() * 1000)
        return True, f'HTTP 200 in {elapsed_ms} ms'
    except requests.exceptions.SSLError as e:
        return False, f'SSL error: {e}'
    except requests.exceptions.ConnectionError as e:
        return False, f'Connection error: {e}'
    except requests.exceptions.Timeout:
        return False, 'Request timeout'
    except requests.exceptions.RequestException as e:
        return False, f'Request failed: {e}'


def get_cert_expiration(x509) -> datetime.date:
    """Get certificate expiration date from a pyOpenSSL X509 object"""
    x509info = x509.get_notAfter()
    exp_day = int(x509info[6:8].decode('utf-8'))
    exp_month = int(x509info[4:6].decode('utf-8'))
    exp_year = int(x509info[:4].decode('utf-8'))
    return datetime.date(exp_year, exp_month, exp_day)


def get_ssl_cert_info(host, port=443, **kwargs) -> dict:
    """
    Retrieve the TLS certificate presented by host:port

    :return: dict with certname, issuer, expiration (date) and days_to_expire
    :raises OSError: if the endpoint cannot be reached
    """
    timeout = kwargs.get('timeout', 10)
    cert = ssl.get_server_certificate((host, int(port)), timeout=timeout)
    x509 = OpenSSL.crypto.load_certificate(OpenSSL.crypto.FILETYPE_PEM, cert)

    subject = x509.get_subject()
    issuer = x509.get_issuer()
    if issuer.OU or issuer.O:
        issuer_str = f"OU={issuer.OU or ''} O={issuer.O or ''}"
    else:
        issuer_str = 'Self-Signed'

    exp_date = get_cert_expiration(x509)
    return {
        'host': host,
        'port': int(port),
        'certname': subject.CN or 'Unknown',
        'issuer': issuer_str,
        'expiration': exp_date,
        'days_to_expire': (exp_date - datetime.date.today()).days,
    }

#==============================================================================
# VSPHERE OPERATIONS
#==============================================================================

def connect_vc(host, user, password=None, **kwargs):
    """
    Connect to a vCenter or ESXi host

    :param host: vCenter/ESXi hostname
    :param user: Username
    :param password: Password
    :return: ServiceInstance on success, None on failure
    """
    if password is None:
        password = get_password('VSPHERE')

    port = kwargs.get('port', 443)

    try:
        try:
            si = connect.SmartConnectNoSSL(
                host=host,
                user=user,
                pwd=password,
                port=port
            )
        except AttributeError:
            # pyVmomi 8.0+ uses SmartConnect with disableSslCertValidation
            si = connect.SmartConnect(
                host=host,
                user=user,
                pwd=password,
                port=port,
                disableSslCertValidation=True
            )

        sis.append(si)
        write_output(f'Connected to {host}')
        return si
    except Exception as e:
        write_output(f'Failed to connect to {host}: {e}', level='ERROR')
        return None


def connect_vcenters(entries, **kwargs):
    """
    Connect to multiple vCenters or ESXi hosts from a config list

    :param entries: list of entries in format "hostname:type:user" (type linux = vCenter, esx = host)
    :param kwargs: max_attempts (default 3), interval seconds between attempts (default 10)
    :return: list of hostnames that failed to connect (empty list = all succeeded)
    """
    pwd = kwargs.get('password') or get_password('VSPHERE')
    max_attempts = kwargs.get('max_attempts', 3)
    interval = kwargs.get('interval', 10)
    failed_hosts = []

    for entry in entries:
        if not entry:
            continue
        stripped = entry.strip()
        if not stripped or stripped.startswith('#') or stripped.startswith(';'):
            continue

        vc = stripped.split(':')
        hostname = vc[0].strip()
        vc_type = vc[1].strip() if len(vc) > 1 and vc[1].strip() else 'linux'

        if len(vc) >= 3 and vc[2].strip():
            login_user = vc[2].strip()
        elif vc_type == 'esx':
            login_user = 'root'
        else:
            login_user = vcuser

        write_output(f'Connecting to {hostname}...')

        connected = False
        for attempt in range(1, max_attempts + 1):
            if connect_vc(hostname, login_user, pwd):
                connected = True
                break
            if attempt < max_attempts:
                write_output(f'Retrying {hostname} in {interval}s (attempt {attempt}/{max_attempts})', level='WARN')
                time.sleep(interval)

        if not connected:
            write_output(f'Failed to connect to {hostname} after {max_attempts} attempts', level='ERROR')
            failed_hosts.append(hostname)

    return failed_hosts


def disconnect_vcenters():
    """Disconnect all vCenter sessions"""
    for si in sis:
        try:
            connect.Disconnect(si)
        except Exception as e:
            write_output(f'Disconnect failed: {e}', level='DEBUG')
    sis.clear()


def get_all_objs(si_content, vimtype):
    """
    Method that populates objects of type vimtype such as
    vim.VirtualMachine, vim.HostSystem, vim.Datacenter, vim.Datastore, vim.ClusterComputeResource
    :param si_content: serviceinstance.content
    :param vimtype: VIM object type name (list)
    :return: dict of {object: name}
    """
    obj = {}
    container = si_content.viewManager.CreateContainerView(si_content.rootFolder, vimtype, True)
    for managed_object_ref in container.view:
        obj.update({managed_object_ref: managed_object_ref.name})
    container.Destroy()
    return obj


def _find_by_name(vimtype, name):
    for si in sis:
        objs = get_all_objs(si.content, vimtype)
        for obj, obj_name in objs.items():
            if obj_name == name:
                return obj
    return None


def get_all_vms(si=None):
    """
    Get all VMs from a ServiceInstance (or all connected SIs)
    :param si: Optional specific ServiceInstance
    :return: List of VM objects
    """
    vms = []
    search_list = [si] if si else sis

    for service_instance in search_list:
        vm_objs = get_all_objs(service_instance.content, [vim.VirtualMachine])
        vms.extend(vm_objs.keys())

    return vms


def get_all_hosts():
    """
    Convenience function to retrieve all ESX host systems
    :return: list of vim.HostSystem
    """
    all_hosts = []
    for si in sis:
        hosts = get_all_objs(si.content, [vim.HostSystem])
        all_hosts.extend(hosts.keys())
    return all_hosts


def get_vm_by_name(name):
    """
    Retrieve VMs by name from all sessions
    :param name: string the name of the VM to retrieve
    :return: list of matching VMs
    """
    vmlist = []
    for si in sis:
        vms = get_all_objs(si.content, [vim.VirtualMachine])
        for vm, vm_name in vms.items():
            if vm_name == name:
                vmlist.append(vm)
    return vmlist


def get_cluster(cluster_name):
    """Get a ClusterComputeResource by name from any connected vCenter"""
    return _find_by_name([vim.ClusterComputeResource], cluster_name)


def get_datastore(ds_name):
    """Get a Datastore by name from any connected vCenter"""
    if not sis:
        write_output(f'No vCenter/ESXi connections available to search for datastore {ds_name}', level='WARN')
        return None
    return _find_by_name([vim.Datastore], ds_name)


def get_folder(folder_name):
    """Get a VM Folder by name from any connected vCenter"""
    return _find_by_name([vim.Folder], folder_name)


def get_network(network_name):
    """Get a Network (standard or distributed portgroup) by name"""
    return _find_by_name([vim.Network], network_name)


def get_datacenter_for(entity):
    """Walk up the inventory tree to the owning Datacenter"""
    obj = entity
    while obj is not None and not isinstance(obj, vim.Datacenter):
        obj = getattr(obj, 'parent', None)
    return obj


def get_network_adapter(vm_obj):
    """
    Return a list of network adapters for the VM
    :param vm_obj: the VM to use
    :return: list of VirtualEthernetCard devices
    """
    net_adapters = []
    for dev in vm_obj.config.hardware.device:
        if isinstance(dev, vim.vm.device.VirtualEthernetCard):
            net_adapters.append(dev)
    return net_adapters
