#!/usr/bin/env python3
# test_backup_verify.py - OpsReports Backup Verification Unit Tests
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team

import pytest
import os
import sys
import datetime
from unittest.mock import MagicMock, patch

import requests

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from Reports import backup_verify


def hours_ago(hours):
    """Aware ISO timestamp as returned by the REST APIs"""
    return (datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=hours)).isoformat()


def json_response(data):
    response = MagicMock()
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def http_session():
    """Patch requests.Session; yields the session object used inside 'with'"""
    with patch('requests.Session') as session_class:
        session = MagicMock()
        session.headers = {}
        session_class.return_value.__enter__.return_value = session
        yield session


class TestEvaluation:
    """Test job evaluation rules"""

    NOW = datetime.datetime(2026, 10, 17, 8, 0)

    def record(self, result='Success', last_run_hours=2, last_success_hours=2, enabled=True):
        def when(hours):
            return None if hours is None else self.NOW - datetime.timedelta(hours=hours)
        return backup_verify.job_record('job', 'Backup', 'csv', result, when(last_run_hours),
                                        when(last_success_hours), enabled=enabled)

    @pytest.mark.parametrize('value,expected', [
        ('Success', 'Success'), ('succeeded', 'Success'), ('ok', 'Success'),
        ('Warning', 'Warning'), ('Cancelled', 'Warning'),
        ('Failed', 'Failed'), ('error', 'Failed'),
        ('', 'None'), (None, 'None'), ('Running', 'None'),
    ])
    def test_normalize_result(self, value, expected):
        assert backup_verify.normalize_result(value) == expected

    def test_pass(self):
        record = self.record()
        assert backup_verify.evaluate_job(record, 24, self.NOW) == ('PASS', 'Last success 2.0h ago')
        assert record['age_hours'] == 2.0

    def test_disabled_first(self):
        record = self.record(result='Failed', enabled=False)
        assert backup_verify.evaluate_job(record, 24, self.NOW)[0] == 'INFO'

    def test_failed(self):
        assert backup_verify.evaluate_job(self.record(result='Failed'), 24, self.NOW)[0] == 'FAIL'

    def test_never_run(self):
        record = self.record(result=None, last_run_hours=None, last_success_hours=None)
        assert backup_verify.evaluate_job(record, 24, self.NOW) == ('WARN', 'Job has never run')

    def test_no_success(self):
        record = self.record(result='Running', last_success_hours=None)
        assert backup_verify.evaluate_job(record, 24, self.NOW) == ('FAIL', 'No successful run recorded')

    def test_stale_beats_warning(self):
        record = self.record(result='Warning', last_run_hours=30, last_success_hours=30)
        status, message = backup_verify.evaluate_job(record, 24, self.NOW)
        assert status == 'FAIL'
        assert 'exceeds RPO of 24h' in message

    def test_warning(self):
        assert backup_verify.evaluate_job(self.record(result='Warning'), 24, self.NOW)[0] == 'WARN'

    def test_success_rate_excludes_disabled(self):
        rows = [{'status': 'PASS'}, {'status': 'FAIL'}, {'status': 'INFO'}, {'status': 'PASS'}]
        assert backup_verify.success_rate(rows) == 66.7
        assert backup_verify.success_rate([{'status': 'INFO'}]) == 0.0


class TestCsvSource:
    """Test CSV job import"""

    def test_load(self, backup_csv):
        records = {r['job']: r for r in backup_verify.load_jobs_csv(backup_csv)}
        assert len(records) == 5
        assert records['Old Job']['enabled'] is False
        assert records['Archive']['last_run'] is None
        assert records['File Server']['last_result'] == 'Failed'
        assert isinstance(records['SQL Daily']['last_success'], datetime.datetime)

    def test_last_success_defaults_to_successful_last_run(self, temp_dir):
        path = os.path.join(temp_dir, 'jobs.csv')
        with open(path, 'w', newline='') as f:
            f.write('Job,Type,Last_Result,Last_Run\n')
            f.write('Nightly,Backup,Success,2026-10-17 01:00:00\n')
            f.write('Weekly,Backup,Failed,2026-10-17 01:00:00\n')
        nightly, weekly = backup_verify.load_jobs_csv(path)
        assert nightly['last_success'] == datetime.datetime(2026, 10, 17, 1, 0)
        assert weekly['last_success'] is None


class TestVeeam:
    """Test the Veeam Backup & Replication REST client"""

    def test_paged_job_states(self, http_session, mock_opf):
        http_session.post.return_value = json_response({'access_token': 'veeam-token'})
        http_session.get.side_effect = [
            json_response({'data': [
                {'name': 'SQL Daily', 'type': 'Backup', 'lastResult': 'Success', 'lastRun': hours_ago(3),
                 'objectsCount': 4, 'repositoryName': 'Repo-01', 'status': 'Inactive'},
                {'name': 'File Server', 'type': 'Backup', 'lastResult': 'Failed', 'lastRun': hours_ago(1),
                 'objectsCount': 1, 'repositoryName': 'Repo-01', 'status': 'Inactive'},
            ], 'pagination': {'total': 3, 'count': 2, 'skip': 0, 'limit': 2}}),
            json_response({'data': [
                {'name': 'Legacy', 'type': 'Backup', 'lastResult': 'None', 'lastRun': None,
                 'status': 'Disabled'},
            ], 'pagination': {'total': 3, 'count': 1, 'skip': 2, 'limit': 2}}),
        ]

        records = backup_verify.collect_veeam(mock_opf, 'vbr-01', 9419, 'svc-backup', 'pw', '1.1-rev1')

        assert [r['job'] for r in records] == ['SQL Daily', 'File Server', 'Legacy']
        assert http_session.headers['x-api-version'] == '1.1-rev1'
        assert http_session.headers['Authorization'] == 'Bearer veeam-token'
        assert http_session.verify is False
        skips = [c.kwargs['params']['skip'] for c in http_session.get.call_args_list]
        assert skips == [0, 2]
        assert http_session.post.call_args.args[0] == 'https://vbr-01:9419/api/oauth2/token'

        by_name = {r['job']: r for r in records}
        assert by_name['SQL Daily']['last_success'] is not None
        assert by_name['SQL Daily']['objects'] == 4
        assert by_name['File Server']['last_success'] is None
        assert by_name['Legacy']['enabled'] is False

    def test_main_veeam(self, http_session, mock_opf):
        http_session.post.return_value = json_response({'access_token': 't'})
        http_session.get.return_value = json_response({'data': [
            {'name': 'SQL Daily', 'type': 'Backup', 'lastResult': 'Success', 'lastRun': hours_ago(3),
             'status': 'Inactive'},
        ], 'pagination': {'total': 1}})

        report = backup_verify.main(mock_opf, source='veeam', server='vbr-01')

        assert report.rows[0]['status'] == 'PASS'
        assert 'enabled' not in report.rows[0]
        assert report.score == 100.0
        assert report.checks[-1].name == 'Backup jobs'
        assert report.overall_status == 'PASS'

    def test_connection_error(self, http_session, mock_opf):
        http_session.post.side_effect = requests.exceptions.ConnectionError('connection refused')
        report = backup_verify.main(mock_opf, source='veeam', server='vbr-01')
        assert 'connection refused' in report.errors[0]
        assert report.overall_status == 'FAIL'


class TestAcronis:
    """Test the Acronis activity reduction"""

    def activity(self, resource, code, hours, plan='Daily', kind='backup'):
        return {
            'type': kind,
            'policy': {'name': plan},
            'resource': {'name': resource},
            'completedAt': hours_ago(hours),
            'result': {'code': code},
            'context': {'archive_name': f'{resource}-archive'},
        }

    def test_latest_activities(self):
        records = backup_verify.latest_activities([
            self.activity('fs-01', 'ok', 30),
            self.activity('fs-01', 'error', 2),
            self.activity('db-01', 'ok', 3),
            self.activity('db-01', 'ok', 1, kind='recovery'),
        ])
        by_name = {r['job']: r for r in records}
        assert set(by_name) == {'Daily / fs-01', 'Daily / db-01'}
        fs = by_name['Daily / fs-01']
        assert fs['last_result'] == 'Failed'
        assert fs['last_success'] < fs['last_run']
        assert fs['repository'] == 'fs-01-archive'
        assert by_name['Daily / db-01']['last_result'] == 'Success'

    def test_collect(self, http_session, mock_opf):
        http_session.post.return_value = json_response({'access_token': 'acronis-token'})
        http_session.get.return_value = json_response({'items': [self.activity('fs-01', 'ok', 2)]})

        records = backup_verify.collect_acronis(mock_opf, 'https://eu-cloud.acronis.com/', 'client', 'secret')

        assert http_session.post.call_args.kwargs['auth'] == ('client', 'secret')
        assert http_session.get.call_args.args[0] == 'https://eu-cloud.acronis.com/api/task_manager/v2/activities'
        assert http_session.headers['Authorization'] == 'Bearer acronis-token'
        assert records[0]['source'] == 'acronis'


class TestMain:
    """Test main() over the CSV source"""

    def test_csv_jobs(self, mock_opf, backup_csv):
        report = backup_verify.main(mock_opf, source='csv', csv=backup_csv)

        assert [(r['job'], r['status']) for r in report.rows] == [
            ('Exchange', 'FAIL'),
            ('File Server', 'FAIL'),
            ('Archive', 'WARN'),
            ('Old Job', 'INFO'),
            ('SQL Daily', 'PASS'),
        ]
        assert report.score == 25.0
        assert report.summary['Disabled'] == 1
        assert {c.name for c in report.checks} == {'File Server', 'Exchange', 'Archive'}
        assert report.overall_status == 'FAIL'

    def test_custom_rpo(self, mock_opf, backup_csv):
        report = backup_verify.main(mock_opf, source='csv', csv=backup_csv, rpo_hours=72)
        statuses = {r['job']: r['status'] for r in report.rows}
        assert statuses['Exchange'] == 'PASS'

    def test_unknown_source(self, mock_opf):
        report = backup_verify.main(mock_opf, source='tsm')
        assert report.errors

    def test_missing_server(self, mock_opf):
        report = backup_verify.main(mock_opf, source='acronis')
        assert 'AcronisUrl' in report.errors[0]

    def test_dry_run(self, mock_opf, backup_csv, http_session):
        report = backup_verify.main(mock_opf, dry_run=True, source='veeam', server='vbr-01')
        http_session.post.assert_not_called()
        assert report.rows == []

    def test_no_jobs_warns(self, mock_opf, temp_dir):
        path = os.path.join(temp_dir, 'empty.csv')
        with open(path, 'w') as f:
            f.write('job,type,last_result,last_run,last_success\n')
        report = backup_verify.main(mock_opf, source='csv', csv=path)
        assert report.checks[0].status == 'WARN'


class TestCli:
    """Test CLI validation"""

    def test_missing_csv(self):
        with pytest.raises(SystemExit) as exc:
            backup_verify.cli(['--csv', '/nonexistent/jobs.csv'])
        assert exc.value.code == 2
