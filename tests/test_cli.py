import csv
from datetime import timedelta

import pytest
import typer
from typer.testing import CliRunner

from recruit_scheduler import cli
from recruit_scheduler.api import ApiClient
from recruit_scheduler.config import ConfigManager
from recruit_scheduler.utils.dates import from_input_value, to_input_value, to_storage_value, utc_now

from conftest import BASE_URL


runner = CliRunner()


@pytest.fixture(autouse=True)
def wired(monkeypatch, tmp_path, backend):
    monkeypatch.delenv('RECRUIT_SCHEDULER_API_URL', raising=False)
    monkeypatch.delenv('RECRUIT_SCHEDULER_TOKEN', raising=False)

    config = ConfigManager(tmp_path / 'config.yml')
    monkeypatch.setattr(cli, '_load_config', lambda: config)
    monkeypatch.setattr(cli, 'get_api_client', lambda config=None: ApiClient(BASE_URL, token='t', session=backend))
    monkeypatch.setattr(cli, 'session', cli.SessionManager(tmp_path / 'session.json'))
    return config


@pytest.fixture
def launched(monkeypatch):
    urls = []
    monkeypatch.setattr(typer, 'launch', lambda url, *args, **kwargs: urls.append(url))
    return urls


def days(n: int) -> timedelta:
    return timedelta(days=n)


def test_list_shows_upcoming_public_slots(backend) -> None:
    backend.add_slot(utc_now() + days(2), location='Kerckhoff')
    backend.add_slot(utc_now() - days(2), location='Ackerman')

    result = runner.invoke(cli.app, ['slots', 'list'])

    assert result.exit_code == 0
    assert 'Kerckhoff' in result.output
    assert 'Ackerman' not in result.output


def test_list_without_slots_says_so() -> None:
    result = runner.invoke(cli.app, ['slots', 'list'])

    assert result.exit_code == 0
    assert 'No upcoming meeting slots' in result.output


def test_available_reports_open_spots(backend) -> None:
    backend.add_slot(utc_now() + days(2), capacity=3)

    result = runner.invoke(cli.app, ['slots', 'available'])

    assert result.exit_code == 0
    assert '3 of 3 spots available' in result.output


def test_create_defaults_end_to_thirty_minutes(backend) -> None:
    start = to_input_value(utc_now() + days(7))

    result = runner.invoke(cli.app, ['slots', 'create', '--location', 'Room A', '--start', start])

    assert result.exit_code == 0, result.output
    _, _, payload, _, _ = backend.calls_to('POST', '/member/meeting-slots')[0]
    assert payload['capacity'] == 2
    assert payload['endTime'] == to_storage_value(from_input_value(start) + timedelta(minutes=30))


def test_create_rejects_bad_capacity(backend) -> None:
    start = to_input_value(utc_now() + days(7))

    result = runner.invoke(cli.app, ['slots', 'create', '--location', 'Room A', '--start', start, '--capacity', '11'])

    assert result.exit_code == 1
    assert 'Capacity must be between 1 and 10' in result.output
    assert backend.calls == []


def test_edit_with_options_moves_end_with_start(backend) -> None:
    backend.add_slot(utc_now() + days(2))
    new_start = to_input_value(utc_now() + days(3))

    result = runner.invoke(cli.app, ['slots', 'edit', '1', '--start', new_start])

    assert result.exit_code == 0, result.output
    _, _, payload, _, _ = backend.calls_to('PUT', '/member/meeting-slots/1')[0]
    assert payload['endTime'] == to_storage_value(from_input_value(new_start) + timedelta(minutes=30))


def test_signup_offers_account_creation(backend, launched, wired) -> None:
    backend.add_slot(utc_now() + days(2))

    result = runner.invoke(
        cli.app, ['slots', 'signup', '1', '--name', 'Alice Zhang', '--email', 'alice@ucla.edu'], input='y\n'
    )

    assert result.exit_code == 0, result.output
    assert 'Successfully signed up!' in result.output
    assert launched == [wired.get_signup_url()]
    assert len(backend.slots[1]['signups']) == 1


def test_signup_account_prompt_can_be_declined(backend, launched) -> None:
    backend.add_slot(utc_now() + days(2))

    result = runner.invoke(
        cli.app, ['slots', 'signup', '1', '--name', 'Alice Zhang', '--email', 'alice@ucla.edu'], input='n\n'
    )

    assert result.exit_code == 0
    assert launched == []


def test_signup_for_full_slot_fails_without_posting(backend) -> None:
    backend.add_slot(utc_now() + days(2), capacity=1, signups=[
        {'id': 1, 'fullName': 'Alice Zhang', 'email': 'alice@ucla.edu', 'studentId': '', 'attended': False},
    ])

    result = runner.invoke(cli.app, ['slots', 'signup', '1', '--name', 'Bob Nguyen', '--email', 'bob@ucla.edu'])

    assert result.exit_code == 1
    assert 'This meeting slot is full' in result.output
    assert backend.calls_to('POST', r'/meeting-slots/1/signup') == []


def test_delete_can_be_declined(backend) -> None:
    backend.add_slot(utc_now() + days(2))

    result = runner.invoke(cli.app, ['slots', 'delete', '1'], input='n\n')

    assert result.exit_code == 0
    assert 'Delete cancelled' in result.output
    assert 1 in backend.slots


def test_delete_with_yes_skips_prompt(backend) -> None:
    backend.add_slot(utc_now() + days(2))

    result = runner.invoke(cli.app, ['slots', 'delete', '1', '--yes'])

    assert result.exit_code == 0
    assert backend.slots == {}


def test_delete_unknown_slot_fails(backend) -> None:
    result = runner.invoke(cli.app, ['slots', 'delete', '9', '--yes'])

    assert result.exit_code == 1
    assert 'not found' in result.output


def test_attend_marks_signup(backend) -> None:
    backend.add_slot(utc_now() - days(1), signups=[
        {'id': 5, 'fullName': 'Alice Zhang', 'email': 'alice@ucla.edu', 'studentId': '', 'attended': False},
    ])

    result = runner.invoke(cli.app, ['slots', 'attend', '5'])

    assert result.exit_code == 0
    assert backend.slots[1]['signups'][0]['attended'] is True


def test_calendar_prints_google_link(backend) -> None:
    backend.add_slot(utc_now() + days(2))

    result = runner.invoke(cli.app, ['slots', 'calendar', '1'])

    assert result.exit_code == 0
    assert 'https://calendar.google.com/calendar/render?action=TEMPLATE' in result.output


def test_export_writes_roster(backend, tmp_path) -> None:
    backend.add_slot(utc_now() + days(2), signups=[
        {'id': 5, 'fullName': 'Alice Zhang', 'email': 'alice@ucla.edu', 'studentId': '123456789', 'attended': True},
        {'id': 6, 'fullName': 'Bob Nguyen', 'email': 'bob@ucla.edu', 'studentId': '', 'attended': False},
    ])
    output = tmp_path / 'roster.csv'

    result = runner.invoke(cli.app, ['slots', 'export', str(output), '--all'])

    assert result.exit_code == 0, result.output
    with open(output, newline='') as f:
        rows = list(csv.DictReader(f))
    assert [row['full_name'] for row in rows] == ['Alice Zhang', 'Bob Nguyen']
    assert [row['attended'] for row in rows] == ['yes', 'no']
    assert rows[1]['student_id'] == '-'


def test_unreachable_backend_exits_with_error(backend) -> None:
    backend.offline = True

    result = runner.invoke(cli.app, ['slots', 'list'])

    assert result.exit_code == 1
    assert 'Could not reach the server' in result.output


def test_evaluations_flow_reports_partial_failure(backend) -> None:
    show = runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g1,g2'])
    assert show.exit_code == 0, show.output
    assert 'app-1' in show.output

    for app_id in ('app-1', 'app-2', 'app-3'):
        record = runner.invoke(
            cli.app,
            ['evaluations', 'record', 'int-1', app_id, '--decision', 'yes', '--score', 'behavioralLeadership=4'],
        )
        assert record.exit_code == 0, record.output

    backend.failing_applications = {'app-2'}
    result = runner.invoke(cli.app, ['evaluations', 'save-all', 'int-1'])

    assert result.exit_code == 1
    assert 'Failed to save evaluations' in result.output
    assert len(backend.calls_to('POST', '/admin/interviews/int-1/evaluations')) == 3


def test_save_single_evaluation(backend) -> None:
    runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g1'])
    runner.invoke(cli.app, ['evaluations', 'record', 'int-1', 'app-1', '--notes', 'Great'])

    result = runner.invoke(cli.app, ['evaluations', 'save', 'int-1', 'app-1'])

    assert result.exit_code == 0
    assert 'Evaluation saved successfully' in result.output
    _, _, payload, _, _ = backend.calls_to('POST', '/admin/interviews/int-1/evaluations')[0]
    assert payload['notes'] == 'Great'


def test_record_before_show_fails() -> None:
    result = runner.invoke(cli.app, ['evaluations', 'record', 'int-1', 'app-1', '--notes', 'x'])

    assert result.exit_code == 1
    assert 'No evaluations loaded' in result.output


def test_record_rejects_malformed_score() -> None:
    runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g1'])

    result = runner.invoke(cli.app, ['evaluations', 'record', 'int-1', 'app-1', '--score', 'behavioralLeadership'])

    assert result.exit_code == 1
    assert 'category=value' in result.output


def test_record_rejects_application_outside_loaded_groups() -> None:
    runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g1'])

    result = runner.invoke(cli.app, ['evaluations', 'record', 'int-1', 'app-9', '--decision', 'yes'])

    assert result.exit_code == 1
    assert 'app-9' in result.output
    stored = cli.session.get('evaluations:int-1')
    assert all(item['applicationId'] != 'app-9' for item in stored['evaluations'])


def test_show_with_other_groups_requires_refresh(backend) -> None:
    runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g1'])

    result = runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g2'])

    assert result.exit_code == 1
    assert '--refresh' in result.output
    assert len(backend.calls_to('GET', '/admin/interviews/int-1/applications')) == 1

    refreshed = runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g2', '--refresh'])

    assert refreshed.exit_code == 0, refreshed.output
    _, _, _, params, _ = backend.calls_to('GET', '/admin/interviews/int-1/applications')[-1]
    assert params == {'groupIds': 'g2'}


def test_show_with_same_groups_reuses_loaded_evaluations(backend) -> None:
    runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g1,g2'])

    result = runner.invoke(cli.app, ['evaluations', 'show', 'int-1', '--groups', 'g2,g1'])

    assert result.exit_code == 0, result.output
    assert len(backend.calls_to('GET', '/admin/interviews/int-1/applications')) == 1


def test_version() -> None:
    result = runner.invoke(cli.app, ['--version'])

    assert result.exit_code == 0
    assert 'Recruit Scheduler CLI v0.1.0' in result.output
