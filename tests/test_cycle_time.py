"""Tests for work item cycle time calculation."""

import pytest
from tl.ado_mcp.cycle_time import (
    cycle_time_days,
    fetch_cycle_times,
    first_activation,
    get_cycle_time_info,
    is_closed_state,
)
from tl.ado_mcp.errors import AdoApiError


def state_update(state, changed_date, revised_date='9999-01-01T00:00:00Z'):
    return {
        'revisedDate': revised_date,
        'fields': {
            'System.State': {'oldValue': 'New', 'newValue': state},
            'System.ChangedDate': {'newValue': changed_date},
        },
    }


UPDATES = {
    'value': [
        {'fields': {'System.Title': {'newValue': 'Created'}}},
        state_update('Active', '2024-03-01T09:00:00Z'),
        state_update('Resolved', '2024-03-04T21:00:00Z'),
        state_update('Active', '2024-03-05T09:00:00Z'),
    ]
}


class TestCycleTimeDays:
    def test_rounds_to_one_decimal(self):
        assert cycle_time_days('2024-03-01T09:00:00Z', '2024-03-04T21:00:00Z') == 3.5

    def test_fractional_seconds(self):
        assert cycle_time_days('2024-03-01T00:00:00.1234567Z', '2024-03-02T00:00:00.12Z') == 1.0

    @pytest.mark.parametrize(
        'activated, closed',
        [(None, '2024-03-01T00:00:00Z'), ('2024-03-01T00:00:00Z', None), ('garbage', '2024-03-01T00:00:00Z')],
    )
    def test_missing_dates(self, activated, closed):
        assert cycle_time_days(activated, closed) is None

    def test_closed_before_activation(self):
        assert cycle_time_days('2024-03-05T00:00:00Z', '2024-03-01T00:00:00Z') is None


class TestFirstActivation:
    def test_first_transition_into_active_state(self):
        assert first_activation(UPDATES['value']) == '2024-03-01T09:00:00.000Z'

    @pytest.mark.parametrize('state', ['Committed', 'In Progress', 'Doing'])
    def test_other_process_templates(self, state):
        assert first_activation([state_update(state, '2024-01-02T03:04:05Z')]) == (
            '2024-01-02T03:04:05.000Z'
        )

    def test_falls_back_to_revised_date(self):
        update = {
            'revisedDate': '2024-02-02T00:00:00Z',
            'fields': {'System.State': {'newValue': 'Active'}},
        }
        assert first_activation([update]) == '2024-02-02T00:00:00.000Z'

    def test_never_activated(self):
        assert first_activation([state_update('Closed', '2024-01-01T00:00:00Z')]) is None


def test_closed_states():
    assert is_closed_state('Done')
    assert is_closed_state('Removed')
    assert not is_closed_state('Active')
    assert not is_closed_state(None)


class TestGetCycleTimeInfo:
    async def test_closed_item(self, fake_client):
        fake_client.respond('GET', '_apis/wit/workItems/7/updates', UPDATES)
        info = await get_cycle_time_info(fake_client, 7, '2024-03-04T21:00:00Z')
        assert info == {'first_activated_date': '2024-03-01T09:00:00.000Z', 'cycle_time_days': 3.5}

    async def test_open_item_has_no_cycle_time(self, fake_client):
        fake_client.respond('GET', '_apis/wit/workItems/7/updates', UPDATES)
        info = await get_cycle_time_info(fake_client, 7)
        assert info == {'first_activated_date': '2024-03-01T09:00:00.000Z'}

    async def test_history_failure_is_not_fatal(self, fake_client):
        fake_client.fail('GET', '_apis/wit/workItems/7/updates', AdoApiError(403, 'Forbidden'))
        assert await get_cycle_time_info(fake_client, 7, '2024-03-04T21:00:00Z') == {}


class TestFetchCycleTimes:
    async def test_batches_all_items(self, fake_client):
        items = []
        for work_item_id in range(1, 24):
            fake_client.respond('GET', f'_apis/wit/workItems/{work_item_id}/updates', UPDATES)
            items.append(
                {'id': work_item_id, 'state': 'Closed', 'closed_date': '2024-03-04T21:00:00Z'}
            )

        results = await fetch_cycle_times(fake_client, items)

        assert sorted(results) == list(range(1, 24))
        assert all(info['cycle_time_days'] == 3.5 for info in results.values())
        assert len(fake_client.calls) == 23

    async def test_closed_date_ignored_for_open_items(self, fake_client):
        fake_client.respond('GET', '_apis/wit/workItems/1/updates', UPDATES)
        results = await fetch_cycle_times(
            fake_client, [{'id': 1, 'state': 'Active', 'closed_date': '2024-03-04T21:00:00Z'}]
        )
        assert results == {1: {'first_activated_date': '2024-03-01T09:00:00.000Z'}}

    async def test_empty(self, fake_client):
        assert await fetch_cycle_times(fake_client, []) == {}
