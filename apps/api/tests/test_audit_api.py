"""
Audit API: the ledger is readable and filterable, never writable.
"""
import pytest

from apps.audit.ledger import AuditLedger
from apps.audit.models import AuditActionChoices

URL = '/api/v1/audit/entries/'


@pytest.fixture
def entries(operator):
    ledger = AuditLedger()
    return [
        ledger.append(AuditActionChoices.EPISODE_OPENED, operator=operator,
                      target_table='clinical_episode', target_id='ep-1'),
        ledger.append(AuditActionChoices.EPISODE_CLOSED, operator=operator,
                      target_table='clinical_episode', target_id='ep-1'),
        ledger.append(AuditActionChoices.STOCK_UPDATE, operator=operator,
                      target_table='inventory_lots', target_id='lot-1'),
    ]


@pytest.mark.django_db
class TestAuditAPI:

    def test_list_in_append_order(self, nurse_client, entries):
        response = nurse_client.get(URL)

        assert response.status_code == 200
        assert [e['id'] for e in response.data] == [e.pk for e in entries]

    def test_filter_by_target(self, nurse_client, entries):
        response = nurse_client.get(URL, {'target_table': 'clinical_episode', 'target_id': 'ep-1'})

        assert [e['action_kind'] for e in response.data] == ['EPISODE_OPENED', 'EPISODE_CLOSED']

    def test_filter_by_action(self, nurse_client, entries):
        response = nurse_client.get(URL, {'action_kind': 'STOCK_UPDATE'})

        assert len(response.data) == 1
        assert response.data[0]['target_id'] == 'lot-1'

    def test_read_only(self, nurse_client, entries):
        assert nurse_client.post(URL, {'action_kind': 'RECORD_VIEW'}, format='json').status_code == 405
        assert nurse_client.delete(f'{URL}{entries[0].pk}/').status_code == 405
        assert nurse_client.patch(f'{URL}{entries[0].pk}/', {'actor_name': 'x'}, format='json').status_code == 405

    def test_requires_authentication(self, api_client):
        assert api_client.get(URL).status_code == 401
