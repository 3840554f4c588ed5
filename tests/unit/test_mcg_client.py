"""
Unit tests for the MCG API client (HTTP mocked).
"""

import pytest
from unittest.mock import patch, MagicMock
from backoffice.exceptions import McgApiError
from backoffice.services.mcg_client import McgClient, build_items_list_body, is_uplicali


def _response(status=200, json_data=None):
    response = MagicMock()
    response.status_code = status
    response.content = b'{}'
    response.json.return_value = json_data if json_data is not None else {}
    response.text = ''
    if status >= 400:
        import requests
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    return response


@pytest.fixture
def client(app):
    return McgClient.from_config(app.config)


class TestHelpers:
    """Tests for request body normalization and flavor detection."""

    def test_body_keeps_known_filter_keys(self):
        body = build_items_list_body(2, 50, {'Barcode': '7', 'Color': 'red'})
        assert body == {'PageNumber': 2, 'PageSize': 50, 'Filter': {'Barcode': '7'}}

    def test_body_drops_invalid_paging(self):
        assert build_items_list_body(0, 'abc', None) == {}

    @pytest.mark.parametrize('flavor, url, expected', [
        ('uplicali', 'https://x.test', True),
        ('legacy', 'https://apis.uplicali.com/v1', True),
        ('legacy', 'https://host/SuperMCG/MCG_API', True),
        ('legacy', 'https://api.mcgateway.com', False),
    ])
    def test_flavor_detection(self, flavor, url, expected):
        assert is_uplicali(flavor, url) is expected


class TestGetItemsList:
    """Tests for authenticated item list calls."""

    def test_fetches_token_then_posts(self, client):
        token = _response(json_data={'access_token': 'tok', 'expires_in': 3600})
        items = _response(json_data={'Items': [{'ItemID': '1'}], 'TotalCount': 1})

        with patch('backoffice.services.mcg_client.requests.post', side_effect=[token, items]) as post:
            data = client.get_items_list(1, 200)

        assert data['TotalCount'] == 1
        token_call, items_call = post.call_args_list
        assert token_call.args[0] == 'https://mcg.test/oauth2/access_token'
        assert token_call.kwargs['data']['grant_type'] == 'client_credentials'
        assert items_call.args[0] == 'https://mcg.test/api/v2.6/get_items_list'
        assert items_call.kwargs['json'] == {'PageNumber': 1, 'PageSize': 200}
        assert items_call.kwargs['headers']['Authorization'] == 'Bearer tok'

    def test_token_is_cached(self, client):
        token = _response(json_data={'access_token': 'tok', 'expires_in': 3600})
        items = _response(json_data={'Items': []})

        with patch('backoffice.services.mcg_client.requests.post', side_effect=[token, items, items]) as post:
            client.get_items_list(1, 10)
            client.get_items_list(2, 10)

        assert post.call_count == 3

    def test_retries_once_on_401(self, client):
        first_token = _response(json_data={'access_token': 'old', 'expires_in': 3600})
        unauthorized = _response(status=401)
        unauthorized.raise_for_status.side_effect = None
        second_token = _response(json_data={'access_token': 'new', 'expires_in': 3600})
        items = _response(json_data={'Items': [{'ItemID': '9'}]})

        with patch('backoffice.services.mcg_client.requests.post',
                   side_effect=[first_token, unauthorized, second_token, items]) as post:
            data = client.get_items_list(1, 10)

        assert data['Items'][0]['ItemID'] == '9'
        assert post.call_args_list[-1].kwargs['headers']['Authorization'] == 'Bearer new'

    def test_upstream_error_raises(self, client):
        token = _response(json_data={'access_token': 'tok', 'expires_in': 3600})
        failure = _response(status=500, json_data={'Message': 'boom'})
        failure.raise_for_status.side_effect = None

        with patch('backoffice.services.mcg_client.requests.post', side_effect=[token, failure]):
            with pytest.raises(McgApiError) as excinfo:
                client.get_items_list(1, 10)

        assert excinfo.value.upstream_status == 500
        assert 'boom' in excinfo.value.message

    def test_missing_credentials(self, app):
        client = McgClient(base_url='https://mcg.test', client_id='', client_secret='')
        with pytest.raises(McgApiError) as excinfo:
            client.get_items_list(1, 10)
        assert excinfo.value.status_code == 412


class TestDeleteItems:
    """Tests for upstream deletion."""

    def test_sends_identifiers_and_group(self, client):
        token = _response(json_data={'access_token': 'tok', 'expires_in': 3600})
        ok = _response(json_data={'ok': True})

        with patch('backoffice.services.mcg_client.requests.post', side_effect=[token, ok]) as post:
            client.delete_items([{'item_id': 'A'}, {'item_code': '729'}], group=3)

        call = post.call_args_list[-1]
        assert call.args[0] == 'https://mcg.test/api/v2.6/delete_items'
        assert call.kwargs['json'] == {'items': [{'item_id': 'A'}, {'item_code': '729'}], 'group': 3}
