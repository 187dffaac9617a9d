"""
Unit tests for the registry API client and retry wrapper.
"""
import json
from unittest.mock import Mock, patch

import httpx
import pytest

from registrations.services.errors import RegistryError
from registrations.services.registry_client import RegistryClient, call_with_retry

BASE_URL = 'https://registry.test/v2'


def make_client(handler, sleep=None):
    """RegistryClient backed by httpx.MockTransport."""
    http = httpx.Client(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return RegistryClient(api_key='test-key', base_url=BASE_URL, client=http, sleep=sleep or Mock())


class TestRegistryClientRequests:
    """Tests for request shape and response handling."""

    def test_submit_brand_posts_json_with_bearer_token(self):
        seen = {}

        def handler(request):
            seen['method'] = request.method
            seen['url'] = str(request.url)
            seen['auth'] = request.headers['Authorization']
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={'brandId': 'B1', 'tcrBrandId': 'TCR1'})

        client = make_client(handler)
        result = client.submit_brand({'displayName': 'Grace Chapel'})

        assert result == {'brandId': 'B1', 'tcrBrandId': 'TCR1'}
        assert seen['method'] == 'POST'
        assert seen['url'] == f'{BASE_URL}/10dlc/brand'
        assert seen['auth'] == 'Bearer test-key'
        assert seen['body'] == {'displayName': 'Grace Chapel'}

    def test_submit_campaign_uses_campaign_builder(self):
        seen = {}

        def handler(request):
            seen['path'] = request.url.path
            return httpx.Response(200, json={'campaignId': 'C1'})

        result = make_client(handler).submit_campaign({'brandId': 'B1'})

        assert result['campaignId'] == 'C1'
        assert seen['path'] == '/v2/10dlc/campaignBuilder'

    def test_get_brand_status(self):
        def handler(request):
            assert request.method == 'GET'
            assert request.url.path == '/v2/10dlc/brand/B1'
            return httpx.Response(200, json={'status': 'OK', 'identityStatus': 'VERIFIED'})

        result = make_client(handler).get_brand_status('B1')

        assert result['identityStatus'] == 'VERIFIED'

    def test_get_campaign_status(self):
        def handler(request):
            assert request.url.path == '/v2/10dlc/campaign/C1'
            return httpx.Response(200, json={'campaignStatus': 'MNO_PENDING'})

        assert make_client(handler).get_campaign_status('C1') == {'campaignStatus': 'MNO_PENDING'}

    def test_data_envelope_is_unwrapped(self):
        def handler(request):
            return httpx.Response(200, json={'data': {'brandId': 'B2'}})

        assert make_client(handler).submit_brand({})['brandId'] == 'B2'

    def test_error_body_is_parsed(self):
        def handler(request):
            return httpx.Response(
                400,
                json={'errors': [{'code': '10002', 'title': 'Invalid', 'detail': 'Bad phone'}]},
            )

        with pytest.raises(RegistryError) as exc_info:
            make_client(handler).submit_brand({})

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == '10002'
        assert exc_info.value.detail == 'Bad phone'
        assert exc_info.value.retryable is False


class TestRetry:
    """Tests for bounded retry with backoff."""

    @patch('registrations.services.registry_client.random.uniform', return_value=0.5)
    def test_503_attempted_exactly_three_times(self, mock_uniform):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={})

        sleep = Mock()
        client = make_client(handler, sleep=sleep)

        with pytest.raises(RegistryError) as exc_info:
            client.submit_brand({})

        assert len(calls) == 3
        assert exc_info.value.status_code == 503
        # Two waits between three attempts, increasing
        delays = [c.args[0] for c in sleep.call_args_list]
        assert delays == [1.5, 2.5]

    def test_429_is_retried_then_succeeds(self):
        responses = [
            httpx.Response(429, json={}),
            httpx.Response(200, json={'brandId': 'B1'}),
        ]

        def handler(request):
            return responses.pop(0)

        sleep = Mock()
        result = make_client(handler, sleep=sleep).submit_brand({})

        assert result['brandId'] == 'B1'
        assert sleep.call_count == 1

    def test_422_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, json={})

        sleep = Mock()
        with pytest.raises(RegistryError):
            make_client(handler, sleep=sleep).submit_brand({})

        assert len(calls) == 1
        sleep.assert_not_called()

    def test_transport_error_is_retried_and_wrapped(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError('Connection refused', request=request)

        with pytest.raises(RegistryError) as exc_info:
            make_client(handler).get_brand_status('B1')

        assert len(calls) == 3
        assert exc_info.value.status_code is None
        assert exc_info.value.retryable is True

    def test_timeout_is_retried(self):
        responses = []

        def handler(request):
            if not responses:
                responses.append('timed out')
                raise httpx.ReadTimeout('Request timeout', request=request)
            return httpx.Response(200, json={'status': 'OK'})

        assert make_client(handler).get_brand_status('B1') == {'status': 'OK'}

    def test_call_with_retry_respects_max_attempts(self):
        operation = Mock(side_effect=RegistryError('boom', status_code=500))
        sleep = Mock()

        with pytest.raises(RegistryError):
            call_with_retry(operation, max_attempts=2, base_delay=0, sleep=sleep)

        assert operation.call_count == 2
        assert sleep.call_count == 1

    def test_call_with_retry_returns_first_success(self):
        operation = Mock(return_value={'ok': True})

        assert call_with_retry(operation, sleep=Mock()) == {'ok': True}
        operation.assert_called_once()
