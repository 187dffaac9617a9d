"""
Unit tests for Celery tasks.
"""
from datetime import timedelta
from unittest.mock import Mock, patch

import httpx
import pytest
from django.db import DatabaseError
from django.utils import timezone

from registrations.models import RegistrationRecord, WebhookEvent
from registrations.services.errors import SERVER_ERROR_MESSAGE, RegistryError
from registrations.services.registry_client import RegistryClient
from registrations.tasks import (
    process_webhook_event,
    register_brand,
    register_campaign,
    requeue_stale_webhook_events,
    start_registration,
)

Status = RegistrationRecord.Status


def registry_mock(mock_cls):
    """The client object yielded by ``with RegistryClient() as client``."""
    return mock_cls.return_value.__enter__.return_value


@pytest.mark.django_db
class TestRegisterBrand:
    """Tests for the brand registration workflow."""

    @patch('registrations.tasks.RegistryClient')
    def test_successful_submission(self, mock_cls, valid_profile, settings):
        """Scenario A: accepted brand leaves the record pending with its brand id."""
        client = registry_mock(mock_cls)
        client.submit_brand.return_value = {'brandId': 'B1', 'tcrBrandId': 'BX1'}

        status = register_brand('tenant-1', valid_profile, '+15125550100')

        record = RegistrationRecord.objects.get(tenant_id='tenant-1')
        assert status == Status.PENDING
        assert record.status == Status.PENDING
        assert record.brand_id == 'B1'
        assert record.tcr_brand_id == 'BX1'
        assert record.organization_name == 'Grace Chapel'
        assert record.phone_number == '+15125550100'
        assert record.rejection_reason is None
        assert abs((timezone.now() - record.registered_at).total_seconds()) < 5
        expected_check = timezone.now() + timedelta(minutes=settings.FIRST_CHECK_DELAY_MINUTES)
        assert abs((expected_check - record.next_check_at).total_seconds()) < 5

        brand_request = client.submit_brand.call_args.args[0]
        assert brand_request['displayName'] == 'Grace Chapel'
        assert brand_request['email'] == 'pastor@grace.org'
        assert brand_request['entityType'] == 'NON_PROFIT'

    @patch('registrations.tasks.RegistryClient')
    def test_validation_failure_makes_no_registry_call(self, mock_cls):
        status = register_brand('tenant-1', {'name': 'Grace Chapel', 'email': 'not-an-email'})

        record = RegistrationRecord.objects.get(tenant_id='tenant-1')
        assert status == Status.REJECTED
        assert record.rejection_reason == 'Validation error: Email format is invalid'
        assert record.brand_id is None
        mock_cls.assert_not_called()

    def test_server_errors_exhaust_retries_and_reject(self, valid_profile):
        """Three 503s surface as a rejection with the server-error text."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={})

        http = httpx.Client(transport=httpx.MockTransport(handler), base_url='https://registry.test/v2')
        sleep = Mock()
        client = RegistryClient(api_key='k', base_url='https://registry.test/v2', client=http, sleep=sleep)

        with patch('registrations.tasks.RegistryClient', return_value=client):
            status = register_brand('tenant-1', valid_profile)

        record = RegistrationRecord.objects.get(tenant_id='tenant-1')
        assert len(calls) == 3
        assert sleep.call_count == 2
        assert status == Status.REJECTED
        assert record.rejection_reason == SERVER_ERROR_MESSAGE
        assert record.brand_id is None

    @patch('registrations.tasks.RegistryClient')
    def test_registry_code_translated(self, mock_cls, valid_profile):
        registry_mock(mock_cls).submit_brand.side_effect = RegistryError(
            'Registry returned 400', status_code=400, error_code='10019'
        )

        register_brand('tenant-1', valid_profile)

        record = RegistrationRecord.objects.get(tenant_id='tenant-1')
        assert record.status == Status.REJECTED
        assert record.rejection_reason == 'Invalid email address'

    @patch('registrations.tasks.RegistryClient')
    def test_missing_brand_id_rejects(self, mock_cls, valid_profile):
        registry_mock(mock_cls).submit_brand.return_value = {'status': 'OK'}

        register_brand('tenant-1', valid_profile)

        record = RegistrationRecord.objects.get(tenant_id='tenant-1')
        assert record.status == Status.REJECTED
        assert record.rejection_reason == 'No brand ID returned from registry'

    @patch('registrations.tasks.RegistryClient')
    def test_existing_brand_is_not_resubmitted(self, mock_cls, make_record, valid_profile):
        make_record(tenant_id='tenant-1', status=Status.PENDING, brand_id='B1')

        status = register_brand('tenant-1', valid_profile)

        assert status == Status.PENDING
        mock_cls.assert_not_called()

    @patch('registrations.tasks.RegistryClient')
    def test_rejected_tenant_can_retry(self, mock_cls, make_record, valid_profile):
        make_record(tenant_id='tenant-1', status=Status.REJECTED, rejection_reason='Validation error: Email is required')
        registry_mock(mock_cls).submit_brand.return_value = {'brandId': 'B1'}

        register_brand('tenant-1', valid_profile)

        record = RegistrationRecord.objects.get(tenant_id='tenant-1')
        assert record.status == Status.PENDING
        assert record.rejection_reason is None

    @patch('registrations.tasks.register_brand')
    def test_start_registration_queues_brand_task(self, mock_task, valid_profile):
        start_registration('tenant-1', valid_profile, '+15125550100')
        mock_task.delay.assert_called_once_with('tenant-1', valid_profile, '+15125550100')


@pytest.mark.django_db
class TestRegisterCampaign:
    """Tests for the campaign registration workflow."""

    @patch('registrations.tasks.RegistryClient')
    def test_successful_submission(self, mock_cls, make_record):
        record = make_record(tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1')
        client = registry_mock(mock_cls)
        client.submit_campaign.return_value = {'campaignId': 'C1'}

        status = register_campaign('tenant-1')

        record.refresh_from_db()
        assert status == Status.CAMPAIGN_PENDING
        assert record.campaign_id == 'C1'
        assert record.campaign_status == 'submitted'
        assert record.next_check_at > timezone.now()
        request = client.submit_campaign.call_args.args[0]
        assert request['brandId'] == 'B1'
        assert request['usecase'] == 'NOTIFICATIONS'
        assert request['description'] == 'Grace Chapel Notification Campaign'

    @patch('registrations.tasks.RegistryClient')
    def test_repeated_trigger_submits_once(self, mock_cls, make_record):
        make_record(tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1')
        client = registry_mock(mock_cls)
        client.submit_campaign.return_value = {'campaignId': 'C1'}

        register_campaign('tenant-1')
        assert register_campaign('tenant-1') is None

        assert client.submit_campaign.call_count == 1

    @patch('registrations.tasks.RegistryClient')
    def test_in_flight_claim_blocks_second_worker(self, mock_cls, make_record):
        make_record(
            tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1', campaign_status='submitting'
        )

        assert register_campaign('tenant-1') is None
        mock_cls.assert_not_called()

    @patch('registrations.tasks.RegistryClient')
    def test_expired_claim_is_taken_over(self, mock_cls, make_record, settings):
        record = make_record(
            tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1', campaign_status='submitting'
        )
        RegistrationRecord.objects.filter(pk=record.pk).update(
            updated_at=timezone.now() - timedelta(minutes=settings.CAMPAIGN_CLAIM_TIMEOUT_MINUTES + 1)
        )
        client = registry_mock(mock_cls)
        client.submit_campaign.return_value = {'campaignId': 'C1'}

        assert register_campaign('tenant-1') == Status.CAMPAIGN_PENDING
        assert register_campaign('tenant-1') is None

        record.refresh_from_db()
        assert record.campaign_id == 'C1'
        assert client.submit_campaign.call_count == 1

    @patch('registrations.tasks.RegistryClient')
    def test_registry_failure_rejects_and_releases_claim(self, mock_cls, make_record):
        record = make_record(tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1')
        registry_mock(mock_cls).submit_campaign.side_effect = RegistryError(
            'Registry returned 422', status_code=422
        )

        register_campaign('tenant-1')

        record.refresh_from_db()
        assert record.status == Status.REJECTED
        assert record.rejection_reason == 'Request validation failed - check all required fields'
        assert record.campaign_status is None

    @patch('registrations.tasks.RegistryClient')
    def test_unexpected_error_releases_claim(self, mock_cls, make_record):
        record = make_record(tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1')
        registry_mock(mock_cls).submit_campaign.side_effect = RuntimeError('boom')

        with pytest.raises(RuntimeError):
            register_campaign('tenant-1')

        record.refresh_from_db()
        assert record.status == Status.BRAND_VERIFIED
        assert record.campaign_status is None

    @patch('registrations.tasks.RegistryClient')
    def test_missing_campaign_id_rejects(self, mock_cls, make_record):
        record = make_record(tenant_id='tenant-1', status=Status.BRAND_VERIFIED, brand_id='B1')
        registry_mock(mock_cls).submit_campaign.return_value = {}

        register_campaign('tenant-1')

        record.refresh_from_db()
        assert record.status == Status.REJECTED
        assert record.rejection_reason == 'No campaign ID returned from registry'

    @patch('registrations.tasks.RegistryClient')
    def test_without_brand_id_does_nothing(self, mock_cls, make_record):
        make_record(tenant_id='tenant-1', status=Status.BRAND_VERIFIED)

        assert register_campaign('tenant-1') is None
        assert register_campaign('no-such-tenant') is None
        mock_cls.assert_not_called()


@pytest.mark.django_db
class TestProcessWebhookEvent:
    """Tests for stored webhook event processing."""

    def make_event(self, payload, kind=WebhookEvent.Kind.BRAND_UPDATE, status=WebhookEvent.Status.RECEIVED):
        return WebhookEvent.objects.create(
            dedup_key=f"id:{WebhookEvent.objects.count() + 1}",
            kind=kind,
            event_type=payload.get('eventType') or payload.get('type'),
            raw_payload=payload,
            status=status,
        )

    def test_event_processed(self, make_record):
        record = make_record(status=Status.NONE, brand_id='B1')
        event = self.make_event({'type': 'TCR_BRAND_UPDATE', 'eventType': 'BRAND_ADD', 'brandId': 'B1'})

        process_webhook_event(event.id)

        event.refresh_from_db()
        record.refresh_from_db()
        assert event.status == WebhookEvent.Status.PROCESSED
        assert event.attempts == 1
        assert event.processed_at is not None
        assert record.status == Status.PENDING

    def test_unknown_event_ignored(self):
        event = self.make_event({'type': 'SOMETHING_NEW'}, kind=WebhookEvent.Kind.UNKNOWN)

        process_webhook_event(event.id)

        event.refresh_from_db()
        assert event.status == WebhookEvent.Status.IGNORED

    @patch('registrations.tasks.route_event')
    def test_already_processed_skipped(self, mock_route):
        event = self.make_event(
            {'eventType': 'BRAND_ADD', 'brandId': 'B1'}, status=WebhookEvent.Status.PROCESSED
        )

        process_webhook_event(event.id)

        mock_route.assert_not_called()
        event.refresh_from_db()
        assert event.attempts == 0

    @patch('registrations.tasks.route_event', side_effect=ValueError('handler blew up'))
    def test_handler_failure_marks_failed(self, mock_route):
        event = self.make_event({'eventType': 'BRAND_ADD', 'brandId': 'B1'})

        with pytest.raises(ValueError):
            process_webhook_event(event.id)

        event.refresh_from_db()
        assert event.status == WebhookEvent.Status.FAILED
        assert event.error_message == 'handler blew up'

    @patch('registrations.tasks.route_event', side_effect=DatabaseError('connection lost'))
    def test_database_error_left_for_retry(self, mock_route):
        event = self.make_event({'eventType': 'BRAND_ADD', 'brandId': 'B1'})

        with pytest.raises(DatabaseError):
            process_webhook_event(event.id)

        event.refresh_from_db()
        assert event.status == WebhookEvent.Status.RECEIVED

    @patch('registrations.tasks.route_event', side_effect=DatabaseError('connection lost'))
    def test_database_error_after_last_retry_marks_failed(self, mock_route):
        event = self.make_event({'eventType': 'BRAND_ADD', 'brandId': 'B1'})

        with patch.object(process_webhook_event, 'max_retries', 0):
            with pytest.raises(DatabaseError):
                process_webhook_event(event.id)

        event.refresh_from_db()
        assert event.status == WebhookEvent.Status.FAILED
        assert 'Max retries exhausted' in event.error_message

    def test_missing_event_raises(self):
        with pytest.raises(WebhookEvent.DoesNotExist):
            process_webhook_event(999999)


@pytest.mark.django_db
class TestRequeueStaleWebhookEvents:
    """Tests for the stale event sweep."""

    @patch('registrations.tasks.process_webhook_event')
    def test_only_old_received_events_requeued(self, mock_task, settings):
        old = WebhookEvent.objects.create(dedup_key='id:old', raw_payload={})
        WebhookEvent.objects.create(dedup_key='id:new', raw_payload={})
        done = WebhookEvent.objects.create(
            dedup_key='id:done', raw_payload={}, status=WebhookEvent.Status.PROCESSED
        )
        long_ago = timezone.now() - timedelta(seconds=settings.WEBHOOK_REQUEUE_AFTER_SECONDS + 60)
        WebhookEvent.objects.filter(pk__in=[old.pk, done.pk]).update(received_at=long_ago)

        assert requeue_stale_webhook_events() == 1
        mock_task.delay.assert_called_once_with(old.id)
