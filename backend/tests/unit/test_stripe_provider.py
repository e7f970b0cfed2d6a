"""Tests for the Stripe client wrapper and the Stripe payment provider.

Tests cover:
- Error translation (missing resources, other Stripe failures, missing key)
- Checkout session parameters
- Conversion of Stripe objects
- Deterministic idempotency keys
"""

import pytest
import stripe
from unittest.mock import AsyncMock, patch

from backend.src.billing.shared.exceptions import (
    ConfigurationError,
    NotFoundError,
    TransientProviderError,
)

WRAPPER = 'backend.src.billing.external.stripe.provider.StripeAPIWrapper'


class TestSafeStripeCall:
    """Tests for Stripe error translation."""

    @pytest.mark.asyncio
    async def test_passes_api_key_per_request(self):
        from backend.src.billing.external.stripe.client import StripeAPIWrapper

        func = AsyncMock(return_value={'id': 'cs_1'})

        result = await StripeAPIWrapper.safe_stripe_call(func, 'cs_1', api_key='sk_test_1', expand=['x'])

        assert result == {'id': 'cs_1'}
        func.assert_awaited_once_with('cs_1', api_key='sk_test_1', expand=['x'])

    @pytest.mark.asyncio
    async def test_resource_missing_maps_to_not_found(self):
        """Test Stripe's resource_missing becomes NotFoundError."""
        from backend.src.billing.external.stripe.client import StripeAPIWrapper

        func = AsyncMock(side_effect=stripe.InvalidRequestError('No such session', 'id', code='resource_missing'))

        with pytest.raises(NotFoundError) as exc_info:
            await StripeAPIWrapper.safe_stripe_call(func, 'cs_missing', api_key='sk_test_1')

        assert exc_info.value.resource_id == 'cs_missing'

    @pytest.mark.asyncio
    async def test_other_invalid_request_is_transient(self):
        from backend.src.billing.external.stripe.client import StripeAPIWrapper

        func = AsyncMock(side_effect=stripe.InvalidRequestError('Bad price', 'price', code='parameter_invalid'))

        with pytest.raises(TransientProviderError):
            await StripeAPIWrapper.safe_stripe_call(func, api_key='sk_test_1')

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        """Test network failures are reported as retryable provider errors."""
        from backend.src.billing.external.stripe.client import StripeAPIWrapper

        func = AsyncMock(side_effect=stripe.APIConnectionError('timeout'))

        with pytest.raises(TransientProviderError) as exc_info:
            await StripeAPIWrapper.safe_stripe_call(func, api_key='sk_test_1')

        assert exc_info.value.details['retryable'] is True
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_provider_message_stays_out_of_response_body(self):
        """Test the raw Stripe error text is kept for logs but not returned to clients."""
        from backend.src.billing.external.stripe.client import StripeAPIWrapper

        func = AsyncMock(side_effect=stripe.APIConnectionError('connect to api.stripe.com:443 refused'))

        with pytest.raises(TransientProviderError) as exc_info:
            await StripeAPIWrapper.safe_stripe_call(func, api_key='sk_test_1')

        body = exc_info.value.to_dict()
        assert body['details'] == {'retryable': True}
        assert 'api.stripe.com' not in str(body)
        assert 'api.stripe.com' in exc_info.value.provider_error

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        from backend.src.billing.external.stripe.client import StripeAPIWrapper

        func = AsyncMock()

        with pytest.raises(ConfigurationError):
            await StripeAPIWrapper.safe_stripe_call(func, api_key='')

        func.assert_not_awaited()


class TestStripePaymentProvider:
    """Tests for StripePaymentProvider."""

    @pytest.fixture
    def stripe_provider(self, config_provider):
        from backend.src.billing.external.stripe.provider import StripePaymentProvider

        return StripePaymentProvider(config_provider)

    @pytest.mark.asyncio
    async def test_create_one_time_checkout(self, stripe_provider):
        """Test a one-time checkout copies metadata onto the payment intent."""
        metadata = {'subscription_id': 'sub_1', 'user_id': 'user-1', 'plan_name': 'hobbyist'}
        stripe_session = {
            'id': 'cs_1',
            'url': 'https://checkout.stripe.com/c/cs_1',
            'status': 'open',
            'payment_status': 'unpaid',
            'payment_intent': None,
            'subscription': None,
            'metadata': metadata,
        }

        with patch(f'{WRAPPER}.create_checkout_session', new=AsyncMock(return_value=stripe_session)) as mock_create:
            session = await stripe_provider.create_checkout_session(
                price_id='price_hobbyist_live',
                mode='payment',
                success_url='https://app.example.com/ok',
                cancel_url='https://app.example.com/cancel',
                metadata=metadata,
                idempotency_key='key-1',
            )

        kwargs = mock_create.call_args.kwargs
        assert kwargs['api_key'] == 'sk_live_unit'
        assert kwargs['mode'] == 'payment'
        assert kwargs['line_items'] == [{'price': 'price_hobbyist_live', 'quantity': 1}]
        assert kwargs['payment_intent_data'] == {'metadata': metadata}
        assert 'subscription_data' not in kwargs
        assert kwargs['idempotency_key'] == 'key-1'
        assert session.id == 'cs_1'
        assert session.url == 'https://checkout.stripe.com/c/cs_1'
        assert session.is_paid is False

    @pytest.mark.asyncio
    async def test_create_subscription_checkout(self, stripe_provider):
        with patch(f'{WRAPPER}.create_checkout_session', new=AsyncMock(return_value={'id': 'cs_2'})) as mock_create:
            await stripe_provider.create_checkout_session(
                price_id='price_pro_live',
                mode='subscription',
                success_url='https://app.example.com/ok',
                cancel_url='https://app.example.com/cancel',
                metadata={'subscription_id': 'sub_2'},
                idempotency_key='key-2',
            )

        kwargs = mock_create.call_args.kwargs
        assert kwargs['subscription_data'] == {'metadata': {'subscription_id': 'sub_2'}}
        assert 'payment_intent_data' not in kwargs

    @pytest.mark.asyncio
    async def test_retrieve_paid_session_with_expanded_objects(self, stripe_provider):
        """Test expanded payment intent and subscription objects are reduced to IDs."""
        stripe_session = {
            'id': 'cs_3',
            'status': 'complete',
            'payment_status': 'paid',
            'payment_intent': {'id': 'pi_1', 'object': 'payment_intent'},
            'subscription': 'sub_stripe_1',
            'metadata': {'subscription_id': 'sub_3'},
        }

        with patch(f'{WRAPPER}.retrieve_checkout_session', new=AsyncMock(return_value=stripe_session)):
            session = await stripe_provider.retrieve_checkout_session('cs_3')

        assert session.is_paid is True
        assert session.payment_id == 'pi_1'
        assert session.subscription_id == 'sub_stripe_1'
        assert session.metadata == {'subscription_id': 'sub_3'}

    @pytest.mark.asyncio
    async def test_retrieve_subscription_reads_item_period(self, stripe_provider):
        stripe_subscription = {
            'id': 'sub_stripe_1',
            'status': 'active',
            'cancel_at_period_end': False,
            'items': {'data': [{'current_period_end': 1767225600}]},
        }

        with patch(f'{WRAPPER}.retrieve_subscription', new=AsyncMock(return_value=stripe_subscription)):
            subscription = await stripe_provider.retrieve_subscription('sub_stripe_1')

        assert subscription.current_period_end.isoformat() == '2026-01-01T00:00:00+00:00'

    @pytest.mark.asyncio
    async def test_cancel_uses_deterministic_idempotency_key(self, stripe_provider):
        from backend.src.billing.external.stripe.idempotency import generate_subscription_cancel_idempotency_key

        stripe_subscription = {'id': 'sub_stripe_1', 'status': 'active', 'cancel_at_period_end': True}

        with patch(
            f'{WRAPPER}.cancel_subscription_at_period_end',
            new=AsyncMock(return_value=stripe_subscription),
        ) as mock_cancel:
            subscription = await stripe_provider.cancel_at_period_end('sub_stripe_1')

        mock_cancel.assert_awaited_once_with(
            'sub_stripe_1',
            api_key='sk_live_unit',
            idempotency_key=generate_subscription_cancel_idempotency_key('sub_stripe_1'),
        )
        assert subscription.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_missing_secret_key(self):
        from backend.src.billing.external.stripe.provider import StripePaymentProvider
        from backend.src.billing.shared.config import BillingConfigProvider
        from backend.tests.helpers import make_settings

        provider = StripePaymentProvider(BillingConfigProvider(source=make_settings(STRIPE_SECRET_KEY='')))

        with pytest.raises(ConfigurationError):
            await provider.retrieve_checkout_session('cs_1')


class TestIdempotencyKeys:

    def test_checkout_key_is_deterministic(self):
        from backend.src.billing.external.stripe.idempotency import generate_checkout_idempotency_key

        first = generate_checkout_idempotency_key('sub_1', 'price_a')

        assert first == generate_checkout_idempotency_key('sub_1', 'price_a')
        assert first != generate_checkout_idempotency_key('sub_2', 'price_a')
        assert first != generate_checkout_idempotency_key('sub_1', 'price_b')
        assert len(first) == 40
