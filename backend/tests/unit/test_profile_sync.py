"""Tests for UserProfileSynchronizer."""

import pytest

from backend.src.billing.shared.exceptions import NotFoundError
from backend.src.billing.subscriptions.profile_sync import UserProfileSynchronizer


@pytest.fixture
def synchronizer(profiles):
    return UserProfileSynchronizer(profiles)


class TestUserProfileSynchronizer:

    @pytest.mark.asyncio
    async def test_fresh_hobbyist_activation_grants(self, synchronizer, profiles):
        """Test the hobbyist grant is added on top of the current balance."""
        profiles.add('user-1', plan='free', generation_balance=1)

        result = await synchronizer.sync('user-1', 'hobbyist', grant=20)

        assert result.changed is True
        assert result.granted == 20
        assert result.profile.plan == 'hobbyist'
        assert result.profile.generation_balance == 21

    @pytest.mark.asyncio
    async def test_grant_starts_from_zero_after_unlimited(self, synchronizer, profiles):
        profiles.add('user-1', plan='hobbyist', generation_balance=None)

        result = await synchronizer.sync('user-1', 'hobbyist', grant=20)

        assert result.profile.generation_balance == 20

    @pytest.mark.asyncio
    async def test_hobbyist_under_pro_does_not_grant(self, synchronizer, profiles):
        """Test a hobbyist purchase while pro is active leaves the balance unlimited."""
        profiles.add('user-1', plan='pro', generation_balance=None)

        result = await synchronizer.sync('user-1', 'pro', grant=20)

        assert result.changed is False
        assert result.granted == 0
        assert profiles.update_calls == []

    @pytest.mark.asyncio
    async def test_pro_clears_balance(self, synchronizer, profiles):
        profiles.add('user-1', plan='hobbyist', generation_balance=7)

        result = await synchronizer.sync('user-1', 'pro')

        assert result.profile.plan == 'pro'
        assert result.profile.generation_balance is None
        assert profiles.update_calls == [{'id': 'user-1', 'plan': 'pro', 'generation_balance': None}]

    @pytest.mark.asyncio
    async def test_free_resets_balance(self, synchronizer, profiles):
        profiles.add('user-1', plan='pro', generation_balance=None)

        result = await synchronizer.sync('user-1', 'free')

        assert result.profile.plan == 'free'
        assert result.profile.generation_balance == 0

    @pytest.mark.parametrize('balance', [None, 2])
    @pytest.mark.asyncio
    async def test_free_profile_keeps_free_balance(self, synchronizer, profiles, balance):
        """Test re-syncing a user who was already free leaves the free credits alone."""
        profiles.add('user-1', plan='free', generation_balance=balance)

        result = await synchronizer.sync('user-1', 'free')

        assert result.changed is False
        assert result.profile.generation_balance == balance
        assert profiles.update_calls == []

    @pytest.mark.asyncio
    async def test_sync_without_grant_keeps_hobbyist_balance(self, synchronizer, profiles):
        profiles.add('user-1', plan='free', generation_balance=4)

        result = await synchronizer.sync('user-1', 'hobbyist')

        assert result.granted == 0
        assert result.profile.plan == 'hobbyist'
        assert result.profile.generation_balance == 4

    @pytest.mark.asyncio
    async def test_no_write_when_consistent(self, synchronizer, profiles):
        """Test an up-to-date profile is not written."""
        profiles.add('user-1', plan='hobbyist', generation_balance=5)

        result = await synchronizer.sync('user-1', 'hobbyist')

        assert result.changed is False
        assert profiles.update_calls == []

    @pytest.mark.asyncio
    async def test_missing_profile_raises(self, synchronizer):
        with pytest.raises(NotFoundError) as exc_info:
            await synchronizer.sync('ghost', 'pro')
        assert exc_info.value.resource == 'user_profile'
