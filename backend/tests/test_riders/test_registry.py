"""
Tests for RiderAvailabilityRegistry.
"""

from uuid import uuid4

import pytest

from fulfillment.core.exceptions import NotFoundError, RepositoryError
from fulfillment.services.orders.enums import RiderStatus
from fulfillment.services.riders.registry import RiderUnavailableError


@pytest.fixture
def registry(world):
    return world.riders


class TestAvailability:
    """Test availability checks and lookups."""

    @pytest.mark.asyncio
    async def test_ensure_available_returns_rider(self, registry, store):
        rider = store.add_rider()

        assert (await registry.ensure_available(rider.id)).id == rider.id

    @pytest.mark.asyncio
    async def test_busy_rider_is_unavailable(self, registry, store):
        rider = store.add_rider(RiderStatus.NOT_AVAILABLE)

        with pytest.raises(RiderUnavailableError) as exc_info:
            await registry.ensure_available(rider.id)

        assert exc_info.value.code == "RIDER_UNAVAILABLE"
        assert exc_info.value.context["status"] == "Not Available"

    @pytest.mark.asyncio
    async def test_unknown_rider_is_not_found(self, registry):
        with pytest.raises(NotFoundError):
            await registry.ensure_available(uuid4())

    @pytest.mark.asyncio
    async def test_rider_for_user(self, registry, store):
        rider = store.add_rider()

        assert (await registry.get_rider_for_user(rider.user_id)).id == rider.id
        with pytest.raises(NotFoundError):
            await registry.get_rider_for_user(uuid4())

    @pytest.mark.asyncio
    async def test_list_available(self, registry, store):
        free = store.add_rider()
        store.add_rider(RiderStatus.NOT_AVAILABLE)

        assert [rider.id for rider in await registry.list_available()] == [free.id]


class TestAssignAndRelease:
    """Test the conditional claim and the idempotent release."""

    @pytest.mark.asyncio
    async def test_assign_claims_available_rider(self, registry, store):
        rider = store.add_rider()

        await registry.assign(rider.id)

        assert rider.status == RiderStatus.NOT_AVAILABLE

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, registry, store):
        rider = store.add_rider()
        await registry.assign(rider.id)

        with pytest.raises(RiderUnavailableError):
            await registry.assign(rider.id)

    @pytest.mark.asyncio
    async def test_assign_unknown_rider_is_not_found(self, registry):
        with pytest.raises(NotFoundError):
            await registry.assign(uuid4())

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, registry, store):
        rider = store.add_rider(RiderStatus.NOT_AVAILABLE)

        await registry.release(rider.id)
        await registry.release(rider.id)

        assert rider.status == RiderStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_release_unknown_rider_is_not_found(self, registry):
        with pytest.raises(NotFoundError):
            await registry.release(uuid4())

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, registry, store):
        rider = store.add_rider()
        store.fail("transition_rider_status")

        with pytest.raises(RepositoryError):
            await registry.assign(rider.id)

        assert rider.status == RiderStatus.AVAILABLE
