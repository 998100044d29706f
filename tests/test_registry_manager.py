"""
tests/test_registry_manager.py
Tests for creating and addressing rounds through a registry.
"""

import uuid

import pytest

from core.custody import get_account_balance
from core.exceptions import (
    IdentifierAlreadyBound,
    IdentifierNotFound,
    InvalidStateTransition,
    NotAuthorized,
    OutcomeNotPublished,
    RegistryNotFound,
)
from core.notifier import list_events
from core.registry_manager import RegistryManager
from core.round_manager import RoundManager
from models import EventType
from services.identity_service import normalize_prediction
from tests.conftest import ADMIN, DESTINATION, ETHER, FIRST, SECOND, THIRD

OUTCOME = "0x42"


@pytest.fixture
def registry(db):
    return RegistryManager.create_registry(db, ADMIN)


def _create(db, registry, identifier, offsets=(3, 4, 5, 6), caller=ADMIN):
    return RegistryManager.create_round(db, registry.id, caller, identifier, 5, *offsets)


class TestCreate:
    def test_binds_identifier_and_notifies(self, db, registry):
        entry, round_obj = _create(db, registry, "is owner")

        assert RegistryManager.get(db, registry.id, "is owner") == round_obj.id
        assert entry.round_id == round_obj.id

        events = list_events(db, registry_id=registry.id, event_type=EventType.ROUND_CREATED)
        assert len(events) == 1
        assert events[0].data == {"id": "is owner", "round": str(round_obj.id)}

    def test_round_is_administered_by_registry(self, db, registry):
        _, round_obj = _create(db, registry, "owned")
        assert round_obj.administrator == registry.address
        assert round_obj.administrator != ADMIN

    def test_deadlines_follow_offsets(self, db, registry):
        _, round_obj = _create(db, registry, "deadlines", offsets=(1, 2, 3, 4))
        tick = round_obj.created_tick
        assert round_obj.deadlines == (tick + 1, tick + 2, tick + 3, tick + 4)

    def test_duplicate_identifier_fails(self, db, registry):
        _, first = _create(db, registry, "existent")
        with pytest.raises(IdentifierAlreadyBound):
            _create(db, registry, "existent")
        assert RegistryManager.get(db, registry.id, "existent") == first.id

    def test_identifier_is_per_registry(self, db, registry):
        other = RegistryManager.create_registry(db, ADMIN)
        _, first = _create(db, registry, "shared")
        _, second = _create(db, other, "shared")
        assert first.id != second.id

    def test_only_administrator(self, db, registry):
        with pytest.raises(NotAuthorized):
            _create(db, registry, "is not owner", caller=DESTINATION)
        assert RegistryManager.get(db, registry.id, "is not owner") is None

    def test_unknown_registry(self, db):
        with pytest.raises(RegistryNotFound):
            RegistryManager.create_round(db, uuid.uuid4(), ADMIN, "x", 5, 1, 2, 3, 4)

    def test_get_unbound_returns_none(self, db, registry):
        assert RegistryManager.get(db, registry.id, "unexistent") is None


class TestForwarding:
    @pytest.fixture
    def round_id(self, db, registry):
        _, round_obj = _create(db, registry, "is created", offsets=(3, 4, 5, 6))
        RoundManager.place_stake(db, round_obj.id, FIRST, "0x41", ETHER)
        RoundManager.place_stake(db, round_obj.id, SECOND, OUTCOME, ETHER // 2)
        RoundManager.place_stake(db, round_obj.id, THIRD, OUTCOME, ETHER // 4)
        return round_obj.id

    def test_can_set_outcome(self, db, travel, registry, round_id):
        travel(4)
        RegistryManager.publish_outcome(db, registry.id, ADMIN, "is created", OUTCOME)
        assert RoundManager.get_round(db, round_id).outcome == normalize_prediction(OUTCOME)

    def test_can_end_round(self, db, travel, registry, round_id):
        travel(4)
        RegistryManager.publish_outcome(db, registry.id, ADMIN, "is created", OUTCOME)
        travel(2)
        remaining = RoundManager.get_round(db, round_id).balance

        swept = RegistryManager.close_round(db, registry.id, ADMIN, "is created", DESTINATION)

        assert swept == remaining
        assert get_account_balance(db, DESTINATION) == remaining

    def test_non_administrator_fails_through_registry(self, db, travel, registry, round_id):
        travel(4)
        with pytest.raises(NotAuthorized):
            RegistryManager.publish_outcome(db, registry.id, DESTINATION, "is created", OUTCOME)
        assert RoundManager.get_round(db, round_id).outcome is None

    def test_non_administrator_fails_directly(self, db, travel, registry, round_id):
        travel(4)
        with pytest.raises(NotAuthorized):
            RoundManager.publish_outcome(db, round_id, DESTINATION, OUTCOME)

    def test_registry_administrator_cannot_bypass_registry(self, db, travel, registry, round_id):
        travel(4)
        with pytest.raises(NotAuthorized):
            RoundManager.publish_outcome(db, round_id, ADMIN, OUTCOME)

        RegistryManager.publish_outcome(db, registry.id, ADMIN, "is created", OUTCOME)
        travel(2)
        with pytest.raises(NotAuthorized):
            RoundManager.close_round(db, round_id, ADMIN, DESTINATION)
        with pytest.raises(NotAuthorized):
            RegistryManager.close_round(db, registry.id, DESTINATION, "is created", DESTINATION)

    def test_forwarding_keeps_state_checks(self, db, travel, registry, round_id):
        # still betting
        with pytest.raises(InvalidStateTransition):
            RegistryManager.publish_outcome(db, registry.id, ADMIN, "is created", OUTCOME)

        travel(6)
        # closed, but no outcome was ever published
        with pytest.raises(OutcomeNotPublished):
            RegistryManager.close_round(db, registry.id, ADMIN, "is created", DESTINATION)

    def test_unbound_identifier_fails(self, db, travel, registry, round_id):
        travel(4)
        with pytest.raises(IdentifierNotFound):
            RegistryManager.publish_outcome(db, registry.id, ADMIN, "unexistent", OUTCOME)
        with pytest.raises(IdentifierNotFound):
            RegistryManager.close_round(db, registry.id, ADMIN, "unexistent", DESTINATION)
