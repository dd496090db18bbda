"""
Tests for account normalization and canonical conversation ids.
"""

import pytest

from supplychat.utils.accounts import canonical_pair, conversation_id_for, format_address, normalize_account
from supplychat.utils.errors import InvalidParticipant


ALICE = "0xA11CE00000000000000000000000000000000001"
BOB = "0xB0B0000000000000000000000000000000000002"


@pytest.mark.unit
class TestNormalizeAccount:

    def test_lowercases_and_strips(self):
        assert normalize_account("  0xABCdef  ") == "0xabcdef"

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_empty_account_rejected(self, value):
        with pytest.raises(InvalidParticipant):
            normalize_account(value)


@pytest.mark.unit
class TestConversationId:

    def test_symmetric(self):
        assert conversation_id_for(ALICE, BOB) == conversation_id_for(BOB, ALICE)

    def test_case_insensitive(self):
        assert conversation_id_for(ALICE.lower(), BOB) == conversation_id_for(ALICE, BOB.lower())

    def test_sorted_pair_joined(self):
        low, high = canonical_pair(BOB, ALICE)
        assert (low, high) == (ALICE.lower(), BOB.lower())
        assert conversation_id_for(BOB, ALICE) == f"{low}_{high}"

    def test_self_conversation_rejected(self):
        with pytest.raises(InvalidParticipant) as exc_info:
            canonical_pair(ALICE, ALICE.lower())
        assert exc_info.value.code == "INVALID_PARTICIPANT"

    def test_empty_participant_rejected(self):
        with pytest.raises(InvalidParticipant):
            conversation_id_for(ALICE, "")

    def test_separator_inside_account_cannot_collide(self):
        assert conversation_id_for("a_b", "c") != conversation_id_for("a", "b_c")
        assert conversation_id_for("a_b", "c") == "a%5Fb_c"
        assert conversation_id_for("a", "b_c") == "a_b%5Fc"

    def test_escape_character_itself_is_escaped(self):
        assert conversation_id_for("a%5fb", "c") != conversation_id_for("a_b", "c")


@pytest.mark.unit
def test_format_address_shortens_wallet_addresses():
    assert format_address("0xa11ce00000000000000000000000000000000001") == "0xa11c...0001"
    assert format_address("short") == "short"
