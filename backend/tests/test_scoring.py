import pytest

from conftest import GUEST_ADDR, HOST_ADDR
from rivals.models import Room
from rivals.services import ScoreResult, determine_winner, squad_change, winner_address


def test_squad_change_is_mean_percentage():
    initial = {'BTC': 100.0, 'ETH': 50.0}
    current = {'BTC': 110.0, 'ETH': 45.0}
    assert squad_change(initial, current, ['BTC', 'ETH']) == pytest.approx(0.0)
    assert squad_change(initial, current, ['BTC']) == pytest.approx(10.0)


def test_squad_change_skips_unpriced_tokens():
    initial = {'BTC': 100.0, 'DOGE': 0, 'XTZ': 1.0}
    current = {'BTC': 120.0, 'DOGE': 1.0}
    assert squad_change(initial, current, ['BTC', 'DOGE', 'XTZ', 'SOL']) == pytest.approx(20.0)
    assert squad_change(initial, current, []) == 0.0


def test_long_rewards_larger_rise():
    result = determine_winner('LONG', 5.0, -2.0)
    assert result.winner == 'host'
    assert (result.host_score, result.guest_score) == (5.0, -2.0)


def test_short_rewards_larger_fall():
    result = determine_winner('SHORT', 5.0, -2.0)
    assert result.winner == 'guest'
    assert result.guest_score == 2.0


def test_tie_has_no_winner_address():
    room = Room(code='R', host_conn='h', host_payload={'address': HOST_ADDR},
                guest_conn='g', guest_payload={'hostAddress': GUEST_ADDR})
    assert determine_winner('LONG', 1.0, 1.0).winner == 'tie'
    assert winner_address(room, ScoreResult('tie', 1.0, 1.0)) is None
    assert winner_address(room, ScoreResult('host', 2.0, 1.0)) == HOST_ADDR
    assert winner_address(room, ScoreResult('guest', 1.0, 2.0)) == GUEST_ADDR
