from decimal import Decimal

from backbot.pnl import calculate_position_pnl
from backbot.position import Position, clamp_to_break_even, ratchet_stop, total_exposure


def test_first_stop_is_candidate():
    assert ratchet_stop(Decimal('95'), None, is_long=True) == Decimal('95')
    assert ratchet_stop(Decimal('105'), None, is_long=False) == Decimal('105')


def test_long_stop_never_lower():
    assert ratchet_stop(Decimal('94'), Decimal('95'), is_long=True) == Decimal('95')
    assert ratchet_stop(Decimal('96'), Decimal('95'), is_long=True) == Decimal('96')


def test_short_stop_never_higher():
    assert ratchet_stop(Decimal('106'), Decimal('105'), is_long=False) == Decimal('105')
    assert ratchet_stop(Decimal('104'), Decimal('105'), is_long=False) == Decimal('104')


def test_break_even_clamp():
    be = Decimal('100.5')
    # long stop may rise to break-even, never through it
    assert clamp_to_break_even(Decimal('101'), be, is_long=True) == be
    assert clamp_to_break_even(Decimal('99'), be, is_long=True) == Decimal('99')
    # short stop may fall to break-even, never through it
    assert clamp_to_break_even(Decimal('100'), be, is_long=False) == be
    assert clamp_to_break_even(Decimal('102'), be, is_long=False) == Decimal('102')


def test_repeated_cycles_are_monotonic_and_capped():
    be = Decimal('100')
    stop = None
    for candidate in ('90', '93', '91', '97', '99', '104', '96'):
        new = clamp_to_break_even(ratchet_stop(Decimal(candidate), stop, True), be, True)
        if stop is not None:
            assert new >= stop
        assert new <= be
        stop = new
    assert stop == be


def test_position_properties():
    short = Position(symbol='X', net_quantity=Decimal('-2'), entry_price=Decimal('50'), mark_price=Decimal('45'))
    assert not short.is_long
    assert short.direction == -1
    assert short.quantity == Decimal('2')
    assert short.exposure == Decimal('100')
    assert short.break_even == Decimal('50')
    assert short.cost == Decimal('100')
    assert total_exposure([short, short]) == Decimal('200')
    assert total_exposure([]) == Decimal('0')


def test_pnl_long_net_of_fees():
    p = Position(
        symbol='BTC', net_quantity=Decimal('0.5'), entry_price=Decimal('50000'),
        mark_price=Decimal('51000'), net_cost=Decimal('25000'),
    )
    pnl = calculate_position_pnl(p, Decimal('0.0002'))
    assert pnl.gross_pnl == Decimal('500')
    # open fee 25000 * 0.0002 = 5, close fee 500 * 0.0002 = 0.1
    assert pnl.fees == Decimal('5.1')
    assert pnl.net_pnl == Decimal('494.9')
    assert pnl.net_pnl_percent == Decimal('494.9') / Decimal('25000') * 100
    assert pnl.in_profit
    assert pnl.volume == Decimal('25500')


def test_pnl_short_is_direction_adjusted():
    p = Position(symbol='SOL', net_quantity=Decimal('-10'), entry_price=Decimal('150'), mark_price=Decimal('160'))
    pnl = calculate_position_pnl(p, Decimal('0'))
    assert pnl.gross_pnl == Decimal('-100')
    assert pnl.net_pnl == Decimal('-100')
    assert not pnl.in_profit
    assert pnl.break_even_price == Decimal('150')


def test_pnl_zero_cost():
    p = Position(symbol='X', net_quantity=Decimal('1'), entry_price=Decimal('0'), mark_price=Decimal('1'))
    assert calculate_position_pnl(p, Decimal('0.001')).net_pnl_percent == Decimal('0')
