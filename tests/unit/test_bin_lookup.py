"""Unit tests for BIN range resolution"""

import threading

import pytest

from lcr_gateway.domain.bin_lookup import BinResolver, default_bin_ranges, normalize_prefix
from lcr_gateway.domain.models import BinRange, CardNetwork


def test_plain_visa_prefix_single_match():
    """400000 sits only in the Visa credit block"""
    matches = BinResolver().lookup("400000")

    assert len(matches) == 1
    assert matches[0].network == CardNetwork.VISA
    assert matches[0].bin == "400000"
    assert matches[0].card_type == "CREDIT"


def test_cobadged_prefix_returns_every_range():
    """453205 is Visa credit, Visa debit and Accel at the same time"""
    matches = BinResolver().lookup("453205")

    networks = [m.network for m in matches]
    assert networks.count(CardNetwork.VISA) == 2
    assert CardNetwork.ACCEL in networks
    assert len(matches) == 3


def test_matches_carry_debit_flag_and_display_name():
    matches = BinResolver().lookup("453205")

    assert [m.is_debit for m in matches] == [False, True, True]
    assert [m.network.display_name for m in matches] == ["Visa", "Visa", "Accel"]


def test_cobadged_prefix_outside_inner_block():
    """453250 is past the Accel sub-range (453200-453210)"""
    networks = [m.network for m in BinResolver().lookup("453250")]

    assert CardNetwork.ACCEL not in networks
    assert networks == [CardNetwork.VISA, CardNetwork.VISA]


@pytest.mark.parametrize(
    "prefix,network",
    [
        ("520075", CardNetwork.NYCE),
        ("601127", CardNetwork.PULSE),
        ("600050", CardNetwork.ACCEL),
        ("505050", CardNetwork.MAESTRO),
    ],
)
def test_debit_rails_resolve(prefix, network):
    assert network in BinResolver().networks_for(prefix)


def test_overlapping_custom_ranges_both_returned():
    """Two networks configured over the same block are both reported"""
    resolver = BinResolver(
        [
            BinRange("777000", "777999", CardNetwork.STAR, "DEBIT"),
            BinRange("777000", "777999", CardNetwork.PULSE, "DEBIT"),
        ]
    )

    networks = {m.network for m in resolver.lookup("777123")}
    assert networks == {CardNetwork.STAR, CardNetwork.PULSE}


def test_longer_prefix_is_truncated_to_range_width():
    matches = BinResolver().lookup("40000012")
    assert [m.network for m in matches] == [CardNetwork.VISA]


def test_more_specific_ranges_come_first():
    """An 8-digit range sorts ahead of the 6-digit block it sits in"""
    resolver = BinResolver(
        [
            BinRange("400000", "499999", CardNetwork.VISA),
            BinRange("41111100", "41111199", CardNetwork.STAR, "DEBIT"),
        ]
    )

    matches = resolver.lookup("41111150")
    assert [m.network for m in matches] == [CardNetwork.STAR, CardNetwork.VISA]


def test_short_prefix_is_zero_padded_for_wider_ranges():
    assert normalize_prefix("411111", 8) == "41111100"
    assert normalize_prefix("41111150", 6) == "411111"

    resolver = BinResolver([BinRange("41111100", "41111199", CardNetwork.STAR)])
    assert [m.network for m in resolver.lookup("411111")] == [CardNetwork.STAR]


@pytest.mark.parametrize("prefix", ["", "12345", "123456789", "4000a0", " 400000", "４００００0", None, 400000])
def test_malformed_prefix_returns_empty(prefix):
    """Malformed input never raises"""
    assert BinResolver().lookup(prefix) == []


@pytest.mark.parametrize(
    "prefix,network",
    [
        ("411111", CardNetwork.VISA),
        ("550000", CardNetwork.MASTERCARD),
        ("370000", CardNetwork.AMEX),
        ("650000", CardNetwork.DISCOVER),
    ],
)
def test_heuristic_fallback_when_no_range_matches(prefix, network):
    resolver = BinResolver([BinRange("999000", "999999", CardNetwork.STAR)])

    matches = resolver.lookup(prefix)
    assert len(matches) == 1
    assert matches[0].network == network


def test_heuristic_marks_37_prefix_corporate():
    resolver = BinResolver([])
    assert resolver.lookup("370000")[0].corporate is True
    assert resolver.lookup("340000")[0].corporate is False


def test_no_range_and_no_heuristic_returns_empty():
    assert BinResolver([]).lookup("900000") == []


def test_add_or_update_range_replaces_same_bounds():
    resolver = BinResolver([BinRange("880000", "889999", CardNetwork.STAR)])

    resolver.add_or_update_range(BinRange("880000", "889999", CardNetwork.NYCE))

    assert [m.network for m in resolver.lookup("885000")] == [CardNetwork.NYCE]
    assert len(resolver.ranges()) == 1


def test_add_or_update_range_adds_new_bounds():
    resolver = BinResolver([BinRange("880000", "889999", CardNetwork.STAR)])

    resolver.add_or_update_range(BinRange("885000", "885999", CardNetwork.PULSE))

    assert resolver.networks_for("885500") == [CardNetwork.STAR, CardNetwork.PULSE]


def test_snapshot_held_by_reader_is_not_torn_by_writer():
    resolver = BinResolver()
    snapshot = resolver.ranges()

    resolver.add_or_update_range(BinRange("990000", "990999", CardNetwork.PULSE))

    assert len(resolver.ranges()) == len(snapshot) + 1
    assert len(snapshot) == len(default_bin_ranges())


def test_concurrent_writers_do_not_lose_updates():
    resolver = BinResolver([])

    def add(i: int):
        resolver.add_or_update_range(BinRange(f"{700000 + i * 10}", f"{700000 + i * 10 + 9}", CardNetwork.STAR))

    threads = [threading.Thread(target=add, args=(i,)) for i in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(resolver.ranges()) == 50


def test_networks_for_deduplicates():
    assert BinResolver().networks_for("453205") == [CardNetwork.VISA, CardNetwork.ACCEL]


@pytest.mark.parametrize(
    "start,end",
    [("40000a", "499999"), ("400000", "49999"), ("500000", "400000")],
)
def test_invalid_range_rejected(start, end):
    with pytest.raises(ValueError):
        BinRange(start, end, CardNetwork.VISA)
