"""BIN (issuer range) lookup - maps a card prefix to every network that claims it"""

import logging
import re
import threading
from typing import Iterable, List, Optional, Tuple

from lcr_gateway.domain.models import BinRange, CardBinInfo, CardNetwork

logger = logging.getLogger(__name__)

_PREFIX_PATTERN = re.compile(r"[0-9]{6,8}")


def default_bin_ranges() -> List[BinRange]:
    """
    Reference range table.

    Co-badged debit blocks deliberately overlap a signature network range:
    - 453200-453299 Visa Debit / 453200-453210 Accel
    - 520000-520099 Mastercard Debit / 520050-520099 NYCE
    - 601120-601129 Discover Debit / 601125-601129 Pulse
    """
    return [
        BinRange("400000", "499999", CardNetwork.VISA, "CREDIT", "VISA", "Visa", "US"),
        BinRange("510000", "559999", CardNetwork.MASTERCARD, "CREDIT", "MASTERCARD", "Mastercard", "US"),
        BinRange("340000", "349999", CardNetwork.AMEX, "CREDIT", "AMERICAN_EXPRESS", "American Express", "US"),
        BinRange("601100", "601109", CardNetwork.DISCOVER, "CREDIT", "DISCOVER", "Discover", "US"),
        BinRange("600000", "600099", CardNetwork.ACCEL, "DEBIT", "ACCEL", "Accel", "US"),
        BinRange("600110", "600199", CardNetwork.STAR, "DEBIT", "STAR", "Star", "US"),
        BinRange("600200", "600299", CardNetwork.NYCE, "DEBIT", "NYCE", "NYCE", "US"),
        BinRange("600300", "600399", CardNetwork.PULSE, "DEBIT", "PULSE", "Pulse", "US"),
        BinRange("500000", "509999", CardNetwork.MAESTRO, "DEBIT", "MAESTRO", "Maestro", "GLOBAL"),
        BinRange("453200", "453299", CardNetwork.VISA, "DEBIT", "VISA", "Visa Debit", "US"),
        BinRange("453200", "453210", CardNetwork.ACCEL, "DEBIT", "BANK_OF_AMERICA", "Bank of America (Accel)", "US"),
        BinRange("520000", "520099", CardNetwork.MASTERCARD, "DEBIT", "MASTERCARD", "Mastercard Debit", "US"),
        BinRange("520050", "520099", CardNetwork.NYCE, "DEBIT", "CHASE", "Chase (NYCE)", "US"),
        BinRange("601120", "601129", CardNetwork.DISCOVER, "DEBIT", "DISCOVER", "Discover Debit", "US"),
        BinRange("601125", "601129", CardNetwork.PULSE, "DEBIT", "WELLS_FARGO", "Wells Fargo (Pulse)", "US"),
    ]


def normalize_prefix(prefix: str, width: int) -> str:
    """Truncate or right-pad with zeros so the prefix compares against a range of this width"""
    if len(prefix) >= width:
        return prefix[:width]
    return prefix + "0" * (width - len(prefix))


def _by_specificity(ranges: Iterable[BinRange]) -> Tuple[BinRange, ...]:
    # Stable sort: wider (more specific) prefixes first, insertion order otherwise
    return tuple(sorted(ranges, key=lambda r: -r.width))


class BinResolver:
    """
    Resolves card prefixes against a configurable range table.

    The table is a copy-on-write snapshot: writers serialize on a lock and
    publish a new immutable tuple, readers work from whatever snapshot they
    grabbed and never block.
    """

    def __init__(self, ranges: Optional[Iterable[BinRange]] = None):
        self._write_lock = threading.Lock()
        self._ranges: Tuple[BinRange, ...] = _by_specificity(
            default_bin_ranges() if ranges is None else ranges
        )

    def ranges(self) -> Tuple[BinRange, ...]:
        return self._ranges

    def lookup(self, prefix: str) -> List[CardBinInfo]:
        """
        Return every configured range containing the prefix.

        Overlap is a normal outcome: a co-badged prefix yields one entry per
        network. Malformed input (not 6-8 ASCII digits) yields an empty list.
        If nothing matches, a single issuer-prefix heuristic guess is returned
        when one applies.
        """
        if not isinstance(prefix, str) or not _PREFIX_PATTERN.fullmatch(prefix):
            return []

        snapshot = self._ranges
        matches = [
            _info_from_range(prefix, r)
            for r in snapshot
            if r.start_bin <= normalize_prefix(prefix, r.width) <= r.end_bin
        ]
        if matches:
            return matches

        guess = _heuristic_match(prefix)
        if guess is None:
            logger.info("No BIN information for prefix %s", prefix[:6])
            return []
        return [guess]

    def networks_for(self, prefix: str) -> List[CardNetwork]:
        """Ordered, de-duplicated networks claiming the prefix"""
        networks: List[CardNetwork] = []
        for info in self.lookup(prefix):
            if info.network not in networks:
                networks.append(info.network)
        return networks

    def add_or_update_range(self, bin_range: BinRange) -> None:
        """Replace the range with the same (start, end) bounds, or add it"""
        with self._write_lock:
            kept = [r for r in self._ranges if r.key != bin_range.key]
            kept.append(bin_range)
            self._ranges = _by_specificity(kept)
        logger.info(
            "BIN range %s-%s set to %s",
            bin_range.start_bin,
            bin_range.end_bin,
            bin_range.network.value,
        )


def _info_from_range(prefix: str, bin_range: BinRange) -> CardBinInfo:
    return CardBinInfo(
        bin=prefix,
        network=bin_range.network,
        card_type=bin_range.card_type,
        issuer=bin_range.issuer,
        issuer_name=bin_range.issuer_name,
        country_code=bin_range.country_code,
        product_type=bin_range.product_type,
        prepaid=bin_range.prepaid,
        corporate=bin_range.corporate,
        commercial=bin_range.commercial,
    )


def _heuristic_match(prefix: str) -> Optional[CardBinInfo]:
    """Coarse IIN patterns used when no configured range matches"""
    if prefix.startswith("4"):
        return CardBinInfo(prefix, CardNetwork.VISA, "CREDIT", "VISA", "Visa", "US")
    if "51" <= prefix[:2] <= "55":
        return CardBinInfo(prefix, CardNetwork.MASTERCARD, "CREDIT", "MASTERCARD", "Mastercard", "US")
    if prefix.startswith(("34", "37")):
        return CardBinInfo(
            prefix,
            CardNetwork.AMEX,
            "CREDIT",
            "AMERICAN_EXPRESS",
            "American Express",
            "US",
            corporate=prefix.startswith("37"),
        )
    if prefix.startswith("6"):
        return CardBinInfo(prefix, CardNetwork.DISCOVER, "CREDIT", "DISCOVER", "Discover", "US")
    return None
