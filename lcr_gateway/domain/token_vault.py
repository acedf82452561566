"""Card tokenization vault - issues surrogate PANs and manages their lifecycle"""

import logging
import random
import uuid
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from lcr_gateway.domain.exceptions import TokenError
from lcr_gateway.domain.models import BinRange, CardDetails, CardNetwork, CardToken, TokenStatus
from lcr_gateway.domain.ports import TokenStore
from lcr_gateway.utils.date_utils import add_months, utc_now
from lcr_gateway.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_VALIDITY_MONTHS = 36
TOKEN_LENGTH = 16
TOKEN_BIN_WIDTH = 6
MAX_VALUE_ATTEMPTS = 10

# Allowed explicit status changes. Setting the current status again is a no-op.
_TOKEN_TRANSITIONS = {
    TokenStatus.ACTIVE: {TokenStatus.SUSPENDED, TokenStatus.EXPIRED, TokenStatus.DELETED},
    TokenStatus.SUSPENDED: {TokenStatus.ACTIVE, TokenStatus.EXPIRED, TokenStatus.DELETED},
    TokenStatus.EXPIRED: {TokenStatus.DELETED},
    TokenStatus.DELETED: set(),
}


def default_token_bin_ranges() -> List[BinRange]:
    """Token BIN blocks per network. Some debit blocks sit inside a signature network block."""
    return [
        BinRange("490000", "499999", CardNetwork.VISA),
        BinRange("590000", "599999", CardNetwork.MASTERCARD),
        BinRange("390000", "399999", CardNetwork.AMEX),
        BinRange("650000", "659999", CardNetwork.DISCOVER),
        BinRange("670000", "670999", CardNetwork.ACCEL),
        BinRange("493500", "493599", CardNetwork.ACCEL),
        BinRange("671000", "671999", CardNetwork.STAR),
        BinRange("593000", "593999", CardNetwork.STAR),
        BinRange("672000", "672999", CardNetwork.NYCE),
        BinRange("673000", "673999", CardNetwork.PULSE),
        BinRange("652500", "652599", CardNetwork.PULSE),
        BinRange("674000", "674999", CardNetwork.MAESTRO),
    ]


class PanCodec(Protocol):
    """Protects a PAN for storage and recovers it for authorization"""

    def protect(self, pan: str) -> str: ...

    def reveal(self, protected: str) -> Optional[str]: ...


class MaskingPanCodec:
    """
    Placeholder codec: keeps first 6 and last 4 digits and masks the middle.

    NOT a secure codec. `reveal` cannot recover the masked digits and fills
    them with random ones; swap in a real encrypting codec for production.
    """

    MASK_CHAR = "*"

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.SystemRandom()

    def protect(self, pan: str) -> str:
        if not pan or len(pan) < 13:
            return self.MASK_CHAR * 12
        return pan[:6] + self.MASK_CHAR * (len(pan) - 10) + pan[-4:]

    def reveal(self, protected: str) -> Optional[str]:
        head, tail = protected[:6], protected[-4:]
        if len(protected) < 13 or not head.isdigit() or not tail.isdigit():
            return None
        middle = "".join(str(self._rng.randrange(10)) for _ in range(len(protected) - 10))
        return head + middle + tail


class TokenVault:
    """
    Issues and manages card tokens.

    Token values are 16 digits whose first 6 fall inside a token BIN range
    owned by one of the token's networks. Expiry is enforced lazily: a token
    past its expiry is moved to EXPIRED the next time `is_active`,
    `detokenize` or `set_status` looks at it.
    """

    def __init__(
        self,
        store: TokenStore,
        codec: Optional[PanCodec] = None,
        token_ranges: Optional[Iterable[BinRange]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable = utc_now,
        validity_months: int = DEFAULT_TOKEN_VALIDITY_MONTHS,
        reference_network: CardNetwork = CardNetwork.VISA,
    ):
        ranges = list(default_token_bin_ranges() if token_ranges is None else token_ranges)
        if not ranges:
            raise ValueError("At least one token BIN range must be configured")
        for r in ranges:
            if r.width != TOKEN_BIN_WIDTH:
                raise ValueError(f"Token BIN ranges must be {TOKEN_BIN_WIDTH} digits wide")
        if validity_months <= 0:
            raise ValueError("Token validity must be a positive number of months")

        self.store = store
        self.codec = codec or MaskingPanCodec(rng)
        self._ranges = tuple(ranges)
        self._rng = rng or random.SystemRandom()
        self._clock = clock
        self.validity_months = validity_months
        self.reference_network = reference_network
        self._locks = KeyedLock()

    # -- issuance ---------------------------------------------------------

    def tokenize(self, card: CardDetails, network: CardNetwork) -> CardToken:
        return self._issue(card, [network])

    def tokenize_multi(self, card: CardDetails, networks: Sequence[CardNetwork]) -> CardToken:
        """Issue one token usable on several networks; the BIN comes from the first network that owns one"""
        unique: List[CardNetwork] = []
        for network in networks or ():
            if network not in unique:
                unique.append(network)
        if not unique:
            raise TokenError("At least one network must be specified")
        return self._issue(card, unique)

    def _issue(self, card: CardDetails, networks: List[CardNetwork]) -> CardToken:
        if not card.has_valid_number():
            raise TokenError("Card number must be 12-19 digits")

        now = self._clock()
        token = CardToken(
            token_reference=str(uuid.uuid4()),
            token_value=self._unique_token_value(networks),
            networks=list(networks),
            last_four=card.last_four,
            expiry_month=card.expiry_month,
            expiry_year=card.expiry_year,
            protected_pan=self.codec.protect(card.card_number),
            status=TokenStatus.ACTIVE,
            created_at=now,
            expires_at=add_months(now, self.validity_months),
        )
        self.store.save(token)
        logger.info(
            "Created token %s for networks %s",
            token.token_reference,
            ",".join(n.value for n in networks),
        )
        return token

    def _unique_token_value(self, networks: List[CardNetwork]) -> str:
        for _ in range(MAX_VALUE_ATTEMPTS):
            value = self.generate_token_value(networks)
            if not self.store.exists_by_value(value):
                return value
        raise TokenError("Could not generate a unique token value")

    def generate_token_value(self, networks: Sequence[CardNetwork]) -> str:
        """16-digit surrogate PAN: random BIN from an owned token range + 10 random digits"""
        candidates: List[BinRange] = []
        for network in networks:
            candidates = [r for r in self._ranges if r.network == network]
            if candidates:
                break
        if not candidates:
            candidates = [r for r in self._ranges if r.network == self.reference_network]
        if not candidates:
            candidates = [self._ranges[0]]

        chosen = candidates[self._rng.randrange(len(candidates))]
        bin_value = self._rng.randint(int(chosen.start_bin), int(chosen.end_bin))
        head = f"{bin_value:0{TOKEN_BIN_WIDTH}d}"
        tail = "".join(str(self._rng.randrange(10)) for _ in range(TOKEN_LENGTH - TOKEN_BIN_WIDTH))
        return head + tail

    def issuing_networks(self, token: CardToken) -> List[CardNetwork]:
        """
        Supported networks that own the token's BIN.

        Only these networks can be sent the token value; a network added
        after issuance sees the card by PAN.
        """
        owners: List[CardNetwork] = []
        for r in self._ranges:
            if r.network in owners or not token.supports(r.network):
                continue
            if r.start_bin <= token.token_bin <= r.end_bin:
                owners.append(r.network)
        return owners

    # -- lookups ----------------------------------------------------------

    def get_by_reference(self, token_reference: str) -> Optional[CardToken]:
        return self.store.find_by_reference(token_reference)

    def find_by_value(self, token_value: str) -> Optional[CardToken]:
        return self.store.find_by_value(token_value)

    def is_active(self, token_reference: str) -> bool:
        with self._locks.hold(token_reference):
            token = self.store.find_by_reference(token_reference)
            if token is None:
                return False
            self._expire_if_due(token)
            return token.is_active(self._clock())

    def detokenize(self, token_reference: str) -> Optional[CardDetails]:
        """Recover card details for an active token. Unknown or inactive tokens yield None."""
        with self._locks.hold(token_reference):
            token = self.store.find_by_reference(token_reference)
            if token is None:
                return None
            self._expire_if_due(token)
            if not token.is_active(self._clock()):
                logger.warning("Attempted to detokenize inactive token %s", token_reference)
                return None

        pan = self.codec.reveal(token.protected_pan)
        if pan is None:
            logger.warning("Stored PAN for token %s could not be revealed", token_reference)
            return None
        return CardDetails(
            card_number=pan,
            cardholder_name=None,
            expiry_month=token.expiry_month,
            expiry_year=token.expiry_year,
        )

    # -- lifecycle --------------------------------------------------------

    def set_status(self, token_reference: str, status: TokenStatus) -> Optional[CardToken]:
        with self._locks.hold(token_reference):
            token = self.store.find_by_reference(token_reference)
            if token is None:
                return None
            self._expire_if_due(token)
            if status == token.status:
                return token
            if status not in _TOKEN_TRANSITIONS[token.status]:
                raise TokenError(f"Token {token_reference} cannot change from {token.status.value} to {status.value}")

            token.status = status
            if status == TokenStatus.DELETED:
                self.store.delete_by_reference(token_reference)
            else:
                self.store.save(token)
        logger.info("Updated token %s status to %s", token_reference, status.value)
        return token

    def add_network(self, token_reference: str, network: CardNetwork) -> Optional[CardToken]:
        with self._locks.hold(token_reference):
            token = self.store.find_by_reference(token_reference)
            if token is None:
                return None
            token.add_network(network)
            self.store.save(token)
        logger.info("Added network %s to token %s", network.value, token_reference)
        return token

    def refresh(self, token_reference: str, extra_months: int) -> Optional[CardToken]:
        """Extend expiry by `extra_months` (from now if already lapsed) and force status back to ACTIVE"""
        if extra_months <= 0:
            raise TokenError("Token validity extension must be a positive number of months")
        with self._locks.hold(token_reference):
            token = self.store.find_by_reference(token_reference)
            if token is None:
                return None
            now = self._clock()
            base = token.expires_at if token.expires_at and token.expires_at > now else now
            token.expires_at = add_months(base, extra_months)
            token.status = TokenStatus.ACTIVE
            self.store.save(token)
        logger.info("Refreshed token %s expiry to %s", token_reference, token.expires_at.isoformat())
        return token

    def delete(self, token_reference: str) -> bool:
        with self._locks.hold(token_reference):
            if not self.store.exists_by_reference(token_reference):
                return False
            self.store.delete_by_reference(token_reference)
        logger.info("Deleted token %s", token_reference)
        return True

    def _expire_if_due(self, token: CardToken) -> None:
        if token.status in (TokenStatus.ACTIVE, TokenStatus.SUSPENDED) and token.is_past_expiry(self._clock()):
            token.status = TokenStatus.EXPIRED
            self.store.save(token)
            logger.info("Token %s expired", token.token_reference)
