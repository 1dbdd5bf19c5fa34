from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import NotCollateralOwner, TokenAlreadyMinted

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollateralRef:
    contract: str
    token_id: int

    def __str__(self) -> str:
        return f"{self.contract}#{self.token_id}"


class NftRegistry:
    """
    ERC-721-style ownership table for the collections the protocol can lock.

    Only ``transfer`` moves tokens; it refuses when the sender is not the
    current owner, so collateral can never be duplicated or lost.
    """

    def __init__(self) -> None:
        self._owners: Dict[CollateralRef, str] = {}
        self._lock = threading.Lock()

    def mint(self, ref: CollateralRef, owner: str) -> None:
        with self._lock:
            if ref in self._owners:
                raise TokenAlreadyMinted(f"Token {ref} already minted")
            self._owners[ref] = owner
        log.debug("Minted %s to %s", ref, owner)

    def owner_of(self, ref: CollateralRef) -> Optional[str]:
        with self._lock:
            return self._owners.get(ref)

    def transfer(self, ref: CollateralRef, sender: str, to: str) -> None:
        with self._lock:
            current = self._owners.get(ref)
            if current != sender:
                raise NotCollateralOwner(f"{sender} does not own {ref} (owner: {current})")
            self._owners[ref] = to
        log.debug("Transferred %s from %s to %s", ref, sender, to)

    def tokens_of(self, owner: str) -> List[CollateralRef]:
        with self._lock:
            refs = [ref for ref, o in self._owners.items() if o == owner]
        return sorted(refs, key=lambda r: (r.contract, r.token_id))

    def items(self) -> List[Tuple[CollateralRef, str]]:
        with self._lock:
            return list(self._owners.items())
