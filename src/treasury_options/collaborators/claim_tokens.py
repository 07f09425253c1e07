"""Claim token store: ownership and packed attributes of minted claims.

Transfer and enumeration mechanics belong to the token itself. The
engine only mints, burns, reads attributes and rewrites the attribute
word after a redemption. Attributes cross this boundary as a single
packed integer; ClaimAttributes does the packing.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Dict, Optional

from treasury_options.errors import NotTokenOwner, TokenNotFound


class ClaimTokenStore(abc.ABC):
    """Storage contract for claim tokens."""

    @abc.abstractmethod
    def mint(self, owner: str, packed_attributes: int) -> int:
        """Mint a token and return its id."""

    @abc.abstractmethod
    def burn(self, token_id: int) -> None:
        """Destroy a token."""

    @abc.abstractmethod
    def attributes_of(self, token_id: int) -> int:
        """Packed attribute word of a token."""

    @abc.abstractmethod
    def set_attributes(self, token_id: int, packed_attributes: int) -> None:
        """Replace the attribute word (redemption only)."""

    @abc.abstractmethod
    def owner_of(self, token_id: int) -> str:
        """Current holder of a token."""


@dataclass
class _TokenEntry:
    owner: str
    packed: int


class InMemoryClaimTokenStore(ClaimTokenStore):
    """Dict-backed token store with sequential ids starting at 1."""

    def __init__(self) -> None:
        self._tokens: Dict[int, _TokenEntry] = {}
        self._next_id = 1

    def mint(self, owner: str, packed_attributes: int) -> int:
        token_id = self._next_id
        self._next_id += 1
        self._tokens[token_id] = _TokenEntry(owner=owner, packed=packed_attributes)
        return token_id

    def burn(self, token_id: int) -> None:
        self._get(token_id)
        del self._tokens[token_id]

    def attributes_of(self, token_id: int) -> int:
        return self._get(token_id).packed

    def set_attributes(self, token_id: int, packed_attributes: int) -> None:
        self._get(token_id).packed = packed_attributes

    def owner_of(self, token_id: int) -> str:
        return self._get(token_id).owner

    def exists(self, token_id: int) -> bool:
        return token_id in self._tokens

    def transfer(self, sender: str, to: str, token_id: int) -> None:
        entry = self._get(token_id)
        if entry.owner != sender:
            raise NotTokenOwner(f"{sender} does not own claim token {token_id}")
        entry.owner = to

    def tokens_of(self, owner: str) -> list[int]:
        return [tid for tid, entry in self._tokens.items() if entry.owner == owner]

    def _get(self, token_id: int) -> _TokenEntry:
        entry: Optional[_TokenEntry] = self._tokens.get(token_id)
        if entry is None:
            raise TokenNotFound(f"Unknown claim token: {token_id}")
        return entry
