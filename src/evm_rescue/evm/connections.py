"""Signer session for the rescue client."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, cast

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes

from ..base import TransactionSigner
from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class LocalAccountSigner(TransactionSigner):
    """Sign with an in-process ``eth_account`` key."""

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @classmethod
    def from_key(cls, private_key: str) -> LocalAccountSigner:
        try:
            account = cast(LocalAccount, Account.from_key(private_key))  # type: ignore[arg-type]
        except Exception as exc:
            raise AuthenticationError(
                "Failed to derive signer account from provided private key",
                details={"error": type(exc).__name__},
            ) from exc
        return cls(account)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, transaction: Mapping[str, Any]) -> str:
        signed = self._account.sign_transaction(dict(transaction))
        return HexBytes(signed.raw_transaction).to_0x_hex()


class SignerSession:
    """Hold the active signer; every write path goes through :attr:`signer`."""

    def __init__(self, signer: TransactionSigner | None = None) -> None:
        self._signer = signer

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def load_private_key(self, private_key: str) -> str:
        self._signer = LocalAccountSigner.from_key(private_key)
        logger.info("Signer initialised for %s", self._signer.address)
        return self._signer.address

    def attach(self, signer: TransactionSigner) -> None:
        self._signer = signer
        logger.info("Attached external signer for %s", signer.address)

    def clear(self) -> None:
        self._signer = None

    def is_active(self) -> bool:
        return self._signer is not None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def signer(self) -> TransactionSigner:
        if self._signer is None:
            raise AuthenticationError("Wallet is not initialised; import a private key first")
        return self._signer

    @property
    def address(self) -> str:
        return self.signer.address

    def sign(self, transaction: Mapping[str, Any]) -> str:
        return self.signer.sign_transaction(transaction)
