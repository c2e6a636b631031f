"""Contract introspection results persisted with a freshness window."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from ..classification import classify_error, describe_error
from ..constants import (
    CONTRACT_FRESHNESS_HOURS,
    GET_OWNER_SIGNATURE,
    OWNER_SIGNATURE,
    Operation,
)
from ..exceptions import ValidationError
from ..rpc.config import CacheTTLConfig
from ..rpc.pool import EndpointPool
from ..types import ContractValidationResult, ErrorKind, ValidatedContract
from ..utils import encode_call, is_valid_address, to_checksum

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _store_key(address: str, network_id: int) -> str:
    return f"{network_id}:{address.lower()}"


class ContractStore(ABC):
    """Persistence boundary for validated-contract entries."""

    @abstractmethod
    def get(self, address: str, network_id: int) -> ValidatedContract | None:
        pass

    @abstractmethod
    def put(self, contract: ValidatedContract) -> None:
        pass

    @abstractmethod
    def entries(self) -> list[ValidatedContract]:
        pass

    @abstractmethod
    def replace_all(self, contracts: list[ValidatedContract]) -> None:
        pass

    def clear(self) -> None:
        self.replace_all([])


class InMemoryContractStore(ContractStore):
    def __init__(self) -> None:
        self._entries: dict[str, ValidatedContract] = {}

    def get(self, address: str, network_id: int) -> ValidatedContract | None:
        return self._entries.get(_store_key(address, network_id))

    def put(self, contract: ValidatedContract) -> None:
        self._entries[_store_key(contract.address, contract.network_id)] = contract

    def entries(self) -> list[ValidatedContract]:
        return list(self._entries.values())

    def replace_all(self, contracts: list[ValidatedContract]) -> None:
        self._entries = {_store_key(c.address, c.network_id): c for c in contracts}


class JsonFileContractStore(ContractStore):
    """Store entries in a single JSON document keyed by ``network:address``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def get(self, address: str, network_id: int) -> ValidatedContract | None:
        payload = self._load().get(_store_key(address, network_id))
        return ValidatedContract.from_dict(payload) if payload else None

    def put(self, contract: ValidatedContract) -> None:
        payload = self._load()
        payload[_store_key(contract.address, contract.network_id)] = contract.to_dict()
        self._save(payload)

    def entries(self) -> list[ValidatedContract]:
        return [ValidatedContract.from_dict(item) for item in self._load().values()]

    def replace_all(self, contracts: list[ValidatedContract]) -> None:
        self._save({_store_key(c.address, c.network_id): c.to_dict() for c in contracts})

    def _load(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise ValidationError(
                "Contract store is not valid JSON",
                field="contract_store_path",
                value=str(self._path),
                details={"error": str(exc)},
            ) from exc
        if not isinstance(payload, dict):
            raise ValidationError(
                "Contract store must contain a JSON object",
                field="contract_store_path",
                value=str(self._path),
            )
        return payload

    def _save(self, payload: dict[str, dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


class ContractValidationCache:
    """Validate contract addresses, reusing results younger than the freshness window.

    Only entries marked valid are served from the store; anything else is
    re-probed on-chain and the stored entry is overwritten.
    """

    def __init__(
        self,
        pool: EndpointPool,
        store: ContractStore,
        *,
        network_id: int,
        ttl: CacheTTLConfig,
        freshness_hours: float = CONTRACT_FRESHNESS_HOURS,
        clock: Clock = _utcnow,
    ) -> None:
        self._pool = pool
        self._store = store
        self._network_id = network_id
        self._ttl = ttl
        self._freshness = timedelta(hours=freshness_hours)
        self._clock = clock

    @property
    def store(self) -> ContractStore:
        return self._store

    def is_fresh(self, contract: ValidatedContract) -> bool:
        try:
            validated_at = datetime.fromisoformat(contract.validated_at)
        except ValueError:
            return False
        if validated_at.tzinfo is None:
            validated_at = validated_at.replace(tzinfo=timezone.utc)
        return self._clock() - validated_at < self._freshness

    def get_cached(self, address: str, network_id: int | None = None) -> ValidatedContract | None:
        return self._store.get(address, network_id or self._network_id)

    async def validate(
        self, address: str, network_id: int | None = None
    ) -> ContractValidationResult:
        network = network_id or self._network_id
        if not is_valid_address(address):
            return ContractValidationResult(is_valid=False, error="Invalid contract address format")

        cached = self._store.get(address, network)
        if cached is not None and cached.is_valid and self.is_fresh(cached):
            logger.debug("Using cached validation for %s on network %s", address, network)
            return cached.as_result()

        try:
            result = await self._probe(to_checksum(address))
        except Exception as exc:
            logger.warning("Contract validation failed for %s: %s", address, exc)
            return ContractValidationResult(is_valid=False, error=describe_error(exc))

        self._store.put(
            ValidatedContract(
                address=address.lower(),
                network_id=network,
                is_valid=result.is_valid,
                contract_type=result.contract_type or "unknown",
                validated_at=self._clock().isoformat(),
                name=result.name,
                symbol=result.symbol,
                decimals=result.decimals,
            )
        )
        logger.info(
            "Validated %s on network %s: %s", address, network, result.contract_type or "invalid"
        )
        return result

    def clear_expired(self) -> int:
        entries = self._store.entries()
        kept = [entry for entry in entries if self.is_fresh(entry)]
        self._store.replace_all(kept)
        return len(entries) - len(kept)

    def clear(self) -> None:
        self._store.clear()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    async def _probe(self, address: str) -> ContractValidationResult:
        code = await self._pool.execute(Operation.GET_CODE, (address,))
        if code in ("0x", ""):
            return ContractValidationResult(is_valid=False, error="Address is not a contract")

        try:
            info = await self._pool.execute(
                Operation.GET_TOKEN_INFO, (address,), ttl=self._ttl.token_info
            )
        except Exception as exc:
            if classify_error(exc) is not ErrorKind.EXECUTION_REVERTED:
                raise
            logger.debug("%s does not answer the ERC-20 metadata calls", address)
        else:
            if info.get("name") and info.get("symbol"):
                return ContractValidationResult(
                    is_valid=True,
                    contract_type="ERC20",
                    name=str(info["name"]),
                    symbol=str(info["symbol"]),
                    decimals=int(info["decimals"]),
                )

        for signature in (OWNER_SIGNATURE, GET_OWNER_SIGNATURE):
            if await self._answers_owner(address, signature):
                return ContractValidationResult(
                    is_valid=True, contract_type="Ownable", name="Unknown Contract"
                )

        return ContractValidationResult(is_valid=True, contract_type="Unknown", name="Unknown Contract")

    async def _answers_owner(self, address: str, signature: str) -> bool:
        try:
            raw = await self._pool.execute(
                Operation.CALL, ({"to": address, "data": encode_call(signature)},)
            )
        except Exception as exc:
            if classify_error(exc) is not ErrorKind.EXECUTION_REVERTED:
                raise
            return False

        payload = bytes.fromhex(str(raw).removeprefix("0x"))
        if len(payload) < 32:
            return False
        try:
            abi_decode(["address"], payload[:32])
        except DecodingError:
            return False
        return True
