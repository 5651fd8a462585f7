"""Per-provider mapping of raw records onto CanonicalTransaction.

Each provider has exactly one normalizer, chosen by the provider itself rather
than by inspecting the payload. A normalizer returns None for records that
cannot be identified (no signature); any other missing field degrades to a
default instead of failing the record.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from solana_whale_tracker.ingestor.models import (
    CanonicalTransaction,
    Counterparties,
    TransactionKind,
    lamports_to_sol,
    timestamp_from_iso,
    timestamp_from_unix,
    to_decimal,
)

STATUS_CONFIRMED = "confirmed"
STATUS_FAILED = "failed"

SYSTEM_PROGRAM = "system"
SYSTEM_TRANSFER_TYPES = frozenset({"transfer", "transferWithSeed"})

HELIUS_KIND_MAP = {
    "SWAP": TransactionKind.SWAP,
    "BUY": TransactionKind.TOKEN_PURCHASE,
}

SOLSCAN_KIND_MAP = {
    "sol_transfer": TransactionKind.SOL_TRANSFER,
    "transfer": TransactionKind.SOL_TRANSFER,
    "spl_transfer": TransactionKind.TOKEN_TRANSFER,
    "token_transfer": TransactionKind.TOKEN_TRANSFER,
    "swap": TransactionKind.SWAP,
}


class Normalizer(Protocol):
    """Maps one provider-native record to a canonical transaction."""

    source: str

    def normalize(
        self,
        raw: dict[str, Any],
        wallet: str,
        observed_at: datetime,
    ) -> CanonicalTransaction | None:
        """Return the canonical record, or None if the record is unusable."""
        ...


def _first(items: Iterable[Any]) -> Any:
    return next(iter(items), None)


class HeliusNormalizer:
    """Normalizer for Helius enhanced transactions."""

    source = "Helius"

    def normalize(
        self,
        raw: dict[str, Any],
        wallet: str,
        observed_at: datetime,
    ) -> CanonicalTransaction | None:
        signature = raw.get("signature")
        if not signature:
            return None

        native = [
            t
            for t in raw.get("nativeTransfers") or []
            if wallet in (t.get("fromUserAccount"), t.get("toUserAccount"))
        ]
        tokens = [
            t
            for t in raw.get("tokenTransfers") or []
            if wallet in (t.get("fromUserAccount"), t.get("toUserAccount"))
        ]

        amount = to_decimal(raw.get("amount"))
        counterparties = Counterparties(
            sender=raw.get("sourceAddress"),
            receiver=raw.get("destinationAddress"),
        )
        if amount is None and native:
            transfer = native[0]
            amount = lamports_to_sol(transfer.get("amount"))
            counterparties = Counterparties(
                sender=transfer.get("fromUserAccount"),
                receiver=transfer.get("toUserAccount"),
            )
        elif amount is None and tokens:
            transfer = tokens[0]
            amount = to_decimal(transfer.get("tokenAmount"))
            counterparties = Counterparties(
                sender=transfer.get("fromUserAccount"),
                receiver=transfer.get("toUserAccount"),
                mint=transfer.get("mint"),
            )

        return CanonicalTransaction(
            wallet=wallet,
            signature=signature,
            kind=self._kind(raw.get("type"), native, tokens),
            timestamp=timestamp_from_unix(raw.get("timestamp"), observed_at),
            status=self._status(raw),
            amount=amount,
            counterparties=counterparties,
            source_tag=raw.get("source") or self.source,
            observed_at=observed_at,
        )

    @staticmethod
    def _kind(
        tx_type: Any,
        native: list[dict[str, Any]],
        tokens: list[dict[str, Any]],
    ) -> TransactionKind:
        label = str(tx_type or "").upper()
        if label in HELIUS_KIND_MAP:
            return HELIUS_KIND_MAP[label]
        if label == "TRANSFER":
            if native:
                return TransactionKind.SOL_TRANSFER
            if tokens:
                return TransactionKind.TOKEN_TRANSFER
        return TransactionKind.UNKNOWN

    @staticmethod
    def _status(raw: dict[str, Any]) -> str:
        if raw.get("status"):
            return str(raw["status"])
        return STATUS_FAILED if raw.get("transactionError") else STATUS_CONFIRMED


class SolscanNormalizer:
    """Normalizer for the Solscan public transaction API."""

    source = "Solscan"

    def normalize(
        self,
        raw: dict[str, Any],
        wallet: str,
        observed_at: datetime,
    ) -> CanonicalTransaction | None:
        signature = raw.get("txHash")
        if not signature:
            return None

        kind = SOLSCAN_KIND_MAP.get(str(raw.get("txType") or "").lower(), TransactionKind.UNKNOWN)
        return CanonicalTransaction(
            wallet=wallet,
            signature=signature,
            kind=kind,
            timestamp=timestamp_from_unix(raw.get("blockTime"), observed_at),
            status=str(raw.get("status") or STATUS_CONFIRMED).lower(),
            amount=lamports_to_sol(raw.get("lamport")),
            counterparties=Counterparties(sender=raw.get("src"), receiver=raw.get("dst")),
            source_tag=self.source,
            observed_at=observed_at,
        )


class SolanaFMNormalizer:
    """Normalizer for SolanaFM transaction search results."""

    source = "SolanaFM"

    def normalize(
        self,
        raw: dict[str, Any],
        wallet: str,
        observed_at: datetime,
    ) -> CanonicalTransaction | None:
        signature = _first(raw.get("signatures") or [])
        if not signature:
            return None

        instructions = raw.get("instructions") or []
        is_system = any(inst.get("program") == SYSTEM_PROGRAM for inst in instructions)
        transfer = _first(
            inst
            for inst in instructions
            if inst.get("program") == SYSTEM_PROGRAM and inst.get("type") == "transfer"
        )

        return CanonicalTransaction(
            wallet=wallet,
            signature=signature,
            kind=TransactionKind.SOL_TRANSFER if is_system else TransactionKind.UNKNOWN,
            timestamp=timestamp_from_iso(raw.get("blockTime"), observed_at),
            status=STATUS_CONFIRMED if raw.get("success") else STATUS_FAILED,
            amount=lamports_to_sol(transfer.get("amount")) if transfer else None,
            counterparties=Counterparties(sender=raw.get("from"), receiver=raw.get("to")),
            source_tag=self.source,
            observed_at=observed_at,
        )


def account_keys(message: dict[str, Any]) -> list[str]:
    """Account addresses of a transaction message, for any RPC encoding."""
    keys: list[str] = []
    for key in message.get("accountKeys") or []:
        if isinstance(key, str):
            keys.append(key)
        elif isinstance(key, dict) and key.get("pubkey"):
            keys.append(key["pubkey"])
    return keys


def _token_amount(balance: dict[str, Any]) -> Decimal:
    """Decimal-adjusted token amount of a pre/post token balance entry."""
    ui = balance.get("uiTokenAmount") or {}
    raw_amount = to_decimal(ui.get("amount"))
    decimals = ui.get("decimals")
    if raw_amount is not None and isinstance(decimals, int):
        return raw_amount.scaleb(-decimals)
    return to_decimal(ui.get("uiAmountString")) or to_decimal(ui.get("uiAmount")) or Decimal(0)


def token_balance_deltas(meta: dict[str, Any], owner: str) -> dict[str, Decimal]:
    """Net token balance change per mint for ``owner`` within one transaction."""
    deltas: dict[str, Decimal] = {}
    for sign, key in ((-1, "preTokenBalances"), (1, "postTokenBalances")):
        for balance in meta.get(key) or []:
            mint = balance.get("mint")
            if balance.get("owner") != owner or not mint:
                continue
            deltas[mint] = deltas.get(mint, Decimal(0)) + sign * _token_amount(balance)
    return {mint: delta for mint, delta in deltas.items() if delta != 0}


def rpc_signature(raw: dict[str, Any]) -> str | None:
    """First signature of a getTransaction result."""
    transaction = raw.get("transaction") or {}
    return _first(transaction.get("signatures") or [])


def rpc_status(raw: dict[str, Any]) -> str:
    """Confirmation state of a getTransaction result."""
    meta = raw.get("meta") or {}
    return STATUS_FAILED if meta.get("err") else STATUS_CONFIRMED


class SolanaRpcNormalizer:
    """Normalizer for jsonParsed ``getTransaction`` results."""

    source = "Solana RPC"

    def normalize(
        self,
        raw: dict[str, Any],
        wallet: str,
        observed_at: datetime,
    ) -> CanonicalTransaction | None:
        signature = rpc_signature(raw)
        if not signature:
            return None

        meta = raw.get("meta") or {}
        message = (raw.get("transaction") or {}).get("message") or {}

        kind = TransactionKind.UNKNOWN
        amount: Decimal | None = None
        counterparties = Counterparties()

        transfer = self._system_transfer(message.get("instructions") or [], wallet)
        if transfer is not None:
            info = transfer["parsed"].get("info") or {}
            kind = TransactionKind.SOL_TRANSFER
            amount = lamports_to_sol(info.get("lamports"))
            counterparties = Counterparties(
                sender=info.get("source"),
                receiver=info.get("destination"),
            )
        else:
            deltas = token_balance_deltas(meta, wallet)
            if deltas:
                mint, delta = max(deltas.items(), key=lambda item: abs(item[1]))
                kind = TransactionKind.TOKEN_TRANSFER
                amount = abs(delta)
                counterparties = Counterparties(mint=mint)

        return CanonicalTransaction(
            wallet=wallet,
            signature=signature,
            kind=kind,
            timestamp=timestamp_from_unix(raw.get("blockTime"), observed_at),
            status=rpc_status(raw),
            amount=amount,
            counterparties=counterparties,
            source_tag=self.source,
            observed_at=observed_at,
        )

    @staticmethod
    def _system_transfer(
        instructions: list[dict[str, Any]],
        wallet: str,
    ) -> dict[str, Any] | None:
        candidates = [
            inst
            for inst in instructions
            if inst.get("program") == SYSTEM_PROGRAM
            and isinstance(inst.get("parsed"), dict)
            and inst["parsed"].get("type") in SYSTEM_TRANSFER_TYPES
        ]
        for inst in candidates:
            info = inst["parsed"].get("info") or {}
            if wallet in (info.get("source"), info.get("destination")):
                return inst
        return _first(candidates)
