"""DEX swap detection over raw Solana RPC transactions.

Only transactions that touch a known swap program and leave the watched wallet
holding more of some token than before are kept; everything else is dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from solana_whale_tracker.ingestor.models import (
    CanonicalTransaction,
    Counterparties,
    TransactionKind,
    timestamp_from_unix,
)
from solana_whale_tracker.ingestor.normalizers import (
    account_keys,
    rpc_signature,
    rpc_status,
    token_balance_deltas,
)

logger = logging.getLogger(__name__)

# Program id -> display name
KNOWN_SWAP_PROGRAMS: dict[str, str] = {
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QUrLucdn": "Jupiter",
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8": "Raydium",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK": "Raydium CLMM",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc": "Orca",
    "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P": "Pump.fun",
    "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo": "Meteora",
}


def matched_program(raw: dict[str, Any], programs: Mapping[str, str]) -> str | None:
    """Return the name of the first known swap program the transaction touches."""
    message = (raw.get("transaction") or {}).get("message") or {}
    referenced = set(account_keys(message))
    for inst in message.get("instructions") or []:
        program_id = inst.get("programId")
        if program_id:
            referenced.add(program_id)
    for inner in (raw.get("meta") or {}).get("innerInstructions") or []:
        for inst in inner.get("instructions") or []:
            program_id = inst.get("programId")
            if program_id:
                referenced.add(program_id)

    for program_id, name in programs.items():
        if program_id in referenced:
            return name
    return None


class SwapNormalizer:
    """Turns swap transactions into TOKEN_PURCHASE records.

    A record is produced only when the transaction references one of
    ``programs`` and the wallet's balance of some mint grew by strictly more
    than ``min_increase``. When several mints qualify, the largest increase
    wins so each signature yields at most one record.
    """

    source = "DEX"

    def __init__(
        self,
        programs: Mapping[str, str] | None = None,
        *,
        min_increase: Decimal = Decimal(0),
    ) -> None:
        """Initialize the normalizer.

        Args:
            programs: Known swap program ids mapped to display names.
            min_increase: Token balance increase that must be exceeded.
        """
        self.programs = dict(KNOWN_SWAP_PROGRAMS if programs is None else programs)
        self.min_increase = min_increase

    def normalize(
        self,
        raw: dict[str, Any],
        wallet: str,
        observed_at: datetime,
    ) -> CanonicalTransaction | None:
        signature = rpc_signature(raw)
        if not signature:
            return None

        program = matched_program(raw, self.programs)
        if program is None:
            return None

        increases = {
            mint: delta
            for mint, delta in token_balance_deltas(raw.get("meta") or {}, wallet).items()
            if delta > self.min_increase
        }
        if not increases:
            logger.debug("Swap %s via %s has no qualifying balance increase", signature, program)
            return None

        mint, amount = max(increases.items(), key=lambda item: item[1])
        return CanonicalTransaction(
            wallet=wallet,
            signature=signature,
            kind=TransactionKind.TOKEN_PURCHASE,
            timestamp=timestamp_from_unix(raw.get("blockTime"), observed_at),
            status=rpc_status(raw),
            amount=amount,
            counterparties=Counterparties(mint=mint),
            source_tag=program,
            observed_at=observed_at,
        )
