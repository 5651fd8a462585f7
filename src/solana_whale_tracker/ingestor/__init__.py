"""Ingestion layer - rate-limited, retrying, multi-provider wallet fetching."""

from solana_whale_tracker.ingestor.cache import CacheEntry, DedupCache
from solana_whale_tracker.ingestor.fetcher import WalletFetcher
from solana_whale_tracker.ingestor.models import (
    CanonicalTransaction,
    Counterparties,
    TransactionKind,
)
from solana_whale_tracker.ingestor.normalizers import (
    HeliusNormalizer,
    Normalizer,
    SolanaFMNormalizer,
    SolanaRpcNormalizer,
    SolscanNormalizer,
)
from solana_whale_tracker.ingestor.providers import (
    HeliusProvider,
    RpcError,
    SolanaFMProvider,
    SolanaRpcProvider,
    SolscanProvider,
    TransactionProvider,
)
from solana_whale_tracker.ingestor.rate_limiter import RateLimiter
from solana_whale_tracker.ingestor.retry import (
    ErrorClass,
    ProviderError,
    RetryController,
    ThrottledError,
    TransientError,
    classify_error,
)
from solana_whale_tracker.ingestor.swaps import KNOWN_SWAP_PROGRAMS, SwapNormalizer

__all__ = [
    # Cache
    "CacheEntry",
    "DedupCache",
    # Fetcher
    "WalletFetcher",
    # Models
    "CanonicalTransaction",
    "Counterparties",
    "TransactionKind",
    # Normalizers
    "HeliusNormalizer",
    "Normalizer",
    "SolanaFMNormalizer",
    "SolanaRpcNormalizer",
    "SolscanNormalizer",
    "KNOWN_SWAP_PROGRAMS",
    "SwapNormalizer",
    # Providers
    "HeliusProvider",
    "RpcError",
    "SolanaFMProvider",
    "SolanaRpcProvider",
    "SolscanProvider",
    "TransactionProvider",
    # Rate limiting and retry
    "ErrorClass",
    "ProviderError",
    "RateLimiter",
    "RetryController",
    "ThrottledError",
    "TransientError",
    "classify_error",
]
