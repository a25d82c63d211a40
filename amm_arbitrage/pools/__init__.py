"""
Pool handles for the supported AMM protocol variants.
"""

from typing import Any, Dict, Optional

from ..constants import PoolType
from ..exceptions import ConfigurationError, ValidationError
from .base import PoolHandle, ReserveFetcher
from .constant_product import ConstantProductPool
from .stable_swap import StableSwapPool
from .weighted import WeightedPool

__all__ = [
    "PoolHandle",
    "ReserveFetcher",
    "ConstantProductPool",
    "StableSwapPool",
    "WeightedPool",
    "build_pool",
]


def build_pool(spec: Dict[str, Any], fetcher: Optional[ReserveFetcher] = None) -> PoolHandle:
    """
    Construct a pool handle from a plain mapping (e.g. one YAML list entry).

    Expected keys: ``address``, ``tokens``, ``reserves`` and optionally
    ``type`` (default constant_product), ``fee_bps``, ``amplification``
    and ``weights``.
    """
    try:
        pool_type = PoolType(spec.get("type", PoolType.CONSTANT_PRODUCT.value))
    except ValueError:
        raise ConfigurationError(f"Unknown pool type: {spec.get('type')}")

    try:
        address = spec["address"]
        tokens = list(spec["tokens"])
        reserves = [int(r) for r in spec["reserves"]]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid pool definition {spec!r}: {e}")

    kwargs: Dict[str, Any] = {"fetcher": fetcher}
    if "fee_bps" in spec:
        kwargs["fee_bps"] = int(spec["fee_bps"])

    try:
        if pool_type is PoolType.STABLE_SWAP:
            return StableSwapPool(
                address,
                tokens,
                reserves,
                amplification=int(spec.get("amplification", 100)),
                **kwargs,
            )
        if pool_type is PoolType.WEIGHTED:
            weights = spec.get("weights") or [1] * len(tokens)
            return WeightedPool(address, tokens, reserves, weights=weights, **kwargs)
        return ConstantProductPool(address, tokens, reserves, **kwargs)
    except ValidationError as e:
        raise ConfigurationError(str(e), details=e.details)
