from __future__ import annotations

from dataclasses import dataclass

from ens_indexer.app.application.services.block_scanner import BlockScanner, RangeResult


@dataclass(frozen=True)
class BlockRange:
    from_block: int
    to_block: int

    def validate(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise ValueError("Block numbers must be non-negative")
        if self.from_block > self.to_block:
            raise ValueError("from_block must be <= to_block")


async def reindex_block_range(
    *,
    scanner: BlockScanner,
    block_range: BlockRange,
    batch_size: int = 100,
) -> list[RangeResult]:
    """
    Replay decode + reconcile over a fixed block range.

    The scanner's cursor is neither read nor written; every write on this
    path is idempotent, so replaying an indexed range is safe.
    """
    block_range.validate()
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    results: list[RangeResult] = []
    start = block_range.from_block
    while start <= block_range.to_block:
        end = min(start + batch_size - 1, block_range.to_block)
        results.append(await scanner.process_range(from_block=start, to_block=end))
        start = end + 1
    return results
