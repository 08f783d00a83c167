"""The shared ledger of transaction blocks and the process that fills it."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

REGISTRY_SIZE = 1000
BLOCK_SIZE = 10


@dataclass(frozen=True)
class Transaction:
    """A transfer of amount from sender to receiver, with the node's reward."""

    timestamp: int
    sender: int
    receiver: int
    amount: int
    reward: int = 0


@dataclass(frozen=True)
class Block:
    """A block of transactions; the last one pays the node that made it."""

    id: int
    transactions: tuple[Transaction, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "transactions", tuple(self.transactions))

    @property
    def payments(self) -> tuple[Transaction, ...]:
        return self.transactions[:-1]

    @property
    def reward_transaction(self) -> Transaction:
        return self.transactions[-1]


class LedgerFullError(Exception):
    """Raised when a block is appended to a ledger at capacity."""


class Ledger:
    """An append-only sequence of blocks with a fixed capacity."""

    def __init__(self, capacity: int = REGISTRY_SIZE, block_size: int = BLOCK_SIZE) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        if block_size < 2:
            raise ValueError("block size must leave room for a reward transaction")
        self.capacity = capacity
        self.block_size = block_size
        self._blocks: list[Block] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._blocks)

    def __getitem__(self, index: int) -> Block:
        with self._lock:
            return self._blocks[index]

    def __iter__(self) -> Iterator[Block]:
        with self._lock:
            snapshot = tuple(self._blocks)
        return iter(snapshot)

    def is_full(self) -> bool:
        with self._lock:
            return len(self._blocks) >= self.capacity

    def append(self, block: Block) -> None:
        """Store the next block; its id must equal its position."""
        if len(block.transactions) != self.block_size:
            raise ValueError(
                f"block holds {len(block.transactions)} transactions, expected {self.block_size}"
            )
        with self._lock:
            if len(self._blocks) >= self.capacity:
                raise LedgerFullError(f"ledger holds {self.capacity} blocks")
            if block.id != len(self._blocks):
                raise ValueError(f"block id {block.id} does not match position {len(self._blocks)}")
            self._blocks.append(block)

    def user_balance(self, user_id: int, initial: int = 0) -> int:
        """Initial budget plus payments received, less payments sent."""
        balance = initial
        for block in self:
            for tx in block.payments:
                if tx.receiver == user_id:
                    balance += tx.amount
                elif tx.sender == user_id:
                    balance -= tx.amount
        return balance

    def node_balance(self, node_id: int) -> int:
        """Total of the block rewards paid to a node."""
        return sum(
            block.reward_transaction.amount
            for block in self
            if block.reward_transaction.receiver == node_id
        )


class LedgerKeeper:
    """Gathers submitted transactions into blocks and writes them to a ledger."""

    def __init__(self, ledger: Ledger | None = None, poll_interval: float = 0.05) -> None:
        self.ledger = ledger if ledger is not None else Ledger()
        self._incoming: queue.Queue[Transaction] = queue.Queue()
        self._stopped = threading.Event()
        self._poll_interval = poll_interval

    @property
    def pending(self) -> int:
        return self._incoming.qsize()

    def submit(self, transaction: Transaction) -> None:
        """Queue a transaction for the next block."""
        self._incoming.put(transaction)

    def _collect(self) -> Sequence[Transaction] | None:
        batch: list[Transaction] = []
        while len(batch) < self.ledger.block_size:
            if self._stopped.is_set():
                return None
            try:
                batch.append(self._incoming.get(timeout=self._poll_interval))
            except queue.Empty:
                continue
        return batch

    def run(self) -> None:
        """Write blocks until stopped or the ledger is full."""
        while not self._stopped.is_set() and not self.ledger.is_full():
            batch = self._collect()
            if batch is None:
                break
            self.ledger.append(Block(len(self.ledger), tuple(batch)))

    def stop(self) -> None:
        """Ask run to return; a partly gathered block is dropped."""
        self._stopped.set()