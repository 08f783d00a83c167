"""Nodes: gather user transactions into blocks and write them to the ledger."""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Hashable, Iterable, Sequence

from .config import Config
from .ledger import LedgerKeeper, Transaction
from .messages import MailboxNotFound, Message, MessageKind, PostOffice

SENDER_REWARD = -1

# Keeps the transactions of one block together in the keeper's queue.
_SUBMIT_LOCK = threading.Lock()


def choose_friends(
    nodes: Iterable[int],
    own: int,
    count: int,
    rng: random.Random | None = None,
) -> list[int]:
    """Pick count distinct nodes other than own; empty slots are skipped."""
    rng = rng or random.Random()
    candidates = list(dict.fromkeys(n for n in nodes if n and n != own))
    if count > len(candidates):
        raise ValueError(f"cannot choose {count} friends among {len(candidates)} nodes")
    return rng.sample(candidates, count)


class Node:
    """A node with a bounded transaction pool and a list of friend nodes."""

    def __init__(
        self,
        node_id: int,
        config: Config,
        post_office: PostOffice,
        keeper: LedgerKeeper,
        friends: Iterable[int] = (),
        master: Hashable | None = None,
        rng: random.Random | None = None,
        poll_interval: float = 0.01,
    ) -> None:
        self.id = node_id
        self.config = config
        self.post_office = post_office
        self.keeper = keeper
        self.master = master
        self.friends: list[int] = list(dict.fromkeys(friends))
        self._rng = rng or random.Random()
        self._pool: list[Transaction] = []
        self._lock = threading.RLock()
        self._stopped = threading.Event()
        self._poll_interval = poll_interval
        post_office.register(node_id)

    @property
    def pool(self) -> tuple[Transaction, ...]:
        with self._lock:
            return tuple(self._pool)

    @property
    def block_size(self) -> int:
        return self.keeper.ledger.block_size

    def accept(self, transaction: Transaction) -> bool:
        """Put a transaction in the pool; False if the pool is full."""
        with self._lock:
            if len(self._pool) >= self.config.tp_size:
                return False
            self._pool.append(transaction)
            return True

    def add_friend(self, node_id: int) -> bool:
        """Add a friend up to the configured maximum; False if not added."""
        with self._lock:
            if node_id == self.id or node_id in self.friends:
                return False
            if len(self.friends) >= self.config.max_num_new_friends:
                return False
            self.friends.append(node_id)
            return True

    def take_block(self) -> tuple[Transaction, ...] | None:
        """Remove a block's worth of transactions and add the reward payment.

        Returns None while the pool holds too few transactions.
        """
        needed = self.block_size - 1
        with self._lock:
            if len(self._pool) < needed:
                return None
            payments = self._pool[:needed]
            del self._pool[:needed]
        reward = Transaction(
            timestamp=int(time.time()),
            sender=SENDER_REWARD,
            receiver=self.id,
            amount=sum(tx.reward for tx in payments),
            reward=0,
        )
        return (*payments, reward)

    def forward_to_friend(self) -> int | None:
        """Hand the newest pooled transaction to a random friend.

        Returns the friend it went to, or None if nothing was sent.
        """
        with self._lock:
            targets = [f for f in self.friends if f != self.id]
            if not self._pool or not targets:
                return None
            transaction = self._pool.pop()
            friend = self._rng.choice(targets)
        if self._post(friend, Message(MessageKind.FRIEND, transaction, hops=1)):
            return friend
        with self._lock:
            self._pool.append(transaction)
        return None

    def _post(self, address: Hashable, message: Message) -> bool:
        try:
            self.post_office.send(address, message)
        except MailboxNotFound:
            return False
        return True

    def _handle_transaction(self, message: Message) -> None:
        transaction: Transaction = message.body
        if not self.accept(transaction):
            self._post(transaction.sender, Message(MessageKind.REJECTED, transaction))

    def _handle_friend(self, message: Message) -> None:
        if self.accept(message.body):
            return
        if message.hops < self.config.hops:
            with self._lock:
                targets = [f for f in self.friends if f != self.id]
            if targets:
                relay = Message(MessageKind.FRIEND, message.body, message.hops + 1)
                self._post(self._rng.choice(targets), relay)
                return
        if self.master is not None:
            self._post(self.master, message)

    def _friend_interval(self) -> float:
        return float(
            self._rng.randint(
                self.config.min_trans_friend_gen_sec, self.config.max_trans_friend_gen_sec
            )
        )

    def _processing_delay(self) -> float:
        nsec = self._rng.randint(self.config.min_trans_proc_nsec, self.config.max_trans_proc_nsec)
        return nsec / 1_000_000_000

    def _poll(self) -> bool:
        busy = False
        message = self.post_office.receive(self.id, MessageKind.TRANSACTION, block=False)
        if message is not None:
            self._handle_transaction(message)
            busy = True
        message = self.post_office.receive(self.id, MessageKind.NEW_FRIEND, block=False)
        if message is not None:
            self.add_friend(message.body)
            busy = True
        message = self.post_office.receive(self.id, MessageKind.FRIEND, block=False)
        if message is not None:
            self._handle_friend(message)
            busy = True
        return busy

    def run(self) -> None:
        """Serve the mailbox and write blocks until stopped."""
        next_forward = time.monotonic() + self._friend_interval()
        while not self._stopped.is_set():
            try:
                busy = self._poll()
            except MailboxNotFound:
                break
            if time.monotonic() >= next_forward:
                self.forward_to_friend()
                next_forward = time.monotonic() + self._friend_interval()
            block = self.take_block()
            if block is not None:
                if self._stopped.wait(self._processing_delay()):
                    break
                with _SUBMIT_LOCK:
                    for transaction in block:
                        self.keeper.submit(transaction)
                busy = True
            if not busy:
                self._stopped.wait(self._poll_interval)

    def stop(self) -> None:
        """Ask run to return."""
        self._stopped.set()

    def __repr__(self) -> str:
        return f"Node(id={self.id}, pool={len(self.pool)}, friends={self.friends})"


def _friends_of(nodes: Sequence[Node]) -> dict[int, list[int]]:
    return {node.id: list(node.friends) for node in nodes}