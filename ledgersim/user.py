"""Users: spend their budget by sending transactions to random nodes."""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable, Sequence

from .config import Config
from .ledger import Ledger, Transaction
from .messages import MailboxNotFound, Message, MessageKind, PostOffice


def compute_reward(amount: int, reward_percent: int) -> int:
    """The node's share of a transfer: a percentage, at least 1."""
    return max(int(amount * (reward_percent * 0.01)), 1)


class User:
    """A user that keeps sending money while it can afford to."""

    def __init__(
        self,
        user_id: int,
        config: Config,
        post_office: PostOffice,
        ledger: Ledger,
        users: Sequence[int],
        nodes: Sequence[int],
        rng: random.Random | None = None,
        active_count: Callable[[], int] | None = None,
        on_exit: Callable[[int], None] | None = None,
        start_delay: float = 1.0,
    ) -> None:
        self.id = user_id
        self.config = config
        self.post_office = post_office
        self.ledger = ledger
        self.users = users
        self.nodes = nodes
        self.spent = 0
        self.retries = 0
        self._rng = rng or random.Random()
        self._active_count = active_count or (lambda: sum(1 for u in self.users if u))
        self._on_exit = on_exit
        self._start_delay = start_delay
        self._stopped = threading.Event()
        post_office.register(user_id)

    def _collect_refunds(self) -> None:
        while True:
            try:
                message = self.post_office.receive(self.id, MessageKind.REJECTED, block=False)
            except MailboxNotFound:
                return
            if message is None:
                return
            rejected: Transaction = message.body
            self.spent -= rejected.amount + rejected.reward

    def balance(self) -> int:
        """Initial budget plus money received, less money spent.

        Transactions that nodes turned away are refunded first.
        """
        self._collect_refunds()
        received = sum(
            tx.amount
            for block in self.ledger
            for tx in block.payments
            if tx.receiver == self.id
        )
        return self.config.budget_init + received - self.spent

    def make_transaction(self) -> Transaction:
        """Send a random part of the budget to a random user via a random node."""
        budget = self.balance()
        if budget < 2:
            raise ValueError(f"budget {budget} is too small for a transaction")
        receivers = [u for u in self.users if u and u != self.id]
        if not receivers:
            raise ValueError("no other user to pay")
        nodes = [n for n in self.nodes if n]
        if not nodes:
            raise ValueError("no node to send the transaction to")
        receiver = self._rng.choice(receivers)
        node = self._rng.choice(nodes)
        amount = self._rng.randint(2, budget)
        reward = compute_reward(amount, self.config.reward)
        transaction = Transaction(
            timestamp=int(time.time()),
            sender=self.id,
            receiver=receiver,
            amount=amount - reward,
            reward=reward,
        )
        self.post_office.send(node, Message(MessageKind.TRANSACTION, transaction))
        self.spent += amount
        return transaction

    def _pause(self) -> bool:
        nsec = self._rng.randint(self.config.min_trans_gen_nsec, self.config.max_trans_gen_nsec)
        return self._stopped.wait(nsec / 1_000_000_000)

    def run(self) -> None:
        """Trade until stopped, out of money after all retries, or alone."""
        exited = False
        if not self._stopped.wait(self._start_delay):
            while not self._stopped.is_set():
                budget = self.balance()
                others = self._active_count() > 1
                if not others:
                    exited = True
                    break
                if budget >= 2:
                    try:
                        self.make_transaction()
                    except (MailboxNotFound, ValueError):
                        exited = True
                        break
                    self.retries = 0
                elif self.retries < self.config.retry:
                    self.retries += 1
                else:
                    exited = True
                    break
                if self._pause():
                    break
        if exited and self._on_exit is not None:
            self._on_exit(self.id)

    def stop(self) -> None:
        """Ask run to return."""
        self._stopped.set()

    def __repr__(self) -> str:
        return f"User(id={self.id}, spent={self.spent})"