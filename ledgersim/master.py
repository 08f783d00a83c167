"""The master: starts the participants, reports balances and ends the run."""

from __future__ import annotations

import argparse
import itertools
import random
import sys
import threading
import time
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import TextIO

from .config import Config, load_config
from .ledger import REGISTRY_SIZE, Ledger, LedgerKeeper
from .messages import Message, MessageKind, PostOffice
from .node import Node, choose_friends
from .user import User

MASTER_ADDRESS = "master"
_SUMMARY_HEAD = 4
_SUMMARY_LIMIT = 8
_CLEAR_SCREEN = "\033[H\033[2J"


class EndReason(Enum):
    """Why a simulation stopped, with the text reported for it."""

    LEDGER_FULL = "Il libro mastro ha raggiunto la capienza massima."
    USERS_TERMINATED = "Tutti i processi utente sono terminati."
    TIME_LIMIT = "La simulazione ha raggiunto la durata massima limite."

    @property
    def message(self) -> str:
        return self.value


def rank(balances: Mapping[int, int] | Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Return (id, balance) pairs ordered from the largest balance down."""
    pairs = balances.items() if isinstance(balances, Mapping) else balances
    return sorted(pairs, key=lambda pair: pair[1], reverse=True)


def _summary(ranking: Sequence[tuple[int, int]]) -> list[tuple[int, int]]:
    if len(ranking) <= _SUMMARY_LIMIT:
        return list(ranking)
    return [*ranking[:_SUMMARY_HEAD], *ranking[-_SUMMARY_HEAD:]]


def format_snapshot(
    active_users: int,
    user_ranking: Sequence[tuple[int, int]],
    node_ranking: Sequence[tuple[int, int]],
) -> str:
    """Render the periodic status: active users, then richest and poorest."""
    lines = [f"Processi utente a nodo attivi: {active_users}"]
    lines += [f"Utente {uid}: budget -> {budget}" for uid, budget in _summary(user_ranking)]
    lines += [f"Nodo {nid}: budget -> {budget}" for nid, budget in _summary(node_ranking)]
    return "".join(line + "\n" for line in lines) + "\n\n"


class Simulation:
    """One run of users, nodes and a ledger keeper, supervised by the master."""

    def __init__(
        self,
        config: Config,
        *,
        rng: random.Random | None = None,
        ledger_capacity: int = REGISTRY_SIZE,
        tick: float = 1.0,
        user_start_delay: float = 1.0,
        out: TextIO | None = None,
    ) -> None:
        self.config = config
        self.rng = rng or random.Random()
        self.tick = tick
        self.out = out
        self.post_office = PostOffice()
        self.ledger = Ledger(ledger_capacity)
        self.keeper = LedgerKeeper(self.ledger)
        self.users: list[User] = []
        self.nodes: list[Node] = []
        self._user_start_delay = user_start_delay
        self._user_ids: list[int] = []
        self._node_ids: list[int] = []
        self._ids = itertools.count(1)
        self._active = 0
        self._active_lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._started = False
        self._finished = False

    @property
    def active_users(self) -> int:
        with self._active_lock:
            return self._active

    def _user_exited(self, _user_id: int) -> None:
        with self._active_lock:
            self._active -= 1

    def _child_rng(self) -> random.Random:
        return random.Random(self.rng.getrandbits(64))

    def _spawn(self, name: str, target) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def _add_node(self, node_id: int, friends: Iterable[int]) -> Node:
        node = Node(
            node_id,
            self.config,
            self.post_office,
            self.keeper,
            friends=friends,
            master=MASTER_ADDRESS,
            rng=self._child_rng(),
        )
        self.nodes.append(node)
        self._spawn(f"node-{node_id}", node.run)
        return node

    def start(self) -> None:
        """Start the ledger keeper, the nodes and the users."""
        if self._started:
            raise RuntimeError("simulation already started")
        node_ids = [next(self._ids) for _ in range(self.config.nodes_num)]
        friendships = {
            nid: choose_friends(node_ids, nid, self.config.num_friends, self.rng)
            for nid in node_ids
        }
        self._started = True
        self.post_office.register(MASTER_ADDRESS)
        self._spawn("ledger", self.keeper.run)
        self._node_ids.extend(node_ids)
        for nid, friends in friendships.items():
            self._add_node(nid, friends)

        self._user_ids.extend(next(self._ids) for _ in range(self.config.users_num))
        with self._active_lock:
            self._active = len(self._user_ids)
        for uid in self._user_ids:
            user = User(
                uid,
                self.config,
                self.post_office,
                self.ledger,
                self._user_ids,
                self._node_ids,
                rng=self._child_rng(),
                active_count=lambda: self.active_users,
                on_exit=self._user_exited,
                start_delay=self._user_start_delay,
            )
            self.users.append(user)
        for user in self.users:
            self._spawn(f"user-{user.id}", user.run)

    def _admit_new_node(self) -> int | None:
        message = self.post_office.receive(MASTER_ADDRESS, MessageKind.FRIEND, block=False)
        if message is None or len(self.nodes) >= self.config.max_num_new_nodes:
            return None
        existing = list(self._node_ids)
        node_id = next(self._ids)
        friends = choose_friends(
            existing, node_id, min(self.config.num_friends, len(existing)), self.rng
        )
        self._add_node(node_id, friends)
        self._node_ids.append(node_id)
        self.post_office.send(node_id, Message(MessageKind.TRANSACTION, message.body))

        eligible = [
            node
            for node in self.nodes[:-1]
            if len(node.friends) < self.config.max_num_new_friends
        ]
        chosen = self.rng.sample(eligible, min(self.config.num_friends, len(eligible)))
        for node in chosen:
            self.post_office.send(node.id, Message(MessageKind.NEW_FRIEND, node_id))
        return node_id

    def snapshot(self) -> str:
        """Admit a node for an undeliverable transaction, then render balances."""
        if not self._started:
            raise RuntimeError("simulation not started")
        self._admit_new_node()
        budget = self.config.budget_init
        user_ranking = rank({u.id: self.ledger.user_balance(u.id, budget) for u in self.users})
        node_ranking = rank({n.id: self.ledger.node_balance(n.id) for n in list(self.nodes)})
        return format_snapshot(self.active_users, user_ranking, node_ranking)

    def _shutdown(self) -> None:
        if self._finished:
            return
        self._finished = True
        self.keeper.stop()
        for user in self.users:
            user.stop()
        for node in self.nodes:
            node.stop()
        for thread in self._threads:
            thread.join(timeout=5.0)
        for address in [*self._user_ids, *self._node_ids, MASTER_ADDRESS]:
            self.post_office.unregister(address)

    def final_report(self, reason: EndReason) -> str:
        """Stop every participant and render the closing balances."""
        self._shutdown()
        budget = self.config.budget_init
        parts = [
            "\n*** FINE DELLA SIMULAZIONE ***\n\n",
            f"Motivo del termine: {reason.message}\n",
            f"\nNumero di blocchi contenuti nel libro mastro: {len(self.ledger)}\n",
            "\nStampa bilancio dei processi utente:\n",
        ]
        parts += [
            f"Utente {u.id} --> Budget: {self.ledger.user_balance(u.id, budget)}\n"
            for u in self.users
        ]
        parts.append("\nStampa bilancio dei processi nodo:\n")
        parts += [
            f"Nodo {n.id} --> Budget: {self.ledger.node_balance(n.id)}, "
            f"Transazioni rimaste in transaction pool: {len(n.pool)}\n"
            for n in self.nodes
        ]
        premature = len(self.users) - self.active_users
        parts.append(f"\nNumero dei processi utente terminati prematuramente: {premature}\n")
        return "".join(parts)

    def _end_reason(self, deadline: float) -> EndReason | None:
        if self.active_users == 0:
            return EndReason.USERS_TERMINATED
        if self.ledger.is_full():
            return EndReason.LEDGER_FULL
        if time.monotonic() >= deadline:
            return EndReason.TIME_LIMIT
        return None

    def run(self) -> EndReason:
        """Run until the time limit, a full ledger or no active users."""
        out = self.out or sys.stdout
        self.start()
        deadline = time.monotonic() + self.config.sim_sec
        while (reason := self._end_reason(deadline)) is None:
            if getattr(out, "isatty", lambda: False)():
                out.write(_CLEAR_SCREEN)
            out.write(self.snapshot())
            out.flush()
            remaining = deadline - time.monotonic()
            time.sleep(max(0.0, min(self.tick, remaining)))
        out.write(self.final_report(reason))
        out.flush()
        return reason


def main(argv: Sequence[str] | None = None) -> int:
    """Run a simulation with parameters read from a file."""
    parser = argparse.ArgumentParser(description="Run a ledger simulation.")
    parser.add_argument(
        "parameters", nargs="?", default="parameters.txt", help="parameter file"
    )
    args = parser.parse_args(argv)
    try:
        config = load_config(args.parameters)
        Simulation(config).run()
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0