"""Typed mailboxes shared by the simulation's participants."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Hashable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class MessageKind(IntEnum):
    """What a message carries; selects which messages a receive takes."""

    TRANSACTION = 1
    REJECTED = 2
    LEDGER = 3
    FRIEND = 4
    NEW_FRIEND = 5


@dataclass(frozen=True)
class Message:
    """A message in a mailbox; hops counts relays between friend nodes."""

    kind: MessageKind
    body: Any = None
    hops: int = 0


class MailboxNotFound(KeyError):
    """Raised when a mailbox does not exist or was removed."""


class PostOffice:
    """A set of FIFO mailboxes keyed by address, safe across threads."""

    def __init__(self) -> None:
        self._boxes: dict[Hashable, deque[Message]] = {}
        self._cond = threading.Condition()

    def __contains__(self, address: Hashable) -> bool:
        with self._cond:
            return address in self._boxes

    def register(self, address: Hashable) -> None:
        """Create the mailbox for address if it does not exist yet."""
        with self._cond:
            self._boxes.setdefault(address, deque())

    def unregister(self, address: Hashable) -> bool:
        """Remove a mailbox and its messages; return whether it existed."""
        with self._cond:
            removed = self._boxes.pop(address, None) is not None
            if removed:
                self._cond.notify_all()
            return removed

    def _box(self, address: Hashable) -> deque[Message]:
        try:
            return self._boxes[address]
        except KeyError:
            raise MailboxNotFound(address) from None

    def send(self, address: Hashable, message: Message) -> None:
        """Append a message to the mailbox at address."""
        with self._cond:
            self._box(address).append(message)
            self._cond.notify_all()

    def receive(
        self,
        address: Hashable,
        kind: MessageKind | None = None,
        block: bool = True,
        timeout: float | None = None,
    ) -> Message | None:
        """Take the oldest message of the given kind (any kind if None).

        Returns None when nothing arrives: at once if block is false,
        otherwise after timeout seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                box = self._box(address)
                for message in box:
                    if kind is None or message.kind == kind:
                        box.remove(message)
                        return message
                if not block:
                    return None
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._cond.wait(remaining)