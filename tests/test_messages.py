import threading

import pytest

from ledgersim.messages import MailboxNotFound, Message, MessageKind, PostOffice


@pytest.mark.parametrize(
    "number, kind",
    [
        (1, MessageKind.TRANSACTION),
        (2, MessageKind.REJECTED),
        (3, MessageKind.LEDGER),
        (4, MessageKind.FRIEND),
        (5, MessageKind.NEW_FRIEND),
    ],
)
def test_message_kind_numbers_select_messages(number, kind):
    office = PostOffice()
    office.register("a")
    for value in range(1, 6):
        office.send("a", Message(MessageKind(value), value))
    got = office.receive("a", kind, block=False)
    assert got.kind == number
    assert got.body == number
    assert office.receive("a", kind, block=False) is None


def test_receive_is_fifo_within_kind():
    office = PostOffice()
    office.register("a")
    office.send("a", Message(MessageKind.TRANSACTION, "first"))
    office.send("a", Message(MessageKind.TRANSACTION, "second"))
    assert office.receive("a", MessageKind.TRANSACTION, block=False).body == "first"
    assert office.receive("a", MessageKind.TRANSACTION, block=False).body == "second"


def test_receive_selects_by_kind():
    office = PostOffice()
    office.register(1)
    office.send(1, Message(MessageKind.TRANSACTION, "t"))
    office.send(1, Message(MessageKind.FRIEND, "f", hops=2))
    got = office.receive(1, MessageKind.FRIEND, block=False)
    assert got == Message(MessageKind.FRIEND, "f", hops=2)
    assert office.receive(1, MessageKind.FRIEND, block=False) is None
    assert office.receive(1, block=False).body == "t"


def test_nonblocking_empty_returns_none():
    office = PostOffice()
    office.register("x")
    assert office.receive("x", MessageKind.LEDGER, block=False) is None


def test_blocking_receive_times_out():
    office = PostOffice()
    office.register("x")
    assert office.receive("x", timeout=0.05) is None


def test_blocking_receive_wakes_on_send():
    office = PostOffice()
    office.register("x")
    results = []
    reader = threading.Thread(
        target=lambda: results.append(office.receive("x", MessageKind.LEDGER, timeout=5))
    )
    reader.start()
    office.send("x", Message(MessageKind.LEDGER, 42))
    reader.join(5)
    assert results == [Message(MessageKind.LEDGER, 42)]


def test_send_to_unknown_mailbox_raises():
    office = PostOffice()
    with pytest.raises(MailboxNotFound):
        office.send("nobody", Message(MessageKind.TRANSACTION))


def test_unregister_discards_and_forbids_receive():
    office = PostOffice()
    office.register("x")
    office.send("x", Message(MessageKind.TRANSACTION))
    assert office.unregister("x") is True
    assert "x" not in office
    assert office.unregister("x") is False
    with pytest.raises(MailboxNotFound):
        office.receive("x", block=False)


def test_register_keeps_existing_messages():
    office = PostOffice()
    office.register("x")
    office.send("x", Message(MessageKind.REJECTED, 7))
    office.register("x")
    assert office.receive("x", block=False).body == 7