import random
import threading
import time

import pytest

from ledgersim.config import Config
from ledgersim.ledger import Ledger, LedgerKeeper, Transaction
from ledgersim.messages import Message, MessageKind, PostOffice
from ledgersim.node import SENDER_REWARD, Node, choose_friends


def make_config(**overrides):
    values = dict(
        tp_size=20,
        hops=2,
        num_friends=2,
        max_num_new_friends=3,
        min_trans_friend_gen_sec=100,
        max_trans_friend_gen_sec=100,
        min_trans_proc_nsec=0,
        max_trans_proc_nsec=0,
    )
    values.update(overrides)
    return Config(**values)


def tx(sender=1, receiver=2, amount=5, reward=1):
    return Transaction(timestamp=0, sender=sender, receiver=receiver, amount=amount, reward=reward)


@pytest.fixture
def post_office():
    return PostOffice()


@pytest.fixture
def keeper():
    return LedgerKeeper(Ledger(), poll_interval=0.01)


def make_node(post_office, keeper, node_id=100, **kwargs):
    config = kwargs.pop("config", make_config())
    return Node(node_id, config, post_office, keeper, rng=random.Random(3), **kwargs)


def test_choose_friends_distinct_and_excludes_own():
    friends = choose_friends([0, 5, 6, 7, 5, 8], 6, 3, random.Random(1))
    assert len(friends) == 3
    assert len(set(friends)) == 3
    assert set(friends) <= {5, 7, 8}


def test_choose_friends_too_few_candidates():
    with pytest.raises(ValueError):
        choose_friends([1, 2, 0], 1, 2, random.Random(1))


def test_accept_until_pool_full(post_office, keeper):
    node = make_node(post_office, keeper, config=make_config(tp_size=2))
    assert node.accept(tx()) is True
    assert node.accept(tx()) is True
    assert node.accept(tx()) is False
    assert len(node.pool) == 2


def test_take_block_needs_enough_transactions(post_office, keeper):
    node = make_node(post_office, keeper)
    for _ in range(keeper.ledger.block_size - 2):
        node.accept(tx())
    assert node.take_block() is None
    assert len(node.pool) == keeper.ledger.block_size - 2


def test_take_block_adds_reward_payment(post_office, keeper):
    node = make_node(post_office, keeper)
    pooled = [tx(amount=i + 3, reward=i + 1) for i in range(keeper.ledger.block_size)]
    for item in pooled:
        node.accept(item)
    block = node.take_block()
    assert len(block) == keeper.ledger.block_size
    assert list(block[:-1]) == pooled[:-1]
    reward = block[-1]
    assert reward.sender == SENDER_REWARD
    assert reward.receiver == node.id
    assert reward.amount == sum(item.reward for item in pooled[:-1])
    assert node.pool == (pooled[-1],)


def test_add_friend_respects_limit(post_office, keeper):
    node = make_node(post_office, keeper, friends=[1, 2])
    assert node.add_friend(3) is True
    assert node.add_friend(4) is False
    assert node.add_friend(node.id) is False
    assert node.friends == [1, 2, 3]


def test_add_friend_rejects_duplicate(post_office, keeper):
    node = make_node(post_office, keeper, friends=[1])
    assert node.add_friend(1) is False
    assert node.friends == [1]


def test_forward_to_friend_sends_newest(post_office, keeper):
    post_office.register(7)
    node = make_node(post_office, keeper, friends=[7])
    first, last = tx(amount=3), tx(amount=9)
    node.accept(first)
    node.accept(last)
    assert node.forward_to_friend() == 7
    message = post_office.receive(7, MessageKind.FRIEND, block=False)
    assert message.body == last
    assert message.hops == 1
    assert node.pool == (first,)


def test_forward_to_friend_with_empty_pool(post_office, keeper):
    post_office.register(7)
    node = make_node(post_office, keeper, friends=[7])
    assert node.forward_to_friend() is None
    assert post_office.receive(7, block=False) is None


def test_forward_to_missing_friend_keeps_transaction(post_office, keeper):
    node = make_node(post_office, keeper, friends=[7])
    item = tx()
    node.accept(item)
    assert node.forward_to_friend() is None
    assert node.pool == (item,)


def run_in_thread(target):
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def test_run_writes_block_to_ledger(post_office, keeper):
    node = make_node(post_office, keeper)
    keeper_thread = run_in_thread(keeper.run)
    node_thread = run_in_thread(node.run)
    sent = [tx(sender=1, receiver=2, amount=4, reward=2) for _ in range(keeper.ledger.block_size - 1)]
    for item in sent:
        post_office.send(node.id, Message(MessageKind.TRANSACTION, item))
    try:
        assert wait_for(lambda: len(keeper.ledger) == 1)
    finally:
        node.stop()
        keeper.stop()
        node_thread.join(2)
        keeper_thread.join(2)
    block = keeper.ledger[0]
    assert list(block.payments) == sent
    assert block.reward_transaction.receiver == node.id
    assert keeper.ledger.node_balance(node.id) == sum(item.reward for item in sent)


def test_run_rejects_when_pool_full(post_office, keeper):
    post_office.register(1)
    node = make_node(post_office, keeper, config=make_config(tp_size=1))
    thread = run_in_thread(node.run)
    kept, refused = tx(amount=3), tx(amount=8)
    post_office.send(node.id, Message(MessageKind.TRANSACTION, kept))
    post_office.send(node.id, Message(MessageKind.TRANSACTION, refused))
    try:
        message = post_office.receive(1, MessageKind.REJECTED, timeout=5)
    finally:
        node.stop()
        thread.join(2)
    assert message.body == refused
    assert node.pool == (kept,)


def test_run_sends_exhausted_friend_transaction_to_master(post_office, keeper):
    post_office.register("master")
    node = make_node(post_office, keeper, config=make_config(tp_size=0, hops=2), master="master")
    thread = run_in_thread(node.run)
    item = tx()
    post_office.send(node.id, Message(MessageKind.FRIEND, item, hops=2))
    try:
        message = post_office.receive("master", MessageKind.FRIEND, timeout=5)
    finally:
        node.stop()
        thread.join(2)
    assert message.body == item
    assert message.hops == 2


def test_run_relays_friend_transaction_with_more_hops(post_office, keeper):
    post_office.register(7)
    node = make_node(post_office, keeper, config=make_config(tp_size=0, hops=3), friends=[7])
    thread = run_in_thread(node.run)
    item = tx()
    post_office.send(node.id, Message(MessageKind.FRIEND, item, hops=1))
    try:
        message = post_office.receive(7, MessageKind.FRIEND, timeout=5)
    finally:
        node.stop()
        thread.join(2)
    assert message.body == item
    assert message.hops == 2


def test_run_adds_new_friend(post_office, keeper):
    node = make_node(post_office, keeper, friends=[1])
    thread = run_in_thread(node.run)
    post_office.send(node.id, Message(MessageKind.NEW_FRIEND, 9))
    try:
        assert wait_for(lambda: 9 in node.friends)
    finally:
        node.stop()
        thread.join(2)
    assert node.friends == [1, 9]