"""Simulation parameters read from a whitespace-separated parameter file."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_LEADING_INT = re.compile(r"[+-]?\d+")

_ABSOLUTE = {
    "SO_USERS_NUM": "users_num",
    "SO_NODES_NUM": "nodes_num",
    "SO_BUDGET_INIT": "budget_init",
    "SO_REWARD": "reward",
    "SO_MIN_TRANS_GEN_NSEC": "min_trans_gen_nsec",
    "SO_MAX_TRANS_GEN_NSEC": "max_trans_gen_nsec",
    "SO_MIN_TRANS_PROC_NSEC": "min_trans_proc_nsec",
    "SO_MAX_TRANS_PROC_NSEC": "max_trans_proc_nsec",
    "SO_TP_SIZE": "tp_size",
    "SO_SIM_SEC": "sim_sec",
    "SO_RETRY": "retry",
    "SO_NUM_FRIENDS": "num_friends",
    "SO_HOPS": "hops",
    "SO_MIN_TRANS_FRIEND_GEN_SEC": "min_trans_friend_gen_sec",
    "SO_MAX_TRANS_FRIEND_GEN_SEC": "max_trans_friend_gen_sec",
}

# These limits are stored as totals: the value read plus the base value
# known at the moment the line is read.
_RELATIVE = {
    "SO_MAX_NUM_NEW_NODI": ("max_num_new_nodes", "nodes_num"),
    "SO_MAX_NUM_NEW_FRIENDS": ("max_num_new_friends", "num_friends"),
}


@dataclass
class Config:
    """All tunable parameters of a simulation run."""

    users_num: int = 0
    nodes_num: int = 0
    max_num_new_nodes: int = 0
    budget_init: int = 0
    reward: int = 0
    min_trans_gen_nsec: int = 0
    max_trans_gen_nsec: int = 0
    min_trans_proc_nsec: int = 0
    max_trans_proc_nsec: int = 0
    tp_size: int = 0
    sim_sec: int = 0
    retry: int = 0
    num_friends: int = 0
    max_num_new_friends: int = 0
    hops: int = 0
    min_trans_friend_gen_sec: int = 0
    max_trans_friend_gen_sec: int = 0


def _parse_int(name: str, raw: str) -> int:
    match = _LEADING_INT.match(raw)
    if match is None:
        raise ValueError(f"parameter {name} has a non-integer value {raw!r}")
    return int(match.group())


def parse_config(text: str) -> Config:
    """Build a Config from "NAME value" pairs; unknown names are ignored."""
    tokens = text.split()
    if len(tokens) % 2:
        raise ValueError(f"parameter {tokens[-1]} has no value")
    config = Config()
    for name, raw in zip(tokens[0::2], tokens[1::2]):
        value = _parse_int(name, raw)
        if name in _RELATIVE:
            target, base = _RELATIVE[name]
            setattr(config, target, value + getattr(config, base))
        elif name in _ABSOLUTE:
            setattr(config, _ABSOLUTE[name], value)
    return config


def load_config(path: str | Path) -> Config:
    """Read and parse a parameter file."""
    return parse_config(Path(path).read_text())