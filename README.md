# ledgersim

`ledgersim` simulates a small payment network in which the participants run as threads in one process.

- **Users** start with a budget. Each user repeatedly pays a random amount to another user, and sends the payment through a random node.
- **Nodes** collect incoming transactions in a bounded transaction pool. Once a node holds enough transactions for a block, it adds a reward payment to itself and sends the block to the ledger. From time to time a node also passes its newest pooled transaction to a random friend node.
- **The ledger** holds up to 1000 blocks. Each block has 10 transactions: 9 payments followed by the reward that goes to the node.

While the simulation runs, it prints the number of active users and ranks users and nodes by balance, once per second. The ranking shows every entry when there are at most 8. When there are more, it shows the top 4 and the bottom 4. If the output is a terminal, the screen is cleared before each ranking. When the run ends, a final report is printed. All of this output is in Italian.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Running

Start the simulation from a directory that contains a `parameters.txt` file:

```
ledgersim
```

You can also give the path to a parameter file:

```
ledgersim path/to/parameters.txt
```

If the file cannot be read or holds a bad value, the command prints `error: ...` to standard error and exits with status 1.

## Parameters

The parameter file is a sequence of whitespace-separated `NAME value` pairs. Values are integers, and only the leading integer of a value is used. Names that are not recognised are ignored. A missing name is left at 0.

```
SO_USERS_NUM 100
SO_NODES_NUM 10
SO_MAX_NUM_NEW_NODI 5
SO_BUDGET_INIT 1000
SO_REWARD 20
SO_MIN_TRANS_GEN_NSEC 10000000
SO_MAX_TRANS_GEN_NSEC 20000000
SO_MIN_TRANS_PROC_NSEC 10000000
SO_MAX_TRANS_PROC_NSEC 20000000
SO_TP_SIZE 1000
SO_SIM_SEC 10
SO_RETRY 20
SO_NUM_FRIENDS 3
SO_MAX_NUM_NEW_FRIENDS 2
SO_HOPS 10
SO_MIN_TRANS_FRIEND_GEN_SEC 1
SO_MAX_TRANS_FRIEND_GEN_SEC 2
```

Two of these values are stored as totals:

- `SO_MAX_NUM_NEW_NODI` is added to the value of `SO_NODES_NUM` at the point where it is read.
- `SO_MAX_NUM_NEW_FRIENDS` is added to the value of `SO_NUM_FRIENDS` at the point where it is read.

For this reason, the base value must come first in the file.

`SO_REWARD` is the percentage of each payment that goes to the node, with a minimum of 1. A user with a budget below 2 retries up to `SO_RETRY` times and then stops. A user also stops when it is the only active user left.

A transaction passed between friend nodes may be relayed up to `SO_HOPS` times. After that, it is handed to the master, which starts a new node for it. New nodes are added only until the total number of nodes reaches the `SO_MAX_NUM_NEW_NODI` total.

## When the simulation ends

The simulation stops when one of these happens:

- the ledger is full,
- every user has stopped,
- `SO_SIM_SEC` seconds have passed.

The final report gives:

- the reason the run ended,
- the number of blocks in the ledger,
- each user's balance,
- each node's reward total and the number of transactions left in its pool,
- the number of users that stopped early.

## Library use

- `ledgersim.config`: `parse_config(text)` and `load_config(path)` return a `Config` dataclass.
- `ledgersim.messages`: `PostOffice` provides thread-safe FIFO mailboxes with `register`, `unregister`, `send` and `receive`. Messages are `Message` objects tagged with a `MessageKind`.
- `ledgersim.ledger`:
  - `Transaction` and `Block` are the records stored in the ledger.
  - `Ledger` stores blocks and computes balances with `user_balance(user_id, initial)` and `node_balance(node_id)`.
  - `LedgerKeeper` groups submitted transactions into blocks.
- `ledgersim.node`: `Node` and `choose_friends(nodes, own, count, rng)`.
- `ledgersim.user`: `User` and `compute_reward(amount, reward_percent)`.
- `ledgersim.master`:
  - `Simulation` provides `start`, `snapshot`, `final_report` and `run`.
  - `rank`, `format_snapshot` and `EndReason` are also available.
  - `main(argv=None)` is the command's entry point.

## What it does not do

- Everything runs in memory inside a single process. The ledger is not saved, so it is lost when the program exits.
- Participants are threads, not separate operating-system processes.
- There is no way to make a running user send a transaction from outside the program.