# mockcoind

`mockcoind` runs a small in-memory imitation of a Bitcoin Core node. The node
answers JSON-RPC over HTTP on a local port. It is meant for integration tests
of wallets, indexers and other programs that talk to `bitcoind`. Your test code
controls the chain directly. It can mine blocks, broadcast transactions and lock
outputs, and then check what the program under test asked the node to do.

The package has no runtime dependencies.

## Starting a node

```python
from mockcoind.handle import spawn

with spawn() as node:
    print(node.url())          # http://127.0.0.1:<port>
    node.mine_blocks(1)
    ...                        # point your client at node.url()
```

`spawn()` starts a mainnet node that reports version `240000`. It returns
after the server has answered a first request. Use `builder()` to change the
settings. Each setter returns a new `Builder`:

```python
from mockcoind.chain import Network
from mockcoind.handle import builder

node = (
    builder()
    .network(Network.SIGNET)
    .version(230000)
    .fail_lock_unspent(True)   # lockunspent will answer false
    .build()
)
try:
    ...
finally:
    node.close()
```

`Handle.close()` stops the server. You can call it more than once. A
`Handle` also works as a context manager.

## Controlling the chain

Block hashes and txids in the Python API are raw 32-byte values in internal
byte order. Use `txid[::-1].hex()` to get the form that RPC responses show.
Amounts in the Python API are in satoshis. Amounts in RPC responses are in BTC.

`Handle` has these methods:

- `mine_blocks(n)` mines `n` blocks, each with a 50 BTC subsidy.
  `mine_blocks_with_subsidy(n, subsidy)` takes the subsidy in satoshis.
  Each block takes in the whole mempool, and its coinbase pays the subsidy
  plus the fees. The methods return copies of the mined `Block`s.
- `broadcast_tx(template)` builds a transaction from a
  `mockcoind.state.TransactionTemplate`, adds it to the mempool and returns
  its txid. The template's `inputs` are `(block height, transaction index,
  output index)` triples. The input value minus `fee` is split evenly over
  `outputs` outputs, unless `output_values` gives their values. A
  `ValueError` is raised when the value does not split evenly or the fee
  exceeds it.
- `invalidate_tip()` drops the newest block and returns its hash.
- `tx(block_index, tx_index)` returns a copy of a mined transaction.
  `mempool()` returns copies of the pending transactions.
  `get_utxo_amount(outpoint)` returns the value of an unspent output, or
  `None`.
- `lock(outpoint)` marks an output as locked. `listunspent` then leaves it out.
- `wallets()` and `loaded_wallets()` return the wallets made by `createwallet`
  and the wallets loaded by `loadwallet`. `descriptors()` returns the
  descriptors, and `import_descriptor(desc)` adds one. `sent()` returns the
  `Sent` records made by `sendtoaddress`: amount, address, and the outputs
  locked at the time.
- `network()` returns the chain name in the form a command-line flag takes:
  `mainnet`, `testnet`, `signet` or `regtest`.

```python
from mockcoind.handle import spawn
from mockcoind.state import TransactionTemplate

with spawn() as node:
    node.mine_blocks(1)
    txid = node.broadcast_tx(TransactionTemplate(inputs=((1, 0, 0),), outputs=2))
    block = node.mine_blocks(1)[0]
    assert block.txdata[1].txid() == txid
```

## RPC methods

The server accepts JSON-RPC 2.0 requests, and batches of them, as POST
requests on any path. It does not check credentials. It answers these methods:

`getblockchaininfo`, `getnetworkinfo`, `getbalances`, `getblockhash`,
`getblockheader`, `getblock`, `getblockcount`, `getwalletinfo`,
`createrawtransaction`, `createwallet`, `signrawtransactionwithwallet`,
`sendrawtransaction`, `sendtoaddress`, `gettransaction`,
`getrawtransaction`, `listunspent`, `listlockunspent`,
`getrawchangeaddress`, `getdescriptorinfo`, `importdescriptors`,
`getnewaddress`, `listtransactions`, `lockunspent`, `listdescriptors`,
`loadwallet` and `listwallets`.

Errors come back as JSON-RPC errors with these codes:

- `-8`: an unknown height, block hash, transaction or wallet, or
  `getwalletinfo` when no wallet is loaded.
- `-22`: a transaction that cannot be decoded.
- `-32601`: an unknown method.
- `-32602`: bad arguments. This includes optional arguments that the node does
  not support: `sendtoaddress` comments and fee options, `listunspent`
  filters, `getblock` verbosity other than 0, `lockunspent` with unlock set,
  and locking an output that is not unspent.

```python
import json
import urllib.request

from mockcoind.handle import spawn

with spawn() as node:
    body = json.dumps(
        {"jsonrpc": "2.0", "id": 1, "method": "getblockcount", "params": []}
    ).encode()
    request = urllib.request.Request(
        node.url(), data=body, headers={"Content-Type": "application/json"}
    )
    with urllib.request.urlopen(request) as response:
        print(json.load(response)["result"])   # 0
```

You can skip HTTP and use `mockcoind.rpc.BitcoinRpc` directly. It has one
method per RPC call, plus `dispatch(method, params)` and
`handle_request(payload)`. `dispatch` raises `RpcError`, and `handle_request`
returns a response dict, a list of them, or `None` when the request holds only
notifications.

```python
import threading

from mockcoind.chain import Network
from mockcoind.rpc import BitcoinRpc
from mockcoind.state import State

rpc = BitcoinRpc(State(Network.REGTEST, 240000, False), threading.RLock())
rpc.dispatch("getblockcount")                     # 0
rpc.handle_request('{"jsonrpc": "2.0", "id": 1, "method": "getblockhash", "params": [5]}')
# {'jsonrpc': '2.0', 'error': {'code': -8, 'message': 'Server error'}, 'id': 1}
```

## Other modules

- `mockcoind.chain` has `OutPoint`, `TxIn`, `TxOut`, `Transaction`,
  `BlockHeader` and `Block`, with their consensus encoding. It also has
  `genesis_block(network)` for each `Network`, and `script_push_int(n)`.
- `mockcoind.address` has `bech32m_encode`, `taproot_output_key`,
  `p2tr_address` and `random_p2tr_address`. `getnewaddress` and
  `getrawchangeaddress` use these to return fresh random taproot addresses.

## What it does not do

The node is a test double and not a validating node. It does not check
signatures, scripts or proof of work. Block headers carry a zero merkle root.
`signrawtransactionwithwallet` only adds a dummy 64-byte witness to each input.
`sendtoaddress` records the payment and returns an all-zero txid, without
building a transaction. Many response fields are fixed placeholders. All state
lives in memory and is lost when the process ends. The package has no
command-line program; you start the node from Python.

## Running the tests

```
pip install -e ".[test]"
pytest
```