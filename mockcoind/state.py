"""Chain, mempool and wallet state held by the mock node."""

from __future__ import annotations

from dataclasses import dataclass, field

from mockcoind.chain import (
    ZERO_HASH,
    Block,
    BlockHeader,
    Network,
    OutPoint,
    Transaction,
    TxIn,
    TxOut,
    genesis_block,
    script_push_int,
)


@dataclass(frozen=True)
class TransactionTemplate:
    """Recipe for a transaction spending outputs of mined blocks.

    ``inputs`` holds ``(block height, transaction index, output index)`` triples.
    """

    fee: int = 0
    inputs: tuple[tuple[int, int, int], ...] = ()
    output_values: tuple[int, ...] = ()
    outputs: int = 1
    witness: tuple[bytes, ...] = ()


@dataclass
class Sent:
    """A payment recorded by ``sendtoaddress``."""

    amount: float
    address: str
    locked: list[OutPoint] = field(default_factory=list)


class State:
    """Mutable blockchain and wallet state."""

    def __init__(self, network: Network, version: int, fail_lock_unspent: bool) -> None:
        genesis = genesis_block(network)
        genesis_hash = genesis.block_hash()
        self.blocks: dict[bytes, Block] = {genesis_hash: genesis}
        self.hashes: list[bytes] = [genesis_hash]
        self.descriptors: list[str] = []
        self.fail_lock_unspent = fail_lock_unspent
        self.loaded_wallets: set[str] = set()
        self.locked: set[OutPoint] = set()
        self.mempool: list[Transaction] = []
        self.network = network
        self.nonce = 0
        self.sent: list[Sent] = []
        self.transactions: dict[bytes, Transaction] = {}
        self.utxos: dict[OutPoint, int] = {}
        self.version = version
        self.wallets: set[str] = set()

    def _confirm_mempool(self) -> int:
        """Move mempool transactions into the transaction table, returning fees."""
        total_fees = 0
        for tx in self.mempool:
            spent = sum(
                self.transactions[txin.previous_output.txid]
                .outputs[txin.previous_output.vout]
                .value
                for txin in tx.inputs
            )
            fee = spent - sum(txout.value for txout in tx.outputs)
            if fee < 0:
                raise ValueError("transaction spends more than its inputs")
            self.transactions[tx.txid()] = tx
            total_fees += fee
        return total_fees

    def push_block(self, subsidy: int) -> Block:
        """Mine the mempool into a new block paying ``subsidy`` plus fees."""
        coinbase = Transaction(
            version=0,
            lock_time=0,
            inputs=[TxIn(OutPoint.null(), script_push_int(len(self.blocks)))],
            outputs=[TxOut(subsidy + self._confirm_mempool(), b"")],
        )
        self.transactions[coinbase.txid()] = coinbase

        block = Block(
            BlockHeader(
                version=1,
                prev_blockhash=self.hashes[-1],
                merkle_root=ZERO_HASH,
                time=len(self.blocks),
                bits=0,
                nonce=self.nonce,
            ),
            [coinbase, *self.mempool],
        )
        self.mempool.clear()

        for tx in block.txdata:
            for txin in tx.inputs:
                self.utxos.pop(txin.previous_output, None)
            txid = tx.txid()
            for vout, txout in enumerate(tx.outputs):
                self.utxos[OutPoint(txid, vout)] = txout.value

        block_hash = block.block_hash()
        self.blocks[block_hash] = block
        self.hashes.append(block_hash)
        self.nonce += 1
        return block

    def pop_block(self) -> bytes:
        """Drop the chain tip and return its hash."""
        if not self.hashes:
            raise IndexError("chain is empty")
        block_hash = self.hashes.pop()
        self.blocks.pop(block_hash, None)
        return block_hash

    def broadcast_tx(self, template: TransactionTemplate) -> bytes:
        """Build a transaction from ``template``, add it to the mempool, return its txid."""
        total_value = 0
        inputs = []
        for height, tx_index, vout in template.inputs:
            tx = self.blocks[self.hashes[height]].txdata[tx_index]
            total_value += tx.outputs[vout].value
            inputs.append(
                TxIn(OutPoint(tx.txid(), vout), b"", witness=tuple(template.witness))
            )

        if template.fee > total_value:
            raise ValueError("fee exceeds value of inputs")
        value_per_output = (total_value - template.fee) // template.outputs
        if value_per_output * template.outputs + template.fee != total_value:
            raise ValueError("input value minus fee does not split evenly between outputs")

        output_values = list(template.output_values)
        tx = Transaction(
            version=0,
            lock_time=0,
            inputs=inputs,
            outputs=[
                TxOut(
                    output_values[i] if i < len(output_values) else value_per_output,
                    b"",
                )
                for i in range(template.outputs)
            ],
        )
        self.mempool.append(tx)
        return tx.txid()

    def get_confirmations(self, tx: Transaction) -> int:
        """Depth of the block holding ``tx`` counted from the tip, or 0."""
        for depth, block_hash in enumerate(reversed(self.hashes), start=1):
            if tx in self.blocks[block_hash].txdata:
                return depth
        return 0