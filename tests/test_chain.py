import pytest

from mockcoind.chain import (
    COIN_VALUE,
    Block,
    BlockHeader,
    Network,
    OutPoint,
    Transaction,
    TxIn,
    TxOut,
    ZERO_HASH,
    genesis_block,
    script_push_int,
)

GENESIS_TXID = "4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b"


def _sample_tx(witness=()):
    return Transaction(
        version=2,
        lock_time=7,
        inputs=[TxIn(OutPoint(bytes(range(32)), 3), b"\x51", 5, witness)],
        outputs=[TxOut(1234, b"\x00\x14" + bytes(20)), TxOut(99, b"")],
    )


@pytest.mark.parametrize("network", list(Network))
def test_genesis_coinbase_txid(network):
    block = genesis_block(network)
    assert block.txdata[0].txid()[::-1].hex() == GENESIS_TXID
    assert block.header.merkle_root == block.txdata[0].txid()
    assert block.header.prev_blockhash == ZERO_HASH


def test_genesis_coinbase_pays_fifty_coins():
    coinbase = genesis_block(Network.BITCOIN).txdata[0]
    assert coinbase.outputs[0].value == 50 * COIN_VALUE
    assert coinbase.inputs[0].previous_output.is_null()


def test_mainnet_genesis_hash():
    block = genesis_block(Network.BITCOIN)
    assert (
        block.block_hash()[::-1].hex()
        == "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f"
    )


def test_genesis_hashes_differ_between_networks():
    hashes = {genesis_block(network).block_hash() for network in Network}
    assert len(hashes) == len(list(Network))


def test_header_serialization_length_and_hash_consistency():
    header = genesis_block(Network.REGTEST).header
    assert len(header.serialize()) == 80
    assert header.block_hash() == Block(header, []).block_hash()


def test_block_serialization_wraps_header_and_transactions():
    block = genesis_block(Network.SIGNET)
    data = block.serialize()
    assert data.startswith(block.header.serialize())
    assert data.endswith(block.txdata[0].serialize())


def test_transaction_round_trip_without_witness():
    tx = _sample_tx()
    assert Transaction.deserialize(tx.serialize()) == tx


def test_transaction_round_trip_with_witness():
    tx = _sample_tx(witness=(bytes(64), b"\x01"))
    assert Transaction.deserialize(tx.serialize()) == tx


def test_witness_does_not_change_txid():
    plain = _sample_tx()
    witnessed = _sample_tx(witness=(bytes(64),))
    assert plain.txid() == witnessed.txid()
    assert plain.serialize() != witnessed.serialize()
    assert len(witnessed.serialize()) > len(plain.serialize())


def test_transaction_without_inputs_round_trips():
    tx = Transaction(version=0, lock_time=0, outputs=[TxOut(5, b"")])
    assert Transaction.deserialize(tx.serialize()) == tx


def test_genesis_coinbase_round_trips():
    coinbase = genesis_block(Network.BITCOIN).txdata[0]
    decoded = Transaction.deserialize(coinbase.serialize())
    assert decoded == coinbase
    assert decoded.txid() == coinbase.txid()


def test_deserialize_rejects_trailing_data():
    with pytest.raises(ValueError):
        Transaction.deserialize(_sample_tx().serialize() + b"\x00")


def test_deserialize_rejects_truncated_data():
    with pytest.raises(ValueError):
        Transaction.deserialize(_sample_tx().serialize()[:-1])


def test_deserialize_rejects_unknown_segwit_flag():
    with pytest.raises(ValueError):
        Transaction.deserialize(bytes(4) + b"\x00\x02")


def test_outpoint_null():
    null = OutPoint.null()
    assert null.is_null()
    assert null.txid == ZERO_HASH
    assert not OutPoint(ZERO_HASH, 0).is_null()


def test_outpoint_display_uses_reversed_txid():
    coinbase = genesis_block(Network.BITCOIN).txdata[0]
    assert str(OutPoint(coinbase.txid(), 0)) == f"{GENESIS_TXID}:0"


def test_outpoint_ordering_by_txid_then_vout():
    a = OutPoint(bytes(32), 5)
    b = OutPoint(bytes(31) + b"\x01", 0)
    c = OutPoint(bytes(31) + b"\x01", 1)
    assert sorted([c, b, a]) == [a, b, c]


def test_outpoint_rejects_short_txid():
    with pytest.raises(ValueError):
        OutPoint(b"\x00" * 31, 0)


def test_push_int_small_numbers_use_single_opcode():
    encodings = [script_push_int(n) for n in range(-1, 17)]
    assert all(len(encoding) == 1 for encoding in encodings)
    assert len(set(encodings)) == len(encodings)
    assert script_push_int(1) == b"\x51"


def test_push_int_seventeen():
    assert script_push_int(17) == b"\x01\x11"


@pytest.mark.parametrize("n", [17, 127, 128, 255, 1000, 70000, -5, -200])
def test_push_int_larger_numbers_are_length_prefixed(n):
    encoded = script_push_int(n)
    assert encoded[0] == len(encoded) - 1
    assert len(encoded) >= 2