"""Bitcoin P2WPKH transaction construction.

Coin selection and size estimates are done here; bitcoinlib builds the
version-2 segwit transaction, signs each input (BIP-143) and serializes
it for broadcast.
"""

import math
from dataclasses import dataclass
from typing import Optional

from bip_utils import (
    Base58ChecksumError,
    Bech32ChecksumError,
    P2PKHAddrDecoder,
    P2SHAddrDecoder,
    P2TRAddrDecoder,
    P2WPKHAddrDecoder,
    SegwitBech32Decoder,
)
from bitcoinlib.encoding import double_sha256, int_to_varbyteint
from bitcoinlib.keys import Key
from bitcoinlib.transactions import Transaction

TX_VERSION = 2
SEQUENCE_RBF = 0xFFFFFFFD
DUST_LIMIT = 546  # satoshi

# Virtual size of one P2WPKH input including its witness
P2WPKH_INPUT_VBYTES = 68

_DECODE_ERRORS = (Base58ChecksumError, Bech32ChecksumError, ValueError, TypeError)


@dataclass(frozen=True)
class NetworkParams:
    """Address encoding parameters for a Bitcoin network."""
    name: str  # bitcoinlib network name
    hrp: str
    p2pkh_version: bytes
    p2sh_version: bytes


MAINNET = NetworkParams(name="bitcoin", hrp="bc", p2pkh_version=b"\x00", p2sh_version=b"\x05")
TESTNET = NetworkParams(name="testnet", hrp="tb", p2pkh_version=b"\x6f", p2sh_version=b"\xc4")


@dataclass(frozen=True)
class Utxo:
    """Unspent output owned by the wallet address."""
    txid: str
    vout: int
    value: int


@dataclass(frozen=True)
class TxOutput:
    script: bytes
    value: int


@dataclass(frozen=True)
class CoinSelection:
    """Result of coin selection.

    ``change`` is zero when the remainder was below the dust limit and
    folded into the fee.
    """
    inputs: list[Utxo]
    fee: int
    change: int
    vsize: int


class InsufficientFunds(ValueError):
    pass


# ----------------------------------------------------------------------
# Scripts
# ----------------------------------------------------------------------

def p2wpkh_script(pubkey_hash: bytes) -> bytes:
    return b"\x00\x14" + pubkey_hash


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    return b"\x76\xa9\x14" + pubkey_hash + b"\x88\xac"


def p2sh_script(script_hash: bytes) -> bytes:
    return b"\xa9\x14" + script_hash + b"\x87"


def _try(decoder, *args, **kwargs) -> Optional[bytes]:
    try:
        return decoder(*args, **kwargs)
    except _DECODE_ERRORS:
        return None


def script_for_address(address: str, network: NetworkParams = MAINNET) -> bytes:
    """Output script paying to an address.

    Accepts P2WPKH, P2WSH and P2TR (bech32/bech32m) as well as legacy
    P2PKH and P2SH (base58check) addresses for the given network.

    Raises:
        ValueError: If the address is not valid on the network
    """
    if not isinstance(address, str) or not address:
        raise ValueError("Empty address")

    if address.lower().startswith(network.hrp + "1"):
        program = _try(P2WPKHAddrDecoder.DecodeAddr, address, hrp=network.hrp)
        if program is not None:
            return p2wpkh_script(program)

        program = _try(P2TRAddrDecoder.DecodeAddr, address, hrp=network.hrp)
        if program is not None:
            return b"\x51\x20" + program

        decoded = _try(SegwitBech32Decoder.Decode, network.hrp, address)
        if decoded is not None:
            witver, program = decoded
            if witver == 0 and len(program) == 32:
                return b"\x00\x20" + bytes(program)

        raise ValueError(f"Invalid segwit address: {address}")

    pubkey_hash = _try(P2PKHAddrDecoder.DecodeAddr, address, net_ver=network.p2pkh_version)
    if pubkey_hash is not None:
        return p2pkh_script(pubkey_hash)

    script_hash = _try(P2SHAddrDecoder.DecodeAddr, address, net_ver=network.p2sh_version)
    if script_hash is not None:
        return p2sh_script(script_hash)

    raise ValueError(f"Unsupported address format: {address}")


def is_valid_address(address: str, network: NetworkParams = MAINNET) -> bool:
    try:
        script_for_address(address, network)
    except ValueError:
        return False
    return True


# ----------------------------------------------------------------------
# Sizing and coin selection
# ----------------------------------------------------------------------

def estimate_vsize(n_inputs: int, output_scripts: list[bytes]) -> int:
    """Estimated virtual size of a transaction spending P2WPKH inputs."""
    counts = len(int_to_varbyteint(n_inputs)) + len(int_to_varbyteint(len(output_scripts)))
    # version + locktime + input/output counts, plus marker and flag as witness
    overhead_weight = (4 + 4 + counts) * 4 + 2
    outputs_vbytes = sum(8 + len(int_to_varbyteint(len(s))) + len(s) for s in output_scripts)
    return math.ceil(overhead_weight / 4) + n_inputs * P2WPKH_INPUT_VBYTES + outputs_vbytes


def select_utxos(
    utxos: list[Utxo],
    amount: int,
    fee_rate: int,
    recipient_script: bytes,
    change_script: bytes,
) -> CoinSelection:
    """Pick inputs largest-first until amount plus fee is covered.

    A selection that cannot pay for a change output is still accepted
    when it covers the smaller single-output transaction.

    Raises:
        InsufficientFunds: If the UTXO set cannot cover amount plus fee
    """
    selected: list[Utxo] = []
    total = 0

    for utxo in sorted(utxos, key=lambda u: u.value, reverse=True):
        selected.append(utxo)
        total += utxo.value

        vsize = estimate_vsize(len(selected), [recipient_script, change_script])
        fee = vsize * fee_rate
        if total >= amount + fee:
            change = total - amount - fee
            if change >= DUST_LIMIT:
                return CoinSelection(inputs=selected, fee=fee, change=change, vsize=vsize)

        # No change output; the remainder goes to the miner
        vsize = estimate_vsize(len(selected), [recipient_script])
        if total >= amount + vsize * fee_rate:
            return CoinSelection(inputs=selected, fee=total - amount, change=0, vsize=vsize)

    vsize = estimate_vsize(max(len(selected), 1), [recipient_script])
    raise InsufficientFunds(
        f"insufficient funds: have {total} sat, need {amount} sat plus ~{vsize * fee_rate} sat fee"
    )


# ----------------------------------------------------------------------
# Signing and serialization
# ----------------------------------------------------------------------

def build_signed_transaction(
    private_key: bytes,
    inputs: list[Utxo],
    outputs: list[TxOutput],
    network: NetworkParams = MAINNET,
) -> tuple[bytes, str]:
    """Sign every P2WPKH input and serialize the segwit transaction.

    Returns:
        (raw transaction bytes, txid hex)

    Raises:
        ValueError: If the signed transaction does not verify
    """
    key = Key(private_key, network=network.name)

    tx = Transaction(network=network.name, version=TX_VERSION, witness_type="segwit")
    for utxo in inputs:
        tx.add_input(
            utxo.txid,
            utxo.vout,
            keys=key,
            value=utxo.value,
            sequence=SEQUENCE_RBF,
            witness_type="segwit",
        )
    for out in outputs:
        tx.add_output(out.value, lock_script=out.script)

    tx.sign(key)
    if not tx.verify():
        raise ValueError("signed transaction failed verification")

    txid = double_sha256(tx.raw(witness_type="legacy"))[::-1].hex()
    return tx.raw(), txid
