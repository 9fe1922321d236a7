"""BIP-39 mnemonic generation and validation.

Pure functions, no I/O. The English word list and checksum handling come
from bip_utils; entropy is always drawn from the ``secrets`` CSPRNG.
"""

import secrets
from dataclasses import dataclass, field

from bip_utils import (
    Bip39Languages,
    Bip39MnemonicDecoder,
    Bip39MnemonicEncoder,
    Bip39MnemonicValidator,
)

from seedchain.errors import InvalidSeedPhrase

# Word count -> entropy length in bytes
WORDS_TO_ENTROPY_BYTES = {12: 16, 15: 20, 18: 24, 21: 28, 24: 32}
ENTROPY_BYTES_TO_WORDS = {v: k for k, v in WORDS_TO_ENTROPY_BYTES.items()}

DEFAULT_WORDS = 12


@dataclass(frozen=True)
class Seed:
    """Entropy and its checksummed word encoding.

    Neither field is shown in repr() so a Seed can be logged safely.
    """

    entropy: bytes = field(repr=False)
    phrase: str = field(repr=False)

    @property
    def word_count(self) -> int:
        return len(self.phrase.split())

    @property
    def strength(self) -> int:
        """Entropy size in bits."""
        return len(self.entropy) * 8


def normalize(phrase: str) -> str:
    """Collapse whitespace and lowercase a phrase."""
    return " ".join(phrase.lower().split())


def generate(words: int = DEFAULT_WORDS) -> Seed:
    """Generate a new random seed.

    Args:
        words: Number of words (12, 15, 18, 21 or 24)

    Returns:
        Seed with fresh CSPRNG entropy

    Raises:
        ValueError: If the word count is not supported
    """
    if words not in WORDS_TO_ENTROPY_BYTES:
        raise ValueError(
            f"Unsupported word count {words}. Expected one of {sorted(WORDS_TO_ENTROPY_BYTES)}"
        )

    entropy = secrets.token_bytes(WORDS_TO_ENTROPY_BYTES[words])
    return Seed(entropy=entropy, phrase=from_entropy(entropy))


def validate(phrase: str) -> bool:
    """Check word-list membership and checksum. Never raises."""
    if not isinstance(phrase, str):
        return False

    normalized = normalize(phrase)
    if len(normalized.split()) not in WORDS_TO_ENTROPY_BYTES:
        return False

    return Bip39MnemonicValidator(Bip39Languages.ENGLISH).IsValid(normalized)


def to_entropy(phrase: str) -> bytes:
    """Decode a phrase back into its entropy.

    Raises:
        InvalidSeedPhrase: If the phrase fails validation
    """
    if not validate(phrase):
        raise InvalidSeedPhrase("Invalid mnemonic phrase")

    return bytes(Bip39MnemonicDecoder(Bip39Languages.ENGLISH).Decode(normalize(phrase)))


def from_entropy(entropy: bytes) -> str:
    """Encode entropy as a checksummed English phrase.

    Raises:
        InvalidSeedPhrase: If the entropy length is not 16, 20, 24, 28 or 32 bytes
    """
    if len(entropy) not in ENTROPY_BYTES_TO_WORDS:
        raise InvalidSeedPhrase(
            f"Invalid entropy length {len(entropy)} bytes. "
            f"Expected one of {sorted(ENTROPY_BYTES_TO_WORDS)}"
        )

    mnemonic = Bip39MnemonicEncoder(Bip39Languages.ENGLISH).Encode(bytes(entropy))
    return mnemonic.ToStr()


def from_phrase(phrase: str) -> Seed:
    """Build a Seed from an existing phrase.

    Raises:
        InvalidSeedPhrase: If the phrase fails validation
    """
    entropy = to_entropy(phrase)
    return Seed(entropy=entropy, phrase=normalize(phrase))
