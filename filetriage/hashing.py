"""SSDeep (spamsum) fuzzy hashing over files and byte buffers."""
import io
import os

from typing import BinaryIO, List, Tuple, Union


class SSDeep:
    BLOCKSIZE_MIN = 3
    SPAMSUM_LENGTH = 64
    STREAM_BUFF_SIZE = 8192
    HASH_PRIME = 0x01000193
    HASH_INIT = 0x28021967
    ROLL_WINDOW = 7
    B64 = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/'

    class _RollState(object):
        ROLL_WINDOW = 7

        def __init__(self):
            self.win = bytearray(self.ROLL_WINDOW)
            self.h1 = 0
            self.h2 = 0
            self.h3 = 0
            self.n = 0

        def roll_hash(self, b):
            slot = self.n % self.ROLL_WINDOW
            self.h2 = (self.h2 - self.h1 + (self.ROLL_WINDOW * b)) & 0xFFFFFFFF
            self.h1 = (self.h1 + b - self.win[slot]) & 0xFFFFFFFF
            self.win[slot] = b
            self.n += 1
            self.h3 = ((self.h3 << 5) & 0xFFFFFFFF) ^ b
            return self.h1 + self.h2 + self.h3

    def _initial_block_size(self, length: int) -> int:
        block_size = self.BLOCKSIZE_MIN
        while block_size * self.SPAMSUM_LENGTH < length:
            block_size *= 2
        return block_size

    def _digest_pass(self, stream: BinaryIO, block_size: int) -> Tuple[List[str], List[str], int]:
        """Run one pass over *stream* at *block_size*.

        Returns the two signature character lists (block_size and
        2 * block_size) and the number of bytes consumed.
        """
        # Hot loop: constants are bound to locals.
        window_size = self.ROLL_WINDOW
        prime = self.HASH_PRIME
        init = self.HASH_INIT
        b64 = self.B64
        limit1 = self.SPAMSUM_LENGTH - 1
        limit2 = (self.SPAMSUM_LENGTH // 2) - 1
        double_block = block_size * 2

        h1 = h2 = h3 = 0
        consumed = 0
        window = bytearray(window_size)
        part1 = init
        part2 = init
        sig1: List[str] = []
        sig2: List[str] = []

        stream.seek(0)
        chunk = stream.read(self.STREAM_BUFF_SIZE)
        while chunk:
            for byte in chunk:
                part1 = ((part1 * prime) & 0xFFFFFFFF) ^ byte
                part2 = ((part2 * prime) & 0xFFFFFFFF) ^ byte

                slot = consumed % window_size
                h2 = (h2 - h1 + (window_size * byte)) & 0xFFFFFFFF
                h1 = (h1 + byte - window[slot]) & 0xFFFFFFFF
                window[slot] = byte
                consumed += 1
                h3 = ((h3 << 5) & 0xFFFFFFFF) ^ byte
                rolling = h1 + h2 + h3

                if rolling % block_size == block_size - 1:
                    if len(sig1) < limit1:
                        sig1.append(b64[part1 % 64])
                        part1 = init
                    if rolling % double_block == double_block - 1:
                        if len(sig2) < limit2:
                            sig2.append(b64[part2 % 64])
                            part2 = init
            chunk = stream.read(self.STREAM_BUFF_SIZE)

        if consumed > 0:
            if len(sig1) < self.SPAMSUM_LENGTH:
                sig1.append(b64[part1 % 64])
            if len(sig2) < limit2 + 1:
                sig2.append(b64[part2 % 64])
        return sig1, sig2, consumed

    def hash_stream(self, stream: BinaryIO, length: int) -> str:
        """Compute the ssdeep signature of a seekable binary stream of *length* bytes."""
        if length <= 0:
            return f"{self.BLOCKSIZE_MIN}::"

        block_size = self._initial_block_size(length)
        while True:
            sig1, sig2, _ = self._digest_pass(stream, block_size)
            # Too few trigger points: retry with a smaller block size.
            if block_size > self.BLOCKSIZE_MIN and len(sig1) < self.SPAMSUM_LENGTH // 2:
                block_size //= 2
                continue
            return f'{block_size}:{"".join(sig1)}:{"".join(sig2)}'

    def hash(self, data: Union[bytes, bytearray, memoryview, str]) -> str:
        if isinstance(data, str):
            data = data.encode('utf-8', 'ignore')
        elif isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        elif not isinstance(data, bytes):
            raise TypeError(f"Argument must be of bytes or string type, not {type(data)}")
        return self.hash_stream(io.BytesIO(data), len(data))

    def hash_file(self, path: Union[str, os.PathLike]) -> str:
        """Compute the signature by reading *path* from disk.

        Raises OSError when the file cannot be opened or read.
        """
        with open(path, 'rb') as f:
            length = os.fstat(f.fileno()).st_size
            return self.hash_stream(f, length)

    # --- Comparison ---

    @staticmethod
    def _levenshtein(s: str, t: str) -> int:
        if s == t:
            return 0
        if not s:
            return len(t)
        if not t:
            return len(s)
        previous = list(range(len(t) + 1))
        current = [0] * (len(t) + 1)
        for i, s_char in enumerate(s):
            current[0] = i + 1
            for j, t_char in enumerate(t):
                cost = 0 if s_char == t_char else 1
                current[j + 1] = min(current[j] + 1, previous[j + 1] + 1, previous[j] + cost)
            previous, current = current, previous
        return previous[len(t)]

    def _common_substring(self, s1: str, s2: str) -> bool:
        """True if the two signatures share a ROLL_WINDOW-long substring."""
        window = self.ROLL_WINDOW
        positions = {}
        roll = self._RollState()
        for j, ch in enumerate(s1):
            h = roll.roll_hash(ord(ch))
            if j >= window - 1 and h != 0:
                positions.setdefault(h, []).append(j)

        roll = self._RollState()
        for i, ch in enumerate(s2):
            h = roll.roll_hash(ord(ch))
            if i < window - 1 or h not in positions:
                continue
            start = i - (window - 1)
            candidate = s2[start:start + window]
            for j in positions[h]:
                other_start = j - (window - 1)
                if candidate == s1[other_start:other_start + window]:
                    return True
        return False

    def _score_strings(self, s1: str, s2: str, block_size: int) -> int:
        if not s1 or not s2:
            return 0
        if not self._common_substring(s1, s2):
            return 0

        distance = self._levenshtein(s1, s2)
        score = (distance * self.SPAMSUM_LENGTH) // (len(s1) + len(s2))
        score = 100 - (100 * score) // self.SPAMSUM_LENGTH

        # Small block sizes cannot claim high confidence on short signatures.
        cap = (block_size // self.BLOCKSIZE_MIN) * min(len(s1), len(s2))
        return min(score, cap)

    @staticmethod
    def _strip_sequences(s: str) -> str:
        """Collapse runs of more than three identical characters to three."""
        if len(s) <= 3:
            return s
        kept = [s[0], s[1], s[2]]
        for i in range(3, len(s)):
            if not (s[i] == s[i - 1] == s[i - 2] == s[i - 3]):
                kept.append(s[i])
        return ''.join(kept)

    @staticmethod
    def _split(signature: str) -> Tuple[int, str, str]:
        parts = signature.split(':', 2)
        if len(parts) != 3:
            raise ValueError(f"Invalid hash format (must have 3 parts): {signature!r}")
        try:
            return int(parts[0]), parts[1], parts[2]
        except ValueError:
            raise ValueError(f"Invalid block size in hash: {signature!r}") from None

    def compare(self, hash1: str, hash2: str) -> int:
        """Return a 0-100 similarity score between two ssdeep signatures."""
        if not (isinstance(hash1, str) and isinstance(hash2, str)):
            raise TypeError('Arguments must be of string type')
        bs1, first1, second1 = self._split(hash1)
        bs2, first2, second2 = self._split(hash2)

        if bs1 != bs2 and bs1 != bs2 * 2 and bs2 != bs1 * 2:
            return 0

        first1, second1 = self._strip_sequences(first1), self._strip_sequences(second1)
        first2, second2 = self._strip_sequences(first2), self._strip_sequences(second2)

        if bs1 == bs2:
            if first1 == first2:
                return 100
            return max(
                self._score_strings(first1, first2, bs1),
                self._score_strings(second1, second2, bs1 * 2),
            )
        if bs1 == bs2 * 2:
            return self._score_strings(first1, second2, bs1)
        return self._score_strings(second1, first2, bs2)


ssdeep_hasher = SSDeep()
