"""Baby JubJub twisted Edwards curve and EdDSA-Poseidon signatures.

Matches the iden3 conventions used by the Hermez network:

- compressed points are the little-endian Y coordinate with the top bit of the
  last byte carrying the sign of X;
- private keys are 32 random bytes expanded with BLAKE-512;
- signatures are ``R8 (compressed) || S (little-endian)``, 64 bytes.
"""

from dataclasses import dataclass

from hermez_wallet.primitives.blake512 import blake512
from hermez_wallet.primitives.poseidon import FIELD_PRIME, poseidon

Q = FIELD_PRIME
A = 168700
D = 168696

# Order of the prime-order subgroup generated by B8
SUB_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041

POINT_COMP_LEN = 32
SIGNATURE_COMP_LEN = 64


def _inv(x: int) -> int:
    return pow(x, -1, Q)


def _sqrt(n: int) -> int:
    """Tonelli-Shanks square root modulo Q."""
    n %= Q
    if n == 0:
        return 0
    if pow(n, (Q - 1) // 2, Q) != 1:
        raise ValueError("Value is not a quadratic residue")

    s, q = 0, Q - 1
    while q % 2 == 0:
        s += 1
        q //= 2

    z = 2
    while pow(z, (Q - 1) // 2, Q) != Q - 1:
        z += 1

    m, c, t, r = s, pow(z, q, Q), pow(n, q, Q), pow(n, (q + 1) // 2, Q)
    while t != 1:
        i, t2 = 0, t
        while t2 != 1:
            t2 = t2 * t2 % Q
            i += 1
        b = pow(c, 1 << (m - i - 1), Q)
        m, c, t, r = i, b * b % Q, t * b * b % Q, r * b % Q
    return r


@dataclass(frozen=True)
class Point:
    """Affine point on Baby JubJub."""

    x: int
    y: int

    @classmethod
    def identity(cls) -> "Point":
        return cls(0, 1)

    def is_on_curve(self) -> bool:
        x2 = self.x * self.x % Q
        y2 = self.y * self.y % Q
        return (A * x2 + y2) % Q == (1 + D * x2 * y2) % Q

    def add(self, other: "Point") -> "Point":
        x1, y1, x2, y2 = self.x, self.y, other.x, other.y
        tau = D * x1 * x2 * y1 * y2 % Q
        x3 = (x1 * y2 + y1 * x2) * _inv((1 + tau) % Q) % Q
        y3 = (y1 * y2 - A * x1 * x2) * _inv((1 - tau) % Q) % Q
        return Point(x3, y3)

    def mul(self, scalar: int) -> "Point":
        """Double-and-add scalar multiplication."""
        if scalar < 0:
            raise ValueError("Scalar must be non-negative")
        result = Point.identity()
        addend = self
        while scalar:
            if scalar & 1:
                result = result.add(addend)
            addend = addend.add(addend)
            scalar >>= 1
        return result

    def compress(self) -> bytes:
        buf = bytearray(self.y.to_bytes(POINT_COMP_LEN, "little"))
        if self.x > Q >> 1:
            buf[31] |= 0x80
        return bytes(buf)

    @classmethod
    def decompress(cls, data: bytes) -> "Point":
        """Recover a point from its 32-byte compressed form.

        Raises:
            ValueError: If the bytes do not encode a point on the curve.
        """
        if len(data) != POINT_COMP_LEN:
            raise ValueError(f"Compressed point must be {POINT_COMP_LEN} bytes")

        buf = bytearray(data)
        sign = bool(buf[31] & 0x80)
        buf[31] &= 0x7F
        y = int.from_bytes(buf, "little")
        if y >= Q:
            raise ValueError("Y coordinate is not inside the finite field")

        y2 = y * y % Q
        x = _sqrt((1 - y2) * _inv((A - D * y2) % Q))
        if sign != (x > Q >> 1):
            x = (Q - x) % Q

        point = cls(x, y)
        if not point.is_on_curve():
            raise ValueError("Point is not on the curve")
        return point


B8 = Point(
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)


@dataclass(frozen=True)
class Signature:
    """EdDSA-Poseidon signature ``(R8, S)``."""

    r8: Point
    s: int

    def compress(self) -> bytes:
        return self.r8.compress() + self.s.to_bytes(32, "little")

    @classmethod
    def decompress(cls, data: bytes) -> "Signature":
        if len(data) != SIGNATURE_COMP_LEN:
            raise ValueError(f"Compressed signature must be {SIGNATURE_COMP_LEN} bytes")
        r8 = Point.decompress(data[:32])
        s = int.from_bytes(data[32:], "little")
        if s >= SUB_ORDER:
            raise ValueError("Signature S is not below the subgroup order")
        return cls(r8, s)


class PrivateKey:
    """Baby JubJub private key: 32 bytes expanded with BLAKE-512."""

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ValueError("Private key must be 32 bytes")
        self._key = bytes(key)

    def __repr__(self) -> str:
        return "PrivateKey(<hidden>)"

    def scalar(self) -> int:
        buf = bytearray(blake512(self._key)[:32])
        buf[0] &= 0xF8
        buf[31] &= 0x7F
        buf[31] |= 0x40
        return int.from_bytes(buf, "little") >> 3

    def public(self) -> Point:
        return B8.mul(self.scalar())

    def sign_poseidon(self, msg: int) -> Signature:
        """Sign a field element deterministically.

        r = BLAKE-512(h[32:] || msg) mod l, R8 = r*B8,
        S = r + Poseidon(R8, A, msg) * 8 * s mod l.
        """
        if not 0 <= msg < Q:
            raise ValueError("Message is not inside the finite field")

        h = blake512(self._key)
        r = int.from_bytes(blake512(h[32:] + msg.to_bytes(32, "little")), "little")
        r %= SUB_ORDER
        r8 = B8.mul(r)
        pub = self.public()
        hm = poseidon([r8.x, r8.y, pub.x, pub.y, msg])
        s = (r + hm * (self.scalar() << 3)) % SUB_ORDER
        return Signature(r8, s)


def verify_poseidon(public_key: Point, msg: int, signature: Signature) -> bool:
    """Check ``S*B8 == R8 + 8*Poseidon(R8, A, msg)*A``."""
    if not 0 <= msg < Q:
        return False
    hm = poseidon([signature.r8.x, signature.r8.y, public_key.x, public_key.y, msg])
    left = B8.mul(signature.s)
    right = signature.r8.add(public_key.mul(8 * hm))
    return left == right
