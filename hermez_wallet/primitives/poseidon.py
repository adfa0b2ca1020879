"""Poseidon hash over the BN254 scalar field (circomlib/iden3 parameters).

Round constants and the MDS matrix are regenerated from the reference Grain
LFSR instead of being shipped as tables. Parameters are immutable and cached
per state width.
"""

from functools import lru_cache

# BN254 scalar field, also the Baby JubJub base field
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FIELD_BITS = 254
N_ROUNDS_F = 8
# Partial rounds for state widths t = 2..17
N_ROUNDS_P = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)

MAX_INPUTS = len(N_ROUNDS_P)


def _grain_bits(t: int, r_f: int, r_p: int):
    """Yield the self-shrinking Grain LFSR bit stream for the given width."""
    seed = (
        format(1, "02b")  # prime field
        + format(0, "04b")  # x^alpha s-box
        + format(FIELD_BITS, "012b")
        + format(t, "012b")
        + format(r_f, "010b")
        + format(r_p, "010b")
        + "1" * 30
    )
    # Bit k of the register is position k of the sequence
    state = 0
    for k, bit in enumerate(seed):
        state |= int(bit) << k

    def step() -> int:
        nonlocal state
        new_bit = (
            (state >> 62) ^ (state >> 51) ^ (state >> 38) ^ (state >> 23) ^ (state >> 13) ^ state
        ) & 1
        state = (state >> 1) | (new_bit << 79)
        return new_bit

    for _ in range(160):
        step()

    while True:
        new_bit = step()
        while new_bit == 0:
            step()
            new_bit = step()
        yield step()


def _random_int(bits, n: int) -> int:
    value = 0
    for _ in range(n):
        value = (value << 1) | next(bits)
    return value


@lru_cache(maxsize=None)
def parameters(t: int) -> tuple[tuple[int, ...], tuple[tuple[int, ...], ...]]:
    """Return ``(round_constants, mds_matrix)`` for state width ``t``."""
    if not 2 <= t <= MAX_INPUTS + 1:
        raise ValueError(f"Unsupported Poseidon width: {t}")

    r_p = N_ROUNDS_P[t - 2]
    bits = _grain_bits(t, N_ROUNDS_F, r_p)

    constants = []
    for _ in range((N_ROUNDS_F + r_p) * t):
        value = _random_int(bits, FIELD_BITS)
        while value >= FIELD_PRIME:
            value = _random_int(bits, FIELD_BITS)
        constants.append(value)

    # Cauchy matrix M[i][j] = 1 / (x_i + y_j)
    samples = [_random_int(bits, FIELD_BITS) % FIELD_PRIME for _ in range(2 * t)]
    xs, ys = samples[:t], samples[t:]
    matrix = tuple(
        tuple(pow((x + y) % FIELD_PRIME, -1, FIELD_PRIME) for y in ys) for x in xs
    )

    return tuple(constants), matrix


def poseidon(inputs: list[int] | tuple[int, ...]) -> int:
    """Hash 1..16 field elements to a single field element.

    Raises:
        ValueError: If there are no inputs, too many inputs, or an input is
            not a canonical field element.
    """
    if not inputs or len(inputs) > MAX_INPUTS:
        raise ValueError(f"Poseidon takes 1 to {MAX_INPUTS} inputs, got {len(inputs)}")
    for value in inputs:
        if not 0 <= value < FIELD_PRIME:
            raise ValueError("Poseidon input is not inside the finite field")

    t = len(inputs) + 1
    r_p = N_ROUNDS_P[t - 2]
    constants, matrix = parameters(t)
    half_full = N_ROUNDS_F // 2

    state = [0, *inputs]
    for r in range(N_ROUNDS_F + r_p):
        state = [(s + constants[r * t + i]) % FIELD_PRIME for i, s in enumerate(state)]

        if r < half_full or r >= half_full + r_p:
            state = [pow(s, 5, FIELD_PRIME) for s in state]
        else:
            state[0] = pow(state[0], 5, FIELD_PRIME)

        state = [
            sum(row[j] * state[j] for j in range(t)) % FIELD_PRIME for row in matrix
        ]

    return state[0]
