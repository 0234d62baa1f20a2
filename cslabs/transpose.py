"""Matrix transpose functions evaluated by the cache lab driver."""

from __future__ import annotations

from cslabs.cachelab import Matrix, TransRegistry, correct_trans

SUBMIT_DESCRIPTION = "Transpose submission"
TRANS_DESCRIPTION = "Simple row-wise scan transpose"

_BLOCK = 8


def transpose_submit(m: int, n: int, a: Matrix, b: Matrix) -> None:
    """Blocked transpose B = A^T, tiled for a 1KB direct-mapped cache with 32-byte blocks."""
    for row0 in range(0, n, _BLOCK):
        for col0 in range(0, m, _BLOCK):
            for i in range(row0, min(row0 + _BLOCK, n)):
                row = a[i]
                for j in range(col0, min(col0 + _BLOCK, m)):
                    b[j][i] = row[j]


def trans(m: int, n: int, a: Matrix, b: Matrix) -> None:
    """Simple row-wise scan transpose B = A^T."""
    for i, row in enumerate(a[:n]):
        for j, value in enumerate(row[:m]):
            b[j][i] = value


def is_transpose(m: int, n: int, a: Matrix, b: Matrix) -> bool:
    """Return whether B is the transpose of the n-by-m matrix A."""
    return all(a[i][j] == b[j][i] for i in range(n) for j in range(m))


def register_functions(registry: TransRegistry) -> None:
    """Register the submission and the baseline transpose."""
    registry.register(transpose_submit, SUBMIT_DESCRIPTION)
    registry.register(trans, TRANS_DESCRIPTION)


def validate(fn: int, m: int, n: int, a: Matrix, b: Matrix) -> bool:
    """Check B against the reference transpose of A, reporting the first mismatch."""
    expected = correct_trans(m, n, a)
    for i, (want_row, got_row) in enumerate(zip(expected, b)):
        for j, (want, got) in enumerate(zip(want_row, got_row[:n])):
            if want != got:
                print(
                    f"Validation failed on function {fn}! "
                    f"Expected {want} but got {got} at B[{i}][{j}]"
                )
                return False
    return True