"""
Operation count and throughput for one F(2,3) pipeline run.
"""

from dataclasses import dataclass


def winograd_flops(K, C, P):
    """Floating point operations for the four F(2,3) stages.

    filter transform  K*C*60
    data transform    C*P*112
    multiply-reduce   16*K*P*(2C-1)
    inverse transform K*P*112
    """
    return K * C * 60 + C * P * 112 + 16 * K * P * (2 * C - 1) + K * P * 112


def mflops(flop, elapsed):
    """MFlop/s with 1 MFlop = 1024^2 flop. Infinite for a zero-length run."""
    if elapsed <= 0:
        return float("inf")
    return flop / (1024.0 * 1024.0 * elapsed)


@dataclass(frozen=True)
class RunStatistics:
    flop: int
    elapsed: float
    mflops: float

    @classmethod
    def compute(cls, K, C, P, elapsed):
        flop = winograd_flops(K, C, P)
        return cls(flop=flop, elapsed=elapsed, mflops=mflops(flop, elapsed))

    def lines(self):
        return [
            f"Floating point operations: {self.flop}",
            f"Time Elapsed: {self.elapsed}",
            f"MFlop/s: {self.mflops}",
        ]

    def report(self):
        for line in self.lines():
            print(line)
