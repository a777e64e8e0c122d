"""Bus admittance matrix (Y-bus) construction.

Each in-service branch contributes a 2×2 stamp. Stamps are kept per
branch so a contingency case can subtract one branch from the base
matrix instead of rebuilding it.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass

import numpy as np

from loadflow.core.errors import NetworkSplitError
from loadflow.network.network_model import BranchData, NetworkModel

# Relative threshold below which a matrix entry is treated as zero
_ZERO_RTOL = 1e-12


@dataclass(frozen=True)
class BranchStamp:
    """Contribution of one branch to Y-bus.

    For series admittance y, tap t and total charging B:
    - Y_ii += y/|t|² + jB/2
    - Y_jj += y + jB/2
    - Y_ij -= y/t*
    - Y_ji -= y/t
    """
    branch_id: str
    i: int
    j: int
    y_ii: complex
    y_jj: complex
    y_ij: complex
    y_ji: complex

    @classmethod
    def from_branch(cls, br: BranchData) -> BranchStamp:
        y = 1.0 / br.z_pu
        t = br.tap
        half_b = 1j * br.b_pu / 2
        return cls(
            branch_id=br.branch_id,
            i=br.from_bus,
            j=br.to_bus,
            y_ii=y / (abs(t) ** 2) + half_b,
            y_jj=y + half_b,
            y_ij=-y / np.conj(t),
            y_ji=-y / t,
        )

    def apply(self, y_bus: np.ndarray, sign: float = 1.0) -> None:
        y_bus[self.i, self.i] += sign * self.y_ii
        y_bus[self.j, self.j] += sign * self.y_jj
        y_bus[self.i, self.j] += sign * self.y_ij
        y_bus[self.j, self.i] += sign * self.y_ji


@dataclass(frozen=True, eq=False)
class AdmittanceMatrix:
    """Y-bus together with the per-branch stamps it was built from."""
    y_bus: np.ndarray
    stamps: tuple[BranchStamp, ...]
    bus_ids: tuple[str, ...]

    @property
    def n_bus(self) -> int:
        return self.y_bus.shape[0]

    def stamp_for(self, branch_id: str) -> BranchStamp:
        for stamp in self.stamps:
            if stamp.branch_id == branch_id:
                return stamp
        raise ValueError(f"Branch '{branch_id}' is not stamped in this matrix")

    def without_branch(self, branch_id: str) -> AdmittanceMatrix:
        """Return a new matrix with exactly one branch's stamp removed.

        The receiver is left untouched. Off-diagonal entries are reset to
        exact zero when no other branch still couples the two buses.
        """
        removed = self.stamp_for(branch_id)
        remaining = tuple(s for s in self.stamps if s.branch_id != branch_id)

        y_bus = self.y_bus.copy()
        removed.apply(y_bus, sign=-1.0)

        pair = {removed.i, removed.j}
        if not any({s.i, s.j} == pair for s in remaining):
            y_bus[removed.i, removed.j] = 0j
            y_bus[removed.j, removed.i] = 0j

        return AdmittanceMatrix(y_bus=y_bus, stamps=remaining, bus_ids=self.bus_ids)

    def unreachable_buses(self, slack_idx: int) -> list[int]:
        """Bus indices with no admittance path to the slack bus.

        Uses BFS over the non-zero off-diagonal pattern. A bus whose
        diagonal entry vanished is reported as well, since the
        Gauss-Seidel update divides by it.
        """
        n = self.n_bus
        scale = float(np.max(np.abs(self.y_bus))) if n else 0.0
        threshold = _ZERO_RTOL * scale

        coupled = np.abs(self.y_bus) > threshold
        visited = {slack_idx}
        queue = deque([slack_idx])
        while queue:
            current = queue.popleft()
            for neighbor in np.flatnonzero(coupled[current]):
                neighbor = int(neighbor)
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        return [
            i for i in range(n)
            if i not in visited or (i != slack_idx and not coupled[i, i])
        ]

    def ensure_connected(self, slack_idx: int) -> None:
        """Raise NetworkSplitError when the matrix is singular by topology."""
        isolated = self.unreachable_buses(slack_idx)
        if isolated:
            raise NetworkSplitError([self.bus_ids[i] for i in isolated])


def build_admittance_matrix(network: NetworkModel) -> AdmittanceMatrix:
    """Construct the bus admittance matrix from in-service branches."""
    n = network.n_bus
    y_bus = np.zeros((n, n), dtype=complex)

    stamps: list[BranchStamp] = []
    for br in network.in_service_branches:
        stamp = BranchStamp.from_branch(br)
        stamp.apply(y_bus)
        stamps.append(stamp)

    return AdmittanceMatrix(
        y_bus=y_bus,
        stamps=tuple(stamps),
        bus_ids=tuple(bus.bus_id for bus in network.buses),
    )
