"""
Distributed-memory helpers: communicators, halo exchange and global reductions.

Every function or method marked "collective" must be called by all processes
of the communicator, the same number of times and in the same order. None of
them may be skipped based on a process-local runtime condition (for example a
local error), otherwise the other processes block forever.

Communicators
- SerialCommunicator: single process, all collectives are trivial.
- MPICommunicator: wraps an ``mpi4py`` communicator (MPI.COMM_WORLD by default).
- get_communicator(kind): "serial" | "mpi"

Halo exchange
- HaloExchanger is built once per domain (collective). It maps every ghost cell
  of every local partition to the (rank, partition, cell) that owns it, then
  exchange() copies owner values into the ghosts: local owners by direct copy,
  remote owners through one alltoall.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Protocol, Sequence

import numpy as np

from pylandice.errors import ConfigError, ErrorKind, MeshError, combine


class Communicator(Protocol):
    rank: int
    size: int

    def allgather(self, obj: Any) -> list[Any]:
        ...

    def alltoall(self, objs: Sequence[Any]) -> list[Any]:
        ...

    def allreduce_min(self, value: float) -> float:
        ...

    def allreduce_max(self, value: int) -> int:
        ...

    def bcast(self, obj: Any, root: int = 0) -> Any:
        ...

    def barrier(self) -> None:
        ...


class SerialCommunicator:
    """Communicator of a single process."""

    rank = 0
    size = 1

    def allgather(self, obj: Any) -> list[Any]:
        return [obj]

    def alltoall(self, objs: Sequence[Any]) -> list[Any]:
        if len(objs) != 1:
            raise ValueError("SerialCommunicator.alltoall expects exactly one item")
        return [objs[0]]

    def allreduce_min(self, value: float) -> float:
        return float(value)

    def allreduce_max(self, value: int) -> int:
        return int(value)

    def bcast(self, obj: Any, root: int = 0) -> Any:
        return obj

    def barrier(self) -> None:
        return None

    def __repr__(self) -> str:
        return "SerialCommunicator(rank=0, size=1)"


class MPICommunicator:
    """Thin wrapper around an mpi4py communicator (object/pickle interface)."""

    def __init__(self, comm: Any | None = None) -> None:
        try:
            from mpi4py import MPI
        except ImportError as err:
            raise ConfigError("MPI communicator requested but mpi4py is not installed "
                              "(install the 'mpi' extra).") from err
        self._MPI = MPI
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = int(self.comm.Get_rank())
        self.size = int(self.comm.Get_size())

    def allgather(self, obj: Any) -> list[Any]:
        return self.comm.allgather(obj)

    def alltoall(self, objs: Sequence[Any]) -> list[Any]:
        return self.comm.alltoall(list(objs))

    def allreduce_min(self, value: float) -> float:
        return float(self.comm.allreduce(float(value), op=self._MPI.MIN))

    def allreduce_max(self, value: int) -> int:
        return int(self.comm.allreduce(int(value), op=self._MPI.MAX))

    def bcast(self, obj: Any, root: int = 0) -> Any:
        return self.comm.bcast(obj, root=root)

    def barrier(self) -> None:
        self.comm.Barrier()

    def abort(self, code: int = 1) -> None:
        self.comm.Abort(code)

    def __repr__(self) -> str:
        return f"MPICommunicator(rank={self.rank}, size={self.size})"


def get_communicator(kind: str = "serial") -> Communicator:
    kind = (kind or "serial").lower()
    if kind == "serial":
        return SerialCommunicator()
    if kind == "mpi":
        return MPICommunicator()
    raise ConfigError(f"Unknown communicator kind: {kind!r} (expected 'serial' or 'mpi')")


# ---------------------------
# Global reductions (collective)
# ---------------------------


def min_real(comm: Communicator, value: float) -> float:
    """Global minimum of a real over all processes."""
    return comm.allreduce_min(float(value))


def max_int(comm: Communicator, value: int) -> int:
    """Global maximum of an integer over all processes."""
    return comm.allreduce_max(int(value))


def merge_errors(comm: Communicator, err: ErrorKind) -> ErrorKind:
    """Union of the error kinds of all processes."""
    return combine(*(ErrorKind(v) for v in comm.allgather(int(err.value))))


# ---------------------------
# Halo exchange
# ---------------------------


def _as_index_arrays(pairs: list[tuple[int, int]]) -> tuple[np.ndarray, np.ndarray]:
    if not pairs:
        return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64)
    arr = np.asarray(pairs, dtype=np.int64)
    return arr[:, 0], arr[:, 1]


class HaloExchanger:
    """
    Ghost-cell synchronization plan for the partitions of one process.

    Construction is collective (one allgather, one max-reduction, one alltoall).
    """

    def __init__(self, partitions: Sequence[Any], comm: Communicator) -> None:
        self.partitions = list(partitions)
        self.comm = comm
        self.n_exchanges = 0

        # Owned cells of this process: gid -> (partition index, local cell)
        local_owner: dict[int, tuple[int, int]] = {}
        duplicated = 0
        for pi, part in enumerate(self.partitions):
            mesh = part.mesh
            for local, gid in enumerate(mesh.cell_ids[: mesh.n_cells_solve]):
                if int(gid) in local_owner:
                    duplicated += 1
                local_owner[int(gid)] = (pi, local)

        gathered = comm.allgather(np.fromiter(local_owner.keys(), dtype=np.int64, count=len(local_owner)))
        owner_rank: dict[int, int] = {}
        for r, gids in enumerate(gathered):
            for gid in gids:
                if int(gid) in owner_rank:
                    duplicated += 1
                owner_rank[int(gid)] = r

        local_copies: dict[tuple[int, int], list[tuple[int, int]]] = defaultdict(list)
        requests: list[list[int]] = [[] for _ in range(comm.size)]
        recv_pairs: list[list[tuple[int, int]]] = [[] for _ in range(comm.size)]
        missing = 0
        for pi, part in enumerate(self.partitions):
            mesh = part.mesh
            for ghost in range(mesh.n_cells_solve, mesh.n_cells):
                gid = int(mesh.cell_ids[ghost])
                r = owner_rank.get(gid)
                if r is None:
                    missing += 1
                elif r == comm.rank:
                    src_pi, src_local = local_owner[gid]
                    local_copies[(pi, src_pi)].append((ghost, src_local))
                else:
                    requests[r].append(gid)
                    recv_pairs[r].append((pi, ghost))

        # Decide on mesh errors collectively so every process raises together
        status = max_int(comm, (1 if missing else 0) | (2 if duplicated else 0))
        if status & 1:
            raise MeshError("halo cells reference global cell ids that no partition owns")
        if status & 2:
            raise MeshError("a global cell id is owned by more than one partition")

        incoming = comm.alltoall([np.asarray(req, dtype=np.int64) for req in requests])

        self._local = {key: _as_index_arrays(pairs) for key, pairs in local_copies.items()}
        self._recv = [_as_index_arrays(pairs) for pairs in recv_pairs]
        self._send = [_as_index_arrays([local_owner[int(g)] for g in gids]) for gids in incoming]

    @property
    def n_remote_neighbors(self) -> int:
        return sum(1 for _, idx in self._recv if idx.size)

    def exchange(self, identifier: str) -> None:
        """Synchronize ghost values of the named field on all local partitions (collective)."""
        arrays = [part.field(identifier) for part in self.partitions]

        sends: list[np.ndarray | None] = []
        for pis, idx in self._send:
            if idx.size == 0:
                sends.append(None)
                continue
            ref = arrays[pis[0]]
            buf = np.empty(ref.shape[:-1] + (idx.size,), dtype=ref.dtype)
            for pi in np.unique(pis):
                sel = pis == pi
                buf[..., sel] = arrays[pi][..., idx[sel]]
            sends.append(buf)

        for (dst, src), (ghost_idx, owner_idx) in self._local.items():
            arrays[dst][..., ghost_idx] = arrays[src][..., owner_idx]

        received = self.comm.alltoall(sends)

        for (pis, idx), buf in zip(self._recv, received):
            if idx.size == 0:
                continue
            for pi in np.unique(pis):
                sel = pis == pi
                arrays[pi][..., idx[sel]] = buf[..., sel]

        self.n_exchanges += 1


def field_halo_exch(domain: Any, identifier: str) -> None:
    """Halo exchange of one field over the whole domain (collective)."""
    domain.halo.exchange(identifier)
