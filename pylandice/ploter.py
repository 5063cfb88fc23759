from __future__ import annotations

import os

import numpy as np

try:
    import matplotlib
    matplotlib.use(os.getenv("MPLBACKEND", "Agg"))
    import matplotlib.pyplot as plt  # type: ignore
except ImportError:
    plt = None


def _require_matplotlib():
    if plt is None:
        raise RuntimeError("matplotlib is required for plotting. Please install 'matplotlib'.")


def owned_cells(domain, time_level: int = 1) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Concatenate (x, y, thickness, block id) over the owned cells of every local partition."""
    xs, ys, hs, bs = [], [], [], []
    for part in domain:
        m = part.mesh
        xs.append(m.x_cell[m.owned])
        ys.append(m.y_cell[m.owned])
        hs.append(part.state.thickness.level(time_level)[m.owned])
        bs.append(np.full(m.n_cells_solve, part.block_id))
    if not xs:
        empty = np.empty(0)
        return empty, empty, empty, empty.astype(np.int64)
    return np.concatenate(xs), np.concatenate(ys), np.concatenate(hs), np.concatenate(bs)


def plot_thickness(domain, path: str, *, time_level: int = 1, title: str | None = None,
                   vmax: float | None = None) -> str:
    """
    Scatter map of ice thickness over the owned cells of this process, with
    partition boundaries outlined by block id. Returns the written path.
    """
    _require_matplotlib()
    x, y, h, blocks = owned_cells(domain, time_level)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    fig, axes = plt.subplots(1, 2, figsize=(11, 4.5), constrained_layout=True)
    km = 1.0e-3
    sc = axes[0].scatter(x * km, y * km, c=h, s=12, marker="s", cmap="Blues",
                         vmin=0.0, vmax=vmax if vmax is not None else (float(h.max()) if h.size else 1.0))
    fig.colorbar(sc, ax=axes[0], label="thickness (m)")
    axes[0].set_title(title or f"Ice thickness (rank {domain.comm.rank})")
    sb = axes[1].scatter(x * km, y * km, c=blocks, s=12, marker="s", cmap="tab20")
    fig.colorbar(sb, ax=axes[1], label="block id")
    axes[1].set_title("Partitions")
    for ax in axes:
        ax.set_xlabel("x (km)")
        ax.set_ylabel("y (km)")
        ax.set_aspect("equal")
    fig.savefig(path, dpi=110)
    plt.close(fig)
    return path
