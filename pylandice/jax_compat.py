"""
jax_compat.py: optional JAX acceleration layer for the land-ice core

Provides:
- JAX enable switch via env LI_USE_JAX (0/1)
- Column kernels used by the prognostic update:
    * forward_euler: old + tend * dt (jitted when JAX is enabled)
    * clamp_negative_columns: zero columns whose total is negative
- to_numpy: safe conversion from device arrays to numpy
- is_enabled / backend: query helpers
"""
from __future__ import annotations

import os
import numpy as _np

# Global flag: never raise if JAX is unavailable, fall back to NumPy
_JAX_ENABLED = False
_JAX = None
_JNP = None
_JAX_BACKEND = "none"  # cpu|gpu|tpu|metal|unknown|none

try:
    _JAX_ENABLED = int(os.getenv("LI_USE_JAX", "0")) == 1
except Exception:
    _JAX_ENABLED = False

if _JAX_ENABLED:
    try:
        import jax as _JAX
        import jax.numpy as _JNP
        # Float64 is required for thickness bookkeeping over long runs
        _JAX.config.update("jax_enable_x64", True)
        try:
            devs = _JAX.devices()
            _JAX_BACKEND = getattr(devs[0], "platform", "unknown") if devs else "unknown"
        except Exception:
            _JAX_BACKEND = "unknown"
        # Enable only on real accelerators unless forced
        if not ((_JAX_BACKEND in ("gpu", "cuda", "tpu")) or (os.getenv("LI_JAX_FORCE", "0") == "1")):
            _JAX_ENABLED = False
    except ImportError:
        _JAX = None
        _JNP = None
        _JAX_ENABLED = False
        _JAX_BACKEND = "none"


def is_enabled() -> bool:
    return _JAX_ENABLED


def backend() -> str:
    """Return detected JAX backend string: gpu|cpu|tpu|metal|unknown|none"""
    return _JAX_BACKEND


def to_numpy(x):
    """Convert a JAX array (if enabled) to a writeable NumPy array; ndarray inputs pass through."""
    if isinstance(x, _np.ndarray):
        return x
    arr = _np.asarray(x)
    # Device arrays come back read-only
    if not arr.flags.writeable:
        arr = arr.copy()
    return arr


# ---------------- Column kernels (JAX-jitted with NumPy fallbacks) ---------------- #

if _JAX_ENABLED:
    @_JAX.jit
    def _euler_jit(old, tend, dt):
        return old + tend * dt

    @_JAX.jit
    def _clamp_jit(layers):
        total = _JNP.sum(layers, axis=0)
        negative = total < 0.0
        layers = _JNP.where(negative[None, :], 0.0, layers)
        total = _JNP.where(negative, 0.0, total)
        return layers, total, negative


def forward_euler(old, tend, dt: float):
    """
    Explicit first-order update old + tend * dt.
    Inputs are read, never written.
    """
    if _JAX_ENABLED:
        return to_numpy(_euler_jit(_JNP.asarray(old), _JNP.asarray(tend), float(dt)))
    return old + tend * float(dt)


def clamp_negative_columns(layers):
    """
    Zero every column whose layer sum is negative.

    Returns (layers, thickness, clamped_mask). The returned thickness is the
    column sum of the returned layers, so clamping keeps the two consistent.
    """
    if _JAX_ENABLED:
        lay, tot, neg = _clamp_jit(_JNP.asarray(layers))
        return to_numpy(lay), to_numpy(tot), to_numpy(neg)
    layers = _np.array(layers, copy=True)
    total = layers.sum(axis=0)
    negative = total < 0.0
    layers[:, negative] = 0.0
    total[negative] = 0.0
    return layers, total, negative
