"""Natural cubic spline smoothing of beta(t) estimates.

The smoother is the one behind the classic ``plot.cox.zph`` display: a natural
cubic spline with an intercept is fitted by least squares to the observed
points, and evaluated on an evenly spaced grid of ``nsmo`` points spanning the
observed times. The basis is built once on the grid and the observed times
together, so both share knots.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import BSpline
from scipy.linalg import qr, solve_triangular

from zphplot.core.errors import InvalidInputError, SingularFitError

logger = logging.getLogger(__name__)

# Relative tolerance on |diag(R)| used to count the rank of the design matrix.
RANK_TOL = 1e-7


def natural_spline_basis(
    x: Sequence[float],
    df: int,
    *,
    intercept: bool = True,
    knots: Optional[Sequence[float]] = None,
    boundary_knots: Optional[Tuple[float, float]] = None,
) -> np.ndarray:
    """Evaluate a natural cubic spline basis at ``x``.

    Follows the usual ``ns()`` construction: interior knots at equally spaced
    quantiles of ``x``, boundary knots at its range, and a cubic B-spline basis
    projected onto the subspace with zero second derivative at both boundary
    knots. The result has ``df`` columns (at least ``1 + intercept``).
    """

    x = np.asarray(x, dtype=float)
    if x.ndim != 1 or x.size == 0:
        raise InvalidInputError("x must be a non-empty 1-d array.")

    if boundary_knots is None:
        lo, hi = float(np.min(x)), float(np.max(x))
    else:
        lo, hi = (float(b) for b in boundary_knots)
    if not lo < hi:
        raise InvalidInputError("Boundary knots must span a non-empty range.")

    if knots is None:
        n_interior = df - 1 - int(intercept)
        if n_interior < 0:
            logger.warning("df=%d is too small; using %d", df, 1 + int(intercept))
            n_interior = 0
        probs = np.linspace(0.0, 1.0, n_interior + 2)[1:-1]
        inside = x[(x >= lo) & (x <= hi)]
        knots = np.quantile(inside, probs) if n_interior > 0 else np.empty(0)
    knots = np.sort(np.asarray(knots, dtype=float))

    order = 4
    all_knots = np.concatenate([np.repeat(lo, order), knots, np.repeat(hi, order)])
    n_basis = all_knots.size - order
    spline = BSpline(all_knots, np.eye(n_basis), order - 1, extrapolate=True)

    basis = spline(x)
    # Outside the boundary knots the basis continues linearly. Derivatives go
    # through ``nu`` so that tied interior knots are accepted.
    below, above = x < lo, x > hi
    for mask, edge in ((below, lo), (above, hi)):
        if mask.any():
            basis[mask] = spline(edge) + np.outer(x[mask] - edge, spline(edge, nu=1))
    const = spline(np.array([lo, hi]), nu=2)
    if not np.all(np.isfinite(const)):
        raise SingularFitError("Spline fit is singular, try a smaller degrees of freedom")
    if not intercept:
        basis = basis[:, 1:]
        const = const[:, 1:]

    # Columns 3.. of the complete Q of const' span the null space of the
    # boundary second-derivative constraints.
    q, _ = np.linalg.qr(const.T, mode="complete")
    return basis @ q[:, 2:]


@dataclass(frozen=True, eq=False)
class SplineSmoother:
    """A least-squares natural spline fit, ready to smooth any response column."""

    pred_x: np.ndarray
    pmat: np.ndarray
    xmat: np.ndarray
    df: int
    rank: int
    _q: np.ndarray
    _r: np.ndarray
    _piv: np.ndarray

    @property
    def n_obs(self) -> int:
        return int(self.xmat.shape[0])

    def coef(self, y: Sequence[float]) -> np.ndarray:
        y = np.asarray(y, dtype=float)
        if y.shape[0] != self.n_obs:
            raise InvalidInputError(f"Expected {self.n_obs} observations, got {y.shape[0]}.")
        k = self.rank
        beta = np.zeros((self.xmat.shape[1],) + y.shape[1:])
        beta[self._piv[:k]] = solve_triangular(self._r[:k, :k], self._q[:, :k].T @ y)
        return beta

    def fitted(self, y: Sequence[float]) -> np.ndarray:
        """Fitted curve on ``pred_x``."""
        return self.pmat @ self.coef(y)

    def xtx_inverse(self) -> np.ndarray:
        k = self.rank
        rinv = solve_triangular(self._r[:k, :k], np.eye(k))
        out = np.zeros((self.xmat.shape[1], self.xmat.shape[1]))
        idx = self._piv[:k]
        out[np.ix_(idx, idx)] = rinv @ rinv.T
        return out

    def variance_factor(self) -> np.ndarray:
        """Pointwise variance multiplier of the fitted curve on ``pred_x``.

        Scaled by the number of events, so ``sqrt(var[i, i] * factor)`` is the
        standard error of the smooth for covariate ``i``.
        """
        xtx = self.xtx_inverse()
        return self.n_obs * np.sum((self.pmat @ xtx) * self.pmat, axis=1)


def fit_spline_smoother(x: Sequence[float], *, df: int = 4, nsmo: int = 40) -> SplineSmoother:
    """Set up the natural spline fit on observed times ``x``.

    Raises :class:`SingularFitError` when the design matrix has rank below
    ``df``, e.g. when there are fewer distinct times than degrees of freedom.
    """

    x = np.asarray(x, dtype=float)
    if x.ndim != 1 or x.size == 0:
        raise InvalidInputError("x must be a non-empty 1-d array.")
    if df < 1:
        raise InvalidInputError(f"df must be >= 1, got {df}.")
    if nsmo < 2:
        raise InvalidInputError(f"nsmo must be >= 2, got {nsmo}.")

    lo, hi = float(np.min(x)), float(np.max(x))
    if lo == hi:
        raise SingularFitError("Spline fit is singular, all event times are equal")

    pred_x = np.linspace(lo, hi, nsmo)
    lmat = natural_spline_basis(np.concatenate([pred_x, x]), df, intercept=True)
    if not np.all(np.isfinite(lmat)):
        raise SingularFitError("Spline fit is singular, try a smaller degrees of freedom")
    pmat = lmat[:nsmo]
    xmat = lmat[nsmo:]

    q, r, piv = qr(xmat, mode="economic", pivoting=True)
    diag = np.abs(np.diag(r))
    rank = int(np.sum(diag > RANK_TOL * diag[0])) if diag.size and diag[0] > 0 else 0
    logger.debug("spline design: %d obs, %d columns, rank %d (df=%d)", xmat.shape[0], xmat.shape[1], rank, df)
    if rank < df:
        raise SingularFitError("Spline fit is singular, try a smaller degrees of freedom")

    for arr in (pred_x, pmat, xmat):
        arr.setflags(write=False)
    return SplineSmoother(
        pred_x=pred_x,
        pmat=pmat,
        xmat=xmat,
        df=df,
        rank=rank,
        _q=q,
        _r=r,
        _piv=piv,
    )
