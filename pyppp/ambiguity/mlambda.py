# Copyright 2024 inuex35
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Integer least-squares ambiguity estimation (LAMBDA / MLAMBDA)
=============================================================

LD factorization, integer Gauss decorrelation with permutations and the
MLAMBDA depth-first search, compiled with numba. Follows the RTKLIB
reference implementation (lambda.c).

References:
    [1] P.J.G.Teunissen, The least-square ambiguity decorrelation adjustment:
        a method for fast GPS ambiguity estimation, J.Geodesy, Vol.70, 65-82, 1995
    [2] X.-W.Chang, X.Yang, T.Zhou, MLAMBDA: A modified LAMBDA method for
        integer least-squares estimation, J.Geodesy, Vol.79, 552-565, 2005
"""

import logging
from typing import Tuple

import numpy as np
from numba import njit
from scipy.stats import norm

logger = logging.getLogger(__name__)

LOOPMAX = 10000


@njit(cache=True)
def _round(x):
    return np.floor(x + 0.5)


@njit(cache=True)
def _sgn(x):
    return -1.0 if x <= 0.0 else 1.0


@njit(cache=True)
def ld_factorization(Q):
    """
    LD factorization Q = L' * diag(d) * L

    Returns
    -------
    L : np.ndarray
        Unit lower triangular matrix
    d : np.ndarray
        Diagonal values
    ok : bool
        False when Q is not positive definite
    """
    n = Q.shape[0]
    A = Q.copy()
    L = np.zeros((n, n))
    d = np.zeros(n)
    for i in range(n - 1, -1, -1):
        d[i] = A[i, i]
        if d[i] <= 0.0:
            return L, d, False
        a = np.sqrt(d[i])
        for j in range(i + 1):
            L[i, j] = A[i, j] / a
        for j in range(i):
            for k in range(j + 1):
                A[j, k] -= L[i, k] * L[i, j]
        for j in range(i + 1):
            L[i, j] /= L[i, i]
    return L, d, True


@njit(cache=True)
def _gauss(L, Z, i, j):
    n = L.shape[0]
    mu = _round(L[i, j])
    if mu != 0.0:
        for k in range(i, n):
            L[k, j] -= mu * L[k, i]
        for k in range(n):
            Z[k, j] -= mu * Z[k, i]


@njit(cache=True)
def _perm(L, d, j, delta, Z):
    n = L.shape[0]
    eta = d[j] / delta
    lam = d[j + 1] * L[j + 1, j] / delta
    d[j] = eta * d[j + 1]
    d[j + 1] = delta
    for k in range(j):
        a0 = L[j, k]
        a1 = L[j + 1, k]
        L[j, k] = -L[j + 1, j] * a0 + a1
        L[j + 1, k] = eta * a0 + lam * a1
    L[j + 1, j] = lam
    for k in range(j + 2, n):
        tmp = L[k, j]
        L[k, j] = L[k, j + 1]
        L[k, j + 1] = tmp
    for k in range(n):
        tmp = Z[k, j]
        Z[k, j] = Z[k, j + 1]
        Z[k, j + 1] = tmp


@njit(cache=True)
def reduction(L, d):
    """
    LAMBDA reduction (z = Z'a, Qz = Z'QZ = L'diag(d)L), in place on L and d

    Returns
    -------
    Z : np.ndarray
        Unimodular transformation matrix
    """
    n = d.shape[0]
    Z = np.eye(n)
    j = n - 2
    k = n - 2
    while j >= 0:
        if j <= k:
            for i in range(j + 1, n):
                _gauss(L, Z, i, j)
        delta = d[j] + L[j + 1, j] * L[j + 1, j] * d[j + 1]
        if delta + 1e-6 < d[j + 1]:
            _perm(L, d, j, delta, Z)
            k = j
            j = n - 2
        else:
            j -= 1
    return Z


@njit(cache=True)
def search(L, d, zs, m):
    """
    MLAMBDA search for the m best integer vectors

    Returns
    -------
    zn : np.ndarray
        n x m integer candidates sorted by residual
    s : np.ndarray
        Squared residual norms of the candidates
    ok : bool
        False when the loop limit was reached
    """
    n = d.shape[0]
    nn = 0
    imax = 0
    maxdist = 1e99
    S = np.zeros((n, n))
    dist = np.zeros(n)
    zb = np.zeros(n)
    z = np.zeros(n)
    step = np.zeros(n)
    zn = np.zeros((n, m))
    s = np.zeros(m)

    k = n - 1
    dist[k] = 0.0
    zb[k] = zs[k]
    z[k] = _round(zb[k])
    y = zb[k] - z[k]
    step[k] = _sgn(y)

    c = 0
    while c < LOOPMAX:
        newdist = dist[k] + y * y / d[k]
        if newdist < maxdist:
            if k != 0:
                k -= 1
                dist[k] = newdist
                for i in range(k + 1):
                    S[k, i] = S[k + 1, i] + (z[k + 1] - zb[k + 1]) * L[k + 1, i]
                zb[k] = zs[k] + S[k, k]
                z[k] = _round(zb[k])
                y = zb[k] - z[k]
                step[k] = _sgn(y)
            else:
                if nn < m:
                    if nn == 0 or newdist > s[imax]:
                        imax = nn
                    for i in range(n):
                        zn[i, nn] = z[i]
                    s[nn] = newdist
                    nn += 1
                else:
                    if newdist < s[imax]:
                        for i in range(n):
                            zn[i, imax] = z[i]
                        s[imax] = newdist
                        imax = 0
                        for i in range(m):
                            if s[imax] < s[i]:
                                imax = i
                    maxdist = s[imax]
                z[0] += step[0]
                y = zb[0] - z[0]
                step[0] = -step[0] - _sgn(step[0])
        else:
            if k == n - 1:
                break
            k += 1
            z[k] += step[k]
            y = zb[k] - z[k]
            step[k] = -step[k] - _sgn(step[k])
        c += 1

    for i in range(m - 1):
        for j in range(i + 1, m):
            if s[i] < s[j]:
                continue
            tmp = s[i]
            s[i] = s[j]
            s[j] = tmp
            for k in range(n):
                tmp = zn[k, i]
                zn[k, i] = zn[k, j]
                zn[k, j] = tmp
    return zn, s, c < LOOPMAX


def mlambda(a: np.ndarray, Q: np.ndarray, m: int = 2) -> Tuple[np.ndarray, np.ndarray]:
    """
    LAMBDA/MLAMBDA integer least-squares estimation

    Parameters
    ----------
    a : np.ndarray
        Float ambiguities (n)
    Q : np.ndarray
        Covariance matrix of float ambiguities (n x n)
    m : int
        Number of candidates to return

    Returns
    -------
    afix : np.ndarray
        Integer candidates (n x m), best first
    s : np.ndarray
        Squared residual norms of the candidates

    Raises
    ------
    ValueError
        Q is not positive definite or the search did not terminate
    """
    a = np.ascontiguousarray(a, dtype=np.float64).ravel()
    Q = np.ascontiguousarray(Q, dtype=np.float64)
    if Q.shape != (a.size, a.size) or a.size == 0:
        raise ValueError(f"Inconsistent ambiguity dimensions {a.shape} and {Q.shape}")

    L, d, ok = ld_factorization(Q)
    if not ok:
        raise ValueError("Ambiguity covariance is not positive definite")

    Z = reduction(L, d)
    z = Z.T @ a
    E, s, ok = search(L, d, z, m)
    if not ok:
        raise ValueError("MLAMBDA search exceeded the loop limit")

    # F = Z' \ E
    afix = np.linalg.solve(Z.T, E)
    return np.round(afix), s


def ratio_test(s: np.ndarray, threshold: float = 3.0) -> Tuple[bool, float]:
    """Ratio of second-best to best squared residual norm, and whether it passes"""
    if len(s) < 2:
        return False, 0.0
    ratio = np.inf if s[0] <= 0.0 else float(s[1] / s[0])
    return ratio >= threshold, ratio


def bootstrap_success_rate(Q: np.ndarray) -> float:
    """Integer bootstrapping success rate of the decorrelated ambiguities"""
    Q = np.ascontiguousarray(Q, dtype=np.float64)
    L, d, ok = ld_factorization(Q)
    if not ok:
        return 0.0
    reduction(L, d)
    return float(np.prod(2.0 * norm.cdf(1.0 / (2.0 * np.sqrt(d))) - 1.0))
