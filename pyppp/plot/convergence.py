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

"""Convergence plots of station solutions"""

from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np

from ..coordinate.transforms import compute_rotation_matrix_enu, ecef2llh


def enu_errors(solutions: Sequence, reference: Optional[np.ndarray] = None):
    """
    East/north/up offsets of solutions from a reference position

    Parameters:
    -----------
    solutions : sequence of StationSolution
        Solutions of one station in time order
    reference : np.ndarray, optional
        Reference ECEF position, the last solution when omitted

    Returns:
    --------
    tuple : (time, enu)
        Seconds since the first solution and n x 3 offsets (m)
    """
    if not solutions:
        return np.zeros(0), np.zeros((0, 3))
    positions = np.array([s.position for s in solutions])
    times = np.array([s.time for s in solutions])
    ref = positions[-1] if reference is None else np.asarray(reference, dtype=float)
    R = compute_rotation_matrix_enu(ecef2llh(ref))
    return times - times[0], (positions - ref) @ R.T


def plot_convergence(solutions: Sequence, reference: Optional[np.ndarray] = None,
                     output: Optional[str] = None, title: str = ""):
    """Plot ENU errors, ZTD and satellite count against time"""
    t, enu = enu_errors(solutions, reference)
    fig, axes = plt.subplots(3, 1, figsize=(10, 9), sharex=True)
    for i, label in enumerate(("East", "North", "Up")):
        axes[0].plot(t, enu[:, i], label=label)
    axes[0].set_ylabel("Error (m)")
    axes[0].legend()
    axes[0].grid(True)

    axes[1].plot(t, [s.ztd for s in solutions], color="tab:green")
    axes[1].set_ylabel("ZTD (m)")
    axes[1].grid(True)

    converged = np.array([s.converged for s in solutions], dtype=bool)
    axes[2].step(t, [s.num_satellites for s in solutions], where="post", label="satellites")
    if converged.any():
        axes[2].axvline(t[np.argmax(converged)], color="tab:red", linestyle="--", label="converged")
    axes[2].set_ylabel("Satellites")
    axes[2].set_xlabel("Time (s)")
    axes[2].legend()
    axes[2].grid(True)

    if title:
        fig.suptitle(title)
    plt.tight_layout()
    if output is not None:
        plt.savefig(output, dpi=150)
        plt.close(fig)
    return fig
