# Copyright 2024 The swirl_jatmos Authors.
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

"""Abstract base class defining the interface of a gas optics scheme."""

import abc
from typing import TypeAlias

import jax
import jax.numpy as jnp
from rrtmgp_kernels import kernel_types
from rrtmgp_kernels.optics import atmospheric_state
from rrtmgp_kernels.optics import interpolation_coefficients

Array: TypeAlias = jax.Array
AtmosphericState: TypeAlias = atmospheric_state.AtmosphericState
InterpolationCoefficients: TypeAlias = (
    interpolation_coefficients.InterpolationCoefficients
)


def _to_col_lay_gpt(x: Array) -> Array:
  return jnp.transpose(x, (2, 1, 0))


def combine_and_reorder_2str(
    tau_abs: Array, tau_rayleigh: Array
) -> dict[str, Array]:
  """Combines absorption and Rayleigh scattering into two-stream properties.

  The single-scattering albedo is the Rayleigh share of the total optical
  depth, and 0 wherever the total optical depth is numerically zero.

  Args:
    tau_abs: The absorption optical depth `(n_gpt, n_lay, n_col)`.
    tau_rayleigh: The Rayleigh optical depth `(n_gpt, n_lay, n_col)`.

  Returns:
    A dictionary containing, with shape `(n_col, n_lay, n_gpt)`:
      'optical_depth': The total optical depth.
      'ssa': The single-scattering albedo.
      'asymmetry_factor': The asymmetry factor, which is 0.
  """
  tau = tau_abs + tau_rayleigh
  nonzero = tau > kernel_types.near_zero(tau.dtype)
  ssa = jnp.where(nonzero, tau_rayleigh / jnp.where(nonzero, tau, 1.0), 0.0)
  return {
      'optical_depth': _to_col_lay_gpt(tau),
      'ssa': _to_col_lay_gpt(ssa),
      'asymmetry_factor': jnp.zeros_like(_to_col_lay_gpt(tau)),
  }


def combine_and_reorder_1scl(tau_abs: Array) -> dict[str, Array]:
  """Reorders absorption-only optical depth for a non-scattering solver.

  Args:
    tau_abs: The absorption optical depth `(n_gpt, n_lay, n_col)`.

  Returns:
    The same dictionary as `combine_and_reorder_2str`, with zero
    single-scattering albedo.
  """
  tau = _to_col_lay_gpt(tau_abs)
  return {
      'optical_depth': tau,
      'ssa': jnp.zeros_like(tau),
      'asymmetry_factor': jnp.zeros_like(tau),
  }


class GasOpticsScheme(abc.ABC):
  """Abstract base class for gas optics scheme."""

  def __init__(self):
    self.gas_optics_lw = None
    self.gas_optics_sw = None

  @abc.abstractmethod
  def compute_lw_optical_properties(
      self,
      state: AtmosphericState,
      coeffs: InterpolationCoefficients | None = None,
  ) -> dict[str, Array]:
    """Computes the longwave optical properties of the gases.

    Args:
      state: The atmospheric state.
      coeffs: Optional precomputed longwave interpolation coefficients of
        `state`.

    Returns:
      A dictionary containing, with shape `(n_col, n_lay, n_gpt)`:
        'optical_depth': The longwave optical depth.
        'ssa': The longwave single-scattering albedo.
        'asymmetry_factor': The longwave asymmetry factor.
    """

  @abc.abstractmethod
  def compute_sw_optical_properties(
      self,
      state: AtmosphericState,
      coeffs: InterpolationCoefficients | None = None,
  ) -> dict[str, Array]:
    """Computes the shortwave optical properties of the gases.

    Args:
      state: The atmospheric state.
      coeffs: Optional precomputed shortwave interpolation coefficients of
        `state`.

    Returns:
      A dictionary containing, with shape `(n_col, n_lay, n_gpt)`:
        'optical_depth': The shortwave optical depth.
        'ssa': The shortwave single-scattering albedo.
        'asymmetry_factor': The shortwave asymmetry factor.
    """

  @abc.abstractmethod
  def compute_planck_sources(
      self,
      state: AtmosphericState,
      coeffs: InterpolationCoefficients | None = None,
  ) -> dict[str, Array]:
    """Computes the Planck sources used in the longwave problem.

    Args:
      state: The atmospheric state, including level and surface temperatures.
      coeffs: Optional precomputed longwave interpolation coefficients of
        `state`.

    Returns:
      A dictionary containing the surface source (`sfc_src`), the layer source
      (`lay_src`), and the level sources at the upper (`lev_src_inc`) and
      lower (`lev_src_dec`) boundary of each layer.
    """

  @property
  @abc.abstractmethod
  def n_gpt_lw(self) -> int:
    """The number of g-points in the longwave bands."""

  @property
  @abc.abstractmethod
  def n_gpt_sw(self) -> int:
    """The number of g-points in the shortwave bands."""

  @property
  @abc.abstractmethod
  def solar_fraction_by_gpt(self) -> Array:
    """Mapping from g-point to the fraction of total solar radiation."""
