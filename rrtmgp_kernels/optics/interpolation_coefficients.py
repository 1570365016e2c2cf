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

"""Interpolation coefficients locating atmospheric layers in the gas tables.

For every `(column, layer)` grid point, the coefficients hold the bracketing
reference temperature and pressure, whether the layer belongs to the lower
atmosphere, and, for every flavor, the bracketing binary species mixing
fraction η together with the blend weights used by the gas optics evaluators.
"""

import dataclasses
from typing import TypeAlias

import jax
import jax.numpy as jnp
from rrtmgp_kernels import kernel_types
from rrtmgp_kernels.optics import lookup_gas_optics_base
from rrtmgp_kernels.optics import optics_utils

Array: TypeAlias = jax.Array
AbstractLookupGasOptics: TypeAlias = (
    lookup_gas_optics_base.AbstractLookupGasOptics
)


@dataclasses.dataclass(frozen=True)
class InterpolationCoefficients:
  """Table indices and blend weights of every grid point and flavor."""

  # Lower bracket of the reference temperature `(n_col, n_lay)`.
  jtemp: Array
  # Weight of the upper temperature bracket `(n_col, n_lay)`.
  ftemp: Array
  # Lower bracket of the reference pressure `(n_col, n_lay)`.
  jpress: Array
  # Weight of the upper pressure bracket `(n_col, n_lay)`.
  fpress: Array
  # Whether the layer is in the lower atmosphere `(n_col, n_lay)`.
  tropo: Array
  # Lower η bracket for each temperature bracket `(n_col, n_lay, n_flav, 2)`.
  jeta: Array
  # Column amount of the flavor's gas pair, mixed with the reference ratio of
  # each temperature bracket `(n_col, n_lay, n_flav, 2)`.
  col_mix: Array
  # Weights of the (temperature, η) corners
  # `(n_col, n_lay, n_flav, 2 [itemp], 2 [iη])`.
  fminor: Array
  # Weights of the (temperature, pressure, η) corners
  # `(n_col, n_lay, n_flav, 2 [itemp], 2 [ipress], 2 [iη])`.
  fmajor: Array
  # Whether the layer temperature is outside of the reference grid.
  temperature_clamped: Array
  # Whether the layer pressure is outside of the reference grid.
  pressure_clamped: Array

  @property
  def jpress_with_offset(self) -> Array:
    """Lower pressure row of the major tables, shifted by one aloft."""
    return self.jpress + jnp.where(self.tropo, 0, 1).astype(self.jpress.dtype)


@dataclasses.dataclass(frozen=True)
class FlavorCoefficients:
  """Coefficients of the flavor active at each grid point for one band."""

  # `(n_col, n_lay, 2)`.
  jeta: Array
  # `(n_col, n_lay, 2)`.
  col_mix: Array
  # `(n_col, n_lay, 2, 2)`.
  fminor: Array
  # `(n_col, n_lay, 2, 2, 2)`.
  fmajor: Array


def select_flavor(
    coeffs: InterpolationCoefficients, flav_lower: int, flav_upper: int
) -> FlavorCoefficients:
  """Picks `flav_lower` in the lower atmosphere and `flav_upper` aloft."""

  def select(x: Array, flav: int) -> Array:
    return x[:, :, flav]

  def merge(x: Array) -> Array:
    if flav_lower == flav_upper:
      return select(x, flav_lower)
    tropo = jnp.reshape(coeffs.tropo, coeffs.tropo.shape + (1,) * (x.ndim - 3))
    return jnp.where(tropo, select(x, flav_lower), select(x, flav_upper))

  return FlavorCoefficients(
      jeta=merge(coeffs.jeta),
      col_mix=merge(coeffs.col_mix),
      fminor=merge(coeffs.fminor),
      fmajor=merge(coeffs.fmajor),
  )


def _reference_vmr_ratio(
    lookup: AbstractLookupGasOptics, jtemp: Array, tropo: Array
) -> Array:
  """Reference ratio of the flavor gases at both temperature brackets.

  Args:
    lookup: The gas optics lookup tables.
    jtemp: Lower temperature bracket `(n_col, n_lay)`.
    tropo: Whether the layer is in the lower atmosphere `(n_col, n_lay)`.

  Returns:
    The ratio `vmr_ref[g1] / vmr_ref[g2]` `(n_col, n_lay, n_flav, 2)`.
  """
  shape = jtemp.shape + (lookup.n_flav, 2)
  i_dtype = jtemp.dtype
  t_idx = jnp.broadcast_to(
      jtemp[..., jnp.newaxis, jnp.newaxis]
      + jnp.arange(2, dtype=i_dtype)[jnp.newaxis, :],
      shape,
  )
  half_idx = jnp.broadcast_to(
      jnp.where(tropo, 0, 1).astype(i_dtype)[..., jnp.newaxis, jnp.newaxis],
      shape,
  )

  def gas_idx(col: int) -> Array:
    idx = jnp.asarray(lookup.flavor[:, col], dtype=i_dtype)
    return jnp.broadcast_to(idx[:, jnp.newaxis], shape)

  vmr1 = optics_utils.lookup_values(
      lookup.vmr_ref, [t_idx, gas_idx(0), half_idx]
  )
  vmr2 = optics_utils.lookup_values(
      lookup.vmr_ref, [t_idx, gas_idx(1), half_idx]
  )
  return vmr1 / vmr2


def compute_interpolation_coefficients(
    lookup: AbstractLookupGasOptics,
    pressure: Array,
    temperature: Array,
    col_gas: Array,
) -> InterpolationCoefficients:
  """Computes the interpolation coefficients of every grid point.

  Temperatures and pressures outside of the reference grid are clamped to the
  closest bracket (the weights are left unclamped), so the tables are never
  addressed out of bounds. When the mixed column amount of a flavor is
  numerically zero, η defaults to 0.5.

  Args:
    lookup: The gas optics lookup tables.
    pressure: Layer pressures in Pa `(n_col, n_lay)`.
    temperature: Layer temperatures in K `(n_col, n_lay)`.
    col_gas: Gas column amounts `(n_col, n_lay, n_gases + 1)`, with dry air at
      index 0.

  Returns:
    The `InterpolationCoefficients` of the grid points.
  """
  t_interp = optics_utils.create_linear_interpolant(temperature, lookup.t_ref)
  jtemp = t_interp.interp_low.idx
  ftemp = t_interp.interp_high.weight

  log_p = jnp.log(pressure)
  p_interp = optics_utils.create_linear_interpolant(log_p, lookup.log_p_ref)
  jpress = p_interp.interp_low.idx
  fpress = p_interp.interp_high.weight

  tropo = log_p > jnp.log(lookup.p_ref_tropo)

  # Mix the columns of the flavor's gas pair at each temperature bracket.
  ratio = _reference_vmr_ratio(lookup, jtemp, tropo)
  col_g1 = col_gas[..., lookup.flavor[:, 0]][..., jnp.newaxis]
  col_g2 = col_gas[..., lookup.flavor[:, 1]][..., jnp.newaxis]
  col_mix = col_g1 + ratio * col_g2

  valid = col_mix > kernel_types.near_zero(col_mix.dtype)
  eta = jnp.where(valid, col_g1 / jnp.where(valid, col_mix, 1.0), 0.5)
  loceta = eta * (lookup.n_eta - 1)
  jeta = jnp.clip(
      jnp.floor(loceta).astype(jtemp.dtype), 0, lookup.n_eta - 2
  )
  feta = jnp.mod(loceta, 1.0)

  # `(n_col, n_lay, 1, 2)` temperature blend of each bracket.
  ftemp_term = jnp.stack([1.0 - ftemp, ftemp], axis=-1)[..., jnp.newaxis, :]
  fminor = jnp.stack(
      [(1.0 - feta) * ftemp_term, feta * ftemp_term], axis=-1
  )
  fpress_term = jnp.stack([1.0 - fpress, fpress], axis=-1)
  fmajor = (
      fpress_term[..., jnp.newaxis, jnp.newaxis, :, jnp.newaxis]
      * fminor[..., :, :, jnp.newaxis, :]
  )

  return InterpolationCoefficients(
      jtemp=jtemp,
      ftemp=ftemp,
      jpress=jpress,
      fpress=fpress,
      tropo=tropo,
      jeta=jeta,
      col_mix=col_mix,
      fminor=fminor,
      fmajor=fmajor,
      temperature_clamped=(temperature < lookup.t_ref_min)
      | (temperature > lookup.t_ref_max),
      pressure_clamped=(pressure < lookup.p_ref_min)
      | (pressure > lookup.p_ref_max),
  )
