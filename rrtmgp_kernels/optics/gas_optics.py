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

"""Gas optics evaluators: optical depths and Planck sources of gases.

All the evaluators accumulate into tensors with layout `(n_gpt, n_lay, n_col)`.
Loops over bands and minor absorbers are unrolled in Python because their
bounds are static properties of the lookup tables.
"""

from typing import TypeAlias

import jax
import jax.numpy as jnp
from rrtmgp_kernels import kernel_types
from rrtmgp_kernels.optics import interpolation_coefficients
from rrtmgp_kernels.optics import lookup_gas_optics_base
from rrtmgp_kernels.optics import lookup_gas_optics_longwave
from rrtmgp_kernels.optics import lookup_gas_optics_shortwave
from rrtmgp_kernels.optics import optics_utils

Array: TypeAlias = jax.Array
AbstractLookupGasOptics: TypeAlias = (
    lookup_gas_optics_base.AbstractLookupGasOptics
)
LookupGasOpticsLongwave: TypeAlias = (
    lookup_gas_optics_longwave.LookupGasOpticsLongwave
)
LookupGasOpticsShortwave: TypeAlias = (
    lookup_gas_optics_shortwave.LookupGasOpticsShortwave
)
InterpolationCoefficients: TypeAlias = (
    interpolation_coefficients.InterpolationCoefficients
)
ScalingMode: TypeAlias = lookup_gas_optics_base.ScalingMode

_PASCAL_TO_HPASCAL_FACTOR = 0.01


def _to_gpt_lay_col(x: Array) -> Array:
  """Transposes `(n_col, n_lay, n_g)` to `(n_g, n_lay, n_col)`."""
  return jnp.transpose(x, (2, 1, 0))


def _band_flavors(
    lookup: AbstractLookupGasOptics, ibnd: int
) -> tuple[int, int, int, int]:
  start, end = (int(x) for x in lookup.bnd_lims_gpt[ibnd])
  flav_lower = int(lookup.gpoint_flavor[0, start])
  flav_upper = int(lookup.gpoint_flavor[1, start])
  return start, end, flav_lower, flav_upper


def compute_layer_limits(
    pressure: Array, tropo: Array, top_at_1: bool
) -> tuple[Array, Array]:
  """Computes the layer range of the lower and the upper atmosphere.

  The lower atmosphere extends from the lowest-pressure layer classified as
  lower atmosphere to the surface, and the upper atmosphere from the top of the
  atmosphere to the highest-pressure layer classified as upper atmosphere.

  Args:
    pressure: Layer pressures `(n_col, n_lay)`.
    tropo: Whether each layer is in the lower atmosphere `(n_col, n_lay)`.
    top_at_1: Whether the first layer is at the top of the atmosphere.

  Returns:
    A tuple of the inclusive `[start, end]` layer ranges `(n_col, 2)` of the
    lower and the upper atmosphere. A start of -1 marks a column without any
    layer in that part of the atmosphere.
  """
  n_lay = pressure.shape[1]
  i_dtype = kernel_types.i_dtype
  has_lower = jnp.any(tropo, axis=1)
  has_upper = jnp.any(~tropo, axis=1)
  # Index of the lower-atmosphere layer of minimum pressure and of the
  # upper-atmosphere layer of maximum pressure.
  idx_min = jnp.argmin(jnp.where(tropo, pressure, jnp.inf), axis=1)
  idx_max = jnp.argmax(jnp.where(tropo, -jnp.inf, pressure), axis=1)
  idx_min = idx_min.astype(i_dtype)
  idx_max = idx_max.astype(i_dtype)
  first = jnp.zeros_like(idx_min)
  last = jnp.full_like(idx_min, n_lay - 1)
  none = jnp.full_like(idx_min, -1)

  if top_at_1:
    lower = (jnp.where(has_lower, idx_min, none), last)
    upper = (jnp.where(has_upper, first, none), idx_max)
  else:
    lower = (jnp.where(has_lower, first, none), idx_min)
    upper = (jnp.where(has_upper, idx_max, none), last)
  return jnp.stack(lower, axis=-1), jnp.stack(upper, axis=-1)


def compute_major_optical_depth(
    lookup: AbstractLookupGasOptics,
    coeffs: InterpolationCoefficients,
    tau: Array,
) -> Array:
  """Adds the absorption optical depth of the major species to `tau`.

  For each band, the flavor of the band's atmosphere half selects the major
  species pair, and `kmajor` is interpolated in temperature, pressure and η,
  with the mixed column amounts of the two temperature brackets as scaling.

  Args:
    lookup: The gas optics lookup tables.
    coeffs: The interpolation coefficients of the grid points.
    tau: The running optical depth `(n_gpt, n_lay, n_col)`.

  Returns:
    The updated optical depth `(n_gpt, n_lay, n_col)`.
  """
  jpress = coeffs.jpress_with_offset
  for ibnd in range(lookup.n_bnd):
    start, end, flav_lower, flav_upper = _band_flavors(lookup, ibnd)
    flav = interpolation_coefficients.select_flavor(
        coeffs, flav_lower, flav_upper
    )
    tau_major = optics_utils.interpolate_3d_by_flavor(
        flav.col_mix,
        flav.fmajor,
        lookup.kmajor,
        start,
        end,
        flav.jeta,
        coeffs.jtemp,
        jpress,
    )
    tau = tau.at[start:end].add(_to_gpt_lay_col(tau_major))
  return tau


def _minor_scaling(
    minor: lookup_gas_optics_base.MinorAbsorbers,
    i: int,
    col_gas: Array,
    density: Array,
    vmr_dry_fact: Array,
) -> Array:
  """The column scaling of minor absorber `i` `(n_col, n_lay)`."""
  scaling = col_gas[..., int(minor.idx_minor[i])]
  if minor.scales_with_density[i]:
    scaling = scaling * density
  mode = minor.scaling_mode[i]
  if mode != ScalingMode.NONE:
    vmr = col_gas[..., int(minor.idx_scaling_gas[i])] * vmr_dry_fact
    if mode == ScalingMode.COMPLEMENT:
      scaling = scaling * (1.0 - vmr)
    else:
      scaling = scaling * vmr
  return scaling


def compute_minor_optical_depth(
    lookup: AbstractLookupGasOptics,
    coeffs: InterpolationCoefficients,
    pressure: Array,
    temperature: Array,
    col_gas: Array,
    layer_limits: Array,
    is_lower_atmosphere: bool,
    tau: Array,
) -> Array:
  """Adds the absorption optical depth of the minor species to `tau`.

  Only the minor absorbers of one atmosphere half are evaluated, and only
  within that half's layer range in each column.

  Args:
    lookup: The gas optics lookup tables.
    coeffs: The interpolation coefficients of the grid points.
    pressure: Layer pressures in Pa `(n_col, n_lay)`.
    temperature: Layer temperatures in K `(n_col, n_lay)`.
    col_gas: Gas column amounts `(n_col, n_lay, n_gases + 1)`.
    layer_limits: Inclusive layer range of the atmosphere half `(n_col, 2)`,
      as computed by `compute_layer_limits`.
    is_lower_atmosphere: Whether the lower atmosphere minor absorbers are
      evaluated. Otherwise, the upper atmosphere ones are.
    tau: The running optical depth `(n_gpt, n_lay, n_col)`.

  Returns:
    The updated optical depth `(n_gpt, n_lay, n_col)`.
  """
  if is_lower_atmosphere:
    minor, half = lookup.minor_lower, 0
  else:
    minor, half = lookup.minor_upper, 1
  if minor.n_minor == 0:
    return tau

  n_lay = pressure.shape[1]
  lay = jnp.arange(n_lay)[jnp.newaxis, :]
  start = layer_limits[:, 0:1]
  end = layer_limits[:, 1:2]
  in_range = ((start >= 0) & (lay >= start) & (lay <= end))[..., jnp.newaxis]

  density = _PASCAL_TO_HPASCAL_FACTOR * pressure / temperature
  # Volume mixing ratio relative to the total (dry air plus water vapor)
  # column, per unit of gas column.
  vmr_fact = 1.0 / col_gas[..., 0]
  dry_fact = 1.0 / (1.0 + col_gas[..., lookup.idx_h2o] * vmr_fact)
  vmr_dry_fact = vmr_fact * dry_fact

  for i in range(minor.n_minor):
    gpt_start, gpt_end = (int(x) for x in minor.limits_gpt[i])
    flav = int(lookup.gpoint_flavor[half, gpt_start])
    k_start = int(minor.kminor_start[i])
    k_end = k_start + gpt_end - gpt_start
    scaling = _minor_scaling(minor, i, col_gas, density, vmr_dry_fact)
    tau_minor = optics_utils.interpolate_2d_by_flavor(
        coeffs.fminor[:, :, flav],
        minor.kminor,
        k_start,
        k_end,
        coeffs.jeta[:, :, flav],
        coeffs.jtemp,
    )
    tau_minor = jnp.where(
        in_range, scaling[..., jnp.newaxis] * tau_minor, 0.0
    )
    tau = tau.at[gpt_start:gpt_end].add(_to_gpt_lay_col(tau_minor))
  return tau


def compute_tau_absorption(
    lookup: AbstractLookupGasOptics,
    coeffs: InterpolationCoefficients,
    pressure: Array,
    temperature: Array,
    col_gas: Array,
    top_at_1: bool,
) -> Array:
  """Computes the absorption optical depth of the gases.

  The major species contribution is computed first, followed by the minor
  species of the lower and then of the upper atmosphere.

  Args:
    lookup: The gas optics lookup tables.
    coeffs: The interpolation coefficients of the grid points.
    pressure: Layer pressures in Pa `(n_col, n_lay)`.
    temperature: Layer temperatures in K `(n_col, n_lay)`.
    col_gas: Gas column amounts `(n_col, n_lay, n_gases + 1)`.
    top_at_1: Whether the first layer is at the top of the atmosphere.

  Returns:
    The absorption optical depth `(n_gpt, n_lay, n_col)`.
  """
  n_col, n_lay = pressure.shape
  tau = jnp.zeros((lookup.n_gpt, n_lay, n_col), dtype=coeffs.ftemp.dtype)
  limits_lower, limits_upper = compute_layer_limits(
      pressure, coeffs.tropo, top_at_1
  )
  tau = compute_major_optical_depth(lookup, coeffs, tau)
  tau = compute_minor_optical_depth(
      lookup, coeffs, pressure, temperature, col_gas, limits_lower, True, tau
  )
  tau = compute_minor_optical_depth(
      lookup, coeffs, pressure, temperature, col_gas, limits_upper, False, tau
  )
  return tau


def compute_rayleigh_optical_depth(
    lookup: LookupGasOpticsShortwave,
    coeffs: InterpolationCoefficients,
    col_gas: Array,
) -> Array:
  """Computes the Rayleigh scattering optical depth.

  Args:
    lookup: The shortwave gas optics lookup tables.
    coeffs: The interpolation coefficients of the grid points.
    col_gas: Gas column amounts `(n_col, n_lay, n_gases + 1)`.

  Returns:
    The Rayleigh scattering optical depth `(n_gpt, n_lay, n_col)`.
  """
  col_total = (col_gas[..., lookup.idx_h2o] + col_gas[..., 0])[
      ..., jnp.newaxis
  ]
  tropo = coeffs.tropo[..., jnp.newaxis]
  parts = []
  for ibnd in range(lookup.n_bnd):
    start, end, flav_lower, flav_upper = _band_flavors(lookup, ibnd)
    krayl = []
    for half, flav in enumerate((flav_lower, flav_upper)):
      krayl.append(
          optics_utils.interpolate_2d_by_flavor(
              coeffs.fminor[:, :, flav],
              lookup.krayl[half],
              start,
              end,
              coeffs.jeta[:, :, flav],
              coeffs.jtemp,
          )
      )
    parts.append(jnp.where(tropo, krayl[0], krayl[1]) * col_total)
  return _to_gpt_lay_col(jnp.concatenate(parts, axis=-1))


def compute_planck_fraction(
    lookup: LookupGasOpticsLongwave,
    coeffs: InterpolationCoefficients,
) -> Array:
  """Computes the fraction of each band's Planck irradiance per g-point.

  Args:
    lookup: The longwave gas optics lookup tables.
    coeffs: The interpolation coefficients of the grid points.

  Returns:
    The Planck fraction `(n_gpt, n_lay, n_col)`.
  """
  jpress = coeffs.jpress_with_offset
  unit_scaling = jnp.ones_like(coeffs.col_mix[:, :, 0])
  parts = []
  for ibnd in range(lookup.n_bnd):
    start, end, flav_lower, flav_upper = _band_flavors(lookup, ibnd)
    flav = interpolation_coefficients.select_flavor(
        coeffs, flav_lower, flav_upper
    )
    parts.append(
        optics_utils.interpolate_3d_by_flavor(
            unit_scaling,
            flav.fmajor,
            lookup.planck_fraction,
            start,
            end,
            flav.jeta,
            coeffs.jtemp,
            jpress,
        )
    )
  return _to_gpt_lay_col(jnp.concatenate(parts, axis=-1))


def _planck_by_gpt(lookup: LookupGasOpticsLongwave, temperature: Array):
  """Band-integrated Planck irradiance mapped to g-points `(..., n_gpt)`."""
  planck = optics_utils.interpolate_1d(
      temperature, lookup.t_ref_min, lookup.t_planck_delta, lookup.totplnk
  )
  return planck[..., lookup.g_point_to_bnd]


def compute_planck_sources(
    lookup: LookupGasOpticsLongwave,
    coeffs: InterpolationCoefficients,
    temperature: Array,
    temperature_lev: Array,
    sfc_temperature: Array,
    top_at_1: bool,
) -> dict[str, Array]:
  """Computes the Planck sources of the surface, layers and levels.

  Args:
    lookup: The longwave gas optics lookup tables.
    coeffs: The interpolation coefficients of the grid points.
    temperature: Layer temperatures in K `(n_col, n_lay)`.
    temperature_lev: Level temperatures in K `(n_col, n_lay + 1)`.
    sfc_temperature: Surface temperatures in K `(n_col)`.
    top_at_1: Whether the first layer is at the top of the atmosphere.

  Returns:
    A dictionary with the surface source 'sfc_src' `(n_gpt, n_col)`, the layer
    source 'lay_src', and the level sources 'lev_src_inc' and 'lev_src_dec',
    evaluated at levels `ilay + 1` and `ilay` of each layer `ilay` respectively,
    all of shape `(n_gpt, n_lay, n_col)`.
  """
  pfrac = compute_planck_fraction(lookup, coeffs)
  sfc_lay = temperature.shape[1] - 1 if top_at_1 else 0

  planck_sfc = _planck_by_gpt(lookup, sfc_temperature)
  planck_lay = _to_gpt_lay_col(_planck_by_gpt(lookup, temperature))
  planck_lev = _to_gpt_lay_col(_planck_by_gpt(lookup, temperature_lev))

  return {
      'sfc_src': pfrac[:, sfc_lay, :] * planck_sfc.T,
      'lay_src': pfrac * planck_lay,
      'lev_src_inc': pfrac * planck_lev[:, 1:, :],
      'lev_src_dec': pfrac * planck_lev[:, :-1, :],
  }
