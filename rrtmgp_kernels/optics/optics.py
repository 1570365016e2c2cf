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

"""Implementation of the RRTMGP gas optics scheme."""

from typing import TypeAlias

from absl import logging
import jax
import numpy as np
from rrtmgp_kernels.config import gas_optics_config
from rrtmgp_kernels.optics import atmospheric_state
from rrtmgp_kernels.optics import gas_optics
from rrtmgp_kernels.optics import interpolation_coefficients
from rrtmgp_kernels.optics import lookup_gas_optics_base
from rrtmgp_kernels.optics import lookup_gas_optics_longwave
from rrtmgp_kernels.optics import lookup_gas_optics_shortwave
from rrtmgp_kernels.optics import optics_base

Array: TypeAlias = jax.Array
AbstractLookupGasOptics: TypeAlias = (
    lookup_gas_optics_base.AbstractLookupGasOptics
)
AtmosphericState: TypeAlias = atmospheric_state.AtmosphericState
InterpolationCoefficients: TypeAlias = (
    interpolation_coefficients.InterpolationCoefficients
)
LookupGasOpticsLongwave: TypeAlias = (
    lookup_gas_optics_longwave.LookupGasOpticsLongwave
)
LookupGasOpticsShortwave: TypeAlias = (
    lookup_gas_optics_shortwave.LookupGasOpticsShortwave
)


def _count(mask: Array) -> int | None:
  """Number of true entries of `mask`, or None if `mask` is being traced."""
  try:
    return int(np.count_nonzero(np.asarray(mask)))
  except jax.errors.TracerArrayConversionError:
    return None


class RRTMGasOptics(optics_base.GasOpticsScheme):
  """The Rapid Radiative Transfer Model (RRTM) gas optics implementation."""

  def __init__(
      self,
      params: gas_optics_config.GasOpticsCfg,
      gas_optics_lw: LookupGasOpticsLongwave | None = None,
      gas_optics_sw: LookupGasOpticsShortwave | None = None,
  ):
    super().__init__()
    if gas_optics_lw is None and gas_optics_sw is None:
      raise ValueError(
          'At least one of the longwave or shortwave lookup tables is required.'
      )
    self._params = params
    self.gas_optics_lw = gas_optics_lw
    self.gas_optics_sw = gas_optics_sw
    logging.info(
        'Initialized RRTMGP gas optics with %d longwave and %d shortwave'
        ' g-points.',
        self.n_gpt_lw,
        self.n_gpt_sw,
    )

  def _lookup_lw(self) -> LookupGasOpticsLongwave:
    if self.gas_optics_lw is None:
      raise ValueError('No longwave lookup table was provided.')
    return self.gas_optics_lw

  def _lookup_sw(self) -> LookupGasOpticsShortwave:
    if self.gas_optics_sw is None:
      raise ValueError('No shortwave lookup table was provided.')
    return self.gas_optics_sw

  def _validate(
      self,
      state: AtmosphericState,
      lookup: AbstractLookupGasOptics,
      require_planck_inputs: bool = False,
  ):
    if self._params.validate_inputs:
      atmospheric_state.validate(
          state, lookup, self._params, require_planck_inputs
      )

  def _report_extrapolation(
      self, coeffs: InterpolationCoefficients, band_name: str
  ):
    """Logs how many layers were clamped to the reference grid."""
    if not self._params.report_extrapolation:
      return
    n_temperature = _count(coeffs.temperature_clamped)
    n_pressure = _count(coeffs.pressure_clamped)
    if n_temperature is None or n_pressure is None:
      return
    if n_temperature or n_pressure:
      logging.warning(
          '%s gas optics: %d layer temperatures and %d layer pressures are'
          ' outside of the reference grid and were clamped to it.',
          band_name,
          n_temperature,
          n_pressure,
      )

  def _coefficients(
      self,
      state: AtmosphericState,
      lookup: AbstractLookupGasOptics,
      band_name: str,
  ) -> InterpolationCoefficients:
    logging.info('Calling %s interpolation coefficients graph.', band_name)
    coeffs = interpolation_coefficients.compute_interpolation_coefficients(
        lookup, state.pressure, state.temperature, state.col_gas
    )
    self._report_extrapolation(coeffs, band_name)
    return coeffs

  def compute_interpolation_coefficients(
      self, state: AtmosphericState, is_lw: bool
  ) -> InterpolationCoefficients:
    """Computes the interpolation coefficients of `state`.

    The coefficients can be shared by all the longwave (or shortwave)
    computations on the same state.

    Args:
      state: The atmospheric state.
      is_lw: If `True`, uses the longwave lookup. Otherwise, uses the shortwave
        lookup.

    Returns:
      The `InterpolationCoefficients` of every grid point of `state`.
    """
    lookup = self._lookup_lw() if is_lw else self._lookup_sw()
    self._validate(state, lookup)
    band_name = 'Longwave' if is_lw else 'Shortwave'
    return self._coefficients(state, lookup, band_name)

  def _lw_optical_properties(
      self, state: AtmosphericState, coeffs: InterpolationCoefficients
  ) -> dict[str, Array]:
    logging.info('Calling longwave optical depth graph.')
    tau_abs = gas_optics.compute_tau_absorption(
        self._lookup_lw(),
        coeffs,
        state.pressure,
        state.temperature,
        state.col_gas,
        state.top_at_1,
    )
    return optics_base.combine_and_reorder_1scl(tau_abs)

  def _planck_sources(
      self, state: AtmosphericState, coeffs: InterpolationCoefficients
  ) -> dict[str, Array]:
    logging.info('Calling Planck sources graph.')
    return gas_optics.compute_planck_sources(
        self._lookup_lw(),
        coeffs,
        state.temperature,
        state.temperature_lev,
        state.sfc_temperature,
        state.top_at_1,
    )

  def compute_lw_optical_properties(
      self,
      state: AtmosphericState,
      coeffs: InterpolationCoefficients | None = None,
  ) -> dict[str, Array]:
    lookup = self._lookup_lw()
    self._validate(state, lookup)
    if coeffs is None:
      coeffs = self._coefficients(state, lookup, 'Longwave')
    return self._lw_optical_properties(state, coeffs)

  def compute_sw_optical_properties(
      self,
      state: AtmosphericState,
      coeffs: InterpolationCoefficients | None = None,
  ) -> dict[str, Array]:
    lookup = self._lookup_sw()
    self._validate(state, lookup)
    if coeffs is None:
      coeffs = self._coefficients(state, lookup, 'Shortwave')
    logging.info('Calling shortwave optical depth graph.')
    tau_abs = gas_optics.compute_tau_absorption(
        lookup,
        coeffs,
        state.pressure,
        state.temperature,
        state.col_gas,
        state.top_at_1,
    )
    logging.info('Calling Rayleigh optical depth graph.')
    tau_rayleigh = gas_optics.compute_rayleigh_optical_depth(
        lookup, coeffs, state.col_gas
    )
    return optics_base.combine_and_reorder_2str(tau_abs, tau_rayleigh)

  def compute_planck_sources(
      self,
      state: AtmosphericState,
      coeffs: InterpolationCoefficients | None = None,
  ) -> dict[str, Array]:
    lookup = self._lookup_lw()
    self._validate(state, lookup, require_planck_inputs=True)
    if coeffs is None:
      coeffs = self._coefficients(state, lookup, 'Longwave')
    return self._planck_sources(state, coeffs)

  def compute_lw(
      self, state: AtmosphericState
  ) -> tuple[dict[str, Array], dict[str, Array]]:
    """Computes the longwave optical properties and Planck sources together.

    The interpolation coefficients are computed once and shared by both.

    Args:
      state: The atmospheric state, including level and surface temperatures.

    Returns:
      A tuple of the optical properties, as returned by
      `compute_lw_optical_properties`, and the Planck sources, as returned by
      `compute_planck_sources`.
    """
    lookup = self._lookup_lw()
    self._validate(state, lookup, require_planck_inputs=True)
    coeffs = self._coefficients(state, lookup, 'Longwave')
    return (
        self._lw_optical_properties(state, coeffs),
        self._planck_sources(state, coeffs),
    )

  @property
  def n_gpt_lw(self) -> int:
    """The number of g-points in the longwave bands."""
    return 0 if self.gas_optics_lw is None else self.gas_optics_lw.n_gpt

  @property
  def n_gpt_sw(self) -> int:
    """The number of g-points in the shortwave bands."""
    return 0 if self.gas_optics_sw is None else self.gas_optics_sw.n_gpt

  @property
  def solar_fraction_by_gpt(self) -> Array:
    """Mapping from g-point to the fraction of total solar radiation."""
    return self._lookup_sw().solar_src_scaled
