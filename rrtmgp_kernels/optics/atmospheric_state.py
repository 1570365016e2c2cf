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

"""A data class for the atmospheric state consumed by the gas optics."""

import dataclasses
from typing import TypeAlias

import jax
from rrtmgp_kernels.config import gas_optics_config
from rrtmgp_kernels.optics import lookup_gas_optics_base
from rrtmgp_kernels.utils import check_states_valid

Array: TypeAlias = jax.Array


@dataclasses.dataclass(frozen=True, kw_only=True)
class AtmosphericState:
  """Pressure, temperature and gas columns of a set of atmospheric columns."""

  # Layer pressures in Pa `(n_col, n_lay)`.
  pressure: Array
  # Layer temperatures in K `(n_col, n_lay)`.
  temperature: Array
  # Gas column amounts `(n_col, n_lay, n_gases + 1)`; index 0 holds the dry
  # air column and index k the k-th gas of the lookup table's gas list.
  col_gas: Array
  # Whether the first layer is at the top of the atmosphere.
  top_at_1: bool
  # Level temperatures in K `(n_col, n_lay + 1)`; required for Planck sources.
  temperature_lev: Array | None = None
  # Surface temperatures in K `(n_col)`; required for Planck sources.
  sfc_temperature: Array | None = None

  @property
  def n_col(self) -> int:
    return self.pressure.shape[0]

  @property
  def n_lay(self) -> int:
    return self.pressure.shape[1]


def validate(
    state: AtmosphericState,
    lookup: lookup_gas_optics_base.AbstractLookupGasOptics,
    cfg: gas_optics_config.GasOpticsCfg,
    require_planck_inputs: bool = False,
):
  """Checks that `state` can be consumed by the gas optics of `lookup`.

  Args:
    state: The atmospheric state to check.
    lookup: The gas optics lookup tables the state will be used with.
    cfg: The gas optics configuration.
    require_planck_inputs: Whether the level and surface temperatures are
      required.

  Raises:
    ValueError: If an array has an unexpected shape, contains non-finite or
      unphysical values, or, when `cfg.check_reference_range` is set, falls
      outside of the reference grid of the lookup tables.
  """
  if state.pressure.ndim != 2:
    raise ValueError(
        f'pressure must have shape (n_col, n_lay), got {state.pressure.shape}.'
    )
  n_col, n_lay = state.pressure.shape
  check_states_valid.check_extent(
      state.temperature, (n_col, n_lay), 'temperature'
  )
  check_states_valid.check_extent(
      state.col_gas, (n_col, n_lay, lookup.n_gases + 1), 'col_gas'
  )
  fields = {
      'pressure': state.pressure,
      'temperature': state.temperature,
      'col_gas': state.col_gas,
  }

  if require_planck_inputs:
    if state.temperature_lev is None or state.sfc_temperature is None:
      raise ValueError(
          'temperature_lev and sfc_temperature are required to compute'
          ' Planck sources.'
      )
  if state.temperature_lev is not None:
    check_states_valid.check_extent(
        state.temperature_lev, (n_col, n_lay + 1), 'temperature_lev'
    )
    fields['temperature_lev'] = state.temperature_lev
  if state.sfc_temperature is not None:
    check_states_valid.check_extent(
        state.sfc_temperature, (n_col,), 'sfc_temperature'
    )
    fields['sfc_temperature'] = state.sfc_temperature

  for name, field in fields.items():
    check_states_valid.check_finite(field, name)

  for name in ('pressure', 'temperature', 'temperature_lev', 'sfc_temperature'):
    if name in fields:
      check_states_valid.check_positive(fields[name], name)
  check_states_valid.check_non_negative(state.col_gas, 'col_gas')
  check_states_valid.check_positive(state.col_gas[..., 0], 'col_gas[dry_air]')

  if cfg.check_reference_range:
    check_states_valid.check_range(
        state.pressure, lookup.p_ref_min, lookup.p_ref_max, 'pressure'
    )
    check_states_valid.check_range(
        state.temperature, lookup.t_ref_min, lookup.t_ref_max, 'temperature'
    )
