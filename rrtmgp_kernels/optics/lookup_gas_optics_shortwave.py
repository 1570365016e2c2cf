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

"""A Dataclass for shortwave optical properties of gases."""

from collections.abc import Mapping
import dataclasses
from typing import Any, TypeAlias

import jax
import jax.numpy as jnp
from rrtmgp_kernels import kernel_types
from rrtmgp_kernels.optics import lookup_gas_optics_base

Array: TypeAlias = jax.Array


@dataclasses.dataclass(frozen=True)
class LookupGasOpticsShortwave(lookup_gas_optics_base.AbstractLookupGasOptics):
  """Lookup table of gases' optical properties in the shortwave bands."""

  # Total solar irradiation.
  solar_src_tot: float
  # Relative solar source contribution from each `g-point` `(n_gpt)`.
  solar_src_scaled: Array
  # Rayleigh absorption coefficients of the lower (0) and upper (1)
  # atmosphere `(2, n_t_ref, n_η, n_gpt)`.
  krayl: Array


def _load_data(tables: Mapping[str, Any]) -> dict[str, Any]:
  """Preprocesses the RRTMGP shortwave gas optics data.

  Args:
    tables: The gas optics data keyed by RRTMGP variable name.

  Returns:
    A dictionary containing dimension information and the preprocessed RRTMGP
    data as `Array`s.
  """
  require = lookup_gas_optics_base.require_table
  data = lookup_gas_optics_base.load_data(tables)
  solar_src = jnp.asarray(
      require(tables, 'solar_source_quiet'), dtype=kernel_types.f_dtype
  )
  if solar_src.shape != (data['n_gpt'],):
    raise ValueError(
        f'solar_source_quiet has shape {solar_src.shape}, expected'
        f' ({data["n_gpt"]},).'
    )
  data['solar_src_tot'] = float(jnp.sum(solar_src))
  data['solar_src_scaled'] = solar_src / data['solar_src_tot']
  expected_shape = (data['n_t_ref'], data['n_eta'], data['n_gpt'])
  rayl = []
  for key in ('rayl_lower', 'rayl_upper'):
    table = jnp.asarray(require(tables, key), dtype=kernel_types.f_dtype)
    if table.shape != expected_shape:
      raise ValueError(
          f'{key} has shape {table.shape}, expected {expected_shape}.'
      )
    rayl.append(table)
  data['krayl'] = jnp.stack(rayl)
  return data


def from_tables(tables: Mapping[str, Any]) -> LookupGasOpticsShortwave:
  """Instantiate a `LookupGasOpticsShortwave` object from RRTMGP tables.

  The tables should contain the RRTMGP absorption coefficient lookup table for
  the shortwave bands as well as all the auxiliary reference tables required to
  index into the lookup table.

  Args:
    tables: The shortwave gas optics data keyed by RRTMGP variable name.

  Returns:
    A `LookupGasOpticsShortwave` object.
  """
  kwargs = _load_data(tables)
  return LookupGasOpticsShortwave(**kwargs)
