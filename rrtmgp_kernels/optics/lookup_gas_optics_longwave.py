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

"""A Dataclass for longwave optical properties of gases."""

from collections.abc import Mapping
import dataclasses
from typing import Any, TypeAlias

import jax
import jax.numpy as jnp
from rrtmgp_kernels import kernel_types
from rrtmgp_kernels.optics import lookup_gas_optics_base

Array: TypeAlias = jax.Array


@dataclasses.dataclass(frozen=True)
class LookupGasOpticsLongwave(lookup_gas_optics_base.AbstractLookupGasOptics):
  """Lookup tables of gases' optical properties in the longwave bands."""

  # Planck fraction `(n_t_ref, n_p_ref + 1, n_η, n_gpt)`.
  planck_fraction: Array
  # Number of reference temperatures, for Planck source calculations.
  n_t_plnk: int
  # Reference temperatures for Planck source calculations `(n_t_plnk)`.
  t_planck: Array
  # Spacing of the Planck reference temperatures.
  t_planck_delta: float
  # Total Planck source for each band `(n_t_plnk, n_bnd)`.
  totplnk: Array


def _load_data(tables: Mapping[str, Any]) -> dict[str, Any]:
  """Preprocess the RRTMGP longwave gas optics data.

  Args:
    tables: The gas optics data keyed by RRTMGP variable name.

  Returns:
    A dictionary containing dimension information and the preprocessed RRTMGP
    data as `Array`s.
  """
  data = lookup_gas_optics_base.load_data(tables)
  planck_fraction = jnp.asarray(
      lookup_gas_optics_base.require_table(tables, 'plank_fraction'),
      dtype=kernel_types.f_dtype,
  )
  if planck_fraction.shape != data['kmajor'].shape:
    raise ValueError(
        f'plank_fraction has shape {planck_fraction.shape}, expected the shape'
        f' of kmajor {data["kmajor"].shape}.'
    )
  # The file stores the band-integrated Planck function as `(n_bnd, n_t_plnk)`;
  # the temperature axis is moved first for the 1D interpolation.
  totplnk = jnp.asarray(
      lookup_gas_optics_base.require_table(tables, 'totplnk'),
      dtype=kernel_types.f_dtype,
  ).T
  if totplnk.shape[1] != data['n_bnd'] or totplnk.shape[0] < 2:
    raise ValueError(
        f'totplnk has shape {totplnk.T.shape}, expected ({data["n_bnd"]},'
        ' n_t_plnk) with n_t_plnk >= 2.'
    )
  data['planck_fraction'] = planck_fraction
  data['n_t_plnk'] = totplnk.shape[0]
  # Similarly to the original RRTM Fortran code, here we assume that
  # temperature minimum and maximum are the same for the absorption
  # coefficient grid and the Planck grid and the Planck grid is equally
  # spaced.
  data['t_planck'] = jnp.linspace(
      data['t_ref_min'],
      data['t_ref_max'],
      data['n_t_plnk'],
      dtype=kernel_types.f_dtype,
  )
  data['t_planck_delta'] = (data['t_ref_max'] - data['t_ref_min']) / (
      data['n_t_plnk'] - 1
  )
  data['totplnk'] = totplnk
  return data


def from_tables(tables: Mapping[str, Any]) -> LookupGasOpticsLongwave:
  """Instantiate a `LookupGasOpticsLongwave` object from RRTMGP tables.

  The tables should contain the RRTMGP absorption coefficient lookup table for
  the longwave bands as well as all the auxiliary reference tables required to
  index into the lookup table.

  Args:
    tables: The longwave gas optics data keyed by RRTMGP variable name.

  Returns:
    A `LookupGasOpticsLongwave` object.
  """
  kwargs = _load_data(tables)
  return LookupGasOpticsLongwave(**kwargs)
