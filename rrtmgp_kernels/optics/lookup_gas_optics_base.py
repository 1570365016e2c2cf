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

"""Base dataclass and loader for the RRTMGP gas optics lookup tables.

The loader consumes an in-memory mapping of arrays that follows the naming,
1-based indexing and axis conventions of the RRTMGP coefficient files, and
converts it into 0-based, half-open index maps and immutable JAX tables.
Reading the files themselves is left to the caller.
"""

from collections.abc import Mapping, Sequence
import dataclasses
import enum
from typing import Any, TypeAlias

import jax
import jax.numpy as jnp
import numpy as np
from rrtmgp_kernels import kernel_types

Array: TypeAlias = jax.Array

# Name under which the dry air pseudo-gas is registered in the gas index.
DRY_AIR = 'dry_air'


class ScalingMode(enum.Enum):
  """How a minor absorber is scaled by the amount of a second gas."""

  # No scaling gas.
  NONE = 'none'
  # Scaled by the volume mixing ratio of the scaling gas relative to dry air.
  DIRECT = 'direct'
  # Scaled by the complement of the volume mixing ratio of the scaling gas.
  COMPLEMENT = 'complement'


@dataclasses.dataclass(frozen=True)
class MinorAbsorbers:
  """Descriptors of the minor absorbers of one atmosphere half."""

  # Minor absorption coefficients `(n_t_ref, n_η, n_contrib)`.
  kminor: Array
  # Half-open range of g-points affected by each minor absorber
  # `(n_minor, 2)`.
  limits_gpt: np.ndarray
  # First contributor of each minor absorber in `kminor` `(n_minor,)`.
  kminor_start: np.ndarray
  # Index of each minor absorber in the gas column array `(n_minor,)`.
  idx_minor: np.ndarray
  # Index of the scaling gas in the gas column array, or -1 `(n_minor,)`.
  idx_scaling_gas: np.ndarray
  # Whether the absorber's column is converted to a density `(n_minor,)`.
  scales_with_density: np.ndarray
  # How each absorber is scaled by its scaling gas.
  scaling_mode: tuple[ScalingMode, ...]

  @property
  def n_minor(self) -> int:
    return len(self.scaling_mode)


@dataclasses.dataclass(frozen=True)
class AbstractLookupGasOptics:
  """Lookup tables and index maps shared by the longwave and shortwave."""

  # Number of gases, excluding the dry air pseudo-gas.
  n_gases: int
  # Number of frequency bands.
  n_bnd: int
  # Number of g-points.
  n_gpt: int
  # Number of flavors (unique pairs of major species).
  n_flav: int
  # Number of reference binary species mixing fractions.
  n_eta: int
  # Number of reference pressures.
  n_p_ref: int
  # Number of reference temperatures.
  n_t_ref: int
  # Index of each gas in the gas column array, including `DRY_AIR` at 0.
  idx_gases: dict[str, int]
  # Index of water vapor in the gas column array.
  idx_h2o: int
  # Reference temperatures `(n_t_ref)`.
  t_ref: Array
  # Reference pressures `(n_p_ref)`.
  p_ref: Array
  # Log of the reference pressures `(n_p_ref)`.
  log_p_ref: Array
  # Reference pressure separating the lower and upper atmosphere.
  p_ref_tropo: float
  # Minimum and maximum of the reference temperatures.
  t_ref_min: float
  t_ref_max: float
  # Minimum and maximum of the reference pressures.
  p_ref_min: float
  p_ref_max: float
  # Reference volume mixing ratios relative to dry air
  # `(n_t_ref, n_gases + 1, 2)`; the last axis is 0 for the lower and 1 for
  # the upper atmosphere.
  vmr_ref: Array
  # Major absorption coefficients `(n_t_ref, n_p_ref + 1, n_η, n_gpt)`.
  kmajor: Array
  # Half-open range of g-points of each band `(n_bnd, 2)`.
  bnd_lims_gpt: np.ndarray
  # Band of each g-point `(n_gpt)`.
  g_point_to_bnd: np.ndarray
  # Gas pair of each flavor `(n_flav, 2)`.
  flavor: np.ndarray
  # Flavor of each g-point in the lower (0) and upper (1) atmosphere
  # `(2, n_gpt)`.
  gpoint_flavor: np.ndarray
  # Minor absorbers of the lower atmosphere.
  minor_lower: MinorAbsorbers
  # Minor absorbers of the upper atmosphere.
  minor_upper: MinorAbsorbers


def require_table(tables: Mapping[str, Any], key: str) -> Any:
  """Returns `tables[key]`, raising a descriptive `KeyError` if missing."""
  if key not in tables:
    raise KeyError(f'Missing table {key!r} in the gas optics data.')
  return tables[key]


def _to_str_list(names: Sequence[Any]) -> list[str]:
  """Normalizes a sequence of gas names, which may be bytes, to strings."""
  out = []
  for name in names:
    if isinstance(name, bytes):
      name = name.decode('utf-8')
    out.append(str(name).strip().lower())
  return out


def create_index(name_arr: Sequence[str]) -> dict[str, int]:
  """Index of the gases in the gas column array, where 0 is dry air."""
  idx = {DRY_AIR: 0}
  idx.update({name: i + 1 for i, name in enumerate(name_arr)})
  return idx


def _check_uniform(grid: np.ndarray, name: str):
  if grid.ndim != 1 or grid.shape[0] < 2:
    raise ValueError(f'{name} must be a 1D grid with at least 2 entries.')
  diff = np.diff(grid)
  if not np.allclose(diff, diff[0], rtol=1e-3, atol=0.0):
    raise ValueError(f'{name} must be uniformly spaced.')


def create_flavors(
    key_species: np.ndarray, bnd_lims_gpt: np.ndarray, n_gpt: int
) -> tuple[np.ndarray, np.ndarray]:
  """Builds the flavor table and the g-point to flavor map.

  Args:
    key_species: Major species pair of each band and atmosphere half
      `(n_bnd, 2, 2)`, indexed into the gas column array. A pair `(0, 0)`
      denotes a band without major species.
    bnd_lims_gpt: Half-open range of g-points of each band `(n_bnd, 2)`.
    n_gpt: The number of g-points.

  Returns:
    A tuple of the flavor table `(n_flav, 2)`, ordered by first appearance,
    and the flavor of each g-point in each atmosphere half `(2, n_gpt)`.
  """
  key_species = np.array(key_species, dtype=np.int64)
  # Bands without major species still need a valid flavor for indexing.
  empty = np.all(key_species == 0, axis=-1)
  key_species[empty] = 2
  flavors = []
  for pair in key_species.reshape(-1, 2):
    pair = tuple(int(x) for x in pair)
    if pair not in flavors:
      flavors.append(pair)
  gpoint_flavor = np.zeros((2, n_gpt), dtype=np.int64)
  for ibnd, (start, end) in enumerate(bnd_lims_gpt):
    for itropo in range(2):
      pair = tuple(int(x) for x in key_species[ibnd, itropo])
      gpoint_flavor[itropo, start:end] = flavors.index(pair)
  return np.array(flavors, dtype=np.int64), gpoint_flavor


def _load_minor_absorbers(
    tables: Mapping[str, Any],
    half: str,
    idx_gases: Mapping[str, int],
    n_gpt: int,
) -> MinorAbsorbers:
  """Resolves the minor absorber descriptors of one atmosphere half."""
  kminor = jnp.asarray(
      require_table(tables, f'kminor_{half}'), dtype=kernel_types.f_dtype
  )
  names = _to_str_list(require_table(tables, f'minor_gases_{half}'))
  scaling_names = _to_str_list(require_table(tables, f'scaling_gas_{half}'))
  limits = np.asarray(
      require_table(tables, f'minor_limits_gpt_{half}'), dtype=np.int64
  ).reshape(-1, 2)
  kminor_start = np.asarray(
      require_table(tables, f'kminor_start_{half}'), dtype=np.int64
  )
  density = np.asarray(
      require_table(tables, f'minor_scales_with_density_{half}'), dtype=bool
  )
  complement = np.asarray(
      require_table(tables, f'scale_by_complement_{half}'), dtype=bool
  )

  n_minor = len(names)
  for key, arr in (
      (f'minor_limits_gpt_{half}', limits),
      (f'kminor_start_{half}', kminor_start),
      (f'minor_scales_with_density_{half}', density),
      (f'scale_by_complement_{half}', complement),
      (f'scaling_gas_{half}', scaling_names),
  ):
    if len(arr) != n_minor:
      raise ValueError(
          f'{key} has {len(arr)} entries, expected {n_minor} (one per minor'
          ' absorber).'
      )

  def resolve(name: str, key: str) -> int:
    if name not in idx_gases:
      raise ValueError(
          f'Unknown gas {name!r} in {key}; known gases are'
          f' {sorted(idx_gases)}.'
      )
    return idx_gases[name]

  idx_minor = np.array(
      [resolve(name, f'minor_gases_{half}') for name in names], dtype=np.int64
  )
  idx_scaling_gas = np.array(
      [
          resolve(name, f'scaling_gas_{half}') if name else -1
          for name in scaling_names
      ],
      dtype=np.int64,
  )
  scaling_mode = tuple(
      ScalingMode.NONE
      if idx < 0
      else (ScalingMode.COMPLEMENT if by_complement else ScalingMode.DIRECT)
      for idx, by_complement in zip(idx_scaling_gas, complement)
  )

  # Convert from 1-based inclusive to 0-based half-open ranges.
  limits_gpt = np.stack([limits[:, 0] - 1, limits[:, 1]], axis=-1)
  kminor_start = kminor_start - 1
  n_contrib = kminor.shape[-1]
  for i in range(n_minor):
    start, end = limits_gpt[i]
    if not 0 <= start < end <= n_gpt:
      raise ValueError(
          f'minor_limits_gpt_{half} entry {i} is out of range [1, {n_gpt}].'
      )
    if kminor_start[i] < 0 or kminor_start[i] + end - start > n_contrib:
      raise ValueError(
          f'kminor_start_{half} entry {i} addresses contributors beyond'
          f' kminor_{half} of size {n_contrib}.'
      )

  return MinorAbsorbers(
      kminor=kminor,
      limits_gpt=limits_gpt,
      kminor_start=kminor_start,
      idx_minor=idx_minor,
      idx_scaling_gas=idx_scaling_gas,
      scales_with_density=density,
      scaling_mode=scaling_mode,
  )


def load_data(tables: Mapping[str, Any]) -> dict[str, Any]:
  """Preprocesses the RRTMGP data shared by the longwave and shortwave tables.

  Args:
    tables: The gas optics data keyed by RRTMGP variable name. Gas and band
      indices follow the 1-based RRTMGP conventions.

  Returns:
    A dictionary containing dimension information and the preprocessed RRTMGP
    data, suitable as keyword arguments of `AbstractLookupGasOptics`.

  Raises:
    KeyError: If a required table is missing.
    ValueError: If the tables are inconsistent with each other.
  """
  gas_names = _to_str_list(require_table(tables, 'gas_names'))
  idx_gases = create_index(gas_names)
  if 'h2o' not in idx_gases:
    raise ValueError('Water vapor (h2o) is required in gas_names.')

  t_ref = np.asarray(require_table(tables, 'temp_ref'), dtype=np.float64)
  p_ref = np.asarray(require_table(tables, 'press_ref'), dtype=np.float64)
  _check_uniform(t_ref, 'temp_ref')
  _check_uniform(np.log(p_ref), 'log(press_ref)')

  kmajor = jnp.asarray(
      require_table(tables, 'kmajor'), dtype=kernel_types.f_dtype
  )
  n_t_ref, n_p_ref = t_ref.shape[0], p_ref.shape[0]
  n_gases = len(gas_names)
  n_eta, n_gpt = kmajor.shape[2], kmajor.shape[3]
  if kmajor.shape != (n_t_ref, n_p_ref + 1, n_eta, n_gpt):
    raise ValueError(
        f'kmajor has shape {kmajor.shape}, expected'
        f' ({n_t_ref}, {n_p_ref + 1}, n_η, n_gpt).'
    )
  vmr_ref = jnp.asarray(
      require_table(tables, 'vmr_ref'), dtype=kernel_types.f_dtype
  )
  if vmr_ref.shape != (n_t_ref, n_gases + 1, 2):
    raise ValueError(
        f'vmr_ref has shape {vmr_ref.shape}, expected'
        f' ({n_t_ref}, {n_gases + 1}, 2).'
    )

  bnd_limits = np.asarray(
      require_table(tables, 'bnd_limits_gpt'), dtype=np.int64
  ).reshape(-1, 2)
  bnd_lims_gpt = np.stack([bnd_limits[:, 0] - 1, bnd_limits[:, 1]], axis=-1)
  n_bnd = bnd_lims_gpt.shape[0]
  if bnd_lims_gpt[0, 0] != 0 or bnd_lims_gpt[-1, 1] != n_gpt or np.any(
      bnd_lims_gpt[1:, 0] != bnd_lims_gpt[:-1, 1]
  ):
    raise ValueError(
        f'bnd_limits_gpt must partition the {n_gpt} g-points into contiguous'
        ' bands.'
    )
  g_point_to_bnd = np.repeat(
      np.arange(n_bnd), bnd_lims_gpt[:, 1] - bnd_lims_gpt[:, 0]
  )

  key_species = np.asarray(
      require_table(tables, 'key_species'), dtype=np.int64
  )
  if key_species.shape != (n_bnd, 2, 2):
    raise ValueError(
        f'key_species has shape {key_species.shape}, expected ({n_bnd}, 2, 2).'
    )
  if np.any(key_species < 0) or np.any(key_species > n_gases):
    raise ValueError(f'key_species entries must lie in [0, {n_gases}].')
  flavor, gpoint_flavor = create_flavors(key_species, bnd_lims_gpt, n_gpt)

  return {
      'n_gases': n_gases,
      'n_bnd': n_bnd,
      'n_gpt': n_gpt,
      'n_flav': flavor.shape[0],
      'n_eta': n_eta,
      'n_p_ref': n_p_ref,
      'n_t_ref': n_t_ref,
      'idx_gases': idx_gases,
      'idx_h2o': idx_gases['h2o'],
      't_ref': jnp.asarray(t_ref, dtype=kernel_types.f_dtype),
      'p_ref': jnp.asarray(p_ref, dtype=kernel_types.f_dtype),
      'log_p_ref': jnp.asarray(np.log(p_ref), dtype=kernel_types.f_dtype),
      'p_ref_tropo': float(
          np.squeeze(require_table(tables, 'press_ref_trop'))
      ),
      't_ref_min': float(t_ref.min()),
      't_ref_max': float(t_ref.max()),
      'p_ref_min': float(p_ref.min()),
      'p_ref_max': float(p_ref.max()),
      'vmr_ref': vmr_ref,
      'kmajor': kmajor,
      'bnd_lims_gpt': bnd_lims_gpt,
      'g_point_to_bnd': g_point_to_bnd,
      'flavor': flavor,
      'gpoint_flavor': gpoint_flavor,
      'minor_lower': _load_minor_absorbers(tables, 'lower', idx_gases, n_gpt),
      'minor_upper': _load_minor_absorbers(tables, 'upper', idx_gases, n_gpt),
  }
