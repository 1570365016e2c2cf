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

"""Interpolation primitives shared by the gas optics evaluators.

All the primitives operate on arrays with arbitrary leading grid axes (e.g.
`(n_col, n_lay)`) and lookup tables whose spectral axis comes last, so that the
result of a lookup carries the spectral axis as its trailing dimension.
"""

from collections.abc import Sequence
import dataclasses
import string
from typing import TypeAlias

from absl import flags
import jax
import jax.numpy as jnp
import numpy as np
from rrtmgp_kernels import kernel_types

Array: TypeAlias = jax.Array

DEBUG_CHECK_LOOKUP_INDICES = flags.DEFINE_bool(
    'debug_check_lookup_indices',
    False,
    'If true, the table indices used by the interpolation primitives are'
    ' checked against the table bounds before every lookup. Only concrete'
    ' (non-traced) indices are checked.',
    allow_override=True,
)


@dataclasses.dataclass
class IndexAndWeight:
  """Wrapper for a pair of index tensor and associated interpolation weight."""

  # Index tensor.
  idx: Array
  # Interpolant weight tensor associated with index.
  weight: Array


@dataclasses.dataclass
class Interpolant:
  """Wrapper for a single dimension interpolant."""

  # Index and interpolation weight of floor reference value.
  interp_low: IndexAndWeight
  # Index and interpolation weight of upper endpoint of matching reference
  # interval.
  interp_high: IndexAndWeight


def _debug_checks_enabled() -> bool:
  try:
    return DEBUG_CHECK_LOOKUP_INDICES.value
  except flags.UnparsedFlagAccessError:
    return False


def check_index_bounds(idx: Array, size: int, name: str):
  """Checks that `idx` and `idx + 1` both address a table axis of `size`.

  Traced indices cannot be inspected and are skipped.

  Args:
    idx: Lower bracket indices into the table axis.
    size: The length of the table axis.
    name: Name of the axis, used in the error message.

  Raises:
    IndexError: If any bracket falls outside of `[0, size - 1]`.
  """
  try:
    idx_np = np.asarray(idx)
  except jax.errors.TracerArrayConversionError:
    return
  if idx_np.size == 0:
    return
  lo, hi = int(idx_np.min()), int(idx_np.max())
  if lo < 0 or hi + 1 > size - 1:
    raise IndexError(
        f'{name} lookup index out of bounds: brackets span [{lo}, {hi + 1}]'
        f' but the table axis has {size} entries.'
    )


def _einsum_expression_from_lookup_table(table: Array):
  """Return an einsum expression for performing matmul on a lookup table."""
  rank = table.ndim
  eq_idx = ''
  eq_tb = '...'
  for i in range(rank):
    dim_var = string.ascii_lowercase[i]
    eq_idx += f'...{dim_var},'
    eq_tb += f'{dim_var}'
  return eq_idx + eq_tb + '->...'


def lookup_values(vals: Array, idx_list: Sequence[Array]) -> Array:
  """Gather values from `vals` as specified by a list of index arrays.

  Args:
    vals: An array of coefficients to be gathered.
    idx_list: A list of length equal to the rank of `vals` containing arrays of
      indices, one for each axis of `vals` and in the same order.

  Returns:
    An array having the same shape as an element of `idx_list` where the indices
    have been replaced by the corresponding value from `vals`.
  """
  # The integer indices are converted to a one-hot representation so that the
  # lookup is a matrix multiplication rather than a gather. This only pays off
  # for small tables such as the reference volume mixing ratios.
  eq = _einsum_expression_from_lookup_table(vals)
  inputs = [
      jax.nn.one_hot(idx, vals.shape[i], dtype=vals.dtype)
      for i, idx in enumerate(idx_list)
  ]
  inputs.append(vals)
  return jnp.einsum(eq, *inputs)


def lookup_values_direct_indexing(
    vals: Array, idx_list: Sequence[Array]
) -> Array:
  """Gather values from `vals` by direct indexing into its leading axes.

  Unlike `lookup_values`, `idx_list` may index fewer axes than `vals` has, in
  which case the remaining trailing axes (typically the g-point axis) are
  carried into the result.

  Args:
    vals: An array of coefficients to be gathered.
    idx_list: A list of broadcast-compatible index arrays, one for each of the
      leading axes of `vals` that is being indexed.

  Returns:
    An array of shape `idx.shape + vals.shape[len(idx_list):]`.
  """
  return vals[tuple(idx_list)]


def floor_idx(f: Array, reference_values: Array) -> Array:
  """Return the lower bracket indices of `f` on a uniform reference grid.

  The reference values may be increasing or decreasing, but must be evenly
  spaced. Values beyond either end of the grid are clamped to the first or the
  last interval, so the returned index `k` always satisfies
  `0 <= k <= len(reference_values) - 2`.

  Args:
    f: The array whose values will be mapped to a reference interval.
    reference_values: A 1D array of evenly spaced reference values.

  Returns:
    An `Array` of the same shape as `f` containing the lower bracket indices.
  """
  size = reference_values.shape[0]
  delta = (reference_values[-1] - reference_values[0]) / (size - 1)
  truncated_div = jnp.floor((f - reference_values[0]) / delta)
  truncated_div = truncated_div.astype(kernel_types.i_dtype)
  return jnp.clip(truncated_div, 0, size - 2)


def create_linear_interpolant(
    f: Array, f_ref: Array, offset: Array | None = None
) -> Interpolant:
  """Create a linear interpolant based on the evenly spaced reference values.

  The bracket indices are clamped to the reference grid but the weights are
  not: outside of the grid the weight of the upper endpoint is negative or
  larger than 1, so a lookup with these weights extrapolates linearly from the
  closest interval.

  Args:
    f: A tensor of arbitrary shape.
    f_ref: The 1-D tensor of evenly spaced reference values for the variable.
    offset: An optional tensor of the same shape as `f` that should be added to
      the interpolant indices.

  Returns:
    An `Interpolant` object containing the pointwise floor and ceiling indices
    and interpolation weights of `f`.
  """
  size = f_ref.shape[0]
  delta = (f_ref[-1] - f_ref[0]) / (size - 1)
  idx_low = floor_idx(f, f_ref)
  idx_high = idx_low + 1
  # Compute the interpolant weights for the two endpoints.
  lower_reference_vals = f_ref[0] + delta * idx_low.astype(f_ref.dtype)
  weight2 = (f - lower_reference_vals) / delta
  weight1 = 1.0 - weight2
  if offset is not None:
    idx_low += offset
    idx_high += offset
  idx_weight_low = IndexAndWeight(idx_low, weight1)
  idx_weight_high = IndexAndWeight(idx_high, weight2)
  return Interpolant(idx_weight_low, idx_weight_high)


def interpolate_1d(
    val: Array, offset: float, delta: float, table: Array
) -> Array:
  """Linear interpolation along the first axis of `table`.

  The lower bracket index is `floor((val - offset) / delta)` clamped to
  `[0, n - 2]`, and the fractional weight is measured from that clamped index,
  so the table is reproduced exactly at every node, including the last one.

  Args:
    val: Query values of arbitrary shape.
    offset: The value of the first grid node.
    delta: The uniform grid spacing.
    table: A table of shape `(n, ...)` whose first axis is the interpolation
      axis.

  Returns:
    The interpolated rows, of shape `val.shape + table.shape[1:]`.
  """
  n = table.shape[0]
  val0 = (val - offset) / delta
  idx = jnp.clip(jnp.floor(val0).astype(kernel_types.i_dtype), 0, n - 2)
  frac = val0 - idx.astype(val0.dtype)
  if _debug_checks_enabled():
    check_index_bounds(idx, n, 'interpolate_1d')
  frac = jnp.reshape(frac, frac.shape + (1,) * (table.ndim - 1))
  return (1.0 - frac) * table[idx] + frac * table[idx + 1]


def interpolate_2d_by_flavor(
    fminor: Array,
    k: Array,
    k_start: int,
    k_end: int,
    jeta: Array,
    jtemp: Array,
) -> Array:
  """Bilinear interpolation over (temperature, eta) for a range of g-points.

  Args:
    fminor: Interpolation weights of the selected flavor,
      `(..., 2 [itemp], 2 [ieta])`.
    k: Lookup table of shape `(n_t_ref, n_η, n_k)`.
    k_start: First entry of the spectral range of `k` (inclusive).
    k_end: Last entry of the spectral range of `k` (exclusive).
    jeta: Lower eta bracket for each temperature bracket, `(..., 2)`.
    jtemp: Lower temperature bracket, `(...)`.

  Returns:
    The interpolated values, of shape `(..., k_end - k_start)`.
  """
  if _debug_checks_enabled():
    check_index_bounds(jtemp, k.shape[0], 'temperature')
    check_index_bounds(jeta, k.shape[1], 'eta')
  table = k[:, :, k_start:k_end]
  result = 0.0
  for itemp in range(2):
    for ieta in range(2):
      vals = lookup_values_direct_indexing(
          table, (jtemp + itemp, jeta[..., itemp] + ieta)
      )
      result += fminor[..., itemp, ieta, jnp.newaxis] * vals
  return result


def _interpolate_eta_pressure(
    weights: Array,
    table: Array,
    jtemp: Array,
    jeta: Array,
    jpress: Array,
) -> Array:
  """Bilinear eta x pressure interpolation at a single temperature index.

  Args:
    weights: `(..., 2 [ipress], 2 [ieta])` blend weights.
    table: `(n_t_ref, n_p_ref + 1, n_η, n_g)` lookup table.
    jtemp: The temperature index (not a bracket) to look up, `(...)`.
    jeta: Lower eta bracket, `(...)`.
    jpress: Lower pressure bracket, `(...)`.

  Returns:
    The blended values, `(..., n_g)`.
  """
  result = 0.0
  for ipress in range(2):
    for ieta in range(2):
      vals = lookup_values_direct_indexing(
          table, (jtemp, jpress + ipress, jeta + ieta)
      )
      result += weights[..., ipress, ieta, jnp.newaxis] * vals
  return result


def interpolate_3d_by_flavor(
    scaling: Array,
    fmajor: Array,
    k: Array,
    gpt_start: int,
    gpt_end: int,
    jeta: Array,
    jtemp: Array,
    jpress: Array,
) -> Array:
  """Scaled sum of two eta x pressure interpolations, one per temperature.

  This is not a trilinear interpolation: each of the two bracketing reference
  temperatures contributes its own bilinear (eta, pressure) surface, with its
  own eta bracket, and the two surfaces are weighted by `scaling` before they
  are added.

  Args:
    scaling: Scale factor of each temperature bracket, `(..., 2)`.
    fmajor: Interpolation weights of the selected flavor,
      `(..., 2 [itemp], 2 [ipress], 2 [ieta])`.
    k: Lookup table of shape `(n_t_ref, n_p_ref + 1, n_η, n_gpt)`.
    gpt_start: First g-point of the range (inclusive).
    gpt_end: Last g-point of the range (exclusive).
    jeta: Lower eta bracket for each temperature bracket, `(..., 2)`.
    jtemp: Lower temperature bracket, `(...)`.
    jpress: Lower pressure bracket, already offset for the atmosphere half,
      `(...)`.

  Returns:
    The interpolated values, of shape `(..., gpt_end - gpt_start)`.
  """
  if _debug_checks_enabled():
    check_index_bounds(jtemp, k.shape[0], 'temperature')
    check_index_bounds(jpress, k.shape[1], 'pressure')
    check_index_bounds(jeta, k.shape[2], 'eta')
  table = k[..., gpt_start:gpt_end]
  lower_temperature = _interpolate_eta_pressure(
      fmajor[..., 0, :, :], table, jtemp, jeta[..., 0], jpress
  )
  upper_temperature = _interpolate_eta_pressure(
      fmajor[..., 1, :, :], table, jtemp + 1, jeta[..., 1], jpress
  )
  return (
      scaling[..., 0, jnp.newaxis] * lower_temperature
      + scaling[..., 1, jnp.newaxis] * upper_temperature
  )
