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

"""Module for checking whether atmospheric inputs are valid.

The checks in this module operate on concrete arrays and are meant to be run
before any gas optics kernel is invoked. Each failing check raises a
`ValueError` naming the offending array and the bound that was violated.
"""

from collections.abc import Iterable, Sequence
from typing import TypeAlias

import jax
import jax.numpy as jnp

Array: TypeAlias = jax.Array


def check_no_nan_inf(fields: Iterable[Array]) -> Array:
  """Check that all input fields are finite."""
  # Reduce on each field to a single scalar (boolean type).
  all_finite_for_each_field = jnp.array([jnp.isfinite(x).all() for x in fields])
  # Then reduce over each field's scalar.
  return jnp.all(all_finite_for_each_field)


def any_vals_less_than(array: Array, min_val: float) -> bool:
  """Whether any value of `array` is strictly smaller than `min_val`."""
  return bool(jnp.any(array < min_val))


def any_vals_outside(array: Array, min_val: float, max_val: float) -> bool:
  """Whether any value of `array` lies outside of `[min_val, max_val]`."""
  return bool(jnp.any((array < min_val) | (array > max_val)))


def check_extent(array: Array, shape: Sequence[int], name: str):
  """Raises a `ValueError` if `array` does not have the expected `shape`."""
  if tuple(array.shape) != tuple(shape):
    raise ValueError(
        f'{name} has extent {tuple(array.shape)}, expected {tuple(shape)}.'
    )


def check_finite(array: Array, name: str):
  """Raises a `ValueError` if `array` contains a NaN or an infinite value."""
  if not bool(check_no_nan_inf([array])):
    raise ValueError(f'{name} contains NaN or infinite values.')


def check_range(
    array: Array,
    min_val: float,
    max_val: float,
    name: str,
):
  """Raises a `ValueError` if any value of `array` is outside the bounds.

  Args:
    array: The array to check.
    min_val: The inclusive lower bound.
    max_val: The inclusive upper bound.
    name: The name of the array, used in the error message.
  """
  if any_vals_outside(array, min_val, max_val):
    raise ValueError(
        f'{name} values out of range [{min_val}, {max_val}]: found min'
        f' {float(jnp.min(array))} and max {float(jnp.max(array))}.'
    )


def check_positive(array: Array, name: str):
  """Raises a `ValueError` unless every value of `array` is strictly > 0."""
  if bool(jnp.any(array <= 0)):
    raise ValueError(
        f'{name} must be strictly positive, found min {float(jnp.min(array))}.'
    )


def check_non_negative(array: Array, name: str):
  """Raises a `ValueError` if any value of `array` is negative."""
  if any_vals_less_than(array, 0.0):
    raise ValueError(
        f'{name} must be non-negative, found min {float(jnp.min(array))}.'
    )
