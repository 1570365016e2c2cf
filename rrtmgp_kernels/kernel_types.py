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

"""Common types for the gas optics kernels."""

from absl import flags
import jax
import jax.numpy as jnp

USE_64BIT_DTYPES = flags.DEFINE_bool(
    'use_64bit_dtypes',
    False,
    'If true, 64-bit dtypes will be used for the gas optics tables and'
    ' coefficients. If false, 32-bit dtypes will be used.',
    allow_override=True,
)


def near_zero(dtype: jax.typing.DTypeLike) -> float:
  """Threshold below which a denominator is treated as numerically zero.

  This is twice the smallest positive normal number representable in `dtype`.

  Args:
    dtype: A floating point dtype.

  Returns:
    The threshold as a Python float.
  """
  return 2.0 * float(jnp.finfo(dtype).tiny)


# Resolved lazily so that the flag value is read only after flags are parsed.
def __getattr__(name):
  try:
    f_dtype: jax.typing.DTypeLike = (
        jnp.float64 if USE_64BIT_DTYPES.value else jnp.float32
    )
    i_dtype: jax.typing.DTypeLike = (
        jnp.int64 if USE_64BIT_DTYPES.value else jnp.int32
    )
  except flags.UnparsedFlagAccessError:
    # Fall-back default.
    f_dtype = jnp.float32
    i_dtype = jnp.int32
  if name == 'f_dtype':
    return f_dtype
  elif name == 'i_dtype':
    return i_dtype
  else:
    raise AttributeError(f'Unknown attribute: {name}')
