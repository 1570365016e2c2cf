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

from typing import TypeAlias

from absl.testing import absltest
from absl.testing import parameterized
import jax
import jax.numpy as jnp
import numpy as np
from rrtmgp_kernels.optics import optics_utils

IndexAndWeight: TypeAlias = optics_utils.IndexAndWeight
Interpolant: TypeAlias = optics_utils.Interpolant


def assert_interpolant_allclose(i1: Interpolant, i2: Interpolant):
  rtol = 1e-5
  atol = 1e-6
  np.testing.assert_equal(np.asarray(i1.interp_low.idx), i2.interp_low.idx)
  np.testing.assert_allclose(
      i1.interp_low.weight, i2.interp_low.weight, rtol, atol
  )
  np.testing.assert_equal(np.asarray(i1.interp_high.idx), i2.interp_high.idx)
  np.testing.assert_allclose(
      i1.interp_high.weight, i2.interp_high.weight, rtol, atol
  )


class OpticsUtilsTest(parameterized.TestCase):

  @parameterized.named_parameters(
      ('1D_1D', True, [1, 2, 3, 4, 5, 6, 7, 8, 9],
       ([8, 7, 6, 5, 4, 3, 2, 1, 0],), [9, 8, 7, 6, 5, 4, 3, 2, 1]),
      ('2D_2D', True, [[1, 2, 3], [4, 5, 6], [7, 8, 9]],
       ([[2, 2, 2], [1, 1, 1], [0, 0, 0]], [[2, 1, 0], [2, 1, 0], [2, 1, 0]]),
       [[9, 8, 7], [6, 5, 4], [3, 2, 1]]),
      ('1D_1D_einsum', False, [1, 2, 3, 4, 5, 6, 7, 8, 9],
       ([8, 7, 6, 5, 4, 3, 2, 1, 0],), [9, 8, 7, 6, 5, 4, 3, 2, 1]),
      ('3D_2D_einsum', False,
       [[[1, 2], [3, 4]], [[10, 20], [30, 40]]],
       ([[0, 1], [1, 0]], [[1, 1], [0, 0]], [[0, 1], [1, 0]]),
       [[3, 40], [20, 1]]),
  )
  def test_lookup_values(self, use_direct_indexing, coeffs, idxs, expected):
    lookup_fn = (
        optics_utils.lookup_values_direct_indexing
        if use_direct_indexing
        else optics_utils.lookup_values
    )
    coeffs = jnp.array(coeffs, dtype=jnp.float32)
    idxs = [jnp.array(idx) for idx in idxs]
    np.testing.assert_equal(
        np.asarray(lookup_fn(coeffs, idxs)), np.array(expected)
    )

  def test_direct_indexing_carries_trailing_axes(self):
    """Indexing the leading axes keeps the spectral axis as the last one."""
    coeffs = jnp.arange(24, dtype=jnp.float32).reshape((2, 3, 4))
    idx0 = jnp.array([[0, 1], [1, 1]])
    idx1 = jnp.array([[2, 0], [1, 2]])
    result = optics_utils.lookup_values_direct_indexing(coeffs, (idx0, idx1))
    self.assertEqual(result.shape, (2, 2, 4))
    np.testing.assert_equal(np.asarray(result[1, 0]), np.asarray(coeffs[1, 1]))

  def test_floor_idx(self):
    """Tests that the lower bracket index is clamped to the last interval."""
    ref_vals = jnp.arange(1.0, 11.0)
    vals = jnp.array((0.2, 1.0, 1.5, 5.6, 7.8, 9.0, 10.0, 10.5))
    expected_floor_idx = np.array((0, 0, 0, 4, 6, 8, 8, 8))
    floor_idx = optics_utils.floor_idx(vals, ref_vals)
    np.testing.assert_equal(np.asarray(floor_idx), expected_floor_idx)

  def test_create_linear_interpolant(self):
    """Tests the linear interpolant within and outside of the grid."""
    ref_vals = jnp.arange(1.0, 11.0)
    vals = jnp.array((1.0, 1.5, 5.6, 7.8, 9.0, 10.0))
    idx_low = np.array((0, 0, 4, 6, 8, 8))
    weight_low = np.array((1.0, 0.5, 0.4, 0.2, 1.0, 0.0))
    weight_high = np.array((0.0, 0.5, 0.6, 0.8, 0.0, 1.0))
    expected_interpolant = Interpolant(
        IndexAndWeight(idx_low, weight_low),
        IndexAndWeight(idx_low + 1, weight_high),
    )

    with self.subTest('ValuesWithinReferenceRange'):
      interpolant = optics_utils.create_linear_interpolant(vals, ref_vals)
      assert_interpolant_allclose(interpolant, expected_interpolant)

    with self.subTest('WithOffset'):
      offset = jnp.array((1, 0, 1, 0, 1, 0))
      interpolant = optics_utils.create_linear_interpolant(
          vals, ref_vals, offset
      )
      expected = Interpolant(
          IndexAndWeight(idx_low + offset, weight_low),
          IndexAndWeight(idx_low + 1 + offset, weight_high),
      )
      assert_interpolant_allclose(interpolant, expected)

    with self.subTest('ValuesOutsideReferenceRangeExtrapolate'):
      interpolant = optics_utils.create_linear_interpolant(
          jnp.array((0.0, 11.0)), ref_vals
      )
      expected = Interpolant(
          IndexAndWeight(np.array((0, 8)), np.array((2.0, -1.0))),
          IndexAndWeight(np.array((1, 9)), np.array((-1.0, 2.0))),
      )
      assert_interpolant_allclose(interpolant, expected)

  def test_create_linear_interpolant_decreasing_grid(self):
    """Log-pressure grids decrease with index; the bracket still applies."""
    ref_vals = jnp.array((5.0, 4.0, 3.0, 2.0))
    interpolant = optics_utils.create_linear_interpolant(
        jnp.array((4.75, 3.5, 2.0)), ref_vals
    )
    expected = Interpolant(
        IndexAndWeight(np.array((0, 1, 2)), np.array((0.75, 0.5, 0.0))),
        IndexAndWeight(np.array((1, 2, 3)), np.array((0.25, 0.5, 1.0))),
    )
    assert_interpolant_allclose(interpolant, expected)

  def test_interpolate_1d_is_exact_at_nodes(self):
    table = jnp.array(
        [[0.0, 10.0], [1.0, 20.0], [2.0, 40.0], [3.0, 80.0]],
        dtype=jnp.float32,
    )
    nodes = jnp.array([100.0, 150.0, 200.0, 250.0])
    result = optics_utils.interpolate_1d(nodes, 100.0, 50.0, table)
    np.testing.assert_allclose(result, table, rtol=1e-6, atol=0)

  def test_interpolate_1d_between_nodes(self):
    table = jnp.array(
        [[0.0, 10.0], [1.0, 20.0], [2.0, 40.0], [3.0, 80.0]],
        dtype=jnp.float32,
    )
    vals = jnp.array([[175.0, 225.0]])
    result = optics_utils.interpolate_1d(vals, 100.0, 50.0, table)
    self.assertEqual(result.shape, (1, 2, 2))
    np.testing.assert_allclose(
        result, [[[1.5, 30.0], [2.5, 60.0]]], rtol=1e-6, atol=0
    )

  def test_interpolate_1d_is_monotonic_for_monotonic_table(self):
    table = jnp.array([[1.0], [2.0], [7.0], [8.0], [20.0]])
    vals = jnp.linspace(0.0, 4.0, 41)
    result = np.asarray(optics_utils.interpolate_1d(vals, 0.0, 1.0, table))
    self.assertTrue(np.all(np.diff(result[:, 0]) >= 0.0))

  def test_interpolate_2d_by_flavor_matches_loop(self):
    rng = np.random.default_rng(1)
    n_t, n_eta, n_k = 3, 4, 6
    k_np = rng.uniform(size=(n_t, n_eta, n_k)).astype(np.float32)
    jtemp = np.array([[0, 1, 1]])
    jeta = np.array([[[0, 2], [1, 1], [2, 0]]])
    fminor = rng.uniform(size=(1, 3, 2, 2)).astype(np.float32)

    result = optics_utils.interpolate_2d_by_flavor(
        jnp.array(fminor), jnp.array(k_np), 2, 5, jnp.array(jeta),
        jnp.array(jtemp),
    )

    self.assertEqual(result.shape, (1, 3, 3))
    expected = np.zeros((1, 3, 3))
    for lay in range(3):
      for itemp in range(2):
        for ieta in range(2):
          expected[0, lay] += (
              fminor[0, lay, itemp, ieta]
              * k_np[
                  jtemp[0, lay] + itemp, jeta[0, lay, itemp] + ieta, 2:5
              ]
          )
    np.testing.assert_allclose(result, expected, rtol=1e-5, atol=0)

  def test_interpolate_2d_reduces_to_1d_for_single_weight(self):
    """With a single non-zero weight, the corner value is returned."""
    k = jnp.arange(2 * 3 * 2, dtype=jnp.float32).reshape((2, 3, 2))
    fminor = jnp.array([[[0.0, 0.0], [0.0, 1.0]]])
    jtemp = jnp.array([0])
    jeta = jnp.array([[0, 1]])
    result = optics_utils.interpolate_2d_by_flavor(fminor, k, 0, 2, jeta, jtemp)
    np.testing.assert_allclose(result, np.asarray(k[1, 2])[np.newaxis])

  def test_interpolate_3d_is_a_sum_of_two_bilinear_surfaces(self):
    """Each temperature bracket uses its own eta bracket and scale factor."""
    rng = np.random.default_rng(2)
    n_t, n_p, n_eta, n_g = 3, 4, 5, 4
    k_np = rng.uniform(size=(n_t, n_p, n_eta, n_g)).astype(np.float32)
    jeta = np.array([[0, 3]])
    fmajor = rng.uniform(size=(1, 2, 2, 2)).astype(np.float32)
    scaling = jnp.array([[1.0, 1.0]])

    result = optics_utils.interpolate_3d_by_flavor(
        scaling, jnp.array(fmajor), jnp.array(k_np), 1, 4, jnp.array(jeta),
        jnp.array([1]), jnp.array([2]),
    )

    f = fmajor[0]
    expected = np.zeros(3)
    for itemp in range(2):
      for ipress in range(2):
        for ieta in range(2):
          expected += (
              f[itemp, ipress, ieta]
              * k_np[1 + itemp, 2 + ipress, jeta[0, itemp] + ieta, 1:4]
          )
    np.testing.assert_allclose(result[0], expected, rtol=1e-5, atol=0)

  def test_interpolate_3d_applies_scaling_per_temperature_bracket(self):
    rng = np.random.default_rng(3)
    k = jnp.array(rng.uniform(size=(2, 2, 2, 3)), dtype=jnp.float32)
    fmajor = jnp.array(rng.uniform(size=(1, 2, 2, 2)), dtype=jnp.float32)
    jtemp = jnp.array([0])
    jpress = jnp.array([0])
    jeta = jnp.array([[0, 0]])

    def interp(scaling):
      return optics_utils.interpolate_3d_by_flavor(
          jnp.array([scaling]), fmajor, k, 0, 3, jeta, jtemp, jpress
      )

    lower = interp([1.0, 0.0])
    upper = interp([0.0, 1.0])
    np.testing.assert_allclose(
        interp([2.0, 3.0]), 2.0 * lower + 3.0 * upper, rtol=1e-5, atol=1e-7
    )

  def test_check_index_bounds(self):
    optics_utils.check_index_bounds(jnp.array([0, 2]), 4, 'pressure')
    with self.assertRaisesRegex(IndexError, 'pressure lookup index'):
      optics_utils.check_index_bounds(jnp.array([0, 3]), 4, 'pressure')
    with self.assertRaisesRegex(IndexError, 'eta lookup index'):
      optics_utils.check_index_bounds(jnp.array([-1, 1]), 4, 'eta')

  def test_check_index_bounds_skips_traced_indices(self):
    @jax.jit
    def f(idx):
      optics_utils.check_index_bounds(idx, 2, 'temperature')
      return idx + 1

    np.testing.assert_equal(np.asarray(f(jnp.array([5]))), [6])


if __name__ == '__main__':
  jax.config.update('jax_enable_x64', True)
  absltest.main()
