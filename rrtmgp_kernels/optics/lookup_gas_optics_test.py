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

"""Tests whether the gas optics tables are loaded and indexed properly."""

from absl.testing import absltest
from absl.testing import parameterized
import jax
import numpy as np
from rrtmgp_kernels.optics import gas_optics_test_util as test_util
from rrtmgp_kernels.optics import lookup_gas_optics_base
from rrtmgp_kernels.optics import lookup_gas_optics_longwave
from rrtmgp_kernels.optics import lookup_gas_optics_shortwave

ScalingMode = lookup_gas_optics_base.ScalingMode


class LookupGasOpticsTest(parameterized.TestCase):

  def setUp(self):
    super().setUp()
    self.tables = test_util.make_tables()

  def test_dimensions_and_gas_index(self):
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)
    self.assertEqual(lookup.n_gases, 4)
    self.assertEqual(lookup.n_bnd, 2)
    self.assertEqual(lookup.n_gpt, 5)
    self.assertEqual(lookup.n_eta, test_util.N_ETA)
    self.assertEqual(lookup.n_p_ref, test_util.N_P_REF)
    self.assertEqual(lookup.n_t_ref, 4)
    self.assertEqual(
        lookup.idx_gases,
        {'dry_air': 0, 'h2o': 1, 'co2': 2, 'o3': 3, 'n2': 4},
    )
    self.assertEqual(lookup.idx_h2o, 1)
    self.assertAlmostEqual(lookup.t_ref_min, 160.0)
    self.assertAlmostEqual(lookup.t_ref_max, 340.0)
    self.assertAlmostEqual(lookup.p_ref_min, test_util.P_REF_MIN, places=3)
    self.assertAlmostEqual(lookup.p_ref_tropo, test_util.P_REF_TROPO)

  def test_band_limits_are_zero_based_and_half_open(self):
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)
    np.testing.assert_equal(lookup.bnd_lims_gpt, [[0, 3], [3, 5]])
    np.testing.assert_equal(lookup.g_point_to_bnd, [0, 0, 0, 1, 1])

  def test_flavors_are_unique_pairs_in_order_of_appearance(self):
    """The band without key species aloft falls back to the pair (2, 2)."""
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)
    np.testing.assert_equal(lookup.flavor, [[1, 2], [2, 2], [1, 3]])
    self.assertEqual(lookup.n_flav, 3)
    np.testing.assert_equal(
        lookup.gpoint_flavor, [[0, 0, 0, 2, 2], [1, 1, 1, 2, 2]]
    )

  def test_minor_absorbers_are_resolved(self):
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)

    with self.subTest('Lower'):
      minor = lookup.minor_lower
      self.assertEqual(minor.n_minor, 3)
      np.testing.assert_equal(minor.limits_gpt, [[0, 3], [1, 3], [3, 5]])
      np.testing.assert_equal(minor.kminor_start, [0, 3, 5])
      np.testing.assert_equal(minor.idx_minor, [4, 2, 3])
      np.testing.assert_equal(minor.idx_scaling_gas, [-1, 1, 1])
      np.testing.assert_equal(minor.scales_with_density, [True, True, False])
      self.assertEqual(
          minor.scaling_mode,
          (ScalingMode.NONE, ScalingMode.DIRECT, ScalingMode.COMPLEMENT),
      )

    with self.subTest('Upper'):
      minor = lookup.minor_upper
      np.testing.assert_equal(minor.limits_gpt, [[0, 5], [3, 4]])
      np.testing.assert_equal(minor.idx_scaling_gas, [4, -1])
      self.assertEqual(
          minor.scaling_mode, (ScalingMode.COMPLEMENT, ScalingMode.NONE)
      )

  def test_dry_air_can_be_a_scaling_gas(self):
    self.tables['scaling_gas_lower'] = ['', 'dry_air', 'h2o']
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)
    np.testing.assert_equal(lookup.minor_lower.idx_scaling_gas, [-1, 0, 1])

  def test_gas_names_may_be_bytes(self):
    self.tables['gas_names'] = [b'H2O ', b'co2', b'o3', b'n2']
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)
    self.assertEqual(lookup.idx_h2o, 1)

  def test_longwave_planck_tables(self):
    lookup = lookup_gas_optics_longwave.from_tables(self.tables)
    self.assertEqual(lookup.n_t_plnk, test_util.N_T_PLNK)
    self.assertEqual(lookup.totplnk.shape, (test_util.N_T_PLNK, 2))
    np.testing.assert_allclose(
        lookup.totplnk, np.asarray(self.tables['totplnk']).T, rtol=1e-6
    )
    np.testing.assert_allclose(
        lookup.t_planck, np.linspace(160.0, 340.0, test_util.N_T_PLNK),
        rtol=1e-6,
    )
    self.assertAlmostEqual(lookup.t_planck_delta, 30.0)
    self.assertEqual(lookup.planck_fraction.shape, lookup.kmajor.shape)

  def test_shortwave_tables(self):
    lookup = lookup_gas_optics_shortwave.from_tables(self.tables)
    self.assertEqual(
        lookup.krayl.shape, (2, 4, test_util.N_ETA, test_util.N_GPT)
    )
    np.testing.assert_allclose(
        lookup.krayl[1], self.tables['rayl_upper'], rtol=1e-6
    )
    np.testing.assert_allclose(
        np.sum(lookup.solar_src_scaled), 1.0, rtol=1e-6
    )
    np.testing.assert_allclose(
        lookup.solar_src_tot,
        np.sum(self.tables['solar_source_quiet']),
        rtol=1e-5,
    )

  @parameterized.named_parameters(
      ('kmajor', 'kmajor'),
      ('vmr_ref', 'vmr_ref'),
      ('minor_lower', 'minor_gases_lower'),
      ('planck', 'plank_fraction'),
  )
  def test_missing_table_raises(self, key):
    del self.tables[key]
    with self.assertRaisesRegex(KeyError, key):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_missing_rayleigh_table_raises(self):
    del self.tables['rayl_lower']
    with self.assertRaisesRegex(KeyError, 'rayl_lower'):
      lookup_gas_optics_shortwave.from_tables(self.tables)

  def test_unknown_minor_gas_raises(self):
    self.tables['minor_gases_upper'] = ['o3', 'ch4']
    with self.assertRaisesRegex(ValueError, "Unknown gas 'ch4'"):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_missing_water_vapor_raises(self):
    self.tables['gas_names'] = ['co2', 'co2b', 'o3', 'n2']
    with self.assertRaisesRegex(ValueError, 'h2o'):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_non_uniform_temperature_grid_raises(self):
    self.tables['temp_ref'] = np.array([160.0, 220.0, 290.0, 340.0])
    with self.assertRaisesRegex(ValueError, 'temp_ref must be uniformly'):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_inconsistent_kmajor_raises(self):
    self.tables['kmajor'] = self.tables['kmajor'][:, :-1]
    with self.assertRaisesRegex(ValueError, 'kmajor has shape'):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_minor_descriptor_length_mismatch_raises(self):
    self.tables['kminor_start_lower'] = np.array([1, 4])
    with self.assertRaisesRegex(ValueError, 'kminor_start_lower has 2'):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_minor_contributors_beyond_table_raise(self):
    self.tables['kminor_start_upper'] = np.array([3, 6])
    with self.assertRaisesRegex(ValueError, 'kminor_start_upper entry 0'):
      lookup_gas_optics_longwave.from_tables(self.tables)

  def test_create_flavors_without_key_species(self):
    key_species = np.zeros((1, 2, 2), dtype=np.int64)
    flavor, gpoint_flavor = lookup_gas_optics_base.create_flavors(
        key_species, np.array([[0, 4]]), 4
    )
    np.testing.assert_equal(flavor, [[2, 2]])
    np.testing.assert_equal(gpoint_flavor, np.zeros((2, 4)))


if __name__ == '__main__':
  jax.config.update('jax_enable_x64', True)
  absltest.main()
