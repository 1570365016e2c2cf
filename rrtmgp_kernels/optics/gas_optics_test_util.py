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

"""Synthetic RRTMGP tables and loop-based reference evaluators for tests.

The reference evaluators visit one `(column, layer, g-point)` at a time and use
float64 numpy arithmetic, so they serve as an independent check of the
vectorized JAX evaluators.
"""

from typing import Any

import numpy as np
from rrtmgp_kernels.optics import lookup_gas_optics_longwave
from rrtmgp_kernels.optics import lookup_gas_optics_shortwave

GAS_NAMES = ('h2o', 'co2', 'o3', 'n2')
T_REF = (160.0, 220.0, 280.0, 340.0)
P_REF_MAX = 1.1e5
P_REF_MIN = 1e2
P_REF_TROPO = 1e4
N_P_REF = 5
N_ETA = 9
N_GPT = 5
N_T_PLNK = 7


def make_tables(seed: int = 0) -> dict[str, Any]:
  """Random but deterministic longwave and shortwave RRTMGP tables.

  There are 2 bands of 3 and 2 g-points. Band 1 has the key species pair
  (h2o, co2) in the lower atmosphere and no key species aloft; band 2 has
  (h2o, o3) everywhere, so the flavors are (h2o, co2), (co2, co2), (h2o, o3).
  The minor absorbers cover every scaling mode.

  Args:
    seed: Seed of the random tables.

  Returns:
    A dictionary of tables keyed by RRTMGP variable name.
  """
  rng = np.random.default_rng(seed)
  n_t = len(T_REF)
  n_gases = len(GAS_NAMES)
  kmajor_shape = (n_t, N_P_REF + 1, N_ETA, N_GPT)
  t_plnk = np.linspace(T_REF[0], T_REF[-1], N_T_PLNK)
  return {
      'gas_names': list(GAS_NAMES),
      'key_species': np.array([[[1, 2], [0, 0]], [[1, 3], [1, 3]]]),
      'bnd_limits_gpt': np.array([[1, 3], [4, 5]]),
      'press_ref': np.exp(
          np.linspace(np.log(P_REF_MAX), np.log(P_REF_MIN), N_P_REF)
      ),
      'press_ref_trop': P_REF_TROPO,
      'temp_ref': np.array(T_REF),
      'vmr_ref': rng.uniform(1e-3, 1e-2, size=(n_t, n_gases + 1, 2)),
      'kmajor': rng.uniform(0.1, 1.0, size=kmajor_shape),
      'kminor_lower': rng.uniform(0.1, 1.0, size=(n_t, N_ETA, 7)),
      'minor_gases_lower': ['n2', 'co2', 'o3'],
      'minor_limits_gpt_lower': np.array([[1, 3], [2, 3], [4, 5]]),
      'minor_scales_with_density_lower': np.array([True, True, False]),
      'scaling_gas_lower': ['', 'h2o', 'h2o'],
      'scale_by_complement_lower': np.array([False, False, True]),
      'kminor_start_lower': np.array([1, 4, 6]),
      'kminor_upper': rng.uniform(0.1, 1.0, size=(n_t, N_ETA, 6)),
      'minor_gases_upper': ['o3', 'co2'],
      'minor_limits_gpt_upper': np.array([[1, 5], [4, 4]]),
      'minor_scales_with_density_upper': np.array([True, False]),
      'scaling_gas_upper': ['n2', ''],
      'scale_by_complement_upper': np.array([True, False]),
      'kminor_start_upper': np.array([1, 6]),
      'plank_fraction': rng.uniform(0.0, 1.0, size=kmajor_shape),
      'totplnk': np.array([[1.0], [2.5]]) * (t_plnk[np.newaxis, :] / 100) ** 4,
      'solar_source_quiet': rng.uniform(1.0, 10.0, size=N_GPT),
      'rayl_lower': rng.uniform(0.1, 1.0, size=(n_t, N_ETA, N_GPT)),
      'rayl_upper': rng.uniform(0.1, 1.0, size=(n_t, N_ETA, N_GPT)),
  }


def longwave_lookup(
    tables: dict[str, Any] | None = None,
) -> lookup_gas_optics_longwave.LookupGasOpticsLongwave:
  return lookup_gas_optics_longwave.from_tables(tables or make_tables())


def shortwave_lookup(
    tables: dict[str, Any] | None = None,
) -> lookup_gas_optics_shortwave.LookupGasOpticsShortwave:
  return lookup_gas_optics_shortwave.from_tables(tables or make_tables())


def make_atmosphere(
    n_col: int = 3, n_lay: int = 6, top_at_1: bool = False, seed: int = 0
) -> dict[str, Any]:
  """A random atmosphere within the reference grid, spanning the tropopause.

  Args:
    n_col: The number of columns.
    n_lay: The number of layers.
    top_at_1: Whether the first layer is at the top of the atmosphere.
    seed: Seed of the random state.

  Returns:
    A dictionary of float32 arrays 'pressure', 'temperature', 'col_gas',
    'temperature_lev' and 'sfc_temperature', and the boolean 'top_at_1'.
  """
  rng = np.random.default_rng(seed)
  # Surface to top of the atmosphere.
  p_profile = np.exp(np.linspace(np.log(9.5e4), np.log(3e2), n_lay))
  pressure = p_profile * rng.uniform(0.95, 1.05, size=(n_col, n_lay))
  temperature = rng.uniform(180.0, 320.0, size=(n_col, n_lay))
  temperature_lev = rng.uniform(180.0, 320.0, size=(n_col, n_lay + 1))
  sfc_temperature = rng.uniform(250.0, 310.0, size=n_col)
  col_dry = 10.0 * pressure
  vmr = np.stack(
      [
          rng.uniform(1e-4, 2e-2, size=(n_col, n_lay)),
          np.full((n_col, n_lay), 4e-4),
          rng.uniform(1e-7, 1e-5, size=(n_col, n_lay)),
          np.full((n_col, n_lay), 0.78),
      ],
      axis=-1,
  )
  col_gas = np.concatenate(
      [col_dry[..., np.newaxis], vmr * col_dry[..., np.newaxis]], axis=-1
  )
  if top_at_1:
    pressure = pressure[:, ::-1]
    temperature = temperature[:, ::-1]
    temperature_lev = temperature_lev[:, ::-1]
    col_gas = col_gas[:, ::-1]
  as_f32 = lambda x: np.ascontiguousarray(x, dtype=np.float32)
  return {
      'pressure': as_f32(pressure),
      'temperature': as_f32(temperature),
      'col_gas': as_f32(col_gas),
      'temperature_lev': as_f32(temperature_lev),
      'sfc_temperature': as_f32(sfc_temperature),
      'top_at_1': top_at_1,
  }


def reference_coefficients(lookup, pressure, temperature, col_gas):
  """Loop-based interpolation coefficients, as a dictionary of numpy arrays."""
  t_ref = np.asarray(lookup.t_ref, dtype=np.float64)
  log_p_ref = np.log(np.asarray(lookup.p_ref, dtype=np.float64))
  vmr_ref = np.asarray(lookup.vmr_ref, dtype=np.float64)
  n_t, n_p, n_eta = t_ref.size, log_p_ref.size, lookup.n_eta
  d_t = (t_ref[-1] - t_ref[0]) / (n_t - 1)
  d_p = (log_p_ref[-1] - log_p_ref[0]) / (n_p - 1)
  tiny = 2.0 * np.finfo(np.float32).tiny
  n_col, n_lay = pressure.shape
  n_flav = lookup.flavor.shape[0]

  out = {
      'jtemp': np.zeros((n_col, n_lay), np.int64),
      'ftemp': np.zeros((n_col, n_lay)),
      'jpress': np.zeros((n_col, n_lay), np.int64),
      'fpress': np.zeros((n_col, n_lay)),
      'tropo': np.zeros((n_col, n_lay), bool),
      'jeta': np.zeros((n_col, n_lay, n_flav, 2), np.int64),
      'col_mix': np.zeros((n_col, n_lay, n_flav, 2)),
      'fminor': np.zeros((n_col, n_lay, n_flav, 2, 2)),
      'fmajor': np.zeros((n_col, n_lay, n_flav, 2, 2, 2)),
  }
  for icol in range(n_col):
    for ilay in range(n_lay):
      t = float(temperature[icol, ilay])
      log_p = np.log(float(pressure[icol, ilay]))
      jtemp = min(max(int(np.floor((t - t_ref[0]) / d_t)), 0), n_t - 2)
      ftemp = (t - t_ref[jtemp]) / d_t
      jpress = int(np.floor((log_p - log_p_ref[0]) / d_p))
      jpress = min(max(jpress, 0), n_p - 2)
      fpress = (log_p - log_p_ref[jpress]) / d_p
      tropo = log_p > np.log(lookup.p_ref_tropo)
      half = 0 if tropo else 1
      out['jtemp'][icol, ilay] = jtemp
      out['ftemp'][icol, ilay] = ftemp
      out['jpress'][icol, ilay] = jpress
      out['fpress'][icol, ilay] = fpress
      out['tropo'][icol, ilay] = tropo
      for iflav, (g1, g2) in enumerate(lookup.flavor):
        for itemp in range(2):
          t = jtemp + itemp
          ratio = vmr_ref[t, g1, half] / vmr_ref[t, g2, half]
          col_mix = col_gas[icol, ilay, g1] + ratio * col_gas[icol, ilay, g2]
          if col_mix > tiny:
            eta = col_gas[icol, ilay, g1] / col_mix
          else:
            eta = 0.5
          loceta = eta * (n_eta - 1)
          jeta = min(int(np.floor(loceta)), n_eta - 2)
          feta = loceta % 1.0
          ftemp_term = 1.0 - ftemp if itemp == 0 else ftemp
          out['jeta'][icol, ilay, iflav, itemp] = jeta
          out['col_mix'][icol, ilay, iflav, itemp] = col_mix
          for ieta, w_eta in enumerate((1.0 - feta, feta)):
            out['fminor'][icol, ilay, iflav, itemp, ieta] = w_eta * ftemp_term
            for ipress, w_press in enumerate((1.0 - fpress, fpress)):
              out['fmajor'][icol, ilay, iflav, itemp, ipress, ieta] = (
                  w_press * w_eta * ftemp_term
              )
  return out


def coefficients_to_numpy(coeffs) -> dict[str, np.ndarray]:
  return {
      name: np.asarray(getattr(coeffs, name))
      for name in (
          'jtemp', 'ftemp', 'jpress', 'fpress', 'tropo', 'jeta', 'col_mix',
          'fminor', 'fmajor',
      )
  }


def reference_layer_limits(pressure, tropo, top_at_1):
  """Inclusive layer ranges of the lower and upper atmosphere per column."""
  n_col, n_lay = pressure.shape
  lower = np.full((n_col, 2), -1)
  upper = np.full((n_col, 2), -1)
  for icol in range(n_col):
    lower_lays = [i for i in range(n_lay) if tropo[icol, i]]
    upper_lays = [i for i in range(n_lay) if not tropo[icol, i]]
    if lower_lays:
      i_min = min(lower_lays, key=lambda i: pressure[icol, i])
      lower[icol] = (i_min, n_lay - 1) if top_at_1 else (0, i_min)
    if upper_lays:
      i_max = max(upper_lays, key=lambda i: pressure[icol, i])
      upper[icol] = (0, i_max) if top_at_1 else (i_max, n_lay - 1)
  return lower, upper


def _bands(lookup):
  for start, end in lookup.bnd_lims_gpt:
    yield int(start), int(end)


def reference_major(lookup, c) -> np.ndarray:
  """Major species optical depth `(n_gpt, n_lay, n_col)`."""
  kmajor = np.asarray(lookup.kmajor, dtype=np.float64)
  n_col, n_lay = c['jtemp'].shape
  tau = np.zeros((lookup.n_gpt, n_lay, n_col))
  for icol in range(n_col):
    for ilay in range(n_lay):
      half = 0 if c['tropo'][icol, ilay] else 1
      jt = c['jtemp'][icol, ilay]
      jp = c['jpress'][icol, ilay] + half
      for start, end in _bands(lookup):
        fl = lookup.gpoint_flavor[half, start]
        for igpt in range(start, end):
          for itemp in range(2):
            je = c['jeta'][icol, ilay, fl, itemp]
            acc = 0.0
            for ipress in range(2):
              for ieta in range(2):
                acc += (
                    c['fmajor'][icol, ilay, fl, itemp, ipress, ieta]
                    * kmajor[jt + itemp, jp + ipress, je + ieta, igpt]
                )
            tau[igpt, ilay, icol] += c['col_mix'][icol, ilay, fl, itemp] * acc
  return tau


def _interp_2d(c, icol, ilay, fl, table, idx):
  jt = c['jtemp'][icol, ilay]
  acc = 0.0
  for itemp in range(2):
    je = c['jeta'][icol, ilay, fl, itemp]
    for ieta in range(2):
      acc += (
          c['fminor'][icol, ilay, fl, itemp, ieta]
          * table[jt + itemp, je + ieta, idx]
      )
  return acc


def reference_minor(
    lookup, c, pressure, temperature, col_gas, top_at_1
) -> np.ndarray:
  """Minor species optical depth of both atmosphere halves."""
  n_col, n_lay = pressure.shape
  tau = np.zeros((lookup.n_gpt, n_lay, n_col))
  limits = reference_layer_limits(pressure, c['tropo'], top_at_1)
  for half, minor in enumerate((lookup.minor_lower, lookup.minor_upper)):
    kminor = np.asarray(minor.kminor, dtype=np.float64)
    for icol in range(n_col):
      lay_start, lay_end = limits[half][icol]
      if lay_start < 0:
        continue
      for ilay in range(lay_start, lay_end + 1):
        col = col_gas[icol, ilay].astype(np.float64)
        for i in range(minor.n_minor):
          scaling = col[minor.idx_minor[i]]
          if minor.scales_with_density[i]:
            scaling *= (
                0.01 * pressure[icol, ilay] / temperature[icol, ilay]
            )
          if minor.idx_scaling_gas[i] >= 0:
            vmr_fact = 1.0 / col[0]
            dry_fact = 1.0 / (1.0 + col[lookup.idx_h2o] * vmr_fact)
            vmr = col[minor.idx_scaling_gas[i]] * vmr_fact * dry_fact
            if minor.scaling_mode[i].value == 'complement':
              scaling *= 1.0 - vmr
            else:
              scaling *= vmr
          start, end = minor.limits_gpt[i]
          fl = lookup.gpoint_flavor[half, start]
          for igpt in range(start, end):
            k_idx = minor.kminor_start[i] + igpt - start
            tau[igpt, ilay, icol] += scaling * _interp_2d(
                c, icol, ilay, fl, kminor, k_idx
            )
  return tau


def reference_rayleigh(lookup, c, col_gas) -> np.ndarray:
  """Rayleigh optical depth `(n_gpt, n_lay, n_col)`."""
  krayl = np.asarray(lookup.krayl, dtype=np.float64)
  n_col, n_lay = c['jtemp'].shape
  tau = np.zeros((lookup.n_gpt, n_lay, n_col))
  for icol in range(n_col):
    for ilay in range(n_lay):
      half = 0 if c['tropo'][icol, ilay] else 1
      col_total = (
          float(col_gas[icol, ilay, lookup.idx_h2o])
          + float(col_gas[icol, ilay, 0])
      )
      for start, end in _bands(lookup):
        fl = lookup.gpoint_flavor[half, start]
        for igpt in range(start, end):
          tau[igpt, ilay, icol] = col_total * _interp_2d(
              c, icol, ilay, fl, krayl[half], igpt
          )
  return tau


def reference_planck_function(lookup, t) -> np.ndarray:
  """Band-integrated Planck function `(n_bnd,)` at temperature `t`."""
  totplnk = np.asarray(lookup.totplnk, dtype=np.float64)
  n = totplnk.shape[0]
  val0 = (float(t) - lookup.t_ref_min) / lookup.t_planck_delta
  idx = min(max(int(np.floor(val0)), 0), n - 2)
  frac = val0 - idx
  return (1.0 - frac) * totplnk[idx] + frac * totplnk[idx + 1]


def reference_planck_sources(
    lookup, c, temperature, temperature_lev, sfc_t, top_at_1
) -> dict[str, np.ndarray]:
  """Surface, layer and level Planck sources."""
  pfrac_table = np.asarray(lookup.planck_fraction, dtype=np.float64)
  n_col, n_lay = c['jtemp'].shape
  pfrac = np.zeros((lookup.n_gpt, n_lay, n_col))
  for icol in range(n_col):
    for ilay in range(n_lay):
      half = 0 if c['tropo'][icol, ilay] else 1
      jt = c['jtemp'][icol, ilay]
      jp = c['jpress'][icol, ilay] + half
      for start, end in _bands(lookup):
        fl = lookup.gpoint_flavor[half, start]
        for igpt in range(start, end):
          for itemp in range(2):
            je = c['jeta'][icol, ilay, fl, itemp]
            for ipress in range(2):
              for ieta in range(2):
                pfrac[igpt, ilay, icol] += (
                    c['fmajor'][icol, ilay, fl, itemp, ipress, ieta]
                    * pfrac_table[jt + itemp, jp + ipress, je + ieta, igpt]
                )

  g2b = lookup.g_point_to_bnd
  sfc_lay = n_lay - 1 if top_at_1 else 0
  out = {
      'sfc_src': np.zeros((lookup.n_gpt, n_col)),
      'lay_src': np.zeros_like(pfrac),
      'lev_src_inc': np.zeros_like(pfrac),
      'lev_src_dec': np.zeros_like(pfrac),
  }
  for icol in range(n_col):
    planck_sfc = reference_planck_function(lookup, sfc_t[icol])
    out['sfc_src'][:, icol] = pfrac[:, sfc_lay, icol] * planck_sfc[g2b]
    for ilay in range(n_lay):
      planck_lay = reference_planck_function(lookup, temperature[icol, ilay])
      planck_lo = reference_planck_function(
          lookup, temperature_lev[icol, ilay]
      )
      planck_hi = reference_planck_function(
          lookup, temperature_lev[icol, ilay + 1]
      )
      out['lay_src'][:, ilay, icol] = pfrac[:, ilay, icol] * planck_lay[g2b]
      out['lev_src_inc'][:, ilay, icol] = pfrac[:, ilay, icol] * planck_hi[g2b]
      out['lev_src_dec'][:, ilay, icol] = pfrac[:, ilay, icol] * planck_lo[g2b]
  return out
