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

"""Configuration for the gas optics kernels."""

import dataclasses
import dataclasses_json  # Used for JSON serialization.


@dataclasses.dataclass(frozen=True, kw_only=True)
class GasOpticsCfg(dataclasses_json.DataClassJsonMixin):
  """Parameters controlling how the gas optics scheme treats its inputs."""

  # Whether the atmospheric state is validated (shapes, finiteness and
  # physical ranges) before any optical property is computed.
  validate_inputs: bool = True
  # Whether layer pressures and temperatures outside of the reference grid of
  # the lookup tables are rejected. When false they are clamped to the nearest
  # valid table bin.
  check_reference_range: bool = False
  # Whether the number of layers clamped to the reference grid is logged.
  report_extrapolation: bool = True
