# Copyright 2024 inuex35
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

"""Error taxonomy for factor construction and evaluation

Two kinds of failure exist besides the ordinary ``ValueError`` used for
malformed inputs:

- ``ConfigurationError``: the parameter blocks handed to a factor do not match
  any layout it supports, or the noise configuration lacks an entry the factor
  needs. Detected once, at construction.
- ``PreconditionError``: a collaborator the factor depends on is not ready
  (no coordinate origin, no angular velocity).

Both derive from ``FatalError``. They signal a programming or configuration
defect, so nothing in this package catches them; left uncaught they terminate
the process.
"""

import logging
from typing import NoReturn


class FatalError(RuntimeError):
    """Unrecoverable defect in how a factor was set up or used"""


class ConfigurationError(FatalError):
    """Parameter block layout or noise configuration is invalid"""


class PreconditionError(FatalError):
    """A collaborator required for evaluation is not ready"""


def log_fatal(logger: logging.Logger, error_cls: type, message: str) -> NoReturn:
    """Log ``message`` at CRITICAL level and raise ``error_cls(message)``

    Parameters
    ----------
    logger : logging.Logger
        Logger of the module detecting the failure
    error_cls : type
        Subclass of ``FatalError`` to raise
    message : str
        Description of the failure
    """
    if not issubclass(error_cls, FatalError):
        raise TypeError(f"{error_cls.__name__} is not a FatalError")
    logger.critical(message)
    raise error_cls(message)
