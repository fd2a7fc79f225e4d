"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~authflow.exceptions.AuthflowError` subclass.
Shell wrappers can inspect the exit code to tell a missing session apart
from a misconfiguration without parsing stderr.

Example::

    $ authflow token
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- no usable session
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or no valid session is available."""

EXIT_CONFIG_ERROR = 7
"""The configuration is missing required fields or cannot be parsed."""
