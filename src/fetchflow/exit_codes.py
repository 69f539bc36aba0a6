"""Numeric process exit codes used by the ``fetchflow`` command line.

Each constant maps to an error category and is referenced by the
corresponding :class:`~fetchflow.exceptions.FetchflowError` subclass. When a
request settles to an error envelope, the CLI exits with the code carried by
the envelope's error so shell scripts can branch on the failure class.

Example::

    $ fetchflow get users 42
    $ echo $?
    4   # EXIT_HTTP_ERROR -- the server answered with a non-2xx status
"""

EXIT_SUCCESS = 0
"""The request completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The call was malformed (e.g. a required path parameter was missing)."""

EXIT_HTTP_ERROR = 4
"""The transport resolved with a non-2xx status."""

EXIT_CONNECTION_ERROR = 6
"""The transport raised (timeout, DNS failure, connection refused)."""

EXIT_PLUGIN_ERROR = 10
"""A plugin failed to register, load, or run."""

EXIT_ABORTED = 130
"""The request was cancelled before it settled."""
