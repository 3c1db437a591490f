"""
Exceptions raised by kcgen.

Anything deriving from `KcgenError` is fatal for a run: the entry point
logs it and exits with a non-zero status. Failures of single objects during
reconciliation are not represented here, they are logged and recorded in
the reconcile report instead.
"""


class KcgenError(Exception):
    """Base class for all fatal kcgen errors."""

    pass


class DescriptorError(KcgenError):
    """Raised when the principal descriptor cannot be read or is invalid."""

    pass


class ClusterConnectionError(KcgenError):
    """Raised when no usable connection to the cluster can be set up."""

    pass


class AssemblyError(KcgenError):
    """Raised when credential material needed for the kubeconfig is missing."""

    def __init__(self, message, artifact=None):
        """
        Args:
            message (str): The error message.
            artifact (str): The cluster object or field that could not be found.
        """
        super().__init__(message)
        self.artifact = artifact


class OutputError(KcgenError):
    """Raised when the generated kubeconfig cannot be written."""

    pass
