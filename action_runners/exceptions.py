"""
Exceptions Module

Error types raised by the runner management tooling.
"""


class RunnerError(Exception):
    """Base exception for runner management errors"""
    pass


class ValidationError(RunnerError):
    """Raised when a repository name, runner number or other input is invalid"""
    pass
