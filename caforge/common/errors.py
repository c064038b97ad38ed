# caforge/common/errors.py
"""
Error kinds raised by caforge. Each carries the issuance stage that failed and
the process exit code the CLI reports for it.
"""


class CAError(Exception):
    stage = "issuance"
    exit_code = 1

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        self.message = message
        if stage:
            self.stage = stage

    def __str__(self):
        return f"{self.stage}: {self.message}"


class InvalidParameter(CAError):
    stage = "parameters"
    exit_code = 2


class PrerequisiteMissing(CAError):
    stage = "prerequisites"
    exit_code = 3


class KeyGenerationError(CAError):
    stage = "key generation"
    exit_code = 4


class MalformedRequestError(CAError):
    stage = "signing request"
    exit_code = 5


class SigningError(CAError):
    stage = "signing"
    exit_code = 6


class ExportError(CAError):
    stage = "export"
    exit_code = 7


class VerificationError(CAError):
    stage = "verification"
    exit_code = 8
