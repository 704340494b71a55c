"""
Exception types raised while turning a video into a barcode image.
"""


class BarcodeError(Exception):
    """Base class for every error raised by the barcode pipeline."""


class ValidationError(BarcodeError):
    """Raw parameters could not be turned into a generation plan."""


class InputNotFound(ValidationError):
    def __init__(self, path):
        super().__init__(f"Input file does not exist or is not readable: {path}")
        self.path = path


class InvalidOutputPath(ValidationError):
    def __init__(self, path, reason="parent directory does not exist"):
        super().__init__(f"Invalid output path {path}: {reason}")
        self.path = path
        self.reason = reason


class InvalidNumericParameter(ValidationError):
    def __init__(self, field, value, reason="must be a positive integer"):
        super().__init__(f"{field} {reason} (got {value!r})")
        self.field = field
        self.value = value


class InvalidChoiceParameter(ValidationError):
    def __init__(self, field, value, choices):
        super().__init__(f"{field} must be one of {', '.join(choices)} (got {value!r})")
        self.field = field
        self.value = value
        self.choices = tuple(choices)


class DecoderError(BarcodeError):
    """The external decoder could not deliver frames."""


class DecoderUnavailable(DecoderError):
    """The decoder could not be launched at all."""


class DecoderFailure(DecoderError):
    """
    The decoder ran but failed: non-zero exit status, malformed metadata,
    or an output stream that ended before all frames arrived.
    """

    def __init__(self, message, exit_code=None, frames_received=None, stderr=""):
        details = []
        if exit_code is not None:
            details.append(f"exit code {exit_code}")
        if frames_received is not None:
            details.append(f"{frames_received} frames received")
        if details:
            message = f"{message} ({', '.join(details)})"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
        self.exit_code = exit_code
        self.frames_received = frames_received
        self.stderr = stderr


class CompositionError(BarcodeError):
    def __init__(self, frame_index, cause):
        super().__init__(f"Could not composite frame {frame_index}: {cause}")
        self.frame_index = frame_index
        self.cause = cause


class CancelledByCaller(BarcodeError):
    """Generation was aborted on request. Not a failure."""
