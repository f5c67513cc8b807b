"""Exceptions raised by the document scanner."""


class ScannerError(Exception):
    """Base class for all scanner failures."""


class ImageDecodeError(ScannerError):
    """Raised when source bytes cannot be decoded into a raster image."""


class DegenerateCorrespondenceError(ScannerError):
    """Raised when 4 point correspondences do not define a usable homography.

    Collinear or coincident corners, a singular linear system, a zero
    bottom-right coefficient or non-finite results all end up here.
    """


class EditorClosedError(ScannerError):
    """Raised when a corner editing session is used after confirm/cancel."""
