"""Common base for all errors raised by sonix_flasher."""


class SonixFlasherError(Exception):
    """Base error for sonix_flasher."""
