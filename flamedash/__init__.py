"""FlameDash: live flame graphs of Python stack samples."""

APP_NAME = "FlameDash"
__version__ = "0.3.0"
