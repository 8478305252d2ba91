"""libshell: compose dynamic-linker search paths for a development shell."""

__version__ = "0.1.0"
