"""debugpy-attacher - discover debugpy processes and coordinate attaching to them."""

__version__ = "1.1.1"
