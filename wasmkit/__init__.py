"""Model WebAssembly functions, globals, data, element and custom sections and encode them in the binary format."""

__version__ = "0.1.0"

__all__ = [
    "arena",
    "custom",
    "data",
    "elements",
    "encoding",
    "functions",
    "globals",
    "instructions",
]