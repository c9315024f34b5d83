"""Building blocks of a hardened memory allocator: checksums, chunk headers, flag parsing, error reports, page-release accounting and timing."""

__version__ = "0.1.0"