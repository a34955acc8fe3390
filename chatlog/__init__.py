"""Building blocks for chat history tools: time parsing, .dat image decoding,
decompression, settings, temporary file copies and file monitoring."""

__version__ = "0.1.0"