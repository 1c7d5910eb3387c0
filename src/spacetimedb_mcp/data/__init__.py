"""Schema-driven decoding of row data."""

from spacetimedb_mcp.data.decoder import decode, decode_row, decode_rows

__all__ = ["decode", "decode_row", "decode_rows"]
