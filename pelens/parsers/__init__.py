"""PE/COFF structural decoders: primitive reader, headers, sections, directories."""

from pelens.parsers.pe_image import PEImage, parse

__all__ = ["PEImage", "parse"]
