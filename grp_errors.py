# Exceptions shared by the grp.bin graphics scripts
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19

class GraphicsFormatError(ValueError):
    """Bad fixed-size record, bad dimensions, bad buffer length, bad type code."""

class GraphicsResolveError(IndexError):
    """A layout or animation entry points at a texture/palette index that doesn't exist."""

def describe(index, name):
    # How resources get named in error messages
    return f'#{index:03X} {name}'
