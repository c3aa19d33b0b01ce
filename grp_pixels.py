# Pixel packing for grp.bin SHTX textures
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19
#
# The DS stores pixels two ways:
# - tiles: 8x8 blocks, blocks in row-major order, each block row by row.
#   4bpp packs two pixels per byte, low nibble first.
# - textures: plain row-major, one byte per pixel. Only used at 8bpp.
# Everything here converts between those and a linear list of palette
# indices (one int per pixel, row-major).

from grp_errors import GraphicsFormatError

VALID_SIZES = (8, 16, 32, 64, 128, 256, 512, 1024)

# These are the actual values of the pixel form short in the SHTX header.
# They happen to be the number of colors too
FORM_4BPP = 0x10
FORM_8BPP = 0x100

def check_dimensions(width, height):
    if width not in VALID_SIZES:
        raise GraphicsFormatError(f'Image width {width} not a valid width -- expected one of {VALID_SIZES}')
    if height not in VALID_SIZES:
        raise GraphicsFormatError(f'Image height {height} not a valid height -- expected one of {VALID_SIZES}')

def check_pixel_form(pixel_form, tiled):
    if pixel_form != FORM_4BPP and pixel_form != FORM_8BPP:
        raise GraphicsFormatError(f'Unknown pixel form 0x{pixel_form:X} -- expected 0x10 (4bpp) or 0x100 (8bpp)')
    if not tiled and pixel_form == FORM_4BPP:
        raise GraphicsFormatError('Texture (non-tiled) form is only used with 8bpp pixels')

def pixel_data_length(pixel_form, width, height, tiled=True):
    check_pixel_form(pixel_form, tiled)
    if pixel_form == FORM_4BPP:
        return width * height // 2
    return width * height

def decode_pixels(data, pixel_form, width, height, tiled=True):
    check_dimensions(width, height)
    needed = pixel_data_length(pixel_form, width, height, tiled)
    if len(data) < needed:
        raise GraphicsFormatError(f'Pixel data is 0x{len(data):X} bytes, but a {width}x{height} image needs 0x{needed:X}')

    if not tiled:
        return bytearray(data[:needed])

    raster = bytearray(width * height)
    i = 0
    for row in range(height // 8):
        for col in range(width // 8):
            for ypix in range(8):
                base = (row * 8 + ypix) * width + col * 8
                if pixel_form == FORM_4BPP:
                    for xpix in range(0, 8, 2):
                        b = data[i]
                        raster[base + xpix] = b & 0xF
                        raster[base + xpix + 1] = b >> 4
                        i += 1
                else:
                    raster[base:base + 8] = data[i:i + 8]
                    i += 8
    return raster

def encode_pixels(raster, pixel_form, width, height, tiled=True):
    check_dimensions(width, height)
    check_pixel_form(pixel_form, tiled)
    if len(raster) != width * height:
        raise GraphicsFormatError(f'Raster has {len(raster)} pixels, but a {width}x{height} image has {width * height}')
    limit = 0x10 if pixel_form == FORM_4BPP else 0x100
    for (i, p) in enumerate(raster):
        if not 0 <= p < limit:
            raise GraphicsFormatError(f'Pixel {i} has palette index {p}, which does not fit in a {limit}-color image')

    if not tiled:
        return bytearray(raster)

    data = bytearray()
    for row in range(height // 8):
        for col in range(width // 8):
            for ypix in range(8):
                base = (row * 8 + ypix) * width + col * 8
                if pixel_form == FORM_4BPP:
                    for xpix in range(0, 8, 2):
                        data.append(raster[base + xpix] | (raster[base + xpix + 1] << 4))
                else:
                    data.extend(raster[base:base + 8])
    return data
