# grp.bin graphics file parsing, image extraction/insertion and repacking
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19
#
# The archive code hands us each file's decompressed bytes, its index in the
# archive and its name. From those we figure out whether it's an SHTX
# texture, a BNL layout or a BNA palette animation. Anything else is kept as
# raw bytes so it can go back into the archive untouched.

import copy

from PIL import Image

from grp_animation import (ANIMATION_COLOR_CYCLE, ANIMATION_ROTATE, animation_frames,
                           read_animation_entries, write_animation)
from grp_errors import GraphicsFormatError, describe
from grp_layout import LAYOUT_HEADER_SIZE, compose, read_layout_entries, texture_resolver, write_layout
from grp_palette import (TRANSPARENT, build_palette_from_image, nearest_index, palette_image,
                         read_palette, write_palette)
from grp_pixels import (FORM_4BPP, FORM_8BPP, check_dimensions, check_pixel_form, decode_pixels,
                        encode_pixels, pixel_data_length)

FUNCTION_UNKNOWN = 'UNKNOWN'
FUNCTION_SHTX = 'SHTX'
FUNCTION_LAYOUT = 'LAYOUT'
FUNCTION_ANIMATION = 'ANIMATION'

FORM_UNKNOWN = 'UNKNOWN'
FORM_TEXTURE = 'TEXTURE'
FORM_TILE = 'TILE'

LAYOUT_SUFFIX = 'BNL'
ANIMATION_SUFFIX = 'BNA'

SHTX_HEADER_SIZE = 0x14
PALETTE_LENGTHS = {FORM_4BPP: 0x60, FORM_8BPP: 0x200}

# Hardcoding these until we figure out how the game knows what to do.
# Every range is inclusive; these files are tiles, every other 8bpp file is
# a texture
TILE_FORM_INDICES = (
    (0x19E, 0x1A7),
    (0x2C0, 0x2C0),
    (0x2C4, 0x2C6),
    (0x2C8, 0x2C8),
    (0x2CA, 0x2CA),
    (0x2CC, 0x2CC),
    (0x316, 0x316),
    (0x318, 0x318),
    (0x331, 0x331),
    (0x370, 0x370),
    (0x3A7, 0x3A7),
    (0x3A9, 0x3A9),
    (0x3AB, 0x3AB),
    (0x3AF, 0x3AF),
    (0x3FE, 0x3FE),
    (0x41B, 0x42C),
    (0x8B4, 0x8B7),
    (0xB61, 0xB6F),
    (0xBC9, 0xC1B),
    (0xC70, 0xC78),
    (0xCA3, 0xCA8),
    (0xCAF, 0xCAF),
    (0xD02, 0xD9F),
    (0xDF3, 0xDF3),
    (0xDFB, 0xE08),
    (0xE0E, 0xE10),
    (0xE17, 0xE25),
    (0xE2A, 0xE41),
    (0xE50, 0xE50),
)

def is_tile_form_index(index):
    return any(low <= index <= high for (low, high) in TILE_FORM_INDICES)

def color_count(pixel_form):
    return 0x10 if pixel_form == FORM_4BPP else 0x100

def flatten_palette(palette):
    flat = []
    for color in palette[:256]:
        flat.extend(color[:3])
    return flat

def realize_palette(palette_data):
    # What the DS will actually show, padded out to a full 256 colors
    palette = read_palette(palette_data)
    while len(palette) < 256:
        palette.append((0, 0, 0))
    return palette

class GraphicsFile:
    def __init__(self, data, index=0, name='', offset=0):
        self.data = bytearray(data)
        self.index = index
        self.name = name
        self.offset = offset
        self.edited = False

        self.function = FUNCTION_UNKNOWN
        self.form = FORM_UNKNOWN
        self.pixel_form = None
        self.determinant = None
        self.width = 0
        self.height = 0
        self.palette_data = bytearray()
        self.palette = []
        self.pixel_data = bytearray()
        self.layout_entries = []
        self.animation_kind = None
        self.animation_entries = []

        try:
            self.parse()
        except GraphicsFormatError as e:
            raise GraphicsFormatError(f'{describe(self.index, self.name)}: {e}') from e

    def parse(self):
        name = self.name.upper()
        if self.data[0:4] == b'SHTX':
            self.parse_shtx()
        elif name.endswith(LAYOUT_SUFFIX):
            self.function = FUNCTION_LAYOUT
            self.layout_entries = read_layout_entries(self.data)
        elif name.endswith(ANIMATION_SUFFIX) and (ANIMATION_ROTATE in name or ANIMATION_COLOR_CYCLE in name):
            self.function = FUNCTION_ANIMATION
            # The name is the only thing that tells us which kind of entry this is
            self.animation_kind = ANIMATION_ROTATE if ANIMATION_ROTATE in name else ANIMATION_COLOR_CYCLE
            self.animation_entries = read_animation_entries(self.data, self.animation_kind)
        else:
            self.function = FUNCTION_UNKNOWN

    def parse_shtx(self):
        if len(self.data) < SHTX_HEADER_SIZE:
            raise GraphicsFormatError(f'SHTX header is 0x{SHTX_HEADER_SIZE:X} bytes, but the file is only 0x{len(self.data):X}')
        self.function = FUNCTION_SHTX
        self.determinant = self.data[4:6].decode('ascii', errors='replace')
        self.pixel_form = int.from_bytes(self.data[6:8], 'little')
        check_pixel_form(self.pixel_form, True)
        self.width = 1 << self.data[0x0E]
        self.height = 1 << self.data[0x0F]
        check_dimensions(self.width, self.height)

        palette_length = PALETTE_LENGTHS[self.pixel_form]
        if len(self.data) < SHTX_HEADER_SIZE + palette_length:
            raise GraphicsFormatError(f'SHTX palette needs 0x{palette_length:X} bytes after the header, '
                                      f'but the file is only 0x{len(self.data):X} bytes')
        self.palette_data = bytearray(self.data[SHTX_HEADER_SIZE:SHTX_HEADER_SIZE + palette_length])
        self.palette = realize_palette(self.palette_data)
        self.pixel_data = bytearray(self.data[SHTX_HEADER_SIZE + palette_length:])

    def is_texture(self):
        if self.form != FORM_UNKNOWN:
            return self.form == FORM_TEXTURE
        # Textures are always 8bpp
        if self.pixel_form == FORM_4BPP:
            return False
        return not is_tile_form_index(self.index)

    def check_shtx(self):
        if self.function != FUNCTION_SHTX:
            raise GraphicsFormatError(f'{describe(self.index, self.name)} is a {self.function} file, not an SHTX texture')

    def get_raster(self, tiled=None):
        self.check_shtx()
        if tiled is None:
            tiled = not self.is_texture()
        try:
            return decode_pixels(self.pixel_data, self.pixel_form, self.width, self.height, tiled)
        except GraphicsFormatError as e:
            raise GraphicsFormatError(f'{describe(self.index, self.name)}: {e}') from e

    def raster_to_image(self, raster, transparent_index=-1):
        image = Image.frombytes('P', (self.width, self.height), bytes(raster))
        image.putpalette(flatten_palette(self.palette))
        if transparent_index >= 0:
            image.info['transparency'] = transparent_index
        return image

    def get_image(self, transparent_index=-1):
        return self.raster_to_image(self.get_raster(), transparent_index)

    def get_texture(self, transparent_index=-1):
        # Layouts always read their textures in texture form (when there is one)
        raster = self.get_raster(tiled=self.pixel_form == FORM_4BPP)
        return self.raster_to_image(raster, transparent_index).convert('RGBA')

    def get_palette_image(self):
        self.check_shtx()
        return palette_image(self.palette)

    def set_palette(self, palette, transparent_index=-1):
        self.check_shtx()
        palette = list(palette)
        if transparent_index >= 0:
            palette.insert(transparent_index, TRANSPARENT)
        self.palette_data = write_palette(palette, len(self.palette_data))
        self.palette = realize_palette(self.palette_data)
        self.edited = True

    def set_image(self, image, set_palette=False, transparent_index=-1, new_size=False):
        """Replace the pixels (and optionally the palette) with `image`.

        Each pixel becomes the index of the nearest palette color. Nothing is
        changed if the image doesn't fit: unless `new_size` is set, the image
        has to be exactly the size of the current one so the file keeps its
        length.
        """
        self.check_shtx()
        where = describe(self.index, self.name)
        try:
            check_dimensions(image.width, image.height)
        except GraphicsFormatError as e:
            raise GraphicsFormatError(f'{where}: {e}') from e
        if not new_size and (image.width, image.height) != (self.width, self.height):
            raise GraphicsFormatError(f'{where} has size {self.width}x{self.height} '
                                      f'but provided image has size {image.width}x{image.height}!')

        tiled = not self.is_texture()
        palette_data = self.palette_data
        if set_palette:
            num_colors = color_count(self.pixel_form)
            if transparent_index >= 0:
                num_colors -= 1
            built = build_palette_from_image(image, num_colors, transparent_index)
            palette_data = write_palette(built, len(self.palette_data))
        palette = realize_palette(palette_data)

        # The transparent slot stores as black, so only let see-through pixels match it
        match_palette = list(palette[:color_count(self.pixel_form)])
        if 0 <= transparent_index < len(match_palette):
            match_palette[transparent_index] = TRANSPARENT

        rgba = image.convert('RGBA').tobytes()
        raster = bytearray(image.width * image.height)
        lookup = {}
        for i in range(len(raster)):
            color = tuple(rgba[i*4:i*4+4])
            match = lookup.get(color)
            if match is None:
                match = nearest_index(match_palette, color)
                lookup[color] = match
            raster[i] = match

        try:
            pixels = encode_pixels(raster, self.pixel_form, image.width, image.height, tiled)
        except GraphicsFormatError as e:
            raise GraphicsFormatError(f'{where}: {e}') from e

        # Everything checked out, now actually change things
        self.palette_data = bytearray(palette_data)
        self.palette = palette
        if new_size:
            self.width = image.width
            self.height = image.height
            self.data[0x0E] = self.width.bit_length() - 1
            self.data[0x0F] = self.height.bit_length() - 1
            self.pixel_data = pixels
        else:
            # Keep whatever trails the image so the file stays the same size
            self.pixel_data[0:len(pixels)] = pixels
        self.edited = True
        return image.width

    def find_layout_textures(self, files):
        """Texture n of a layout is the n-th SHTX file after it in the archive."""
        max_ref = max((e.texture_ref for e in self.layout_entries), default=-1)
        following = sorted((f for f in files if f.index > self.index and f.function == FUNCTION_SHTX),
                           key=lambda f: f.index)
        return [f.get_texture(transparent_index=0) for f in following[:max_ref + 1]]

    def get_layout(self, textures, entry_index=0, num_entries=None, dark_mode=False):
        if self.function != FUNCTION_LAYOUT:
            raise GraphicsFormatError(f'{describe(self.index, self.name)} is a {self.function} file, not a layout')
        if num_entries is None:
            entries = self.layout_entries[entry_index:]
        else:
            entries = self.layout_entries[entry_index:entry_index + num_entries]
        image = compose(entries, texture_resolver(textures), dark_mode)
        self.width, self.height = image.size
        return (image, entries)

    def get_animation_frames(self, texture, max_frames=None):
        if self.function != FUNCTION_ANIMATION:
            raise GraphicsFormatError(f'{describe(self.index, self.name)} is a {self.function} file, not a palette animation')
        texture.check_shtx()
        return animation_frames(self.animation_kind, self.animation_entries, texture, max_frames)

    def clone(self):
        return copy.deepcopy(self)

    def get_bytes(self):
        if self.function == FUNCTION_SHTX:
            data = bytearray(self.data[:SHTX_HEADER_SIZE])
            data.extend(self.palette_data)
            data.extend(self.pixel_data)
            return data
        elif self.function == FUNCTION_LAYOUT:
            return write_layout(self.data[:LAYOUT_HEADER_SIZE], self.layout_entries)
        elif self.function == FUNCTION_ANIMATION:
            return write_animation(self.animation_entries)
        else:
            return bytearray(self.data)

    def __str__(self):
        return f'{self.index:03X} {self.index:04d} 0x{self.offset:08X} ({self.function}) - {self.name}'

def new_texture(image, pixel_form, form, name, transparent_index=-1, index=0):
    """Build a brand new SHTX file around `image`, generating its palette."""
    check_dimensions(image.width, image.height)
    tiled = form == FORM_TILE
    pixel_length = pixel_data_length(pixel_form, image.width, image.height, tiled)

    data = bytearray(b'SHTXDS')
    data.extend(pixel_form.to_bytes(2, 'little'))
    # No idea what most of these are, but every SHTX in the game has them
    data.extend(bytes([0x01, 0x00, 0x00, 0x01, 0xC0, 0x00,
                       image.width.bit_length() - 1, image.height.bit_length() - 1,
                       0x00, 0xC0, 0x00, 0x00]))
    data.extend(bytes(PALETTE_LENGTHS[pixel_form]))
    data.extend(bytes(pixel_length))

    graphics = GraphicsFile(data, index, name.upper())
    graphics.form = form
    graphics.set_image(image, set_palette=True, transparent_index=transparent_index)
    return graphics
